"""Domain events for the StoreCreditAccount aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from storecredit.domain import storecredit


@storecredit.event(part_of="StoreCreditAccount")
class StoreCreditAccountOpened:
    """A user received their first store-credit record."""

    __version__ = 1

    user_id = Identifier(required=True)
    opened_at = DateTime(required=True)


@storecredit.event(part_of="StoreCreditAccount")
class CreditAdded:
    """Credit, a refund or a return was added to a user's balance."""

    __version__ = 1

    user_id = Identifier(required=True)
    transaction_id = Identifier(required=True)
    transaction_type = String(required=True)
    amount = Integer(required=True)
    balance_before = Integer(required=True)
    balance_after = Integer(required=True)
    order_ref = String()
    description = String()
    added_at = DateTime(required=True)


@storecredit.event(part_of="StoreCreditAccount")
class CreditDeducted:
    """Credit was spent from a user's balance."""

    __version__ = 1

    user_id = Identifier(required=True)
    transaction_id = Identifier(required=True)
    amount = Integer(required=True)
    balance_before = Integer(required=True)
    balance_after = Integer(required=True)
    order_ref = String()
    description = String()
    deducted_at = DateTime(required=True)
