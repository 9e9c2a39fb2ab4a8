"""Adding store credit — command and handler.

Covers plain credits, refunds (including compensating reversals of a
checkout debit) and returns. Opens the account on first use.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storecredit.account.account import StoreCreditAccount, TransactionType
from storecredit.domain import storecredit


@storecredit.command(part_of="StoreCreditAccount")
class AddCredit:
    user_id = Identifier(required=True)
    amount = Integer(required=True)
    description = String(max_length=500)
    order_ref = String(max_length=255)
    transaction_type = String(max_length=20, default=TransactionType.CREDIT.value)


@storecredit.command_handler(part_of=StoreCreditAccount)
class AddCreditHandler:
    @handle(AddCredit)
    def add_credit(self, command):
        repo = current_domain.repository_for(StoreCreditAccount)
        try:
            account = repo.get(command.user_id)
        except ObjectNotFoundError:
            account = StoreCreditAccount.open(command.user_id)

        entry = account.credit(
            amount=command.amount,
            description=command.description,
            order_ref=command.order_ref,
            transaction_type=command.transaction_type or TransactionType.CREDIT.value,
        )
        repo.add(account)
        return {"transaction_id": str(entry.id), "balance_after": entry.balance_after}
