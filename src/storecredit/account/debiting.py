"""Spending store credit — command and handler.

The balance check and the deduction happen on the same loaded aggregate in
one unit of work. Callers that may race (two tabs checking out at once) go
through ``CreditLedger``, which serializes per user around this command.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storecredit.account.account import StoreCreditAccount
from storecredit.domain import storecredit
from storecredit.errors import InsufficientFundsError


@storecredit.command(part_of="StoreCreditAccount")
class DeductCredit:
    user_id = Identifier(required=True)
    amount = Integer(required=True)
    description = String(max_length=500)
    order_ref = String(max_length=255)


@storecredit.command_handler(part_of=StoreCreditAccount)
class DeductCreditHandler:
    @handle(DeductCredit)
    def deduct_credit(self, command):
        repo = current_domain.repository_for(StoreCreditAccount)
        try:
            account = repo.get(command.user_id)
        except ObjectNotFoundError:
            # No record is a zero balance
            raise InsufficientFundsError(str(command.user_id), command.amount, 0) from None

        entry = account.debit(
            amount=command.amount,
            description=command.description,
            order_ref=command.order_ref,
        )
        repo.add(account)
        return {"transaction_id": str(entry.id), "balance_after": entry.balance_after}
