import logging
from datetime import UTC, datetime
from decimal import Decimal

from finanzas.constants import (
    DEBT_PAYMENT_THIRD_PARTY,
    LIABILITY_ACCOUNT_TYPES,
    LOAN_DISBURSEMENT_THIRD_PARTY,
    TRANSFER_MARKER,
)
from finanzas.models.money import to_money
from finanzas.models.schemas import (
    Account,
    AccountCreate,
    LoanDisbursementRequest,
    LoanPaymentRequest,
    TransactionCreate,
    TransferRequest,
)
from finanzas.storage.base import LedgerError, PostingResult, Storage

logger = logging.getLogger(__name__)


def signed_amount(tx_type: str, amount: Decimal) -> Decimal:
    """Balance delta of a posting: +amount for income, -amount for expense."""
    amount = to_money(amount)
    return amount if tx_type == "income" else -amount


def apply_delta(balance: Decimal, delta: Decimal) -> Decimal:
    return to_money(to_money(balance) + delta)


def _debt_kind(account_type: str) -> str:
    return "préstamo" if account_type == "loan" else "crédito"


class LedgerService:
    """
    Multi-posting operations. Ownership is checked here; balance guards and
    the writes themselves happen in a single storage call.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    async def _owned_account(self, account_id: int, user_id: int) -> Account:
        account = await self.storage.get_account(account_id)
        if account is None or account.user_id != user_id:
            raise LedgerError(f"Account {account_id} not found")
        return account

    async def _source_and_target(self, req: TransferRequest, user_id: int) -> tuple[Account, Account]:
        if req.from_account_id == req.to_account_id:
            raise LedgerError("Source and destination accounts must differ")

        source = await self._owned_account(req.from_account_id, user_id)
        target = await self._owned_account(req.to_account_id, user_id)
        return source, target

    async def transfer(self, req: TransferRequest, user_id: int) -> tuple[PostingResult, PostingResult]:
        """
        Moves money between two of the user's accounts as a pair of postings
        tagged with the transfer marker, so analytics ignore both legs.
        """
        source, target = await self._source_and_target(req, user_id)

        outgoing = TransactionCreate(
            type="expense",
            amount=req.amount,
            description=f"Transferencia a {target.name}",
            third_party=TRANSFER_MARKER,
            account_id=source.id,
            payment_method="transfer",
            notes=req.notes or f"Transferencia a {target.name}",
            transaction_date=req.transaction_date,
        )
        incoming = TransactionCreate(
            type="income",
            amount=req.amount,
            description=f"Transferencia desde {source.name}",
            third_party=TRANSFER_MARKER,
            account_id=target.id,
            payment_method="transfer",
            notes=req.notes or f"Transferencia desde {source.name}",
            transaction_date=req.transaction_date,
        )

        result = await self.storage.post_transfer(outgoing, incoming, user_id=user_id)
        logger.info(f"Transfer of {req.amount} from account {source.id} to account {target.id}")
        return result

    async def pay_loan(self, req: LoanPaymentRequest, user_id: int) -> tuple[PostingResult, Account]:
        """
        Pays down a loan/credit account from a bank account. The payment is an
        expense on the source account; the debt is reduced directly and never
        goes below zero.
        """
        source, loan = await self._source_and_target(req, user_id)

        kind = _debt_kind(loan.type)
        payment = TransactionCreate(
            type="expense",
            amount=req.amount,
            description=f"Pago de {kind}: {loan.name}",
            third_party=DEBT_PAYMENT_THIRD_PARTY,
            account_id=source.id,
            payment_method="transfer",
            notes=req.notes or f"Pago de {kind}",
            transaction_date=req.transaction_date,
        )

        result, updated = await self.storage.post_loan_payment(payment, loan.id, user_id=user_id)
        logger.info(f"Loan payment of {req.amount} to account {loan.id}, remaining {updated.balance}")
        return result, updated

    async def take_loan(self, req: LoanDisbursementRequest, user_id: int) -> tuple[Account, PostingResult | None]:
        """
        Opens a loan/credit account holding the principal as outstanding debt.
        When a destination account is given the principal is credited to it;
        a linked expense only annotates that posting.
        """
        destination = None
        if req.destination_account_id is not None:
            destination = await self._owned_account(req.destination_account_id, user_id)
            if destination.type in LIABILITY_ACCOUNT_TYPES:
                raise LedgerError("Destination account must be a bank account")

        notes = req.notes
        if req.expense_transaction_id is not None:
            if destination is None:
                raise LedgerError("A destination account is required to pay an expense")
            expense = await self.storage.get_transaction(req.expense_transaction_id)
            if expense is None or expense.user_id != user_id or expense.type != "expense":
                raise LedgerError(f"Expense {req.expense_transaction_id} not found")
            notes = notes or f"Pago del gasto: {expense.description}"

        loan = AccountCreate(
            name=req.name,
            type=req.type,
            balance=req.amount,
            bank_name=req.bank_name,
            # Original principal stays readable after payments reduce the balance
            account_number=f"{req.type.upper()}-{req.amount}-{int(datetime.now(UTC).timestamp() * 1000)}",
        )

        disbursement = None
        if destination is not None:
            disbursement = TransactionCreate(
                type="income",
                amount=req.amount,
                # Loan marker keeps the principal out of income analytics
                description=f"Pago de préstamo: {req.name}",
                third_party=LOAN_DISBURSEMENT_THIRD_PARTY,
                account_id=destination.id,
                payment_method="transfer",
                notes=notes or f"Desembolso de {_debt_kind(req.type)}",
                transaction_date=req.transaction_date,
            )

        account, result = await self.storage.post_loan_disbursement(loan, disbursement, user_id=user_id)
        logger.info(f"Opened {req.type} account {account.id} with principal {req.amount} for user {user_id}")
        return account, result
