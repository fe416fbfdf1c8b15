from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date

from finanzas.models.schemas import (
    Account,
    AccountCreate,
    AccountUpdate,
    BotConfig,
    BotConfigCreate,
    BotConfigUpdate,
    Category,
    CategoryCreate,
    CategoryUpdate,
    PostingStatus,
    Transaction,
    TransactionCreate,
    TransactionUpdate,
    User,
    UserCreate,
    UserUpdate,
)


class StorageError(Exception):
    """The underlying database operation failed (connectivity, constraint violation)."""


class LedgerError(ValueError):
    """A transfer or loan operation was rejected before anything was written."""


NOT_A_LIABILITY = "Destination account must be a loan or credit"
DEBT_SETTLED = "This loan is already fully paid"


@dataclass(frozen=True)
class PostingResult:
    """
    Outcome of a transaction write.

    `status` describes the posting of the transaction as it now stands;
    `reversal` is only set by updates and describes undoing the old posting.
    """

    transaction: Transaction
    status: PostingStatus
    reversal: PostingStatus | None = None


class Storage(ABC):
    """
    Persistence contract shared by the in-memory and relational backends.

    Lookups return None for missing rows, deletes return False, updates
    apply only explicitly supplied fields. Failures raise StorageError.
    """

    name: str

    # --- Users ---
    @abstractmethod
    async def get_user(self, user_id: int) -> User | None: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    async def create_user(self, data: UserCreate) -> User: ...

    @abstractmethod
    async def update_user(self, user_id: int, changes: UserUpdate) -> User | None: ...

    # --- Categories ---
    @abstractmethod
    async def list_categories(self) -> list[Category]: ...

    @abstractmethod
    async def get_category(self, category_id: int) -> Category | None: ...

    @abstractmethod
    async def create_category(self, data: CategoryCreate) -> Category: ...

    @abstractmethod
    async def update_category(self, category_id: int, changes: CategoryUpdate) -> Category | None: ...

    @abstractmethod
    async def delete_category(self, category_id: int) -> bool: ...

    # --- Accounts ---
    @abstractmethod
    async def list_accounts(self) -> list[Account]: ...

    @abstractmethod
    async def get_account(self, account_id: int) -> Account | None: ...

    @abstractmethod
    async def list_accounts_by_user(self, user_id: int) -> list[Account]: ...

    @abstractmethod
    async def create_account(self, data: AccountCreate, user_id: int | None = None) -> Account: ...

    @abstractmethod
    async def update_account(self, account_id: int, changes: AccountUpdate) -> Account | None: ...

    @abstractmethod
    async def delete_account(self, account_id: int) -> bool: ...

    # --- Transactions ---
    @abstractmethod
    async def list_transactions(self) -> list[Transaction]: ...

    @abstractmethod
    async def get_transaction(self, tx_id: int) -> Transaction | None: ...

    @abstractmethod
    async def list_transactions_by_user(self, user_id: int) -> list[Transaction]: ...

    @abstractmethod
    async def list_transactions_by_date_range(
        self, start: date, end: date, user_id: int | None = None
    ) -> list[Transaction]:
        """Bounds are inclusive calendar dates matched against the business date."""

    @abstractmethod
    async def create_transaction(self, data: TransactionCreate, user_id: int | None = None) -> PostingResult: ...

    @abstractmethod
    async def update_transaction(self, tx_id: int, changes: TransactionUpdate) -> PostingResult | None: ...

    @abstractmethod
    async def delete_transaction(self, tx_id: int) -> bool: ...

    # --- Multi-account postings ---
    # Each runs as one unit: either every row and balance change is written or none is.
    @abstractmethod
    async def post_transfer(
        self, outgoing: TransactionCreate, incoming: TransactionCreate, user_id: int | None = None
    ) -> tuple[PostingResult, PostingResult]:
        """
        Writes both legs of a transfer. The debit of the outgoing account is
        guarded by its current balance; raises LedgerError when it does not
        cover the amount.
        """

    @abstractmethod
    async def post_loan_payment(
        self, payment: TransactionCreate, loan_id: int, user_id: int | None = None
    ) -> tuple[PostingResult, Account]:
        """
        Writes the payment expense against its source account and reduces the
        debt on ``loan_id`` by the same amount, floored at zero. Raises
        LedgerError when the source does not cover the amount or the debt is
        already settled.
        """

    @abstractmethod
    async def post_loan_disbursement(
        self, loan: AccountCreate, disbursement: TransactionCreate | None, user_id: int | None = None
    ) -> tuple[Account, PostingResult | None]:
        """Opens a loan/credit account and, optionally, posts the principal to another account."""

    # --- Bot Config ---
    @abstractmethod
    async def get_bot_config(self) -> BotConfig | None: ...

    @abstractmethod
    async def create_bot_config(self, data: BotConfigCreate) -> BotConfig: ...

    @abstractmethod
    async def update_bot_config(self, config_id: int, changes: BotConfigUpdate) -> BotConfig | None: ...

    async def close(self) -> None:
        """Releases backend resources."""
