import asyncio
import itertools
import logging
from datetime import UTC, date, datetime
from decimal import Decimal

from finanzas.constants import DEFAULT_CATEGORIES, DEMO_ACCOUNTS, DEMO_ADMIN, LIABILITY_ACCOUNT_TYPES
from finanzas.models.money import ZERO, to_money
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
from finanzas.security import hash_password
from finanzas.services.ledger import apply_delta, signed_amount
from finanzas.storage.base import DEBT_SETTLED, NOT_A_LIABILITY, LedgerError, PostingResult, Storage

logger = logging.getLogger(__name__)


def _newest_first(items):
    return sorted(items, key=lambda item: (item.created_at, item.id), reverse=True)


class MemStorage(Storage):
    """
    Non-durable backend used for tests, local runs and as the fallback when
    the database is unreachable at startup. State lives as long as the instance.
    """

    name = "memory"

    def __init__(self, seed: bool = True):
        self._users: dict[int, User] = {}
        self._categories: dict[int, Category] = {}
        self._accounts: dict[int, Account] = {}
        self._transactions: dict[int, Transaction] = {}
        self._bot_configs: dict[int, BotConfig] = {}

        self._user_ids = itertools.count(1)
        self._category_ids = itertools.count(1)
        self._account_ids = itertools.count(1)
        self._transaction_ids = itertools.count(1)
        self._bot_config_ids = itertools.count(1)

        # Serializes every balance mutation
        self._ledger_lock = asyncio.Lock()

        if seed:
            self._seed()

    def _seed(self):
        admin = dict(DEMO_ADMIN)
        password = admin.pop("password")
        admin_user = self._insert_user(UserCreate(**admin, password_hash=hash_password(password)))

        for cat in DEFAULT_CATEGORIES:
            self._insert_category(CategoryCreate(**cat))

        for acc in DEMO_ACCOUNTS:
            self._insert_account(AccountCreate(**acc), admin_user.id)

    # --- Helpers ---
    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def _insert_user(self, data: UserCreate) -> User:
        user = User(id=next(self._user_ids), created_at=self._now(), **data.model_dump())
        self._users[user.id] = user
        return user

    def _insert_category(self, data: CategoryCreate) -> Category:
        category = Category(id=next(self._category_ids), created_at=self._now(), **data.model_dump())
        self._categories[category.id] = category
        return category

    def _insert_account(self, data: AccountCreate, user_id: int | None) -> Account:
        account = Account(id=next(self._account_ids), user_id=user_id, created_at=self._now(), **data.model_dump())
        self._accounts[account.id] = account
        return account

    def _insert_transaction(self, data: TransactionCreate, user_id: int | None) -> Transaction:
        tx = Transaction(id=next(self._transaction_ids), user_id=user_id, created_at=self._now(), **data.model_dump())
        self._transactions[tx.id] = tx
        return tx

    def _require_account(self, account_id: int) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise LedgerError(f"Account {account_id} not found")
        return account

    def _require_funds(self, account_id: int, amount: Decimal) -> None:
        account = self._require_account(account_id)
        if account.balance < amount:
            raise LedgerError(f"Insufficient funds. Available balance: {account.balance}")

    def _post(self, account_id: int, delta: Decimal) -> PostingStatus:
        account = self._accounts.get(account_id)
        if account is None:
            logger.warning(f"Account {account_id} not found, balance not adjusted by {delta}")
            return PostingStatus.ACCOUNT_MISSING

        self._accounts[account_id] = account.model_copy(update={"balance": apply_delta(account.balance, delta)})
        return PostingStatus.POSTED

    # --- Users ---
    async def get_user(self, user_id: int) -> User | None:
        return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> User | None:
        return next((u for u in self._users.values() if u.username == username), None)

    async def get_user_by_email(self, email: str) -> User | None:
        return next((u for u in self._users.values() if u.email == email), None)

    async def create_user(self, data: UserCreate) -> User:
        return self._insert_user(data)

    async def update_user(self, user_id: int, changes: UserUpdate) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        self._users[user_id] = user.model_copy(update=changes.model_dump(exclude_unset=True))
        return self._users[user_id]

    # --- Categories ---
    async def list_categories(self) -> list[Category]:
        return list(self._categories.values())

    async def get_category(self, category_id: int) -> Category | None:
        return self._categories.get(category_id)

    async def create_category(self, data: CategoryCreate) -> Category:
        return self._insert_category(data)

    async def update_category(self, category_id: int, changes: CategoryUpdate) -> Category | None:
        category = self._categories.get(category_id)
        if category is None:
            return None
        self._categories[category_id] = category.model_copy(update=changes.model_dump(exclude_unset=True))
        return self._categories[category_id]

    async def delete_category(self, category_id: int) -> bool:
        return self._categories.pop(category_id, None) is not None

    # --- Accounts ---
    async def list_accounts(self) -> list[Account]:
        return list(self._accounts.values())

    async def get_account(self, account_id: int) -> Account | None:
        return self._accounts.get(account_id)

    async def list_accounts_by_user(self, user_id: int) -> list[Account]:
        return [a for a in self._accounts.values() if a.user_id == user_id]

    async def create_account(self, data: AccountCreate, user_id: int | None = None) -> Account:
        return self._insert_account(data, user_id)

    async def update_account(self, account_id: int, changes: AccountUpdate) -> Account | None:
        async with self._ledger_lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            updates = changes.model_dump(exclude_unset=True)
            if "balance" in updates:
                updates["balance"] = to_money(updates["balance"])
            self._accounts[account_id] = account.model_copy(update=updates)
            return self._accounts[account_id]

    async def delete_account(self, account_id: int) -> bool:
        return self._accounts.pop(account_id, None) is not None

    # --- Transactions ---
    async def list_transactions(self) -> list[Transaction]:
        return _newest_first(self._transactions.values())

    async def get_transaction(self, tx_id: int) -> Transaction | None:
        return self._transactions.get(tx_id)

    async def list_transactions_by_user(self, user_id: int) -> list[Transaction]:
        return _newest_first(t for t in self._transactions.values() if t.user_id == user_id)

    async def list_transactions_by_date_range(
        self, start: date, end: date, user_id: int | None = None
    ) -> list[Transaction]:
        return _newest_first(
            t
            for t in self._transactions.values()
            if start <= t.transaction_date.date() <= end and (user_id is None or t.user_id == user_id)
        )

    async def create_transaction(self, data: TransactionCreate, user_id: int | None = None) -> PostingResult:
        async with self._ledger_lock:
            tx = self._insert_transaction(data, user_id)

            status = PostingStatus.NO_ACCOUNT
            if tx.account_id is not None:
                status = self._post(tx.account_id, signed_amount(tx.type, tx.amount))

        return PostingResult(tx, status)

    async def update_transaction(self, tx_id: int, changes: TransactionUpdate) -> PostingResult | None:
        async with self._ledger_lock:
            old = self._transactions.get(tx_id)
            if old is None:
                return None

            new = old.model_copy(update=changes.model_dump(exclude_unset=True))
            self._transactions[tx_id] = new

            old_posting = (old.account_id, signed_amount(old.type, old.amount))
            new_posting = (new.account_id, signed_amount(new.type, new.amount))
            if old_posting == new_posting:
                return PostingResult(new, PostingStatus.UNCHANGED, PostingStatus.UNCHANGED)

            reversal = PostingStatus.NO_ACCOUNT
            if old.account_id is not None:
                reversal = self._post(old.account_id, -old_posting[1])

            status = PostingStatus.NO_ACCOUNT
            if new.account_id is not None:
                status = self._post(new.account_id, new_posting[1])

        return PostingResult(new, status, reversal)

    async def delete_transaction(self, tx_id: int) -> bool:
        async with self._ledger_lock:
            tx = self._transactions.get(tx_id)
            if tx is None:
                return False

            if tx.account_id is not None:
                self._post(tx.account_id, -signed_amount(tx.type, tx.amount))

            del self._transactions[tx_id]
            return True

    # --- Multi-account postings ---
    # All checks run before the first write, so a rejection leaves no trace
    async def post_transfer(
        self, outgoing: TransactionCreate, incoming: TransactionCreate, user_id: int | None = None
    ) -> tuple[PostingResult, PostingResult]:
        async with self._ledger_lock:
            self._require_funds(outgoing.account_id, outgoing.amount)
            self._require_account(incoming.account_id)

            results = []
            for leg in (outgoing, incoming):
                tx = self._insert_transaction(leg, user_id)
                results.append(PostingResult(tx, self._post(tx.account_id, signed_amount(tx.type, tx.amount))))

        return results[0], results[1]

    async def post_loan_payment(
        self, payment: TransactionCreate, loan_id: int, user_id: int | None = None
    ) -> tuple[PostingResult, Account]:
        async with self._ledger_lock:
            loan = self._require_account(loan_id)
            if loan.type not in LIABILITY_ACCOUNT_TYPES:
                raise LedgerError(NOT_A_LIABILITY)
            if loan.balance <= ZERO:
                raise LedgerError(DEBT_SETTLED)
            self._require_funds(payment.account_id, payment.amount)

            tx = self._insert_transaction(payment, user_id)
            status = self._post(tx.account_id, signed_amount(tx.type, tx.amount))

            loan = loan.model_copy(update={"balance": max(ZERO, apply_delta(loan.balance, -tx.amount))})
            self._accounts[loan_id] = loan

        return PostingResult(tx, status), loan

    async def post_loan_disbursement(
        self, loan: AccountCreate, disbursement: TransactionCreate | None, user_id: int | None = None
    ) -> tuple[Account, PostingResult | None]:
        async with self._ledger_lock:
            if disbursement is not None:
                self._require_account(disbursement.account_id)

            account = self._insert_account(loan, user_id)
            if disbursement is None:
                return account, None

            tx = self._insert_transaction(disbursement, user_id)
            status = self._post(tx.account_id, signed_amount(tx.type, tx.amount))

        return account, PostingResult(tx, status)

    # --- Bot Config ---
    async def get_bot_config(self) -> BotConfig | None:
        return next(iter(self._bot_configs.values()), None)

    async def create_bot_config(self, data: BotConfigCreate) -> BotConfig:
        config = BotConfig(id=next(self._bot_config_ids), created_at=self._now(), **data.model_dump())
        self._bot_configs[config.id] = config
        return config

    async def update_bot_config(self, config_id: int, changes: BotConfigUpdate) -> BotConfig | None:
        config = self._bot_configs.get(config_id)
        if config is None:
            return None
        self._bot_configs[config_id] = config.model_copy(update=changes.model_dump(exclude_unset=True))
        return self._bot_configs[config_id]
