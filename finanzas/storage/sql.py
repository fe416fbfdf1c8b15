import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import case, desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from finanzas.constants import DEFAULT_CATEGORIES, LIABILITY_ACCOUNT_TYPES
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
from finanzas.models.sql import AccountDB, BotConfigDB, CategoryDB, TransactionDB, UserDB
from finanzas.services.ledger import signed_amount
from finanzas.storage.base import (
    DEBT_SETTLED,
    NOT_A_LIABILITY,
    LedgerError,
    PostingResult,
    Storage,
    StorageError,
)

logger = logging.getLogger(__name__)


class DatabaseStorage(Storage):
    """
    Relational backend. Every public method runs in its own session and
    commits once, so a transaction row and its balance posting are written
    atomically.
    """

    name = "database"

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], engine: AsyncEngine | None = None):
        self._session_maker = session_maker
        self._engine = engine

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_maker() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.exception("Database operation failed")
                raise StorageError(str(e)) from e

    async def _get_row(self, model, row_id: int):
        async with self._session() as session:
            return await session.get(model, row_id)

    async def _insert(self, row):
        async with self._session() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    async def _patch(self, model, row_id: int, updates: dict):
        async with self._session() as session:
            row = await session.get(model, row_id)
            if row is None:
                return None
            for field, value in updates.items():
                setattr(row, field, value)
            await session.commit()
            await session.refresh(row)
            return row

    async def _delete(self, model, row_id: int) -> bool:
        async with self._session() as session:
            row = await session.get(model, row_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    async def _post(self, session: AsyncSession, account_id: int, delta: Decimal) -> PostingStatus:
        # Single atomic increment instead of read-modify-write
        stmt = update(AccountDB).where(AccountDB.id == account_id).values(balance=AccountDB.balance + delta)
        result = await session.execute(stmt, execution_options={"synchronize_session": False})
        if not result.rowcount:
            logger.warning(f"Account {account_id} not found, balance not adjusted by {delta}")
            return PostingStatus.ACCOUNT_MISSING
        return PostingStatus.POSTED

    async def _debit_covered(self, session: AsyncSession, account_id: int, amount: Decimal) -> None:
        # Balance check and debit in one statement, so concurrent debits cannot overdraw
        stmt = (
            update(AccountDB)
            .where(AccountDB.id == account_id, AccountDB.balance >= amount)
            .values(balance=AccountDB.balance - amount)
        )
        result = await session.execute(stmt, execution_options={"synchronize_session": False})
        if result.rowcount:
            return

        balance = await session.scalar(select(AccountDB.balance).where(AccountDB.id == account_id))
        if balance is None:
            raise LedgerError(f"Account {account_id} not found")
        raise LedgerError(f"Insufficient funds. Available balance: {balance}")

    async def _reduce_debt(self, session: AsyncSession, loan_id: int, amount: Decimal) -> None:
        remaining = AccountDB.balance - amount
        stmt = (
            update(AccountDB)
            .where(
                AccountDB.id == loan_id,
                AccountDB.type.in_(LIABILITY_ACCOUNT_TYPES),
                AccountDB.balance > 0,
            )
            .values(balance=case((remaining < 0, 0), else_=remaining))
        )
        result = await session.execute(stmt, execution_options={"synchronize_session": False})
        if result.rowcount:
            return

        loan_type = await session.scalar(select(AccountDB.type).where(AccountDB.id == loan_id))
        if loan_type is None:
            raise LedgerError(f"Account {loan_id} not found")
        raise LedgerError(NOT_A_LIABILITY if loan_type not in LIABILITY_ACCOUNT_TYPES else DEBT_SETTLED)

    async def ensure_default_categories(self) -> None:
        async with self._session() as session:
            count = await session.scalar(select(func.count()).select_from(CategoryDB))
            if count:
                return
            session.add_all(CategoryDB(**cat) for cat in DEFAULT_CATEGORIES)
            await session.commit()
            logger.info(f"Inserted {len(DEFAULT_CATEGORIES)} default categories")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # --- Users ---
    async def get_user(self, user_id: int) -> User | None:
        row = await self._get_row(UserDB, user_id)
        return User.model_validate(row) if row else None

    async def _get_user_by(self, column, value) -> User | None:
        async with self._session() as session:
            row = await session.scalar(select(UserDB).where(column == value))
            return User.model_validate(row) if row else None

    async def get_user_by_username(self, username: str) -> User | None:
        return await self._get_user_by(UserDB.username, username)

    async def get_user_by_email(self, email: str) -> User | None:
        return await self._get_user_by(UserDB.email, email)

    async def create_user(self, data: UserCreate) -> User:
        row = await self._insert(UserDB(**data.model_dump()))
        return User.model_validate(row)

    async def update_user(self, user_id: int, changes: UserUpdate) -> User | None:
        row = await self._patch(UserDB, user_id, changes.model_dump(exclude_unset=True))
        return User.model_validate(row) if row else None

    # --- Categories ---
    async def list_categories(self) -> list[Category]:
        async with self._session() as session:
            result = await session.scalars(select(CategoryDB).order_by(CategoryDB.id))
            return [Category.model_validate(row) for row in result]

    async def get_category(self, category_id: int) -> Category | None:
        row = await self._get_row(CategoryDB, category_id)
        return Category.model_validate(row) if row else None

    async def create_category(self, data: CategoryCreate) -> Category:
        row = await self._insert(CategoryDB(**data.model_dump()))
        return Category.model_validate(row)

    async def update_category(self, category_id: int, changes: CategoryUpdate) -> Category | None:
        row = await self._patch(CategoryDB, category_id, changes.model_dump(exclude_unset=True))
        return Category.model_validate(row) if row else None

    async def delete_category(self, category_id: int) -> bool:
        return await self._delete(CategoryDB, category_id)

    # --- Accounts ---
    async def list_accounts(self) -> list[Account]:
        async with self._session() as session:
            result = await session.scalars(select(AccountDB).order_by(AccountDB.id))
            return [Account.model_validate(row) for row in result]

    async def get_account(self, account_id: int) -> Account | None:
        row = await self._get_row(AccountDB, account_id)
        return Account.model_validate(row) if row else None

    async def list_accounts_by_user(self, user_id: int) -> list[Account]:
        async with self._session() as session:
            result = await session.scalars(
                select(AccountDB).where(AccountDB.user_id == user_id).order_by(AccountDB.id)
            )
            return [Account.model_validate(row) for row in result]

    async def create_account(self, data: AccountCreate, user_id: int | None = None) -> Account:
        row = await self._insert(AccountDB(**data.model_dump(), user_id=user_id))
        return Account.model_validate(row)

    async def update_account(self, account_id: int, changes: AccountUpdate) -> Account | None:
        row = await self._patch(AccountDB, account_id, changes.model_dump(exclude_unset=True))
        return Account.model_validate(row) if row else None

    async def delete_account(self, account_id: int) -> bool:
        return await self._delete(AccountDB, account_id)

    # --- Transactions ---
    async def _list_transactions(self, *conditions) -> list[Transaction]:
        stmt = (
            select(TransactionDB)
            .where(*conditions)
            .order_by(desc(TransactionDB.created_at), desc(TransactionDB.id))
        )
        async with self._session() as session:
            result = await session.scalars(stmt)
            return [Transaction.model_validate(row) for row in result]

    async def list_transactions(self) -> list[Transaction]:
        return await self._list_transactions()

    async def get_transaction(self, tx_id: int) -> Transaction | None:
        row = await self._get_row(TransactionDB, tx_id)
        return Transaction.model_validate(row) if row else None

    async def list_transactions_by_user(self, user_id: int) -> list[Transaction]:
        return await self._list_transactions(TransactionDB.user_id == user_id)

    async def list_transactions_by_date_range(
        self, start: date, end: date, user_id: int | None = None
    ) -> list[Transaction]:
        # Half-open interval over whole UTC days
        conditions = [
            TransactionDB.transaction_date >= datetime.combine(start, time.min, tzinfo=UTC),
            TransactionDB.transaction_date < datetime.combine(end + timedelta(days=1), time.min, tzinfo=UTC),
        ]
        if user_id is not None:
            conditions.append(TransactionDB.user_id == user_id)
        return await self._list_transactions(*conditions)

    async def create_transaction(self, data: TransactionCreate, user_id: int | None = None) -> PostingResult:
        async with self._session() as session:
            row = TransactionDB(**data.model_dump(), user_id=user_id)
            session.add(row)

            status = PostingStatus.NO_ACCOUNT
            if row.account_id is not None:
                status = await self._post(session, row.account_id, signed_amount(row.type, row.amount))

            await session.commit()
            await session.refresh(row)
            return PostingResult(Transaction.model_validate(row), status)

    async def update_transaction(self, tx_id: int, changes: TransactionUpdate) -> PostingResult | None:
        async with self._session() as session:
            row = await session.get(TransactionDB, tx_id)
            if row is None:
                return None

            old_posting = (row.account_id, signed_amount(row.type, row.amount))
            for field, value in changes.model_dump(exclude_unset=True).items():
                setattr(row, field, value)
            new_posting = (row.account_id, signed_amount(row.type, row.amount))

            status = reversal = PostingStatus.UNCHANGED
            if old_posting != new_posting:
                reversal = status = PostingStatus.NO_ACCOUNT
                if old_posting[0] is not None:
                    reversal = await self._post(session, old_posting[0], -old_posting[1])
                if new_posting[0] is not None:
                    status = await self._post(session, new_posting[0], new_posting[1])

            await session.commit()
            await session.refresh(row)
            return PostingResult(Transaction.model_validate(row), status, reversal)

    async def delete_transaction(self, tx_id: int) -> bool:
        async with self._session() as session:
            row = await session.get(TransactionDB, tx_id)
            if row is None:
                return False

            if row.account_id is not None:
                await self._post(session, row.account_id, -signed_amount(row.type, row.amount))

            await session.delete(row)
            await session.commit()
            return True

    # --- Multi-account postings ---
    # A LedgerError raised inside the session leaves it uncommitted, so nothing is written
    async def post_transfer(
        self, outgoing: TransactionCreate, incoming: TransactionCreate, user_id: int | None = None
    ) -> tuple[PostingResult, PostingResult]:
        async with self._session() as session:
            await self._debit_covered(session, outgoing.account_id, outgoing.amount)
            credit = await self._post(session, incoming.account_id, signed_amount(incoming.type, incoming.amount))
            if credit is PostingStatus.ACCOUNT_MISSING:
                raise LedgerError(f"Account {incoming.account_id} not found")

            rows = [TransactionDB(**leg.model_dump(), user_id=user_id) for leg in (outgoing, incoming)]
            session.add_all(rows)
            await session.commit()

            results = []
            for row in rows:
                await session.refresh(row)
                results.append(PostingResult(Transaction.model_validate(row), PostingStatus.POSTED))
            return results[0], results[1]

    async def post_loan_payment(
        self, payment: TransactionCreate, loan_id: int, user_id: int | None = None
    ) -> tuple[PostingResult, Account]:
        async with self._session() as session:
            # Debt first: concurrent payments then queue on the loan row
            await self._reduce_debt(session, loan_id, payment.amount)
            await self._debit_covered(session, payment.account_id, payment.amount)

            row = TransactionDB(**payment.model_dump(), user_id=user_id)
            session.add(row)
            await session.commit()

            await session.refresh(row)
            loan = await session.get(AccountDB, loan_id, populate_existing=True)
            return PostingResult(Transaction.model_validate(row), PostingStatus.POSTED), Account.model_validate(loan)

    async def post_loan_disbursement(
        self, loan: AccountCreate, disbursement: TransactionCreate | None, user_id: int | None = None
    ) -> tuple[Account, PostingResult | None]:
        async with self._session() as session:
            account_row = AccountDB(**loan.model_dump(), user_id=user_id)
            session.add(account_row)

            tx_row = None
            if disbursement is not None:
                status = await self._post(
                    session, disbursement.account_id, signed_amount(disbursement.type, disbursement.amount)
                )
                if status is PostingStatus.ACCOUNT_MISSING:
                    raise LedgerError(f"Account {disbursement.account_id} not found")
                tx_row = TransactionDB(**disbursement.model_dump(), user_id=user_id)
                session.add(tx_row)

            await session.commit()
            await session.refresh(account_row)
            if tx_row is None:
                return Account.model_validate(account_row), None

            await session.refresh(tx_row)
            return Account.model_validate(account_row), PostingResult(Transaction.model_validate(tx_row), status)

    # --- Bot Config ---
    async def get_bot_config(self) -> BotConfig | None:
        async with self._session() as session:
            row = await session.scalar(select(BotConfigDB).order_by(BotConfigDB.id).limit(1))
            return BotConfig.model_validate(row) if row else None

    async def create_bot_config(self, data: BotConfigCreate) -> BotConfig:
        row = await self._insert(BotConfigDB(**data.model_dump()))
        return BotConfig.model_validate(row)

    async def update_bot_config(self, config_id: int, changes: BotConfigUpdate) -> BotConfig | None:
        row = await self._patch(BotConfigDB, config_id, changes.model_dump(exclude_unset=True))
        return BotConfig.model_validate(row) if row else None
