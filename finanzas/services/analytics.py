from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal

from finanzas.constants import (
    LIABILITY_ACCOUNT_TYPES,
    LOAN_PAYMENT_MARKER,
    TRANSFER_MARKER,
    TREND_MONTHS,
    UNCATEGORIZED_LABEL,
)
from finanzas.models.money import ZERO, to_money
from finanzas.models.schemas import Account, Category, MonthlyTrend, Summary, Transaction
from finanzas.storage.base import Storage


def is_internal_movement(tx: Transaction) -> bool:
    """Transfers and loan payments move balances but are not income or expense."""
    return tx.third_party == TRANSFER_MARKER or LOAN_PAYMENT_MARKER in (tx.description or "")


def business_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [tx for tx in transactions if not is_internal_movement(tx)]


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return first, next_first - timedelta(days=1)


def previous_month(day: date) -> date:
    return day.replace(day=1) - timedelta(days=1)


def total_for(transactions: Iterable[Transaction], tx_type: str, start: date, end: date) -> Decimal:
    return to_money(
        sum(
            (tx.amount for tx in transactions if tx.type == tx_type and start <= tx.transaction_date.date() <= end),
            ZERO,
        )
    )


def change_percent(current: Decimal, previous: Decimal) -> Decimal:
    if previous <= ZERO:
        return ZERO
    return to_money((current - previous) / previous * 100)


def summarize(transactions: Iterable[Transaction], accounts: Iterable[Account], today: date) -> Summary:
    accounts = list(accounts)
    relevant = business_transactions(transactions)

    month_start, month_end = month_bounds(today)
    prev_start, prev_end = month_bounds(previous_month(today))

    monthly_income = total_for(relevant, "income", month_start, month_end)
    monthly_expense = total_for(relevant, "expense", month_start, month_end)
    prev_income = total_for(relevant, "income", prev_start, prev_end)
    prev_expense = total_for(relevant, "expense", prev_start, prev_end)

    return Summary(
        total_balance=sum((a.balance for a in accounts), ZERO),
        monthly_income=monthly_income,
        monthly_expense=monthly_expense,
        pending_loans=sum((max(ZERO, a.balance) for a in accounts if a.type in LIABILITY_ACCOUNT_TYPES), ZERO),
        net_cash_flow=monthly_income - monthly_expense,
        income_change_percent=change_percent(monthly_income, prev_income),
        expense_change_percent=change_percent(monthly_expense, prev_expense),
        prev_month_income=prev_income,
        prev_month_expense=prev_expense,
    )


def expenses_by_category(transactions: Iterable[Transaction], categories: Iterable[Category]) -> dict[str, Decimal]:
    names = {c.id: c.name for c in categories}

    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for tx in business_transactions(transactions):
        if tx.type != "expense":
            continue
        totals[names.get(tx.category_id, UNCATEGORIZED_LABEL)] += tx.amount

    return {name: to_money(total) for name, total in totals.items()}


def monthly_trends(transactions: Iterable[Transaction], limit: int = TREND_MONTHS) -> list[MonthlyTrend]:
    months: dict[str, dict[str, Decimal]] = {}
    for tx in transactions:
        key = tx.transaction_date.strftime("%Y-%m")
        bucket = months.setdefault(key, {"income": ZERO, "expense": ZERO})
        if not is_internal_movement(tx):
            bucket[tx.type] += tx.amount

    # Zero-padded YYYY-MM sorts chronologically
    recent = sorted(months)[-limit:] if limit > 0 else []
    return [
        MonthlyTrend(
            month=key,
            income=months[key]["income"],
            expense=months[key]["expense"],
            net=months[key]["income"] - months[key]["expense"],
        )
        for key in recent
    ]


class AnalyticsService:
    def __init__(self, storage: Storage):
        self.storage = storage

    async def get_summary(self, user_id: int, today: date | None = None) -> Summary:
        """
        Current-month income/expense against the previous month, plus account
        totals. Recomputed from the full transaction set on every call.
        """
        transactions = await self.storage.list_transactions_by_user(user_id)
        accounts = await self.storage.list_accounts_by_user(user_id)
        return summarize(transactions, accounts, today or date.today())

    async def get_expenses_by_category(self, user_id: int) -> dict[str, Decimal]:
        transactions = await self.storage.list_transactions_by_user(user_id)
        categories = await self.storage.list_categories()
        return expenses_by_category(transactions, categories)

    async def get_monthly_trends(self, user_id: int) -> list[MonthlyTrend]:
        transactions = await self.storage.list_transactions_by_user(user_id)
        return monthly_trends(transactions)
