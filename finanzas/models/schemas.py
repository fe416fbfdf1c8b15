from datetime import UTC, date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from finanzas.models.money import ZERO, Money

TransactionType = Literal["expense", "income"]
AccountType = Literal["checking", "savings", "loan", "credit"]
Role = Literal["admin", "employee"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
MIN_AMOUNT = Decimal("0.01")

# Date-only input is pinned to midday UTC so the calendar date never shifts
BUSINESS_DATE_TIME = time(12, 0, tzinfo=UTC)


def parse_business_date(value) -> datetime:
    """
    Normalizes a transaction date to an aware UTC datetime.
    Accepts 'YYYY-MM-DD', full ISO datetimes, date and datetime objects.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    if isinstance(value, date):
        return datetime.combine(value, BUSINESS_DATE_TIME)

    if isinstance(value, str) and value.strip():
        value = value.strip()
        try:
            if "T" in value:
                return parse_business_date(datetime.fromisoformat(value.replace("Z", "+00:00")))
            return datetime.combine(date.fromisoformat(value), BUSINESS_DATE_TIME)
        except ValueError:
            raise ValueError("Invalid date") from None

    raise ValueError("Invalid date")


# --- Posting Results ---
class PostingStatus(str, Enum):
    POSTED = "posted"
    ACCOUNT_MISSING = "account_missing"
    NO_ACCOUNT = "no_account"
    UNCHANGED = "unchanged"


# --- User Models ---
class UserCreate(BaseModel):
    username: str
    email: str
    password_hash: str
    full_name: str
    role: Role = "employee"
    bot_user_id: str | None = None


class UserUpdate(BaseModel):
    email: str | None = Field(None, pattern=EMAIL_PATTERN)
    password_hash: str | None = None
    full_name: str | None = Field(None, min_length=2)
    role: Role | None = None
    bot_user_id: str | None = None

    @field_validator("email", "password_hash", "full_name", "role", mode="before")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("Field may not be null")
        return value


class User(BaseModel):
    id: int
    username: str
    email: str
    password_hash: str = Field(exclude=True, repr=False)
    full_name: str
    role: Role
    bot_user_id: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    user: User


class ProfileUpdate(BaseModel):
    email: str | None = Field(None, pattern=EMAIL_PATTERN)
    full_name: str | None = Field(None, min_length=2)
    bot_user_id: str | None = None

    @field_validator("email", "full_name", mode="before")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("Field may not be null")
        return value


# --- Auth Models ---
class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3)
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=72)
    full_name: str = Field(min_length=2)


# --- Category Models ---
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str = "#1976D2"
    type: TransactionType


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    color: str | None = None
    type: TransactionType | None = None

    @field_validator("name", "color", "type", mode="before")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("Field may not be null")
        return value


class Category(CategoryCreate):
    id: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True


# --- Account Models ---
class AccountCreate(BaseModel):
    name: str = Field(min_length=1)
    type: AccountType
    balance: Money = ZERO
    bank_name: str | None = None
    account_number: str | None = None


class AccountUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    type: AccountType | None = None
    balance: Money | None = None
    bank_name: str | None = None
    account_number: str | None = None

    @field_validator("name", "type", "balance", mode="before")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("Field may not be null")
        return value


class Account(BaseModel):
    id: int
    name: str
    type: AccountType
    balance: Money
    bank_name: str | None = None
    account_number: str | None = None
    user_id: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


# --- Transaction Models ---
class TransactionCreate(BaseModel):
    type: TransactionType
    amount: Money = Field(ge=MIN_AMOUNT)
    description: str = Field(min_length=1)
    third_party: str | None = None
    category_id: int | None = None
    account_id: int | None = None
    payment_method: str | None = None
    notes: str | None = None
    transaction_date: datetime

    @field_validator("transaction_date", mode="before")
    @classmethod
    def business_date(cls, value):
        return parse_business_date(value)


class TransactionUpdate(BaseModel):
    type: TransactionType | None = None
    amount: Money | None = Field(None, ge=MIN_AMOUNT)
    description: str | None = Field(None, min_length=1)
    third_party: str | None = None
    category_id: int | None = None
    account_id: int | None = None
    payment_method: str | None = None
    notes: str | None = None
    transaction_date: datetime | None = None

    @field_validator("type", "amount", "description", mode="before")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("Field may not be null")
        return value

    @field_validator("transaction_date", mode="before")
    @classmethod
    def business_date(cls, value):
        return parse_business_date(value)


class Transaction(BaseModel):
    id: int
    type: TransactionType
    amount: Money
    description: str
    third_party: str | None = None
    category_id: int | None = None
    account_id: int | None = None
    payment_method: str | None = None
    notes: str | None = None
    user_id: int | None = None
    created_at: datetime | None = None
    transaction_date: datetime

    class Config:
        from_attributes = True


class TransactionDetail(Transaction):
    category: Category | None = None
    account: Account | None = None


class PostingResponse(BaseModel):
    transaction: Transaction
    posting: PostingStatus
    reversal: PostingStatus | None = None


# --- Transfers & Loan Payments ---
class TransferRequest(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: Money = Field(ge=MIN_AMOUNT)
    transaction_date: datetime
    notes: str | None = None

    @field_validator("transaction_date", mode="before")
    @classmethod
    def business_date(cls, value):
        return parse_business_date(value)


class LoanPaymentRequest(TransferRequest):
    pass


class TransferResponse(BaseModel):
    outgoing: PostingResponse
    incoming: PostingResponse


class LoanPaymentResponse(BaseModel):
    payment: PostingResponse
    loan: Account


class LoanDisbursementRequest(BaseModel):
    name: str = Field(min_length=1)
    type: Literal["loan", "credit"] = "loan"
    amount: Money = Field(ge=MIN_AMOUNT)
    bank_name: str | None = None
    destination_account_id: int | None = None
    expense_transaction_id: int | None = None
    transaction_date: datetime
    notes: str | None = None

    @field_validator("transaction_date", mode="before")
    @classmethod
    def business_date(cls, value):
        return parse_business_date(value)


class LoanDisbursementResponse(BaseModel):
    loan: Account
    disbursement: PostingResponse | None = None


# --- Bot Config Models ---
class BotConfigCreate(BaseModel):
    bot_token: str = Field(min_length=1)
    is_active: bool = True


class BotConfigUpdate(BaseModel):
    bot_token: str | None = Field(None, min_length=1)
    is_active: bool | None = None

    @field_validator("bot_token", "is_active", mode="before")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("Field may not be null")
        return value


class BotConfig(BaseModel):
    id: int
    bot_token: str
    is_active: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True


# --- Analytics Models ---
class Summary(BaseModel):
    total_balance: Money
    monthly_income: Money
    monthly_expense: Money
    pending_loans: Money
    net_cash_flow: Money
    income_change_percent: Money
    expense_change_percent: Money
    prev_month_income: Money
    prev_month_expense: Money


class MonthlyTrend(BaseModel):
    month: str
    income: Money
    expense: Money
    net: Money
