from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class UserDB(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(Text, nullable=False, unique=True)
    email = Column(Text, nullable=False, unique=True)

    # bcrypt hash, never the plain password
    password_hash = Column(Text, nullable=False)

    full_name = Column(Text, nullable=False)
    role = Column(Text, nullable=False, default="employee", server_default="employee")  # 'admin' or 'employee'

    # External chat-bot user id
    bot_user_id = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CategoryDB(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    color = Column(Text, nullable=False, default="#1976D2", server_default="#1976D2")
    type = Column(Text, nullable=False)  # 'income' or 'expense'

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AccountDB(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False)  # 'checking', 'savings', 'loan' or 'credit'

    # For loan/credit accounts this is the amount still owed
    balance = Column(Numeric(15, 2), nullable=False, default=0, server_default="0")

    bank_name = Column(Text, nullable=True)
    account_number = Column(Text, nullable=True)
    user_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TransactionDB(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(Text, nullable=False)  # 'income' or 'expense'
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=False)
    third_party = Column(Text, nullable=True)

    # Weak references: no FK constraint, deleting a category/account leaves the id dangling
    category_id = Column(Integer, nullable=True, index=True)
    account_id = Column(Integer, nullable=True, index=True)

    payment_method = Column(Text, nullable=True)  # 'cash', 'credit_card', 'debit_card', 'transfer'
    notes = Column(Text, nullable=True)
    user_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    transaction_date = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class BotConfigDB(Base):
    __tablename__ = "bot_config"

    id = Column(Integer, primary_key=True, index=True)
    bot_token = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, server_default="true", nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
