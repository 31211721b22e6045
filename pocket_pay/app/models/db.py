from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .states import RequestStatus, TransactionStatus, TransactionType, WithdrawalSpeed


def utcnow() -> datetime:
    return datetime.now(UTC)


class Account(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    owner_id: str = Field(index=True, unique=True, max_length=128)
    handle: Optional[str] = Field(default=None, index=True, unique=True, max_length=64)
    currency: str = Field(default="USD", max_length=3)
    created_at: datetime = Field(default_factory=utcnow)
    # Cached; only changed by the ledger in the same database transaction
    # that appends the matching entries.
    balance: int = Field(default=0)
    is_system: bool = Field(default=False)


class LedgerEntry(SQLModel, table=True):
    __tablename__ = "ledger_entry"
    __table_args__ = (
        UniqueConstraint("reference_transaction_id", "leg", name="uq_ledger_entry_leg"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: UUID = Field(foreign_key="account.id", index=True)
    amount: int
    balance_after: int
    created_at: datetime = Field(default_factory=utcnow, index=True)
    reference_transaction_id: str = Field(foreign_key="wallet_transaction.id", index=True)
    leg: int
    description: Optional[str] = None


class Transaction(SQLModel, table=True):
    __tablename__ = "wallet_transaction"

    id: str = Field(primary_key=True, max_length=64)
    type: TransactionType
    amount: int
    sender_account_id: Optional[UUID] = Field(default=None, foreign_key="account.id", index=True)
    recipient_account_id: Optional[UUID] = Field(default=None, foreign_key="account.id", index=True)
    description: Optional[str] = None
    status: TransactionStatus = Field(default=TransactionStatus.CREATED, index=True)
    is_risky: bool = False
    risk_reason: Optional[str] = None
    failure_reason: Optional[str] = None
    failure_code: Optional[str] = Field(default=None, max_length=32)
    fee: int = 0
    speed: Optional[WithdrawalSpeed] = None
    bank_ref: Optional[str] = None
    external_ref: Optional[str] = None
    estimated_arrival: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class MoneyRequest(SQLModel, table=True):
    __tablename__ = "money_request"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    requester_account_id: UUID = Field(foreign_key="account.id", index=True)
    requested_from_account_id: UUID = Field(foreign_key="account.id", index=True)
    amount: int
    note: Optional[str] = None
    status: RequestStatus = Field(default=RequestStatus.PENDING, index=True)
    linked_transaction_id: Optional[str] = Field(
        default=None, foreign_key="wallet_transaction.id"
    )
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class RiskSetting(SQLModel, table=True):
    __tablename__ = "risk_setting"

    key: str = Field(primary_key=True, max_length=64)
    value: float
    updated_at: datetime = Field(default_factory=utcnow)
