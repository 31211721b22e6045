from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .states import RequestStatus, TransactionStatus, TransactionType, WithdrawalSpeed


class AccountCreate(BaseModel):
    owner_id: str = Field(..., min_length=1, max_length=128, description="Identity of the wallet holder")
    handle: Optional[str] = Field(default=None, min_length=1, max_length=64, description="Public handle used for lookups")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: str
    handle: Optional[str] = None
    currency: str
    created_at: datetime
    balance: int = Field(..., description="Balance in minor units (e.g. cents)")


class BalanceResponse(BaseModel):
    available: int
    pending: int


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    account_id: UUID
    amount: int
    balance_after: int
    reference_transaction_id: str
    description: Optional[str] = None


class StatementResponse(BaseModel):
    items: list[LedgerEntryResponse]
    next_cursor: Optional[str] = None


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    amount: int
    sender_account_id: Optional[UUID] = None
    recipient_account_id: Optional[UUID] = None
    description: Optional[str] = None
    status: TransactionStatus
    is_risky: bool
    risk_reason: Optional[str] = None
    failure_reason: Optional[str] = None
    failure_code: Optional[str] = None
    fee: int = 0
    speed: Optional[WithdrawalSpeed] = None
    bank_ref: Optional[str] = None
    estimated_arrival: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TransactionEnvelope(BaseModel):
    transaction: TransactionResponse


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]


class SendRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=64, description="Idempotency key for this send")
    recipient_account_ref: str = Field(..., min_length=1, description="Recipient account id or handle")
    amount: int = Field(..., description="Amount in minor units")
    description: Optional[str] = Field(default=None, max_length=255)


class TransactionRef(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=64)


class MoneyRequestCreate(BaseModel):
    requested_from_account_ref: str = Field(..., min_length=1)
    amount: int
    note: Optional[str] = Field(default=None, max_length=255)


class AcceptRequestBody(BaseModel):
    transaction_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class MoneyRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    requester_account_id: UUID
    requested_from_account_id: UUID
    amount: int
    note: Optional[str] = None
    status: RequestStatus
    linked_transaction_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MoneyRequestEnvelope(BaseModel):
    request: MoneyRequestResponse


class AcceptedRequestResponse(BaseModel):
    transaction: TransactionResponse
    request: MoneyRequestResponse


class MoneyRequestListResponse(BaseModel):
    incoming: list[MoneyRequestResponse]
    outgoing: list[MoneyRequestResponse]


class DepositRequest(BaseModel):
    amount: int = Field(..., description="Amount in minor units")
    bank_ref: str = Field(..., min_length=1, max_length=128, description="External bank account reference")


class WithdrawRequest(BaseModel):
    amount: int = Field(..., description="Amount in minor units, excluding fees")
    speed: WithdrawalSpeed = WithdrawalSpeed.STANDARD
    bank_ref: str = Field(..., min_length=1, max_length=128)


class WithdrawalResponse(BaseModel):
    transaction: TransactionResponse
    fee: int
    total_debited: int
    estimated_arrival: str


class InsightsResponse(BaseModel):
    period: str
    since: datetime
    total_sent: int
    total_received: int
    total_deposited: int
    total_withdrawn: int
    fees_paid: int
    total_blocked: int
    transaction_count: int


class RiskSettingUpdate(BaseModel):
    value: float = Field(..., ge=0)


class RiskSettingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    value: float
    updated_at: datetime


class RiskSettingsResponse(BaseModel):
    settings: list[RiskSettingResponse]
