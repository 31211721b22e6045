from .db import Account as AccountModel
from .db import LedgerEntry as LedgerEntryModel
from .db import MoneyRequest as MoneyRequestModel
from .db import RiskSetting as RiskSettingModel
from .db import Transaction as TransactionModel
from .schemas import (
    AcceptRequestBody,
    AcceptedRequestResponse,
    AccountCreate,
    AccountResponse,
    BalanceResponse,
    DepositRequest,
    InsightsResponse,
    LedgerEntryResponse,
    MoneyRequestCreate,
    MoneyRequestEnvelope,
    MoneyRequestListResponse,
    MoneyRequestResponse,
    RiskSettingResponse,
    RiskSettingsResponse,
    RiskSettingUpdate,
    SendRequest,
    StatementResponse,
    TransactionEnvelope,
    TransactionListResponse,
    TransactionRef,
    TransactionResponse,
    WithdrawalResponse,
    WithdrawRequest,
)
from .states import (
    InsightsPeriod,
    RequestStatus,
    RiskDecision,
    TransactionStatus,
    TransactionType,
    WithdrawalSpeed,
)

__all__ = [
    "AcceptRequestBody",
    "AcceptedRequestResponse",
    "AccountCreate",
    "AccountResponse",
    "BalanceResponse",
    "DepositRequest",
    "InsightsResponse",
    "LedgerEntryResponse",
    "MoneyRequestCreate",
    "MoneyRequestEnvelope",
    "MoneyRequestListResponse",
    "MoneyRequestResponse",
    "RiskSettingResponse",
    "RiskSettingsResponse",
    "RiskSettingUpdate",
    "SendRequest",
    "StatementResponse",
    "TransactionEnvelope",
    "TransactionListResponse",
    "TransactionRef",
    "TransactionResponse",
    "WithdrawalResponse",
    "WithdrawRequest",
    "AccountModel",
    "LedgerEntryModel",
    "MoneyRequestModel",
    "RiskSettingModel",
    "TransactionModel",
    "InsightsPeriod",
    "RequestStatus",
    "RiskDecision",
    "TransactionStatus",
    "TransactionType",
    "WithdrawalSpeed",
]
