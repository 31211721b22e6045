"""Closed status sets and the transitions allowed between them."""

from __future__ import annotations

from enum import Enum

from ..core.errors import InvalidRequestStateError, InvalidStateTransitionError


class TransactionType(str, Enum):
    SEND = "send"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(str, Enum):
    CREATED = "created"
    PENDING_CONFIRMATION = "pending_confirmation"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class WithdrawalSpeed(str, Enum):
    STANDARD = "standard"
    INSTANT = "instant"


class RiskDecision(str, Enum):
    ALLOW = "allow"
    REVIEW = "review"
    BLOCK = "block"


class InsightsPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


TRANSACTION_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.CREATED: frozenset(
        {
            TransactionStatus.COMPLETED,
            TransactionStatus.PENDING_CONFIRMATION,
            TransactionStatus.BLOCKED,
            TransactionStatus.FAILED,
        }
    ),
    TransactionStatus.PENDING_CONFIRMATION: frozenset(
        {
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.CANCELLED,
        }
    ),
}

REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset(
        {RequestStatus.ACCEPTED, RequestStatus.DECLINED, RequestStatus.CANCELLED}
    ),
}

RISK_OUTCOMES: dict[RiskDecision, TransactionStatus] = {
    RiskDecision.ALLOW: TransactionStatus.COMPLETED,
    RiskDecision.REVIEW: TransactionStatus.PENDING_CONFIRMATION,
    RiskDecision.BLOCK: TransactionStatus.BLOCKED,
}


def ensure_transaction_transition(
    current: TransactionStatus, target: TransactionStatus
) -> None:
    if target not in TRANSACTION_TRANSITIONS.get(current, frozenset()):
        raise InvalidStateTransitionError(
            f"Transaction cannot move from {current.value} to {target.value}"
        )


def ensure_request_transition(current: RequestStatus, target: RequestStatus) -> None:
    if target not in REQUEST_TRANSITIONS.get(current, frozenset()):
        raise InvalidRequestStateError(
            f"Request is {current.value}; only pending requests can be {target.value}"
        )
