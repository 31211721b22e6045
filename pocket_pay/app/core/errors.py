from __future__ import annotations

from typing import Optional


class WalletError(Exception):
    """Base class for failures surfaced to callers of the wallet core."""

    status_code = 400
    code = "wallet_error"


class InvalidAmountError(WalletError):
    """Raised when an amount is zero or negative."""


class SameAccountError(WalletError):
    """Raised when both sides of a movement are the same wallet."""


class InsufficientFundsError(WalletError):
    """Raised when a debit would drop a balance below zero."""

    status_code = 409
    code = "insufficient_funds"


class AccountNotFoundError(WalletError):
    """Raised when an account id, owner or handle is missing from the store."""

    status_code = 404


class TransactionNotFoundError(WalletError):
    status_code = 404


class RequestNotFoundError(WalletError):
    status_code = 404


class IdempotencyConflictError(WalletError):
    """Raised when the same idempotency key is reused with different input."""

    status_code = 409


class InvalidStateTransitionError(WalletError):
    status_code = 409


class InvalidRequestStateError(WalletError):
    status_code = 409


class RiskBlockedError(WalletError):
    """Raised when a risk block stops a workflow that needs the money to move."""

    status_code = 403

    def __init__(self, message: str, risk_reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.risk_reason = risk_reason


class BankTransferError(WalletError):
    """Raised when the bank network rejects a collection or payout."""

    status_code = 502
    code = "bank_transfer_failed"


class ConcurrencyConflictError(WalletError):
    """Raised when a unit of work keeps losing lock or uniqueness races."""

    status_code = 503


# Failures recorded on a transaction, raised again when its id is replayed.
RECORDED_FAILURES: dict[str, type[WalletError]] = {
    InsufficientFundsError.code: InsufficientFundsError,
    BankTransferError.code: BankTransferError,
}


def recorded_failure(code: Optional[str], reason: Optional[str]) -> WalletError:
    error_class = RECORDED_FAILURES.get(code or "", WalletError)
    return error_class(reason or "Transaction failed")
