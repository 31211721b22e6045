from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Protocol
from uuid import uuid4

from sqlmodel import Session

from ..core.config import Settings, get_settings
from ..core.db import atomic
from ..core.errors import (
    BankTransferError,
    IdempotencyConflictError,
    InsufficientFundsError,
    InvalidAmountError,
    recorded_failure,
)
from ..models import (
    AccountModel,
    TransactionModel,
    TransactionStatus,
    TransactionType,
    WithdrawalSpeed,
)
from .accounts import AccountStore
from .ledger import Ledger
from .repository import WalletRepository


logger = logging.getLogger(__name__)

ESTIMATED_ARRIVAL = {
    WithdrawalSpeed.INSTANT: "Instant",
    WithdrawalSpeed.STANDARD: "1-3 business days",
}


class BankNetwork(Protocol):
    """External bank rails. Calls are keyed by the wallet transaction id."""

    def collect(self, transaction_id: str, bank_ref: str, amount: int) -> str:
        ...

    def payout(
        self, transaction_id: str, bank_ref: str, amount: int, speed: WithdrawalSpeed
    ) -> str:
        ...


class SimulatedBankNetwork:
    """In-process bank stub that settles synchronously.

    Repeated calls for the same transaction id return the first confirmation.
    Set ``failure`` to make every new call fail with that reason.
    """

    def __init__(self, failure: Optional[str] = None) -> None:
        self.failure = failure
        self._lock = threading.Lock()
        self._confirmations: dict[str, str] = {}

    def _settle(self, transaction_id: str) -> str:
        with self._lock:
            if transaction_id in self._confirmations:
                return self._confirmations[transaction_id]
            if self.failure:
                raise BankTransferError(self.failure)
            reference = f"bank-{uuid4().hex[:12]}"
            self._confirmations[transaction_id] = reference
            return reference

    def collect(self, transaction_id: str, bank_ref: str, amount: int) -> str:
        return self._settle(transaction_id)

    def payout(
        self, transaction_id: str, bank_ref: str, amount: int, speed: WithdrawalSpeed
    ) -> str:
        return self._settle(transaction_id)


@dataclass
class WithdrawalResult:
    transaction: TransactionModel
    fee: int
    total_debited: int
    estimated_arrival: str


class BankingWorkflow:
    """Deposits from and withdrawals to external bank accounts.

    Bank movements are not risk evaluated. Withdrawals may pay an instant
    settlement fee, which is credited to the fee revenue account.
    """

    def __init__(
        self,
        session: Session,
        bank: BankNetwork,
        repository: Optional[WalletRepository] = None,
        accounts: Optional[AccountStore] = None,
        ledger: Optional[Ledger] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.bank = bank
        self.settings = settings or get_settings()
        self.repository = repository or WalletRepository(session)
        self.accounts = accounts or AccountStore(session, self.repository, self.settings)
        self.ledger = ledger or Ledger(session, self.repository, self.accounts)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def instant_fee(self, amount: int) -> int:
        fee = Decimal(amount) * self.settings.instant_withdrawal_fee_rate
        return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def deposit(
        self,
        transaction_id: str,
        owner_id: str,
        amount: int,
        bank_ref: str,
    ) -> TransactionModel:
        if amount <= 0:
            raise InvalidAmountError("Amount must be positive")
        description = f"Deposit from {bank_ref}"

        def unit() -> TransactionModel:
            account = self.accounts.get_account_for_owner(owner_id)
            existing = self.repository.get_transaction(transaction_id)
            if existing is not None:
                self._ensure_same(existing, TransactionType.DEPOSIT, account, amount)
                logger.info("idempotent.deposit.hit", extra={"transaction_id": transaction_id})
                return existing

            transaction = self.repository.add_transaction(
                TransactionModel(
                    id=transaction_id,
                    type=TransactionType.DEPOSIT,
                    amount=amount,
                    recipient_account_id=account.id,
                    description=description,
                    bank_ref=bank_ref,
                )
            )
            confirmation = self.bank.collect(transaction_id, bank_ref, amount)
            balance = self.ledger.append_credit(transaction.id, account.id, amount, description)
            self.repository.transition_transaction(transaction, TransactionStatus.COMPLETED, external_ref=confirmation)
            logger.info(
                "account.deposit",
                extra={
                    "transaction_id": transaction_id,
                    "account_id": str(account.id),
                    "amount": amount,
                    "balance": balance,
                },
            )
            return transaction

        try:
            transaction = atomic(self.session, unit, self.settings)
        except BankTransferError as exc:
            self._record_bank_failure(
                transaction_id,
                TransactionType.DEPOSIT,
                owner_id,
                amount,
                bank_ref,
                description,
                str(exc),
            )
            raise

        if transaction.status is TransactionStatus.FAILED:
            raise recorded_failure(transaction.failure_code, transaction.failure_reason)
        return transaction

    def withdraw(
        self,
        transaction_id: str,
        owner_id: str,
        amount: int,
        speed: WithdrawalSpeed,
        bank_ref: str,
    ) -> WithdrawalResult:
        if amount <= 0:
            raise InvalidAmountError("Amount must be positive")
        speed = WithdrawalSpeed(speed)
        fee = self.instant_fee(amount) if speed is WithdrawalSpeed.INSTANT else 0
        prefix = "Instant withdrawal" if speed is WithdrawalSpeed.INSTANT else "Withdrawal"
        description = f"{prefix} to {bank_ref}"
        rate_label = (self.settings.instant_withdrawal_fee_rate * 100).normalize()
        fee_description = f"Instant withdrawal fee ({rate_label}%)"

        def unit():
            account = self.accounts.get_account_for_owner(owner_id)
            existing = self.repository.get_transaction(transaction_id)
            if existing is not None:
                self._ensure_same(existing, TransactionType.WITHDRAWAL, account, amount)
                if existing.speed is not speed:
                    raise IdempotencyConflictError(
                        "Transaction id was previously used with a different speed"
                    )
                logger.info("idempotent.withdraw.hit", extra={"transaction_id": transaction_id})
                return existing, None

            transaction = self.repository.add_transaction(
                TransactionModel(
                    id=transaction_id,
                    type=TransactionType.WITHDRAWAL,
                    amount=amount,
                    sender_account_id=account.id,
                    description=description,
                    fee=fee,
                    speed=speed,
                    bank_ref=bank_ref,
                    estimated_arrival=ESTIMATED_ARRIVAL[speed],
                )
            )
            try:
                balance = self.ledger.append_debit(
                    transaction.id,
                    account.id,
                    amount,
                    description,
                    fee=fee,
                    fee_description=fee_description,
                )
            except InsufficientFundsError as exc:
                self.repository.transition_transaction(
                    transaction,
                    TransactionStatus.FAILED,
                    failure_reason=str(exc),
                    failure_code=exc.code,
                )
                return transaction, exc

            confirmation = self.bank.payout(transaction_id, bank_ref, amount, speed)
            self.repository.transition_transaction(transaction, TransactionStatus.COMPLETED, external_ref=confirmation)
            logger.info(
                "account.withdraw",
                extra={
                    "transaction_id": transaction_id,
                    "account_id": str(account.id),
                    "amount": amount,
                    "fee": fee,
                    "speed": speed.value,
                    "balance": balance,
                },
            )
            return transaction, None

        try:
            transaction, error = atomic(self.session, unit, self.settings)
        except BankTransferError as exc:
            self._record_bank_failure(
                transaction_id,
                TransactionType.WITHDRAWAL,
                owner_id,
                amount,
                bank_ref,
                description,
                str(exc),
                fee=fee,
                speed=speed,
            )
            raise

        if error is not None:
            raise error
        if transaction.status is TransactionStatus.FAILED:
            # Replayed key of an attempt that never debited the wallet.
            raise recorded_failure(transaction.failure_code, transaction.failure_reason)
        return WithdrawalResult(
            transaction=transaction,
            fee=transaction.fee,
            total_debited=transaction.amount + transaction.fee,
            estimated_arrival=transaction.estimated_arrival or ESTIMATED_ARRIVAL[speed],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _ensure_same(
        self,
        existing: TransactionModel,
        type: TransactionType,
        account: AccountModel,
        amount: int,
    ) -> None:
        party = (
            existing.recipient_account_id
            if type is TransactionType.DEPOSIT
            else existing.sender_account_id
        )
        if existing.type is not type or party != account.id or existing.amount != amount:
            raise IdempotencyConflictError(
                "Transaction id was previously used with different parameters"
            )

    def _record_bank_failure(
        self,
        transaction_id: str,
        type: TransactionType,
        owner_id: str,
        amount: int,
        bank_ref: str,
        description: str,
        reason: str,
        fee: int = 0,
        speed: Optional[WithdrawalSpeed] = None,
    ) -> None:
        """Persist a failed transaction after the bank refused the movement."""

        def unit() -> None:
            if self.repository.get_transaction(transaction_id) is not None:
                return
            account = self.accounts.get_account_for_owner(owner_id)
            transaction = self.repository.add_transaction(
                TransactionModel(
                    id=transaction_id,
                    type=type,
                    amount=amount,
                    sender_account_id=account.id if type is TransactionType.WITHDRAWAL else None,
                    recipient_account_id=account.id if type is TransactionType.DEPOSIT else None,
                    description=description,
                    fee=fee,
                    speed=speed,
                    bank_ref=bank_ref,
                )
            )
            self.repository.transition_transaction(
                transaction,
                TransactionStatus.FAILED,
                failure_reason=reason,
                failure_code=BankTransferError.code,
            )

        atomic(self.session, unit, self.settings)
        logger.warning(
            "bank.transfer.failed",
            extra={"transaction_id": transaction_id, "type": type.value, "reason": reason},
        )
