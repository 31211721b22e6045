from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlmodel import Session

from ..core.config import Settings, get_settings
from ..core.db import atomic
from ..core.errors import (
    IdempotencyConflictError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    SameAccountError,
    TransactionNotFoundError,
    WalletError,
)
from ..models import (
    AccountModel,
    RiskDecision,
    TransactionModel,
    TransactionStatus,
    TransactionType,
)
from ..models.db import utcnow
from ..models.states import RISK_OUTCOMES, ensure_transaction_transition
from .accounts import AccountStore
from .ledger import Ledger
from .repository import WalletRepository
from .risk import RiskAssessment, RiskContext, RiskSettingsReader, evaluate


logger = logging.getLogger(__name__)


@dataclass
class SendOutcome:
    transaction: TransactionModel
    error: Optional[WalletError] = None
    replayed: bool = False


class TransferEngine:
    """Runs peer-to-peer sends through the risk gate and onto the ledger."""

    def __init__(
        self,
        session: Session,
        risk_settings: RiskSettingsReader,
        repository: Optional[WalletRepository] = None,
        accounts: Optional[AccountStore] = None,
        ledger: Optional[Ledger] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.repository = repository or WalletRepository(session)
        self.accounts = accounts or AccountStore(session, self.repository, self.settings)
        self.ledger = ledger or Ledger(session, self.repository, self.accounts)
        self.risk_settings = risk_settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def send(
        self,
        transaction_id: str,
        sender_owner_id: str,
        recipient_owner_id: str,
        amount: int,
        description: Optional[str] = None,
    ) -> TransactionModel:
        outcome = atomic(
            self.session,
            lambda: self.prepare_send(
                transaction_id, sender_owner_id, recipient_owner_id, amount, description
            ),
            self.settings,
        )
        if outcome.error is not None:
            raise outcome.error
        return outcome.transaction

    def prepare_send(
        self,
        transaction_id: str,
        sender_owner_id: str,
        recipient_owner_id: str,
        amount: int,
        description: Optional[str] = None,
    ) -> SendOutcome:
        """The send unit of work, without committing.

        A shortfall is reported on the outcome rather than raised so the
        ``failed`` transaction is committed together with the caller's unit.
        """
        sender = self.accounts.get_account_for_owner(sender_owner_id)
        recipient = self.accounts.get_account_for_owner(recipient_owner_id)
        if amount <= 0:
            raise InvalidAmountError("Amount must be positive")
        if sender.id == recipient.id:
            raise SameAccountError("Cannot send money to yourself")

        existing = self.repository.get_transaction(transaction_id)
        if existing is not None:
            self._ensure_same_send(existing, sender, recipient, amount)
            logger.info(
                "idempotent.send.hit",
                extra={"transaction_id": transaction_id, "status": existing.status.value},
            )
            return SendOutcome(existing, replayed=True)

        transaction = self.repository.add_transaction(
            TransactionModel(
                id=transaction_id,
                type=TransactionType.SEND,
                amount=amount,
                sender_account_id=sender.id,
                recipient_account_id=recipient.id,
                description=description,
                status=TransactionStatus.CREATED,
            )
        )

        assessment = self._assess(sender, recipient, amount, transaction_id)
        target = RISK_OUTCOMES[assessment.decision]

        if assessment.decision is RiskDecision.ALLOW:
            return self._settle(transaction, TransactionStatus.CREATED)

        self.repository.transition_transaction(
            transaction,
            target,
            is_risky=True,
            risk_reason=assessment.reason,
        )
        logger.info(
            f"risk.{assessment.decision.value}",
            extra={
                "transaction_id": transaction_id,
                "sender_account_id": str(sender.id),
                "recipient_account_id": str(recipient.id),
                "amount": amount,
                "reason": assessment.reason,
            },
        )
        return SendOutcome(transaction)

    def confirm_transfer(
        self, transaction_id: str, owner_id: Optional[str] = None
    ) -> TransactionModel:
        def unit() -> SendOutcome:
            transaction = self._get_for_sender(transaction_id, owner_id)
            return self._settle(transaction, TransactionStatus.PENDING_CONFIRMATION)

        outcome = atomic(self.session, unit, self.settings)
        if outcome.error is not None:
            raise outcome.error
        return outcome.transaction

    def cancel_transfer(
        self, transaction_id: str, owner_id: Optional[str] = None
    ) -> TransactionModel:
        def unit() -> TransactionModel:
            transaction = self._get_for_sender(transaction_id, owner_id)
            self.repository.transition_transaction(transaction, TransactionStatus.CANCELLED)
            return transaction

        transaction = atomic(self.session, unit, self.settings)
        logger.info("transfer.cancelled", extra={"transaction_id": transaction_id})
        return transaction

    def get_transaction(
        self, transaction_id: str, owner_id: Optional[str] = None
    ) -> TransactionModel:
        transaction = self.repository.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        if owner_id is not None:
            account = self.accounts.get_account_for_owner(owner_id)
            if account.id not in (
                transaction.sender_account_id,
                transaction.recipient_account_id,
            ):
                raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _assess(
        self,
        sender: AccountModel,
        recipient: AccountModel,
        amount: int,
        transaction_id: str,
    ) -> RiskAssessment:
        settings = self.risk_settings.snapshot(self.session)
        window_start = utcnow() - timedelta(minutes=settings.rapid_transfer_window_minutes)
        context = RiskContext(
            sender_account_id=sender.id,
            recipient_account_id=recipient.id,
            amount=amount,
            is_first_transfer_to_recipient=not self.repository.has_completed_send(
                sender.id, recipient.id
            ),
            recent_transfer_count=self.repository.count_sends_since(
                sender.id, window_start, exclude_id=transaction_id
            ),
        )
        return evaluate(context, settings)

    def _settle(
        self, transaction: TransactionModel, expected: TransactionStatus
    ) -> SendOutcome:
        ensure_transaction_transition(expected, TransactionStatus.COMPLETED)
        if transaction.status is not expected:
            raise InvalidStateTransitionError(
                f"Transaction is {transaction.status.value}, expected {expected.value}"
            )

        try:
            balances = self.ledger.append_transfer(
                transaction.id,
                transaction.sender_account_id,
                transaction.recipient_account_id,
                transaction.amount,
                transaction.description,
            )
        except InsufficientFundsError as exc:
            self.repository.transition_transaction(
                transaction,
                TransactionStatus.FAILED,
                expected=expected,
                failure_reason=str(exc),
                failure_code=exc.code,
            )
            logger.info(
                "transfer.failed",
                extra={"transaction_id": transaction.id, "reason": str(exc)},
            )
            return SendOutcome(transaction, error=exc)

        # Conditional on the expected status: if a concurrent confirmation
        # got here first this raises and the unit's posting is rolled back.
        self.repository.transition_transaction(
            transaction, TransactionStatus.COMPLETED, expected=expected
        )
        logger.info(
            "transfer.completed",
            extra={
                "transaction_id": transaction.id,
                "amount": transaction.amount,
                "sender_balance": balances.sender_balance,
                "recipient_balance": balances.recipient_balance,
            },
        )
        return SendOutcome(transaction)

    def _get_for_sender(
        self, transaction_id: str, owner_id: Optional[str]
    ) -> TransactionModel:
        transaction = self.repository.get_transaction(transaction_id)
        if transaction is None or transaction.type is not TransactionType.SEND:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        if owner_id is not None:
            sender = self.accounts.get_account_for_owner(owner_id)
            if transaction.sender_account_id != sender.id:
                raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    def _ensure_same_send(
        self,
        existing: TransactionModel,
        sender: AccountModel,
        recipient: AccountModel,
        amount: int,
    ) -> None:
        if (
            existing.type is not TransactionType.SEND
            or existing.sender_account_id != sender.id
            or existing.recipient_account_id != recipient.id
            or existing.amount != amount
        ):
            raise IdempotencyConflictError(
                "Transaction id was previously used with different parameters"
            )
