from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlmodel import Session, select

from ..core.errors import InvalidRequestStateError, InvalidStateTransitionError
from ..models import (
    AccountModel,
    LedgerEntryModel,
    MoneyRequestModel,
    RequestStatus,
    RiskSettingModel,
    TransactionModel,
    TransactionStatus,
    TransactionType,
)
from ..models.db import utcnow
from ..models.states import ensure_request_transition, ensure_transaction_transition


class WalletRepository:
    """Thin data access layer around the SQLModel session.

    Conditional updates run on the session's connection so their row counts
    can be inspected; callers refresh any ORM instance they still hold.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _execute_update(self, stmt) -> int:
        self.session.flush()
        result = self.session.connection().execute(stmt)
        return result.rowcount

    # Accounts -----------------------------------------------------------
    def add_account(self, account: AccountModel) -> AccountModel:
        self.session.add(account)
        self.session.flush()
        self.session.refresh(account)
        return account

    def get_account(self, account_id: UUID) -> Optional[AccountModel]:
        return self.session.get(AccountModel, account_id)

    def reload_account(self, account_id: UUID) -> Optional[AccountModel]:
        return self.session.get(AccountModel, account_id, populate_existing=True)

    def get_account_by_owner(self, owner_id: str) -> Optional[AccountModel]:
        stmt = select(AccountModel).where(AccountModel.owner_id == owner_id)
        return self.session.exec(stmt).first()

    def get_account_by_handle(self, handle: str) -> Optional[AccountModel]:
        stmt = (
            select(AccountModel)
            .where(AccountModel.handle == handle)
            .where(AccountModel.is_system == False)  # noqa: E712
        )
        return self.session.exec(stmt).first()

    def lock_accounts(self, account_ids: Iterable[UUID]) -> list[AccountModel]:
        # Always the same global order so opposite-direction transfers
        # cannot deadlock. SQLite ignores FOR UPDATE; its write lock
        # serialises writers instead.
        ordered = sorted(set(account_ids), key=str)
        stmt = (
            select(AccountModel)
            .where(AccountModel.id.in_(ordered))
            .order_by(AccountModel.id)
            .with_for_update()
        )
        return list(self.session.exec(stmt))

    def debit_if_sufficient(self, account_id: UUID, amount: int) -> bool:
        stmt = (
            update(AccountModel)
            .where(AccountModel.id == account_id)
            .where(AccountModel.balance >= amount)
            .values(balance=AccountModel.balance - amount)
        )
        return self._execute_update(stmt) == 1

    def adjust_balance(self, account_id: UUID, delta: int) -> None:
        stmt = (
            update(AccountModel)
            .where(AccountModel.id == account_id)
            .values(balance=AccountModel.balance + delta)
        )
        if self._execute_update(stmt) != 1:
            raise LookupError(f"Account {account_id} vanished during posting")

    # Ledger entries -----------------------------------------------------
    def add_entries(self, entries: list[LedgerEntryModel]) -> list[LedgerEntryModel]:
        self.session.add_all(entries)
        self.session.flush()
        return entries

    def entries_for_transaction(self, transaction_id: str) -> list[LedgerEntryModel]:
        stmt = (
            select(LedgerEntryModel)
            .where(LedgerEntryModel.reference_transaction_id == transaction_id)
            .order_by(LedgerEntryModel.leg)
        )
        return list(self.session.exec(stmt))

    def list_entries(
        self, account_id: UUID, limit: int, before_id: Optional[int] = None
    ) -> list[LedgerEntryModel]:
        stmt = select(LedgerEntryModel).where(LedgerEntryModel.account_id == account_id)
        if before_id is not None:
            stmt = stmt.where(LedgerEntryModel.id < before_id)
        stmt = stmt.order_by(LedgerEntryModel.id.desc()).limit(limit)
        return list(self.session.exec(stmt))

    def sum_entries(self, account_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(LedgerEntryModel.amount), 0)).where(
            LedgerEntryModel.account_id == account_id
        )
        return int(self.session.exec(stmt).one())

    # Transactions -------------------------------------------------------
    def add_transaction(self, transaction: TransactionModel) -> TransactionModel:
        self.session.add(transaction)
        self.session.flush()
        return transaction

    def get_transaction(self, transaction_id: str) -> Optional[TransactionModel]:
        return self.session.get(TransactionModel, transaction_id)

    def update_transaction_status(
        self,
        transaction: TransactionModel,
        expected: TransactionStatus,
        target: TransactionStatus,
        **fields: Any,
    ) -> bool:
        stmt = (
            update(TransactionModel)
            .where(TransactionModel.id == transaction.id)
            .where(TransactionModel.status == expected)
            .values(status=target, updated_at=utcnow(), **fields)
        )
        changed = self._execute_update(stmt) == 1
        self.session.refresh(transaction)
        return changed

    def transition_transaction(
        self,
        transaction: TransactionModel,
        target: TransactionStatus,
        expected: Optional[TransactionStatus] = None,
        **fields: Any,
    ) -> None:
        """Move a transaction along its state machine.

        Written as a conditional update on the expected status, so of two
        racing transitions only one can succeed.
        """
        current = expected or transaction.status
        ensure_transaction_transition(current, target)
        if not self.update_transaction_status(transaction, current, target, **fields):
            raise InvalidStateTransitionError(
                f"Transaction is {transaction.status.value}, expected {current.value}"
            )

    def has_completed_send(self, sender_id: UUID, recipient_id: UUID) -> bool:
        stmt = (
            select(TransactionModel.id)
            .where(TransactionModel.type == TransactionType.SEND)
            .where(TransactionModel.sender_account_id == sender_id)
            .where(TransactionModel.recipient_account_id == recipient_id)
            .where(TransactionModel.status == TransactionStatus.COMPLETED)
            .limit(1)
        )
        return self.session.exec(stmt).first() is not None

    def count_sends_since(
        self, sender_id: UUID, since: datetime, exclude_id: Optional[str] = None
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(TransactionModel)
            .where(TransactionModel.type == TransactionType.SEND)
            .where(TransactionModel.sender_account_id == sender_id)
            .where(TransactionModel.created_at >= since)
        )
        if exclude_id is not None:
            stmt = stmt.where(TransactionModel.id != exclude_id)
        return int(self.session.exec(stmt).one())

    def sum_pending_sends(self, sender_id: UUID) -> int:
        stmt = (
            select(func.coalesce(func.sum(TransactionModel.amount), 0))
            .where(TransactionModel.type == TransactionType.SEND)
            .where(TransactionModel.sender_account_id == sender_id)
            .where(TransactionModel.status == TransactionStatus.PENDING_CONFIRMATION)
        )
        return int(self.session.exec(stmt).one())

    def list_transactions(
        self,
        account_id: UUID,
        *,
        limit: int,
        offset: int,
        type: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        since: Optional[datetime] = None,
    ) -> list[TransactionModel]:
        stmt = select(TransactionModel).where(
            or_(
                TransactionModel.sender_account_id == account_id,
                TransactionModel.recipient_account_id == account_id,
            )
        )
        if type is not None:
            stmt = stmt.where(TransactionModel.type == type)
        if status is not None:
            stmt = stmt.where(TransactionModel.status == status)
        if since is not None:
            stmt = stmt.where(TransactionModel.created_at >= since)
        stmt = stmt.order_by(TransactionModel.created_at.desc()).offset(offset).limit(limit)
        return list(self.session.exec(stmt))

    # Money requests -----------------------------------------------------
    def add_request(self, request: MoneyRequestModel) -> MoneyRequestModel:
        self.session.add(request)
        self.session.flush()
        self.session.refresh(request)
        return request

    def get_request(self, request_id: UUID) -> Optional[MoneyRequestModel]:
        return self.session.get(MoneyRequestModel, request_id, populate_existing=True)

    def update_request_status(
        self,
        request: MoneyRequestModel,
        expected: RequestStatus,
        target: RequestStatus,
        **fields: Any,
    ) -> bool:
        stmt = (
            update(MoneyRequestModel)
            .where(MoneyRequestModel.id == request.id)
            .where(MoneyRequestModel.status == expected)
            .values(status=target, updated_at=utcnow(), **fields)
        )
        changed = self._execute_update(stmt) == 1
        self.session.refresh(request)
        return changed

    def transition_request(
        self, request: MoneyRequestModel, target: RequestStatus, **fields: Any
    ) -> None:
        current = request.status
        ensure_request_transition(current, target)
        if not self.update_request_status(request, current, target, **fields):
            raise InvalidRequestStateError(
                f"Request is {request.status.value}; only pending requests can be {target.value}"
            )

    def list_requests(
        self,
        *,
        requester_id: Optional[UUID] = None,
        requested_from_id: Optional[UUID] = None,
    ) -> list[MoneyRequestModel]:
        stmt = select(MoneyRequestModel)
        if requester_id is not None:
            stmt = stmt.where(MoneyRequestModel.requester_account_id == requester_id)
        if requested_from_id is not None:
            stmt = stmt.where(MoneyRequestModel.requested_from_account_id == requested_from_id)
        stmt = stmt.order_by(MoneyRequestModel.created_at.desc())
        return list(self.session.exec(stmt))

    # Risk settings ------------------------------------------------------
    def list_risk_settings(self) -> list[RiskSettingModel]:
        stmt = select(RiskSettingModel).order_by(RiskSettingModel.key)
        return list(self.session.exec(stmt))

    def get_risk_setting(self, key: str) -> Optional[RiskSettingModel]:
        return self.session.get(RiskSettingModel, key)

    def save_risk_setting(self, setting: RiskSettingModel) -> RiskSettingModel:
        self.session.add(setting)
        self.session.flush()
        return setting
