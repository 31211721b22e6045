from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlmodel import Session

from ..models import (
    BalanceResponse,
    InsightsPeriod,
    InsightsResponse,
    TransactionModel,
    TransactionStatus,
    TransactionType,
)
from ..models.db import utcnow
from .accounts import AccountStore
from .repository import WalletRepository

INSIGHTS_SCAN_LIMIT = 10_000


def period_start(period: InsightsPeriod, now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    if period is InsightsPeriod.WEEK:
        return now - timedelta(days=7)
    if period is InsightsPeriod.YEAR:
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class HistoryService:
    """Read side of the wallet: balances, transaction history and insights."""

    def __init__(
        self,
        session: Session,
        repository: Optional[WalletRepository] = None,
        accounts: Optional[AccountStore] = None,
    ) -> None:
        self.session = session
        self.repository = repository or WalletRepository(session)
        self.accounts = accounts or AccountStore(session, self.repository)

    def balance(self, account_id: UUID) -> BalanceResponse:
        available = self.accounts.get_balance(account_id)
        pending = self.repository.sum_pending_sends(account_id)
        return BalanceResponse(available=available, pending=pending)

    def list_transactions(
        self,
        account_id: UUID,
        limit: int = 50,
        offset: int = 0,
        type: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
    ) -> list[TransactionModel]:
        if limit < 1 or offset < 0:
            raise ValueError("limit must be positive and offset non-negative")
        self.accounts.get_account(account_id)
        return self.repository.list_transactions(
            account_id, limit=limit, offset=offset, type=type, status=status
        )

    def insights(
        self, account_id: UUID, period: InsightsPeriod = InsightsPeriod.MONTH
    ) -> InsightsResponse:
        self.accounts.get_account(account_id)
        since = period_start(period)
        transactions = self.repository.list_transactions(
            account_id, limit=INSIGHTS_SCAN_LIMIT, offset=0, since=since
        )

        totals = {
            "total_sent": 0,
            "total_received": 0,
            "total_deposited": 0,
            "total_withdrawn": 0,
            "fees_paid": 0,
            "total_blocked": 0,
        }
        count = 0
        for tx in transactions:
            if tx.status is TransactionStatus.BLOCKED and tx.sender_account_id == account_id:
                totals["total_blocked"] += tx.amount
                continue
            if tx.status is not TransactionStatus.COMPLETED:
                continue
            count += 1
            if tx.type is TransactionType.SEND:
                key = "total_sent" if tx.sender_account_id == account_id else "total_received"
                totals[key] += tx.amount
            elif tx.type is TransactionType.DEPOSIT:
                totals["total_deposited"] += tx.amount
            else:
                totals["total_withdrawn"] += tx.amount
                totals["fees_paid"] += tx.fee

        return InsightsResponse(
            period=period.value,
            since=since,
            transaction_count=count,
            **totals,
        )
