from datetime import datetime, timezone

import pytest

from ..models import InsightsPeriod, TransactionStatus, TransactionType, WithdrawalSpeed
from ..services.history import period_start


def _activity(wallet):
    alice = wallet.open("alice", balance=10_000)
    bob = wallet.open("bob")
    wallet.open("carol")
    wallet.transfers.send("tx-1", "alice", "bob", 1_000)
    wallet.banking.withdraw("wd-1", "alice", 2_000, WithdrawalSpeed.INSTANT, "chase-1234")
    wallet.transfers.send("tx-2", "alice", "carol", 600_000)
    return alice, bob


def test_period_start() -> None:
    now = datetime(2024, 5, 17, 13, 45, tzinfo=timezone.utc)

    assert period_start(InsightsPeriod.WEEK, now) == datetime(2024, 5, 10, 13, 45, tzinfo=timezone.utc)
    assert period_start(InsightsPeriod.MONTH, now) == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert period_start(InsightsPeriod.YEAR, now) == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_insights_totals(wallet) -> None:
    alice, bob = _activity(wallet)

    insights = wallet.history.insights(alice.id, InsightsPeriod.WEEK)

    assert insights.total_deposited == 10_000
    assert insights.total_sent == 1_000
    assert insights.total_withdrawn == 2_000
    assert insights.fees_paid == 30
    assert insights.total_blocked == 600_000
    assert insights.total_received == 0
    assert insights.transaction_count == 3

    received = wallet.history.insights(bob.id, InsightsPeriod.WEEK)
    assert received.total_received == 1_000
    assert received.total_blocked == 0
    assert received.transaction_count == 1


def test_list_transactions_filters(wallet) -> None:
    alice, _ = _activity(wallet)

    everything = wallet.history.list_transactions(alice.id)
    sends = wallet.history.list_transactions(alice.id, type=TransactionType.SEND)
    completed = wallet.history.list_transactions(alice.id, status=TransactionStatus.COMPLETED)
    blocked = wallet.history.list_transactions(alice.id, status=TransactionStatus.BLOCKED)

    assert len(everything) == 4
    assert {tx.id for tx in sends} == {"tx-1", "tx-2"}
    assert {tx.id for tx in completed} == {"seed-alice", "tx-1", "wd-1"}
    assert [tx.id for tx in blocked] == ["tx-2"]
    assert len(wallet.history.list_transactions(alice.id, limit=2, offset=3)) == 1


def test_list_transactions_rejects_bad_paging(wallet) -> None:
    alice = wallet.open("alice")

    with pytest.raises(ValueError):
        wallet.history.list_transactions(alice.id, limit=0)
    with pytest.raises(ValueError):
        wallet.history.list_transactions(alice.id, offset=-1)
