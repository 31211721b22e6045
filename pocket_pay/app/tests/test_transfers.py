import pytest

from ..core.errors import (
    AccountNotFoundError,
    IdempotencyConflictError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    SameAccountError,
    TransactionNotFoundError,
)
from ..models import TransactionStatus, WithdrawalSpeed


def test_send_completes_and_moves_money(wallet) -> None:
    wallet.open("alice", balance=5_000)
    wallet.open("bob")

    transaction = wallet.transfers.send("tx-1", "alice", "bob", 1_200, "Lunch")

    assert transaction.status is TransactionStatus.COMPLETED
    assert not transaction.is_risky
    assert wallet.balance("alice") == 3_800
    assert wallet.balance("bob") == 1_200
    assert len(wallet.ledger.entries_for("tx-1")) == 2


def test_send_is_idempotent_on_transaction_id(wallet) -> None:
    wallet.open("alice", balance=5_000)
    wallet.open("bob")

    first = wallet.transfers.send("tx-1", "alice", "bob", 1_000)
    second = wallet.transfers.send("tx-1", "alice", "bob", 1_000)

    assert first.id == second.id
    assert second.status is TransactionStatus.COMPLETED
    assert wallet.balance("alice") == 4_000
    assert len(wallet.ledger.entries_for("tx-1")) == 2


def test_reused_transaction_id_with_other_amount_conflicts(wallet) -> None:
    wallet.open("alice", balance=5_000)
    wallet.open("bob")
    wallet.transfers.send("tx-1", "alice", "bob", 1_000)

    with pytest.raises(IdempotencyConflictError):
        wallet.transfers.send("tx-1", "alice", "bob", 2_000)


def test_insufficient_funds_records_failed_transaction(wallet) -> None:
    wallet.open("alice", balance=500)
    wallet.open("bob")

    with pytest.raises(InsufficientFundsError):
        wallet.transfers.send("tx-1", "alice", "bob", 501)

    transaction = wallet.transfers.get_transaction("tx-1")
    assert transaction.status is TransactionStatus.FAILED
    assert transaction.failure_reason
    assert wallet.ledger.entries_for("tx-1") == []
    assert wallet.balance("alice") == 500

    # The stored outcome is replayed for the same id.
    replayed = wallet.transfers.send("tx-1", "alice", "bob", 501)
    assert replayed.status is TransactionStatus.FAILED


def test_rejects_invalid_sends(wallet) -> None:
    wallet.open("alice", balance=500)
    wallet.open("bob")

    with pytest.raises(SameAccountError, match="yourself"):
        wallet.transfers.send("tx-1", "alice", "alice", 100)
    with pytest.raises(InvalidAmountError):
        wallet.transfers.send("tx-2", "alice", "bob", 0)
    with pytest.raises(AccountNotFoundError):
        wallet.transfers.send("tx-3", "alice", "nobody", 100)

    assert wallet.repository.get_transaction("tx-1") is None
    assert wallet.repository.get_transaction("tx-2") is None


def test_large_send_waits_for_confirmation(wallet) -> None:
    wallet.open("alice", balance=100_000)
    wallet.open("bob")

    transaction = wallet.transfers.send("tx-1", "alice", "bob", 60_000)

    assert transaction.status is TransactionStatus.PENDING_CONFIRMATION
    assert transaction.is_risky
    assert transaction.risk_reason == "Large transfer over $500.00 to a new recipient"
    assert wallet.ledger.entries_for("tx-1") == []
    alice = wallet.accounts.get_account_for_owner("alice")
    balance = wallet.history.balance(alice.id)
    assert (balance.available, balance.pending) == (100_000, 60_000)

    confirmed = wallet.transfers.confirm_transfer("tx-1", "alice")

    assert confirmed.status is TransactionStatus.COMPLETED
    assert wallet.balance("alice") == 40_000
    assert wallet.balance("bob") == 60_000
    assert wallet.history.balance(alice.id).pending == 0


def test_known_recipient_skips_review(wallet) -> None:
    wallet.open("alice", balance=200_000)
    wallet.open("bob")
    wallet.transfers.send("tx-1", "alice", "bob", 1_000)

    transaction = wallet.transfers.send("tx-2", "alice", "bob", 60_000)

    assert transaction.status is TransactionStatus.COMPLETED


def test_cancelled_send_never_posts(wallet) -> None:
    wallet.open("alice", balance=100_000)
    wallet.open("bob")
    wallet.transfers.send("tx-1", "alice", "bob", 60_000)

    cancelled = wallet.transfers.cancel_transfer("tx-1", "alice")

    assert cancelled.status is TransactionStatus.CANCELLED
    assert wallet.ledger.entries_for("tx-1") == []
    assert wallet.balance("alice") == 100_000
    with pytest.raises(InvalidStateTransitionError):
        wallet.transfers.confirm_transfer("tx-1", "alice")


def test_completed_send_cannot_be_confirmed_or_cancelled(wallet) -> None:
    wallet.open("alice", balance=5_000)
    wallet.open("bob")
    wallet.transfers.send("tx-1", "alice", "bob", 1_000)

    with pytest.raises(InvalidStateTransitionError):
        wallet.transfers.confirm_transfer("tx-1", "alice")
    with pytest.raises(InvalidStateTransitionError):
        wallet.transfers.cancel_transfer("tx-1", "alice")
    assert wallet.balance("alice") == 4_000


def test_blocked_send_is_terminal(wallet) -> None:
    wallet.open("alice", balance=1_000_000)
    wallet.open("bob")

    transaction = wallet.transfers.send("tx-1", "alice", "bob", 600_000)

    assert transaction.status is TransactionStatus.BLOCKED
    assert "unknown recipient" in transaction.risk_reason
    assert wallet.ledger.entries_for("tx-1") == []
    with pytest.raises(InvalidStateTransitionError):
        wallet.transfers.confirm_transfer("tx-1", "alice")
    assert wallet.balance("alice") == 1_000_000


def test_only_the_sender_can_confirm(wallet) -> None:
    wallet.open("alice", balance=100_000)
    wallet.open("bob")
    wallet.transfers.send("tx-1", "alice", "bob", 60_000)

    with pytest.raises(TransactionNotFoundError):
        wallet.transfers.confirm_transfer("tx-1", "bob")
    with pytest.raises(TransactionNotFoundError):
        wallet.transfers.confirm_transfer("missing", "alice")


def test_transaction_visible_only_to_parties(wallet) -> None:
    wallet.open("alice", balance=5_000)
    wallet.open("bob")
    wallet.open("mallory")
    wallet.transfers.send("tx-1", "alice", "bob", 1_000)

    assert wallet.transfers.get_transaction("tx-1", "bob").id == "tx-1"
    with pytest.raises(TransactionNotFoundError):
        wallet.transfers.get_transaction("tx-1", "mallory")


def test_rapid_sends_need_review(wallet) -> None:
    wallet.open("alice", balance=10_000)
    wallet.open("bob")
    for index in range(5):
        sent = wallet.transfers.send(f"tx-{index}", "alice", "bob", 100)
        assert sent.status is TransactionStatus.COMPLETED

    transaction = wallet.transfers.send("tx-5", "alice", "bob", 100)

    assert transaction.status is TransactionStatus.PENDING_CONFIRMATION
    assert transaction.risk_reason == "Multiple transfers in 60 minutes"


def test_confirm_fails_when_funds_are_gone(wallet) -> None:
    wallet.open("alice", balance=60_000)
    wallet.open("bob")
    wallet.transfers.send("tx-1", "alice", "bob", 60_000)
    wallet.banking.withdraw("wd-1", "alice", 10_000, WithdrawalSpeed.STANDARD, "bank-1")

    with pytest.raises(InsufficientFundsError):
        wallet.transfers.confirm_transfer("tx-1", "alice")

    transaction = wallet.transfers.get_transaction("tx-1")
    assert transaction.status is TransactionStatus.FAILED
    assert wallet.balance("alice") == 50_000
    assert wallet.balance("bob") == 0


def test_risk_settings_change_applies_to_next_send(wallet, risk_reader) -> None:
    wallet.open("alice", balance=10_000)
    wallet.open("bob")

    risk_reader.update(wallet.session, "large_transfer_threshold", 1_000)
    transaction = wallet.transfers.send("tx-1", "alice", "bob", 2_000)

    assert transaction.status is TransactionStatus.PENDING_CONFIRMATION
    assert transaction.risk_reason == "Large transfer over $10.00 to a new recipient"
