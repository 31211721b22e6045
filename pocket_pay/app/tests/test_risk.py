from uuid import uuid4

import pytest

from ..models import RiskDecision
from ..services import RiskContext, RiskSettingsReader, RiskSettingsSnapshot, evaluate

SETTINGS = RiskSettingsSnapshot()


def _context(amount: int, first: bool = False, recent: int = 0) -> RiskContext:
    return RiskContext(
        sender_account_id=uuid4(),
        recipient_account_id=uuid4(),
        amount=amount,
        is_first_transfer_to_recipient=first,
        recent_transfer_count=recent,
    )


def test_small_transfer_to_known_recipient_is_allowed() -> None:
    assessment = evaluate(_context(2_500), SETTINGS)

    assert assessment.decision is RiskDecision.ALLOW
    assert assessment.reason is None
    assert not assessment.is_risky


def test_small_transfer_to_new_recipient_is_allowed() -> None:
    assert evaluate(_context(2_500, first=True), SETTINGS).decision is RiskDecision.ALLOW


def test_large_transfer_to_new_recipient_needs_review() -> None:
    assessment = evaluate(_context(60_000, first=True), SETTINGS)

    assert assessment.decision is RiskDecision.REVIEW
    assert assessment.reason == "Large transfer over $500.00 to a new recipient"
    assert assessment.is_risky


def test_threshold_amount_itself_is_not_large() -> None:
    assert evaluate(_context(50_000, first=True), SETTINGS).decision is RiskDecision.ALLOW


def test_large_transfer_to_known_recipient_is_allowed() -> None:
    assert evaluate(_context(60_000), SETTINGS).decision is RiskDecision.ALLOW


def test_very_large_transfer_to_new_recipient_is_blocked() -> None:
    assessment = evaluate(_context(600_000, first=True), SETTINGS)

    assert assessment.decision is RiskDecision.BLOCK
    assert "unknown recipient" in assessment.reason


def test_very_large_rapid_transfer_is_blocked() -> None:
    assessment = evaluate(_context(600_000, recent=5), SETTINGS)

    assert assessment.decision is RiskDecision.BLOCK
    assert "5 recent transfers" in assessment.reason


def test_rapid_transfers_need_review() -> None:
    assessment = evaluate(_context(100, recent=5), SETTINGS)

    assert assessment.decision is RiskDecision.REVIEW
    assert assessment.reason == "Multiple transfers in 60 minutes"


def test_rapid_rule_disabled_by_zero_count() -> None:
    settings = RiskSettingsSnapshot(rapid_transfer_count=0)

    assert evaluate(_context(100, recent=50), settings).decision is RiskDecision.ALLOW


def test_review_first_transfer_switch() -> None:
    settings = RiskSettingsSnapshot(review_first_transfer=True)

    assessment = evaluate(_context(100, first=True), settings)
    assert assessment.decision is RiskDecision.REVIEW
    assert assessment.reason == "First transfer to this recipient"
    assert evaluate(_context(100), settings).decision is RiskDecision.ALLOW


def test_snapshot_from_stored_values() -> None:
    snapshot = RiskSettingsSnapshot.from_values(
        {"large_transfer_threshold": 1_000.0, "review_first_transfer": 1.0}
    )

    assert snapshot.large_transfer_threshold == 1_000
    assert snapshot.review_first_transfer is True
    assert snapshot.block_threshold == SETTINGS.block_threshold


def test_seeded_settings_are_listed(session) -> None:
    reader = RiskSettingsReader()

    keys = {setting.key for setting in reader.list_settings(session)}

    assert keys == set(SETTINGS.as_values())
    assert reader.snapshot(session) == SETTINGS


def test_reader_caches_until_invalidated(session) -> None:
    reader = RiskSettingsReader(ttl_seconds=3600)
    assert reader.snapshot(session).large_transfer_threshold == 50_000

    # A write that bypasses the reader is not seen while the cache is fresh.
    other = RiskSettingsReader()
    other.update(session, "large_transfer_threshold", 1_000)
    assert reader.snapshot(session).large_transfer_threshold == 50_000

    reader.invalidate()
    assert reader.snapshot(session).large_transfer_threshold == 1_000


def test_update_through_reader_takes_effect_immediately(session) -> None:
    reader = RiskSettingsReader(ttl_seconds=3600)
    reader.snapshot(session)

    setting = reader.update(session, "block_threshold", 100_000)

    assert setting.value == 100_000
    assert reader.snapshot(session).block_threshold == 100_000


def test_update_rejects_unknown_key(session) -> None:
    with pytest.raises(ValueError, match="Unknown risk setting"):
        RiskSettingsReader().update(session, "max_daily_total", 5)
