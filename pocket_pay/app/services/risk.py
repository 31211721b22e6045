"""Transfer risk policy and the operator-tunable settings it reads."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, fields
from typing import Optional
from uuid import UUID

from sqlmodel import Session

from ..core.config import Settings
from ..models import RiskDecision, RiskSettingModel
from ..models.db import utcnow
from .repository import WalletRepository


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskSettingsSnapshot:
    large_transfer_threshold: int = 50_000
    block_threshold: int = 500_000
    review_first_transfer: bool = False
    rapid_transfer_count: int = 5
    rapid_transfer_window_minutes: int = 60

    @classmethod
    def from_settings(cls, settings: Settings) -> "RiskSettingsSnapshot":
        return cls(**{f.name: getattr(settings, f.name) for f in fields(cls)})

    @classmethod
    def from_values(cls, values: dict[str, float]) -> "RiskSettingsSnapshot":
        defaults = cls()
        kwargs = {}
        for f in fields(cls):
            raw = values.get(f.name)
            if raw is None:
                kwargs[f.name] = getattr(defaults, f.name)
            elif f.type in (bool, "bool"):
                kwargs[f.name] = bool(raw)
            else:
                kwargs[f.name] = int(raw)
        return cls(**kwargs)

    def as_values(self) -> dict[str, float]:
        return {f.name: float(getattr(self, f.name)) for f in fields(self)}


RISK_SETTING_KEYS = tuple(f.name for f in fields(RiskSettingsSnapshot))


@dataclass(frozen=True)
class RiskContext:
    sender_account_id: UUID
    recipient_account_id: UUID
    amount: int
    is_first_transfer_to_recipient: bool
    recent_transfer_count: int = 0


@dataclass(frozen=True)
class RiskAssessment:
    decision: RiskDecision
    reason: Optional[str] = None

    @property
    def is_risky(self) -> bool:
        return self.decision is not RiskDecision.ALLOW


def format_amount(amount: int) -> str:
    return f"${amount / 100:,.2f}"


def evaluate(context: RiskContext, settings: RiskSettingsSnapshot) -> RiskAssessment:
    """Decide whether a send completes, waits for confirmation or is blocked.

    Pure: the outcome depends only on ``context`` and ``settings``.
    """
    new_recipient = context.is_first_transfer_to_recipient
    rapid = (
        settings.rapid_transfer_count > 0
        and context.recent_transfer_count >= settings.rapid_transfer_count
    )

    if context.amount > settings.block_threshold and (new_recipient or rapid):
        flags = []
        if new_recipient:
            flags.append("unknown recipient")
        if rapid:
            flags.append(f"{context.recent_transfer_count} recent transfers")
        return RiskAssessment(
            RiskDecision.BLOCK,
            f"Transfer over {format_amount(settings.block_threshold)} "
            f"flagged: {', '.join(flags)}",
        )

    if context.amount > settings.large_transfer_threshold and new_recipient:
        return RiskAssessment(
            RiskDecision.REVIEW,
            f"Large transfer over {format_amount(settings.large_transfer_threshold)} "
            "to a new recipient",
        )

    if settings.review_first_transfer and new_recipient:
        return RiskAssessment(RiskDecision.REVIEW, "First transfer to this recipient")

    if rapid:
        return RiskAssessment(
            RiskDecision.REVIEW,
            f"Multiple transfers in {settings.rapid_transfer_window_minutes} minutes",
        )

    return RiskAssessment(RiskDecision.ALLOW)


def seed_risk_settings(session: Session, settings: Settings) -> None:
    """Insert configured defaults for keys an operator has not set yet."""
    repository = WalletRepository(session)
    defaults = RiskSettingsSnapshot.from_settings(settings).as_values()
    for key, value in defaults.items():
        if repository.get_risk_setting(key) is None:
            repository.save_risk_setting(RiskSettingModel(key=key, value=value))
    session.commit()


class RiskSettingsReader:
    """Reads the current risk settings, caching them for a short TTL.

    Shared across requests; each call supplies the session to read with.
    """

    def __init__(self, ttl_seconds: float = 5.0) -> None:
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._cached: Optional[RiskSettingsSnapshot] = None
        self._loaded_at = 0.0

    def snapshot(self, session: Session) -> RiskSettingsSnapshot:
        with self._lock:
            fresh = time.monotonic() - self._loaded_at < self.ttl_seconds
            if self._cached is not None and fresh:
                return self._cached

        rows = WalletRepository(session).list_risk_settings()
        snapshot = RiskSettingsSnapshot.from_values({row.key: row.value for row in rows})
        with self._lock:
            self._cached = snapshot
            self._loaded_at = time.monotonic()
        return snapshot

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def list_settings(self, session: Session) -> list[RiskSettingModel]:
        return WalletRepository(session).list_risk_settings()

    def update(self, session: Session, key: str, value: float) -> RiskSettingModel:
        if key not in RISK_SETTING_KEYS:
            raise ValueError(f"Unknown risk setting {key}")

        repository = WalletRepository(session)
        setting = repository.get_risk_setting(key)
        if setting is None:
            setting = RiskSettingModel(key=key, value=value)
        else:
            setting.value = value
            setting.updated_at = utcnow()
        repository.save_risk_setting(setting)
        session.commit()
        session.refresh(setting)
        self.invalidate()
        logger.info("risk.setting.updated", extra={"key": key, "value": value})
        return setting
