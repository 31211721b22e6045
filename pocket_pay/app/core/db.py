from __future__ import annotations

import logging
import time
from collections.abc import Callable, Generator
from typing import Any, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, SQLModel, create_engine

from ..models import db as _db_models  # noqa: F401 - ensure models register with metadata
from .config import Settings, get_settings
from .errors import ConcurrencyConflictError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def create_engine_for_url(database_url: str):
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, echo=False, connect_args=connect_args)


settings = get_settings()
engine = create_engine_for_url(settings.database_url)


def init_db() -> None:
    from ..services.risk import seed_risk_settings

    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        seed_risk_settings(session, get_settings())


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def set_engine(new_engine) -> None:
    global engine
    engine = new_engine


UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == UNIQUE_VIOLATION_SQLSTATE
    # SQLite and MySQL drivers only carry the message.
    message = str(orig).lower()
    return "unique constraint" in message or "duplicate entry" in message


def atomic(
    session: Session,
    unit: Callable[[], T],
    settings: Optional[Settings] = None,
) -> T:
    """Run ``unit`` as one database transaction and commit it.

    Lock timeouts, serialization failures and unique-key races roll the
    session back and re-run the whole unit with exponential backoff. Any
    other exception, including other integrity violations, rolls back and
    propagates unchanged.
    """
    settings = settings or get_settings()
    attempts = max(1, settings.conflict_retry_attempts)
    delay = settings.conflict_retry_base_delay
    for attempt in range(1, attempts + 1):
        try:
            result = unit()
            session.commit()
            return result
        except (OperationalError, IntegrityError) as exc:
            session.rollback()
            if isinstance(exc, IntegrityError) and not is_unique_violation(exc):
                raise
            if attempt >= attempts:
                raise ConcurrencyConflictError(
                    "The wallet is busy, retry with the same idempotency key"
                ) from exc
            logger.warning(
                "db.conflict.retry",
                extra={"attempt": attempt, "error": exc.__class__.__name__},
            )
            time.sleep(delay)
            delay = min(settings.conflict_retry_max_delay, delay * 2)
        except Exception:
            session.rollback()
            raise
    raise AssertionError("unreachable")
