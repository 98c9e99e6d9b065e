"""
System event logging service.

Structured, queryable record of failures and notable events (webhook failures,
signature failures, send failures, session conflicts, payment problems).
All SystemEvent creation goes through log_event (or info/warn/error) so the
payload shape stays consistent.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from luxepass.db.models import SystemEvent
from luxepass.middleware.correlation_id import get_correlation_id

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
MAX_ERROR_MESSAGE_LENGTH = 500
LEVELS = ("INFO", "WARN", "ERROR")


def log_event(
    db: Session,
    level: str,
    event_type: str,
    identifier: str | None = None,
    payload: dict | None = None,
    exc: BaseException | None = None,
    correlation_id: str | None = None,
) -> SystemEvent:
    """
    Persist a system event and commit.

    Args:
        db: Database session
        level: INFO, WARN or ERROR
        event_type: One of the EVENT_* constants
        identifier: Normalized WhatsApp identifier the event concerns, if any
        payload: Extra data; copied, never mutated
        exc: If given, its type and (truncated) message are added under "error"
        correlation_id: Defaults to the id bound by the correlation middleware

    Returns:
        Created SystemEvent
    """
    level = level.upper()
    if level not in LEVELS:
        raise ValueError(f"Unknown event level: {level}")

    normalized: dict = dict(payload) if payload else {}
    if exc is not None:
        normalized["error"] = {
            "type": type(exc).__name__,
            "message": str(exc)[:MAX_ERROR_MESSAGE_LENGTH],
        }
    cid = correlation_id if correlation_id is not None else get_correlation_id()
    if cid is not None:
        normalized["correlation_id"] = cid

    event = SystemEvent(
        level=level,
        event_type=event_type,
        identifier=identifier,
        payload=normalized or None,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def info(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "INFO", event_type, **kwargs)


def warn(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "WARN", event_type, **kwargs)


def error(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "ERROR", event_type, **kwargs)


def list_events(
    db: Session,
    *,
    level: str | None = None,
    event_type: str | None = None,
    identifier: str | None = None,
    limit: int = 100,
) -> list[SystemEvent]:
    """Most recent events first, optionally filtered."""
    stmt = select(SystemEvent).order_by(SystemEvent.created_at.desc(), SystemEvent.id.desc())
    if level:
        stmt = stmt.where(SystemEvent.level == level.upper())
    if event_type:
        stmt = stmt.where(SystemEvent.event_type == event_type)
    if identifier:
        stmt = stmt.where(SystemEvent.identifier == identifier)
    stmt = stmt.limit(max(0, min(limit, 500)))
    return list(db.execute(stmt).scalars().all())


def cleanup_old_events(
    db: Session,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    cutoff: datetime | None = None,
) -> int:
    """
    Delete SystemEvents older than retention_days (or before cutoff if provided).

    Returns:
        Number of rows deleted
    """
    if cutoff is None:
        cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=UTC)
    result = db.execute(delete(SystemEvent).where(SystemEvent.created_at < cutoff))
    db.commit()
    deleted = result.rowcount
    logger.info(f"SystemEvent retention: deleted {deleted} events older than {cutoff.isoformat()}")
    return deleted
