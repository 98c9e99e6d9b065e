"""
UTC clock and serialization helpers shared by the API layer and the services.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def iso_or_none(dt: datetime | None) -> str | None:
    """ISO 8601 string for API payloads; None stays None."""
    return dt.isoformat() if dt is not None else None
