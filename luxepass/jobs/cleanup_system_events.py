"""
SystemEvent retention job.

Run via: python -m luxepass.jobs.cleanup_system_events [--retention-days 90] [--dry-run]
"""

import argparse
import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select

from luxepass.db.models import SystemEvent
from luxepass.services.system_event_service import DEFAULT_RETENTION_DAYS, cleanup_old_events

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete SystemEvents past their retention period")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=DEFAULT_RETENTION_DAYS,
        help=f"Delete events older than this many days (default: {DEFAULT_RETENTION_DAYS})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only count the events that would be deleted",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    from luxepass.db.session import SessionLocal

    db = SessionLocal()
    try:
        if args.dry_run:
            cutoff = datetime.now(UTC) - timedelta(days=args.retention_days)
            count = db.execute(
                select(func.count()).select_from(SystemEvent).where(SystemEvent.created_at < cutoff)
            ).scalar_one()
            logger.info(f"Dry run: {count} events older than {args.retention_days} days")
            return 0
        deleted = cleanup_old_events(db, retention_days=args.retention_days)
        logger.info(f"Retention cleanup completed: deleted {deleted} events")
        return 0
    except Exception as e:
        logger.error(f"Retention cleanup failed: {e}", exc_info=True)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
