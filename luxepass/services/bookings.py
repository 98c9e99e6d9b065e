"""
Booking recorder - pending/confirmed/failed Booking rows keyed by payment reference.
"""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from luxepass.constants.statuses import (
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_FAILED,
    BOOKING_STATUS_PENDING,
)
from luxepass.core.config import settings
from luxepass.db.models import Booking
from luxepass.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class BookingRecorder:
    def __init__(self, db: Session):
        self.db = db

    def get_by_reference(self, reference: str) -> Booking | None:
        return self.db.execute(
            select(Booking).where(Booking.payment_reference == reference)
        ).scalar_one_or_none()

    def create_pending(
        self,
        *,
        session_id: int,
        kind: str,
        reference: str,
        amount: int,
        category: str | None = None,
        listing_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> Booking:
        booking = Booking(
            booking_id=reference,
            session_id=session_id,
            kind=kind,
            category=category,
            listing_id=listing_id,
            details=details,
            amount=amount,
            currency=settings.payment_currency,
            status=BOOKING_STATUS_PENDING,
            payment_reference=reference,
        )
        self.db.add(booking)
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"Recorded pending {kind} {reference} for ₦{amount}")
        return booking

    def attach_checkout(self, reference: str, authorization_url: str) -> None:
        self.db.execute(
            update(Booking)
            .where(Booking.payment_reference == reference)
            .values(authorization_url=authorization_url)
        )
        self.db.commit()

    def update_status_if_matches(
        self, reference: str, expected_status: str, new_status: str, **updates
    ) -> tuple[bool, Booking | None]:
        """
        Atomically move a booking from expected_status to new_status.

        Returns:
            (True, booking) on success; (False, booking-or-None) if the status had moved on
            or the reference is unknown.
        """
        result = self.db.execute(
            update(Booking)
            .where(Booking.payment_reference == reference)
            .where(Booking.status == expected_status)
            .values(status=new_status, **updates)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()
        booking = self.get_by_reference(reference)
        if result.rowcount == 0:
            if booking is None:
                logger.warning(f"Booking {reference} not found for status update")
            else:
                logger.warning(
                    f"Booking {reference} status mismatch: expected '{expected_status}', "
                    f"got '{booking.status}'"
                )
            return False, booking
        logger.info(f"Booking {reference}: {expected_status} -> {new_status}")
        return True, booking

    def confirm(
        self, reference: str, metadata: dict[str, Any] | None = None
    ) -> tuple[bool, Booking | None]:
        return self.update_status_if_matches(
            reference,
            BOOKING_STATUS_PENDING,
            BOOKING_STATUS_CONFIRMED,
            payment_metadata=metadata,
            paid_at=utc_now(),
        )

    def mark_failed(self, reference: str, reason: str | None = None) -> tuple[bool, Booking | None]:
        return self.update_status_if_matches(
            reference,
            BOOKING_STATUS_PENDING,
            BOOKING_STATUS_FAILED,
            payment_metadata={"failure_reason": reason} if reason else None,
        )

