"""
Payment reconciliation - apply a Paystack charge result to the Booking and the session.

Booking status moves are conditional (pending -> confirmed / failed), so a replayed
webhook or a verify call racing the webhook confirms once and notifies once.
The session is only moved back to the menu if it is still waiting on the same
reference; a user who already typed "Menu" keeps whatever they are doing now.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from luxepass.constants.event_types import (
    EVENT_PAYSTACK_AMOUNT_MISMATCH,
    EVENT_PAYSTACK_CHARGE_FAILED,
    EVENT_PAYSTACK_CHARGE_SUCCESS,
    EVENT_PAYSTACK_UNKNOWN_REFERENCE,
)
from luxepass.constants.statuses import (
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_FAILED,
    WorkflowState,
)
from luxepass.services.bookings import BookingRecorder
from luxepass.services.payments.paystack import to_kobo
from luxepass.services.sessions import SessionConflict
from luxepass.services.system_event_service import error, info, warn
from luxepass.services.workflow.checkout import release_pending_payment
from luxepass.services.workflow.engine import MessageGateway
from luxepass.services.workflow.factory import build_workflow_engine
from luxepass.services.workflow.results import OutboundMessage
from luxepass.services.workflow.validation import format_naira

logger = logging.getLogger(__name__)

OUTCOME_CONFIRMED = "confirmed"
OUTCOME_FAILED = "failed"
OUTCOME_ALREADY_PROCESSED = "already_processed"
OUTCOME_AMOUNT_MISMATCH = "amount_mismatch"
OUTCOME_UNKNOWN_REFERENCE = "unknown_reference"


@dataclass
class ChargeOutcome:
    outcome: str
    reference: str
    booking_status: str | None = None
    session_released: bool = False


def _amount_matches(amount_kobo: int | str, amount: int) -> bool:
    try:
        return int(amount_kobo) == to_kobo(amount)
    except (TypeError, ValueError):
        # Not a number at all
        return False


async def confirm_charge(
    db: Session,
    reference: str,
    *,
    amount_kobo: int | str | None,
    metadata: dict[str, Any] | None = None,
    gateway: MessageGateway | None = None,
) -> ChargeOutcome:
    """
    Confirm the booking for `reference`, notify the user and release the session.

    Args:
        amount_kobo: Amount Paystack reports; None skips the amount check (stub verification)
    """
    bookings = BookingRecorder(db)
    booking = bookings.get_by_reference(reference)
    if booking is None:
        logger.warning(f"Paystack charge for unknown reference {reference}")
        warn(db, EVENT_PAYSTACK_UNKNOWN_REFERENCE, payload={"reference": reference})
        return ChargeOutcome(OUTCOME_UNKNOWN_REFERENCE, reference)

    identifier = booking.session.identifier
    if amount_kobo is not None and not _amount_matches(amount_kobo, booking.amount):
        logger.error(
            f"Paystack amount mismatch for {reference}: "
            f"expected {to_kobo(booking.amount)} kobo, got {amount_kobo}"
        )
        bookings.mark_failed(reference, reason="amount_mismatch")
        error(
            db,
            EVENT_PAYSTACK_AMOUNT_MISMATCH,
            identifier=identifier,
            payload={
                "reference": reference,
                "expected_kobo": to_kobo(booking.amount),
                "received_kobo": amount_kobo,
            },
        )
        db.refresh(booking)
        return ChargeOutcome(OUTCOME_AMOUNT_MISMATCH, reference, booking.status)

    success, booking = bookings.confirm(reference, metadata)
    if not success:
        logger.info(f"Booking {reference} already {booking.status} - skipping confirmation")
        return ChargeOutcome(OUTCOME_ALREADY_PROCESSED, reference, booking.status)

    info(
        db,
        EVENT_PAYSTACK_CHARGE_SUCCESS,
        identifier=identifier,
        payload={"reference": reference, "amount": booking.amount, "kind": booking.kind},
    )

    engine = build_workflow_engine(db, gateway=gateway)
    released = False
    async with engine.locks.hold(identifier):
        try:
            released = release_pending_payment(
                engine.store,
                identifier,
                reference,
                WorkflowState.MAIN_MENU,
                clear_form=True,
                max_attempts=engine.max_attempts,
            )
        except SessionConflict as e:
            logger.error(f"Could not reset session {identifier} after payment {reference}: {e}")

    text = engine.composer.render(
        "payment_confirmed", identifier, amount=format_naira(booking.amount), reference=reference
    )
    await engine.deliver(identifier, [OutboundMessage(text)])
    return ChargeOutcome(OUTCOME_CONFIRMED, reference, BOOKING_STATUS_CONFIRMED, released)


async def fail_charge(
    db: Session,
    reference: str,
    *,
    reason: str | None = None,
    gateway: MessageGateway | None = None,
) -> ChargeOutcome:
    """Mark the booking failed and tell the user to try again. The session is left as is."""
    bookings = BookingRecorder(db)
    booking = bookings.get_by_reference(reference)
    if booking is None:
        logger.warning(f"Paystack charge.failed for unknown reference {reference}")
        warn(db, EVENT_PAYSTACK_UNKNOWN_REFERENCE, payload={"reference": reference})
        return ChargeOutcome(OUTCOME_UNKNOWN_REFERENCE, reference)

    success, booking = bookings.mark_failed(reference, reason=reason)
    if not success:
        return ChargeOutcome(OUTCOME_ALREADY_PROCESSED, reference, booking.status)

    identifier = booking.session.identifier
    warn(
        db,
        EVENT_PAYSTACK_CHARGE_FAILED,
        identifier=identifier,
        payload={"reference": reference, "reason": reason},
    )
    engine = build_workflow_engine(db, gateway=gateway)
    text = engine.composer.render("payment_failed", identifier, reference=reference)
    await engine.deliver(identifier, [OutboundMessage(text)])
    return ChargeOutcome(OUTCOME_FAILED, reference, BOOKING_STATUS_FAILED)
