import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from luxepass.api.dependencies import get_payment_client
from luxepass.db.deps import get_db
from luxepass.services.bookings import BookingRecorder
from luxepass.services.payments.paystack import PaymentVerifyError, PaystackClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/callback")
def payment_return(
    reference: str | None = None,
    trxref: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Page Paystack redirects the payer to after checkout.

    Confirmation itself comes from the charge.success webhook; this only reports
    what is known about the reference so far.
    """
    reference = reference or trxref
    if not reference:
        raise HTTPException(status_code=400, detail="Missing payment reference")

    booking = BookingRecorder(db).get_by_reference(reference)
    logger.info(f"Payment return for {reference} booking_found={booking is not None}")
    return {
        "status": "received",
        "reference": reference,
        "booking_status": booking.status if booking else None,
        "message": "Thank you. You can return to WhatsApp - we'll confirm your payment there.",
    }


@router.get("/verify/{reference}")
async def verify_payment(
    reference: str,
    db: Session = Depends(get_db),
    payments: PaystackClient = Depends(get_payment_client),
):
    """Look the transaction up on Paystack (read-only; does not confirm the booking)."""
    try:
        verification = await payments.verify_transaction(reference)
    except PaymentVerifyError as e:
        logger.error(f"Error verifying payment {reference}: {e}")
        raise HTTPException(status_code=502, detail=f"Payment verification failed: {e}")

    booking = BookingRecorder(db).get_by_reference(reference)
    return {
        "success": True,
        "reference": verification.reference,
        "status": verification.status,
        "amount": verification.amount,
        "currency": verification.currency,
        "paid_at": verification.paid_at,
        "metadata": verification.metadata,
        "booking_status": booking.status if booking else None,
    }
