"""
Tests for the Paystack webhook: signature, idempotency, booking confirmation and
releasing the session that was waiting on the payment.
"""

import json

import pytest

from luxepass.db.models import Booking, ProcessedMessage, SystemEvent
from luxepass.services.bookings import BookingRecorder
from luxepass.services.sessions import SessionRecord, SqlSessionStore
from tests.helpers.webhook_payloads import paystack_event, signed_paystack_request

USER = "2348012345678"
REFERENCE = f"LUXE_BK_{USER}_1773135000000"
AMOUNT = 165000


def _pending_booking(db, state="BOOKING_PAYMENT", form_data=None, amount=AMOUNT):
    session = SqlSessionStore(db).create(
        SessionRecord(
            identifier=USER,
            state=state,
            form_data={"listing_id": "apt_vi_studio", "reference": REFERENCE} if form_data is None else form_data,
        )
    )
    BookingRecorder(db).create_pending(
        session_id=session.id,
        kind="booking",
        reference=REFERENCE,
        amount=amount,
        category="apartment",
        listing_id="apt_vi_studio",
    )
    return session


def _post_event(client, event, **sign_kwargs):
    body, headers = signed_paystack_request(event, **sign_kwargs)
    return client.post("/webhooks/paystack", content=body, headers=headers)


def _booking(db):
    db.expire_all()
    return db.query(Booking).filter_by(payment_reference=REFERENCE).one()


def test_charge_success_confirms_booking_and_releases_session(client, db, wa_gateway):
    _pending_booking(db)
    event = paystack_event("charge.success", REFERENCE, AMOUNT * 100, metadata={"identifier": USER})

    response = _post_event(client, event)

    assert response.status_code == 200
    assert response.json() == {
        "received": True,
        "type": "charge.success",
        "reference": REFERENCE,
        "outcome": "confirmed",
        "booking_status": "confirmed",
        "session_released": True,
    }
    booking = _booking(db)
    assert booking.status == "confirmed"
    assert booking.paid_at is not None
    assert booking.payment_metadata == {"identifier": USER}

    session = SqlSessionStore(db).get(USER)
    assert session.state == "MAIN_MENU"
    assert session.form_data == {}

    assert wa_gateway.last.to == USER
    assert wa_gateway.last.body.startswith("*Payment Confirmed!*")
    assert "₦165,000" in wa_gateway.last.body
    assert REFERENCE in wa_gateway.last.body
    assert db.query(ProcessedMessage).filter_by(provider="paystack").count() == 1


def test_replayed_event_is_a_duplicate(client, db, wa_gateway):
    _pending_booking(db)
    event = paystack_event("charge.success", REFERENCE, AMOUNT * 100)

    _post_event(client, event)
    response = _post_event(client, event)

    assert response.status_code == 200
    assert response.json()["type"] == "duplicate"
    assert response.json()["processed_at"] is not None
    assert len(wa_gateway.sent) == 1


def test_second_success_event_for_same_reference_is_not_reapplied(client, db, wa_gateway):
    _pending_booking(db)
    _post_event(client, paystack_event("charge.success", REFERENCE, AMOUNT * 100, event_id=1))

    response = _post_event(client, paystack_event("charge.success", REFERENCE, AMOUNT * 100, event_id=2))

    assert response.json()["outcome"] == "already_processed"
    assert response.json()["booking_status"] == "confirmed"
    assert len(wa_gateway.sent) == 1


def test_late_payment_confirms_but_leaves_moved_on_session_alone(client, db, wa_gateway):
    # User typed "Menu" and started something else before paying
    _pending_booking(db, state="CONCIERGE_AMOUNT", form_data={})

    response = _post_event(client, paystack_event("charge.success", REFERENCE, AMOUNT * 100))

    assert response.json()["outcome"] == "confirmed"
    assert response.json()["session_released"] is False
    assert SqlSessionStore(db).get(USER).state == "CONCIERGE_AMOUNT"
    assert wa_gateway.last.body.startswith("*Payment Confirmed!*")


def test_amount_mismatch_fails_booking_without_releasing(client, db, wa_gateway):
    _pending_booking(db)

    response = _post_event(client, paystack_event("charge.success", REFERENCE, 100))

    assert response.json()["outcome"] == "amount_mismatch"
    assert response.json()["booking_status"] == "failed"
    assert _booking(db).status == "failed"
    assert SqlSessionStore(db).get(USER).state == "BOOKING_PAYMENT"
    assert wa_gateway.sent == []
    event = db.query(SystemEvent).filter_by(event_type="paystack.amount_mismatch").one()
    assert event.level == "ERROR"
    assert event.payload["expected_kobo"] == AMOUNT * 100
    assert event.payload["received_kobo"] == 100


@pytest.mark.parametrize("amount", ["abc", {"value": 1}])
def test_non_numeric_amount_is_treated_as_mismatch(client, db, wa_gateway, amount):
    _pending_booking(db)

    response = _post_event(client, paystack_event("charge.success", REFERENCE, amount))

    assert response.status_code == 200
    assert response.json()["outcome"] == "amount_mismatch"
    assert _booking(db).status == "failed"
    assert SqlSessionStore(db).get(USER).state == "BOOKING_PAYMENT"
    assert wa_gateway.sent == []
    event = db.query(SystemEvent).filter_by(event_type="paystack.amount_mismatch").one()
    assert event.payload["received_kobo"] == amount


def test_unknown_reference_is_acknowledged(client, db, wa_gateway):
    response = _post_event(client, paystack_event("charge.success", "LUXE_BK_nobody_1", 500000))

    assert response.status_code == 200
    assert response.json()["outcome"] == "unknown_reference"
    assert response.json()["booking_status"] is None
    assert db.query(SystemEvent).filter_by(event_type="paystack.unknown_reference").count() == 1


def test_charge_failed_marks_booking_and_tells_user(client, db, wa_gateway):
    _pending_booking(db)

    response = _post_event(
        client,
        paystack_event("charge.failed", REFERENCE, AMOUNT * 100, gateway_response="Declined"),
    )

    assert response.json()["outcome"] == "failed"
    booking = _booking(db)
    assert booking.status == "failed"
    assert booking.payment_metadata == {"failure_reason": "Declined"}
    assert wa_gateway.last.body.startswith(f"Your payment for reference {REFERENCE}")
    assert SqlSessionStore(db).get(USER).state == "BOOKING_PAYMENT"


def test_invalid_signature_is_rejected(client, db, wa_gateway):
    _pending_booking(db)

    response = _post_event(
        client, paystack_event("charge.success", REFERENCE, AMOUNT * 100), secret_key="sk_wrong"
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid webhook signature"}
    assert _booking(db).status == "pending"
    assert db.query(SystemEvent).filter_by(
        event_type="paystack.signature_verification_failure"
    ).count() == 1


def test_missing_signature_is_rejected(client, wa_gateway):
    body = json.dumps(paystack_event("charge.success", REFERENCE, AMOUNT * 100)).encode()
    response = client.post(
        "/webhooks/paystack", content=body, headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400


def test_event_without_reference_is_rejected(client, wa_gateway):
    response = _post_event(client, {"event": "charge.success", "data": {"id": 1}})

    assert response.status_code == 400
    assert response.json() == {"error": "Malformed event: missing data.reference"}


def test_unhandled_event_type_is_acknowledged(client, db, wa_gateway):
    _pending_booking(db)

    response = _post_event(client, paystack_event("refund.processed", REFERENCE, AMOUNT * 100))

    assert response.status_code == 200
    assert response.json() == {
        "received": True,
        "type": "refund.processed",
        "message": "Event received but not handled",
    }
    assert _booking(db).status == "pending"


def test_concierge_confirmation_releases_concierge_session(client, db, wa_gateway):
    reference = f"LUXE_CN_{USER}_1773135000000"
    session = SqlSessionStore(db).create(
        SessionRecord(
            identifier=USER,
            state="CONCIERGE_PAYMENT",
            form_data={"amount": 25000, "narration": "Dinner", "reference": reference},
        )
    )
    BookingRecorder(db).create_pending(
        session_id=session.id,
        kind="concierge",
        reference=reference,
        amount=25000,
        details={"narration": "Dinner"},
    )

    response = _post_event(client, paystack_event("charge.success", reference, 2500000))

    assert response.json()["session_released"] is True
    assert SqlSessionStore(db).get(USER).state == "MAIN_MENU"
    assert "₦25,000" in wa_gateway.last.body
