"""
In-memory collaborators for WorkflowEngine tests.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from luxepass.constants.statuses import BOOKING_STATUS_FAILED, BOOKING_STATUS_PENDING
from luxepass.services.messaging.whatsapp import ButtonOption, WhatsAppSendError
from luxepass.services.payments.paystack import CheckoutSession, PaymentInitError

# Fixed "now" for engine tests: check-in dates in tests are relative to this
FROZEN_NOW = datetime(2026, 3, 10, 9, 30, tzinfo=UTC)


@dataclass
class SentMessage:
    to: str
    kind: str  # text, interactive, template, media
    body: str | None = None
    options: list[ButtonOption] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


class FakeGateway:
    """Records every send; set fail_sends to make each send raise WhatsAppSendError."""

    def __init__(self):
        self.sent: list[SentMessage] = []
        self.fail_sends = False
        self._counter = 0

    def _result(self, to: str) -> dict[str, Any]:
        if self.fail_sends:
            raise WhatsAppSendError("simulated send failure")
        self._counter += 1
        return {"status": "sent", "message_id": f"wamid.fake{self._counter}", "to": to}

    async def send_text(self, to: str, body: str) -> dict[str, Any]:
        result = self._result(to)
        self.sent.append(SentMessage(to=to, kind="text", body=body))
        return result

    async def send_interactive(self, to: str, body: str, options: list[ButtonOption]) -> dict[str, Any]:
        result = self._result(to)
        self.sent.append(SentMessage(to=to, kind="interactive", body=body, options=list(options)))
        return result

    async def send_template(self, to, name, language="en", components=None) -> dict[str, Any]:
        result = self._result(to)
        self.sent.append(
            SentMessage(to=to, kind="template", extra={"name": name, "language": language})
        )
        return result

    async def send_media(self, to, kind, link, caption=None, filename=None) -> dict[str, Any]:
        result = self._result(to)
        self.sent.append(SentMessage(to=to, kind="media", body=caption, extra={"link": link}))
        return result

    @property
    def bodies(self) -> list[str]:
        return [m.body for m in self.sent]

    @property
    def last(self) -> SentMessage:
        return self.sent[-1]


class FakePayments:
    def __init__(self):
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def initialize_transaction(self, *, email, amount, reference, metadata=None) -> CheckoutSession:
        self.calls.append(
            {"email": email, "amount": amount, "reference": reference, "metadata": metadata}
        )
        if self.error is not None:
            raise self.error
        return CheckoutSession(
            authorization_url=f"https://checkout.paystack.com/{reference}",
            access_code=f"ac_{reference}",
            reference=reference,
        )

    def fail_with(self, message: str = "Paystack rejected transaction") -> None:
        self.error = PaymentInitError(message)


class FakeBookings:
    """Dict-backed stand-in for BookingRecorder."""

    def __init__(self):
        self.rows: dict[str, dict[str, Any]] = {}

    def create_pending(self, *, session_id, kind, reference, amount, category=None, listing_id=None, details=None):
        self.rows[reference] = {
            "session_id": session_id,
            "kind": kind,
            "amount": amount,
            "category": category,
            "listing_id": listing_id,
            "details": details,
            "status": BOOKING_STATUS_PENDING,
            "authorization_url": None,
        }
        return self.rows[reference]

    def attach_checkout(self, reference, authorization_url):
        self.rows[reference]["authorization_url"] = authorization_url

    def mark_failed(self, reference, reason=None):
        row = self.rows.get(reference)
        if row is None or row["status"] != BOOKING_STATUS_PENDING:
            return False, row
        row["status"] = BOOKING_STATUS_FAILED
        row["failure_reason"] = reason
        return True, row
