"""
Workflow engine - interprets one inbound WhatsApp message against one session.

Per message:
  1. normalize the identifier and take the per-identifier lock
  2. load -> copy -> run the (pure) state handler -> conditional save, retried on conflict
  3. only after the save commits: send replies and start any payment checkout

Handlers never touch collaborators, so a failure anywhere before the save leaves
the session exactly as it was.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from luxepass.constants.event_types import (
    EVENT_PAYSTACK_INIT_FAILURE,
    EVENT_SESSION_SAVE_CONFLICT,
    EVENT_SESSION_STATE_CORRUPT,
    EVENT_WHATSAPP_SEND_FAILURE,
    EVENT_WORKFLOW_HANDLER_FAILURE,
)
from luxepass.constants.statuses import (
    MESSAGE_STATUS_FAILED,
    MESSAGE_STATUS_SENT,
    SECRET_INPUT_STATES,
    WorkflowState,
    parse_state,
)
from luxepass.core.config import settings
from luxepass.services.catalog import Catalog
from luxepass.services.messaging.message_composer import MessageComposer, get_composer
from luxepass.services.messaging.whatsapp import ButtonOption, WhatsAppSendError
from luxepass.services.payments.paystack import CheckoutSession, PaymentInitError, payment_email
from luxepass.services.sessions import SessionConflict, SessionRecord, SessionStore
from luxepass.services.workflow import booking, concierge, menu, onboarding
from luxepass.services.workflow.checkout import release_pending_payment
from luxepass.services.workflow.context import StepContext
from luxepass.services.workflow.locks import IdentifierLocks, default_locks
from luxepass.services.workflow.results import CheckoutRequest, OutboundMessage, StepResult
from luxepass.services.workflow.validation import is_reset_command, is_support_request
from luxepass.utils.datetime_utils import utc_now
from luxepass.utils.phone import normalize_identifier

logger = logging.getLogger(__name__)

Handler = Callable[[StepContext, SessionRecord, str], StepResult]

HANDLERS: dict[WorkflowState, Handler] = {
    WorkflowState.ONBOARDING_NAME: onboarding.handle_name,
    WorkflowState.ONBOARDING_EMAIL: onboarding.handle_email,
    WorkflowState.ONBOARDING_SECURITY_Q: onboarding.handle_security_question,
    WorkflowState.ONBOARDING_SECURITY_A: onboarding.handle_security_answer,
    WorkflowState.MAIN_MENU: menu.handle_main_menu,
    WorkflowState.BOOKING_CATEGORY: booking.handle_category,
    WorkflowState.BOOKING_LISTING: booking.handle_listing,
    WorkflowState.BOOKING_CHECK_IN: booking.handle_check_in,
    WorkflowState.BOOKING_CHECK_OUT: booking.handle_check_out,
    WorkflowState.BOOKING_GUESTS: booking.handle_guests,
    WorkflowState.BOOKING_NOTES: booking.handle_notes,
    WorkflowState.BOOKING_PAYMENT: booking.handle_payment,
    WorkflowState.CONCIERGE_AMOUNT: concierge.handle_amount,
    WorkflowState.CONCIERGE_NARRATION: concierge.handle_narration,
    WorkflowState.CONCIERGE_CONFIRM: concierge.handle_confirm,
    WorkflowState.CONCIERGE_PAYMENT: concierge.handle_payment,
    WorkflowState.LIVE_HANDOFF: menu.handle_inactive_handoff,
    WorkflowState.REFERRAL: menu.handle_referral,
}


class MessageGateway(Protocol):
    async def send_text(self, to: str, body: str) -> dict[str, Any]: ...

    async def send_interactive(
        self, to: str, body: str, options: list[ButtonOption]
    ) -> dict[str, Any]: ...


class PaymentInitiator(Protocol):
    async def initialize_transaction(
        self, *, email: str, amount: int, reference: str, metadata: dict[str, Any] | None = None
    ) -> CheckoutSession: ...


EventLog = Callable[..., Any]


@dataclass
class InboundOutcome:
    identifier: str
    state: str | None
    created: bool = False
    persisted: bool = False
    error: bool = False
    # The inbound text answered a security prompt and must not be kept in history
    redact_inbound: bool = False


@dataclass
class _Transition:
    session: SessionRecord
    result: StepResult
    created: bool
    prior_state: WorkflowState | None


class WorkflowEngine:
    def __init__(
        self,
        store: SessionStore,
        gateway: MessageGateway,
        payments: PaymentInitiator,
        bookings: Any,
        catalog: Catalog,
        *,
        message_store: Any | None = None,
        event_log: EventLog | None = None,
        composer: MessageComposer | None = None,
        clock: Callable[[], datetime] = utc_now,
        locks: IdentifierLocks | None = None,
        max_attempts: int | None = None,
        concierge_min_amount: int | None = None,
        concierge_max_amount: int | None = None,
        referral_link: str | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.payments = payments
        self.bookings = bookings
        self.catalog = catalog
        self.message_store = message_store
        self.event_log = event_log
        self.composer = composer or get_composer()
        self.clock = clock
        self.locks = locks or default_locks
        self.max_attempts = max_attempts or settings.session_save_max_attempts
        self.concierge_min_amount = concierge_min_amount or settings.concierge_min_amount
        self.concierge_max_amount = concierge_max_amount or settings.concierge_max_amount
        self.referral_link = referral_link or settings.referral_link

    def _context(self) -> StepContext:
        now = self.clock()
        return StepContext(
            catalog=self.catalog,
            composer=self.composer,
            today=now.date(),
            now_ms=int(now.timestamp() * 1000),
            concierge_min_amount=self.concierge_min_amount,
            concierge_max_amount=self.concierge_max_amount,
            referral_link=self.referral_link,
        )

    def _record_event(self, level: str, event_type: str, identifier: str | None, **kwargs) -> None:
        if self.event_log is None:
            return
        try:
            self.event_log(level, event_type, identifier=identifier, **kwargs)
        except Exception as e:
            logger.error(f"Failed to record {event_type} event for {identifier}: {e}")

    def _rollback(self) -> None:
        rollback = getattr(self.store, "rollback", None)
        if rollback is not None:
            rollback()

    async def handle_inbound(
        self, identifier: str, text: str | None, display_name: str | None = None
    ) -> InboundOutcome:
        """
        Process one inbound message.

        Raises:
            InvalidIdentifier: if the identifier has no digits (checked before any work)
        """
        identifier = normalize_identifier(identifier)
        text = text or ""
        async with self.locks.hold(identifier):
            redact = False
            try:
                redact = self._expects_secret(identifier)
                transition = self._apply_transition(identifier, text, display_name)
                outcome = InboundOutcome(
                    identifier=identifier,
                    state=str(transition.session.state),
                    created=transition.created,
                    persisted=transition.result.persist,
                    redact_inbound=redact or transition.prior_state in SECRET_INPUT_STATES,
                )
                for level, event_type, payload in transition.result.events:
                    self._record_event(level, event_type, identifier, payload=payload)
                await self.deliver(identifier, transition.result.messages)
                if transition.result.checkout is not None and transition.result.persist:
                    await self._run_checkout(transition.session, transition.result.checkout)
                return outcome
            except Exception as e:
                logger.error(
                    f"Workflow handler failed for {identifier}: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                self._rollback()
                self._record_event(
                    "ERROR",
                    EVENT_WORKFLOW_HANDLER_FAILURE,
                    identifier,
                    payload={"text_length": len(text)},
                    exc=e,
                )
                await self.deliver(
                    identifier, [OutboundMessage(self.composer.render("generic_error", identifier))]
                )
                return InboundOutcome(
                    identifier=identifier, state=None, error=True, redact_inbound=redact
                )

    def _expects_secret(self, identifier: str) -> bool:
        """True when the stored session was waiting for a secret answer."""
        current = self.store.get(identifier)
        return current is not None and parse_state(current.state) in SECRET_INPUT_STATES

    def _apply_transition(
        self, identifier: str, text: str, display_name: str | None
    ) -> _Transition:
        """Load, step and conditionally save; reload and re-run the step on conflict."""
        for attempt in range(1, self.max_attempts + 1):
            ctx = self._context()
            current = self.store.get(identifier)

            if current is None:
                record, result = self._new_session(ctx, identifier, text, display_name)
                try:
                    saved = self.store.create(record)
                except SessionConflict:
                    logger.info(f"Session for {identifier} created concurrently - reloading")
                    continue
                return _Transition(saved, result, created=True, prior_state=None)

            prior_state = parse_state(current.state)
            working = current.copy()
            result = self._step(ctx, working, text)
            if not result.persist:
                return _Transition(current, result, created=False, prior_state=prior_state)

            working.last_activity = self.clock()
            try:
                saved = self.store.save(working, expected_version=current.version)
            except SessionConflict as e:
                logger.warning(
                    f"Session save conflict for {identifier} "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
                self._record_event(
                    "WARN",
                    EVENT_SESSION_SAVE_CONFLICT,
                    identifier,
                    payload={"attempt": attempt, "expected_version": current.version},
                )
                continue
            return _Transition(saved, result, created=False, prior_state=prior_state)

        raise SessionConflict(
            f"Gave up saving session {identifier} after {self.max_attempts} attempts"
        )

    def _new_session(
        self, ctx: StepContext, identifier: str, text: str, display_name: str | None
    ) -> tuple[SessionRecord, StepResult]:
        record = SessionRecord(identifier=identifier, display_name=display_name or None)
        record.last_activity = self.clock()
        if is_support_request(text):
            return record, menu.start_live_handoff(ctx, record)
        return record, onboarding.welcome(ctx, record)

    def _step(self, ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
        if session.live_handoff_active:
            # An agent is answering out-of-band
            return StepResult.silent()

        state = parse_state(session.state)
        if is_reset_command(text, state):
            return menu.reset_to_menu(ctx, session)

        if state is None:
            logger.warning(f"Corrupt workflow state {session.state!r} for {session.identifier}")
            corrupt_value = session.state
            result = menu.reset_to_menu(ctx, session)
            result.events.append(("WARN", EVENT_SESSION_STATE_CORRUPT, {"state": corrupt_value}))
            return result

        return HANDLERS[state](ctx, session, text)

    async def deliver(self, identifier: str, messages: list[OutboundMessage]) -> None:
        """Send replies in order; a failed send is logged and recorded, never rolled back."""
        for message in messages:
            message_id = None
            status = MESSAGE_STATUS_SENT
            try:
                if message.buttons:
                    result = await self.gateway.send_interactive(
                        identifier, message.text, list(message.buttons)
                    )
                else:
                    result = await self.gateway.send_text(identifier, message.text)
                message_id = (result or {}).get("message_id")
            except WhatsAppSendError as e:
                logger.error(f"Failed to send WhatsApp message to {identifier}: {e}")
                status = MESSAGE_STATUS_FAILED
                self._record_event("ERROR", EVENT_WHATSAPP_SEND_FAILURE, identifier, exc=e)

            if self.message_store is not None:
                self.message_store.record_outbound(
                    identifier=identifier,
                    content=message.text,
                    message_type="interactive" if message.buttons else "text",
                    message_id=message_id,
                    status=status,
                )

    async def _run_checkout(self, session: SessionRecord, checkout: CheckoutRequest) -> None:
        """Record the pending booking, start the hosted checkout and send the payment link."""
        identifier = session.identifier
        try:
            self.bookings.create_pending(
                session_id=session.id,
                kind=checkout.kind,
                reference=checkout.reference,
                amount=checkout.amount,
                category=checkout.category,
                listing_id=checkout.listing_id,
                details=checkout.details,
            )
            checkout_session = await self.payments.initialize_transaction(
                email=payment_email(session.email, identifier),
                amount=checkout.amount,
                reference=checkout.reference,
                metadata={
                    "identifier": identifier,
                    "kind": checkout.kind,
                    "booking_id": checkout.reference,
                },
            )
        except Exception as e:
            if isinstance(e, PaymentInitError):
                logger.warning(f"Checkout {checkout.reference} for {identifier} failed: {e}")
            else:
                logger.error(
                    f"Unexpected checkout failure {checkout.reference} for {identifier}: {e}",
                    exc_info=True,
                )
                self._rollback()
            self._abort_checkout(identifier, checkout, e)
            await self.deliver(
                identifier,
                [OutboundMessage(self.composer.render("payment_init_failed", identifier))],
            )
            return

        self.bookings.attach_checkout(checkout.reference, checkout_session.authorization_url)
        summary = self.composer.render(
            checkout.summary_key,
            identifier,
            authorization_url=checkout_session.authorization_url,
            reference=checkout.reference,
            **checkout.summary_values,
        )
        await self.deliver(identifier, [OutboundMessage(summary)])

    def _abort_checkout(self, identifier: str, checkout: CheckoutRequest, exc: Exception) -> None:
        self._record_event(
            "ERROR",
            EVENT_PAYSTACK_INIT_FAILURE,
            identifier,
            payload={"reference": checkout.reference, "amount": checkout.amount},
            exc=exc,
        )
        try:
            self.bookings.mark_failed(checkout.reference, reason=str(exc)[:200])
            release_pending_payment(
                self.store,
                identifier,
                checkout.reference,
                checkout.revert_state,
                max_attempts=self.max_attempts,
            )
        except Exception as e:
            logger.error(
                f"Failed to revert checkout {checkout.reference} for {identifier}: {e}",
                exc_info=True,
            )
