"""
Concierge chain: amount -> narration -> security-answer confirmation -> payment.

The security answer is checked locally against the stored salted hash and is never
forwarded to the payment provider.
"""

import logging

from luxepass.constants.statuses import BOOKING_KIND_CONCIERGE, WorkflowState
from luxepass.services.payments.paystack import (
    REFERENCE_PREFIX_CONCIERGE,
    build_payment_reference,
)
from luxepass.services.sessions import SessionRecord
from luxepass.services.workflow.context import StepContext
from luxepass.services.workflow.forms import ConciergeForm, load_form, store_form
from luxepass.services.workflow.onboarding import request_security_setup
from luxepass.services.workflow.results import CheckoutRequest, StepResult
from luxepass.services.workflow.validation import (
    format_naira,
    parse_amount,
    parse_narration,
    verify_security_answer,
)

logger = logging.getLogger(__name__)


def _amount_bounds(ctx: StepContext) -> dict[str, str]:
    return {
        "min_amount": format_naira(ctx.concierge_min_amount),
        "max_amount": format_naira(ctx.concierge_max_amount),
    }


def start_concierge(ctx: StepContext, session: SessionRecord) -> StepResult:
    if not session.security_answer_hash:
        return request_security_setup(ctx, session)
    session.state = WorkflowState.CONCIERGE_AMOUNT
    store_form(session, ConciergeForm())
    return StepResult.reply(ctx.render("concierge_amount", session, **_amount_bounds(ctx)))


def handle_amount(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    amount = parse_amount(text, ctx.concierge_min_amount, ctx.concierge_max_amount)
    if amount is None:
        return StepResult.retry(ctx.render("concierge_amount_invalid", session, **_amount_bounds(ctx)))
    store_form(session, ConciergeForm(amount=amount))
    session.state = WorkflowState.CONCIERGE_NARRATION
    return StepResult.reply(ctx.render("concierge_narration", session))


def handle_narration(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    form = load_form(session, ConciergeForm)
    if form.amount is None:
        return start_concierge(ctx, session)

    narration = parse_narration(text)
    if narration is None:
        return StepResult.retry(ctx.render("concierge_narration_invalid", session))

    form.narration = narration
    store_form(session, form)
    session.state = WorkflowState.CONCIERGE_CONFIRM
    question = ctx.catalog.get_security_question(session.security_question)
    return StepResult.reply(
        ctx.render(
            "concierge_confirm",
            session,
            amount=format_naira(form.amount),
            narration=narration,
            question=question.text if question else "Your security question",
        )
    )


def handle_confirm(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    form = load_form(session, ConciergeForm)
    if form.amount is None or form.narration is None:
        return start_concierge(ctx, session)
    if not session.security_answer_hash:
        return request_security_setup(ctx, session)

    if not verify_security_answer(text, session.security_answer_hash):
        logger.info(f"Concierge confirmation rejected for {session.identifier}: answer mismatch")
        return StepResult.retry(ctx.render("concierge_confirm_invalid", session))

    reference = build_payment_reference(REFERENCE_PREFIX_CONCIERGE, session.identifier, ctx.now_ms)
    form.reference = reference
    store_form(session, form)
    session.state = WorkflowState.CONCIERGE_PAYMENT
    return StepResult(
        checkout=CheckoutRequest(
            kind=BOOKING_KIND_CONCIERGE,
            reference=reference,
            amount=form.amount,
            summary_key="concierge_summary",
            summary_values={"amount": format_naira(form.amount), "narration": form.narration},
            payment_state=WorkflowState.CONCIERGE_PAYMENT,
            revert_state=WorkflowState.CONCIERGE_CONFIRM,
            details={"narration": form.narration},
        )
    )


def handle_payment(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    return StepResult.retry(ctx.render("payment_pending", session))
