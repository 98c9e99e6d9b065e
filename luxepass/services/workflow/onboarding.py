"""Onboarding: name -> email -> security question -> security answer -> main menu."""

import logging

from luxepass.constants.statuses import WorkflowState
from luxepass.services.messaging.whatsapp import ButtonOption
from luxepass.services.sessions import SessionRecord
from luxepass.services.workflow.context import StepContext
from luxepass.services.workflow.forms import OnboardingForm, load_form, store_form
from luxepass.services.workflow.menu import main_menu_message
from luxepass.services.workflow.results import OutboundMessage, StepResult
from luxepass.services.workflow.validation import (
    hash_security_answer,
    match_choice,
    parse_email,
    parse_name,
    parse_security_answer,
)

logger = logging.getLogger(__name__)

RETURN_TO_CONCIERGE = "concierge"


def security_question_options(ctx: StepContext) -> list[ButtonOption]:
    return [ButtonOption(q.id, q.title) for q in ctx.catalog.security_questions]


def welcome(ctx: StepContext, session: SessionRecord) -> StepResult:
    session.reset_to(WorkflowState.ONBOARDING_NAME)
    return StepResult.reply(ctx.render("welcome", session))


def _ask_security_question(
    ctx: StepContext, session: SessionRecord, key: str, return_to: str | None = None
) -> StepResult:
    session.state = WorkflowState.ONBOARDING_SECURITY_Q
    store_form(session, OnboardingForm(return_to=return_to))
    return StepResult.reply(ctx.render(key, session), *security_question_options(ctx))


def request_security_setup(ctx: StepContext, session: SessionRecord) -> StepResult:
    """Concierge needs a security answer on file; collect one, then resume concierge."""
    return _ask_security_question(ctx, session, "security_required", RETURN_TO_CONCIERGE)


def handle_name(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    name = parse_name(text)
    if name is None:
        return StepResult.retry(ctx.render("name_invalid", session))
    session.display_name = name
    session.state = WorkflowState.ONBOARDING_EMAIL
    return StepResult.reply(ctx.render("ask_email", session, name=name))


def handle_email(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    email = parse_email(text)
    if email is None:
        return StepResult.retry(ctx.render("email_invalid", session))
    session.email = email
    return _ask_security_question(ctx, session, "ask_security_question")


def handle_security_question(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    options = security_question_options(ctx)
    question_id = match_choice(text, options)
    if question_id is None:
        return StepResult.retry(ctx.render("security_question_invalid", session), *options)

    form = load_form(session, OnboardingForm)
    form.security_question = question_id
    store_form(session, form)
    session.state = WorkflowState.ONBOARDING_SECURITY_A
    question = ctx.catalog.get_security_question(question_id)
    return StepResult.reply(ctx.render("ask_security_answer", session, question=question.text))


def handle_security_answer(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    form = load_form(session, OnboardingForm)
    question = ctx.catalog.get_security_question(form.security_question)
    if question is None:
        # Question lost (form cleared or catalog changed): ask again
        return _ask_security_question(ctx, session, "ask_security_question", form.return_to)

    answer = parse_security_answer(text)
    if answer is None:
        return StepResult.retry(ctx.render("security_answer_invalid", session))

    session.security_question = question.id
    session.security_answer_hash = hash_security_answer(answer)
    logger.info(f"Security answer stored for {session.identifier}")
    done = OutboundMessage(ctx.render("onboarding_complete", session, name=session.display_name or "there"))

    if form.return_to == RETURN_TO_CONCIERGE:
        from luxepass.services.workflow.concierge import start_concierge

        result = start_concierge(ctx, session)
        result.messages.insert(0, done)
        return result

    session.reset_to(WorkflowState.MAIN_MENU)
    return StepResult(messages=[done, main_menu_message(ctx, session)])
