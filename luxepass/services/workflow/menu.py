"""Main menu, referral and live-support handoff."""

import logging

from luxepass.constants.event_types import EVENT_LIVE_HANDOFF_STARTED
from luxepass.constants.statuses import WorkflowState
from luxepass.services.messaging.whatsapp import ButtonOption
from luxepass.services.sessions import SessionRecord
from luxepass.services.workflow.context import StepContext
from luxepass.services.workflow.results import OutboundMessage, StepResult
from luxepass.services.workflow.validation import match_choice

logger = logging.getLogger(__name__)

CHOICE_BOOKING = "1"
CHOICE_CONCIERGE = "2"
CHOICE_LIVE_SUPPORT = "3"
CHOICE_REFERRAL = "4"

MAIN_MENU_OPTIONS = (
    ButtonOption(CHOICE_BOOKING, "Book a Stay"),
    ButtonOption(CHOICE_CONCIERGE, "Concierge Payment"),
    ButtonOption(CHOICE_LIVE_SUPPORT, "Live Support"),
    ButtonOption(CHOICE_REFERRAL, "Refer a Friend"),
)


def main_menu_message(ctx: StepContext, session: SessionRecord) -> OutboundMessage:
    return OutboundMessage(ctx.render("main_menu", session))


def reset_to_menu(ctx: StepContext, session: SessionRecord) -> StepResult:
    session.reset_to(WorkflowState.MAIN_MENU)
    return StepResult(messages=[main_menu_message(ctx, session)])


def start_live_handoff(ctx: StepContext, session: SessionRecord) -> StepResult:
    session.reset_to(WorkflowState.LIVE_HANDOFF)
    session.live_handoff_active = True
    logger.info(f"Live handoff requested by {session.identifier}")
    result = StepResult.reply(ctx.render("live_handoff", session))
    result.events.append(("INFO", EVENT_LIVE_HANDOFF_STARTED, {"source": "user"}))
    return result


def send_referral(ctx: StepContext, session: SessionRecord) -> StepResult:
    # REFERRAL is pass-through: the session lands back on the menu in the same write
    session.reset_to(WorkflowState.MAIN_MENU)
    referral_url = f"{ctx.referral_link}?ref={session.identifier}"
    return StepResult.reply(ctx.render("referral", session, referral_url=referral_url))


def handle_main_menu(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    choice = match_choice(text, MAIN_MENU_OPTIONS)
    if choice == CHOICE_BOOKING:
        from luxepass.services.workflow.booking import start_booking

        return start_booking(ctx, session)
    if choice == CHOICE_CONCIERGE:
        from luxepass.services.workflow.concierge import start_concierge

        return start_concierge(ctx, session)
    if choice == CHOICE_LIVE_SUPPORT:
        return start_live_handoff(ctx, session)
    if choice == CHOICE_REFERRAL:
        return send_referral(ctx, session)
    return StepResult.retry(
        f"{ctx.render('main_menu_invalid', session)}\n\n{ctx.render('main_menu', session)}"
    )


def handle_referral(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    return reset_to_menu(ctx, session)


def handle_inactive_handoff(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    """LIVE_HANDOFF with the flag already cleared: the agent is gone, back to the menu."""
    return reset_to_menu(ctx, session)
