"""
Typed views over ConversationSession.form_data, one model per flow.

form_data is stored as JSON; handlers read it through load_form() and write it back
through store_form(), so keys and types never drift between steps.
"""

from datetime import date
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from luxepass.services.sessions import SessionRecord


class FlowForm(BaseModel):
    model_config = ConfigDict(extra="ignore")


class OnboardingForm(FlowForm):
    security_question: str | None = None
    # Where to go once the security answer is stored (concierge sends users back here)
    return_to: str | None = None


class BookingForm(FlowForm):
    category: str | None = None
    listing_id: str | None = None
    check_in: date | None = None
    check_out: date | None = None
    guests: int | None = None
    notes: str | None = None
    reference: str | None = None

    @property
    def nights(self) -> int:
        if self.check_in is None or self.check_out is None:
            return 0
        return (self.check_out - self.check_in).days


class ConciergeForm(FlowForm):
    amount: int | None = None
    narration: str | None = None
    reference: str | None = None


FormT = TypeVar("FormT", bound=FlowForm)


def load_form(session: SessionRecord, form_cls: type[FormT]) -> FormT:
    """
    Parse the session's form_data as form_cls.

    Unparseable data (e.g. written by an older release) yields an empty form; the
    flow then re-asks for whatever is missing.
    """
    try:
        return form_cls.model_validate(session.form_data or {})
    except ValidationError:
        return form_cls()


def store_form(session: SessionRecord, form: FlowForm) -> None:
    session.form_data = form.model_dump(mode="json", exclude_none=True)
