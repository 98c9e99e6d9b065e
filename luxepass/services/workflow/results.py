"""Values a state handler returns to the engine."""

from dataclasses import dataclass, field
from typing import Any

from luxepass.constants.statuses import WorkflowState
from luxepass.services.messaging.whatsapp import ButtonOption


@dataclass(frozen=True)
class OutboundMessage:
    text: str
    buttons: tuple[ButtonOption, ...] = ()


@dataclass(frozen=True)
class CheckoutRequest:
    """Payment to start once the *_PAYMENT state is committed."""

    kind: str  # booking, concierge
    reference: str
    amount: int  # Whole naira
    summary_key: str  # Copy key for the message carrying the payment link
    summary_values: dict[str, Any]
    payment_state: WorkflowState
    revert_state: WorkflowState  # Where the session goes back to if initialization fails
    category: str | None = None
    listing_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class StepResult:
    messages: list[OutboundMessage] = field(default_factory=list)
    # False for validation failures and silent no-ops: nothing is written
    persist: bool = True
    checkout: CheckoutRequest | None = None
    events: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    @classmethod
    def reply(cls, text: str, *buttons: ButtonOption, persist: bool = True) -> "StepResult":
        return cls(messages=[OutboundMessage(text, tuple(buttons))], persist=persist)

    @classmethod
    def retry(cls, text: str, *buttons: ButtonOption) -> "StepResult":
        """Validation failure: corrective prompt, session untouched."""
        return cls.reply(text, *buttons, persist=False)

    @classmethod
    def silent(cls) -> "StepResult":
        return cls(persist=False)
