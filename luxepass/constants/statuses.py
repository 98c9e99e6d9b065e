"""
Status constants - centralized to avoid circular imports.
"""

from enum import StrEnum


class WorkflowState(StrEnum):
    """Closed set of conversation steps a session can be in."""

    # Onboarding
    ONBOARDING_NAME = "ONBOARDING_NAME"
    ONBOARDING_EMAIL = "ONBOARDING_EMAIL"
    ONBOARDING_SECURITY_Q = "ONBOARDING_SECURITY_Q"
    ONBOARDING_SECURITY_A = "ONBOARDING_SECURITY_A"

    MAIN_MENU = "MAIN_MENU"

    # Booking chain
    BOOKING_CATEGORY = "BOOKING_CATEGORY"
    BOOKING_LISTING = "BOOKING_LISTING"
    BOOKING_CHECK_IN = "BOOKING_CHECK_IN"
    BOOKING_CHECK_OUT = "BOOKING_CHECK_OUT"
    BOOKING_GUESTS = "BOOKING_GUESTS"
    BOOKING_NOTES = "BOOKING_NOTES"
    BOOKING_PAYMENT = "BOOKING_PAYMENT"

    # Concierge chain
    CONCIERGE_AMOUNT = "CONCIERGE_AMOUNT"
    CONCIERGE_NARRATION = "CONCIERGE_NARRATION"
    CONCIERGE_CONFIRM = "CONCIERGE_CONFIRM"
    CONCIERGE_PAYMENT = "CONCIERGE_PAYMENT"

    LIVE_HANDOFF = "LIVE_HANDOFF"  # Terminal until an agent ends the chat
    REFERRAL = "REFERRAL"


INITIAL_STATE = WorkflowState.ONBOARDING_NAME

# States holding a pending transaction reference
PAYMENT_STATES = frozenset({WorkflowState.BOOKING_PAYMENT, WorkflowState.CONCIERGE_PAYMENT})


def parse_state(value: str | None) -> WorkflowState | None:
    """Return the WorkflowState for a stored value, or None if it is not a member."""
    if value is None:
        return None
    try:
        return WorkflowState(value)
    except ValueError:
        return None


# Booking record statuses
BOOKING_STATUS_PENDING = "pending"
BOOKING_STATUS_CONFIRMED = "confirmed"
BOOKING_STATUS_FAILED = "failed"

BOOKING_KIND_BOOKING = "booking"
BOOKING_KIND_CONCIERGE = "concierge"

# Stored message delivery statuses
MESSAGE_STATUS_RECEIVED = "received"
MESSAGE_STATUS_SENT = "sent"
MESSAGE_STATUS_DELIVERED = "delivered"
MESSAGE_STATUS_READ = "read"
MESSAGE_STATUS_FAILED = "failed"

MESSAGE_STATUSES = frozenset(
    {
        MESSAGE_STATUS_RECEIVED,
        MESSAGE_STATUS_SENT,
        MESSAGE_STATUS_DELIVERED,
        MESSAGE_STATUS_READ,
        MESSAGE_STATUS_FAILED,
    }
)

MESSAGE_DIRECTION_INBOUND = "inbound"
MESSAGE_DIRECTION_OUTBOUND = "outbound"

# Steps whose inbound reply is a security answer; stored message history is redacted
SECRET_INPUT_STATES = frozenset(
    {WorkflowState.ONBOARDING_SECURITY_A, WorkflowState.CONCIERGE_CONFIRM}
)
