"""
Event type constants for SystemEvent and ProcessedMessage.

Use these instead of string literals to ensure consistency.
"""

# ---- Session store ----
EVENT_SESSION_SAVE_CONFLICT = "session.save_conflict"
EVENT_SESSION_STATE_CORRUPT = "session.state_corrupt"

# ---- Workflow ----
EVENT_WORKFLOW_HANDLER_FAILURE = "workflow.handler_failure"
EVENT_LIVE_HANDOFF_STARTED = "live_handoff.started"
EVENT_LIVE_HANDOFF_ENDED = "live_handoff.ended"

# ---- WhatsApp ----
EVENT_WHATSAPP_SIGNATURE_VERIFICATION_FAILURE = "whatsapp.signature_verification_failure"
EVENT_WHATSAPP_MESSAGE = "whatsapp.message"
EVENT_WHATSAPP_WEBHOOK_FAILURE = "whatsapp.webhook_failure"
EVENT_WHATSAPP_SEND_FAILURE = "whatsapp.send_failure"

# ---- Paystack ----
EVENT_PAYSTACK_SIGNATURE_VERIFICATION_FAILURE = "paystack.signature_verification_failure"
EVENT_PAYSTACK_INIT_FAILURE = "paystack.init_failure"
EVENT_PAYSTACK_AMOUNT_MISMATCH = "paystack.amount_mismatch"
EVENT_PAYSTACK_UNKNOWN_REFERENCE = "paystack.unknown_reference"
EVENT_PAYSTACK_CHARGE_SUCCESS = "paystack.charge.success"
EVENT_PAYSTACK_CHARGE_FAILED = "paystack.charge.failed"
