"""
Provider constants for ProcessedMessage and idempotency.

Use these instead of string literals to avoid drift and typos.
"""

PROVIDER_WHATSAPP = "whatsapp"
PROVIDER_PAYSTACK = "paystack"
