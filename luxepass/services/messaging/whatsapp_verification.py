"""
WhatsApp webhook signature verification.

Meta signs each delivery with HMAC-SHA256 of the raw body using the App Secret
and sends it as X-Hub-Signature-256: sha256=<hex_digest>.
"""

import hashlib
import hmac
import logging

from luxepass.core.config import settings

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_whatsapp_signature(payload: bytes, app_secret: str) -> str:
    digest = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_whatsapp_signature(payload: bytes, signature_header: str | None) -> bool:
    """
    Verify a WhatsApp webhook signature.

    Returns True when no app secret is configured (dev mode); startup validation
    refuses to run production without one.
    """
    if not settings.whatsapp_app_secret:
        logger.warning(
            "WhatsApp app secret not configured - skipping signature verification. "
            "Set WHATSAPP_APP_SECRET in production."
        )
        return True

    if not signature_header:
        logger.warning("Missing X-Hub-Signature-256 header in WhatsApp webhook")
        return False

    if not signature_header.startswith(SIGNATURE_PREFIX):
        logger.warning(f"Invalid signature header format: {signature_header[:20]}")
        return False

    expected = compute_whatsapp_signature(payload, settings.whatsapp_app_secret)
    is_valid = hmac.compare_digest(signature_header, expected)
    if not is_valid:
        logger.warning("Invalid WhatsApp webhook signature - request rejected.")
    return is_valid
