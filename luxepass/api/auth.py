"""
Agent dashboard authentication.

Every /admin route takes Security(get_admin_auth) as its first dependency so the key
is checked before any path lookup can leak whether a conversation or user exists.
"""

import logging
import secrets

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from luxepass.core.config import settings

logger = logging.getLogger(__name__)

ADMIN_KEY_HEADER = "X-Admin-API-Key"

admin_key_header = APIKeyHeader(name=ADMIN_KEY_HEADER, auto_error=False)


def get_admin_auth(api_key: str | None = Security(admin_key_header)) -> bool:
    """
    Raises:
        HTTPException: 401 without a key, 403 with the wrong one
        RuntimeError: production without ADMIN_API_KEY (startup validation should
            have caught this already)
    """
    expected = settings.admin_api_key
    if not expected:
        if settings.app_env == "production":
            raise RuntimeError(
                "ADMIN_API_KEY must be set in production; refusing to serve the agent dashboard."
            )
        logger.debug("ADMIN_API_KEY not set - agent dashboard open (dev mode)")
        return True

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail=f"Missing API key. Provide the {ADMIN_KEY_HEADER} header.",
        )
    if not secrets.compare_digest(api_key, expected):
        raise HTTPException(status_code=403, detail="Invalid API key.")
    return True
