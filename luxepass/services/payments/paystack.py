"""
Paystack service - hosted checkout initialization, verification and webhook signatures.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from luxepass.core.config import settings
from luxepass.services.integrations.http_client import create_httpx_client

logger = logging.getLogger(__name__)

# Stub key used by tests and local runs: no network, deterministic checkout URLs
PAYSTACK_STUB_SECRET_KEY = "sk_test_test"
TEST_CHECKOUT_BASE_URL = "https://checkout.paystack.com/test"

REFERENCE_PREFIX_BOOKING = "LUXE_BK"
REFERENCE_PREFIX_CONCIERGE = "LUXE_CN"


class PaymentInitError(Exception):
    """Transaction could not be initialized (transport error, HTTP error or status false)."""


class PaymentVerifyError(Exception):
    """Transaction status could not be fetched from Paystack."""


@dataclass(frozen=True)
class CheckoutSession:
    authorization_url: str
    access_code: str | None
    reference: str


@dataclass(frozen=True)
class TransactionVerification:
    reference: str
    status: str  # success, failed, abandoned, ongoing, pending ...
    amount: int | None  # Whole naira
    currency: str | None = None
    paid_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def to_kobo(amount_naira: int) -> int:
    return int(amount_naira) * 100


def from_kobo(amount_kobo: int | None) -> int | None:
    if amount_kobo is None:
        return None
    return int(amount_kobo) // 100


def build_payment_reference(prefix: str, identifier: str, timestamp_ms: int) -> str:
    """LUXE_BK_<identifier>_<epoch ms>; unique per identifier while clocks move forward."""
    return f"{prefix}_{identifier}_{timestamp_ms}"


def payment_email(email: str | None, identifier: str) -> str:
    """Paystack requires an email; fall back to <identifier>@<fallback domain>."""
    return email or f"{identifier}@{settings.payment_email_fallback_domain}"


def compute_paystack_signature(payload: bytes, secret_key: str) -> str:
    return hmac.new(secret_key.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_paystack_signature(
    payload: bytes, signature: str | None, secret_key: str | None = None
) -> bool:
    """
    Verify x-paystack-signature: HMAC-SHA512 hex digest of the raw body keyed with the secret key.
    """
    if not signature:
        logger.warning("Missing x-paystack-signature header")
        return False
    expected = compute_paystack_signature(payload, secret_key or settings.paystack_secret_key)
    is_valid = hmac.compare_digest(signature.strip().lower(), expected)
    if not is_valid:
        logger.warning("Invalid Paystack webhook signature - request rejected.")
    return is_valid


class PaystackClient:
    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        callback_url: str | None = None,
    ):
        self.secret_key = secret_key or settings.paystack_secret_key
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.callback_url = callback_url or settings.paystack_callback_url

    @property
    def test_mode(self) -> bool:
        return self.secret_key == PAYSTACK_STUB_SECRET_KEY

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def initialize_transaction(
        self,
        *,
        email: str,
        amount: int,
        reference: str,
        metadata: dict[str, Any] | None = None,
    ) -> CheckoutSession:
        """
        Start a hosted checkout for `amount` whole naira.

        Raises:
            PaymentInitError: on transport/HTTP failure or a status:false response
        """
        if amount <= 0:
            raise PaymentInitError(f"Amount must be positive, got {amount}")

        if self.test_mode:
            logger.info(f"[TEST MODE] Would initialize Paystack transaction {reference} for ₦{amount}")
            return CheckoutSession(
                authorization_url=f"{TEST_CHECKOUT_BASE_URL}/{reference}",
                access_code=f"test_{reference}",
                reference=reference,
            )

        body = {
            "email": email,
            "amount": to_kobo(amount),
            "currency": settings.payment_currency,
            "reference": reference,
            "callback_url": self.callback_url,
            "metadata": metadata or {},
        }
        try:
            async with create_httpx_client(base_url=self.base_url, headers=self._headers()) as client:
                response = await client.post("/transaction/initialize", json=body)
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Paystack initialize returned {e.response.status_code} for {reference}: "
                f"{e.response.text[:300]}"
            )
            raise PaymentInitError(f"Paystack HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Paystack initialize failed for {reference}: {type(e).__name__}: {e}")
            raise PaymentInitError(f"Paystack request failed: {e}") from e

        data = result.get("data") or {}
        if not result.get("status") or not data.get("authorization_url"):
            message = result.get("message", "unknown error")
            logger.error(f"Paystack rejected transaction {reference}: {message}")
            raise PaymentInitError(f"Paystack rejected transaction: {message}")

        logger.info(f"Initialized Paystack transaction {reference}")
        return CheckoutSession(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code"),
            reference=data.get("reference") or reference,
        )

    async def verify_transaction(self, reference: str) -> TransactionVerification:
        """
        Raises:
            PaymentVerifyError: on transport/HTTP failure or a status:false response
        """
        if self.test_mode:
            logger.info(f"[TEST MODE] Would verify Paystack transaction {reference}")
            return TransactionVerification(reference=reference, status="success", amount=None)

        try:
            async with create_httpx_client(base_url=self.base_url, headers=self._headers()) as client:
                response = await client.get(f"/transaction/verify/{reference}")
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Paystack verify returned {e.response.status_code} for {reference}")
            raise PaymentVerifyError(f"Paystack HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Paystack verify failed for {reference}: {type(e).__name__}: {e}")
            raise PaymentVerifyError(f"Paystack request failed: {e}") from e

        if not result.get("status"):
            raise PaymentVerifyError(result.get("message", "Verification failed"))

        data = result.get("data") or {}
        metadata = data.get("metadata")
        return TransactionVerification(
            reference=data.get("reference") or reference,
            status=data.get("status", "unknown"),
            amount=from_kobo(data.get("amount")),
            currency=data.get("currency"),
            paid_at=data.get("paid_at"),
            metadata=metadata if isinstance(metadata, dict) else {},
        )
