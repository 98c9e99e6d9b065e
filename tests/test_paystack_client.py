"""
Tests for the Paystack client (hosted checkout init + verify) and webhook signatures.
"""

import json
from unittest.mock import patch

import httpx
import pytest

from luxepass.services.payments.paystack import (
    PaymentInitError,
    PaymentVerifyError,
    PaystackClient,
    build_payment_reference,
    compute_paystack_signature,
    from_kobo,
    payment_email,
    to_kobo,
    verify_paystack_signature,
)

REFERENCE = "LUXE_CN_2348012345678_1773135000000"


def _mock_client_factory(handler):
    """Stand-in for create_httpx_client that routes every request to `handler`."""

    def factory(base_url: str = "", headers: dict | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url, headers=headers, transport=httpx.MockTransport(handler)
        )

    return factory


def _live_client() -> PaystackClient:
    return PaystackClient(
        secret_key="sk_live_abc",
        base_url="https://api.paystack.test",
        callback_url="https://luxepass.test/payments/callback",
    )


def test_amount_conversions_and_reference():
    assert to_kobo(25000) == 2500000
    assert from_kobo(2500000) == 25000
    assert from_kobo(None) is None
    assert build_payment_reference("LUXE_BK", "2348012345678", 1773135000000) == (
        "LUXE_BK_2348012345678_1773135000000"
    )


def test_payment_email_fallback():
    assert payment_email("ada@example.com", "2348012345678") == "ada@example.com"
    assert payment_email(None, "2348012345678") == "2348012345678@luxepass.com"


def test_signature_verification():
    body = b'{"event":"charge.success"}'
    signature = compute_paystack_signature(body, "sk_test_test")

    assert verify_paystack_signature(body, signature, secret_key="sk_test_test")
    assert verify_paystack_signature(body, signature.upper(), secret_key="sk_test_test")
    assert not verify_paystack_signature(body + b" ", signature, secret_key="sk_test_test")
    assert not verify_paystack_signature(body, signature, secret_key="sk_live_other")
    assert not verify_paystack_signature(body, None, secret_key="sk_test_test")
    assert not verify_paystack_signature(body, "", secret_key="sk_test_test")


@pytest.mark.asyncio
async def test_test_mode_returns_deterministic_checkout_without_network():
    client = PaystackClient(secret_key="sk_test_test")
    assert client.test_mode is True

    with patch("luxepass.services.payments.paystack.create_httpx_client") as mock_factory:
        checkout = await client.initialize_transaction(
            email="ada@example.com", amount=25000, reference=REFERENCE
        )
        verification = await client.verify_transaction(REFERENCE)

    mock_factory.assert_not_called()
    assert checkout.authorization_url == f"https://checkout.paystack.com/test/{REFERENCE}"
    assert checkout.reference == REFERENCE
    assert verification.status == "success"
    assert verification.amount is None


@pytest.mark.asyncio
async def test_initialize_posts_kobo_amount_and_returns_checkout():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": "https://checkout.paystack.com/0peioxfhpn",
                    "access_code": "0peioxfhpn",
                    "reference": REFERENCE,
                },
            },
        )

    with patch("luxepass.services.payments.paystack.create_httpx_client", _mock_client_factory(handler)):
        checkout = await _live_client().initialize_transaction(
            email="ada@example.com",
            amount=25000,
            reference=REFERENCE,
            metadata={"kind": "concierge"},
        )

    assert seen["path"] == "/transaction/initialize"
    assert seen["auth"] == "Bearer sk_live_abc"
    assert seen["body"] == {
        "email": "ada@example.com",
        "amount": 2500000,
        "currency": "NGN",
        "reference": REFERENCE,
        "callback_url": "https://luxepass.test/payments/callback",
        "metadata": {"kind": "concierge"},
    }
    assert checkout.authorization_url == "https://checkout.paystack.com/0peioxfhpn"
    assert checkout.access_code == "0peioxfhpn"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"status": False, "message": "Duplicate Transaction Reference"}),
        httpx.Response(200, json={"status": True, "data": {}}),
        httpx.Response(500, text="internal error"),
        httpx.Response(200, text="<html>not json</html>"),
    ],
)
async def test_initialize_failures_raise_payment_init_error(response):
    with patch(
        "luxepass.services.payments.paystack.create_httpx_client",
        _mock_client_factory(lambda request: response),
    ):
        with pytest.raises(PaymentInitError):
            await _live_client().initialize_transaction(
                email="ada@example.com", amount=25000, reference=REFERENCE
            )


@pytest.mark.asyncio
async def test_initialize_transport_error_raises_payment_init_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with patch("luxepass.services.payments.paystack.create_httpx_client", _mock_client_factory(handler)):
        with pytest.raises(PaymentInitError):
            await _live_client().initialize_transaction(
                email="ada@example.com", amount=25000, reference=REFERENCE
            )


@pytest.mark.asyncio
async def test_initialize_rejects_non_positive_amount():
    with pytest.raises(PaymentInitError):
        await PaystackClient(secret_key="sk_test_test").initialize_transaction(
            email="ada@example.com", amount=0, reference=REFERENCE
        )


@pytest.mark.asyncio
async def test_verify_returns_naira_amount():
    def handler(request):
        assert request.url.path == f"/transaction/verify/{REFERENCE}"
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "reference": REFERENCE,
                    "status": "success",
                    "amount": 2500000,
                    "currency": "NGN",
                    "paid_at": "2026-03-10T09:31:00.000Z",
                    "metadata": {"kind": "concierge"},
                },
            },
        )

    with patch("luxepass.services.payments.paystack.create_httpx_client", _mock_client_factory(handler)):
        verification = await _live_client().verify_transaction(REFERENCE)

    assert verification.status == "success"
    assert verification.amount == 25000
    assert verification.currency == "NGN"
    assert verification.metadata == {"kind": "concierge"}


@pytest.mark.asyncio
async def test_verify_failure_raises_payment_verify_error():
    with patch(
        "luxepass.services.payments.paystack.create_httpx_client",
        _mock_client_factory(lambda request: httpx.Response(200, json={"status": False, "message": "Transaction reference not found"})),
    ):
        with pytest.raises(PaymentVerifyError):
            await _live_client().verify_transaction("LUXE_BK_unknown")
