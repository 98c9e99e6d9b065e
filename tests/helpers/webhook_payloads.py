"""
Builders for WhatsApp and Paystack webhook payloads.
"""

import json
from typing import Any

from luxepass.services.payments.paystack import compute_paystack_signature


def whatsapp_payload(
    messages: list[dict[str, Any]] | None = None,
    statuses: list[dict[str, Any]] | None = None,
    contacts: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    value: dict[str, Any] = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "15550555555", "phone_number_id": "test_id"},
    }
    if messages is not None:
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses
    if contacts is not None:
        value["contacts"] = contacts
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": "messages", "value": value}]}],
    }


def text_message(wa_from: str, body: str, message_id: str, timestamp: int = 1773135000) -> dict[str, Any]:
    return {
        "from": wa_from,
        "id": message_id,
        "timestamp": str(timestamp),
        "type": "text",
        "text": {"body": body},
    }


def button_reply(wa_from: str, button_id: str, message_id: str, timestamp: int = 1773135000) -> dict[str, Any]:
    return {
        "from": wa_from,
        "id": message_id,
        "timestamp": str(timestamp),
        "type": "interactive",
        "interactive": {
            "type": "button_reply",
            "button_reply": {"id": button_id, "title": button_id},
        },
    }


def text_payload(wa_from: str, body: str, message_id: str, name: str | None = None) -> dict[str, Any]:
    contacts = [{"profile": {"name": name}, "wa_id": wa_from}] if name else None
    return whatsapp_payload(messages=[text_message(wa_from, body, message_id)], contacts=contacts)


def paystack_event(
    event: str, reference: str, amount_kobo: int | None, event_id: int = 1001, **data_extra
) -> dict[str, Any]:
    data: dict[str, Any] = {"id": event_id, "reference": reference, "status": "success", **data_extra}
    if amount_kobo is not None:
        data["amount"] = amount_kobo
    return {"event": event, "data": data}


def signed_paystack_request(event: dict[str, Any], secret_key: str = "sk_test_test") -> tuple[bytes, dict[str, str]]:
    """Body bytes and headers for POST /webhooks/paystack (sign exactly what is sent)."""
    body = json.dumps(event).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "x-paystack-signature": compute_paystack_signature(body, secret_key),
    }
    return body, headers
