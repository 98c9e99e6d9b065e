"""
Replay a sample WhatsApp or Paystack webhook against a running instance.

Useful for walking the concierge flow without sending messages from a phone.

Usage:
    python scripts/webhook_replay.py --text "Hi" [--from PHONE_NUMBER]
    python scripts/webhook_replay.py --button apartment
    python scripts/webhook_replay.py --paystack LUXE_BK_2348012345678_1760000000000 --amount 170000
"""

import argparse
import json
import sys
import time
import uuid

import httpx

from luxepass.core.config import settings
from luxepass.services.messaging.whatsapp_verification import compute_whatsapp_signature
from luxepass.services.payments.paystack import compute_paystack_signature, to_kobo


def _whatsapp_envelope(wa_from: str, message: dict) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WHATSAPP_BUSINESS_ACCOUNT_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "15550555555",
                                "phone_number_id": settings.whatsapp_phone_number_id,
                            },
                            "contacts": [{"profile": {"name": "Test User"}, "wa_id": wa_from}],
                            "messages": [message],
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def create_text_message_payload(wa_from: str, text: str) -> dict:
    return _whatsapp_envelope(
        wa_from,
        {
            "from": wa_from,
            "id": f"wamid.replay.{uuid.uuid4().hex[:12]}",
            "timestamp": str(int(time.time())),
            "type": "text",
            "text": {"body": text},
        },
    )


def create_button_reply_payload(wa_from: str, button_id: str) -> dict:
    return _whatsapp_envelope(
        wa_from,
        {
            "from": wa_from,
            "id": f"wamid.replay.{uuid.uuid4().hex[:12]}",
            "timestamp": str(int(time.time())),
            "type": "interactive",
            "interactive": {
                "type": "button_reply",
                "button_reply": {"id": button_id, "title": button_id},
            },
        },
    )


def create_charge_success_payload(reference: str, amount_naira: int) -> dict:
    return {
        "event": "charge.success",
        "data": {
            "id": int(time.time()),
            "reference": reference,
            "amount": to_kobo(amount_naira),
            "currency": settings.payment_currency,
            "status": "success",
            "metadata": {"source": "webhook_replay"},
        },
    }


def post_signed(url: str, payload: dict, signature_header: str, signature: str | None) -> bool:
    # Sign and send the exact same bytes
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if signature:
        headers[signature_header] = signature

    print(f"Sending payload to {url}")
    print(json.dumps(payload, indent=2))
    try:
        with httpx.Client(timeout=10.0) as client:
            response = client.post(url, content=body, headers=headers)
    except httpx.HTTPError as e:
        print(f"Error sending webhook: {e}")
        return False

    print(f"Status: {response.status_code}")
    print(f"Body: {response.text}")
    return response.status_code == 200


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a WhatsApp or Paystack webhook payload")
    parser.add_argument("--text", type=str, default="Hi", help="Text message content")
    parser.add_argument("--button", type=str, help="Send an interactive button reply with this id")
    parser.add_argument(
        "--from",
        dest="wa_from",
        type=str,
        default="2348012345678",
        help="Sender WhatsApp number (with country code, no +)",
    )
    parser.add_argument("--paystack", metavar="REFERENCE", help="Send charge.success for a reference")
    parser.add_argument("--amount", type=int, default=0, help="Amount in naira for --paystack")
    parser.add_argument(
        "--url",
        type=str,
        default="http://localhost:8000",
        help="Base URL of the API (default: http://localhost:8000)",
    )
    args = parser.parse_args()

    if args.paystack:
        payload = create_charge_success_payload(args.paystack, args.amount)
        body = json.dumps(payload).encode("utf-8")
        ok = post_signed(
            f"{args.url}/webhooks/paystack",
            payload,
            "x-paystack-signature",
            compute_paystack_signature(body, settings.paystack_secret_key),
        )
    else:
        if args.button:
            payload = create_button_reply_payload(args.wa_from, args.button)
        else:
            payload = create_text_message_payload(args.wa_from, args.text)
        body = json.dumps(payload).encode("utf-8")
        signature = (
            compute_whatsapp_signature(body, settings.whatsapp_app_secret)
            if settings.whatsapp_app_secret
            else None
        )
        ok = post_signed(f"{args.url}/webhooks/whatsapp", payload, "X-Hub-Signature-256", signature)

    if not ok:
        print("Check that the API is running and the webhook secrets match your .env")
        sys.exit(1)


if __name__ == "__main__":
    main()
