"""
WhatsApp Cloud API client with dry-run mode for development.

Sends text, interactive reply buttons, templates and media, and marks inbound
messages as read. Dry-run is forced while the credentials are placeholders, so
tests and local runs never reach the Graph API.
"""

import logging
from typing import Any, NamedTuple

import httpx

from luxepass.core.config import settings
from luxepass.services.integrations.http_client import create_httpx_client

logger = logging.getLogger(__name__)

GRAPH_API_BASE_URL = "https://graph.facebook.com"

MAX_BUTTONS = 3
MAX_BUTTON_TITLE_LENGTH = 20
MAX_BUTTON_ID_LENGTH = 256
MEDIA_KINDS = ("image", "document", "audio", "video")

PLACEHOLDER_ACCESS_TOKENS = ("", "test_token")
PLACEHOLDER_PHONE_NUMBER_IDS = ("", "test_id")


class WhatsAppSendError(Exception):
    """Raised when the Graph API call fails (transport error or non-2xx)."""


class ButtonOption(NamedTuple):
    id: str
    title: str


def build_reply_buttons(options: list[ButtonOption]) -> list[dict]:
    """
    Graph API reply buttons for up to three options.

    Titles are truncated to 20 characters and ids to 256, the provider limits.
    """
    if not options:
        raise ValueError("Interactive message needs at least one option")
    if len(options) > MAX_BUTTONS:
        raise ValueError(f"Interactive message supports at most {MAX_BUTTONS} options")
    return [
        {
            "type": "reply",
            "reply": {
                "id": option.id[:MAX_BUTTON_ID_LENGTH],
                "title": option.title[:MAX_BUTTON_TITLE_LENGTH],
            },
        }
        for option in options
    ]


class WhatsAppClient:
    def __init__(
        self,
        access_token: str | None = None,
        phone_number_id: str | None = None,
        api_version: str | None = None,
        dry_run: bool | None = None,
    ):
        self.access_token = access_token if access_token is not None else settings.whatsapp_access_token
        self.phone_number_id = (
            phone_number_id if phone_number_id is not None else settings.whatsapp_phone_number_id
        )
        self.api_version = api_version or settings.whatsapp_graph_api_version
        requested_dry_run = settings.whatsapp_dry_run if dry_run is None else dry_run
        self.dry_run = requested_dry_run or self._has_placeholder_credentials()

    def _has_placeholder_credentials(self) -> bool:
        return (
            self.access_token in PLACEHOLDER_ACCESS_TOKENS
            or self.phone_number_id in PLACEHOLDER_PHONE_NUMBER_IDS
        )

    @property
    def messages_url(self) -> str:
        return f"{GRAPH_API_BASE_URL}/{self.api_version}/{self.phone_number_id}/messages"

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        to = payload.get("to")
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would send WhatsApp {payload.get('type', 'status')} to {to}")
            logger.debug(f"[DRY-RUN] payload={payload}")
            return {"status": "dry_run", "message_id": None, "to": to}

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with create_httpx_client() as client:
                response = await client.post(self.messages_url, headers=headers, json=payload)
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"WhatsApp API returned {e.response.status_code} for {to}: {e.response.text[:300]}"
            )
            raise WhatsAppSendError(f"WhatsApp API error {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp transport error for {to}: {type(e).__name__}: {e}")
            raise WhatsAppSendError(f"WhatsApp transport error: {e}") from e

        messages = result.get("messages") or [{}]
        return {"status": "sent", "message_id": messages[0].get("id"), "to": to}

    @staticmethod
    def _envelope(to: str, message_type: str) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": message_type,
        }

    async def send_text(self, to: str, body: str) -> dict[str, Any]:
        payload = self._envelope(to, "text")
        payload["text"] = {"preview_url": False, "body": body}
        return await self._post(payload)

    async def send_interactive(
        self, to: str, body: str, options: list[ButtonOption]
    ) -> dict[str, Any]:
        """Send a reply-button message (at most three options)."""
        payload = self._envelope(to, "interactive")
        payload["interactive"] = {
            "type": "button",
            "body": {"text": body},
            "action": {"buttons": build_reply_buttons(options)},
        }
        return await self._post(payload)

    async def send_template(
        self,
        to: str,
        name: str,
        language: str = "en",
        components: list[dict] | None = None,
    ) -> dict[str, Any]:
        payload = self._envelope(to, "template")
        template: dict[str, Any] = {"name": name, "language": {"code": language}}
        if components:
            template["components"] = components
        payload["template"] = template
        return await self._post(payload)

    async def send_media(
        self,
        to: str,
        kind: str,
        link: str,
        caption: str | None = None,
        filename: str | None = None,
    ) -> dict[str, Any]:
        if kind not in MEDIA_KINDS:
            raise ValueError(f"Unsupported media kind: {kind}")
        media: dict[str, Any] = {"link": link}
        # Graph API rejects captions on audio
        if caption and kind != "audio":
            media["caption"] = caption
        if filename and kind == "document":
            media["filename"] = filename
        payload = self._envelope(to, kind)
        payload[kind] = media
        return await self._post(payload)

    async def mark_as_read(self, message_id: str) -> dict[str, Any]:
        payload = {
            "messaging_product": "whatsapp",
            "status": "read",
            "message_id": message_id,
        }
        return await self._post(payload)
