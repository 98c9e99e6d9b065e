"""
Agent dashboard request/response schemas.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    identifier: str
    display_name: str | None = None
    last_message: str | None = None
    last_message_at: datetime | None = None
    unread_count: int = 0
    # Filled from the session row, not the conversation
    live_handoff_active: bool = False


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    message_id: str
    direction: str
    from_number: str | None = None
    to_number: str | None = None
    content: str | None = None
    message_type: str
    status: str
    timestamp: datetime


class SendMessageRequest(BaseModel):
    """Agent-initiated outbound message."""

    to: str = Field(min_length=1)
    type: Literal["text", "media", "template"] = "text"
    text: str | None = None
    # media
    media_kind: Literal["image", "document", "audio", "video"] | None = None
    media_url: str | None = None
    caption: str | None = None
    filename: str | None = None
    # template
    template_name: str | None = None
    language: str = "en"
    components: list[dict[str, Any]] | None = None

    @model_validator(mode="after")
    def check_payload(self) -> "SendMessageRequest":
        if self.type == "text" and not (self.text and self.text.strip()):
            raise ValueError("text is required for type 'text'")
        if self.type == "media" and not (self.media_kind and self.media_url):
            raise ValueError("media_kind and media_url are required for type 'media'")
        if self.type == "template" and not self.template_name:
            raise ValueError("template_name is required for type 'template'")
        return self


class SendMessageResponse(BaseModel):
    success: bool = True
    message_id: str
    status: str
    to: str


class SessionResponse(BaseModel):
    identifier: str
    display_name: str | None = None
    email: str | None = None
    state: str
    form_data: dict[str, Any]
    live_handoff_active: bool
    has_security_answer: bool
    version: int
    last_activity: datetime | None = None


class LiveChatResponse(BaseModel):
    success: bool = True
    identifier: str
    state: str
    live_handoff_active: bool
