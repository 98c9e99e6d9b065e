"""
Pydantic schemas for API request/response validation.
"""

from luxepass.schemas.admin import (
    ConversationResponse,
    LiveChatResponse,
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
    SessionResponse,
)

__all__ = [
    "ConversationResponse",
    "LiveChatResponse",
    "MessageResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "SessionResponse",
]
