"""
Message history for the agent dashboard.

Stores every inbound and outbound WhatsApp message and keeps one Conversation
row per user with the last message and an unread counter.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from luxepass.constants.statuses import (
    MESSAGE_DIRECTION_INBOUND,
    MESSAGE_DIRECTION_OUTBOUND,
    MESSAGE_STATUS_DELIVERED,
    MESSAGE_STATUS_FAILED,
    MESSAGE_STATUS_READ,
    MESSAGE_STATUS_RECEIVED,
    MESSAGE_STATUS_SENT,
    MESSAGE_STATUSES,
)
from luxepass.core.config import settings
from luxepass.db.helpers import is_unique_violation
from luxepass.db.models import Conversation, Message
from luxepass.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200
REDACTED = "[redacted]"

# Delivery receipts can arrive out of order; never move a message backwards
_STATUS_RANK = {
    MESSAGE_STATUS_RECEIVED: 0,
    MESSAGE_STATUS_SENT: 1,
    MESSAGE_STATUS_DELIVERED: 2,
    MESSAGE_STATUS_READ: 3,
}


def local_message_id() -> str:
    """Id for messages the Graph API never saw (dry-run, failed sends)."""
    return f"local_{uuid.uuid4().hex}"


class MessageStore:
    def __init__(self, db: Session):
        self.db = db

    def get_conversation(self, conversation_id: int) -> Conversation | None:
        return self.db.get(Conversation, conversation_id)

    def get_conversation_by_identifier(self, identifier: str) -> Conversation | None:
        stmt = select(Conversation).where(Conversation.identifier == identifier)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_or_create_conversation(
        self, identifier: str, display_name: str | None = None
    ) -> Conversation:
        conversation = self.get_conversation_by_identifier(identifier)
        if conversation is None:
            conversation = Conversation(identifier=identifier, display_name=display_name, unread_count=0)
            self.db.add(conversation)
            try:
                self.db.commit()
            except IntegrityError as e:
                # Another worker created it first
                self.db.rollback()
                if not is_unique_violation(e):
                    raise
                conversation = self.get_conversation_by_identifier(identifier)
                if conversation is None:
                    raise
            self.db.refresh(conversation)
        elif display_name and conversation.display_name != display_name:
            conversation.display_name = display_name
            self.db.commit()
        return conversation

    def record_inbound(
        self,
        *,
        identifier: str,
        message_id: str,
        content: str | None,
        message_type: str = "text",
        display_name: str | None = None,
        timestamp: datetime | None = None,
    ) -> Message | None:
        """Store an inbound message; returns None if that provider id is already stored."""
        conversation = self.get_or_create_conversation(identifier, display_name)
        message = Message(
            message_id=message_id,
            conversation_id=conversation.id,
            direction=MESSAGE_DIRECTION_INBOUND,
            from_number=identifier,
            to_number=settings.whatsapp_phone_number_id,
            content=content,
            message_type=message_type,
            status=MESSAGE_STATUS_RECEIVED,
            timestamp=timestamp or utc_now(),
        )
        self.db.add(message)
        conversation.last_message = (content or f"[{message_type}]")[:PREVIEW_LENGTH]
        conversation.last_message_at = message.timestamp
        conversation.unread_count = (conversation.unread_count or 0) + 1
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if not is_unique_violation(e):
                raise
            logger.info(f"Inbound message {message_id} already stored - skipping")
            return None
        self.db.refresh(message)
        return message

    def record_outbound(
        self,
        *,
        identifier: str,
        content: str | None,
        message_type: str = "text",
        message_id: str | None = None,
        status: str = MESSAGE_STATUS_SENT,
    ) -> Message:
        conversation = self.get_or_create_conversation(identifier)
        message = Message(
            message_id=message_id or local_message_id(),
            conversation_id=conversation.id,
            direction=MESSAGE_DIRECTION_OUTBOUND,
            from_number=settings.whatsapp_phone_number_id,
            to_number=identifier,
            content=content,
            message_type=message_type,
            status=status,
            timestamp=utc_now(),
        )
        self.db.add(message)
        conversation.last_message = (content or f"[{message_type}]")[:PREVIEW_LENGTH]
        conversation.last_message_at = message.timestamp
        self.db.commit()
        self.db.refresh(message)
        return message

    def update_status(self, message_id: str, status: str) -> Message | None:
        """
        Apply a provider delivery receipt. "read" also clears the unread counter
        of the conversation the message belongs to.
        """
        if status not in MESSAGE_STATUSES:
            logger.info(f"Ignoring unknown message status {status!r} for {message_id}")
            return None
        message = self.db.execute(
            select(Message).where(Message.message_id == message_id)
        ).scalar_one_or_none()
        if message is None:
            logger.debug(f"Status {status} for unknown message {message_id}")
            return None

        if status == MESSAGE_STATUS_FAILED or _STATUS_RANK.get(status, 0) >= _STATUS_RANK.get(
            message.status, 0
        ):
            message.status = status
        if status == MESSAGE_STATUS_READ:
            message.conversation.unread_count = 0
        self.db.commit()
        return message

    def mark_conversation_read(self, conversation_id: int) -> Conversation | None:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return None
        conversation.unread_count = 0
        self.db.commit()
        return conversation

    def list_conversations(self, limit: int = 50, offset: int = 0) -> list[Conversation]:
        stmt = (
            select(Conversation)
            .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
            .offset(max(0, offset))
            .limit(max(0, min(limit, 200)))
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_messages(self, conversation_id: int, limit: int = 100) -> list[Message]:
        """Oldest first, most recent `limit` messages."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.desc(), Message.id.desc())
            .limit(max(0, min(limit, 500)))
        )
        return list(reversed(self.db.execute(stmt).scalars().all()))

    def redact(self, message_id: str) -> Message | None:
        """Blank the content of a stored inbound message (security answers)."""
        message = self.db.execute(
            select(Message).where(Message.message_id == message_id)
        ).scalar_one_or_none()
        if message is None:
            return None
        message.content = REDACTED
        conversation = message.conversation
        if conversation is not None and conversation.last_message_at == message.timestamp:
            conversation.last_message = REDACTED
        self.db.commit()
        return message
