from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from luxepass.constants.statuses import (
    BOOKING_STATUS_PENDING,
    INITIAL_STATE,
    MESSAGE_STATUS_RECEIVED,
)
from luxepass.db.base import Base


class ConversationSession(Base):
    """One row per WhatsApp user; holds onboarding profile and workflow position."""

    __tablename__ = "conversation_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    identifier: Mapped[str] = mapped_column(String(32), unique=True, index=True)  # digits only
    display_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Security question id and salted hash of the answer ("salt$hexdigest")
    security_question: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    security_answer_hash: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    state: Mapped[str] = mapped_column(String(40), default=INITIAL_STATE.value)
    form_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    live_handoff_active: Mapped[bool] = mapped_column(Boolean, default=False)

    # Optimistic lock, incremented on every conditional save
    version: Mapped[int] = mapped_column(Integer, default=1)

    last_activity: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="session")


class Booking(Base):
    """Booking or concierge payment; created pending when a checkout link is issued."""

    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(80), unique=True, index=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("conversation_sessions.id"), index=True
    )
    kind: Mapped[str] = mapped_column(String(20))  # booking, concierge
    category: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    listing_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    amount: Mapped[int] = mapped_column(Integer)  # Whole naira
    currency: Mapped[str] = mapped_column(String(3), default="NGN")
    status: Mapped[str] = mapped_column(String(20), default=BOOKING_STATUS_PENDING, index=True)
    payment_reference: Mapped[str] = mapped_column(String(80), unique=True, index=True)
    authorization_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    payment_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    session: Mapped["ConversationSession"] = relationship(
        "ConversationSession", back_populates="bookings"
    )


class Conversation(Base):
    """Per-user dashboard summary: last message and unread counter."""

    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    identifier: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    unread_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    messages: Mapped[list["Message"]] = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan"
    )


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    message_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)  # Provider id
    conversation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("conversations.id"), index=True
    )
    direction: Mapped[str] = mapped_column(String(10))  # inbound, outbound
    from_number: Mapped[str] = mapped_column(String(32))
    to_number: Mapped[str] = mapped_column(String(32))
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message_type: Mapped[str] = mapped_column(String(20), default="text")
    status: Mapped[str] = mapped_column(String(20), default=MESSAGE_STATUS_RECEIVED)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="messages")


class ProcessedMessage(Base):
    """Idempotency table - stores processed provider event IDs to prevent duplicates."""

    __tablename__ = "processed_messages"
    __table_args__ = (
        UniqueConstraint("provider", "message_id", name="ix_processed_messages_provider_message_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    provider: Mapped[str] = mapped_column(String(20))
    message_id: Mapped[str] = mapped_column(String(255), index=True)
    event_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    identifier: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class SystemEvent(Base):
    __tablename__ = "system_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    level: Mapped[str] = mapped_column(String(10), index=True)  # INFO, WARN, ERROR
    event_type: Mapped[str] = mapped_column(String(64), index=True)
    identifier: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
