"""FastAPI dependencies for API routes."""

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from luxepass.db.deps import get_db
from luxepass.db.models import Conversation
from luxepass.services.messaging.message_store import MessageStore
from luxepass.services.messaging.whatsapp import WhatsAppClient
from luxepass.services.payments.paystack import PaystackClient
from luxepass.services.sessions import SessionRecord, SqlSessionStore
from luxepass.utils.phone import InvalidIdentifier, normalize_identifier


def get_conversation_or_404(conversation_id: int, db: Session = Depends(get_db)) -> Conversation:
    """
    Resolve conversation by path parameter conversation_id; raise 404 if not found.
    """
    conversation = MessageStore(db).get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def get_session_or_404(phone: str, db: Session = Depends(get_db)) -> SessionRecord:
    """Resolve session by path parameter {phone} (any formatting); 404 if unknown."""
    try:
        identifier = normalize_identifier(phone)
    except InvalidIdentifier:
        raise HTTPException(status_code=404, detail="Session not found")
    session = SqlSessionStore(db).get(identifier)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def get_message_gateway() -> WhatsAppClient:
    """WhatsApp client for request handlers; overridden in tests."""
    return WhatsAppClient()


def get_payment_client() -> PaystackClient:
    return PaystackClient()
