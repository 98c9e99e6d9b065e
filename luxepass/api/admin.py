import logging

from fastapi import APIRouter, Depends, HTTPException, Security
from sqlalchemy import select
from sqlalchemy.orm import Session

from luxepass.api.auth import get_admin_auth
from luxepass.api.dependencies import (
    get_conversation_or_404,
    get_message_gateway,
    get_session_or_404,
)
from luxepass.constants.event_types import EVENT_LIVE_HANDOFF_ENDED, EVENT_LIVE_HANDOFF_STARTED
from luxepass.constants.statuses import WorkflowState
from luxepass.db.deps import get_db
from luxepass.db.models import Conversation, ConversationSession
from luxepass.schemas.admin import (
    ConversationResponse,
    LiveChatResponse,
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
    SessionResponse,
)
from luxepass.services.messaging.message_store import MessageStore
from luxepass.services.messaging.whatsapp import WhatsAppClient, WhatsAppSendError
from luxepass.services.sessions import SessionConflict, SessionRecord
from luxepass.services.system_event_service import cleanup_old_events, info, list_events
from luxepass.services.workflow import WorkflowEngine, build_workflow_engine
from luxepass.services.workflow.results import OutboundMessage
from luxepass.utils.datetime_utils import iso_or_none, utc_now
from luxepass.utils.phone import InvalidIdentifier, normalize_identifier

logger = logging.getLogger(__name__)

router = APIRouter()


def _handoff_flags(db: Session, identifiers: list[str]) -> dict[str, bool]:
    if not identifiers:
        return {}
    rows = db.execute(
        select(ConversationSession.identifier, ConversationSession.live_handoff_active).where(
            ConversationSession.identifier.in_(identifiers)
        )
    ).all()
    return {identifier: bool(active) for identifier, active in rows}


@router.get("/conversations", response_model=list[ConversationResponse])
def list_conversations(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """Conversations, most recently active first, with the live-handoff flag of each user."""
    conversations = MessageStore(db).list_conversations(limit=limit, offset=offset)
    flags = _handoff_flags(db, [c.identifier for c in conversations])
    return [
        ConversationResponse.model_validate(c).model_copy(
            update={"live_handoff_active": flags.get(c.identifier, False)}
        )
        for c in conversations
    ]


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResponse])
def list_conversation_messages(
    _auth: bool = Security(get_admin_auth),
    limit: int = 100,
    conversation: Conversation = Depends(get_conversation_or_404),
    db: Session = Depends(get_db),
):
    return MessageStore(db).list_messages(conversation.id, limit=limit)


@router.post("/conversations/{conversation_id}/read")
def mark_conversation_read(
    _auth: bool = Security(get_admin_auth),
    conversation: Conversation = Depends(get_conversation_or_404),
    db: Session = Depends(get_db),
):
    MessageStore(db).mark_conversation_read(conversation.id)
    return {"success": True, "conversation_id": conversation.id, "unread_count": 0}


@router.post("/messages", response_model=SendMessageResponse)
async def send_agent_message(
    request: SendMessageRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppClient = Depends(get_message_gateway),
    _auth: bool = Security(get_admin_auth),
):
    """
    Send a message as an agent.

    Free-form text and media only go to users in live handoff, so an agent cannot
    talk over the bot mid-flow. Templates can be sent to anyone.
    """
    try:
        identifier = normalize_identifier(request.to)
    except InvalidIdentifier:
        raise HTTPException(status_code=400, detail="Invalid recipient phone number")

    if request.type in ("text", "media"):
        session = db.execute(
            select(ConversationSession).where(ConversationSession.identifier == identifier)
        ).scalar_one_or_none()
        if session is None or not session.live_handoff_active:
            raise HTTPException(
                status_code=403,
                detail="User is not in a live chat session; only template messages are allowed",
            )

    try:
        if request.type == "text":
            result = await gateway.send_text(identifier, request.text)
            content = request.text
        elif request.type == "media":
            result = await gateway.send_media(
                identifier,
                request.media_kind,
                request.media_url,
                caption=request.caption,
                filename=request.filename,
            )
            content = request.caption or request.media_url
        else:
            result = await gateway.send_template(
                identifier,
                request.template_name,
                language=request.language,
                components=request.components,
            )
            content = f"[template:{request.template_name}]"
    except WhatsAppSendError as e:
        logger.error(f"Agent message to {identifier} failed: {e}")
        raise HTTPException(status_code=502, detail=f"WhatsApp send failed: {e}")

    message_type = request.media_kind if request.type == "media" else request.type
    message = MessageStore(db).record_outbound(
        identifier=identifier,
        content=content,
        message_type=message_type,
        message_id=result.get("message_id"),
    )
    return SendMessageResponse(
        message_id=message.message_id,
        status=result.get("status", "sent"),
        to=identifier,
    )


async def _set_live_handoff(
    engine: WorkflowEngine, session: SessionRecord, active: bool
) -> SessionRecord:
    """Conditionally flip the live-handoff flag; the session lands in LIVE_HANDOFF or MAIN_MENU."""
    identifier = session.identifier
    async with engine.locks.hold(identifier):
        for attempt in range(1, engine.max_attempts + 1):
            current = engine.store.get(identifier)
            if current is None:
                raise HTTPException(status_code=404, detail="Session not found")
            if current.live_handoff_active == active:
                detail = (
                    "User already has an active live chat session"
                    if active
                    else "User does not have an active live chat session"
                )
                raise HTTPException(status_code=400, detail=detail)

            working = current.copy()
            working.reset_to(WorkflowState.LIVE_HANDOFF if active else WorkflowState.MAIN_MENU)
            working.live_handoff_active = active
            working.last_activity = utc_now()
            try:
                return engine.store.save(working, expected_version=current.version)
            except SessionConflict:
                logger.warning(
                    f"Conflict toggling live chat for {identifier} "
                    f"(attempt {attempt}/{engine.max_attempts})"
                )
    raise HTTPException(status_code=409, detail="Session changed concurrently; retry")


@router.post("/live-chat/{phone}/start", response_model=LiveChatResponse)
async def start_live_chat(
    _auth: bool = Security(get_admin_auth),
    session: SessionRecord = Depends(get_session_or_404),
    db: Session = Depends(get_db),
    gateway: WhatsAppClient = Depends(get_message_gateway),
):
    engine = build_workflow_engine(db, gateway=gateway)
    saved = await _set_live_handoff(engine, session, active=True)
    info(db, EVENT_LIVE_HANDOFF_STARTED, identifier=saved.identifier, payload={"source": "agent"})
    logger.info(f"Live chat started by agent for {saved.identifier}")
    await engine.deliver(
        saved.identifier,
        [OutboundMessage(engine.composer.render("live_handoff", saved.identifier))],
    )
    return LiveChatResponse(
        identifier=saved.identifier, state=str(saved.state), live_handoff_active=True
    )


@router.post("/live-chat/{phone}/end", response_model=LiveChatResponse)
async def end_live_chat(
    _auth: bool = Security(get_admin_auth),
    session: SessionRecord = Depends(get_session_or_404),
    db: Session = Depends(get_db),
    gateway: WhatsAppClient = Depends(get_message_gateway),
):
    engine = build_workflow_engine(db, gateway=gateway)
    saved = await _set_live_handoff(engine, session, active=False)
    info(db, EVENT_LIVE_HANDOFF_ENDED, identifier=saved.identifier, payload={"source": "agent"})
    logger.info(f"Live chat session ended for {saved.identifier}")
    await engine.deliver(
        saved.identifier,
        [OutboundMessage(engine.composer.render("live_chat_ended", saved.identifier))],
    )
    return LiveChatResponse(
        identifier=saved.identifier, state=str(saved.state), live_handoff_active=False
    )


@router.get("/sessions/{phone}", response_model=SessionResponse)
def get_session_detail(
    _auth: bool = Security(get_admin_auth),
    session: SessionRecord = Depends(get_session_or_404),
):
    """Workflow session for a user; the security answer hash is never returned."""
    return SessionResponse(
        identifier=session.identifier,
        display_name=session.display_name,
        email=session.email,
        state=str(session.state),
        form_data=session.form_data,
        live_handoff_active=session.live_handoff_active,
        has_security_answer=bool(session.security_answer_hash),
        version=session.version,
        last_activity=session.last_activity,
    )


@router.get("/events")
def get_events(
    limit: int = 100,
    level: str | None = None,
    event_type: str | None = None,
    identifier: str | None = None,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """
    Get system events with optional filtering.

    Returns:
        List of system events ordered by created_at descending
    """
    events = list_events(
        db, level=level, event_type=event_type, identifier=identifier, limit=limit
    )
    return [
        {
            "id": event.id,
            "created_at": iso_or_none(event.created_at),
            "level": event.level,
            "event_type": event.event_type,
            "identifier": event.identifier,
            "payload": event.payload,
        }
        for event in events
    ]


@router.post("/events/retention-cleanup")
def cleanup_system_events_retention(
    retention_days: int = 90,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """
    Delete SystemEvents older than retention_days (default 90).
    """
    deleted = cleanup_old_events(db, retention_days=retention_days)
    return {"deleted": deleted, "retention_days": retention_days}
