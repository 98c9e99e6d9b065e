import json
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from luxepass.api.dependencies import get_message_gateway
from luxepass.constants.event_types import (
    EVENT_PAYSTACK_CHARGE_FAILED,
    EVENT_PAYSTACK_CHARGE_SUCCESS,
    EVENT_PAYSTACK_SIGNATURE_VERIFICATION_FAILURE,
    EVENT_WHATSAPP_MESSAGE,
    EVENT_WHATSAPP_SIGNATURE_VERIFICATION_FAILURE,
    EVENT_WHATSAPP_WEBHOOK_FAILURE,
)
from luxepass.constants.providers import PROVIDER_PAYSTACK, PROVIDER_WHATSAPP
from luxepass.core.config import settings
from luxepass.db.deps import get_db
from luxepass.db.helpers import is_unique_violation
from luxepass.db.models import ProcessedMessage
from luxepass.middleware.correlation_id import correlation_scope, get_correlation_id
from luxepass.services.messaging.message_store import MessageStore, local_message_id
from luxepass.services.messaging.whatsapp import WhatsAppClient
from luxepass.services.messaging.whatsapp_verification import verify_whatsapp_signature
from luxepass.services.payments.paystack import verify_paystack_signature
from luxepass.services.system_event_service import error, warn
from luxepass.utils.datetime_utils import iso_or_none
from luxepass.utils.phone import InvalidIdentifier, normalize_identifier

logger = logging.getLogger(__name__)

router = APIRouter()

WHATSAPP_OBJECT = "whatsapp_business_account"
# Only these reach the workflow; everything else is stored for the dashboard
WORKFLOW_MESSAGE_TYPES = ("text", "interactive")


def _wa_error_response(status_code: int, error: str, **content_extras) -> JSONResponse:
    """Build JSONResponse for WhatsApp webhook errors: {"received": False, "error": ...}."""
    content: dict = {"received": False, "error": error, **content_extras}
    return JSONResponse(status_code=status_code, content=content)


def _paystack_error_response(status_code: int, error: str, **content_extras) -> JSONResponse:
    """Build JSONResponse for Paystack webhook errors: {"error": ...}."""
    content: dict = {"error": error, **content_extras}
    return JSONResponse(status_code=status_code, content=content)


async def _verify_whatsapp_webhook(
    request: Request, db: Session
) -> tuple[bytes | None, JSONResponse | None]:
    """
    Read raw body, verify WhatsApp webhook signature.
    Returns (raw_body, None) on success; (None, error_response) on failure.
    """
    raw_body = await request.body()
    signature_header = request.headers.get("X-Hub-Signature-256")
    if not verify_whatsapp_signature(raw_body, signature_header):
        logger.warning("WhatsApp webhook signature verification failed - rejecting request")
        warn(
            db,
            EVENT_WHATSAPP_SIGNATURE_VERIFICATION_FAILURE,
            payload={"has_signature_header": signature_header is not None},
        )
        return None, _wa_error_response(403, "Invalid webhook signature")
    return raw_body, None


async def _verify_paystack_webhook(
    request: Request, db: Session
) -> tuple[dict | None, JSONResponse | None]:
    """
    Read raw body, verify x-paystack-signature and parse JSON.
    Returns (event_dict, None) on success; (None, error_response) on failure.
    """
    raw_body = await request.body()
    signature = request.headers.get("x-paystack-signature")
    if not verify_paystack_signature(raw_body, signature):
        warn(
            db,
            EVENT_PAYSTACK_SIGNATURE_VERIFICATION_FAILURE,
            payload={"has_signature_header": signature is not None},
        )
        return None, _paystack_error_response(400, "Invalid webhook signature")
    try:
        event = json.loads(raw_body.decode("utf-8"))
    except ValueError as e:
        logger.warning(f"Invalid JSON payload in Paystack webhook: {e}")
        return None, _paystack_error_response(400, "Invalid JSON payload")
    if not isinstance(event, dict):
        return None, _paystack_error_response(400, "Malformed event")
    return event, None


def _claim_whatsapp_message(db: Session, message_id: str, identifier: str) -> bool:
    """
    Insert the ProcessedMessage row for a WhatsApp message id.
    Returns False if the id was already claimed (Meta redelivery).
    """
    db.add(
        ProcessedMessage(
            provider=PROVIDER_WHATSAPP,
            message_id=message_id,
            event_type=EVENT_WHATSAPP_MESSAGE,
            identifier=identifier,
        )
    )
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if not is_unique_violation(e):
            raise
        return False
    return True


def extract_message_content(message: dict) -> str:
    """
    Text the workflow sees: text body, or the id of the button / list row that was tapped.
    Other message types are represented by their type name.
    """
    message_type = message.get("type", "text")
    if message_type == "text":
        return (message.get("text") or {}).get("body") or ""
    if message_type == "interactive":
        interactive = message.get("interactive") or {}
        if interactive.get("type") == "button_reply":
            return (interactive.get("button_reply") or {}).get("id") or ""
        if interactive.get("type") == "list_reply":
            return (interactive.get("list_reply") or {}).get("id") or ""
        return ""
    return f"[{message_type}]"


_NO_TIMESTAMP = datetime.min.replace(tzinfo=UTC)


def _message_timestamp(message: dict) -> datetime | None:
    raw = message.get("timestamp")
    try:
        return datetime.fromtimestamp(int(raw), tz=UTC) if raw else None
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _sort_key(message: dict) -> datetime:
    # Unparseable timestamps sort first, in arrival order
    return _message_timestamp(message) or _NO_TIMESTAMP


def _contact_names(value: dict) -> dict[str, str]:
    names = {}
    for contact in value.get("contacts") or []:
        contact = contact or {}
        name = (contact.get("profile") or {}).get("name")
        if contact.get("wa_id") and name:
            names[contact["wa_id"]] = name
    return names


@router.get("/whatsapp")
def whatsapp_verify(request: Request):
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge")
    logger.info(f"WhatsApp webhook verification request mode={mode} has_token={bool(token)}")
    if mode == "subscribe" and token == settings.whatsapp_verify_token:
        return Response(content=challenge or "", media_type="text/plain")
    logger.warning("WhatsApp webhook verification failed")
    raise HTTPException(status_code=403, detail="Verification failed")


@router.post("/whatsapp")
async def whatsapp_inbound(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: WhatsAppClient = Depends(get_message_gateway),
):
    correlation_id = get_correlation_id(request)
    logger.info(
        f"whatsapp.inbound_received correlation_id={correlation_id}",
        extra={
            "correlation_id": correlation_id,
            "event_type": "whatsapp.inbound_received",
        },
    )

    raw_body, err_response = await _verify_whatsapp_webhook(request, db)
    if err_response is not None:
        return err_response

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except ValueError as e:
        logger.warning(f"Invalid JSON payload in WhatsApp webhook: {e}")
        return _wa_error_response(400, "Invalid JSON payload")

    if not isinstance(payload, dict) or payload.get("object") != WHATSAPP_OBJECT:
        logger.warning(f"Unknown webhook object type: {payload.get('object') if isinstance(payload, dict) else None}")
        return {"received": True, "type": "ignored-object"}

    try:
        return _process_whatsapp_payload(db, payload, background_tasks, gateway, correlation_id)
    except (AttributeError, KeyError, TypeError) as e:
        logger.warning(f"Malformed WhatsApp payload: {e}")
        return {"received": True, "type": "malformed-payload", "error": str(e)}
    except Exception as e:
        # 200 so Meta does not retry; the failure is kept as a SystemEvent
        logger.error(
            f"WhatsApp webhook processing failed - error_type={type(e).__name__}: {e}",
            exc_info=True,
        )
        db.rollback()
        error(db, EVENT_WHATSAPP_WEBHOOK_FAILURE, exc=e)
        return {"received": True, "error": "Webhook processing failed"}


def _process_whatsapp_payload(
    db: Session,
    payload: dict,
    background_tasks: BackgroundTasks,
    gateway: WhatsAppClient,
    correlation_id: str | None,
) -> dict:
    store = MessageStore(db)
    queued = duplicates = skipped = statuses = 0

    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field", "messages") != "messages":
                logger.debug(f"Unhandled webhook change field={change.get('field')}")
                continue
            value = change.get("value") or {}
            names = _contact_names(value)

            messages = sorted(value.get("messages") or [], key=_sort_key)
            for message in messages:
                message_id = message.get("id")
                message_type = message.get("type", "text")
                try:
                    identifier = normalize_identifier(message.get("from"))
                except InvalidIdentifier:
                    logger.warning(f"Skipping WhatsApp message {message_id} with invalid sender")
                    skipped += 1
                    continue

                if message_id and not _claim_whatsapp_message(db, message_id, identifier):
                    logger.info(f"Duplicate WhatsApp message {message_id} - skipping")
                    duplicates += 1
                    continue

                content = extract_message_content(message)
                display_name = names.get(message.get("from"))
                store.record_inbound(
                    identifier=identifier,
                    message_id=message_id or local_message_id(),
                    content=content,
                    message_type=message_type,
                    display_name=display_name,
                    timestamp=_message_timestamp(message),
                )
                if message_type not in WORKFLOW_MESSAGE_TYPES:
                    logger.info(f"Stored {message_type} message {message_id} without workflow dispatch")
                    continue

                background_tasks.add_task(
                    run_workflow_job,
                    identifier=identifier,
                    text=content,
                    display_name=display_name,
                    message_id=message_id,
                    gateway=gateway,
                    correlation_id=correlation_id,
                )
                queued += 1

            for status in value.get("statuses") or []:
                logger.info(
                    f"Message status update message_id={status.get('id')} status={status.get('status')}"
                )
                if status.get("id") and status.get("status"):
                    store.update_status(status["id"], status["status"])
                statuses += 1

    return {
        "received": True,
        "queued": queued,
        "duplicates": duplicates,
        "skipped": skipped,
        "statuses": statuses,
    }


async def run_workflow_job(
    identifier: str,
    text: str,
    display_name: str | None,
    message_id: str | None,
    gateway: WhatsAppClient | None = None,
    correlation_id: str | None = None,
) -> None:
    """
    Background task: run the workflow engine for one inbound message.

    Opens a fresh DB session to avoid reusing the request-scoped one.
    """
    from luxepass.db.session import SessionLocal
    from luxepass.services.workflow import build_workflow_engine

    with correlation_scope(correlation_id):
        db = SessionLocal()
        try:
            try:
                engine = build_workflow_engine(db, gateway=gateway)
                outcome = await engine.handle_inbound(identifier, text, display_name)
                if outcome.redact_inbound and message_id:
                    MessageStore(db).redact(message_id)
            except Exception as e:
                logger.error(
                    f"Workflow job failed for {identifier} message_id={message_id}: "
                    f"{type(e).__name__}: {e}",
                    exc_info=True,
                )
                db.rollback()
                try:
                    error(
                        db,
                        EVENT_WHATSAPP_WEBHOOK_FAILURE,
                        identifier=identifier,
                        payload={"message_id": message_id},
                        exc=e,
                    )
                except Exception as event_error:
                    logger.error(f"Failed to log SystemEvent for workflow job failure: {event_error}")
        finally:
            db.close()


def _paystack_event_key(event_type: str, data: dict) -> str:
    return f"{event_type}:{data.get('id')}:{data.get('reference')}"


@router.post("/paystack")
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: WhatsAppClient = Depends(get_message_gateway),
):
    """
    Handle Paystack webhook events.

    Handles:
    - charge.success: booking confirmed, user notified, session released
    - charge.failed: booking failed, user told to retry
    """
    from luxepass.services.payments.reconciliation import confirm_charge, fail_charge

    event, err_response = await _verify_paystack_webhook(request, db)
    if err_response is not None:
        return err_response

    event_type = event.get("event")
    data = event.get("data")
    if not isinstance(data, dict) or not data.get("reference"):
        return _paystack_error_response(400, "Malformed event: missing data.reference")
    reference = str(data["reference"])

    if event_type not in ("charge.success", "charge.failed"):
        return {
            "received": True,
            "type": event_type,
            "message": "Event received but not handled",
        }

    # Read-only idempotency check first; the row is written after the side effects
    event_key = _paystack_event_key(event_type, data)
    existing = db.execute(
        select(ProcessedMessage).where(
            ProcessedMessage.provider == PROVIDER_PAYSTACK,
            ProcessedMessage.message_id == event_key,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return {
            "received": True,
            "type": "duplicate",
            "reference": reference,
            "processed_at": iso_or_none(existing.processed_at),
        }

    metadata = data.get("metadata")
    if event_type == "charge.success":
        result = await confirm_charge(
            db,
            reference,
            amount_kobo=data.get("amount"),
            metadata=metadata if isinstance(metadata, dict) else None,
            gateway=gateway,
        )
        processed_type = EVENT_PAYSTACK_CHARGE_SUCCESS
    else:
        result = await fail_charge(
            db, reference, reason=data.get("gateway_response"), gateway=gateway
        )
        processed_type = EVENT_PAYSTACK_CHARGE_FAILED

    try:
        db.add(
            ProcessedMessage(
                provider=PROVIDER_PAYSTACK,
                message_id=event_key,
                event_type=processed_type,
            )
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if not is_unique_violation(e):
            raise
        logger.info(f"Paystack event {event_key} recorded concurrently")

    return {
        "received": True,
        "type": event_type,
        "reference": reference,
        "outcome": result.outcome,
        "booking_status": result.booking_status,
        "session_released": result.session_released,
    }
