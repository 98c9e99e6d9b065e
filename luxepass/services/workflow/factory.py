"""Wire a WorkflowEngine to the database-backed collaborators for one request or job."""

from functools import partial

from sqlalchemy.orm import Session

from luxepass.core.config import settings
from luxepass.services.bookings import BookingRecorder
from luxepass.services.catalog import get_catalog
from luxepass.services.messaging.message_store import MessageStore
from luxepass.services.messaging.whatsapp import WhatsAppClient
from luxepass.services.payments.paystack import PaystackClient
from luxepass.services.sessions import SqlSessionStore
from luxepass.services.system_event_service import log_event
from luxepass.services.workflow.engine import MessageGateway, PaymentInitiator, WorkflowEngine


def build_workflow_engine(
    db: Session,
    gateway: MessageGateway | None = None,
    payments: PaymentInitiator | None = None,
) -> WorkflowEngine:
    return WorkflowEngine(
        store=SqlSessionStore(db),
        gateway=gateway or WhatsAppClient(),
        payments=payments or PaystackClient(),
        bookings=BookingRecorder(db),
        catalog=get_catalog(),
        message_store=MessageStore(db),
        event_log=partial(log_event, db),
        max_attempts=settings.session_save_max_attempts,
    )
