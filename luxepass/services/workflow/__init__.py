# Workflow: per-identifier state machine for the WhatsApp concierge
# Re-export so "from luxepass.services.workflow import ..." works for the API layer.

from luxepass.services.workflow.engine import InboundOutcome, WorkflowEngine
from luxepass.services.workflow.factory import build_workflow_engine

__all__ = [
    "InboundOutcome",
    "WorkflowEngine",
    "build_workflow_engine",
]
