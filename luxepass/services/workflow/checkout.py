"""
Conditional exit from a *_PAYMENT state.

Used when a checkout cannot be started (revert to the step before it) and when the
payment webhook confirms a charge (back to the menu). The write only happens while
the session is still waiting on the same reference.
"""

import logging

from luxepass.constants.statuses import PAYMENT_STATES, WorkflowState
from luxepass.services.sessions import SessionConflict, SessionStore

logger = logging.getLogger(__name__)


def release_pending_payment(
    store: SessionStore,
    identifier: str,
    reference: str,
    target_state: WorkflowState,
    *,
    clear_form: bool = False,
    max_attempts: int = 3,
) -> bool:
    """
    Move the session out of its payment state if it still holds `reference`.

    Returns:
        True if the session was moved, False if it had already moved on
    """
    for attempt in range(1, max_attempts + 1):
        current = store.get(identifier)
        if current is None:
            return False
        if current.state not in PAYMENT_STATES or current.form_data.get("reference") != reference:
            logger.info(
                f"Session {identifier} no longer waiting on {reference} (state={current.state})"
            )
            return False

        working = current.copy()
        if clear_form:
            working.reset_to(target_state)
        else:
            working.form_data.pop("reference", None)
            working.state = target_state
        try:
            store.save(working, expected_version=current.version)
        except SessionConflict:
            logger.warning(
                f"Conflict releasing {reference} for {identifier} (attempt {attempt}/{max_attempts})"
            )
            continue
        logger.info(f"Session {identifier} released {reference} -> {target_state}")
        return True
    raise SessionConflict(f"Could not release {reference} for {identifier} after {max_attempts} attempts")
