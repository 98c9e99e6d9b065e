"""
Session store - one ConversationSession per normalized WhatsApp identifier.

Saves are conditional on the version read (optimistic locking):
  UPDATE conversation_sessions SET ..., version = version + 1
  WHERE id = :id AND version = :expected_version
rowcount == 0 means another writer got there first and SessionConflict is raised.
Callers work on SessionRecord snapshots, never on live ORM objects.
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from luxepass.constants.statuses import INITIAL_STATE
from luxepass.db.helpers import is_unique_violation
from luxepass.db.models import ConversationSession

logger = logging.getLogger(__name__)


class SessionConflict(Exception):
    """The session changed (or was created) concurrently; reload and retry."""


@dataclass
class SessionRecord:
    identifier: str
    state: str = INITIAL_STATE.value
    form_data: dict[str, Any] = field(default_factory=dict)
    display_name: str | None = None
    email: str | None = None
    security_question: str | None = None
    security_answer_hash: str | None = None
    live_handoff_active: bool = False
    version: int = 1
    last_activity: datetime | None = None
    id: int | None = None

    def copy(self) -> "SessionRecord":
        """Working copy; form_data is deep-copied so edits never leak into the loaded snapshot."""
        return replace(self, form_data=copy.deepcopy(self.form_data))

    def reset_to(self, state: str) -> None:
        self.state = state
        self.form_data = {}


_MUTABLE_FIELDS = (
    "state",
    "form_data",
    "display_name",
    "email",
    "security_question",
    "security_answer_hash",
    "live_handoff_active",
    "last_activity",
)


class SessionStore(Protocol):
    def get(self, identifier: str) -> SessionRecord | None: ...

    def create(self, record: SessionRecord) -> SessionRecord: ...

    def save(self, record: SessionRecord, expected_version: int) -> SessionRecord: ...

    def rollback(self) -> None: ...


def _to_record(row: ConversationSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        identifier=row.identifier,
        state=row.state,
        form_data=copy.deepcopy(row.form_data or {}),
        display_name=row.display_name,
        email=row.email,
        security_question=row.security_question,
        security_answer_hash=row.security_answer_hash,
        live_handoff_active=bool(row.live_handoff_active),
        version=row.version,
        last_activity=row.last_activity,
    )


def _column_values(record: SessionRecord) -> dict[str, Any]:
    values = {name: getattr(record, name) for name in _MUTABLE_FIELDS}
    values["state"] = str(record.state)
    return values


class SqlSessionStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, identifier: str) -> SessionRecord | None:
        # Expire cached rows so a retry sees what the other writer committed
        self.db.expire_all()
        row = self.db.execute(
            select(ConversationSession).where(ConversationSession.identifier == identifier)
        ).scalar_one_or_none()
        return _to_record(row) if row else None

    def create(self, record: SessionRecord) -> SessionRecord:
        row = ConversationSession(
            identifier=record.identifier,
            **_column_values(record),
            version=1,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if not is_unique_violation(e):
                raise
            raise SessionConflict(f"Session for {record.identifier} already exists") from e
        self.db.refresh(row)
        logger.info(f"Created session {row.id} for {row.identifier} in {row.state}")
        return _to_record(row)

    def save(self, record: SessionRecord, expected_version: int) -> SessionRecord:
        if record.id is None:
            raise ValueError("Cannot save a session that was never created")
        values = _column_values(record)
        stmt = (
            update(ConversationSession)
            .where(ConversationSession.id == record.id)
            .where(ConversationSession.version == expected_version)
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        if result.rowcount == 0:
            raise SessionConflict(
                f"Session {record.identifier} is no longer at version {expected_version}"
            )
        return replace(record.copy(), version=expected_version + 1)

    def rollback(self) -> None:
        self.db.rollback()


class InMemorySessionStore:
    """Process-local store with the same conditional-write semantics; used in tests."""

    def __init__(self):
        self._rows: dict[str, SessionRecord] = {}
        self._next_id = 1

    def get(self, identifier: str) -> SessionRecord | None:
        row = self._rows.get(identifier)
        return row.copy() if row else None

    def create(self, record: SessionRecord) -> SessionRecord:
        if record.identifier in self._rows:
            raise SessionConflict(f"Session for {record.identifier} already exists")
        stored = replace(record.copy(), id=self._next_id, version=1)
        self._next_id += 1
        self._rows[record.identifier] = stored
        return stored.copy()

    def save(self, record: SessionRecord, expected_version: int) -> SessionRecord:
        current = self._rows.get(record.identifier)
        if current is None or current.version != expected_version:
            raise SessionConflict(
                f"Session {record.identifier} is no longer at version {expected_version}"
            )
        stored = replace(record.copy(), id=current.id, version=expected_version + 1)
        self._rows[record.identifier] = stored
        return stored.copy()

    def rollback(self) -> None:
        pass
