from collections.abc import Iterator

from sqlalchemy.orm import Session

from luxepass.db import session as _session


def get_db() -> Iterator[Session]:
    db = _session.SessionLocal()
    try:
        yield db
    finally:
        db.close()
