"""Database session helpers."""

from sqlalchemy.exc import IntegrityError


def is_unique_violation(exc: IntegrityError) -> bool:
    """
    Return True only if the IntegrityError is a unique-constraint violation.
    Callers re-raise otherwise to avoid hiding real DB bugs.
    """
    orig = exc.orig
    if orig is None:
        return False
    # Postgres: SQLSTATE 23505 = unique_violation
    if getattr(orig, "pgcode", None) == "23505":
        return True
    # SQLite: check error message
    return "unique constraint" in str(orig).lower()
