"""WhatsApp identifier normalization."""

import re

_NON_DIGITS = re.compile(r"\D+")


class InvalidIdentifier(ValueError):
    """Raised when a sender identifier has no digits left after normalization."""


def normalize_identifier(raw: str | None) -> str:
    """
    Strip everything but digits from a WhatsApp sender id.

    "+234 803-555-0101" -> "2348035550101"

    Raises:
        InvalidIdentifier: if nothing is left
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if not digits:
        raise InvalidIdentifier(f"Invalid WhatsApp identifier: {raw!r}")
    return digits
