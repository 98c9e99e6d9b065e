"""
Per-step input validation. Every parser returns the cleaned value, or None when the
input should be re-prompted.
"""

import re
from collections.abc import Sequence
from datetime import date

import bcrypt

from luxepass.constants.statuses import WorkflowState
from luxepass.services.messaging.whatsapp import ButtonOption

RESET_KEYWORDS = frozenset({"menu", "main menu", "restart"})
GREETING_KEYWORDS = frozenset({"hi", "hello"})  # Reset only while already in MAIN_MENU
SUPPORT_KEYWORDS = ("live chat", "human", "support", "agent")
NO_NOTES_KEYWORDS = frozenset({"none", "no", "nil", "n/a"})
BCRYPT_MAX_BYTES = 72

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
AMOUNT_RE = re.compile(r"^(?:₦|ngn)?\s*(\d{1,3}(?:,\d{3})+|\d+)$", re.IGNORECASE)
WHOLE_NUMBER_RE = re.compile(r"^\d+$")

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 120
MIN_SECURITY_ANSWER_LENGTH = 2
MIN_NARRATION_LENGTH = 3
MAX_NARRATION_LENGTH = 200
MAX_NOTES_LENGTH = 500


def normalize_command(text: str | None) -> str:
    return " ".join((text or "").split()).lower()


def is_reset_command(text: str | None, state: WorkflowState | None) -> bool:
    command = normalize_command(text)
    if command in RESET_KEYWORDS:
        return True
    return command in GREETING_KEYWORDS and state == WorkflowState.MAIN_MENU


def is_support_request(text: str | None) -> bool:
    command = normalize_command(text)
    return any(keyword in command for keyword in SUPPORT_KEYWORDS)


def parse_name(text: str) -> str | None:
    name = " ".join(text.split())
    if len(name) < MIN_NAME_LENGTH:
        return None
    return name[:MAX_NAME_LENGTH]


def parse_email(text: str) -> str | None:
    email = text.strip()
    return email if EMAIL_RE.match(email) else None


def match_choice(text: str, options: Sequence[ButtonOption]) -> str | None:
    """
    Resolve a reply to one of the offered options.

    Accepts the option id (what a button reply carries), its 1-based position, or its title.
    """
    answer = normalize_command(text)
    if not answer:
        return None
    for option in options:
        if answer == option.id.lower():
            return option.id
    if WHOLE_NUMBER_RE.match(answer):
        index = int(answer) - 1
        if 0 <= index < len(options):
            return options[index].id
        return None
    for option in options:
        if answer == normalize_command(option.title):
            return option.id
    return None


def parse_iso_date(text: str) -> date | None:
    value = text.strip()
    if not ISO_DATE_RE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_check_in(text: str, today: date) -> date | None:
    check_in = parse_iso_date(text)
    if check_in is None or check_in < today:
        return None
    return check_in


def parse_check_out(text: str, check_in: date) -> date | None:
    check_out = parse_iso_date(text)
    if check_out is None or check_out <= check_in:
        return None
    return check_out


def parse_guests(text: str, max_guests: int) -> int | None:
    value = text.strip()
    if not WHOLE_NUMBER_RE.match(value):
        return None
    guests = int(value)
    return guests if 1 <= guests <= max_guests else None


def parse_notes(text: str) -> str | None:
    """Free text; 'none' means no special requests and is stored as an empty string."""
    notes = text.strip()
    if not notes:
        return None
    if normalize_command(notes) in NO_NOTES_KEYWORDS:
        return ""
    return notes[:MAX_NOTES_LENGTH]


def parse_amount(text: str, minimum: int, maximum: int) -> int | None:
    match = AMOUNT_RE.match(text.strip())
    if not match:
        return None
    amount = int(match.group(1).replace(",", ""))
    if amount <= 0 or amount < minimum or amount > maximum:
        return None
    return amount


def parse_narration(text: str) -> str | None:
    narration = " ".join(text.split())
    if not MIN_NARRATION_LENGTH <= len(narration) <= MAX_NARRATION_LENGTH:
        return None
    return narration


def normalize_security_answer(text: str) -> str:
    return " ".join(text.split()).casefold()


def parse_security_answer(text: str) -> str | None:
    answer = normalize_security_answer(text)
    return answer if len(answer) >= MIN_SECURITY_ANSWER_LENGTH else None


def _answer_bytes(answer: str) -> bytes:
    # bcrypt only looks at the first 72 bytes and newer releases reject longer input
    return normalize_security_answer(answer).encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_security_answer(answer: str) -> str:
    """bcrypt hash of the normalized answer (salt and cost are part of the string)."""
    return bcrypt.hashpw(_answer_bytes(answer), bcrypt.gensalt()).decode("utf-8")


def verify_security_answer(answer: str, stored_hash: str | None) -> bool:
    if not stored_hash:
        return False
    try:
        return bcrypt.checkpw(_answer_bytes(answer), stored_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


def format_naira(amount: int) -> str:
    return f"{amount:,}"
