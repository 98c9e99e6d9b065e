"""
Bot copy, loaded from luxepass/copy/<locale>.yml.

A key maps to a single string or to a list of variants. The variant is picked from a
hash of the key and the WhatsApp identifier, so a user sees the same wording every
time they hit the same prompt while different users get some variety.
"""

import hashlib
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

COPY_DIR = Path(__file__).resolve().parent.parent.parent / "copy"
DEFAULT_LOCALE = "en_NG"


def _variant_index(key: str, identifier: str, count: int) -> int:
    digest = hashlib.md5(f"{key}:{identifier}".encode()).hexdigest()
    return int(digest, 16) % count


class MessageComposer:
    def __init__(self, locale: str = DEFAULT_LOCALE, copy_dir: Path | None = None):
        self.locale = locale
        self.copy_file = (copy_dir or COPY_DIR) / f"{locale}.yml"
        self._copy: dict[str, Any] = {}
        if self.copy_file.exists():
            with open(self.copy_file, encoding="utf-8") as f:
                self._copy = yaml.safe_load(f) or {}
            logger.info(f"Loaded {len(self._copy)} copy keys from {self.copy_file}")
        else:
            logger.warning(f"No copy file for locale {locale} at {self.copy_file}")

    def has(self, key: str) -> bool:
        return key in self._copy

    def template_for(self, key: str, identifier: str | None = None) -> str:
        """Raw (unformatted) text for key; the first variant when identifier is None."""
        entry = self._copy.get(key)
        if entry is None:
            logger.warning(f"Copy key {key!r} missing for locale {self.locale}")
            return f"[MISSING: {key}]"
        if not isinstance(entry, list):
            return str(entry)
        if not entry:
            return ""
        index = 0 if identifier is None else _variant_index(key, identifier, len(entry))
        return str(entry[index])

    def render(self, key: str, identifier: str | None = None, **kwargs: Any) -> str:
        """
        Example:
            composer.render("ask_email", identifier="2348030000000", name="Ada")

        A placeholder without a value leaves the template unformatted rather than failing
        the whole reply.
        """
        template = self.template_for(key, identifier)
        try:
            return template.format(**kwargs)
        except (KeyError, IndexError) as e:
            logger.warning(f"Copy key {key!r} needs {e} which was not supplied")
            return template


_composers: dict[str, MessageComposer] = {}


def get_composer(locale: str = DEFAULT_LOCALE) -> MessageComposer:
    """Process-wide composer per locale (copy is read once)."""
    if locale not in _composers:
        _composers[locale] = MessageComposer(locale=locale)
    return _composers[locale]
