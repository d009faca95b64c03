# validation.py
# Name and phone checks shared by onboarding, the gated reveal and admin imports

import re
from dataclasses import dataclass

NAME_MIN_LEN = 2
NAME_MAX_LEN = 50
PHONE_MIN_DIGITS = 9

_NAME_PUNCTUATION = frozenset(" -'")
_NON_DIGIT = re.compile(r"\D")


@dataclass(frozen=True)
class NameCheck:
    ok: bool
    value: str = ""
    error: str = ""


def validate_name(raw) -> NameCheck:
    """
    Accept letters from any alphabet plus space, hyphen and apostrophe.
    Returns the trimmed, upper-cased name on success.
    """
    if not raw or not isinstance(raw, str):
        return NameCheck(False, error="Name is required")

    name = raw.strip()
    if len(name) < NAME_MIN_LEN:
        return NameCheck(False, error="Name is too short")
    if len(name) > NAME_MAX_LEN:
        return NameCheck(False, error="Name is too long")
    if not all(ch.isalpha() or ch in _NAME_PUNCTUATION for ch in name):
        return NameCheck(False, error="Name contains invalid characters. Please use letters only.")

    return NameCheck(True, value=name.upper())


def normalize_phone(raw) -> str | None:
    """Return '+<digits>' or None when fewer than 9 digits remain."""
    if not raw or not isinstance(raw, str):
        return None
    digits = _NON_DIGIT.sub("", raw)
    if len(digits) < PHONE_MIN_DIGITS:
        return None
    return "+" + digits


def normalize_full_name(name: str) -> str:
    """Allow-list key: whitespace collapsed, case folded to upper."""
    return " ".join(name.split()).upper()


def parse_name_list(text) -> list[str]:
    """One full name per line; blank lines dropped."""
    if not text or not isinstance(text, str):
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]
