"""
Input sanitization helpers applied before values reach the database
"""

import re
import unicodedata
from typing import Any, Optional

from app.config.learning_config import EVALUATION_LEVELS

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")
_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_]")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

MAX_DB_STRING_LENGTH = 10000


def sanitize_string(value: Any, max_length: int = 1000) -> str:
    if value is None:
        return ""
    text = unicodedata.normalize("NFKC", str(value))
    text = _CONTROL_CHARS.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return text[:max_length]


def sanitize_email(value: Any) -> str:
    if not value or not isinstance(value, str):
        return ""
    return sanitize_string(value.lower().strip(), 254)


def sanitize_username(value: Any) -> str:
    return sanitize_string(value, 32).lower()


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(value: Any) -> Optional[str]:
    """ilike pattern matching the sanitized value anywhere; None for an empty search."""
    term = sanitize_string(value, 100)
    if not term:
        return None
    return f"%{escape_like(term)}%"


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


def sanitize_level(value: Any) -> Optional[str]:
    level = sanitize_string(value, 10)
    return level if level in EVALUATION_LEVELS else None


def sanitize_for_database(value: Any) -> Any:
    """Recursively clean strings and dict keys of a JSON-like payload before storing it."""
    if value is None:
        return None
    if isinstance(value, str):
        return sanitize_string(value, MAX_DB_STRING_LENGTH)
    if isinstance(value, (list, tuple)):
        return [sanitize_for_database(item) for item in value]
    if isinstance(value, dict):
        return {_UNSAFE_KEY_CHARS.sub("_", str(key)): sanitize_for_database(item) for key, item in value.items()}
    return value
