import math
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Postgres/ISO timestamp into an aware UTC datetime; None if unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip().replace("Z", "+00:00")
        if " " in text and "T" not in text:
            text = text.replace(" ", "T", 1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (built-in round() is banker's rounding)."""
    return int(math.floor(value + 0.5))


def percentage(part: float, whole: float) -> int:
    if not whole:
        return 0
    return round_half_up(part / whole * 100)


def average(values) -> float:
    """Mean rounded half-up to one decimal, 0 for no values."""
    values = list(values)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values) * 10) / 10
