# shared/time.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

# --- Internal override for testing ---
_current_time_override: Optional[datetime] = None

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# === Time Access ===

def utcnow() -> datetime:
    return _current_time_override or datetime.now(timezone.utc)


def set_fake_utcnow(fake_time: datetime) -> None:
    global _current_time_override
    _current_time_override = fake_time


def clear_fake_utcnow() -> None:
    global _current_time_override
    _current_time_override = None


def now_ms() -> int:
    return epoch_ms(utcnow())


# === Time Parsing ===

def parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 string. Supports trailing 'Z'. Returns a datetime; no timezone normalization here."""
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def ensure_aware_utc(dt: datetime) -> datetime:
    """Normalize any datetime to aware UTC (naive => assume UTC)."""
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_seconds(seconds: Any, nanos: Any = 0) -> datetime:
    return EPOCH + timedelta(seconds=float(seconds or 0), microseconds=(nanos or 0) / 1000)


def to_utc(value: Any) -> datetime:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    Accepts datetimes (Firestore's DatetimeWithNanoseconds included), objects
    with to_datetime(), {seconds, nanoseconds} mappings or objects, epoch
    milliseconds and ISO-8601 strings. Anything else maps to EPOCH so it sorts
    first.
    """
    if value is None:
        return EPOCH
    if isinstance(value, datetime):
        return ensure_aware_utc(value)
    if isinstance(value, bool):
        return EPOCH
    if isinstance(value, (int, float)):
        return EPOCH + timedelta(milliseconds=value)
    if isinstance(value, str):
        try:
            return ensure_aware_utc(parse_datetime(value))
        except ValueError:
            logger.warning("Unparseable timestamp %r, using epoch", value)
            return EPOCH
    to_dt = getattr(value, "to_datetime", None)
    if callable(to_dt):
        return ensure_aware_utc(to_dt())
    if isinstance(value, Mapping):
        if "seconds" in value:
            return _from_seconds(value.get("seconds"), value.get("nanoseconds"))
        return EPOCH
    if hasattr(value, "seconds"):
        return _from_seconds(getattr(value, "seconds"), getattr(value, "nanoseconds", 0))
    logger.warning("Unsupported timestamp type %s, using epoch", type(value).__name__)
    return EPOCH


def epoch_ms(value: Any) -> int:
    """Milliseconds since epoch for any value `to_utc` understands."""
    return int((to_utc(value) - EPOCH) / timedelta(milliseconds=1))
