from datetime import datetime
from typing import Optional, Union

import pytz


def now_utc() -> datetime:
    return datetime.now(pytz.utc)


def ensure_aware(value: datetime, timezone_name: str) -> datetime:
    """
    Returns an aware datetime.
    Naive values are assumed to be civil time in ``timezone_name``.
    """
    if value.tzinfo is not None:
        return value
    return pytz.timezone(timezone_name).localize(value)


def to_iso(value: datetime) -> str:
    """UTC ISO-8601 string, the format written to the store."""
    return value.astimezone(pytz.utc).isoformat()


def parse_ts(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parses a timestamp as returned by PostgREST (ISO string, possibly with 'Z')."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt
