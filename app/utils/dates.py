from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.utcnow().replace(microsecond=0)


def to_iso(value: Union[datetime, str, None]) -> Optional[str]:
    """
    Normalise a datetime (or ISO string) to the naive-UTC, second precision
    string stored in DynamoDB. Stored strings sort in chronological order.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_iso(value)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat()


def parse_iso(value: str) -> datetime:
    # fromisoformat() on older interpreters rejects a trailing "Z"
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def inclusive_end(value: datetime) -> str:
    """Exclusive upper bound that still includes the given second."""
    return to_iso(value + timedelta(seconds=1))
