from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def dig(d: Any, *path: Any, default: Any = None) -> Any:
    """Walk nested dicts/lists, e.g. dig(event, "data", "object", "lines", "data", 0)"""
    current = d
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, (list, tuple)) or len(current) <= key:
                return default
            current = current[key]
        else:
            if not hasattr(current, "get"):
                return default
            current = current.get(key)
        if current is None:
            return default
    return current


def from_unix(ts: Optional[int]) -> Optional[datetime]:
    """Stripe epoch seconds to naive UTC datetime"""
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)


def cents_to_amount(cents: Optional[int]) -> Decimal:
    return (Decimal(int(cents or 0)) / Decimal(100)).quantize(Decimal("0.01"))


def ref_id(value: Any) -> Optional[str]:
    """Stripe references arrive either as an id string or an expanded object"""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def parse_uuid(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        return None


def from_iso(value: Any) -> Optional[datetime]:
    """ISO-8601 string to naive UTC datetime, None when absent or unparseable"""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
