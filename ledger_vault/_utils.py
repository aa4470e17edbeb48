import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("ledger-vault")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def epoch_ms_to_datetime(value) -> Optional[datetime]:
    """Parse an epoch-milliseconds value (int or numeric string)."""
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def file_safe_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with ':' and '.' replaced, safe for file names.

    Example: 2026-01-05T07-30-00-123456Z
    """
    moment = ensure_aware(moment or utc_now()).astimezone(timezone.utc)
    stamp = moment.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return re.sub(r"[:.]", "-", stamp)


def truncate(text: str, limit: int = 200) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
