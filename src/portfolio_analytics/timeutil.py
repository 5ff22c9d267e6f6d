"""
Time helpers shared by the recorder, the ingestion boundary and the
aggregation engine.

Everything is normalized to timezone-aware UTC datetimes. Stored records
may carry timestamps in several shapes (epoch milliseconds from the browser,
RFC 3339 strings from the REST API, ``{seconds, nanos}`` maps exported from
the document store), so ``coerce_datetime`` accepts all of them and returns
None rather than raising on anything it cannot read.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

# Anything above this is treated as epoch milliseconds rather than seconds
_EPOCH_MS_THRESHOLD = 10_000_000_000

# RFC 3339 with optional fraction of arbitrary precision
_FRACTION_RE = re.compile(r"\.(\d+)")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to integer epoch milliseconds."""
    return int(value.timestamp() * 1000)


def _from_epoch(number: float) -> datetime | None:
    if number > _EPOCH_MS_THRESHOLD:
        number = number / 1000
    try:
        return datetime.fromtimestamp(number, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_iso(text: str) -> datetime | None:
    text = text.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat only accepts up to microsecond precision on older Pythons
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def coerce_datetime(value: Any) -> datetime | None:
    """
    Best-effort conversion of a stored timestamp into an aware UTC datetime.

    Accepts datetimes, dates, epoch numbers (seconds or milliseconds),
    ISO 8601 / RFC 3339 strings and document-store timestamp maps.
    Returns None for anything unrecognized.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return _from_epoch(float(stripped))
        return _parse_iso(stripped)
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanos", value.get("_nanoseconds", 0)) or 0
        if isinstance(seconds, (int, float, str)) and not isinstance(seconds, bool):
            try:
                total = float(seconds) + float(nanos) / 1_000_000_000
            except ValueError:
                return None
            try:
                return datetime.fromtimestamp(total, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return None
    return None


def date_bucket(value: datetime) -> str:
    """Calendar-day bucket (UTC, YYYY-MM-DD) for a timestamp."""
    return value.astimezone(timezone.utc).date().isoformat()


def window_cutoff(days: int, now: datetime | None = None) -> datetime:
    """Start of a trailing window of ``days`` days ending at ``now``."""
    return (now or utcnow()) - timedelta(days=days)


def normalize_value(value: Any) -> Any:
    """
    Recursively convert timestamps into ISO 8601 strings.

    Used before handing raw record fields to JSON serialization, so values
    decoded from the document store never leak as native objects.
    """
    if isinstance(value, datetime):
        return coerce_datetime(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        keys = set(value)
        if keys == {"seconds", "nanos"} or keys == {"_seconds", "_nanoseconds"}:
            parsed = coerce_datetime(value)
            if parsed is not None:
                return parsed.isoformat()
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    return value
