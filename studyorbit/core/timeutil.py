"""
Lenient timestamp helpers.

Persisted items carry ISO-8601 strings written by other tools. Parsing must
never raise: anything unreadable comes back as None and callers decide how to
fail safe (usually "treat as already due").
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def parse_timestamp(value: object) -> datetime | None:
    """
    Parse an ISO-8601 string (or datetime) into an aware datetime.

    Naive values are assumed to be UTC. Returns None for empty,
    malformed or non-string input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_iso(moment: datetime) -> str:
    """Serialize an aware datetime as ISO-8601 UTC with a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ensure_aware(moment: datetime | None) -> datetime:
    """Return `moment` as an aware datetime, defaulting to now."""
    if moment is None:
        return utcnow()
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return int(ensure_aware(moment).timestamp() * 1000)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from `start` to `end`."""
    return (end - start).total_seconds() / 3600.0


def days_between(start: datetime, end: datetime) -> float:
    """Signed number of days from `start` to `end`."""
    return (end - start).total_seconds() / 86400.0
