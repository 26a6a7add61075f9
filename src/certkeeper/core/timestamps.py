"""RFC 3339 timestamp helpers matching Kubernetes ``metav1.Time``.

Kubernetes serialises timestamps at second precision with a ``Z``
suffix (``2026-01-02T03:04:05Z``).
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_rfc3339(value: datetime) -> str:
    """Format *value* as a second-precision RFC 3339 UTC string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str | datetime | None) -> datetime | None:
    """Parse an RFC 3339 string into an aware UTC datetime.

    ``None`` and empty strings yield ``None``.  Naive datetimes are
    assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def truncate_to_seconds(value: datetime) -> datetime:
    """Drop sub-second precision, as a round trip through the API would."""
    return value.replace(microsecond=0)
