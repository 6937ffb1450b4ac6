"""TTL policy — allowed retention periods and expiration arithmetic.

Expiration is advisory metadata: nothing in cratehub deletes a crate when
it expires.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

TTL_OPTIONS: tuple[int, ...] = (1, 7, 30)
DEFAULT_TTL_DAYS = 30
MAX_TTL_DAYS = 30

MS_PER_DAY = 24 * 60 * 60 * 1000


def normalize(requested_days: int | None) -> int:
    """Map *requested_days* onto an allowed option, substituting the default."""
    if (
        isinstance(requested_days, int)
        and not isinstance(requested_days, bool)
        and requested_days in TTL_OPTIONS
        and requested_days <= MAX_TTL_DAYS
    ):
        return requested_days
    return DEFAULT_TTL_DAYS


def expiration_timestamp(base_timestamp_ms: int, days: int | None) -> int:
    """Absolute expiry in epoch milliseconds; invalid *days* use the default."""
    return base_timestamp_ms + normalize(days) * MS_PER_DAY


def expires_at(created_at: datetime, ttl_days: int | None) -> datetime | None:
    """Expiry as a timezone-aware datetime, or None when no TTL was recorded."""
    if ttl_days is None:
        return None
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    return created_at + timedelta(days=ttl_days)
