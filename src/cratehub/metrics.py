"""MetricsService — service-wide counters with daily breakdowns.

Every counter is kept twice: a running total and a per-day row, both
bumped in one transaction.  Crate events feed the ``events:<type>``
counters and downloads also feed ``downloads``.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlmodel import select

from cratehub.dialect import increment_counter
from cratehub.events import EventType
from cratehub.models.usage import MetricCounter

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cratehub.events import CrateEvent

TOTAL_PERIOD = "total"
DOWNLOADS_METRIC = "downloads"
DEFAULT_DAILY_WINDOW = 30


def day_bucket(now: datetime | None = None) -> str:
    """``YYYY-MM-DD`` bucket for *now* (UTC)."""
    return (now or datetime.now(UTC)).strftime("%Y-%m-%d")


def event_metric(event_type: EventType | str) -> str:
    value = event_type.value if isinstance(event_type, EventType) else event_type
    return f"events:{value}"


class MetricsService:
    async def increment(
        self,
        session: AsyncSession,
        metric: str,
        amount: int = 1,
        *,
        now: datetime | None = None,
    ) -> int:
        """Add *amount* to *metric*'s total and today's row. Returns the new total."""
        now = now or datetime.now(UTC)
        total = await increment_counter(
            session,
            MetricCounter,
            {"metric": metric, "period": TOTAL_PERIOD},
            "value",
            amount=amount,
            values={"updated_at": now},
        )
        await increment_counter(
            session,
            MetricCounter,
            {"metric": metric, "period": day_bucket(now)},
            "value",
            amount=amount,
            values={"updated_at": now},
        )
        return total

    async def get_metric(self, session: AsyncSession, metric: str) -> int:
        value = await session.scalar(
            select(MetricCounter.value).where(
                MetricCounter.metric == metric,
                MetricCounter.period == TOTAL_PERIOD,
            )
        )
        return value or 0

    async def get_daily_metrics(
        self,
        session: AsyncSession,
        metric: str,
        days: int = DEFAULT_DAILY_WINDOW,
        *,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """Per-day values for the last *days* days, newest first; missing days are 0."""
        now = now or datetime.now(UTC)
        buckets = [day_bucket(now - timedelta(days=i)) for i in range(max(days, 0))]
        if not buckets:
            return {}
        result = await session.execute(
            select(MetricCounter.period, MetricCounter.value).where(
                MetricCounter.metric == metric,
                MetricCounter.period.in_(buckets),  # type: ignore[attr-defined]
            )
        )
        stored = {period: value for period, value in result.all()}
        return {bucket: stored.get(bucket, 0) for bucket in buckets}

    async def record_event(self, session: AsyncSession, event: CrateEvent) -> None:
        """Count *event* under ``events:<type>``, plus ``downloads`` for downloads."""
        await self.increment(session, event_metric(event.event_type))
        if event.event_type is EventType.CRATE_DOWNLOADED:
            await self.increment(session, DOWNLOADS_METRIC)
