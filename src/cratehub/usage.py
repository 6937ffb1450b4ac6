"""UsageService — monthly tool-call counters and storage accounting.

Quotas are advisory: the service reports counts and remaining
allowance, it never refuses a call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlmodel import select

from cratehub.dialect import increment_counter
from cratehub.models.usage import UsageCounter

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cratehub.store.metadata import CrateRepository

logger = logging.getLogger(__name__)

DEFAULT_TOOL_CALL_LIMIT = 1000
DEFAULT_STORAGE_LIMIT = 500 * 1024 * 1024  # 500MB


@dataclass(frozen=True, slots=True)
class UsageReport:
    """Tool calls this month."""

    count: int
    limit: int
    remaining: int
    year_month: str = ""

    @property
    def exceeded(self) -> bool:
        return self.count > self.limit


@dataclass(frozen=True, slots=True)
class StorageReport:
    """Bytes stored across a user's crates."""

    used: int
    limit: int
    remaining: int


def year_month(now: datetime | None = None) -> str:
    """``YYYYMM`` bucket for *now* (UTC)."""
    return (now or datetime.now(UTC)).strftime("%Y%m")


def usage_key(user_id: str, bucket: str) -> str:
    return f"{user_id}_{bucket}"


class UsageService:
    def __init__(
        self,
        repository: CrateRepository,
        *,
        tool_call_limit: int = DEFAULT_TOOL_CALL_LIMIT,
        storage_limit: int = DEFAULT_STORAGE_LIMIT,
    ) -> None:
        self._repository = repository
        self._tool_call_limit = tool_call_limit
        self._storage_limit = storage_limit

    def _report(self, count: int, bucket: str) -> UsageReport:
        return UsageReport(
            count=count,
            limit=self._tool_call_limit,
            remaining=max(0, self._tool_call_limit - count),
            year_month=bucket,
        )

    async def increment_tool_usage(
        self,
        session: AsyncSession,
        user_id: str,
        tool_name: str | None = None,
        *,
        now: datetime | None = None,
    ) -> UsageReport:
        """Atomically add one call to *user_id*'s counter for the current month."""
        now = now or datetime.now(UTC)
        bucket = year_month(now)
        key = usage_key(user_id, bucket)

        count = await increment_counter(
            session,
            UsageCounter,
            {"id": key},
            "count",
            values={
                "user_id": user_id,
                "year_month": bucket,
                "last_tool_used": tool_name,
                "updated_at": now,
            },
        )
        report = self._report(count, bucket)
        if report.exceeded:
            logger.warning(
                "User %s exceeded the monthly tool-call limit (%d/%d)",
                user_id,
                report.count,
                report.limit,
            )
        return report

    async def get_tool_usage(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        now: datetime | None = None,
    ) -> UsageReport:
        bucket = year_month(now)
        count = await session.scalar(
            select(UsageCounter.count).where(UsageCounter.id == usage_key(user_id, bucket))
        )
        return self._report(count or 0, bucket)

    async def get_storage_usage(self, session: AsyncSession, user_id: str) -> StorageReport:
        used = await self._repository.total_size_by_owner(session, user_id)
        return StorageReport(
            used=used,
            limit=self._storage_limit,
            remaining=max(0, self._storage_limit - used),
        )
