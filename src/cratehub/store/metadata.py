"""CrateRepository — crate record lookup, queries and info conversion."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, update
from sqlmodel import select

from . import ttl
from .types import CrateInfo, SharingInfo

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cratehub.models.crates import CrateBase

# Upper bound of a prefix range: sorts after every other BMP character
PREFIX_SENTINEL = "\uf8ff"


def _aware(value: datetime) -> datetime:
    """SQLite drops tzinfo on read; reattach UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class CrateRepository:
    """Stateless data access for crate records.

    Receives the concrete crate model at construction so callers can
    use custom SQLModel subclasses with different table names.
    """

    def __init__(self, crate_model: type[CrateBase]) -> None:
        self._crate_model = crate_model

    @property
    def crate_model(self) -> type[CrateBase]:
        return self._crate_model

    async def get_crate(self, session: AsyncSession, crate_id: str) -> CrateBase | None:
        """Point read by id."""
        return await session.get(self._crate_model, crate_id)

    async def save(self, session: AsyncSession, crate: CrateBase) -> CrateBase:
        """Insert or update *crate*. Flushes but does not commit."""
        session.add(crate)
        await session.flush()
        return crate

    async def delete(self, session: AsyncSession, crate: CrateBase) -> None:
        await session.delete(crate)
        await session.flush()

    async def increment_download_count(self, session: AsyncSession, crate_id: str) -> None:
        """Atomic ``download_count = download_count + 1``."""
        model = self._crate_model
        await session.execute(
            update(model)
            .where(model.id == crate_id)  # type: ignore[arg-type]
            .values(download_count=model.download_count + 1)
        )
        await session.flush()

    async def list_recent(
        self,
        session: AsyncSession,
        *,
        since: datetime,
        limit: int,
    ) -> list[CrateBase]:
        """Crates created at or after *since*, newest first."""
        model = self._crate_model
        result = await session.execute(
            select(model)
            .where(model.created_at >= since)
            .order_by(model.created_at.desc())  # type: ignore[union-attr]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def prefix_search(
        self,
        session: AsyncSession,
        prefix: str,
        limit: int,
    ) -> list[CrateBase]:
        """Crates whose ``search_field`` starts with *prefix*.

        Runs as a range query (``>= prefix`` and ``<= prefix + sentinel``)
        so it can use the index on ``search_field``.
        """
        model = self._crate_model
        result = await session.execute(
            select(model)
            .where(
                model.search_field >= prefix,
                model.search_field <= prefix + PREFIX_SENTINEL,
            )
            .order_by(model.search_field)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_many(self, session: AsyncSession, crate_ids: list[str]) -> list[CrateBase]:
        """Fetch several crates; the result preserves *crate_ids* order, skipping misses."""
        if not crate_ids:
            return []
        model = self._crate_model
        result = await session.execute(
            select(model).where(model.id.in_(crate_ids))  # type: ignore[union-attr]
        )
        by_id = {c.id: c for c in result.scalars().all()}
        return [by_id[cid] for cid in crate_ids if cid in by_id]

    async def total_size_by_owner(self, session: AsyncSession, owner_id: str) -> int:
        """Sum of stored sizes of *owner_id*'s crates."""
        model = self._crate_model
        result = await session.execute(
            select(func.coalesce(func.sum(model.size), 0)).where(model.owner_id == owner_id)
        )
        return int(result.scalar_one())

    @staticmethod
    def window_start(now: datetime | None, days: int) -> datetime:
        """Start of a listing window ending at *now*."""
        return (now or datetime.now(UTC)) - timedelta(days=days)

    @staticmethod
    def crate_to_info(c: CrateBase) -> CrateInfo:
        """Convert a crate record to CrateInfo."""
        created_at = _aware(c.created_at) if c.created_at is not None else None
        return CrateInfo(
            id=c.id,
            title=c.title,
            owner_id=c.owner_id,
            mime_type=c.mime_type,
            category=c.category,
            status=c.status,
            size=c.size,
            download_count=c.download_count,
            file_name=c.file_name,
            description=c.description,
            tags=list(c.tags) if c.tags is not None else None,
            metadata=dict(c.user_metadata) if c.user_metadata is not None else None,
            created_at=created_at,
            ttl_days=c.ttl_days,
            expires_at=(
                ttl.expires_at(created_at, c.ttl_days) if created_at is not None else None
            ),
            shared=SharingInfo(
                public=c.is_public,
                shared_with=list(c.shared_with or []),
                password_protected=c.password_protected,
            ),
            compressed=c.compressed,
            original_size=c.original_size,
            compression_method=c.compression_method,
            compression_ratio=c.compression_ratio,
        )
