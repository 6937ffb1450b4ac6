"""Dialect-aware SQL helpers — atomic counter upserts."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from cratehub.exceptions import DependencyError

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


def get_dialect(bind: Engine | Connection | AsyncEngine) -> str:
    """Return ``'sqlite'``, ``'postgresql'`` or the raw dialect name."""
    # AsyncEngine wraps a sync engine
    sync_bind = getattr(bind, "sync_engine", bind)
    name = sync_bind.dialect.name
    if name in ("postgresql", "postgres"):
        return "postgresql"
    return name


async def increment_counter(
    session: AsyncSession,
    model: type,
    keys: dict[str, Any],
    column: str,
    *,
    amount: int = 1,
    values: dict[str, Any] | None = None,
) -> int:
    """Add *amount* to ``model.column`` for the row identified by *keys*.

    Runs a single ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent first
    increments cannot both insert.  *values* are written on insert and
    overwrite the stored ones on conflict.  Returns the new counter value.
    """
    dialect = get_dialect(session.get_bind())
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        msg = f"Counters require SQLite or PostgreSQL, not {dialect!r}"
        raise DependencyError(msg)

    extra = values or {}
    counter = model.__table__.c[column]  # type: ignore[attr-defined]
    stmt = (
        insert(model)
        .values(**keys, **extra, **{column: amount})
        .on_conflict_do_update(
            index_elements=list(keys),
            set_={column: counter + amount, **extra},
        )
        .returning(counter)
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())
