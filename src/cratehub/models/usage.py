"""Usage, metrics and event-log models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlmodel import Field, SQLModel


class UsageCounter(SQLModel, table=True):
    """Monthly tool-call counter for one caller.

    The primary key is ``"{user_id}_{YYYYMM}"`` so each month gets a fresh row.
    """

    __tablename__ = "cratehub_usage"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    year_month: str = Field(default="")
    count: int = Field(default=0)
    last_tool_used: str | None = Field(default=None)
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class CrateEventRecord(SQLModel, table=True):
    """Persisted crate event (uploads, downloads, deletions, sharing changes)."""

    __tablename__ = "cratehub_events"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    event_type: str = Field(index=True)
    crate_id: str = Field(index=True)
    user_id: str | None = Field(default=None)
    details: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class MetricCounter(SQLModel, table=True):
    """Service-wide counter, kept as a running total plus one row per UTC day.

    ``period`` is ``"total"`` or a ``YYYY-MM-DD`` date.
    """

    __tablename__ = "cratehub_metrics"

    metric: str = Field(primary_key=True)
    period: str = Field(primary_key=True)
    value: int = Field(default=0)
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
