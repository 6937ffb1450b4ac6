"""Crate model — one metadata record per stored artifact.

Provides ``CrateBase`` (non-table) and ``Crate`` (concrete table).
Subclass ``CrateBase`` with ``table=True`` and a custom ``__tablename__``
to use a different table name per deployment.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import JSON, DateTime
from sqlmodel import Field, SQLModel

ANONYMOUS_OWNER = "anonymous"
"""Owner id recorded when no caller identity was resolved."""


class CrateCategory(str, Enum):
    """Semantic content classification, drives storage and rendering."""

    IMAGE = "image"
    CODE = "code"
    MARKDOWN = "markdown"
    JSON = "json"
    DATA = "data"
    BINARY = "binary"
    TODOLIST = "todolist"
    DIAGRAM = "diagram"


class CrateStatus(str, Enum):
    """Upload state of a crate's bytes."""

    PENDING = "pending"
    COMPLETE = "complete"


class CrateBase(SQLModel):
    """Base fields for a crate record. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    title: str = Field(default="")
    description: str | None = Field(default=None)
    file_name: str = Field(default="")
    tags: list[str] | None = Field(default=None, sa_type=JSON)
    user_metadata: dict[str, str] | None = Field(default=None, sa_type=JSON)
    owner_id: str = Field(default=ANONYMOUS_OWNER, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
        index=True,
    )
    ttl_days: int | None = Field(default=None)
    mime_type: str = Field(default="application/octet-stream")
    category: str = Field(default=CrateCategory.BINARY.value)
    storage_path: str = Field(default="")
    status: str = Field(default=CrateStatus.COMPLETE.value)

    # Sharing sub-record
    is_public: bool = Field(default=False)
    shared_with: list[str] | None = Field(default=None, sa_type=JSON)
    password_protected: bool = Field(default=False)
    password_hash: str | None = Field(default=None)

    search_field: str = Field(default="", index=True)
    size: int = Field(default=0)
    download_count: int = Field(default=0)
    embedding_model: str | None = Field(default=None)

    # Present only when compression was applied
    compressed: bool = Field(default=False)
    original_size: int | None = Field(default=None)
    compression_method: str | None = Field(default=None)
    compression_ratio: float | None = Field(default=None)


class Crate(CrateBase, table=True):
    """Default crate table — ``cratehub_crates``."""

    __tablename__ = "cratehub_crates"
