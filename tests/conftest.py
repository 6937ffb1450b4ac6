"""Shared fixtures for cratehub tests."""

from __future__ import annotations

import hashlib
import math
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from cratehub._hub import CrateHub
from cratehub.events import EventBus
from cratehub.models.crates import Crate
from cratehub.search._engine import SearchEngine
from cratehub.search.stores.local import LocalVectorStore
from cratehub.store.blobs import LocalBlobStore
from cratehub.store.crates import CrateStore
from cratehub.store.metadata import CrateRepository
from cratehub.store.rendering import CrateRenderer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

FAKE_DIM = 32
SIGNING_KEY = "test-signing-key-0123456789abcdef0123"
BLOB_BASE_URL = "http://blobs.test/b"


class FakeProvider:
    """Deterministic sync embedding provider: sha256 of the text as a unit vector."""

    def embed(self, text: str) -> list[float]:
        return self._hash_to_vector(text)

    @property
    def dimensions(self) -> int:
        return FAKE_DIM

    @property
    def model_name(self) -> str:
        return "fake"

    @staticmethod
    def _hash_to_vector(text: str) -> list[float]:
        h = hashlib.sha256(text.encode()).digest()
        raw = [float(b) for b in h]
        norm = math.sqrt(sum(x * x for x in raw))
        return [x / norm for x in raw]


class FailingProvider(FakeProvider):
    """Provider whose every call raises, for degraded-path tests."""

    def embed(self, text: str) -> list[float]:
        raise RuntimeError("embedding service unavailable")

    @property
    def model_name(self) -> str:
        return "failing"


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session bound to the in-memory engine."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs", base_url=BLOB_BASE_URL, signing_key=SIGNING_KEY)


@pytest.fixture
def repository() -> CrateRepository:
    return CrateRepository(Crate)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def search_engine() -> SearchEngine:
    """LocalVectorStore (dot product) + deterministic fake provider."""
    return SearchEngine(LocalVectorStore(dimension=FAKE_DIM), FakeProvider())


@pytest.fixture
def crate_store(
    repository: CrateRepository,
    blob_store: LocalBlobStore,
    event_bus: EventBus,
) -> CrateStore:
    """Crate store without semantic indexing."""
    return CrateStore(repository, blob_store, event_bus=event_bus)


@pytest.fixture
def renderer(
    repository: CrateRepository,
    blob_store: LocalBlobStore,
    event_bus: EventBus,
) -> CrateRenderer:
    return CrateRenderer(repository, blob_store, event_bus=event_bus)


@pytest.fixture
async def hub(
    tmp_path: Path,
    blob_store: LocalBlobStore,
    search_engine: SearchEngine,
) -> AsyncIterator[CrateHub]:
    """Fully wired hub on a file-backed SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'hub.db'}")
    h = CrateHub(engine, blob_store, search_engine=search_engine, owns_engine=True)
    await h.open()
    yield h
    await h.close()
