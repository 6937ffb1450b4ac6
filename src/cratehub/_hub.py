"""CrateHub — async facade wiring database, blob store, search and services."""

from __future__ import annotations

import contextvars
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import select

from cratehub.auth import ApiKeyService
from cratehub.events import EventBus
from cratehub.models.api_keys import ApiKey
from cratehub.models.crates import Crate
from cratehub.metrics import MetricsService
from cratehub.models.usage import CrateEventRecord, MetricCounter, UsageCounter
from cratehub.search._engine import SearchEngine
from cratehub.search.hybrid import CrateSearch
from cratehub.store.blobs import LocalBlobStore
from cratehub.store.crates import CrateStore
from cratehub.store.metadata import CrateRepository
from cratehub.store.rendering import CrateRenderer
from cratehub.usage import UsageService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

    from cratehub.auth import Caller
    from cratehub.config import Settings
    from cratehub.events import CrateEvent
    from cratehub.models.crates import CrateBase
    from cratehub.store.blobs import BlobStore
    from cratehub.store.types import (
        CrateInfo,
        DeleteResult,
        RenderedCrate,
        ShareResult,
        UploadRequest,
        UploadResult,
    )
    from cratehub.usage import StorageReport, UsageReport

logger = logging.getLogger(__name__)

# Session of the hub call currently running, so event records join its transaction
_current_session: contextvars.ContextVar[AsyncSession | None] = contextvars.ContextVar(
    "cratehub_current_session", default=None
)


class CrateHub:
    """Async facade over the crate store, renderer, search and accounting.

    Every public method runs in its own session: committed on success,
    rolled back on error::

        engine = create_async_engine("sqlite+aiosqlite:///cratehub.db")
        hub = CrateHub(engine, LocalBlobStore("./blobs", signing_key="..."))
        await hub.open()
        result = await hub.upload(UploadRequest(file_name="a.md", ...))
        await hub.close()

    Or build everything from environment configuration with
    :meth:`from_settings`.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        blobs: BlobStore,
        *,
        search_engine: SearchEngine | None = None,
        crate_model: type[CrateBase] | None = None,
        share_base_url: str = "https://mcph.io",
        upload_url_ttl: int = 15 * 60,
        max_upload_bytes: int = 100 * 1024 * 1024,
        search_top_k: int = 5,
        list_window_days: int = 30,
        list_limit: int = 100,
        tool_call_limit: int = 1000,
        storage_limit: int = 500 * 1024 * 1024,
        record_events: bool = True,
        record_metrics: bool = True,
        vector_index_dir: str | Path | None = None,
        owns_engine: bool = False,
    ) -> None:
        self._engine = engine
        self._vector_index_dir = Path(vector_index_dir) if vector_index_dir else None
        self._owns_engine = owns_engine
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._crate_model = crate_model or Crate
        self._list_window_days = list_window_days
        self._list_limit = list_limit
        self._closed = False

        self._event_bus = EventBus()
        self._blobs = blobs
        self._search_engine = search_engine
        self._repository = CrateRepository(self._crate_model)
        self._store = CrateStore(
            self._repository,
            blobs,
            search_engine=search_engine,
            event_bus=self._event_bus,
            share_base_url=share_base_url,
            upload_url_ttl=upload_url_ttl,
            max_upload_bytes=max_upload_bytes,
        )
        self._renderer = CrateRenderer(self._repository, blobs, event_bus=self._event_bus)
        self._search = CrateSearch(self._repository, search_engine, top_k=search_top_k)
        self._usage = UsageService(
            self._repository,
            tool_call_limit=tool_call_limit,
            storage_limit=storage_limit,
        )
        self._api_keys = ApiKeyService()
        self._metrics = MetricsService()

        if record_events:
            self._event_bus.register_all(self._on_crate_event)
        if record_metrics:
            self._event_bus.register_all(self._count_crate_event)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CrateHub:
        """Build a hub (engine, blob store, optional OpenAI search) from settings."""
        from cratehub.config import Settings

        settings = settings or Settings()
        engine = create_async_engine(settings.database_url, echo=settings.database_echo)
        blobs = LocalBlobStore(
            settings.blob_root,
            base_url=settings.public_base_url,
            signing_key=settings.signing_key or None,
        )

        search_engine: SearchEngine | None = None
        if settings.openai_api_key:
            from cratehub.search.providers.openai import OpenAIEmbedding
            from cratehub.search.stores.local import LocalVectorStore

            search_engine = SearchEngine(
                LocalVectorStore(dimension=settings.embedding_dimensions),
                OpenAIEmbedding.from_settings(settings),
            )
        else:
            logger.debug("No OpenAI API key configured; semantic search disabled")

        return cls(
            engine,
            blobs,
            search_engine=search_engine,
            share_base_url=settings.share_base_url,
            upload_url_ttl=settings.upload_url_ttl_seconds,
            max_upload_bytes=settings.max_upload_bytes,
            search_top_k=settings.search_top_k,
            list_window_days=settings.list_window_days,
            list_limit=settings.list_limit,
            tool_call_limit=settings.tool_call_limit,
            storage_limit=settings.storage_limit_bytes,
            vector_index_dir=settings.vector_index_dir or None,
            owns_engine=True,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the cratehub tables and load the saved vector index."""
        crate_model = self._crate_model
        async with self._engine.begin() as conn:
            for model in (crate_model, ApiKey, UsageCounter, CrateEventRecord, MetricCounter):
                await conn.run_sync(
                    lambda c, m=model: m.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                )
        if self._search_engine is not None:
            await self._search_engine.connect()
            self._load_vector_index(self._search_engine)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._search_engine is not None:
            self._save_vector_index(self._search_engine)
            try:
                await self._search_engine.close()
            except Exception:
                logger.warning("Search engine close failed", exc_info=True)
        if self._owns_engine:
            await self._engine.dispose()

    def _load_vector_index(self, search_engine: SearchEngine) -> None:
        index_dir = self._vector_index_dir
        if index_dir is None or not index_dir.is_dir():
            return
        try:
            search_engine.load(str(index_dir))
        except Exception:
            logger.warning("Failed to load vector index from %s", index_dir, exc_info=True)

    def _save_vector_index(self, search_engine: SearchEngine) -> None:
        if self._vector_index_dir is None:
            return
        try:
            search_engine.save(str(self._vector_index_dir))
        except Exception:
            logger.warning(
                "Failed to save vector index to %s", self._vector_index_dir, exc_info=True
            )

    async def __aenter__(self) -> CrateHub:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session = self._session_factory()
        token = _current_session.set(session)
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            _current_session.reset(token)
            await session.close()

    # ------------------------------------------------------------------
    # Event log
    # ------------------------------------------------------------------

    async def _on_crate_event(self, event: CrateEvent) -> None:
        record = CrateEventRecord(
            event_type=event.event_type.value,
            crate_id=event.crate_id,
            user_id=event.user_id,
            details=dict(event.details),
        )
        async with self._event_session() as session:
            session.add(record)

    async def _count_crate_event(self, event: CrateEvent) -> None:
        async with self._event_session() as session:
            await self._metrics.record_event(session, event)

    @asynccontextmanager
    async def _event_session(self) -> AsyncIterator[AsyncSession]:
        """The running hub call's session, or a fresh one outside a hub call."""
        session = _current_session.get()
        if session is not None:
            yield session
            return
        async with self._session() as own:
            yield own

    async def list_events(self, crate_id: str | None = None) -> list[CrateEventRecord]:
        """Recorded crate events, oldest first."""
        async with self._session() as session:
            query = select(CrateEventRecord).order_by(CrateEventRecord.created_at)  # type: ignore[arg-type]
            if crate_id is not None:
                query = query.where(CrateEventRecord.crate_id == crate_id)
            result = await session.execute(query)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Crates
    # ------------------------------------------------------------------

    async def list_crates(self, *, now: datetime | None = None) -> list[CrateInfo]:
        """Crates created within the listing window, newest first."""
        since = CrateRepository.window_start(now, self._list_window_days)
        async with self._session() as session:
            crates = await self._repository.list_recent(
                session, since=since, limit=self._list_limit
            )
            return [self._repository.crate_to_info(c) for c in crates]

    async def get(
        self, crate_id: str, expires_in_seconds: int | None = None
    ) -> RenderedCrate:
        async with self._session() as session:
            return await self._renderer.render(session, crate_id, expires_in_seconds)

    async def get_by_link(
        self, crate_id: str, expires_in_seconds: int | None = None
    ) -> RenderedCrate:
        async with self._session() as session:
            return await self._renderer.presigned_url(session, crate_id, expires_in_seconds)

    async def get_metadata(self, crate_id: str) -> CrateInfo:
        async with self._session() as session:
            return await self._renderer.metadata(session, crate_id)

    async def search(self, query: str) -> list[CrateInfo]:
        async with self._session() as session:
            return await self._search.search(session, query)

    async def upload(
        self, request: UploadRequest, caller_id: str | None = None
    ) -> UploadResult:
        async with self._session() as session:
            return await self._store.upload(session, request, caller_id)

    async def confirm_upload(self, crate_id: str, caller_id: str | None = None) -> CrateInfo:
        async with self._session() as session:
            return await self._store.confirm_upload(session, crate_id, caller_id)

    async def share(
        self,
        crate_id: str,
        caller_id: str | None = None,
        *,
        public: bool | None = None,
        shared_with: list[str] | None = None,
        password_protected: bool | None = None,
        password: str | None = None,
    ) -> ShareResult:
        async with self._session() as session:
            return await self._store.share(
                session,
                crate_id,
                caller_id,
                public=public,
                shared_with=shared_with,
                password_protected=password_protected,
                password=password,
            )

    async def unshare(self, crate_id: str, caller_id: str | None = None) -> ShareResult:
        async with self._session() as session:
            return await self._store.unshare(session, crate_id, caller_id)

    async def delete(self, crate_id: str, caller_id: str | None = None) -> DeleteResult:
        async with self._session() as session:
            return await self._store.delete(session, crate_id, caller_id)

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def record_tool_call(self, user_id: str, tool_name: str | None = None) -> UsageReport:
        async with self._session() as session:
            return await self._usage.increment_tool_usage(session, user_id, tool_name)

    async def usage(self, user_id: str) -> tuple[UsageReport, StorageReport]:
        async with self._session() as session:
            tools = await self._usage.get_tool_usage(session, user_id)
            storage = await self._usage.get_storage_usage(session, user_id)
            return tools, storage

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def increment_metric(self, metric: str, amount: int = 1) -> int:
        async with self._session() as session:
            return await self._metrics.increment(session, metric, amount)

    async def get_metric(self, metric: str) -> int:
        async with self._session() as session:
            return await self._metrics.get_metric(session, metric)

    async def get_daily_metrics(
        self, metric: str, days: int = 30, *, now: datetime | None = None
    ) -> dict[str, int]:
        async with self._session() as session:
            return await self._metrics.get_daily_metrics(session, metric, days, now=now)

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------

    async def resolve_caller(self, api_key: str | None) -> Caller | None:
        if not api_key:
            return None
        async with self._session() as session:
            return await self._api_keys.resolve_caller(session, api_key)

    async def create_api_key(self, user_id: str, name: str | None = None) -> tuple[str, ApiKey]:
        async with self._session() as session:
            return await self._api_keys.create_api_key(session, user_id, name)

    async def list_api_keys(self, user_id: str) -> list[ApiKey]:
        async with self._session() as session:
            return await self._api_keys.list_api_keys(session, user_id)

    async def delete_api_key(self, user_id: str, key_id: str) -> bool:
        async with self._session() as session:
            return await self._api_keys.delete_api_key(session, user_id, key_id)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def blobs(self) -> BlobStore:
        return self._blobs

    @property
    def search_engine(self) -> SearchEngine | None:
        return self._search_engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine
