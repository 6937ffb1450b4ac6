"""Tests for CrateSearch — hybrid vector + prefix search."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

from cratehub.search._engine import SearchEngine
from cratehub.search.hybrid import CrateSearch
from cratehub.search.stores.local import LocalVectorStore
from cratehub.store.crates import CrateStore
from cratehub.store.types import UploadRequest
from conftest import FAKE_DIM, FailingProvider

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cratehub.store.blobs import LocalBlobStore
    from cratehub.store.metadata import CrateRepository


async def _upload(session: AsyncSession, store: CrateStore, title: str, **kwargs: object) -> str:
    result = await store.upload(
        session,
        UploadRequest(
            file_name="a.txt",
            content_type="text/plain",
            data=base64.b64encode(b"x").decode(),
            title=title,
            **kwargs,  # type: ignore[arg-type]
        ),
    )
    assert result.crate is not None
    return result.crate.id


class TestPrefixOnly:
    async def test_no_engine_uses_prefix(
        self,
        async_session: AsyncSession,
        repository: CrateRepository,
        crate_store: CrateStore,
    ) -> None:
        report = await _upload(async_session, crate_store, "Quarterly Report")
        await _upload(async_session, crate_store, "Holiday photos")

        results = await CrateSearch(repository).search(async_session, "Quarterly")
        assert [c.id for c in results] == [report]

    async def test_no_match(
        self,
        async_session: AsyncSession,
        repository: CrateRepository,
        crate_store: CrateStore,
    ) -> None:
        await _upload(async_session, crate_store, "Quarterly Report")
        assert await CrateSearch(repository).search(async_session, "zebra") == []

    async def test_prefix_matches_start_only(
        self,
        async_session: AsyncSession,
        repository: CrateRepository,
        crate_store: CrateStore,
    ) -> None:
        await _upload(async_session, crate_store, "Annual report")
        assert await CrateSearch(repository).search(async_session, "report") == []

    async def test_tags_in_search_field(
        self,
        async_session: AsyncSession,
        repository: CrateRepository,
        crate_store: CrateStore,
    ) -> None:
        crate_id = await _upload(
            async_session, crate_store, "Notes", description="team sync", tags=["planning"]
        )
        results = await CrateSearch(repository).search(async_session, "notes team")
        assert [c.id for c in results] == [crate_id]


class TestHybrid:
    async def test_vector_then_prefix(
        self,
        async_session: AsyncSession,
        repository: CrateRepository,
        blob_store: LocalBlobStore,
        search_engine: SearchEngine,
    ) -> None:
        store = CrateStore(repository, blob_store, search_engine=search_engine)
        semantic = await _upload(async_session, store, "budget")
        classical = await _upload(async_session, store, "budgeting guide")

        results = await CrateSearch(repository, search_engine, top_k=2).search(
            async_session, "budget"
        )
        ids = [c.id for c in results]
        assert ids[0] == semantic
        assert set(ids) == {semantic, classical}
        assert len(ids) == len(set(ids))

    async def test_failing_provider_falls_back(
        self,
        async_session: AsyncSession,
        repository: CrateRepository,
        crate_store: CrateStore,
    ) -> None:
        crate_id = await _upload(async_session, crate_store, "Roadmap")
        engine = SearchEngine(LocalVectorStore(dimension=FAKE_DIM), FailingProvider())

        results = await CrateSearch(repository, engine).search(async_session, "road")
        assert [c.id for c in results] == [crate_id]

    async def test_stale_vector_hit_skipped(
        self,
        async_session: AsyncSession,
        repository: CrateRepository,
        search_engine: SearchEngine,
    ) -> None:
        await search_engine.index_crate("ghost", "ghost crate")
        results = await CrateSearch(repository, search_engine).search(async_session, "ghost crate")
        assert results == []
