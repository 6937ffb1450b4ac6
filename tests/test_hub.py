"""End-to-end tests for CrateHub."""

from __future__ import annotations

import asyncio
import base64
import json
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from cratehub import CrateHub, Settings
from cratehub.exceptions import CrateNotFoundError, PermissionDeniedError
from cratehub.search._engine import SearchEngine
from cratehub.search.stores.local import LocalVectorStore
from cratehub.store.blobs import LocalBlobStore
from cratehub.store.types import UploadRequest

from conftest import FAKE_DIM, SIGNING_KEY, FakeProvider

if TYPE_CHECKING:
    from pathlib import Path


def _text_request(name: str = "a.txt", body: str = "hello", **kwargs: object) -> UploadRequest:
    return UploadRequest(
        file_name=name,
        content_type="text/plain",
        data=base64.b64encode(body.encode()).decode(),
        **kwargs,  # type: ignore[arg-type]
    )


# ==================================================================
# Crate lifecycle
# ==================================================================


class TestLifecycle:
    async def test_json_round_trip_pretty_printed(self, hub: CrateHub) -> None:
        result = await hub.upload(
            UploadRequest(
                file_name="data.json",
                content_type="application/json",
                data=base64.b64encode(b'{"k":[1,2,3]}').decode(),
            )
        )
        assert result.crate is not None

        rendered = await hub.get(result.crate.id)
        assert rendered.kind == "text"
        assert rendered.text == json.dumps({"k": [1, 2, 3]}, indent=2)

    async def test_changes_are_committed(self, hub: CrateHub) -> None:
        result = await hub.upload(_text_request())
        assert result.crate is not None
        meta = await hub.get_metadata(result.crate.id)
        assert meta.title == "a.txt"
        assert meta.status == "complete"

    async def test_get_by_link(self, hub: CrateHub) -> None:
        result = await hub.upload(_text_request())
        assert result.crate is not None
        link = await hub.get_by_link(result.crate.id, 30)
        assert link.kind == "link"
        assert link.expires_in == 30

        blobs = hub.blobs
        assert isinstance(blobs, LocalBlobStore)
        assert link.url is not None
        assert await blobs.read_signed(link.url)

    async def test_download_count_persists(self, hub: CrateHub) -> None:
        result = await hub.upload(_text_request())
        assert result.crate is not None
        await hub.get(result.crate.id)
        await hub.get(result.crate.id)
        await hub.get_by_link(result.crate.id)
        assert (await hub.get_metadata(result.crate.id)).download_count == 2

    async def test_presigned_flow(self, hub: CrateHub) -> None:
        result = await hub.upload(
            UploadRequest(file_name="dump.bin", content_type="application/octet-stream"),
            caller_id="alice",
        )
        ticket = result.ticket
        assert ticket is not None
        assert (await hub.get_metadata(ticket.crate_id)).status == "pending"

        blobs = hub.blobs
        assert isinstance(blobs, LocalBlobStore)
        await blobs.accept_signed_upload(ticket.upload_url, b"x" * 10)

        with pytest.raises(PermissionDeniedError):
            await hub.confirm_upload(ticket.crate_id, "bob")
        info = await hub.confirm_upload(ticket.crate_id, "alice")
        assert info.size == 10
        assert info.status == "complete"

    async def test_delete(self, hub: CrateHub) -> None:
        result = await hub.upload(_text_request())
        assert result.crate is not None
        await hub.delete(result.crate.id)
        with pytest.raises(CrateNotFoundError):
            await hub.get_metadata(result.crate.id)


# ==================================================================
# Listing and search
# ==================================================================


class TestListAndSearch:
    async def test_list_newest_first(self, hub: CrateHub) -> None:
        first = await hub.upload(_text_request("one.txt"))
        second = await hub.upload(_text_request("two.txt"))
        assert first.crate is not None and second.crate is not None

        listed = await hub.list_crates()
        assert [c.id for c in listed] == [second.crate.id, first.crate.id]

    async def test_list_window(self, hub: CrateHub) -> None:
        await hub.upload(_text_request())
        later = datetime.now(UTC) + timedelta(days=31)
        assert await hub.list_crates(now=later) == []

    async def test_search_semantic_and_prefix(self, hub: CrateHub) -> None:
        result = await hub.upload(_text_request(title="Release checklist"))
        assert result.crate is not None

        found = await hub.search("release")
        assert [c.id for c in found] == [result.crate.id]


# ==================================================================
# Vector index persistence
# ==================================================================


def _indexed_hub(tmp_path: Path, index_dir: Path | None) -> CrateHub:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'restart.db'}")
    blobs = LocalBlobStore(tmp_path / "restart-blobs", signing_key=SIGNING_KEY)
    search_engine = SearchEngine(LocalVectorStore(dimension=FAKE_DIM), FakeProvider())
    return CrateHub(
        engine,
        blobs,
        search_engine=search_engine,
        vector_index_dir=index_dir,
        owns_engine=True,
    )


class TestVectorIndexPersistence:
    async def test_index_survives_restart(self, tmp_path: Path) -> None:
        index_dir = tmp_path / "index"
        async with _indexed_hub(tmp_path, index_dir) as first:
            result = await first.upload(_text_request(title="Quarterly revenue"))
            assert result.crate is not None
            crate_id = result.crate.id
        assert index_dir.is_dir()

        async with _indexed_hub(tmp_path, index_dir) as second:
            engine = second.search_engine
            assert engine is not None
            hits = await engine.search("Quarterly revenue", k=1)
            assert [h.crate_id for h in hits] == [crate_id]

    async def test_index_lost_without_directory(self, tmp_path: Path) -> None:
        async with _indexed_hub(tmp_path, None) as first:
            await first.upload(_text_request(title="Quarterly revenue"))

        async with _indexed_hub(tmp_path, None) as second:
            engine = second.search_engine
            assert engine is not None
            assert await engine.search("Quarterly revenue", k=1) == []

    async def test_deleted_crate_stays_out_after_restart(self, tmp_path: Path) -> None:
        index_dir = tmp_path / "index"
        async with _indexed_hub(tmp_path, index_dir) as first:
            result = await first.upload(_text_request(title="Short lived"))
            assert result.crate is not None
            await first.delete(result.crate.id)

        async with _indexed_hub(tmp_path, index_dir) as second:
            engine = second.search_engine
            assert engine is not None
            assert await engine.search("Short lived", k=1) == []


# ==================================================================
# Usage and API keys
# ==================================================================


class TestUsageAndKeys:
    async def test_usage_report(self, hub: CrateHub) -> None:
        await hub.upload(_text_request(body="x" * 10), caller_id="alice")
        await hub.record_tool_call("alice", "crates_upload")

        tools, storage = await hub.usage("alice")
        assert tools.count == 1
        assert storage.used > 0
        assert storage.remaining == storage.limit - storage.used

    async def test_concurrent_first_calls_both_count(self, hub: CrateHub) -> None:
        await asyncio.gather(
            hub.record_tool_call("carol", "crates_list"),
            hub.record_tool_call("carol", "crates_get"),
        )
        tools, _ = await hub.usage("carol")
        assert tools.count == 2

    async def test_api_key_lifecycle(self, hub: CrateHub) -> None:
        raw, record = await hub.create_api_key("alice", "ci")
        caller = await hub.resolve_caller(raw)
        assert caller is not None
        assert caller.user_id == "alice"

        assert [k.id for k in await hub.list_api_keys("alice")] == [record.id]
        assert await hub.delete_api_key("alice", record.id)
        assert await hub.resolve_caller(raw) is None
        assert await hub.resolve_caller(None) is None


# ==================================================================
# Construction from settings
# ==================================================================


class TestFromSettings:
    async def test_builds_without_search(self, tmp_path: Path) -> None:
        settings = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'cfg.db'}",
            blob_root=str(tmp_path / "blobs"),
            signing_key=SIGNING_KEY,
            openai_api_key="",
        )
        async with CrateHub.from_settings(settings) as hub:
            assert hub.search_engine is None
            result = await hub.upload(_text_request(title="Plain"))
            assert result.crate is not None
            assert [c.id for c in await hub.search("plain")] == [result.crate.id]

    async def test_close_is_idempotent(self, tmp_path: Path) -> None:
        settings = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'cfg.db'}",
            blob_root=str(tmp_path / "blobs"),
        )
        hub = CrateHub.from_settings(settings)
        await hub.open()
        await hub.close()
        await hub.close()
