"""Tests for LocalBlobStore — disk-backed objects and signed URLs."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlsplit

import jwt
import pytest

from cratehub.exceptions import DependencyError, StorageError
from cratehub.store.blobs import BlobStore, LocalBlobStore

if TYPE_CHECKING:
    from pathlib import Path


SIGNING_KEY = "blob-signing-key-for-tests-0123456789"


@pytest.fixture
def store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(
        tmp_path / "blobs",
        base_url="http://blobs.test/b",
        signing_key=SIGNING_KEY,
    )


# ==================================================================
# Object operations
# ==================================================================


class TestObjects:
    def test_satisfies_protocol(self, store: LocalBlobStore) -> None:
        assert isinstance(store, BlobStore)

    async def test_write_read(self, store: LocalBlobStore) -> None:
        await store.write("uploads/a/x.txt", b"hello", content_type="text/plain")
        assert await store.read("uploads/a/x.txt") == b"hello"
        assert await store.exists("uploads/a/x.txt")

    async def test_stat_includes_sidecar(self, store: LocalBlobStore) -> None:
        await store.write(
            "uploads/a/x.txt", b"12345", content_type="text/plain", metadata={"compressed": "true"}
        )
        info = await store.stat("uploads/a/x.txt")
        assert info is not None
        assert info.size == 5
        assert info.content_type == "text/plain"
        assert info.metadata == {"compressed": "true"}

    async def test_stat_missing(self, store: LocalBlobStore) -> None:
        assert await store.stat("uploads/none") is None

    async def test_read_missing_raises(self, store: LocalBlobStore) -> None:
        with pytest.raises(StorageError, match="not found"):
            await store.read("uploads/missing.txt")

    async def test_delete(self, store: LocalBlobStore) -> None:
        await store.write("uploads/a/x.txt", b"x")
        assert await store.delete("uploads/a/x.txt") is True
        assert not await store.exists("uploads/a/x.txt")

    async def test_delete_missing_returns_false(self, store: LocalBlobStore) -> None:
        assert await store.delete("uploads/a/none.txt") is False

    async def test_traversal_rejected(self, store: LocalBlobStore) -> None:
        with pytest.raises(StorageError, match="traversal"):
            await store.write("../escape.txt", b"x")

    async def test_empty_path_rejected(self, store: LocalBlobStore) -> None:
        with pytest.raises(StorageError):
            await store.read("")


# ==================================================================
# Signed URLs
# ==================================================================


class TestSignedUrls:
    async def test_download_url_round_trip(self, store: LocalBlobStore) -> None:
        await store.write("uploads/a/my file.txt", b"content")
        url = await store.signed_download_url(
            "uploads/a/my file.txt", expires_in=60, file_name="my file.txt"
        )
        assert url.startswith("http://blobs.test/b/uploads/a/")
        assert await store.read_signed(url) == b"content"

    async def test_expired_url_rejected(self, tmp_path: Path) -> None:
        # Issued two minutes ago with a one minute lifetime
        store = LocalBlobStore(
            tmp_path / "blobs",
            base_url="http://blobs.test/b",
            signing_key=SIGNING_KEY,
            clock=lambda: time.time() - 120,
        )
        await store.write("uploads/a/x", b"x")
        url = await store.signed_download_url("uploads/a/x", expires_in=60)
        with pytest.raises(PermissionError, match="expired"):
            await store.read_signed(url)

    async def test_token_claims(self, store: LocalBlobStore) -> None:
        url = await store.signed_upload_url(
            "uploads/c/data.bin", content_type="text/csv", expires_in=900, max_bytes=10
        )
        token = parse_qs(urlsplit(url).query)["token"][0]
        claims = jwt.decode(token, SIGNING_KEY, algorithms=["HS256"])
        assert claims["op"] == "write"
        assert claims["path"] == "uploads/c/data.bin"
        assert claims["max_bytes"] == 10
        assert claims["exp"] - claims["iat"] == 900

    async def test_foreign_key_rejected(self, store: LocalBlobStore, tmp_path: Path) -> None:
        other = LocalBlobStore(
            tmp_path / "other",
            base_url="http://blobs.test/b",
            signing_key="a-different-signing-key-0123456789",
        )
        await store.write("uploads/a/x", b"x")
        url = await other.signed_download_url("uploads/a/x", expires_in=60)
        with pytest.raises(PermissionError, match="signature"):
            await store.read_signed(url)

    async def test_tampered_url_rejected(self, store: LocalBlobStore) -> None:
        await store.write("uploads/a/x", b"x")
        await store.write("uploads/b/y", b"y")
        url = await store.signed_download_url("uploads/a/x", expires_in=60)
        with pytest.raises(PermissionError, match="signature"):
            await store.read_signed(url.replace("uploads/a/x", "uploads/b/y"))

    async def test_upload_url_accepts_put(self, store: LocalBlobStore) -> None:
        url = await store.signed_upload_url(
            "uploads/c/data.bin", content_type="application/octet-stream", expires_in=900
        )
        info = await store.accept_signed_upload(url, b"\x00\x01\x02")
        assert info.size == 3
        assert await store.read("uploads/c/data.bin") == b"\x00\x01\x02"

    async def test_upload_url_enforces_size(self, store: LocalBlobStore) -> None:
        url = await store.signed_upload_url(
            "uploads/c/data.bin",
            content_type="application/octet-stream",
            expires_in=900,
            max_bytes=2,
        )
        with pytest.raises(PermissionError, match="exceeds"):
            await store.accept_signed_upload(url, b"abc")

    async def test_upload_url_enforces_content_type(self, store: LocalBlobStore) -> None:
        url = await store.signed_upload_url(
            "uploads/c/data.bin", content_type="application/octet-stream", expires_in=900
        )
        with pytest.raises(PermissionError, match="Content type"):
            await store.accept_signed_upload(url, b"a", content_type="text/plain")

    async def test_download_url_cannot_upload(self, store: LocalBlobStore) -> None:
        url = await store.signed_download_url("uploads/c/data.bin", expires_in=60)
        with pytest.raises(PermissionError, match="not issued"):
            await store.accept_signed_upload(url, b"a")

    async def test_missing_signing_key(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path / "nokey")
        with pytest.raises(DependencyError, match="CRATEHUB_SIGNING_KEY"):
            await store.signed_download_url("uploads/a/x", expires_in=60)
