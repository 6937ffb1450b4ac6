"""Blob store protocol and LocalBlobStore — bytes on disk behind signed URLs."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from cratehub.exceptions import DependencyError, StorageError

if TYPE_CHECKING:
    from collections.abc import Callable

_META_SUFFIX = ".meta.json"

DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024  # 100MB
SIGNING_ALGORITHM = "HS256"


@dataclass
class BlobInfo:
    """Stored object metadata."""

    path: str
    size: int
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class BlobStore(Protocol):
    """Async protocol for the object store that holds crate bytes."""

    async def write(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Write *data* at *path*, replacing any existing object."""
        ...

    async def read(self, path: str) -> bytes:
        """Return the bytes at *path*. Raises ``StorageError`` if missing."""
        ...

    async def exists(self, path: str) -> bool:
        """Return whether an object exists at *path*."""
        ...

    async def delete(self, path: str) -> bool:
        """Delete the object at *path*. Returns False if it was already gone."""
        ...

    async def stat(self, path: str) -> BlobInfo | None:
        """Return object metadata, or None if missing."""
        ...

    async def signed_upload_url(
        self,
        path: str,
        *,
        content_type: str,
        expires_in: int,
        max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> str:
        """Return a time-limited URL that accepts a PUT of the object's bytes."""
        ...

    async def signed_download_url(
        self,
        path: str,
        *,
        expires_in: int,
        file_name: str | None = None,
    ) -> str:
        """Return a time-limited URL that serves the object's bytes."""
        ...


class LocalBlobStore:
    """Blob store backed by a directory on the local filesystem.

    Signed URLs carry an HS256 JWT holding the operation, object path,
    expiry and upload constraints, verifiable with the same *signing_key*.
    Any HTTP layer can serve them via :meth:`accept_signed_upload` and
    :meth:`read_signed`.

    Security: _resolve() ensures all paths stay within root_dir.
    """

    def __init__(
        self,
        root_dir: Path | str,
        *,
        base_url: str = "http://localhost:8080/blobs",
        signing_key: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root_dir = Path(root_dir).resolve()
        self.base_url = base_url.rstrip("/")
        self._signing_key = signing_key or None
        self._clock = clock
        self.root_dir.mkdir(parents=True, exist_ok=True)

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def _resolve(self, path: str) -> Path:
        """Resolve an object path to a physical path inside root_dir."""
        rel = path.lstrip("/")
        if not rel or "\x00" in rel:
            raise StorageError(f"Invalid object path: {path!r}")
        resolved = (self.root_dir / rel).resolve()
        try:
            resolved.relative_to(self.root_dir)
        except ValueError:
            raise StorageError(
                f"Path traversal detected: {path} resolves outside blob root"
            ) from None
        return resolved

    @staticmethod
    def _meta_path(physical: Path) -> Path:
        return physical.with_name(physical.name + _META_SUFFIX)

    # =========================================================================
    # Object Operations
    # =========================================================================

    async def write(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        physical = self._resolve(path)
        sidecar = {"content_type": content_type, "metadata": metadata or {}}

        def _write() -> None:
            physical.parent.mkdir(parents=True, exist_ok=True)
            physical.write_bytes(data)
            self._meta_path(physical).write_text(json.dumps(sidecar), "utf-8")

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    async def read(self, path: str) -> bytes:
        physical = self._resolve(path)
        try:
            return await asyncio.to_thread(physical.read_bytes)
        except FileNotFoundError:
            raise StorageError(f"Object not found in storage: {path}") from None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    async def exists(self, path: str) -> bool:
        physical = self._resolve(path)
        return await asyncio.to_thread(physical.is_file)

    async def delete(self, path: str) -> bool:
        physical = self._resolve(path)

        def _delete() -> bool:
            if not physical.is_file():
                return False
            physical.unlink()
            self._meta_path(physical).unlink(missing_ok=True)
            return True

        try:
            return await asyncio.to_thread(_delete)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    async def stat(self, path: str) -> BlobInfo | None:
        physical = self._resolve(path)

        def _stat() -> BlobInfo | None:
            if not physical.is_file():
                return None
            info = BlobInfo(path=path, size=physical.stat().st_size)
            meta_file = self._meta_path(physical)
            if meta_file.is_file():
                sidecar = json.loads(meta_file.read_text("utf-8"))
                info.content_type = sidecar.get("content_type")
                info.metadata = dict(sidecar.get("metadata") or {})
            return info

        return await asyncio.to_thread(_stat)

    # =========================================================================
    # Signed URLs
    # =========================================================================

    def _require_key(self) -> str:
        if self._signing_key is None:
            raise DependencyError(
                "Cannot sign URLs: no signing key configured. "
                "Set CRATEHUB_SIGNING_KEY (or pass signing_key= to LocalBlobStore) "
                "to a long random secret shared with the service that serves blob URLs."
            )
        return self._signing_key

    def _build_url(self, path: str, claims: dict[str, Any], expires_in: int) -> str:
        issued = datetime.fromtimestamp(self._clock(), UTC)
        token = jwt.encode(
            {**claims, "path": path, "iat": issued, "exp": issued + timedelta(seconds=expires_in)},
            self._require_key(),
            algorithm=SIGNING_ALGORITHM,
        )
        return f"{self.base_url}/{quote(path)}?{urlencode({'token': token})}"

    async def signed_upload_url(
        self,
        path: str,
        *,
        content_type: str,
        expires_in: int,
        max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> str:
        self._resolve(path)
        claims = {"op": "write", "content_type": content_type, "max_bytes": max_bytes}
        return self._build_url(path, claims, expires_in)

    async def signed_download_url(
        self,
        path: str,
        *,
        expires_in: int,
        file_name: str | None = None,
    ) -> str:
        self._resolve(path)
        claims: dict[str, Any] = {"op": "read"}
        if file_name:
            claims["disposition"] = f'attachment; filename="{quote(file_name)}"'
        return self._build_url(path, claims, expires_in)

    def verify(self, url: str, op: str) -> tuple[str, dict[str, Any]]:
        """Check a signed URL and return ``(object_path, claims)``.

        Raises ``PermissionError`` when the token is invalid or expired, names
        another object, or was issued for a different operation.
        """
        parts = urlsplit(url)
        prefix = urlsplit(self.base_url).path.rstrip("/") + "/"
        if not parts.path.startswith(prefix):
            raise PermissionError("URL does not belong to this blob store")
        path = unquote(parts.path[len(prefix):])
        token = parse_qs(parts.query).get("token", [""])[0]
        try:
            claims = jwt.decode(token, self._require_key(), algorithms=[SIGNING_ALGORITHM])
        except ExpiredSignatureError:
            raise PermissionError("URL has expired") from None
        except InvalidTokenError:
            raise PermissionError("Invalid URL signature") from None
        if claims.get("path") != path:
            raise PermissionError("Invalid URL signature for this object")
        if claims.get("op") != op:
            raise PermissionError(f"URL was not issued for {op}")
        return path, claims

    async def accept_signed_upload(
        self,
        url: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> BlobInfo:
        """Store *data* PUT to a signed upload URL."""
        path, claims = self.verify(url, "write")
        if len(data) > int(claims["max_bytes"]):
            raise PermissionError(
                f"Upload of {len(data)} bytes exceeds limit of {claims['max_bytes']}"
            )
        if content_type is not None and content_type != claims["content_type"]:
            raise PermissionError("Content type does not match the signed URL")
        await self.write(path, data, content_type=claims["content_type"])
        return BlobInfo(path=path, size=len(data), content_type=claims["content_type"])

    async def read_signed(self, url: str) -> bytes:
        """Return the bytes behind a signed download URL."""
        path, _ = self.verify(url, "read")
        return await self.read(path)
