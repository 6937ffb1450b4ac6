"""Result types: CrateInfo, UploadResult, ShareResult, RenderedCrate, etc."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from datetime import datetime


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class SharingInfo:
    """Sharing sub-record of a crate."""

    public: bool = False
    shared_with: list[str] = field(default_factory=list)
    password_protected: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "public": self.public,
            "sharedWith": list(self.shared_with),
            "passwordProtected": self.password_protected,
        }


@dataclass
class CrateInfo:
    """Crate metadata as shown to callers.

    Never carries the storage locator, the raw search field or the
    password hash.
    """

    id: str
    title: str
    owner_id: str
    mime_type: str
    category: str
    status: str
    size: int
    download_count: int = 0
    file_name: str = ""
    description: str | None = None
    tags: list[str] | None = None
    metadata: dict[str, str] | None = None
    created_at: datetime | None = None
    ttl_days: int | None = None
    expires_at: datetime | None = None
    shared: SharingInfo = field(default_factory=SharingInfo)
    compressed: bool = False
    original_size: int | None = None
    compression_method: str | None = None
    compression_ratio: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (camelCase keys, ISO-8601 timestamps)."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "fileName": self.file_name,
            "tags": self.tags,
            "metadata": self.metadata,
            "ownerId": self.owner_id,
            "createdAt": _iso(self.created_at),
            "ttlDays": self.ttl_days,
            "expiresAt": _iso(self.expires_at),
            "mimeType": self.mime_type,
            "category": self.category,
            "status": self.status,
            "shared": self.shared.to_dict(),
            "size": self.size,
            "downloadCount": self.download_count,
        }
        if self.compressed:
            data["compressed"] = True
            data["originalSize"] = self.original_size
            data["compressionMethod"] = self.compression_method
            data["compressionRatio"] = self.compression_ratio
        return data


@dataclass
class UploadRequest:
    """Arguments of an upload, as received from the caller."""

    file_name: str = ""
    content_type: str = "application/octet-stream"
    data: str | None = None  # base64
    ttl_days: int | None = None
    title: str | None = None
    description: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    metadata: dict[str, str] | None = None
    is_public: bool = False
    password: str | None = None


@dataclass
class UploadTicket:
    """Pre-signed upload descriptor: the caller PUTs bytes to ``upload_url``."""

    upload_url: str
    crate_id: str
    storage_path: str
    expires_in: int
    content_type: str


@dataclass
class UploadResult:
    """Result of an upload. Exactly one of ``ticket`` / ``crate`` is set."""

    success: bool
    message: str
    ticket: UploadTicket | None = None
    crate: CrateInfo | None = None

    @property
    def presigned(self) -> bool:
        return self.ticket is not None


@dataclass
class ShareResult:
    """Result of a share/unshare operation."""

    success: bool
    message: str
    crate_id: str
    share_url: str
    shared: SharingInfo = field(default_factory=SharingInfo)


@dataclass
class DeleteResult:
    """Result of a delete operation."""

    success: bool
    message: str
    crate_id: str
    blob_deleted: bool = False


RenderKind = Literal["text", "image", "link", "resource"]


@dataclass
class RenderedCrate:
    """Category-appropriate rendering of a crate.

    ``text`` carries decoded content, ``image`` carries base64 data,
    ``link`` and ``resource`` carry a time-limited URL.
    """

    kind: RenderKind
    crate: CrateInfo
    text: str | None = None
    data: str | None = None
    mime_type: str | None = None
    url: str | None = None
    expires_in: int | None = None
    degraded: bool = False

    @property
    def is_link(self) -> bool:
        return self.kind in ("link", "resource")
