"""Crate storage — policies, blob store, repository, lifecycle and rendering."""

from cratehub.store.blobs import BlobInfo, BlobStore, LocalBlobStore
from cratehub.store.crates import CrateStore
from cratehub.store.metadata import CrateRepository
from cratehub.store.rendering import CrateRenderer, clamp_expiry
from cratehub.store.types import (
    CrateInfo,
    DeleteResult,
    RenderedCrate,
    ShareResult,
    SharingInfo,
    UploadRequest,
    UploadResult,
    UploadTicket,
)

__all__ = [
    "BlobInfo",
    "BlobStore",
    "CrateInfo",
    "CrateRenderer",
    "CrateRepository",
    "CrateStore",
    "DeleteResult",
    "LocalBlobStore",
    "RenderedCrate",
    "ShareResult",
    "SharingInfo",
    "UploadRequest",
    "UploadResult",
    "UploadTicket",
    "clamp_expiry",
]
