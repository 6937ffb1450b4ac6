"""cratehub: crate storage, sharing and search behind a JSON-RPC tool surface.

Upload text, images and bulk data as crates, render them back in the
shape that suits their category, and find them again by prefix or meaning.
"""

__version__ = "0.1.0"

from cratehub._hub import CrateHub
from cratehub.auth import ApiKeyService, Caller, parse_bearer
from cratehub.config import Settings
from cratehub.events import CrateEvent, EventBus, EventType
from cratehub.exceptions import (
    CrateHubError,
    CrateNotFoundError,
    DependencyError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from cratehub.metrics import MetricsService
from cratehub.models import (
    ANONYMOUS_OWNER,
    ApiKey,
    Crate,
    CrateBase,
    CrateCategory,
    CrateEventRecord,
    CrateStatus,
    MetricCounter,
    UsageCounter,
)
from cratehub.search import (
    CrateSearch,
    EmbeddingProvider,
    LocalVectorStore,
    SearchEngine,
    SearchHit,
    VectorStore,
)
from cratehub.store import (
    BlobStore,
    CrateInfo,
    CrateRenderer,
    CrateRepository,
    CrateStore,
    DeleteResult,
    LocalBlobStore,
    RenderedCrate,
    ShareResult,
    SharingInfo,
    UploadRequest,
    UploadResult,
    UploadTicket,
)
from cratehub.tools import ToolRouter, handle_raw
from cratehub.usage import StorageReport, UsageReport, UsageService

__all__ = [
    "ANONYMOUS_OWNER",
    "ApiKey",
    "ApiKeyService",
    "BlobStore",
    "Caller",
    "Crate",
    "CrateBase",
    "CrateCategory",
    "CrateEvent",
    "CrateEventRecord",
    "CrateHub",
    "CrateHubError",
    "CrateInfo",
    "CrateNotFoundError",
    "CrateRenderer",
    "CrateRepository",
    "CrateSearch",
    "CrateStatus",
    "CrateStore",
    "DeleteResult",
    "DependencyError",
    "EmbeddingProvider",
    "EventBus",
    "EventType",
    "LocalBlobStore",
    "LocalVectorStore",
    "MetricCounter",
    "MetricsService",
    "PermissionDeniedError",
    "RenderedCrate",
    "SearchEngine",
    "SearchHit",
    "Settings",
    "ShareResult",
    "SharingInfo",
    "StorageError",
    "StorageReport",
    "ToolRouter",
    "UploadRequest",
    "UploadResult",
    "UploadTicket",
    "UsageCounter",
    "UsageReport",
    "UsageService",
    "ValidationError",
    "VectorStore",
    "handle_raw",
    "parse_bearer",
]
