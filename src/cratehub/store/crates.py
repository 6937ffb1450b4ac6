"""CrateStore — upload, confirmation, sharing and deletion of crates.

Stateless orchestrator: receives the repository, blob store and optional
search engine at construction and an ``AsyncSession`` per call.  Methods
flush but never commit; the caller owns the transaction.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING

from cratehub.events import CrateEvent, EventType
from cratehub.exceptions import CrateNotFoundError, PermissionDeniedError, ValidationError
from cratehub.models.crates import ANONYMOUS_OWNER, CrateCategory, CrateStatus

from . import ttl
from .blobs import DEFAULT_MAX_UPLOAD_BYTES
from .classifier import base_mime, classify, coerce_category, default_extension
from .compression import COMPRESSION_METHOD, should_compress, try_compress
from .types import DeleteResult, ShareResult, SharingInfo, UploadResult, UploadTicket
from .utils import (
    build_embedding_text,
    build_search_field,
    decode_base64,
    effective_file_name,
    hash_password,
    storage_path_for,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cratehub.events import EventBus
    from cratehub.models.crates import CrateBase
    from cratehub.search._engine import SearchEngine

    from .blobs import BlobStore
    from .metadata import CrateRepository
    from .types import CrateInfo, UploadRequest

logger = logging.getLogger(__name__)

# Categories whose bytes never pass through the service
BULK_CATEGORIES = frozenset({CrateCategory.BINARY, CrateCategory.DATA})

# Content types treated as opaque binary regardless of category
BULK_CONTENT_TYPES = frozenset({
    "application/octet-stream",
    "binary/octet-stream",
    "application/x-binary",
})

DEFAULT_UPLOAD_URL_TTL = 15 * 60
DEFAULT_SHARE_BASE_URL = "https://mcph.io"


def _declares_json(content_type: str) -> bool:
    base = base_mime(content_type)
    return base == "application/json" or base.endswith("+json")


def _pretty_json(raw: bytes) -> bytes:
    """Re-serialize a JSON document with two-space indentation."""
    try:
        parsed = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Invalid JSON payload: {e}") from None
    return json.dumps(parsed, indent=2, ensure_ascii=False).encode("utf-8")


class CrateStore:
    """Core crate lifecycle: inline and pre-signed uploads, sharing, deletion."""

    def __init__(
        self,
        repository: CrateRepository,
        blobs: BlobStore,
        *,
        search_engine: SearchEngine | None = None,
        event_bus: EventBus | None = None,
        share_base_url: str = DEFAULT_SHARE_BASE_URL,
        upload_url_ttl: int = DEFAULT_UPLOAD_URL_TTL,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._repository = repository
        self._blobs = blobs
        self._search_engine = search_engine
        self._event_bus = event_bus
        self._share_base_url = share_base_url.rstrip("/")
        self._upload_url_ttl = upload_url_ttl
        self._max_upload_bytes = max_upload_bytes

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        session: AsyncSession,
        request: UploadRequest,
        caller_id: str | None = None,
    ) -> UploadResult:
        """Create a crate from *request*.

        Bulk categories (binary, data) and generic binary content types get
        a pre-signed upload ticket and a pending record; everything else is
        decoded, optionally compressed and written inline.
        """
        category_override: CrateCategory | None = None
        if request.category:
            try:
                category_override = coerce_category(request.category)
            except ValueError as e:
                raise ValidationError(str(e)) from None

        extension = default_extension(category_override, request.content_type)
        file_name = effective_file_name(request.file_name, request.title, extension)
        category = classify(file_name, request.content_type, category_override)
        owner_id = caller_id or ANONYMOUS_OWNER

        crate_id = str(uuid.uuid4())
        crate = self._repository.crate_model(
            id=crate_id,
            title=(request.title or "").strip() or file_name,
            description=request.description,
            file_name=file_name,
            tags=list(request.tags) if request.tags else None,
            user_metadata=dict(request.metadata) if request.metadata else None,
            owner_id=owner_id,
            ttl_days=ttl.normalize(request.ttl_days),
            mime_type=request.content_type,
            category=category.value,
            storage_path=storage_path_for(crate_id, file_name),
            is_public=bool(request.is_public),
            search_field=build_search_field(
                request.title or file_name,
                request.description,
                request.tags,
                request.metadata,
            ),
        )
        if request.password:
            crate.password_protected = True
            crate.password_hash = await hash_password(request.password)

        if self._is_bulk(category, request.content_type):
            return await self._upload_presigned(session, crate, request)
        return await self._upload_inline(session, crate, request)

    @staticmethod
    def _is_bulk(category: CrateCategory, content_type: str) -> bool:
        return category in BULK_CATEGORIES or base_mime(content_type) in BULK_CONTENT_TYPES

    async def _upload_presigned(
        self,
        session: AsyncSession,
        crate: CrateBase,
        request: UploadRequest,
    ) -> UploadResult:
        if request.data:
            logger.info(
                "Ignoring inline data for bulk crate %s (%s); issuing upload URL",
                crate.id,
                crate.category,
            )

        upload_url = await self._blobs.signed_upload_url(
            crate.storage_path,
            content_type=request.content_type,
            expires_in=self._upload_url_ttl,
            max_bytes=self._max_upload_bytes,
        )
        crate.size = 0
        crate.status = CrateStatus.PENDING.value
        await self._repository.save(session, crate)
        await self._index(session, crate)

        logger.info("Issued upload URL for crate %s (%s)", crate.id, crate.file_name)
        await self._emit(
            EventType.CRATE_UPLOADED, crate.id, crate.owner_id, presigned=True
        )
        return UploadResult(
            success=True,
            message=(
                f"Upload URL issued for {crate.file_name}. PUT the bytes to the URL "
                f"within {self._upload_url_ttl} seconds, then confirm the upload."
            ),
            ticket=UploadTicket(
                upload_url=upload_url,
                crate_id=crate.id,
                storage_path=crate.storage_path,
                expires_in=self._upload_url_ttl,
                content_type=request.content_type,
            ),
        )

    async def _upload_inline(
        self,
        session: AsyncSession,
        crate: CrateBase,
        request: UploadRequest,
    ) -> UploadResult:
        if request.data is None:
            raise ValidationError("missing data for direct upload")
        try:
            payload = decode_base64(request.data)
        except ValueError as e:
            raise ValidationError(str(e)) from None

        if _declares_json(request.content_type):
            payload = _pretty_json(payload)

        blob_metadata: dict[str, str] = {}
        if should_compress(request.content_type, crate.file_name):
            outcome = try_compress(payload)
            stats = outcome.stats
            if outcome.error is not None:
                logger.warning(
                    "Compression failed for crate %s, storing uncompressed: %s",
                    crate.id,
                    outcome.error,
                )
            elif stats is not None and stats.compressed_size > stats.original_size:
                # Keep originalSize >= size for every compressed crate
                logger.debug(
                    "Skipping compression for crate %s: %d -> %d bytes",
                    crate.id,
                    stats.original_size,
                    stats.compressed_size,
                )
            elif stats is not None:
                payload = outcome.data
                crate.compressed = True
                crate.original_size = stats.original_size
                crate.compression_method = COMPRESSION_METHOD
                crate.compression_ratio = stats.ratio
                blob_metadata = {
                    "compressed": "true",
                    "originalSize": str(stats.original_size),
                    "compressionMethod": COMPRESSION_METHOD,
                }
                logger.info(
                    "Compressed crate %s: %d -> %d bytes (%.1f%% saved)",
                    crate.id,
                    stats.original_size,
                    stats.compressed_size,
                    stats.ratio,
                )

        await self._blobs.write(
            crate.storage_path,
            payload,
            content_type=request.content_type,
            metadata=blob_metadata,
        )
        crate.size = len(payload)
        crate.status = CrateStatus.COMPLETE.value
        await self._repository.save(session, crate)
        await self._index(session, crate)

        logger.info("Uploaded crate %s (%s, %d bytes)", crate.id, crate.category, crate.size)
        await self._emit(EventType.CRATE_UPLOADED, crate.id, crate.owner_id, size=crate.size)
        return UploadResult(
            success=True,
            message=f"Uploaded {crate.file_name} as {crate.category} crate {crate.id}",
            crate=self._repository.crate_to_info(crate),
        )

    async def _index(self, session: AsyncSession, crate: CrateBase) -> None:
        """Embed the crate's descriptive text; failures only cost discoverability."""
        if self._search_engine is None or self._search_engine.embedding_provider is None:
            return
        text = build_embedding_text(
            crate.title, crate.description, crate.tags, crate.user_metadata
        )
        if not text:
            return
        try:
            await self._search_engine.index_crate(crate.id, text)
        except Exception:
            logger.warning("Failed to index crate %s", crate.id, exc_info=True)
            return
        crate.embedding_model = self._search_engine.model_name
        await self._repository.save(session, crate)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def confirm_upload(
        self,
        session: AsyncSession,
        crate_id: str,
        caller_id: str | None = None,
    ) -> CrateInfo:
        """Mark a pending crate complete once its bytes are in the blob store."""
        crate = await self._get_owned(session, crate_id, caller_id)
        if crate.status == CrateStatus.COMPLETE.value:
            return self._repository.crate_to_info(crate)

        info = await self._blobs.stat(crate.storage_path)
        if info is None:
            raise ValidationError(
                f"No bytes have been uploaded for crate {crate_id} yet; "
                "PUT the file to the upload URL before confirming"
            )
        crate.size = info.size
        crate.status = CrateStatus.COMPLETE.value
        await self._repository.save(session, crate)

        logger.info("Confirmed upload of crate %s (%d bytes)", crate_id, info.size)
        await self._emit(EventType.CRATE_CONFIRMED, crate_id, caller_id, size=info.size)
        return self._repository.crate_to_info(crate)

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    def share_url(self, crate_id: str) -> str:
        return f"{self._share_base_url}/crate/{crate_id}"

    async def share(
        self,
        session: AsyncSession,
        crate_id: str,
        caller_id: str | None = None,
        *,
        public: bool | None = None,
        shared_with: list[str] | None = None,
        password_protected: bool | None = None,
        password: str | None = None,
    ) -> ShareResult:
        """Partially update the sharing record. Omitted fields keep their value."""
        crate = await self._get_owned(session, crate_id, caller_id)

        if public is not None:
            crate.is_public = public
        if shared_with is not None:
            crate.shared_with = sorted(set(shared_with))
        if password is not None:
            crate.password_hash = await hash_password(password)
            crate.password_protected = True
        if password_protected is not None:
            crate.password_protected = password_protected
            if not password_protected:
                crate.password_hash = None
        await self._repository.save(session, crate)

        sharing = self._sharing(crate)
        await self._emit(
            EventType.CRATE_SHARED, crate_id, caller_id, **sharing.to_dict()
        )
        state = "public" if crate.is_public else "private"
        url = self.share_url(crate_id)
        return ShareResult(
            success=True,
            message=f"Crate {crate_id} is now {state}. Shareable link: {url}",
            crate_id=crate_id,
            share_url=url,
            shared=sharing,
        )

    async def unshare(
        self,
        session: AsyncSession,
        crate_id: str,
        caller_id: str | None = None,
    ) -> ShareResult:
        """Reset the sharing record to private, empty and unprotected."""
        crate = await self._get_owned(session, crate_id, caller_id)
        crate.is_public = False
        crate.shared_with = None
        crate.password_protected = False
        crate.password_hash = None
        await self._repository.save(session, crate)

        await self._emit(EventType.CRATE_UNSHARED, crate_id, caller_id)
        return ShareResult(
            success=True,
            message=f"Crate {crate_id} is now private",
            crate_id=crate_id,
            share_url=self.share_url(crate_id),
            shared=SharingInfo(),
        )

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete(
        self,
        session: AsyncSession,
        crate_id: str,
        caller_id: str | None = None,
    ) -> DeleteResult:
        """Delete blob, then metadata, then the search index entry."""
        crate = await self._get_owned(session, crate_id, caller_id)

        blob_deleted = await self._blobs.delete(crate.storage_path)
        if not blob_deleted:
            logger.info("Blob for crate %s was already gone", crate_id)

        await self._repository.delete(session, crate)

        if self._search_engine is not None:
            try:
                await self._search_engine.remove(crate_id)
            except Exception:
                logger.warning(
                    "Failed to remove crate %s from search index", crate_id, exc_info=True
                )

        logger.info("Deleted crate %s", crate_id)
        await self._emit(EventType.CRATE_DELETED, crate_id, caller_id, blob_deleted=blob_deleted)
        return DeleteResult(
            success=True,
            message=f"Deleted crate {crate_id}",
            crate_id=crate_id,
            blob_deleted=blob_deleted,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _get_owned(
        self,
        session: AsyncSession,
        crate_id: str,
        caller_id: str | None,
    ) -> CrateBase:
        """Load a crate the caller may modify. Anonymous callers own anonymous crates."""
        crate = await self._repository.get_crate(session, crate_id)
        if crate is None:
            raise CrateNotFoundError(f"Crate not found: {crate_id}")
        if crate.owner_id != (caller_id or ANONYMOUS_OWNER):
            raise PermissionDeniedError(
                f"Crate {crate_id} belongs to another user"
            )
        return crate

    @staticmethod
    def _sharing(crate: CrateBase) -> SharingInfo:
        return SharingInfo(
            public=crate.is_public,
            shared_with=list(crate.shared_with or []),
            password_protected=crate.password_protected,
        )

    async def _emit(
        self,
        event_type: EventType,
        crate_id: str,
        user_id: str | None,
        **details: object,
    ) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.emit(
            CrateEvent(event_type=event_type, crate_id=crate_id, user_id=user_id, details=details)
        )
