"""CrateRenderer — category-appropriate retrieval of crate contents."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cratehub.events import CrateEvent, EventType
from cratehub.exceptions import CrateNotFoundError, StorageError
from cratehub.models.crates import CrateCategory

from .compression import try_decompress
from .types import RenderedCrate
from .utils import encode_base64

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cratehub.events import EventBus
    from cratehub.models.crates import CrateBase

    from .blobs import BlobStore
    from .metadata import CrateRepository
    from .types import CrateInfo

logger = logging.getLogger(__name__)

DEFAULT_LINK_EXPIRY = 300
MIN_LINK_EXPIRY = 1
MAX_LINK_EXPIRY = 86_400

LINK_ONLY_CATEGORIES = frozenset({CrateCategory.BINARY.value, CrateCategory.DATA.value})
DEFAULT_IMAGE_MIME = "image/png"


def clamp_expiry(expires_in_seconds: int | None) -> int:
    """Clamp a requested link lifetime into [1, 86400]; None means 300."""
    if expires_in_seconds is None:
        return DEFAULT_LINK_EXPIRY
    return max(MIN_LINK_EXPIRY, min(MAX_LINK_EXPIRY, int(expires_in_seconds)))


class CrateRenderer:
    """Read side of the crate store.

    Bulk categories are always served as signed links.  Images are
    returned inline as base64 and everything else as UTF-8 text; when
    the bytes cannot be fetched the rendering degrades to a link.
    """

    def __init__(
        self,
        repository: CrateRepository,
        blobs: BlobStore,
        *,
        event_bus: EventBus | None = None,
    ) -> None:
        self._repository = repository
        self._blobs = blobs
        self._event_bus = event_bus

    async def metadata(self, session: AsyncSession, crate_id: str) -> CrateInfo:
        crate = await self._require(session, crate_id)
        return self._repository.crate_to_info(crate)

    async def presigned_url(
        self,
        session: AsyncSession,
        crate_id: str,
        expires_in_seconds: int | None = None,
    ) -> RenderedCrate:
        """Signed download link for any category. Never fetches bytes."""
        crate = await self._require(session, crate_id)
        return await self._link(crate, clamp_expiry(expires_in_seconds))

    async def render(
        self,
        session: AsyncSession,
        crate_id: str,
        expires_in_seconds: int | None = None,
    ) -> RenderedCrate:
        crate = await self._require(session, crate_id)
        expires_in = clamp_expiry(expires_in_seconds)

        if crate.category in LINK_ONLY_CATEGORIES:
            return await self._link(crate, expires_in)

        data = await self._fetch(crate)

        if crate.category == CrateCategory.IMAGE.value:
            if data is None:
                return await self._link(crate, expires_in, degraded=True)
            await self._record_download(session, crate)
            mime_type = (
                crate.mime_type if crate.mime_type.startswith("image/") else DEFAULT_IMAGE_MIME
            )
            return RenderedCrate(
                kind="image",
                crate=self._repository.crate_to_info(crate),
                data=encode_base64(data),
                mime_type=mime_type,
            )

        if data is None:
            link = await self._link(crate, expires_in, degraded=True)
            link.kind = "resource"
            link.text = (
                f"Content of {crate.file_name} could not be loaded; "
                f"download it from the link (valid for {expires_in} seconds)."
            )
            return link

        await self._record_download(session, crate)
        return RenderedCrate(
            kind="text",
            crate=self._repository.crate_to_info(crate),
            text=data.decode("utf-8", errors="replace"),
            mime_type=crate.mime_type,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _require(self, session: AsyncSession, crate_id: str) -> CrateBase:
        crate = await self._repository.get_crate(session, crate_id)
        if crate is None:
            raise CrateNotFoundError(f"Crate not found: {crate_id}")
        return crate

    async def _link(
        self,
        crate: CrateBase,
        expires_in: int,
        *,
        degraded: bool = False,
    ) -> RenderedCrate:
        url = await self._blobs.signed_download_url(
            crate.storage_path,
            expires_in=expires_in,
            file_name=crate.file_name,
        )
        return RenderedCrate(
            kind="link",
            crate=self._repository.crate_to_info(crate),
            url=url,
            expires_in=expires_in,
            mime_type=crate.mime_type,
            degraded=degraded,
        )

    async def _fetch(self, crate: CrateBase) -> bytes | None:
        """Stored bytes, decompressed when flagged; None when unavailable."""
        try:
            data = await self._blobs.read(crate.storage_path)
        except StorageError:
            logger.warning("Could not fetch bytes of crate %s", crate.id, exc_info=True)
            return None
        if crate.compressed:
            data = try_decompress(data).data
        return data

    async def _record_download(self, session: AsyncSession, crate: CrateBase) -> None:
        await self._repository.increment_download_count(session, crate.id)
        if self._event_bus is not None:
            await self._event_bus.emit(
                CrateEvent(event_type=EventType.CRATE_DOWNLOADED, crate_id=crate.id)
            )
