"""CrateSearch — hybrid semantic + prefix search over crates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from cratehub.models.crates import CrateBase
    from cratehub.search._engine import SearchEngine
    from cratehub.store.metadata import CrateRepository
    from cratehub.store.types import CrateInfo

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


class CrateSearch:
    """Runs a vector query and a classical prefix query, then merges them.

    The vector half is optional: without an engine, or when embedding
    or the index fails, it contributes no results.  Results are merged
    into a mapping keyed by crate id, vector hits first; classical hits
    overwrite vector hits with the same id, so the merged order is the
    vector order followed by classical-only matches.
    """

    def __init__(
        self,
        repository: CrateRepository,
        engine: SearchEngine | None = None,
        *,
        top_k: int = DEFAULT_TOP_K,
    ) -> None:
        self._repository = repository
        self._engine = engine
        self._top_k = top_k

    async def search(self, session: AsyncSession, query: str) -> list[CrateInfo]:
        merged: dict[str, CrateBase] = {}

        for crate in await self._vector_matches(session, query):
            merged[crate.id] = crate

        for crate in await self._repository.prefix_search(
            session, query.lower(), self._top_k
        ):
            merged[crate.id] = crate

        return [self._repository.crate_to_info(c) for c in merged.values()]

    async def _vector_matches(self, session: AsyncSession, query: str) -> list[CrateBase]:
        if self._engine is None or self._engine.embedding_provider is None:
            logger.debug("No search engine configured, skipping vector search")
            return []
        if not query.strip():
            return []
        try:
            hits = await self._engine.search(query, k=self._top_k)
        except Exception:
            logger.warning("Vector search failed for %r", query, exc_info=True)
            return []
        return await self._repository.get_many(session, [h.crate_id for h in hits])
