"""SearchEngine — orchestrator wiring EmbeddingProvider + VectorStore."""

from __future__ import annotations

import hashlib
import inspect
import logging
from typing import TYPE_CHECKING

from cratehub.search.types import SearchHit, VectorEntry

if TYPE_CHECKING:
    from cratehub.search.protocols import EmbeddingProvider, VectorStore

logger = logging.getLogger(__name__)


def _content_hash(content: str) -> str:
    return hashlib.sha256(content.encode()).hexdigest()


class SearchEngine:
    """Orchestrates :class:`EmbeddingProvider` and :class:`VectorStore`.

    The engine is the semantic half of crate search.  It embeds crate
    text via the provider, stores one vector per crate id, and converts
    store-level results into :class:`SearchHit` objects.
    """

    def __init__(
        self,
        store: VectorStore,
        embedding_provider: EmbeddingProvider | None = None,
    ) -> None:
        self._store = store
        self._embedding_provider = embedding_provider

    # ------------------------------------------------------------------
    # High-level operations (what CrateStore and CrateSearch call)
    # ------------------------------------------------------------------

    async def index_crate(self, crate_id: str, text: str) -> None:
        """Embed *text* and upsert it under *crate_id*."""
        if self._embedding_provider is None:
            msg = "Cannot index: no embedding provider configured"
            raise RuntimeError(msg)

        vector = await self._embed(text)
        result = await self._store.upsert(
            [
                VectorEntry(
                    id=crate_id,
                    vector=vector,
                    metadata={"text": text, "content_hash": _content_hash(text)},
                )
            ]
        )
        if result.errors:
            msg = f"Vector store rejected {crate_id}: {'; '.join(result.errors)}"
            raise RuntimeError(msg)

    async def remove(self, crate_id: str) -> bool:
        """Remove the entry for *crate_id*. Returns True if one existed."""
        result = await self._store.delete([crate_id])
        return result.deleted_count > 0

    async def search(self, query: str, k: int = 5) -> list[SearchHit]:
        """Embed *query* and return the *k* best-scoring crates."""
        if self._embedding_provider is None:
            msg = "Cannot search: no embedding provider configured"
            raise RuntimeError(msg)

        vector = await self._embed(query)
        vs_results = await self._store.search(vector, k=k)
        return [
            SearchHit(
                crate_id=vsr.id,
                score=vsr.score,
                text=vsr.metadata.get("text", ""),
            )
            for vsr in vs_results
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        await self._store.connect()

    async def close(self) -> None:
        await self._store.close()
        close_fn = getattr(self._embedding_provider, "close", None)
        if close_fn is not None:
            result = close_fn()
            if inspect.isawaitable(result):
                await result

    def save(self, directory: str) -> None:
        """Persist the vector store to *directory* if it supports saving."""
        save_fn = getattr(self._store, "save", None)
        if save_fn is not None:
            save_fn(directory)

    def load(self, directory: str) -> None:
        """Load the vector store from *directory* if it supports loading."""
        load_fn = getattr(self._store, "load", None)
        if load_fn is not None:
            load_fn(directory)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def store(self) -> VectorStore:
        return self._store

    @property
    def embedding_provider(self) -> EmbeddingProvider | None:
        return self._embedding_provider

    @property
    def model_name(self) -> str | None:
        """Name of the embedding model, or None without a provider."""
        if self._embedding_provider is None:
            return None
        return self._embedding_provider.model_name

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _embed(self, text: str) -> list[float]:
        """Embed a single text, handling both sync and async providers."""
        provider = self._embedding_provider
        if provider is None:
            msg = "No embedding provider configured"
            raise RuntimeError(msg)
        result = provider.embed(text)
        if inspect.isawaitable(result):
            return await result
        return result
