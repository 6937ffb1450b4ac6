"""Search layer protocols — async-first interfaces for embedding and vector storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cratehub.search.types import DeleteResult, UpsertResult, VectorEntry, VectorSearchResult


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Async-first protocol for text-to-vector embedding.

    Implementations convert text into fixed-dimension float vectors
    suitable for similarity search. Synchronous implementations are
    accepted too; the engine awaits results only when they are awaitable.
    """

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string into a vector."""
        ...

    @property
    def dimensions(self) -> int:
        """Number of dimensions in the embedding vectors."""
        ...

    @property
    def model_name(self) -> str:
        """Name of the embedding model."""
        ...


@runtime_checkable
class VectorStore(Protocol):
    """Async-first protocol for vector storage and nearest-neighbour search."""

    async def upsert(self, entries: list[VectorEntry]) -> UpsertResult:
        """Insert or update vector entries."""
        ...

    async def search(
        self,
        vector: list[float],
        *,
        k: int = 10,
        score_threshold: float | None = None,
    ) -> list[VectorSearchResult]:
        """Search for the *k* nearest vectors."""
        ...

    async def delete(self, ids: list[str]) -> DeleteResult:
        """Delete vectors by their IDs."""
        ...

    async def fetch(self, ids: list[str]) -> list[VectorEntry | None]:
        """Fetch vectors by their IDs.  Missing IDs return ``None``."""
        ...

    async def connect(self) -> None:
        """Open connection / initialize resources."""
        ...

    async def close(self) -> None:
        """Release connection / clean up resources."""
        ...

    @property
    def index_name(self) -> str:
        """Name of the underlying index."""
        ...
