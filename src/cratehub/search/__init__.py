"""Search layer — engine, vector stores, embedding providers, hybrid crate search."""

from cratehub.search._engine import SearchEngine
from cratehub.search.hybrid import CrateSearch
from cratehub.search.protocols import EmbeddingProvider, VectorStore
from cratehub.search.stores.local import LocalVectorStore
from cratehub.search.types import SearchHit, VectorEntry, VectorSearchResult

__all__ = [
    "CrateSearch",
    "EmbeddingProvider",
    "LocalVectorStore",
    "SearchEngine",
    "SearchHit",
    "VectorEntry",
    "VectorSearchResult",
    "VectorStore",
]
