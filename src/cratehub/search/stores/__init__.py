"""Vector stores — VectorStore protocol implementations."""

from cratehub.search.stores.local import LocalVectorStore

__all__ = [
    "LocalVectorStore",
]
