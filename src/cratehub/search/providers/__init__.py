"""Embedding providers — protocol and implementations."""

from cratehub.search.protocols import EmbeddingProvider

__all__ = [
    "EmbeddingProvider",
]

# Optional providers — import-guarded, available only when deps are installed.
try:
    from cratehub.search.providers.openai import OpenAIEmbedding

    __all__.append("OpenAIEmbedding")
except ImportError:  # pragma: no cover
    pass
