"""Search layer data types — value objects for vectors and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class VectorEntry:
    """A vector with its ID and metadata, ready for storage.

    Attributes:
        id: Unique identifier (crate id in cratehub).
        vector: Embedding vector.
        metadata: Arbitrary key-value metadata stored alongside the vector.
    """

    id: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class VectorSearchResult:
    """A single result from a VectorStore search.

    Attributes:
        id: Identifier of the matched entry.
        score: Similarity score (higher is more similar).
        metadata: Metadata stored with the vector.
    """

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UpsertResult:
    upserted_count: int
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DeleteResult:
    deleted_count: int


@dataclass(frozen=True, slots=True)
class SearchHit:
    """A crate matched by the semantic index.

    Attributes:
        crate_id: Id of the matched crate.
        score: Dot-product similarity (higher is more similar).
        text: The embedded text that matched.
    """

    crate_id: str
    score: float
    text: str = ""
