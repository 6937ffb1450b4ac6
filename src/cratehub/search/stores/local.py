"""LocalVectorStore — in-process usearch HNSW vector store."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import numpy as np
from usearch.index import Index

from cratehub.search.types import DeleteResult, UpsertResult, VectorEntry, VectorSearchResult

_INDEX_FILE = "crates.usearch"
_META_FILE = "crates_meta.json"

# Public metric names to usearch metric kinds
_METRICS = {"dotproduct": "ip", "cosine": "cos", "euclidean": "l2sq"}


class LocalVectorStore:
    """In-process vector store backed by usearch HNSW index.

    Implements the ``VectorStore`` protocol.  The default ``dotproduct``
    metric reports raw dot products as scores.

    Thread-safe via :class:`threading.Lock`.
    """

    def __init__(self, *, dimension: int, metric: str = "dotproduct") -> None:
        if metric not in _METRICS:
            msg = f"Unsupported metric {metric!r}. Expected one of: {', '.join(_METRICS)}"
            raise ValueError(msg)
        self._dimension = dimension
        self._metric = metric
        self._index_name = "local"

        self._index = Index(ndim=dimension, metric=_METRICS[metric], dtype="f32")
        self._lock = threading.Lock()
        self._next_key: int = 0

        # key → metadata (includes "id", "vector", plus any user metadata)
        self._key_to_meta: dict[int, dict[str, Any]] = {}
        # id → usearch key
        self._id_to_key: dict[str, int] = {}

    # ------------------------------------------------------------------
    # VectorStore protocol
    # ------------------------------------------------------------------

    async def upsert(self, entries: list[VectorEntry]) -> UpsertResult:
        """Insert or update vector entries."""
        count = 0
        errors: list[str] = []
        for entry in entries:
            if len(entry.vector) != self._dimension:
                errors.append(
                    f"{entry.id}: expected {self._dimension} dimensions, got {len(entry.vector)}"
                )
                continue

            if entry.id in self._id_to_key:
                self._remove_by_id(entry.id)

            vector = np.array(entry.vector, dtype=np.float32)
            key = self._next_key
            self._next_key += 1

            with self._lock:
                self._index.add(key, vector)

            self._key_to_meta[key] = {
                "id": entry.id,
                "vector": entry.vector,
                **entry.metadata,
            }
            self._id_to_key[entry.id] = key
            count += 1

        return UpsertResult(upserted_count=count, errors=errors)

    async def search(
        self,
        vector: list[float],
        *,
        k: int = 10,
        score_threshold: float | None = None,
    ) -> list[VectorSearchResult]:
        """Search for the *k* nearest vectors."""
        if len(self) == 0:
            return []

        query = np.array(vector, dtype=np.float32)
        with self._lock:
            matches = self._index.search(query, min(k, len(self)))

        results: list[VectorSearchResult] = []
        for match_key, distance in zip(
            matches.keys.tolist(), matches.distances.tolist(), strict=True
        ):
            meta = self._key_to_meta.get(int(match_key))
            if meta is None:
                continue

            # usearch reports ip distance as 1 - dot
            score = 1.0 - distance
            if score_threshold is not None and score < score_threshold:
                continue

            results.append(
                VectorSearchResult(
                    id=meta["id"],
                    score=score,
                    metadata={mk: mv for mk, mv in meta.items() if mk not in ("id", "vector")},
                )
            )

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:k]

    async def delete(self, ids: list[str]) -> DeleteResult:
        """Delete vectors by their IDs."""
        count = 0
        for entry_id in ids:
            if self._remove_by_id(entry_id):
                count += 1
        return DeleteResult(deleted_count=count)

    async def fetch(self, ids: list[str]) -> list[VectorEntry | None]:
        """Fetch vectors by their IDs."""
        results: list[VectorEntry | None] = []
        for entry_id in ids:
            key = self._id_to_key.get(entry_id)
            meta = self._key_to_meta.get(key) if key is not None else None
            if meta is None:
                results.append(None)
                continue
            results.append(
                VectorEntry(
                    id=meta["id"],
                    vector=meta.get("vector", []),
                    metadata={mk: mv for mk, mv in meta.items() if mk not in ("id", "vector")},
                )
            )
        return results

    async def connect(self) -> None:
        """No-op for local store."""

    async def close(self) -> None:
        """No-op for local store."""

    @property
    def index_name(self) -> str:
        return self._index_name

    @property
    def metric(self) -> str:
        return self._metric

    # ------------------------------------------------------------------
    # Local-specific methods
    # ------------------------------------------------------------------

    def has(self, entry_id: str) -> bool:
        """Return whether *entry_id* is present in the store."""
        return entry_id in self._id_to_key

    def __len__(self) -> int:
        return len(self._key_to_meta)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, directory: str) -> None:
        """Persist the index and metadata to *directory*."""
        dir_path = Path(directory)
        dir_path.mkdir(parents=True, exist_ok=True)

        with self._lock:
            self._index.save(str(dir_path / _INDEX_FILE))

        # Vectors live in the usearch file; the sidecar keeps the rest
        serializable_meta = {
            str(k): {mk: mv for mk, mv in v.items() if mk != "vector"}
            for k, v in self._key_to_meta.items()
        }
        sidecar: dict[str, Any] = {
            "next_key": self._next_key,
            "key_to_meta": serializable_meta,
        }
        with (dir_path / _META_FILE).open("w") as f:
            json.dump(sidecar, f)

    def load(self, directory: str) -> None:
        """Load a previously saved index from *directory*."""
        dir_path = Path(directory)

        with self._lock:
            self._index.load(str(dir_path / _INDEX_FILE))

        with (dir_path / _META_FILE).open() as f:
            sidecar = json.load(f)

        self._next_key = sidecar["next_key"]
        self._key_to_meta = {}
        self._id_to_key = {}
        for k_str, meta in sidecar.get("key_to_meta", {}).items():
            key = int(k_str)
            with self._lock:
                stored = self._index.get(key)
            if stored is not None:
                meta["vector"] = np.asarray(stored, dtype=np.float32).tolist()
            self._key_to_meta[key] = meta
            self._id_to_key[meta["id"]] = key

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _remove_by_id(self, entry_id: str) -> bool:
        """Remove a single entry by ID. Returns True if found."""
        key = self._id_to_key.pop(entry_id, None)
        if key is None:
            return False
        self._key_to_meta.pop(key, None)
        with self._lock:
            self._index.remove(key)
        return True
