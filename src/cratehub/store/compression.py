"""Compression policy — which payloads get gzipped, and how.

``compress`` / ``decompress`` raise on failure. ``try_compress`` and
``try_decompress`` wrap them in outcome objects whose fallback value is
the untouched input, so callers degrade without ad hoc exception handling.
"""

from __future__ import annotations

import gzip
import logging
import zlib
from dataclasses import dataclass

from .utils import file_extension

logger = logging.getLogger(__name__)

COMPRESSION_METHOD = "gzip"

COMPRESSIBLE_CONTENT_TYPES: tuple[str, ...] = (
    "text/plain",
    "text/markdown",
    "text/html",
    "text/css",
    "text/javascript",
    "text/csv",
    "text/xml",
    "application/json",
    "application/ld+json",
    "application/xml",
    "application/javascript",
    "application/typescript",
    "application/x-yaml",
    "application/yaml",
    # Office formats
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/msword",
    "application/vnd.ms-excel",
    "application/vnd.ms-powerpoint",
    "application/pdf",
    "application/zip",
    "image/svg+xml",
    "application/xhtml+xml",
    "application/rtf",
)

COMPRESSIBLE_EXTENSIONS: frozenset[str] = frozenset({
    "txt", "md", "markdown", "html", "htm", "css", "js", "json", "csv", "xml",
    "ts", "tsx", "jsx", "yaml", "yml",
    # Office formats
    "docx", "xlsx", "pptx", "doc", "xls", "ppt",
    "pdf", "rtf", "svg", "xhtml",
})


@dataclass(frozen=True, slots=True)
class CompressionStats:
    """Size accounting for one compression.

    Attributes:
        original_size: Input length in bytes.
        compressed_size: Output length in bytes.
        ratio: Percentage saved, ``(1 - compressed/original) * 100``.
        method: Algorithm tag persisted next to the blob.
    """

    original_size: int
    compressed_size: int
    ratio: float
    method: str = COMPRESSION_METHOD


@dataclass(frozen=True, slots=True)
class CompressionOutcome:
    """Result of :func:`try_compress`. ``data`` is the original input on failure."""

    data: bytes
    stats: CompressionStats | None = None
    error: Exception | None = None

    @property
    def applied(self) -> bool:
        return self.stats is not None


@dataclass(frozen=True, slots=True)
class DecompressionOutcome:
    """Result of :func:`try_decompress`. ``data`` is the raw input on failure."""

    data: bytes
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def should_compress(content_type: str | None, file_name: str | None) -> bool:
    """Return True if the content type OR the file extension is compressible."""
    ctype = (content_type or "").lower()
    if any(t in ctype for t in COMPRESSIBLE_CONTENT_TYPES):
        return True
    return file_extension(file_name or "") in COMPRESSIBLE_EXTENSIONS


def compress(data: bytes) -> tuple[bytes, CompressionStats]:
    """Gzip *data* and report the savings."""
    compressed = gzip.compress(data, mtime=0)
    original_size = len(data)
    compressed_size = len(compressed)
    ratio = (1 - compressed_size / original_size) * 100 if original_size > 0 else 0.0
    return compressed, CompressionStats(
        original_size=original_size,
        compressed_size=compressed_size,
        ratio=ratio,
    )


def decompress(data: bytes) -> bytes:
    """Reverse :func:`compress`."""
    return gzip.decompress(data)


def try_compress(data: bytes) -> CompressionOutcome:
    """Compress *data*, falling back to the original bytes on failure."""
    try:
        compressed, stats = compress(data)
    except (OSError, zlib.error, ValueError, TypeError) as e:
        logger.warning("Compression failed, storing original bytes", exc_info=True)
        return CompressionOutcome(data=data, error=e)
    return CompressionOutcome(data=compressed, stats=stats)


def try_decompress(data: bytes) -> DecompressionOutcome:
    """Decompress *data*, falling back to the raw bytes on failure."""
    try:
        return DecompressionOutcome(data=decompress(data))
    except (OSError, EOFError, zlib.error) as e:
        logger.warning("Decompression failed, returning raw bytes", exc_info=True)
        return DecompressionOutcome(data=data, error=e)
