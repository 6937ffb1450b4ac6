"""File name utilities, storage locators, base64 and password handling."""

from __future__ import annotations

import asyncio
import base64
import binascii
import re
from urllib.parse import quote

from pwdlib import PasswordHash
from pwdlib.hashers.bcrypt import BcryptHasher

# =============================================================================
# Storage Layout
# =============================================================================

UPLOADS_FOLDER = "uploads/"

# Characters that are never allowed in a synthesized file name
_UNSAFE_CHARS = re.compile(r'[/\\*?"<>|:\x00-\x1f\x7f]')
_WHITESPACE = re.compile(r"\s+")

MAX_NAME_LENGTH = 200


# =============================================================================
# Name Utilities
# =============================================================================


def file_extension(file_name: str) -> str:
    """Return the lower-cased extension after the last ``.``, without the dot.

    Examples:
        file_extension("notes.MD") -> "md"
        file_extension("archive.tar.gz") -> "gz"
        file_extension("Makefile") -> ""
    """
    if "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[1].lower()


def sanitize_file_name(name: str) -> str:
    """Strip path separators, wildcards and control characters from *name*.

    Whitespace runs collapse to a single space and the result is trimmed
    to ``MAX_NAME_LENGTH`` characters. Returns an empty string when nothing
    usable is left.
    """
    cleaned = _UNSAFE_CHARS.sub("", name)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip().strip(".")
    return cleaned[:MAX_NAME_LENGTH]


def effective_file_name(file_name: str | None, title: str | None, extension: str) -> str:
    """Pick the name a crate is stored under.

    A non-blank *file_name* wins (sanitized). Otherwise the sanitized
    *title* (or ``"crate"``) gets *extension* appended.
    """
    if file_name and file_name.strip():
        name = sanitize_file_name(file_name)
        if name:
            return name
    stem = sanitize_file_name(title or "") or "crate"
    if not extension.startswith("."):
        extension = "." + extension
    return stem + extension


def storage_path_for(crate_id: str, file_name: str) -> str:
    """Blob locator for a crate: ``uploads/{id}/{quoted name}``."""
    return f"{UPLOADS_FOLDER}{crate_id}/{quote(file_name, safe='')}"


# =============================================================================
# Payload Decoding
# =============================================================================


def decode_base64(data: str) -> bytes:
    """Strictly decode a base64 payload.

    Raises ``ValueError`` when *data* is not valid base64.
    """
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Payload is not valid base64: {e}") from None


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# =============================================================================
# Search Text
# =============================================================================


def build_search_field(
    title: str | None,
    description: str | None,
    tags: list[str] | None,
    metadata: dict[str, str] | None,
) -> str:
    """Lower-cased concatenation used for classical prefix search."""
    parts: list[str] = []
    if title:
        parts.append(title)
    if description:
        parts.append(description)
    if tags:
        parts.extend(t for t in tags if t)
    if metadata:
        parts.extend(v for v in metadata.values() if v)
    return " ".join(parts).lower()


def build_embedding_text(
    title: str | None,
    description: str | None,
    tags: list[str] | None,
    metadata: dict[str, str] | None,
) -> str:
    """Text sent to the embedding provider. Empty when there is nothing to embed."""
    parts: list[str] = []
    if title:
        parts.append(title)
    if description:
        parts.append(description)
    if tags:
        parts.append(" ".join(t for t in tags if t))
    if metadata:
        parts.append(" ".join(f"{k}: {v}" for k, v in metadata.items()))
    return " ".join(p for p in parts if p).strip()


# =============================================================================
# Password Hashing
# =============================================================================

_password_hash = PasswordHash((BcryptHasher(rounds=10),))


async def hash_password(password: str) -> str:
    """Bcrypt-hash *password* in a worker thread."""
    return await asyncio.to_thread(_password_hash.hash, password)
