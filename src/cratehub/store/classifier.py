"""Content classifier — file name / MIME type to crate category.

Classification only affects presentation, so it never fails: anything
unrecognized is ``binary``.
"""

from __future__ import annotations

from cratehub.models.crates import CrateCategory

from .utils import file_extension

# =============================================================================
# Lookup Tables
# =============================================================================

MIME_CATEGORIES: dict[str, CrateCategory] = {
    # Images
    "image/png": CrateCategory.IMAGE,
    "image/jpeg": CrateCategory.IMAGE,
    "image/jpg": CrateCategory.IMAGE,
    "image/gif": CrateCategory.IMAGE,
    "image/webp": CrateCategory.IMAGE,
    "image/svg+xml": CrateCategory.IMAGE,
    # Documents
    "text/markdown": CrateCategory.MARKDOWN,
    "text/x-markdown": CrateCategory.MARKDOWN,
    "application/json": CrateCategory.JSON,
    "application/ld+json": CrateCategory.JSON,
    "text/csv": CrateCategory.DATA,
    # Code and plain text
    "text/plain": CrateCategory.CODE,
    "text/html": CrateCategory.CODE,
    "text/css": CrateCategory.CODE,
    "text/javascript": CrateCategory.CODE,
    "text/xml": CrateCategory.CODE,
    "text/x-python": CrateCategory.CODE,
    "application/javascript": CrateCategory.CODE,
    "application/typescript": CrateCategory.CODE,
    "application/xml": CrateCategory.CODE,
    # Opaque bytes
    "application/octet-stream": CrateCategory.BINARY,
    "binary/octet-stream": CrateCategory.BINARY,
}

EXTENSION_CATEGORIES: dict[str, CrateCategory] = {
    "png": CrateCategory.IMAGE,
    "jpg": CrateCategory.IMAGE,
    "jpeg": CrateCategory.IMAGE,
    "gif": CrateCategory.IMAGE,
    "webp": CrateCategory.IMAGE,
    "svg": CrateCategory.IMAGE,
    "md": CrateCategory.MARKDOWN,
    "markdown": CrateCategory.MARKDOWN,
    "json": CrateCategory.JSON,
    "csv": CrateCategory.DATA,
    "js": CrateCategory.CODE,
    "ts": CrateCategory.CODE,
    "html": CrateCategory.CODE,
    "css": CrateCategory.CODE,
    "py": CrateCategory.CODE,
    "java": CrateCategory.CODE,
    "xml": CrateCategory.CODE,
    "txt": CrateCategory.CODE,
    "log": CrateCategory.CODE,
    "todolist": CrateCategory.TODOLIST,
    "mmd": CrateCategory.DIAGRAM,
    "diagram": CrateCategory.DIAGRAM,
}

CATEGORY_EXTENSIONS: dict[CrateCategory, str] = {
    CrateCategory.IMAGE: ".png",
    CrateCategory.CODE: ".txt",
    CrateCategory.MARKDOWN: ".md",
    CrateCategory.JSON: ".json",
    CrateCategory.DATA: ".csv",
    CrateCategory.BINARY: ".bin",
    CrateCategory.TODOLIST: ".todolist",
    CrateCategory.DIAGRAM: ".mmd",
}

CONTENT_TYPE_EXTENSIONS: dict[str, str] = {
    "text/plain": ".txt",
    "text/markdown": ".md",
    "text/html": ".html",
    "text/css": ".css",
    "text/csv": ".csv",
    "text/javascript": ".js",
    "application/javascript": ".js",
    "application/typescript": ".ts",
    "application/json": ".json",
    "application/xml": ".xml",
    "text/xml": ".xml",
    "application/pdf": ".pdf",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
}

DEFAULT_EXTENSION = ".dat"


# =============================================================================
# Classification
# =============================================================================


def coerce_category(value: str | CrateCategory) -> CrateCategory:
    """Convert *value* to a ``CrateCategory``.

    Raises ``ValueError`` for unknown names.
    """
    if isinstance(value, CrateCategory):
        return value
    try:
        return CrateCategory(value.strip().lower())
    except ValueError:
        allowed = ", ".join(c.value for c in CrateCategory)
        raise ValueError(f"Unknown category {value!r}. Expected one of: {allowed}") from None


def _known_category(value: str | CrateCategory | None) -> CrateCategory | None:
    if value is None:
        return None
    try:
        return coerce_category(value)
    except ValueError:
        return None


def base_mime(mime_type: str | None) -> str:
    """Lower-case *mime_type* and drop parameters such as ``; charset=utf-8``."""
    if not mime_type:
        return ""
    return mime_type.split(";", 1)[0].strip().lower()


def classify(
    file_name: str,
    mime_type: str | None,
    explicit_category: str | CrateCategory | None = None,
) -> CrateCategory:
    """Classify a crate.

    A known explicit category wins, then the MIME table, then the
    extension table, then ``binary``. Never raises; unknown explicit
    values are rejected by callers through ``coerce_category``.
    """
    explicit = _known_category(explicit_category)
    if explicit is not None:
        return explicit

    by_mime = MIME_CATEGORIES.get(base_mime(mime_type))
    if by_mime is not None:
        return by_mime

    by_ext = EXTENSION_CATEGORIES.get(file_extension(file_name))
    if by_ext is not None:
        return by_ext

    return CrateCategory.BINARY


def default_extension(
    category: str | CrateCategory | None = None,
    content_type: str | None = None,
) -> str:
    """Pick an extension for a synthesized file name (``.dat`` as a last resort)."""
    known = _known_category(category)
    if known is not None:
        return CATEGORY_EXTENSIONS[known]
    by_type = CONTENT_TYPE_EXTENSIONS.get(base_mime(content_type))
    if by_type is not None:
        return by_type
    return DEFAULT_EXTENSION
