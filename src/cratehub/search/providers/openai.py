"""OpenAIEmbedding — crate text embeddings through OpenAI's async API."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

try:
    from openai import AsyncOpenAI

    _HAS_OPENAI = True
except ImportError:  # pragma: no cover
    _HAS_OPENAI = False

if TYPE_CHECKING:
    from openai import AsyncOpenAI as AsyncOpenAIType

    from cratehub.config import Settings

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# Roughly 8k tokens; crate text past this adds little to the vector
DEFAULT_MAX_INPUT_CHARS = 24_000


class OpenAIEmbedding:
    """Embeds crate descriptive text (title, description, tags, metadata).

    Text is whitespace-normalized and truncated before it is sent.  The
    requested *dimensions* are passed through to the API, so vectors
    always match the ``LocalVectorStore`` built from the same settings.

    Requires the ``openai`` package::

        pip install cratehub[openai]
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 768,
        max_input_chars: int = DEFAULT_MAX_INPUT_CHARS,
        max_retries: int = 2,
        timeout: float = 30.0,
    ) -> None:
        if not _HAS_OPENAI:
            msg = (
                "openai is required for semantic crate search. "
                "Install it with: pip install cratehub[openai]"
            )
            raise ImportError(msg)
        if not api_key:
            msg = "No OpenAI API key provided. Set CRATEHUB_OPENAI_API_KEY."
            raise ValueError(msg)

        self._model = model
        self._dimensions = dimensions
        self._max_input_chars = max_input_chars
        self._client: AsyncOpenAIType = AsyncOpenAI(
            api_key=api_key,
            max_retries=max_retries,
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIEmbedding:
        return cls(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )

    def prepare(self, text: str) -> str:
        """Collapse whitespace and cut *text* to the input limit."""
        cleaned = _WHITESPACE.sub(" ", text).strip()
        if len(cleaned) > self._max_input_chars:
            logger.debug(
                "Truncating embedding input from %d to %d chars",
                len(cleaned),
                self._max_input_chars,
            )
            cleaned = cleaned[: self._max_input_chars]
        return cleaned

    async def embed(self, text: str) -> list[float]:
        cleaned = self.prepare(text)
        if not cleaned:
            msg = "Cannot embed empty crate text"
            raise ValueError(msg)

        kwargs: dict[str, Any] = {
            "input": [cleaned],
            "model": self._model,
            "dimensions": self._dimensions,
        }
        response = await self._client.embeddings.create(**kwargs)
        vector = list(response.data[0].embedding)
        if len(vector) != self._dimensions:
            msg = (
                f"{self._model} returned {len(vector)} dimensions, "
                f"expected {self._dimensions}"
            )
            raise ValueError(msg)
        return vector

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model

    async def close(self) -> None:
        await self._client.close()
