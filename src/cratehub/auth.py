"""ApiKeyService — issue, list, revoke and resolve API keys.

Raw keys are shown once at creation; only their SHA-256 hex digest is
stored, so lookups hash the presented key and match on the digest.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlmodel import select

from cratehub.models.api_keys import ApiKey

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

KEY_PREFIX = "mcph_"
BEARER_PREFIX = "Bearer "


@dataclass(frozen=True, slots=True)
class Caller:
    """Identity resolved from an API key."""

    user_id: str
    key_id: str


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def generate_api_key() -> str:
    return KEY_PREFIX + secrets.token_urlsafe(32)


def parse_bearer(header: str | None) -> str | None:
    """Extract the key from ``Bearer <key>``; None when absent or malformed."""
    if not header or not header.strip().startswith(BEARER_PREFIX):
        return None
    key = header.strip()[len(BEARER_PREFIX):].strip()
    return key or None


class ApiKeyService:
    """Manages API keys.

    Stateless: receives a session at call time.
    """

    async def create_api_key(
        self,
        session: AsyncSession,
        user_id: str,
        name: str | None = None,
    ) -> tuple[str, ApiKey]:
        """Create a key for *user_id*. Returns ``(raw_key, record)``."""
        if not user_id:
            raise ValueError("user_id is required")
        raw_key = generate_api_key()
        record = ApiKey(user_id=user_id, hashed_key=hash_api_key(raw_key), name=name)
        session.add(record)
        await session.flush()
        logger.info("Created API key %s for user %s", record.id, user_id)
        return raw_key, record

    async def list_api_keys(self, session: AsyncSession, user_id: str) -> list[ApiKey]:
        result = await session.execute(
            select(ApiKey)
            .where(ApiKey.user_id == user_id)
            .order_by(ApiKey.created_at)  # type: ignore[arg-type]
        )
        return list(result.scalars().all())

    async def delete_api_key(self, session: AsyncSession, user_id: str, key_id: str) -> bool:
        """Revoke *key_id*. Only its owner may delete it. Returns True if found."""
        record = await session.get(ApiKey, key_id)
        if record is None or record.user_id != user_id:
            return False
        await session.delete(record)
        await session.flush()
        logger.info("Deleted API key %s for user %s", key_id, user_id)
        return True

    async def resolve_caller(
        self,
        session: AsyncSession,
        api_key: str | None,
    ) -> Caller | None:
        """Map a raw key to its caller and stamp ``last_used_at``."""
        if not api_key:
            return None
        result = await session.execute(
            select(ApiKey).where(ApiKey.hashed_key == hash_api_key(api_key))
        )
        record = result.scalar_one_or_none()
        if record is None:
            logger.debug("Unknown API key presented")
            return None
        record.last_used_at = datetime.now(UTC)
        await session.flush()
        return Caller(user_id=record.user_id, key_id=record.id)
