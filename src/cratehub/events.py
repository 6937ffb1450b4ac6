"""EventBus and event types for crate lifecycle notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of crate events."""

    CRATE_UPLOADED = "crate_uploaded"
    CRATE_CONFIRMED = "crate_confirmed"
    CRATE_DOWNLOADED = "crate_downloaded"
    CRATE_SHARED = "crate_shared"
    CRATE_UNSHARED = "crate_unshared"
    CRATE_DELETED = "crate_deleted"


@dataclass(frozen=True, slots=True)
class CrateEvent:
    """Immutable record of something that happened to a crate.

    Attributes:
        event_type: The kind of event.
        crate_id: Id of the affected crate.
        user_id: Caller that triggered the event, if known.
        details: Free-form, JSON-serializable context.
    """

    event_type: EventType
    crate_id: str
    user_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class EventBus:
    """Dispatches crate events to registered handlers.

    Handlers are called sequentially in registration order.
    Exceptions are logged but never propagated — a failing handler
    loses an event, it does not fail the request that emitted it.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def register_all(self, handler: Callable[..., Any]) -> None:
        """Register *handler* for every event type."""
        for event_type in EventType:
            self.register(event_type, handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: CrateEvent) -> None:
        """Dispatch *event* to all registered handlers for its type."""
        for handler in self._handlers[event.event_type]:
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    handler,
                    event.event_type.value,
                    event.crate_id,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Remove all registered handlers."""
        for handlers in self._handlers.values():
            handlers.clear()
