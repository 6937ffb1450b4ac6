"""Tests for EventBus and event types."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pytest

from cratehub.events import CrateEvent, EventBus, EventType

if TYPE_CHECKING:
    from cratehub._hub import CrateHub

# =========================================================================
# Helpers
# =========================================================================


async def _failing_handler(event: CrateEvent) -> None:
    """Handler that always raises."""
    raise RuntimeError(f"boom on {event.crate_id}")


def _collector() -> tuple[list[CrateEvent], Any]:
    events: list[CrateEvent] = []

    async def handler(event: CrateEvent) -> None:
        events.append(event)

    return events, handler


# =========================================================================
# EventType / CrateEvent
# =========================================================================


class TestEventType:
    def test_values(self) -> None:
        assert EventType.CRATE_UPLOADED.value == "crate_uploaded"
        assert EventType.CRATE_CONFIRMED.value == "crate_confirmed"
        assert EventType.CRATE_DOWNLOADED.value == "crate_downloaded"
        assert EventType.CRATE_SHARED.value == "crate_shared"
        assert EventType.CRATE_UNSHARED.value == "crate_unshared"
        assert EventType.CRATE_DELETED.value == "crate_deleted"

    def test_unique_values(self) -> None:
        values = [et.value for et in EventType]
        assert len(values) == len(set(values))


class TestCrateEvent:
    def test_defaults(self) -> None:
        event = CrateEvent(event_type=EventType.CRATE_DELETED, crate_id="c1")
        assert event.user_id is None
        assert event.details == {}

    def test_frozen(self) -> None:
        event = CrateEvent(event_type=EventType.CRATE_DELETED, crate_id="c1")
        with pytest.raises(AttributeError):
            event.crate_id = "c2"  # type: ignore[misc]


# =========================================================================
# EventBus
# =========================================================================


class TestEventBus:
    async def test_dispatch_by_type(self) -> None:
        bus = EventBus()
        events, handler = _collector()
        bus.register(EventType.CRATE_UPLOADED, handler)

        await bus.emit(CrateEvent(event_type=EventType.CRATE_UPLOADED, crate_id="c1"))
        await bus.emit(CrateEvent(event_type=EventType.CRATE_DELETED, crate_id="c1"))
        assert [e.event_type for e in events] == [EventType.CRATE_UPLOADED]

    async def test_register_all(self) -> None:
        bus = EventBus()
        events, handler = _collector()
        bus.register_all(handler)
        assert bus.handler_count == len(EventType)

        for et in EventType:
            await bus.emit(CrateEvent(event_type=et, crate_id="c1"))
        assert len(events) == len(EventType)

    async def test_failing_handler_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = EventBus()
        events, handler = _collector()
        bus.register(EventType.CRATE_SHARED, _failing_handler)
        bus.register(EventType.CRATE_SHARED, handler)

        with caplog.at_level(logging.WARNING, logger="cratehub.events"):
            await bus.emit(CrateEvent(event_type=EventType.CRATE_SHARED, crate_id="c9"))

        assert len(events) == 1
        assert any("crate_shared" in r.getMessage() for r in caplog.records)

    def test_unregister(self) -> None:
        bus = EventBus()
        _, handler = _collector()
        bus.register(EventType.CRATE_DELETED, handler)
        assert bus.unregister(EventType.CRATE_DELETED, handler) is True
        assert bus.unregister(EventType.CRATE_DELETED, handler) is False

    def test_clear(self) -> None:
        bus = EventBus()
        _, handler = _collector()
        bus.register_all(handler)
        bus.clear()
        assert bus.handler_count == 0


# =========================================================================
# Persisted event log
# =========================================================================


class TestEventLog:
    async def test_hub_records_lifecycle(self, hub: CrateHub) -> None:
        from cratehub.store.types import UploadRequest

        result = await hub.upload(
            UploadRequest(file_name="a.txt", content_type="text/plain", data="aGk=")
        )
        assert result.crate is not None
        crate_id = result.crate.id
        await hub.get(crate_id)
        await hub.share(crate_id, public=True)
        await hub.delete(crate_id)

        records = await hub.list_events(crate_id)
        assert [r.event_type for r in records] == [
            "crate_uploaded",
            "crate_downloaded",
            "crate_shared",
            "crate_deleted",
        ]
        assert records[2].details["public"] is True

    async def test_failed_upload_records_nothing(self, hub: CrateHub) -> None:
        from cratehub.exceptions import ValidationError
        from cratehub.store.types import UploadRequest

        with pytest.raises(ValidationError):
            await hub.upload(
                UploadRequest(
                    file_name="bad.json", content_type="application/json", data="e25vcGU="
                )
            )
        assert await hub.list_events() == []
