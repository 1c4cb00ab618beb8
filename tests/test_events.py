"""Tests for EventBus and event types."""

from __future__ import annotations

import logging

import pytest

from pubfs.events import EventBus, EventType, FileEvent

# =========================================================================
# Helpers
# =========================================================================


async def _collecting_handler(events: list[FileEvent], event: FileEvent) -> None:
    """Append event to a list for assertion."""
    events.append(event)


async def _failing_handler(event: FileEvent) -> None:
    """Handler that always raises."""
    raise RuntimeError(f"boom on {event.key}")


KEY = "pubky://owner/pub/app/a.txt"


# =========================================================================
# EventType / FileEvent
# =========================================================================


class TestEventType:
    def test_members(self) -> None:
        assert {et.value for et in EventType} == {
            "file_written",
            "file_updated",
            "file_deleted",
            "directory_created",
            "file_moved",
        }


class TestFileEvent:
    def test_defaults(self) -> None:
        ev = FileEvent(EventType.FILE_WRITTEN, KEY)
        assert ev.old_key is None
        assert ev.content is None

    def test_move_event(self) -> None:
        ev = FileEvent(EventType.FILE_MOVED, KEY, old_key="pubky://owner/pub/app/old.txt")
        assert ev.old_key == "pubky://owner/pub/app/old.txt"

    def test_immutable(self) -> None:
        ev = FileEvent(EventType.FILE_WRITTEN, KEY)
        with pytest.raises(AttributeError):
            ev.key = "changed"  # type: ignore[misc]


# =========================================================================
# EventBus
# =========================================================================


class TestEventBusRegistration:
    def test_register_and_count(self) -> None:
        bus = EventBus()
        assert bus.handler_count == 0
        bus.register(EventType.FILE_WRITTEN, _failing_handler)
        bus.register(EventType.FILE_DELETED, _failing_handler)
        assert bus.handler_count == 2

    def test_unregister(self) -> None:
        bus = EventBus()
        bus.register(EventType.FILE_WRITTEN, _failing_handler)
        assert bus.unregister(EventType.FILE_WRITTEN, _failing_handler) is True
        assert bus.unregister(EventType.FILE_WRITTEN, _failing_handler) is False
        assert bus.handler_count == 0


class TestEventBusEmit:
    async def test_handlers_called_in_order(self) -> None:
        bus = EventBus()
        order: list[int] = []

        async def first(event: FileEvent) -> None:
            order.append(1)

        async def second(event: FileEvent) -> None:
            order.append(2)

        bus.register(EventType.FILE_WRITTEN, first)
        bus.register(EventType.FILE_WRITTEN, second)
        await bus.emit(FileEvent(EventType.FILE_WRITTEN, KEY))
        assert order == [1, 2]

    async def test_type_filtering(self) -> None:
        bus = EventBus()
        deleted: list[FileEvent] = []

        async def on_delete(event: FileEvent) -> None:
            await _collecting_handler(deleted, event)

        bus.register(EventType.FILE_DELETED, on_delete)
        await bus.emit(FileEvent(EventType.FILE_WRITTEN, KEY))
        assert deleted == []

    async def test_error_isolation(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = EventBus()
        collected: list[FileEvent] = []

        async def good_handler(event: FileEvent) -> None:
            await _collecting_handler(collected, event)

        bus.register(EventType.FILE_WRITTEN, _failing_handler)
        bus.register(EventType.FILE_WRITTEN, good_handler)

        with caplog.at_level(logging.WARNING, logger="pubfs.events"):
            await bus.emit(FileEvent(EventType.FILE_WRITTEN, KEY))

        assert len(collected) == 1
        assert "failed" in caplog.text
        assert "file_written" in caplog.text
        assert KEY in caplog.text
