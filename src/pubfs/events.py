"""EventBus and event types for keeping the cache and callers in step with mutations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Kinds of successful store mutations."""

    FILE_WRITTEN = "file_written"
    FILE_UPDATED = "file_updated"
    FILE_DELETED = "file_deleted"
    DIRECTORY_CREATED = "directory_created"
    FILE_MOVED = "file_moved"


@dataclass(frozen=True, slots=True)
class FileEvent:
    """Immutable record of a store mutation.

    Attributes:
        event_type: The kind of mutation that occurred.
        key: Key of the affected object (destination for moves, the
            directory for directory creation).
        old_key: Previous key (moves only).
        content: Text content when known (text writes only), None otherwise.
    """

    event_type: EventType
    key: str
    old_key: str | None = None
    content: str | None = None


class EventBus:
    """Dispatches mutation events to registered handlers.

    Handlers are called sequentially in registration order.
    Exceptions are logged but never propagated; a failing handler
    leaves the cache stale, the mutation itself still succeeds.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: FileEvent) -> None:
        """Dispatch *event* to all registered handlers for its type."""
        for handler in self._handlers[event.event_type]:
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    handler,
                    event.event_type.value,
                    event.key,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())
