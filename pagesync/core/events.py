"""
pagesync Event Bus

Typed publish/subscribe channel used by the session, the watcher and plugins.

Handlers registered for one event run concurrently on emit(); emit() only
returns once every handler has settled. Ordered execution is the plugin
dispatcher's job, not the bus's.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pagesync.core.logging import DevLogger

if TYPE_CHECKING:
    from pagesync.core.browser import PageHandle
    from pagesync.core.config import DevServerConfig


class BusEvent(str, Enum):
    """Events published on the session bus."""

    SERVER_START = "server:start"
    SERVER_STOP = "server:stop"
    PLATFORM_CREATED = "platform:created"
    PLATFORM_READY = "platform:ready"
    PLATFORM_NAVIGATE = "platform:navigate"
    PLATFORM_CLOSE = "platform:close"
    FILE_CHANGED = "file:changed"
    SCRIPT_INJECT = "script:inject"
    STYLE_INJECT = "style:inject"


class FileChangeKind(str, Enum):
    """Kinds of file system changes reported by the watcher."""

    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


# === Payloads ===


@dataclass
class ServerEvent:
    """Payload of server:start / server:stop."""

    config: Optional["DevServerConfig"] = None


@dataclass
class PlatformEvent:
    """Payload of the platform:* events."""

    platform_id: str
    page: Optional["PageHandle"] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class FileChangeEvent:
    """A single change under the project root."""

    path: str
    kind: FileChangeKind


@dataclass
class AssetInjectEvent:
    """Payload of script:inject / style:inject."""

    platform_id: str
    path: str
    content: str
    page: Optional["PageHandle"] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[Any], Any]


class EventBus:
    """
    Session event bus.

    Features:
    - on/off/once subscriptions per event
    - Concurrent fan-out with failure isolation
    - remove_all_listeners() for teardown
    - Emission statistics
    """

    def __init__(self, logger: Optional[DevLogger] = None):
        self._listeners: Dict[BusEvent, List[EventHandler]] = defaultdict(list)
        # original handler -> wrapper, for once() registrations
        self._once_wrappers: Dict[BusEvent, Dict[EventHandler, EventHandler]] = defaultdict(dict)
        self._logger = (logger or DevLogger()).bind(component="bus")
        self._stats: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {"emitted": 0, "errors": 0}
        )

    # === Subscription ===

    def on(self, event: BusEvent, handler: EventHandler) -> None:
        """Register a handler for an event."""
        event = BusEvent(event)
        if handler not in self._listeners[event]:
            self._listeners[event].append(handler)

    def off(self, event: BusEvent, handler: EventHandler) -> bool:
        """
        Remove a handler.

        Accepts the original callable for handlers registered with once().

        Returns:
            True if a handler was removed
        """
        event = BusEvent(event)
        wrapper = self._once_wrappers[event].pop(handler, None)
        target = wrapper or handler
        handlers = self._listeners.get(event)
        if not handlers or target not in handlers:
            return False
        handlers.remove(target)
        if not handlers:
            del self._listeners[event]
        return True

    def once(self, event: BusEvent, handler: EventHandler) -> None:
        """Register a handler that is removed after its first invocation."""
        event = BusEvent(event)

        async def wrapper(payload: Any) -> Any:
            self.off(event, handler)
            result = handler(payload)
            if inspect.isawaitable(result):
                result = await result
            return result

        wrapper.__name__ = getattr(handler, "__name__", "once_handler")
        self._once_wrappers[event][handler] = wrapper
        self.on(event, wrapper)

    def remove_all_listeners(self, event: Optional[BusEvent] = None) -> None:
        """Clear one event's handlers, or every handler."""
        if event is None:
            self._listeners.clear()
            self._once_wrappers.clear()
        else:
            event = BusEvent(event)
            self._listeners.pop(event, None)
            self._once_wrappers.pop(event, None)

    def listener_count(self, event: BusEvent) -> int:
        return len(self._listeners.get(BusEvent(event), []))

    # === Emission ===

    async def emit(self, event: BusEvent, payload: Any = None) -> None:
        """
        Emit an event to every registered handler concurrently.

        Handler failures are logged and swallowed; they never reach the caller.
        """
        event = BusEvent(event)
        handlers = list(self._listeners.get(event, []))
        self._stats[event.value]["emitted"] += 1
        if not handlers:
            return

        await asyncio.gather(
            *(self._call_handler(event, handler, payload) for handler in handlers)
        )

    async def _call_handler(
        self,
        event: BusEvent,
        handler: EventHandler,
        payload: Any,
    ) -> None:
        """Call a handler safely."""
        try:
            result = handler(payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._stats[event.value]["errors"] += 1
            self._logger.error(
                "Event handler error",
                bus_event=event.value,
                handler=getattr(handler, "__qualname__", repr(handler)),
                error=str(e),
            )

    # === Stats ===

    def get_stats(self) -> Dict[str, Any]:
        return {
            "listeners": {
                event.value: len(handlers)
                for event, handlers in self._listeners.items()
                if handlers
            },
            "events": {name: dict(counts) for name, counts in self._stats.items()},
        }
