"""
pagesync File Watcher

Turns watchdog notifications under the project root into file:changed bus
events for paths matching the watch pattern set.

watchdog only reports changes made after the observer starts, so the initial
state of the tree never produces events. Changes are not debounced; each one
is emitted on its own, one at a time, in arrival order.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from pagesync.core.errors import WatchSetupError
from pagesync.core.events import BusEvent, EventBus, FileChangeEvent, FileChangeKind
from pagesync.core.logging import DevLogger
from pagesync.core.patterns import PatternSet, normalize_path


class FileWatcher:
    """
    Project file watcher.

    The observer runs on its own thread; every notification is handed to the
    event loop with call_soon_threadsafe and queued there, so all matching and
    emitting happens on the loop.
    """

    def __init__(
        self,
        project_root: Path,
        bus: EventBus,
        logger: Optional[DevLogger] = None,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self.project_root = Path(project_root).resolve()
        self._bus = bus
        self._logger = (logger or DevLogger()).bind(component="watcher")
        self._observer_factory = observer_factory

        self._observer: Optional[Any] = None
        self._patterns = PatternSet()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def patterns(self) -> list:
        return self._patterns.patterns

    # === Lifecycle ===

    def start(self, patterns: Iterable[str]) -> bool:
        """
        Start watching.

        Returns:
            False when no pattern was resolved (the watcher stays off)
        """
        if self._observer is not None:
            self._logger.warning("File watcher already started")
            return True

        pattern_set = PatternSet(patterns)
        if not pattern_set:
            error = WatchSetupError("no watch patterns resolved")
            self._logger.warning("File watcher not started", error=str(error))
            return False

        self._patterns = pattern_set
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._consumer = self._loop.create_task(self._consume())

        observer = self._observer_factory()
        observer.schedule(
            _WatchdogHandler(self, self._loop),
            str(self.project_root),
            recursive=True,
        )
        observer.start()
        self._observer = observer

        self._logger.info(
            "File watcher started",
            root=str(self.project_root),
            patterns=self._patterns.patterns,
        )
        return True

    async def stop(self) -> None:
        """Stop the observer, then wait for queued changes to finish."""
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join)

        await self.drain()

        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        self._queue = None
        if observer is not None:
            self._logger.info("File watcher stopped")

    async def drain(self) -> None:
        """Wait until every queued change has been handled."""
        if self._queue is not None:
            await self._queue.join()

    # === Change handling ===

    def relative_path(self, src_path: str) -> Optional[str]:
        """Project-relative, normalized path; None for paths outside the root."""
        try:
            relative = os.path.relpath(os.path.abspath(src_path), self.project_root)
        except ValueError:
            # Different drive on Windows
            return None
        relative = normalize_path(relative)
        if not relative or relative == ".." or relative.startswith("../"):
            return None
        return relative

    def dispatch_fs_event(self, src_path: str, kind: FileChangeKind) -> bool:
        """
        Queue a change for emission if it matches the pattern set.

        Must run on the event loop thread.

        Returns:
            True if the change was queued
        """
        if self._queue is None:
            return False

        path = self.relative_path(src_path)
        if path is None or not self._patterns.matches(path):
            return False

        self._queue.put_nowait(FileChangeEvent(path=path, kind=FileChangeKind(kind)))
        return True

    async def _consume(self) -> None:
        queue = self._queue
        while True:
            event = await queue.get()
            try:
                self._logger.debug("File changed", path=event.path, kind=event.kind.value)
                await self._bus.emit(BusEvent.FILE_CHANGED, event)
            finally:
                queue.task_done()


class _WatchdogHandler(FileSystemEventHandler):
    """Watchdog handler forwarding file events to the loop."""

    def __init__(self, watcher: FileWatcher, loop: asyncio.AbstractEventLoop):
        self.watcher = watcher
        self._loop = loop

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._post(event.src_path, FileChangeKind.ADDED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._post(event.src_path, FileChangeKind.CHANGED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._post(event.src_path, FileChangeKind.REMOVED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._post(event.src_path, FileChangeKind.REMOVED)
            self._post(event.dest_path, FileChangeKind.ADDED)

    def _post(self, path: Any, kind: FileChangeKind) -> None:
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        try:
            self._loop.call_soon_threadsafe(self.watcher.dispatch_fs_event, str(path), kind)
        except RuntimeError:
            # Loop already closed during shutdown
            pass
