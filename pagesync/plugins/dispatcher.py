"""
pagesync Plugin Dispatcher

Loads plugin sources into an ordered plugin list and runs hooks over it.

Two execution modes:
- execute_hook: side-effect hooks, strictly sequential by plugin order
- execute_transform_hook: each plugin's string result feeds the next plugin
"""

from __future__ import annotations

import asyncio
import inspect
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic.alias_generators import to_snake

from pagesync.core.config import DevServerConfig
from pagesync.core.errors import PluginError
from pagesync.core.events import BusEvent, EventBus, FileChangeEvent, PlatformEvent
from pagesync.core.logging import DevLogger
from pagesync.core.patterns import normalize_path
from pagesync.plugins.context import Capabilities, PluginContext
from pagesync.plugins.types import Hook, Plugin

# Depth of hook executions in the current task (inherited by tasks they spawn)
_hook_depth: ContextVar[int] = ContextVar("pagesync_hook_depth", default=0)



def _snake_case_source(source: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept config-style camelCase keys (watchPatterns, buildStart...)."""
    data = {to_snake(str(key)): value for key, value in source.items()}
    hooks = data.get("hooks")
    if isinstance(hooks, Mapping):
        data["hooks"] = {
            key if isinstance(key, Hook) else to_snake(str(key)): handler
            for key, handler in hooks.items()
        }
    return data


class PluginDispatcher:
    """
    Plugin hook dispatcher.

    Features:
    - Plugin sources as descriptors, hook objects or (async) factories
    - Stable ordering by ``order``, ties in load order
    - Per-plugin failure isolation
    - Transform chains
    - Watch pattern aggregation
    - Hook statistics
    """

    def __init__(self, context: PluginContext, logger: Optional[DevLogger] = None):
        self._context = context
        self._logger = (logger or context.logger).bind(component="dispatcher")
        self._plugins: Tuple[Plugin, ...] = ()

        # In-flight hook executions; load_plugins() waits for zero
        self._active = 0
        self._idle = asyncio.Condition()

        self._pending_swap: Optional[asyncio.Task] = None

        self._bus: Optional[EventBus] = None
        self._stats: Dict[str, Dict[str, Any]] = {}

    # === Context ===

    @property
    def context(self) -> PluginContext:
        return self._context

    def set_capabilities(self, capabilities: Capabilities) -> PluginContext:
        """Attach the assembled capabilities to the shared context."""
        self._context = self._context.with_capabilities(capabilities)
        return self._context

    def update_config(self, config: DevServerConfig) -> None:
        self._context = self._context.with_config(config)

    # === Loading ===

    async def load_plugins(self, sources: Iterable[Any]) -> List[Plugin]:
        """
        Load plugins, replacing the current list.

        Sources that fail to resolve are logged and skipped. The swap waits
        for hook executions already in flight. Called from inside a hook, the
        swap is scheduled to happen once the running chain finishes and this
        call returns without waiting for it (see wait_pending()).

        Returns:
            The loaded plugins in execution order
        """
        loaded: List[Plugin] = []
        names = set()

        for index, source in enumerate(sources):
            try:
                plugin = await self._resolve(source)
            except Exception as e:
                label = getattr(source, "name", None) or getattr(source, "__name__", f"#{index}")
                self._logger.error(
                    "Failed to load plugin",
                    plugin=str(label),
                    error=str(PluginError(str(label), None, str(e))),
                )
                continue

            if plugin.name in names:
                self._logger.error(
                    "Duplicate plugin name, skipping",
                    plugin=plugin.name,
                )
                continue

            names.add(plugin.name)
            loaded.append(plugin)

        # Stable: equal orders keep load order
        loaded.sort(key=lambda p: p.order)

        if _hook_depth.get() > 0:
            self._logger.info(
                "Plugin swap deferred until running hooks finish",
                plugins=[p.name for p in loaded],
            )
            self._pending_swap = asyncio.ensure_future(self._swap(tuple(loaded)))
        else:
            await self._swap(tuple(loaded))
        return list(loaded)

    async def _swap(self, plugins: Tuple[Plugin, ...]) -> None:
        async with self._idle:
            await self._idle.wait_for(lambda: self._active == 0)
            self._plugins = plugins

        self._logger.info(
            f"Loaded {len(plugins)} plugins",
            plugins=[p.name for p in plugins],
        )

    async def wait_pending(self) -> None:
        """Wait for a deferred plugin swap, if any."""
        pending, self._pending_swap = self._pending_swap, None
        if pending is not None:
            await pending

    async def _resolve(self, source: Any) -> Plugin:
        """Turn a plugin source into a Plugin."""
        if isinstance(source, type):
            raise TypeError(f"Plugin class {source.__name__} must be instantiated")

        plugin = self._coerce(source)
        if plugin is None and callable(source):
            result = source()
            if inspect.isawaitable(result):
                result = await result
            plugin = self._coerce(result)
            if plugin is None:
                raise TypeError(f"Plugin factory returned {type(result).__name__}")

        if plugin is None:
            raise TypeError(f"Unsupported plugin source: {type(source).__name__}")
        return self._validate(plugin)

    @staticmethod
    def _coerce(obj: Any) -> Optional[Plugin]:
        """Convert descriptor-like objects; None for factories and unknowns."""
        if isinstance(obj, Plugin):
            return obj
        if isinstance(obj, Mapping):
            return Plugin(**_snake_case_source(obj))
        if hasattr(obj, "to_plugin"):
            return obj.to_plugin()
        if obj is not None and not callable(obj) and not isinstance(obj, (str, bytes, int)):
            return Plugin.from_object(obj)
        return None

    @staticmethod
    def _validate(plugin: Plugin) -> Plugin:
        if not isinstance(plugin.name, str) or not plugin.name.strip():
            raise ValueError("Plugin name must be a non-empty string")
        if not isinstance(plugin.order, int) or isinstance(plugin.order, bool):
            raise ValueError(f"Plugin order must be an integer, got {plugin.order!r}")
        return plugin

    # === Execution ===

    @asynccontextmanager
    async def _in_flight(self) -> AsyncIterator[Tuple[Plugin, ...]]:
        self._active += 1
        token = _hook_depth.set(_hook_depth.get() + 1)
        try:
            yield self._plugins
        finally:
            _hook_depth.reset(token)
            self._active -= 1
            if self._active == 0:
                async with self._idle:
                    self._idle.notify_all()

    async def execute_hook(self, hook: Hook, *args: Any) -> List[Any]:
        """
        Run a side-effect hook on every plugin implementing it.

        Plugins run one after another in ascending order. A failing plugin is
        logged and the remaining plugins still run.

        Returns:
            Results of the handlers that completed
        """
        hook = Hook(hook)
        if hook.is_transform:
            raise ValueError(f"{hook.value} is a transform hook; use execute_transform_hook")
        results = []
        start_time = time.time()

        async with self._in_flight() as plugins:
            for plugin in plugins:
                handler = plugin.get_handler(hook)
                if handler is None:
                    continue
                try:
                    results.append(await self._call_handler(handler, *args))
                except Exception as e:
                    self._record_error(hook, plugin, e)

        self._record_call(hook, start_time)
        return results

    async def execute_transform_hook(self, hook: Hook, value: str, *args: Any) -> str:
        """
        Run a transform chain.

        Each plugin receives the previous plugin's output. Results that are
        not strings, and failing plugins, leave the value unchanged.
        """
        hook = Hook(hook)
        if not hook.is_transform:
            raise ValueError(f"{hook.value} is not a transform hook")
        start_time = time.time()

        async with self._in_flight() as plugins:
            for plugin in plugins:
                handler = plugin.get_handler(hook)
                if handler is None:
                    continue
                try:
                    result = await self._call_handler(handler, value, *args)
                except Exception as e:
                    self._record_error(hook, plugin, e)
                    continue
                if isinstance(result, str):
                    value = result

        self._record_call(hook, start_time)
        return value

    async def _call_handler(self, handler: Any, *args: Any) -> Any:
        result = handler(self._context, *args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _record_error(self, hook: Hook, plugin: Plugin, error: Exception) -> None:
        self._stats_for(hook)["errors"] += 1
        self._logger.error(
            "Hook handler error",
            plugin=plugin.name,
            hook=hook.value,
            error=str(PluginError(plugin.name, hook.value, str(error))),
        )

    def _record_call(self, hook: Hook, start_time: float) -> None:
        stats = self._stats_for(hook)
        stats["calls"] += 1
        stats["total_time_ms"] += (time.time() - start_time) * 1000

    def _stats_for(self, hook: Hook) -> Dict[str, Any]:
        if hook.value not in self._stats:
            self._stats[hook.value] = {"calls": 0, "total_time_ms": 0.0, "errors": 0}
        return self._stats[hook.value]

    # === Bus wiring ===

    def attach(self, bus: EventBus) -> None:
        """Forward platform and file events from the bus to plugin hooks."""
        self.detach()
        self._bus = bus
        bus.on(BusEvent.PLATFORM_CREATED, self._on_platform_created)
        bus.on(BusEvent.PLATFORM_READY, self._on_platform_ready)
        bus.on(BusEvent.PLATFORM_NAVIGATE, self._on_platform_navigate)
        bus.on(BusEvent.FILE_CHANGED, self._on_file_changed)

    def detach(self) -> None:
        if self._bus is None:
            return
        self._bus.off(BusEvent.PLATFORM_CREATED, self._on_platform_created)
        self._bus.off(BusEvent.PLATFORM_READY, self._on_platform_ready)
        self._bus.off(BusEvent.PLATFORM_NAVIGATE, self._on_platform_navigate)
        self._bus.off(BusEvent.FILE_CHANGED, self._on_file_changed)
        self._bus = None

    async def _on_platform_created(self, event: PlatformEvent) -> None:
        await self.execute_hook(Hook.PLATFORM_CREATED, event.platform_id, event.page)

    async def _on_platform_ready(self, event: PlatformEvent) -> None:
        await self.execute_hook(Hook.PLATFORM_READY, event.platform_id, event.page)

    async def _on_platform_navigate(self, event: PlatformEvent) -> None:
        await self.execute_hook(Hook.PLATFORM_NAVIGATE, event.platform_id, event.page, event.url)

    async def _on_file_changed(self, event: FileChangeEvent) -> None:
        await self.execute_hook(Hook.FILE_CHANGED, event.path, event.kind)

    # === Queries ===

    @property
    def watch_patterns(self) -> List[str]:
        """Patterns declared by loaded plugins, in plugin order, de-duplicated."""
        patterns: List[str] = []
        for plugin in self._plugins:
            for pattern in plugin.watch_patterns:
                pattern = normalize_path(pattern)
                if pattern and pattern not in patterns:
                    patterns.append(pattern)
        return patterns

    def get_plugins(self) -> List[Plugin]:
        return list(self._plugins)

    def get_plugin(self, name: str) -> Optional[Plugin]:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    def get_stats(self, hook: Optional[Hook] = None) -> Dict[str, Any]:
        """Get hook statistics."""
        if hook is not None:
            return dict(self._stats.get(Hook(hook).value, {}))
        return {name: dict(stats) for name, stats in self._stats.items()}
