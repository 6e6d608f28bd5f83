"""
pagesync Session

Composes the bus, dispatcher, page manager, injector and watcher with the
browser collaborator, and owns the start/stop lifecycle.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pagesync.core.browser import BrowserDriver, PageHandle, PlaywrightDriver
from pagesync.core.config import AssetConfig, DevServerConfig
from pagesync.core.errors import LifecycleError, PageSyncError
from pagesync.core.events import BusEvent, EventBus, ServerEvent
from pagesync.core.injector import AssetInjector, Reader, read_text
from pagesync.core.logging import DevLogger
from pagesync.core.pages import PageManager
from pagesync.core.patterns import PatternSet
from pagesync.core.watcher import FileWatcher
from pagesync.plugins.builtin import builtin_plugins
from pagesync.plugins.context import Capabilities, PluginContext
from pagesync.plugins.dispatcher import PluginDispatcher
from pagesync.plugins.types import Hook


class SessionState(str, Enum):
    """Session lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


# Valid state transitions
STATE_TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.STOPPED: {SessionState.STARTING},
    SessionState.STARTING: {SessionState.RUNNING, SessionState.STOPPED},
    SessionState.RUNNING: {SessionState.STOPPING},
    SessionState.STOPPING: {SessionState.STOPPED},
}


class DevSession:
    """
    A development session.

    Usage:
        async with DevSession(config, project_root) as session:
            await session.navigate("desktop", "http://localhost:3000/about")

    Start order: browser -> plugins -> capabilities -> build_start ->
    server:start -> platform pages -> watcher -> build_end.
    """

    def __init__(
        self,
        config: DevServerConfig,
        project_root: Optional[Path] = None,
        *,
        browser: Optional[BrowserDriver] = None,
        reader: Optional[Reader] = None,
        logger: Optional[DevLogger] = None,
        observer_factory: Optional[Callable[[], Any]] = None,
    ):
        self.config = config
        self.project_root = Path(project_root or config.root or Path.cwd()).resolve()
        self.logger = logger or DevLogger()
        self._logger = self.logger.bind(component="session")

        self.bus = EventBus(self.logger)
        self.browser: BrowserDriver = browser or PlaywrightDriver(
            config.browser_options.browser,
            self.logger,
        )
        self.pages = PageManager(self.browser, config, self.bus, self.logger)

        self.dispatcher = PluginDispatcher(
            PluginContext(
                project_root=self.project_root,
                config=config,
                logger=self.logger,
                emit=self.bus.emit,
                on=self.bus.on,
                off=self.bus.off,
                once=self.bus.once,
                get_page=self.pages.get_page,
                get_pages=self.pages.get_pages,
            ),
            self.logger,
        )
        self.injector = AssetInjector(
            self.project_root,
            config,
            self.logger,
            emit=self.bus.emit,
            transform=self.dispatcher.execute_transform_hook,
            reader=reader or read_text,
        )

        watcher_kwargs: Dict[str, Any] = {}
        if observer_factory is not None:
            watcher_kwargs["observer_factory"] = observer_factory
        self.watcher = FileWatcher(self.project_root, self.bus, self.logger, **watcher_kwargs)

        self._state = SessionState.STOPPED
        self._closed = False

        self._logger.info("Project root", root=str(self.project_root))

    # === State ===

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    def _transition(self, target: SessionState) -> None:
        if target not in STATE_TRANSITIONS.get(self._state, set()):
            raise LifecycleError(self._state.value, target.value, "invalid transition")
        self._logger.debug(
            "Session state change",
            from_state=self._state.value,
            to_state=target.value,
        )
        self._state = target

    # === Lifecycle ===

    async def start(self) -> "DevSession":
        """
        Start the session.

        A no-op (with a warning) when already starting or running.

        Raises:
            LifecycleError: The browser or a startup step failed, or the
                session was closed. The session is back to STOPPED.
        """
        if self._closed:
            raise LifecycleError(
                self._state.value,
                SessionState.STARTING.value,
                "session has been closed",
            )
        if self._state in (SessionState.STARTING, SessionState.RUNNING):
            self._logger.warning("Session is already started", state=self._state.value)
            return self
        if self._state is SessionState.STOPPING:
            raise LifecycleError(self._state.value, SessionState.STARTING.value, "session is stopping")

        self._transition(SessionState.STARTING)
        self._logger.info("Starting session")

        try:
            await self.browser.launch(self.config.browser_options.launch_options())

            self.dispatcher.attach(self.bus)
            await self.dispatcher.load_plugins(self._plugin_sources())
            self.dispatcher.set_capabilities(self._build_capabilities())

            await self.dispatcher.execute_hook(Hook.BUILD_START)
            await self.bus.emit(BusEvent.SERVER_START, ServerEvent(self.config))

            await self.pages.launch_platform_pages()

            self.watcher.start(self.watch_patterns())

            await self.dispatcher.execute_hook(Hook.BUILD_END)
        except Exception as e:
            self._logger.exception("Failed to start session", error=str(e))
            await self._teardown()
            self._transition(SessionState.STOPPED)
            raise LifecycleError(
                SessionState.STARTING.value,
                SessionState.RUNNING.value,
                str(e),
            ) from e

        self._transition(SessionState.RUNNING)
        self._logger.info("Session started", platforms=list(self.config.platforms))
        return self

    async def stop(self) -> None:
        """Stop the session. Idempotent."""
        if self._state is not SessionState.RUNNING:
            return

        self._transition(SessionState.STOPPING)
        self._logger.info("Stopping session")

        await self.bus.emit(BusEvent.SERVER_STOP, ServerEvent(self.config))
        await self._teardown()

        self._transition(SessionState.STOPPED)
        self._logger.info("Session stopped")

    async def close(self) -> None:
        """Stop and tear down for good; start() afterwards raises."""
        await self.stop()
        self._closed = True

    async def _teardown(self) -> None:
        """Release every resource, best effort."""
        try:
            # Waits for in-flight change handling before pages go away
            await self.watcher.stop()
        except Exception as e:
            self._logger.error("Error stopping file watcher", error=str(e))

        await self.pages.close_all_pages()

        try:
            await self.browser.close()
        except Exception as e:
            self._logger.error("Error closing browser", error=str(e))

        self.bus.remove_all_listeners()
        self.dispatcher.detach()
        await self.dispatcher.wait_pending()

    async def __aenter__(self) -> "DevSession":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # === Wiring ===

    def _plugin_sources(self, user_plugins: Optional[Iterable[Any]] = None) -> List[Any]:
        plugins = self.config.plugins if user_plugins is None else user_plugins
        return [*builtin_plugins(), *plugins]

    def _build_capabilities(self) -> Capabilities:
        return Capabilities(
            inject_script=self.injector.inject_script,
            inject_style=self.injector.inject_style,
            reinject_all_assets=self.injector.reinject_all_assets,
            reload_platform=self.injector.reload_platform,
            execute_transform_hook=self.dispatcher.execute_transform_hook,
        )

    def watch_patterns(self) -> List[str]:
        """Plugin patterns plus every configured asset path."""
        return PatternSet([
            *self.dispatcher.watch_patterns,
            *self.config.asset_patterns(),
        ]).patterns

    # === Runtime operations ===

    def _require_running(self) -> None:
        if self._state is not SessionState.RUNNING:
            raise PageSyncError("Session is not started")

    async def navigate(self, platform_id: str, url: str) -> None:
        self._require_running()
        await self.pages.navigate(platform_id, url)

    async def inject_script(self, platform_id: str, script_path: str) -> bool:
        """Inject a script by path, using its configured entry when there is one."""
        self._require_running()
        page = self.pages.get_page(platform_id)
        if page is None:
            raise PageSyncError(f"Platform {platform_id} not found")

        matches = dict(self.injector.find_assets(script_path, "script"))
        asset = matches.get(platform_id) or AssetConfig(path=script_path)
        return await self.injector.inject_script(platform_id, page, asset)

    def get_page(self, platform_id: str) -> Optional[PageHandle]:
        return self.pages.get_page(platform_id)

    def get_page_list(self) -> List[Dict[str, str]]:
        return self.pages.get_page_list()

    async def reload_plugins(self, sources: Optional[Iterable[Any]] = None) -> None:
        """
        Replace the plugin list.

        Safe to call from a hook: the swap then happens once the running
        hook chain finishes. Watch patterns are computed at start; new
        patterns need a restart.
        """
        await self.dispatcher.load_plugins(self._plugin_sources(sources))
        if self._state is SessionState.RUNNING:
            self.dispatcher.set_capabilities(self._build_capabilities())

    async def update_config(self, config: DevServerConfig) -> None:
        """Swap the configuration snapshot and reload plugins."""
        self.config = config
        self.pages.update_config(config)
        self.injector.update_config(config)
        self.dispatcher.update_config(config)
        if self._state is SessionState.RUNNING:
            await self.reload_plugins()
            self._logger.info("Configuration updated; restart to pick up new watch patterns")
