"""
pagesync Error Types

Exception hierarchy shared by the session, dispatcher, watcher and injector.
"""

from __future__ import annotations

from typing import Optional


class PageSyncError(Exception):
    """Base class for all pagesync errors."""


class ConfigError(PageSyncError):
    """Configuration could not be loaded or validated."""


class PluginError(PageSyncError):
    """A plugin failed to load or one of its hooks raised."""

    def __init__(self, plugin: str, hook: Optional[str], message: str):
        self.plugin = plugin
        self.hook = hook
        where = f"hook '{hook}' of plugin '{plugin}'" if hook else f"plugin '{plugin}'"
        super().__init__(f"Error in {where}: {message}")


class InjectionError(PageSyncError):
    """An asset could not be injected into a page."""

    def __init__(self, path: str, platform_id: str, message: str):
        self.path = path
        self.platform_id = platform_id
        super().__init__(f"Failed to inject '{path}' into platform '{platform_id}': {message}")


class PageClosedError(InjectionError):
    """The target page was already closed."""

    def __init__(self, path: str, platform_id: str):
        super().__init__(path, platform_id, "page is closed")


class WatchSetupError(PageSyncError):
    """The file watcher could not be set up."""


class LifecycleError(PageSyncError):
    """Session lifecycle failure (fatal to start)."""

    def __init__(self, from_state: str, to_state: str, message: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Cannot transition session from {from_state} to {to_state}: {message}"
        )
