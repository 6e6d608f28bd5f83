"""
pagesync Plugin Context

The receiver passed to every hook. Built in two phases: a minimal context
when the dispatcher is created, then a single immutable Capabilities value
attached once all providers exist.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from pagesync.core.config import AssetConfig, DevServerConfig
from pagesync.core.events import BusEvent, EventHandler
from pagesync.core.logging import DevLogger

if TYPE_CHECKING:
    from pagesync.core.browser import PageHandle
    from pagesync.plugins.types import Hook


@dataclass(frozen=True)
class Capabilities:
    """Operations provided by the session to plugins."""

    inject_script: Callable[[str, "PageHandle", AssetConfig], Awaitable[bool]]
    inject_style: Callable[[str, "PageHandle", AssetConfig], Awaitable[bool]]
    reinject_all_assets: Callable[[str, "PageHandle"], Awaitable[None]]
    reload_platform: Callable[[str, "PageHandle"], Awaitable[bool]]
    execute_transform_hook: Callable[..., Awaitable[str]]


@dataclass(frozen=True)
class PluginContext:
    """
    Context provided to plugins.

    Attributes:
        project_root: Absolute project root
        config: Current configuration snapshot
        logger: Session logger
        capabilities: None until the session has assembled them
    """

    project_root: Path
    config: DevServerConfig
    logger: DevLogger
    emit: Callable[[BusEvent, Any], Awaitable[None]]
    on: Callable[[BusEvent, EventHandler], None]
    off: Callable[[BusEvent, EventHandler], bool]
    once: Callable[[BusEvent, EventHandler], None]
    get_page: Callable[[str], Optional["PageHandle"]]
    get_pages: Callable[[], Dict[str, "PageHandle"]]
    capabilities: Optional[Capabilities] = None

    def with_capabilities(self, capabilities: Capabilities) -> "PluginContext":
        return replace(self, capabilities=capabilities)

    def with_config(self, config: DevServerConfig) -> "PluginContext":
        return replace(self, config=config)

    def require_capabilities(self, plugin: str, hook: "Hook") -> Optional[Capabilities]:
        """Return capabilities, or log and return None when not yet assembled."""
        if self.capabilities is None:
            self.logger.error(
                "Capabilities not available",
                plugin=plugin,
                hook=getattr(hook, "value", hook),
            )
        return self.capabilities
