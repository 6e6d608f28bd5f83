"""
pagesync - browser pages kept in sync with local files

A development session that:
- Opens one browser page per configured platform
- Injects local scripts and styles into each page
- Replaces an asset in place, or reloads the page, when its file changes
- Runs a hook-based plugin pipeline around all of it
"""

__version__ = "1.0.0"

from pagesync.core.config import DevServerConfig, define_config
from pagesync.core.session import DevSession, SessionState
from pagesync.plugins.types import BasePlugin, Hook, Plugin, hook

__all__ = [
    "DevServerConfig",
    "DevSession",
    "SessionState",
    "define_config",
    "BasePlugin",
    "Hook",
    "Plugin",
    "hook",
    "__version__",
]
