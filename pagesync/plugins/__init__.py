"""
pagesync Plugin System

Plugin descriptors, the hook dispatcher, the built-in injection plugins and
a set of optional example plugins.
"""

from pagesync.plugins.types import (
    BasePlugin,
    Hook,
    HookFamily,
    Plugin,
    hook,
)
from pagesync.plugins.context import Capabilities, PluginContext
from pagesync.plugins.dispatcher import PluginDispatcher
from pagesync.plugins.builtin import (
    builtin_plugins,
    script_injection_plugin,
    style_injection_plugin,
)
from pagesync.plugins.examples import (
    auto_reload_plugin,
    auto_screenshot_plugin,
    console_logger_plugin,
    env_injection_plugin,
    page_title_monitor_plugin,
    performance_monitor_plugin,
    script_timing_plugin,
)

__all__ = [
    "BasePlugin",
    "Hook",
    "HookFamily",
    "Plugin",
    "hook",
    "Capabilities",
    "PluginContext",
    "PluginDispatcher",
    "builtin_plugins",
    "script_injection_plugin",
    "style_injection_plugin",
    "auto_reload_plugin",
    "auto_screenshot_plugin",
    "console_logger_plugin",
    "env_injection_plugin",
    "page_title_monitor_plugin",
    "performance_monitor_plugin",
    "script_timing_plugin",
]
