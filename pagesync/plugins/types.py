"""
pagesync Plugin Types

Plugin descriptors and the hook surface.

A plugin declares which hooks it implements through its ``hooks`` mapping.
Class-based plugins mark methods with the ``@hook`` decorator and are turned
into descriptors by ``Plugin.from_object``.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

DEFAULT_PLUGIN_ORDER = 100


class HookFamily(str, Enum):
    """Groups of related hooks."""

    BUILD = "build"
    PLATFORM = "platform"
    FILE = "file"
    TRANSFORM = "transform"


class Hook(str, Enum):
    """
    Hook points a plugin may implement.

    Every handler receives the session PluginContext as first argument:

        build_start(ctx)
        build_end(ctx)
        platform_created(ctx, platform_id, page)
        platform_ready(ctx, platform_id, page)
        platform_navigate(ctx, platform_id, page, url)
        file_changed(ctx, path, kind)
        transform_script(ctx, code, path, platform_id) -> str
        transform_style(ctx, code, path, platform_id) -> str
    """

    BUILD_START = "build_start"
    BUILD_END = "build_end"
    PLATFORM_CREATED = "platform_created"
    PLATFORM_READY = "platform_ready"
    PLATFORM_NAVIGATE = "platform_navigate"
    FILE_CHANGED = "file_changed"
    TRANSFORM_SCRIPT = "transform_script"
    TRANSFORM_STYLE = "transform_style"

    @property
    def family(self) -> HookFamily:
        return _HOOK_FAMILIES[self]

    @property
    def is_transform(self) -> bool:
        return self.family is HookFamily.TRANSFORM


_HOOK_FAMILIES: Dict[Hook, HookFamily] = {
    Hook.BUILD_START: HookFamily.BUILD,
    Hook.BUILD_END: HookFamily.BUILD,
    Hook.PLATFORM_CREATED: HookFamily.PLATFORM,
    Hook.PLATFORM_READY: HookFamily.PLATFORM,
    Hook.PLATFORM_NAVIGATE: HookFamily.PLATFORM,
    Hook.FILE_CHANGED: HookFamily.FILE,
    Hook.TRANSFORM_SCRIPT: HookFamily.TRANSFORM,
    Hook.TRANSFORM_STYLE: HookFamily.TRANSFORM,
}

HookHandler = Callable[..., Any]


@dataclass(frozen=True)
class Plugin:
    """
    A loaded plugin.

    Attributes:
        name: Unique name, used in diagnostics
        order: Execution order (lower = earlier); ties keep load order
        hooks: Sparse mapping of implemented hooks to handlers
        watch_patterns: Glob patterns the watcher should observe
    """

    name: str
    order: int = DEFAULT_PLUGIN_ORDER
    hooks: Mapping[Hook, HookHandler] = field(default_factory=dict)
    watch_patterns: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        hooks = {Hook(name): handler for name, handler in dict(self.hooks).items()}
        for hook_name, handler in hooks.items():
            if not callable(handler):
                raise TypeError(f"Handler for '{hook_name.value}' in plugin '{self.name}' is not callable")
        object.__setattr__(self, "hooks", hooks)
        object.__setattr__(self, "watch_patterns", tuple(self.watch_patterns))

    def get_handler(self, hook: Hook) -> Optional[HookHandler]:
        return self.hooks.get(Hook(hook))

    @classmethod
    def from_object(cls, obj: Any) -> "Plugin":
        """
        Build a descriptor from an object with ``@hook``-decorated methods.

        ``name``, ``order`` and ``watch_patterns`` are read from the object
        when present; name falls back to the class name.
        """
        hooks: Dict[Hook, HookHandler] = {}
        for _, member in inspect.getmembers(obj, predicate=callable):
            hook_name = getattr(member, "_pagesync_hook", None)
            if hook_name is not None:
                hooks[Hook(hook_name)] = member

        return cls(
            name=getattr(obj, "name", None) or type(obj).__name__,
            order=getattr(obj, "order", DEFAULT_PLUGIN_ORDER),
            hooks=hooks,
            watch_patterns=tuple(getattr(obj, "watch_patterns", ()) or ()),
        )


def hook(hook_name: Hook) -> Callable[[HookHandler], HookHandler]:
    """
    Decorator to mark a method as a hook handler.

    Usage:
        class TitlePlugin(BasePlugin):
            name = "title"

            @hook(Hook.PLATFORM_READY)
            async def on_ready(self, ctx, platform_id, page):
                ...
    """
    hook_name = Hook(hook_name)

    def decorator(func: HookHandler) -> HookHandler:
        func._pagesync_hook = hook_name
        return func

    return decorator


class BasePlugin:
    """Optional base class for class-based plugins."""

    name: str = ""
    order: int = DEFAULT_PLUGIN_ORDER
    watch_patterns: List[str] = []

    def to_plugin(self) -> Plugin:
        return Plugin.from_object(self)
