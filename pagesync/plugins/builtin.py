"""
pagesync Built-in Plugins

Script and style injection. On platform_ready and platform_navigate the
plugin for the platform's leading asset kind (``reinject_order``) injects the
whole asset set, so a page gets the same order on first load as after a
reload. On file_changed each plugin decides between replacing one asset in
place and reloading the page.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from pagesync.core.config import AssetKind, PlatformConfig
from pagesync.core.events import FileChangeKind
from pagesync.core.patterns import normalize_path
from pagesync.plugins.context import Capabilities, PluginContext
from pagesync.plugins.types import Hook, Plugin

SCRIPT_PLUGIN_NAME = "script-injection"
STYLE_PLUGIN_NAME = "style-injection"
SCRIPT_PLUGIN_ORDER = 10
STYLE_PLUGIN_ORDER = 11


def _injector_for(capabilities: Capabilities, kind: AssetKind) -> Callable[..., Any]:
    if kind is AssetKind.SCRIPT:
        return capabilities.inject_script
    return capabilities.inject_style


def leading_kind(platform: PlatformConfig) -> AssetKind:
    """Asset kind injected first on this platform."""
    if platform.reinject_order == "scripts-first":
        return AssetKind.SCRIPT
    return AssetKind.STYLE


def asset_injection_plugin(kind: AssetKind, name: str, order: int) -> Plugin:
    """Build the injection plugin for one asset kind."""
    kind = AssetKind(kind)

    async def inject_platform(ctx: PluginContext, hook: Hook, platform_id: str, page: Any) -> None:
        platform = ctx.config.get_platform(platform_id)
        if platform is None or leading_kind(platform) is not kind:
            return
        if not (platform.scripts or platform.styles):
            return

        capabilities = ctx.require_capabilities(name, hook)
        if capabilities is None:
            return

        await capabilities.reinject_all_assets(platform_id, page)

    async def platform_ready(ctx: PluginContext, platform_id: str, page: Any) -> None:
        await inject_platform(ctx, Hook.PLATFORM_READY, platform_id, page)

    async def platform_navigate(
        ctx: PluginContext,
        platform_id: str,
        page: Any,
        url: Optional[str] = None,
    ) -> None:
        # Navigation discards every injected node
        await inject_platform(ctx, Hook.PLATFORM_NAVIGATE, platform_id, page)

    async def file_changed(ctx: PluginContext, path: str, change: FileChangeKind) -> None:
        if FileChangeKind(change) is FileChangeKind.REMOVED:
            return

        changed = normalize_path(path)
        for platform_id, platform in ctx.config.platforms.items():
            asset = next(
                (a for a in platform.assets(kind) if a.normalized_path == changed),
                None,
            )
            if asset is None:
                continue

            page = ctx.get_page(platform_id)
            if page is None or page.is_closed():
                ctx.logger.debug(
                    "No live page for changed asset",
                    plugin=name,
                    path=changed,
                    platform_id=platform_id,
                )
                continue

            capabilities = ctx.require_capabilities(name, Hook.FILE_CHANGED)
            if capabilities is None:
                return

            if asset.reload_on_change:
                ctx.logger.info(
                    "Reloading page for changed asset",
                    path=changed,
                    platform_id=platform_id,
                )
                await capabilities.reload_platform(platform_id, page)
            else:
                ctx.logger.info(
                    "Replacing asset",
                    kind=kind.value,
                    path=changed,
                    platform_id=platform_id,
                )
                await _injector_for(capabilities, kind)(platform_id, page, asset)

    return Plugin(
        name=name,
        order=order,
        hooks={
            Hook.PLATFORM_READY: platform_ready,
            Hook.PLATFORM_NAVIGATE: platform_navigate,
            Hook.FILE_CHANGED: file_changed,
        },
    )


def script_injection_plugin() -> Plugin:
    """Injects and hot-replaces configured scripts."""
    return asset_injection_plugin(AssetKind.SCRIPT, SCRIPT_PLUGIN_NAME, SCRIPT_PLUGIN_ORDER)


def style_injection_plugin() -> Plugin:
    """Injects and hot-replaces configured styles."""
    return asset_injection_plugin(AssetKind.STYLE, STYLE_PLUGIN_NAME, STYLE_PLUGIN_ORDER)


def builtin_plugins() -> list:
    return [script_injection_plugin(), style_injection_plugin()]
