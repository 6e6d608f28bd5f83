"""
pagesync Example Plugins

Optional plugins users can add to ``config.plugins``.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from pagesync.core.events import FileChangeKind
from pagesync.core.patterns import PatternSet
from pagesync.plugins.context import PluginContext
from pagesync.plugins.types import BasePlugin, Hook, Plugin, hook

# Console message type -> DevLogger method
_CONSOLE_LEVELS = {
    "error": "error",
    "warning": "warning",
    "info": "info",
    "debug": "debug",
}

TITLE_MONITOR_JS = """
(platformId) => {
  const target = document.querySelector('title') || document.head;
  const observer = new MutationObserver(() => {
    console.log('[' + platformId + '] Page title changed to: ' + document.title);
  });
  observer.observe(target, { childList: true, subtree: true, characterData: true });
}
"""

SET_ENV_JS = "(env) => { window.__ENV__ = env; }"

SLOW_RESOURCE_MS = 1000

PERFORMANCE_MONITOR_JS = """
([platformId, slowMs]) => {
  const report = () => {
    const nav = performance.getEntriesByType('navigation')[0];
    if (!nav) return;
    console.log('[' + platformId + '] Page load performance', JSON.stringify({
      domContentLoaded: nav.domContentLoadedEventEnd - nav.domContentLoadedEventStart,
      loadComplete: nav.loadEventEnd - nav.loadEventStart,
      totalTime: nav.loadEventEnd - nav.fetchStart,
    }));
  };
  if (document.readyState === 'complete') {
    report();
  } else {
    window.addEventListener('load', report, { once: true });
  }

  const observer = new PerformanceObserver((list) => {
    for (const entry of list.getEntries()) {
      if (entry.duration > slowMs) {
        console.warn('[' + platformId + '] Slow resource: ' + entry.name + ' ' + Math.round(entry.duration) + 'ms');
      }
    }
  });
  observer.observe({ type: 'resource', buffered: true });
}
"""


def console_logger_plugin() -> Plugin:
    """Forward page console output, page errors and failed requests to the log."""

    def platform_created(ctx: PluginContext, platform_id: str, page: Any) -> None:
        log = ctx.logger.bind(platform_id=platform_id, source="page")

        def on_console(msg: Any) -> None:
            method = _CONSOLE_LEVELS.get(msg.type, "info")
            getattr(log, method)(msg.text, console_type=msg.type)

        def on_page_error(error: Any) -> None:
            log.error("Uncaught page error", error=str(getattr(error, "message", error)))

        def on_request_failed(request: Any) -> None:
            log.warning("Request failed", url=request.url, failure=request.failure)

        page.on("console", on_console)
        page.on("pageerror", on_page_error)
        page.on("requestfailed", on_request_failed)
        ctx.logger.info("Console monitoring enabled", platform_id=platform_id)

    return Plugin(
        name="console-logger",
        hooks={Hook.PLATFORM_CREATED: platform_created},
    )


def auto_reload_plugin(patterns: Iterable[str] = ("**/*.html",)) -> Plugin:
    """Reload every live page when a matching file is added or changed."""
    pattern_set = PatternSet(patterns)

    async def file_changed(ctx: PluginContext, path: str, kind: FileChangeKind) -> None:
        if FileChangeKind(kind) is FileChangeKind.REMOVED or not pattern_set.matches(path):
            return

        capabilities = ctx.require_capabilities("auto-reload", Hook.FILE_CHANGED)
        if capabilities is None:
            return

        for platform_id, page in ctx.get_pages().items():
            if page.is_closed():
                continue
            ctx.logger.info("Auto reload", path=path, platform_id=platform_id)
            await capabilities.reload_platform(platform_id, page)

    return Plugin(
        name="auto-reload",
        order=50,
        hooks={Hook.FILE_CHANGED: file_changed},
        watch_patterns=tuple(pattern_set.patterns),
    )


def script_timing_plugin() -> Plugin:
    """Wrap injected scripts with console.time/timeEnd markers."""

    def transform_script(ctx: PluginContext, code: str, path: str, platform_id: str) -> str:
        label = json.dumps(f"[{platform_id}] Script execution: {path}")
        return f"console.time({label});\n{code}\nconsole.timeEnd({label});\n"

    return Plugin(
        name="script-timing",
        order=5,
        hooks={Hook.TRANSFORM_SCRIPT: transform_script},
    )


def env_injection_plugin(env_vars: Optional[Dict[str, str]] = None) -> Plugin:
    """Expose ``window.__ENV__`` to every platform page once it is ready."""
    extra = dict(env_vars or {})

    async def platform_ready(ctx: PluginContext, platform_id: str, page: Any) -> None:
        env = {
            "PAGESYNC_ENV": os.environ.get("PAGESYNC_ENV", "development"),
            "PLATFORM_ID": platform_id,
            **extra,
        }
        await page.evaluate(SET_ENV_JS, env)
        ctx.logger.info("Environment injected", platform_id=platform_id, keys=sorted(env))

    return Plugin(
        name="env-injection",
        order=1,
        hooks={Hook.PLATFORM_READY: platform_ready},
    )


class AutoScreenshotPlugin(BasePlugin):
    """Take full-page screenshots on page errors and, optionally, on navigation."""

    name = "auto-screenshot"
    order = 40

    def __init__(
        self,
        on_error: bool = True,
        on_navigate: bool = False,
        output_dir: str = "./screenshots",
    ):
        self.on_error = on_error
        self.on_navigate = on_navigate
        self.output_dir = output_dir

    def screenshot_path(self, ctx: PluginContext, platform_id: str, reason: str) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
        return ctx.project_root / self.output_dir / f"{platform_id}-{reason}-{timestamp}.png"

    async def capture(self, ctx: PluginContext, platform_id: str, page: Any, reason: str) -> Optional[Path]:
        path = self.screenshot_path(ctx, platform_id, reason)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            ctx.logger.error("Failed to take screenshot", platform_id=platform_id, error=str(e))
            return None
        ctx.logger.info("Screenshot saved", platform_id=platform_id, path=str(path))
        return path

    @hook(Hook.PLATFORM_CREATED)
    def watch_errors(self, ctx: PluginContext, platform_id: str, page: Any) -> None:
        if not self.on_error:
            return

        async def on_page_error(_: Any) -> None:
            await self.capture(ctx, platform_id, page, "error")

        page.on("pageerror", on_page_error)

    @hook(Hook.PLATFORM_NAVIGATE)
    async def after_navigate(
        self,
        ctx: PluginContext,
        platform_id: str,
        page: Any,
        url: Optional[str] = None,
    ) -> None:
        if self.on_navigate:
            await self.capture(ctx, platform_id, page, "navigate")


def auto_screenshot_plugin(
    on_error: bool = True,
    on_navigate: bool = False,
    output_dir: str = "./screenshots",
) -> Plugin:
    return AutoScreenshotPlugin(on_error, on_navigate, output_dir).to_plugin()


def page_title_monitor_plugin() -> Plugin:
    """Log document title changes from inside the page."""

    async def platform_ready(ctx: PluginContext, platform_id: str, page: Any) -> None:
        await page.evaluate(TITLE_MONITOR_JS, platform_id)
        ctx.logger.info("Title monitoring enabled", platform_id=platform_id)

    return Plugin(
        name="page-title-monitor",
        order=20,
        hooks={Hook.PLATFORM_READY: platform_ready},
    )


def performance_monitor_plugin(slow_resource_ms: int = SLOW_RESOURCE_MS) -> Plugin:
    """Report navigation timing and slow resources to the page console."""

    async def platform_ready(ctx: PluginContext, platform_id: str, page: Any) -> None:
        await page.evaluate(PERFORMANCE_MONITOR_JS, [platform_id, slow_resource_ms])
        ctx.logger.info("Performance monitoring enabled", platform_id=platform_id)

    return Plugin(
        name="performance-monitor",
        order=30,
        hooks={Hook.PLATFORM_READY: platform_ready},
    )
