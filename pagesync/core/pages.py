"""
pagesync Page Manager

One browser context and page per platform, plus the platform id -> page map
exposed to plugins.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pagesync.core.browser import BrowserContextHandle, BrowserDriver, PageHandle
from pagesync.core.config import DevServerConfig, PlatformConfig
from pagesync.core.errors import PageSyncError
from pagesync.core.events import BusEvent, EventBus, PlatformEvent
from pagesync.core.logging import DevLogger

LOAD_STATE = "load"


class PageManager:
    """Creates, tracks and closes platform pages."""

    def __init__(
        self,
        browser: BrowserDriver,
        config: DevServerConfig,
        bus: EventBus,
        logger: Optional[DevLogger] = None,
    ):
        self._browser = browser
        self.config = config
        self._bus = bus
        self._logger = (logger or DevLogger()).bind(component="pages")
        self._pages: Dict[str, PageHandle] = {}
        self._contexts: Dict[str, BrowserContextHandle] = {}

    def update_config(self, config: DevServerConfig) -> None:
        self.config = config

    # === Launch ===

    async def launch_platform_pages(self) -> None:
        """Launch one page per configured platform, in declaration order."""
        for platform_id, platform in self.config.platforms.items():
            await self.launch_platform(platform_id, platform)

    async def launch_platform(self, platform_id: str, platform: PlatformConfig) -> PageHandle:
        """
        Create a context and page for a platform and open its URL.

        Emits platform:created before navigation and platform:ready once the
        page has loaded.
        """
        self._logger.info("Launching platform page", platform_id=platform_id, name=platform.name)

        context = await self._browser.new_context(dict(platform.context_options))
        self._contexts[platform_id] = context

        page = await context.new_page()
        self._pages[platform_id] = page

        async def on_close(*_: Any) -> None:
            await self._on_page_closed(platform_id, page)

        page.on("close", on_close)

        await self._bus.emit(BusEvent.PLATFORM_CREATED, PlatformEvent(platform_id, page))

        await page.goto(platform.url)
        await page.wait_for_load_state(LOAD_STATE)

        await self._bus.emit(
            BusEvent.PLATFORM_READY,
            PlatformEvent(platform_id, page, platform.url),
        )
        self._logger.info("Platform page ready", platform_id=platform_id, url=platform.url)
        return page

    async def _on_page_closed(self, platform_id: str, page: PageHandle) -> None:
        # Only pages closed from outside are still tracked here
        if self._pages.get(platform_id) is not page:
            return
        del self._pages[platform_id]
        self._logger.warning("Platform page closed", platform_id=platform_id)
        await self._bus.emit(BusEvent.PLATFORM_CLOSE, PlatformEvent(platform_id, page))

    # === Navigation ===

    async def navigate(self, platform_id: str, url: str) -> None:
        page = self.get_page(platform_id)
        if page is None:
            raise PageSyncError(f"Platform {platform_id} not found")

        await page.goto(url)
        await page.wait_for_load_state(LOAD_STATE)
        await self._bus.emit(
            BusEvent.PLATFORM_NAVIGATE,
            PlatformEvent(platform_id, page, url),
        )

    # === Lookup ===

    def get_page(self, platform_id: str) -> Optional[PageHandle]:
        return self._pages.get(platform_id)

    def get_pages(self) -> Dict[str, PageHandle]:
        return dict(self._pages)

    def get_page_list(self) -> List[Dict[str, str]]:
        result = []
        for platform_id, page in self._pages.items():
            platform = self.config.get_platform(platform_id)
            result.append({
                "platform_id": platform_id,
                "name": platform.name if platform else platform_id,
                "url": page.url,
            })
        return result

    # === Shutdown ===

    async def close_all_pages(self) -> None:
        """Close every page and context; failures are logged, not raised."""
        pages = list(self._pages.items())
        self._pages.clear()

        for platform_id, page in pages:
            await self._bus.emit(BusEvent.PLATFORM_CLOSE, PlatformEvent(platform_id, page))
            try:
                if not page.is_closed():
                    await page.close()
                self._logger.info("Page closed", platform_id=platform_id)
            except Exception as e:
                self._logger.error("Failed to close page", platform_id=platform_id, error=str(e))

        contexts = list(self._contexts.items())
        self._contexts.clear()
        for platform_id, context in contexts:
            try:
                await context.close()
            except Exception as e:
                self._logger.error("Failed to close context", platform_id=platform_id, error=str(e))
