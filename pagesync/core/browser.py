"""
pagesync Browser Collaborator

Narrow protocols for the browser-automation engine. They mirror the subset of
the Playwright async API pagesync uses, so Playwright objects satisfy them
directly; PlaywrightDriver is the default implementation.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from playwright.async_api import Browser, Playwright, async_playwright

from pagesync.core.logging import DevLogger


@runtime_checkable
class PageHandle(Protocol):
    """A live page."""

    @property
    def url(self) -> str: ...

    async def goto(self, url: str, **kwargs: Any) -> Any: ...

    async def wait_for_load_state(self, state: str = "load", **kwargs: Any) -> None: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def reload(self, **kwargs: Any) -> Any: ...

    async def close(self, **kwargs: Any) -> None: ...

    def is_closed(self) -> bool: ...

    def on(self, event: str, f: Callable[..., Any]) -> None: ...


class BrowserContextHandle(Protocol):
    """An isolated browsing context."""

    async def new_page(self) -> PageHandle: ...

    async def close(self) -> None: ...


class BrowserDriver(Protocol):
    """Launches a browser and creates contexts on it."""

    async def launch(self, options: Dict[str, Any]) -> None: ...

    async def new_context(self, options: Dict[str, Any]) -> BrowserContextHandle: ...

    async def close(self) -> None: ...


class PlaywrightDriver:
    """BrowserDriver backed by playwright.async_api."""

    def __init__(self, browser_type: str = "chromium", logger: Optional[DevLogger] = None):
        self.browser_type = browser_type
        self._logger = (logger or DevLogger()).bind(component="browser")
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def launch(self, options: Dict[str, Any]) -> None:
        if self._browser is not None:
            return

        self._logger.info("Launching browser", browser=self.browser_type)
        self._playwright = await async_playwright().start()
        try:
            launcher = getattr(self._playwright, self.browser_type)
            self._browser = await launcher.launch(**options)
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise

    async def new_context(self, options: Dict[str, Any]) -> BrowserContextHandle:
        if self._browser is None:
            raise RuntimeError("Browser not launched")
        return await self._browser.new_context(**options)

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self._logger.info("Browser closed")
