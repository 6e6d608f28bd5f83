"""
pagesync Asset Injector

Injects scripts and styles into pages, replaces them in place, or reloads a
page and re-injects everything configured for its platform.

Every injected node carries an identity derived from its asset path. Injecting
the same path again removes the previous node first, so repeated edits never
pile up duplicates.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from pagesync.core.browser import PageHandle
from pagesync.core.config import AssetConfig, AssetKind, DevServerConfig
from pagesync.core.errors import InjectionError, PageClosedError
from pagesync.core.events import AssetInjectEvent, BusEvent
from pagesync.core.logging import DevLogger
from pagesync.core.patterns import normalize_path
from pagesync.plugins.types import Hook

Reader = Callable[[Path], Awaitable[str]]
Emitter = Callable[[BusEvent, Any], Awaitable[None]]
Transformer = Callable[..., Awaitable[str]]

LOAD_STATE = "load"

# Removes every node carrying the same path attribute, then appends a fresh one.
# Returns how many nodes with this identity exist afterwards.
INJECT_ASSET_JS = """
({ tag, attribute, path, id, content }) => {
  const selector = tag + '[' + attribute + ']';
  for (const node of Array.from(document.querySelectorAll(selector))) {
    if (node.getAttribute(attribute) === path) {
      node.remove();
    }
  }
  const node = document.createElement(tag);
  node.setAttribute(attribute, path);
  node.id = id;
  node.textContent = content;
  (document.head || document.documentElement).appendChild(node);
  return Array.from(document.querySelectorAll(selector))
    .filter((n) => n.getAttribute(attribute) === path).length;
}
"""

_TAGS = {AssetKind.SCRIPT: "script", AssetKind.STYLE: "style"}
_EVENTS = {AssetKind.SCRIPT: BusEvent.SCRIPT_INJECT, AssetKind.STYLE: BusEvent.STYLE_INJECT}
_TRANSFORMS = {AssetKind.SCRIPT: Hook.TRANSFORM_SCRIPT, AssetKind.STYLE: Hook.TRANSFORM_STYLE}


async def read_text(path: Path) -> str:
    """Read a file without blocking the event loop."""
    return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")


def asset_attribute(kind: AssetKind) -> str:
    return f"data-pagesync-{AssetKind(kind).value}"


def asset_identity(kind: AssetKind, path: str) -> str:
    """Deterministic DOM id for an asset path, unique per normalized path."""
    path = normalize_path(path)
    slug = re.sub(r"[^a-zA-Z0-9]", "-", path)
    digest = hashlib.sha1(path.encode("utf-8")).hexdigest()[:8]
    return f"pagesync-{AssetKind(kind).value}-{slug}-{digest}"


class AssetInjector:
    """
    Asset injection coordinator.

    Content is read fresh on every injection and passed through the
    transform chain before it reaches the page. Failures are logged with the
    asset path and platform id and reported as a False return value; they
    never propagate to the caller.
    """

    def __init__(
        self,
        project_root: Path,
        config: DevServerConfig,
        logger: Optional[DevLogger] = None,
        emit: Optional[Emitter] = None,
        transform: Optional[Transformer] = None,
        reader: Reader = read_text,
    ):
        self.project_root = Path(project_root)
        self.config = config
        self._logger = (logger or DevLogger()).bind(component="injector")
        self._emit = emit
        self._transform = transform
        self._reader = reader

    def update_config(self, config: DevServerConfig) -> None:
        self.config = config

    # === Single assets ===

    async def inject_script(self, platform_id: str, page: PageHandle, asset: AssetConfig) -> bool:
        return await self.inject(AssetKind.SCRIPT, platform_id, page, asset)

    async def inject_style(self, platform_id: str, page: PageHandle, asset: AssetConfig) -> bool:
        return await self.inject(AssetKind.STYLE, platform_id, page, asset)

    async def inject(
        self,
        kind: AssetKind,
        platform_id: str,
        page: Optional[PageHandle],
        asset: AssetConfig,
    ) -> bool:
        """
        Inject or replace one asset.

        Returns:
            True if the asset is now present in the page
        """
        kind = AssetKind(kind)
        path = asset.normalized_path

        try:
            content = await self._prepare(kind, platform_id, page, path)
            await self._evaluate(kind, platform_id, page, path, content)
        except InjectionError as e:
            self._logger.error(
                "Asset injection failed",
                kind=kind.value,
                path=path,
                platform_id=platform_id,
                error=str(e),
            )
            return False

        if self._emit is not None:
            await self._emit(
                _EVENTS[kind],
                AssetInjectEvent(platform_id=platform_id, path=path, content=content, page=page),
            )

        self._logger.info("Injected asset", kind=kind.value, path=path, platform_id=platform_id)
        return True

    async def _prepare(
        self,
        kind: AssetKind,
        platform_id: str,
        page: Optional[PageHandle],
        path: str,
    ) -> str:
        if page is None or page.is_closed():
            raise PageClosedError(path, platform_id)

        full_path = self.project_root / path
        try:
            content = await self._reader(full_path)
        except (OSError, UnicodeDecodeError) as e:
            raise InjectionError(path, platform_id, f"cannot read {full_path}: {e}") from e

        if self._transform is not None:
            content = await self._transform(_TRANSFORMS[kind], content, path, platform_id)
        return content

    async def _evaluate(
        self,
        kind: AssetKind,
        platform_id: str,
        page: PageHandle,
        path: str,
        content: str,
    ) -> None:
        # The transform chain may have awaited; the page can close meanwhile
        if page.is_closed():
            raise PageClosedError(path, platform_id)

        try:
            await page.evaluate(
                INJECT_ASSET_JS,
                {
                    "tag": _TAGS[kind],
                    "attribute": asset_attribute(kind),
                    "path": path,
                    "id": asset_identity(kind, path),
                    "content": content,
                },
            )
        except Exception as e:
            raise InjectionError(path, platform_id, f"page evaluation failed: {e}") from e

    # === Asset lists ===

    async def inject_assets(self, platform_id: str, page: PageHandle, kind: AssetKind) -> int:
        """
        Inject every auto-inject asset of one kind for a platform.

        Assets run in ascending order; a failing asset does not stop the rest.

        Returns:
            Number of assets injected
        """
        platform = self.config.get_platform(platform_id)
        if platform is None:
            self._logger.warning("Unknown platform", platform_id=platform_id)
            return 0

        injected = 0
        for asset in platform.sorted_assets(kind):
            if asset.auto_inject and await self.inject(kind, platform_id, page, asset):
                injected += 1
        return injected

    async def reinject_all_assets(self, platform_id: str, page: PageHandle) -> None:
        """Re-inject scripts and styles in the platform's convention order."""
        platform = self.config.get_platform(platform_id)
        if platform is None:
            self._logger.warning("Unknown platform", platform_id=platform_id)
            return

        if platform.reinject_order == "scripts-first":
            kinds = (AssetKind.SCRIPT, AssetKind.STYLE)
        else:
            kinds = (AssetKind.STYLE, AssetKind.SCRIPT)

        self._logger.info("Re-injecting all assets", platform_id=platform_id)
        for kind in kinds:
            await self.inject_assets(platform_id, page, kind)

    async def reload_platform(self, platform_id: str, page: PageHandle) -> bool:
        """
        Reload a page and re-inject every configured asset.

        A reload discards all previously injected nodes, so the whole asset
        list is injected again once the page reports load complete.
        """
        if page is None or page.is_closed():
            self._logger.error(
                "Cannot reload closed page",
                platform_id=platform_id,
            )
            return False

        self._logger.info("Reloading page", platform_id=platform_id)
        try:
            await page.reload()
            await page.wait_for_load_state(LOAD_STATE)
        except Exception as e:
            self._logger.error("Page reload failed", platform_id=platform_id, error=str(e))
            return False

        await self.reinject_all_assets(platform_id, page)
        return True

    # === Lookup ===

    def find_assets(self, path: str, kind: AssetKind) -> List[Tuple[str, AssetConfig]]:
        """(platform_id, asset) pairs whose path equals a changed path."""
        changed = normalize_path(path)
        matches = []
        for platform_id, platform in self.config.platforms.items():
            for asset in platform.assets(kind):
                if asset.normalized_path == changed:
                    matches.append((platform_id, asset))
                    break
        return matches
