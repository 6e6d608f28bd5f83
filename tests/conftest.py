"""
Shared fixtures: in-memory stand-ins for the browser collaborator and the
asset reader.
"""

import inspect
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from pagesync.core.config import DevServerConfig
from pagesync.core.injector import INJECT_ASSET_JS


class FakePage:
    """
    Page double that simulates the injected DOM nodes.

    ``nodes`` holds one dict per node appended by the injection script.
    """

    def __init__(self, url: str = "about:blank"):
        self.url = url
        self.nodes: List[Dict[str, str]] = []
        self.evaluations: List[Any] = []
        self.reloads = 0
        self.load_states: List[str] = []
        self.handlers: Dict[str, List[Callable[..., Any]]] = {}
        self.fail_evaluate = False
        self._closed = False

    async def goto(self, url: str, **kwargs: Any) -> None:
        self.url = url
        self.nodes = []

    async def wait_for_load_state(self, state: str = "load", **kwargs: Any) -> None:
        self.load_states.append(state)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        if self.fail_evaluate:
            raise RuntimeError("Execution context was destroyed")
        self.evaluations.append((expression, arg))
        if expression != INJECT_ASSET_JS:
            return None

        attribute, path = arg["attribute"], arg["path"]
        self.nodes = [
            n for n in self.nodes
            if not (n["attribute"] == attribute and n["path"] == path)
        ]
        self.nodes.append(dict(arg))
        return sum(1 for n in self.nodes if n["attribute"] == attribute and n["path"] == path)

    async def reload(self, **kwargs: Any) -> None:
        self.reloads += 1
        self.nodes = []

    async def close(self, **kwargs: Any) -> None:
        if self._closed:
            return
        self._closed = True
        await self.fire("close", self)

    def is_closed(self) -> bool:
        return self._closed

    def on(self, event: str, f: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(f)

    async def fire(self, event: str, *args: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result

    # === Helpers ===

    def nodes_for(self, tag: str) -> List[Dict[str, str]]:
        return [n for n in self.nodes if n["tag"] == tag]

    def contents(self, tag: str) -> List[str]:
        return [n["content"] for n in self.nodes_for(tag)]


class FakeContext:
    def __init__(self, options: Dict[str, Any]):
        self.options = options
        self.pages: List[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage()
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    """BrowserDriver double recording launches and contexts."""

    def __init__(self, fail_launch: bool = False, fail_context: bool = False):
        self.fail_launch = fail_launch
        self.fail_context = fail_context
        self.launch_options: Optional[Dict[str, Any]] = None
        self.contexts: List[FakeContext] = []
        self.launched = False
        self.closed = False

    async def launch(self, options: Dict[str, Any]) -> None:
        if self.fail_launch:
            raise RuntimeError("Executable doesn't exist")
        self.launch_options = options
        self.launched = True

    async def new_context(self, options: Dict[str, Any]) -> FakeContext:
        if self.fail_context:
            raise RuntimeError("Target closed")
        context = FakeContext(options)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True

    @property
    def pages(self) -> List[FakePage]:
        return [page for context in self.contexts for page in context.pages]


class FakeFiles:
    """In-memory project files served through the injector's reader hook."""

    def __init__(self, root: Path, files: Optional[Dict[str, str]] = None):
        self.root = Path(root)
        self.files: Dict[str, str] = dict(files or {})
        self.reads: List[str] = []

    async def __call__(self, path: Path) -> str:
        relative = Path(path).relative_to(self.root).as_posix()
        self.reads.append(relative)
        if relative not in self.files:
            raise FileNotFoundError(relative)
        return self.files[relative]


@pytest.fixture
def project_root(tmp_path):
    return tmp_path.resolve()


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def fake_files(project_root):
    return FakeFiles(project_root, {
        "scripts/app.js": "console.log('app');",
        "scripts/vendor.js": "window.vendor = 1;",
        "styles/app.css": "body { color: red; }",
    })


@pytest.fixture
def sample_config():
    """One platform with one plain script and one reload-on-change style."""
    return DevServerConfig.model_validate({
        "platforms": {
            "desktop": {
                "name": "Desktop",
                "url": "http://localhost:3000",
                "scripts": [{"path": "./scripts/app.js", "reloadOnChange": False}],
                "styles": [{"path": "./styles/app.css", "reloadOnChange": True}],
            }
        },
        "browserOptions": {"headless": True},
    })
