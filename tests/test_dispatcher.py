"""
pagesync Plugin Dispatcher Tests
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from structlog.testing import capture_logs

from pagesync.core.config import DevServerConfig
from pagesync.core.events import BusEvent, EventBus, FileChangeEvent, FileChangeKind, PlatformEvent
from pagesync.core.logging import DevLogger
from pagesync.plugins import (
    BasePlugin,
    Capabilities,
    Hook,
    HookFamily,
    Plugin,
    PluginContext,
    PluginDispatcher,
    hook,
)


def make_context(config=None):
    bus = EventBus()
    return PluginContext(
        project_root=Path("/project"),
        config=config or DevServerConfig(),
        logger=DevLogger(),
        emit=bus.emit,
        on=bus.on,
        off=bus.off,
        once=bus.once,
        get_page=MagicMock(return_value=None),
        get_pages=MagicMock(return_value={}),
    )


@pytest.fixture
def dispatcher():
    return PluginDispatcher(make_context())


def recording_plugin(name, order, log, hook_name=Hook.BUILD_START):
    def handler(ctx, *args):
        log.append(name)
    return Plugin(name=name, order=order, hooks={hook_name: handler})


# === Plugin Types ===


class TestPluginTypes:
    """Test plugin descriptors and hook metadata."""

    def test_hook_families(self):
        assert Hook.TRANSFORM_SCRIPT.family is HookFamily.TRANSFORM
        assert Hook.TRANSFORM_SCRIPT.is_transform
        assert not Hook.FILE_CHANGED.is_transform
        assert Hook.BUILD_END.family is HookFamily.BUILD

    def test_hook_keys_are_coerced(self):
        plugin = Plugin(name="p", hooks={"file_changed": lambda ctx, p, k: None})
        assert plugin.get_handler(Hook.FILE_CHANGED) is not None
        assert list(plugin.hooks) == [Hook.FILE_CHANGED]

    def test_unknown_hook_rejected(self):
        with pytest.raises(ValueError):
            Plugin(name="p", hooks={"on_page_load": lambda ctx: None})

    def test_non_callable_handler_rejected(self):
        with pytest.raises(TypeError):
            Plugin(name="p", hooks={Hook.BUILD_START: "nope"})

    def test_from_object_collects_decorated_methods(self):
        class TitlePlugin(BasePlugin):
            name = "title"
            order = 7
            watch_patterns = ["**/*.html"]

            @hook(Hook.PLATFORM_READY)
            async def ready(self, ctx, platform_id, page):
                pass

            def helper(self):
                pass

        plugin = TitlePlugin().to_plugin()
        assert plugin.name == "title"
        assert plugin.order == 7
        assert plugin.watch_patterns == ("**/*.html",)
        assert list(plugin.hooks) == [Hook.PLATFORM_READY]


# === Loading ===


class TestLoading:
    """Test plugin source resolution."""

    @pytest.mark.asyncio
    async def test_sources(self, dispatcher):
        """Test descriptors, mappings, hook objects and factories."""

        class Obj:
            name = "obj"

            @hook(Hook.BUILD_END)
            def done(self, ctx):
                pass

        async def async_factory():
            return Plugin(name="async-factory")

        loaded = await dispatcher.load_plugins([
            Plugin(name="descriptor"),
            {"name": "mapping", "order": 3},
            Obj(),
            lambda: Plugin(name="factory"),
            async_factory,
        ])

        assert [p.name for p in loaded] == ["mapping", "descriptor", "obj", "factory", "async-factory"]
        assert dispatcher.get_plugin("obj").get_handler(Hook.BUILD_END) is not None

    @pytest.mark.asyncio
    async def test_camel_case_mapping_source(self, dispatcher):
        """Test mapping sources accept the same key style as config files."""
        handler = MagicMock()
        loaded = await dispatcher.load_plugins([
            {"name": "camel", "watchPatterns": ["**/*.html"], "hooks": {"buildStart": handler}},
        ])

        assert [p.name for p in loaded] == ["camel"]
        assert dispatcher.watch_patterns == ["**/*.html"]
        await dispatcher.execute_hook(Hook.BUILD_START)
        handler.assert_called_once_with(dispatcher.context)

    @pytest.mark.asyncio
    async def test_bad_sources_are_skipped(self, dispatcher):
        """Test failing sources are logged and the rest still load."""

        def broken_factory():
            raise RuntimeError("factory exploded")

        with capture_logs() as logs:
            loaded = await dispatcher.load_plugins([
                Plugin(name="good"),
                broken_factory,
                BasePlugin,
                42,
                {"name": "", "order": 1},
                {"name": "bad-order", "order": "high"},
            ])

        assert [p.name for p in loaded] == ["good"]
        failures = [log for log in logs if log["event"] == "Failed to load plugin"]
        assert len(failures) == 5

    @pytest.mark.asyncio
    async def test_duplicate_names_skipped(self, dispatcher):
        with capture_logs() as logs:
            loaded = await dispatcher.load_plugins([
                Plugin(name="same", order=1),
                Plugin(name="same", order=0),
            ])

        assert len(loaded) == 1
        assert loaded[0].order == 1
        assert any(log["event"] == "Duplicate plugin name, skipping" for log in logs)

    @pytest.mark.asyncio
    async def test_reload_replaces_list(self, dispatcher):
        await dispatcher.load_plugins([Plugin(name="a")])
        await dispatcher.load_plugins([Plugin(name="b")])
        assert [p.name for p in dispatcher.get_plugins()] == ["b"]

    @pytest.mark.asyncio
    async def test_reload_waits_for_running_hook(self, dispatcher):
        """Test the list is not swapped while a hook is executing."""
        gate = asyncio.Event()
        seen = []

        async def slow(ctx):
            await gate.wait()

        def later(ctx):
            seen.append("later")

        await dispatcher.load_plugins([
            Plugin(name="slow", order=1, hooks={Hook.BUILD_START: slow}),
            Plugin(name="later", order=2, hooks={Hook.BUILD_START: later}),
        ])

        running = asyncio.create_task(dispatcher.execute_hook(Hook.BUILD_START))
        await asyncio.sleep(0)
        reload = asyncio.create_task(dispatcher.load_plugins([Plugin(name="new")]))
        await asyncio.sleep(0)

        assert not reload.done()
        assert [p.name for p in dispatcher.get_plugins()] == ["slow", "later"]

        gate.set()
        await asyncio.wait_for(asyncio.gather(running, reload), timeout=1)

        assert seen == ["later"]
        assert [p.name for p in dispatcher.get_plugins()] == ["new"]

    @pytest.mark.asyncio
    async def test_reload_from_inside_hook_does_not_block(self, dispatcher):
        """Test a hook reloading plugins finishes; the swap follows the chain."""
        seen = []

        async def reloading(ctx):
            loaded = await dispatcher.load_plugins([Plugin(name="replacement")])
            seen.append([p.name for p in loaded])

        def later(ctx):
            seen.append("later")

        await dispatcher.load_plugins([
            Plugin(name="reloader", order=1, hooks={Hook.BUILD_START: reloading}),
            Plugin(name="later", order=2, hooks={Hook.BUILD_START: later}),
        ])

        await asyncio.wait_for(dispatcher.execute_hook(Hook.BUILD_START), timeout=2)
        await asyncio.wait_for(dispatcher.wait_pending(), timeout=2)

        assert seen == [["replacement"], "later"]
        assert [p.name for p in dispatcher.get_plugins()] == ["replacement"]


# === Execution ===


class TestExecuteHook:
    """Test side-effect hook execution."""

    @pytest.mark.asyncio
    async def test_order_then_load_order(self, dispatcher):
        """Test ascending order with ties kept in load order."""
        log = []
        await dispatcher.load_plugins([
            recording_plugin("b", 100, log),
            recording_plugin("c", 100, log),
            recording_plugin("a", 50, log),
        ])

        await dispatcher.execute_hook(Hook.BUILD_START)

        assert log == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_sequential_not_concurrent(self, dispatcher):
        """Test the next plugin starts only after the previous one settled."""
        log = []

        async def first(ctx):
            log.append("first:start")
            await asyncio.sleep(0.01)
            log.append("first:end")

        def second(ctx):
            log.append("second")

        await dispatcher.load_plugins([
            Plugin(name="first", order=1, hooks={Hook.BUILD_START: first}),
            Plugin(name="second", order=2, hooks={Hook.BUILD_START: second}),
        ])
        await dispatcher.execute_hook(Hook.BUILD_START)

        assert log == ["first:start", "first:end", "second"]

    @pytest.mark.asyncio
    async def test_failing_plugin_does_not_stop_others(self, dispatcher):
        """Test the middle plugin raising still lets the third run."""
        log = []

        def failing(ctx):
            raise RuntimeError("middle failed")

        await dispatcher.load_plugins([
            recording_plugin("one", 1, log),
            Plugin(name="two", order=2, hooks={Hook.BUILD_START: failing}),
            recording_plugin("three", 3, log),
        ])

        with capture_logs() as logs:
            await dispatcher.execute_hook(Hook.BUILD_START)

        assert log == ["one", "three"]
        errors = [entry for entry in logs if entry["event"] == "Hook handler error"]
        assert len(errors) == 1
        assert errors[0]["plugin"] == "two"
        assert errors[0]["hook"] == "build_start"
        assert dispatcher.get_stats(Hook.BUILD_START)["errors"] == 1

    @pytest.mark.asyncio
    async def test_handler_receives_context_and_args(self, dispatcher):
        handler = MagicMock(return_value="ok")
        await dispatcher.load_plugins([
            Plugin(name="p", hooks={Hook.FILE_CHANGED: handler}),
        ])

        results = await dispatcher.execute_hook(Hook.FILE_CHANGED, "a.js", FileChangeKind.CHANGED)

        handler.assert_called_once_with(dispatcher.context, "a.js", FileChangeKind.CHANGED)
        assert results == ["ok"]

    @pytest.mark.asyncio
    async def test_plugins_without_hook_are_skipped(self, dispatcher):
        log = []
        await dispatcher.load_plugins([
            recording_plugin("build", 1, log),
            recording_plugin("file", 2, log, Hook.FILE_CHANGED),
        ])

        await dispatcher.execute_hook(Hook.BUILD_START)

        assert log == ["build"]


class TestTransformHook:
    """Test transform chains."""

    @pytest.mark.asyncio
    async def test_chain(self, dispatcher):
        """Test each output feeds the next plugin."""
        await dispatcher.load_plugins([
            Plugin(name="b", order=2, hooks={Hook.TRANSFORM_SCRIPT: lambda ctx, code, *a: code + "B"}),
            Plugin(name="a", order=1, hooks={Hook.TRANSFORM_SCRIPT: lambda ctx, code, *a: code + "A"}),
        ])

        result = await dispatcher.execute_transform_hook(Hook.TRANSFORM_SCRIPT, "X", "a.js", "desktop")

        assert result == "XAB"

    @pytest.mark.asyncio
    async def test_failing_and_non_string_results_leave_value(self, dispatcher):
        def failing(ctx, code, *args):
            raise ValueError("bad transform")

        async def async_suffix(ctx, code, *args):
            return code + "!"

        await dispatcher.load_plugins([
            Plugin(name="fail", order=1, hooks={Hook.TRANSFORM_STYLE: failing}),
            Plugin(name="none", order=2, hooks={Hook.TRANSFORM_STYLE: lambda ctx, code, *a: None}),
            Plugin(name="suffix", order=3, hooks={Hook.TRANSFORM_STYLE: async_suffix}),
        ])

        result = await dispatcher.execute_transform_hook(Hook.TRANSFORM_STYLE, "css", "a.css", "desktop")

        assert result == "css!"

    @pytest.mark.asyncio
    async def test_transform_args(self, dispatcher):
        handler = MagicMock(return_value="out")
        await dispatcher.load_plugins([Plugin(name="t", hooks={Hook.TRANSFORM_SCRIPT: handler})])

        await dispatcher.execute_transform_hook(Hook.TRANSFORM_SCRIPT, "in", "a.js", "mobile")

        handler.assert_called_once_with(dispatcher.context, "in", "a.js", "mobile")

    @pytest.mark.asyncio
    async def test_hook_kind_checked(self, dispatcher):
        with pytest.raises(ValueError):
            await dispatcher.execute_transform_hook(Hook.BUILD_START, "x")
        with pytest.raises(ValueError):
            await dispatcher.execute_hook(Hook.TRANSFORM_STYLE, "x")

    @pytest.mark.asyncio
    async def test_empty_chain_returns_input(self, dispatcher):
        assert await dispatcher.execute_transform_hook(Hook.TRANSFORM_SCRIPT, "same") == "same"


# === Context ===


class TestContext:
    """Test two-phase context assembly."""

    @pytest.mark.asyncio
    async def test_capabilities_attached_once(self, dispatcher):
        seen = []
        await dispatcher.load_plugins([
            Plugin(name="p", hooks={Hook.BUILD_START: lambda ctx: seen.append(ctx.capabilities)}),
        ])

        await dispatcher.execute_hook(Hook.BUILD_START)
        capabilities = Capabilities(
            inject_script=AsyncMock(),
            inject_style=AsyncMock(),
            reinject_all_assets=AsyncMock(),
            reload_platform=AsyncMock(),
            execute_transform_hook=dispatcher.execute_transform_hook,
        )
        dispatcher.set_capabilities(capabilities)
        await dispatcher.execute_hook(Hook.BUILD_START)

        assert seen == [None, capabilities]

    def test_require_capabilities_logs_when_missing(self, dispatcher):
        with capture_logs() as logs:
            assert dispatcher.context.require_capabilities("p", Hook.FILE_CHANGED) is None

        assert logs[0]["event"] == "Capabilities not available"
        assert logs[0]["hook"] == "file_changed"

    def test_update_config(self, dispatcher):
        config = DevServerConfig(platforms={"x": {"name": "X", "url": "http://x"}})
        dispatcher.update_config(config)
        assert dispatcher.context.config is config


# === Bus wiring and queries ===


class TestBusForwarding:
    """Test bus events reach plugin hooks."""

    @pytest.mark.asyncio
    async def test_forwarding(self, dispatcher):
        calls = []
        page = object()
        await dispatcher.load_plugins([
            Plugin(name="p", hooks={
                Hook.PLATFORM_CREATED: lambda ctx, pid, pg: calls.append(("created", pid, pg)),
                Hook.PLATFORM_READY: lambda ctx, pid, pg: calls.append(("ready", pid, pg)),
                Hook.PLATFORM_NAVIGATE: lambda ctx, pid, pg, url: calls.append(("navigate", pid, url)),
                Hook.FILE_CHANGED: lambda ctx, path, kind: calls.append(("file", path, kind)),
            }),
        ])
        bus = EventBus()
        dispatcher.attach(bus)

        await bus.emit(BusEvent.PLATFORM_CREATED, PlatformEvent("d", page))
        await bus.emit(BusEvent.PLATFORM_READY, PlatformEvent("d", page, "http://a"))
        await bus.emit(BusEvent.PLATFORM_NAVIGATE, PlatformEvent("d", page, "http://b"))
        await bus.emit(BusEvent.FILE_CHANGED, FileChangeEvent("a.js", FileChangeKind.ADDED))

        assert calls == [
            ("created", "d", page),
            ("ready", "d", page),
            ("navigate", "d", "http://b"),
            ("file", "a.js", FileChangeKind.ADDED),
        ]

        dispatcher.detach()
        await bus.emit(BusEvent.FILE_CHANGED, FileChangeEvent("b.js", FileChangeKind.ADDED))
        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_watch_patterns(self, dispatcher):
        await dispatcher.load_plugins([
            Plugin(name="b", order=2, watch_patterns=("**/*.html", "./a.js")),
            Plugin(name="a", order=1, watch_patterns=("a.js",)),
        ])

        assert dispatcher.watch_patterns == ["a.js", "**/*.html"]
