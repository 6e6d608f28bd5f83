"""
Example pagesync config.

Run from this directory:
    pagesync start
"""

from pagesync import BasePlugin, Hook, define_config, hook
from pagesync.plugins import auto_reload_plugin, console_logger_plugin


class DevGlobalsPlugin(BasePlugin):
    """Expose the platform id to page scripts."""

    name = "dev-globals"

    @hook(Hook.PLATFORM_READY)
    async def set_globals(self, ctx, platform_id, page):
        await page.evaluate(
            "(platform) => { window.__DEV_PLATFORM__ = platform; window.__DEV_TIMESTAMP__ = Date.now(); }",
            platform_id,
        )

    @hook(Hook.TRANSFORM_SCRIPT)
    def banner(self, ctx, code, path, platform_id):
        return f"// {path} ({platform_id})\n{code}"


config = define_config(
    platforms={
        "local": {
            "name": "Local Development",
            "url": "http://localhost:3000",
            "scripts": [{"path": "./scripts/common.js", "order": 1}],
            "styles": [{"path": "./styles/site.css", "reloadOnChange": True}],
            "contextOptions": {"viewport": {"width": 1280, "height": 720}},
        },
        "mobile": {
            "name": "Mobile",
            "url": "http://localhost:3000",
            "scripts": [{"path": "./scripts/common.js", "order": 1}],
            "contextOptions": {
                "viewport": {"width": 375, "height": 667},
                "is_mobile": True,
                "has_touch": True,
            },
        },
    },
    plugins=[
        console_logger_plugin(),
        auto_reload_plugin(),
        DevGlobalsPlugin(),
    ],
)
