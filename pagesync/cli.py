"""
pagesync Command Line Interface

Provides command-line access to pagesync sessions.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from pagesync.core.config import DevServerConfig, PageSyncSettings, find_config_file
from pagesync.core.errors import ConfigError, LifecycleError
from pagesync.core.logging import DevLogger, setup_logging


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pagesync",
        description="pagesync - keep browser pages in sync with local scripts and styles",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Start command
    start_parser = subparsers.add_parser("start", help="Start a development session")
    _add_config_arguments(start_parser)

    # Patterns command
    patterns_parser = subparsers.add_parser("patterns", help="Print the watch pattern set")
    _add_config_arguments(patterns_parser)

    # Check command
    check_parser = subparsers.add_parser("check", help="Validate a config file")
    _add_config_arguments(check_parser)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = PageSyncSettings()
    setup_logging(settings.log_level, settings.log_format)

    root = Path(args.root).resolve()
    try:
        config_path = resolve_config_path(args.config, settings, root)
        config = DevServerConfig.from_file(config_path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "start":
        logger = DevLogger(enabled=settings.log_enabled, prefix=settings.log_prefix)
        return asyncio.run(cmd_start(config, root, logger))

    elif args.command == "patterns":
        return asyncio.run(cmd_patterns(config, root))

    elif args.command == "check":
        return cmd_check(config, config_path)

    return 0


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", help="Config file (pagesync.config.py or .json)")
    parser.add_argument("-r", "--root", default=".", help="Project root")


def resolve_config_path(
    config: Optional[str],
    settings: PageSyncSettings,
    root: Path,
) -> Path:
    """Explicit argument, then PAGESYNC_CONFIG_FILE, then the default file names."""
    if config:
        return Path(config)
    if settings.config_file:
        return settings.config_file
    found = find_config_file(root)
    if found is None:
        raise ConfigError(f"No config file found in {root}")
    return found


async def cmd_start(config: DevServerConfig, root: Path, logger: DevLogger) -> int:
    """Run a session until SIGINT or SIGTERM."""
    from pagesync.core.session import DevSession

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt ends asyncio.run instead
            pass

    session = DevSession(config, config.root or root, logger=logger)
    try:
        await session.start()
    except LifecycleError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        for page in session.get_page_list():
            print(f"  {page['platform_id']}: {page['name']} -> {page['url']}")
        await stop_event.wait()
    finally:
        await session.close()
    return 0


async def cmd_patterns(config: DevServerConfig, root: Path) -> int:
    """Print the aggregated watch patterns."""
    from pagesync.core.session import DevSession

    session = DevSession(config, config.root or root, logger=DevLogger(enabled=False))
    await session.reload_plugins()
    for pattern in session.watch_patterns():
        print(pattern)
    return 0


def cmd_check(config: DevServerConfig, config_path: Path) -> int:
    """Print platforms and assets of a valid config."""
    print(f"Config OK: {config_path}")
    for platform_id, platform in config.platforms.items():
        print(f"- {platform_id}: {platform.name} ({platform.url})")
        for asset in platform.sorted_assets("script"):
            print(f"    script {asset.normalized_path} order={asset.order}")
        for asset in platform.sorted_assets("style"):
            print(f"    style  {asset.normalized_path} order={asset.order}")
    print(f"{len(config.plugins)} user plugin(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
