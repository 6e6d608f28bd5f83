"""
pagesync Configuration

Session configuration (platforms, assets, plugins, browser options) as
pydantic models, plus process-level settings read from the environment.
"""

from __future__ import annotations

import importlib.util
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

from pagesync.core.errors import ConfigError
from pagesync.core.patterns import normalize_path

DEFAULT_ORDER = 100
DEFAULT_CONFIG_FILES = ("pagesync.config.py", "pagesync.config.json")


class AssetKind(str, Enum):
    """Kinds of injectable assets."""

    SCRIPT = "script"
    STYLE = "style"


class _ConfigModel(BaseModel):
    """Base model accepting both snake_case and camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class AssetConfig(_ConfigModel):
    """A script or style file tracked for injection."""

    path: str
    order: int = DEFAULT_ORDER
    auto_inject: bool = True
    reload_on_change: bool = False

    @field_validator("path")
    @classmethod
    def path_not_empty(cls, v: str) -> str:
        if not normalize_path(v):
            raise ValueError("asset path must not be empty")
        return v

    @property
    def normalized_path(self) -> str:
        return normalize_path(self.path)


class PlatformConfig(_ConfigModel):
    """One target page and the assets injected into it."""

    name: str
    url: str
    scripts: List[AssetConfig] = Field(default_factory=list)
    styles: List[AssetConfig] = Field(default_factory=list)
    # Passed verbatim to browser.new_context() (viewport, locale, permissions...)
    context_options: Dict[str, Any] = Field(default_factory=dict)
    reinject_order: Literal["styles-first", "scripts-first"] = "styles-first"

    def assets(self, kind: AssetKind) -> List[AssetConfig]:
        return self.scripts if AssetKind(kind) is AssetKind.SCRIPT else self.styles

    def sorted_assets(self, kind: AssetKind) -> List[AssetConfig]:
        """Assets of one kind by ascending order; ties keep declaration order."""
        return sorted(self.assets(kind), key=lambda asset: asset.order)


class BrowserOptions(_ConfigModel):
    """Global browser launch options."""

    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = False
    devtools: bool = True
    slow_mo: Optional[float] = None
    args: List[str] = Field(default_factory=list)

    def launch_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"headless": self.headless}
        if self.browser == "chromium" and self.devtools and not self.headless:
            options["args"] = [*self.args, "--auto-open-devtools-for-tabs"]
        elif self.args:
            options["args"] = list(self.args)
        if self.slow_mo is not None:
            options["slow_mo"] = self.slow_mo
        return options


class DevServerConfig(_ConfigModel):
    """
    Session configuration.

    ``plugins`` holds plugin sources: Plugin descriptors, objects with
    ``@hook`` methods, or zero-argument factories producing either.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    platforms: Dict[str, PlatformConfig] = Field(default_factory=dict)
    plugins: List[Any] = Field(default_factory=list)
    browser_options: BrowserOptions = Field(default_factory=BrowserOptions)
    root: Optional[Path] = None

    def get_platform(self, platform_id: str) -> Optional[PlatformConfig]:
        return self.platforms.get(platform_id)

    def asset_patterns(self) -> List[str]:
        """Normalized paths of every configured asset, in declaration order."""
        patterns: List[str] = []
        for platform in self.platforms.values():
            for asset in [*platform.scripts, *platform.styles]:
                path = asset.normalized_path
                if path not in patterns:
                    patterns.append(path)
        return patterns

    @classmethod
    def from_file(cls, config_path: Path) -> "DevServerConfig":
        """
        Load configuration from a JSON file or a Python config module.

        A Python module must expose ``config`` (a DevServerConfig or a dict).
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            if config_path.suffix == ".json":
                with open(config_path, encoding="utf-8") as f:
                    return cls.model_validate(json.load(f))
            if config_path.suffix == ".py":
                return cls._from_module(config_path)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e

        raise ConfigError(f"Unsupported config file type: {config_path.suffix}")

    @classmethod
    def _from_module(cls, path: Path) -> "DevServerConfig":
        module_name = f"_pagesync_config_{path.stem.replace('.', '_')}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if not spec or not spec.loader:
            raise ConfigError(f"Cannot import config module: {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise ConfigError(f"Error executing config module {path}: {e}") from e

        config = getattr(module, "config", None)
        if config is None:
            raise ConfigError(f"Config module {path} does not define 'config'")
        if isinstance(config, cls):
            return config
        if isinstance(config, dict):
            return cls.model_validate(config)
        raise ConfigError(f"'config' in {path} must be a DevServerConfig or dict")


def define_config(config: Optional[Dict[str, Any]] = None, **kwargs: Any) -> DevServerConfig:
    """
    Build a DevServerConfig, for use in ``pagesync.config.py``.

    Usage:
        config = define_config(
            platforms={"local": {"name": "Local", "url": "http://localhost:3000",
                                 "scripts": [{"path": "./scripts/app.js"}]}},
            plugins=[console_logger_plugin()],
        )
    """
    data = {**(config or {}), **kwargs}
    return DevServerConfig.model_validate(data)


def find_config_file(root: Path) -> Optional[Path]:
    """Find the default config file in a project root."""
    for name in DEFAULT_CONFIG_FILES:
        candidate = Path(root) / name
        if candidate.exists():
            return candidate
    return None


class PageSyncSettings(BaseSettings):
    """
    Process-level settings.

    Environment variables are prefixed with PAGESYNC_ (e.g. PAGESYNC_LOG_LEVEL=DEBUG).
    """

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_enabled: bool = True
    log_prefix: str = "[pagesync]"
    config_file: Optional[Path] = None

    model_config = {
        "env_prefix": "PAGESYNC_",
        "case_sensitive": False,
    }
