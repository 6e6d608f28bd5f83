"""
pagesync Logging

structlog setup plus the session-owned DevLogger that is threaded into every
component instead of a process-wide singleton.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Configure structured logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@dataclass
class _LogState:
    enabled: bool = True
    prefix: str = ""


class DevLogger:
    """
    Logger owned by a session.

    Children created with bind() share the enabled flag and the prefix of
    their parent, so ``disable()`` on the session logger silences every
    component.
    """

    def __init__(
        self,
        name: str = "pagesync",
        enabled: bool = True,
        prefix: str = "",
        _state: Optional[_LogState] = None,
        _context: Optional[Dict[str, Any]] = None,
    ):
        self._name = name
        self._state = _state or _LogState(enabled=enabled, prefix=prefix)
        self._context: Dict[str, Any] = dict(_context or {})
        self._logger = structlog.get_logger(name, **self._context)

    def bind(self, **context: Any) -> "DevLogger":
        """Return a child logger with extra context."""
        return DevLogger(
            self._name,
            _state=self._state,
            _context={**self._context, **context},
        )

    # === Control ===

    def enable(self) -> None:
        self._state.enabled = True

    def disable(self) -> None:
        self._state.enabled = False

    def is_enabled(self) -> bool:
        return self._state.enabled

    def set_prefix(self, prefix: str) -> None:
        self._state.prefix = prefix

    @property
    def prefix(self) -> str:
        return self._state.prefix

    # === Output ===

    def _format(self, message: str) -> str:
        return f"{self._state.prefix} {message}" if self._state.prefix else message

    def debug(self, message: str, **kwargs: Any) -> None:
        if self._state.enabled:
            self._logger.debug(self._format(message), **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        if self._state.enabled:
            self._logger.info(self._format(message), **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        if self._state.enabled:
            self._logger.warning(self._format(message), **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        if self._state.enabled:
            self._logger.error(self._format(message), **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        if self._state.enabled:
            self._logger.exception(self._format(message), **kwargs)
