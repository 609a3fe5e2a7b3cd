"""
Logging utilities for the stream writer.

This module provides:
- Test/production environment tagging of log records
- A one-call ``configure_logging`` for applications embedding the library
- Structured (structlog) loggers and URL credential redaction
"""

from __future__ import annotations

import logging
import os
import sys
from enum import Enum
from typing import Literal
from urllib.parse import urlsplit, urlunsplit

import structlog

DEFAULT_LOG_FORMAT = (
    "%(asctime)s [%(levelname)-8s] [%(env_tag)s] %(name)s:%(lineno)d %(message)s"
)


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    CONSOLE = "console"
    PLAIN = "plain"


def _is_running_under_pytest() -> bool:
    return "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST") is not None


def _get_environment_tag() -> str:
    """Get the environment tag for logging.

    Returns:
        'test' if running under pytest, 'prod' otherwise
    """
    return "test" if _is_running_under_pytest() else "prod"


class EnvironmentTaggingFilter(logging.Filter):
    """Logging filter that adds environment tags to log records."""

    def __init__(self) -> None:
        super().__init__()
        self._env_tag = _get_environment_tag()

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.env_tag = self._env_tag
        return True


class EnvironmentTaggingFormatter(logging.Formatter):
    """Logging formatter that includes environment tags."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: Literal["%", "{", "$"] = "%",
    ) -> None:
        super().__init__(fmt or DEFAULT_LOG_FORMAT, datefmt, style=style)

    def format(self, record: logging.LogRecord) -> str:
        # Records emitted before the filter was installed have no tag
        if not hasattr(record, "env_tag"):
            record.env_tag = _get_environment_tag()
        return super().format(record)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger.

    Args:
        name: Optional logger name

    Returns:
        A structured logger
    """
    return structlog.get_logger(name)  # type: ignore


def redact_url(url: str, mask: str = "***") -> str:
    """Mask the password part of a URL's userinfo before it is logged."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.password is None:
        return url
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    username = userinfo.partition(":")[0]
    netloc = f"{username}:{mask}@{hostinfo}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


_SHARED_PROCESSORS: list[structlog.typing.Processor] = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _structlog_formatter(log_format: LogFormat) -> logging.Formatter:
    """Render stdlib and structlog records alike through structlog."""
    renderer: structlog.typing.Processor
    if log_format is LogFormat.JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ExtraAdder(),
        ],
    )


def configure_logging(
    level: int | str = logging.INFO,
    log_format: LogFormat | str = LogFormat.PLAIN,
    log_file: str | None = None,
) -> None:
    """Configure root logging with environment tagging.

    Args:
        level: Logging level (number or name)
        log_format: Plain stdlib records, or structlog console/JSON rendering
        log_file: Optional log file path
    """
    log_format = LogFormat(log_format)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    formatter: logging.Formatter
    if log_format is LogFormat.PLAIN:
        formatter = EnvironmentTaggingFormatter()
    else:
        formatter = _structlog_formatter(log_format)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    tagging_filter = EnvironmentTaggingFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(tagging_filter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
