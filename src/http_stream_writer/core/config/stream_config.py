from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from http_stream_writer.core.common.logging_utils import LogFormat, configure_logging
from http_stream_writer.core.interfaces.model_bases import DomainModel

logger = logging.getLogger(__name__)

DEFAULT_FIELD_NAME = "Stream"
DEFAULT_FATAL_STATUS_CODES = frozenset({404, 500})


def _get_env_value(
    env: Mapping[str, str],
    name: str,
    default: Any,
    *,
    transform: Callable[[str], Any] | None = None,
) -> Any:
    """Return an environment variable value, optionally transformed."""
    if name in env:
        raw_value = env[name]
        return transform(raw_value) if transform is not None else raw_value
    return default


def _to_int(value: str, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _to_float(value: str, fallback: float | None) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


def _to_status_codes(value: str, fallback: frozenset[int]) -> frozenset[int]:
    codes: set[int] = set()
    for item in value.split(","):
        stripped = item.strip()
        if not stripped:
            continue
        try:
            codes.add(int(stripped))
        except ValueError:
            logger.warning("Ignoring malformed fatal status code %r", stripped)
    return frozenset(codes) if codes else fallback


class LogLevel(str, Enum):
    """Log levels for configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingConfig(DomainModel):
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    log_file: str | None = None
    log_format: LogFormat = LogFormat.PLAIN


class StreamWriterConfig(DomainModel):
    """Settings shared by every stream opened with this configuration.

    The HTTP exchange itself never has an overall timeout; ``connect_timeout``
    only bounds establishing the connection (``None`` waits indefinitely).
    """

    model_config = ConfigDict(frozen=True)

    connect_timeout: float | None = None
    max_pending_chunks: int = Field(default=1, ge=1)
    fatal_status_codes: frozenset[int] = DEFAULT_FATAL_STATUS_CODES
    default_field_name: str = DEFAULT_FIELD_NAME
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("connect_timeout")
    @classmethod
    def validate_connect_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("connect_timeout must be positive")
        return v

    @field_validator("default_field_name")
    @classmethod
    def validate_field_name(cls, v: str) -> str:
        if not v:
            raise ValueError("default_field_name must not be empty")
        return v

    @classmethod
    def from_env(
        cls,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> StreamWriterConfig:
        """Create a StreamWriterConfig from environment variables.

        Returns:
            StreamWriterConfig instance
        """
        env: Mapping[str, str] = environ if environ is not None else os.environ

        config: dict[str, Any] = {
            "connect_timeout": _get_env_value(
                env,
                "HTTP_STREAM_CONNECT_TIMEOUT",
                None,
                transform=lambda value: _to_float(value, None),
            ),
            "max_pending_chunks": _get_env_value(
                env,
                "HTTP_STREAM_MAX_PENDING_CHUNKS",
                1,
                transform=lambda value: max(1, _to_int(value, 1)),
            ),
            "fatal_status_codes": _get_env_value(
                env,
                "HTTP_STREAM_FATAL_STATUS_CODES",
                DEFAULT_FATAL_STATUS_CODES,
                transform=lambda value: _to_status_codes(
                    value, DEFAULT_FATAL_STATUS_CODES
                ),
            ),
            "default_field_name": _get_env_value(
                env, "HTTP_STREAM_FIELD_NAME", DEFAULT_FIELD_NAME
            )
            or DEFAULT_FIELD_NAME,
            "logging": {
                "level": _get_env_value(
                    env,
                    "LOG_LEVEL",
                    LogLevel.INFO,
                    transform=lambda value: value.strip().upper(),
                ),
                "log_file": _get_env_value(env, "LOG_FILE", None),
                "log_format": _get_env_value(
                    env,
                    "LOG_FORMAT",
                    LogFormat.PLAIN,
                    transform=lambda value: value.strip().lower(),
                ),
            },
        }

        return cls(**config)

    def apply_logging(self) -> None:
        """Install the configured logging on the root logger."""
        configure_logging(
            self.logging.level.value,
            self.logging.log_format,
            self.logging.log_file,
        )
