# Configuration package

from http_stream_writer.core.config.stream_config import (
    LoggingConfig,
    LogLevel,
    StreamWriterConfig,
)

__all__ = [
    "LogLevel",
    "LoggingConfig",
    "StreamWriterConfig",
]
