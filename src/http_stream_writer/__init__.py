"""Stream an unbounded byte source into one field of a multipart/form-data POST."""

from http_stream_writer.core.common.exceptions import (
    CloseError,
    ConstructionError,
    FatalStatusError,
    HttpStreamWriterError,
    StreamClosedError,
    TransportError,
)
from http_stream_writer.core.config.stream_config import StreamWriterConfig
from http_stream_writer.core.domain.stream_request import Outcome
from http_stream_writer.stream_writer import (
    StreamHandle,
    open_stream,
    open_stream_with_confirmation,
)

__all__ = [
    "CloseError",
    "ConstructionError",
    "FatalStatusError",
    "HttpStreamWriterError",
    "Outcome",
    "StreamClosedError",
    "StreamHandle",
    "StreamWriterConfig",
    "TransportError",
    "open_stream",
    "open_stream_with_confirmation",
]
