from __future__ import annotations

import pytest
from pydantic import ValidationError

from http_stream_writer.core.common.logging_utils import LogFormat
from http_stream_writer.core.config import LogLevel, StreamWriterConfig


def test_defaults() -> None:
    config = StreamWriterConfig()

    assert config.connect_timeout is None
    assert config.max_pending_chunks == 1
    assert config.fatal_status_codes == frozenset({404, 500})
    assert config.default_field_name == "Stream"
    assert config.logging.level is LogLevel.INFO
    assert config.logging.log_format is LogFormat.PLAIN


def test_from_env_reads_every_setting() -> None:
    config = StreamWriterConfig.from_env(
        environ={
            "HTTP_STREAM_CONNECT_TIMEOUT": "2.5",
            "HTTP_STREAM_MAX_PENDING_CHUNKS": "4",
            "HTTP_STREAM_FATAL_STATUS_CODES": "404, 500,503",
            "HTTP_STREAM_FIELD_NAME": "Video",
            "LOG_LEVEL": "debug",
            "LOG_FILE": "/tmp/stream.log",
            "LOG_FORMAT": "JSON",
        }
    )

    assert config.connect_timeout == 2.5
    assert config.max_pending_chunks == 4
    assert config.fatal_status_codes == frozenset({404, 500, 503})
    assert config.default_field_name == "Video"
    assert config.logging.level is LogLevel.DEBUG
    assert config.logging.log_file == "/tmp/stream.log"
    assert config.logging.log_format is LogFormat.JSON


def test_from_env_with_empty_environment_uses_defaults() -> None:
    assert StreamWriterConfig.from_env(environ={}) == StreamWriterConfig()


def test_from_env_falls_back_on_malformed_values() -> None:
    config = StreamWriterConfig.from_env(
        environ={
            "HTTP_STREAM_CONNECT_TIMEOUT": "soon",
            "HTTP_STREAM_MAX_PENDING_CHUNKS": "many",
            "HTTP_STREAM_FATAL_STATUS_CODES": "x,y",
            "HTTP_STREAM_FIELD_NAME": "",
        }
    )

    assert config.connect_timeout is None
    assert config.max_pending_chunks == 1
    assert config.fatal_status_codes == frozenset({404, 500})
    assert config.default_field_name == "Stream"


def test_from_env_ignores_single_bad_status_code() -> None:
    config = StreamWriterConfig.from_env(
        environ={"HTTP_STREAM_FATAL_STATUS_CODES": "404,teapot"}
    )

    assert config.fatal_status_codes == frozenset({404})


@pytest.mark.parametrize(
    "overrides",
    [
        {"connect_timeout": 0},
        {"max_pending_chunks": 0},
        {"default_field_name": ""},
    ],
)
def test_invalid_values_are_rejected(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        StreamWriterConfig(**overrides)


def test_config_is_frozen() -> None:
    config = StreamWriterConfig()

    with pytest.raises(ValidationError):
        config.max_pending_chunks = 3  # type: ignore[misc]
