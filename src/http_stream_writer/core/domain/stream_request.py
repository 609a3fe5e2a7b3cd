from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

import httpx
from pydantic import ConfigDict, Field, ValidationError, field_validator

from http_stream_writer.core.common.exceptions import ConstructionError
from http_stream_writer.core.config.stream_config import DEFAULT_FIELD_NAME
from http_stream_writer.core.interfaces.model_bases import DomainModel, InternalDTO
from http_stream_writer.core.transport.multipart import (
    canonical_header_key,
    check_header_value,
    validate_boundary,
)

ResponseCallback = Callable[
    [Union[httpx.Response, None], Union[BaseException, None]],
    Union[Awaitable[Any], None],
]

HeaderPairs = Union[Mapping[str, str], Iterable[tuple[str, str]]]


@dataclass(frozen=True)
class Outcome(InternalDTO):
    """Result of one HTTP exchange: a response, an error, never both."""

    response: httpx.Response | None = None
    error: BaseException | None = None

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None

    def is_fatal(self, fatal_status_codes: Iterable[int]) -> bool:
        """True for transport errors and for statuses in ``fatal_status_codes``."""
        if self.error is not None:
            return True
        return self.status_code in set(fatal_status_codes)


class StreamRequest(DomainModel):
    """Everything needed to open one stream; validated once, then immutable."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    url: str
    boundary: str
    extra_http_headers: tuple[tuple[str, str], ...] = ()
    extra_mime_headers: dict[str, str] = Field(default_factory=dict)
    on_response: Callable[..., Any]
    field_name: str = DEFAULT_FIELD_NAME
    filename: str | None = None
    confirm_timeout: float | None = None

    @field_validator("url", mode="before")
    @classmethod
    def coerce_url(cls, v: Any) -> Any:
        return str(v) if isinstance(v, httpx.URL) else v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        try:
            url = httpx.URL(v)
        except (httpx.InvalidURL, TypeError) as e:
            raise ValueError(f"malformed target URL: {e}") from e
        if url.scheme not in ("http", "https"):
            raise ValueError("target URL must start with http:// or https://")
        if not url.host:
            raise ValueError("target URL has no host")
        return v

    @field_validator("boundary")
    @classmethod
    def check_boundary(cls, v: str) -> str:
        try:
            return validate_boundary(v)
        except ConstructionError as e:
            raise ValueError(e.message) from e

    @field_validator("extra_http_headers", mode="before")
    @classmethod
    def normalize_http_headers(cls, v: Any) -> tuple[tuple[str, str], ...]:
        """Accept a mapping or a sequence of pairs; repeated names are kept."""
        if v is None:
            return ()
        items = v.items() if isinstance(v, Mapping) else v
        pairs = tuple((str(name), str(value)) for name, value in items)
        try:
            for name, value in pairs:
                check_header_value(canonical_header_key(name), value)
        except ConstructionError as e:
            raise ValueError(e.message) from e
        return pairs

    @field_validator("extra_mime_headers", mode="before")
    @classmethod
    def normalize_mime_headers(cls, v: Any) -> dict[str, str]:
        if v is None:
            return {}
        headers = {str(key): str(value) for key, value in dict(v).items()}
        try:
            for key, value in headers.items():
                check_header_value(canonical_header_key(key), value)
        except ConstructionError as e:
            raise ValueError(e.message) from e
        return headers

    @field_validator("field_name")
    @classmethod
    def validate_field_name(cls, v: str) -> str:
        if not v:
            raise ValueError("field name must not be empty")
        return v

    @field_validator("confirm_timeout")
    @classmethod
    def validate_confirm_timeout(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError("confirmation timeout must not be negative")
        return v

    @classmethod
    def build(cls, **data: Any) -> StreamRequest:
        """Validate ``data`` into a request.

        Raises:
            ConstructionError: If any field is invalid.
        """
        try:
            return cls(**data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise ConstructionError(
                f"invalid stream request: {problems}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e
