"""
Streaming multipart/form-data framing.

A ``MultipartWriter`` frames exactly one part over a byte target (usually a
pipe write end): creating the part emits the boundary and part headers,
the returned ``PartWriter`` forwards body bytes untouched, and closing the
writer emits the terminal boundary so the receiver sees end-of-stream.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Protocol

from http_stream_writer.core.common.exceptions import (
    ConstructionError,
    StreamClosedError,
)

logger = logging.getLogger(__name__)

DEFAULT_PART_CONTENT_TYPE = "application/octet-stream"
MAX_BOUNDARY_LENGTH = 70

# RFC 2046 bchars; a space is allowed anywhere but at the end
_BOUNDARY_CHARS = re.compile(r"^[0-9A-Za-z'()+_,\-./:=? ]+$")
# RFC 2045 token characters; header names, and unquoted parameter values
_TOKEN_CHARS = re.compile(r"^[!#$%&'*+\-.0-9A-Z^_`a-z|~]+$")


class ByteTarget(Protocol):
    async def write(self, data: bytes) -> int: ...


def escape_quotes(value: str) -> str:
    """Escape backslashes and double quotes (and nothing else)."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def validate_boundary(boundary: str) -> str:
    """Return ``boundary`` if it is a legal multipart boundary.

    Raises:
        ConstructionError: If the boundary is empty, too long, ends with a
            space or contains characters outside the RFC 2046 set.
    """
    if not boundary or len(boundary) > MAX_BOUNDARY_LENGTH:
        raise ConstructionError(
            f"invalid boundary length {len(boundary)}; expected 1 to {MAX_BOUNDARY_LENGTH}",
            details={"boundary": boundary},
        )
    if boundary.endswith(" ") or not _BOUNDARY_CHARS.match(boundary):
        raise ConstructionError(
            "invalid boundary character", details={"boundary": boundary}
        )
    return boundary


def canonical_header_key(key: str) -> str:
    """Canonicalise a MIME header name (``content-type`` -> ``Content-Type``)."""
    if not _TOKEN_CHARS.match(key):
        raise ConstructionError(f"invalid MIME header name {key!r}")
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def check_header_value(key: str, value: str) -> str:
    if "\r" in value or "\n" in value:
        raise ConstructionError(f"invalid value for MIME header {key!r}")
    return value


class PartWriter:
    """Streams raw bytes into the body of the single open part."""

    def __init__(self, owner: MultipartWriter) -> None:
        self._owner = owner

    async def write(self, data: bytes | bytearray | memoryview) -> int:
        if self._owner.closed:
            raise StreamClosedError("write to a closed multipart part")
        return await self._owner._target.write(data)


class MultipartWriter:
    """Frames a single multipart/form-data part over ``target``."""

    def __init__(self, target: ByteTarget, boundary: str) -> None:
        self._target = target
        self.boundary = validate_boundary(boundary)
        self._part: PartWriter | None = None
        self.closed = False

    @property
    def content_type(self) -> str:
        """Value for the request's Content-Type header."""
        boundary = self.boundary
        if not _TOKEN_CHARS.match(boundary):
            boundary = f'"{boundary}"'
        return f"multipart/form-data; boundary={boundary}"

    async def create_part(self, headers: Mapping[str, str]) -> PartWriter:
        """Write the boundary and ``headers`` and return the part body writer.

        Raises:
            ConstructionError: If a part already exists or the headers are
                invalid, or the preamble cannot be written.
        """
        if self.closed:
            raise ConstructionError("multipart writer is closed")
        if self._part is not None:
            raise ConstructionError("only one part is supported per stream")

        lines = [f"--{self.boundary}\r\n"]
        for key in sorted(headers):
            lines.append(f"{key}: {check_header_value(key, headers[key])}\r\n")
        lines.append("\r\n")
        preamble = "".join(lines).encode("utf-8")

        try:
            await self._target.write(preamble)
        except StreamClosedError as e:
            raise ConstructionError(f"could not write part header: {e}") from e

        self._part = PartWriter(self)
        return self._part

    async def close(self) -> None:
        """Emit the closing boundary. Subsequent calls do nothing."""
        if self.closed:
            return
        self.closed = True
        if self._part is None:
            trailer = f"--{self.boundary}--\r\n"
        else:
            trailer = f"\r\n--{self.boundary}--\r\n"
        await self._target.write(trailer.encode("utf-8"))


async def create_form_part(
    writer: MultipartWriter,
    field_name: str,
    extra_mime_headers: Mapping[str, str] | None = None,
    filename: str | None = None,
) -> PartWriter:
    """Create the form-data part carrying the stream.

    Args:
        writer: The multipart writer to frame the part on.
        field_name: Form field name, quote-escaped in Content-Disposition.
        extra_mime_headers: Part headers applied after the defaults; an
            entry wins over a default of the same (case-insensitive) name.
        filename: Optional filename parameter for Content-Disposition.

    Returns:
        The writer for the part body.
    """
    disposition = f'form-data; name="{escape_quotes(field_name)}"'
    if filename is not None:
        disposition += f'; filename="{escape_quotes(filename)}"'

    headers: dict[str, str] = {
        "Content-Disposition": disposition,
        "Content-Type": DEFAULT_PART_CONTENT_TYPE,
    }
    for key, value in (extra_mime_headers or {}).items():
        headers[canonical_header_key(key)] = value

    logger.debug("Creating multipart part %r with headers %s", field_name, headers)
    return await writer.create_part(headers)
