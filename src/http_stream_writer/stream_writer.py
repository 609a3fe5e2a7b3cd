"""
Open an HTTP multipart/form-data POST and stream bytes into its single part.

Typical use::

    async def on_response(response, error):
        ...

    handle = await open_stream(url, "AAA111", {"X-Meta": "1"}, {}, on_response)
    async with handle:
        async for chunk in source:
            await handle.write(chunk)

The request runs in its own task for as long as the stream is open; closing
the handle ends the part, ends the body, and lets the exchange finish. The
callback is invoked exactly once when it does.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from http_stream_writer.core.common.exceptions import StreamClosedError
from http_stream_writer.core.common.logging_utils import redact_url
from http_stream_writer.core.config.stream_config import StreamWriterConfig
from http_stream_writer.core.domain.stream_request import (
    HeaderPairs,
    Outcome,
    ResponseCallback,
    StreamRequest,
)
from http_stream_writer.core.services.confirmation_gate import ConfirmationGate
from http_stream_writer.core.services.dispatcher import RequestDispatcher
from http_stream_writer.core.transport.closer import CompositeCloser
from http_stream_writer.core.transport.multipart import (
    MultipartWriter,
    PartWriter,
    create_form_part,
)
from http_stream_writer.core.transport.pipe import create_pipe


class StreamHandle:
    """Caller-facing write/close surface of one open stream."""

    def __init__(
        self,
        part: PartWriter,
        closer: CompositeCloser,
        task: asyncio.Task[Outcome],
    ) -> None:
        self._part = part
        self._closer = closer
        self._task = task

    @property
    def closed(self) -> bool:
        return self._closer.closed

    @property
    def task(self) -> asyncio.Task[Outcome]:
        """The task running the HTTP exchange."""
        return self._task

    async def write(self, data: bytes | bytearray | memoryview) -> int:
        """Stream ``data`` into the part body.

        Returns:
            The number of bytes accepted for sending. The bytes are queued
            and may not have reached the connection yet.

        Raises:
            StreamClosedError: If the handle was closed, or the exchange has
                already concluded and the body is no longer read.
        """
        if self._closer.closed:
            raise StreamClosedError("write on closed stream")
        return await self._part.write(data)

    async def close(self) -> None:
        """Emit the multipart trailer, then end the request body.

        Only the first call does anything.

        Raises:
            CloseError: If writing the trailer or closing the pipe failed.
        """
        await self._closer.close()

    async def wait_for_outcome(self) -> Outcome:
        """Wait for the exchange to conclude (close the handle first)."""
        return await asyncio.shield(self._task)

    async def __aenter__(self) -> StreamHandle:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


async def _open(
    request: StreamRequest,
    config: StreamWriterConfig,
    *,
    transport: httpx.AsyncBaseTransport | None,
    log: logging.Logger,
    gate: ConfirmationGate | None = None,
) -> StreamHandle:
    reader, writer = create_pipe(config.max_pending_chunks)
    multipart = MultipartWriter(writer, request.boundary)

    # The pipe holds at least one chunk, so the preamble never waits on the network
    part = await create_form_part(
        multipart, request.field_name, request.extra_mime_headers, request.filename
    )

    headers = [("Content-Type", multipart.content_type), *request.extra_http_headers]
    dispatcher = RequestDispatcher(config, transport=transport, logger=log)
    if gate is not None:
        dispatcher.add_observer(gate.observe)
    task = dispatcher.start("POST", request.url, headers, reader, request.on_response)

    closer = CompositeCloser(
        [("multipart writer", multipart.close), ("pipe writer", writer.close)],
        logger=log,
    )
    log.info(
        "Opened stream to %s (field %r, boundary %s)",
        redact_url(request.url),
        request.field_name,
        request.boundary,
    )
    return StreamHandle(part, closer, task)


async def open_stream(
    url: str | httpx.URL,
    boundary: str,
    extra_http_headers: HeaderPairs | None,
    extra_mime_headers: dict[str, str] | None,
    on_response: ResponseCallback,
    *,
    field_name: str | None = None,
    filename: str | None = None,
    config: StreamWriterConfig | None = None,
    logger: logging.Logger | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> StreamHandle:
    """Start a streaming multipart POST to ``url``.

    Args:
        url: Target URL (http or https).
        boundary: Multipart boundary token.
        extra_http_headers: Extra request headers, as a mapping or a
            sequence of pairs; repeated names are all sent.
        extra_mime_headers: Extra part headers; these win over the default
            Content-Disposition/Content-Type on a name collision.
        on_response: Called exactly once with ``(response, None)`` or
            ``(None, error)`` when the exchange concludes. May be a
            coroutine function. Runs on the request task and must not block.
        field_name: Form field name; defaults to ``config.default_field_name``.
        filename: Optional filename parameter for the part.
        config: Stream settings; defaults to ``StreamWriterConfig()``.
        logger: Diagnostic sink for this stream; defaults to this module's.
        transport: Optional httpx transport (e.g. for tests).

    Returns:
        The handle to write the stream through.

    Raises:
        ConstructionError: If the URL, boundary or headers are invalid.
    """
    config = config or StreamWriterConfig()
    request = StreamRequest.build(
        url=url,
        boundary=boundary,
        extra_http_headers=extra_http_headers,
        extra_mime_headers=extra_mime_headers,
        on_response=on_response,
        field_name=field_name or config.default_field_name,
        filename=filename,
    )
    log = logger if logger is not None else logging.getLogger(__name__)
    return await _open(request, config, transport=transport, log=log)


async def open_stream_with_confirmation(
    url: str | httpx.URL,
    boundary: str,
    extra_http_headers: HeaderPairs | None,
    extra_mime_headers: dict[str, str] | None,
    on_response: ResponseCallback,
    confirm_timeout: float,
    *,
    field_name: str | None = None,
    filename: str | None = None,
    config: StreamWriterConfig | None = None,
    logger: logging.Logger | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> StreamHandle:
    """Like :func:`open_stream`, but wait up to ``confirm_timeout`` seconds
    for an early failure before handing back the stream.

    If the connection fails, or the peer answers with a fatal status
    (``config.fatal_status_codes``), within the window, that error is raised
    and the stream is already closed (it is also available as
    ``error.handle``). Otherwise the handle is returned once the window has
    elapsed and the exchange keeps running.

    Raises:
        ConstructionError: If the URL, boundary or headers are invalid.
        TransportError: If the exchange failed within the window.
        FatalStatusError: If a fatal status arrived within the window.
    """
    config = config or StreamWriterConfig()
    request = StreamRequest.build(
        url=url,
        boundary=boundary,
        extra_http_headers=extra_http_headers,
        extra_mime_headers=extra_mime_headers,
        on_response=on_response,
        field_name=field_name or config.default_field_name,
        filename=filename,
        confirm_timeout=confirm_timeout,
    )
    log = logger if logger is not None else logging.getLogger(__name__)
    gate = ConfirmationGate(config.fatal_status_codes, logger=log)
    handle = await _open(request, config, transport=transport, log=log, gate=gate)
    return await gate.wait_or_proceed(handle, request.confirm_timeout or 0.0)
