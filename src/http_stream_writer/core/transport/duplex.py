"""
HTTP/1.1 transport that reads the response while the request body is still
being sent.

httpx's default transport writes the whole request body before it looks at
the response. For an open-ended stream that means a server rejecting the
request up front (404, 500, ...) is only noticed once the producer stops.
``DuplexHTTPTransport`` sends the request head, streams the body from a
background task and watches the connection for the response head at the
same time, so an early answer is returned as soon as it arrives.

One connection per request; no pooling, proxies or HTTP/2.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from collections.abc import AsyncIterator, Iterator
from typing import Any

import h11
import httpx

logger = logging.getLogger(__name__)

_READ_SIZE = 64 * 1024
# How long a failed body write waits for a response the server may already
# have sent (e.g. a 413 followed by a close)
_WRITE_ERROR_GRACE = 0.05


@contextlib.contextmanager
def _map_errors(
    request: httpx.Request, io_error: type[httpx.TransportError]
) -> Iterator[None]:
    try:
        yield
    except h11.RemoteProtocolError as e:
        raise httpx.RemoteProtocolError(str(e), request=request) from e
    except h11.LocalProtocolError as e:
        raise httpx.LocalProtocolError(str(e), request=request) from e
    except (OSError, asyncio.IncompleteReadError) as e:
        raise io_error(str(e) or type(e).__name__, request=request) from e


async def _next_event(conn: h11.Connection, reader: asyncio.StreamReader) -> Any:
    while True:
        event = conn.next_event()
        if event is h11.NEED_DATA:
            conn.receive_data(await reader.read(_READ_SIZE))
            continue
        return event


def _send(conn: h11.Connection, writer: asyncio.StreamWriter, event: Any) -> None:
    data = conn.send(event)
    if data:
        writer.write(data)


async def _stop(task: asyncio.Task[Any]) -> None:
    """Cancel ``task`` if still running and collect its outcome."""
    task.cancel()
    await asyncio.wait([task])
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Request body sender ended with: %r", task.exception())


class _DuplexResponseStream(httpx.AsyncByteStream):
    """Response body; closing it stops the body sender and drops the connection."""

    def __init__(
        self,
        request: httpx.Request,
        conn: h11.Connection,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        sender: asyncio.Task[None],
    ) -> None:
        self._request = request
        self._conn = conn
        self._reader = reader
        self._writer = writer
        self._sender = sender
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        with _map_errors(self._request, httpx.ReadError):
            while True:
                event = await _next_event(self._conn, self._reader)
                if isinstance(event, h11.Data):
                    yield bytes(event.data)
                elif isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
                    return

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await _stop(self._sender)
        self._writer.close()
        with contextlib.suppress(OSError):
            await self._writer.wait_closed()


class DuplexHTTPTransport(httpx.AsyncBaseTransport):
    """Send the body and read the response concurrently over one connection.

    The connect timeout is taken from the client's ``httpx.Timeout``; no
    other timeout applies.
    """

    def __init__(self, ssl_context: ssl.SSLContext | None = None) -> None:
        self._ssl_context = ssl_context

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        reader, writer = await self._connect(request)
        conn = h11.Connection(our_role=h11.CLIENT)
        try:
            with _map_errors(request, httpx.WriteError):
                _send(
                    conn,
                    writer,
                    h11.Request(
                        method=request.method,
                        target=request.url.raw_path,
                        headers=request.headers.raw,
                    ),
                )
                await writer.drain()
        except BaseException:
            writer.close()
            raise

        sender = asyncio.get_running_loop().create_task(
            self._send_body(request, conn, writer)
        )
        try:
            head = await self._wait_for_head(request, conn, reader, sender)
        except BaseException:
            await _stop(sender)
            writer.close()
            raise

        return httpx.Response(
            status_code=head.status_code,
            headers=head.headers.raw_items(),
            stream=_DuplexResponseStream(request, conn, reader, writer, sender),
            extensions={
                "http_version": b"HTTP/" + head.http_version,
                "reason_phrase": head.reason,
            },
        )

    async def _connect(
        self, request: httpx.Request
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        url = request.url
        ssl_context: ssl.SSLContext | None = None
        if url.scheme == "https":
            ssl_context = self._ssl_context or ssl.create_default_context()
        port = url.port or (443 if url.scheme == "https" else 80)
        timeout = request.extensions.get("timeout", {}).get("connect")

        try:
            return await asyncio.wait_for(
                asyncio.open_connection(
                    url.host,
                    port,
                    ssl=ssl_context,
                    server_hostname=url.host if ssl_context is not None else None,
                ),
                timeout,
            )
        except asyncio.TimeoutError as e:
            raise httpx.ConnectTimeout(
                f"timed out connecting to {url.host}:{port}", request=request
            ) from e
        except OSError as e:
            raise httpx.ConnectError(str(e), request=request) from e

    async def _send_body(
        self,
        request: httpx.Request,
        conn: h11.Connection,
        writer: asyncio.StreamWriter,
    ) -> None:
        assert isinstance(request.stream, httpx.AsyncByteStream)
        async for chunk in request.stream:
            with _map_errors(request, httpx.WriteError):
                _send(conn, writer, h11.Data(data=chunk))
                await writer.drain()
        with _map_errors(request, httpx.WriteError):
            _send(conn, writer, h11.EndOfMessage())
            await writer.drain()

    async def _wait_for_head(
        self,
        request: httpx.Request,
        conn: h11.Connection,
        reader: asyncio.StreamReader,
        sender: asyncio.Task[None],
    ) -> h11.Response:
        head_task = asyncio.get_running_loop().create_task(
            self._receive_head(request, conn, reader)
        )
        try:
            done, _ = await asyncio.wait(
                {head_task, sender}, return_when=asyncio.FIRST_COMPLETED
            )
            if head_task not in done:
                error = sender.exception()
                if error is None:
                    # Body fully sent; the answer is still to come
                    return await head_task
                done, _ = await asyncio.wait({head_task}, timeout=_WRITE_ERROR_GRACE)
                if head_task not in done:
                    raise error
            return head_task.result()
        finally:
            if not head_task.done():
                head_task.cancel()
                await asyncio.wait([head_task])

    async def _receive_head(
        self,
        request: httpx.Request,
        conn: h11.Connection,
        reader: asyncio.StreamReader,
    ) -> h11.Response:
        with _map_errors(request, httpx.ReadError):
            while True:
                event = await _next_event(conn, reader)
                if isinstance(event, h11.Response):
                    return event
                if isinstance(event, h11.ConnectionClosed):
                    raise httpx.RemoteProtocolError(
                        "Server disconnected without sending a response.",
                        request=request,
                    )
