"""Receiving endpoint, response recorder and raw socket peers used by the tests."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from http_stream_writer.core.services.hijack import hijack_and_force_close


@dataclass
class ReceivedPart:
    headers: dict[str, str] = field(default_factory=dict)
    name: str | None = None
    filename: str | None = None
    data: bytearray = field(default_factory=bytearray)


@dataclass
class ReceivedRequest:
    headers: httpx.Headers
    parts: list[ReceivedPart] = field(default_factory=list)
    finished: bool = False

    @property
    def total_bytes(self) -> int:
        return sum(len(part.data) for part in self.parts)


class Receiver:
    """Starlette app that parses multipart bodies incrementally.

    Routes:
        /base  parse the stream and answer ``Wrote <n> bytes``
        /fail  answer 500 without reading the body
        /slow  wait until released, then behave like /base
    """

    def __init__(self) -> None:
        self.requests: list[ReceivedRequest] = []
        self.release = asyncio.Event()
        self.app = Starlette(
            routes=[
                Route("/base", self._stream_handler, methods=["POST"]),
                Route("/fail", self._fail_handler, methods=["POST"]),
                Route("/slow", self._slow_handler, methods=["POST"]),
            ]
        )

    def transport(self) -> httpx.ASGITransport:
        return httpx.ASGITransport(app=self.app)

    async def _fail_handler(self, request: Request) -> PlainTextResponse:
        return PlainTextResponse("rejected", status_code=500)

    async def _slow_handler(self, request: Request) -> PlainTextResponse:
        await self.release.wait()
        return await self._stream_handler(request)

    async def _stream_handler(self, request: Request) -> PlainTextResponse:
        received = ReceivedRequest(headers=httpx.Headers(request.headers.raw))
        self.requests.append(received)

        _, options = parse_options_header(request.headers["content-type"])
        header_state: dict[str, Any] = {"field": bytearray(), "value": bytearray()}

        def on_part_begin() -> None:
            received.parts.append(ReceivedPart())

        def on_part_data(data: bytes, start: int, end: int) -> None:
            received.parts[-1].data.extend(data[start:end])

        def on_header_field(data: bytes, start: int, end: int) -> None:
            header_state["field"].extend(data[start:end])

        def on_header_value(data: bytes, start: int, end: int) -> None:
            header_state["value"].extend(data[start:end])

        def on_header_end() -> None:
            name = header_state["field"].decode("latin-1")
            value = header_state["value"].decode("latin-1")
            received.parts[-1].headers[name] = value
            header_state["field"] = bytearray()
            header_state["value"] = bytearray()

        def on_headers_finished() -> None:
            part = received.parts[-1]
            _, disposition = parse_options_header(
                part.headers.get("Content-Disposition", "")
            )
            if b"name" in disposition:
                part.name = disposition[b"name"].decode("latin-1")
            if b"filename" in disposition:
                part.filename = disposition[b"filename"].decode("latin-1")

        def on_end() -> None:
            received.finished = True

        parser = MultipartParser(
            options[b"boundary"],
            {
                "on_part_begin": on_part_begin,
                "on_part_data": on_part_data,
                "on_header_field": on_header_field,
                "on_header_value": on_header_value,
                "on_header_end": on_header_end,
                "on_headers_finished": on_headers_finished,
                "on_end": on_end,
            },
        )
        async for chunk in request.stream():
            parser.write(chunk)
        parser.finalize()

        return PlainTextResponse(f"Wrote {received.total_bytes} bytes")


class ResponseRecorder:
    """Response callback that records every invocation."""

    def __init__(self) -> None:
        self.calls: list[tuple[httpx.Response | None, BaseException | None]] = []
        self.bodies: list[bytes] = []
        self.called = asyncio.Event()

    async def __call__(
        self, response: httpx.Response | None, error: BaseException | None
    ) -> None:
        self.calls.append((response, error))
        if response is not None:
            self.bodies.append(await response.aread())
        self.called.set()

    async def wait(self, timeout: float = 5.0) -> None:
        await asyncio.wait_for(self.called.wait(), timeout)


ConnectionHandler = Callable[
    [asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]
]


@contextlib.asynccontextmanager
async def serve_tcp(handler: ConnectionHandler) -> AsyncIterator[str]:
    """Run ``handler`` for each connection on a localhost port; yield the base URL."""
    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        server.close()
        await server.wait_closed()


async def read_request_head(reader: asyncio.StreamReader) -> httpx.Headers:
    head = await reader.readuntil(b"\r\n\r\n")
    headers = httpx.Headers()
    for line in head.decode("latin-1").split("\r\n")[1:]:
        if line:
            name, _, value = line.partition(":")
            headers[name.strip()] = value.strip()
    return headers


async def read_chunked_body(reader: asyncio.StreamReader) -> bytes:
    """Decode a chunked request body up to and including the last chunk."""
    body = bytearray()
    while True:
        size_line = await reader.readuntil(b"\r\n")
        size = int(size_line.split(b";")[0].strip(), 16)
        if size == 0:
            await reader.readuntil(b"\r\n")
            return bytes(body)
        body.extend(await reader.readexactly(size))
        await reader.readexactly(2)


async def hijacking_handler(
    reader: asyncio.StreamReader, writer: asyncio.StreamWriter
) -> None:
    await read_request_head(reader)
    await hijack_and_force_close(writer)
