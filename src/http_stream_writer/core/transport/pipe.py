"""
In-process byte pipe bridging a push-style producer to a pull-style body reader.

The write end hands chunks to the read end through a bounded slot list: a
writer is suspended while ``max_pending`` chunks are still waiting to be
read, so memory use never grows with the stream. Closing the write end
delivers EOF (or an error) to the reader once pending chunks are drained;
closing the read end makes every pending and future write fail.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator

from http_stream_writer.core.common.exceptions import StreamClosedError


class _Pipe:
    """Shared state of one reader/writer pair."""

    def __init__(self, max_pending: int) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._max_pending = max_pending
        self._chunks: deque[bytes] = deque()
        self._cond = asyncio.Condition()
        self._write_closed = False
        self._read_closed = False
        # Delivered to the reader instead of EOF
        self._write_error: BaseException | None = None
        # Chained onto StreamClosedError raised in writers
        self._read_error: BaseException | None = None

    def _raise_write_closed(self) -> None:
        if self._read_closed:
            error = StreamClosedError("write on closed pipe")
            if self._read_error is not None:
                raise error from self._read_error
            raise error
        raise StreamClosedError("write on closed pipe")

    async def write(self, data: bytes | bytearray | memoryview) -> int:
        if self._read_closed or self._write_closed:
            self._raise_write_closed()
        if not data:
            return 0
        chunk = bytes(data)
        async with self._cond:
            while True:
                if self._read_closed or self._write_closed:
                    self._raise_write_closed()
                if len(self._chunks) < self._max_pending:
                    self._chunks.append(chunk)
                    self._cond.notify_all()
                    return len(chunk)
                await self._cond.wait()

    async def read(self) -> bytes:
        async with self._cond:
            while True:
                if self._read_closed:
                    raise StreamClosedError("read on closed pipe")
                if self._chunks:
                    chunk = self._chunks.popleft()
                    self._cond.notify_all()
                    return chunk
                if self._write_closed:
                    if self._write_error is not None:
                        raise self._write_error
                    return b""
                await self._cond.wait()

    async def close_write(self, exc: BaseException | None) -> None:
        async with self._cond:
            if self._write_closed:
                return
            self._write_closed = True
            self._write_error = exc
            self._cond.notify_all()

    async def close_read(self, exc: BaseException | None) -> None:
        async with self._cond:
            if self._read_closed:
                return
            self._read_closed = True
            self._read_error = exc
            self._chunks.clear()
            self._cond.notify_all()


class PipeReader:
    """Read end of a pipe; an async iterable of byte chunks ending at EOF."""

    def __init__(self, pipe: _Pipe) -> None:
        self._pipe = pipe

    async def read(self) -> bytes:
        """Return the next chunk, or ``b""`` once the writer has closed."""
        return await self._pipe.read()

    async def close(self, exc: BaseException | None = None) -> None:
        """Stop reading; pending and future writes fail with StreamClosedError."""
        await self._pipe.close_read(exc)

    @property
    def closed(self) -> bool:
        return self._pipe._read_closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read()
            if not chunk:
                return
            yield chunk


class PipeWriter:
    """Write end of a pipe."""

    def __init__(self, pipe: _Pipe) -> None:
        self._pipe = pipe

    async def write(self, data: bytes | bytearray | memoryview) -> int:
        """Hand ``data`` to the reader, waiting while the pipe is full.

        Returns:
            The number of bytes accepted into the pipe. They may not have been
            read yet.

        Raises:
            StreamClosedError: If either end of the pipe has been closed.
        """
        return await self._pipe.write(data)

    async def close(self, exc: BaseException | None = None) -> None:
        """Deliver EOF, or ``exc`` when given, to the reader."""
        await self._pipe.close_write(exc)

    @property
    def closed(self) -> bool:
        return self._pipe._write_closed


def create_pipe(max_pending: int = 1) -> tuple[PipeReader, PipeWriter]:
    """Create a connected reader/writer pair.

    Args:
        max_pending: Number of written chunks allowed to wait for the reader
            before writers are suspended.

    Returns:
        The read end and the write end of a new pipe.
    """
    pipe = _Pipe(max_pending)
    return PipeReader(pipe), PipeWriter(pipe)
