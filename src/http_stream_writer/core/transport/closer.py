"""
Composite close: drive several dependent closes in order and aggregate failures.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from http_stream_writer.core.common.exceptions import CloseError

CloseStep = tuple[str, Callable[[], Awaitable[None]]]


class CompositeCloser:
    """Runs every close step in order, then reports all failures at once.

    A step failing does not stop later steps: the multipart trailer may be
    lost, but the pipe must still deliver EOF so the request can finish.
    """

    def __init__(
        self, steps: Sequence[CloseStep], logger: logging.Logger | None = None
    ) -> None:
        self._steps = list(steps)
        self._lock = asyncio.Lock()
        self._closed = False
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close every step once.

        Raises:
            CloseError: On the first call, if any step failed.
        """
        async with self._lock:
            if self._closed:
                return
            self._closed = True

            failures: list[tuple[str, BaseException]] = []
            for name, close in self._steps:
                try:
                    await close()
                except Exception as e:
                    self._logger.warning("Error closing %s: %s", name, e)
                    failures.append((name, e))

        if failures:
            raise CloseError(failures)
