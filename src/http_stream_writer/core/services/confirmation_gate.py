"""
Confirmation gate: a bounded wait for early failure of a freshly opened stream.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Protocol, TypeVar

from http_stream_writer.core.common.exceptions import (
    FatalStatusError,
    HttpStreamWriterError,
)
from http_stream_writer.core.config.stream_config import DEFAULT_FATAL_STATUS_CODES
from http_stream_writer.core.domain.stream_request import Outcome


class _Closable(Protocol):
    async def close(self) -> None: ...


_H = TypeVar("_H", bound=_Closable)


class ConfirmationGate:
    """Races the dispatcher's first fatal outcome against a timeout.

    Register :meth:`observe` with the dispatcher, then await
    :meth:`wait_or_proceed`. Only fatal outcomes (a transport error, or a
    status in ``fatal_status_codes``) end the wait early; anything else lets
    the timeout run out.
    """

    def __init__(
        self,
        fatal_status_codes: Iterable[int] = DEFAULT_FATAL_STATUS_CODES,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._fatal_status_codes = frozenset(fatal_status_codes)
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._failure: asyncio.Future[BaseException] = (
            asyncio.get_running_loop().create_future()
        )

    def observe(self, outcome: Outcome) -> None:
        """Record ``outcome``; only the first fatal outcome is kept."""
        if self._failure.done() or not outcome.is_fatal(self._fatal_status_codes):
            return
        if outcome.error is not None:
            self._failure.set_result(outcome.error)
        else:
            status_code = outcome.status_code or 0
            self._failure.set_result(
                FatalStatusError(status_code, details={"status_code": status_code})
            )

    async def wait_or_proceed(self, handle: _H, timeout: float) -> _H:
        """Wait up to ``timeout`` seconds, then hand back ``handle``.

        On a fatal outcome the handle is closed, attached to the error as
        ``error.handle`` and the error is raised; the handle is unusable.

        Raises:
            TransportError: If the exchange failed before the timeout.
            FatalStatusError: If a fatal status arrived before the timeout.
        """
        try:
            error = await asyncio.wait_for(asyncio.shield(self._failure), timeout)
        except asyncio.TimeoutError:
            return handle
        except asyncio.CancelledError:
            await self._discard(handle)
            raise

        extra: dict[str, Any] = {}
        if isinstance(error, HttpStreamWriterError):
            extra["stream_error"] = error.to_dict()["error"]
        self._logger.error(
            "Error creating http stream connection. Error: %s", error, extra=extra
        )
        await self._discard(handle)
        error.handle = handle  # type: ignore[attr-defined]
        raise error

    async def _discard(self, handle: _Closable) -> None:
        try:
            await handle.close()
        except HttpStreamWriterError as e:
            self._logger.debug("Closing rejected stream failed: %s", e)
