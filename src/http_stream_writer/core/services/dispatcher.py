"""
Request dispatcher: runs one streaming HTTP exchange as an independent task.

The request body is the read end of a pipe, so the exchange progresses as the
caller writes. The outcome is handed to observers (the confirmation gate) and
then to the caller's response callback, exactly once.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from http_stream_writer.core.common.exceptions import TransportError
from http_stream_writer.core.common.logging_utils import redact_url
from http_stream_writer.core.config.stream_config import StreamWriterConfig
from http_stream_writer.core.domain.stream_request import Outcome, ResponseCallback
from http_stream_writer.core.transport.duplex import DuplexHTTPTransport
from http_stream_writer.core.transport.pipe import PipeReader

OutcomeObserver = Callable[[Outcome], None]

# Strong references to running dispatch tasks; the event loop only keeps weak ones
_running_tasks: set[asyncio.Task[Any]] = set()


class RequestDispatcher:
    """Issues a single chunked request and reports its outcome.

    The dispatcher owns its ``httpx.AsyncClient``: the client is created
    with no overall timeout (only the configured connect timeout applies)
    and is closed when the exchange concludes. Unless a transport is
    injected, requests go through ``DuplexHTTPTransport`` so a response sent
    while the body is still streaming ends the exchange right away.
    """

    def __init__(
        self,
        config: StreamWriterConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or StreamWriterConfig()
        self._transport = transport
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._observers: list[OutcomeObserver] = []
        self._task: asyncio.Task[Outcome] | None = None

    @property
    def task(self) -> asyncio.Task[Outcome] | None:
        return self._task

    def add_observer(self, observer: OutcomeObserver) -> None:
        """Register ``observer`` to see the outcome before the callback does."""
        self._observers.append(observer)

    def _build_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(None, connect=self._config.connect_timeout)
        transport = self._transport or DuplexHTTPTransport()
        return httpx.AsyncClient(timeout=timeout, transport=transport)

    def start(
        self,
        method: str,
        url: str,
        headers: Sequence[tuple[str, str]],
        body: PipeReader,
        on_response: ResponseCallback,
    ) -> asyncio.Task[Outcome]:
        """Spawn the exchange on the running loop.

        Args:
            method: HTTP method, normally ``POST``.
            url: Target URL.
            headers: Request headers; repeated names are all sent.
            body: Read end of the stream pipe, sent with chunked encoding.
            on_response: Called once with ``(response, None)`` or
                ``(None, error)`` when the exchange concludes.

        Returns:
            The task running the exchange.
        """
        if self._task is not None:
            raise RuntimeError("RequestDispatcher.start() may only be called once")

        task = asyncio.get_running_loop().create_task(
            self._run(method, url, list(headers), body, on_response)
        )
        _running_tasks.add(task)
        task.add_done_callback(_running_tasks.discard)
        self._task = task
        return task

    async def _run(
        self,
        method: str,
        url: str,
        headers: list[tuple[str, str]],
        body: PipeReader,
        on_response: ResponseCallback,
    ) -> Outcome:
        client = self._build_client()
        response: httpx.Response | None = None
        try:
            try:
                # No Content-Length: httpx frames an async iterable body as chunked
                request = client.build_request(
                    method, url, headers=headers, content=body
                )
                response = await client.send(request, stream=True)
            except asyncio.CancelledError:
                await self._conclude(
                    body,
                    on_response,
                    Outcome(error=TransportError("stream request cancelled")),
                )
                raise
            except Exception as e:
                self._logger.warning(
                    "Stream request to %s failed: %s", redact_url(url), e
                )
                error = TransportError(
                    f"Could not complete stream request ({type(e).__name__}: {e})",
                    details={"url": redact_url(url)},
                )
                error.__cause__ = e
                return await self._conclude(body, on_response, Outcome(error=error))

            self._logger.info(
                "Stream response from %s: %s", redact_url(url), response.status_code
            )
            return await self._conclude(
                body, on_response, Outcome(response=response)
            )
        finally:
            if response is not None:
                with contextlib.suppress(httpx.HTTPError):
                    await response.aclose()
            await client.aclose()

    async def _conclude(
        self, body: PipeReader, on_response: ResponseCallback, outcome: Outcome
    ) -> Outcome:
        # The exchange is over; writers must fail rather than wait
        await body.close(outcome.error)
        self._notify(outcome)
        await self._invoke_callback(on_response, outcome)
        return outcome

    def _notify(self, outcome: Outcome) -> None:
        for observer in self._observers:
            try:
                observer(outcome)
            except Exception:
                self._logger.exception("Outcome observer failed")

    async def _invoke_callback(
        self, on_response: ResponseCallback, outcome: Outcome
    ) -> None:
        try:
            result = on_response(outcome.response, outcome.error)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._logger.exception("HttpStreamWriter response callback raised")
