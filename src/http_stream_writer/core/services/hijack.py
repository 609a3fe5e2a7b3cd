"""
Server-side helper that drops a client connection without answering.

Receiving endpoints use it to simulate an abrupt peer failure: the request's
connection is taken over and aborted so the client sees a transport error
instead of a response.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

_UNSUPPORTED_BODY = b"webserver doesn't support hijacking\n"


async def hijack_and_force_close(writer: Any) -> None:
    """Abort the connection behind ``writer`` immediately.

    ``writer`` is the response side of a connection, typically an
    ``asyncio.StreamWriter``. When its transport offers ``abort()`` the
    connection is dropped without sending any bytes. Otherwise, or if the
    abort fails, a ``500 Internal Server Error`` response is written instead.
    Failures are logged, not raised.
    """
    transport = getattr(writer, "transport", None)
    abort = getattr(transport, "abort", None)
    if callable(abort):
        try:
            abort()
        except (OSError, RuntimeError) as e:
            logger.error("Error hijacking connection: %s", e)
        else:
            logger.debug("Aborted hijacked connection")
            return
    else:
        logger.error("Error hijacking connection: transport has no abort capability")

    head = (
        "HTTP/1.1 500 Internal Server Error\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        f"Content-Length: {len(_UNSUPPORTED_BODY)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode("ascii")
    try:
        writer.write(head + _UNSUPPORTED_BODY)
        drain = getattr(writer, "drain", None)
        if callable(drain):
            await drain()
        close = getattr(writer, "close", None)
        if callable(close):
            close()
    except (OSError, RuntimeError) as e:
        logger.error("Error answering hijacked connection: %s", e)
