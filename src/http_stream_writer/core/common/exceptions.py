"""
Common exception classes for the HTTP stream writer.

This module defines the exception taxonomy shared by the pipe, the multipart
framer, the request dispatcher and the confirmation gate.
"""

from __future__ import annotations

from typing import Any


class HttpStreamWriterError(Exception):
    """Base exception class for all stream writer errors."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        **kwargs: Any,
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        # Attach any extra attributes provided by callers (e.g. the handle)
        for key, value in (kwargs or {}).items():
            setattr(self, key, value)

    def to_dict(self) -> dict:
        return {
            "error": {
                "message": self.message,
                "type": self.__class__.__name__,
                "details": self.details,
            }
        }


class ConstructionError(HttpStreamWriterError):
    """Raised when a stream cannot be opened (bad URL, boundary or part)."""

    def __init__(
        self,
        message: str = "Could not construct stream",
        details: dict | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, details, **kwargs)


class TransportError(HttpStreamWriterError):
    """Raised when the HTTP exchange fails at the transport level."""

    def __init__(
        self,
        message: str = "Transport failure",
        details: dict | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, details, **kwargs)


class FatalStatusError(HttpStreamWriterError):
    """Raised by the confirmation gate when the peer answers with a fatal status."""

    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        details: dict | None = None,
        **kwargs: Any,
    ):
        super().__init__(
            message or f"HttpStreamWriter request failure. Status {status_code}",
            details,
            **kwargs,
        )
        self.status_code = status_code


class CloseError(HttpStreamWriterError):
    """Raised when one or more steps of a composite close fail."""

    def __init__(
        self,
        failures: list[tuple[str, BaseException]],
        details: dict | None = None,
        **kwargs: Any,
    ):
        message = "; ".join(
            f"Error on {name}, error: {error}" for name, error in failures
        )
        super().__init__(message or "Close failed", details, **kwargs)
        self.failures = list(failures)


class StreamClosedError(HttpStreamWriterError):
    """Raised on read or write against a closed pipe or stream handle."""

    def __init__(
        self,
        message: str = "read/write on closed pipe",
        details: dict | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, details, **kwargs)
