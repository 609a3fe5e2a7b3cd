"""Nominal marker base classes for the stream writer's models.

`DomainModel` marks validated Pydantic models (requests, configuration);
`InternalDTO` marks plain dataclasses passed between components.
"""

from __future__ import annotations

from pydantic import BaseModel

from http_stream_writer.core.common.logging_utils import redact_url


class DomainModel(BaseModel):
    """Nominal marker for Pydantic-based domain and configuration models."""

    def __repr__(self) -> str:
        """One line, safe to log: the target URL has its password masked."""
        class_name = self.__class__.__name__

        url = getattr(self, "url", None)
        if url is not None:
            return f'<{class_name} url="{redact_url(str(url))}">'
        boundary = getattr(self, "boundary", None)
        if boundary is not None:
            return f'<{class_name} boundary="{boundary}">'
        return f"<{class_name}>"


class InternalDTO:
    """Nominal marker for internal dataclass DTOs."""
