"""Collaborator interfaces consumed by the Skland connector and session engine."""

from __future__ import annotations

from typing import Any, Protocol

from .models import HttpRequest, HttpResponse


class HttpClient(Protocol):
    """Executes one HTTP round trip.

    Implementations must preserve status codes and header values verbatim and
    raise ``NetworkError`` when no response could be obtained.
    """

    async def send(self, request: HttpRequest) -> HttpResponse:
        """Send the request and return the raw response."""


class Persistence(Protocol):
    """Durable key-value storage. Methods may be sync or return awaitables."""

    def get(self, key: str) -> Any:
        """Return the stored string or ``None``."""

    def set(self, key: str, value: str) -> Any:
        """Store ``value`` under ``key``."""

    def remove(self, key: str) -> Any:
        """Delete ``key`` if present."""
