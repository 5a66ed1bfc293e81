"""HTTP transport used to deliver analytics events."""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, Optional, Protocol

import httpx

from .config import Settings

logger = logging.getLogger("quiver.http")


class TransportError(RuntimeError):
    """Raised when a request could not be issued or produced no response."""


@dataclass(frozen=True, slots=True)
class PendingRequest:
    """A fully built HTTP request for a single event."""

    url: str
    headers: Dict[str, str]
    body: str


@dataclass(frozen=True, slots=True)
class TransportResponse:
    status_code: int
    body: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code <= 299


class Transport(Protocol):
    async def send(self, request: PendingRequest) -> TransportResponse:
        ...

    async def aclose(self) -> None:
        ...


class HttpTransport:
    """Sends event requests with a lazily created ``httpx.AsyncClient``."""

    def __init__(self, *, timeout: float, client: Optional[httpx.AsyncClient] = None) -> None:
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpTransport":
        return cls(timeout=settings.request_timeout_seconds)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            limits = httpx.Limits(max_connections=1, max_keepalive_connections=1)
            self._client = httpx.AsyncClient(timeout=self.timeout, limits=limits)
        return self._client

    async def send(self, request: PendingRequest) -> TransportResponse:
        client = self._get_client()
        try:
            response = await client.post(request.url, headers=request.headers, content=request.body)
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
        logger.debug("POST %s -> %s", request.url, response.status_code)
        return TransportResponse(status_code=response.status_code, body=response.content)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
