"""Transports execute fully expanded requests and return raw responses."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from aduib_feign.config.options import Options
from aduib_feign.exceptions import RetryableError
from aduib_feign.http import HttpRequest, HttpResponse

__all__ = ["HttpxTransport", "Transport"]

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Sends one request. Connection management belongs to implementations."""

    @abstractmethod
    async def execute(self, request: HttpRequest, options: Options) -> HttpResponse:
        """Send ``request`` honoring ``options`` and return the response."""

    async def aclose(self) -> None:
        return None


class HttpxTransport(Transport):
    """Transport backed by an ``httpx.AsyncClient``.

    Args:
        httpx_client: Client to send through. Created lazily when omitted,
            using ``transport`` (e.g. ``httpx.MockTransport``) if given.
        transport: Optional low-level httpx transport for the lazy client.
    """

    def __init__(
        self,
        httpx_client: httpx.AsyncClient | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx_client
        self._transport = transport
        self._owns_client = httpx_client is None

    @property
    def httpx_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport)
        return self._client

    async def execute(self, request: HttpRequest, options: Options) -> HttpResponse:
        client = self.httpx_client
        headers = [(key, value) for key, values in request.headers for value in values]
        http_request = client.build_request(
            request.method,
            request.url,
            headers=headers,
            content=request.body,
            timeout=httpx.Timeout(options.read_timeout, connect=options.connect_timeout),
        )
        try:
            response = await client.send(http_request, follow_redirects=options.follow_redirects)
            body = await response.aread()
        except httpx.TransportError as exc:
            logger.debug("Transport failure for %s %s: %s", request.method, request.url, exc)
            raise RetryableError(
                message=f"{type(exc).__name__} executing {request.method} {request.url}",
                config_key=request.config_key,
                cause=exc,
                method=request.method,
            ) from exc
        grouped: dict[str, list[str]] = {}
        for key, value in response.headers.multi_items():
            grouped.setdefault(key, []).append(value)
        return HttpResponse(
            status=response.status_code,
            reason=response.reason_phrase,
            headers={key: tuple(values) for key, values in grouped.items()},
            body=body,
            request=request,
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
