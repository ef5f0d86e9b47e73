"""HTTP transport for OpenAI-compatible APIs.

A transport opens a streamed request and hands back the raw byte stream.
Failures are raised as ``RequestFailed``; when the server answered with an
error status, the still-open response body travels along so the error
resolver can read it.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, AsyncIterator, Protocol

import httpx

from hexbot.config import UserPreferences
from hexbot.errors import FailedResponse, RequestFailed
from hexbot.types import Request

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the bots need from a network client."""

    async def issue(self, request: Request) -> AsyncIterator[bytes]:
        """Send *request* with streaming enabled and return its body stream."""
        ...


async def _iter_body(response: httpx.Response) -> AsyncGenerator[bytes, None]:
    """Yield body buffers and close *response* afterwards."""
    try:
        async for buffer in response.aiter_bytes():
            yield buffer
    except httpx.HTTPError as e:
        _logger.warning("LLM stream interrupted: %s", e)
        raise RequestFailed(f"stream interrupted: {e}") from e
    finally:
        await response.aclose()


class HttpxTransport:
    """Streaming transport built on ``httpx.AsyncClient``.

    Constructed explicitly from ``UserPreferences``; pass ``client`` to
    reuse an existing ``httpx.AsyncClient`` (tests use ``MockTransport``).
    """

    def __init__(
        self,
        preferences: UserPreferences,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.preferences = preferences
        if client is None:
            client = httpx.AsyncClient(
                base_url=preferences.base_url.rstrip("/"),
                headers={
                    "Authorization": f"Bearer {preferences.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(preferences.request_timeout, connect=30, read=60),
            )
        self._client = client

    async def issue(self, request: Request) -> AsyncIterator[bytes]:
        payload = request.to_payload()
        http_request = self._client.build_request("POST", request.path, json=payload)
        _logger.debug("POST %s (model=%s)", http_request.url, request.model)
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            _logger.warning("LLM API request failed: %s", e)
            raise RequestFailed(str(e) or type(e).__name__) from e

        if response.status_code >= 400:
            _logger.warning("LLM API returned %d", response.status_code)
            raise RequestFailed(
                f"Request failed with status code {response.status_code}",
                response=FailedResponse(
                    status=response.status_code,
                    data=_iter_body(response),
                    headers=dict(response.headers),
                    close=response.aclose,
                ),
            )
        return _iter_body(response)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
