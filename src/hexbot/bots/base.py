"""Shared request flow of the chat and completion bots."""

from __future__ import annotations

import logging
from typing import AsyncIterator

from hexbot.errors import RequestFailed
from hexbot.llm.error_resolver import DEFAULT_ERROR_TIMEOUT, resolve_stream_error
from hexbot.llm.request_builder import RequestBuilder
from hexbot.llm.stream_decoder import ChunkCallback, decode_stream, extractor_for
from hexbot.llm.transport import Transport
from hexbot.types import Request

_logger = logging.getLogger(__name__)


async def _aclose(stream: AsyncIterator[bytes]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


class BaseBot:
    """Issue a request, decode its stream, resolve failures.

    Every failed request surfaces as exactly one ``HexError``; there are
    no retries.
    """

    def __init__(
        self,
        transport: Transport,
        builder: RequestBuilder,
        on_chunk: ChunkCallback | None = None,
        error_timeout: float = DEFAULT_ERROR_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._builder = builder
        self._on_chunk = on_chunk
        self.error_timeout = error_timeout

    async def _stream(
        self,
        request: Request,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        """Run *request* and return the concatenated text."""
        try:
            stream = await self._transport.issue(request)
            try:
                return await decode_stream(
                    stream, extractor_for(request.mode), on_chunk,
                )
            finally:
                await _aclose(stream)
        except RequestFailed as failure:
            error = await resolve_stream_error(failure, self.error_timeout)
            _logger.info("Request failed: %s", error)
            raise error from failure
