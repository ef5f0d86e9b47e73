"""Resolve a failed request into a readable error.

The server may have started streaming an error body before the transport
gave up, so the resolver waits briefly for the first data buffer and
extracts ``error.message`` from it.  When nothing arrives in time the
original failure is reported instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

from hexbot.errors import (
    FailedResponse,
    HexError,
    StreamedServerError,
    TransportError,
)

from .stream_decoder import strip_prefix

_logger = logging.getLogger(__name__)

DEFAULT_ERROR_TIMEOUT = 0.3  # seconds


def generic_error(failure: BaseException, status: int | None = None) -> TransportError:
    """Wrap *failure* in a generic ``TransportError``."""
    message = getattr(failure, "message", None) or str(failure) or type(failure).__name__
    text = f"Request failed: {message}"
    if status is not None:
        text += f" (status {status})"
    return TransportError(text, status=status)


def parse_error_body(body: bytes | str) -> str:
    """Extract ``error.message`` from a streamed error body.

    Falls back to the raw text when the body is not JSON or has no message.
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    text = body.strip()
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(strip_prefix(line))
        except json.JSONDecodeError:
            break
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
            if data.get("message"):
                return str(data["message"])
        break
    return text


async def _first_buffer(data: AsyncIterator[bytes]) -> bytes | str:
    async for buffer in data:
        if buffer:
            return buffer
    raise EOFError("error stream closed without data")


async def _close(response: FailedResponse) -> None:
    """Close the body stream, then the response behind it."""
    closers = [getattr(response.data, "aclose", None), response.close]
    for aclose in closers:
        if aclose is None:
            continue
        try:
            await aclose()
        except Exception:
            _logger.debug("Error while closing error stream", exc_info=True)


async def resolve_stream_error(
    failure: BaseException,
    timeout: float = DEFAULT_ERROR_TIMEOUT,
) -> HexError:
    """Return the most specific error available for *failure*.

    Never raises.  The first of "error body arrived" and "timeout elapsed"
    decides the result; the losing side is cancelled.
    """
    if isinstance(failure, HexError):
        return failure
    response: FailedResponse | None = getattr(failure, "response", None)
    if response is None:
        return generic_error(failure)
    if response.data is None:
        await _close(response)
        return generic_error(failure, response.status)

    reader = asyncio.ensure_future(_first_buffer(response.data))
    try:
        done, _pending = await asyncio.wait({reader}, timeout=timeout)
    finally:
        if not reader.done():
            reader.cancel()
            try:
                await reader
            except (asyncio.CancelledError, Exception):
                pass

    if reader not in done:
        _logger.info(
            "No error body within %.0f ms (status %s)",
            timeout * 1000, response.status,
        )
        await _close(response)
        return generic_error(failure, response.status)

    try:
        body = reader.result()
    except Exception as e:
        _logger.debug("Error body unavailable: %s", e)
        await _close(response)
        return generic_error(failure, response.status)

    await _close(response)
    message = parse_error_body(body)
    _logger.warning("Server error (status %s): %s", response.status, message)
    return StreamedServerError(message, status=response.status)
