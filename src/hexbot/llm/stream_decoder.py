"""Server-sent-event stream decoding.

The wire stream is a sequence of newline separated records::

    data: {"choices": [{"delta": {"content": "Hel"}}]}
    data: {"choices": [{"delta": {"content": "lo"}}]}
    data: [DONE]

A transport buffer always carries whole records.  ``StreamDecoder`` is a
push-based state machine fed one buffer at a time; ``decode_stream`` and
``iter_fragments`` drive it from an async byte iterator.
"""

from __future__ import annotations

import inspect
import json
from contextlib import aclosing
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Callable

_logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
TERMINAL_TOKEN = "[DONE]"

# Pulls the text fragment out of one decoded record
Extractor = Callable[[dict[str, Any]], str]
ChunkCallback = Callable[[str], Any]


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

def _first_choice(obj: dict[str, Any]) -> dict[str, Any]:
    choices = obj.get("choices") if isinstance(obj, dict) else None
    if not choices or not isinstance(choices[0], dict):
        return {}
    return choices[0]


def extract_completion_text(obj: dict[str, Any]) -> str:
    """``choices[0].text`` of a legacy completion record."""
    return _first_choice(obj).get("text") or ""


def extract_chat_delta(obj: dict[str, Any]) -> str:
    """``choices[0].delta.content`` of a chat completion record."""
    delta = _first_choice(obj).get("delta") or {}
    return delta.get("content") or ""


def extractor_for(mode: str) -> Extractor:
    """Return the extractor matching a request's wire shape."""
    if mode == "completion":
        return extract_completion_text
    return extract_chat_delta


def strip_prefix(line: str) -> str:
    """Remove the ``data:`` prefix from a record, if present."""
    if line.startswith(DATA_PREFIX):
        return line[len(DATA_PREFIX):]
    if line.startswith("data:"):
        return line[5:].lstrip()
    return line


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

class StreamDecoder:
    """Turns transport buffers into text chunks.

    ``on_chunk`` receives the concatenated fragments of each buffer (one
    call per buffer, never per line).  ``on_done`` fires exactly once with
    the full text when the terminal token arrives.
    """

    def __init__(
        self,
        extract: Extractor,
        on_chunk: ChunkCallback | None = None,
        on_done: ChunkCallback | None = None,
    ) -> None:
        self._extract = extract
        self._on_chunk = on_chunk
        self._on_done = on_done
        self._parts: list[str] = []
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    @property
    def text(self) -> str:
        """All text decoded so far."""
        return "".join(self._parts)

    def feed(self, buffer: bytes | str) -> str:
        """Decode one buffer and return the chunk it produced.

        Buffers fed after the terminal token are ignored.
        """
        if self._done:
            _logger.debug("Ignoring %d bytes received after %s", len(buffer), TERMINAL_TOKEN)
            return ""
        if isinstance(buffer, bytes):
            buffer = buffer.decode("utf-8", errors="replace")

        fragments: list[str] = []
        for raw_line in buffer.split("\n"):
            line = raw_line.strip()
            if not line:
                continue
            payload = strip_prefix(line)
            if payload == TERMINAL_TOKEN:
                return self._finish(fragments)
            try:
                record = json.loads(payload)
            except json.JSONDecodeError:
                _logger.warning("Skipping malformed stream record: %r", line[:200])
                continue
            fragment = self._extract(record)
            if fragment:
                fragments.append(fragment)

        chunk = "".join(fragments)
        if chunk:
            self._parts.append(chunk)
            self._emit(self._on_chunk, chunk)
        return chunk

    def _finish(self, fragments: list[str]) -> str:
        chunk = "".join(fragments)
        if chunk:
            self._parts.append(chunk)
            self._emit(self._on_chunk, chunk)
        self._done = True
        self._emit(self._on_done, self.text)
        return chunk

    @staticmethod
    def _emit(callback: ChunkCallback | None, text: str) -> None:
        if callback is not None:
            callback(text)


# ---------------------------------------------------------------------------
# Async drivers
# ---------------------------------------------------------------------------

async def iter_fragments(
    stream: AsyncIterator[bytes],
    extract: Extractor,
) -> AsyncGenerator[str, None]:
    """Yield one text chunk per transport buffer until ``[DONE]``.

    The generator is lazy and cannot be restarted.
    """
    decoder = StreamDecoder(extract)
    async for buffer in stream:
        chunk = decoder.feed(buffer)
        if chunk:
            yield chunk
        if decoder.done:
            return
    _logger.warning("Stream ended without %s", TERMINAL_TOKEN)


async def decode_stream(
    stream: AsyncIterator[bytes],
    extract: Extractor,
    on_chunk: ChunkCallback | None = None,
) -> str:
    """Consume *stream* and return the full text.

    *on_chunk* may be a plain function or a coroutine function; it is
    awaited before the next buffer is read.
    """
    text = ""
    async with aclosing(iter_fragments(stream, extract)) as fragments:
        async for chunk in fragments:
            text += chunk
            if on_chunk is not None:
                result = on_chunk(chunk)
                if inspect.isawaitable(result):
                    await result
    return text
