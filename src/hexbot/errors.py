"""Error types raised by hexbot.

``RequestFailed`` is what a transport raises; the bots never let it reach
callers directly but resolve it into one of the ``HexError`` subclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable


class HexError(Exception):
    """Base class for every error hexbot surfaces to callers."""


class TransportError(HexError):
    """Network-level failure with no usable server response."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class StreamedServerError(HexError):
    """The server streamed a structured error body."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class PresetNotFoundError(HexError, KeyError):
    """A preset operation referenced an unknown id."""

    def __init__(self, preset_id: str) -> None:
        super().__init__(f"Preset with id {preset_id} not found")
        self.preset_id = preset_id

    def __str__(self) -> str:
        # KeyError would repr() the message otherwise
        return self.args[0]


class SettingsError(HexError, ValueError):
    """Bot settings could not be interpreted."""


class ConfigError(HexError):
    """Configuration file is unreadable or malformed."""


# ---------------------------------------------------------------------------
# Transport failure
# ---------------------------------------------------------------------------

@dataclass
class FailedResponse:
    """HTTP response attached to a failed request.

    ``data`` is the (possibly still streaming) response body; ``close``
    releases the underlying connection even if ``data`` was never read.
    """

    status: int
    data: AsyncIterator[bytes] | None = None
    headers: dict[str, Any] | None = None
    close: Callable[[], Awaitable[None]] | None = None


class RequestFailed(Exception):
    """Raised by a transport when a request cannot produce a stream."""

    def __init__(
        self,
        message: str,
        response: FailedResponse | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.response = response
