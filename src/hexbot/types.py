"""Shared data types for hexbot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Union

from hexbot.errors import SettingsError


class _NotSet:
    """Marker for a settings field that was never given a value."""

    _instance: _NotSet | None = None

    def __new__(cls) -> _NotSet:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_SET"


NOT_SET = _NotSet()

ROLES = ("system", "user", "assistant")

TEMPERATURE_RANGE = (0.0, 2.0)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass
class Message:
    """A message in a chat conversation."""

    role: str  # "system", "user", or "assistant"
    content: str
    name: str | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise SettingsError(f"Unknown message role: {self.role!r}")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Message:
        return cls(
            role=raw.get("role", "user"),
            content=raw.get("content", ""),
            name=raw.get("name"),
        )


# ---------------------------------------------------------------------------
# Bot settings
# ---------------------------------------------------------------------------

def _check_numbers(temperature: Any, max_tokens: Any) -> None:
    if temperature is not None:
        low, high = TEMPERATURE_RANGE
        if not low <= float(temperature) <= high:
            raise SettingsError(
                f"temperature must be within [{low}, {high}], got {temperature}"
            )
    if max_tokens is not NOT_SET and max_tokens is not None:
        if not isinstance(max_tokens, int) or max_tokens < 0:
            raise SettingsError(
                f"max_tokens must be a non-negative integer, got {max_tokens!r}"
            )


@dataclass
class ChatBotSettings:
    """Settings of a chat bot.

    ``max_tokens`` keeps three states: ``NOT_SET`` (use the default),
    ``None`` (no limit) or an explicit cap.
    """

    messages: list[Message] = field(default_factory=list)
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None | _NotSet = NOT_SET

    type: ClassVar[Literal["chat"]] = "chat"

    def __post_init__(self) -> None:
        self.messages = [
            m if isinstance(m, Message) else Message.from_dict(m)
            for m in self.messages
        ]
        _check_numbers(self.temperature, self.max_tokens)


@dataclass
class CompletionBotSettings:
    """Settings of a completion bot.

    ``prompt`` is expected to hold an ``{{ input }}`` placeholder; without
    one the input is appended after the prompt.
    """

    prompt: str = "{{ input }}"
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None | _NotSet = NOT_SET

    type: ClassVar[Literal["completion"]] = "completion"

    def __post_init__(self) -> None:
        _check_numbers(self.temperature, self.max_tokens)


BotSettings = Union[ChatBotSettings, CompletionBotSettings]

BOT_TYPES = ("chat", "completion")


def settings_from_dict(raw: dict[str, Any]) -> BotSettings:
    """Build settings from a plain mapping (preset file, YAML config).

    Both ``max_tokens`` and ``maxTokens`` spellings are accepted.
    """
    if not isinstance(raw, dict):
        raise SettingsError(f"Settings must be a mapping, got {type(raw).__name__}")
    bot_type = raw.get("type")
    common: dict[str, Any] = {
        "model": raw.get("model"),
        "temperature": raw.get("temperature"),
    }
    for key in ("max_tokens", "maxTokens"):
        if key in raw:
            common["max_tokens"] = raw[key]
            break

    if bot_type == "chat":
        return ChatBotSettings(
            messages=[Message.from_dict(m) for m in raw.get("messages", [])],
            **common,
        )
    if bot_type == "completion":
        return CompletionBotSettings(
            prompt=raw.get("prompt", "{{ input }}"),
            **common,
        )
    raise SettingsError(f"Unknown bot type: {bot_type!r}")


def settings_to_dict(settings: BotSettings) -> dict[str, Any]:
    """Inverse of :func:`settings_from_dict`; unset fields are omitted."""
    data: dict[str, Any] = {"type": settings.type}
    if isinstance(settings, ChatBotSettings):
        data["messages"] = [m.to_dict() for m in settings.messages]
    else:
        data["prompt"] = settings.prompt
    if settings.model is not None:
        data["model"] = settings.model
    if settings.temperature is not None:
        data["temperature"] = settings.temperature
    if settings.max_tokens is not NOT_SET:
        data["max_tokens"] = settings.max_tokens
    return data


# ---------------------------------------------------------------------------
# Outbound requests
# ---------------------------------------------------------------------------

@dataclass
class CompletionRequest:
    """Legacy single-prompt completion request."""

    model: str
    prompt: str
    temperature: float
    max_tokens: int | None = None
    stream: bool = True

    path: ClassVar[str] = "/completions"
    mode: ClassVar[str] = "completion"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": self.prompt,
            "temperature": self.temperature,
            "stream": self.stream,
        }
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload


@dataclass
class ChatRequest:
    """Chat-style completion request."""

    model: str
    messages: list[Message]
    temperature: float
    max_tokens: int | None = None
    stream: bool = True

    path: ClassVar[str] = "/chat/completions"
    mode: ClassVar[str] = "chat"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "temperature": self.temperature,
            "stream": self.stream,
        }
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload


Request = Union[CompletionRequest, ChatRequest]
