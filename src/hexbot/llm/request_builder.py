"""Outbound request assembly.

Turns user input plus bot settings into a ``CompletionRequest`` or a
``ChatRequest``.  Settings fields that were left unset fall back to the
``BotDefaults`` provider one by one.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from hexbot.config import LEGACY_COMPLETION_MODEL, BotDefaults
from hexbot.types import (
    NOT_SET,
    BotSettings,
    ChatBotSettings,
    ChatRequest,
    CompletionBotSettings,
    CompletionRequest,
    Message,
    Request,
)

_logger = logging.getLogger(__name__)

INPUT_PLACEHOLDER = re.compile(r"\{\{\s*input\s*\}\}", re.IGNORECASE)

# Separator used when the prompt has no placeholder
INPUT_SEPARATOR = "\n\n"

# The legacy endpoint caps output at 16 tokens when max_tokens is omitted
LEGACY_MAX_TOKENS = 1024


def has_input_placeholder(text: str) -> bool:
    """Return True if *text* contains an ``{{ input }}`` placeholder."""
    return INPUT_PLACEHOLDER.search(text) is not None


def substitute_input(template: str, text: str) -> str:
    """Put *text* into *template*.

    Every placeholder occurrence is replaced.  A template without a
    placeholder gets the text appended after a blank line.
    """
    if has_input_placeholder(template):
        # Function replacement keeps backslashes in *text* literal
        return INPUT_PLACEHOLDER.sub(lambda _m: text, template)
    return f"{template}{INPUT_SEPARATOR}{text}"


def _pick(value: Any, fallback: Any) -> Any:
    return fallback if value is None else value


class RequestBuilder:
    """Builds outbound requests from settings and a defaults provider."""

    def __init__(self, defaults: BotDefaults) -> None:
        self._defaults = defaults

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def build_completion(
        self,
        text: str,
        settings: CompletionBotSettings,
    ) -> Request:
        """Build the request for a one-shot completion."""
        defaults = self._defaults.completion_defaults()
        prompt = substitute_input(settings.prompt, text)
        model = settings.model or defaults.model or LEGACY_COMPLETION_MODEL
        temperature, max_tokens = self._numbers(settings, defaults)

        if model == LEGACY_COMPLETION_MODEL:
            request: Request = CompletionRequest(
                model=model,
                prompt=prompt,
                temperature=temperature,
                max_tokens=max_tokens or LEGACY_MAX_TOKENS,
            )
        else:
            request = ChatRequest(
                model=model,
                messages=[Message("user", prompt)],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        log_request(request)
        return request

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def build_chat(
        self,
        messages: list[Message],
        settings: ChatBotSettings,
    ) -> ChatRequest:
        """Build a chat request carrying *messages* verbatim."""
        defaults = self._defaults.chat_defaults()
        temperature, max_tokens = self._numbers(settings, defaults)
        request = ChatRequest(
            model=settings.model or defaults.model or "gpt-3.5-turbo",
            messages=list(messages),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        log_request(request)
        return request

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _numbers(
        settings: BotSettings,
        defaults: BotSettings,
    ) -> tuple[float, int | None]:
        """Resolve temperature and max_tokens independently.

        A temperature of 0 is kept; ``max_tokens=None`` means no limit and
        is kept too.  Only values that were never set fall back.
        """
        temperature = _pick(settings.temperature, defaults.temperature)
        if temperature is None:
            temperature = 1.0
        if settings.max_tokens is not NOT_SET:
            max_tokens = settings.max_tokens
        elif defaults.max_tokens is not NOT_SET:
            max_tokens = defaults.max_tokens
        else:
            max_tokens = None
        return temperature, max_tokens  # type: ignore[return-value]


def log_request(request: Request) -> None:
    """Log *request* at DEBUG: config first, then prompt or messages."""
    if not _logger.isEnabledFor(logging.DEBUG):
        return
    payload = request.to_payload()
    if isinstance(request, CompletionRequest):
        payload.pop("prompt", None)
        _logger.debug("-> completion request %s\nprompt:\n%s", payload, request.prompt)
        return
    payload.pop("messages", None)
    lines = []
    for message in request.messages:
        who = f"{message.role} ({message.name})" if message.name else message.role
        lines.append(f"  {who}: {message.content}")
    _logger.debug("-> chat request %s\nmessages:\n%s", payload, "\n".join(lines))
