"""Stateless one-shot completion bot."""

from __future__ import annotations

import logging

from hexbot.llm.stream_decoder import ChunkCallback
from hexbot.types import CompletionBotSettings

from .base import BaseBot

_logger = logging.getLogger(__name__)

NO_RESPONSE = "(no response)"

TRANSLATE_PROMPT = (
    "Translate the text below to {language}. "
    "Reply with the translation only.\n\n{{{{ input }}}}"
)


class CompletionBot(BaseBot):
    """Send a prompt, stream the answer, keep no state between calls."""

    async def send(
        self,
        text: str,
        settings: CompletionBotSettings,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        """Return the full answer, or ``"(no response)"`` if it was empty.

        *on_chunk* overrides the callback given to the constructor.
        """
        request = self._builder.build_completion(text, settings)
        answer = await self._stream(request, on_chunk or self._on_chunk)
        return answer.strip() or NO_RESPONSE


def translation_settings(
    language: str = "English",
    model: str | None = None,
) -> CompletionBotSettings:
    """Completion settings for the translate command."""
    return CompletionBotSettings(
        prompt=TRANSLATE_PROMPT.format(language=language),
        model=model,
        temperature=0,
    )


async def translate(
    bot: CompletionBot,
    text: str,
    language: str = "English",
    model: str | None = None,
) -> str:
    """Translate *text* with *bot*."""
    _logger.debug("Translating %d chars to %s", len(text), language)
    return await bot.send(text, translation_settings(language, model))
