"""Stateful chat bot."""

from __future__ import annotations

import inspect
import logging

from hexbot.config import UserPreferences
from hexbot.llm.error_resolver import DEFAULT_ERROR_TIMEOUT
from hexbot.llm.request_builder import RequestBuilder
from hexbot.llm.stream_decoder import ChunkCallback
from hexbot.llm.transport import Transport
from hexbot.types import ChatBotSettings, Message

from .base import BaseBot
from .conversation import ConversationContext

_logger = logging.getLogger(__name__)

NO_ANSWER = "Sorry, I'm not able to answer."


class ChatBot(BaseBot):
    """Chat session that remembers its own exchanges.

    Each request carries the settings' messages, then the accumulated
    conversation, then the new user message.  Concurrent ``send`` calls
    are not serialised; callers that need ordering must await each call.
    """

    def __init__(
        self,
        transport: Transport,
        builder: RequestBuilder,
        preferences: UserPreferences,
        on_chunk: ChunkCallback | None = None,
        error_timeout: float = DEFAULT_ERROR_TIMEOUT,
    ) -> None:
        super().__init__(transport, builder, on_chunk, error_timeout)
        self.preferences = preferences
        self.context = ConversationContext()

    def _named(self, message: Message) -> Message:
        return Message(
            message.role,
            message.content,
            self.preferences.display_name(message.role),
        )

    async def send(
        self,
        message: str,
        settings: ChatBotSettings,
        optimistic: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        """Send *message* and return the assistant's answer.

        With ``optimistic=True`` the user message and an empty assistant
        entry appear in :attr:`context` right away; streamed chunks are
        appended to that entry, and both entries are removed again if the
        request fails.
        """
        user = Message("user", message)
        history = [*settings.messages, *self.context, user]
        request = self._builder.build_chat(
            [self._named(m) for m in history], settings,
        )
        callback = on_chunk or self._on_chunk

        if not optimistic:
            answer = await self._stream(request, callback)
            content = answer or NO_ANSWER
            self.context.append(user, Message("assistant", content))
            return content

        placeholder = Message("assistant", "")

        async def _append(chunk: str) -> None:
            placeholder.content += chunk
            if callback is not None:
                result = callback(chunk)
                if inspect.isawaitable(result):
                    await result

        with self.context.tentative(user, placeholder):
            answer = await self._stream(request, _append)
        placeholder.content = answer or NO_ANSWER
        return placeholder.content

    def reset(self) -> None:
        """Forget the conversation."""
        _logger.debug("Clearing %d conversation messages", len(self.context))
        self.context.clear()
