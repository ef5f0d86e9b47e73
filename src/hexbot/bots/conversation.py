"""Conversation history owned by a chat bot."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from hexbot.types import Message

_logger = logging.getLogger(__name__)


class ConversationContext:
    """Ordered message history of one chat session.

    Grows by a (user, assistant) pair per successful exchange.  Entries
    added through :meth:`tentative` are removed again if the exchange
    fails.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def append(self, *messages: Message) -> None:
        self._messages.extend(messages)

    def snapshot(self) -> list[Message]:
        """Copies of the current entries."""
        return [Message(m.role, m.content, m.name) for m in self._messages]

    def rollback(self, count: int) -> list[Message]:
        """Drop the last *count* entries and return them."""
        if count <= 0:
            return []
        removed = self._messages[-count:]
        del self._messages[-count:]
        return removed

    def discard(self, *messages: Message) -> None:
        """Remove exactly these entries (matched by identity)."""
        self._messages = [
            m for m in self._messages if not any(m is d for d in messages)
        ]

    def clear(self) -> None:
        self._messages.clear()

    @contextmanager
    def tentative(self, *messages: Message) -> Iterator[tuple[Message, ...]]:
        """Append *messages* now, keep them only if the block succeeds."""
        self.append(*messages)
        try:
            yield messages
        except BaseException:
            self.discard(*messages)
            _logger.debug("Rolled back %d tentative messages", len(messages))
            raise
