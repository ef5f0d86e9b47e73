"""Chat and completion bots."""

from hexbot.bots.chat import ChatBot
from hexbot.bots.completion import CompletionBot, translate, translation_settings
from hexbot.bots.conversation import ConversationContext

__all__ = [
    "ChatBot",
    "CompletionBot",
    "ConversationContext",
    "translate",
    "translation_settings",
]
