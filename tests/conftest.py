"""Shared fakes for hexbot tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncGenerator

import pytest

from hexbot.config import BotDefaults, UserPreferences
from hexbot.errors import FailedResponse, RequestFailed
from hexbot.llm.request_builder import RequestBuilder


def chat_record(content: str) -> str:
    """One ``data:`` line of a chat completion stream."""
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"


def completion_record(text: str) -> str:
    """One ``data:`` line of a legacy completion stream."""
    return "data: " + json.dumps({"choices": [{"text": text}]}) + "\n\n"


DONE = "data: [DONE]\n\n"


async def byte_stream(
    buffers: list[str | bytes],
    delay: float = 0,
    state: dict[str, Any] | None = None,
) -> AsyncGenerator[bytes, None]:
    """Async byte stream yielding *buffers*; records closing in *state*."""
    try:
        for buffer in buffers:
            if delay:
                await asyncio.sleep(delay)
            yield buffer.encode() if isinstance(buffer, str) else buffer
    finally:
        if state is not None:
            state["closed"] = True


def failure(
    message: str = "Request failed with status code 429",
    status: int = 429,
    body: list[str] | None = None,
    delay: float = 0,
    state: dict[str, Any] | None = None,
) -> RequestFailed:
    """A ``RequestFailed`` carrying a streamed error body."""
    return RequestFailed(
        message,
        response=FailedResponse(
            status=status,
            data=byte_stream(body or [], delay=delay, state=state),
        ),
    )


class FakeTransport:
    """Transport answering from a queue of buffer lists or exceptions."""

    def __init__(self, *responses: list[str] | BaseException) -> None:
        self.responses = list(responses)
        self.requests: list[Any] = []

    async def issue(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return byte_stream(response)


@pytest.fixture
def preferences() -> UserPreferences:
    return UserPreferences(api_key="sk-test", user_name="Artur", assistant_name="Hex")


@pytest.fixture
def defaults(preferences: UserPreferences) -> BotDefaults:
    return BotDefaults(preferences=preferences)


@pytest.fixture
def builder(defaults: BotDefaults) -> RequestBuilder:
    return RequestBuilder(defaults)
