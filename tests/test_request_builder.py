"""Tests for request assembly."""

import logging

import pytest

from hexbot.config import LEGACY_COMPLETION_MODEL, BotDefaults
from hexbot.llm.request_builder import (
    LEGACY_MAX_TOKENS,
    RequestBuilder,
    has_input_placeholder,
    substitute_input,
)
from hexbot.types import (
    ChatBotSettings,
    ChatRequest,
    CompletionBotSettings,
    CompletionRequest,
    Message,
)


class TestPlaceholder:
    @pytest.mark.parametrize("template", ["{{input}}", "{{ input }}", "{{  input  }}", "{{ INPUT }}"])
    def test_detected(self, template):
        assert has_input_placeholder(f"Fix this: {template}")

    def test_not_detected(self):
        assert not has_input_placeholder("Fix this: { input }")
        assert not has_input_placeholder("")

    @pytest.mark.parametrize("template", ["{{input}}", "{{ input }}", "{{  input  }}"])
    def test_substitution_replaces_every_occurrence(self, template):
        prompt = substitute_input(f"A: {template}\nB: {template}", "hello")
        assert prompt == "A: hello\nB: hello"

    def test_substitution_does_not_append(self):
        prompt = substitute_input("Say {{ input }} twice", "hi")
        assert prompt == "Say hi twice"
        assert not prompt.endswith("hi")

    def test_missing_placeholder_appends_after_blank_line(self):
        template = "Summarize the following text."
        assert substitute_input(template, "Long text") == template + "\n\n" + "Long text"

    def test_backslashes_in_input_kept_literally(self):
        assert substitute_input("{{input}}", r"C:\new\1") == r"C:\new\1"


class TestCompletionRequest:
    def test_legacy_model_uses_prompt_shape(self, builder: RequestBuilder):
        settings = CompletionBotSettings(
            prompt="Translate: {{ input }}", model=LEGACY_COMPLETION_MODEL,
        )
        request = builder.build_completion("dzień dobry", settings)

        assert isinstance(request, CompletionRequest)
        assert request.prompt == "Translate: dzień dobry"
        payload = request.to_payload()
        assert payload["stream"] is True
        assert payload["model"] == LEGACY_COMPLETION_MODEL
        assert "messages" not in payload

    def test_other_model_uses_chat_shape(self, builder: RequestBuilder):
        settings = CompletionBotSettings(prompt="Q: {{input}}", model="gpt-4o-mini")
        request = builder.build_completion("why?", settings)

        assert isinstance(request, ChatRequest)
        assert request.model == "gpt-4o-mini"
        assert [m.to_dict() for m in request.messages] == [
            {"role": "user", "content": "Q: why?"},
        ]

    def test_model_falls_back_to_default(self, builder: RequestBuilder):
        request = builder.build_completion("x", CompletionBotSettings())
        assert request.model == LEGACY_COMPLETION_MODEL

    def test_zero_temperature_is_kept(self, builder: RequestBuilder):
        settings = CompletionBotSettings(model="gpt-4o-mini", temperature=0)
        request = builder.build_completion("x", settings)
        assert request.temperature == 0
        assert request.to_payload()["temperature"] == 0

    def test_unset_temperature_uses_default(self, builder: RequestBuilder):
        request = builder.build_completion("x", CompletionBotSettings(model="gpt-4o-mini"))
        assert request.temperature == 0.7

    def test_fields_fall_back_independently(self):
        defaults = BotDefaults(completion_overrides={"temperature": 1.2, "max_tokens": 300})
        builder = RequestBuilder(defaults)
        request = builder.build_completion(
            "x", CompletionBotSettings(model="gpt-4o-mini", max_tokens=50),
        )
        assert request.temperature == 1.2
        assert request.max_tokens == 50

    def test_explicit_unlimited_max_tokens_beats_default(self):
        defaults = BotDefaults(completion_overrides={"max_tokens": 300})
        builder = RequestBuilder(defaults)

        unlimited = builder.build_completion(
            "x", CompletionBotSettings(model="gpt-4o-mini", max_tokens=None),
        )
        unset = builder.build_completion("x", CompletionBotSettings(model="gpt-4o-mini"))

        assert unlimited.max_tokens is None
        assert "max_tokens" not in unlimited.to_payload()
        assert unset.max_tokens == 300

    def test_legacy_model_gets_token_cap_when_unlimited(self, builder: RequestBuilder):
        request = builder.build_completion(
            "x", CompletionBotSettings(model=LEGACY_COMPLETION_MODEL, max_tokens=None),
        )
        assert request.max_tokens == LEGACY_MAX_TOKENS

    def test_settings_not_mutated(self, builder: RequestBuilder):
        settings = CompletionBotSettings(prompt="{{ input }}", model="gpt-4o-mini")
        builder.build_completion("x", settings)
        assert settings.prompt == "{{ input }}"
        assert settings.temperature is None


class TestChatRequest:
    def test_messages_and_defaults(self, builder: RequestBuilder):
        messages = [Message("system", "Be brief."), Message("user", "hi", "Artur")]
        request = builder.build_chat(messages, ChatBotSettings(temperature=0))

        assert request.model == "gpt-3.5-turbo"
        assert request.temperature == 0
        payload = request.to_payload()
        assert payload["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hi", "name": "Artur"},
        ]
        assert payload["stream"] is True

    def test_request_logged_at_debug(self, builder: RequestBuilder, caplog):
        with caplog.at_level(logging.DEBUG, logger="hexbot.llm.request_builder"):
            builder.build_chat([Message("user", "ping", "Artur")], ChatBotSettings())
        assert "user (Artur): ping" in caplog.text
