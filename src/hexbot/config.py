"""Configuration for hexbot.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./hexbot.yaml``
  3. ``~/.config/hexbot/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from hexbot.errors import ConfigError
from hexbot.types import (
    ChatBotSettings,
    CompletionBotSettings,
    Message,
    settings_from_dict,
    settings_to_dict,
)

_logger = logging.getLogger(__name__)

LEGACY_COMPLETION_MODEL = "text-davinci-003"
DEFAULT_CHAT_MODEL = "gpt-3.5-turbo"


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class UserPreferences:
    """Read-only preferences consumed by the transport and the bots."""

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    user_name: str = "Artur"
    assistant_name: str = "Hex"
    backup_frequency: float = 7  # days
    request_timeout: float = 120

    def display_name(self, role: str) -> str | None:
        """Name attached to *role* in chat payloads; system is never named."""
        if role == "user":
            return self.user_name or None
        if role == "assistant":
            return self.assistant_name or None
        return None


def _default_system_prompt(prefs: UserPreferences) -> str:
    return " ".join([
        f"You are a helpful assistant called '{prefs.assistant_name}' "
        f"that helps your boss '{prefs.user_name}'.",
        "Your answers are short and precise preferably in bullet points.",
        "If you are need more context to give precise response, ask for it.",
    ])


def _normalized(overrides: dict[str, Any]) -> dict[str, Any]:
    """Settings overrides with ``maxTokens`` spelled as ``max_tokens``."""
    overrides = dict(overrides)
    if "maxTokens" in overrides:
        overrides["max_tokens"] = overrides.pop("maxTokens")
    return overrides


@dataclass
class BotDefaults:
    """Fallback settings per bot type.

    Every call returns a fresh object so callers may modify what they get.
    """

    preferences: UserPreferences = field(default_factory=UserPreferences)
    chat_overrides: dict[str, Any] = field(default_factory=dict)
    completion_overrides: dict[str, Any] = field(default_factory=dict)

    def chat_defaults(self) -> ChatBotSettings:
        prefs = self.preferences
        settings = ChatBotSettings(
            model=DEFAULT_CHAT_MODEL,
            temperature=0.7,
            max_tokens=None,
            messages=[
                Message("system", _default_system_prompt(prefs)),
                Message("user", f"Hello {prefs.assistant_name}!", prefs.user_name),
                Message(
                    "assistant",
                    f"Hi {prefs.user_name}, what can I do for you?",
                    prefs.assistant_name,
                ),
            ],
        )
        if self.chat_overrides:
            merged = {
                "type": "chat",
                **settings_to_dict(settings),
                **_normalized(self.chat_overrides),
            }
            return settings_from_dict(merged)  # type: ignore[return-value]
        return settings

    def completion_defaults(self) -> CompletionBotSettings:
        settings = CompletionBotSettings(
            prompt="{{ input }}",
            model=LEGACY_COMPLETION_MODEL,
            temperature=0.7,
            max_tokens=None,
        )
        if self.completion_overrides:
            merged = {
                "type": "completion",
                **settings_to_dict(settings),
                **_normalized(self.completion_overrides),
            }
            return settings_from_dict(merged)  # type: ignore[return-value]
        return settings

    def for_type(self, bot_type: str) -> ChatBotSettings | CompletionBotSettings:
        if bot_type == "chat":
            return self.chat_defaults()
        if bot_type == "completion":
            return self.completion_defaults()
        raise ConfigError(f"Unknown bot type: {bot_type}")


@dataclass
class HexConfig:
    """Top-level config for hexbot."""

    preferences: UserPreferences = field(default_factory=UserPreferences)
    defaults: BotDefaults = field(default_factory=BotDefaults)
    data_dir: Path = field(default_factory=lambda: Path.home() / ".hexbot")
    error_timeout: float = 0.3  # seconds to wait for a streamed error body


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./hexbot.yaml"),
    Path.home() / ".config" / "hexbot" / "config.yaml",
]


def _parse_preferences(raw: dict[str, Any] | None) -> UserPreferences:
    raw = raw or {}
    base = UserPreferences()
    api_key = raw.get("api_key") or os.environ.get("OPENAI_API_KEY", "")
    return UserPreferences(
        api_key=api_key,
        base_url=raw.get("base_url", base.base_url),
        user_name=raw.get("user_name", base.user_name),
        assistant_name=raw.get("assistant_name", base.assistant_name),
        backup_frequency=raw.get("backup_frequency", base.backup_frequency),
        request_timeout=raw.get("request_timeout", base.request_timeout),
    )


def load_config(path: str | Path | None = None) -> tuple[HexConfig, Path | None]:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    (HexConfig, path of the file that was loaded or None)
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return _defaults(), None
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return _defaults(), None

    _logger.info("Loading config from %s", config_path)
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping: {config_path}")

    preferences = _parse_preferences(_section(raw, "preferences", config_path))
    defaults = BotDefaults(
        preferences=preferences,
        chat_overrides=_section(raw, "chat", config_path),
        completion_overrides=_section(raw, "completion", config_path),
    )
    data_dir = Path(raw.get("data_dir", Path.home() / ".hexbot")).expanduser()

    return HexConfig(
        preferences=preferences,
        defaults=defaults,
        data_dir=data_dir,
        error_timeout=raw.get("error_timeout", 0.3),
    ), config_path


def _section(raw: dict[str, Any], name: str, config_path: Path) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' must be a mapping: {config_path}")
    return value


def _defaults() -> HexConfig:
    preferences = _parse_preferences(None)
    return HexConfig(
        preferences=preferences,
        defaults=BotDefaults(preferences=preferences),
    )
