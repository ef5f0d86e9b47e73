"""Stored bot presets."""

from hexbot.presets.store import ActiveState, ActiveStateStore, BotPreset, PresetStore

__all__ = ["ActiveState", "ActiveStateStore", "BotPreset", "PresetStore"]
