"""Tests for the preset store, its backups and the active state."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from hexbot.config import LEGACY_COMPLETION_MODEL
from hexbot.errors import PresetNotFoundError, SettingsError
from hexbot.presets import ActiveState, ActiveStateStore, PresetStore
from hexbot.types import ChatBotSettings, CompletionBotSettings, Message


class Clock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def store(tmp_path, clock) -> PresetStore:
    return PresetStore(tmp_path / "data", backup_frequency=7, clock=clock)


def _completion(prompt: str = "Summarize: {{ input }}") -> CompletionBotSettings:
    return CompletionBotSettings(prompt=prompt, model="gpt-4o-mini", temperature=0)


class TestPresetStore:
    def test_read_without_file(self, store):
        assert store.read() == []

    def test_create_and_read(self, store, clock):
        preset = store.create("Summary", _completion())

        loaded = store.read()
        assert len(loaded) == 1
        assert loaded[0].id == preset.id
        assert loaded[0].name == "Summary"
        assert loaded[0].type == "completion"
        assert loaded[0].settings == _completion()
        assert loaded[0].created_at == clock.now.isoformat()

    def test_ids_are_unique(self, store):
        first = store.create("a", _completion())
        second = store.create("b", _completion())
        assert first.id != second.id

    def test_file_uses_camel_case_keys(self, store):
        store.create("Summary", _completion())
        raw = json.loads(store.presets_path.read_text())
        assert {"id", "name", "createdAt", "updatedAt", "lastUsedAt", "settings"} <= set(raw[0])
        assert raw[0]["settings"]["type"] == "completion"

    def test_chat_preset(self, store):
        settings = ChatBotSettings(
            messages=[Message("system", "Be brief.")], model="gpt-4o",
        )
        preset = store.create("Brief", settings)
        assert store.get(preset.id).settings == settings

    def test_get_unknown(self, store):
        with pytest.raises(PresetNotFoundError):
            store.get("missing")

    def test_update(self, store, clock):
        preset = store.create("Old", _completion())
        clock.advance(minutes=5)

        updated = store.update(preset.id, name="New")

        assert updated.name == "New"
        assert updated.created_at == preset.created_at
        assert updated.updated_at == clock.now.isoformat()
        assert store.get(preset.id).name == "New"

    def test_update_protected_field(self, store):
        preset = store.create("x", _completion())
        with pytest.raises(SettingsError):
            store.update(preset.id, id="other")

    def test_update_unknown(self, store):
        store.create("x", _completion())
        with pytest.raises(PresetNotFoundError):
            store.update("missing", name="y")

    def test_touch(self, store, clock):
        preset = store.create("x", _completion())
        clock.advance(hours=1)
        assert store.touch(preset.id).last_used_at == clock.now.isoformat()

    def test_remove(self, store):
        keep = store.create("keep", _completion())
        drop = store.create("drop", _completion())

        remaining = store.remove(drop.id)

        assert [p.id for p in remaining] == [keep.id]
        assert [p.id for p in store.read()] == [keep.id]

    def test_remove_unknown(self, store):
        store.create("x", _completion())
        with pytest.raises(PresetNotFoundError):
            store.remove("missing")

    def test_corrupted_file(self, store):
        store.data_dir.mkdir(parents=True)
        store.presets_path.write_text("{not json")
        with pytest.raises(SettingsError, match="Corrupted"):
            store.read()


class TestBackups:
    def test_no_backup_before_first_save(self, store):
        store.create("first", _completion())
        assert store.backups() == []

    def test_first_mutation_after_save_backs_up(self, store):
        store.create("first", _completion())
        store.create("second", _completion())

        backups = store.backups()
        assert len(backups) == 1
        # The backup holds the state before the mutation
        assert [p["name"] for p in json.loads(backups[0].read_text())] == ["first"]

    def test_no_new_backup_within_frequency(self, store, clock):
        store.create("first", _completion())
        store.create("second", _completion())
        clock.advance(days=6)
        store.create("third", _completion())
        assert len(store.backups()) == 1

    def test_new_backup_after_frequency(self, store, clock):
        store.create("first", _completion())
        store.create("second", _completion())
        clock.advance(days=7, seconds=1)
        store.create("third", _completion())

        backups = store.backups()
        assert len(backups) == 2
        assert [p["name"] for p in json.loads(backups[-1].read_text())] == [
            "first", "second",
        ]

    def test_unrelated_files_ignored(self, store):
        store.create("first", _completion())
        store.backups_dir.mkdir(parents=True)
        (store.backups_dir / "notes.txt").write_text("x")
        assert store.backups() == []


class TestActiveStateStore:
    def test_defaults_when_nothing_stored(self, store, defaults):
        active = ActiveStateStore(store, defaults)

        state = active.get("completion")

        assert state.preset_id is None
        assert state.settings.model == LEGACY_COMPLETION_MODEL

    def test_set_and_get(self, store, defaults):
        active = ActiveStateStore(store, defaults)
        settings = CompletionBotSettings(prompt="P {{ input }}", max_tokens=None)

        active.set(ActiveState(settings=settings))

        state = active.get("completion")
        assert state.settings == settings
        assert state.settings.max_tokens is None
        assert active.get("chat").settings.type == "chat"

    def test_use_preset_touches_it(self, store, defaults, clock):
        preset = store.create("Summary", _completion())
        active = ActiveStateStore(store, defaults)
        clock.advance(hours=2)

        state = active.use_preset(preset.id)

        assert state.preset_id == preset.id
        assert active.get("completion").preset_id == preset.id
        assert store.get(preset.id).last_used_at == clock.now.isoformat()

    def test_use_unknown_preset(self, store, defaults):
        active = ActiveStateStore(store, defaults)
        with pytest.raises(PresetNotFoundError):
            active.use_preset("missing")
