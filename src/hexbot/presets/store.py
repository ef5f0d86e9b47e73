"""JSON-file preset store with periodic backups.

Layout under ``data_dir``::

    presets.json
    backups/presets-<timestamp>.json
    chat-settings.json          # active state per bot type
    completion-settings.json

Before every mutation the current ``presets.json`` is copied into
``backups/`` when no backup exists yet or the newest one is older than the
configured frequency.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

from hexbot.config import BotDefaults
from hexbot.errors import PresetNotFoundError, SettingsError
from hexbot.types import BotSettings, settings_from_dict, settings_to_dict

_logger = logging.getLogger(__name__)

PRESETS_FILE = "presets.json"
BACKUPS_DIR = "backups"

_BACKUP_TIME_FORMAT = "%Y%m%dT%H%M%S%fZ"
_BACKUP_RE = re.compile(r"^presets-(\d{8}T\d{12}Z)\.json$")

# Fields a caller may not overwrite through update()
_PROTECTED = ("id", "created_at", "updated_at")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BotPreset:
    """Named, stored bot settings."""

    id: str
    name: str
    settings: BotSettings
    created_at: str = ""
    updated_at: str = ""
    last_used_at: str = ""

    @property
    def type(self) -> str:
        return self.settings.type

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "lastUsedAt": self.last_used_at,
            "settings": settings_to_dict(self.settings),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> BotPreset:
        return cls(
            id=raw["id"],
            name=raw.get("name", ""),
            settings=settings_from_dict(raw.get("settings", {})),
            created_at=raw.get("createdAt", ""),
            updated_at=raw.get("updatedAt", ""),
            last_used_at=raw.get("lastUsedAt", ""),
        )


class PresetStore:
    """CRUD over ``presets.json``."""

    def __init__(
        self,
        data_dir: str | Path,
        backup_frequency: float = 7,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.data_dir = Path(data_dir).expanduser()
        self.backup_frequency = timedelta(days=backup_frequency)
        self._clock = clock

    @property
    def presets_path(self) -> Path:
        return self.data_dir / PRESETS_FILE

    @property
    def backups_dir(self) -> Path:
        return self.data_dir / BACKUPS_DIR

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def read(self) -> list[BotPreset]:
        """Return all presets (empty list if the file does not exist)."""
        if not self.presets_path.exists():
            return []
        try:
            raw = json.loads(self.presets_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise SettingsError(f"Corrupted presets file {self.presets_path}: {e}") from e
        return [BotPreset.from_dict(p) for p in raw]

    def get(self, preset_id: str) -> BotPreset:
        for preset in self.read():
            if preset.id == preset_id:
                return preset
        raise PresetNotFoundError(preset_id)

    def create(self, name: str, settings: BotSettings) -> BotPreset:
        self._backup_if_needed()
        presets = self.read()
        now = self._now()
        preset = BotPreset(
            id=str(uuid.uuid4()),
            name=name,
            settings=settings,
            created_at=now,
            updated_at=now,
            last_used_at=now,
        )
        presets.append(preset)
        self._save(presets)
        _logger.info("Created preset %s (%s)", preset.id, name)
        return preset

    def update(self, preset_id: str, **patch: Any) -> BotPreset:
        """Apply *patch* (``name``, ``settings``, ``last_used_at``)."""
        self._backup_if_needed()
        presets = self.read()
        for index, preset in enumerate(presets):
            if preset.id != preset_id:
                continue
            for key, value in patch.items():
                if key in _PROTECTED or not hasattr(preset, key):
                    raise SettingsError(f"Preset field cannot be updated: {key}")
                setattr(preset, key, value)
            preset.updated_at = self._now()
            presets[index] = preset
            self._save(presets)
            return preset
        raise PresetNotFoundError(preset_id)

    def touch(self, preset_id: str) -> BotPreset:
        """Mark a preset as just used."""
        return self.update(preset_id, last_used_at=self._now())

    def remove(self, preset_id: str) -> list[BotPreset]:
        """Delete a preset and return the remaining ones."""
        self._backup_if_needed()
        presets = self.read()
        remaining = [p for p in presets if p.id != preset_id]
        if len(remaining) == len(presets):
            raise PresetNotFoundError(preset_id)
        self._save(remaining)
        _logger.info("Removed preset %s", preset_id)
        return remaining

    def backups(self) -> list[Path]:
        """Backup files, oldest first."""
        if not self.backups_dir.exists():
            return []
        return sorted(
            p for p in self.backups_dir.iterdir() if _BACKUP_RE.match(p.name)
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self) -> str:
        return self._clock().isoformat()

    def _save(self, presets: list[BotPreset]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        data = [p.to_dict() for p in presets]
        self.presets_path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def _latest_backup_time(self) -> datetime | None:
        latest: datetime | None = None
        for path in self.backups():
            m = _BACKUP_RE.match(path.name)
            if not m:
                continue
            stamp = datetime.strptime(m.group(1), _BACKUP_TIME_FORMAT)
            stamp = stamp.replace(tzinfo=timezone.utc)
            if latest is None or stamp > latest:
                latest = stamp
        return latest

    def _backup_if_needed(self) -> Path | None:
        if not self.presets_path.exists():
            return None
        now = self._clock()
        latest = self._latest_backup_time()
        if latest is not None and now - latest <= self.backup_frequency:
            return None
        self.backups_dir.mkdir(parents=True, exist_ok=True)
        target = self.backups_dir / f"presets-{now.strftime(_BACKUP_TIME_FORMAT)}.json"
        shutil.copyfile(self.presets_path, target)
        _logger.info("Backed up presets to %s", target)
        return target


# ---------------------------------------------------------------------------
# Active state
# ---------------------------------------------------------------------------

@dataclass
class ActiveState:
    """Settings currently in use for one bot type."""

    settings: BotSettings
    preset_id: str | None = None


class ActiveStateStore:
    """Remembers the last used settings per bot type."""

    def __init__(self, presets: PresetStore, defaults: BotDefaults) -> None:
        self._presets = presets
        self._defaults = defaults

    def _path(self, bot_type: str) -> Path:
        return self._presets.data_dir / f"{bot_type}-settings.json"

    def get(self, bot_type: str) -> ActiveState:
        path = self._path(bot_type)
        if not path.exists():
            return ActiveState(settings=self._defaults.for_type(bot_type))
        raw = json.loads(path.read_text(encoding="utf-8"))
        return ActiveState(
            settings=settings_from_dict(raw["settings"]),
            preset_id=raw.get("presetId"),
        )

    def set(self, state: ActiveState) -> None:
        self._presets.data_dir.mkdir(parents=True, exist_ok=True)
        data = {
            "settings": settings_to_dict(state.settings),
            "presetId": state.preset_id,
        }
        self._path(state.settings.type).write_text(
            json.dumps(data, indent=2), encoding="utf-8",
        )
        if state.preset_id:
            self._presets.touch(state.preset_id)

    def use_preset(self, preset_id: str) -> ActiveState:
        """Make a stored preset the active settings of its type."""
        preset = self._presets.get(preset_id)
        state = ActiveState(settings=preset.settings, preset_id=preset.id)
        self.set(state)
        return state
