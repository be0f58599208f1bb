"""
Persistent launcher settings.

``SettingsStore`` is a small generic JSON store over any pydantic model. It
loads lazily, falls back to defaults when the file is missing or unreadable,
skips writes that would not change the file, and tells subscribers after each
real save.

``AltairSettings`` is the model the Altair launcher keeps in
``config/config.json``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError

from errors import StorageError

_log = logging.getLogger(__name__)


class LogLevel(str, Enum):
    DEBUG = "Debug"
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"
    CRITICAL = "Critical"

    def to_logging(self) -> int:
        return getattr(logging, self.name)


class TweakSettings(BaseModel):
    umod: bool = False
    reshade: bool = False
    stutter_fix: bool = False
    windowed_mode_patch: bool = False
    borderless_fullscreen: bool = False
    large_address_aware: bool = False


class AltairSettings(BaseModel):
    setup_completed: bool = False
    last_update_check_date: Optional[datetime] = None
    log_level: LogLevel = LogLevel.INFO
    tweaks: TweakSettings = Field(default_factory=TweakSettings)
    installed_mod_versions: dict[str, str] = Field(default_factory=dict)

    def get_installed_mod_version(self, mod_id: str) -> Optional[str]:
        return self.installed_mod_versions.get(mod_id)

    def update_installed_mod_version(self, mod_id: str, version: str):
        self.installed_mod_versions[mod_id] = version

    def remove_installed_mod_version(self, mod_id: str):
        self.installed_mod_versions.pop(mod_id, None)


T = TypeVar("T", bound=BaseModel)

SettingsCallback = Callable[[BaseModel], None]


class SettingsStore(Generic[T]):
    """JSON-backed store for one settings model.

    All reads and writes of the file happen under one re-entrant lock.
    Subscribers are called outside the lock, after the new file is in place.
    """

    def __init__(
        self,
        path: str | Path,
        model_type: type[T],
        default_factory: Optional[Callable[[], T]] = None,
    ) -> None:
        self.path = Path(path)
        self.model_type = model_type
        self._default_factory = default_factory or model_type
        self._lock = threading.RLock()
        self._settings: Optional[T] = None
        self._last_saved_json: Optional[str] = None
        self._subscribers: list[SettingsCallback] = []

    @property
    def settings(self) -> T:
        with self._lock:
            if self._settings is None:
                return self.load()
            return self._settings

    # ── Events ────────────────────────────────────────────────────────

    def subscribe(self, callback: SettingsCallback):
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: SettingsCallback):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _notify(self, settings: T):
        for callback in list(self._subscribers):
            callback(settings)

    # ── Load ──────────────────────────────────────────────────────────

    def _use_defaults(self) -> T:
        defaults = self._default_factory()
        self._settings = defaults
        self._last_saved_json = defaults.model_dump_json(indent=2)
        return defaults

    def load(self) -> T:
        with self._lock:
            if not self.path.exists():
                _log.info("Settings file not found, writing defaults to %s", self.path)
                defaults = self._use_defaults()
                try:
                    self._write_json(self._last_saved_json)
                except StorageError as exc:
                    _log.warning("Could not write default settings: %s", exc)
                return defaults

            try:
                settings = self.model_type.model_validate_json(
                    self.path.read_text(encoding="utf-8")
                )
            except ValidationError as exc:
                _log.warning("Invalid settings in %s, using defaults: %s", self.path, exc)
                return self._use_defaults()
            except (OSError, UnicodeDecodeError) as exc:
                _log.warning("Could not read %s, using defaults: %s", self.path, exc)
                return self._use_defaults()

            self._settings = settings
            self._last_saved_json = settings.model_dump_json(indent=2)
            _log.debug("Settings loaded from %s", self.path)
            return settings

    async def load_async(self) -> T:
        return await asyncio.to_thread(self.load)

    # ── Save ──────────────────────────────────────────────────────────

    def _write_json(self, serialized: str):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=self.path.name + ".", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(serialized)
                os.replace(tmp, self.path)
            except OSError:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            _log.error("Failed to save settings to %s: %s", self.path, exc)
            raise StorageError(f"Failed to save settings to {self.path}: {exc}") from exc

    def save(self, settings: Optional[T] = None) -> bool:
        """Persist ``settings`` (default: the current settings).

        Returns False, without writing or notifying, when the serialized JSON
        matches what was last loaded or saved.
        """
        with self._lock:
            settings = settings if settings is not None else self.settings
            serialized = settings.model_dump_json(indent=2)
            if serialized == self._last_saved_json:
                _log.debug("Settings unchanged, skipping save")
                return False
            self._write_json(serialized)
            self._settings = settings
            self._last_saved_json = serialized
        _log.info("Settings saved to %s", self.path)
        self._notify(settings)
        return True

    async def save_async(self, settings: Optional[T] = None) -> bool:
        return await asyncio.to_thread(self.save, settings)

    def reset(self) -> T:
        """Replace the stored settings with defaults and save them."""
        defaults = self._default_factory()
        self.save(defaults)
        return defaults
