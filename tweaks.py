"""
Gameplay tweaks exposed by Eagle Patch through ``scripts/EaglePatchAC1.ini``.

    [EaglePatchAC1]
    KeyboardLayout=2
    PS3Controls=0
    SkipIntroVideos=1

``KeyboardLayout`` is an index into :data:`KEYBOARD_LAYOUTS`.
"""

from __future__ import annotations

import logging
from pathlib import Path

from errors import InvalidArgumentError
from ini_file import IniFile

SECTION = "EaglePatchAC1"
KEYBOARD_LAYOUTS = ("KeyboardMouse2", "KeyboardMouse5", "Keyboard", "KeyboardAlt")
DEFAULT_KEYBOARD_LAYOUT = "Keyboard"

_log = logging.getLogger(__name__)


class EaglePatchConfig:
    def __init__(self, path: str | Path) -> None:
        self.ini = IniFile.open(path)

    @property
    def keyboard_layout(self) -> str:
        default = KEYBOARD_LAYOUTS.index(DEFAULT_KEYBOARD_LAYOUT)
        index = self.ini.get_int(SECTION, "KeyboardLayout", default)
        if 0 <= index < len(KEYBOARD_LAYOUTS):
            return KEYBOARD_LAYOUTS[index]
        _log.warning("Unknown keyboard layout index %d, using %s", index, DEFAULT_KEYBOARD_LAYOUT)
        return DEFAULT_KEYBOARD_LAYOUT

    @keyboard_layout.setter
    def keyboard_layout(self, layout: str):
        if layout not in KEYBOARD_LAYOUTS:
            raise InvalidArgumentError(
                f"Unknown keyboard layout {layout!r}, expected one of {', '.join(KEYBOARD_LAYOUTS)}"
            )
        self.ini.set(SECTION, "KeyboardLayout", KEYBOARD_LAYOUTS.index(layout))

    @property
    def ps3_controls(self) -> bool:
        return self.ini.get_bool(SECTION, "PS3Controls", False)

    @ps3_controls.setter
    def ps3_controls(self, enabled: bool):
        self.ini.set(SECTION, "PS3Controls", bool(enabled))

    @property
    def skip_intro_videos(self) -> bool:
        return self.ini.get_bool(SECTION, "SkipIntroVideos", False)

    @skip_intro_videos.setter
    def skip_intro_videos(self, enabled: bool):
        self.ini.set(SECTION, "SkipIntroVideos", bool(enabled))

    def save(self):
        self.ini.save()
        _log.info(
            "Eagle Patch settings saved (layout=%s, ps3=%s, skip_intro=%s)",
            self.keyboard_layout, self.ps3_controls, self.skip_intro_videos,
        )
