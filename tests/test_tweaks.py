"""
Tests for the Eagle Patch tweak settings.
"""

import pytest

from errors import IniFileNotFoundError, InvalidArgumentError
from ini_file import IniFile
from tweaks import SECTION, EaglePatchConfig


@pytest.fixture
def eagle_ini(paths):
    paths.scripts_dir.mkdir()
    paths.eagle_patch_ini.write_text(
        "; Eagle Patch\n[EaglePatchAC1]\nKeyboardLayout=0\nPS3Controls=0\nSkipIntroVideos=0\n",
        encoding="utf-8",
    )
    return paths.eagle_patch_ini


def test_read_defaults_from_file(eagle_ini):
    config = EaglePatchConfig(eagle_ini)
    assert config.keyboard_layout == "KeyboardMouse2"
    assert config.ps3_controls is False
    assert config.skip_intro_videos is False


def test_change_and_save(eagle_ini):
    config = EaglePatchConfig(eagle_ini)
    config.keyboard_layout = "KeyboardAlt"
    config.ps3_controls = True
    config.skip_intro_videos = True
    config.save()

    ini = IniFile(eagle_ini)
    assert ini.get_int(SECTION, "KeyboardLayout") == 3
    assert ini.get(SECTION, "PS3Controls") == "1"
    assert ini.get(SECTION, "SkipIntroVideos") == "1"
    assert eagle_ini.read_text(encoding="utf-8").startswith("; Eagle Patch\n")


def test_out_of_range_layout_falls_back(eagle_ini):
    eagle_ini.write_text("[EaglePatchAC1]\nKeyboardLayout=9\n", encoding="utf-8")
    assert EaglePatchConfig(eagle_ini).keyboard_layout == "Keyboard"


def test_unknown_layout_rejected(eagle_ini):
    config = EaglePatchConfig(eagle_ini)
    with pytest.raises(InvalidArgumentError):
        config.keyboard_layout = "Gamepad"


def test_missing_ini(paths):
    with pytest.raises(IniFileNotFoundError):
        EaglePatchConfig(paths.eagle_patch_ini)
