"""
Tests for the command line front end.
"""

import pytest

import patcher
from main import parse_args, run_patch
from settings_store import AltairSettings, SettingsStore
from tests.conftest import make_pe, read_characteristics


def test_parse_install_with_download():
    args = parse_args(["--game-dir", "C:/AC", "install", "eagle_patch", "--download"])
    assert args.command == "install"
    assert args.mod_id == "eagle_patch"
    assert args.download is True
    assert args.game_dir == "C:/AC"


def test_parse_rejects_unknown_mod():
    with pytest.raises(SystemExit):
        parse_args(["install", "not_a_mod"])


def test_parse_requires_command():
    with pytest.raises(SystemExit):
        parse_args([])


def test_run_patch_laa_updates_tweaks(paths):
    exe = make_pe(paths.altair_executable)
    store = SettingsStore(paths.settings_file, AltairSettings)

    run_patch(paths, store, "laa")

    assert read_characteristics(exe) & patcher.LARGE_ADDRESS_AWARE
    assert SettingsStore(paths.settings_file, AltairSettings).settings.tweaks.large_address_aware

    run_patch(paths, store, "laa-revert")

    assert not read_characteristics(exe) & patcher.LARGE_ADDRESS_AWARE
    assert not store.settings.tweaks.large_address_aware


def test_run_patch_stutter(paths):
    exe = make_pe(paths.altair_executable, payload=b"\x00gconnect.ubi.com\x00")
    store = SettingsStore(paths.settings_file, AltairSettings)

    run_patch(paths, store, "stutter")

    assert patcher.is_stutter_patched(exe)
    assert store.settings.tweaks.stutter_fix is True

    run_patch(paths, store, "stutter-revert")

    assert not patcher.is_stutter_patched(exe)
    assert store.settings.tweaks.stutter_fix is False
