"""
Well-known locations used by Altair Mod Manager.

Everything lives next to the game executable (the launcher is dropped into the
game folder). uMod additionally keeps a per-user registration file under
%APPDATA%\\uMod.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

ALTAIR_EXE_NAME = "AssassinsCreed_Dx9.exe"


def resolve_base_directory() -> Path:
    # Frozen exe lives in the game folder; dev runs use the working directory
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path.cwd()


def resolve_appdata_directory() -> Path:
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata)
    return Path.home() / ".config"


@dataclass(frozen=True)
class FilePaths:
    base_dir: Path
    appdata_dir: Path

    @classmethod
    def from_base(cls, base_dir: str | Path | None = None, appdata_dir: str | Path | None = None) -> FilePaths:
        base = Path(base_dir) if base_dir is not None else resolve_base_directory()
        appdata = Path(appdata_dir) if appdata_dir is not None else resolve_appdata_directory()
        return cls(base_dir=base, appdata_dir=appdata)

    # ── Game ──────────────────────────────────────────────────────────

    @property
    def altair_executable(self) -> Path:
        return self.base_dir / ALTAIR_EXE_NAME

    @property
    def executable_backup(self) -> Path:
        exe = self.altair_executable
        return exe.with_name(exe.name + ".bak")

    # ── Directories ───────────────────────────────────────────────────

    @property
    def downloads_dir(self) -> Path:
        return self.base_dir / "downloads"

    @property
    def scripts_dir(self) -> Path:
        return self.base_dir / "scripts"

    @property
    def mods_dir(self) -> Path:
        return self.base_dir / "mods"

    @property
    def config_dir(self) -> Path:
        return self.base_dir / "config"

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / "logs"

    # ── Files ─────────────────────────────────────────────────────────

    @property
    def log_file(self) -> Path:
        return self.logs_dir / "altair.log"

    @property
    def settings_file(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def installed_mods_file(self) -> Path:
        return self.config_dir / "installed_mods.json"

    @property
    def eagle_patch_ini(self) -> Path:
        return self.scripts_dir / "EaglePatchAC1.ini"

    # ── uMod ──────────────────────────────────────────────────────────

    @property
    def umod_dir(self) -> Path:
        return self.base_dir / "uMod"

    @property
    def umod_executable(self) -> Path:
        return self.umod_dir / "uMod.exe"

    @property
    def umod_appdata(self) -> Path:
        return self.appdata_dir / "uMod"

    @property
    def umod_config(self) -> Path:
        return self.umod_appdata / "uMod_DX9.txt"

    @property
    def umod_templates(self) -> Path:
        return self.umod_dir / "templates"

    @property
    def umod_status_file(self) -> Path:
        return self.umod_dir / "Status.txt"

    @property
    def umod_save_files(self) -> Path:
        return self.umod_dir / "uMod_SaveFiles.txt"

    # ── Overhaul ──────────────────────────────────────────────────────

    @property
    def overhaul_dir(self) -> Path:
        return self.mods_dir / "Overhaul"

    @property
    def overhaul_tpf_file(self) -> Path:
        return self.overhaul_dir / "Overhaul.tpf"
