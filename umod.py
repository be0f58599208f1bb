"""
uMod support: texture-pack templates and per-user game registration.

A uMod template is a small text file of free-form header lines followed by one
``Add_true:<path>`` line per enabled ``.tpf`` texture pack. uMod itself also
keeps a list of hooked games in ``%APPDATA%\\uMod\\uMod_DX9.txt`` (UTF-16LE)
and a ``game|template`` table in ``uMod_SaveFiles.txt`` next to ``uMod.exe``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

from errors import InvalidArgumentError, ModsDirectoryNotFoundError, TemplateNotFoundError
from file_paths import FilePaths

ENABLED_MOD_PREFIX = "Add_true:"
MOD_FILE_PATTERN = "*.tpf"
UMOD_ENCODING = "utf-16-le"  # no BOM

TEMPLATE_HEADER = (
    "SaveAllTextures:0",
    "SaveSingleTexture:0",
    "FontColour:255,0,0",
    "TextureColour:0,255,0",
)

_log = logging.getLogger(__name__)


class UModTemplateFile:
    """A parsed uMod template bound to the directory its packs live in."""

    def __init__(self, template_path: str | Path, mods_path: str | Path) -> None:
        if template_path is None or mods_path is None:
            raise InvalidArgumentError("Template and mods paths are required.")
        self.template_path = Path(template_path)
        self.mods_path = Path(mods_path)
        self.header_lines: list[str] = []
        self.enabled_mods: list[str] = []
        self._parse()

    def _parse(self):
        if not self.template_path.is_file():
            raise TemplateNotFoundError(self.template_path)
        self.header_lines = []
        self.enabled_mods = []
        text = self.template_path.read_text(encoding="utf-8-sig")
        for line in text.splitlines():
            if line.startswith(ENABLED_MOD_PREFIX):
                self.enabled_mods.append(line[len(ENABLED_MOD_PREFIX):].strip())
            else:
                self.header_lines.append(line)
        _log.debug(
            "Parsed template %s: %d header line(s), %d enabled mod(s)",
            self.template_path.name, len(self.header_lines), len(self.enabled_mods),
        )

    def refresh(self):
        self._parse()

    def _discover(self) -> list[str]:
        if not self.mods_path.is_dir():
            raise ModsDirectoryNotFoundError(self.mods_path)
        return [str(p) for p in sorted(self.mods_path.rglob(MOD_FILE_PATTERN)) if p.is_file()]

    def _split(self, discovered: list[str]) -> tuple[list[str], list[str]]:
        enabled = {path.casefold() for path in self.enabled_mods}
        disabled = [path for path in discovered if path.casefold() not in enabled]
        return list(self.enabled_mods), disabled

    def load_mods(self) -> tuple[list[str], list[str]]:
        """Return ``(enabled, disabled)``.

        ``enabled`` is the template's list as written; ``disabled`` is every
        discovered ``.tpf`` under the mods directory that is not enabled
        (compared case-insensitively).
        """
        return self._split(self._discover())

    async def load_mods_async(self) -> tuple[list[str], list[str]]:
        discovered = await asyncio.to_thread(self._discover)
        return self._split(discovered)

    def save_enabled_mods(self, enabled_mods: Iterable[str]):
        if enabled_mods is None:
            raise InvalidArgumentError("Enabled mods cannot be None.")
        enabled_mods = list(enabled_mods)
        content = "".join(f"{line}\n" for line in self.header_lines)
        content += "".join(f"{ENABLED_MOD_PREFIX}{path}\n" for path in enabled_mods)
        self.template_path.write_text(content, encoding="utf-8", newline="")
        self.enabled_mods = enabled_mods
        _log.info("Saved %d enabled mod(s) to %s", len(enabled_mods), self.template_path.name)


# ── Registration ──────────────────────────────────────────────────────


def _require(value: str, what: str):
    if not value or not str(value).strip():
        raise InvalidArgumentError(f"{what} cannot be null or empty.")


def setup_appdata(paths: FilePaths, game_path: str | Path):
    """Register ``game_path`` with uMod, appending it only if it is missing."""
    _require(str(game_path), "Game path")
    game_path = str(game_path)
    config = paths.umod_config
    config.parent.mkdir(parents=True, exist_ok=True)

    if not config.exists():
        config.write_text(game_path, encoding=UMOD_ENCODING, newline="")
        _log.info("Created uMod config with %s", game_path)
        return

    content = config.read_text(encoding=UMOD_ENCODING)
    existing = {line.casefold() for line in content.splitlines()}
    if game_path.casefold() in existing:
        _log.debug("Game path already registered with uMod")
        return

    prefix = "" if not content or content.endswith(("\n", "\r")) else "\r\n"
    with open(config, "a", encoding=UMOD_ENCODING, newline="") as fh:
        fh.write(prefix + game_path)
    _log.info("Registered %s with uMod", game_path)


def remove_game_from_appdata(paths: FilePaths, game_path: str | Path) -> bool:
    _require(str(game_path), "Game path")
    config = paths.umod_config
    if not config.exists():
        return False

    target = str(game_path).strip().casefold()
    lines = config.read_text(encoding=UMOD_ENCODING).splitlines()
    kept = [line for line in lines if line.strip().casefold() != target]
    if len(kept) == len(lines):
        return False

    config.write_text("".join(f"{line}\r\n" for line in kept), encoding=UMOD_ENCODING, newline="")
    _log.info("Removed %s from uMod config", game_path)
    return True


def build_template_content(mod_paths: Optional[Iterable[str]] = None) -> str:
    lines = list(TEMPLATE_HEADER)
    lines += [f"{ENABLED_MOD_PREFIX}{path}" for path in (mod_paths or []) if path]
    return "".join(f"{line}\n" for line in lines)


def setup_save_file(
    paths: FilePaths,
    game_path: str | Path,
    template_name: str,
    mod_paths: Optional[Iterable[str]] = None,
) -> Path:
    """Write a template enabling ``mod_paths`` and point uMod at it for this game."""
    _require(str(game_path), "Game path")
    _require(template_name, "Template name")
    paths.umod_templates.mkdir(parents=True, exist_ok=True)

    if not paths.umod_status_file.exists():
        paths.umod_status_file.write_text("Enabled=1", encoding="ascii")

    template = paths.umod_templates / template_name
    template.write_text(build_template_content(mod_paths), encoding="utf-8", newline="")

    entry = f"{game_path}|{template}"
    save_files = paths.umod_save_files
    registered = []
    if save_files.exists():
        registered = save_files.read_text(encoding=UMOD_ENCODING).splitlines()
    if entry.casefold() in {line.strip().casefold() for line in registered}:
        _log.debug("uMod save file already points at %s", template)
    else:
        with open(save_files, "a", encoding=UMOD_ENCODING, newline="") as fh:
            fh.write(f"{entry}\n")
        _log.info("uMod save file set up: %s", template)
    return template
