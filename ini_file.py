"""
Round-trip INI editing.

``IniFile`` keeps every original line (comments, blank lines, malformed
lines) and only rewrites the ``key=value`` lines whose values it owns, so
hand-edited plugin configs survive a save with their layout intact.

Parsing rules, applied to each line after stripping whitespace:

* empty -> EMPTY
* starts with ``;`` or ``#`` -> COMMENT
* ``[name]`` -> SECTION (surrounding brackets stripped)
* contains ``=`` -> KEY_VALUE, split on the first ``=``, both sides stripped
* anything else -> COMMENT (kept verbatim)

Keys are case-insensitive within a section; section names are not. Keys that
appear before the first section header belong to the unnamed global section,
read and written through the ``*_global`` methods.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from errors import IniFileNotFoundError, InvalidArgumentError

GLOBAL_SECTION = ""

_log = logging.getLogger(__name__)


class IniLineType(Enum):
    EMPTY = "empty"
    COMMENT = "comment"
    SECTION = "section"
    KEY_VALUE = "key_value"


@dataclass
class IniLine:
    type: IniLineType
    content: str
    section: str = GLOBAL_SECTION
    key: str = ""
    value: str = ""


def _require_section(section: str):
    if not section or not section.strip():
        raise InvalidArgumentError("Section name cannot be null or empty.")


def _require_key(key: str):
    if not key or not key.strip():
        raise InvalidArgumentError("Key name cannot be null or empty.")


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class IniFile:
    def __init__(self, path: str | Path) -> None:
        if not str(path or "").strip():
            raise InvalidArgumentError("INI file path cannot be null or empty.")
        self.path = Path(path)
        if not self.path.is_file():
            _log.error("INI file does not exist: %s", self.path)
            raise IniFileNotFoundError(self.path)

        self._lines: list[IniLine] = []
        # section -> lowercased key -> (key as first written, value)
        self._data: dict[str, dict[str, tuple[str, str]]] = {}
        self._parse(self.path.read_text(encoding="utf-8-sig"))

    @classmethod
    def open(cls, path: str | Path) -> IniFile:
        return cls(path)

    def _parse(self, text: str):
        section = GLOBAL_SECTION
        for line in text.splitlines():
            stripped = line.strip()
            if not stripped:
                self._lines.append(IniLine(IniLineType.EMPTY, line))
            elif stripped.startswith((";", "#")):
                self._lines.append(IniLine(IniLineType.COMMENT, line))
            elif stripped.startswith("[") and stripped.endswith("]"):
                section = stripped.strip("[]")
                self._lines.append(IniLine(IniLineType.SECTION, line, section))
                self._data.setdefault(section, {})
            elif "=" in stripped:
                key, _, value = stripped.partition("=")
                key, value = key.strip(), value.strip()
                self._lines.append(IniLine(IniLineType.KEY_VALUE, line, section, key, value))
                entries = self._data.setdefault(section, {})
                original_key = entries.get(key.lower(), (key, ""))[0]
                entries[key.lower()] = (original_key, value)
            else:
                _log.debug("Keeping malformed line as comment: %r", line)
                self._lines.append(IniLine(IniLineType.COMMENT, line))
        _log.debug(
            "Parsed %s: %d line(s), %d section(s)",
            self.path.name, len(self._lines), len(self._data),
        )

    # ── Reading ───────────────────────────────────────────────────────

    def _lookup(self, section: str, key: str, default: str) -> str:
        entry = self._data.get(section, {}).get(key.lower())
        return entry[1] if entry is not None else default

    def get(self, section: str, key: str, default: str = "") -> str:
        _require_section(section)
        _require_key(key)
        return self._lookup(section, key, default)

    def get_int(self, section: str, key: str, default: int = 0) -> int:
        try:
            return int(self.get(section, key))
        except ValueError:
            return default

    def get_bool(self, section: str, key: str, default: bool = False) -> bool:
        """``1`` is true, any other integer is false, non-integers give ``default``."""
        try:
            return int(self.get(section, key)) == 1
        except ValueError:
            return default

    def get_float(self, section: str, key: str, default: float = 0.0) -> float:
        try:
            return float(self.get(section, key))
        except ValueError:
            return default

    def has_section(self, section: str) -> bool:
        _require_section(section)
        return section in self._data

    def has_key(self, section: str, key: str) -> bool:
        _require_section(section)
        _require_key(key)
        return key.lower() in self._data.get(section, {})

    def get_sections(self) -> list[str]:
        return [name for name in self._data if name != GLOBAL_SECTION]

    def get_keys(self, section: str) -> list[str]:
        _require_section(section)
        return [key for key, _ in self._data.get(section, {}).values()]

    # ── Writing ───────────────────────────────────────────────────────

    def _store(self, section: str, key: str, value: Any):
        entries = self._data.setdefault(section, {})
        original_key = entries.get(key.lower(), (key, ""))[0]
        entries[key.lower()] = (original_key, _format_value(value))

    def _remove(self, section: str, key: str) -> bool:
        entries = self._data.get(section)
        if entries is None:
            return False
        removed = entries.pop(key.lower(), None) is not None
        self._lines = [
            line for line in self._lines
            if not (
                line.type is IniLineType.KEY_VALUE
                and line.section == section
                and line.key.lower() == key.lower()
            )
        ]
        return removed

    def set(self, section: str, key: str, value: Any):
        """Store ``value``; bools become ``1``/``0`` and ``None`` an empty string."""
        _require_section(section)
        _require_key(key)
        self._store(section, key, value)

    def remove_key(self, section: str, key: str) -> bool:
        _require_section(section)
        _require_key(key)
        return self._remove(section, key)

    def remove_section(self, section: str) -> bool:
        """Drop a section and its key lines, up to the next section header."""
        _require_section(section)
        removed = self._data.pop(section, None) is not None

        kept: list[IniLine] = []
        inside = False
        for line in self._lines:
            if line.type is IniLineType.SECTION:
                inside = line.section == section
                if inside:
                    continue
            elif inside and line.type is IniLineType.KEY_VALUE:
                continue
            kept.append(line)
        self._lines = kept
        return removed

    # ── Global section ────────────────────────────────────────────────
    # Keys above the first header. Section names must not be empty, so these
    # have their own accessors.

    def get_global(self, key: str, default: str = "") -> str:
        _require_key(key)
        return self._lookup(GLOBAL_SECTION, key, default)

    def get_global_keys(self) -> list[str]:
        return [key for key, _ in self._data.get(GLOBAL_SECTION, {}).values()]

    def set_global(self, key: str, value: Any):
        _require_key(key)
        self._store(GLOBAL_SECTION, key, value)

    def remove_global_key(self, key: str) -> bool:
        _require_key(key)
        return self._remove(GLOBAL_SECTION, key)

    def save(self):
        """Write the document back to :attr:`path`.

        Existing ``key=value`` lines get their current value and removed keys
        are dropped. New keys of an existing section go right after that
        section's last header or key line, so they still belong to it when the
        file is read back. New sections are appended last, each followed by a
        blank line.
        """
        existing: dict[str, set[str]] = {GLOBAL_SECTION: set()}
        # section -> index of its last header or key line; -1 puts global keys first
        anchors: dict[str, int] = {GLOBAL_SECTION: -1}
        for index, line in enumerate(self._lines):
            if line.type is IniLineType.SECTION:
                existing.setdefault(line.section, set())
                anchors[line.section] = index
            elif line.type is IniLineType.KEY_VALUE:
                existing.setdefault(line.section, set()).add(line.key.lower())
                anchors[line.section] = index

        inserts: dict[int, list[str]] = {}
        for section, index in anchors.items():
            inserts.setdefault(index, []).extend(
                f"{key}={value}"
                for lowered, (key, value) in self._data.get(section, {}).items()
                if lowered not in existing[section]
            )

        out: list[str] = list(inserts.get(-1, ()))
        for index, line in enumerate(self._lines):
            if line.type in (IniLineType.EMPTY, IniLineType.COMMENT):
                out.append(line.content)
            elif line.type is IniLineType.SECTION:
                out.append(f"[{line.section}]")
            else:
                entry = self._data.get(line.section, {}).get(line.key.lower())
                if entry is not None:
                    out.append(f"{line.key}={entry[1]}")
            out.extend(inserts.get(index, ()))

        for section, entries in self._data.items():
            if section not in anchors:
                out.append(f"[{section}]")
                out.extend(f"{key}={value}" for key, value in entries.values())
                out.append("")

        self.path.write_text("".join(f"{line}\n" for line in out), encoding="utf-8")
        _log.debug("Saved %s (%d line(s))", self.path.name, len(out))
