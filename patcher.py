"""
Byte-level patches for the game executable.

Two patches are supported:

* Large Address Aware: sets bit 0x20 of the PE file header Characteristics so
  the 32-bit game can address up to 4 GB. Written in place, two bytes.
* Stutter fix: the game keeps trying to reach the long dead
  ``gconnect.ubi.com`` server, which causes periodic hitches. Zeroing the first
  byte of the host name turns it into an empty string. The whole file is
  rewritten atomically.

Every patch takes a ``<exe>.bak`` copy first; :func:`restore_backup` puts it
back.
"""

from __future__ import annotations

import logging
import os
import shutil
import struct
import tempfile
from pathlib import Path

from errors import (
    AlreadyPatchedError,
    ExecutableNotFoundError,
    InvalidArgumentError,
    InvalidExecutableError,
    NotPatchedError,
    PatchFormatMismatchError,
    PatternNotFoundError,
    StorageError,
)

PE_POINTER_OFFSET = 0x3C
PE_SIGNATURE = 0x00004550  # "PE\0\0"
LARGE_ADDRESS_AWARE = 0x20
STUTTER_LITERAL = "gconnect.ubi.com"

_log = logging.getLogger(__name__)


def _require_file(path: str | Path) -> Path:
    if not str(path or "").strip():
        raise InvalidArgumentError("Executable path cannot be null or empty.")
    path = Path(path)
    if not path.is_file():
        raise ExecutableNotFoundError(path)
    return path


# ── Backups ───────────────────────────────────────────────────────────


def backup_path(path: str | Path) -> Path:
    path = Path(path)
    return path.with_name(path.name + ".bak")


def create_backup(path: str | Path) -> Path:
    """Copy ``path`` to ``<name>.bak``, replacing any older backup."""
    path = _require_file(path)
    backup = backup_path(path)
    shutil.copy2(path, backup)
    _log.info("Backup created: %s", backup)
    return backup


def restore_backup(path: str | Path, remove_backup: bool = True) -> bool:
    path = Path(path)
    backup = backup_path(path)
    if not backup.is_file():
        _log.warning("No backup to restore for %s", path)
        return False
    shutil.copy2(backup, path)
    if remove_backup:
        backup.unlink()
    _log.info("Restored %s from %s", path.name, backup.name)
    return True


# ── Large Address Aware ───────────────────────────────────────────────


def _characteristics_offset(fh, path: Path) -> int:
    """Locate the 2-byte Characteristics field of the PE file header."""
    size = fh.seek(0, os.SEEK_END)
    if size < PE_POINTER_OFFSET + 4:
        raise InvalidExecutableError(f"{path.name} is too small to be a PE file")

    fh.seek(PE_POINTER_OFFSET)
    (pe_offset,) = struct.unpack("<i", fh.read(4))
    if pe_offset < 0 or pe_offset + 4 > size:
        raise InvalidExecutableError(
            f"{path.name} has a PE header pointer outside the file (0x{pe_offset:X})"
        )

    fh.seek(pe_offset)
    (signature,) = struct.unpack("<I", fh.read(4))
    if signature != PE_SIGNATURE:
        raise InvalidExecutableError(f"{path.name} is not a valid PE file")

    # Machine + NumberOfSections (4), TimeDateStamp + PointerToSymbolTable +
    # NumberOfSymbols (12), SizeOfOptionalHeader (2)
    offset = pe_offset + 4 + 4 + 12 + 2
    if offset + 2 > size:
        raise InvalidExecutableError(f"{path.name} has a truncated PE file header")
    _log.debug("PE header at 0x%X, characteristics at 0x%X", pe_offset, offset)
    return offset


def _read_characteristics(fh, path: Path) -> tuple[int, int]:
    offset = _characteristics_offset(fh, path)
    fh.seek(offset)
    (flags,) = struct.unpack("<H", fh.read(2))
    return offset, flags


def is_large_address_aware(path: str | Path) -> bool:
    path = _require_file(path)
    with open(path, "rb") as fh:
        _, flags = _read_characteristics(fh, path)
    return bool(flags & LARGE_ADDRESS_AWARE)


def _set_laa_flag(path: str | Path, enable: bool) -> bool:
    path = _require_file(path)
    create_backup(path)
    with open(path, "r+b") as fh:
        offset, flags = _read_characteristics(fh, path)
        is_set = bool(flags & LARGE_ADDRESS_AWARE)
        if is_set == enable:
            _log.info(
                "Large Address Aware already %s on %s",
                "set" if enable else "cleared", path.name,
            )
            return False
        flags = flags | LARGE_ADDRESS_AWARE if enable else flags & ~LARGE_ADDRESS_AWARE
        fh.seek(offset)
        fh.write(struct.pack("<H", flags))
    _log.info(
        "Large Address Aware %s on %s", "enabled" if enable else "disabled", path.name
    )
    return True


def large_address_aware_patch(path: str | Path) -> bool:
    """Set the Large Address Aware flag. Returns False if it was already set."""
    return _set_laa_flag(path, True)


def large_address_aware_revert(path: str | Path) -> bool:
    """Clear the Large Address Aware flag. Returns False if it was not set."""
    return _set_laa_flag(path, False)


# ── Byte sequence patches ─────────────────────────────────────────────


def find_sequence(data: bytes | bytearray, target: bytes) -> int:
    """Lowest offset where ``target`` occurs in ``data``, or -1."""
    if not target:
        raise InvalidArgumentError("Search sequence cannot be empty.")
    return data.find(target)


def _encode_literal(literal: str) -> bytes:
    if not literal:
        raise InvalidArgumentError("Patch literal cannot be null or empty.")
    return literal.encode("ascii")


def _atomic_write(path: Path, data: bytes | bytearray):
    fd, tmp = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except OSError as exc:
        Path(tmp).unlink(missing_ok=True)
        raise StorageError(f"Failed to write {path}: {exc}") from exc


def is_sequence_patched(path: str | Path, literal: str) -> bool:
    target = _encode_literal(literal)
    data = _require_file(path).read_bytes()
    return find_sequence(data, b"\x00" + target[1:]) >= 0


def apply_sequence_patch(path: str | Path, literal: str):
    """Zero the first byte of the first occurrence of ``literal``."""
    target = _encode_literal(literal)
    path = _require_file(path)
    data = bytearray(path.read_bytes())

    index = find_sequence(data, target)
    if index < 0:
        if find_sequence(data, b"\x00" + target[1:]) >= 0:
            raise AlreadyPatchedError(f"{path.name} is already patched for '{literal}'")
        raise PatternNotFoundError(path, literal)

    _log.debug("Found '%s' at 0x%X", literal, index)
    create_backup(path)
    data[index] = 0
    _atomic_write(path, data)
    _log.info("Patched '%s' in %s", literal, path.name)


def revert_sequence_patch(path: str | Path, literal: str):
    """Put back the first byte zeroed by :func:`apply_sequence_patch`."""
    target = _encode_literal(literal)
    path = _require_file(path)
    data = bytearray(path.read_bytes())

    tail = target[1:]
    index = find_sequence(data, tail)
    if index < 0:
        raise NotPatchedError(f"{path.name} is not patched for '{literal}'")
    if index == 0 or data[index - 1] != 0:
        raise PatchFormatMismatchError(
            f"Unexpected byte before '{tail.decode('ascii')}' in {path.name}"
        )

    create_backup(path)
    data[index - 1] = target[0]
    _atomic_write(path, data)
    _log.info("Reverted '%s' patch in %s", literal, path.name)


def stutter_patch(path: str | Path):
    apply_sequence_patch(path, STUTTER_LITERAL)


def stutter_patch_revert(path: str | Path):
    revert_sequence_patch(path, STUTTER_LITERAL)


def is_stutter_patched(path: str | Path) -> bool:
    return is_sequence_patched(path, STUTTER_LITERAL)
