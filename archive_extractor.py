"""
Archive extraction for Altair Mod Manager.

Supports .zip, .rar, .7z and the tar family (.tar, .tar.gz/.tgz,
.tar.bz2/.tbz2, .tar.xz/.txz). Every format goes through the same entry loop:
directories are skipped, an optional filter keeps only entries whose path
ends with one of the given tokens (case-insensitive), and files are written
under the output directory with their relative path, overwriting what is
there.

Public API
----------
detect_archive_kind(path) -> ArchiveKind
list_archive_files(path, kind=None) -> list[str]
extract_archive(path, output_dir, file_filter=None, kind=None) -> list[str]
extract_archive_async(path, output_dir, file_filter=None, kind=None, cancel_event=None)
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
import tarfile
import zipfile
from contextlib import contextmanager
from enum import Enum
from functools import partial
from pathlib import Path, PurePosixPath
from typing import IO, Callable, Iterator, Optional, Sequence

import py7zr
import rarfile

from errors import (
    ArchiveFormatError,
    ArchiveNotFoundError,
    ExtractionCancelledError,
    InvalidArgumentError,
    OperationCancelledError,
    StorageError,
    UnsupportedArchiveError,
)

_log = logging.getLogger(__name__)

# Point rarfile at UnRAR.exe, frozen exe uses _MEIPASS, dev uses assets/
if getattr(sys, "frozen", False):
    _unrar = Path(sys._MEIPASS) / "UnRAR.exe"
else:
    _unrar = Path(__file__).parent / "assets" / "UnRAR.exe"
if _unrar.exists():
    rarfile.UNRAR_TOOL = str(_unrar)


class ArchiveKind(str, Enum):
    ZIP = "zip"
    RAR = "rar"
    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_BZ2 = "tar.bz2"
    TAR_XZ = "tar.xz"
    SEVEN_ZIP = "7z"


# Longest suffixes first so ".tar.gz" wins over ".gz"-less ".tar"
_EXTENSIONS: tuple[tuple[str, ArchiveKind], ...] = (
    (".tar.gz", ArchiveKind.TAR_GZ),
    (".tgz", ArchiveKind.TAR_GZ),
    (".tar.bz2", ArchiveKind.TAR_BZ2),
    (".tbz2", ArchiveKind.TAR_BZ2),
    (".tar.xz", ArchiveKind.TAR_XZ),
    (".txz", ArchiveKind.TAR_XZ),
    (".tar", ArchiveKind.TAR),
    (".zip", ArchiveKind.ZIP),
    (".rar", ArchiveKind.RAR),
    (".7z", ArchiveKind.SEVEN_ZIP),
)

SUPPORTED_FORMATS = ", ".join(ext for ext, _ in _EXTENSIONS)

_TAR_MODES = {
    ArchiveKind.TAR: "r:",
    ArchiveKind.TAR_GZ: "r:gz",
    ArchiveKind.TAR_BZ2: "r:bz2",
    ArchiveKind.TAR_XZ: "r:xz",
}

_FORMAT_ERRORS = (
    zipfile.BadZipFile,
    rarfile.Error,
    tarfile.TarError,
    py7zr.exceptions.ArchiveError,
    EOFError,
)


def detect_archive_kind(path: str | Path) -> ArchiveKind:
    name = Path(path).name.lower()
    for ext, kind in _EXTENSIONS:
        if name.endswith(ext):
            return kind
    raise UnsupportedArchiveError(path, SUPPORTED_FORMATS)


def entry_matches(name: str, file_filter: Optional[Sequence[str]]) -> bool:
    """True if ``name`` should be extracted under ``file_filter``.

    No filter (or an empty one) selects everything. Otherwise the entry path
    must equal or end with one of the tokens, ignoring case, so ``".asi"``
    selects every ASI plugin and ``"scripts/foo.ini"`` one exact file.
    """
    if not file_filter:
        return True
    if not name:
        return False
    lowered = name.lower()
    return any(lowered.endswith(token.lower()) for token in file_filter if token)


def _normalize(name: str) -> str:
    return name.replace("\\", "/")


def _safe_destination(output_dir: Path, name: str) -> Path | None:
    rel = PurePosixPath(name)
    if rel.is_absolute() or ".." in rel.parts or not rel.parts:
        return None
    if rel.parts[0].endswith(":"):
        return None
    return output_dir.joinpath(*rel.parts)


def _check_cancel(cancel_event, archive_path: Path):
    if cancel_event is not None and cancel_event.is_set():
        raise ExtractionCancelledError(f"Extraction was cancelled for {archive_path.name}")


def _validate(archive_path, output_dir) -> tuple[Path, Path]:
    if not str(archive_path or "").strip():
        raise InvalidArgumentError("Archive path cannot be null or empty.")
    if not str(output_dir or "").strip():
        raise InvalidArgumentError("Output path cannot be null or empty.")
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise ArchiveNotFoundError(archive_path)
    return archive_path, Path(output_dir)


# ── Low-level archive reading ─────────────────────────────────────────


@contextmanager
def _open_members(
    path: Path, kind: ArchiveKind
) -> Iterator[list[tuple[str, Callable[[], IO[bytes]]]]]:
    """Yield ``(name, opener)`` pairs for every file entry of a zip/rar/tar."""
    if kind is ArchiveKind.ZIP:
        with zipfile.ZipFile(path, "r") as zf:
            yield [
                (_normalize(info.filename), partial(zf.open, info))
                for info in zf.infolist()
                if not info.is_dir()
            ]
    elif kind is ArchiveKind.RAR:
        with rarfile.RarFile(path, "r") as rf:
            yield [
                (_normalize(info.filename), partial(rf.open, info))
                for info in rf.infolist()
                if not info.is_dir()
            ]
    else:
        with tarfile.open(path, _TAR_MODES[kind]) as tf:
            yield [
                (_normalize(member.name), partial(tf.extractfile, member))
                for member in tf.getmembers()
                if member.isfile()
            ]


def _list_7z(path: Path) -> list[str]:
    with py7zr.SevenZipFile(path, "r") as sz:
        return [_normalize(info.filename) for info in sz.list() if not info.is_directory]


def list_archive_files(path: str | Path, kind: ArchiveKind | None = None) -> list[str]:
    """Return the non-directory entries of an archive with ``/`` separators."""
    path = Path(path)
    if not path.is_file():
        raise ArchiveNotFoundError(path)
    kind = kind or detect_archive_kind(path)
    try:
        if kind is ArchiveKind.SEVEN_ZIP:
            return _list_7z(path)
        with _open_members(path, kind) as members:
            return [name for name, _ in members]
    except _FORMAT_ERRORS as exc:
        raise ArchiveFormatError(f"Cannot open archive {path.name}: {exc}") from exc


# ── Extraction ────────────────────────────────────────────────────────


def _write_stream(opener: Callable[[], IO[bytes]], dest: Path):
    dest.parent.mkdir(parents=True, exist_ok=True)
    with opener() as src, open(dest, "wb") as fh:
        shutil.copyfileobj(src, fh)


def _extract_streamed(path, kind, output_dir, file_filter, cancel_event) -> list[str]:
    written: list[str] = []
    with _open_members(path, kind) as members:
        for name, opener in members:
            _check_cancel(cancel_event, path)
            if not entry_matches(name, file_filter):
                continue
            dest = _safe_destination(output_dir, name)
            if dest is None:
                _log.warning("Skipping unsafe entry %r in %s", name, path.name)
                continue
            _write_stream(opener, dest)
            written.append(name)
            _log.debug("Extracted %s", name)
    return written


def _extract_7z(path, output_dir, file_filter, cancel_event) -> list[str]:
    with py7zr.SevenZipFile(path, "r") as sz:
        selected: list[tuple[str, str]] = []  # (archive name, normalized name)
        for info in sz.list():
            if info.is_directory:
                continue
            name = _normalize(info.filename)
            if not entry_matches(name, file_filter):
                continue
            if _safe_destination(output_dir, name) is None:
                _log.warning("Skipping unsafe entry %r in %s", name, path.name)
                continue
            selected.append((info.filename, name))

        if not selected:
            return []
        for _, name in selected:
            _safe_destination(output_dir, name).parent.mkdir(parents=True, exist_ok=True)

        if cancel_event is None:
            sz.extract(path=output_dir, targets=[raw for raw, _ in selected])
        else:
            # One entry at a time so cancellation is honoured between entries
            for raw, _ in selected:
                _check_cancel(cancel_event, path)
                sz.reset()
                sz.extract(path=output_dir, targets=[raw])
    return [name for _, name in selected]


def _extract_archive(
    archive_path,
    output_dir,
    file_filter: Optional[Sequence[str]] = None,
    kind: ArchiveKind | None = None,
    cancel_event=None,
) -> list[str]:
    archive_path, output_dir = _validate(archive_path, output_dir)
    kind = kind or detect_archive_kind(archive_path)
    _log.info("Extracting %s (%s) to %s", archive_path.name, kind.value, output_dir)
    if file_filter:
        _log.debug("File filter: %s", list(file_filter))

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        if kind is ArchiveKind.SEVEN_ZIP:
            written = _extract_7z(archive_path, output_dir, file_filter, cancel_event)
        else:
            written = _extract_streamed(archive_path, kind, output_dir, file_filter, cancel_event)
    except OperationCancelledError:
        _log.warning("Extraction was cancelled for %s", archive_path.name)
        raise
    except _FORMAT_ERRORS as exc:
        _log.error("Invalid %s archive %s: %s", kind.value, archive_path.name, exc)
        raise ArchiveFormatError(f"Cannot open archive {archive_path.name}: {exc}") from exc
    except OSError as exc:
        _log.error("IO error when extracting %s: %s", archive_path.name, exc)
        raise StorageError(f"Failed to write files from {archive_path.name}: {exc}") from exc

    _log.info(
        "Successfully extracted %d file(s) from %s to %s",
        len(written), archive_path.name, output_dir,
    )
    return written


def extract_archive(
    archive_path: str | Path,
    output_dir: str | Path,
    file_filter: Optional[Sequence[str]] = None,
    kind: ArchiveKind | None = None,
) -> list[str]:
    """Extract ``archive_path`` into ``output_dir``.

    Returns the archive-relative paths that were written, in archive order.
    ``kind`` overrides extension-based detection.
    """
    return _extract_archive(archive_path, output_dir, file_filter, kind)


async def extract_archive_async(
    archive_path: str | Path,
    output_dir: str | Path,
    file_filter: Optional[Sequence[str]] = None,
    kind: ArchiveKind | None = None,
    cancel_event=None,
) -> list[str]:
    """Like :func:`extract_archive`, run in a worker thread.

    ``cancel_event`` is anything with ``is_set()`` (``asyncio.Event`` or
    ``threading.Event``); it is checked once per archive entry and raises
    :class:`ExtractionCancelledError`. Files written before cancellation stay
    on disk.
    """
    return await asyncio.to_thread(
        _extract_archive, archive_path, output_dir, file_filter, kind, cancel_event
    )
