"""
Manifest schema for Altair Mod Manager.

Each supported title publishes a ``<title>_manifest.json`` describing the
add-ons the launcher knows how to provision. The manager fetches it, keeps it
in memory, and looks add-ons up by their identifier.

Schema version 1.0
------------------

{
    "schema_version": "1.0",
    "mods": {
        "eagle_patch": {
            "name": "Eagle Patch",
            "url": "https://github.com/Sergeanur/EaglePatch/releases/download/1.1/EaglePatchAC1.rar",
            "archive_type": "rar",
            "version": "1.1"
        }
    }
}

``archive_type`` is informational; when it does not name a known format the
extension of the URL's file name decides how the archive is opened.
"""

from __future__ import annotations

import json
import logging
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from archive_extractor import ArchiveKind, detect_archive_kind

CURRENT_VERSION = (1, 0)  # (major, minor) supported by this build

_log = logging.getLogger(__name__)


def url_file_name(url: str) -> str:
    """Return the last path segment of ``url`` (percent-decoded), or ``""``."""
    return unquote(PurePosixPath(urlparse(url).path).name)


class ModDefinition(BaseModel):
    """One downloadable add-on.

    ``file_name`` is what the archive is called in the downloads directory, so
    the URL must end in a file name.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    archive_type: str
    version: str

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        if not url_file_name(v):
            raise ValueError(f"Mod url {v!r} does not end in a file name")
        return v

    @property
    def file_name(self) -> str:
        return url_file_name(self.url)

    @property
    def archive_kind(self) -> ArchiveKind:
        try:
            return ArchiveKind(self.archive_type.strip().lower().lstrip("."))
        except ValueError:
            return detect_archive_kind(self.file_name)


class ModManifest(BaseModel):
    """Parsed contents of a title manifest."""

    model_config = ConfigDict(frozen=True)

    schema_version: str
    mods: dict[str, ModDefinition] = Field(default_factory=dict)

    @field_validator("schema_version")
    @classmethod
    def _check_version(cls, v: str) -> str:
        try:
            parts = [int(x) for x in v.split(".")]
        except ValueError:
            raise ValueError(
                f"Invalid schema_version {v!r}, expected 'major.minor' (e.g. '1.0')"
            )
        major = parts[0]
        minor = parts[1] if len(parts) > 1 else 0
        cur_major, cur_minor = CURRENT_VERSION
        if major > cur_major:
            raise ValueError(
                f"schema_version {v!r} requires a newer mod manager "
                f"(this build supports up to version {cur_major}.x)"
            )
        if major == cur_major and minor > cur_minor:
            _log.warning(
                "Manifest version %s is newer than this build supports (%d.%d), "
                "some fields may be ignored.",
                v, cur_major, cur_minor,
            )
        return v


def parse_manifest(data: bytes | str) -> ModManifest:
    """Parse raw JSON into a ModManifest.

    Raises ``pydantic.ValidationError`` if the data is invalid.
    Raises ``json.JSONDecodeError`` if the bytes are not valid JSON.
    """
    return ModManifest.model_validate(json.loads(data))
