"""
Shared fixtures and helpers for the Altair Mod Manager test suite.
"""

import json
import struct
import tarfile
import zipfile
from io import BytesIO
from pathlib import Path

import httpx
import py7zr
import pytest

from file_paths import FilePaths

MANIFEST_URL = "https://example.test/altair_manifest.json"
FILES_URL = "https://example.test/files"


def make_zip(path: Path, members: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


def make_tar(path: Path, members: dict, mode: str = "w:gz") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, mode) as tf:
        for member, data in members.items():
            if isinstance(data, str):
                data = data.encode("utf-8")
            info = tarfile.TarInfo(member)
            info.size = len(data)
            tf.addfile(info, BytesIO(data))
    return path


def make_7z(path: Path, members: dict) -> Path:
    """Build a .7z from in-memory members, staging them next to the archive."""
    staging = path.parent / (path.name + ".src")
    with py7zr.SevenZipFile(path, "w") as sz:
        for member, data in members.items():
            src = staging / member
            src.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(data, str):
                data = data.encode("utf-8")
            src.write_bytes(data)
            sz.write(src, arcname=member)
    return path


def make_pe(
    path: Path,
    characteristics: int = 0x0102,
    pe_offset: int = 0x80,
    payload: bytes = b"",
) -> Path:
    """Write a minimal PE image: DOS stub pointer, signature and file header."""
    data = bytearray(pe_offset + 24)
    data[0:2] = b"MZ"
    struct.pack_into("<i", data, 0x3C, pe_offset)
    data[pe_offset:pe_offset + 4] = b"PE\x00\x00"
    struct.pack_into("<H", data, pe_offset + 4, 0x014C)  # i386
    struct.pack_into("<H", data, pe_offset + 22, characteristics)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(bytes(data) + payload)
    return path


def read_characteristics(path: Path, pe_offset: int = 0x80) -> int:
    return struct.unpack_from("<H", path.read_bytes(), pe_offset + 22)[0]


def manifest_bytes(mods: dict, schema_version: str = "1.0") -> bytes:
    return json.dumps({"schema_version": schema_version, "mods": mods}).encode("utf-8")


def mod_entry(name: str, file_name: str, version: str = "1.0", archive_type: str = "zip") -> dict:
    return {
        "name": name,
        "url": f"{FILES_URL}/{file_name}",
        "archive_type": archive_type,
        "version": version,
    }


class Routes:
    """URL -> response table served through ``httpx.MockTransport``.

    Values are bytes (200 OK), an int status code, an ``httpx.Response``
    factory, or an exception instance to raise. Every request is recorded.
    """

    def __init__(self, table: dict | None = None):
        self.table = dict(table or {})
        self.requests: list[httpx.Request] = []

    def __setitem__(self, url, value):
        self.table[url] = value

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        value = self.table.get(str(request.url), 404)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, int):
            return httpx.Response(value)
        if callable(value):
            return value(request)
        return httpx.Response(200, content=value)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def count(self, url: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == url)


@pytest.fixture
def paths(tmp_path):
    """FilePaths rooted in a fresh game folder with a private appdata dir."""
    base = tmp_path / "game"
    base.mkdir()
    return FilePaths.from_base(base, tmp_path / "appdata")


@pytest.fixture
def routes():
    return Routes()
