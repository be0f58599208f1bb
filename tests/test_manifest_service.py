"""
Tests for manifest fetching, caching and lookup, plus the manifest schema.
"""

import asyncio

import httpx
import pytest
from pydantic import ValidationError

from archive_extractor import ArchiveKind
from errors import ManifestFormatError, ManifestNotLoadedError, ModNotFoundError, NetworkError
from manifest_schema import ModDefinition, parse_manifest
from manifest_service import MANIFEST_URLS, GameTitle, ManifestCache, ManifestService
from tests.conftest import MANIFEST_URL, manifest_bytes, mod_entry

MODS = {
    "eagle_patch": mod_entry("Eagle Patch", "EaglePatchAC1.rar", "1.1", "rar"),
    "overhaul": mod_entry("Overhaul", "Overhaul.7z", "2.0", "7z"),
}


def make_service(routes, cache=None):
    return ManifestService(
        client=routes.client(), cache=cache, urls={GameTitle.ALTAIR: MANIFEST_URL}
    )


def test_default_urls_point_at_published_manifests():
    assert MANIFEST_URLS[GameTitle.ALTAIR].endswith("/altair_manifest.json")
    assert MANIFEST_URLS[GameTitle.REVELATIONS].endswith("/revelations_manifest.json")
    assert len(MANIFEST_URLS) == 4


def test_lookup_before_fetch_is_not_loaded(routes):
    service = make_service(routes)
    with pytest.raises(ManifestNotLoadedError) as exc_info:
        service.lookup(GameTitle.ALTAIR, "eagle_patch")
    assert "Altair manifest not loaded" in str(exc_info.value)


def test_fetch_then_lookup(routes):
    routes[MANIFEST_URL] = manifest_bytes(MODS)
    service = make_service(routes)

    manifest = asyncio.run(service.fetch(GameTitle.ALTAIR))

    assert set(manifest.mods) == {"eagle_patch", "overhaul"}
    mod = service.lookup(GameTitle.ALTAIR, "eagle_patch")
    assert mod.name == "Eagle Patch"
    assert mod.version == "1.1"
    with pytest.raises(ModNotFoundError):
        service.lookup(GameTitle.ALTAIR, "does_not_exist")


def test_fetch_uses_cache_until_forced(routes):
    routes[MANIFEST_URL] = manifest_bytes(MODS)
    service = make_service(routes)

    async def run():
        first = await service.fetch(GameTitle.ALTAIR)
        second = await service.fetch(GameTitle.ALTAIR)
        assert first is second
        assert routes.count(MANIFEST_URL) == 1

        routes[MANIFEST_URL] = manifest_bytes({"umod": mod_entry("UMod", "uMod.zip")})
        refreshed = await service.fetch(GameTitle.ALTAIR, force_refresh=True)
        assert routes.count(MANIFEST_URL) == 2
        return refreshed

    refreshed = asyncio.run(run())
    assert set(refreshed.mods) == {"umod"}
    with pytest.raises(ModNotFoundError):
        service.lookup(GameTitle.ALTAIR, "eagle_patch")


def test_http_error_raises_network_error_and_keeps_cache(routes):
    routes[MANIFEST_URL] = manifest_bytes(MODS)
    service = make_service(routes)
    asyncio.run(service.fetch(GameTitle.ALTAIR))

    routes[MANIFEST_URL] = 500
    with pytest.raises(NetworkError):
        asyncio.run(service.fetch(GameTitle.ALTAIR, force_refresh=True))
    assert service.lookup(GameTitle.ALTAIR, "overhaul").version == "2.0"


def test_transport_error_raises_network_error(routes):
    routes[MANIFEST_URL] = httpx.ConnectTimeout("timed out")
    with pytest.raises(NetworkError):
        asyncio.run(make_service(routes).fetch(GameTitle.ALTAIR))


@pytest.mark.parametrize(
    "body",
    [
        b"not json at all",
        b'{"mods": {}}',
        b'{"schema_version": "1.0", "mods": {"x": {"name": "X"}}}',
        b"\xff\xfe\x00garbage",
    ],
)
def test_invalid_manifest_raises_format_error(routes, body):
    routes[MANIFEST_URL] = body
    service = make_service(routes)
    with pytest.raises(ManifestFormatError):
        asyncio.run(service.fetch(GameTitle.ALTAIR))
    assert service.cache.get(GameTitle.ALTAIR) is None


def test_clear_cache(routes):
    routes[MANIFEST_URL] = manifest_bytes(MODS)
    service = make_service(routes)
    asyncio.run(service.fetch(GameTitle.ALTAIR))

    service.clear_cache(GameTitle.EZIO)
    assert service.lookup(GameTitle.ALTAIR, "overhaul")

    service.clear_cache()
    with pytest.raises(ManifestNotLoadedError):
        service.lookup(GameTitle.ALTAIR, "overhaul")


def test_services_do_not_share_caches(routes):
    routes[MANIFEST_URL] = manifest_bytes(MODS)
    shared = ManifestCache()
    first = make_service(routes, cache=shared)
    second = make_service(routes, cache=shared)
    isolated = make_service(routes)

    asyncio.run(first.fetch(GameTitle.ALTAIR))

    assert second.lookup(GameTitle.ALTAIR, "overhaul").name == "Overhaul"
    with pytest.raises(ManifestNotLoadedError):
        isolated.lookup(GameTitle.ALTAIR, "overhaul")


# ── schema ───────────────────────────────────────────────────────────────────

def test_mod_definition_file_name_and_kind():
    mod = ModDefinition(
        name="ReShade",
        url="https://example.test/dl/ReShade%20Setup.tar.gz?raw=1",
        archive_type="archive",
        version="5.9",
    )
    assert mod.file_name == "ReShade Setup.tar.gz"
    assert mod.archive_kind is ArchiveKind.TAR_GZ


def test_mod_definition_archive_type_wins():
    mod = ModDefinition(name="X", url="https://example.test/x.bin", archive_type=".ZIP", version="1")
    assert mod.archive_kind is ArchiveKind.ZIP


def test_mod_definition_requires_file_name():
    with pytest.raises(ValidationError):
        ModDefinition(name="X", url="https://example.test/", archive_type="zip", version="1")


def test_mod_definition_is_frozen():
    mod = ModDefinition(name="X", url="https://example.test/x.zip", archive_type="zip", version="1")
    with pytest.raises(ValidationError):
        mod.version = "2"


def test_newer_major_schema_rejected():
    with pytest.raises(ValidationError):
        parse_manifest(manifest_bytes(MODS, schema_version="2.0"))


def test_newer_minor_schema_accepted():
    manifest = parse_manifest(manifest_bytes(MODS, schema_version="1.3"))
    assert manifest.schema_version == "1.3"
