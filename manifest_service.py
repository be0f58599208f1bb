"""
Fetches and caches the per-title mod manifests.

The cache is an explicit object owned by whoever builds the service, so tests
(and separate launchers in the same process) never share state by accident.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Optional

import httpx
from pydantic import ValidationError

from download_manager import DEFAULT_TIMEOUT, USER_AGENT
from errors import (
    ManifestFormatError,
    ManifestNotLoadedError,
    ModNotFoundError,
    NetworkError,
)
from manifest_schema import ModDefinition, ModManifest, parse_manifest

_log = logging.getLogger(__name__)


class GameTitle(str, Enum):
    ALTAIR = "altair"
    EZIO = "ezio"
    BROTHERHOOD = "brotherhood"
    REVELATIONS = "revelations"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


_MANIFEST_BASE = "https://raw.githubusercontent.com/animus-reforged/mods/main"

MANIFEST_URLS: dict[GameTitle, str] = {
    title: f"{_MANIFEST_BASE}/{title.value}_manifest.json" for title in GameTitle
}


class ManifestCache:
    """Latest manifest per title. Entries are replaced whole, never patched."""

    def __init__(self) -> None:
        self._manifests: dict[GameTitle, ModManifest] = {}

    def get(self, title: GameTitle) -> Optional[ModManifest]:
        return self._manifests.get(title)

    def put(self, title: GameTitle, manifest: ModManifest):
        self._manifests[title] = manifest

    def clear(self, title: GameTitle):
        self._manifests.pop(title, None)

    def clear_all(self):
        self._manifests.clear()


class ManifestService:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[ManifestCache] = None,
        urls: Optional[dict[GameTitle, str]] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=DEFAULT_TIMEOUT,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self.cache = cache if cache is not None else ManifestCache()
        self.urls = {**MANIFEST_URLS, **(urls or {})}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, title: GameTitle = GameTitle.ALTAIR, force_refresh: bool = False) -> ModManifest:
        """Return the manifest for ``title``, downloading it if not cached.

        Raises NetworkError when the request fails and ManifestFormatError
        when the body is not a valid manifest. The cache is left untouched
        on failure.
        """
        title = GameTitle(title)
        cached = self.cache.get(title)
        if cached is not None and not force_refresh:
            _log.debug("Using cached %s manifest", title.value)
            return cached

        url = self.urls[title]
        _log.info("Fetching %s manifest from %s", title.value, url)
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            _log.error("Failed to fetch %s manifest: %s", title.value, exc)
            raise NetworkError(f"Failed to fetch {title.display_name} manifest: {exc}") from exc

        try:
            manifest = parse_manifest(resp.content)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            _log.error("Invalid %s manifest: %s", title.value, exc)
            raise ManifestFormatError(f"Invalid {title.display_name} manifest: {exc}") from exc

        self.cache.put(title, manifest)
        _log.info("Loaded %s manifest with %d mod(s)", title.value, len(manifest.mods))
        return manifest

    def lookup(self, title: GameTitle, mod_id: str) -> ModDefinition:
        title = GameTitle(title)
        manifest = self.cache.get(title)
        if manifest is None:
            raise ManifestNotLoadedError(title.display_name)
        try:
            return manifest.mods[mod_id]
        except KeyError:
            raise ModNotFoundError(mod_id, title.display_name) from None

    def clear_cache(self, title: Optional[GameTitle] = None):
        if title is None:
            self.cache.clear_all()
        else:
            self.cache.clear(GameTitle(title))
