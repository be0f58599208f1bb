"""
Streaming HTTP downloads for Altair Mod Manager.

Archives are fetched with an ``httpx.AsyncClient`` and written to disk chunk by
chunk through ``aiofiles`` so large packs never sit in memory. Progress is
reported as a whole percentage through a plain callback.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import aiofiles
import httpx

from errors import DownloadCancelledError, InvalidArgumentError, NetworkError, StorageError

USER_AGENT = "Animus Reforged (https://github.com/animus-reforged)"
DEFAULT_CHUNK_SIZE = 8192
MIN_CHUNK_SIZE = 4096
DEFAULT_TIMEOUT = 60.0

_log = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class DownloadManager:
    """Downloads one file at a time to a local path.

    Pass ``client`` to share a connection pool (or a mock transport in tests);
    otherwise the manager owns its client and closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.chunk_size = max(chunk_size, MIN_CHUNK_SIZE)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    async def __aenter__(self) -> DownloadManager:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def download_file(
        self,
        url: str,
        save_path: str | Path,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event=None,
    ) -> Path:
        """Stream ``url`` into ``save_path``, creating parent directories.

        ``on_progress`` receives strictly increasing percentages below 100
        while the body arrives (only when the server sends Content-Length),
        then exactly one ``100`` after the file is flushed.

        ``cancel_event`` is anything with ``is_set()``; it is checked between
        chunks. A cancelled download leaves the partial file in place.
        """
        if not url or not url.strip():
            raise InvalidArgumentError("URL cannot be null or empty.")
        if not str(save_path or "").strip():
            raise InvalidArgumentError("Save path cannot be null or empty.")

        save_path = Path(save_path)
        _log.info("Downloading %s -> %s", url, save_path)

        try:
            save_path.parent.mkdir(parents=True, exist_ok=True)
            async with self._client.stream(
                "GET", url, headers={"User-Agent": USER_AGENT}
            ) as resp:
                resp.raise_for_status()
                total = int(resp.headers.get("Content-Length") or 0)
                _log.debug("Content-Length: %s", total or "unknown")

                downloaded = 0
                last_percent = -1
                async with aiofiles.open(save_path, "wb") as fh:
                    async for chunk in resp.aiter_bytes(self.chunk_size):
                        if cancel_event is not None and cancel_event.is_set():
                            raise DownloadCancelledError(f"Download was cancelled: {url}")
                        await fh.write(chunk)
                        downloaded += len(chunk)

                        if total > 0 and on_progress is not None:
                            percent = round(downloaded / total * 100)
                            if last_percent < percent < 100:
                                last_percent = percent
                                on_progress(percent)
                    await fh.flush()
        except DownloadCancelledError:
            _log.warning("Download cancelled, partial file left at %s", save_path)
            raise
        except httpx.HTTPError as exc:
            _log.error("Download failed for %s: %s", url, exc)
            raise NetworkError(f"Failed to download {url}: {exc}") from exc
        except OSError as exc:
            _log.error("Could not write %s: %s", save_path, exc)
            raise StorageError(f"Failed to write {save_path}: {exc}") from exc

        if on_progress is not None:
            on_progress(100)
        _log.info("Download completed: %s", save_path)
        return save_path
