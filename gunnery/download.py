"""
Cached HTTP downloads for ship data ingestion.

Every response body is stored under the cache directory, named by the
SHA-256 of the request, and served from there on later calls. Resources
ending in ".gz" are decompressed before caching. Some armor models answer
404; those are cached as empty bodies instead of failing the ingestion run.
"""

from __future__ import annotations

import gzip
import hashlib
import logging
from pathlib import Path
from typing import Optional

import httpx


logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_S = 60.0


def cache_key(*parts: str) -> str:
    """Hex SHA-256 of the concatenated request parts."""
    return hashlib.sha256("".join(parts).encode("utf-8")).hexdigest()


class CachedDownloader:
    """
    HTTP client with a write-through file cache.

    Attributes:
        cache_dir: Directory holding cached bodies.
    """

    def __init__(
        self,
        cache_dir: str | Path = "cache",
        client: Optional[httpx.Client] = None
    ):
        """
        Args:
            cache_dir: Cache directory (created if missing).
            client: httpx client to use (a default one is created if None).
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._client = client or httpx.Client(timeout=DEFAULT_TIMEOUT_S)

    def _cached(self, key: str) -> Optional[str]:
        path = self.cache_dir / key
        if path.exists():
            return path.read_text(encoding="utf-8")
        return None

    def _store(self, key: str, body: str) -> str:
        (self.cache_dir / key).write_text(body, encoding="utf-8")
        return body

    @staticmethod
    def _decode(url: str, content: bytes) -> str:
        if url.endswith(".gz"):
            content = gzip.decompress(content)
        return content.decode("utf-8")

    def download(self, url: str) -> str:
        """
        GET a URL, serving from cache when possible.

        Returns:
            The decoded body, or "" if the server answered 404.

        Raises:
            httpx.HTTPStatusError: For error statuses other than 404.
        """
        key = cache_key(url)
        cached = self._cached(key)
        if cached is not None:
            return cached

        response = self._client.get(url)
        if response.status_code == 404:
            logger.warning("Got response code %d for url %s", response.status_code, url)
            body = ""
        else:
            response.raise_for_status()
            logger.info("Downloaded %s: %d bytes", url, len(response.content))
            body = self._decode(url, response.content)
        return self._store(key, body)

    def download_with_params(self, url: str, view: str, params: str) -> str:
        """
        POST a form with ``view`` and ``params`` fields, cached.

        Raises:
            httpx.HTTPStatusError: For error statuses.
        """
        key = cache_key(url, view, params)
        cached = self._cached(key)
        if cached is not None:
            return cached

        response = self._client.post(url, data={"view": view, "params": params})
        response.raise_for_status()
        logger.info("Downloaded %s with params: %d bytes", url, len(response.content))
        return self._store(key, self._decode(url, response.content))

    def close(self) -> None:
        self._client.close()
