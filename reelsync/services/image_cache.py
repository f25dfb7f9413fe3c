"""Local poster cache for mirrored catalog movies."""

import asyncio
from pathlib import Path
from typing import Iterable, Optional

import httpx
import structlog

from reelsync.catalog.models import CanonicalMovie
from reelsync.core.resilience import RetryConfig, raise_for_rejection, with_http_retry

logger = structlog.get_logger(__name__)

SERVICE = "tmdb_images"


class PosterImageCache:
    """Downloads posters once into ``<cache_dir>/<size>/<poster_ref>``."""

    def __init__(
        self,
        cache_dir: str,
        image_base_url: str = "https://image.tmdb.org/t/p",
        poster_size: str = "w342",
        timeout: float = 15.0,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.cache_dir = Path(cache_dir)
        self.poster_size = poster_size
        self._base_url = image_base_url.rstrip("/")
        self._retry_config = retry_config or RetryConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    def path_for(self, poster_ref: str) -> Path:
        return self.cache_dir / self.poster_size / poster_ref.lstrip("/")

    async def warm(self, movies: Iterable[CanonicalMovie], force: bool = False) -> dict[str, int]:
        """Fetch missing posters. Missing upstream images are counted, not raised.

        Raises:
            ProviderUnavailable: image host kept failing past the retry budget
        """
        stats = {"cached": 0, "skipped": 0, "missing": 0}
        for movie in movies:
            if not movie.poster_ref:
                continue
            target = self.path_for(movie.poster_ref)
            if target.exists() and not force:
                stats["skipped"] += 1
                continue

            url = f"{self._base_url}/{self.poster_size}/{movie.poster_ref.lstrip('/')}"
            response = await with_http_retry(
                lambda: self._client.get(url),
                service=SERVICE,
                config=self._retry_config,
            )
            if response.status_code == 404:
                logger.info("poster_missing", catalog_id=movie.catalog_id, poster_ref=movie.poster_ref)
                stats["missing"] += 1
                continue
            raise_for_rejection(response, SERVICE)

            await asyncio.to_thread(_write_file, target, response.content)
            stats["cached"] += 1

        logger.info("poster_cache_warmed", **stats)
        return stats

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".part")
    tmp.write_bytes(content)
    tmp.replace(path)
