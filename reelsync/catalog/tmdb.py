"""TMDB implementation of the catalog lookup."""

from datetime import date
from typing import Any, Optional

import httpx
import structlog

from reelsync.catalog.models import CanonicalMovie
from reelsync.core.resilience import RetryConfig, raise_for_rejection, with_http_retry

logger = structlog.get_logger(__name__)

SERVICE = "tmdb"


def _parse_release_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def movie_from_payload(payload: dict[str, Any]) -> CanonicalMovie:
    """Build a CanonicalMovie from a TMDB movie or search result object."""
    return CanonicalMovie(
        catalog_id=int(payload["id"]),
        title=payload.get("title") or payload.get("original_title") or "",
        release_date=_parse_release_date(payload.get("release_date")),
        poster_ref=payload.get("poster_path"),
        original_title=payload.get("original_title"),
    )


class TmdbCatalogClient:
    """
    Async TMDB client.

    - Every request carries a timeout
    - 429 and 5xx responses are retried with backoff (see core.resilience)
    - 404 on lookup by id means the id is stale upstream and yields None
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.themoviedb.org/3",
        timeout: float = 15.0,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._retry_config = retry_config or RetryConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout
        )

    async def _get(self, path: str, params: dict[str, Any]) -> httpx.Response:
        query = {"api_key": self._api_key, **params}
        return await with_http_retry(
            lambda: self._client.get(path, params=query),
            service=SERVICE,
            config=self._retry_config,
        )

    async def search_by_title(
        self, text: str, year: Optional[int] = None
    ) -> list[CanonicalMovie]:
        params: dict[str, Any] = {"query": text, "include_adult": "false"}
        if year is not None:
            params["year"] = year

        response = await self._get("/search/movie", params)
        raise_for_rejection(response, SERVICE)

        results = response.json().get("results") or []
        movies = [movie_from_payload(item) for item in results if item.get("id")]
        logger.debug("tmdb_search", query=text, year=year, results=len(movies))
        return movies

    async def find_by_id(self, catalog_id: int) -> Optional[CanonicalMovie]:
        response = await self._get(f"/movie/{catalog_id}", {})
        if response.status_code == 404:
            logger.info("tmdb_movie_not_found", catalog_id=catalog_id)
            return None
        raise_for_rejection(response, SERVICE)
        return movie_from_payload(response.json())

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
