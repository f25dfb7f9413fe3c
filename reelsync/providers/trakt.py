"""Trakt watch-history and ratings client."""

from datetime import datetime
from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from reelsync.core.resilience import RetryConfig, raise_for_rejection, with_http_retry
from reelsync.providers.base import RawActivityRecord

logger = structlog.get_logger(__name__)

SERVICE = "trakt"
API_VERSION = "2"


def parse_trakt_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse Trakt's ``2023-01-15T10:30:00.000Z`` timestamps."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def record_from_item(item: dict[str, Any], timestamp_field: str) -> Optional[RawActivityRecord]:
    """Build a record from a history or ratings item; non-movie items give None."""
    movie = item.get("movie")
    if not movie:
        return None

    ids = movie.get("ids") or {}
    tmdb_id = ids.get("tmdb")
    timestamp = parse_trakt_timestamp(item.get(timestamp_field))
    rating = item.get("rating")

    return RawActivityRecord(
        external_title=movie.get("title") or "",
        watched_at=timestamp.date() if timestamp else None,
        catalog_id=int(tmdb_id) if tmdb_id else None,
        release_year=movie.get("year"),
        provider_rating=int(rating) if rating else None,
        watched_at_precise=timestamp,
    )


class TraktClient:
    """
    Paged reader over one Trakt user's movie history and ratings.

    History comes back newest first, so an incremental fetch stops at the
    first item at or below the stored high-water mark.
    """

    def __init__(
        self,
        client_id: str,
        username: str,
        access_token: Optional[str] = None,
        base_url: str = "https://api.trakt.tv",
        page_size: int = 100,
        timeout: float = 15.0,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.username = username
        self.page_size = page_size
        self._retry_config = retry_config or RetryConfig()

        headers = {
            "Content-Type": "application/json",
            "trakt-api-version": API_VERSION,
            "trakt-api-key": client_id,
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout
        )
        self._headers = headers

    async def _get_page(self, path: str, page: int) -> tuple[list[dict], Optional[int]]:
        params = {"page": page, "limit": self.page_size}
        response = await with_http_retry(
            lambda: self._client.get(path, params=params, headers=self._headers),
            service=SERVICE,
            config=self._retry_config,
        )
        raise_for_rejection(response, SERVICE)

        page_count = response.headers.get("X-Pagination-Page-Count")
        try:
            total_pages = int(page_count) if page_count is not None else None
        except ValueError:
            total_pages = None
        return response.json() or [], total_pages

    async def _iter_items(self, path: str) -> AsyncIterator[dict]:
        page = 1
        while True:
            items, total_pages = await self._get_page(path, page)
            for item in items:
                yield item

            if len(items) < self.page_size:
                break
            if total_pages is not None and page >= total_pages:
                break
            page += 1

    async def fetch_activity(
        self, cursor: Optional[datetime] = None
    ) -> AsyncIterator[RawActivityRecord]:
        """Yield history newer than cursor, newest first."""
        path = f"/users/{self.username}/history/movies"
        seen = 0
        async for item in self._iter_items(path):
            record = record_from_item(item, "watched_at")
            if record is None:
                continue
            if record.watched_at is None:
                logger.warning(
                    "trakt_history_item_skipped",
                    username=self.username,
                    reason="missing_watched_at",
                    title=record.external_title,
                    history_id=item.get("id"),
                )
                continue
            if (
                cursor is not None
                and record.watched_at_precise is not None
                and record.watched_at_precise <= cursor
            ):
                logger.info(
                    "trakt_history_cursor_reached",
                    username=self.username,
                    cursor=cursor.isoformat(),
                    records=seen,
                )
                return
            seen += 1
            yield record

        logger.info("trakt_history_fetched", username=self.username, records=seen)

    async def fetch_ratings(self) -> AsyncIterator[RawActivityRecord]:
        """Yield every movie rating (1..10)."""
        path = f"/users/{self.username}/ratings/movies"
        async for item in self._iter_items(path):
            record = record_from_item(item, "rated_at")
            if record is not None and record.provider_rating is not None:
                yield record

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
