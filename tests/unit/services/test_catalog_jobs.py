"""Tests for catalog mirror refresh and the poster cache."""

from datetime import date

import httpx
import pytest

from reelsync.catalog.models import CanonicalMovie
from reelsync.core.resilience import RetryConfig
from reelsync.services.catalog_sync import CatalogMovieSync
from reelsync.services.image_cache import PosterImageCache

NO_WAIT = RetryConfig(max_attempts=1, base_delay_seconds=0.0, jitter_factor=0.0)


@pytest.mark.asyncio
async def test_sync_refreshes_stale_movies(catalog, movie_repo, the_matrix):
    movie_repo.movies[603] = CanonicalMovie(catalog_id=603, title="Old Title")
    movie_repo.movies[1] = CanonicalMovie(catalog_id=1, title="Deleted Upstream")

    stats = await CatalogMovieSync(catalog, movie_repo).run(max_age_hours=24)

    assert stats == {"candidates": 2, "refreshed": 1, "missing": 1}
    assert movie_repo.movies[603] == the_matrix
    assert movie_repo.movies[1].title == "Deleted Upstream"


@pytest.mark.asyncio
async def test_sync_explicit_ids(catalog, movie_repo):
    stats = await CatalogMovieSync(catalog, movie_repo).run(24, catalog_ids=[27205])

    assert stats["refreshed"] == 1
    assert catalog.id_calls == [27205]


class TestPosterImageCache:
    def _cache(self, tmp_path, handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return PosterImageCache(
            str(tmp_path),
            image_base_url="https://img.test/t/p",
            retry_config=NO_WAIT,
            http_client=client,
        )

    @pytest.mark.asyncio
    async def test_downloads_then_skips(self, tmp_path):
        requested = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, content=b"JPEG")

        cache = self._cache(tmp_path, handler)
        movies = [
            CanonicalMovie(catalog_id=603, title="The Matrix", poster_ref="/matrix.jpg"),
            CanonicalMovie(catalog_id=2, title="No Poster", release_date=date(2000, 1, 1)),
        ]

        first = await cache.warm(movies)
        second = await cache.warm(movies)

        assert first == {"cached": 1, "skipped": 0, "missing": 0}
        assert second == {"cached": 0, "skipped": 1, "missing": 0}
        assert requested == ["https://img.test/t/p/w342/matrix.jpg"]
        assert cache.path_for("/matrix.jpg").read_bytes() == b"JPEG"

    @pytest.mark.asyncio
    async def test_missing_image_is_counted(self, tmp_path):
        cache = self._cache(tmp_path, lambda request: httpx.Response(404))
        movies = [CanonicalMovie(catalog_id=603, title="The Matrix", poster_ref="/gone.jpg")]

        stats = await cache.warm(movies)

        assert stats["missing"] == 1
        assert not cache.path_for("/gone.jpg").exists()
