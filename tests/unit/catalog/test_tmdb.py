"""Tests for the TMDB catalog client."""

from datetime import date

import httpx
import pytest

from reelsync.catalog.tmdb import TmdbCatalogClient, movie_from_payload
from reelsync.core.resilience import ProviderRequestRejected, RetryConfig

NO_WAIT = RetryConfig(max_attempts=2, base_delay_seconds=0.0, jitter_factor=0.0)


def _client(handler) -> TmdbCatalogClient:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://tmdb.test/3"
    )
    return TmdbCatalogClient(api_key="key", retry_config=NO_WAIT, http_client=http_client)


def test_movie_from_payload():
    movie = movie_from_payload(
        {
            "id": 603,
            "title": "The Matrix",
            "original_title": "The Matrix",
            "release_date": "1999-03-30",
            "poster_path": "/matrix.jpg",
        }
    )
    assert movie.catalog_id == 603
    assert movie.release_date == date(1999, 3, 30)
    assert movie.release_year == 1999
    assert movie.poster_ref == "/matrix.jpg"


def test_movie_from_payload_blank_release_date():
    movie = movie_from_payload({"id": 1, "title": "Untitled", "release_date": ""})
    assert movie.release_date is None
    assert movie.release_year is None


@pytest.mark.asyncio
async def test_search_sends_query_and_parses_results():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "results": [
                    {"id": 27205, "title": "Inception", "release_date": "2010-07-15"},
                    {"title": "no id"},
                ]
            },
        )

    client = _client(handler)
    movies = await client.search_by_title("Inception")

    assert seen["path"] == "/3/search/movie"
    assert seen["params"]["query"] == "Inception"
    assert seen["params"]["api_key"] == "key"
    assert "year" not in seen["params"]
    assert [m.catalog_id for m in movies] == [27205]


@pytest.mark.asyncio
async def test_search_with_year():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json={"results": []})

    await _client(handler).search_by_title("Dune", year=2021)

    assert seen["year"] == "2021"


@pytest.mark.asyncio
async def test_find_by_id_not_found_returns_none():
    client = _client(lambda request: httpx.Response(404, json={"status_code": 34}))
    assert await client.find_by_id(999999) is None


@pytest.mark.asyncio
async def test_find_by_id_returns_movie():
    client = _client(
        lambda request: httpx.Response(200, json={"id": 603, "title": "The Matrix"})
    )
    movie = await client.find_by_id(603)
    assert movie.title == "The Matrix"


@pytest.mark.asyncio
async def test_unauthorized_is_rejected():
    client = _client(lambda request: httpx.Response(401))
    with pytest.raises(ProviderRequestRejected):
        await client.search_by_title("Inception")


@pytest.mark.asyncio
async def test_transient_error_is_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"results": []})

    assert await _client(handler).search_by_title("Heat") == []
    assert len(calls) == 2
