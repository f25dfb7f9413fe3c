"""Tests for history, movie and sync-state repositories."""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from reelsync.catalog.models import CanonicalMovie
from reelsync.repositories.history import HistoryRepository
from reelsync.repositories.movies import MovieRepository
from reelsync.repositories.playback import PlaybackSessionRepository
from reelsync.repositories.sync_state import SyncStateRepository
from reelsync.repositories.users import UserRepository


def make_pool(conn):
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool


def unmatched_row(**overrides):
    row = {
        "id": 5,
        "user_id": 1,
        "source": "streaming_export",
        "kind": "history",
        "external_title": "Home Movie",
        "normalized_title": "home movie",
        "release_year": None,
        "watched_at": date(2024, 1, 17),
        "provider_rating": None,
        "created_at": datetime(2024, 1, 18, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


class TestHistoryRepository:
    @pytest.mark.asyncio
    async def test_add_entry_created(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value={"id": 1})

        created = await HistoryRepository(make_pool(conn)).add_entry(
            1, 27205, date(2024, 1, 15), "trakt"
        )

        assert created is True
        query = conn.fetchrow.await_args.args[0]
        assert "ON CONFLICT ON CONSTRAINT watch_history_entry_unique DO NOTHING" in query

    @pytest.mark.asyncio
    async def test_add_entry_duplicate(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=None)

        created = await HistoryRepository(make_pool(conn)).add_entry(
            1, 27205, date(2024, 1, 15), "trakt"
        )

        assert created is False

    @pytest.mark.asyncio
    async def test_upsert_rating_only_writes_changes(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=None)

        changed = await HistoryRepository(make_pool(conn)).upsert_rating(1, 603, 8, "trakt")

        assert changed is False
        assert "IS DISTINCT FROM" in conn.fetchrow.await_args.args[0]

    @pytest.mark.asyncio
    async def test_list_unmatched(self):
        conn = AsyncMock()
        conn.fetch = AsyncMock(return_value=[unmatched_row()])

        (record,) = await HistoryRepository(make_pool(conn)).list_unmatched(1)

        assert record.to_dict() == {
            "id": 5,
            "source": "streaming_export",
            "kind": "history",
            "title": "Home Movie",
            "year": None,
            "watched_at": "2024-01-17",
            "rating": None,
            "created_at": "2024-01-18T00:00:00+00:00",
        }

    @pytest.mark.asyncio
    async def test_get_unmatched_scoped_to_user(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=None)

        assert await HistoryRepository(make_pool(conn)).get_unmatched(2, 5) is None
        assert conn.fetchrow.await_args.args[1:] == (5, 2)

    @pytest.mark.asyncio
    async def test_save_manual_match_overwrites(self):
        conn = AsyncMock()

        await HistoryRepository(make_pool(conn)).save_manual_match(
            1, "streaming_export", "home movie", 603
        )

        args = conn.execute.await_args.args
        assert "ON CONFLICT (user_id, source, normalized_title) DO UPDATE" in args[0]
        assert args[1:] == (1, "streaming_export", "home movie", 603)

    @pytest.mark.asyncio
    async def test_get_manual_match(self):
        conn = AsyncMock()
        conn.fetchval = AsyncMock(return_value=603)

        repo = HistoryRepository(make_pool(conn))

        assert await repo.get_manual_match(1, "streaming_export", "home movie") == 603
        assert conn.fetchval.await_args.args[1:] == (1, "streaming_export", "home movie")


class TestMovieRepository:
    @pytest.mark.asyncio
    async def test_upsert(self):
        conn = AsyncMock()
        movie = CanonicalMovie(603, "The Matrix", date(1999, 3, 30), "/m.jpg", "The Matrix")

        await MovieRepository(make_pool(conn)).upsert(movie)

        args = conn.execute.await_args.args
        assert "ON CONFLICT (catalog_id) DO UPDATE" in args[0]
        assert args[1:] == (603, "The Matrix", "The Matrix", date(1999, 3, 30), "/m.jpg")

    @pytest.mark.asyncio
    async def test_list_stale(self):
        conn = AsyncMock()
        conn.fetch = AsyncMock(return_value=[{"catalog_id": 603}, {"catalog_id": 27205}])

        assert await MovieRepository(make_pool(conn)).list_stale(24) == [603, 27205]
        assert conn.fetch.await_args.args[1] == 24


class TestSmallRepositories:
    @pytest.mark.asyncio
    async def test_high_water_mark_roundtrip_queries(self):
        mark = datetime(2024, 3, 2, tzinfo=timezone.utc)
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value={"high_water_mark": mark})
        repo = SyncStateRepository(make_pool(conn))

        assert await repo.get_high_water_mark(1, "trakt", "history") == mark
        await repo.advance_high_water_mark(1, "trakt", "history", mark)
        assert "GREATEST" in conn.execute.await_args.args[0]

    @pytest.mark.asyncio
    async def test_trakt_credentials_require_username(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value={"trakt_username": None, "trakt_access_token": None})

        assert await UserRepository(make_pool(conn)).get_trakt_credentials(1) is None

    @pytest.mark.asyncio
    async def test_find_by_webhook_id(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value={"id": 9})

        assert await UserRepository(make_pool(conn)).find_by_plex_webhook_id("abc") == 9

    @pytest.mark.asyncio
    async def test_playback_state(self):
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value={"state": "playing"})
        repo = PlaybackSessionRepository(make_pool(conn))

        assert await repo.get_state(1, "4242") == "playing"
