"""Repository for watch history, ratings and unmatched placeholders."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass
class UnmatchedRecord:
    """A provider record that could not be matched (shown as "Unknown")."""

    id: int
    user_id: int
    source: str
    kind: str  # "history" or "rating"
    external_title: str
    normalized_title: str
    release_year: Optional[int] = None
    watched_at: Optional[date] = None
    provider_rating: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "kind": self.kind,
            "title": self.external_title,
            "year": self.release_year,
            "watched_at": self.watched_at.isoformat() if self.watched_at else None,
            "rating": self.provider_rating,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class HistoryRepository:
    """Idempotent writes into the user's watch history."""

    def __init__(self, pool):
        self._pool = pool

    async def add_entry(
        self,
        user_id: int,
        movie_id: int,
        watched_at: date,
        source: str,
        provider_rating: Optional[int] = None,
    ) -> bool:
        """Insert a history entry; returns False when the tuple already exists."""
        query = """
            INSERT INTO watch_history (user_id, movie_id, watched_at, source, provider_rating)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT ON CONSTRAINT watch_history_entry_unique DO NOTHING
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query, user_id, movie_id, watched_at, source, provider_rating
            )
        return row is not None

    async def upsert_rating(
        self, user_id: int, movie_id: int, rating: int, source: str
    ) -> bool:
        """Set the user's rating for a movie (last write wins).

        Returns True when the rating was new or changed.
        """
        query = """
            INSERT INTO user_ratings (user_id, movie_id, rating, source, rated_at)
            VALUES ($1, $2, $3, $4, now())
            ON CONFLICT (user_id, movie_id) DO UPDATE SET
                rating = EXCLUDED.rating,
                source = EXCLUDED.source,
                rated_at = now()
            WHERE user_ratings.rating IS DISTINCT FROM EXCLUDED.rating
            RETURNING movie_id
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id, movie_id, rating, source)
        return row is not None

    async def add_unmatched(
        self,
        user_id: int,
        source: str,
        kind: str,
        external_title: str,
        normalized_title: str,
        release_year: Optional[int] = None,
        watched_at: Optional[date] = None,
        provider_rating: Optional[int] = None,
    ) -> bool:
        """Record an unmatched placeholder; returns False if already recorded."""
        query = """
            INSERT INTO unmatched_records (
                user_id, source, kind, external_title, normalized_title,
                release_year, watched_at, provider_rating
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT DO NOTHING
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                user_id,
                source,
                kind,
                external_title,
                normalized_title,
                release_year,
                watched_at,
                provider_rating,
            )
        return row is not None

    async def list_unmatched(self, user_id: int) -> list[UnmatchedRecord]:
        """All placeholders awaiting manual matching, newest first."""
        query = """
            SELECT * FROM unmatched_records
            WHERE user_id = $1
            ORDER BY created_at DESC, id DESC
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, user_id)
        return [self._row_to_unmatched(row) for row in rows]

    async def get_unmatched(self, user_id: int, unmatched_id: int) -> Optional[UnmatchedRecord]:
        query = "SELECT * FROM unmatched_records WHERE id = $1 AND user_id = $2"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, unmatched_id, user_id)
        return self._row_to_unmatched(row) if row else None

    async def delete_unmatched(self, user_id: int, unmatched_id: int) -> bool:
        query = "DELETE FROM unmatched_records WHERE id = $1 AND user_id = $2 RETURNING id"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, unmatched_id, user_id)
        return row is not None

    async def save_manual_match(
        self, user_id: int, source: str, normalized_title: str, catalog_id: int
    ) -> None:
        """Remember a hand-picked movie for a title from one source."""
        query = """
            INSERT INTO manual_matches (user_id, source, normalized_title, catalog_id)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id, source, normalized_title) DO UPDATE SET
                catalog_id = EXCLUDED.catalog_id,
                updated_at = now()
        """
        async with self._pool.acquire() as conn:
            await conn.execute(query, user_id, source, normalized_title, catalog_id)

    async def get_manual_match(
        self, user_id: int, source: str, normalized_title: str
    ) -> Optional[int]:
        query = """
            SELECT catalog_id FROM manual_matches
            WHERE user_id = $1 AND source = $2 AND normalized_title = $3
        """
        async with self._pool.acquire() as conn:
            return await conn.fetchval(query, user_id, source, normalized_title)

    def _row_to_unmatched(self, row) -> UnmatchedRecord:
        return UnmatchedRecord(
            id=row["id"],
            user_id=row["user_id"],
            source=row["source"],
            kind=row["kind"],
            external_title=row["external_title"],
            normalized_title=row["normalized_title"],
            release_year=row["release_year"],
            watched_at=row["watched_at"],
            provider_rating=row["provider_rating"],
            created_at=row["created_at"],
        )
