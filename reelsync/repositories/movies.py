"""Repository for the local catalog mirror."""

from typing import Optional

from reelsync.catalog.models import CanonicalMovie


class MovieRepository:
    """Upserts and reads of the `movies` mirror table."""

    def __init__(self, pool):
        self._pool = pool

    async def upsert(self, movie: CanonicalMovie) -> None:
        """Insert or refresh a mirrored catalog movie."""
        query = """
            INSERT INTO movies (catalog_id, title, original_title, release_date, poster_ref, updated_at)
            VALUES ($1, $2, $3, $4, $5, now())
            ON CONFLICT (catalog_id) DO UPDATE SET
                title = EXCLUDED.title,
                original_title = EXCLUDED.original_title,
                release_date = EXCLUDED.release_date,
                poster_ref = EXCLUDED.poster_ref,
                updated_at = now()
        """
        async with self._pool.acquire() as conn:
            await conn.execute(
                query,
                movie.catalog_id,
                movie.title,
                movie.original_title,
                movie.release_date,
                movie.poster_ref,
            )

    async def get(self, catalog_id: int) -> Optional[CanonicalMovie]:
        query = "SELECT * FROM movies WHERE catalog_id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, catalog_id)
        return self._row_to_movie(row) if row else None

    async def list_with_posters(self) -> list[CanonicalMovie]:
        """Movies that have a poster reference, for the image cache job."""
        query = """
            SELECT * FROM movies
            WHERE poster_ref IS NOT NULL
            ORDER BY catalog_id
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        return [self._row_to_movie(row) for row in rows]

    async def list_stale(self, max_age_hours: int) -> list[int]:
        """Catalog ids not refreshed within max_age_hours, oldest first."""
        query = """
            SELECT catalog_id FROM movies
            WHERE updated_at < now() - make_interval(hours => $1)
            ORDER BY updated_at, catalog_id
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, max_age_hours)
        return [row["catalog_id"] for row in rows]

    def _row_to_movie(self, row) -> CanonicalMovie:
        return CanonicalMovie(
            catalog_id=row["catalog_id"],
            title=row["title"],
            release_date=row["release_date"],
            poster_ref=row["poster_ref"],
            original_title=row["original_title"],
        )
