"""Webhook playback state per (user, media item)."""

from typing import Optional


class PlaybackSessionRepository:
    """Rows exist only while an item is playing; absence means unknown."""

    def __init__(self, pool):
        self._pool = pool

    async def get_state(self, user_id: int, media_key: str) -> Optional[str]:
        query = "SELECT state FROM playback_sessions WHERE user_id = $1 AND media_key = $2"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id, media_key)
        return row["state"] if row else None

    async def set_state(self, user_id: int, media_key: str, state: str) -> None:
        query = """
            INSERT INTO playback_sessions (user_id, media_key, state, updated_at)
            VALUES ($1, $2, $3, now())
            ON CONFLICT (user_id, media_key) DO UPDATE SET
                state = EXCLUDED.state,
                updated_at = now()
        """
        async with self._pool.acquire() as conn:
            await conn.execute(query, user_id, media_key, state)

    async def clear(self, user_id: int, media_key: str) -> None:
        query = "DELETE FROM playback_sessions WHERE user_id = $1 AND media_key = $2"
        async with self._pool.acquire() as conn:
            await conn.execute(query, user_id, media_key)
