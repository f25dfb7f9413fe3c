"""Incremental sync cursors per (user, provider, resource)."""

from datetime import datetime
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


class SyncStateRepository:
    """High-water marks for providers that support incremental fetches."""

    def __init__(self, pool):
        self._pool = pool

    async def get_high_water_mark(
        self, user_id: int, provider: str, resource: str
    ) -> Optional[datetime]:
        query = """
            SELECT high_water_mark FROM provider_sync_state
            WHERE user_id = $1 AND provider = $2 AND resource = $3
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id, provider, resource)
        return row["high_water_mark"] if row else None

    async def advance_high_water_mark(
        self, user_id: int, provider: str, resource: str, mark: datetime
    ) -> None:
        """Store mark unless a later one is already recorded."""
        query = """
            INSERT INTO provider_sync_state (user_id, provider, resource, high_water_mark, updated_at)
            VALUES ($1, $2, $3, $4, now())
            ON CONFLICT (user_id, provider, resource) DO UPDATE SET
                high_water_mark = GREATEST(provider_sync_state.high_water_mark, EXCLUDED.high_water_mark),
                updated_at = now()
        """
        async with self._pool.acquire() as conn:
            await conn.execute(query, user_id, provider, resource, mark)
        logger.info(
            "sync_cursor_advanced",
            user_id=user_id,
            provider=provider,
            resource=resource,
            high_water_mark=mark.isoformat(),
        )
