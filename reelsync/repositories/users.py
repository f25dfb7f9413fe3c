"""Read-only access to per-user integration settings."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TraktCredentials:
    username: str
    access_token: Optional[str] = None


class UserRepository:
    """Lookups on the `users` table. Settings are managed elsewhere."""

    def __init__(self, pool):
        self._pool = pool

    async def find_by_plex_webhook_id(self, webhook_id: str) -> Optional[int]:
        """Resolve the opaque webhook identifier to a user id."""
        query = "SELECT id FROM users WHERE plex_webhook_id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, webhook_id)
        return row["id"] if row else None

    async def get_trakt_credentials(self, user_id: int) -> Optional[TraktCredentials]:
        """Return None when the user has no Trakt username configured."""
        query = "SELECT trakt_username, trakt_access_token FROM users WHERE id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id)
        if row is None or not row["trakt_username"]:
            return None
        return TraktCredentials(
            username=row["trakt_username"],
            access_token=row["trakt_access_token"],
        )
