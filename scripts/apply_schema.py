#!/usr/bin/env python3
"""Apply reelsync/db/schema.sql to the database in DATABASE_URL."""
import asyncio
import os
from pathlib import Path

import asyncpg

SCHEMA = Path(__file__).resolve().parent.parent / "reelsync" / "db" / "schema.sql"


async def main():
    conn = await asyncpg.connect(os.environ["DATABASE_URL"])
    try:
        await conn.execute(SCHEMA.read_text(encoding="utf-8"))
        print(f"Schema applied from {SCHEMA.name}")

        # Verify
        tables = await conn.fetch(
            """
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = 'public'
              AND table_name IN ('jobs', 'movies', 'watch_history', 'unmatched_records',
                                 'user_ratings', 'provider_sync_state', 'playback_sessions', 'users')
            ORDER BY table_name
            """
        )
        print("Tables: " + ", ".join(row["table_name"] for row in tables))
    finally:
        await conn.close()

if __name__ == "__main__":
    asyncio.run(main())
