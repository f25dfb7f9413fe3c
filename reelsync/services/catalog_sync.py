"""Refresh the local catalog mirror from the catalog provider."""

from typing import Optional

import structlog

from reelsync.catalog.models import CatalogLookup

logger = structlog.get_logger(__name__)


class CatalogMovieSync:
    """Re-fetches stale mirror rows by catalog id."""

    def __init__(self, catalog: CatalogLookup, movie_repo):
        self._catalog = catalog
        self._movies = movie_repo

    async def run(
        self,
        max_age_hours: int,
        catalog_ids: Optional[list[int]] = None,
    ) -> dict[str, int]:
        """Refresh catalog_ids, or every movie older than max_age_hours.

        Ids that no longer exist upstream are counted as missing and kept.
        """
        if catalog_ids is None:
            catalog_ids = await self._movies.list_stale(max_age_hours)

        refreshed = 0
        missing = 0
        for catalog_id in catalog_ids:
            movie = await self._catalog.find_by_id(catalog_id)
            if movie is None:
                missing += 1
                continue
            await self._movies.upsert(movie)
            refreshed += 1

        logger.info(
            "catalog_sync_finished",
            candidates=len(catalog_ids),
            refreshed=refreshed,
            missing=missing,
        )
        return {"candidates": len(catalog_ids), "refreshed": refreshed, "missing": missing}
