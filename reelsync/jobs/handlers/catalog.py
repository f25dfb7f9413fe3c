"""System jobs over the local catalog mirror."""

from typing import Any

from reelsync.core.resilience import RetryConfig
from reelsync.jobs.handlers.common import movie_repo_from, settings_from
from reelsync.jobs.models import Job
from reelsync.jobs.registry import default_registry
from reelsync.jobs.types import JobType
from reelsync.services.catalog_sync import CatalogMovieSync
from reelsync.services.image_cache import PosterImageCache


@default_registry.handler(JobType.CATALOG_MOVIE_SYNC)
async def handle_catalog_movie_sync(job: Job, ctx: dict[str, Any]) -> dict[str, Any]:
    """Refresh stale mirror rows.

    Job Payload:
        catalog_ids: list[int] (optional) - refresh exactly these
        max_age_hours: int (optional) - staleness threshold override
    """
    settings = settings_from(ctx)
    sync = CatalogMovieSync(ctx["catalog"], movie_repo_from(ctx))
    return await sync.run(
        max_age_hours=job.payload.get("max_age_hours", settings.catalog_sync_max_age_hours),
        catalog_ids=job.payload.get("catalog_ids"),
    )


@default_registry.handler(JobType.CATALOG_IMAGE_CACHE)
async def handle_catalog_image_cache(job: Job, ctx: dict[str, Any]) -> dict[str, Any]:
    """Download posters of mirrored movies that are not cached yet."""
    settings = settings_from(ctx)
    movies = await movie_repo_from(ctx).list_with_posters()
    cache = PosterImageCache(
        cache_dir=settings.image_cache_dir,
        image_base_url=settings.tmdb_image_base_url,
        poster_size=settings.tmdb_poster_size,
        timeout=settings.provider_timeout_s,
        retry_config=RetryConfig.from_settings(settings),
        http_client=ctx.get("image_http_client"),
    )
    try:
        return await cache.warm(movies, force=bool(job.payload.get("force")))
    finally:
        await cache.close()
