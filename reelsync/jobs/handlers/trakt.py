"""Trakt history and ratings import handlers."""

from datetime import datetime
from typing import Any, AsyncIterator, Optional

from reelsync.core.resilience import ProviderError, RetryConfig
from reelsync.jobs.handlers.common import import_records, settings_from
from reelsync.jobs.models import Job
from reelsync.jobs.registry import default_registry
from reelsync.jobs.types import JobType
from reelsync.providers.base import ActivitySource, MissingCredentials, RawActivityRecord
from reelsync.providers.trakt import TraktClient
from reelsync.repositories.sync_state import SyncStateRepository
from reelsync.repositories.users import UserRepository
from reelsync.services.reconciler import KIND_HISTORY, KIND_RATING

HISTORY_RESOURCE = "history"


async def _client_for(job: Job, ctx: dict[str, Any]) -> TraktClient:
    settings = settings_from(ctx)
    if not settings.trakt_client_id:
        raise ProviderError("Trakt client id is not configured", service="trakt")

    users = ctx.get("user_repo") or UserRepository(ctx["pool"])
    credentials = await users.get_trakt_credentials(job.user_id)
    if credentials is None:
        raise MissingCredentials("Trakt account is not connected")

    return TraktClient(
        client_id=settings.trakt_client_id,
        username=credentials.username,
        access_token=credentials.access_token,
        base_url=settings.trakt_base_url,
        page_size=settings.trakt_page_size,
        timeout=settings.provider_timeout_s,
        retry_config=RetryConfig.from_settings(settings),
        http_client=ctx.get("trakt_http_client"),
    )


class _HighWaterMark:
    """Tracks the newest timestamp seen while records stream past."""

    def __init__(self):
        self.value: Optional[datetime] = None

    async def track(
        self, records: AsyncIterator[RawActivityRecord]
    ) -> AsyncIterator[RawActivityRecord]:
        async for record in records:
            stamp = record.watched_at_precise
            if stamp is not None and (self.value is None or stamp > self.value):
                self.value = stamp
            yield record


@default_registry.handler(JobType.TRAKT_HISTORY_IMPORT)
async def handle_trakt_history_import(job: Job, ctx: dict[str, Any]) -> dict[str, Any]:
    """Incremental Trakt history import.

    Only items newer than the stored high-water mark are fetched. The mark
    advances after the whole run succeeded, so a failed run is re-read in
    full next time (reconciliation is idempotent).
    """
    sync_state = ctx.get("sync_state_repo") or SyncStateRepository(ctx["pool"])
    cursor = None
    if not job.payload.get("full"):
        cursor = await sync_state.get_high_water_mark(job.user_id, "trakt", HISTORY_RESOURCE)

    client = await _client_for(job, ctx)
    mark = _HighWaterMark()
    try:
        summary = await import_records(
            job,
            ctx,
            mark.track(client.fetch_activity(cursor)),
            ActivitySource.TRAKT.value,
            KIND_HISTORY,
        )
    finally:
        await client.close()

    if mark.value is not None:
        await sync_state.advance_high_water_mark(job.user_id, "trakt", HISTORY_RESOURCE, mark.value)

    result = summary.to_dict()
    result["cursor"] = cursor.isoformat() if cursor else None
    return result


@default_registry.handler(JobType.TRAKT_RATINGS_IMPORT)
async def handle_trakt_ratings_import(job: Job, ctx: dict[str, Any]) -> dict[str, Any]:
    """Full Trakt ratings import (ratings have no usable cursor)."""
    client = await _client_for(job, ctx)
    try:
        summary = await import_records(
            job, ctx, client.fetch_ratings(), ActivitySource.TRAKT.value, KIND_RATING
        )
    finally:
        await client.close()
    return summary.to_dict()
