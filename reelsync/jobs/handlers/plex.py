"""Deferred reconciliation of Plex webhook events."""

from typing import Any, AsyncIterator

from reelsync.jobs.handlers.common import import_records
from reelsync.jobs.models import Job
from reelsync.jobs.registry import default_registry
from reelsync.jobs.types import JobType
from reelsync.providers.base import ActivitySource, RawActivityRecord, record_from_payload
from reelsync.services.reconciler import KIND_HISTORY, KIND_RATING, ReconcileSummary
from reelsync.services.webhook_ingestor import followup_items


async def _records(items: list[dict], kind: str) -> AsyncIterator[RawActivityRecord]:
    for item in items:
        if item.get("kind", KIND_HISTORY) == kind:
            yield record_from_payload(item["record"])


@default_registry.handler(JobType.PLEX_PLAYBACK_FOLLOWUP)
async def handle_plex_playback_followup(job: Job, ctx: dict[str, Any]) -> dict[str, Any]:
    """Match and record webhook events that were deferred from the request path.

    Job Payload:
        events: list of {"kind": "history" | "rating", "record": {...}}
    """
    items = followup_items(job.payload)
    source = ActivitySource.PLEX.value

    history = await import_records(job, ctx, _records(items, KIND_HISTORY), source, KIND_HISTORY)
    ratings = await import_records(job, ctx, _records(items, KIND_RATING), source, KIND_RATING)

    combined = ReconcileSummary(
        created=history.created + ratings.created,
        duplicate=history.duplicate + ratings.duplicate,
        unmatched=history.unmatched + ratings.unmatched,
        confidence=history.confidence + ratings.confidence,
    )
    return combined.to_dict()
