"""Streaming-service export import handlers."""

from pathlib import Path
from typing import Any

from reelsync.jobs.handlers.common import import_records, settings_from
from reelsync.jobs.models import Job
from reelsync.jobs.registry import default_registry
from reelsync.jobs.types import JobType
from reelsync.providers.base import ActivitySource, InvalidImportFile
from reelsync.providers.streaming_export import StreamingHistoryExport, StreamingRatingsExport
from reelsync.services.reconciler import KIND_HISTORY, KIND_RATING


def _import_file(job: Job) -> Path:
    path = job.payload.get("import_file")
    if not path:
        raise InvalidImportFile("Job has no import file")
    return Path(path)


@default_registry.handler(JobType.STREAMING_HISTORY_IMPORT)
async def handle_streaming_history_import(job: Job, ctx: dict[str, Any]) -> dict[str, Any]:
    """Import a validated history export.

    Job Payload:
        import_file: str - path of the stored upload

    Returns:
        Reconcile summary (created / duplicate / unmatched counts)
    """
    path = _import_file(job)
    provider = StreamingHistoryExport(path, settings_from(ctx).streaming_export_date_format)
    summary = await import_records(
        job, ctx, provider.fetch_activity(), ActivitySource.STREAMING_EXPORT.value, KIND_HISTORY
    )
    path.unlink(missing_ok=True)
    return summary.to_dict()


@default_registry.handler(JobType.STREAMING_RATINGS_IMPORT)
async def handle_streaming_ratings_import(job: Job, ctx: dict[str, Any]) -> dict[str, Any]:
    """Import a validated ratings export (last import wins per movie)."""
    path = _import_file(job)
    provider = StreamingRatingsExport(path)
    summary = await import_records(
        job, ctx, provider.fetch_activity(), ActivitySource.STREAMING_EXPORT.value, KIND_RATING
    )
    path.unlink(missing_ok=True)
    return summary.to_dict()
