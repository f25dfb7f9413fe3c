"""Shared pipeline for import handlers: match, reconcile, tally."""

from typing import Any, AsyncIterator

import structlog

from reelsync.config import get_settings
from reelsync.jobs.models import Job
from reelsync.providers.base import RawActivityRecord
from reelsync.repositories.history import HistoryRepository
from reelsync.repositories.movies import MovieRepository
from reelsync.services.matching import Matcher
from reelsync.services.reconciler import (
    KIND_RATING,
    HistoryReconciler,
    ReconcileSummary,
)

logger = structlog.get_logger(__name__)


def settings_from(ctx: dict[str, Any]):
    return ctx.get("settings") or get_settings()


def history_repo_from(ctx: dict[str, Any]):
    return ctx.get("history_repo") or HistoryRepository(ctx["pool"])


def movie_repo_from(ctx: dict[str, Any]):
    return ctx.get("movie_repo") or MovieRepository(ctx["pool"])


async def import_records(
    job: Job,
    ctx: dict[str, Any],
    records: AsyncIterator[RawActivityRecord],
    source: str,
    kind: str,
) -> ReconcileSummary:
    """Run every record through a fresh Matcher and the Reconciler.

    The Matcher (and its cache) lives only for this call.
    """
    matcher = Matcher(ctx["catalog"])
    reconciler = HistoryReconciler(history_repo_from(ctx), movie_repo_from(ctx))
    summary = ReconcileSummary()

    log = logger.bind(job_id=str(job.id), job_type=job.type_name, user_id=job.user_id)
    log.info("import_started", source=source, kind=kind)

    async for record in records:
        match = await matcher.resolve(record)
        if kind == KIND_RATING:
            outcome = await reconciler.reconcile_rating(job.user_id, record, match, source)
        else:
            outcome = await reconciler.reconcile(job.user_id, record, match, source)
        summary.add(outcome, match)

    log.info(
        "import_finished",
        created=summary.created,
        duplicate=summary.duplicate,
        unmatched=summary.unmatched,
        catalog_lookups=matcher.lookups,
    )
    return summary
