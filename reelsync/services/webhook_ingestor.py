"""Synchronous ingestion of media-server playback webhooks.

Per (user, media item) the state moves unknown -> playing on play/resume,
to scrobbled on scrobble and back to unknown on stop. A stop at or above the
completion threshold, or a scrobble, is recorded through the same
Matcher/Reconciler pipeline as queued imports, so repeated deliveries collapse
on the entry uniqueness tuple. A stop that follows a scrobble is not recorded
again, since its receive time may fall on the next day.

When matching is deferred (by configuration, or because the catalog lookup
ran past its budget) the record is handed to a plex_playback_followup job.
"""

import asyncio
from enum import Enum
from typing import Optional

import structlog

from reelsync.catalog.models import CatalogLookup
from reelsync.core.resilience import ProviderError
from reelsync.jobs.types import JobType
from reelsync.providers.base import ActivitySource, RawActivityRecord, record_to_payload
from reelsync.providers.plex import (
    PAUSE_EVENT,
    PLAY_EVENTS,
    RATE_EVENT,
    SCROBBLE_EVENT,
    START_EVENT,
    STOP_EVENT,
    PlaybackEvent,
)
from reelsync.repositories.jobs import DuplicatePendingJob
from reelsync.services.matching import Matcher
from reelsync.services.reconciler import (
    KIND_HISTORY,
    KIND_RATING,
    HistoryReconciler,
    ReconcileOutcome,
)

logger = structlog.get_logger(__name__)

STATE_PLAYING = "playing"
STATE_SCROBBLED = "scrobbled"

FOLLOWUP_KEY = "events"


class WebhookOutcome(str, Enum):
    IGNORED = "ignored"
    PLAYING = "playing"
    DISCARDED = "discarded"
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"
    DEFERRED = "deferred"


_FROM_RECONCILE = {
    ReconcileOutcome.CREATED: WebhookOutcome.RECORDED,
    ReconcileOutcome.DUPLICATE: WebhookOutcome.DUPLICATE,
    ReconcileOutcome.UNMATCHED: WebhookOutcome.UNMATCHED,
}


class WebhookIngestor:
    """Applies one parsed playback event for one user."""

    def __init__(
        self,
        catalog: CatalogLookup,
        reconciler: HistoryReconciler,
        playback_repo,
        job_repo,
        settings,
    ):
        self._catalog = catalog
        self._reconciler = reconciler
        self._playback = playback_repo
        self._jobs = job_repo
        self._settings = settings

    async def handle(self, user_id: int, event: PlaybackEvent) -> WebhookOutcome:
        log = logger.bind(
            user_id=user_id, plex_event=event.event, media_key=event.media_key
        )

        if not event.is_movie:
            log.debug("webhook_ignored", reason="not_a_movie", media_type=event.media_type)
            return WebhookOutcome.IGNORED

        if event.event in PLAY_EVENTS or event.event == PAUSE_EVENT:
            if event.event != START_EVENT:
                # pause and resume keep a scrobble; only a new play resets it
                current = await self._playback.get_state(user_id, event.media_key)
                if current == STATE_SCROBBLED:
                    return WebhookOutcome.PLAYING
            await self._playback.set_state(user_id, event.media_key, STATE_PLAYING)
            return WebhookOutcome.PLAYING

        if event.event == STOP_EVENT:
            previous = await self._playback.get_state(user_id, event.media_key)
            await self._playback.clear(user_id, event.media_key)
            if previous == STATE_SCROBBLED:
                log.info("webhook_stop_after_scrobble")
                return WebhookOutcome.DUPLICATE
            completion = event.completion_percent
            if completion is None or completion < self._settings.plex_completion_threshold_percent:
                log.info(
                    "webhook_playback_discarded",
                    completion=round(completion, 1) if completion is not None else None,
                    previous_state=previous,
                )
                return WebhookOutcome.DISCARDED
            return await self._record(user_id, event, KIND_HISTORY, log)

        if event.event == SCROBBLE_EVENT:
            await self._playback.set_state(user_id, event.media_key, STATE_SCROBBLED)
            return await self._record(user_id, event, KIND_HISTORY, log)

        if event.event == RATE_EVENT:
            if not self._settings.plex_rating_enabled or event.rating is None:
                log.debug("webhook_ignored", reason="rating_disabled_or_removed")
                return WebhookOutcome.IGNORED
            return await self._record(user_id, event, KIND_RATING, log)

        log.debug("webhook_ignored", reason="unhandled_event")
        return WebhookOutcome.IGNORED

    async def _record(self, user_id: int, event: PlaybackEvent, kind: str, log) -> WebhookOutcome:
        if kind == KIND_HISTORY and not self._settings.plex_scrobble_enabled:
            log.debug("webhook_ignored", reason="scrobble_disabled")
            return WebhookOutcome.IGNORED

        record = event.to_record(rating=event.rating if kind == KIND_RATING else None)

        if self._settings.plex_defer_matching:
            deferred = await self._defer(user_id, record, kind, log)
            if deferred is not None:
                return deferred

        matcher = Matcher(self._catalog)
        try:
            match = await asyncio.wait_for(
                matcher.resolve(record), timeout=self._settings.webhook_lookup_timeout_s
            )
        except (asyncio.TimeoutError, ProviderError) as e:
            log.warning("webhook_lookup_slow", error=type(e).__name__)
            deferred = await self._defer(user_id, record, kind, log)
            if deferred is not None:
                return deferred
            # follow-up job is already running; match inline without a budget
            match = await matcher.resolve(record)

        source = ActivitySource.PLEX.value
        if kind == KIND_RATING:
            outcome = await self._reconciler.reconcile_rating(user_id, record, match, source)
        else:
            outcome = await self._reconciler.reconcile(user_id, record, match, source)

        log.info(
            "webhook_recorded",
            kind=kind,
            outcome=outcome.value,
            catalog_id=match.catalog_id,
            confidence=match.confidence.value,
        )
        return _FROM_RECONCILE[outcome]

    async def _defer(
        self, user_id: int, record: RawActivityRecord, kind: str, log
    ) -> Optional[WebhookOutcome]:
        """Hand the record to a follow-up job. None when no job can take it."""
        item = {"kind": kind, "record": record_to_payload(record)}
        job_type = JobType.PLEX_PLAYBACK_FOLLOWUP

        try:
            job = await self._jobs.enqueue(user_id, job_type, {FOLLOWUP_KEY: [item]})
        except DuplicatePendingJob:
            # a pending follow-up absorbs the event; a running one cannot
            job = await self._jobs.append_to_pending(user_id, job_type, FOLLOWUP_KEY, [item])
            if job is None:
                return None

        log.info("webhook_followup_enqueued", job_id=str(job.id), kind=kind)
        return WebhookOutcome.DEFERRED


def followup_items(payload: dict) -> list[dict]:
    """Events carried by a plex_playback_followup job payload."""
    items: Optional[list] = payload.get(FOLLOWUP_KEY)
    return list(items or [])
