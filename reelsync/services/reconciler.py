"""Write matched activity into the canonical watch history.

Every write is keyed by the entry uniqueness tuple
(user_id, movie_id, watched_at, source), so replaying an import, or a
duplicate webhook delivery, never creates a second row. Import jobs restart
from the top of the file and rely on this instead of a resume offset.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import structlog

from reelsync.catalog.models import CatalogLookup
from reelsync.providers.base import RawActivityRecord
from reelsync.services.matching import MatchConfidence, MatchResult, normalize_title

logger = structlog.get_logger(__name__)

KIND_HISTORY = "history"
KIND_RATING = "rating"


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"


class ReconcileError(Exception):
    """Manual resolution could not be applied."""


class UnmatchedRecordNotFound(ReconcileError):
    pass


class CatalogMovieNotFound(ReconcileError):
    pass


@dataclass
class ReconcileSummary:
    """Outcome tally stored as the job result."""

    created: int = 0
    duplicate: int = 0
    unmatched: int = 0
    confidence: Counter = field(default_factory=Counter)

    def add(self, outcome: ReconcileOutcome, match: Optional[MatchResult] = None) -> None:
        if outcome == ReconcileOutcome.CREATED:
            self.created += 1
        elif outcome == ReconcileOutcome.DUPLICATE:
            self.duplicate += 1
        else:
            self.unmatched += 1
        if match is not None and match.confidence != MatchConfidence.UNMATCHED:
            self.confidence[match.confidence.value] += 1

    @property
    def total(self) -> int:
        return self.created + self.duplicate + self.unmatched

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "created": self.created,
            "duplicate": self.duplicate,
            "unmatched": self.unmatched,
            "match_confidence": dict(self.confidence),
        }


class HistoryReconciler:
    """Idempotent writer for history entries, ratings and placeholders."""

    def __init__(self, history_repo, movie_repo, catalog: Optional[CatalogLookup] = None):
        self._history = history_repo
        self._movies = movie_repo
        self._catalog = catalog

    async def reconcile(
        self,
        user_id: int,
        record: RawActivityRecord,
        match: MatchResult,
        source: str,
    ) -> ReconcileOutcome:
        """Persist one watch event.

        Raises:
            ValueError: record carries no watch date
        """
        if record.watched_at is None:
            raise ValueError(f"Record {record.external_title!r} has no watch date")

        if not match.matched:
            match = await self._remembered_match(user_id, source, record)

        if not match.matched:
            await self._history.add_unmatched(
                user_id=user_id,
                source=source,
                kind=KIND_HISTORY,
                external_title=record.external_title,
                normalized_title=normalize_title(record.external_title),
                release_year=record.release_year,
                watched_at=record.watched_at,
                provider_rating=record.provider_rating,
            )
            return ReconcileOutcome.UNMATCHED

        if match.movie is not None:
            await self._movies.upsert(match.movie)

        created = await self._history.add_entry(
            user_id=user_id,
            movie_id=match.catalog_id,
            watched_at=record.watched_at,
            source=source,
            provider_rating=record.provider_rating,
        )
        return ReconcileOutcome.CREATED if created else ReconcileOutcome.DUPLICATE

    async def reconcile_rating(
        self,
        user_id: int,
        record: RawActivityRecord,
        match: MatchResult,
        source: str,
    ) -> ReconcileOutcome:
        """Persist one rating; an unchanged rating counts as duplicate.

        Raises:
            ValueError: record carries no rating
        """
        if record.provider_rating is None:
            raise ValueError(f"Record {record.external_title!r} has no rating")

        if not match.matched:
            match = await self._remembered_match(user_id, source, record)

        if not match.matched:
            await self._history.add_unmatched(
                user_id=user_id,
                source=source,
                kind=KIND_RATING,
                external_title=record.external_title,
                normalized_title=normalize_title(record.external_title),
                release_year=record.release_year,
                provider_rating=record.provider_rating,
            )
            return ReconcileOutcome.UNMATCHED

        if match.movie is not None:
            await self._movies.upsert(match.movie)

        changed = await self._history.upsert_rating(
            user_id=user_id,
            movie_id=match.catalog_id,
            rating=record.provider_rating,
            source=source,
        )
        return ReconcileOutcome.CREATED if changed else ReconcileOutcome.DUPLICATE

    async def resolve_unmatched(
        self, user_id: int, unmatched_id: int, catalog_id: int
    ) -> ReconcileOutcome:
        """Assign a catalog movie to an "Unknown" placeholder.

        The placeholder is replaced by a real entry (or rating) carrying the
        original source and date. The assignment is remembered so a later
        import of the same title from the same source lands on that movie
        instead of creating the placeholder again.

        Raises:
            UnmatchedRecordNotFound: no such placeholder for this user
            CatalogMovieNotFound: catalog_id does not exist upstream
        """
        if self._catalog is None:
            raise RuntimeError("resolve_unmatched requires a catalog lookup")

        placeholder = await self._history.get_unmatched(user_id, unmatched_id)
        if placeholder is None:
            raise UnmatchedRecordNotFound(f"Unmatched record {unmatched_id} not found")

        movie = await self._catalog.find_by_id(catalog_id)
        if movie is None:
            raise CatalogMovieNotFound(f"Catalog movie {catalog_id} not found")

        record = RawActivityRecord(
            external_title=placeholder.external_title,
            watched_at=placeholder.watched_at,
            catalog_id=catalog_id,
            release_year=placeholder.release_year,
            provider_rating=placeholder.provider_rating,
        )
        match = MatchResult.of(movie, MatchConfidence.NATIVE_ID)

        if placeholder.kind == KIND_RATING:
            outcome = await self.reconcile_rating(user_id, record, match, placeholder.source)
        else:
            outcome = await self.reconcile(user_id, record, match, placeholder.source)

        await self._history.save_manual_match(
            user_id, placeholder.source, placeholder.normalized_title, catalog_id
        )
        await self._history.delete_unmatched(user_id, unmatched_id)
        logger.info(
            "unmatched_resolved",
            user_id=user_id,
            unmatched_id=unmatched_id,
            catalog_id=catalog_id,
            outcome=outcome.value,
        )
        return outcome

    async def _remembered_match(
        self, user_id: int, source: str, record: RawActivityRecord
    ) -> MatchResult:
        """Movie the user assigned by hand to this title from this source."""
        normalized = normalize_title(record.external_title)
        if not normalized:
            return MatchResult.unmatched()
        catalog_id = await self._history.get_manual_match(user_id, source, normalized)
        if catalog_id is None:
            return MatchResult.unmatched()
        return MatchResult(catalog_id=catalog_id, confidence=MatchConfidence.MANUAL)
