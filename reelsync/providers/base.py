"""Provider contract shared by every activity source."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import AsyncIterator, Optional, Protocol


class ActivitySource(str, Enum):
    """Where a watch history entry came from."""

    STREAMING_EXPORT = "streaming_export"
    TRAKT = "trakt"
    PLEX = "plex"
    MANUAL = "manual"


class InvalidImportFile(Exception):
    """An uploaded import file cannot be parsed.

    The message is shown to the user as-is.
    """


class MissingCredentials(Exception):
    """The user has not connected the provider the job needs."""


@dataclass(frozen=True)
class RawActivityRecord:
    """One provider activity row, as parsed, before matching."""

    external_title: str
    watched_at: Optional[date] = None
    catalog_id: Optional[int] = None  # native catalog (TMDB) id, when the provider has one
    release_year: Optional[int] = None
    provider_rating: Optional[int] = None  # normalized to 1..10
    watched_at_precise: Optional[datetime] = None


class ActivityProvider(Protocol):
    """Anything that yields raw activity records."""

    def fetch_activity(
        self, cursor: Optional[datetime] = None
    ) -> AsyncIterator[RawActivityRecord]:
        """Yield records; cursor is a high-water mark for incremental providers."""
        ...


def record_to_payload(record: RawActivityRecord) -> dict:
    """JSON-safe form of a record, for job payloads."""
    return {
        "external_title": record.external_title,
        "watched_at": record.watched_at.isoformat() if record.watched_at else None,
        "catalog_id": record.catalog_id,
        "release_year": record.release_year,
        "provider_rating": record.provider_rating,
        "watched_at_precise": (
            record.watched_at_precise.isoformat() if record.watched_at_precise else None
        ),
    }


def record_from_payload(data: dict) -> RawActivityRecord:
    watched_at = data.get("watched_at")
    precise = data.get("watched_at_precise")
    return RawActivityRecord(
        external_title=data.get("external_title") or "",
        watched_at=date.fromisoformat(watched_at) if watched_at else None,
        catalog_id=data.get("catalog_id"),
        release_year=data.get("release_year"),
        provider_rating=data.get("provider_rating"),
        watched_at_precise=datetime.fromisoformat(precise) if precise else None,
    )
