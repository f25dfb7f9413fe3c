"""Plex media-server webhook payload parsing."""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

import structlog

from reelsync.providers.base import RawActivityRecord

logger = structlog.get_logger(__name__)

START_EVENT = "media.play"
PLAY_EVENTS = frozenset({START_EVENT, "media.resume"})
PAUSE_EVENT = "media.pause"
STOP_EVENT = "media.stop"
SCROBBLE_EVENT = "media.scrobble"
RATE_EVENT = "media.rate"

KNOWN_EVENTS = PLAY_EVENTS | {PAUSE_EVENT, STOP_EVENT, SCROBBLE_EVENT, RATE_EVENT}

_TMDB_GUID = re.compile(r"(?:com\.plexapp\.agents\.themoviedb|tmdb)://(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class PlaybackEvent:
    """One webhook delivery, reduced to what reconciliation needs."""

    event: str
    media_key: str
    media_type: str
    title: str
    year: Optional[int] = None
    catalog_id: Optional[int] = None
    account: Optional[str] = None
    view_offset_ms: Optional[int] = None
    duration_ms: Optional[int] = None
    rating: Optional[int] = None
    occurred_at: Optional[datetime] = None

    @property
    def is_movie(self) -> bool:
        return self.media_type == "movie"

    @property
    def completion_percent(self) -> Optional[float]:
        if not self.duration_ms or self.view_offset_ms is None:
            return None
        return max(0.0, min(100.0, self.view_offset_ms * 100.0 / self.duration_ms))

    def to_record(self, rating: Optional[int] = None) -> RawActivityRecord:
        occurred_at = self.occurred_at or datetime.now(timezone.utc)
        return RawActivityRecord(
            external_title=self.title,
            watched_at=occurred_at.date(),
            catalog_id=self.catalog_id,
            release_year=self.year,
            provider_rating=rating,
            watched_at_precise=occurred_at,
        )


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def tmdb_id_from_metadata(metadata: dict[str, Any]) -> Optional[int]:
    """Find a TMDB id among the item's Guid entries (new and legacy agents)."""
    candidates: list[str] = []
    guids = metadata.get("Guid") or []
    if isinstance(guids, dict):
        guids = [guids]
    for entry in guids:
        if isinstance(entry, dict) and entry.get("id"):
            candidates.append(str(entry["id"]))
    if metadata.get("guid"):
        candidates.append(str(metadata["guid"]))

    for candidate in candidates:
        match = _TMDB_GUID.search(candidate)
        if match:
            return int(match.group(1))
    return None


def plex_rating_to_scale(value: Any) -> Optional[int]:
    """Plex sends user ratings on 0..10; 0 or missing means the rating was removed."""
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    if rating <= 0:
        return None
    return max(1, min(10, int(round(rating))))


def parse_plex_payload(
    raw: Union[str, bytes, dict[str, Any]],
    received_at: Optional[datetime] = None,
) -> Optional[PlaybackEvent]:
    """Parse the JSON ``payload`` form field of a Plex webhook.

    Returns None for payloads that cannot be used: invalid JSON, unknown
    events, or deliveries without media metadata.
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (ValueError, TypeError):
            logger.warning("plex_payload_invalid_json")
            return None
    else:
        data = raw

    if not isinstance(data, dict):
        return None

    event = data.get("event")
    if event not in KNOWN_EVENTS:
        logger.debug("plex_event_ignored", plex_event=event)
        return None

    metadata = data.get("Metadata")
    if not isinstance(metadata, dict):
        return None

    media_key = metadata.get("ratingKey") or metadata.get("key")
    if not media_key:
        return None

    account = data.get("Account") or {}
    last_viewed = _as_int(metadata.get("lastViewedAt"))
    occurred_at = received_at or datetime.now(timezone.utc)
    if event in (SCROBBLE_EVENT, STOP_EVENT) and last_viewed:
        occurred_at = datetime.fromtimestamp(last_viewed, tz=timezone.utc)

    rating = None
    if event == RATE_EVENT:
        rating = plex_rating_to_scale(data.get("rating", metadata.get("userRating")))

    return PlaybackEvent(
        event=event,
        media_key=str(media_key),
        media_type=str(metadata.get("type") or ""),
        title=metadata.get("title") or "",
        year=_as_int(metadata.get("year")),
        catalog_id=tmdb_id_from_metadata(metadata),
        account=account.get("title") if isinstance(account, dict) else None,
        view_offset_ms=_as_int(data.get("viewOffset", metadata.get("viewOffset"))),
        duration_ms=_as_int(metadata.get("duration")),
        rating=rating,
        occurred_at=occurred_at,
    )
