"""Activity providers: streaming export files, Trakt, Plex webhooks."""

from reelsync.providers.base import (
    ActivityProvider,
    ActivitySource,
    InvalidImportFile,
    MissingCredentials,
    RawActivityRecord,
    record_from_payload,
    record_to_payload,
)
from reelsync.providers.plex import PlaybackEvent, parse_plex_payload
from reelsync.providers.streaming_export import (
    StreamingHistoryExport,
    StreamingRatingsExport,
    validate_history_file,
    validate_ratings_file,
)
from reelsync.providers.trakt import TraktClient

__all__ = [
    "ActivityProvider",
    "ActivitySource",
    "InvalidImportFile",
    "MissingCredentials",
    "RawActivityRecord",
    "record_from_payload",
    "record_to_payload",
    "PlaybackEvent",
    "parse_plex_payload",
    "StreamingHistoryExport",
    "StreamingRatingsExport",
    "validate_history_file",
    "validate_ratings_file",
    "TraktClient",
]
