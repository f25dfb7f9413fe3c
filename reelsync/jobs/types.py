"""Job system type definitions."""

from enum import Enum


class JobType(str, Enum):
    """Job types handled by the worker."""

    STREAMING_HISTORY_IMPORT = "streaming_history_import"
    STREAMING_RATINGS_IMPORT = "streaming_ratings_import"
    CATALOG_IMAGE_CACHE = "catalog_image_cache"
    TRAKT_HISTORY_IMPORT = "trakt_history_import"
    TRAKT_RATINGS_IMPORT = "trakt_ratings_import"
    CATALOG_MOVIE_SYNC = "catalog_movie_sync"
    PLEX_PLAYBACK_FOLLOWUP = "plex_playback_followup"


class JobStatus(str, Enum):
    """Job lifecycle statuses."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED_SUCCESSFUL = "completed_successful"
    COMPLETED_FAILED = "completed_failed"

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (job won't change)."""
        return self in (JobStatus.COMPLETED_SUCCESSFUL, JobStatus.COMPLETED_FAILED)
