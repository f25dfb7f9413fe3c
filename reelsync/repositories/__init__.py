"""Database repositories for ReelSync."""

from reelsync.repositories import history, jobs, movies, playback, sync_state, users

__all__ = ["history", "jobs", "movies", "playback", "sync_state", "users"]
