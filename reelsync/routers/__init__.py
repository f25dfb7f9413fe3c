"""API routers."""

from reelsync.routers import history, jobs, webhooks

__all__ = ["history", "jobs", "webhooks"]
