"""Plex webhook endpoint.

Plex posts multipart form data with the event JSON in the ``payload``
field. Anything that is not usable is acknowledged with 200 so the media
server does not keep retrying.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Form, HTTPException, status

from reelsync.config import get_settings
from reelsync.core.resilience import ProviderError
from reelsync.deps.db import require_db_pool
from reelsync.providers.plex import parse_plex_payload
from reelsync.repositories.history import HistoryRepository
from reelsync.repositories.jobs import JobRepository
from reelsync.repositories.movies import MovieRepository
from reelsync.repositories.playback import PlaybackSessionRepository
from reelsync.repositories.users import UserRepository
from reelsync.services.reconciler import HistoryReconciler
from reelsync.services.webhook_ingestor import WebhookIngestor

router = APIRouter(tags=["webhooks"])
logger = structlog.get_logger(__name__)

_db_pool = None
_catalog = None


def set_db_pool(pool):
    """Set the database pool for webhook routes."""
    global _db_pool
    _db_pool = pool


def set_catalog(catalog):
    """Set the catalog lookup used for inline matching."""
    global _catalog
    _catalog = catalog


@router.post("/webhooks/plex/{webhook_id}")
async def plex_webhook(webhook_id: str, payload: Optional[str] = Form(None)):
    """Ingest one Plex webhook delivery for the user owning webhook_id."""
    pool = require_db_pool(_db_pool)

    user_id = await UserRepository(pool).find_by_plex_webhook_id(webhook_id)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webhook not found")

    if not payload:
        logger.debug("webhook_ignored", reason="missing_payload", user_id=user_id)
        return {"status": "ignored"}

    event = parse_plex_payload(payload)
    if event is None:
        logger.info("webhook_ignored", reason="unusable_payload", user_id=user_id)
        return {"status": "ignored"}

    if _catalog is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Catalog not available",
        )

    ingestor = WebhookIngestor(
        catalog=_catalog,
        reconciler=HistoryReconciler(HistoryRepository(pool), MovieRepository(pool)),
        playback_repo=PlaybackSessionRepository(pool),
        job_repo=JobRepository(pool),
        settings=get_settings(),
    )
    try:
        outcome = await ingestor.handle(user_id, event)
    except ProviderError as e:
        logger.warning("webhook_catalog_failed", user_id=user_id, error=str(e))
        return {"status": "failed"}

    return {"status": outcome.value}
