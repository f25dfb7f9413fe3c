"""Manual matching of "Unknown" history placeholders."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from reelsync.core.resilience import ProviderError
from reelsync.deps.db import require_db_pool
from reelsync.deps.security import get_current_user_id
from reelsync.repositories.history import HistoryRepository
from reelsync.repositories.movies import MovieRepository
from reelsync.services.reconciler import (
    CatalogMovieNotFound,
    HistoryReconciler,
    UnmatchedRecordNotFound,
)

router = APIRouter(tags=["history"])
logger = structlog.get_logger(__name__)

_db_pool = None
_catalog = None


def set_db_pool(pool):
    """Set the database pool for history routes."""
    global _db_pool
    _db_pool = pool


def set_catalog(catalog):
    """Set the catalog lookup used for search and assignment."""
    global _catalog
    _catalog = catalog


def _require_catalog():
    if _catalog is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Catalog not available",
        )
    return _catalog


class AssignRequest(BaseModel):
    catalog_id: int = Field(..., gt=0, description="Catalog (TMDB) movie id")


@router.get("/history/unmatched")
async def list_unmatched(user_id: int = Depends(get_current_user_id)):
    """Records that still need manual matching."""
    repo = HistoryRepository(require_db_pool(_db_pool))
    records = await repo.list_unmatched(user_id)
    return {"count": len(records), "items": [r.to_dict() for r in records]}


@router.get("/catalog/search")
async def search_catalog(
    q: str = Query(..., min_length=1, description="Title to search"),
    year: Optional[int] = Query(None, ge=1870, le=2200),
    _user_id: int = Depends(get_current_user_id),
):
    """Search the catalog for manual assignment."""
    catalog = _require_catalog()
    try:
        movies = await catalog.search_by_title(q, year=year)
    except ProviderError as e:
        logger.warning("catalog_search_failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return [
        {
            "catalog_id": m.catalog_id,
            "title": m.title,
            "original_title": m.original_title,
            "release_date": m.release_date.isoformat() if m.release_date else None,
            "poster_ref": m.poster_ref,
        }
        for m in movies
    ]


@router.post("/history/unmatched/{unmatched_id}/assign")
async def assign_unmatched(
    unmatched_id: int,
    request: AssignRequest,
    user_id: int = Depends(get_current_user_id),
):
    """Resolve a placeholder to a catalog movie."""
    pool = require_db_pool(_db_pool)
    reconciler = HistoryReconciler(
        HistoryRepository(pool), MovieRepository(pool), catalog=_require_catalog()
    )
    try:
        outcome = await reconciler.resolve_unmatched(user_id, unmatched_id, request.catalog_id)
    except UnmatchedRecordNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except CatalogMovieNotFound as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return {"outcome": outcome.value, "catalog_id": request.catalog_id}
