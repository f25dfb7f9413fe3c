"""Shared runtime resources handed to routers at startup."""

from typing import Any

from fastapi import HTTPException, status


def require_db_pool(pool: Any, service_name: str = "Database") -> Any:
    """Return the pool, or raise 503 when it was not initialized.

    Raises:
        HTTPException: 503 if pool is None
    """
    if pool is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{service_name} not available",
        )
    return pool
