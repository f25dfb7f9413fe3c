"""Security dependencies for FastAPI routes.

Provides:
- Admin token authentication (constant-time compare)
- Current user resolution from the authenticating gateway header
"""

import hmac

import structlog
from fastapi import HTTPException, Request, status

from reelsync.config import get_settings

logger = structlog.get_logger(__name__)

USER_ID_HEADER = "X-User-Id"
ADMIN_TOKEN_HEADER = "X-Admin-Token"


def require_admin_token(request: Request) -> bool:
    """
    Require valid admin token for job administration routes.

    - Uses hmac.compare_digest() for constant-time comparison
    - Returns 401 for missing token, 403 for invalid or unconfigured token

    Usage:
        @router.post("/jobs/purge-all")
        async def purge_all(_: bool = Depends(require_admin_token)):
            ...
    """
    admin_token = get_settings().admin_token

    if not admin_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_TOKEN not configured. Contact system administrator.",
        )

    provided_token = request.headers.get(ADMIN_TOKEN_HEADER)
    if not provided_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Admin token required. Provide {ADMIN_TOKEN_HEADER} header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not hmac.compare_digest(provided_token.encode(), admin_token.encode()):
        logger.warning(
            "admin_token_invalid",
            path=request.url.path,
            client=request.client.host if request.client else "unknown",
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token",
        )

    return True


def get_current_user_id(request: Request) -> int:
    """
    Authenticated user id, as set by the fronting gateway.

    Sessions and login live outside this service; requests without the
    header are rejected.
    """
    raw = request.headers.get(USER_ID_HEADER)
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    try:
        user_id = int(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )
    if user_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )
    return user_id
