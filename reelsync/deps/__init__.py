"""FastAPI dependencies."""

from reelsync.deps.db import require_db_pool
from reelsync.deps.security import get_current_user_id, require_admin_token

__all__ = ["get_current_user_id", "require_admin_token", "require_db_pool"]
