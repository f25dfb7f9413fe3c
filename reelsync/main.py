"""ReelSync - FastAPI Application."""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from reelsync import __version__
from reelsync.catalog.tmdb import TmdbCatalogClient
from reelsync.config import get_settings
from reelsync.core.logging import configure_logging, init_sentry
from reelsync.core.resilience import RetryConfig
from reelsync.routers import history, jobs, webhooks

settings = get_settings()
configure_logging(settings.log_level)
logger = structlog.get_logger(__name__)

init_sentry(
    settings.sentry_dsn,
    settings.sentry_environment,
    component="api",
    integrations=[StarletteIntegration(), FastApiIntegration()],
)

# Global clients
_db_pool = None
_catalog = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global _db_pool, _catalog

    settings = get_settings()
    logger.info(
        "service_starting",
        version=__version__,
        host=settings.service_host,
        port=settings.service_port,
    )

    _catalog = TmdbCatalogClient(
        api_key=settings.tmdb_api_key or "",
        base_url=settings.tmdb_base_url,
        timeout=settings.provider_timeout_s,
        retry_config=RetryConfig.from_settings(settings),
    )
    if not settings.tmdb_api_key:
        logger.warning("tmdb_api_key_missing")
    history.set_catalog(_catalog)
    webhooks.set_catalog(_catalog)

    try:
        _db_pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            timeout=10,
            command_timeout=30,
        )
        logger.info("db_pool_initialized", max_size=settings.db_pool_max_size)
    except (OSError, asyncpg.PostgresError) as e:
        logger.error("db_pool_init_failed", error=str(e))
        _db_pool = None

    jobs.set_db_pool(_db_pool)
    history.set_db_pool(_db_pool)
    webhooks.set_db_pool(_db_pool)

    yield

    logger.info("service_stopping")
    if _db_pool:
        await _db_pool.close()
        logger.info("db_pool_closed")
    await _catalog.close()


app = FastAPI(
    title="ReelSync",
    description="Movie watch history synchronization",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    """Bind a request id to the log context and time the request."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    start_time = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.exception("request_failed", error=str(e))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
            headers={"X-Request-ID": request_id},
        )

    duration_ms = (time.perf_counter() - start_time) * 1000
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"
    logger.info("request_completed", status_code=response.status_code, duration_ms=round(duration_ms, 2))
    return response


@app.get("/health")
async def health():
    """Liveness plus database reachability."""
    db_ok = False
    if _db_pool is not None:
        try:
            async with _db_pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            db_ok = True
        except (OSError, asyncpg.PostgresError) as e:
            logger.warning("health_db_check_failed", error=str(e))
    return {
        "status": "ok" if db_ok else "degraded",
        "version": __version__,
        "database": db_ok,
    }


app.include_router(jobs.router)
app.include_router(history.router)
app.include_router(webhooks.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reelsync.main:app",
        host=settings.service_host,
        port=settings.service_port,
    )
