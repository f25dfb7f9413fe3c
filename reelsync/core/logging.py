"""Structured logging and error reporting setup shared by the API and the worker."""

import logging
import sys
from typing import Optional

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration

from reelsync import __version__


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog with JSON output."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def init_sentry(
    dsn: Optional[str],
    environment: str,
    component: str,
    integrations: Optional[list] = None,
) -> bool:
    """Initialize Sentry when a DSN is configured.

    Only ERROR-level logs become Sentry events. Returns True if initialized.
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=f"reelsync@{__version__}",
        integrations=[
            LoggingIntegration(level=None, event_level="ERROR"),
            *(integrations or []),
        ],
        send_default_pii=False,
        attach_stacktrace=True,
    )
    sentry_sdk.set_tag("service", "reelsync")
    sentry_sdk.set_tag("component", component)

    structlog.get_logger(__name__).info(
        "sentry_initialized", environment=environment, component=component
    )
    return True
