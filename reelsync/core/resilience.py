"""Retry utilities for provider HTTP calls.

Provides bounded retry with exponential backoff for transient failures of the
rate-limited external APIs (catalog, Trakt, image CDN).

Usage:
    from reelsync.core.resilience import RetryConfig, with_http_retry

    response = await with_http_retry(
        lambda: client.get("/search/movie", params=params),
        service="tmdb",
        config=RetryConfig(max_attempts=4),
    )
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

# 429 is the provider quota response; treated as transient.
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class ProviderError(Exception):
    """A provider call failed in a way the job cannot recover from."""

    def __init__(self, message: str, service: str = "provider"):
        super().__init__(message)
        self.service = service


class ProviderUnavailable(ProviderError):
    """Transient provider failures persisted past the retry budget."""


class ProviderRequestRejected(ProviderError):
    """Provider rejected the request (4xx other than 429)."""

    def __init__(self, message: str, service: str, status_code: int):
        super().__init__(message, service)
        self.status_code = status_code


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 4
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.25  # Add up to 25% random jitter

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.provider_max_attempts,
            base_delay_seconds=settings.provider_backoff_base_s,
            max_delay_seconds=settings.provider_backoff_max_s,
        )


def calculate_backoff(
    attempt: int,
    config: RetryConfig,
    retry_after: Optional[float] = None,
) -> float:
    """Calculate delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration
        retry_after: Server-provided Retry-After seconds, honoured up to the cap

    Returns:
        Delay in seconds before next retry
    """
    if retry_after is not None:
        return min(max(retry_after, 0.0), config.max_delay_seconds)

    delay = config.base_delay_seconds * (config.exponential_base**attempt)
    delay = min(delay, config.max_delay_seconds)

    jitter = delay * config.jitter_factor * random.random()
    return delay + jitter


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


async def with_http_retry(
    request: Callable[[], Awaitable[httpx.Response]],
    service: str,
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> httpx.Response:
    """Execute an HTTP request with retry on transient failures.

    The response is returned as-is when its status is not transient, so callers
    decide what a 404 means. Transient statuses and network errors are retried;
    once attempts are exhausted ProviderUnavailable is raised.

    Args:
        request: Zero-argument coroutine factory issuing the request
        service: Provider name for logs and errors
        config: Optional retry configuration
        sleep: Injectable sleep (tests)

    Returns:
        The first non-transient response
    """
    if config is None:
        config = RetryConfig()

    last_error: str = "unknown error"

    for attempt in range(config.max_attempts):
        retry_after: Optional[float] = None
        try:
            response = await request()
        except (httpx.TimeoutException, httpx.TransportError) as e:
            last_error = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
        else:
            if response.status_code not in TRANSIENT_STATUS_CODES:
                return response
            last_error = f"HTTP {response.status_code}"
            retry_after = _retry_after_seconds(response)

        if attempt < config.max_attempts - 1:
            delay = calculate_backoff(attempt, config, retry_after)
            logger.warning(
                "provider_retry_attempt",
                service=service,
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 2),
                error=last_error,
            )
            await sleep(delay)

    logger.error(
        "provider_retries_exhausted",
        service=service,
        attempts=config.max_attempts,
        error=last_error,
    )
    raise ProviderUnavailable(
        f"{service} unavailable after {config.max_attempts} attempts ({last_error})",
        service=service,
    )


def raise_for_rejection(response: httpx.Response, service: str) -> None:
    """Raise ProviderRequestRejected for a non-success, non-transient response."""
    if response.is_success:
        return
    raise ProviderRequestRejected(
        f"{service} rejected request with HTTP {response.status_code}",
        service=service,
        status_code=response.status_code,
    )
