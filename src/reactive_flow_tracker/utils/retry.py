"""
Bounded retry with exponential backoff for upstream HTTP calls.

Only transient failures are retried: transport errors (including timeouts),
HTTP 429/5xx responses and explorer rate-limit replies. Other provider-level
errors embedded in a response body are never retried.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from ..errors import RateLimitError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times, and how patiently, to retry a call."""
    max_retries: int = 3
    base_delay: float = 0.5  # seconds
    backoff_factor: float = 2.0
    max_delay: float = 10.0  # seconds
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Compute the delay before retry number ``attempt`` (0-based)."""
        delay = min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()  # noqa: S311
        return delay


def is_retryable(error: BaseException) -> bool:
    """Return True for errors worth another attempt."""
    match error:
        case httpx.HTTPStatusError(response=response):
            return response.status_code in RETRYABLE_STATUS_CODES
        case httpx.TransportError():
            return True
        case RateLimitError():
            return True
        case _:
            return False


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    policy: RetryPolicy | None = None,
    operation: str = "request",
    **kwargs: Any,
) -> Any:
    """Await ``fn(*args, **kwargs)``, retrying transient failures.

    Raises:
        The last exception once retries are exhausted, or immediately for
        non-retryable errors.
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            if not is_retryable(e) or attempt >= policy.max_retries:
                raise

            delay = policy.delay_for(attempt)
            attempt += 1
            logger.warning(
                f"{operation} failed ({type(e).__name__}: {e}), "
                f"retry {attempt}/{policy.max_retries} in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
