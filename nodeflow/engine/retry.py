"""
Retry with exponential backoff for fallible async operations.
"""

from typing import Awaitable, Callable, Optional, TypeVar
import asyncio
import logging

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from nodeflow.engine.errors import ExecutionCancelled, classify_error


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Retry limits. Delays are expressed in milliseconds."""

    max_retries: int = Field(3, ge=0)
    base_delay_ms: float = Field(1000, ge=0)
    max_delay_ms: float = Field(10000, ge=0)
    backoff_multiplier: float = Field(2, ge=1)

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        frozen = True

    def delay_for(self, attempt: int) -> float:
        """Delay in milliseconds before the attempt following ``attempt`` (0-based)."""
        return min(self.base_delay_ms * self.backoff_multiplier ** attempt, self.max_delay_ms)


DEFAULT_RETRY_POLICY = RetryPolicy()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Attempt count and backoff parameters
        on_retry: Called with (attempt number, error) before each backoff sleep
        sleep: Awaitable sleep taking seconds; swapped for a cancellable one
            by the engine and for a recorder in tests

    Returns:
        The operation's result

    Raises:
        The last error when attempts run out, or the first non-retryable one
    """
    last_error: Optional[Exception] = None

    for attempt in range(policy.max_retries + 1):
        try:
            return await operation()
        except ExecutionCancelled:
            raise
        except Exception as e:
            last_error = e

            if attempt == policy.max_retries:
                break

            if not classify_error(e).retryable:
                break

            delay_ms = policy.delay_for(attempt)
            if on_retry:
                on_retry(attempt + 1, e)
            logger.warning(f"Attempt {attempt + 1} failed ({e}); retrying in {delay_ms:.0f}ms")
            await sleep(delay_ms / 1000)

    raise last_error
