"""
Exponential backoff for outbound text-model calls.

Only the scene-breakdown chat call goes through here. Image generation is
not retried: a failed scene is recorded and the run moves on.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type

from scriptvision.core.config import PlannerConfig
from scriptvision.core.logging_config import get_logger

logger = get_logger("core.retry")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_range: Tuple[float, float] = (0.5, 1.5)
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)

    @property
    def attempts(self) -> int:
        return self.max_retries + 1


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after failed attempt `attempt` (0-based)."""
    delay = min(config.base_delay * config.exponential_base ** attempt, config.max_delay)
    if config.jitter:
        delay *= random.uniform(*config.jitter_range)
    return delay


async def retry_async_call(
    func: Callable[..., Any],
    *args: Any,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    **kwargs: Any
) -> Any:
    """
    Await func(*args, **kwargs), retrying errors the config marks retryable.

    Errors outside config.retryable_exceptions propagate at once; the last
    retryable error is re-raised when attempts run out.

    Example:
        response = await retry_async_call(
            client.chat,
            prompt,
            config=planner_retry_config(),
        )
    """
    config = config or RetryConfig()
    name = getattr(func, "__name__", "call")
    attempt = 0

    while True:
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt >= config.max_retries:
                logger.error(f"{name} failed after {config.attempts} attempts: {e}")
                raise

            delay = calculate_delay(attempt, config)
            logger.warning(f"{name} attempt {attempt + 1}/{config.attempts} failed: {e}. Retrying in {delay:.2f}s")
            if on_retry:
                on_retry(e, attempt)
            await asyncio.sleep(delay)
            attempt += 1


def planner_retry_config(planner: Optional[PlannerConfig] = None) -> RetryConfig:
    """Retry policy for the scene-breakdown chat call: rate limits and timeouts only."""
    # Imported here to avoid a core -> llm import cycle at module load
    from scriptvision.llm.api_clients import APITimeoutError, RateLimitError

    planner = planner or PlannerConfig()
    return RetryConfig(
        max_retries=planner.max_retries,
        base_delay=planner.retry_base_delay,
        max_delay=30.0,
        retryable_exceptions=(RateLimitError, APITimeoutError),
    )
