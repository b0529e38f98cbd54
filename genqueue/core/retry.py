import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from genqueue.core.config import settings
from genqueue.core.exceptions import RetryExhaustedError, is_rate_limited

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Exponential-backoff retry around a fallible async operation.

    Only errors the classifier marks as retryable are retried; anything else
    propagates on the first attempt. The wait before retry ``n`` (1-based) is
    ``base_delay * 2**n`` capped at ``max_delay``.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay_ms: int = 500,
        max_delay_ms: int = 15000,
        classifier: Callable[[BaseException], bool] = is_rate_limited,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.classifier = classifier
        self._sleep = sleep

    @classmethod
    def from_settings(cls, **overrides) -> "RetryPolicy":
        options = {
            "max_attempts": settings.max_retries,
            "base_delay_ms": settings.retry_base_delay_ms,
            "max_delay_ms": settings.retry_max_delay_ms,
        }
        options.update(overrides)
        return cls(**options)

    def backoff_ms(self, attempt: int) -> int:
        return min(self.max_delay_ms, self.base_delay_ms * 2 ** attempt)

    async def run(self, operation: Callable[[], Awaitable[T]], label: Optional[str] = None) -> T:
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not self.classifier(e):
                    raise
                last_error = e
                if attempt == self.max_attempts:
                    break
                backoff = self.backoff_ms(attempt)
                logger.info(
                    f"Rate limited{f' ({label})' if label else ''} "
                    f"(attempt {attempt}), retry in {backoff}ms"
                )
                await self._sleep(backoff / 1000)

        raise RetryExhaustedError(self.max_attempts, last_error) from last_error
