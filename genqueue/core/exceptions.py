import re
from typing import Optional

import httpx


class GenqueueError(Exception):
    """Base class for errors raised by the job pipeline."""


class AuthenticationError(GenqueueError):
    """Credentials are missing or the provider rejected them."""


class GenerationError(GenqueueError):
    """The generation provider failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RetryExhaustedError(GenqueueError):
    """Every allowed attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(f"Failed to create project after {attempts} attempts")
        self.attempts = attempts
        self.last_error = last_error


class NoOutputReferenceError(GenqueueError):
    def __init__(self, message: str = "no output reference"):
        super().__init__(message)


RATE_LIMIT_PATTERN = re.compile(r"429|Too Many Requests|RateLimit", re.IGNORECASE)


def is_rate_limited(exc: BaseException) -> bool:
    """Classify an error as a provider rate-limit signal.

    Rate limiting is the only retryable failure; everything else is fatal.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429

    for attr in ("status_code", "status"):
        code = getattr(exc, attr, None)
        if isinstance(code, int) and code == 429:
            return True

    return bool(RATE_LIMIT_PATTERN.search(str(exc) or type(exc).__name__))
