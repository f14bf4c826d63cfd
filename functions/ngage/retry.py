"""
Bounded retry with fixed backoff tiers per error category.
"""

from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, TypeVar

from ngage.errors import ErrorType, RateLimitError, categorize_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2.0
DEFAULT_RATE_LIMIT_WAIT_SECONDS = 60.0


@dataclass(frozen=True)
class RetryTier:
    max_attempts: int
    delay_seconds: float


RETRY_TIERS: Dict[ErrorType, RetryTier] = {
    ErrorType.NETWORK: RetryTier(MAX_RETRY_ATTEMPTS, RETRY_DELAY_SECONDS),
    ErrorType.DATABASE: RetryTier(MAX_RETRY_ATTEMPTS, RETRY_DELAY_SECONDS),
    ErrorType.RATE_LIMIT: RetryTier(1, DEFAULT_RATE_LIMIT_WAIT_SECONDS),
}


class ErrorRecovery:
    """Tracks retry attempts per category and waits out the tier delay."""

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep
        self._attempts: Dict[ErrorType, int] = {}

    def can_recover(self, category: ErrorType) -> bool:
        return category in RETRY_TIERS

    def attempts(self, category: ErrorType) -> int:
        return self._attempts.get(category, 0)

    def reset(self, category: ErrorType) -> None:
        self._attempts.pop(category, None)

    def reset_all(self) -> None:
        self._attempts.clear()

    def attempt_recovery(self, exc: BaseException) -> bool:
        """
        Waits before a retry of the failed operation.

        Returns False when the category is not retryable or its attempts
        are exhausted; the caller should then give up.
        """
        category = categorize_error(exc)
        tier = RETRY_TIERS.get(category)
        if tier is None:
            return False
        attempts = self.attempts(category)
        if attempts >= tier.max_attempts:
            return False
        self._attempts[category] = attempts + 1

        delay = tier.delay_seconds
        if isinstance(exc, RateLimitError) and exc.retry_after:
            delay = exc.retry_after
        self._sleep(delay)
        return True


def with_retry(
    operation: Callable[[], T],
    *,
    recovery: Optional[ErrorRecovery] = None,
    sleep: Callable[[float], None] = time.sleep,
    context: str = "",
) -> T:
    """Runs operation, retrying recoverable failures within their tier."""
    recovery = recovery or ErrorRecovery(sleep=sleep)
    while True:
        try:
            result = operation()
        except Exception as exc:
            category = categorize_error(exc)
            if not recovery.attempt_recovery(exc):
                recovery.reset(category)
                raise
            logger.warning(
                "Retrying %s after %s error (attempt %d): %s",
                context or getattr(operation, "__name__", "operation"),
                category,
                recovery.attempts(category),
                exc,
            )
            continue
        recovery.reset_all()
        return result


def retrying(context: str = "", sleep: Callable[[float], None] = time.sleep):
    """Decorator form of with_retry."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return with_retry(
                lambda: func(*args, **kwargs),
                sleep=sleep,
                context=context or func.__name__,
            )

        return wrapper

    return decorator
