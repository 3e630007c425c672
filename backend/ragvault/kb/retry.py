"""Bounded retry with exponential backoff for transient upstream failures."""
import logging
from typing import Callable, TypeVar

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ragvault.core.errors import TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retries a call on TransientIOError, re-raising the last error when attempts run out."""

    def __init__(self, attempts: int = 3, initial_wait: float = 0.5, max_wait: float = 10.0) -> None:
        self.attempts = max(1, attempts)
        self.initial_wait = initial_wait
        self.max_wait = max_wait

    def call(self, operation: str, fn: Callable[..., T], *args, **kwargs) -> T:
        retrying = Retrying(
            retry=retry_if_exception_type(TransientIOError),
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential_jitter(initial=self.initial_wait, max=self.max_wait, jitter=self.initial_wait),
            before_sleep=lambda retry_state: logger.warning(
                f"{operation} - Retry {retry_state.attempt_number}/{self.attempts} "
                f"after {retry_state.outcome.exception()}"
            ),
            reraise=True,
        )
        return retrying(fn, *args, **kwargs)
