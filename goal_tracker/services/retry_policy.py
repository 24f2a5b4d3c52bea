"""
Retry policy for proactive message delivery.

Only throttling (429) and bad gateway (502) responses are retried. Waits
follow a decorrelated jitter curve whose median first delay is configurable.
"""

import logging
import math
import random
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from goal_tracker.exceptions import TransientDeliveryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_CODES = frozenset({429, 502})


def _status_code(error: BaseException) -> Optional[int]:
    for source in (error, getattr(error, "response", None)):
        if source is None:
            continue
        for attr in ("status_code", "status"):
            value = getattr(source, attr, None)
            if isinstance(value, int):
                return value
    return None


def is_transient_delivery_error(error: BaseException) -> bool:
    """True for rate-limited and bad-gateway delivery failures."""
    if isinstance(error, TransientDeliveryError):
        return True
    return _status_code(error) in TRANSIENT_STATUS_CODES


class wait_decorrelated_jitter(wait_base):
    """
    Decorrelated jitter backoff.

    Each delay is the increment of 2^t * tanh(sqrt(4t)) with t jittered within
    the attempt index, scaled so the median first delay matches the setting.
    State resets on the first attempt, so one instance serves one call at a time.
    """

    P_FACTOR = 4.0
    RP_SCALING_FACTOR = 1 / 1.4

    def __init__(self, median_first_delay: float = 1.0, max_delay: Optional[float] = None, rng: Optional[random.Random] = None):
        self.median_first_delay = median_first_delay
        self.max_delay = max_delay
        self._rng = rng or random.Random()
        self._previous = 0.0

    def __call__(self, retry_state: RetryCallState) -> float:
        attempt = retry_state.attempt_number
        if attempt <= 1:
            self._previous = 0.0

        t = (attempt - 1) + self._rng.random()
        current = math.pow(2, t) * math.tanh(math.sqrt(self.P_FACTOR * t))
        delay = (current - self._previous) * self.RP_SCALING_FACTOR * self.median_first_delay
        self._previous = current

        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return max(0.0, delay)


class DeliveryRetryPolicy:
    """Bounded retry around a single delivery operation."""

    def __init__(
        self,
        retry_count: int = 2,
        median_first_delay: float = 1.0,
        is_transient: Callable[[BaseException], bool] = is_transient_delivery_error
    ):
        self.retry_count = retry_count
        self.median_first_delay = median_first_delay
        self.is_transient = is_transient

    def _retrying(self, description: str) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                f"{description} failed with transient error "
                f"(attempt {retry_state.attempt_number}/{self.retry_count + 1}): {error}. "
                f"Retrying in {retry_state.next_action.sleep:.2f}s"
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.retry_count + 1),
            wait=wait_decorrelated_jitter(self.median_first_delay),
            retry=retry_if_exception(self.is_transient),
            before_sleep=log_retry,
            reraise=True
        )

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "Delivery") -> T:
        """
        Run an async operation, retrying transient failures.

        Args:
            operation: Zero-argument coroutine function performing one attempt
            description: Context used in retry log lines

        Returns:
            The operation result

        Raises:
            The last error once attempts are exhausted, or the first
            non-transient error immediately.
        """
        async for attempt in self._retrying(description):
            with attempt:
                result = await operation()
        return result
