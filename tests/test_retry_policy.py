"""Tests for the delivery retry policy."""

import random
from unittest.mock import AsyncMock, Mock

import pytest
from tenacity import RetryCallState

from goal_tracker.exceptions import TransientDeliveryError
from goal_tracker.services.retry_policy import (
    DeliveryRetryPolicy,
    is_transient_delivery_error,
    wait_decorrelated_jitter,
)


def retry_state(attempt_number):
    state = Mock(spec=RetryCallState)
    state.attempt_number = attempt_number
    return state


class TestTransientClassification:
    def test_transient_error_type(self):
        assert is_transient_delivery_error(TransientDeliveryError("throttled"))

    @pytest.mark.parametrize("status_code,expected", [(429, True), (502, True), (503, False), (404, False)])
    def test_status_codes(self, status_code, expected):
        error = Exception("http error")
        error.status_code = status_code
        assert is_transient_delivery_error(error) is expected

    def test_plain_error_is_permanent(self):
        assert not is_transient_delivery_error(ValueError("bad card"))


class TestDecorrelatedJitter:
    def test_delays_are_non_negative_and_grow(self):
        wait = wait_decorrelated_jitter(median_first_delay=1.0, rng=random.Random(7))
        delays = [wait(retry_state(attempt)) for attempt in range(1, 6)]

        assert all(delay >= 0 for delay in delays)
        assert sum(delays[2:]) > delays[0]

    def test_zero_median_means_no_wait(self):
        wait = wait_decorrelated_jitter(median_first_delay=0)
        assert [wait(retry_state(attempt)) for attempt in (1, 2, 3)] == [0.0, 0.0, 0.0]

    def test_max_delay_caps_wait(self):
        wait = wait_decorrelated_jitter(median_first_delay=10.0, max_delay=0.5, rng=random.Random(1))
        assert all(wait(retry_state(attempt)) <= 0.5 for attempt in range(1, 5))


class TestDeliveryRetryPolicy:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        policy = DeliveryRetryPolicy(median_first_delay=0)
        operation = AsyncMock(return_value="activity-1")

        assert await policy.run(operation) == "activity-1"
        operation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retry_count_bounds_attempts(self):
        policy = DeliveryRetryPolicy(retry_count=4, median_first_delay=0)
        operation = AsyncMock(side_effect=TransientDeliveryError("throttled", status_code=429))

        with pytest.raises(TransientDeliveryError):
            await policy.run(operation)

        assert operation.await_count == 5

    @pytest.mark.asyncio
    async def test_custom_classifier(self):
        policy = DeliveryRetryPolicy(median_first_delay=0, is_transient=lambda error: isinstance(error, KeyError))
        operation = AsyncMock(side_effect=[KeyError("missing"), "ok"])

        assert await policy.run(operation) == "ok"
