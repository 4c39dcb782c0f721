"""
Tests for retry policy and backoff timers.

Review checklist:
    [x] Jitter stays within ±20% of the exponential base
    [x] Separate ceilings for network failures and retryable statuses
    [x] Retry-After only raises the delay when enabled
    [x] Pending sleeps can be cancelled together
"""

import asyncio
import random

import pytest

from apishield.resilience.retry import (
    DEFAULT_RETRYABLE_STATUSES,
    BackoffTimer,
    RetryConfig,
    coerce_bool,
)


class FixedRandom(random.Random):
    """Random source whose uniform() always returns one value."""

    def __init__(self, value):
        super().__init__()
        self.value = value

    def uniform(self, a, b):
        return self.value


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        config = RetryConfig()

        assert config.max_retries == 3
        assert config.max_network_retries == 2
        assert config.base_delay_ms == 1000.0
        assert config.exponential_base == 2.0
        assert config.max_delay_ms is None
        assert config.respect_retry_after is False
        assert config.retryable_statuses == DEFAULT_RETRYABLE_STATUSES
        assert config.jitter_ratio == 0.2

    def test_type_conversion_from_strings(self):
        config = RetryConfig(
            max_retries="5",
            base_delay_ms="250",
            exponential_base="3",
            max_delay_ms="10000",
            respect_retry_after="true",
            retryable_statuses=["503", 504],
        )

        assert config.max_retries == 5
        assert config.base_delay_ms == 250.0
        assert config.exponential_base == 3.0
        assert config.max_delay_ms == 10000.0
        assert config.respect_retry_after is True
        assert config.retryable_statuses == frozenset({503, 504})

    def test_base_delay_is_exponential(self):
        config = RetryConfig()

        assert [config.base_delay(n) for n in (1, 2, 3)] == [1000.0, 2000.0, 4000.0]

    def test_jitter_bounds(self):
        config = RetryConfig()

        for attempt, base in ((1, 1000), (2, 2000), (3, 4000)):
            for _ in range(50):
                delay = config.get_delay(attempt)
                assert base * 0.8 <= delay <= base * 1.2

    def test_jitter_extremes(self):
        config = RetryConfig()

        assert config.get_delay(1, rng=FixedRandom(-0.2)) == 800
        assert config.get_delay(1, rng=FixedRandom(0.2)) == 1200

    def test_delay_is_whole_milliseconds(self):
        delay = RetryConfig(base_delay_ms=333).get_delay(1, rng=FixedRandom(0.1))

        assert delay == 366
        assert isinstance(delay, int)

    def test_delay_never_negative(self):
        config = RetryConfig(jitter_ratio=1.5)

        assert config.get_delay(1, rng=FixedRandom(-1.5)) == 0

    def test_max_delay_caps(self):
        config = RetryConfig(max_delay_ms=1500)

        assert config.get_delay(5, rng=FixedRandom(0.0)) == 1500

    def test_retry_after_ignored_by_default(self):
        config = RetryConfig()

        assert config.get_delay(1, retry_after=30, rng=FixedRandom(0.0)) == 1000

    def test_retry_after_raises_delay_when_respected(self):
        config = RetryConfig(respect_retry_after=True)

        assert config.get_delay(1, retry_after=5, rng=FixedRandom(0.0)) == 5000
        assert config.get_delay(1, retry_after=0.5, rng=FixedRandom(0.0)) == 1000

    def test_max_delay_caps_retry_after(self):
        config = RetryConfig(respect_retry_after=True, max_delay_ms=2000)

        assert config.get_delay(1, retry_after=60, rng=FixedRandom(0.0)) == 2000

    def test_status_ceiling(self):
        config = RetryConfig(max_retries=3)

        assert config.should_retry_status(503, 0)
        assert config.should_retry_status(503, 2)
        assert not config.should_retry_status(503, 3)
        assert not config.should_retry_status(404, 0)
        assert not config.should_retry_status(501, 0)

    def test_network_ceiling(self):
        config = RetryConfig(max_network_retries=2)

        assert config.should_retry_network(0)
        assert config.should_retry_network(1)
        assert not config.should_retry_network(2)

    def test_zero_retries(self):
        config = RetryConfig(max_retries=0, max_network_retries=0)

        assert not config.should_retry_status(503, 0)
        assert not config.should_retry_network(0)


@pytest.mark.parametrize(
    "value,expected",
    [(True, True), ("yes", True), ("1", True), ("false", False), ("", False), (0, False)],
)
def test_coerce_bool(value, expected):
    assert coerce_bool(value) is expected


class TestBackoffTimer:
    """Tests for BackoffTimer."""

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        timer = BackoffTimer()

        await timer.sleep(1)

        assert timer.pending_count == 0

    @pytest.mark.asyncio
    async def test_negative_delay_treated_as_zero(self):
        await BackoffTimer().sleep(-50)

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        timer = BackoffTimer()
        sleepers = [asyncio.ensure_future(timer.sleep(60000)) for _ in range(3)]
        await asyncio.sleep(0)
        assert timer.pending_count == 3

        assert timer.cancel_all() == 3

        results = await asyncio.gather(*sleepers, return_exceptions=True)
        assert all(isinstance(r, asyncio.CancelledError) for r in results)
        assert timer.pending_count == 0

    def test_cancel_all_with_nothing_pending(self):
        assert BackoffTimer().cancel_all() == 0
