"""Tests for retry policies."""

from __future__ import annotations

import random

import pytest

from nudge_ai.core.config import RetrySettings
from nudge_ai.core.models import ConnectionQuality
from nudge_ai.intelligence import (
    AGGRESSIVE_POLICY,
    CONSERVATIVE_POLICY,
    DEFAULT_POLICY,
    FAIL_FAST_POLICY,
    RetryPolicy,
    build_policy_table,
    select_policy,
)
from nudge_ai.transport import RemoteError, RemoteErrorKind


def test_delay_grows_exponentially_and_is_capped() -> None:
    policy = RetryPolicy(
        max_attempts=5, base_delay=1.0, growth_factor=2.0, max_delay=5.0, jitter=(1.0, 1.0)
    )
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_jitter_stays_within_bounds() -> None:
    rng = random.Random(7)
    for attempt in range(1, 4):
        delay = DEFAULT_POLICY.delay_for(attempt, rng=rng)
        base = 0.4 * 2 ** (attempt - 1)
        assert base * 0.8 <= delay <= min(base * 1.3, 5.0)


def test_rate_limited_waits_at_least_minimum() -> None:
    policy = RetryPolicy(max_attempts=3, base_delay=0.1, jitter=(1.0, 1.0))
    assert policy.delay_for(1, RemoteErrorKind.RATE_LIMITED) == 2.0
    assert policy.delay_for(1, RemoteErrorKind.SERVER_ERROR) == pytest.approx(0.1)


def test_should_retry_respects_kind_and_budget() -> None:
    policy = RetryPolicy(max_attempts=2, base_delay=0.0)
    assert policy.should_retry(RemoteError(RemoteErrorKind.TIMEOUT), 1)
    assert not policy.should_retry(RemoteError(RemoteErrorKind.TIMEOUT), 2)
    assert not policy.should_retry(RemoteError(RemoteErrorKind.UNAUTHORIZED), 1)
    assert not policy.should_retry(RemoteError(RemoteErrorKind.DECODING_ERROR), 1)


def test_invalid_policy_rejected() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0, base_delay=0.1)
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=1, base_delay=0.1, jitter=(1.5, 1.0))


def test_policy_table_shrinks_with_quality() -> None:
    table = build_policy_table(RetrySettings())
    attempts = [table[quality].max_attempts for quality in ConnectionQuality]
    assert attempts == [4, 3, 2, 1]
    assert table[ConnectionQuality.POOR].base_delay > table[ConnectionQuality.GOOD].base_delay


def test_select_policy_falls_back_to_fail_fast() -> None:
    assert select_policy(ConnectionQuality.GOOD, {}) is FAIL_FAST_POLICY
    assert select_policy(ConnectionQuality.EXCELLENT).max_attempts == 4


@pytest.mark.parametrize(
    ("policy", "attempts", "cap"),
    [(CONSERVATIVE_POLICY, 2, 2.0), (AGGRESSIVE_POLICY, 5, 10.0)],
)
def test_presets_bound_attempts_and_delay(
    policy: RetryPolicy, attempts: int, cap: float
) -> None:
    rng = random.Random(11)
    assert policy.max_attempts == attempts
    delays = [policy.delay_for(n, rng=rng) for n in range(1, attempts + 1)]
    assert all(0.0 < delay <= cap for delay in delays)
    assert (
        AGGRESSIVE_POLICY.max_attempts
        > DEFAULT_POLICY.max_attempts
        > CONSERVATIVE_POLICY.max_attempts
    )
