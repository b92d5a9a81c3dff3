"""Retry policies and their selection from connection quality."""

from __future__ import annotations

import random
from collections.abc import Mapping
from dataclasses import dataclass, field

from nudge_ai.core.config import RetrySettings
from nudge_ai.core.models import ConnectionQuality
from nudge_ai.transport.errors import RETRYABLE_KINDS, RemoteError, RemoteErrorKind


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and backoff shape for one generation call."""

    max_attempts: int
    base_delay: float
    growth_factor: float = 2.0
    max_delay: float = 5.0
    jitter: tuple[float, float] = (0.8, 1.3)
    rate_limit_min_delay: float = 2.0
    retryable_kinds: frozenset[RemoteErrorKind] = field(
        default_factory=lambda: RETRYABLE_KINDS
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")
        low, high = self.jitter
        if low <= 0 or low > high:
            raise ValueError("jitter must be a positive (low, high) range")

    def is_retryable(self, error: RemoteError) -> bool:
        return error.kind in self.retryable_kinds

    def should_retry(self, error: RemoteError, attempt: int) -> bool:
        """Whether a failure on ``attempt`` (1-based) earns another attempt."""
        return attempt < self.max_attempts and self.is_retryable(error)

    def delay_for(
        self,
        attempt: int,
        error_kind: RemoteErrorKind | None = None,
        rng: random.Random | None = None,
    ) -> float:
        """Seconds to wait after failed ``attempt`` before the next one."""
        if attempt < 1:
            return 0.0
        exponential = self.base_delay * self.growth_factor ** (attempt - 1)
        low, high = self.jitter
        factor = (rng or random).uniform(low, high)
        delay = min(exponential * factor, self.max_delay)
        if error_kind is RemoteErrorKind.RATE_LIMITED:
            delay = max(delay, self.rate_limit_min_delay)
        return delay


DEFAULT_POLICY = RetryPolicy(max_attempts=3, base_delay=0.4, max_delay=5.0)
CONSERVATIVE_POLICY = RetryPolicy(
    max_attempts=2, base_delay=0.2, max_delay=2.0, jitter=(0.9, 1.1)
)
AGGRESSIVE_POLICY = RetryPolicy(
    max_attempts=5, base_delay=0.5, max_delay=10.0, jitter=(0.5, 1.5)
)
FAIL_FAST_POLICY = RetryPolicy(
    max_attempts=1, base_delay=0.0, max_delay=0.0, jitter=(1.0, 1.0)
)


def build_policy_table(
    settings: RetrySettings | None = None,
) -> dict[ConnectionQuality, RetryPolicy]:
    """Derive one policy per quality level from configuration.

    Better connections get more attempts and shorter waits; an offline
    connection fails fast straight to the fallback.
    """
    settings = settings or RetrySettings()
    jitter = (settings.jitter_min, settings.jitter_max)

    def policy(attempts: int, delay_scale: float) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=attempts,
            base_delay=settings.base_delay_seconds * delay_scale,
            growth_factor=settings.growth_factor,
            max_delay=settings.max_delay_seconds,
            jitter=jitter,
            rate_limit_min_delay=settings.rate_limit_min_delay_seconds,
        )

    return {
        ConnectionQuality.EXCELLENT: policy(settings.excellent_attempts, 0.5),
        ConnectionQuality.GOOD: policy(settings.good_attempts, 1.0),
        ConnectionQuality.POOR: policy(settings.poor_attempts, 2.5),
        ConnectionQuality.OFFLINE: policy(settings.offline_attempts, 0.0),
    }


def select_policy(
    quality: ConnectionQuality,
    table: Mapping[ConnectionQuality, RetryPolicy] | None = None,
) -> RetryPolicy:
    """Return the policy for ``quality``."""
    policies = table if table is not None else build_policy_table()
    return policies.get(quality, FAIL_FAST_POLICY)


__all__ = [
    "AGGRESSIVE_POLICY",
    "CONSERVATIVE_POLICY",
    "DEFAULT_POLICY",
    "FAIL_FAST_POLICY",
    "RetryPolicy",
    "build_policy_table",
    "select_policy",
]
