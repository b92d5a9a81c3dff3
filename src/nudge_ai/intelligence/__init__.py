"""Resilient message generation services."""

from .catalog import contextual_hints, default_categories, rank_categories
from .connection import AttemptSample, ConnectionQualityMonitor
from .fallback import FallbackMessageGenerator
from .orchestrator import (
    AuthorizationRequiredError,
    GenerationError,
    GenerationState,
    ResilientOrchestrator,
    RetryStatistics,
)
from .retry import (
    AGGRESSIVE_POLICY,
    CONSERVATIVE_POLICY,
    DEFAULT_POLICY,
    FAIL_FAST_POLICY,
    RetryPolicy,
    build_policy_table,
    select_policy,
)

__all__ = [
    "AGGRESSIVE_POLICY",
    "AttemptSample",
    "AuthorizationRequiredError",
    "CONSERVATIVE_POLICY",
    "ConnectionQualityMonitor",
    "DEFAULT_POLICY",
    "FAIL_FAST_POLICY",
    "FallbackMessageGenerator",
    "GenerationError",
    "GenerationState",
    "ResilientOrchestrator",
    "RetryPolicy",
    "RetryStatistics",
    "build_policy_table",
    "contextual_hints",
    "default_categories",
    "rank_categories",
    "select_policy",
]
