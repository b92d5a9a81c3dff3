"""Resilient generation workflow: retry, adapt to the network, fall back."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from nudge_ai.cache import CacheManager, CacheStrategy
from nudge_ai.core.config import AppSettings
from nudge_ai.core.interfaces import (
    MessageStore,
    RemoteGenerationClient,
    StorageError,
)
from nudge_ai.core.models import (
    CategoryInfo,
    ConnectionQuality,
    GeneratedMessage,
    GenerationRecord,
    GenerationRequest,
    GenerationResult,
    MessageCategory,
    MessageOrigin,
    TimeOfDay,
)
from nudge_ai.transport import RemoteError, RemoteErrorKind, RemoteRequest

from .catalog import default_categories, rank_categories
from .connection import NETWORK_FAILURE_KINDS, ConnectionQualityMonitor
from .fallback import FallbackMessageGenerator
from .payloads import (
    GenerateMessagesBody,
    categories_from_json,
    categories_to_json,
    parse_categories,
    parse_generated_messages,
)
from .retry import RetryPolicy, build_policy_table, select_policy

LOGGER = logging.getLogger(__name__)

CATEGORIES_CACHE_KEY = "message_categories"
RECOMMENDATIONS_KEY_PREFIX = "recommended_categories"


class GenerationError(RuntimeError):
    """Raised when a generation call ends without any usable messages."""


class AuthorizationRequiredError(GenerationError):
    """The service rejected our credentials; the caller must re-authenticate."""


class GenerationState(str, Enum):
    """States of one generation call."""

    IDLE = "idle"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FALLBACK_GENERATING = "fallback_generating"
    FALLBACK_SUCCEEDED = "fallback_succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


StateListener = Callable[[GenerationState], None]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(slots=True)
class RetryStatistics:
    """Counters for one kind of remote operation."""

    requests: int = 0
    successes: int = 0
    fallbacks: int = 0
    failures: int = 0
    total_attempts: int = 0
    errors: dict[RemoteErrorKind, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        return self.successes / self.requests if self.requests else 0.0

    @property
    def average_attempts(self) -> float:
        return self.total_attempts / self.requests if self.requests else 0.0

    def record_error(self, kind: RemoteErrorKind) -> None:
        self.errors[kind] = self.errors.get(kind, 0) + 1

    def snapshot(self) -> RetryStatistics:
        return replace(self, errors=dict(self.errors))


# pylint: disable=too-many-instance-attributes
class ResilientOrchestrator:
    """Generate messages through the remote service with graceful degradation.

    Each :meth:`generate` call picks a :class:`RetryPolicy` from the current
    connection quality, retries retryable failures with backoff and, once
    the budget is spent, answers from the template fallback. Results of
    either origin are written to the message store; storage problems are
    reported as warnings and never fail the call.

    Network health is tracked per remote call. Connectivity failures,
    timeouts and server errors count against the network; any other answer,
    including a refusal or a payload that fails to decode, counts as a
    success. Exceptions the client does not classify count as failures.
    """

    def __init__(
        self,
        client: RemoteGenerationClient,
        store: MessageStore,
        monitor: ConnectionQualityMonitor | None = None,
        cache: CacheManager | None = None,
        *,
        settings: AppSettings | None = None,
        fallback: FallbackMessageGenerator | None = None,
        policies: Mapping[ConnectionQuality, RetryPolicy] | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        state_listener: StateListener | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._client = client
        self._store = store
        self._monitor = monitor or ConnectionQualityMonitor(self._settings.connection)
        self._cache = cache or CacheManager(
            default_ttl_seconds=self._settings.cache.default_ttl_seconds,
            memory_max_items=self._settings.cache.memory_max_items,
        )
        self._fallback = fallback or FallbackMessageGenerator(
            message_count=self._settings.generation.fallback_message_count
        )
        self._policies = dict(policies) if policies else build_policy_table(self._settings.retry)
        self._sleep = sleep
        self._rng = rng
        self._clock = clock
        self._state_listener = state_listener
        self._state = GenerationState.IDLE
        self._statistics: dict[str, RetryStatistics] = {}
        self._abandoned: set[asyncio.Future[Any]] = set()

    @property
    def state(self) -> GenerationState:
        """Most recent state reported by any generation call."""
        return self._state

    @property
    def monitor(self) -> ConnectionQualityMonitor:
        return self._monitor

    @property
    def cache(self) -> CacheManager:
        return self._cache

    def policy_for_current_quality(self) -> RetryPolicy:
        return select_policy(self._monitor.current_quality(), self._policies)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Produce messages for ``request``.

        Raises :class:`AuthorizationRequiredError` when the service rejects
        our credentials and :class:`GenerationError` when every attempt
        failed and the fallback is disabled. Cancellation propagates.
        """
        stats = self._stats_for("generate")
        stats.requests += 1
        quality = self._monitor.current_quality()
        policy = select_policy(quality, self._policies)
        LOGGER.info(
            "Generating %s messages (quality=%s, max_attempts=%d)",
            request.category.value,
            quality.value,
            policy.max_attempts,
        )

        attempt = 0
        last_error: RemoteError | None = None
        try:
            while True:
                attempt += 1
                stats.total_attempts += 1
                self._transition(GenerationState.ATTEMPTING)
                try:
                    messages = await self._attempt(request)
                except RemoteError as error:
                    last_error = error
                    stats.record_error(error.kind)
                    if error.kind is RemoteErrorKind.UNAUTHORIZED:
                        stats.failures += 1
                        self._transition(GenerationState.FAILED)
                        LOGGER.warning("Generation rejected as unauthorized: %s", error)
                        raise AuthorizationRequiredError(
                            "The generation service requires re-authentication"
                        ) from error
                    if not policy.should_retry(error, attempt):
                        LOGGER.warning(
                            "Attempt %d/%d failed (%s); giving up: %s",
                            attempt,
                            policy.max_attempts,
                            error.kind.value,
                            error,
                        )
                        break
                    delay = policy.delay_for(attempt, error.kind, self._rng)
                    LOGGER.warning(
                        "Attempt %d/%d failed (%s); retrying in %.2fs",
                        attempt,
                        policy.max_attempts,
                        error.kind.value,
                        delay,
                    )
                    self._transition(GenerationState.RETRYING)
                    await self._sleep(delay)
                    continue

                stats.successes += 1
                self._transition(GenerationState.SUCCEEDED)
                LOGGER.info(
                    "Generated %d messages after %d attempt(s)", len(messages), attempt
                )
                return self._finish(
                    request,
                    messages,
                    MessageOrigin.REMOTE,
                    attempt,
                    quality,
                    self._client.provider_id,
                )
        except asyncio.CancelledError:
            self._transition(GenerationState.CANCELLED)
            LOGGER.info("Generation for %s cancelled", request.category.value)
            raise

        self._transition(GenerationState.EXHAUSTED)
        if not self._settings.generation.fallback_enabled:
            stats.failures += 1
            self._transition(GenerationState.FAILED)
            raise GenerationError(
                f"Generation failed after {attempt} attempt(s)"
            ) from last_error

        self._transition(GenerationState.FALLBACK_GENERATING)
        messages = self._fallback.generate(request)
        stats.fallbacks += 1
        self._transition(GenerationState.FALLBACK_SUCCEEDED)
        LOGGER.warning(
            "Using %d fallback messages for %s after %d attempt(s)",
            len(messages),
            request.category.value,
            attempt,
        )
        return self._finish(
            request,
            messages,
            MessageOrigin.FALLBACK,
            attempt,
            quality,
            self._fallback.provider_id,
        )

    async def load_categories(self) -> list[CategoryInfo]:
        """Return the category listing, preferring a fresh copy from the service.

        Falls back to the cached listing, then to the built-in catalogue.
        """
        stats = self._stats_for("categories")
        stats.requests += 1
        stats.total_attempts += 1

        async def fetch() -> Any:
            payload = await self._call(
                RemoteRequest("GET", self._settings.remote.categories_path)
            )
            return categories_to_json(parse_categories(payload))

        try:
            result = await self._cache.network_first(
                CATEGORIES_CACHE_KEY,
                fetch,
                strategy=CacheStrategy.HYBRID,
                ttl_seconds=self._settings.cache.categories_ttl_seconds,
                recoverable=(RemoteError,),
            )
        except RemoteError as exc:
            stats.record_error(exc.kind)
            stats.fallbacks += 1
            LOGGER.warning("Category listing unavailable, using defaults: %s", exc)
            return default_categories()

        if result.from_cache:
            stats.fallbacks += 1
        else:
            stats.successes += 1
        return categories_from_json(result.value)

    async def recommended_categories(
        self,
        time_of_day: TimeOfDay | None = None,
        personality_type: str | None = None,
    ) -> list[MessageCategory]:
        """Categories suited to the moment, cached in memory per input pair."""
        bucket = time_of_day or TimeOfDay.current()
        personality = personality_type.strip().lower() if personality_type else None
        key = CacheManager.make_key(RECOMMENDATIONS_KEY_PREFIX, bucket.value, personality)

        async def compute() -> Any:
            return [category.value for category in rank_categories(bucket, personality)]

        value = await self._cache.get_or_populate(
            key,
            compute,
            strategy=CacheStrategy.MEMORY_ONLY,
            ttl_seconds=self._settings.cache.categories_ttl_seconds,
        )
        return [MessageCategory(item) for item in value]

    def statistics(self) -> dict[str, RetryStatistics]:
        """Snapshot of per-operation counters."""
        return {name: stats.snapshot() for name, stats in self._statistics.items()}

    def reset_statistics(self) -> None:
        self._statistics.clear()

    def on_user_changed(self, user_id: str | None) -> None:
        """Forget per-user state when the active user changes."""
        LOGGER.info("Active user changed (%s); resetting generation state", user_id or "signed out")
        self._monitor.reset()
        self._state = GenerationState.IDLE
        if self._settings.cache.clear_on_user_change:
            self._cache.clear()

    async def drain(self) -> None:
        """Wait for remote calls that were abandoned by cancelled callers."""
        while self._abandoned:
            await asyncio.gather(*list(self._abandoned), return_exceptions=True)

    # Internal helpers --------------------------------------------------------
    async def _attempt(self, request: GenerationRequest) -> list[GeneratedMessage]:
        body = GenerateMessagesBody.from_request(request).to_wire()
        payload = await self._call(
            RemoteRequest("POST", self._settings.remote.generate_path, body)
        )
        return parse_generated_messages(payload, request)

    async def _call(self, remote_request: RemoteRequest) -> Mapping[str, Any]:
        """Run one remote call under the attempt timeout and record its outcome."""
        timeout = self._settings.retry.attempt_timeout_seconds
        started = self._clock()
        task = asyncio.ensure_future(self._client.send(remote_request))
        try:
            payload = await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError as exc:
            self._abandon(task, cancel=True)
            self._monitor.record_failure(RemoteErrorKind.TIMEOUT, self._clock() - started)
            raise RemoteError(
                RemoteErrorKind.TIMEOUT, f"No response within {timeout:.1f}s"
            ) from exc
        except asyncio.CancelledError:
            # the call itself keeps running; its result is discarded
            self._abandon(task, cancel=False)
            raise
        except RemoteError as error:
            elapsed = self._clock() - started
            if error.kind in NETWORK_FAILURE_KINDS:
                self._monitor.record_failure(error.kind, elapsed)
            else:
                # the service answered; the request itself was refused
                self._monitor.record_success(elapsed)
            raise
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Remote client raised an unexpected error", exc_info=True)
            self._monitor.record_failure(RemoteErrorKind.UNKNOWN, self._clock() - started)
            raise RemoteError(RemoteErrorKind.UNKNOWN, str(exc)) from exc

        self._monitor.record_success(self._clock() - started)
        return payload

    def _abandon(self, task: asyncio.Future[Any], *, cancel: bool) -> None:
        if task.done():
            _discard_result(task)
            return
        if cancel:
            task.cancel()
        self._abandoned.add(task)
        task.add_done_callback(self._abandoned.discard)
        task.add_done_callback(_discard_result)

    def _finish(
        self,
        request: GenerationRequest,
        messages: list[GeneratedMessage],
        origin: MessageOrigin,
        attempts: int,
        quality: ConnectionQuality,
        provider: str,
    ) -> GenerationResult:
        warnings = self._persist(request, messages, origin)
        return GenerationResult(
            messages=tuple(messages),
            origin=origin,
            attempts=attempts,
            quality=quality,
            provider=provider,
            warnings=warnings,
        )

    def _persist(
        self,
        request: GenerationRequest,
        messages: list[GeneratedMessage],
        origin: MessageOrigin,
    ) -> tuple[str, ...]:
        warnings: list[str] = []
        try:
            self._store.save_many(messages)
        except StorageError as exc:
            LOGGER.warning("Failed to persist generated messages: %s", exc)
            warnings.append(f"Messages could not be saved locally: {exc}")
        try:
            self._store.save_generation_record(
                GenerationRecord.for_messages(request, messages, origin)
            )
        except StorageError as exc:
            LOGGER.warning("Failed to record generation history: %s", exc)
            warnings.append(f"Generation history could not be updated: {exc}")
        return tuple(warnings)

    def _stats_for(self, operation: str) -> RetryStatistics:
        return self._statistics.setdefault(operation, RetryStatistics())

    def _transition(self, state: GenerationState) -> None:
        self._state = state
        LOGGER.debug("Generation state -> %s", state.value)
        if self._state_listener is None:
            return
        try:
            self._state_listener(state)
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("State listener failed for %s", state.value)


def _discard_result(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        LOGGER.debug("Abandoned remote call finished with: %s", error)


__all__ = [
    "AuthorizationRequiredError",
    "CATEGORIES_CACHE_KEY",
    "GenerationError",
    "GenerationState",
    "ResilientOrchestrator",
    "RetryStatistics",
    "StateListener",
]
