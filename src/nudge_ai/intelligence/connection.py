"""Rolling-window classification of network health."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass

from nudge_ai.core.config import ConnectionSettings
from nudge_ai.core.models import ConnectionQuality
from nudge_ai.transport.errors import CONNECTIVITY_KINDS, RemoteErrorKind

LOGGER = logging.getLogger(__name__)

# Failures that say something about the network rather than the request.
NETWORK_FAILURE_KINDS = CONNECTIVITY_KINDS | {RemoteErrorKind.SERVER_ERROR}


@dataclass(frozen=True, slots=True)
class AttemptSample:
    """Outcome of one remote attempt."""

    succeeded: bool
    latency_seconds: float
    error_kind: RemoteErrorKind | None = None


class ConnectionQualityMonitor:
    """Keep the last N attempt outcomes and derive a :class:`ConnectionQuality`.

    Reads are side-effect free; only :meth:`record` changes state.
    """

    def __init__(self, settings: ConnectionSettings | None = None) -> None:
        self._settings = settings or ConnectionSettings()
        self._samples: deque[AttemptSample] = deque(maxlen=self._settings.window_size)
        self._lock = threading.Lock()

    def record(
        self,
        succeeded: bool,
        latency_seconds: float,
        error_kind: RemoteErrorKind | None = None,
    ) -> ConnectionQuality:
        """Add an attempt outcome and return the resulting quality."""
        sample = AttemptSample(succeeded, max(0.0, latency_seconds), error_kind)
        with self._lock:
            previous = self._classify()
            self._samples.append(sample)
            current = self._classify()
        if current is not previous:
            log = LOGGER.warning if current.severity > previous.severity else LOGGER.info
            log(
                "Connection quality changed from %s to %s",
                previous.value,
                current.value,
            )
        return current

    def record_success(self, latency_seconds: float) -> ConnectionQuality:
        return self.record(True, latency_seconds)

    def record_failure(
        self, error_kind: RemoteErrorKind, latency_seconds: float = 0.0
    ) -> ConnectionQuality:
        return self.record(False, latency_seconds, error_kind)

    def current_quality(self) -> ConnectionQuality:
        with self._lock:
            return self._classify()

    def samples(self) -> tuple[AttemptSample, ...]:
        with self._lock:
            return tuple(self._samples)

    def reset(self) -> None:
        """Forget all recorded attempts."""
        with self._lock:
            self._samples.clear()

    def _classify(self) -> ConnectionQuality:
        if not self._samples:
            return ConnectionQuality.EXCELLENT

        latest = self._samples[-1]
        any_success = any(sample.succeeded for sample in self._samples)
        if (
            not latest.succeeded
            and latest.error_kind in CONNECTIVITY_KINDS
            and not any_success
        ):
            return ConnectionQuality.OFFLINE

        threshold = self._settings.consecutive_failure_threshold
        if len(self._samples) >= threshold:
            trailing = list(self._samples)[-threshold:]
            if not any(sample.succeeded for sample in trailing):
                if all(sample.error_kind in CONNECTIVITY_KINDS for sample in trailing):
                    return ConnectionQuality.OFFLINE
                return ConnectionQuality.POOR

        failures = sum(1 for sample in self._samples if not sample.succeeded)
        failure_rate = failures / len(self._samples)
        average_latency = sum(
            sample.latency_seconds for sample in self._samples
        ) / len(self._samples)

        if (
            failure_rate > self._settings.failure_rate_threshold
            or average_latency > self._settings.poor_latency_seconds
        ):
            return ConnectionQuality.POOR
        if average_latency <= self._settings.excellent_latency_seconds:
            return ConnectionQuality.EXCELLENT
        return ConnectionQuality.GOOD


__all__ = ["AttemptSample", "ConnectionQualityMonitor", "NETWORK_FAILURE_KINDS"]
