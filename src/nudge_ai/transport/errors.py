"""Remote failure taxonomy shared by transports and the orchestrator."""

from __future__ import annotations

from enum import Enum


class RemoteErrorKind(str, Enum):
    """Classification of a failed remote call."""

    CONNECTIVITY = "connectivity"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    DECODING_ERROR = "decoding_error"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {
        RemoteErrorKind.CONNECTIVITY,
        RemoteErrorKind.TIMEOUT,
        RemoteErrorKind.SERVER_ERROR,
        RemoteErrorKind.RATE_LIMITED,
    }
)

CONNECTIVITY_KINDS = frozenset({RemoteErrorKind.CONNECTIVITY, RemoteErrorKind.TIMEOUT})


class RemoteError(RuntimeError):
    """Raised by remote clients when a call fails."""

    def __init__(
        self,
        kind: RemoteErrorKind,
        message: str = "",
        *,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.status_code = status_code
        detail = message or kind.value
        if status_code is not None:
            detail = f"{detail} (status {status_code})"
        super().__init__(detail)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def connectivity_class(self) -> bool:
        """Whether the failure says the network itself is unusable."""
        return self.kind in CONNECTIVITY_KINDS

    @classmethod
    def from_status(cls, status_code: int, message: str = "") -> RemoteError:
        """Map a non-success HTTP status onto the taxonomy."""
        if status_code in (401, 403):
            return cls(RemoteErrorKind.UNAUTHORIZED, message, status_code=status_code)
        if status_code == 429:
            return cls(RemoteErrorKind.RATE_LIMITED, message, status_code=status_code)
        if 500 <= status_code <= 599:
            return cls(RemoteErrorKind.SERVER_ERROR, message, status_code=status_code)
        return cls(RemoteErrorKind.UNKNOWN, message, status_code=status_code)


__all__ = [
    "CONNECTIVITY_KINDS",
    "RETRYABLE_KINDS",
    "RemoteError",
    "RemoteErrorKind",
]
