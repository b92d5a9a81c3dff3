"""Transport adapters and the remote error taxonomy."""

from .errors import RETRYABLE_KINDS, RemoteError, RemoteErrorKind
from .http_client import HttpGenerationClient, RemoteRequest

__all__ = [
    "HttpGenerationClient",
    "RETRYABLE_KINDS",
    "RemoteError",
    "RemoteErrorKind",
    "RemoteRequest",
]
