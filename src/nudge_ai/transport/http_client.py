"""httpx-based adapter implementing the remote generation interface."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

import httpx

from nudge_ai.core.config import RemoteSettings
from .errors import RemoteError, RemoteErrorKind

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RemoteRequest:
    """Transport-neutral description of one remote call."""

    method: str
    path: str
    body: Mapping[str, Any] | None = None
    params: Mapping[str, Any] = field(default_factory=dict)


class HttpGenerationClient:
    """Thin asynchronous client for the generation REST API."""

    def __init__(
        self,
        settings: RemoteSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create the client; ``transport`` lets tests substitute a mock."""
        self._settings = settings
        headers = {"Accept": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"
        self._client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/") + "/",
            headers=headers,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> HttpGenerationClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def provider_id(self) -> str:
        return f"http:{self._settings.base_url}"

    async def send(self, request: RemoteRequest) -> Mapping[str, Any]:
        """Execute ``request`` and return its decoded JSON object."""
        LOGGER.debug("Sending %s %s", request.method, request.path)
        try:
            response = await self._client.request(
                request.method,
                request.path.lstrip("/"),
                json=dict(request.body) if request.body is not None else None,
                params=dict(request.params) or None,
            )
        except httpx.TimeoutException as exc:
            raise RemoteError(RemoteErrorKind.TIMEOUT, str(exc)) from exc
        except httpx.TransportError as exc:
            raise RemoteError(RemoteErrorKind.CONNECTIVITY, str(exc)) from exc

        if response.is_error:
            raise RemoteError.from_status(
                response.status_code, _error_message(response)
            )

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RemoteError(
                RemoteErrorKind.DECODING_ERROR, "Response was not valid JSON"
            ) from exc
        if not isinstance(payload, dict):
            raise RemoteError(
                RemoteErrorKind.DECODING_ERROR, "Response was not a JSON object"
            )
        return payload

    async def close(self) -> None:
        """Release pooled connections."""
        await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text[:200]
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str):
                return value
    return ""


__all__ = ["HttpGenerationClient", "RemoteRequest"]
