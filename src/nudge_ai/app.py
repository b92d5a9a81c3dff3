"""Default wiring of the generation services."""

from __future__ import annotations

import logging

from nudge_ai.cache import CacheManager
from nudge_ai.core.config import AppSettings, load_app_settings
from nudge_ai.core.container import ServiceContainer
from nudge_ai.core.interfaces import RemoteGenerationClient, UserChangeListener
from nudge_ai.intelligence import (
    ConnectionQualityMonitor,
    FallbackMessageGenerator,
    ResilientOrchestrator,
)
from nudge_ai.storage import SqliteMessageStore
from nudge_ai.transport import HttpGenerationClient

LOGGER = logging.getLogger(__name__)

SETTINGS = "settings"
CACHE = "cache"
MONITOR = "monitor"
STORE = "store"
CLIENT = "client"
FALLBACK = "fallback"
ORCHESTRATOR = "orchestrator"


def build_container(
    settings: AppSettings | None = None,
    *,
    client: RemoteGenerationClient | None = None,
) -> ServiceContainer:
    """Register the default services; nothing is built until resolved.

    Pass ``client`` to use a remote client other than the HTTP adapter.
    """
    container = ServiceContainer()
    container.register_instance(SETTINGS, settings or load_app_settings())

    container.register(
        CACHE, lambda c: CacheManager.from_settings(c.resolve(SETTINGS).cache)
    )
    container.register(
        MONITOR, lambda c: ConnectionQualityMonitor(c.resolve(SETTINGS).connection)
    )
    container.register(
        STORE, lambda c: SqliteMessageStore(c.resolve(SETTINGS).storage)
    )
    container.register(
        FALLBACK,
        lambda c: FallbackMessageGenerator(
            message_count=c.resolve(SETTINGS).generation.fallback_message_count
        ),
    )
    if client is not None:
        container.register_instance(CLIENT, client)
    else:
        container.register(
            CLIENT, lambda c: HttpGenerationClient(c.resolve(SETTINGS).remote)
        )
    container.register(
        ORCHESTRATOR,
        lambda c: ResilientOrchestrator(
            c.resolve(CLIENT),
            c.resolve(STORE),
            c.resolve(MONITOR),
            c.resolve(CACHE),
            settings=c.resolve(SETTINGS),
            fallback=c.resolve(FALLBACK),
        ),
    )
    return container


async def shutdown(container: ServiceContainer) -> None:
    """Release resources held by services that were built."""
    built = container.built()
    orchestrator = built.get(ORCHESTRATOR)
    if orchestrator is not None:
        await orchestrator.drain()
    cache = built.get(CACHE)
    if cache is not None:
        await cache.aclose()
    client = built.get(CLIENT)
    if isinstance(client, HttpGenerationClient):
        await client.close()
    store = built.get(STORE)
    if store is not None:
        store.close()
    container.clear()
    LOGGER.debug("Released %d services", len(built))


def notify_user_changed(container: ServiceContainer, user_id: str | None) -> None:
    """Forward a sign-in, sign-out or account switch to the built services."""
    built = container.built()
    for key in (ORCHESTRATOR, STORE):
        service: UserChangeListener | None = built.get(key)
        if service is not None:
            service.on_user_changed(user_id)


__all__ = [
    "CACHE",
    "CLIENT",
    "FALLBACK",
    "MONITOR",
    "ORCHESTRATOR",
    "SETTINGS",
    "STORE",
    "build_container",
    "notify_user_changed",
    "shutdown",
]
