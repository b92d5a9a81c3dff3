"""Service container used at the application-assembly boundary."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


class ServiceContainer:
    """Lazy registry of named services, each built at most once."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register ``factory``; any instance built from an older factory is dropped."""
        self._factories[key] = factory
        self._instances.pop(key, None)

    def register_instance(self, key: str, instance: Any) -> None:
        """Register an already-built service."""
        self._factories[key] = lambda _container: instance
        self._instances[key] = instance

    def resolve(self, key: str) -> Any:
        """Return the service for ``key``, building it on first use."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            raise KeyError(f"Service '{key}' is not registered")
        instance = self._factories[key](self)
        self._instances[key] = instance
        return instance

    def try_resolve(self, key: str) -> Any | None:
        try:
            return self.resolve(key)
        except KeyError:
            return None

    def is_registered(self, key: str) -> bool:
        return key in self._factories

    def built(self) -> dict[str, Any]:
        """Services that have been instantiated so far."""
        return dict(self._instances)

    def clear(self) -> None:
        """Forget built instances; factories stay registered."""
        self._instances.clear()


__all__ = ["ServiceContainer"]
