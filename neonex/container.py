"""A small thread-safe dependency-injection container."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, Hashable


class ProviderType(Enum):
    """How a registered factory is used when resolving."""

    SINGLETON = auto()
    TRANSIENT = auto()


@dataclass
class _Provider:
    kind: ProviderType
    factory: Callable[[], Any]
    instance: Any = None
    created: bool = False


class Container:
    """Maps keys to factories and builds instances on demand."""

    def __init__(self) -> None:
        self._providers: Dict[Hashable, _Provider] = {}
        self._lock = threading.Lock()

    def provide(
        self,
        key: Hashable,
        factory: Callable[[], Any],
        provider_type: ProviderType = ProviderType.SINGLETON,
    ) -> None:
        """Register ``factory`` under ``key``, replacing any earlier one."""
        with self._lock:
            self._providers[key] = _Provider(provider_type, factory)

    def resolve(self, key: Hashable) -> Any:
        """Return the instance for ``key``, or None when nothing is registered."""
        with self._lock:
            provider = self._providers.get(key)
        if provider is None:
            return None

        if provider.kind is ProviderType.TRANSIENT:
            return provider.factory()

        with self._lock:
            if provider.created:
                return provider.instance

        # The factory runs without the lock so it may resolve its own dependencies.
        instance = provider.factory()

        with self._lock:
            if not provider.created:
                provider.instance = instance
                provider.created = True
            return provider.instance

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._providers