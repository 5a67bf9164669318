"""Capacity providers and the registry that owns them."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Iterable

from .provisioning_types import PendingLaunch, ResourceLabel, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_FAMILY = "kubernetes"


class CapacityProvider(ABC):
    """Something that can create executors on demand.

    Providers belong to a family; a strategy only consults providers of its own
    family and leaves the others to independent strategies.
    """

    def __init__(self, *, name: str, family: str = DEFAULT_PROVIDER_FAMILY) -> None:
        if not name.strip():
            raise ValueError("Provider name must be non-empty.")
        if not family.strip():
            raise ValueError("Provider family must be non-empty.")
        self.name = name
        self.family = family

    def matches_family(self, family: str) -> bool:
        return self.family == family

    @abstractmethod
    def can_provision(self, label: ResourceLabel) -> bool:
        """Return True when this provider may supply executors for `label`."""

    @abstractmethod
    def provision(self, label: ResourceLabel, count: int) -> list[PendingLaunch]:
        """Request `count` executors for `label`; may return fewer."""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "family": self.family}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, family={self.family!r})"


class ProviderRegistry:
    """Process-wide provider membership, safe to mutate while rounds run."""

    def __init__(self, providers: Iterable[CapacityProvider] | None = None) -> None:
        self._lock = RLock()
        self._providers: dict[str, CapacityProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: CapacityProvider) -> None:
        with self._lock:
            if provider.name in self._providers:
                raise ValueError(f"Provider '{provider.name}' is already registered.")
            self._providers[provider.name] = provider
        logger.info("Registered provider %s (family=%s)", provider.name, provider.family)

    def unregister(self, name: str) -> CapacityProvider | None:
        with self._lock:
            provider = self._providers.pop(name, None)
        if provider is not None:
            logger.info("Unregistered provider %s", name)
        return provider

    def get(self, name: str) -> CapacityProvider | None:
        with self._lock:
            return self._providers.get(name)

    def list(self) -> list[CapacityProvider]:
        """Return a copy of current membership in registration order."""
        with self._lock:
            return list(self._providers.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)


class PoolProvider(CapacityProvider):
    """In-memory provider with an optional label set and a capacity cap.

    The cap counts launches that are pending or live; `release` frees a slot
    once an executor goes away.
    """

    def __init__(
        self,
        *,
        name: str,
        family: str = DEFAULT_PROVIDER_FAMILY,
        labels: Iterable[str] | None = None,
        max_capacity: int | None = None,
    ) -> None:
        super().__init__(name=name, family=family)
        if max_capacity is not None and max_capacity < 0:
            raise ValueError("max_capacity must be >= 0 when set.")
        self._labels = frozenset(labels) if labels is not None else None
        self._max_capacity = max_capacity
        self._lock = RLock()
        self._launches: dict[str, PendingLaunch] = {}

    @property
    def labels(self) -> frozenset[str] | None:
        return self._labels

    def _in_use_locked(self) -> int:
        return sum(1 for launch in self._launches.values() if launch.status in {"pending", "live"})

    def headroom(self) -> int | None:
        if self._max_capacity is None:
            return None
        with self._lock:
            return max(0, self._max_capacity - self._in_use_locked())

    def can_provision(self, label: ResourceLabel) -> bool:
        if self._labels is None:
            return True
        return label in self._labels

    def provision(self, label: ResourceLabel, count: int) -> list[PendingLaunch]:
        if count <= 0:
            return []
        with self._lock:
            granted = count
            if self._max_capacity is not None:
                granted = min(count, max(0, self._max_capacity - self._in_use_locked()))
            launches = [PendingLaunch.create(label=label, provider_name=self.name) for _ in range(granted)]
            for launch in launches:
                self._launches[launch.launch_id] = launch
        if granted < count:
            logger.info("Provider %s capped at %d of %d requested for %s", self.name, granted, count, label)
        return launches

    def _finish(self, launch_id: str, status: str) -> PendingLaunch | None:
        with self._lock:
            launch = self._launches.get(launch_id)
            if launch is None:
                return None
            launch.status = status  # type: ignore[assignment]
            launch.finished_at = utc_now_iso()
            if status == "failed":
                self._launches.pop(launch_id, None)
            return launch

    def mark_live(self, launch_id: str) -> PendingLaunch | None:
        return self._finish(launch_id, "live")

    def mark_failed(self, launch_id: str) -> PendingLaunch | None:
        return self._finish(launch_id, "failed")

    def release(self, launch_id: str) -> bool:
        with self._lock:
            return self._launches.pop(launch_id, None) is not None

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            in_use = self._in_use_locked()
        return {
            **super().to_dict(),
            "labels": sorted(self._labels) if self._labels is not None else None,
            "max_capacity": self._max_capacity,
            "in_use": in_use,
        }
