"""In-memory per-label load statistics."""

from __future__ import annotations

from threading import RLock

from .provisioning_types import LoadSnapshot, ResourceLabel


class LoadStatistics:
    """Latest demand/capacity reading for each label.

    Readers always get an immutable `LoadSnapshot`; writers replace the whole
    reading for a label.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._snapshots: dict[ResourceLabel, LoadSnapshot] = {}

    def update(
        self,
        label: ResourceLabel,
        *,
        live_executors: int = 0,
        connecting_executors: int = 0,
        queue_length: int = 0,
    ) -> LoadSnapshot:
        snapshot = LoadSnapshot(
            live_executors=live_executors,
            connecting_executors=connecting_executors,
            queue_length=queue_length,
        )
        with self._lock:
            self._snapshots[label] = snapshot
        return snapshot

    def adjust(
        self,
        label: ResourceLabel,
        *,
        live_delta: int = 0,
        connecting_delta: int = 0,
        queue_delta: int = 0,
    ) -> LoadSnapshot:
        """Shift a label's reading by the given deltas, clamping at zero."""
        with self._lock:
            current = self._snapshots.get(label) or LoadSnapshot()
            snapshot = LoadSnapshot(
                live_executors=max(0, current.live_executors + live_delta),
                connecting_executors=max(0, current.connecting_executors + connecting_delta),
                queue_length=max(0, current.queue_length + queue_delta),
            )
            self._snapshots[label] = snapshot
        return snapshot

    def snapshot(self, label: ResourceLabel) -> LoadSnapshot:
        with self._lock:
            return self._snapshots.get(label) or LoadSnapshot()

    def labels(self) -> list[ResourceLabel]:
        with self._lock:
            return sorted(self._snapshots)

    def forget(self, label: ResourceLabel) -> bool:
        with self._lock:
            return self._snapshots.pop(label, None) is not None
