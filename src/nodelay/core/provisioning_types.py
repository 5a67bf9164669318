"""Core schemas for provisioning strategy rounds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Literal
from uuid import uuid4

ResourceLabel = str
LaunchStatus = Literal["pending", "live", "failed", "released"]


class InvalidInputError(ValueError):
    """Raised when snapshot or round-state values break the caller contract."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_non_negative_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an int, got {type(value).__name__}.")
    if value < 0:
        raise InvalidInputError(f"{name} must be >= 0, got {value}.")
    return value


class StrategyDecision(str, Enum):
    """Verdict returned by a strategy to the chain runner."""

    COMPLETE = "complete"
    CONSULT_REMAINING = "consult_remaining"


@dataclass(frozen=True, slots=True)
class LoadSnapshot:
    """Point-in-time demand and capacity for one label."""

    live_executors: int = 0
    connecting_executors: int = 0
    queue_length: int = 0

    def __post_init__(self) -> None:
        _require_non_negative_int("LoadSnapshot.live_executors", self.live_executors)
        _require_non_negative_int("LoadSnapshot.connecting_executors", self.connecting_executors)
        _require_non_negative_int("LoadSnapshot.queue_length", self.queue_length)

    def to_dict(self) -> dict[str, Any]:
        return {
            "live_executors": self.live_executors,
            "connecting_executors": self.connecting_executors,
            "queue_length": self.queue_length,
        }


@dataclass(slots=True)
class PendingLaunch:
    """Capacity requested from a provider that is not live yet."""

    launch_id: str
    label: ResourceLabel
    provider_name: str
    status: LaunchStatus = "pending"
    requested_at: str = field(default_factory=utc_now_iso)
    finished_at: str | None = None

    def __post_init__(self) -> None:
        if not self.launch_id.strip():
            raise InvalidInputError("PendingLaunch.launch_id must be non-empty.")
        if self.status not in {"pending", "live", "failed", "released"}:
            raise InvalidInputError("PendingLaunch.status must be one of: pending, live, failed, released.")

    @classmethod
    def create(cls, *, label: ResourceLabel, provider_name: str) -> "PendingLaunch":
        return cls(launch_id=f"launch_{uuid4().hex}", label=label, provider_name=provider_name)

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    def to_dict(self) -> dict[str, Any]:
        return {
            "launch_id": self.launch_id,
            "label": self.label,
            "provider_name": self.provider_name,
            "status": self.status,
            "requested_at": self.requested_at,
            "finished_at": self.finished_at,
        }


class StrategyState:
    """Per-round, per-label accumulator shared by every strategy in one chain traversal.

    `record_pending_launches` is the only way to grow `additional_planned_capacity`;
    appending a batch and accounting for it happen in one call so a later strategy
    in the same round never sees launches it cannot count.

    Not safe for concurrent mutation: one chain traversal owns a state at a time.
    """

    __slots__ = ("_label", "_snapshot", "_planned_capacity_snapshot", "_additional_planned_capacity", "_pending_launches")

    def __init__(
        self,
        *,
        label: ResourceLabel,
        snapshot: LoadSnapshot,
        planned_capacity_snapshot: int = 0,
    ) -> None:
        if label is None:
            raise InvalidInputError("StrategyState.label must not be None.")
        self._label = label
        self._snapshot = snapshot
        self._planned_capacity_snapshot = _require_non_negative_int(
            "StrategyState.planned_capacity_snapshot", planned_capacity_snapshot
        )
        self._additional_planned_capacity = 0
        self._pending_launches: list[PendingLaunch] = []

    @property
    def label(self) -> ResourceLabel:
        return self._label

    @property
    def snapshot(self) -> LoadSnapshot:
        return self._snapshot

    @property
    def planned_capacity_snapshot(self) -> int:
        """Capacity requested in earlier rounds that has not materialized yet."""
        return self._planned_capacity_snapshot

    @property
    def additional_planned_capacity(self) -> int:
        """Capacity requested by strategies earlier in this round."""
        return self._additional_planned_capacity

    @property
    def pending_launches(self) -> tuple[PendingLaunch, ...]:
        return tuple(self._pending_launches)

    def record_pending_launches(self, launches: Iterable[PendingLaunch]) -> int:
        """Append `launches` and count them as planned capacity for this round.

        Returns the updated `additional_planned_capacity`.
        """
        batch = list(launches)
        self._pending_launches.extend(batch)
        self._additional_planned_capacity += len(batch)
        return self._additional_planned_capacity

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self._label,
            "snapshot": self._snapshot.to_dict(),
            "planned_capacity_snapshot": self._planned_capacity_snapshot,
            "additional_planned_capacity": self._additional_planned_capacity,
            "pending_launches": [launch.to_dict() for launch in self._pending_launches],
        }
