"""Capacity arithmetic for provisioning decisions."""

from __future__ import annotations

from .provisioning_types import LoadSnapshot


def available_capacity(
    snapshot: LoadSnapshot,
    *,
    planned_capacity_snapshot: int,
    additional_planned_capacity: int,
) -> int:
    """Return capacity that will serve demand without further action.

    Sums live executors, connecting executors, capacity planned in earlier
    rounds and capacity planned earlier in the current round.
    """
    return (
        snapshot.live_executors
        + snapshot.connecting_executors
        + planned_capacity_snapshot
        + additional_planned_capacity
    )


def capacity_shortfall(*, available: int, demand: int) -> int:
    return max(0, demand - available)


def is_satisfied(*, available: int, demand: int) -> bool:
    return available >= demand
