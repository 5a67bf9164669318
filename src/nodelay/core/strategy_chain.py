"""Ordered chain of provisioning strategies evaluated once per label per round."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable

from .provisioning_types import PendingLaunch, StrategyDecision, StrategyState

logger = logging.getLogger(__name__)


class ProvisioningStrategy(ABC):
    """One link of the chain. Higher `ordinal` runs earlier."""

    name: str = "strategy"
    ordinal: int = 0

    @abstractmethod
    def apply(self, state: StrategyState) -> StrategyDecision:
        """Inspect and extend `state`, then say whether the chain may stop."""


@dataclass(slots=True)
class ChainOutcome:
    """Result of one chain traversal for one label."""

    label: str
    decision: StrategyDecision
    consulted: list[str] = field(default_factory=list)
    completed_by: str | None = None
    launches: list[PendingLaunch] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "decision": self.decision.value,
            "consulted": list(self.consulted),
            "completed_by": self.completed_by,
            "launch_ids": [launch.launch_id for launch in self.launches],
        }


class StrategyChainRunner:
    """Run strategies in order and stop at the first `COMPLETE`."""

    def __init__(self, strategies: Iterable[ProvisioningStrategy] | None = None) -> None:
        self._strategies: list[ProvisioningStrategy] = []
        for strategy in strategies or []:
            self.add(strategy)

    def add(self, strategy: ProvisioningStrategy) -> None:
        self._strategies.append(strategy)
        # sort is stable, so equal ordinals keep registration order
        self._strategies.sort(key=lambda item: -int(item.ordinal))

    @property
    def strategies(self) -> list[ProvisioningStrategy]:
        return list(self._strategies)

    def run(self, state: StrategyState) -> ChainOutcome:
        already_recorded = len(state.pending_launches)
        outcome = ChainOutcome(label=state.label, decision=StrategyDecision.CONSULT_REMAINING)
        for strategy in self._strategies:
            outcome.consulted.append(strategy.name)
            decision = strategy.apply(state)
            if decision is StrategyDecision.COMPLETE:
                outcome.decision = decision
                outcome.completed_by = strategy.name
                break
        outcome.launches = list(state.pending_launches[already_recorded:])
        logger.debug(
            "Chain for %s finished with %s after %s",
            state.label,
            outcome.decision.value,
            outcome.consulted,
        )
        return outcome
