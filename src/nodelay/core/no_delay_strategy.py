"""Strategy that provisions executors as soon as work enters the queue.

Agents from fast-starting providers come up in seconds, so there is no point
waiting for load statistics to smooth out before asking for more capacity.
"""

from __future__ import annotations

import logging
from random import Random
from typing import Callable

from .capacity import available_capacity, capacity_shortfall, is_satisfied
from .providers import DEFAULT_PROVIDER_FAMILY, ProviderRegistry
from .provisioning_types import StrategyDecision, StrategyState
from .strategy_chain import ProvisioningStrategy

logger = logging.getLogger(__name__)

DisabledFlag = bool | Callable[[], bool]


def read_kill_switch(flag: DisabledFlag) -> bool:
    """Evaluate the kill switch; an unreadable switch counts as disabled."""
    try:
        return bool(flag() if callable(flag) else flag)
    except ValueError as exc:
        logger.warning("Could not read no-delay kill switch, deferring to other strategies: %s", exc)
        return True


class NoDelayProvisionerStrategy(ProvisioningStrategy):
    """Ask one randomly chosen eligible provider for the whole shortfall."""

    name = "no_delay"
    ordinal = 100

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        family: str = DEFAULT_PROVIDER_FAMILY,
        disabled: DisabledFlag = False,
        rng: Random | None = None,
    ) -> None:
        self._registry = registry
        self._family = family
        self._disabled = disabled
        self._rng = rng or Random()

    @property
    def family(self) -> str:
        return self._family

    def is_disabled(self) -> bool:
        return read_kill_switch(self._disabled)

    def apply(self, state: StrategyState) -> StrategyDecision:
        if self.is_disabled():
            logger.debug("Provisioning not complete, no-delay provisioning is disabled")
            return StrategyDecision.CONSULT_REMAINING

        label = state.label
        available = available_capacity(
            state.snapshot,
            planned_capacity_snapshot=state.planned_capacity_snapshot,
            additional_planned_capacity=state.additional_planned_capacity,
        )
        demand = state.snapshot.queue_length
        logger.debug("Label %s: available capacity=%d, current demand=%d", label, available, demand)

        if not is_satisfied(available=available, demand=demand):
            providers = self._registry.list()
            self._rng.shuffle(providers)
            for provider in providers:
                if not provider.matches_family(self._family):
                    continue
                if not provider.can_provision(label):
                    continue

                launches = provider.provision(label, capacity_shortfall(available=available, demand=demand))
                logger.debug("Provider %s planned %d new executors for %s", provider.name, len(launches), label)
                state.record_pending_launches(launches)
                available += len(launches)
                logger.debug(
                    "Label %s after provisioning: available capacity=%d, current demand=%d",
                    label,
                    available,
                    demand,
                )
                break

        if is_satisfied(available=available, demand=demand):
            logger.debug("Provisioning completed for %s", label)
            return StrategyDecision.COMPLETE
        logger.debug("Provisioning not complete for %s, consulting remaining strategies", label)
        return StrategyDecision.CONSULT_REMAINING
