"""Core provisioning utilities for nodelay."""

from .capacity import available_capacity, capacity_shortfall, is_satisfied
from .config_loader import (
    clear_config_cache,
    get_provider_family,
    get_providers_config,
    get_provisioner_config,
    is_no_delay_provisioning_disabled,
    load_config,
    resolve_config_path,
)
from .load_statistics import LoadStatistics
from .no_delay_strategy import NoDelayProvisionerStrategy, read_kill_switch
from .providers import DEFAULT_PROVIDER_FAMILY, CapacityProvider, PoolProvider, ProviderRegistry
from .provisioner_service import (
    ProvisionerService,
    ProvisionerSettings,
    build_registry_from_config,
    get_provisioner_service,
)
from .provisioning_types import (
    InvalidInputError,
    LoadSnapshot,
    PendingLaunch,
    ResourceLabel,
    StrategyDecision,
    StrategyState,
)
from .strategy_chain import ChainOutcome, ProvisioningStrategy, StrategyChainRunner

__all__ = [
    "available_capacity",
    "capacity_shortfall",
    "is_satisfied",
    "clear_config_cache",
    "get_provider_family",
    "get_providers_config",
    "get_provisioner_config",
    "is_no_delay_provisioning_disabled",
    "load_config",
    "resolve_config_path",
    "LoadStatistics",
    "NoDelayProvisionerStrategy",
    "read_kill_switch",
    "DEFAULT_PROVIDER_FAMILY",
    "CapacityProvider",
    "PoolProvider",
    "ProviderRegistry",
    "ProvisionerService",
    "ProvisionerSettings",
    "build_registry_from_config",
    "get_provisioner_service",
    "InvalidInputError",
    "LoadSnapshot",
    "PendingLaunch",
    "ResourceLabel",
    "StrategyDecision",
    "StrategyState",
    "ChainOutcome",
    "ProvisioningStrategy",
    "StrategyChainRunner",
]
