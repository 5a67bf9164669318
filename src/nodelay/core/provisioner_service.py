"""Provisioning loop: one strategy-chain round per label per tick."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from random import Random
from threading import Event, RLock, Thread
from typing import Any, Callable
from uuid import uuid4

from .config_loader import (
    get_provider_family,
    get_providers_config,
    get_provisioner_config,
    is_no_delay_provisioning_disabled,
    load_config,
)
from .load_statistics import LoadStatistics
from .no_delay_strategy import NoDelayProvisionerStrategy, read_kill_switch
from .providers import DEFAULT_PROVIDER_FAMILY, PoolProvider, ProviderRegistry
from .provisioning_types import PendingLaunch, ResourceLabel, StrategyState, utc_now_iso
from .strategy_chain import ChainOutcome, StrategyChainRunner

logger = logging.getLogger(__name__)

_MAX_EVENTS = 500
_MAX_FINISHED_LAUNCHES = 500


@dataclass(slots=True)
class ProvisionerSettings:
    enabled: bool = False
    poll_interval_sec: int = 10
    provider_family: str = DEFAULT_PROVIDER_FAMILY


def _load_provisioner_settings(config: dict[str, Any] | None = None) -> ProvisionerSettings:
    try:
        cfg = config if config is not None else load_config()
        section = get_provisioner_config(cfg)
        family = get_provider_family(cfg)
    except (FileNotFoundError, ValueError) as exc:
        logger.warning("Using default provisioner settings: %s", exc)
        return ProvisionerSettings()

    poll = section.get("poll_interval_sec", 10)
    return ProvisionerSettings(
        enabled=bool(section.get("enabled", False)),
        poll_interval_sec=int(poll) if isinstance(poll, int) and poll > 0 else 10,
        provider_family=family,
    )


def build_registry_from_config(config: dict[str, Any] | None = None) -> ProviderRegistry:
    """Build a registry of `PoolProvider`s from the `providers` config section."""
    registry = ProviderRegistry()
    try:
        cfg = config if config is not None else load_config()
    except FileNotFoundError as exc:
        logger.warning("No provider config loaded: %s", exc)
        return registry

    for item in get_providers_config(cfg):
        registry.register(
            PoolProvider(
                name=item["name"],
                family=str(item.get("family") or DEFAULT_PROVIDER_FAMILY),
                labels=item.get("labels"),
                max_capacity=item.get("max_capacity"),
            )
        )
    return registry


class ProvisionerService:
    """Single-process node provisioner.

    Owns the provider registry, the per-label load statistics, the strategy
    chain and the ledger of launches that have not materialized yet. Rounds for
    the same label are serialized; distinct labels do not block each other.
    """

    def __init__(
        self,
        *,
        registry: ProviderRegistry | None = None,
        load_statistics: LoadStatistics | None = None,
        runner: StrategyChainRunner | None = None,
        settings: ProvisionerSettings | None = None,
        disabled: bool | Callable[[], bool] | None = None,
        rng: Random | None = None,
    ) -> None:
        self._settings = settings or _load_provisioner_settings()
        self._registry = registry if registry is not None else build_registry_from_config()
        self._load = load_statistics if load_statistics is not None else LoadStatistics()
        self._disabled = disabled if disabled is not None else is_no_delay_provisioning_disabled
        if runner is None:
            runner = StrategyChainRunner(
                [
                    NoDelayProvisionerStrategy(
                        self._registry,
                        family=self._settings.provider_family,
                        disabled=self._disabled,
                        rng=rng,
                    )
                ]
            )
        self._runner = runner
        self._lock = RLock()
        self._label_locks: dict[ResourceLabel, RLock] = {}
        self._launches: dict[str, PendingLaunch] = {}
        self._events: list[dict[str, Any]] = []
        self._rounds_total = 0
        self._rounds_failed = 0
        self._stop_event = Event()
        self._loop_thread: Thread | None = None

    @property
    def settings(self) -> ProvisionerSettings:
        return self._settings

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def load_statistics(self) -> LoadStatistics:
        return self._load

    def _record_event(self, *, event_type: str, payload: dict[str, Any] | None = None) -> None:
        event = {
            "event_id": f"pevt_{uuid4().hex}",
            "type": event_type,
            "timestamp": utc_now_iso(),
            "payload": payload or {},
        }
        with self._lock:
            self._events.append(event)
            if len(self._events) > _MAX_EVENTS:
                self._events = self._events[-_MAX_EVENTS:]

    def _recent_events(self, *, limit: int = 20) -> list[dict[str, Any]]:
        safe_limit = max(1, min(200, int(limit)))
        with self._lock:
            return [dict(event) for event in self._events[-safe_limit:]]

    def _label_lock(self, label: ResourceLabel) -> RLock:
        with self._lock:
            lock = self._label_locks.get(label)
            if lock is None:
                lock = RLock()
                self._label_locks[label] = lock
            return lock

    def planned_capacity(self, label: ResourceLabel) -> int:
        """Count launches for `label` that were requested but are not live yet."""
        with self._lock:
            return sum(1 for launch in self._launches.values() if launch.label == label and launch.is_pending)

    def _prune_finished_locked(self) -> None:
        finished = [launch_id for launch_id, launch in self._launches.items() if not launch.is_pending]
        overflow = len(finished) - _MAX_FINISHED_LAUNCHES
        for launch_id in finished[: max(0, overflow)]:
            self._launches.pop(launch_id, None)

    def _run_label_round(self, label: ResourceLabel) -> ChainOutcome:
        with self._label_lock(label):
            state = StrategyState(
                label=label,
                snapshot=self._load.snapshot(label),
                planned_capacity_snapshot=self.planned_capacity(label),
            )
            try:
                outcome = self._runner.run(state)
            finally:
                # launches already created stay planned even when a later strategy raises
                with self._lock:
                    for launch in state.pending_launches:
                        self._launches[launch.launch_id] = launch
                    self._rounds_total += 1
        if outcome.launches:
            self._record_event(
                event_type="launches_planned",
                payload={"label": label, "count": len(outcome.launches), "decision": outcome.decision.value},
            )
        return outcome

    def run_round(self, *, label: ResourceLabel | None = None) -> dict[str, Any]:
        """Run the strategy chain once for `label`, or for every known label."""
        labels = [label] if label is not None else self._load.labels()
        rounds: list[dict[str, Any]] = []
        failures: list[dict[str, Any]] = []
        for item in labels:
            try:
                outcome = self._run_label_round(item)
            except Exception as exc:
                logger.exception("Provisioning round failed for label %s", item)
                with self._lock:
                    self._rounds_failed += 1
                failures.append({"label": item, "error": str(exc)})
                self._record_event(event_type="round_failed", payload={"label": item, "error": str(exc)})
                continue
            rounds.append(outcome.to_dict())
        return {"ok": not failures, "rounds": rounds, "failures": failures}

    def tick(self) -> dict[str, Any]:
        return self.run_round()

    def start(self) -> dict[str, Any]:
        with self._lock:
            if self._loop_thread is not None and self._loop_thread.is_alive():
                return {"ok": True, "running": True, "already_running": True}
            self._stop_event.clear()
            self._loop_thread = Thread(target=self._run_loop, daemon=True, name="nodelay-provisioner")
            self._loop_thread.start()
        logger.info("Provisioner loop started (poll_interval_sec=%d)", self._settings.poll_interval_sec)
        return {"ok": True, "running": True, "already_running": False}

    def stop(self) -> dict[str, Any]:
        with self._lock:
            thread = self._loop_thread
            self._stop_event.set()
        if thread is not None and thread.is_alive():
            thread.join(timeout=2.0)
        with self._lock:
            self._loop_thread = None
        logger.info("Provisioner loop stopped")
        return {"ok": True, "running": False}

    def is_running(self) -> bool:
        with self._lock:
            return self._loop_thread is not None and self._loop_thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=max(1, self._settings.poll_interval_sec))

    def update_load(
        self,
        *,
        label: ResourceLabel,
        live_executors: int = 0,
        connecting_executors: int = 0,
        queue_length: int = 0,
    ) -> dict[str, Any]:
        snapshot = self._load.update(
            label,
            live_executors=live_executors,
            connecting_executors=connecting_executors,
            queue_length=queue_length,
        )
        return {"ok": True, "label": label, "snapshot": snapshot.to_dict()}

    def list_launches(self, *, label: ResourceLabel | None = None, pending_only: bool = False) -> dict[str, Any]:
        with self._lock:
            launches = [
                launch.to_dict()
                for launch in self._launches.values()
                if (label is None or launch.label == label) and (not pending_only or launch.is_pending)
            ]
        return {"ok": True, "launches": launches}

    def _finish_launch(self, launch_id: str, status: str) -> dict[str, Any]:
        with self._lock:
            launch = self._launches.get(launch_id)
        if launch is None:
            return {"ok": False, "error": f"Unknown launch id: {launch_id}"}

        # status flip and load adjustment must look atomic to a round for the same label
        with self._label_lock(launch.label):
            with self._lock:
                if not launch.is_pending:
                    return {"ok": False, "error": f"Launch {launch_id} is already {launch.status}."}
                provider = self._registry.get(launch.provider_name)
                finished = None
                if isinstance(provider, PoolProvider):
                    finished = provider.mark_live(launch_id) if status == "live" else provider.mark_failed(launch_id)
                if finished is None:
                    launch.status = status  # type: ignore[assignment]
                    launch.finished_at = utc_now_iso()
                self._prune_finished_locked()
            if status == "live":
                self._load.adjust(launch.label, live_delta=1)

        self._record_event(
            event_type=f"launch_{status}",
            payload={"launch_id": launch_id, "label": launch.label, "provider_name": launch.provider_name},
        )
        return {"ok": True, "launch": launch.to_dict()}

    def complete_launch(self, *, launch_id: str) -> dict[str, Any]:
        """Mark a launch live and count it as a live executor for its label."""
        return self._finish_launch(launch_id, "live")

    def fail_launch(self, *, launch_id: str) -> dict[str, Any]:
        """Mark a launch failed so later rounds stop counting it as planned."""
        return self._finish_launch(launch_id, "failed")

    def release_launch(self, *, launch_id: str) -> dict[str, Any]:
        """Retire a live executor: free its provider slot and drop it from live load."""
        with self._lock:
            launch = self._launches.get(launch_id)
        if launch is None:
            return {"ok": False, "error": f"Unknown launch id: {launch_id}"}

        with self._label_lock(launch.label):
            with self._lock:
                if launch.status != "live":
                    return {"ok": False, "error": f"Launch {launch_id} is {launch.status}, only live launches can be released."}
                provider = self._registry.get(launch.provider_name)
                if isinstance(provider, PoolProvider):
                    provider.release(launch_id)
                launch.status = "released"
                launch.finished_at = utc_now_iso()
                self._prune_finished_locked()
            self._load.adjust(launch.label, live_delta=-1)

        self._record_event(
            event_type="launch_released",
            payload={"launch_id": launch_id, "label": launch.label, "provider_name": launch.provider_name},
        )
        return {"ok": True, "launch": launch.to_dict()}

    def status(self) -> dict[str, Any]:
        labels = []
        for label in self._load.labels():
            labels.append(
                {
                    "label": label,
                    "snapshot": self._load.snapshot(label).to_dict(),
                    "planned_capacity": self.planned_capacity(label),
                }
            )
        with self._lock:
            pending_count = sum(1 for launch in self._launches.values() if launch.is_pending)
            rounds_total = self._rounds_total
            rounds_failed = self._rounds_failed
        return {
            "ok": True,
            "service": {
                "running": self.is_running(),
                "enabled_in_config": self._settings.enabled,
                "poll_interval_sec": self._settings.poll_interval_sec,
                "provider_family": self._settings.provider_family,
                "no_delay_disabled": read_kill_switch(self._disabled),
            },
            "strategies": [strategy.name for strategy in self._runner.strategies],
            "providers": [provider.to_dict() for provider in self._registry.list()],
            "labels": labels,
            "runtime": {
                "pending_launch_count": pending_count,
                "rounds_total": rounds_total,
                "rounds_failed": rounds_failed,
            },
            "recent_events": self._recent_events(limit=20),
        }


_PROVISIONER_SERVICE: ProvisionerService | None = None


def get_provisioner_service() -> ProvisionerService:
    global _PROVISIONER_SERVICE
    if _PROVISIONER_SERVICE is None:
        _PROVISIONER_SERVICE = ProvisionerService()
    return _PROVISIONER_SERVICE
