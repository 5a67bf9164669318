"""Load and query nodelay JSON config files."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("config/config.json")
DISABLE_ENV_VAR = "NODELAY_DISABLE_NO_DELAY_PROVISIONING"
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}
_CONFIG_CACHE: dict[Path, tuple[int, dict[str, Any]]] = {}


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    """Resolve config path against repo root.

    Priority:
    1. explicit function argument
    2. `NODELAY_CONFIG_PATH` environment variable
    3. default `config/config.json`
    """
    raw_path: str | Path | None = config_path or os.getenv("NODELAY_CONFIG_PATH")
    candidate = Path(raw_path) if raw_path else DEFAULT_CONFIG_PATH
    if not candidate.is_absolute():
        candidate = _repo_root() / candidate
    return candidate.resolve()


def load_config(config_path: str | Path | None = None, *, use_cache: bool = True) -> dict[str, Any]:
    """Load config JSON as a dictionary."""
    resolved = resolve_config_path(config_path)
    if not resolved.exists():
        raise FileNotFoundError(f"Config file not found: {resolved}")

    mtime_ns = resolved.stat().st_mtime_ns
    if use_cache and resolved in _CONFIG_CACHE:
        cached_mtime_ns, cached_payload = _CONFIG_CACHE[resolved]
        if cached_mtime_ns == mtime_ns:
            return cached_payload

    try:
        payload = json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file: {resolved}") from exc

    if not isinstance(payload, dict):
        raise ValueError(f"Config root must be a JSON object: {resolved}")

    _CONFIG_CACHE[resolved] = (mtime_ns, payload)
    return payload


def clear_config_cache() -> None:
    """Clear in-memory config cache."""
    _CONFIG_CACHE.clear()


def get_provisioner_config(config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return the `provisioner` section, or an empty dict when absent."""
    payload = config if config is not None else load_config()
    value = payload.get("provisioner")
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("Config provisioner must be a JSON object.")
    return value


def get_provider_family(config: dict[str, Any] | None = None) -> str:
    section = get_provisioner_config(config)
    family = section.get("provider_family", "kubernetes")
    if not isinstance(family, str) or not family.strip():
        raise ValueError("Config provisioner.provider_family must be a non-empty string.")
    return family


def get_providers_config(config: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    """Return provider definitions from `providers`.

    Each entry needs a unique non-empty `name`; `family`, `labels` and
    `max_capacity` are optional.
    """
    payload = config if config is not None else load_config()
    providers = payload.get("providers", [])
    if not isinstance(providers, list):
        raise ValueError("Config providers must be a JSON array.")

    out: list[dict[str, Any]] = []
    seen: set[str] = set()
    for item in providers:
        if not isinstance(item, dict):
            raise ValueError("Each provider entry must be a JSON object.")
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Each provider entry requires a non-empty string `name`.")
        if name in seen:
            raise ValueError(f"Provider name '{name}' is not unique.")
        seen.add(name)
        labels = item.get("labels")
        if labels is not None and (not isinstance(labels, list) or not all(isinstance(x, str) for x in labels)):
            raise ValueError(f"Provider '{name}' labels must be a list of strings.")
        max_capacity = item.get("max_capacity")
        if max_capacity is not None and (not isinstance(max_capacity, int) or max_capacity < 0):
            raise ValueError(f"Provider '{name}' max_capacity must be a non-negative int.")
        out.append(item)
    return out


def _parse_flag(raw: str) -> bool | None:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return None


def is_no_delay_provisioning_disabled(config: dict[str, Any] | None = None) -> bool:
    """Return the operator kill switch for the no-delay strategy.

    `NODELAY_DISABLE_NO_DELAY_PROVISIONING` wins over
    `provisioner.disable_no_delay_provisioning`. A missing config file means
    enabled.
    """
    env_value = os.getenv(DISABLE_ENV_VAR)
    if env_value is not None:
        parsed = _parse_flag(env_value)
        if parsed is not None:
            return parsed

    if config is None:
        try:
            config = load_config()
        except FileNotFoundError:
            return False
    return bool(get_provisioner_config(config).get("disable_no_delay_provisioning", False))
