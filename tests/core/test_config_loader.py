import json
from pathlib import Path

import pytest

from src.nodelay.core.config_loader import (
    DISABLE_ENV_VAR,
    clear_config_cache,
    get_provider_family,
    get_providers_config,
    get_provisioner_config,
    is_no_delay_provisioning_disabled,
    load_config,
    resolve_config_path,
)


def _write_json(path: Path, payload: dict) -> None:
    path.write_text(json.dumps(payload), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(DISABLE_ENV_VAR, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


def test_resolve_config_path_uses_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    config_path = tmp_path / "custom.json"
    _write_json(config_path, {"ok": True})
    monkeypatch.setenv("NODELAY_CONFIG_PATH", str(config_path))

    assert resolve_config_path() == config_path.resolve()


def test_explicit_path_wins_over_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NODELAY_CONFIG_PATH", str(tmp_path / "env.json"))
    explicit = tmp_path / "explicit.json"
    assert resolve_config_path(explicit) == explicit.resolve()


def test_load_config_reads_json_file(tmp_path: Path):
    config_path = tmp_path / "config.json"
    payload = {"provisioner": {"poll_interval_sec": 5}}
    _write_json(config_path, payload)

    assert load_config(config_path=config_path, use_cache=False) == payload


def test_load_config_missing_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError, match="Config file not found"):
        load_config(config_path=tmp_path / "missing.json")


def test_load_config_invalid_json_raises_value_error(tmp_path: Path):
    config_path = tmp_path / "config.json"
    config_path.write_text("{ invalid", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid JSON in config file"):
        load_config(config_path=config_path, use_cache=False)


def test_load_config_non_object_root_raises(tmp_path: Path):
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError, match="Config root must be a JSON object"):
        load_config(config_path=config_path, use_cache=False)


def test_load_config_cache_returns_same_payload(tmp_path: Path):
    config_path = tmp_path / "config.json"
    _write_json(config_path, {"provisioner": {}})

    first = load_config(config_path=config_path)
    second = load_config(config_path=config_path)
    assert first is second


def test_provisioner_section_helpers():
    config = {"provisioner": {"provider_family": "ec2", "enabled": True}}
    assert get_provisioner_config(config) == {"provider_family": "ec2", "enabled": True}
    assert get_provider_family(config) == "ec2"
    assert get_provisioner_config({}) == {}
    assert get_provider_family({}) == "kubernetes"


def test_provisioner_section_must_be_object():
    with pytest.raises(ValueError, match="provisioner must be a JSON object"):
        get_provisioner_config({"provisioner": []})
    with pytest.raises(ValueError, match="provider_family"):
        get_provider_family({"provisioner": {"provider_family": ""}})


def test_providers_config_validates_entries():
    config = {
        "providers": [
            {"name": "k8s-east", "labels": ["linux"], "max_capacity": 4},
            {"name": "ec2", "family": "ec2"},
        ]
    }
    assert [item["name"] for item in get_providers_config(config)] == ["k8s-east", "ec2"]
    assert get_providers_config({}) == []

    with pytest.raises(ValueError, match="JSON array"):
        get_providers_config({"providers": {}})
    with pytest.raises(ValueError, match="non-empty string `name`"):
        get_providers_config({"providers": [{"labels": []}]})
    with pytest.raises(ValueError, match="not unique"):
        get_providers_config({"providers": [{"name": "a"}, {"name": "a"}]})
    with pytest.raises(ValueError, match="labels must be a list of strings"):
        get_providers_config({"providers": [{"name": "a", "labels": "linux"}]})
    with pytest.raises(ValueError, match="max_capacity"):
        get_providers_config({"providers": [{"name": "a", "max_capacity": -1}]})


def test_kill_switch_reads_config_value():
    assert is_no_delay_provisioning_disabled({"provisioner": {"disable_no_delay_provisioning": True}}) is True
    assert is_no_delay_provisioning_disabled({"provisioner": {}}) is False


def test_kill_switch_env_var_overrides_config(monkeypatch: pytest.MonkeyPatch):
    config = {"provisioner": {"disable_no_delay_provisioning": False}}
    monkeypatch.setenv(DISABLE_ENV_VAR, "true")
    assert is_no_delay_provisioning_disabled(config) is True

    monkeypatch.setenv(DISABLE_ENV_VAR, "0")
    assert is_no_delay_provisioning_disabled({"provisioner": {"disable_no_delay_provisioning": True}}) is False


def test_kill_switch_ignores_unparseable_env_value(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(DISABLE_ENV_VAR, "maybe")
    assert is_no_delay_provisioning_disabled({"provisioner": {"disable_no_delay_provisioning": True}}) is True


def test_kill_switch_defaults_to_enabled_without_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NODELAY_CONFIG_PATH", str(tmp_path / "missing.json"))
    assert is_no_delay_provisioning_disabled() is False


def test_kill_switch_is_read_at_call_time(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    config_path = tmp_path / "config.json"
    monkeypatch.setenv("NODELAY_CONFIG_PATH", str(config_path))
    _write_json(config_path, {"provisioner": {"disable_no_delay_provisioning": False}})
    assert is_no_delay_provisioning_disabled() is False

    monkeypatch.setenv(DISABLE_ENV_VAR, "yes")
    assert is_no_delay_provisioning_disabled() is True
