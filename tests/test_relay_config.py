"""Tests for relay configuration loading and candidate ports."""

from __future__ import annotations

import json
import random
from pathlib import Path

import pytest

from logtap.config import (
    RelayConfig,
    candidate_ports,
    get_config_path,
    load_relay_config,
    load_relay_config_strict,
)
from logtap.constants import (
    DEFAULT_RANDOM_PORT_RETRIES,
    DEFAULT_RELAY_HOST,
    DEFAULT_RELAY_PORT,
    ENV_CONFIG_PATH,
    ENV_DISABLED,
    ENV_HOST,
    ENV_PORT,
    MAX_PORT,
    MIN_PORT,
)
from logtap.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (ENV_CONFIG_PATH, ENV_DISABLED, ENV_HOST, ENV_PORT):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "logtap.json"
    path.write_text(content, encoding="utf-8")
    return path


class TestRelayConfig:
    def test_defaults(self) -> None:
        config = RelayConfig()

        assert config.host == DEFAULT_RELAY_HOST
        assert config.port == DEFAULT_RELAY_PORT
        assert config.random_port_retries == DEFAULT_RANDOM_PORT_RETRIES
        assert config.root_level == "INFO"
        assert config.log_dir is None
        assert config.enabled is True

    @pytest.mark.parametrize("port", [0, 80, 1023, 65536])
    def test_port_out_of_range(self, port: int) -> None:
        with pytest.raises(ValueError):
            RelayConfig(port=port)

    def test_unknown_fields_ignored(self) -> None:
        config = RelayConfig.model_validate({"port": 2000, "future_option": True})

        assert config.port == 2000


class TestGetConfigPath:
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv(ENV_CONFIG_PATH, str(tmp_path / "custom.json"))

        assert get_config_path() == tmp_path / "custom.json"

    def test_default_location(self) -> None:
        assert get_config_path().name == "logtap.json"


class TestLoadRelayConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_relay_config(tmp_path / "absent.json") == RelayConfig()

    def test_reads_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path, json.dumps({"port": 4000, "root_level": "DEBUG", "random_port_retries": 2}))

        config = load_relay_config(path)

        assert config.port == 4000
        assert config.root_level == "DEBUG"
        assert config.random_port_retries == 2

    def test_invalid_json_gives_defaults(self, tmp_path: Path) -> None:
        assert load_relay_config(_write(tmp_path, "{not json")) == RelayConfig()

    def test_non_object_gives_defaults(self, tmp_path: Path) -> None:
        assert load_relay_config(_write(tmp_path, "[1, 2]")) == RelayConfig()

    def test_invalid_values_give_defaults(self, tmp_path: Path) -> None:
        assert load_relay_config(_write(tmp_path, json.dumps({"port": 80}))) == RelayConfig()

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        path = _write(tmp_path, json.dumps({"port": 4000, "host": "127.0.0.1"}))
        monkeypatch.setenv(ENV_PORT, "4100")
        monkeypatch.setenv(ENV_HOST, "0.0.0.0")

        config = load_relay_config(path)

        assert config.port == 4100
        assert config.host == "0.0.0.0"

    @pytest.mark.parametrize(("value", "enabled"), [("1", False), ("true", False), ("YES", False), ("0", True), ("", True)])
    def test_disabled_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path, value: str, enabled: bool) -> None:
        monkeypatch.setenv(ENV_DISABLED, value)

        assert load_relay_config(tmp_path / "absent.json").enabled is enabled

    def test_uses_env_config_path(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        path = _write(tmp_path, json.dumps({"port": 4321}))
        monkeypatch.setenv(ENV_CONFIG_PATH, str(path))

        assert load_relay_config().port == 4321


class TestLoadRelayConfigStrict:
    def test_valid(self, tmp_path: Path) -> None:
        config = load_relay_config_strict(_write(tmp_path, json.dumps({"enabled": False})))

        assert config.enabled is False

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_relay_config_strict(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_relay_config_strict(_write(tmp_path, "{not json"))

    def test_non_object(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="expected a JSON object"):
            load_relay_config_strict(_write(tmp_path, '"text"'))

    def test_invalid_values(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Invalid config"):
            load_relay_config_strict(_write(tmp_path, json.dumps({"random_port_retries": -1})))


class TestCandidatePorts:
    def test_configured_port_first(self) -> None:
        ports = candidate_ports(RelayConfig(port=4000, random_port_retries=5), rng=random.Random(7))

        assert ports[0] == 4000
        assert len(ports) == 6
        assert all(MIN_PORT <= port <= MAX_PORT for port in ports[1:])

    def test_seeded_rng_is_reproducible(self) -> None:
        config = RelayConfig(random_port_retries=3)

        assert candidate_ports(config, rng=random.Random(1)) == candidate_ports(config, rng=random.Random(1))

    def test_no_retries(self) -> None:
        assert candidate_ports(RelayConfig(port=4000, random_port_retries=0)) == [4000]
