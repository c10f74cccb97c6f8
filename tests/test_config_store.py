from __future__ import annotations

from pathlib import Path

import pytest

from relay.config import store as config_store
from relay.config.schema import RelabelAction
from relay.errors import ConfigurationError


CONFIG_TEXT = """
kairosdb-url: http://kairos:8080
metricname-prefix: "prom."
timeout: 15s
dryrun: true
metric_relabel_configs:
  - source_labels: [job]
    regex: node
    action: keep
"""


def test_load_relay_config_from_yaml(tmp_path):
    path = tmp_path / "relay.yaml"
    path.write_text(CONFIG_TEXT, encoding="utf-8")

    config = config_store.load_relay_config(path)

    assert config.kairosdb_url == "http://kairos:8080"
    assert config.timeout_s == 15.0
    assert config.dryrun is True
    assert [rule.action for rule in config.relabel_rules] == [RelabelAction.KEEP, RelabelAction.ADDPREFIX]


def test_bundled_example_config_is_valid():
    config = config_store.load_relay_config(config_store.CONFIG_DIR / "relay.yaml")
    assert config.server.port == 9201
    assert config.relabel_rules


def test_resolve_config_path_falls_back_to_working_directory(tmp_path, monkeypatch):
    (tmp_path / "relay.yaml").write_text(CONFIG_TEXT, encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    assert config_store.resolve_config_path("relay.yaml") == Path("relay.yaml")
    assert config_store.load_relay_config("relay.yaml").kairosdb_url == "http://kairos:8080"


def test_empty_or_missing_config_file_is_rejected(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")

    with pytest.raises(FileNotFoundError):
        config_store.resolve_config_path(empty)
    with pytest.raises(FileNotFoundError):
        config_store.resolve_config_path(tmp_path / "missing.yaml")
    with pytest.raises(FileNotFoundError):
        config_store.resolve_config_path(tmp_path)


def test_non_mapping_yaml_is_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="mapping"):
        config_store.load_relay_config(path)


def test_environment_overrides_file_values():
    base = {"kairosdb-url": "http://kairos:8080", "timeout": 15, "server": {"port": 9201}}
    env = {
        "RELAY_KAIROSDB_URL": "https://other:8443",
        "RELAY_TIMEOUT_S": "20",
        "RELAY_DRYRUN": "true",
        "RELAY_SERVER_PORT": "9300",
    }

    config = config_store.relay_config_from_env(env, base=base)

    assert config.kairosdb_url == "https://other:8443"
    assert config.timeout_s == 20.0
    assert config.dryrun is True
    assert config.server.port == 9300
