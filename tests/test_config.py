"""Tests for layered configuration loading."""
from __future__ import annotations

import json

import pytest

from zkvm_blueprint.config import DEFAULT_CONFIG, load_config
from zkvm_blueprint.errors import ConfigError

ENV_VARS = [
    "ZKVM_PROVER",
    "ZKVM_EXTERNAL_PROVER_CMD",
    "ZKVM_EXTERNAL_PROVER_TIMEOUT",
    "ZKVM_SEGMENT_PO2",
    "ZKVM_RECEIPT_KIND",
    "ZKVM_GUEST_ELF",
    "ZKVM_LOG_LEVEL",
    "ZKVM_BLUEPRINT_HOME",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data))
    return path


def test_defaults():
    config = load_config()
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG
    config["prover"]["backend"] = "external"
    assert DEFAULT_CONFIG["prover"]["backend"] == "local"


def test_user_config_not_read_under_pytest(tmp_path, monkeypatch):
    monkeypatch.setenv("ZKVM_BLUEPRINT_HOME", str(tmp_path))
    write_config(tmp_path, {"prover": {"backend": "external"}})
    assert load_config()["prover"]["backend"] == "local"


def test_file_merged_over_defaults(tmp_path):
    path = write_config(tmp_path, {"prover": {"segment_limit_po2": 16, "external": {"command": "host"}}})
    config = load_config(path)
    assert config["prover"]["segment_limit_po2"] == 16
    assert config["prover"]["external"] == {"command": "host", "timeout_sec": 3600}
    assert config["prover"]["backend"] == "local"
    assert config["logging"]["level"] == "INFO"


def test_env_overrides_file(tmp_path, monkeypatch):
    path = write_config(tmp_path, {"prover": {"backend": "local", "segment_limit_po2": 16}})
    monkeypatch.setenv("ZKVM_PROVER", "External")
    monkeypatch.setenv("ZKVM_EXTERNAL_PROVER_CMD", "r0-host --fast")
    monkeypatch.setenv("ZKVM_EXTERNAL_PROVER_TIMEOUT", "90.5")
    monkeypatch.setenv("ZKVM_SEGMENT_PO2", "18")
    monkeypatch.setenv("ZKVM_RECEIPT_KIND", "Succinct")
    monkeypatch.setenv("ZKVM_GUEST_ELF", "/opt/guest.elf")
    monkeypatch.setenv("ZKVM_LOG_LEVEL", "debug")

    config = load_config(path)
    assert config["prover"]["backend"] == "external"
    assert config["prover"]["external"]["command"] == "r0-host --fast"
    assert config["prover"]["external"]["timeout_sec"] == 90.5
    assert config["prover"]["segment_limit_po2"] == 18
    assert config["prover"]["receipt_kind"] == "succinct"
    assert config["guest"]["elf_path"] == "/opt/guest.elf"
    assert config["logging"]["level"] == "DEBUG"


def test_missing_explicit_path(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.json")


def test_unreadable_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError, match="could not read"):
        load_config(path)


def test_non_object_file(tmp_path):
    path = write_config(tmp_path, ["local"])
    with pytest.raises(ConfigError, match="JSON object"):
        load_config(path)


@pytest.mark.parametrize(
    "name,value",
    [
        ("ZKVM_SEGMENT_PO2", "twenty"),
        ("ZKVM_EXTERNAL_PROVER_TIMEOUT", "soon"),
        ("ZKVM_RECEIPT_KIND", "plonk"),
        ("ZKVM_LOG_LEVEL", "chatty"),
    ],
)
def test_invalid_env_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError):
        load_config()


def test_non_integer_po2_in_file(tmp_path):
    path = write_config(tmp_path, {"prover": {"segment_limit_po2": "20"}})
    with pytest.raises(ConfigError, match="segment_limit_po2"):
        load_config(path)
