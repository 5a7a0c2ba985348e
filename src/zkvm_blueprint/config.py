"""
zkvm-blueprint configuration.

Loads config from:
  1. Defaults
  2. User config (CLI --config or $ZKVM_BLUEPRINT_HOME/config.json,
     falling back to ~/.zkvm-blueprint/config.json)
  3. Environment variables

Environment overrides:
  ZKVM_PROVER                   prover.backend ("local" or "external")
  ZKVM_EXTERNAL_PROVER_CMD      prover.external.command
  ZKVM_EXTERNAL_PROVER_TIMEOUT  prover.external.timeout_sec
  ZKVM_SEGMENT_PO2              prover.segment_limit_po2
  ZKVM_RECEIPT_KIND             prover.receipt_kind
  ZKVM_GUEST_ELF                guest.elf_path
  ZKVM_LOG_LEVEL                logging.level
"""
from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .receipt import ReceiptKind

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "prover": {
        "backend": "local",
        "segment_limit_po2": 20,
        # Target of the compression stage; groth16 is the only kind the
        # on-chain verifier accepts.
        "receipt_kind": "groth16",
        "external": {
            "command": None,
            "timeout_sec": 3600,
        },
    },
    "guest": {
        # None -> built-in guest for the job
        "elf_path": None,
    },
    "logging": {
        "level": "INFO",
    },
}


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load config, layering file and environment overrides over defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    # Tests must not pick up a real user config from disk.
    is_pytest = bool(os.environ.get("PYTEST_CURRENT_TEST"))

    home = os.environ.get("ZKVM_BLUEPRINT_HOME")
    default_path = (Path(home) if home else Path.home() / ".zkvm-blueprint") / "config.json"

    path = Path(config_path) if config_path else default_path
    if is_pytest and config_path is None:
        path = None
    if config_path is not None and not path.exists():
        raise ConfigError(f"config file not found: {path}")
    if path is not None and path.exists():
        file_cfg = _read_json(path)
        config = _merge(config, file_cfg)
        logger.info("loaded config from %s", path)
    else:
        logger.debug("using default config (no config file found)")

    _apply_env_overrides(config)
    _validate(config)
    return config


def _read_json(path: Path) -> dict:
    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise ConfigError(f"could not read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


def _merge(base: dict, override: dict) -> dict:
    """Deep merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict) -> None:
    prover = config.setdefault("prover", {})
    external = prover.setdefault("external", {})

    backend = os.environ.get("ZKVM_PROVER")
    if backend:
        prover["backend"] = backend.strip().lower()

    command = os.environ.get("ZKVM_EXTERNAL_PROVER_CMD")
    if command:
        external["command"] = command

    timeout = os.environ.get("ZKVM_EXTERNAL_PROVER_TIMEOUT")
    if timeout:
        external["timeout_sec"] = _to_number(timeout, "ZKVM_EXTERNAL_PROVER_TIMEOUT", float)

    po2 = os.environ.get("ZKVM_SEGMENT_PO2")
    if po2:
        prover["segment_limit_po2"] = _to_number(po2, "ZKVM_SEGMENT_PO2", int)

    kind = os.environ.get("ZKVM_RECEIPT_KIND")
    if kind:
        prover["receipt_kind"] = kind.strip().lower()

    elf = os.environ.get("ZKVM_GUEST_ELF")
    if elf:
        config.setdefault("guest", {})["elf_path"] = elf

    level = os.environ.get("ZKVM_LOG_LEVEL")
    if level:
        config.setdefault("logging", {})["level"] = level.strip().upper()


def _to_number(raw: str, name: str, kind: type):
    try:
        return kind(raw)
    except ValueError:
        raise ConfigError(f"invalid {name}={raw!r}") from None


def _validate(config: dict) -> None:
    prover = config["prover"]
    try:
        ReceiptKind.parse(prover.get("receipt_kind", "groth16"))
    except ValueError as e:
        raise ConfigError(str(e)) from e
    po2 = prover.get("segment_limit_po2")
    if not isinstance(po2, int) or isinstance(po2, bool):
        raise ConfigError(f"prover.segment_limit_po2 must be an integer, got {po2!r}")
    level = config.get("logging", {}).get("level", "INFO")
    if not isinstance(logging.getLevelName(str(level).upper()), int):
        raise ConfigError(f"unknown log level {level!r}")


__all__ = ["DEFAULT_CONFIG", "load_config"]
