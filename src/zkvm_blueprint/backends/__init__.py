"""Prover backends and registry."""
from __future__ import annotations

from typing import Any

from zkvm_blueprint.errors import ConfigError
from zkvm_blueprint.prover import Prover

from .external import ExternalProver
from .local import LocalProver

PROVERS: dict[str, type[Prover]] = {
    LocalProver.name: LocalProver,
    ExternalProver.name: ExternalProver,
}


def get_prover(name: str, **options: Any) -> Prover:
    """Instantiate the backend registered under ``name``."""
    try:
        cls = PROVERS[name]
    except KeyError:
        raise ConfigError(f"unknown prover backend {name!r} (available: {', '.join(sorted(PROVERS))})") from None
    return cls(**options)


def default_prover(config: dict[str, Any]) -> Prover:
    """Build the prover selected by a loaded config."""
    prover_cfg = config.get("prover", {})
    name = prover_cfg.get("backend", LocalProver.name)
    if name == ExternalProver.name:
        external = prover_cfg.get("external", {})
        command = external.get("command")
        if not command:
            raise ConfigError("external prover selected but prover.external.command is not set")
        return get_prover(name, command=command, timeout_sec=float(external.get("timeout_sec", 3600)))
    return get_prover(name)


__all__ = ["PROVERS", "get_prover", "default_prover", "LocalProver", "ExternalProver"]
