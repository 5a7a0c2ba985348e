"""Pytest configuration and fixtures for zkvm-blueprint tests."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Allow running the suite from a checkout without installing
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "src"))

from zkvm_blueprint.backends import LocalProver  # noqa: E402
from zkvm_blueprint.context import JobContext  # noqa: E402
from zkvm_blueprint.guests import XSQUARE, GuestEnv, GuestProgram  # noqa: E402


def echo_guest(env: GuestEnv) -> None:
    """Commit every u32 of a length-prefixed list, then the count."""
    values = env.read("list[u32]")
    for v in values:
        env.cycle(8)
        env.commit(v, "u32")
    env.commit(len(values), "u32")


ECHO = GuestProgram.from_function(echo_guest, name="echo")


@pytest.fixture
def echo_guest_program() -> GuestProgram:
    return ECHO


@pytest.fixture
def local_prover() -> LocalProver:
    return LocalProver(guests=[XSQUARE, ECHO])


@pytest.fixture
def ctx(local_prover) -> JobContext:
    """Context for the built-in xsquare guest."""
    return JobContext.create(local_prover, XSQUARE.binary)


@pytest.fixture
def echo_ctx(local_prover) -> JobContext:
    """Context for the echo guest with tiny segments so runs split."""
    return JobContext.create(local_prover, ECHO.binary, segment_limit_po2=4)
