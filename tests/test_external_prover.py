"""Tests for the external prover host backend.

``subprocess.run`` is replaced by an in-process host that speaks the same
file protocol and delegates the actual work to a LocalProver.
"""
from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from zkvm_blueprint.backends import ExternalProver, LocalProver, default_prover, get_prover
from zkvm_blueprint.context import JobContext
from zkvm_blueprint.environment import ExecutorEnv
from zkvm_blueprint.errors import (
    CompressionError,
    ConfigError,
    ExecutionTrap,
    LocalVerificationError,
    PipelineError,
    ProofGenerationError,
)
from zkvm_blueprint.guests import XSQUARE
from zkvm_blueprint.identity import ProgramIdentity
from zkvm_blueprint.pipeline import Success, run_pipeline
from zkvm_blueprint.prover import ProverOpts
from zkvm_blueprint.receipt import Journal, Receipt, ReceiptKind
from zkvm_blueprint.serde import bytes_to_words


HOST_OPERATIONS = ("prove", "compress", "verify")


def _opts(args: list[str]) -> dict[str, str]:
    return {args[i][2:]: args[i + 1] for i in range(0, len(args) - 1, 2) if args[i].startswith("--")}


class FakeHost:
    """Stands in for the prover host binary."""

    def __init__(self):
        self.local = LocalProver()
        self.calls: list[list[str]] = []
        self.tamper_journal = False

    def __call__(self, cmd, capture_output=False, text=False, timeout=None, check=False):
        self.calls.append(list(cmd))
        pos = next(i for i, token in enumerate(cmd) if token in HOST_OPERATIONS)
        op, args = cmd[pos], _opts(cmd[pos + 1:])
        try:
            getattr(self, op)(args)
        except ExecutionTrap as exc:
            return subprocess.CompletedProcess(cmd, 2, stdout="", stderr=exc.message)
        except PipelineError as exc:
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr=exc.message)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def prove(self, args):
        env = ExecutorEnv(words=tuple(bytes_to_words(Path(args["input"]).read_bytes())))
        binary = Path(args["elf"]).read_bytes()
        info = self.local.prove(env, binary, ProverOpts(segment_limit_po2=int(args["segment-po2"])))
        payload = {
            "receipt": info.receipt.to_dict(),
            "stats": {
                "segments": info.stats.segments,
                "total_cycles": info.stats.total_cycles,
                "user_cycles": info.stats.user_cycles,
            },
        }
        Path(args["out"]).write_text(json.dumps(payload))

    def compress(self, args):
        receipt = Receipt.from_file(Path(args["receipt"]))
        opts = ProverOpts(receipt_kind=ReceiptKind.parse(args["kind"]))
        compressed = self.local.compress(opts, receipt)
        data = compressed.to_dict()
        if self.tamper_journal:
            data["journal"] = "00000000"
        Path(args["out"]).write_text(json.dumps(data))

    def verify(self, args):
        receipt = Receipt.from_file(Path(args["receipt"]))
        self.local.verify(receipt, ProgramIdentity.from_hex(args["image-id"]))


@pytest.fixture
def host(monkeypatch) -> FakeHost:
    fake = FakeHost()
    monkeypatch.setattr("zkvm_blueprint.backends.external.subprocess.run", fake)
    return fake


@pytest.fixture
def external() -> ExternalProver:
    return ExternalProver("r0-host --quiet", timeout_sec=30)


def test_command_split(external):
    assert external.command == ["r0-host", "--quiet"]
    assert external.get_info()["command"] == "r0-host --quiet"


def test_empty_command_rejected():
    with pytest.raises(ValueError):
        ExternalProver([])


def test_prove_passes_files(host, external):
    env = ExecutorEnv.builder().write(9, "u32").env_var("RUST_LOG", "info").build()
    info = external.prove(env, XSQUARE.binary, ProverOpts(segment_limit_po2=18))
    assert info.receipt.kind is ReceiptKind.COMPOSITE
    assert info.receipt.journal.decode("u32") == 81
    assert info.stats.segments >= 1

    cmd = host.calls[0]
    assert cmd[:3] == ["r0-host", "--quiet", "prove"]
    assert cmd[cmd.index("--segment-po2") + 1] == "18"
    assert cmd[cmd.index("--env") + 1] == "RUST_LOG=info"


def test_guest_trap_exit_code(host, external):
    env = ExecutorEnv.builder().write(70000, "u32").build()
    with pytest.raises(ExecutionTrap, match="overflow"):
        external.prove(env, XSQUARE.binary)


def test_host_failure(host, external):
    env = ExecutorEnv.builder().write(9, "u32").build()
    with pytest.raises(ProofGenerationError, match="exit code 1"):
        external.prove(env, b"not a registered guest")


def test_host_not_found(monkeypatch, external):
    def missing(*args, **kwargs):
        raise FileNotFoundError("r0-host")

    monkeypatch.setattr("zkvm_blueprint.backends.external.subprocess.run", missing)
    env = ExecutorEnv.builder().write(9, "u32").build()
    with pytest.raises(ProofGenerationError, match="not found"):
        external.prove(env, XSQUARE.binary)


def test_host_timeout(monkeypatch, external):
    def slow(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

    monkeypatch.setattr("zkvm_blueprint.backends.external.subprocess.run", slow)
    env = ExecutorEnv.builder().write(9, "u32").build()
    with pytest.raises(ProofGenerationError, match="timed out"):
        external.prove(env, XSQUARE.binary)


def test_compress_and_verify(host, external):
    env = ExecutorEnv.builder().write(5, "u32").build()
    receipt = external.prove(env, XSQUARE.binary).receipt
    compressed = external.compress(ProverOpts.groth16(), receipt)
    assert compressed.kind is ReceiptKind.GROTH16
    assert compressed.journal == receipt.journal
    external.verify(compressed, XSQUARE.image_id)
    assert [c[2] for c in host.calls] == ["prove", "compress", "verify"]


def test_compress_rejects_altered_journal(host, external):
    env = ExecutorEnv.builder().write(5, "u32").build()
    receipt = external.prove(env, XSQUARE.binary).receipt
    host.tamper_journal = True
    with pytest.raises(CompressionError, match="altered the journal"):
        external.compress(ProverOpts.groth16(), receipt)


def test_verify_rejection(host, external):
    env = ExecutorEnv.builder().write(5, "u32").build()
    receipt = external.prove(env, XSQUARE.binary).receipt
    with pytest.raises(LocalVerificationError, match="rejected"):
        external.verify(receipt, ProgramIdentity(b"\x01" * 32))


def test_pipeline_over_external_backend(host, external):
    ctx = JobContext.create(external, XSQUARE.binary)
    result = run_pipeline(ctx, [(9, "u32")])
    assert isinstance(result, Success)
    assert Journal(result.journal).decode("u32") == 81


def test_registry():
    assert isinstance(get_prover("local"), LocalProver)
    assert isinstance(get_prover("external", command="host"), ExternalProver)
    with pytest.raises(ConfigError, match="unknown prover backend"):
        get_prover("gpu")


def test_default_prover_from_config():
    config = {"prover": {"backend": "external", "external": {"command": "host run", "timeout_sec": 5}}}
    prover = default_prover(config)
    assert isinstance(prover, ExternalProver)
    assert prover.command == ["host", "run"]
    assert prover.timeout_sec == 5


def test_external_backend_requires_command():
    with pytest.raises(ConfigError, match="command is not set"):
        default_prover({"prover": {"backend": "external", "external": {"command": None}}})
