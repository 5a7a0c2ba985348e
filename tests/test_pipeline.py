"""End-to-end tests for the proving pipeline."""
from __future__ import annotations

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from zkvm_blueprint.abi import decode_job_inputs, split_seal
from zkvm_blueprint.context import JobContext
from zkvm_blueprint.errors import (
    CompressionError,
    EncodingError,
    EnvironmentBuildError,
    ExecutionTrap,
    LocalVerificationError,
    Stage,
)
from zkvm_blueprint.guests import XSQUARE
from zkvm_blueprint.identity import compute_image_id
from zkvm_blueprint.log import GADGET_LOGGER
from zkvm_blueprint.pipeline import Failure, Success, prove_and_encode, run_pipeline
from zkvm_blueprint.receipt import Journal


def test_x_equals_9_end_to_end(ctx):
    result = run_pipeline(ctx, [(9, "u32")])
    assert isinstance(result, Success)
    assert Journal(result.journal).decode("u32") == 81

    decoded = decode_job_inputs(result.output)
    assert decoded.journal_data == result.journal
    assert decoded.seal == result.seal
    selector, proof = split_seal(decoded.seal)
    assert selector == ctx.verifier_parameters.selector
    assert len(proof) == 256
    assert result.image_id == compute_image_id(XSQUARE.binary).hex


def test_all_stages_timed(ctx):
    result = run_pipeline(ctx, [(4, "u32")])
    assert list(result.timings) == [s.value for s in Stage]
    assert result.stats.segments == 1


def test_outputs_differ_only_in_seal(ctx):
    a = run_pipeline(ctx, [(9, "u32")])
    b = run_pipeline(ctx, [(9, "u32")])
    assert a.journal == b.journal
    assert a.seal != b.seal


def test_multi_segment_run(echo_ctx):
    result = run_pipeline(echo_ctx, [(list(range(8)), "list[u32]")])
    assert isinstance(result, Success)
    assert result.stats.segments > 1


def test_build_failure_never_reaches_prover(ctx, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("prover must not run")

    monkeypatch.setattr(ctx.prover, "prove", fail)
    result = run_pipeline(ctx, [(None, "u32")])
    assert isinstance(result, Failure)
    assert result.stage is Stage.BUILD
    assert isinstance(result.error, EnvironmentBuildError)
    assert list(result.timings) == ["build"]


def test_guest_trap_reported_as_trap(ctx):
    result = run_pipeline(ctx, [(1 << 20, "u32")])
    assert isinstance(result, Failure)
    assert result.stage is Stage.PROVE
    assert isinstance(result.error, ExecutionTrap)


def test_compression_failure(ctx, monkeypatch):
    def fail(opts, receipt):
        raise CompressionError("receipt missing continuation data")

    monkeypatch.setattr(ctx.prover, "compress", fail)
    result = run_pipeline(ctx, [(9, "u32")])
    assert result.stage is Stage.COMPRESS
    assert isinstance(result.error, CompressionError)


def test_unexpected_error_wrapped_with_stage(ctx, monkeypatch):
    def explode(opts, receipt):
        raise RuntimeError("device lost")

    monkeypatch.setattr(ctx.prover, "compress", explode)
    result = run_pipeline(ctx, [(9, "u32")])
    assert isinstance(result.error, CompressionError)
    assert isinstance(result.error.__cause__, RuntimeError)


def test_journal_altering_compressor_rejected(ctx, monkeypatch):
    real = ctx.prover.compress

    def alter(opts, receipt):
        compressed = real(opts, receipt)
        return type(compressed)(inner=compressed.inner, journal=Journal(b"\x00" * 4), claim=compressed.claim)

    monkeypatch.setattr(ctx.prover, "compress", alter)
    result = run_pipeline(ctx, [(9, "u32")])
    assert result.stage is Stage.COMPRESS


def test_failed_verification_blocks_encoding(ctx, monkeypatch):
    def reject(self, receipt, image_id):
        raise LocalVerificationError("receipt was not produced by the expected program")

    encoded = []
    monkeypatch.setattr("zkvm_blueprint.pipeline.LocalVerifier.verify", reject)
    monkeypatch.setattr("zkvm_blueprint.pipeline.encode_job_inputs", lambda *a: encoded.append(a))
    result = run_pipeline(ctx, [(9, "u32")])
    assert isinstance(result, Failure)
    assert result.stage is Stage.VERIFY
    assert encoded == []


def test_succinct_target_fails_at_encode(local_prover):
    ctx = JobContext.create(local_prover, XSQUARE.binary, receipt_kind="succinct")
    result = run_pipeline(ctx, [(9, "u32")])
    assert result.stage is Stage.ENCODE
    assert isinstance(result.error, EncodingError)


def test_prove_and_encode_raises_typed_error(ctx):
    with pytest.raises(ExecutionTrap):
        prove_and_encode(ctx, [(70000, "u32")])
    assert decode_job_inputs(prove_and_encode(ctx, [(2, "u32")])).journal_data == (4).to_bytes(4, "little")


def test_context_rejects_foreign_identity(local_prover):
    with pytest.raises(ValueError, match="not derived"):
        JobContext(
            prover=local_prover,
            guest_binary=XSQUARE.binary,
            image_id=compute_image_id(b"other"),
        )


def test_context_is_immutable(ctx):
    with pytest.raises(dataclasses.FrozenInstanceError):
        ctx.image_id = compute_image_id(b"other")


def test_concurrent_runs_are_independent(ctx):
    xs = list(range(1, 17))
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda x: run_pipeline(ctx, [(x, "u32")]), xs))
    for x, result in zip(xs, results):
        assert isinstance(result, Success)
        assert Journal(result.journal).decode("u32") == x * x
    assert len({r.seal for r in results}) == len(xs)


def test_stage_telemetry_logged(ctx, caplog):
    with caplog.at_level(logging.INFO, logger=GADGET_LOGGER):
        run_pipeline(ctx, [(9, "u32")])
    messages = [r.getMessage() for r in caplog.records if r.name == GADGET_LOGGER]
    assert messages[0] == "Proving job"
    assert "Compressed proof to groth16." in messages
    assert messages[-1] == "Responding to job request with proof."


def test_failure_logged(ctx, caplog):
    with caplog.at_level(logging.ERROR, logger=GADGET_LOGGER):
        run_pipeline(ctx, [(70000, "u32")])
    assert any("failed at prove stage" in r.getMessage() for r in caplog.records)


def test_failure_to_dict(ctx):
    result = run_pipeline(ctx, [(70000, "u32")])
    payload = result.to_dict()
    assert payload["stage"] == "prove"
    assert payload["error"] == "ExecutionTrap"
    assert payload["exit_code"] == 11
