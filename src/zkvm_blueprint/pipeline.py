"""Proving pipeline: build -> prove -> compress -> verify -> encode.

The sequence is strict. The first failing stage ends the run; no output is
produced and no stage is retried. Callers get a ``JobResult``:

    Success(output, journal, seal, image_id, timings, stats)
    Failure(stage, error, timings)

A failed local verification aborts the run before encoding, so a proof that
would be rejected on-chain is never handed to the submitter.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Union

from .abi import encode_job_inputs, encode_seal
from .context import JobContext
from .environment import build_environment
from .errors import STAGE_ERRORS, PipelineError, Stage
from .log import GADGET_LOGGER
from .receipt import SessionStats
from .verifier import LocalVerifier

logger = logging.getLogger(__name__)
gadget = logging.getLogger(GADGET_LOGGER)


@dataclass(frozen=True)
class Success:
    output: bytes
    journal: bytes
    seal: bytes
    image_id: str
    timings: dict[str, float] = field(default_factory=dict)
    stats: SessionStats | None = None

    ok = True

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": "OK",
            "output": "0x" + self.output.hex(),
            "journal": "0x" + self.journal.hex(),
            "seal": "0x" + self.seal.hex(),
            "image_id": self.image_id,
            "timings": {k: round(v, 6) for k, v in self.timings.items()},
        }
        if self.stats is not None:
            payload["stats"] = {
                "segments": self.stats.segments,
                "total_cycles": self.stats.total_cycles,
                "user_cycles": self.stats.user_cycles,
            }
        return payload


@dataclass(frozen=True)
class Failure:
    stage: Stage
    error: PipelineError
    timings: dict[str, float] = field(default_factory=dict)

    ok = False

    def to_dict(self) -> dict[str, Any]:
        payload = self.error.to_dict()
        payload["timings"] = {k: round(v, 6) for k, v in self.timings.items()}
        return payload


JobResult = Union[Success, Failure]


@contextmanager
def _stage(stage: Stage, timings: dict[str, float]) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except PipelineError:
        raise
    except Exception as exc:
        raise STAGE_ERRORS[stage](f"unexpected error: {exc}", cause=exc) from exc
    finally:
        timings[stage.value] = time.perf_counter() - start


def run_pipeline(ctx: JobContext, inputs: Iterable[tuple[Any, str]]) -> JobResult:
    """Prove one guest execution over ``inputs`` and ABI-encode the result."""
    timings: dict[str, float] = {}
    try:
        return _execute(ctx, inputs, timings)
    except PipelineError as exc:
        gadget.error("Job failed at %s stage: %s", exc.stage.value, exc.message)
        return Failure(stage=exc.stage, error=exc, timings=timings)


def _execute(ctx: JobContext, inputs: Iterable[tuple[Any, str]], timings: dict[str, float]) -> Success:
    with _stage(Stage.BUILD, timings):
        env = build_environment(inputs)

    gadget.info("Proving job")
    with _stage(Stage.PROVE, timings):
        prove_info = ctx.prover.prove(env, ctx.guest_binary, ctx.prove_opts)
    receipt = prove_info.receipt
    gadget.info(
        "Proof generation successful (%d segments, %d cycles), now compressing into %s proof...",
        prove_info.stats.segments,
        prove_info.stats.user_cycles,
        ctx.compress_opts.receipt_kind.name.lower(),
    )

    with _stage(Stage.COMPRESS, timings):
        compressed = ctx.prover.compress(ctx.compress_opts, receipt)
        if compressed.journal != receipt.journal:
            raise STAGE_ERRORS[Stage.COMPRESS]("compression altered the journal")
    gadget.info("Compressed proof to %s.", compressed.kind.name.lower())

    with _stage(Stage.VERIFY, timings):
        LocalVerifier(ctx.prover, ctx.verifier_parameters).verify(compressed, ctx.image_id)
    gadget.info("%s proof verified.", compressed.kind.name.capitalize())

    with _stage(Stage.ENCODE, timings):
        seal = encode_seal(compressed, ctx.verifier_parameters)
        journal = compressed.journal.bytes
        output = encode_job_inputs(journal, seal)

    gadget.info("Responding to job request with proof.")
    return Success(
        output=output,
        journal=journal,
        seal=seal,
        image_id=ctx.image_id.hex,
        timings=timings,
        stats=prove_info.stats,
    )


def prove_and_encode(ctx: JobContext, inputs: Iterable[tuple[Any, str]]) -> bytes:
    """Like :func:`run_pipeline` but returns the output bytes or raises."""
    result = run_pipeline(ctx, inputs)
    if isinstance(result, Failure):
        raise result.error
    return result.output


__all__ = ["Success", "Failure", "JobResult", "run_pipeline", "prove_and_encode"]
