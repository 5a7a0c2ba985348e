"""zkvm-blueprint - prove a guest program run and encode it for on-chain verification.

Pipeline:
    build    - serialize private inputs into an executor environment
    prove    - run the guest and produce a composite receipt
    compress - shrink the receipt to a Groth16 seal
    verify   - re-check the compressed receipt against the program identity
    encode   - abi.encode(JobInputs{journalData, seal})

Usage:
    from zkvm_blueprint import JobContext, LocalProver, XSQUARE, xsquare

    ctx = JobContext.create(LocalProver(), XSQUARE.binary)
    output = xsquare(9, ctx=ctx)
"""
from __future__ import annotations

__version__ = "0.1.0"

from zkvm_blueprint.abi import JobInputs, decode_job_inputs, encode_job_inputs, encode_seal
from zkvm_blueprint.backends import ExternalProver, LocalProver, default_prover, get_prover
from zkvm_blueprint.context import JobContext
from zkvm_blueprint.environment import ExecutorEnv, build_environment
from zkvm_blueprint.errors import (
    CompressionError,
    EncodingError,
    EnvironmentBuildError,
    ExecutionTrap,
    LocalVerificationError,
    PipelineError,
    ProofGenerationError,
    Stage,
)
from zkvm_blueprint.guests import XSQUARE, GuestProgram
from zkvm_blueprint.identity import ProgramIdentity, compute_image_id
from zkvm_blueprint.jobs import JOBS, run_job, xsquare
from zkvm_blueprint.pipeline import Failure, JobResult, Success, prove_and_encode, run_pipeline
from zkvm_blueprint.prover import Prover, ProverOpts
from zkvm_blueprint.receipt import Journal, Receipt, ReceiptKind
from zkvm_blueprint.verifier import LocalVerifier

__all__ = [
    "__version__",
    # Pipeline
    "JobContext",
    "run_pipeline",
    "prove_and_encode",
    "JobResult",
    "Success",
    "Failure",
    # Jobs
    "JOBS",
    "run_job",
    "xsquare",
    # Building blocks
    "ExecutorEnv",
    "build_environment",
    "ProgramIdentity",
    "compute_image_id",
    "Prover",
    "ProverOpts",
    "LocalProver",
    "ExternalProver",
    "get_prover",
    "default_prover",
    "LocalVerifier",
    "Journal",
    "Receipt",
    "ReceiptKind",
    "GuestProgram",
    "XSQUARE",
    "JobInputs",
    "encode_seal",
    "encode_job_inputs",
    "decode_job_inputs",
    # Errors
    "Stage",
    "PipelineError",
    "EnvironmentBuildError",
    "ExecutionTrap",
    "ProofGenerationError",
    "CompressionError",
    "LocalVerificationError",
    "EncodingError",
]
