"""Typed pipeline errors.

Every stage of the proving pipeline raises its own error type so callers can
tell a guest trap from a compression failure from an encoding bug. Each error
carries the stage it came from and, when it wraps another exception, the
original cause.

Exit codes (used by the CLI):
    10 - Environment build failed
    11 - Guest execution trapped
    12 - Proof generation failed
    13 - Compression failed
    14 - Local verification failed
    15 - Output encoding failed
"""
from __future__ import annotations

from enum import Enum
from typing import Any


class Stage(str, Enum):
    """Pipeline stages, in execution order."""

    BUILD = "build"
    PROVE = "prove"
    COMPRESS = "compress"
    VERIFY = "verify"
    ENCODE = "encode"


STAGE_ORDER = (Stage.BUILD, Stage.PROVE, Stage.COMPRESS, Stage.VERIFY, Stage.ENCODE)


class PipelineError(Exception):
    """Base class for all stage failures."""

    stage: Stage = Stage.BUILD
    exit_code: int = 1

    def __init__(self, message: str, *, cause: BaseException | None = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": "FAILED",
            "stage": self.stage.value,
            "error": type(self).__name__,
            "message": self.message,
            "exit_code": self.exit_code,
        }
        if self.cause is not None:
            payload["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"[{self.stage.value}] {self.message}"


class EnvironmentBuildError(PipelineError):
    """Inputs could not be serialized into an executor environment."""

    stage = Stage.BUILD
    exit_code = 10


class ExecutionTrap(PipelineError):
    """The guest program trapped or diverged while executing."""

    stage = Stage.PROVE
    exit_code = 11


class ProofGenerationError(PipelineError):
    """The prover failed for a reason other than a guest trap."""

    stage = Stage.PROVE
    exit_code = 12


class CompressionError(PipelineError):
    """The receipt could not be compressed to the requested kind."""

    stage = Stage.COMPRESS
    exit_code = 13


class LocalVerificationError(PipelineError):
    """The compressed proof did not verify against the program identity."""

    stage = Stage.VERIFY
    exit_code = 14


class EncodingError(PipelineError):
    """Journal and seal could not be ABI-encoded."""

    stage = Stage.ENCODE
    exit_code = 15


# Wraps unexpected exceptions raised inside a stage.
STAGE_ERRORS: dict[Stage, type[PipelineError]] = {
    Stage.BUILD: EnvironmentBuildError,
    Stage.PROVE: ProofGenerationError,
    Stage.COMPRESS: CompressionError,
    Stage.VERIFY: LocalVerificationError,
    Stage.ENCODE: EncodingError,
}


class SerdeError(ValueError):
    """Raised when a value cannot be converted to or from guest words."""


class ConfigError(ValueError):
    """Raised for invalid configuration values."""


__all__ = [
    "Stage",
    "STAGE_ORDER",
    "STAGE_ERRORS",
    "PipelineError",
    "EnvironmentBuildError",
    "ExecutionTrap",
    "ProofGenerationError",
    "CompressionError",
    "LocalVerificationError",
    "EncodingError",
    "SerdeError",
    "ConfigError",
]
