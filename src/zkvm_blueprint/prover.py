"""Prover capability interface.

The pipeline never talks to a proving library directly; it holds a
:class:`Prover` and calls ``prove``, ``compress`` and ``verify``. Backends
live in :mod:`zkvm_blueprint.backends` and register themselves in
``PROVERS``.

Failure atoms:
    prove    -> ExecutionTrap (guest trapped) | ProofGenerationError
    compress -> CompressionError
    verify   -> LocalVerificationError
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any

from .environment import ExecutorEnv
from .errors import CompressionError
from .identity import ProgramIdentity
from .receipt import ProveInfo, Receipt, ReceiptKind, VerifierParameters

DEFAULT_SEGMENT_PO2 = 20
MIN_SEGMENT_PO2 = 4
MAX_SEGMENT_PO2 = 24


@dataclass(frozen=True)
class ProverOpts:
    """Options for proving and compression."""

    receipt_kind: ReceiptKind = ReceiptKind.COMPOSITE
    segment_limit_po2: int = DEFAULT_SEGMENT_PO2

    def __post_init__(self) -> None:
        if not MIN_SEGMENT_PO2 <= self.segment_limit_po2 <= MAX_SEGMENT_PO2:
            raise ValueError(
                f"segment_limit_po2 must be in [{MIN_SEGMENT_PO2}, {MAX_SEGMENT_PO2}], "
                f"got {self.segment_limit_po2}"
            )

    @classmethod
    def composite(cls) -> "ProverOpts":
        return cls(receipt_kind=ReceiptKind.COMPOSITE)

    @classmethod
    def succinct(cls) -> "ProverOpts":
        return cls(receipt_kind=ReceiptKind.SUCCINCT)

    @classmethod
    def groth16(cls) -> "ProverOpts":
        return cls(receipt_kind=ReceiptKind.GROTH16)

    def with_segment_limit(self, po2: int) -> "ProverOpts":
        return replace(self, segment_limit_po2=po2)


def check_compression_target(receipt: Receipt, opts: ProverOpts) -> bool:
    """Return True if ``receipt`` is already at the target kind.

    Raises:
        CompressionError: If the target is weaker than the receipt's kind.
    """
    if opts.receipt_kind < receipt.kind:
        raise CompressionError(
            f"cannot compress {receipt.kind.name.lower()} receipt to "
            f"{opts.receipt_kind.name.lower()}",
            current=receipt.kind.name.lower(),
            target=opts.receipt_kind.name.lower(),
        )
    return opts.receipt_kind == receipt.kind


class Prover(ABC):
    """Interface for pluggable zkVM proving backends."""

    name: str = "unknown"

    def __init__(self, verifier_parameters: VerifierParameters | None = None) -> None:
        self.verifier_parameters = verifier_parameters or VerifierParameters()

    @abstractmethod
    def prove(self, env: ExecutorEnv, binary: bytes, opts: ProverOpts | None = None) -> ProveInfo:
        """Execute ``binary`` against ``env`` and return a composite receipt."""

    @abstractmethod
    def compress(self, opts: ProverOpts, receipt: Receipt) -> Receipt:
        """Compress ``receipt`` to ``opts.receipt_kind`` keeping its journal."""

    @abstractmethod
    def verify(self, receipt: Receipt, image_id: ProgramIdentity) -> None:
        """Cryptographically verify ``receipt`` against ``image_id``.

        Returns None on success; raises LocalVerificationError otherwise.
        """

    def get_info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "verifier_selector": self.verifier_parameters.selector.hex(),
        }


__all__ = [
    "Prover",
    "ProverOpts",
    "check_compression_target",
    "DEFAULT_SEGMENT_PO2",
]
