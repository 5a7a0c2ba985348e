"""Job context: everything a pipeline run reads but never writes.

Lifecycle: build one ``JobContext`` at process start (``create`` or
``from_config``), then pass it to every ``run_pipeline`` call. The program
identity is computed exactly once, from the same binary handed to the
prover, and the context is frozen afterwards, so concurrent runs can share
it without locking.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .backends import default_prover
from .errors import ConfigError
from .guests import XSQUARE, GuestProgram
from .identity import ProgramIdentity, compute_image_id
from .prover import DEFAULT_SEGMENT_PO2, Prover, ProverOpts
from .receipt import ReceiptKind, VerifierParameters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobContext:
    prover: Prover
    guest_binary: bytes = field(repr=False)
    image_id: ProgramIdentity
    prove_opts: ProverOpts = field(default_factory=ProverOpts)
    compress_opts: ProverOpts = field(default_factory=ProverOpts.groth16)

    def __post_init__(self) -> None:
        if compute_image_id(self.guest_binary) != self.image_id:
            raise ValueError("image_id was not derived from guest_binary")

    @property
    def verifier_parameters(self) -> VerifierParameters:
        return self.prover.verifier_parameters

    @classmethod
    def create(
        cls,
        prover: Prover,
        guest_binary: bytes,
        *,
        receipt_kind: ReceiptKind | str = ReceiptKind.GROTH16,
        segment_limit_po2: int = DEFAULT_SEGMENT_PO2,
    ) -> "JobContext":
        image_id = compute_image_id(guest_binary)
        kind = ReceiptKind.parse(receipt_kind)
        ctx = cls(
            prover=prover,
            guest_binary=bytes(guest_binary),
            image_id=image_id,
            prove_opts=ProverOpts(segment_limit_po2=segment_limit_po2),
            compress_opts=ProverOpts(receipt_kind=kind, segment_limit_po2=segment_limit_po2),
        )
        logger.info("job context ready: prover=%s image_id=%s", prover.name, image_id.hex)
        return ctx

    @classmethod
    def from_config(cls, config: dict[str, Any], guest: GuestProgram = XSQUARE) -> "JobContext":
        """Build a context from a loaded config.

        ``guest.elf_path`` in the config replaces the guest's built-in binary.
        """
        prover = default_prover(config)
        elf_path = config.get("guest", {}).get("elf_path")
        if elf_path:
            try:
                binary = Path(elf_path).read_bytes()
            except OSError as exc:
                raise ConfigError(f"cannot read guest binary {elf_path}: {exc}") from exc
        else:
            binary = guest.binary
        prover_cfg = config.get("prover", {})
        return cls.create(
            prover,
            binary,
            receipt_kind=prover_cfg.get("receipt_kind", "groth16"),
            segment_limit_po2=int(prover_cfg.get("segment_limit_po2", DEFAULT_SEGMENT_PO2)),
        )


__all__ = ["JobContext"]
