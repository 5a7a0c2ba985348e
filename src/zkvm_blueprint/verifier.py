"""Local verification of compressed receipts before on-chain submission.

This is a pre-flight check only: it keeps the submitter from paying gas for a
proof the on-chain verifier would reject. It does not replace on-chain
verification.

Verification checks:
1. Expected image id is a well-formed ProgramIdentity
2. Claim image id == expected image id
3. H(journal) == claim.journal_digest
4. Groth16 receipts were produced for the expected verifier parameters
5. Backend cryptographic verification
"""
from __future__ import annotations

import hmac
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .errors import LocalVerificationError
from .identity import ProgramIdentity
from .prover import Prover
from .receipt import Groth16Receipt, Receipt, VerifierParameters

logger = logging.getLogger(__name__)


@dataclass
class VerificationReport:
    ok: bool
    details: dict[str, Any] = field(default_factory=dict)
    elapsed_sec: float = 0.0


class LocalVerifier:
    def __init__(self, prover: Prover, params: VerifierParameters | None = None) -> None:
        self.prover = prover
        self.params = params or prover.verifier_parameters

    def verify(self, receipt: Receipt, image_id: ProgramIdentity) -> bool:
        """Return True if ``receipt`` verifies against ``image_id``.

        Raises:
            LocalVerificationError: On any mismatch. Never returns False.
        """
        if not isinstance(image_id, ProgramIdentity):
            raise LocalVerificationError(f"expected ProgramIdentity, got {type(image_id).__name__}")

        claim = receipt.claim
        if claim.image_id != image_id:
            raise LocalVerificationError(
                "receipt was not produced by the expected program",
                expected=image_id.hex,
                got=claim.image_id.hex,
            )
        if not hmac.compare_digest(claim.journal_digest, receipt.journal.digest()):
            raise LocalVerificationError(
                "journal digest does not match claim",
                expected=claim.journal_digest.hex(),
                got=receipt.journal.digest().hex(),
            )
        if isinstance(receipt.inner, Groth16Receipt):
            if not hmac.compare_digest(receipt.inner.verifier_parameters, self.params.digest()):
                raise LocalVerificationError(
                    "groth16 receipt verifier parameters do not match",
                    expected=self.params.digest().hex(),
                    got=receipt.inner.verifier_parameters.hex(),
                )

        try:
            self.prover.verify(receipt, image_id)
        except LocalVerificationError:
            raise
        except Exception as exc:
            raise LocalVerificationError(f"backend verification error: {exc}", cause=exc) from exc
        return True

    def verify_report(self, receipt: Receipt, image_id: ProgramIdentity) -> VerificationReport:
        """Run :meth:`verify` and summarize the outcome instead of raising."""
        start = time.perf_counter()
        try:
            self.verify(receipt, image_id)
        except LocalVerificationError as exc:
            details = {"error": exc.message, **exc.details}
            return VerificationReport(ok=False, details=details, elapsed_sec=time.perf_counter() - start)

        details = {
            "image_id": image_id.hex,
            "receipt_kind": receipt.kind.name.lower(),
            "journal_len": len(receipt.journal),
            "seal_len": receipt.inner.seal_size,
            "backend": self.prover.name,
        }
        return VerificationReport(ok=True, details=details, elapsed_sec=time.perf_counter() - start)


__all__ = ["LocalVerifier", "VerificationReport"]
