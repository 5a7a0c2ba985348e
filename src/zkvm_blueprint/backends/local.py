"""In-process prover backend for Python guest programs.

Runs a registered :class:`~zkvm_blueprint.guests.GuestProgram` directly and
produces receipts whose seals are hash commitments over the claim digest:

    seal = nonce || H(tag || nonce || claim_digest || context...)

Each proof draws a fresh 32-byte nonce, so two proofs of the same execution
have identical journals but different seals. Anyone holding the claim can
recheck a seal; the seals prove integrity of the receipt pipeline, not
soundness of the execution. Use the external backend for real proofs.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from typing import Iterable

from zkvm_blueprint.environment import ExecutorEnv
from zkvm_blueprint.errors import (
    CompressionError,
    ExecutionTrap,
    LocalVerificationError,
    ProofGenerationError,
)
from zkvm_blueprint.guests import BUILTIN_GUESTS, GuestEnv, GuestExit, GuestProgram, GuestTrap
from zkvm_blueprint.identity import ProgramIdentity, compute_image_id
from zkvm_blueprint.prover import MIN_SEGMENT_PO2, Prover, ProverOpts, check_compression_target
from zkvm_blueprint.receipt import (
    GROTH16_SEAL_SIZE,
    CompositeReceipt,
    Groth16Receipt,
    Journal,
    ProveInfo,
    Receipt,
    ReceiptClaim,
    ReceiptKind,
    SegmentReceipt,
    SessionStats,
    SuccinctReceipt,
    VerifierParameters,
)

logger = logging.getLogger(__name__)

SEGMENT_TAG = b"ZKVM_LOCAL_SEGMENT_V1"
SUCCINCT_TAG = b"ZKVM_LOCAL_SUCCINCT_V1"
GROTH16_TAG = b"ZKVM_LOCAL_GROTH16_V1"

NONCE_SIZE = 32


def _commit(tag: bytes, nonce: bytes, *parts: bytes) -> bytes:
    h = hashlib.sha256()
    h.update(tag)
    h.update(nonce)
    for part in parts:
        h.update(part)
    return h.digest()


def _u32(n: int) -> bytes:
    return n.to_bytes(4, "little")


def _segment_seal(nonce: bytes, claim_digest: bytes, index: int, po2: int, cycles: int) -> bytes:
    return nonce + _commit(SEGMENT_TAG, nonce, claim_digest, _u32(index), _u32(po2), _u32(cycles))


def _succinct_seal(nonce: bytes, claim_digest: bytes) -> bytes:
    return nonce + _commit(SUCCINCT_TAG, nonce, claim_digest)


def _groth16_seal(nonce: bytes, claim_digest: bytes, params_digest: bytes) -> bytes:
    # nonce plus seven derived words -> 8 x 32 bytes (a: 2, b: 4, c: 2)
    words = [nonce]
    for i in range(GROTH16_SEAL_SIZE // 32 - 1):
        words.append(_commit(GROTH16_TAG, nonce, claim_digest, params_digest, _u32(i)))
    return b"".join(words)


def _split_cycles(cycles: int, limit_po2: int) -> list[tuple[int, int]]:
    """Split ``cycles`` into ``(po2, cycles)`` segments of at most 2**limit_po2."""
    limit = 1 << limit_po2
    segments = []
    remaining = cycles
    while remaining > 0:
        seg = min(limit, remaining)
        po2 = max(MIN_SEGMENT_PO2, (seg - 1).bit_length())
        segments.append((po2, seg))
        remaining -= seg
    return segments


class LocalProver(Prover):
    """Prover that executes Python guests in-process."""

    name = "local"

    def __init__(
        self,
        guests: Iterable[GuestProgram] | None = None,
        verifier_parameters: VerifierParameters | None = None,
    ) -> None:
        super().__init__(verifier_parameters)
        programs = list(BUILTIN_GUESTS.values()) if guests is None else list(guests)
        self._guests: dict[bytes, GuestProgram] = {g.image_id.digest: g for g in programs}

    @property
    def guests(self) -> list[GuestProgram]:
        return list(self._guests.values())

    def prove(self, env: ExecutorEnv, binary: bytes, opts: ProverOpts | None = None) -> ProveInfo:
        opts = opts or ProverOpts()
        try:
            image_id = compute_image_id(binary)
        except ValueError as exc:
            raise ProofGenerationError(str(exc), cause=exc) from exc
        guest = self._guests.get(image_id.digest)
        if guest is None:
            raise ProofGenerationError(
                f"no local guest registered for image id {image_id.hex}",
                image_id=image_id.hex,
            )

        start = time.perf_counter()
        genv = GuestEnv(env.reader(), env.env_vars)
        exit_code = 0
        try:
            guest.entry(genv)
        except GuestExit as exc:
            exit_code = exc.code
        except GuestTrap as exc:
            raise ExecutionTrap(f"guest {guest.name!r} trapped: {exc}", cause=exc, guest=guest.name) from exc
        except Exception as exc:
            raise ExecutionTrap(f"guest {guest.name!r} panicked: {exc}", cause=exc, guest=guest.name) from exc
        if exit_code != 0:
            raise ExecutionTrap(
                f"guest {guest.name!r} exited with code {exit_code}",
                guest=guest.name,
                exit_code=exit_code,
            )

        journal = Journal(genv.journal_bytes)
        claim = ReceiptClaim.for_journal(image_id, journal)
        claim_digest = claim.digest()

        segments = []
        for index, (po2, cycles) in enumerate(_split_cycles(genv.cycles, opts.segment_limit_po2)):
            nonce = secrets.token_bytes(NONCE_SIZE)
            segments.append(SegmentReceipt(
                index=index,
                po2=po2,
                cycles=cycles,
                seal=_segment_seal(nonce, claim_digest, index, po2, cycles),
            ))

        stats = SessionStats(
            segments=len(segments),
            total_cycles=sum(1 << s.po2 for s in segments),
            user_cycles=genv.cycles,
        )
        logger.debug(
            "local prove %s: %d segments, %d cycles in %.3fs",
            guest.name, stats.segments, stats.user_cycles, time.perf_counter() - start,
        )
        receipt = Receipt(inner=CompositeReceipt(tuple(segments)), journal=journal, claim=claim)
        return ProveInfo(receipt=receipt, stats=stats)

    def compress(self, opts: ProverOpts, receipt: Receipt) -> Receipt:
        if check_compression_target(receipt, opts):
            return receipt
        claim_digest = receipt.claim.digest()
        current = receipt

        if current.kind is ReceiptKind.COMPOSITE:
            self._check_segments(current.inner, claim_digest, CompressionError)
            nonce = secrets.token_bytes(NONCE_SIZE)
            current = current.with_inner(SuccinctReceipt(_succinct_seal(nonce, claim_digest)))

        if opts.receipt_kind is ReceiptKind.GROTH16 and current.kind is ReceiptKind.SUCCINCT:
            self._check_succinct(current.inner, claim_digest, CompressionError)
            params_digest = self.verifier_parameters.digest()
            nonce = secrets.token_bytes(NONCE_SIZE)
            current = current.with_inner(Groth16Receipt(
                seal=_groth16_seal(nonce, claim_digest, params_digest),
                verifier_parameters=params_digest,
            ))

        logger.debug(
            "local compress: %s -> %s (%d -> %d seal bytes)",
            receipt.kind.name.lower(), current.kind.name.lower(),
            receipt.inner.seal_size, current.inner.seal_size,
        )
        return current

    def verify(self, receipt: Receipt, image_id: ProgramIdentity) -> None:
        claim = receipt.claim
        if claim.image_id != image_id:
            raise LocalVerificationError(
                "image id mismatch",
                expected=image_id.hex,
                got=claim.image_id.hex,
            )
        if claim.exit_code != 0:
            raise LocalVerificationError(f"claim records non-zero exit code {claim.exit_code}")
        if not hmac.compare_digest(claim.journal_digest, receipt.journal.digest()):
            raise LocalVerificationError("journal does not match claim digest")

        claim_digest = claim.digest()
        inner = receipt.inner
        if isinstance(inner, CompositeReceipt):
            self._check_segments(inner, claim_digest, LocalVerificationError)
        elif isinstance(inner, SuccinctReceipt):
            self._check_succinct(inner, claim_digest, LocalVerificationError)
        else:
            self._check_groth16(inner, claim_digest)

    @staticmethod
    def _check_segments(inner: CompositeReceipt, claim_digest: bytes, error: type) -> None:
        if not inner.segments:
            raise error("composite receipt has no segments (missing continuation data)")
        for expected_index, seg in enumerate(inner.segments):
            if seg.index != expected_index:
                raise error(f"segment {expected_index} missing or out of order (found {seg.index})")
            nonce = seg.seal[:NONCE_SIZE]
            if len(nonce) != NONCE_SIZE or not hmac.compare_digest(
                seg.seal, _segment_seal(nonce, claim_digest, seg.index, seg.po2, seg.cycles)
            ):
                raise error(f"segment {seg.index} seal does not match claim")

    @staticmethod
    def _check_succinct(inner: SuccinctReceipt, claim_digest: bytes, error: type) -> None:
        nonce = inner.seal[:NONCE_SIZE]
        if len(nonce) != NONCE_SIZE or not hmac.compare_digest(inner.seal, _succinct_seal(nonce, claim_digest)):
            raise error("succinct seal does not match claim")

    def _check_groth16(self, inner: Groth16Receipt, claim_digest: bytes) -> None:
        params_digest = self.verifier_parameters.digest()
        if not hmac.compare_digest(inner.verifier_parameters, params_digest):
            raise LocalVerificationError("groth16 receipt produced for different verifier parameters")
        if len(inner.seal) != GROTH16_SEAL_SIZE:
            raise LocalVerificationError(f"groth16 seal must be {GROTH16_SEAL_SIZE} bytes, got {len(inner.seal)}")
        nonce = inner.seal[:NONCE_SIZE]
        if not hmac.compare_digest(inner.seal, _groth16_seal(nonce, claim_digest, params_digest)):
            raise LocalVerificationError("groth16 seal does not match claim")


__all__ = ["LocalProver"]
