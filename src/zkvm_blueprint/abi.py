"""ABI encoding of job outputs for the on-chain verifier contract.

The consuming contract decodes its input as

    struct JobInputs {
        bytes journalData;
        bytes seal;
    }
    JobInputs memory inputs = abi.decode(data, (JobInputs));

so the output is ``abi.encode(JobInputs)``: a head word pointing at the
tuple, then the standard two-dynamic-field tuple encoding. The seal is the
Groth16 seal prefixed with the 4-byte verifier selector.
"""
from __future__ import annotations

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError as AbiEncodingError

from .errors import EncodingError
from .receipt import GROTH16_SEAL_SIZE, SELECTOR_SIZE, Receipt, VerifierParameters

JOB_INPUTS_ABI = "(bytes,bytes)"


@dataclass(frozen=True)
class JobInputs:
    journal_data: bytes
    seal: bytes

    def to_dict(self) -> dict[str, str]:
        return {
            "journalData": "0x" + self.journal_data.hex(),
            "seal": "0x" + self.seal.hex(),
        }


def encode_seal(receipt: Receipt, params: VerifierParameters) -> bytes:
    """Return ``selector || groth16_seal`` for ``receipt``."""
    try:
        groth16 = receipt.groth16()
    except ValueError as exc:
        raise EncodingError(str(exc), cause=exc) from exc
    if len(groth16.seal) != GROTH16_SEAL_SIZE:
        raise EncodingError(f"groth16 seal must be {GROTH16_SEAL_SIZE} bytes, got {len(groth16.seal)}")
    return params.selector + groth16.seal


def split_seal(seal: bytes) -> tuple[bytes, bytes]:
    """Split an encoded seal into ``(selector, proof)``."""
    if len(seal) < SELECTOR_SIZE:
        raise EncodingError(f"encoded seal shorter than selector ({len(seal)} bytes)")
    return seal[:SELECTOR_SIZE], seal[SELECTOR_SIZE:]


def _require_bytes(name: str, value: object) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise EncodingError(f"{name} must be bytes, got {type(value).__name__}")
    return bytes(value)


def encode_job_inputs(journal: bytes, seal: bytes) -> bytes:
    """ABI-encode ``JobInputs{journalData: journal, seal: seal}``."""
    journal = _require_bytes("journal", journal)
    seal = _require_bytes("seal", seal)
    try:
        return encode([JOB_INPUTS_ABI], [(journal, seal)])
    except AbiEncodingError as exc:
        raise EncodingError(f"abi encoding failed: {exc}", cause=exc) from exc


def decode_job_inputs(data: bytes) -> JobInputs:
    """Inverse of :func:`encode_job_inputs`."""
    data = _require_bytes("data", data)
    try:
        ((journal, seal),) = decode([JOB_INPUTS_ABI], data)
    except DecodingError as exc:
        raise EncodingError(f"abi decoding failed: {exc}", cause=exc) from exc
    return JobInputs(journal_data=bytes(journal), seal=bytes(seal))


__all__ = [
    "JOB_INPUTS_ABI",
    "JobInputs",
    "encode_seal",
    "split_seal",
    "encode_job_inputs",
    "decode_job_inputs",
]
