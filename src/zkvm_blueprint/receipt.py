"""Receipt data model.

A receipt binds a journal (public output) to a proof that a guest program
with a given image id ran to completion. The proof part ("inner receipt")
comes in three kinds, from largest to smallest:

    composite -> one seal per execution segment (continuation data)
    succinct  -> a single recursion seal
    groth16   -> a 256-byte pairing-based seal, cheap to verify on-chain

Compression only ever moves right along that list; the journal and the claim
are carried through unchanged.

Binding semantics:
- journal_digest = H(journal)
- claim_digest   = H(ZKVM_CLAIM_TAG || image_id || journal_digest || exit_code)
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Union

from .identity import ProgramIdentity
from .serde import from_bytes

ZKVM_CLAIM_TAG = b"ZKVM_CLAIM_V1"
VERIFIER_PARAMS_TAG = b"ZKVM_GROTH16_VERIFIER_PARAMS_V1"

GROTH16_SEAL_SIZE = 256
SELECTOR_SIZE = 4


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _require_dict(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be a JSON object, got {type(value).__name__}")
    return value


def _hex_to_bytes(value: Any) -> bytes:
    """Accept hex strings, byte lists or ``{"bytes": [...]}`` wrappers."""
    if isinstance(value, dict):
        value = value.get("bytes", [])
    if isinstance(value, str):
        return bytes.fromhex(value.replace("0x", "", 1))
    if isinstance(value, list):
        return bytes(value)
    if value is None:
        return b""
    raise ValueError(f"cannot decode bytes from {type(value).__name__}")


class ReceiptKind(IntEnum):
    COMPOSITE = 0
    SUCCINCT = 1
    GROTH16 = 2

    @classmethod
    def parse(cls, value: "str | ReceiptKind") -> "ReceiptKind":
        if isinstance(value, ReceiptKind):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"unknown receipt kind {value!r}") from None


@dataclass(frozen=True)
class Journal:
    """Public output bytes committed by the guest."""

    bytes: bytes = b""

    def digest(self) -> bytes:
        return _sha256(self.bytes)

    def decode(self, kind: str) -> Any:
        """Decode the journal as a single value of ``kind``."""
        return from_bytes(self.bytes, kind)

    def __len__(self) -> int:
        return len(self.bytes)


@dataclass(frozen=True)
class ReceiptClaim:
    """What a receipt asserts: this image ran, exited with this code, output this journal."""

    image_id: ProgramIdentity
    journal_digest: bytes
    exit_code: int = 0

    @classmethod
    def for_journal(cls, image_id: ProgramIdentity, journal: Journal, exit_code: int = 0) -> "ReceiptClaim":
        return cls(image_id=image_id, journal_digest=journal.digest(), exit_code=exit_code)

    def digest(self) -> bytes:
        h = hashlib.sha256()
        h.update(ZKVM_CLAIM_TAG)
        h.update(self.image_id.digest)
        h.update(self.journal_digest)
        h.update(self.exit_code.to_bytes(4, "little"))
        return h.digest()

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_id": self.image_id.hex,
            "journal_digest": self.journal_digest.hex(),
            "exit_code": self.exit_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReceiptClaim":
        _require_dict(data, "claim")
        image_id = data.get("image_id", data.get("imageId", ""))
        if isinstance(image_id, list):
            identity = ProgramIdentity.from_words(image_id)
        else:
            identity = ProgramIdentity.from_hex(image_id)
        return cls(
            image_id=identity,
            journal_digest=_hex_to_bytes(data.get("journal_digest", "")),
            exit_code=int(data.get("exit_code", 0)),
        )


@dataclass(frozen=True)
class VerifierParameters:
    """Parameters a Groth16 seal is produced against.

    The first four bytes of ``digest()`` form the selector that on-chain
    verifier routers use to pick the matching verifier contract.
    """

    control_root: bytes = field(default_factory=lambda: _sha256(b"zkvm.control_root.v1"))
    bn254_control_id: bytes = field(default_factory=lambda: _sha256(b"zkvm.bn254_control_id.v1"))
    verifying_key_digest: bytes = field(default_factory=lambda: _sha256(b"zkvm.groth16.vk.v1"))
    version: str = "1.0"

    def digest(self) -> bytes:
        h = hashlib.sha256()
        h.update(VERIFIER_PARAMS_TAG)
        h.update(self.control_root)
        h.update(self.bn254_control_id)
        h.update(self.verifying_key_digest)
        h.update(self.version.encode("utf-8"))
        return h.digest()

    @property
    def selector(self) -> bytes:
        return self.digest()[:SELECTOR_SIZE]


@dataclass(frozen=True)
class SegmentReceipt:
    index: int
    po2: int
    cycles: int
    seal: bytes


@dataclass(frozen=True)
class CompositeReceipt:
    segments: tuple[SegmentReceipt, ...] = ()
    kind = ReceiptKind.COMPOSITE

    @property
    def seal_size(self) -> int:
        return sum(len(s.seal) for s in self.segments)


@dataclass(frozen=True)
class SuccinctReceipt:
    seal: bytes
    kind = ReceiptKind.SUCCINCT

    @property
    def seal_size(self) -> int:
        return len(self.seal)


@dataclass(frozen=True)
class Groth16Receipt:
    seal: bytes
    verifier_parameters: bytes
    kind = ReceiptKind.GROTH16

    @property
    def seal_size(self) -> int:
        return len(self.seal)


InnerReceipt = Union[CompositeReceipt, SuccinctReceipt, Groth16Receipt]


@dataclass(frozen=True)
class Receipt:
    """Journal + claim + proof of correct execution."""

    inner: InnerReceipt
    journal: Journal
    claim: ReceiptClaim

    @property
    def kind(self) -> ReceiptKind:
        return self.inner.kind

    def groth16(self) -> Groth16Receipt:
        if not isinstance(self.inner, Groth16Receipt):
            raise ValueError(f"receipt is {self.kind.name.lower()}, not groth16")
        return self.inner

    def with_inner(self, inner: InnerReceipt) -> "Receipt":
        return Receipt(inner=inner, journal=self.journal, claim=self.claim)

    def to_dict(self) -> dict[str, Any]:
        inner: dict[str, Any] = {"kind": self.kind.name.lower()}
        if isinstance(self.inner, CompositeReceipt):
            inner["segments"] = [
                {"index": s.index, "po2": s.po2, "cycles": s.cycles, "seal": s.seal.hex()}
                for s in self.inner.segments
            ]
        elif isinstance(self.inner, SuccinctReceipt):
            inner["seal"] = self.inner.seal.hex()
        else:
            inner["seal"] = self.inner.seal.hex()
            inner["verifier_parameters"] = self.inner.verifier_parameters.hex()
        return {
            "schema": "zkvm_receipt_v1",
            "journal": self.journal.bytes.hex(),
            "claim": self.claim.to_dict(),
            "inner": inner,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Receipt":
        _require_dict(data, "receipt")
        journal = Journal(_hex_to_bytes(data.get("journal", "")))
        claim = ReceiptClaim.from_dict(data.get("claim", {}))
        inner_data = _require_dict(data.get("inner", {}), "inner")
        kind = ReceiptKind.parse(inner_data.get("kind", "composite"))
        inner: InnerReceipt
        if kind is ReceiptKind.COMPOSITE:
            inner = CompositeReceipt(tuple(
                SegmentReceipt(
                    index=int(s["index"]),
                    po2=int(s.get("po2", 0)),
                    cycles=int(s.get("cycles", 0)),
                    seal=_hex_to_bytes(s.get("seal", "")),
                )
                for s in inner_data.get("segments", [])
            ))
        elif kind is ReceiptKind.SUCCINCT:
            inner = SuccinctReceipt(_hex_to_bytes(inner_data.get("seal", "")))
        else:
            inner = Groth16Receipt(
                seal=_hex_to_bytes(inner_data.get("seal", "")),
                verifier_parameters=_hex_to_bytes(inner_data.get("verifier_parameters", "")),
            )
        return cls(inner=inner, journal=journal, claim=claim)

    @classmethod
    def from_json(cls, text: str) -> "Receipt":
        return cls.from_dict(json.loads(text))

    @classmethod
    def from_file(cls, path: Path) -> "Receipt":
        return cls.from_json(Path(path).read_text())


@dataclass(frozen=True)
class SessionStats:
    segments: int
    total_cycles: int
    user_cycles: int


@dataclass(frozen=True)
class ProveInfo:
    receipt: Receipt
    stats: SessionStats


__all__ = [
    "ReceiptKind",
    "Journal",
    "ReceiptClaim",
    "VerifierParameters",
    "SegmentReceipt",
    "CompositeReceipt",
    "SuccinctReceipt",
    "Groth16Receipt",
    "InnerReceipt",
    "Receipt",
    "SessionStats",
    "ProveInfo",
    "GROTH16_SEAL_SIZE",
    "SELECTOR_SIZE",
]
