"""Program identity (image id) for guest binaries.

image_id = SHA256(ZKVM_IMAGE_ID_TAG || binary)

The identity is what a receipt's claim is bound to; verifying against an
identity computed from any other binary must fail.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

ZKVM_IMAGE_ID_TAG = b"ZKVM_IMAGE_ID_V1"
DIGEST_SIZE = 32


@dataclass(frozen=True)
class ProgramIdentity:
    """32-byte digest identifying one guest binary."""

    digest: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.digest, (bytes, bytearray)) or len(self.digest) != DIGEST_SIZE:
            raise ValueError("program identity must be a 32-byte digest")
        object.__setattr__(self, "digest", bytes(self.digest))

    @property
    def hex(self) -> str:
        return self.digest.hex()

    def as_words(self) -> list[int]:
        """Return the identity as eight little-endian u32 words."""
        return [int.from_bytes(self.digest[i:i + 4], "little") for i in range(0, DIGEST_SIZE, 4)]

    @classmethod
    def from_hex(cls, value: str) -> "ProgramIdentity":
        value = value.strip().lower().replace("0x", "", 1)
        try:
            raw = bytes.fromhex(value)
        except ValueError as exc:
            raise ValueError(f"invalid image id hex: {value!r}") from exc
        return cls(raw)

    @classmethod
    def from_words(cls, words: list[int]) -> "ProgramIdentity":
        if len(words) != DIGEST_SIZE // 4:
            raise ValueError("image id must be 8 words")
        return cls(b"".join(int(w).to_bytes(4, "little") for w in words))

    def __str__(self) -> str:
        return self.hex


def compute_image_id(binary: bytes) -> ProgramIdentity:
    """Compute the identity of a guest binary.

    Raises:
        ValueError: If the binary is empty.
    """
    if not binary:
        raise ValueError("cannot compute image id of an empty binary")
    h = hashlib.sha256()
    h.update(ZKVM_IMAGE_ID_TAG)
    h.update(bytes(binary))
    return ProgramIdentity(h.digest())


def compute_image_id_file(path: Path) -> ProgramIdentity:
    return compute_image_id(Path(path).read_bytes())


__all__ = ["ProgramIdentity", "compute_image_id", "compute_image_id_file", "ZKVM_IMAGE_ID_TAG"]
