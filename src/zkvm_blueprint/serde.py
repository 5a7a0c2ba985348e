"""Word-oriented serializer shared by host and guest.

The zkVM guest reads its private input and writes its journal as a stream of
32-bit little-endian words. Values are tagged with a *kind* string:

    u8, u16, u32, i32, bool    -> 1 word
    u64, i64                   -> 2 words (low word first)
    bytes, str                 -> length word + data packed into padded words
    list[<kind>]               -> length word + each element

Host and guest must agree on the kind sequence; nothing in the stream
describes it.
"""
from __future__ import annotations

import struct
from typing import Any, Iterable, Sequence

from .errors import SerdeError

WORD_SIZE = 4
U32_MAX = (1 << 32) - 1

_UINT_BITS = {"u8": 8, "u16": 16, "u32": 32, "u64": 64}
_SINT_BITS = {"i32": 32, "i64": 64}

SCALAR_KINDS = frozenset(_UINT_BITS) | frozenset(_SINT_BITS) | {"bool"}
BLOB_KINDS = frozenset({"bytes", "str"})


def _list_element(kind: str) -> str | None:
    if kind.startswith("list[") and kind.endswith("]"):
        return kind[5:-1].strip()
    return None


def validate_kind(kind: str) -> str:
    """Return ``kind`` if it is a supported kind string, else raise."""
    if not isinstance(kind, str):
        raise SerdeError(f"kind must be a string, got {type(kind).__name__}")
    inner = _list_element(kind)
    if inner is not None:
        validate_kind(inner)
        return kind
    if kind in SCALAR_KINDS or kind in BLOB_KINDS:
        return kind
    raise SerdeError(f"unsupported kind {kind!r}")


def _require_int(value: Any, kind: str) -> int:
    # bool is an int subclass; reject it for numeric kinds
    if isinstance(value, bool) or not isinstance(value, int):
        raise SerdeError(f"{kind} expects int, got {type(value).__name__}")
    return value


def _pack_bytes(data: bytes) -> list[int]:
    padded = data + b"\x00" * (-len(data) % WORD_SIZE)
    return [int.from_bytes(padded[i:i + WORD_SIZE], "little") for i in range(0, len(padded), WORD_SIZE)]


def to_words(value: Any, kind: str) -> list[int]:
    """Serialize ``value`` as ``kind`` into a list of u32 words."""
    if kind in _UINT_BITS:
        n = _require_int(value, kind)
        bits = _UINT_BITS[kind]
        if n < 0 or n >= 1 << bits:
            raise SerdeError(f"{n} out of range for {kind}")
        if bits == 64:
            return [n & U32_MAX, n >> 32]
        return [n]
    if kind in _SINT_BITS:
        n = _require_int(value, kind)
        bits = _SINT_BITS[kind]
        if not -(1 << (bits - 1)) <= n < 1 << (bits - 1):
            raise SerdeError(f"{n} out of range for {kind}")
        n &= (1 << bits) - 1
        if bits == 64:
            return [n & U32_MAX, n >> 32]
        return [n]
    if kind == "bool":
        if not isinstance(value, bool):
            raise SerdeError(f"bool expects bool, got {type(value).__name__}")
        return [int(value)]
    if kind == "bytes":
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise SerdeError(f"bytes expects bytes, got {type(value).__name__}")
        data = bytes(value)
        return [len(data)] + _pack_bytes(data)
    if kind == "str":
        if not isinstance(value, str):
            raise SerdeError(f"str expects str, got {type(value).__name__}")
        data = value.encode("utf-8")
        return [len(data)] + _pack_bytes(data)
    inner = _list_element(kind)
    if inner is not None:
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            raise SerdeError(f"{kind} expects a sequence, got {type(value).__name__}")
        words = [len(value)]
        for item in value:
            words.extend(to_words(item, inner))
        return words
    raise SerdeError(f"unsupported kind {kind!r}")


def words_to_bytes(words: Iterable[int]) -> bytes:
    out = bytearray()
    for word in words:
        if not 0 <= word <= U32_MAX:
            raise SerdeError(f"word {word} out of u32 range")
        out.extend(struct.pack("<I", word))
    return bytes(out)


def bytes_to_words(data: bytes) -> list[int]:
    if len(data) % WORD_SIZE:
        raise SerdeError(f"byte stream length {len(data)} is not word aligned")
    return [w for (w,) in struct.iter_unpack("<I", data)]


def to_bytes(value: Any, kind: str) -> bytes:
    return words_to_bytes(to_words(value, kind))


class WordReader:
    """Sequential reader over a word stream."""

    def __init__(self, words: Sequence[int]) -> None:
        self._words = list(words)
        self._pos = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "WordReader":
        return cls(bytes_to_words(data))

    @property
    def remaining(self) -> int:
        return len(self._words) - self._pos

    @property
    def consumed(self) -> int:
        return self._pos

    def _take(self, count: int) -> list[int]:
        if count > self.remaining:
            raise SerdeError(f"unexpected end of stream: need {count} words, have {self.remaining}")
        words = self._words[self._pos:self._pos + count]
        self._pos += count
        return words

    def _take_blob(self) -> bytes:
        (length,) = self._take(1)
        packed = words_to_bytes(self._take((length + WORD_SIZE - 1) // WORD_SIZE))
        if any(packed[length:]):
            raise SerdeError("non-zero padding in packed bytes")
        return packed[:length]

    def read(self, kind: str) -> Any:
        if kind in _UINT_BITS:
            bits = _UINT_BITS[kind]
            if bits == 64:
                lo, hi = self._take(2)
                return lo | (hi << 32)
            (n,) = self._take(1)
            if n >= 1 << bits:
                raise SerdeError(f"word {n} out of range for {kind}")
            return n
        if kind in _SINT_BITS:
            bits = _SINT_BITS[kind]
            if bits == 64:
                lo, hi = self._take(2)
                n = lo | (hi << 32)
            else:
                (n,) = self._take(1)
            if n >= 1 << (bits - 1):
                n -= 1 << bits
            return n
        if kind == "bool":
            (n,) = self._take(1)
            if n not in (0, 1):
                raise SerdeError(f"word {n} is not a bool")
            return bool(n)
        if kind == "bytes":
            return self._take_blob()
        if kind == "str":
            try:
                return self._take_blob().decode("utf-8")
            except UnicodeDecodeError as exc:
                raise SerdeError("invalid utf-8 in str") from exc
        inner = _list_element(kind)
        if inner is not None:
            (length,) = self._take(1)
            return [self.read(inner) for _ in range(length)]
        raise SerdeError(f"unsupported kind {kind!r}")


def from_words(words: Sequence[int], kind: str) -> Any:
    """Decode exactly one ``kind`` value that spans all of ``words``."""
    reader = WordReader(words)
    value = reader.read(kind)
    if reader.remaining:
        raise SerdeError(f"{reader.remaining} trailing words after {kind}")
    return value


def from_bytes(data: bytes, kind: str) -> Any:
    return from_words(bytes_to_words(data), kind)


__all__ = [
    "WORD_SIZE",
    "U32_MAX",
    "WordReader",
    "validate_kind",
    "to_words",
    "to_bytes",
    "from_words",
    "from_bytes",
    "words_to_bytes",
    "bytes_to_words",
]
