"""Guest programs runnable by the local prover backend.

A guest is an opaque binary plus, for the local backend, the Python entry
point that gives it semantics. The binary for a Python guest is derived from
its source so that editing the guest changes its image id, exactly as
rebuilding an ELF would.

Guest-side API (``GuestEnv``):
    read(kind)          -> next private input value
    commit(value, kind) -> append to the public journal
    cycle(n)            -> charge extra execution cycles
    exit(code)          -> halt with an exit code
    trap(message)       -> abort execution
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .errors import SerdeError
from .identity import ProgramIdentity, compute_image_id
from .serde import U32_MAX, WordReader, to_words, words_to_bytes

LOCAL_GUEST_MAGIC = b"\x7fELF\x00zkvm-local-guest\x00"

# Charged once per run for loader and journal finalization.
BASE_CYCLES = 64


class GuestTrap(Exception):
    """Raised inside a guest to abort execution."""


class GuestExit(Exception):
    def __init__(self, code: int) -> None:
        super().__init__(f"guest exited with code {code}")
        self.code = code


class GuestEnv:
    """Execution context handed to a guest entry point."""

    def __init__(self, reader: WordReader, env_vars: Mapping[str, str] | None = None) -> None:
        self._reader = reader
        self._journal: list[int] = []
        self.env_vars = dict(env_vars or {})
        self.cycles = BASE_CYCLES

    def read(self, kind: str) -> Any:
        before = self._reader.consumed
        try:
            value = self._reader.read(kind)
        except SerdeError as exc:
            raise GuestTrap(f"failed to read {kind} from input: {exc}") from exc
        self.cycles += self._reader.consumed - before
        return value

    def commit(self, value: Any, kind: str) -> None:
        try:
            words = to_words(value, kind)
        except SerdeError as exc:
            raise GuestTrap(f"failed to commit {kind}: {exc}") from exc
        self._journal.extend(words)
        self.cycles += len(words)

    def cycle(self, n: int) -> None:
        self.cycles += max(0, int(n))

    def exit(self, code: int) -> None:
        raise GuestExit(code)

    def trap(self, message: str) -> None:
        raise GuestTrap(message)

    @property
    def journal_bytes(self) -> bytes:
        return words_to_bytes(self._journal)


GuestEntry = Callable[[GuestEnv], None]


@dataclass(frozen=True)
class GuestProgram:
    name: str
    binary: bytes
    entry: GuestEntry

    @classmethod
    def from_function(cls, entry: GuestEntry, name: str | None = None) -> "GuestProgram":
        name = name or entry.__name__
        source = inspect.getsource(entry).encode("utf-8")
        binary = LOCAL_GUEST_MAGIC + name.encode("utf-8") + b"\x00" + source
        return cls(name=name, binary=binary, entry=entry)

    @property
    def image_id(self) -> ProgramIdentity:
        return compute_image_id(self.binary)


def xsquare_guest(env: GuestEnv) -> None:
    """Read a u32 and commit its square as a u32."""
    x = env.read("u32")
    y = x * x
    if y > U32_MAX:
        env.trap("attempt to multiply with overflow")
    env.commit(y, "u32")


XSQUARE = GuestProgram.from_function(xsquare_guest, name="xsquare")

BUILTIN_GUESTS: dict[str, GuestProgram] = {
    XSQUARE.name: XSQUARE,
}


__all__ = [
    "GuestProgram",
    "GuestEnv",
    "GuestTrap",
    "GuestExit",
    "XSQUARE",
    "BUILTIN_GUESTS",
    "xsquare_guest",
]
