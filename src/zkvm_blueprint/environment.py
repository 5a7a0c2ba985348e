"""Executor environment: the serialized private input for one guest run.

Usage:
    env = (
        ExecutorEnv.builder()
        .write(9, "u32")
        .build()
    )

Writes are recorded in call order and must match the guest's input schema;
the builder cannot check that. A failed write does not raise immediately --
it is remembered and ``build()`` refuses to produce an environment, so a
partially written input never reaches the prover.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .errors import EnvironmentBuildError, SerdeError
from .serde import WordReader, bytes_to_words, to_words, validate_kind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutorEnv:
    """Immutable input stream plus guest environment variables."""

    words: tuple[int, ...]
    env_vars: Mapping[str, str] = field(default_factory=dict)
    schema: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "env_vars", MappingProxyType(dict(self.env_vars)))

    @staticmethod
    def builder() -> "ExecutorEnvBuilder":
        return ExecutorEnvBuilder()

    @property
    def input_bytes(self) -> bytes:
        return b"".join(w.to_bytes(4, "little") for w in self.words)

    def reader(self) -> WordReader:
        return WordReader(self.words)


class ExecutorEnvBuilder:
    """Accumulates writes for an :class:`ExecutorEnv`."""

    def __init__(self) -> None:
        self._words: list[int] = []
        self._env_vars: dict[str, str] = {}
        self._schema: list[str] = []
        self._failures: list[str] = []
        self._built = False

    def write(self, value: Any, kind: str) -> "ExecutorEnvBuilder":
        """Serialize ``value`` as ``kind`` and append it to the input stream."""
        index = len(self._schema)
        try:
            words = to_words(value, validate_kind(kind))
        except SerdeError as exc:
            self._failures.append(f"input {index} ({kind}): {exc}")
            self._schema.append(kind)
            return self
        self._words.extend(words)
        self._schema.append(kind)
        return self

    def write_slice(self, data: bytes) -> "ExecutorEnvBuilder":
        """Append raw, already word-aligned bytes to the input stream."""
        index = len(self._schema)
        try:
            words = bytes_to_words(bytes(data))
        except (SerdeError, TypeError) as exc:
            self._failures.append(f"input {index} (slice): {exc}")
        else:
            self._words.extend(words)
        self._schema.append("slice")
        return self

    def env_var(self, key: str, value: str) -> "ExecutorEnvBuilder":
        if not key or "=" in key:
            self._failures.append(f"invalid env var name {key!r}")
        else:
            self._env_vars[key] = str(value)
        return self

    def build(self) -> ExecutorEnv:
        if self._built:
            raise EnvironmentBuildError("executor environment builder already consumed")
        self._built = True
        if self._failures:
            raise EnvironmentBuildError(
                "failed to serialize inputs: " + "; ".join(self._failures),
                failures=list(self._failures),
            )
        env = ExecutorEnv(
            words=tuple(self._words),
            env_vars=self._env_vars,
            schema=tuple(self._schema),
        )
        logger.debug("built executor env: %d inputs, %d words", len(env.schema), len(env.words))
        return env


def build_environment(inputs: Iterable[tuple[Any, str]], env_vars: Mapping[str, str] | None = None) -> ExecutorEnv:
    """Build an environment from ``(value, kind)`` pairs in the given order."""
    builder = ExecutorEnv.builder()
    for item in inputs:
        try:
            value, kind = item
        except (TypeError, ValueError) as exc:
            raise EnvironmentBuildError(f"malformed input entry {item!r}", cause=exc) from exc
        builder.write(value, kind)
    for key, value in (env_vars or {}).items():
        builder.env_var(key, value)
    return builder.build()


__all__ = ["ExecutorEnv", "ExecutorEnvBuilder", "build_environment"]
