"""Prover backend that drives an external prover host binary.

The host binary owns the real proving system. It is invoked once per
operation with JSON files on disk:

    <cmd> prove    --elf ELF --input INPUT.bin --out OUT.json
                   --segment-po2 N [--env KEY=VALUE ...]
    <cmd> compress --receipt IN.json --kind groth16 --out OUT.json
    <cmd> verify   --receipt IN.json --image-id HEX

``prove`` writes ``{"receipt": {...}, "stats": {...}}``; ``compress`` writes a
receipt. Receipts use the ``zkvm_receipt_v1`` JSON layout
(:meth:`Receipt.to_dict`).

Exit codes:
    0 - success
    2 - guest trapped (prove only)
    anything else - backend failure
"""
from __future__ import annotations

import json
import logging
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Sequence

from zkvm_blueprint.environment import ExecutorEnv
from zkvm_blueprint.errors import (
    CompressionError,
    ExecutionTrap,
    LocalVerificationError,
    PipelineError,
    ProofGenerationError,
)
from zkvm_blueprint.identity import ProgramIdentity
from zkvm_blueprint.prover import Prover, ProverOpts, check_compression_target
from zkvm_blueprint.receipt import ProveInfo, Receipt, SessionStats, VerifierParameters

logger = logging.getLogger(__name__)

EXIT_GUEST_TRAP = 2
DEFAULT_TIMEOUT_SEC = 3600
MAX_STDERR_CHARS = 2000


class ExternalProver(Prover):
    """Prover that shells out to a host binary for every operation."""

    name = "external"

    def __init__(
        self,
        command: str | Sequence[str],
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        verifier_parameters: VerifierParameters | None = None,
    ) -> None:
        super().__init__(verifier_parameters)
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("external prover command must not be empty")
        self.timeout_sec = timeout_sec

    def _run(self, args: list[str], error: type[PipelineError]) -> subprocess.CompletedProcess:
        cmd = [*self.command, *args]
        logger.debug("running prover host: %s", shlex.join(cmd))
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_sec,
                check=False,
            )
        except FileNotFoundError as exc:
            raise error(f"prover host not found: {self.command[0]}", cause=exc) from exc
        except subprocess.TimeoutExpired as exc:
            raise error(f"prover host timed out after {self.timeout_sec}s", cause=exc) from exc

    @staticmethod
    def _stderr(result: subprocess.CompletedProcess) -> str:
        return (result.stderr or "").strip()[-MAX_STDERR_CHARS:]

    def prove(self, env: ExecutorEnv, binary: bytes, opts: ProverOpts | None = None) -> ProveInfo:
        opts = opts or ProverOpts()
        with tempfile.TemporaryDirectory(prefix="zkvm-prove-") as tmp:
            tmpdir = Path(tmp)
            elf_path = tmpdir / "guest.elf"
            input_path = tmpdir / "input.bin"
            out_path = tmpdir / "prove.json"
            elf_path.write_bytes(binary)
            input_path.write_bytes(env.input_bytes)

            args = [
                "prove",
                "--elf", str(elf_path),
                "--input", str(input_path),
                "--out", str(out_path),
                "--segment-po2", str(opts.segment_limit_po2),
            ]
            for key, value in env.env_vars.items():
                args.extend(["--env", f"{key}={value}"])

            result = self._run(args, ProofGenerationError)
            if result.returncode == EXIT_GUEST_TRAP:
                raise ExecutionTrap(f"guest trapped: {self._stderr(result)}", returncode=result.returncode)
            if result.returncode != 0:
                raise ProofGenerationError(
                    f"prover host failed with exit code {result.returncode}: {self._stderr(result)}",
                    returncode=result.returncode,
                )
            try:
                payload = json.loads(out_path.read_text())
                receipt = Receipt.from_dict(payload["receipt"])
                raw_stats = payload.get("stats", {})
            except (OSError, KeyError, TypeError, ValueError) as exc:
                raise ProofGenerationError(f"prover host wrote an unreadable receipt: {exc}", cause=exc) from exc

        stats = SessionStats(
            segments=int(raw_stats.get("segments", 0)),
            total_cycles=int(raw_stats.get("total_cycles", 0)),
            user_cycles=int(raw_stats.get("user_cycles", 0)),
        )
        return ProveInfo(receipt=receipt, stats=stats)

    def compress(self, opts: ProverOpts, receipt: Receipt) -> Receipt:
        if check_compression_target(receipt, opts):
            return receipt
        with tempfile.TemporaryDirectory(prefix="zkvm-compress-") as tmp:
            tmpdir = Path(tmp)
            in_path = tmpdir / "receipt.json"
            out_path = tmpdir / "compressed.json"
            in_path.write_text(receipt.to_json())
            result = self._run(
                [
                    "compress",
                    "--receipt", str(in_path),
                    "--kind", opts.receipt_kind.name.lower(),
                    "--out", str(out_path),
                ],
                CompressionError,
            )
            if result.returncode != 0:
                raise CompressionError(
                    f"prover host failed to compress: {self._stderr(result)}",
                    returncode=result.returncode,
                )
            try:
                compressed = Receipt.from_file(out_path)
            except (OSError, KeyError, TypeError, ValueError) as exc:
                raise CompressionError(f"prover host wrote an unreadable receipt: {exc}", cause=exc) from exc

        if compressed.journal != receipt.journal:
            raise CompressionError("prover host altered the journal during compression")
        if compressed.kind is not opts.receipt_kind:
            raise CompressionError(
                f"prover host returned {compressed.kind.name.lower()}, "
                f"expected {opts.receipt_kind.name.lower()}"
            )
        return compressed

    def verify(self, receipt: Receipt, image_id: ProgramIdentity) -> None:
        with tempfile.TemporaryDirectory(prefix="zkvm-verify-") as tmp:
            in_path = Path(tmp) / "receipt.json"
            in_path.write_text(receipt.to_json())
            result = self._run(
                ["verify", "--receipt", str(in_path), "--image-id", image_id.hex],
                LocalVerificationError,
            )
        if result.returncode != 0:
            raise LocalVerificationError(
                f"prover host rejected receipt: {self._stderr(result)}",
                returncode=result.returncode,
            )

    def get_info(self) -> dict:
        info = super().get_info()
        info["command"] = shlex.join(self.command)
        info["timeout_sec"] = self.timeout_sec
        return info


__all__ = ["ExternalProver"]
