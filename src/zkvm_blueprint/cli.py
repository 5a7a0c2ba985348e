"""zkvm-blueprint CLI.

Commands:
    run       - Prove a job and print its ABI-encoded output
    image-id  - Print the program identity of a guest binary
    decode    - Split an encoded output back into journal and seal
    verify    - Verify a receipt file against a program identity
    jobs      - List registered jobs

Exit codes (run / verify):
    0  - Success
    2  - Usage error
    10 - Environment build failed
    11 - Guest execution trapped
    12 - Proof generation failed
    13 - Compression failed
    14 - Local verification failed
    15 - Output encoding failed
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from .abi import decode_job_inputs, split_seal
from .backends import default_prover
from .config import load_config
from .errors import ConfigError, EncodingError, LocalVerificationError, PipelineError, SerdeError
from .identity import ProgramIdentity, compute_image_id
from .jobs import JOBS, get_job
from .log import configure_logging
from .pipeline import Failure
from .receipt import Journal, Receipt
from .verifier import LocalVerifier

console = Console()


def _parse_param(raw: str) -> tuple[str, Any]:
    if "=" not in raw:
        raise click.BadParameter(f"expected KEY=VALUE, got {raw!r}", param_hint="--param")
    key, value = raw.split("=", 1)
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    return key.strip(), parsed


def _load(config_path: Optional[Path]) -> dict:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.UsageError(str(exc)) from exc
    configure_logging(config["logging"]["level"])
    return config


def _read_hex_arg(data: str) -> bytes:
    if data.startswith("@"):
        path = Path(data[1:])
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise click.BadParameter(f"cannot read {path}: {exc.strerror or exc}", param_hint="DATA") from exc
        try:
            text = raw.decode("ascii").strip()
        except UnicodeDecodeError:
            return raw
        data = text
    data = data.strip()
    if data.startswith("0x"):
        data = data[2:]
    try:
        return bytes.fromhex(data)
    except ValueError as exc:
        raise click.BadParameter(f"not valid hex: {exc}") from exc


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Config file (default: ~/.zkvm-blueprint/config.json)")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]) -> None:
    """Prove guest programs and encode results for on-chain verification."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command("run")
@click.argument("job_key", default="xsquare")
@click.option("-p", "--param", "params", multiple=True, help="Job parameter as KEY=VALUE (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Print a JSON result instead of hex output")
@click.option("--out", "out_path", type=click.Path(path_type=Path), default=None,
              help="Also write raw encoded output bytes to this file")
@click.pass_context
def run_command(ctx: click.Context, job_key: str, params: tuple[str, ...], as_json: bool,
                out_path: Optional[Path]) -> None:
    """Prove JOB_KEY (name or id) and print the encoded output."""
    try:
        definition = get_job(job_key)
    except KeyError:
        raise click.UsageError(f"unknown job {job_key!r}") from None
    job_params = dict(_parse_param(p) for p in params)
    config = _load(ctx.obj.get("config_path"))
    try:
        job_ctx = definition.context(config)
    except (ConfigError, ValueError) as exc:
        raise click.UsageError(str(exc)) from exc

    result = definition.run(job_ctx, job_params)
    if isinstance(result, Failure):
        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2))
        else:
            click.echo(f"error: {result.error}", err=True)
        sys.exit(result.error.exit_code)

    if out_path is not None:
        out_path.write_bytes(result.output)
    if as_json:
        payload = result.to_dict()
        payload["job"] = {"id": definition.id, "name": definition.name, "verifier": definition.verifier}
        click.echo(json.dumps(payload, indent=2))
    else:
        click.echo("0x" + result.output.hex())


@cli.command("image-id")
@click.option("--elf", "elf_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="Guest binary (default: the job's built-in guest)")
@click.option("--job", "job_key", default="xsquare", help="Job whose built-in guest to use")
@click.option("--words", is_flag=True, help="Print as eight u32 words")
def image_id_command(elf_path: Optional[Path], job_key: str, words: bool) -> None:
    """Print the program identity of a guest binary."""
    if elf_path is not None:
        binary = elf_path.read_bytes()
    else:
        try:
            binary = get_job(job_key).guest.binary
        except KeyError:
            raise click.UsageError(f"unknown job {job_key!r}") from None
    try:
        identity = compute_image_id(binary)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    if words:
        click.echo(json.dumps(identity.as_words()))
    else:
        click.echo(identity.hex)


@cli.command("decode")
@click.argument("data")
@click.option("--journal-kind", default=None, help="Also decode the journal as this kind (e.g. u32)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
def decode_command(data: str, journal_kind: Optional[str], as_json: bool) -> None:
    """Split an encoded job output (hex or @FILE) into journal and seal."""
    try:
        inputs = decode_job_inputs(_read_hex_arg(data))
        selector, proof = split_seal(inputs.seal)
    except EncodingError as exc:
        raise click.ClickException(str(exc)) from exc

    payload: dict[str, Any] = inputs.to_dict()
    payload["selector"] = "0x" + selector.hex()
    payload["proof_len"] = len(proof)
    if journal_kind:
        try:
            payload["journal_value"] = Journal(inputs.journal_data).decode(journal_kind)
        except SerdeError as exc:
            raise click.ClickException(f"journal does not decode as {journal_kind}: {exc}") from exc

    if as_json:
        click.echo(json.dumps(payload, indent=2))
        return
    table = Table(show_header=False, box=None)
    for key, value in payload.items():
        table.add_row(key, str(value))
    console.print(table)


@cli.command("verify")
@click.argument("receipt_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--image-id", "image_id_hex", required=True, help="Expected program identity (hex)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def verify_command(ctx: click.Context, receipt_path: Path, image_id_hex: str, as_json: bool) -> None:
    """Verify RECEIPT_PATH against an expected program identity."""
    config = _load(ctx.obj.get("config_path"))
    try:
        identity = ProgramIdentity.from_hex(image_id_hex)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--image-id") from exc
    try:
        receipt = Receipt.from_file(receipt_path)
    except (KeyError, TypeError, ValueError) as exc:
        raise click.ClickException(f"cannot parse receipt: {exc}") from exc
    try:
        prover = default_prover(config)
    except ConfigError as exc:
        raise click.UsageError(str(exc)) from exc

    report = LocalVerifier(prover).verify_report(receipt, identity)
    if as_json:
        click.echo(json.dumps({"verified": report.ok, **report.details,
                               "elapsed_sec": round(report.elapsed_sec, 6)}, indent=2))
    elif report.ok:
        console.print(f"[green]verified[/green] {receipt.kind.name.lower()} receipt for {identity.hex}")
    else:
        console.print(f"[red]verification failed[/red]: {report.details.get('error')}")
    if not report.ok:
        sys.exit(LocalVerificationError.exit_code)


@cli.command("jobs")
def jobs_command() -> None:
    """List registered jobs."""
    table = Table(title="Jobs")
    table.add_column("id", justify="right")
    table.add_column("name")
    table.add_column("params")
    table.add_column("verifier")
    table.add_column("image id")
    for definition in sorted(JOBS.values(), key=lambda d: d.id):
        table.add_row(
            str(definition.id),
            definition.name,
            ", ".join(definition.params),
            definition.verifier,
            definition.guest.image_id.hex[:16] + "…",
        )
    console.print(table)


def main() -> None:
    """Entry point for the zkvm-blueprint command."""
    try:
        cli(obj={})
    except PipelineError as exc:  # pragma: no cover - commands map these to exit codes
        click.echo(f"error: {exc}", err=True)
        sys.exit(exc.exit_code)


__all__ = ["cli", "main"]
