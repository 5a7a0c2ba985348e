"""Job registry and the jobs this blueprint exposes.

A job turns dispatch parameters into the guest's input stream. The decorator
records the metadata the dispatch layer needs (numeric id, parameter names,
on-chain verifier contract) and the decorated object runs the full pipeline:

    @job(id=0, params=XSquareParams, guest=XSQUARE, verifier="ZkvmBlueprint")
    def xsquare(params):
        return [(params.x, "u32")]

    output = xsquare(9, ctx=ctx)                   # bytes, or raises PipelineError
    result = run_job(0, {"x": 9}, ctx)             # Success | Failure
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .context import JobContext
from .errors import EnvironmentBuildError
from .guests import XSQUARE, GuestProgram
from .pipeline import Failure, JobResult, run_pipeline

logger = logging.getLogger(__name__)

U64_MAX = (1 << 64) - 1

InputBuilder = Callable[[Any], list[tuple[Any, str]]]


@dataclass(frozen=True)
class JobDefinition:
    id: int
    name: str
    params_model: type[BaseModel]
    guest: GuestProgram
    verifier: str
    build_inputs: InputBuilder
    description: str = ""

    @property
    def params(self) -> tuple[str, ...]:
        return tuple(self.params_model.model_fields)

    def parse_params(self, params: Mapping[str, Any]) -> BaseModel:
        """Validate dispatch parameters.

        Raises:
            EnvironmentBuildError: Missing or malformed parameters.
        """
        try:
            data = dict(params)
        except (TypeError, ValueError) as exc:
            raise EnvironmentBuildError(
                f"invalid parameters for job {self.name!r}: expected a mapping, got {type(params).__name__}",
                cause=exc,
                job=self.name,
            ) from exc
        try:
            return self.params_model.model_validate(data)
        except ValidationError as exc:
            problems = [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise EnvironmentBuildError(
                f"invalid parameters for job {self.name!r}: " + "; ".join(problems),
                cause=exc,
                job=self.name,
            ) from exc

    def inputs(self, params: Mapping[str, Any]) -> list[tuple[Any, str]]:
        return self.build_inputs(self.parse_params(params))

    def run(self, ctx: JobContext, params: Mapping[str, Any]) -> JobResult:
        logger.debug("running job %d (%s)", self.id, self.name)
        try:
            inputs = self.inputs(params)
        except EnvironmentBuildError as exc:
            return Failure(stage=exc.stage, error=exc)
        return run_pipeline(ctx, inputs)

    def context(self, config: dict[str, Any]) -> JobContext:
        return JobContext.from_config(config, guest=self.guest)

    def __call__(self, *args: Any, ctx: JobContext, **kwargs: Any) -> bytes:
        names = self.params
        if len(args) > len(names):
            raise TypeError(f"{self.name}() takes {len(names)} positional parameters, got {len(args)}")
        params = dict(zip(names, args))
        params.update(kwargs)
        result = self.run(ctx, params)
        if isinstance(result, Failure):
            raise result.error
        return result.output


JOBS: dict[int, JobDefinition] = {}


def job(
    *,
    id: int,
    params: type[BaseModel],
    guest: GuestProgram,
    verifier: str,
) -> Callable[[InputBuilder], JobDefinition]:
    def decorator(fn: InputBuilder) -> JobDefinition:
        if id in JOBS:
            raise ValueError(f"job id {id} already registered as {JOBS[id].name!r}")
        definition = JobDefinition(
            id=id,
            name=fn.__name__,
            params_model=params,
            guest=guest,
            verifier=verifier,
            build_inputs=fn,
            description=(fn.__doc__ or "").strip(),
        )
        JOBS[id] = definition
        return definition

    return decorator


def get_job(key: int | str) -> JobDefinition:
    """Look up a job by numeric id or by name."""
    if isinstance(key, int):
        return JOBS[key]
    if str(key).isdigit():
        return JOBS[int(key)]
    for definition in JOBS.values():
        if definition.name == key:
            return definition
    raise KeyError(key)


def run_job(job_id: int | str, params: Mapping[str, Any], ctx: JobContext) -> JobResult:
    """Run a registered job with dispatch parameters."""
    return get_job(job_id).run(ctx, params)


class XSquareParams(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    x: int = Field(ge=0, le=U64_MAX)


@job(id=0, params=XSquareParams, guest=XSQUARE, verifier="ZkvmBlueprint")
def xsquare(params: XSquareParams) -> list[tuple[Any, str]]:
    """Prove the square of a private u32."""
    return [(params.x, "u32")]


__all__ = ["JOBS", "JobDefinition", "job", "get_job", "run_job", "xsquare", "XSquareParams"]
