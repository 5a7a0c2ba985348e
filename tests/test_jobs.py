"""Tests for the job registry and the xsquare job."""
from __future__ import annotations

import pytest

from zkvm_blueprint.abi import decode_job_inputs
from zkvm_blueprint.errors import EnvironmentBuildError, ExecutionTrap, Stage
from zkvm_blueprint.guests import XSQUARE
from zkvm_blueprint.jobs import JOBS, XSquareParams, get_job, job, run_job, xsquare
from zkvm_blueprint.pipeline import Failure, Success
from zkvm_blueprint.receipt import Journal


class TestRegistry:
    def test_xsquare_registered_as_job_zero(self):
        assert JOBS[0] is xsquare
        assert xsquare.name == "xsquare"
        assert xsquare.params == ("x",)
        assert xsquare.verifier == "ZkvmBlueprint"
        assert xsquare.guest is XSQUARE

    @pytest.mark.parametrize("key", [0, "0", "xsquare"])
    def test_lookup(self, key):
        assert get_job(key) is xsquare

    def test_unknown_job(self):
        with pytest.raises(KeyError):
            get_job("cube")
        with pytest.raises(KeyError):
            get_job(42)

    def test_duplicate_id_rejected(self, monkeypatch):
        monkeypatch.setattr("zkvm_blueprint.jobs.JOBS", dict(JOBS))
        with pytest.raises(ValueError, match="already registered"):
            @job(id=0, params=XSquareParams, guest=XSQUARE, verifier="Other")
            def other(params):
                return [(params.x, "u32")]

    def test_new_job_registered(self, monkeypatch):
        registry = dict(JOBS)
        monkeypatch.setattr("zkvm_blueprint.jobs.JOBS", registry)

        @job(id=7, params=XSquareParams, guest=XSQUARE, verifier="ZkvmBlueprint")
        def doubled(params):
            """Square of 2x."""
            return [(params.x * 2, "u32")]

        assert registry[7] is doubled
        assert doubled.description == "Square of 2x."
        assert doubled.inputs({"x": 3}) == [(6, "u32")]


class TestRunJob:
    def test_run_by_id(self, ctx):
        result = run_job(0, {"x": 9}, ctx)
        assert isinstance(result, Success)
        assert Journal(result.journal).decode("u32") == 81

    def test_call_returns_encoded_output(self, ctx):
        output = xsquare(9, ctx=ctx)
        assert Journal(decode_job_inputs(output).journal_data).decode("u32") == 81
        assert decode_job_inputs(xsquare(x=3, ctx=ctx)).journal_data == (9).to_bytes(4, "little")

    def test_call_raises_on_trap(self, ctx):
        with pytest.raises(ExecutionTrap):
            xsquare(65536, ctx=ctx)

    def test_too_many_positional(self, ctx):
        with pytest.raises(TypeError):
            xsquare(1, 2, ctx=ctx)

    @pytest.mark.parametrize(
        "params",
        [
            {},
            {"x": "9"},
            {"x": True},
            {"x": -1},
            {"x": 1.5},
            {"x": 9, "y": 1},
            None,
            [9],
            "x=9",
        ],
    )
    def test_malformed_params_fail_at_build(self, ctx, params, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("prover must not run")

        monkeypatch.setattr(ctx.prover, "prove", fail)
        result = run_job("xsquare", params, ctx)
        assert isinstance(result, Failure)
        assert result.stage is Stage.BUILD
        assert isinstance(result.error, EnvironmentBuildError)
        assert "invalid parameters" in result.error.message

    def test_value_wider_than_u32_fails_at_build(self, ctx):
        result = run_job(0, {"x": 1 << 32}, ctx)
        assert isinstance(result, Failure)
        assert result.stage is Stage.BUILD

    def test_overflowing_square_traps(self, ctx):
        result = run_job(0, {"x": 65536}, ctx)
        assert isinstance(result, Failure)
        assert result.stage is Stage.PROVE
        assert isinstance(result.error, ExecutionTrap)
        assert "overflow" in result.error.message

    def test_largest_square_that_fits(self, ctx):
        result = run_job(0, {"x": 65535}, ctx)
        assert Journal(result.journal).decode("u32") == 65535 * 65535
