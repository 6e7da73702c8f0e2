"""
Tests for occupancy_sdm.step_runner.

Verifies the generic step execution framework: timing, error handling,
StepResult construction, and the expected_exceptions pattern.

Every pipeline step flows through run_step(). A bug here silently
swallows errors or misreports step status, making pipeline failures
invisible.
"""

import time

import pandas as pd
import rasterio.errors

from occupancy_sdm.pipeline_types import StepResult
from occupancy_sdm.step_runner import run_step


class TestRunStepSuccess:
    """Tests for successful step execution."""

    def test_basic_success(self):
        """A simple function should produce a success StepResult."""
        result, data = run_step("test_step", lambda: 42)
        assert isinstance(result, StepResult)
        assert result.status == "success"
        assert result.step_name == "test_step"
        assert result.error is None
        assert result.completed_at is not None
        assert data == 42

    def test_timing_recorded(self):
        def slow_fn():
            time.sleep(0.05)
            return "done"

        result, _ = run_step("timed_step", slow_fn)
        assert result.timing_seconds >= 0.04

    def test_args_and_kwargs_passed(self):
        def adder(a, b, multiplier=1):
            return (a + b) * multiplier

        _, data = run_step("adder", adder, 3, 4, multiplier=2)
        assert data == 14

    def test_input_summary_recorded(self):
        result, _ = run_step("summarized", lambda: "ok",
                             input_summary={"cells": 100, "models": ["A"]})
        assert result.input_summary == {"cells": 100, "models": ["A"]}

    def test_output_summary_fn_called(self):
        result, _ = run_step("with_summary", lambda: [1, 2, 3],
                             output_summary_fn=lambda x: {"count": len(x)})
        assert result.output_summary == {"count": 3}

    def test_output_summary_skipped_for_none(self):
        called = []
        _, data = run_step("none_result", lambda: None,
                           output_summary_fn=lambda x: called.append(True) or {})
        assert data is None
        assert called == []

    def test_tuple_results_pass_through(self):
        """Steps returning (results, failures) hand back both parts."""
        result, data = run_step("fit", lambda: (["A"], {"B": "tb"}),
                                output_summary_fn=lambda out: {"failed": sorted(out[1])})
        assert data == (["A"], {"B": "tb"})
        assert result.output_summary == {"failed": ["B"]}


class TestRunStepErrorHandling:
    """Tests for error handling in step execution."""

    def test_expected_exception_caught(self):
        def fails():
            raise FileNotFoundError("points_env.csv not found")

        result, data = run_step("failing_step", fails)
        assert result.status == "error"
        assert "points_env.csv not found" in result.error
        assert data is None

    def test_value_error_caught(self):
        def bad_value():
            raise ValueError("presences exceed trials")

        result, data = run_step("bad_value", bad_value)
        assert result.status == "error"
        assert not result.ok

    def test_key_error_caught(self):
        def missing_key():
            raise KeyError("presence")

        result, _ = run_step("missing_key", missing_key)
        assert result.status == "error"

    def test_empty_data_error_caught(self):
        def empty_csv():
            raise pd.errors.EmptyDataError("No columns to parse")

        result, _ = run_step("empty_csv", empty_csv)
        assert result.status == "error"

    def test_raster_io_error_caught(self):
        def bad_tif():
            raise rasterio.errors.RasterioIOError("not a GeoTIFF")

        result, _ = run_step("bad_tif", bad_tif)
        assert result.status == "error"

    def test_unexpected_exception_also_caught(self):
        def unexpected():
            raise RuntimeError("unexpected crash")

        result, _ = run_step("unexpected", unexpected)
        assert result.status == "error"
        assert "unexpected crash" in result.error

    def test_input_summary_kept_on_error(self):
        def fails():
            raise ValueError("x")

        result, _ = run_step("fails", fails, input_summary={"csv_path": "a.csv"})
        assert result.input_summary == {"csv_path": "a.csv"}

    def test_error_timing_still_recorded(self):
        def fails_slowly():
            time.sleep(0.05)
            raise ValueError("slow fail")

        result, _ = run_step("slow_fail", fails_slowly)
        assert result.timing_seconds >= 0.04


class TestStepResultSerialization:

    def test_round_trip(self):
        result, _ = run_step("rt", lambda: [1], input_summary={"a": 1},
                             output_summary_fn=lambda x: {"n": len(x)})
        restored = StepResult.from_dict(result.to_dict())
        assert restored.step_name == "rt"
        assert restored.status == "success"
        assert restored.output_summary == {"n": 1}
