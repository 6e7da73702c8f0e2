"""
Tests for occupancy_sdm.schemas validation gates and the run/fit
configuration types in occupancy_sdm.pipeline_types.
"""

import json

import numpy as np
import pandas as pd
import pytest

from conftest import make_cells, make_frame
from occupancy_sdm.pipeline_types import (
    MCMCSettings,
    ModelSpec,
    PipelineRunResult,
    StepResult,
)
from occupancy_sdm.schemas import (
    JoinedObservationSchema,
    ObservationSchema,
    PosteriorSummarySchema,
    grid_cell_schema,
    prediction_frame_schema,
    validate_schema,
)


class TestGridCellSchema:

    def test_valid_cells_pass(self):
        assert validate_schema(make_cells(), grid_cell_schema(["MAT", "ALT"]), "cells") == []

    def test_trials_below_presences_flagged(self):
        cells = make_cells()
        cells.loc[0, "presences"] = cells.loc[0, "trials"] + 1
        warnings = validate_schema(cells, grid_cell_schema(["MAT"]), "cells")
        assert warnings

    def test_duplicate_cell_key_flagged(self):
        cells = make_cells()
        cells.loc[1, "row"] = cells.loc[0, "row"]
        assert validate_schema(cells, grid_cell_schema(["MAT"]), "cells")

    def test_missing_covariate_flagged(self):
        cells = make_cells()
        cells.loc[3, "ALT"] = np.nan
        assert validate_schema(cells, grid_cell_schema(["ALT"]), "cells")

    def test_zero_trials_flagged(self):
        cells = make_cells()
        cells.loc[0, ["presences", "trials"]] = 0
        assert validate_schema(cells, grid_cell_schema([]), "cells")

    def test_strict_raises(self):
        cells = make_cells()
        cells.loc[1, "row"] = cells.loc[0, "row"]
        with pytest.raises(ValueError, match="Schema validation failed"):
            validate_schema(cells, grid_cell_schema([]), "cells", strict=True)


class TestOtherSchemas:

    def test_prediction_frame(self):
        frame = make_frame()
        assert validate_schema(frame, prediction_frame_schema(["MAT", "ALT"]), "frame") == []
        frame.loc[0, "MAT"] = np.nan
        assert validate_schema(frame, prediction_frame_schema(["MAT"]), "frame")

    def test_observations(self, two_cell_observations):
        assert validate_schema(two_cell_observations, ObservationSchema, "obs") == []
        bad = two_cell_observations.assign(presence=2)
        assert validate_schema(bad, ObservationSchema, "obs")

    def test_joined_observations(self, small_grid, two_cell_observations):
        from occupancy_sdm.grid import assign_cells

        joined = assign_cells(two_cell_observations, small_grid)
        assert validate_schema(joined, JoinedObservationSchema, "joined") == []

    def test_posterior_summary_interval_order(self):
        summary = pd.DataFrame({
            "model": ["~MAT"], "modelname": ["A"], "parameter": ["beta.MAT"],
            "mean": [0.0], "sd": [1.0], "median": [0.0],
            "lower": [1.0], "upper": [-1.0], "rejection_rate": [0.5],
        })
        assert validate_schema(summary, PosteriorSummarySchema, "summary")

    def test_empty_and_none(self):
        assert validate_schema(pd.DataFrame(), ObservationSchema, "obs")
        assert validate_schema(None, ObservationSchema, "obs")
        with pytest.raises(ValueError):
            validate_schema(None, ObservationSchema, "obs", strict=True)


class TestPipelineTypes:

    @pytest.mark.parametrize("kwargs", [
        {"burnin": -1},
        {"mcmc": 0},
        {"mcmc": 10, "thin": 11},
        {"thin": 0},
    ])
    def test_invalid_mcmc_settings(self, kwargs):
        with pytest.raises(ValueError):
            MCMCSettings(**kwargs)

    def test_retained_draws(self):
        assert MCMCSettings(burnin=10, mcmc=1000, thin=3).n_retained == 333

    def test_model_spec_from_dict(self):
        spec = ModelSpec.from_dict({"model": "m1", "formula": "~MAT", "name": "T"})
        assert spec == ModelSpec("m1", "~MAT", "T")

    def test_run_result_round_trip(self):
        result = PipelineRunResult(run_dir="out", species="X", seed=7,
                                   model_labels=["A"], failed_models={"B": "tb"})
        result.step_results.append(StepResult(step_name="s", status="success"))
        d = json.loads(json.dumps(result.to_dict()))
        restored = PipelineRunResult.from_dict(d)
        assert restored.seed == 7
        assert restored.failed_models == {"B": "tb"}
        assert restored.step_results[0].ok
        assert d["all_ok"] is False

    def test_all_ok_requires_no_failed_models(self):
        result = PipelineRunResult()
        result.step_results.append(StepResult(step_name="s", status="success"))
        assert result.all_ok
        result.failed_models["A"] = "tb"
        assert not result.all_ok
