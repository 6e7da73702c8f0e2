"""
Tests for occupancy_sdm.grid.aggregation.

The per-cell table is the model's only input: presences and trials are
counts per (row, col), covariates are means over the contributing
points, and trials are repaired so they never fall below presences.
"""

import numpy as np
import pandas as pd
import pytest

from occupancy_sdm.grid import (
    adjust_trials,
    aggregate_cells,
    assign_cells,
    attach_covariates,
    grid_observations,
)


@pytest.fixture
def joined(small_env, two_cell_observations):
    return attach_covariates(assign_cells(two_cell_observations, small_env.grid), small_env)


def _cell(cells, row, col):
    match = cells[(cells["row"] == row) & (cells["col"] == col)]
    assert len(match) == 1
    return match.iloc[0]


class TestTwoCellScenario:
    """10 observations in 2 cells: A has 3 detections / 1 non-detection,
    B has 0 detections / 6 non-detections."""

    def test_raw_counts(self, joined):
        cells = aggregate_cells(joined, ["MAT", "ALT"])
        assert len(cells) == 2
        a = _cell(cells, 0, 0)
        b = _cell(cells, 1, 2)
        assert (a["presences"], a["trials"]) == (3, 1)
        assert (b["presences"], b["trials"]) == (0, 6)

    def test_trials_raised_to_presences(self, joined):
        cells = grid_observations(joined, ["MAT", "ALT"])
        a = _cell(cells, 0, 0)
        b = _cell(cells, 1, 2)
        assert (a["presences"], a["trials"]) == (3, 3)
        assert (b["presences"], b["trials"]) == (0, 6)

    def test_covariate_means_and_cell_attributes(self, joined):
        cells = aggregate_cells(joined, ["MAT", "ALT"])
        b = _cell(cells, 1, 2)
        assert b["MAT"] == 12.0
        assert b["ALT"] == -12.0
        assert b["cell_lon"] == pytest.approx(2.5)
        assert b["cell_lat"] == pytest.approx(1.5)
        assert b["cell"] == 6


class TestAggregateCells:
    """Grouping, dropping and output shape."""

    def test_sorted_and_typed(self, joined):
        cells = aggregate_cells(joined, ["MAT", "ALT"])
        assert list(cells["row"]) == [0, 1]
        for col in ("row", "col", "presences", "trials"):
            assert cells[col].dtype == np.int64
        assert cells["MAT"].dtype == np.float64

    def test_means_over_points(self, small_grid):
        """Points carrying their own covariate values are averaged per cell."""
        obs = pd.DataFrame({
            "longitude": [0.2, 0.4, 0.6],
            "latitude": [2.5, 2.5, 2.5],
            "presence": [0, 1, 0],
            "MAT": [1.0, 2.0, 6.0],
        })
        cells = aggregate_cells(assign_cells(obs, small_grid), ["MAT"])
        assert cells["MAT"].iloc[0] == pytest.approx(3.0)

    def test_missing_covariate_drops_cell(self, small_grid):
        """One missing value makes the cell mean missing and removes the cell."""
        obs = pd.DataFrame({
            "longitude": [0.2, 0.4, 2.5],
            "latitude": [2.5, 2.5, 2.5],
            "presence": [1, 0, 0],
            "MAT": [1.0, np.nan, 4.0],
        })
        cells = aggregate_cells(assign_cells(obs, small_grid), ["MAT"])
        assert len(cells) == 1
        assert (cells["row"].iloc[0], cells["col"].iloc[0]) == (0, 2)
        assert cells["MAT"].notna().all()

    def test_unassigned_points_excluded(self, small_env, two_cell_observations):
        extra = pd.DataFrame({"longitude": [50.0], "latitude": [50.0], "presence": [1]})
        obs = pd.concat([two_cell_observations, extra], ignore_index=True)
        joined = attach_covariates(assign_cells(obs, small_env.grid), small_env)
        cells = aggregate_cells(joined, ["MAT", "ALT"])
        assert cells["presences"].sum() == 3
        assert cells["trials"].sum() == 7

    def test_no_assigned_points_raises(self, small_grid):
        obs = pd.DataFrame({"longitude": [50.0], "latitude": [50.0], "presence": [1],
                            "MAT": [1.0]})
        with pytest.raises(ValueError, match="inside the raster"):
            aggregate_cells(assign_cells(obs, small_grid), ["MAT"])

    def test_missing_covariate_column_raises(self, joined):
        with pytest.raises(KeyError, match="CLDJAN"):
            aggregate_cells(joined, ["CLDJAN"])

    def test_input_order_does_not_change_output(self, joined):
        cells = aggregate_cells(joined, ["MAT", "ALT"])
        shuffled = aggregate_cells(joined.sample(frac=1.0, random_state=3), ["MAT", "ALT"])
        pd.testing.assert_frame_equal(cells, shuffled, check_exact=True)


class TestAdjustTrials:
    """The presences > trials repair."""

    def test_only_short_cells_change(self):
        cells = pd.DataFrame({"presences": [3, 0, 2, 5], "trials": [1, 6, 2, 7]})
        out = adjust_trials(cells)
        assert out["trials"].tolist() == [3, 6, 2, 7]
        assert out["presences"].tolist() == [3, 0, 2, 5]

    def test_input_not_mutated(self):
        cells = pd.DataFrame({"presences": [3], "trials": [1]})
        adjust_trials(cells)
        assert cells["trials"].iloc[0] == 1
