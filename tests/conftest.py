"""
Shared fixtures for occupancy SDM tests.

Provides a small raster lattice, synthetic covariate stacks and
observation tables, and a fast fake sampler so each test module can
focus on verifying pipeline logic against known inputs.
"""

import tempfile

import numpy as np
import pandas as pd
import pytest
from rasterio.transform import from_bounds

from occupancy_sdm.grid.raster_grid import EnvStack, RasterGrid
from occupancy_sdm.models.sampler import apply_design, design_matrix, posterior_mean_probability
from occupancy_sdm.pipeline_types import PosteriorResult


# ---------------------------------------------------------------------------
# Constants for synthetic test geometry
# ---------------------------------------------------------------------------
# A 4 x 3 lattice of unit cells: x in [0, 4], y in [0, 3], north-up.
WEST, SOUTH, EAST, NORTH = 0.0, 0.0, 4.0, 3.0
WIDTH, HEIGHT = 4, 3
TRANSFORM = from_bounds(WEST, SOUTH, EAST, NORTH, WIDTH, HEIGHT)


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after test."""
    with tempfile.TemporaryDirectory(prefix="sdm_test_") as d:
        yield d


@pytest.fixture
def small_grid():
    """4 x 3 grid of 1-degree cells with origin (0, 3)."""
    return RasterGrid(transform=TRANSFORM, width=WIDTH, height=HEIGHT)


@pytest.fixture
def small_env(small_grid):
    """Two-band stack on small_grid; MAT is missing in cell (2, 3).

    MAT = row * 10 + col, ALT = -(row * 10 + col), so every cell's values
    identify it.
    """
    rows, cols = np.indices(small_grid.shape)
    mat = (rows * 10 + cols).astype(float)
    alt = -mat.copy()
    mat[2, 3] = np.nan
    return EnvStack(data=np.stack([mat, alt]), names=["MAT", "ALT"], grid=small_grid)


@pytest.fixture
def two_cell_observations():
    """10 checklists in two cells.

    Cell A (row 0, col 0): 3 detections, 1 non-detection.
    Cell B (row 1, col 2): 0 detections, 6 non-detections.
    Coordinates vary within each cell.
    """
    lon_a = [0.1, 0.25, 0.5, 0.9]
    lat_a = [2.9, 2.6, 2.5, 2.1]
    lon_b = [2.05, 2.2, 2.4, 2.6, 2.8, 2.95]
    lat_b = [1.1, 1.3, 1.5, 1.6, 1.8, 1.95]
    return pd.DataFrame({
        "longitude": lon_a + lon_b,
        "latitude": lat_a + lat_b,
        "presence": [1, 1, 1, 0] + [0] * 6,
        "duration_minutes": [60.0] * 10,
        "effort_distance_km": [1.0] * 10,
        "effort_area_ha": [np.nan] * 10,
    })


def make_cells(n=40, seed=0):
    """Per-cell fitting table with two covariates and valid counts."""
    rng = np.random.default_rng(seed)
    trials = rng.integers(1, 6, n)
    presences = rng.binomial(trials, 0.3)
    return pd.DataFrame({
        "row": np.arange(n, dtype=np.int64),
        "col": np.zeros(n, dtype=np.int64),
        "cell_lon": np.linspace(0, 1, n),
        "cell_lat": np.linspace(0, 1, n),
        "presences": presences.astype(np.int64),
        "trials": trials.astype(np.int64),
        "MAT": rng.normal(size=n),
        "ALT": rng.normal(size=n),
    })


def make_frame(seed=1):
    """5 x 5 prediction frame with the same covariates as make_cells()."""
    rng = np.random.default_rng(seed)
    n = 25
    return pd.DataFrame({
        "row": np.repeat(np.arange(5), 5).astype(np.int64),
        "col": np.tile(np.arange(5), 5).astype(np.int64),
        "x": rng.uniform(size=n),
        "y": rng.uniform(size=n),
        "MAT": rng.normal(size=n),
        "ALT": rng.normal(size=n),
    })


@pytest.fixture
def cells():
    return make_cells()


@pytest.fixture
def frame():
    return make_frame()


class FakeSampler:
    """OccupancySampler that draws coefficients from N(0, 1) without MCMC.

    Seeded from the FitConfig, so equal seeds give equal samples.
    Formulas listed in *fail_on* raise RuntimeError.
    """

    def __init__(self, fail_on=(), n_pred=None):
        self.fail_on = set(fail_on)
        self.n_pred = n_pred

    def fit(self, data, predictors, config):
        if config.suitability in self.fail_on:
            raise RuntimeError(f"sampler blew up on {config.suitability}")
        X = design_matrix(config.suitability, data)
        W = design_matrix(config.observability, data)
        n = config.mcmc.n_retained
        rng = np.random.default_rng(config.seed)

        beta = rng.normal(size=(n, X.shape[1]))
        gamma = rng.normal(size=(n, W.shape[1]))
        samples = pd.DataFrame(beta, columns=[f"beta.{t}" for t in X.columns])
        for i, term in enumerate(W.columns):
            samples[f"gamma.{term}"] = gamma[:, i]
        samples["Deviance"] = rng.uniform(100, 200, n)

        prob = posterior_mean_probability(apply_design(X, predictors), beta)
        if self.n_pred is not None:
            prob = prob[:self.n_pred]
        return PosteriorResult(samples=samples, prob_p_pred=prob)


@pytest.fixture
def fake_sampler():
    return FakeSampler()
