"""
Sampler capability used by the model driver, plus design-matrix helpers.

Any object with a ``fit(data, predictors, config) -> PosteriorResult``
method can be plugged into the driver; the gridding pipeline never
depends on a particular MCMC library.
"""

from typing import Protocol

import numpy as np
import pandas as pd
from patsy import build_design_matrices, dmatrix
from scipy.special import expit as inv_logit

from occupancy_sdm.pipeline_types import FitConfig, PosteriorResult


class OccupancySampler(Protocol):
    def fit(self, data: pd.DataFrame, predictors: pd.DataFrame,
            config: FitConfig) -> PosteriorResult:
        """Fit to the per-cell table and predict over the prediction frame."""
        ...


def design_matrix(formula, data):
    """Model matrix for a one-sided formula such as ``~MAT+ALT`` or ``~1``.

    Raises ValueError (via patsy) for malformed formulas or unknown columns.
    Rows with missing values raise rather than being silently dropped.
    """
    return dmatrix(formula, data, NA_action="raise", return_type="dataframe")


def apply_design(matrix, data):
    """Rebuild *matrix*'s design (same terms and column order) on new data."""
    (out,) = build_design_matrices([matrix.design_info], data,
                                   NA_action="raise", return_type="dataframe")
    return out


def posterior_mean_probability(X, coef_draws, chunk_size=200):
    """Mean over draws of inv_logit(X @ coef) for every row of X.

    Parameters
    ----------
    X : array-like, shape (n_rows, n_terms)
    coef_draws : array-like, shape (n_draws, n_terms)

    Draws are processed in chunks to bound memory on large prediction frames.
    """
    X = np.asarray(X, dtype=float)
    coef_draws = np.asarray(coef_draws, dtype=float)
    if coef_draws.ndim != 2 or coef_draws.shape[1] != X.shape[1]:
        raise ValueError(
            f"Coefficient draws {coef_draws.shape} do not match design {X.shape}"
        )

    total = np.zeros(X.shape[0], dtype=float)
    for start in range(0, len(coef_draws), chunk_size):
        block = coef_draws[start:start + chunk_size]
        total += inv_logit(X @ block.T).sum(axis=1)
    return total / len(coef_draws)
