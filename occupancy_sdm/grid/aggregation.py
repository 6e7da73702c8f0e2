"""
Per-cell aggregation of joined observations and the trials repair.

The fitting table has one row per observed raster cell with the number
of detections (``presences``), the number of non-detection checklists
(``trials``) and the mean of each covariate over the contributing points.
"""

import numpy as np
import pandas as pd

from occupancy_sdm import config
from occupancy_sdm.logging_config import get_pipeline_logger, log_dropped_rows

log = get_pipeline_logger(__name__)

_CELL_ATTRS = ["cell", "cell_lon", "cell_lat"]


def aggregate_cells(joined, covariates):
    """Group joined observations by cell and reduce to counts and means.

    Parameters
    ----------
    joined : pd.DataFrame
        Output of assign_cells() with covariate columns attached.
    covariates : list[str]
        Covariate columns to average.

    Returns
    -------
    pd.DataFrame
        One row per observed cell, sorted by (row, col), with columns
        row, col, cell, cell_lon, cell_lat, presences, trials, <covariates>.
        Cells whose covariate mean is missing are dropped.
    """
    missing = [c for c in ["presence", *config.CELL_KEY, *covariates] if c not in joined.columns]
    if missing:
        raise KeyError(f"Joined observations missing columns: {missing}")

    assigned = joined[joined["row"].notna() & joined["col"].notna()]
    log_dropped_rows(log, "aggregate_cells", "no cell assignment", len(joined) - len(assigned))
    if assigned.empty:
        raise ValueError("No observations fall inside the raster extent")

    # Canonical row order makes the float means independent of input order.
    assigned = assigned.sort_values(
        [*config.CELL_KEY, "presence", *covariates], kind="mergesort"
    )
    presence = assigned["presence"].astype(int)
    assigned = assigned.assign(
        _detected=(presence == 1).astype(np.int64),
        _undetected=(presence == 0).astype(np.int64),
    )

    grouped = assigned.groupby(config.CELL_KEY, sort=True)
    counts = grouped[["_detected", "_undetected"]].sum().rename(
        columns={"_detected": "presences", "_undetected": "trials"}
    )
    attrs = grouped[[c for c in _CELL_ATTRS if c in assigned.columns]].first()

    # A missing value in any contributing point makes the cell mean missing.
    means = grouped[covariates].mean()
    complete = grouped[covariates].count().eq(grouped.size(), axis=0)
    means = means.where(complete)

    cells = pd.concat([attrs, counts, means], axis=1).reset_index()
    n_cells = len(cells)
    cells = cells.dropna(subset=covariates)
    log_dropped_rows(log, "aggregate_cells", "missing covariate mean", n_cells - len(cells))

    cells = cells.astype({
        "row": np.int64,
        "col": np.int64,
        "presences": np.int64,
        "trials": np.int64,
        **{cov: float for cov in covariates},
    })
    if "cell" in cells.columns:
        cells["cell"] = cells["cell"].astype(np.int64)

    log.info(
        "Gridded %d observations into %d cells (%d with detections)",
        len(assigned), len(cells), int((cells["presences"] > 0).sum()),
    )
    return cells.reset_index(drop=True)


def adjust_trials(cells):
    """Raise ``trials`` to ``presences`` wherever detections outnumber trials.

    Opportunistic checklists do not log a fixed number of visits per cell,
    so counting non-detections can understate the trials behind a cell
    with several detections. This is a heuristic repair; callers with true
    per-cell effort should supply trials directly.
    """
    out = cells.copy()
    short = out["presences"] > out["trials"]
    out.loc[short, "trials"] = out.loc[short, "presences"]
    if short.any():
        log.info("Raised trials to presences in %d of %d cells",
                 int(short.sum()), len(out))
    return out


def grid_observations(joined, covariates):
    """Aggregate joined observations and apply the trials repair."""
    return adjust_trials(aggregate_cells(joined, covariates))
