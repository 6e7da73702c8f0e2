"""
Spatial join of point observations onto the environmental raster lattice.

Each observation is assigned the (row, col) of the raster cell that
contains it. Containment only: there is no interpolation and no
snapping to a nearest cell for points outside the extent.
"""

import numpy as np
import pandas as pd

from occupancy_sdm.logging_config import get_pipeline_logger, log_dropped_rows

log = get_pipeline_logger(__name__)


def assign_cells(observations, grid, lon_col="longitude", lat_col="latitude"):
    """Attach the containing raster cell to every observation.

    Parameters
    ----------
    observations : pd.DataFrame
        Point table with longitude/latitude columns.
    grid : RasterGrid
        Lattice of the environmental raster.

    Returns
    -------
    pd.DataFrame
        Copy of *observations* with nullable ``row``/``col`` (Int64),
        ``cell`` (row-major cell number) and ``cell_lon``/``cell_lat``
        (cell centre). Points outside the extent have null assignments.
    """
    for col in (lon_col, lat_col):
        if col not in observations.columns:
            raise KeyError(f"Observation table has no '{col}' column")

    rows, cols, inside = grid.rowcol(
        observations[lon_col].to_numpy(dtype=float),
        observations[lat_col].to_numpy(dtype=float),
    )
    xs, ys = grid.xy(rows, cols)

    out = observations.copy()
    for name, values in (("row", rows), ("col", cols),
                         ("cell", grid.flat_index(rows, cols))):
        column = pd.array(values, dtype="Int64")
        column[~inside] = pd.NA
        out[name] = column
    out["cell_lon"] = np.where(inside, xs, np.nan)
    out["cell_lat"] = np.where(inside, ys, np.nan)

    n_outside = int((~inside).sum())
    log_dropped_rows(log, "spatial_join", "outside raster extent", n_outside)
    log.info(
        "Assigned %d of %d observations to %d cells",
        int(inside.sum()), len(out), out.loc[inside, "cell"].nunique(),
    )
    return out


def attach_covariates(joined, env, overwrite=False):
    """Copy the raster band values of each observation's cell onto the point.

    Covariates are per-observation: every point receives the values of the
    cell it fell in at join time. Unassigned points get NaN. Existing
    covariate columns are left alone unless *overwrite* is set.
    """
    missing = [name for name in env.names if overwrite or name not in joined.columns]
    if not missing:
        return joined

    out = joined.copy()
    assigned = out["row"].notna().to_numpy()
    rows = out["row"].fillna(0).to_numpy(dtype=np.int64)
    cols = out["col"].fillna(0).to_numpy(dtype=np.int64)

    for name in missing:
        values = env.band(name)[rows, cols].astype(float)
        out[name] = np.where(assigned, values, np.nan)

    log.debug("Extracted %d covariates for %d observations", len(missing), int(assigned.sum()))
    return out
