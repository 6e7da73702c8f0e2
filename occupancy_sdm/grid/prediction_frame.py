"""
Full-extent prediction table and its inverse (re-rasterization).

The prediction frame lists every raster cell with a complete set of band
values, independent of where observations occurred. It keeps the cell's
(row, col) so model output can be placed back on the source grid
without any coordinate matching.
"""

import numpy as np
import pandas as pd

from occupancy_sdm.logging_config import get_pipeline_logger, log_dropped_rows

log = get_pipeline_logger(__name__)


def build_prediction_frame(env):
    """Flatten an EnvStack into one row per valid cell.

    Returns
    -------
    pd.DataFrame
        Columns row, col, x, y (cell centre) and one column per band, in
        row-major raster order. Cells with any missing band are dropped.
    """
    height, width = env.grid.shape
    rows, cols = np.indices((height, width))
    rows = rows.ravel()
    cols = cols.ravel()
    xs, ys = env.grid.xy(rows, cols)

    frame = pd.DataFrame({
        "row": rows.astype(np.int64),
        "col": cols.astype(np.int64),
        "x": xs,
        "y": ys,
    })
    for i, name in enumerate(env.names):
        frame[name] = env.data[i].ravel().astype(float)

    n_total = len(frame)
    frame = frame.dropna(subset=list(env.names)).reset_index(drop=True)
    log_dropped_rows(log, "prediction_frame", "missing band value", n_total - len(frame))
    log.info("Prediction frame: %d of %d cells valid", len(frame), n_total)
    return frame


def rasterize_values(frame, values, grid, fill=np.nan):
    """Place per-row values back on the source grid.

    Parameters
    ----------
    frame : pd.DataFrame
        Prediction frame (must carry row/col).
    values : array-like
        One value per frame row, in frame order.
    grid : RasterGrid
        Grid the frame was built from.

    Returns
    -------
    np.ndarray
        Float array of ``grid.shape`` with *fill* where no row maps.
    """
    values = np.asarray(values, dtype=float)
    if len(values) != len(frame):
        raise ValueError(
            f"Got {len(values)} values for a prediction frame of {len(frame)} rows"
        )
    rows = frame["row"].to_numpy(dtype=np.int64)
    cols = frame["col"].to_numpy(dtype=np.int64)
    if len(frame) and (rows.max() >= grid.height or cols.max() >= grid.width):
        raise ValueError("Prediction frame does not belong to this grid")

    out = np.full(grid.shape, fill, dtype=float)
    out[rows, cols] = values
    return out


def prediction_table(frame, results):
    """Join per-model predictions onto the frame's cell coordinates.

    Returns a DataFrame with row, col, x, y and one column per model name.
    """
    table = frame[["row", "col", "x", "y"]].copy()
    for res in results:
        preds = np.asarray(res.prob_p_pred, dtype=float)
        if len(preds) != len(table):
            raise ValueError(
                f"{res.modelname}: {len(preds)} predictions for {len(table)} cells"
            )
        table[res.modelname] = preds
    return table
