"""
GeoTIFF output for per-cell model predictions.
"""

import os

import numpy as np
import rasterio

from occupancy_sdm.grid.prediction_frame import rasterize_values
from occupancy_sdm.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def write_stack(path, arrays, names, grid, nodata=np.nan):
    """Write 2-D float arrays as one band each, labelled with *names*."""
    if len(arrays) != len(names):
        raise ValueError(f"{len(arrays)} arrays but {len(names)} band names")
    if not arrays:
        raise ValueError("Nothing to write")

    meta = {
        "driver": "GTiff",
        "height": grid.height,
        "width": grid.width,
        "count": len(arrays),
        "dtype": "float32",
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": nodata,
        "compress": "deflate",
    }
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with rasterio.open(path, "w", **meta) as dst:
        for i, (arr, name) in enumerate(zip(arrays, names), start=1):
            dst.write(np.asarray(arr, dtype="float32"), i)
            dst.set_band_description(i, name)
    return path


def write_prediction_raster(path, frame, results, grid):
    """Rasterize each model's prob_p_pred onto the source grid and save.

    One band per model, named after the model label.
    """
    arrays = [rasterize_values(frame, res.prob_p_pred, grid) for res in results]
    names = [res.modelname for res in results]
    write_stack(path, arrays, names, grid)
    log.info("Saved prediction raster (%d bands): %s", len(arrays), path)
    return path


def read_stack(path):
    """Read a stack written by write_stack(): (data, band names)."""
    with rasterio.open(path) as src:
        data = src.read(masked=True).astype("float64").filled(np.nan)
        names = list(src.descriptions)
    return data, names
