"""
Gridding of point observations onto the covariate raster.

Spatial join → per-cell aggregation → trials repair, plus the
full-extent prediction frame built from the same raster lattice.
"""

from occupancy_sdm.grid.raster_grid import EnvStack, RasterGrid
from occupancy_sdm.grid.spatial_join import assign_cells, attach_covariates
from occupancy_sdm.grid.aggregation import adjust_trials, aggregate_cells, grid_observations
from occupancy_sdm.grid.prediction_frame import (
    build_prediction_frame,
    prediction_table,
    rasterize_values,
)

__all__ = [
    "EnvStack",
    "RasterGrid",
    "assign_cells",
    "attach_covariates",
    "aggregate_cells",
    "adjust_trials",
    "grid_observations",
    "build_prediction_frame",
    "prediction_table",
    "rasterize_values",
]
