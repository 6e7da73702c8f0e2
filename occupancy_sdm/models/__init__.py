"""
Model fitting and posterior summaries.

The ZIB sampler depends on PyMC, which is imported lazily through
``occupancy_sdm.models.zib`` so that the driver and summaries can be used
with any OccupancySampler.
"""

from occupancy_sdm.models.driver import build_fit_configs, draw_seeds, fit_models
from occupancy_sdm.models.posterior import (
    coefficient_rows,
    detection_probability,
    hpd_interval,
    rejection_rate,
    summarize_posteriors,
)
from occupancy_sdm.models.sampler import OccupancySampler

__all__ = [
    "OccupancySampler",
    "build_fit_configs",
    "draw_seeds",
    "fit_models",
    "coefficient_rows",
    "detection_probability",
    "hpd_interval",
    "rejection_rate",
    "summarize_posteriors",
]
