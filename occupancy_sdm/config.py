"""
Centralized configuration for the hierarchical occupancy SDM pipeline.

All model parameters, thresholds, data sources, and paths are defined here
with inline notes on their sources. Per-run settings (data and output
directories, seed, MCMC lengths, workers) live on RunConfig and are passed
explicitly into each stage.
"""

import os
from dataclasses import dataclass, field

# ─── SPECIES ─────────────────────────────────────────────────────────────
# Montane Woodcreeper: large Andean range (coastal cordillera of Venezuela
# south to Bolivia), well sampled by eBird checklists.
# Source: BirdLife species factsheet id 31946.
SPECIES = "Lepidocolaptes_lacrymiger"

# ─── DATA SOURCES ────────────────────────────────────────────────────────
# Pre-compiled eBird points with effort metadata and extracted covariates.
OCCURRENCE_URL = (
    "https://www.dropbox.com/s/1jsyl0xkxnzk20k/"
    "Lepidocolaptes_lacrymiger_points_env.csv?dl=1"
)
OCCURRENCE_FILENAME = f"{SPECIES}_points_env.csv"

# 8-band GeoTIFF subset of the species' range (WorldClim + Wilson & Jetz).
ENV_URL = (
    "https://www.dropbox.com/s/7i5hl3gv53l8m4v/"
    "Lepidocolaptes_lacrymiger_env_scaled_small.tif?dl=1"
)
ENV_FILENAME = f"{SPECIES}_env_scaled.tif"

# Expert range polygon via the Map of Life tile API (Jetz range maps).
EXPERT_RANGE_URL = (
    "http://mol.cartodb.com/api/v2/sql?"
    "q=SELECT%20ST_TRANSFORM(the_geom_webmercator,4326)%20as%20the_geom,"
    "%20seasonality%20FROM%20get_tile('jetz','range','{species}',"
    "'jetz_maps')&format=shp&filename={filename}"
)
EXPERT_RANGE_FILENAME = f"{SPECIES}.shp"

# Single attempt per download; no retry logic anywhere in the pipeline.
DOWNLOAD_TIMEOUT_S = 120

# ─── ENVIRONMENTAL STACK ─────────────────────────────────────────────────
# Band order of the scaled GeoTIFF. Values are standardized and stored as
# integers x100, hence the fixed gain.
ENV_BANDS = [
    "PPTJAN",   # Mean January precipitation (mm, WorldClim)
    "PPTJUL",   # Mean July precipitation (mm, WorldClim)
    "PPTSEAS",  # Precipitation seasonality (WorldClim)
    "MAT",      # Mean annual temperature (C, WorldClim)
    "ALT",      # Elevation (m, WorldClim)
    "CLDJAN",   # Mean January cloud frequency (Wilson & Jetz)
    "CLDJUL",   # Mean July cloud frequency (Wilson & Jetz)
    "CLDSEAS",  # Cloud seasonality (Wilson & Jetz)
]
ENV_GAIN = 0.01
ENV_CRS = "EPSG:4326"

# ─── SURVEY EFFORT FILTERS ───────────────────────────────────────────────
# Checklists with long durations or large travelled distances have large
# spatial uncertainty relative to a ~1 km cell. Records with unknown
# duration are dropped; unknown distance passes if the area is known.
MAX_DURATION_MINUTES = 4 * 60
MAX_DISTANCE_KM = 5
MAX_AREA_HA = 500

OBSERVATION_COLUMNS = [
    "longitude",
    "latitude",
    "presence",
    "duration_minutes",
    "effort_distance_km",
    "effort_area_ha",
]

# ─── GRID KEYS ───────────────────────────────────────────────────────────
# Raster row/column is the only join key between per-point and per-cell
# tables. Coordinates are attributes, never keys.
CELL_KEY = ["row", "col"]

# ─── MODEL SPECIFICATIONS ────────────────────────────────────────────────
# Interpolated precipitation vs satellite-derived cloud climatology, both
# with mean annual temperature.
MODEL_SPECS = [
    {"model": "m1", "formula": "~PPTJAN+PPTJUL+PPTSEAS+MAT", "name": "Precipitation"},
    {"model": "m2", "formula": "~CLDJAN+CLDJUL+CLDSEAS+MAT", "name": "Cloud"},
]

# Spatially constant p(observation | presence).
OBSERVABILITY_FORMULA = "~1"

# ─── MCMC PARAMETERS ─────────────────────────────────────────────────────
# Identical run lengths across specifications keep posterior summaries
# comparable.
MCMC_BURNIN = 1000
MCMC_SAMPLES = 1000
MCMC_THIN = 1

# Weakly informative normal priors (mean 0, variance 1e6) on both
# suitability (beta) and observability (gamma) coefficients.
PRIOR_MEAN = 0.0
PRIOR_VARIANCE = 1.0e6
COEF_START = 0.0

DEFAULT_SEED = 20150106
SEED_UPPER_BOUND = 1_000_000

# ─── POSTERIOR SUMMARY ───────────────────────────────────────────────────
HPD_PROB = 0.95
DEVIANCE_PARAMETER = "Deviance"
DETECTION_INTERCEPT = "gamma.Intercept"

# ─── VISUALIZATION PARAMETERS ────────────────────────────────────────────
MAP_DPI = 150
ENV_FILL_BREAKS = [-3, 0, 3, 6]
ENV_FILL_COLORS = ["blue", "white", "red", "darkred"]
PREDICTION_COLORS = ["white", "darkgreen", "green"]

# ─── OUTPUT PATHS ────────────────────────────────────────────────────────
OUTPUT_DIRS = {
    "csv": "csv",
    "maps": "maps",
    "rasters": "rasters",
}

DEFAULT_DATA_DIR = os.path.join("data", "hsdm")
DEFAULT_OUTPUT_DIR = "outputs"


def get_output_dirs(output_dir):
    """Return the output sub-directory paths for a run directory."""
    return {key: os.path.join(output_dir, sub) for key, sub in OUTPUT_DIRS.items()}


@dataclass
class RunConfig:
    """Explicit per-run settings passed into every pipeline stage."""

    data_dir: str = DEFAULT_DATA_DIR
    output_dir: str = DEFAULT_OUTPUT_DIR
    seed: int = DEFAULT_SEED
    workers: int = 2
    burnin: int = MCMC_BURNIN
    mcmc: int = MCMC_SAMPLES
    thin: int = MCMC_THIN
    hpd_prob: float = HPD_PROB
    model_specs: list = field(default_factory=lambda: [dict(m) for m in MODEL_SPECS])
    observability: str = OBSERVABILITY_FORMULA
    strict_validation: bool = False
    download: bool = True
    make_plots: bool = True

    def data_path(self, filename):
        return os.path.join(self.data_dir, filename)

    @property
    def output_dirs(self):
        return get_output_dirs(self.output_dir)
