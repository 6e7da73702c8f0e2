#!/usr/bin/env python3
"""
Synthetic inputs for running the pipeline offline.

Writes an 8-band scaled covariate GeoTIFF (with a no-data "ocean" strip
on the western edge) and a checklist CSV whose detections follow a known
ZIB process: suitability depends on MAT and CLDJAN, detection
probability is constant.

Usage:
    python3 -m occupancy_sdm.synthetic --data-dir ./data/synthetic
"""

import argparse
import os

import numpy as np
import pandas as pd
import rasterio
from rasterio.transform import from_bounds
from scipy.ndimage import gaussian_filter
from scipy.special import expit as inv_logit

from occupancy_sdm import config
from occupancy_sdm.grid.raster_grid import EnvStack, RasterGrid
from occupancy_sdm.grid.spatial_join import assign_cells, attach_covariates
from occupancy_sdm.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)

SYNTHETIC_BOUNDS = (-79.0, -6.0, -75.0, -1.0)  # west, south, east, north
SYNTHETIC_RES = 0.05
NODATA = -32768

# Known truth for the generated detections.
TRUE_SUITABILITY = {"Intercept": -0.5, "MAT": -1.2, "CLDJAN": 0.8}
TRUE_DETECTION = 0.35


def synthetic_env(seed=0, bounds=SYNTHETIC_BOUNDS, res=SYNTHETIC_RES,
                  band_names=None, ocean_cols=6):
    """Standardized smooth covariate fields on a north-up grid."""
    band_names = band_names or config.ENV_BANDS
    west, south, east, north = bounds
    width = int(round((east - west) / res))
    height = int(round((north - south) / res))
    grid = RasterGrid(
        transform=from_bounds(west, south, east, north, width, height),
        width=width,
        height=height,
        crs=config.ENV_CRS,
    )

    rng = np.random.default_rng(seed)
    yy, xx = np.mgrid[0:height, 0:width]
    bands = []
    for i, _ in enumerate(band_names):
        angle = rng.uniform(0, 2 * np.pi)
        trend = np.cos(angle) * xx / width + np.sin(angle) * yy / height
        noise = gaussian_filter(rng.normal(size=(height, width)), sigma=4)
        field = trend + 3.0 * noise + 0.1 * i
        bands.append((field - field.mean()) / field.std())

    data = np.stack(bands).astype("float64")
    data[:, :, :ocean_cols] = np.nan
    return EnvStack(data=data, names=list(band_names), grid=grid)


def write_env_tif(env, path, gain=config.ENV_GAIN):
    """Store the stack as int16 scaled by 1/gain, NaN as no-data."""
    scaled = np.where(np.isfinite(env.data), np.round(env.data / gain), NODATA)
    meta = {
        "driver": "GTiff",
        "height": env.grid.height,
        "width": env.grid.width,
        "count": len(env.names),
        "dtype": "int16",
        "crs": env.grid.crs,
        "transform": env.grid.transform,
        "nodata": NODATA,
    }
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with rasterio.open(path, "w", **meta) as dst:
        dst.write(scaled.astype("int16"))
        for i, name in enumerate(env.names, start=1):
            dst.set_band_description(i, name)
    return path


def synthetic_checklists(env, n_checklists=3000, seed=0):
    """Checklists with effort metadata and ZIB-distributed detections."""
    rng = np.random.default_rng(seed)
    west, south, east, north = env.grid.bounds
    points = pd.DataFrame({
        "longitude": rng.uniform(west, east, n_checklists),
        "latitude": rng.uniform(south, north, n_checklists),
    })
    joined = attach_covariates(assign_cells(points, env.grid), env)
    joined = joined[joined[env.names].notna().all(axis=1)].reset_index(drop=True)

    logit = TRUE_SUITABILITY["Intercept"] + sum(
        coef * joined[name] for name, coef in TRUE_SUITABILITY.items() if name != "Intercept"
    )
    cell_theta = inv_logit(logit.to_numpy())
    occupied = {}
    z = np.empty(len(joined), dtype=int)
    for i, cell in enumerate(joined["cell"].to_numpy()):
        if cell not in occupied:
            occupied[cell] = int(rng.random() < cell_theta[i])
        z[i] = occupied[cell]
    detected = (rng.random(len(joined)) < TRUE_DETECTION).astype(int)

    n = len(joined)
    duration = rng.gamma(2.0, 60.0, n)
    duration[rng.random(n) < 0.05] = np.nan
    distance = rng.exponential(2.0, n)
    area = rng.uniform(1, 800, n)
    stationary = rng.random(n) < 0.3
    distance[stationary] = np.nan
    area[~stationary] = np.nan

    out = joined.drop(columns=["row", "col"]).assign(
        presence=z * detected,
        duration_minutes=duration,
        effort_distance_km=distance,
        effort_area_ha=area,
    )
    cols = config.OBSERVATION_COLUMNS + ["cell", "cell_lon", "cell_lat"] + list(env.names)
    return out[cols]


def generate_test_data(data_dir, n_checklists=3000, seed=0):
    """Write the synthetic raster and CSV under *data_dir*; return their paths."""
    env = synthetic_env(seed=seed)
    tif_path = write_env_tif(env, os.path.join(data_dir, config.ENV_FILENAME))
    points = synthetic_checklists(env, n_checklists=n_checklists, seed=seed)
    csv_path = os.path.join(data_dir, config.OCCURRENCE_FILENAME)
    points.to_csv(csv_path, index=False)
    log.info("Synthetic data: %d checklists (%d detections), raster %dx%d in %s",
             len(points), int(points["presence"].sum()),
             env.grid.width, env.grid.height, data_dir)
    return {"env": tif_path, "occurrences": csv_path}


def main():
    parser = argparse.ArgumentParser(description="Generate synthetic SDM inputs")
    parser.add_argument("--data-dir", default=os.path.join("data", "synthetic"))
    parser.add_argument("--n-checklists", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()
    generate_test_data(args.data_dir, n_checklists=args.n_checklists, seed=args.seed)


if __name__ == "__main__":
    main()
