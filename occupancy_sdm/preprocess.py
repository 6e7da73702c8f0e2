"""
Input loading and preparation: checklist points and the covariate stack.

No gridding or modelling here, just reading files into the pipeline's
tables and applying the survey-effort filter.
"""

import os

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
from shapely.geometry import box

from occupancy_sdm import config
from occupancy_sdm.grid.raster_grid import EnvStack, RasterGrid
from occupancy_sdm.logging_config import get_pipeline_logger, log_dropped_rows

log = get_pipeline_logger(__name__)


def load_observations(csv_path):
    """Read the checklist CSV and check the required columns are present."""
    if not os.path.exists(csv_path):
        raise FileNotFoundError(f"Observation file not found: {csv_path}")

    df = pd.read_csv(csv_path)
    missing = [c for c in config.OBSERVATION_COLUMNS if c not in df.columns]
    if missing:
        raise KeyError(f"{csv_path} is missing columns: {missing}")

    # A saved index column comes back as "Unnamed: 0".
    df = df.drop(columns=[c for c in df.columns if c.startswith("Unnamed:")])
    log.info("Loaded %d observations (%d detections) from %s",
             len(df), int((df["presence"] == 1).sum()), csv_path)
    return df


def summarize_effort_coverage(df):
    """Cross-tab of records with known duration vs known distance/area."""
    return pd.crosstab(
        df["duration_minutes"].notna().rename("Duration"),
        (df["effort_distance_km"].notna() | df["effort_area_ha"].notna()).rename("Distance/Area"),
    )


def filter_by_effort(df, max_duration=config.MAX_DURATION_MINUTES,
                     max_distance=config.MAX_DISTANCE_KM,
                     max_area=config.MAX_AREA_HA):
    """Keep checklists with short duration and a small travelled distance or area.

    duration <= max_duration AND (distance <= max_distance OR area <= max_area).
    Missing values never satisfy a threshold, so a record with unknown
    duration is dropped while one with unknown distance survives on its
    area alone.
    """
    keep = (
        (df["duration_minutes"] <= max_duration)
        & ((df["effort_distance_km"] <= max_distance) | (df["effort_area_ha"] <= max_area))
    )
    out = df[keep].reset_index(drop=True)
    log_dropped_rows(log, "filter_by_effort", "effort above threshold or unknown",
                     len(df) - len(out))
    return out


def load_env_stack(tif_path, band_names=None, gain=config.ENV_GAIN):
    """Read a multi-band covariate GeoTIFF into an EnvStack.

    No-data cells become NaN and every value is multiplied by *gain*.
    Band names default to the file's band descriptions, then to
    config.ENV_BANDS.
    """
    if not os.path.exists(tif_path):
        raise FileNotFoundError(f"Environmental raster not found: {tif_path}")

    with rasterio.open(tif_path) as src:
        data = src.read(masked=True).astype("float64").filled(np.nan)
        grid = RasterGrid(
            transform=src.transform,
            width=src.width,
            height=src.height,
            crs=src.crs.to_string() if src.crs else config.ENV_CRS,
        )
        descriptions = [d for d in src.descriptions if d]

    if band_names is None:
        band_names = descriptions if len(descriptions) == data.shape[0] else config.ENV_BANDS
    if len(band_names) != data.shape[0]:
        raise ValueError(
            f"{tif_path} has {data.shape[0]} bands but {len(band_names)} names were given"
        )

    data[~np.isfinite(data)] = np.nan
    data *= gain

    env = EnvStack(data=data, names=list(band_names), grid=grid)
    log.info(
        "Loaded %d-band stack %dx%d (res %.4f°), %d valid cells",
        data.shape[0], grid.width, grid.height, grid.res[0], int(env.valid_mask().sum()),
    )
    return env


def load_expert_range(shp_path, grid=None):
    """Read the expert range polygon(s); None if the file is absent.

    With *grid*, polygons are clipped to the raster extent.
    """
    if not shp_path or not os.path.exists(shp_path):
        log.info("No expert range available at %s", shp_path)
        return None
    gdf = gpd.read_file(shp_path)
    if gdf.crs is None:
        gdf = gdf.set_crs(config.ENV_CRS)
    if grid is not None:
        gdf = gdf.to_crs(grid.crs).clip(box(*grid.bounds))
    return gdf
