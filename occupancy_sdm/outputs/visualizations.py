"""
Figures for the occupancy SDM run: input data, covariates, posterior
coefficients and predicted probability of presence.

All functions write a PNG and return its path.
"""

import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.colors import LinearSegmentedColormap

from occupancy_sdm import config
from occupancy_sdm.grid.prediction_frame import rasterize_values
from occupancy_sdm.logging_config import get_pipeline_logger
from occupancy_sdm.models.posterior import coefficient_rows

log = get_pipeline_logger(__name__)


def _save(fig, path):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    fig.savefig(path, dpi=config.MAP_DPI, bbox_inches="tight")
    plt.close(fig)
    log.info("Saved figure: %s", path)
    return path


def _extent(grid):
    west, south, east, north = grid.bounds
    return [west, east, south, north]


def _plot_points(ax, observations):
    """Absences as faint black circles, detections as red crosses."""
    absent = observations[observations["presence"] == 0]
    present = observations[observations["presence"] == 1]
    ax.scatter(absent["longitude"], absent["latitude"], s=8, facecolors="none",
               edgecolors="black", linewidths=0.8, alpha=0.3, label="Not observed")
    ax.scatter(present["longitude"], present["latitude"], s=30, marker="+",
               color="red", linewidths=1.5, label="Observed")


def _plot_range(ax, expert_range, color="green"):
    if expert_range is not None:
        expert_range.boundary.plot(ax=ax, color=color, linewidth=1.0)


def plot_effort(observations, path):
    """Sampling duration (hours) against distance travelled, by detection."""
    fig, ax = plt.subplots(figsize=(10, 7))
    for presence, color in ((0, "grey"), (1, "red")):
        sub = observations[observations["presence"] == presence]
        ax.scatter(sub["effort_distance_km"], sub["duration_minutes"] / 60.0,
                   s=10, color=color, alpha=0.6, label=str(bool(presence)))
    ax.set_xscale("log")
    ax.set_xlabel("Sampling Distance (km)")
    ax.set_ylabel("Sampling Duration\n(hours)")
    ax.legend(title="Observed\nPresence")
    return _save(fig, path)


def plot_observations(observations, path, expert_range=None):
    """Map of filtered checklists with the expert range outline."""
    fig, ax = plt.subplots(figsize=(10, 10))
    _plot_range(ax, expert_range)
    _plot_points(ax, observations)
    ax.set_xlim(observations["longitude"].min(), observations["longitude"].max())
    ax.set_ylim(observations["latitude"].min(), observations["latitude"].max())
    ax.set_aspect("equal")
    ax.set_xlabel("Longitude")
    ax.set_ylabel("Latitude")
    ax.legend(loc="lower left")
    return _save(fig, path)


def plot_env_stack(env, path, expert_range=None, nrows=2):
    """One panel per standardized covariate band."""
    breaks = config.ENV_FILL_BREAKS
    positions = [(b - breaks[0]) / (breaks[-1] - breaks[0]) for b in breaks]
    cmap = LinearSegmentedColormap.from_list(
        "env", list(zip(positions, config.ENV_FILL_COLORS)))
    cmap.set_bad(alpha=0.0)

    n = len(env.names)
    ncols = int(np.ceil(n / nrows))
    fig, axes = plt.subplots(nrows, ncols, figsize=(4 * ncols, 4 * nrows),
                             squeeze=False)
    image = None
    for ax, name in zip(axes.flat, env.names):
        image = ax.imshow(env.band(name), extent=_extent(env.grid), cmap=cmap,
                          vmin=breaks[0], vmax=breaks[-1], interpolation="nearest")
        _plot_range(ax, expert_range, color="black")
        ax.set_title(name)
        ax.set_xlim(_extent(env.grid)[:2])
        ax.set_ylim(_extent(env.grid)[2:])
    for ax in list(axes.flat)[n:]:
        ax.set_axis_off()
    if image is not None:
        fig.colorbar(image, ax=axes, shrink=0.6, label="Standardized\nValue")
    return _save(fig, path)


def plot_covariate_matrix(env, path, max_points=5000, seed=0):
    """Scatterplot matrix of band values over a sample of valid cells."""
    mask = env.valid_mask()
    values = pd.DataFrame({name: env.band(name)[mask] for name in env.names})
    if len(values) > max_points:
        values = values.sample(n=max_points, random_state=seed)
    axes = pd.plotting.scatter_matrix(values, figsize=(14, 14), s=2, alpha=0.3,
                                      diagonal="hist")
    fig = axes[0, 0].get_figure()
    return _save(fig, path)


def plot_posteriors(summary, path):
    """Posterior mean and HPD interval of each coefficient, by model."""
    coefs = coefficient_rows(summary)
    parameters = list(dict.fromkeys(coefs["parameter"]))
    models = list(dict.fromkeys(coefs["modelname"]))
    y_pos = {p: i for i, p in enumerate(parameters)}
    offsets = np.linspace(-0.15, 0.15, len(models)) if len(models) > 1 else [0.0]

    fig, ax = plt.subplots(figsize=(10, max(4, 0.6 * len(parameters) + 2)))
    for offset, name in zip(offsets, models):
        sub = coefs[coefs["modelname"] == name]
        ys = [y_pos[p] + offset for p in sub["parameter"]]
        ax.errorbar(
            sub["mean"], ys,
            xerr=[np.clip(sub["mean"] - sub["lower"], 0.0, None),
                  np.clip(sub["upper"] - sub["mean"], 0.0, None)],
            fmt="o", capsize=3, linewidth=1.5, label=name,
        )
    ax.axvline(0.0, color="grey", linewidth=0.8, linestyle="--")
    ax.set_yticks(range(len(parameters)))
    ax.set_yticklabels(parameters)
    ax.set_xlabel("Standardized Coefficient")
    ax.set_ylabel("Parameter")
    ax.legend(loc="upper center", bbox_to_anchor=(0.5, -0.12), ncol=len(models))
    return _save(fig, path)


def plot_predictions(frame, results, grid, path, observations=None, expert_range=None):
    """Predicted p(presence) per model on the source grid."""
    cmap = LinearSegmentedColormap.from_list(
        "pred", list(zip([0.0, 0.5, 1.0], config.PREDICTION_COLORS)))
    cmap.set_bad(alpha=0.0)

    n = len(results)
    fig, axes = plt.subplots(1, n, figsize=(8 * n, 8), squeeze=False)
    image = None
    for ax, res in zip(axes.flat, results):
        surface = rasterize_values(frame, res.prob_p_pred, grid)
        image = ax.imshow(surface, extent=_extent(grid), cmap=cmap, vmin=0.0,
                          vmax=1.0, interpolation="nearest")
        _plot_range(ax, expert_range, color="red")
        if observations is not None:
            _plot_points(ax, observations)
        ax.set_xlim(_extent(grid)[:2])
        ax.set_ylim(_extent(grid)[2:])
        ax.set_title(res.modelname)
        ax.set_xlabel("Longitude")
        ax.set_ylabel("Latitude")
    if image is not None:
        fig.colorbar(image, ax=axes, shrink=0.7, label="p(presence)")
    return _save(fig, path)
