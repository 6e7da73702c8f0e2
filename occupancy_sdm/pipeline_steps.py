"""
Occupancy SDM pipeline step functions.

Each function is a discrete, testable pipeline step with explicit
inputs/outputs and StepResult tracking.  Boilerplate (timing, error
handling, logging) is handled by ``run_step()``.
"""

import os

import pandas as pd

from occupancy_sdm import config
from occupancy_sdm.logging_config import get_pipeline_logger
from occupancy_sdm.step_runner import run_step

log = get_pipeline_logger(__name__)


def step_download_inputs(data_dir: str, species: str = config.SPECIES) -> tuple:
    """Fetch the checklist CSV, covariate stack and expert range.

    The expert range is optional: a failed range download is logged and
    the step still succeeds without it.
    """
    import requests

    from occupancy_sdm.download import (
        download_env_stack,
        download_expert_range,
        download_occurrences,
    )

    def _work():
        paths = {
            "occurrences": download_occurrences(data_dir),
            "env": download_env_stack(data_dir),
            "expert_range": None,
        }
        try:
            paths["expert_range"] = download_expert_range(data_dir, species)
        except (requests.RequestException, FileNotFoundError, OSError) as exc:
            log.warning("Expert range unavailable, maps will omit it: %s", exc)
        return paths

    return run_step(
        "download_inputs", _work,
        input_summary={"data_dir": data_dir, "species": species},
        output_summary_fn=lambda p: {k: v for k, v in p.items() if v},
        expected_exceptions=(FileNotFoundError, OSError, ValueError,
                             requests.RequestException),
    )


def step_load_observations(csv_path: str) -> tuple:
    """Load checklists and apply the survey-effort filter."""
    from occupancy_sdm.preprocess import (
        filter_by_effort,
        load_observations,
        summarize_effort_coverage,
    )

    def _work():
        raw = load_observations(csv_path)
        log.info("Effort metadata coverage:\n%s", summarize_effort_coverage(raw))
        filtered = filter_by_effort(raw)
        if filtered.empty:
            raise ValueError("No observations pass the effort filter")
        log.info("Kept %d of %d checklists after effort filter", len(filtered), len(raw))
        return filtered

    return run_step(
        "load_observations", _work,
        input_summary={"csv_path": csv_path},
        output_summary_fn=lambda df: {
            "observations": len(df),
            "detections": int((df["presence"] == 1).sum()),
        },
    )


def step_load_environment(tif_path: str) -> tuple:
    """Read the scaled covariate GeoTIFF."""
    from occupancy_sdm.preprocess import load_env_stack

    def _work():
        return load_env_stack(tif_path)

    return run_step(
        "load_environment", _work,
        input_summary={"tif_path": tif_path},
        output_summary_fn=lambda env: {
            "bands": list(env.names),
            "shape": list(env.grid.shape),
            "valid_cells": int(env.valid_mask().sum()),
        },
    )


def step_spatial_join(observations: pd.DataFrame, env) -> tuple:
    """Assign observations to raster cells and attach covariates."""
    from occupancy_sdm.grid import assign_cells, attach_covariates

    def _work():
        joined = assign_cells(observations, env.grid)
        return attach_covariates(joined, env)

    return run_step(
        "spatial_join", _work,
        input_summary={"observations": len(observations)},
        output_summary_fn=lambda df: {
            "assigned": int(df["row"].notna().sum()),
            "cells": int(df["cell"].nunique()),
        },
    )


def step_grid_observations(joined: pd.DataFrame, covariates: list, csv_dir: str) -> tuple:
    """Aggregate to one row per cell, repair trials, save grid_cells.csv."""
    from occupancy_sdm.grid import grid_observations

    def _work():
        cells = grid_observations(joined, covariates)
        os.makedirs(csv_dir, exist_ok=True)
        path = os.path.join(csv_dir, "grid_cells.csv")
        cells.to_csv(path, index=False)
        log.info("Saved grid cells: %s", path)
        return cells

    return run_step(
        "grid_observations", _work,
        input_summary={"observations": len(joined), "covariates": list(covariates)},
        output_summary_fn=lambda df: {
            "cells": len(df),
            "cells_with_detections": int((df["presences"] > 0).sum()),
        },
    )


def step_prediction_frame(env, csv_dir: str) -> tuple:
    """Build the full-extent prediction table and save it."""
    from occupancy_sdm.grid import build_prediction_frame

    def _work():
        frame = build_prediction_frame(env)
        if frame.empty:
            raise ValueError("Environmental stack has no cell with all bands present")
        os.makedirs(csv_dir, exist_ok=True)
        path = os.path.join(csv_dir, "prediction_frame.csv")
        frame.to_csv(path, index=False)
        log.info("Saved prediction frame: %s", path)
        return frame

    return run_step(
        "prediction_frame", _work,
        input_summary={"grid_shape": list(env.grid.shape)},
        output_summary_fn=lambda df: {"cells": len(df)},
    )


def step_fit_models(cells, frame, run_config, sampler=None, executor_cls=None) -> tuple:
    """Fit every model specification in parallel.

    Returns ``(results, failures)`` as data. The step fails only when no
    specification could be fitted; individual failures are reported on
    the returned mapping.
    """
    from occupancy_sdm.models import build_fit_configs, fit_models
    from occupancy_sdm.pipeline_types import MCMCSettings, ModelSpec, PriorSettings

    specs = [ModelSpec.from_dict(s) for s in run_config.model_specs]

    def _work():
        nonlocal sampler
        if sampler is None:
            from occupancy_sdm.models.zib import ZIBSampler
            sampler = ZIBSampler()

        mcmc = MCMCSettings(burnin=run_config.burnin, mcmc=run_config.mcmc,
                            thin=run_config.thin)
        priors = PriorSettings(
            mubeta=config.PRIOR_MEAN, Vbeta=config.PRIOR_VARIANCE,
            mugamma=config.PRIOR_MEAN, Vgamma=config.PRIOR_VARIANCE,
            beta_start=config.COEF_START, gamma_start=config.COEF_START,
        )
        fit_configs = build_fit_configs(specs, run_config.observability, mcmc,
                                        priors, run_config.seed)
        kwargs = {"max_workers": run_config.workers}
        if executor_cls is not None:
            kwargs["executor_cls"] = executor_cls
        results, failures = fit_models(cells, frame, specs, sampler, fit_configs, **kwargs)
        if not results:
            raise ValueError(f"All {len(specs)} model specifications failed: "
                             f"{sorted(failures)}")
        return results, failures

    return run_step(
        "fit_models", _work,
        input_summary={
            "cells": len(cells),
            "prediction_cells": len(frame),
            "models": [s.name for s in specs],
            "burnin": run_config.burnin,
            "mcmc": run_config.mcmc,
            "thin": run_config.thin,
            "seed": run_config.seed,
        },
        output_summary_fn=lambda out: {
            "fitted": [r.modelname for r in out[0]],
            "failed": sorted(out[1]),
            "seeds": {r.modelname: r.posterior.seed for r in out[0]},
        },
    )


def step_summarize_posteriors(results: list, csv_dir: str, prob: float = config.HPD_PROB) -> tuple:
    """Posterior summary table and detection probability per model."""
    from occupancy_sdm.models import detection_probability, summarize_posteriors

    def _work():
        summary = summarize_posteriors(results, prob)
        detection = detection_probability(summary)

        os.makedirs(csv_dir, exist_ok=True)
        summary.to_csv(os.path.join(csv_dir, "posterior_summary.csv"), index=False)
        detection.to_csv(os.path.join(csv_dir, "detection_probability.csv"), index=False)

        for _, row in detection.iterrows():
            log.info("%-15s p(observation | presence) = %.3f",
                     row["modelname"], row["delta_est"])
        return summary, detection

    return run_step(
        "summarize_posteriors", _work,
        input_summary={"models": [r.modelname for r in results], "hpd_prob": prob},
        output_summary_fn=lambda out: {"rows": len(out[0])},
    )


def step_save_predictions(frame, results: list, grid, csv_dir: str, rasters_dir: str) -> tuple:
    """Write the prediction table (CSV) and one GeoTIFF band per model."""
    from occupancy_sdm.grid import prediction_table
    from occupancy_sdm.outputs.rasters import write_prediction_raster

    def _work():
        table = prediction_table(frame, results)
        os.makedirs(csv_dir, exist_ok=True)
        csv_path = os.path.join(csv_dir, "predictions.csv")
        table.to_csv(csv_path, index=False)
        tif_path = write_prediction_raster(
            os.path.join(rasters_dir, "predictions.tif"), frame, results, grid,
        )
        return [csv_path, tif_path]

    return run_step(
        "save_predictions", _work,
        input_summary={"models": [r.modelname for r in results], "cells": len(frame)},
        output_summary_fn=lambda paths: {"files": paths},
    )


def step_input_maps(observations, env, maps_dir: str, expert_range=None) -> tuple:
    """Figures of the filtered checklists and the covariate stack."""
    from occupancy_sdm.outputs.visualizations import (
        plot_covariate_matrix,
        plot_effort,
        plot_env_stack,
        plot_observations,
    )

    def _work():
        return [
            plot_effort(observations, os.path.join(maps_dir, "effort.png")),
            plot_observations(observations, os.path.join(maps_dir, "observations.png"),
                              expert_range=expert_range),
            plot_env_stack(env, os.path.join(maps_dir, "env_stack.png"),
                           expert_range=expert_range),
            plot_covariate_matrix(env, os.path.join(maps_dir, "covariate_matrix.png")),
        ]

    return run_step(
        "input_maps", _work,
        input_summary={"maps_dir": maps_dir},
        output_summary_fn=lambda paths: {"figures": len(paths)},
    )


def step_result_maps(summary, frame, results, grid, maps_dir: str,
                     observations=None, expert_range=None) -> tuple:
    """Coefficient plot and per-model prediction maps."""
    from occupancy_sdm.outputs.visualizations import plot_posteriors, plot_predictions

    def _work():
        return [
            plot_posteriors(summary, os.path.join(maps_dir, "posteriors.png")),
            plot_predictions(frame, results, grid,
                             os.path.join(maps_dir, "predictions.png"),
                             observations=observations, expert_range=expert_range),
        ]

    return run_step(
        "result_maps", _work,
        input_summary={"models": [r.modelname for r in results]},
        output_summary_fn=lambda paths: {"figures": len(paths)},
    )
