#!/usr/bin/env python3
"""
Pipeline runner with validation gates.

Runs the occupancy SDM end to end:
- download (or reuse) the checklist CSV, covariate stack and expert range
- effort filter, spatial join and per-cell aggregation
- one ZIB model per specification, fitted in parallel
- posterior summaries, prediction table/raster and figures

Pandera schema validation sits between steps, and the full
PipelineRunResult is saved as JSON provenance next to the outputs.

Usage:
    # Run with the default specifications and downloaded inputs
    python3 -m occupancy_sdm.pipeline_runner --output-dir ./outputs

    # Offline run on synthetic inputs with short chains
    python3 -m occupancy_sdm.pipeline_runner --generate-test-data \\
        --data-dir ./data/synthetic --burnin 200 --mcmc 200

    # Abort on schema violations
    python3 -m occupancy_sdm.pipeline_runner --strict-validation
"""

import argparse
import json
import os
import sys
import time

from occupancy_sdm import config
from occupancy_sdm.config import RunConfig
from occupancy_sdm.logging_config import get_pipeline_logger, set_run_id, setup_logging
from occupancy_sdm.pipeline_types import PipelineRunResult
from occupancy_sdm.schemas import (
    JoinedObservationSchema,
    ObservationSchema,
    PosteriorSummarySchema,
    grid_cell_schema,
    prediction_frame_schema,
    validate_schema,
)

log = get_pipeline_logger(__name__)


def _gate(df, schema, step_name, strict):
    """Run a schema gate; True if the pipeline may continue."""
    try:
        for w in validate_schema(df, schema, step_name, strict=strict):
            log.warning(w)
    except ValueError as e:
        log.error("Validation failed after %s: %s", step_name, e)
        return False
    return True


def _input_paths(run_config):
    shp_path = run_config.data_path(config.EXPERT_RANGE_FILENAME)
    return {
        "occurrences": run_config.data_path(config.OCCURRENCE_FILENAME),
        "env": run_config.data_path(config.ENV_FILENAME),
        "expert_range": shp_path if os.path.exists(shp_path) else None,
    }


def run_pipeline(run_config, sampler=None, executor_cls=None):
    """Run every step for *run_config* and return the PipelineRunResult.

    Parameters
    ----------
    run_config : RunConfig
    sampler : OccupancySampler, optional
        Defaults to the PyMC ZIB sampler.
    executor_cls : type, optional
        Executor for parallel model fits (default: process pool).
    """
    from occupancy_sdm.pipeline_steps import (
        step_download_inputs,
        step_fit_models,
        step_grid_observations,
        step_input_maps,
        step_load_environment,
        step_load_observations,
        step_prediction_frame,
        step_result_maps,
        step_save_predictions,
        step_spatial_join,
        step_summarize_posteriors,
    )
    from occupancy_sdm.preprocess import load_expert_range

    strict = run_config.strict_validation
    dirs = run_config.output_dirs
    for d in dirs.values():
        os.makedirs(d, exist_ok=True)

    pipeline_result = PipelineRunResult(
        run_dir=run_config.output_dir,
        species=config.SPECIES,
        seed=run_config.seed,
    )
    start_time = time.time()

    def _abort(step_name, reason=None):
        if reason is not None:
            log.error("Pipeline aborted at %s: %s", step_name, reason)
        pipeline_result.total_time_seconds = time.time() - start_time
        return pipeline_result

    # Step 1: Inputs
    if run_config.download:
        result, paths = step_download_inputs(run_config.data_dir)
        pipeline_result.step_results.append(result)
        if not result.ok:
            return _abort("download_inputs", result.error)
    else:
        paths = _input_paths(run_config)

    # Step 2: Observations
    result, observations = step_load_observations(paths["occurrences"])
    pipeline_result.step_results.append(result)
    if not result.ok:
        return _abort("load_observations", result.error)
    if not _gate(observations, ObservationSchema, "load_observations", strict):
        return _abort("load_observations")

    # Step 3: Environmental stack
    result, env = step_load_environment(paths["env"])
    pipeline_result.step_results.append(result)
    if not result.ok:
        return _abort("load_environment", result.error)
    covariates = list(env.names)

    # Step 4: Spatial join
    result, joined = step_spatial_join(observations, env)
    pipeline_result.step_results.append(result)
    if not result.ok:
        return _abort("spatial_join", result.error)
    if not _gate(joined, JoinedObservationSchema, "spatial_join", strict):
        return _abort("spatial_join")

    # Step 5: Grid cells
    result, cells = step_grid_observations(joined, covariates, dirs["csv"])
    pipeline_result.step_results.append(result)
    if not result.ok:
        return _abort("grid_observations", result.error)
    pipeline_result.output_files.append(os.path.join(dirs["csv"], "grid_cells.csv"))
    if not _gate(cells, grid_cell_schema(covariates), "grid_observations", strict):
        return _abort("grid_observations")

    # Step 6: Prediction frame
    result, frame = step_prediction_frame(env, dirs["csv"])
    pipeline_result.step_results.append(result)
    if not result.ok:
        return _abort("prediction_frame", result.error)
    pipeline_result.output_files.append(os.path.join(dirs["csv"], "prediction_frame.csv"))
    if not _gate(frame, prediction_frame_schema(covariates), "prediction_frame", strict):
        return _abort("prediction_frame")

    # Step 7: Model fits
    result, fitted = step_fit_models(cells, frame, run_config,
                                     sampler=sampler, executor_cls=executor_cls)
    pipeline_result.step_results.append(result)
    if not result.ok:
        return _abort("fit_models", result.error)
    results, failures = fitted
    pipeline_result.model_labels = [r.modelname for r in results]
    pipeline_result.failed_models = failures
    for name in failures:
        log.warning("Model %s failed and is excluded from outputs", name)

    # Step 8: Posterior summaries
    result, summaries = step_summarize_posteriors(results, dirs["csv"], run_config.hpd_prob)
    pipeline_result.step_results.append(result)
    if not result.ok:
        return _abort("summarize_posteriors", result.error)
    summary, _ = summaries
    pipeline_result.output_files.extend([
        os.path.join(dirs["csv"], "posterior_summary.csv"),
        os.path.join(dirs["csv"], "detection_probability.csv"),
    ])
    if not _gate(summary, PosteriorSummarySchema, "summarize_posteriors", strict):
        return _abort("summarize_posteriors")

    # Step 9: Predictions
    result, prediction_paths = step_save_predictions(
        frame, results, env.grid, dirs["csv"], dirs["rasters"],
    )
    pipeline_result.step_results.append(result)
    if not result.ok:
        return _abort("save_predictions", result.error)
    pipeline_result.output_files.extend(prediction_paths)

    # ── Non-critical steps (log warning, continue on failure) ────────

    if run_config.make_plots:
        expert_range = None
        try:
            expert_range = load_expert_range(paths.get("expert_range"), env.grid)
        except Exception as exc:
            log.warning("Could not read expert range: %s", exc)

        result, figures = step_input_maps(observations, env, dirs["maps"],
                                          expert_range=expert_range)
        pipeline_result.step_results.append(result)
        if result.ok:
            pipeline_result.output_files.extend(figures)
        else:
            log.warning("Input maps failed: %s", result.error)

        result, figures = step_result_maps(summary, frame, results, env.grid,
                                           dirs["maps"], observations=observations,
                                           expert_range=expert_range)
        pipeline_result.step_results.append(result)
        if result.ok:
            pipeline_result.output_files.extend(figures)
        else:
            log.warning("Result maps failed: %s", result.error)

    pipeline_result.total_time_seconds = time.time() - start_time
    return pipeline_result


def save_pipeline_result(pipeline_result, output_dir):
    """Save PipelineRunResult as JSON for provenance."""
    os.makedirs(output_dir, exist_ok=True)
    result_path = os.path.join(output_dir, "pipeline_run.json")
    with open(result_path, "w") as f:
        json.dump(pipeline_result.to_dict(), f, indent=2, default=str)
    log.info("Pipeline result saved: %s", result_path)
    return result_path


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Hierarchical occupancy SDM with validation gates"
    )
    parser.add_argument(
        "--data-dir",
        default=config.DEFAULT_DATA_DIR,
        dest="data_dir",
        help="Directory holding (or receiving) the input files",
    )
    parser.add_argument(
        "--output-dir",
        default=config.DEFAULT_OUTPUT_DIR,
        dest="output_dir",
        help="Run directory for CSVs, rasters, maps and provenance",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=config.DEFAULT_SEED,
        help="Run seed; per-model seeds are drawn from it",
    )
    parser.add_argument("--burnin", type=int, default=config.MCMC_BURNIN)
    parser.add_argument("--mcmc", type=int, default=config.MCMC_SAMPLES)
    parser.add_argument("--thin", type=int, default=config.MCMC_THIN)
    parser.add_argument(
        "--workers",
        type=int,
        default=2,
        help="Parallel model fits (1 runs in-process)",
    )
    parser.add_argument(
        "--strict-validation",
        action="store_true",
        dest="strict_validation",
        help="Abort the pipeline on schema violations",
    )
    parser.add_argument(
        "--no-download",
        action="store_false",
        dest="download",
        help="Use files already in --data-dir",
    )
    parser.add_argument(
        "--no-plots",
        action="store_false",
        dest="make_plots",
        help="Skip figure generation",
    )
    parser.add_argument(
        "--generate-test-data",
        action="store_true",
        dest="generate_test_data",
        help="Write synthetic inputs to --data-dir first (implies --no-download)",
    )
    return parser.parse_args(argv)


def config_from_args(args):
    """Build a RunConfig from parsed CLI arguments."""
    return RunConfig(
        data_dir=args.data_dir,
        output_dir=args.output_dir,
        seed=args.seed,
        workers=args.workers,
        burnin=args.burnin,
        mcmc=args.mcmc,
        thin=args.thin,
        strict_validation=args.strict_validation,
        download=args.download and not args.generate_test_data,
        make_plots=args.make_plots,
    )


def main(argv=None):
    args = parse_args(argv)
    run_config = config_from_args(args)

    run_id = set_run_id()
    setup_logging(run_dir=run_config.output_dir)
    log.info("Occupancy SDM pipeline for %s (run_id=%s)", config.SPECIES, run_id)

    if args.generate_test_data:
        from occupancy_sdm.synthetic import generate_test_data
        generate_test_data(run_config.data_dir, seed=run_config.seed)

    result = run_pipeline(run_config)
    save_pipeline_result(result, run_config.output_dir)

    log.info("Pipeline complete in %.1fs", result.total_time_seconds)
    if result.failed_steps:
        log.warning("Failed steps: %s", [s.step_name for s in result.failed_steps])
    elif result.failed_models:
        log.warning("Failed models: %s", sorted(result.failed_models))
    else:
        log.info("All steps succeeded.")
    return 0 if result.all_ok else 1


if __name__ == "__main__":
    sys.exit(main())
