"""
Model driver: one sampler call per model specification.

Specifications only read the shared grid-cell and prediction tables and
each writes its own FittedResult, so they run independently in worker
processes and are collected at the end. A failing specification is
logged and reported without affecting its siblings.
"""

import os
import traceback
from concurrent.futures import ProcessPoolExecutor, as_completed

import numpy as np

from occupancy_sdm import config
from occupancy_sdm.logging_config import StepTimer, get_pipeline_logger
from occupancy_sdm.pipeline_types import FitConfig, FittedResult, ModelSpec

log = get_pipeline_logger(__name__)


def draw_seeds(seed, n):
    """Distinct per-specification seeds derived from one run seed."""
    rng = np.random.default_rng(seed)
    return [int(s) for s in rng.choice(config.SEED_UPPER_BOUND, size=n, replace=False)]


def build_fit_configs(specs, observability, mcmc, priors, seed, verbose=False):
    """FitConfig per specification: shared settings, fresh seed each."""
    seeds = draw_seeds(seed, len(specs))
    return [
        FitConfig(
            suitability=spec.formula,
            observability=observability,
            mcmc=mcmc,
            priors=priors,
            seed=s,
            verbose=verbose,
        )
        for spec, s in zip(specs, seeds)
    ]


def fit_one(spec, sampler, cells, frame, fit_config):
    """Run the sampler for one specification and tag the result."""
    with StepTimer() as timer:
        posterior = sampler.fit(cells, frame, fit_config)

    n_pred = len(np.asarray(posterior.prob_p_pred))
    if n_pred != len(frame):
        raise ValueError(
            f"{spec.name}: sampler returned {n_pred} predictions for {len(frame)} cells"
        )
    if posterior.seed is None:
        posterior.seed = fit_config.seed
    return FittedResult(spec=spec, posterior=posterior, timing_seconds=timer.elapsed)


def _fit_task(args):
    """Worker entry point (must be importable for process pools)."""
    return fit_one(*args)


def fit_models(cells, frame, specs, sampler, fit_configs, max_workers=None,
               executor_cls=ProcessPoolExecutor):
    """Fit every specification and collect results.

    Parameters
    ----------
    cells : pd.DataFrame
        Per-cell fitting table (after adjust_trials()).
    frame : pd.DataFrame
        Prediction frame.
    specs : list[ModelSpec]
    sampler : OccupancySampler
        Must be picklable when a process pool is used.
    fit_configs : list[FitConfig]
        One per spec, from build_fit_configs().
    max_workers : int, optional
        Parallel workers (default: CPU count - 1). 1 runs in-process.
    executor_cls : type
        concurrent.futures executor used when max_workers > 1.

    Returns
    -------
    tuple[list[FittedResult], dict[str, str]]
        Results in specification order, and a name -> traceback mapping
        for specifications that failed.
    """
    specs = [s if isinstance(s, ModelSpec) else ModelSpec.from_dict(s) for s in specs]
    if len(specs) != len(fit_configs):
        raise ValueError(f"{len(specs)} specifications but {len(fit_configs)} fit configs")
    if len({s.name for s in specs}) != len(specs):
        raise ValueError("Model specification names must be unique")

    if max_workers is None:
        max_workers = max(1, (os.cpu_count() or 2) - 1)
    max_workers = min(max_workers, len(specs)) or 1

    tasks = [(spec, sampler, cells, frame, fc) for spec, fc in zip(specs, fit_configs)]
    results = {}
    failures = {}

    log.info("Fitting %d models on %d cells, %d workers",
             len(tasks), len(cells), max_workers)

    if max_workers == 1:
        for task in tasks:
            spec = task[0]
            try:
                results[spec.name] = _fit_task(task)
            except Exception:
                failures[spec.name] = traceback.format_exc()
                log.error("Model %s (%s) failed", spec.name, spec.formula,
                          exc_info=True, extra={"model_label": spec.name})
    else:
        with executor_cls(max_workers=max_workers) as executor:
            futures = {executor.submit(_fit_task, t): t[0] for t in tasks}
            for future in as_completed(futures):
                spec = futures[future]
                try:
                    results[spec.name] = future.result()
                except Exception:
                    failures[spec.name] = traceback.format_exc()
                    log.error("Model %s (%s) failed", spec.name, spec.formula,
                              exc_info=True, extra={"model_label": spec.name})

    for name, res in results.items():
        log.info("Model %s fitted in %.1fs (%d retained draws, seed %s)",
                 name, res.timing_seconds, len(res.samples), res.posterior.seed,
                 extra={"model_label": name, "timing_seconds": res.timing_seconds})

    ordered = [results[s.name] for s in specs if s.name in results]
    return ordered, failures
