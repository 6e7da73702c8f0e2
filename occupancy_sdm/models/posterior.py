"""
Posterior summaries of fitted models.

For every parameter of every fitted model: mean, standard deviation,
median, highest-posterior-density interval and the sampler's rejection
rate. Deviance is summarised like any other parameter; plotting code
filters it out.
"""

import arviz as az
import numpy as np
import pandas as pd
from scipy.special import expit as inv_logit

from occupancy_sdm import config

SUMMARY_COLUMNS = [
    "model", "modelname", "parameter",
    "mean", "sd", "median", "lower", "upper", "rejection_rate",
]


def rejection_rate(samples):
    """Fraction of consecutive draws where the chain did not move."""
    x = np.asarray(samples, dtype=float)
    if x.size < 2:
        return np.nan
    return float(np.mean(x[1:] == x[:-1]))


def hpd_interval(samples, prob=config.HPD_PROB):
    """Narrowest interval containing *prob* of the draws, as (lower, upper)."""
    x = np.asarray(samples, dtype=float)
    if x.size == 0:
        raise ValueError("Cannot compute an HPD interval from zero samples")
    lower, upper = az.hdi(x, hdi_prob=prob)
    return float(lower), float(upper)


def summarize_samples(samples, prob=config.HPD_PROB):
    """Summary rows (one per column) for a draws x parameters DataFrame."""
    rows = []
    for parameter in samples.columns:
        x = samples[parameter].to_numpy(dtype=float)
        lower, upper = hpd_interval(x, prob)
        rows.append({
            "parameter": parameter,
            "mean": float(np.mean(x)),
            "sd": float(np.std(x, ddof=1)) if x.size > 1 else np.nan,
            "median": float(np.median(x)),
            "lower": lower,
            "upper": upper,
            "rejection_rate": rejection_rate(x),
        })
    return pd.DataFrame(rows)


def summarize_posteriors(results, prob=config.HPD_PROB):
    """Flat summary table keyed by (modelname, parameter) across all results."""
    frames = []
    for res in results:
        df = summarize_samples(res.samples, prob)
        df.insert(0, "modelname", res.modelname)
        df.insert(0, "model", res.model)
        frames.append(df)
    if not frames:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    return pd.concat(frames, ignore_index=True)[SUMMARY_COLUMNS]


def coefficient_rows(summary):
    """Summary rows without deviance-like auxiliary parameters."""
    return summary[~summary["parameter"].str.startswith(config.DEVIANCE_PARAMETER)]


def detection_probability(summary, parameter=config.DETECTION_INTERCEPT):
    """Per model: posterior mean detection intercept and its probability scale.

    With an intercept-only observability formula, inv_logit(gamma_hat)
    is the estimated p(observation | presence).
    """
    rows = summary[summary["parameter"] == parameter]
    out = pd.DataFrame({
        "modelname": rows["modelname"].to_numpy(),
        "gamma_hat": rows["mean"].to_numpy(dtype=float),
    })
    out["delta_est"] = inv_logit(out["gamma_hat"])
    return out
