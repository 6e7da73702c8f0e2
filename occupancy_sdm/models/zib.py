"""
Zero-inflated binomial (ZIB) occupancy/detection model sampled with PyMC.

Ecological process:   z_i ~ Bernoulli(theta_i),  logit(theta_i) = X_i beta
Observation process:  y_i | z_i ~ Binomial(n_i, z_i * delta_i),
                      logit(delta_i) = W_i gamma

where y_i is the number of detections (presences) and n_i the number of
trials in cell i. The latent z is marginalised by PyMC's
ZeroInflatedBinomial. Every scalar coefficient gets its own Metropolis
step, which makes one sweep a Metropolis-within-Gibbs update.
"""

import numpy as np
import pandas as pd
import pymc as pm
import pytensor.tensor as pt

from occupancy_sdm import config as sdm_config
from occupancy_sdm.logging_config import get_pipeline_logger
from occupancy_sdm.models.sampler import (
    apply_design,
    design_matrix,
    posterior_mean_probability,
)
from occupancy_sdm.pipeline_types import FitConfig, PosteriorResult

log = get_pipeline_logger(__name__)


class ZIBSampler:
    """OccupancySampler backed by a single-chain PyMC Metropolis run."""

    def __init__(self, presences_col="presences", trials_col="trials"):
        self.presences_col = presences_col
        self.trials_col = trials_col

    def build_model(self, X, W, presences, trials, priors):
        """Return (model, beta_names, gamma_names) for the given design matrices."""
        beta_names = [f"beta.{term}" for term in X.columns]
        gamma_names = [f"gamma.{term}" for term in W.columns]

        with pm.Model() as model:
            betas = [
                pm.Normal(name, mu=priors.mubeta, sigma=np.sqrt(priors.Vbeta))
                for name in beta_names
            ]
            gammas = [
                pm.Normal(name, mu=priors.mugamma, sigma=np.sqrt(priors.Vgamma))
                for name in gamma_names
            ]
            theta = pm.math.invlogit(pt.dot(X.to_numpy(dtype=float), pt.stack(betas)))
            delta = pm.math.invlogit(pt.dot(W.to_numpy(dtype=float), pt.stack(gammas)))
            pm.ZeroInflatedBinomial(
                "presences", psi=theta, n=trials, p=delta, observed=presences,
            )
        return model, beta_names, gamma_names

    def fit(self, data: pd.DataFrame, predictors: pd.DataFrame,
            config: FitConfig) -> PosteriorResult:
        X = design_matrix(config.suitability, data)
        W = design_matrix(config.observability, data)
        presences = data[self.presences_col].to_numpy(dtype=np.int64)
        trials = data[self.trials_col].to_numpy(dtype=np.int64)
        if np.any(presences > trials):
            raise ValueError("presences exceed trials; run adjust_trials() first")

        model, beta_names, gamma_names = self.build_model(
            X, W, presences, trials, config.priors,
        )
        initvals = {name: config.priors.beta_start for name in beta_names}
        initvals.update({name: config.priors.gamma_start for name in gamma_names})

        mcmc = config.mcmc
        log.debug("Sampling %s: %d cells, burnin=%d mcmc=%d thin=%d seed=%d",
                  config.suitability, len(data), mcmc.burnin, mcmc.mcmc,
                  mcmc.thin, config.seed)

        with model:
            step = [pm.Metropolis(vars=[rv]) for rv in model.free_RVs]
            idata = pm.sample(
                draws=mcmc.mcmc,
                tune=mcmc.burnin,
                step=step,
                chains=1,
                cores=1,
                initvals=initvals,
                random_seed=config.seed,
                progressbar=config.verbose,
                compute_convergence_checks=False,
            )
            pm.compute_log_likelihood(idata, model=model, progressbar=False)

        # Keep every thin-th draw, ending on the last iteration.
        keep = slice(mcmc.thin - 1, None, mcmc.thin)
        posterior = idata.posterior
        samples = pd.DataFrame({
            name: posterior[name].values.reshape(-1)[keep]
            for name in beta_names + gamma_names
        })
        loglik = idata.log_likelihood["presences"]
        obs_dims = [d for d in loglik.dims if d not in ("chain", "draw")]
        deviance = -2.0 * loglik.sum(dim=obs_dims).values.reshape(-1)
        samples[sdm_config.DEVIANCE_PARAMETER] = deviance[keep]

        beta_draws = samples[beta_names].to_numpy()
        gamma_draws = samples[gamma_names].to_numpy()
        X_pred = apply_design(X, predictors)

        return PosteriorResult(
            samples=samples,
            prob_p_pred=posterior_mean_probability(X_pred, beta_draws),
            theta_latent=posterior_mean_probability(X, beta_draws),
            delta_latent=posterior_mean_probability(W, gamma_draws),
            seed=config.seed,
        )
