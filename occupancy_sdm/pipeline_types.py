"""
Typed result dataclasses for pipeline step tracking and model fitting.

These types standardize what each pipeline step and each model fit
returns, enabling structured logging, validation gates, and provenance
tracking.
"""

import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import numpy as np
import pandas as pd


class StepStatus(str, Enum):
    """Pipeline step outcome status."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _get_git_sha():
    """Return the short git SHA of the current HEAD, or None."""
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            stderr=subprocess.DEVNULL,
            text=True,
        ).strip()
    except (subprocess.SubprocessError, FileNotFoundError):
        return None


@dataclass
class StepResult:
    """Result of a single pipeline step execution."""

    step_name: str
    status: str  # "success", "skipped", "error"
    input_summary: dict = field(default_factory=dict)
    output_summary: dict = field(default_factory=dict)
    timing_seconds: float = 0.0
    warnings: list = field(default_factory=list)
    error: Optional[str] = None
    started_at: str = field(default_factory=_now_iso)
    completed_at: Optional[str] = None

    @property
    def ok(self):
        return self.status == StepStatus.SUCCESS.value

    def to_dict(self):
        return {
            "step_name": self.step_name,
            "status": self.status,
            "input_summary": self.input_summary,
            "output_summary": self.output_summary,
            "timing_seconds": self.timing_seconds,
            "warnings": self.warnings,
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, d):
        """Reconstruct a StepResult from a serialized dict."""
        return cls(
            step_name=d["step_name"],
            status=d["status"],
            input_summary=d.get("input_summary", {}),
            output_summary=d.get("output_summary", {}),
            timing_seconds=d.get("timing_seconds", 0.0),
            warnings=d.get("warnings", []),
            error=d.get("error"),
            started_at=d.get("started_at", ""),
            completed_at=d.get("completed_at"),
        )


@dataclass
class PipelineRunResult:
    """Result of a complete pipeline execution."""

    run_dir: str = ""
    species: str = ""
    seed: Optional[int] = None
    model_labels: list = field(default_factory=list)
    failed_models: dict = field(default_factory=dict)
    step_results: list = field(default_factory=list)
    total_time_seconds: float = 0.0
    output_files: list = field(default_factory=list)
    git_sha: Optional[str] = field(default_factory=_get_git_sha)
    started_at: str = field(default_factory=_now_iso)

    @property
    def all_ok(self):
        return all(s.ok for s in self.step_results) and not self.failed_models

    @property
    def failed_steps(self):
        return [s for s in self.step_results if not s.ok]

    def to_dict(self):
        return {
            "run_dir": self.run_dir,
            "species": self.species,
            "seed": self.seed,
            "model_labels": self.model_labels,
            "failed_models": self.failed_models,
            "steps": [s.to_dict() for s in self.step_results],
            "total_time_seconds": self.total_time_seconds,
            "output_files": self.output_files,
            "all_ok": self.all_ok,
            "git_sha": self.git_sha,
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(cls, d):
        """Reconstruct a PipelineRunResult from a serialized dict."""
        result = cls(
            run_dir=d.get("run_dir", ""),
            species=d.get("species", ""),
            seed=d.get("seed"),
            model_labels=d.get("model_labels", []),
            failed_models=d.get("failed_models", {}),
            total_time_seconds=d.get("total_time_seconds", 0.0),
            output_files=d.get("output_files", []),
            git_sha=d.get("git_sha"),
            started_at=d.get("started_at", ""),
        )
        result.step_results = [
            StepResult.from_dict(s) for s in d.get("steps", [])
        ]
        return result


# ── Model fitting types ─────────────────────────────────────────────────


@dataclass(frozen=True)
class ModelSpec:
    """A suitability formula and the label it is reported under."""

    model: str
    formula: str
    name: str

    @classmethod
    def from_dict(cls, d):
        return cls(model=d["model"], formula=d["formula"], name=d["name"])


@dataclass(frozen=True)
class MCMCSettings:
    """Run lengths shared by every specification in a comparison."""

    burnin: int = 1000
    mcmc: int = 1000
    thin: int = 1

    def __post_init__(self):
        if self.burnin < 0:
            raise ValueError(f"burnin must be >= 0, got {self.burnin}")
        if self.mcmc < 1:
            raise ValueError(f"mcmc must be >= 1, got {self.mcmc}")
        if self.thin < 1 or self.thin > self.mcmc:
            raise ValueError(f"thin must be in [1, mcmc], got {self.thin}")

    @property
    def n_retained(self):
        return self.mcmc // self.thin


@dataclass(frozen=True)
class PriorSettings:
    """Normal priors and start values for beta (suitability) and gamma (detection)."""

    mubeta: float = 0.0
    Vbeta: float = 1.0e6
    mugamma: float = 0.0
    Vgamma: float = 1.0e6
    beta_start: float = 0.0
    gamma_start: float = 0.0


@dataclass(frozen=True)
class FitConfig:
    """Everything a sampler needs besides the two data tables."""

    suitability: str
    observability: str = "~1"
    mcmc: MCMCSettings = field(default_factory=MCMCSettings)
    priors: PriorSettings = field(default_factory=PriorSettings)
    seed: int = 0
    verbose: bool = False


@dataclass
class PosteriorResult:
    """Output contract of an OccupancySampler.

    samples : one row per retained iteration, one column per parameter
        (``beta.<term>``, ``gamma.<term>``, ``Deviance``).
    prob_p_pred : posterior mean probability of presence per prediction row.
    theta_latent, delta_latent : posterior mean suitability and detection
        probability per fitted cell.
    """

    samples: pd.DataFrame
    prob_p_pred: np.ndarray
    theta_latent: Optional[np.ndarray] = None
    delta_latent: Optional[np.ndarray] = None
    seed: Optional[int] = None

    @property
    def parameters(self):
        return list(self.samples.columns)


@dataclass
class FittedResult:
    """A PosteriorResult tagged with the specification that produced it."""

    spec: ModelSpec
    posterior: PosteriorResult
    timing_seconds: float = 0.0

    @property
    def model(self):
        return self.spec.formula

    @property
    def modelname(self):
        return self.spec.name

    @property
    def samples(self):
        return self.posterior.samples

    @property
    def prob_p_pred(self):
        return self.posterior.prob_p_pred
