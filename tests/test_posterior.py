"""
Tests for occupancy_sdm.models.posterior.

Posterior summaries feed the coefficient comparison across model
specifications, so every statistic is checked against draws whose
distribution is known.
"""

import numpy as np
import pandas as pd
import pytest

from occupancy_sdm.models import (
    coefficient_rows,
    detection_probability,
    hpd_interval,
    rejection_rate,
    summarize_posteriors,
)
from occupancy_sdm.models.posterior import SUMMARY_COLUMNS, summarize_samples
from occupancy_sdm.pipeline_types import FittedResult, ModelSpec, PosteriorResult


def _fitted(name, formula, samples):
    return FittedResult(
        spec=ModelSpec(model=name.lower(), formula=formula, name=name),
        posterior=PosteriorResult(samples=samples, prob_p_pred=np.zeros(3)),
    )


class TestRejectionRate:

    def test_fraction_of_repeated_draws(self):
        assert rejection_rate([1.0, 1.0, 2.0, 2.0, 2.0]) == pytest.approx(0.75)

    def test_constant_chain_rejects_everything(self):
        assert rejection_rate(np.full(10, 3.0)) == 1.0

    def test_always_moving_chain(self):
        assert rejection_rate(np.arange(10.0)) == 0.0

    def test_single_draw_is_nan(self):
        assert np.isnan(rejection_rate([1.0]))


class TestHpdInterval:

    def test_symmetric_distribution(self):
        """For symmetric draws the HPD interval brackets mean and median."""
        x = np.random.default_rng(0).normal(0.0, 1.0, 20000)
        lower, upper = hpd_interval(x, 0.95)
        assert lower < np.mean(x) < upper
        assert abs(np.mean(x) - np.median(x)) < 0.05
        assert lower == pytest.approx(-1.96, abs=0.1)
        assert upper == pytest.approx(1.96, abs=0.1)

    def test_skewed_distribution_is_narrowest(self):
        """The HPD interval of an exponential starts at the mode (zero)."""
        x = np.random.default_rng(1).exponential(1.0, 20000)
        lower, upper = hpd_interval(x, 0.9)
        assert lower < 0.01
        assert upper == pytest.approx(-np.log(0.1), rel=0.05)

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            hpd_interval([])


class TestSummaries:

    @pytest.fixture
    def results(self):
        rng = np.random.default_rng(2)
        a = pd.DataFrame({
            "beta.Intercept": rng.normal(1.0, 0.1, 500),
            "beta.MAT": rng.normal(-0.5, 0.1, 500),
            "gamma.Intercept": np.zeros(500),
            "Deviance": rng.uniform(100, 110, 500),
        })
        b = pd.DataFrame({
            "beta.Intercept": rng.normal(0.0, 0.1, 500),
            "beta.CLDJAN": rng.normal(0.3, 0.1, 500),
            "gamma.Intercept": np.full(500, np.log(3.0)),
            "Deviance": rng.uniform(100, 110, 500),
        })
        return [_fitted("Precipitation", "~MAT", a), _fitted("Cloud", "~CLDJAN", b)]

    def test_columns_and_keys(self, results):
        summary = summarize_posteriors(results)
        assert list(summary.columns) == SUMMARY_COLUMNS
        assert len(summary) == 8
        assert not summary.duplicated(["modelname", "parameter"]).any()
        assert set(summary["model"]) == {"~MAT", "~CLDJAN"}

    def test_statistics(self, results):
        summary = summarize_posteriors(results)
        row = summary[(summary["modelname"] == "Precipitation")
                      & (summary["parameter"] == "beta.MAT")].iloc[0]
        assert row["mean"] == pytest.approx(-0.5, abs=0.02)
        assert row["sd"] == pytest.approx(0.1, abs=0.02)
        assert row["lower"] <= row["median"] <= row["upper"]
        assert row["rejection_rate"] == 0.0

    def test_sd_uses_sample_denominator(self):
        summary = summarize_samples(pd.DataFrame({"x": [1.0, 2.0, 3.0, 4.0]}))
        assert summary["sd"].iloc[0] == pytest.approx(np.std([1, 2, 3, 4], ddof=1))

    def test_coefficient_rows_drop_deviance(self, results):
        coefs = coefficient_rows(summarize_posteriors(results))
        assert "Deviance" not in set(coefs["parameter"])
        assert len(coefs) == 6

    def test_detection_probability(self, results):
        detection = detection_probability(summarize_posteriors(results))
        assert list(detection["modelname"]) == ["Precipitation", "Cloud"]
        assert detection["delta_est"].tolist() == pytest.approx([0.5, 0.75])

    def test_no_results_gives_empty_table(self):
        summary = summarize_posteriors([])
        assert summary.empty
        assert list(summary.columns) == SUMMARY_COLUMNS
