#!/usr/bin/env python3
"""
Tests for covariate generation.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from covsynth.calibrate import calibrate_age
from covsynth.config import load_settings
from covsynth.covariates import age_group, assign_occupation, draw_onset_days, generate_covariates
from covsynth.errors import InsufficientPopulationError

MONTHS = ["feb", "mar", "apr", "may", "jun"]
COUNTS = {"feb": 1588, "mar": 14297, "apr": 8286, "may": 2590, "jun": 837}
DAYS = {"feb": 28, "mar": 31, "apr": 30, "may": 31, "jun": 30}


@pytest.fixture(scope="module")
def settings():
    return load_settings()


@pytest.fixture(scope="module")
def cohort(settings):
    rng = np.random.default_rng(1)
    return generate_covariates(rng, 27598, settings, calibrate_age(settings))


class TestAgeGroup:

    def test_boundaries(self):
        groups = age_group([0.0, 30.0, 45.0, 45.01, 65.0, 65.5, 101.0])
        assert list(groups) == ["0-45", "0-45", "0-45", "46-65", "46-65", "66+", "66+"]

    def test_levels(self):
        assert list(age_group([50.0]).categories) == ["0-45", "46-65", "66+"]


class TestOnsetDays:

    def test_month_matches_day(self):
        rng = np.random.default_rng(0)
        onset_day, month = draw_onset_days(rng, 5000, MONTHS, COUNTS, DAYS)
        bounds = {"feb": (1, 28), "mar": (29, 59), "apr": (60, 89), "may": (90, 120), "jun": (121, 150)}
        for m, (lo, hi) in bounds.items():
            days = onset_day[np.asarray(month == m)]
            assert np.all((days >= lo) & (days <= hi))

    def test_range(self):
        rng = np.random.default_rng(0)
        onset_day, _ = draw_onset_days(rng, 20000, MONTHS, COUNTS, DAYS)
        assert onset_day.min() >= 1
        assert onset_day.max() <= 150

    def test_days_uniform_within_month(self):
        rng = np.random.default_rng(2)
        onset_day, _ = draw_onset_days(rng, 60000, ["mar"], {"mar": 1}, {"mar": 31})
        counts = np.bincount(onset_day, minlength=32)[1:]
        assert counts.min() > 0
        assert counts.max() / counts.min() < 1.3


class TestOccupation:

    def test_age_constraint(self, cohort):
        occ = cohort["occ"]
        assert (cohort.loc[occ == "chr", "agegroup"] == "66+").all()
        assert (cohort.loc[occ == "hcw", "agegroup"] != "66+").all()

    def test_counts(self, cohort):
        n = len(cohort)
        counts = cohort["occ"].value_counts()
        assert counts["chr"] == round(n * 0.21)
        assert counts["hcw"] == round(n * 0.13)
        assert counts["neither"] == n - round(n * 0.21) - round(n * 0.13)

    def test_insufficient_older_population(self):
        rng = np.random.default_rng(0)
        agegroup = pd.Categorical(["0-45"] * 90 + ["66+"] * 10, categories=["0-45", "46-65", "66+"])
        with pytest.raises(InsufficientPopulationError):
            assign_occupation(rng, agegroup, {"neither": 0.66, "hcw": 0.13, "chr": 0.21})

    def test_insufficient_younger_population(self):
        rng = np.random.default_rng(0)
        agegroup = pd.Categorical(["66+"] * 95 + ["46-65"] * 5, categories=["0-45", "46-65", "66+"])
        with pytest.raises(InsufficientPopulationError):
            assign_occupation(rng, agegroup, {"neither": 0.66, "hcw": 0.13, "chr": 0.21})


class TestGenerateCovariates:

    def test_columns(self, cohort):
        assert list(cohort.columns) == [
            "id", "age", "agegroup", "sex", "comorb", "onset_day", "onset_date", "month", "occ",
        ]
        assert cohort["id"].is_unique
        assert (cohort["age"] >= 0).all()

    def test_month_proportions(self, cohort):
        observed = cohort["month"].value_counts(normalize=True)
        total = sum(COUNTS.values())
        for month, count in COUNTS.items():
            assert abs(observed[month] - count / total) < 0.01

    def test_marginals(self, cohort):
        assert abs((cohort["sex"] == "male").mean() - 0.45) < 0.01
        assert abs((cohort["comorb"] == "yes").mean() - 0.47) < 0.01

    def test_agegroup_consistent_with_age(self, cohort):
        pd.testing.assert_series_equal(
            pd.Series(age_group(cohort["age"]), name="agegroup").astype(str),
            cohort["agegroup"].astype(str),
        )

    def test_onset_date(self, cohort):
        expected = pd.Timestamp("2020-02-01") + pd.to_timedelta(cohort["onset_day"] - 1, unit="D")
        assert (pd.to_datetime(cohort["onset_date"]) == expected).all()

    def test_reproducible(self, settings):
        age = calibrate_age(settings)
        first = generate_covariates(np.random.default_rng(5), 1000, settings, age)
        second = generate_covariates(np.random.default_rng(5), 1000, settings, age)
        pd.testing.assert_frame_equal(first, second)
