#!/usr/bin/env python3
"""
Tests for event sampling, event-time sampling and censoring.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from covsynth.events import apply_censoring, sample_event_times, sample_events
from covsynth.gengamma import GenGammaParams, qgengamma

PARAMS = {
    "recovery": GenGammaParams(2.6, 0.3, 0.0),
    "admission": GenGammaParams(1.8, 0.6, 0.5),
    "death": GenGammaParams(2.4, 0.5, 0.3),
}


class TestSampleEvents:

    def test_degenerate_probabilities(self):
        probs = pd.DataFrame({
            "p_recovery": [1.0, 0.0, 0.0],
            "p_admission": [0.0, 1.0, 0.0],
            "p_death": [0.0, 0.0, 1.0],
        })
        events = sample_events(np.random.default_rng(0), probs)
        assert list(events) == ["recovery", "admission", "death"]

    def test_frequencies(self):
        n = 50000
        probs = pd.DataFrame({
            "p_recovery": np.full(n, 0.7),
            "p_admission": np.full(n, 0.2),
            "p_death": np.full(n, 0.1),
        })
        events = pd.Series(sample_events(np.random.default_rng(1), probs))
        freq = events.value_counts(normalize=True)
        assert freq["recovery"] == pytest.approx(0.7, abs=0.01)
        assert freq["admission"] == pytest.approx(0.2, abs=0.01)
        assert freq["death"] == pytest.approx(0.1, abs=0.01)

    def test_individual_probabilities_used(self):
        n = 20000
        probs = pd.DataFrame({
            "p_recovery": np.r_[np.full(n, 0.9), np.full(n, 0.1)],
            "p_admission": np.r_[np.full(n, 0.1), np.full(n, 0.9)],
            "p_death": np.zeros(2 * n),
        })
        events = np.asarray(sample_events(np.random.default_rng(2), probs))
        assert (events[:n] == "recovery").mean() == pytest.approx(0.9, abs=0.02)
        assert (events[n:] == "admission").mean() == pytest.approx(0.9, abs=0.02)
        assert not (events == "death").any()


class TestSampleEventTimes:

    def test_time_follows_sampled_event(self):
        n = 30000
        events = pd.Categorical(["admission"] * n + ["recovery"] * n,
                                categories=["recovery", "admission", "death"])
        locations = pd.DataFrame({
            "recovery": np.full(2 * n, 2.6),
            "admission": np.full(2 * n, 1.8),
            "death": np.full(2 * n, np.nan),
        })
        times = sample_event_times(np.random.default_rng(3), events, locations, PARAMS)

        assert np.all(np.isfinite(times)) and np.all(times > 0)
        for event, block in [("admission", times[:n]), ("recovery", times[n:])]:
            p = PARAMS[event]
            expected = qgengamma(0.5, p.mu, p.sigma, p.Q)
            assert np.median(block) == pytest.approx(expected, rel=0.03)


class TestCensoring:

    def test_hand_example(self):
        result = apply_censoring([10, 140, 150], ["death", "recovery", "admission"], [5.0, 20.0, 0.5])

        assert list(result["cens"]) == ["observed", "censored", "censored"]
        assert result.loc[0, "event"] == "death"
        assert pd.isna(result.loc[1, "event"]) and pd.isna(result.loc[2, "event"])
        np.testing.assert_allclose(result["time"], [5.0, 10.0, 0.0])

    def test_boundary_is_observed(self):
        result = apply_censoring([100], ["recovery"], [50.0])
        assert result.loc[0, "cens"] == "observed"
        assert result.loc[0, "time"] == 50.0

    def test_invariants(self):
        rng = np.random.default_rng(4)
        onset = rng.integers(1, 151, 5000)
        time_true = rng.exponential(30, 5000)
        event_true = rng.choice(["recovery", "admission", "death"], 5000)
        result = apply_censoring(onset, event_true, time_true, study_end=150)

        censored = (result["cens"] == "censored").to_numpy()
        np.testing.assert_array_equal(censored, onset + time_true > 150)
        np.testing.assert_allclose(result["time"][censored], 150 - onset[censored])
        np.testing.assert_allclose(result["time"][~censored], time_true[~censored])
        assert result["event"][censored].isna().all()
        assert (result["event"][~censored].astype(str).to_numpy() == event_true[~censored]).all()
