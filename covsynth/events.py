"""
Competing-event sampling, event-time sampling and administrative censoring.
"""

import logging
from typing import Dict

import numpy as np
import pandas as pd

from covsynth.config import EVENTS
from covsynth.gengamma import GenGammaParams, rgengamma
from covsynth.odds import PROBABILITY_COLUMNS

logger = logging.getLogger(__name__)

CENS_LEVELS = ["observed", "censored"]


def sample_events(rng: np.random.Generator, probabilities: pd.DataFrame) -> pd.Categorical:
    """One categorical draw per individual from its own probability triple."""
    cumulative = np.cumsum(probabilities[PROBABILITY_COLUMNS].to_numpy(dtype=float), axis=1)
    u = rng.random(len(probabilities))
    # Guard against the last cumulative value falling just below u
    codes = np.minimum((u[:, None] >= cumulative).sum(axis=1), len(EVENTS) - 1)
    return pd.Categorical.from_codes(codes, categories=EVENTS)


def sample_event_times(rng: np.random.Generator, events, locations: pd.DataFrame,
                       params: Dict[str, GenGammaParams]) -> np.ndarray:
    """
    Time to the sampled event for every individual.

    ``locations`` holds one column of per-individual mu per event; only the
    column of the event that occurred is used.
    """
    events = pd.Categorical(events, categories=EVENTS)
    times = np.full(len(events), np.nan)
    for event in EVENTS:
        mask = np.asarray(events == event)
        if not mask.any():
            continue
        p = params[event]
        mu = locations[event].to_numpy(dtype=float)[mask]
        times[mask] = rgengamma(rng, mu, p.sigma, p.Q)
    return times


def apply_censoring(onset_day, event_true, time_true, study_end: int = 150) -> pd.DataFrame:
    """
    Right-censor at the end of the study.

    Individuals whose event would happen after ``study_end`` are censored at
    ``study_end - onset_day`` and have no observed event.
    """
    onset_day = np.asarray(onset_day)
    time_true = np.asarray(time_true, dtype=float)
    censored = onset_day + time_true > study_end

    event = pd.Categorical(event_true, categories=EVENTS).copy()
    event[censored] = np.nan

    result = pd.DataFrame({
        "cens": pd.Categorical.from_codes(censored.astype(int), categories=CENS_LEVELS),
        "event": event,
        "time": np.where(censored, study_end - onset_day, time_true),
    })
    logger.info("Censored %d of %d individuals at day %d", int(censored.sum()), len(result), study_end)
    return result
