"""
Linear predictors and competing-event probabilities.

Admission and death are modelled as log-odds relative to recovery, so
P(recovery) = 1 / (1 + odds_admission + odds_death).
"""

import logging

import numpy as np
import pandas as pd

from covsynth.errors import CoefficientAlignmentError, ProbabilityInvariantError

logger = logging.getLogger(__name__)

PROBABILITY_COLUMNS = ["p_recovery", "p_admission", "p_death"]


def linear_predictor(X: pd.DataFrame, beta: pd.Series) -> pd.Series:
    """eta = X beta, with beta matched to the columns of X by name."""
    columns, names = set(X.columns), set(beta.index)
    if columns != names or len(beta.index) != len(names):
        raise CoefficientAlignmentError(
            f"Design columns without coefficients {sorted(columns - names)}, "
            f"coefficients without columns {sorted(names - columns)}"
        )
    eta = X.to_numpy(dtype=float) @ beta.reindex(X.columns).to_numpy(dtype=float)
    return pd.Series(eta, index=X.index, name=beta.name)


def odds(X: pd.DataFrame, beta: pd.Series) -> pd.Series:
    return np.exp(linear_predictor(X, beta))


def baseline_log_odds(p_admission: float, p_death: float):
    """Intercepts of the two log-odds models from reference-group probabilities."""
    p_recovery = 1.0 - p_admission - p_death
    if p_recovery <= 0:
        raise ProbabilityInvariantError("Baseline admission and death probabilities leave no room for recovery")
    return float(np.log(p_admission / p_recovery)), float(np.log(p_death / p_recovery))


def check_probabilities(probs: pd.DataFrame, tol: float = 1e-6) -> None:
    values = probs[PROBABILITY_COLUMNS].to_numpy(dtype=float)
    if not np.all(np.isfinite(values)):
        raise ProbabilityInvariantError(f"{int((~np.isfinite(values)).sum())} non-finite event probabilities")
    if np.any(values < 0) or np.any(values > 1):
        raise ProbabilityInvariantError("Event probabilities outside [0, 1]")
    worst = float(np.max(np.abs(values.sum(axis=1) - 1.0))) if len(values) else 0.0
    if worst > tol:
        raise ProbabilityInvariantError(f"Event probabilities do not sum to 1 (max deviation {worst:.2e})")


def event_probabilities(eta_admission, eta_death, tol: float = 1e-6) -> pd.DataFrame:
    """
    Per-individual probabilities of recovery, admission and death.

    Equivalent to P(recovery) = 1 / (1 + odds_admission + odds_death), computed
    as a softmax over (0, eta_admission, eta_death) shifted by its row maximum
    so large log-odds do not overflow.
    """
    eta_admission = pd.Series(eta_admission)
    eta_death = np.asarray(eta_death, dtype=float)
    eta = np.column_stack([np.zeros(len(eta_admission)), eta_admission.to_numpy(dtype=float), eta_death])
    weights = np.exp(eta - eta.max(axis=1, keepdims=True))
    probs = pd.DataFrame(weights / weights.sum(axis=1, keepdims=True),
                         columns=PROBABILITY_COLUMNS, index=eta_admission.index)
    check_probabilities(probs, tol)
    logger.info("Mean event probabilities: %s",
                ", ".join(f"{c}={probs[c].mean():.4f}" for c in PROBABILITY_COLUMNS))
    return probs
