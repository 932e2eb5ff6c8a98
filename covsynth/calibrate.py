"""
Quantile-matching calibration.

Fits generalized gamma event-time distributions and a gamma age distribution
by least squares on target quantiles. Scale-type parameters are optimised
on the log scale so the minimiser can run unconstrained.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
from scipy import optimize, stats

from covsynth.config import EVENTS, SimulationSettings
from covsynth.errors import CalibrationError
from covsynth.gengamma import GenGammaParams, qgengamma

logger = logging.getLogger(__name__)

NELDER_MEAD_OPTIONS = {"xatol": 1e-8, "fatol": 1e-10, "maxiter": 20000, "maxfev": 40000}


@dataclass(frozen=True)
class GammaParams:
    """Gamma distribution with shape and rate."""
    shape: float
    rate: float

    def ppf(self, p):
        return stats.gamma.ppf(p, self.shape, scale=1.0 / self.rate)


def _validate_targets(probs, targets):
    probs = np.asarray(probs, dtype=float)
    targets = np.asarray(targets, dtype=float)
    if probs.shape != targets.shape or probs.ndim != 1:
        raise CalibrationError("Quantile probabilities and targets must be 1-d and of equal length")
    if not (np.all(np.isfinite(probs)) and np.all(np.isfinite(targets))):
        raise CalibrationError(f"Non-finite calibration targets: {targets.tolist()}")
    if np.any(targets <= 0):
        raise CalibrationError(f"Quantile targets must be positive: {targets.tolist()}")
    if np.any(np.diff(targets) <= 0) or np.any(np.diff(probs) <= 0):
        raise CalibrationError("Quantile probabilities and targets must be strictly increasing")
    return probs, targets


def _minimize(loss, x0, max_restarts, label):
    """Nelder-Mead, restarted from the current optimum until it converges."""
    x0 = np.asarray(x0, dtype=float)
    simplex = np.vstack([x0, x0 + np.diag(np.full(x0.size, 0.5))])
    result = optimize.minimize(loss, x0, method="Nelder-Mead",
                               options=dict(NELDER_MEAD_OPTIONS, initial_simplex=simplex))
    restarts = 0
    while not result.success and restarts < max_restarts:
        restarts += 1
        logger.debug("%s: restarting Nelder-Mead (%s)", label, result.message)
        simplex = np.vstack([result.x, result.x + np.diag(np.full(x0.size, 0.1))])
        result = optimize.minimize(loss, result.x, method="Nelder-Mead",
                                   options=dict(NELDER_MEAD_OPTIONS, initial_simplex=simplex))
    if not result.success:
        logger.warning("%s: optimizer did not converge: %s", label, result.message)
    if not np.all(np.isfinite(result.x)) or not np.isfinite(result.fun):
        raise CalibrationError(f"{label}: non-finite parameters {result.x.tolist()}")
    return result


def _max_relative_error(fitted, targets):
    return float(np.max(np.abs(fitted - targets) / targets))


def fit_gengamma_quantiles(probs: Sequence[float], targets: Sequence[float],
                           tolerance: float = 0.01, max_restarts: int = 5,
                           label: str = "gengamma") -> GenGammaParams:
    """
    Find (mu, sigma, Q) whose quantiles at ``probs`` match ``targets``.

    Optimises (mu, log sigma, Q) from the zero vector, i.e. a standard
    log-normal. Raises CalibrationError if the worst relative quantile error
    of the fit exceeds ``tolerance``.
    """
    probs, targets = _validate_targets(probs, targets)

    def loss(theta):
        mu, log_sigma, Q = theta
        fitted = qgengamma(probs, mu, np.exp(log_sigma), Q)
        value = np.sum((fitted - targets) ** 2)
        return value if np.isfinite(value) else np.inf

    result = _minimize(loss, np.zeros(3), max_restarts, label)
    params = GenGammaParams(mu=float(result.x[0]), sigma=float(np.exp(result.x[1])), Q=float(result.x[2]))

    error = _max_relative_error(qgengamma(probs, params.mu, params.sigma, params.Q), targets)
    if error > tolerance:
        raise CalibrationError(
            f"{label}: fitted quantiles miss targets by {error:.2%} (tolerance {tolerance:.2%})"
        )
    logger.info("%s: mu=%.4f sigma=%.4f Q=%.4f (max rel. error %.2e)",
                label, params.mu, params.sigma, params.Q, error)
    return params


def fit_gamma_quantiles(probs: Sequence[float], targets: Sequence[float],
                        max_restarts: int = 5, label: str = "age") -> GammaParams:
    """
    Least-squares fit of a two-parameter gamma to quantile targets.

    With more targets than parameters the fit is approximate, so the residual
    is logged rather than checked against a tolerance.
    """
    probs, targets = _validate_targets(probs, targets)

    # Moment-style starting point from the median and the quantile spread
    z = stats.norm.ppf(probs)
    spread = (targets[-1] - targets[0]) / (z[-1] - z[0]) if len(targets) > 1 else targets[0]
    centre = float(np.median(targets))
    x0 = np.log([(centre / spread) ** 2, centre / spread ** 2])

    def loss(theta):
        shape, rate = np.exp(theta)
        fitted = stats.gamma.ppf(probs, shape, scale=1.0 / rate)
        value = np.sum((fitted - targets) ** 2)
        return value if np.isfinite(value) else np.inf

    result = _minimize(loss, x0, max_restarts, label)
    shape, rate = np.exp(result.x)
    params = GammaParams(shape=float(shape), rate=float(rate))
    logger.info("%s: shape=%.4f rate=%.5f (max rel. error %.2e)", label, params.shape, params.rate,
                _max_relative_error(params.ppf(probs), targets))
    return params


def calibrate_event_times(settings: SimulationSettings) -> Dict[str, GenGammaParams]:
    """Baseline time-to-event distribution for each competing event."""
    targets = settings.calibration.event_times
    return {
        event: fit_gengamma_quantiles(
            targets.probs,
            targets.quantiles[event],
            tolerance=settings.calibration.tolerance,
            max_restarts=settings.calibration.max_restarts,
            label=f"time to {event}",
        )
        for event in EVENTS
    }


def calibrate_age(settings: SimulationSettings) -> GammaParams:
    targets = settings.calibration.age
    return fit_gamma_quantiles(targets.probs, targets.quantiles,
                               max_restarts=settings.calibration.max_restarts)
