"""
Covariate generation for the synthetic cohort.

Draws age, sex, comorbidity, symptom onset day and occupational risk group
for N independent individuals.
"""

import logging
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from covsynth.calibrate import GammaParams
from covsynth.config import SimulationSettings
from covsynth.errors import InsufficientPopulationError

logger = logging.getLogger(__name__)

AGEGROUP_LEVELS = ["0-45", "46-65", "66+"]
OCC_LEVELS = ["neither", "hcw", "chr"]


def age_group(age, breaks: Sequence[float] = (45, 65)) -> pd.Categorical:
    """Right-closed age bands: (0, 45], (45, 65], (65, inf)."""
    bins = [0, *breaks, np.inf]
    return pd.cut(np.asarray(age, dtype=float), bins=bins, labels=AGEGROUP_LEVELS,
                  right=True, include_lowest=True)


def draw_onset_days(rng: np.random.Generator, n: int, months: List[str],
                    onset_counts: Dict[str, int], days_in_month: Dict[str, int]):
    """
    Onset day index (day 1 is the first day of the first month) and month.

    The month is drawn with probability proportional to its onset count and
    the day uniformly within the month.
    """
    counts = np.array([onset_counts[m] for m in months], dtype=float)
    lengths = np.array([days_in_month[m] for m in months])
    month_idx = rng.choice(len(months), size=n, p=counts / counts.sum())
    first_day = np.concatenate([[1], 1 + np.cumsum(lengths)[:-1]])
    offset = rng.integers(0, lengths[month_idx])
    onset_day = first_day[month_idx] + offset
    month = pd.Categorical.from_codes(month_idx, categories=months)
    return onset_day.astype(int), month


def _sample_from(rng, eligible: np.ndarray, size: int, label: str) -> np.ndarray:
    if size > eligible.size:
        raise InsufficientPopulationError(
            f"Cannot assign {size} individuals to {label}: only {eligible.size} eligible"
        )
    return rng.choice(eligible, size=size, replace=False)


def assign_occupation(rng: np.random.Generator, agegroup, proportions: Dict[str, float]) -> pd.Categorical:
    """
    Occupational risk group subject to the age constraint.

    An unconstrained draw is made first; care home residents are then
    resampled from the 66+ group and healthcare workers from the under-66
    groups, in the target numbers, with everyone else set to "neither".
    """
    agegroup = pd.Categorical(agegroup, categories=AGEGROUP_LEVELS)
    n = len(agegroup)
    p = np.array([proportions[level] for level in OCC_LEVELS])
    initial = rng.choice(len(OCC_LEVELS), size=n, p=p)
    logger.debug("Unconstrained occupation draw: %s",
                 dict(zip(OCC_LEVELS, np.bincount(initial, minlength=len(OCC_LEVELS)).tolist())))

    n_chr = int(round(n * proportions["chr"]))
    n_hcw = int(round(n * proportions["hcw"]))
    older = np.asarray(agegroup == "66+")
    chr_idx = _sample_from(rng, np.flatnonzero(older), n_chr, "care home residents (66+)")
    hcw_idx = _sample_from(rng, np.flatnonzero(~older), n_hcw, "healthcare workers (under 66)")

    codes = np.zeros(n, dtype=int)
    codes[chr_idx] = OCC_LEVELS.index("chr")
    codes[hcw_idx] = OCC_LEVELS.index("hcw")
    return pd.Categorical.from_codes(codes, categories=OCC_LEVELS)


def generate_covariates(rng: np.random.Generator, n: int, settings: SimulationSettings,
                        age_params: GammaParams) -> pd.DataFrame:
    """Draw the covariate table for ``n`` individuals."""
    cov = settings.covariates
    study = settings.study

    age = rng.gamma(age_params.shape, 1.0 / age_params.rate, size=n)
    agegroup = age_group(age, cov.age_breaks)
    sex = pd.Categorical.from_codes((rng.random(n) >= cov.p_male).astype(int),
                                    categories=["male", "female"])
    comorb = pd.Categorical.from_codes((rng.random(n) < cov.p_comorb).astype(int),
                                       categories=["no", "yes"])
    onset_day, month = draw_onset_days(rng, n, study.months, study.onset_counts, study.days_in_month)
    occ = assign_occupation(rng, agegroup, cov.occupation)

    reference = pd.Timestamp(study.reference_date)
    onset_date = reference + pd.to_timedelta(onset_day - 1, unit="D")

    covariates = pd.DataFrame({
        "id": [f"P{i + 1:06d}" for i in range(n)],
        "age": age,
        "agegroup": agegroup,
        "sex": sex,
        "comorb": comorb,
        "onset_day": onset_day,
        "onset_date": onset_date,
        "month": month,
        "occ": occ,
    })
    logger.info("Generated covariates for %d individuals", n)
    return covariates
