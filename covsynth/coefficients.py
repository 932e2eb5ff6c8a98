"""
Regression coefficients, keyed by (model, term).

The bundled data/coefficients.csv holds illustrative placeholder values, not
estimates from the paper; replace it with the published coefficient table
before using the output for methods research. Lines starting with "#" are
comments.

Intercepts are not part of the table: probability models take theirs from
the baseline event probabilities and time models from calibration.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd

from covsynth.design import INTERCEPT
from covsynth.errors import CoefficientAlignmentError

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["model", "term", "estimate"]


class CoefficientTable:
    """Lookup of coefficient estimates by model name and design column name."""

    def __init__(self, table: pd.DataFrame):
        missing = [c for c in REQUIRED_COLUMNS if c not in table.columns]
        if missing:
            raise ValueError(f"Coefficient table is missing columns: {missing}")
        table = table[REQUIRED_COLUMNS].copy()
        table["model"] = table["model"].astype(str).str.strip()
        table["term"] = table["term"].astype(str).str.strip()
        table["estimate"] = pd.to_numeric(table["estimate"], errors="raise")

        duplicated = table.duplicated(["model", "term"], keep=False)
        if duplicated.any():
            pairs = table.loc[duplicated, ["model", "term"]].drop_duplicates().values.tolist()
            raise ValueError(f"Duplicate coefficient entries: {pairs}")
        if (table["term"] == INTERCEPT).any():
            raise ValueError("Intercepts are supplied separately and must not appear in the coefficient table")

        self._estimates: Dict[str, Dict[str, float]] = {}
        for model, group in table.groupby("model", sort=False):
            self._estimates[model] = dict(zip(group["term"], group["estimate"].astype(float)))

    @classmethod
    def from_csv(cls, path) -> "CoefficientTable":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Coefficient table {path} does not exist")
        table = cls(pd.read_csv(path, comment="#"))
        logger.info("Loaded %d coefficients for models %s from %s",
                    sum(len(v) for v in table._estimates.values()), table.models(), path)
        return table

    def models(self) -> List[str]:
        return list(self._estimates)

    def terms(self, model: str) -> List[str]:
        if model not in self._estimates:
            raise CoefficientAlignmentError(f"No coefficients for model '{model}'")
        return list(self._estimates[model])

    def lookup(self, model: str, term: str) -> float:
        try:
            return self._estimates[model][term]
        except KeyError:
            raise CoefficientAlignmentError(f"No coefficient for column '{term}' in model '{model}'") from None

    def vector(self, model: str, columns: Sequence[str], intercept: Optional[float] = None) -> pd.Series:
        """
        Coefficients aligned to ``columns`` by name.

        The non-intercept columns and the table entries for ``model`` must
        match one-to-one; ``intercept`` fills the ``(Intercept)`` column.
        """
        columns = list(columns)
        expected = set(columns) - {INTERCEPT}
        available = set(self.terms(model))
        if expected != available:
            raise CoefficientAlignmentError(
                f"Model '{model}': columns without coefficients {sorted(expected - available)}, "
                f"coefficients without columns {sorted(available - expected)}"
            )
        if INTERCEPT in columns and intercept is None:
            raise CoefficientAlignmentError(f"Model '{model}': no intercept supplied")
        values = [intercept if column == INTERCEPT else self._estimates[model][column] for column in columns]
        return pd.Series(values, index=columns, name=model, dtype=float)
