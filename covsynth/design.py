"""
Design matrices from explicit term lists.

A model is a list of terms; each term is either a single categorical factor
(reference-coded indicator columns) or a pairwise interaction (columnwise
products of the two factors' indicators). Column names follow the usual R
model-matrix convention, e.g. ``agegroup66+`` or ``agegroup66+:comorbyes``,
so coefficients can be matched to columns by name.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

INTERCEPT = "(Intercept)"


@dataclass(frozen=True)
class Factor:
    """Categorical variable with an explicit level order and reference level."""
    name: str
    levels: Tuple[str, ...]
    reference: str

    def __post_init__(self):
        if self.reference not in self.levels:
            raise ValueError(f"{self.name}: reference level {self.reference!r} not in {self.levels}")

    @property
    def contrasts(self) -> List[str]:
        """Non-reference levels, in level order."""
        return [level for level in self.levels if level != self.reference]

    def columns(self) -> List[str]:
        return [f"{self.name}{level}" for level in self.contrasts]

    def indicators(self, values) -> np.ndarray:
        values = np.asarray(values, dtype=object)
        unknown = set(pd.unique(values)) - set(self.levels)
        if unknown:
            raise ValueError(f"{self.name}: values {sorted(map(str, unknown))} are not levels {list(self.levels)}")
        if not self.contrasts:
            return np.empty((len(values), 0))
        return np.column_stack([values == level for level in self.contrasts]).astype(float)


@dataclass(frozen=True)
class Term:
    """Main effect (one factor) or pairwise interaction (two factors)."""
    factors: Tuple[str, ...]

    def __post_init__(self):
        if len(self.factors) not in (1, 2):
            raise ValueError(f"Only main effects and pairwise interactions are supported: {self.factors}")

    @property
    def is_interaction(self) -> bool:
        return len(self.factors) == 2

    @property
    def label(self) -> str:
        return ":".join(self.factors)


def parse_term(text: str) -> Term:
    """``"agegroup"`` -> main effect, ``"agegroup:comorb"`` -> interaction."""
    return Term(tuple(part.strip() for part in text.split(":")))


def factors_from_config(factor_config) -> Dict[str, Factor]:
    """Build Factor objects from the ``factors`` section of the settings."""
    return {
        name: Factor(name, tuple(cfg.levels), cfg.reference)
        for name, cfg in factor_config.items()
    }


def _ordered(terms: Sequence[Term]) -> List[Term]:
    # Main effects before interactions, otherwise in the order given
    return [t for t in terms if not t.is_interaction] + [t for t in terms if t.is_interaction]


def _term_columns(term: Term, factors: Dict[str, Factor]) -> List[str]:
    if not term.is_interaction:
        return factors[term.factors[0]].columns()
    first, second = (factors[name] for name in term.factors)
    # First factor varies fastest
    return [f"{a}:{b}" for b in second.columns() for a in first.columns()]


def design_columns(terms: Sequence[Term], factors: Dict[str, Factor]) -> List[str]:
    """Column names of the design matrix, intercept first."""
    columns = [INTERCEPT]
    for term in _ordered(terms):
        columns.extend(_term_columns(term, factors))
    if len(set(columns)) != len(columns):
        raise ValueError(f"Duplicate design columns from terms {[t.label for t in terms]}")
    return columns


def design_matrix(data: pd.DataFrame, terms: Sequence[Term], factors: Dict[str, Factor]) -> pd.DataFrame:
    """Numeric design matrix with an intercept column, indexed like ``data``."""
    missing = {name for term in terms for name in term.factors} - set(factors)
    if missing:
        raise ValueError(f"Terms refer to undefined factors: {sorted(missing)}")

    indicators = {}
    blocks = [np.ones((len(data), 1))]
    for term in _ordered(terms):
        for name in term.factors:
            if name not in indicators:
                indicators[name] = factors[name].indicators(data[name])
        if term.is_interaction:
            a, b = (indicators[name] for name in term.factors)
            block = (a[:, :, None] * b[:, None, :]).transpose(0, 2, 1).reshape(len(data), -1)
        else:
            block = indicators[term.factors[0]]
        blocks.append(block)

    return pd.DataFrame(np.hstack(blocks), index=data.index, columns=design_columns(terms, factors))
