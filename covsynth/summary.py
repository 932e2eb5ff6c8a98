"""
Population-level summaries of a simulated cohort, for the end-of-run report.
"""

from typing import Dict

import pandas as pd


def _proportions(column: pd.Series) -> Dict[str, float]:
    return {str(k): float(v) for k, v in column.value_counts(normalize=True, sort=False).items()}


def summarize_cohort(cohort: pd.DataFrame) -> Dict:
    observed = cohort[cohort["cens"] == "observed"]
    return {
        "n": int(len(cohort)),
        "censored": float((cohort["cens"] == "censored").mean()) if len(cohort) else 0.0,
        "event_true": _proportions(cohort["event_true"]),
        "event_observed": _proportions(observed["event"]),
        "month": _proportions(cohort["month"]),
        "agegroup": _proportions(cohort["agegroup"]),
        "occ": _proportions(cohort["occ"]),
        "median_time": {
            str(event): float(group["time"].median())
            for event, group in observed.groupby("event", observed=True)
        },
    }


def format_summary(summary: Dict) -> str:
    def fmt(props):
        return ", ".join(f"{k} {v:.1%}" for k, v in props.items())

    lines = [
        f"📊 Individuals: {summary['n']:,}",
        f"   Events (uncensored): {fmt(summary['event_true'])}",
        f"   Events (observed):   {fmt(summary['event_observed'])}",
        f"   Censored: {summary['censored']:.1%}",
        f"   Onset month: {fmt(summary['month'])}",
        f"   Age group: {fmt(summary['agegroup'])}",
        f"   Occupation: {fmt(summary['occ'])}",
        "   Median observed time (days): "
        + ", ".join(f"{k} {v:.1f}" for k, v in summary["median_time"].items()),
    ]
    return "\n".join(lines)
