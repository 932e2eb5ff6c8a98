"""
Synthetic cohort generation.

Runs the full pipeline once: calibration, covariates, design matrices,
event probabilities, event and time sampling, censoring. The resulting
table is written in one go at the end, so a failed run leaves no output.
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import typer
import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
from tqdm import tqdm

from covsynth.calibrate import GammaParams, calibrate_age, calibrate_event_times
from covsynth.coefficients import CoefficientTable
from covsynth.config import EVENTS, SimulationSettings, load_settings
from covsynth.covariates import generate_covariates
from covsynth.design import design_matrix, factors_from_config, parse_term
from covsynth.events import apply_censoring, sample_event_times, sample_events
from covsynth.gengamma import GenGammaParams
from covsynth.io.paths import get_coefficients_path, get_output_path
from covsynth.odds import baseline_log_odds, event_probabilities, linear_predictor
from covsynth.summary import format_summary, summarize_cohort

logger = logging.getLogger(__name__)

STAGES = ["calibration", "covariates", "probabilities", "events", "times", "censoring"]

COHORT_COLUMNS = [
    "id", "age", "agegroup", "sex", "comorb", "onset_day", "onset_date", "month", "occ",
    "event_true", "time_true", "cens", "event", "time",
]


@dataclass
class Calibration:
    age: GammaParams
    event_times: Dict[str, GenGammaParams]


@dataclass
class SimulationResult:
    """Cohort table plus the intermediate quantities it was drawn from."""
    cohort: pd.DataFrame
    probabilities: pd.DataFrame
    locations: pd.DataFrame
    calibration: Calibration


class CohortSimulator:
    """Generates one synthetic cohort from validated settings."""

    def __init__(self, settings: SimulationSettings, coefficients: Optional[CoefficientTable] = None):
        self.settings = settings
        if coefficients is None:
            coefficients = CoefficientTable.from_csv(get_coefficients_path(settings.models.coefficients))
        self.coefficients = coefficients
        self.factors = factors_from_config(settings.factors)
        self.terms = {
            model: [parse_term(term) for term in terms]
            for model, terms in settings.models.formulas.items()
        }
        self.rng = np.random.default_rng(settings.processing.seed)

    def calibrate(self) -> Calibration:
        return Calibration(age=calibrate_age(self.settings),
                           event_times=calibrate_event_times(self.settings))

    def linear_predictor(self, model: str, data: pd.DataFrame, intercept: float) -> pd.Series:
        X = design_matrix(data, self.terms[model], self.factors)
        beta = self.coefficients.vector(model, X.columns, intercept=intercept)
        return linear_predictor(X, beta)

    def event_probabilities(self, covariates: pd.DataFrame) -> pd.DataFrame:
        baseline = self.settings.baseline
        alpha_admission, alpha_death = baseline_log_odds(baseline.p_admission, baseline.p_death)
        eta_admission = self.linear_predictor("admission", covariates, alpha_admission)
        eta_death = self.linear_predictor("death", covariates, alpha_death)
        return event_probabilities(eta_admission, eta_death)

    def time_locations(self, covariates: pd.DataFrame, params: Dict[str, GenGammaParams]) -> pd.DataFrame:
        """Per-individual log-time location for each event, baseline mu as intercept."""
        return pd.DataFrame({
            event: self.linear_predictor(f"time_{event}", covariates, params[event].mu)
            for event in EVENTS
        }, index=covariates.index)

    def simulate(self, progress: bool = True) -> SimulationResult:
        n = self.settings.dataset.n
        with tqdm(total=len(STAGES), desc="Simulating cohort", unit="stage", ncols=80,
                  ascii=True, file=sys.stdout, disable=not progress) as bar:
            calibration = self.calibrate()
            bar.update(1)

            covariates = generate_covariates(self.rng, n, self.settings, calibration.age)
            bar.update(1)

            probabilities = self.event_probabilities(covariates)
            locations = self.time_locations(covariates, calibration.event_times)
            bar.update(1)

            event_true = sample_events(self.rng, probabilities)
            bar.update(1)

            time_true = sample_event_times(self.rng, event_true, locations, calibration.event_times)
            bar.update(1)

            observed = apply_censoring(covariates["onset_day"], event_true, time_true,
                                       self.settings.study.end_day)
            bar.update(1)

        cohort = covariates.assign(event_true=event_true, time_true=time_true)
        cohort = pd.concat([cohort, observed.set_index(cohort.index)], axis=1)[COHORT_COLUMNS]
        return SimulationResult(cohort=cohort, probabilities=probabilities,
                                locations=locations, calibration=calibration)


def _create_schema():
    """PyArrow schema of the cohort table."""
    return pa.schema([
        pa.field("id", pa.string()),
        pa.field("age", pa.float64()),
        pa.field("agegroup", pa.string()),
        pa.field("sex", pa.string()),
        pa.field("comorb", pa.string()),
        pa.field("onset_day", pa.int32()),
        pa.field("onset_date", pa.date32()),
        pa.field("month", pa.string()),
        pa.field("occ", pa.string()),
        pa.field("event_true", pa.string()),
        pa.field("time_true", pa.float64()),
        pa.field("cens", pa.string()),
        pa.field("event", pa.string()),
        pa.field("time", pa.float64()),
    ])


def _to_plain(cohort: pd.DataFrame) -> pd.DataFrame:
    frame = cohort.copy()
    for column in frame.columns:
        if isinstance(frame[column].dtype, pd.CategoricalDtype):
            frame[column] = frame[column].astype(object).where(frame[column].notna(), None)
    frame["onset_date"] = pd.to_datetime(frame["onset_date"]).dt.date
    return frame


def write_cohort(cohort: pd.DataFrame, path, fmt: str = "parquet") -> Path:
    """Write the cohort table, replacing ``path`` only once the write succeeded."""
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    frame = _to_plain(cohort)
    try:
        if fmt == "parquet":
            table = pa.Table.from_pandas(frame, schema=_create_schema(), preserve_index=False)
            pq.write_table(table, tmp_path)
        elif fmt == "csv":
            frame.to_csv(tmp_path, index=False)
        else:
            raise ValueError(f"Unknown output format: {fmt}")
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    return path


def read_cohort(path) -> pd.DataFrame:
    path = Path(path)
    if path.suffix == ".parquet":
        return pq.read_table(path).to_pandas()
    return pd.read_csv(path)


def run(settings: SimulationSettings, coefficients: Optional[CoefficientTable] = None,
        progress: bool = True) -> Path:
    """Simulate a cohort and write it where the settings say."""
    out = settings.output
    path = get_output_path(out.directory, f"{out.filename}.{out.format}")
    tqdm.write(f"🚀 Simulating {settings.dataset.n:,} individuals (seed {settings.processing.seed})...")

    result = CohortSimulator(settings, coefficients).simulate(progress=progress)
    write_cohort(result.cohort, path, out.format)

    tqdm.write("✅ Cohort simulation complete!")
    tqdm.write(format_summary(summarize_cohort(result.cohort)))
    tqdm.write(f"📁 Output file: {path.absolute()}")
    return path


def generate(
    config_file = typer.Option(None, "--config", help="Configuration file path"),
    n = typer.Option(None, "--n", help="Override population size from config"),
    seed = typer.Option(None, "--seed", help="Override seed from config"),
    out = typer.Option(None, "--out", help="Override output directory from config"),
    fmt = typer.Option(None, "--format", help="Output format: parquet or csv"),
):
    """
    Generate a synthetic COVID-19 cohort.

    Covariates, competing events and event times reproduce the configured
    population-level distributions; the table is written once at the end.

    Example:
        python cli.py simulate --config config/simulation.yaml
        python cli.py simulate --n 5000 --seed 7 --format csv
    """
    settings = load_settings(config_file, n=n, seed=seed, out=out, fmt=fmt)
    return run(settings)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    typer.run(generate)
