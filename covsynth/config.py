"""
Configuration management for the cohort simulator.
Loads YAML configuration files and validates them into typed settings.
"""

import datetime
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from covsynth.io.paths import CONFIG_DIR

logger = logging.getLogger(__name__)

EVENTS = ["recovery", "admission", "death"]


class DatasetConfig(BaseModel):
    """Population size."""
    n: int = Field(27598, gt=0)


class ProcessingConfig(BaseModel):
    """Random source."""
    seed: int = Field(1, ge=0)


class OutputConfig(BaseModel):
    """Where and how the cohort table is written."""
    directory: str = "output"
    filename: str = "covid_synthetic"
    format: str = "parquet"

    @field_validator("format")
    @classmethod
    def _known_format(cls, value):
        if value not in ("parquet", "csv"):
            raise ValueError(f"Unknown output format: {value}")
        return value


class StudyConfig(BaseModel):
    """Study calendar: day 1 is the reference date."""
    reference_date: datetime.date = datetime.date(2020, 2, 1)
    end_day: int = Field(150, gt=0)
    months: List[str]
    days_in_month: Dict[str, int]
    onset_counts: Dict[str, int]

    @model_validator(mode="after")
    def _months_consistent(self):
        for month in self.months:
            if month not in self.days_in_month or month not in self.onset_counts:
                raise ValueError(f"Month {month} missing from days_in_month or onset_counts")
            if self.days_in_month[month] <= 0 or self.onset_counts[month] < 0:
                raise ValueError(f"Invalid calendar entry for month {month}")
        if sum(self.days_in_month[m] for m in self.months) != self.end_day:
            raise ValueError("days_in_month must add up to end_day")
        return self


class CovariateConfig(BaseModel):
    """Marginal proportions of the simulated covariates."""
    p_male: float = Field(0.45, ge=0, le=1)
    p_comorb: float = Field(0.47, ge=0, le=1)
    occupation: Dict[str, float]
    age_breaks: List[float] = [45, 65]

    @field_validator("occupation")
    @classmethod
    def _occupation_proportions(cls, value):
        if set(value) != {"neither", "hcw", "chr"}:
            raise ValueError("occupation must give proportions for neither, hcw and chr")
        if any(p < 0 or p > 1 for p in value.values()):
            raise ValueError("occupation proportions must lie in [0, 1]")
        if abs(sum(value.values()) - 1) > 1e-8:
            raise ValueError("occupation proportions must sum to 1")
        return value


class QuantileTargets(BaseModel):
    """Quantile probabilities and the target values they should map to."""
    probs: List[float]
    quantiles: List[float]

    @model_validator(mode="after")
    def _check(self):
        _check_probs(self.probs)
        if len(self.quantiles) != len(self.probs):
            raise ValueError("probs and quantiles must have the same length")
        return self


class EventTimeTargets(BaseModel):
    probs: List[float]
    quantiles: Dict[str, List[float]]

    @model_validator(mode="after")
    def _check(self):
        _check_probs(self.probs)
        if set(self.quantiles) != set(EVENTS):
            raise ValueError(f"event_times quantiles must be given for {EVENTS}")
        for event, values in self.quantiles.items():
            if len(values) != len(self.probs):
                raise ValueError(f"{event}: probs and quantiles must have the same length")
        return self


class CalibrationConfig(BaseModel):
    tolerance: float = Field(0.01, gt=0)
    max_restarts: int = Field(5, ge=0)
    age: QuantileTargets
    event_times: EventTimeTargets


class BaselineConfig(BaseModel):
    """Event probabilities in the reference covariate group."""
    p_admission: float = Field(..., gt=0, lt=1)
    p_death: float = Field(..., gt=0, lt=1)

    @model_validator(mode="after")
    def _recovery_positive(self):
        if self.p_admission + self.p_death >= 1:
            raise ValueError("baseline admission and death probabilities must sum to less than 1")
        return self


class FactorConfig(BaseModel):
    levels: List[str]
    reference: str

    @model_validator(mode="after")
    def _reference_is_level(self):
        if self.reference not in self.levels:
            raise ValueError(f"reference level {self.reference} not in {self.levels}")
        if len(set(self.levels)) != len(self.levels):
            raise ValueError(f"duplicate levels in {self.levels}")
        return self


class ModelsConfig(BaseModel):
    coefficients: str = "coefficients.csv"
    formulas: Dict[str, List[str]]

    @field_validator("formulas")
    @classmethod
    def _required_models(cls, value):
        required = {"admission", "death", "time_admission", "time_death", "time_recovery"}
        missing = required - set(value)
        if missing:
            raise ValueError(f"Missing model formulas: {sorted(missing)}")
        return value


class SimulationSettings(BaseModel):
    """Validated view of config/simulation.yaml."""
    dataset: DatasetConfig = DatasetConfig()
    processing: ProcessingConfig = ProcessingConfig()
    output: OutputConfig = OutputConfig()
    study: StudyConfig
    covariates: CovariateConfig
    calibration: CalibrationConfig
    baseline: BaselineConfig
    factors: Dict[str, FactorConfig]
    models: ModelsConfig

    @model_validator(mode="after")
    def _formulas_use_known_factors(self):
        for model, terms in self.models.formulas.items():
            for term in terms:
                for name in term.split(":"):
                    if name not in self.factors:
                        raise ValueError(f"Model {model} uses unknown variable '{name}'")
        if self.factors.get("month") and set(self.factors["month"].levels) != set(self.study.months):
            raise ValueError("month factor levels must match study months")
        return self


def _check_probs(probs):
    if not probs:
        raise ValueError("at least one quantile probability is required")
    if any(p <= 0 or p >= 1 for p in probs):
        raise ValueError("quantile probabilities must lie strictly between 0 and 1")
    if any(b <= a for a, b in zip(probs, probs[1:])):
        raise ValueError("quantile probabilities must be strictly increasing")


class ConfigLoader:
    """Loads YAML configuration files into dicts."""

    def __init__(self, config_dir=CONFIG_DIR):
        self.config_dir = Path(config_dir)
        if not self.config_dir.exists():
            raise FileNotFoundError(f"Configuration directory {config_dir} does not exist")

    def load_yaml(self, filename: str):
        filepath = Path(filename) if ("/" in str(filename) or Path(filename).is_absolute()) else self.config_dir / filename
        if not filepath.exists():
            raise FileNotFoundError(f"Configuration file {filepath} does not exist")
        with open(filepath, "r") as f:
            return yaml.safe_load(f)

    def load_simulation_config(self, filename="simulation.yaml") -> dict:
        return self.load_yaml(filename)


def load_config(config_type: str = "simulation", filename=None):
    loader = ConfigLoader()
    if config_type == "simulation":
        return loader.load_simulation_config(filename or "simulation.yaml")
    else:
        raise ValueError(f"Unknown config type: {config_type}")


def load_settings(filename=None, n: Optional[int] = None, seed: Optional[int] = None,
                  out: Optional[str] = None, fmt: Optional[str] = None) -> SimulationSettings:
    """Load the simulation config and apply command line overrides."""
    config = load_config("simulation", filename)

    # Override config values only when explicitly provided
    if n is not None:
        config.setdefault("dataset", {})["n"] = n
    if seed is not None:
        config.setdefault("processing", {})["seed"] = seed
    if out is not None:
        config.setdefault("output", {})["directory"] = out
    if fmt is not None:
        config.setdefault("output", {})["format"] = fmt

    settings = SimulationSettings(**config)
    logger.debug("Loaded settings: n=%d seed=%d", settings.dataset.n, settings.processing.seed)
    return settings
