"""
Path management utilities for the covsynth pipeline.
Provides consistent paths for configuration, input tables and outputs.
"""

from pathlib import Path


# Base project directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Input tables (regression coefficients)
DATA_DIR = PROJECT_ROOT / "data"

# Configuration
CONFIG_DIR = PROJECT_ROOT / "config"


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists, create if it doesn't."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_coefficients_path(filename: str = "coefficients.csv") -> Path:
    """Get path for a coefficient table; absolute paths are returned unchanged."""
    path = Path(filename)
    if path.is_absolute():
        return path
    if path.parent != Path("."):
        return PROJECT_ROOT / path
    return DATA_DIR / path


def get_output_path(directory, filename: str) -> Path:
    """Get path for the cohort table, creating the directory if missing."""
    return ensure_dir(Path(directory)) / filename
