"""
Synthetic COVID-19 cohort generator.

Simulates covariates, competing events (recovery, hospital admission, death)
and event times calibrated to summary statistics of a real cohort.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
