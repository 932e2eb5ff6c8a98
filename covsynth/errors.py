"""
Exceptions raised by the simulation pipeline.

Every error aborts the run; nothing is written to disk once one is raised.
"""


class SimulationError(Exception):
    """Base class for all simulation failures."""


class CalibrationError(SimulationError):
    """Quantile matching did not produce usable distribution parameters."""


class CoefficientAlignmentError(SimulationError):
    """Design-matrix columns and coefficient entries do not match one-to-one."""


# Name used by the odds engine contract
MismatchError = CoefficientAlignmentError


class ProbabilityInvariantError(SimulationError):
    """Event probabilities fall outside [0, 1] or do not sum to one."""


class InsufficientPopulationError(SimulationError):
    """A constrained sub-sample asks for more individuals than are eligible."""
