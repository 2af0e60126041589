"""Flat-plate glider planner: trapezoidal-collocation trajectory generation for precision landing."""

from .exceptions import ConfigurationError, GliderPlannerError, InvalidGuessError
from .params import Constraints, PhysicalParameters, load_parameters
from .types import Trajectory

__version__ = "0.1.0"
__all__ = [
    'ConfigurationError',
    'Constraints',
    'GliderPlannerError',
    'InvalidGuessError',
    'PhysicalParameters',
    'Trajectory',
    'load_parameters',
]
