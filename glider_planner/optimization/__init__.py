from .initial_guess import anchored_guess, trim_glide_guess
from .solver_interface import SolverConfig, SolverInfo, TrajectoryOptimizer, optimize
from .trapezoidal_collocation import DEFECT_TOLERANCE, TrapezoidalCollocation, residual_size

__all__ = [
    "DEFECT_TOLERANCE",
    "SolverConfig",
    "SolverInfo",
    "TrajectoryOptimizer",
    "TrapezoidalCollocation",
    "anchored_guess",
    "optimize",
    "residual_size",
    "trim_glide_guess",
]
