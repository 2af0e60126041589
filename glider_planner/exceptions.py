from __future__ import annotations


class GliderPlannerError(Exception):
    """Base class for errors raised by the glider planner."""


class ConfigurationError(GliderPlannerError, ValueError):
    """Parameter file missing, unreadable, or holding invalid values."""


class InvalidGuessError(GliderPlannerError, ValueError):
    """Decision vector is empty or its length is not a multiple of the block size."""
