"""
Parameters for the flat-plate glider trajectory generator.

Naming follows the perching-glider model (Moore et al., "Robust Post-Stall
Perching with a Simple Fixed-Wing Glider using LQR-Trees"):
- l_w: CG to wing aerodynamic centre
- l:   CG to elevator pivot
- l_e: elevator pivot to elevator aerodynamic centre

Configuration documents use descriptive keys (see ``PARAMETER_KEYS`` and
``CONSTRAINT_KEYS``) and may be nested under ``glider`` or ROS-style
``ros__parameters``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np
import yaml

from .exceptions import ConfigurationError
from .types import STATE_DIM

# Physical constants (fixed by the flat-plate model)
AIR_DENSITY = 1.225  # [kg/m^3]
GRAVITY = 9.81  # [m/s^2]

AOA_FORMULAS = ("atan", "atan2")

# Document key -> PhysicalParameters field
PARAMETER_KEYS = {
    "length_cg_to_wing": "length_wing",
    "length_pivot_to_elevator": "length_elevator",
    "length_cg_to_pivot": "length_pivot",
    "surface_area_wing": "area_wing",
    "surface_area_elevator": "area_elevator",
    "mass": "mass",
    "moment_of_inertia": "inertia",
}

# Document key -> Constraints field
CONSTRAINT_KEYS = {
    "velocity_bound": "velocity_bound",
    "pitch_bound": "pitch_bound",
    "elevator_bound": "elevator_bound",
    "pitch_rate_bound": "pitch_rate_bound",
    "elevator_rate_bound": "elevator_rate_bound",
}


def _state_weight_matrix(weights: Any) -> np.ndarray:
    Q = np.asarray(weights, dtype=float)
    if Q.ndim == 1 and Q.shape[0] == STATE_DIM:
        Q = np.diag(Q)
    if Q.shape != (STATE_DIM, STATE_DIM):
        raise ConfigurationError(
            f"State weights must be {STATE_DIM} diagonal entries or a {STATE_DIM}x{STATE_DIM} matrix, got shape {Q.shape}"
        )
    return Q


@dataclass(frozen=True)
class PhysicalParameters:
    """
    Flat-plate glider physical parameters and cost weights.

    Geometry:
        length_wing: CG to wing aerodynamic centre, l_w [m]
        length_elevator: Elevator pivot to elevator aerodynamic centre, l_e [m]
        length_pivot: CG to elevator pivot, l [m]
        area_wing: Wing surface area S_w [m^2]
        area_elevator: Elevator surface area S_e [m^2]

    Mass Properties:
        mass: Total mass [kg]
        inertia: Pitch moment of inertia about the tracked point [kg*m^2]

    Discretization / Cost:
        timestep: Collocation timestep h [s]
        Q: State cost weight matrix, shape (7, 7)
        R: Elevator-rate cost weight

    Numerical:
        eps: Smallest horizontal surface velocity used in the angle of attack [m/s]
        aoa_formula: "atan" (ratio form of the reference model) or "atan2"
    """

    length_wing: float
    length_elevator: float
    length_pivot: float
    area_wing: float
    area_elevator: float
    mass: float
    inertia: float
    timestep: float
    Q: np.ndarray = field(default_factory=lambda: np.eye(STATE_DIM))
    R: float = 1.0
    eps: float = 1e-6
    aoa_formula: str = "atan"

    def __post_init__(self) -> None:
        for name in ("length_wing", "length_elevator", "length_pivot", "area_wing", "area_elevator", "R"):
            value = float(getattr(self, name))
            if not np.isfinite(value) or value < 0.0:
                raise ConfigurationError(f"{name} must be finite and >= 0, got {value}")
            object.__setattr__(self, name, value)
        for name in ("mass", "inertia", "timestep", "eps"):
            value = float(getattr(self, name))
            if not np.isfinite(value) or value <= 0.0:
                raise ConfigurationError(f"{name} must be finite and > 0, got {value}")
            object.__setattr__(self, name, value)
        object.__setattr__(self, "Q", _state_weight_matrix(self.Q))
        if self.aoa_formula not in AOA_FORMULAS:
            raise ConfigurationError(f"aoa_formula must be one of {AOA_FORMULAS}, got {self.aoa_formula!r}")

    @property
    def weight(self) -> float:
        return float(self.mass * GRAVITY)

    @classmethod
    def from_dict(cls, d: Dict[str, Any], **overrides: Any) -> "PhysicalParameters":
        """
        Create parameters from a configuration mapping.

        The timestep comes from ``timestep`` or from ``time_horizon / num_steps``.
        Keyword overrides take precedence over the mapping.
        """
        kwargs: Dict[str, Any] = {}
        for key, name in PARAMETER_KEYS.items():
            if key in d:
                kwargs[name] = d[key]
        if "timestep" in d:
            kwargs["timestep"] = d["timestep"]
        elif "time_horizon" in d and "num_steps" in d:
            kwargs["timestep"] = _timestep_from_horizon(d["time_horizon"], d["num_steps"])
        if "state_weights" in d:
            kwargs["Q"] = d["state_weights"]
        if "input_weight" in d:
            kwargs["R"] = d["input_weight"]
        if "aoa_formula" in d:
            kwargs["aoa_formula"] = str(d["aoa_formula"])
        kwargs.update({k: v for k, v in overrides.items() if v is not None})

        missing = [key for key, name in PARAMETER_KEYS.items() if name not in kwargs]
        if "timestep" not in kwargs:
            missing.append("timestep")
        if missing:
            raise ConfigurationError(f"Missing glider parameters: {', '.join(missing)}")
        try:
            return cls(**kwargs)
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(str(e)) from e

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {key: getattr(self, name) for key, name in PARAMETER_KEYS.items()}
        d.update(
            {
                "timestep": self.timestep,
                "state_weights": self.Q.tolist(),
                "input_weight": self.R,
                "aoa_formula": self.aoa_formula,
            }
        )
        return d


@dataclass(frozen=True)
class Constraints:
    """
    Box bounds and start anchors for one optimization run.

    All bounds are symmetric magnitudes: -b <= value <= b.
    Only the first entries of ``initial_x`` / ``initial_z`` anchor the start.
    """

    velocity_bound: float
    pitch_bound: float
    elevator_bound: float
    pitch_rate_bound: float
    elevator_rate_bound: float
    initial_x: Tuple[float, ...] = (0.0,)
    initial_z: Tuple[float, ...] = (0.0,)

    def __post_init__(self) -> None:
        for name in CONSTRAINT_KEYS.values():
            value = float(getattr(self, name))
            if not np.isfinite(value) or value < 0.0:
                raise ConfigurationError(f"{name} must be finite and >= 0, got {value}")
            object.__setattr__(self, name, value)
        for name in ("initial_x", "initial_z"):
            seq = tuple(float(v) for v in np.atleast_1d(np.asarray(getattr(self, name), dtype=float)))
            if not seq:
                raise ConfigurationError(f"{name} needs at least one anchor value")
            object.__setattr__(self, name, seq)

    @property
    def anchor(self) -> Tuple[float, float]:
        return self.initial_x[0], self.initial_z[0]

    @classmethod
    def from_dict(cls, d: Dict[str, Any], **overrides: Any) -> "Constraints":
        kwargs: Dict[str, Any] = {}
        for key, name in CONSTRAINT_KEYS.items():
            if key in d:
                kwargs[name] = d[key]
        for name in ("initial_x", "initial_z"):
            if name in d:
                kwargs[name] = d[name]
        kwargs.update({k: v for k, v in overrides.items() if v is not None})

        missing = [key for key, name in CONSTRAINT_KEYS.items() if name not in kwargs]
        if missing:
            raise ConfigurationError(f"Missing glider constraints: {', '.join(missing)}")
        try:
            return cls(**kwargs)
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(str(e)) from e

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {key: getattr(self, name) for key, name in CONSTRAINT_KEYS.items()}
        d["initial_x"] = list(self.initial_x)
        d["initial_z"] = list(self.initial_z)
        return d


def _timestep_from_horizon(horizon: Any, steps: Any) -> float:
    steps = int(steps)
    if steps <= 0:
        raise ConfigurationError(f"num_steps must be > 0, got {steps}")
    return float(horizon) / steps


def read_config(filepath: Union[str, Path]) -> Dict[str, Any]:
    """Read a glider configuration document, unwrapping ``glider`` / ``ros__parameters`` nesting."""
    path = Path(filepath)
    if not path.is_file():
        raise ConfigurationError(f"Parameter file not found: {path}")
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read parameter file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Parameter file {path} does not hold a mapping")
    if "glider" in data:
        data = data["glider"]
    if isinstance(data, dict) and "ros__parameters" in data:
        data = data["ros__parameters"]
    if not isinstance(data, dict):
        raise ConfigurationError(f"Parameter file {path} does not hold a mapping")
    return data


def load_parameters(
    filepath: Union[str, Path],
    *,
    timestep: Optional[float] = None,
    horizon_s: Optional[float] = None,
    num_steps: Optional[int] = None,
    Q: Optional[np.ndarray] = None,
    R: Optional[float] = None,
    initial_x: Optional[Sequence[float]] = None,
    initial_z: Optional[Sequence[float]] = None,
) -> Tuple[PhysicalParameters, Constraints]:
    """
    Load a (PhysicalParameters, Constraints) pair from a YAML file.

    ``horizon_s`` and ``num_steps`` give the timestep as horizon / steps when
    ``timestep`` is not passed. Explicit arguments override the document.

    Raises:
        ConfigurationError: file missing or unreadable, keys missing, values invalid
    """
    data = read_config(filepath)
    if timestep is None and horizon_s is not None and num_steps is not None:
        timestep = _timestep_from_horizon(horizon_s, num_steps)
    params = PhysicalParameters.from_dict(data, timestep=timestep, Q=Q, R=R)
    constraints = Constraints.from_dict(data, initial_x=initial_x, initial_z=initial_z)
    return params, constraints
