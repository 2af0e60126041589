from __future__ import annotations

import math
from typing import Tuple

import numpy as np

from glider_planner.params import AIR_DENSITY


def lift_coefficient(alpha: float) -> float:
    """Flat-plate lift coefficient, Cl = 2 sin(a) cos(a)."""
    return float(2.0 * np.sin(alpha) * np.cos(alpha))


def drag_coefficient(alpha: float) -> float:
    """Flat-plate drag coefficient, Cd = 2 sin(a)^2."""
    s = np.sin(alpha)
    return float(2.0 * s * s)


def cross_2d(a: np.ndarray, b: np.ndarray) -> float:
    return float(a[0] * b[1] - a[1] * b[0])


def surface_normal(angle: float) -> np.ndarray:
    """Unit normal to a plate inclined at ``angle`` (pitch, or pitch + elevator)."""
    return np.array([-np.sin(angle), np.cos(angle)], dtype=float)


def flow_angle(v: np.ndarray, eps: float, formula: str = "atan") -> float:
    """
    Inclination of the local surface velocity.

    ``atan`` evaluates atan(v_z / v_x) and therefore only resolves flow moving
    forward or backward along x; a horizontal component smaller than ``eps``
    is replaced by +/-eps so the ratio stays finite. ``atan2`` resolves the
    full quadrant.
    """
    vx = float(v[0])
    vz = float(v[1])
    if formula == "atan2":
        return float(math.atan2(vz, vx))
    if abs(vx) < eps:
        vx = -eps if vx < 0.0 else eps
    return float(math.atan(vz / vx))


def angle_of_attack(surface_angle: float, v: np.ndarray, eps: float, formula: str = "atan") -> float:
    return float(surface_angle - flow_angle(v, eps, formula))


def plate_force(v: np.ndarray, alpha: float, area: float, normal: np.ndarray) -> np.ndarray:
    """
    Aerodynamic force on a flat plate, acting along the plate normal:
      F = 0.5 * rho * |v|^2 * S * (Cl(a) + Cd(a)) * n
    """
    speed_sq = float(v[0] * v[0] + v[1] * v[1])
    magnitude = 0.5 * AIR_DENSITY * speed_sq * float(area) * (lift_coefficient(alpha) + drag_coefficient(alpha))
    return magnitude * np.asarray(normal, dtype=float)


def surface_force(
    surface_angle: float, v: np.ndarray, area: float, eps: float, formula: str = "atan"
) -> Tuple[np.ndarray, float]:
    """Force on one control surface and the angle of attack it was computed with."""
    alpha = angle_of_attack(surface_angle, v, eps, formula)
    return plate_force(v, alpha, area, surface_normal(surface_angle)), alpha
