from __future__ import annotations

import numpy as np

from glider_planner.params import Constraints
from glider_planner.types import IPHI, IPHIDOT, ITHETA, ITHETADOT, IXDOT, IZDOT

# Residuals follow the "<= 0 is feasible" convention.
BOX_RESIDUALS_PER_STEP = 12

# Start position must stay this close to the anchor.
ANCHOR_TOLERANCE = 0.01


def bounded_pair(value: float, bound: float) -> np.ndarray:
    """Two-sided bound -bound <= value <= bound as residuals [-value - bound, value - bound]."""
    v = float(value)
    b = float(bound)
    return np.array([-v - b, v - b], dtype=float)


def tolerance_pair(defect: np.ndarray, tolerance: float) -> np.ndarray:
    """
    Equality defect == 0 relaxed to |defect| <= tolerance.

    Returns interleaved residuals [-d0 - tol, d0 - tol, -d1 - tol, d1 - tol, ...].
    """
    d = np.asarray(defect, dtype=float).reshape(-1)
    tol = float(tolerance)
    out = np.empty(2 * d.shape[0], dtype=float)
    out[0::2] = -d - tol
    out[1::2] = d - tol
    return out


def box_residuals(block: np.ndarray, constraints: Constraints) -> np.ndarray:
    """
    Box residuals for one step block [x, z, theta, phi, xdot, zdot, thetadot, phidot].

    Order: theta, phi, xdot, zdot, thetadot, phidot (two residuals each).
    """
    b = np.asarray(block, dtype=float).reshape(-1)
    return np.concatenate(
        [
            bounded_pair(b[ITHETA], constraints.pitch_bound),
            bounded_pair(b[IPHI], constraints.elevator_bound),
            bounded_pair(b[IXDOT], constraints.velocity_bound),
            bounded_pair(b[IZDOT], constraints.velocity_bound),
            bounded_pair(b[ITHETADOT], constraints.pitch_rate_bound),
            bounded_pair(b[IPHIDOT], constraints.elevator_rate_bound),
        ]
    )


def anchor_residuals(x0: float, z0: float, constraints: Constraints) -> np.ndarray:
    """Start anchors, with the first initial_x / initial_z entries used as the bound."""
    ix0, iz0 = constraints.anchor
    return np.concatenate([bounded_pair(x0, ix0), bounded_pair(z0, iz0)])


def anchor_error(x0: float, z0: float, constraints: Constraints) -> float:
    """Largest distance of the start position from the anchor (NaN for non-finite positions)."""
    ix0, iz0 = constraints.anchor
    return float(np.max(np.abs([float(x0) - ix0, float(z0) - iz0])))
