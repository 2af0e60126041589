from __future__ import annotations

import numpy as np

from glider_planner.params import Constraints, PhysicalParameters
from glider_planner.types import split_blocks

ANCHOR_PENALTY_WEIGHT = 1e6


def quadratic_running_cost(X: np.ndarray, U: np.ndarray, Q: np.ndarray, R: float) -> float:
    """Sum over steps of x_k^T Q x_k + u_k R u_k."""
    X = np.asarray(X, dtype=float)
    U = np.asarray(U, dtype=float).reshape(-1)
    Q = np.asarray(Q, dtype=float)
    state_term = float(np.einsum("ki,ij,kj->", X, Q, X))
    input_term = float(R) * float(np.dot(U, U))
    return state_term + input_term


def anchor_penalty(x0: float, z0: float, ix0: float, iz0: float, weight: float = ANCHOR_PENALTY_WEIGHT) -> float:
    return float(weight * (abs(float(x0) - float(ix0)) + abs(float(z0) - float(iz0))))


def objective(z: np.ndarray, params: PhysicalParameters, constraints: Constraints) -> float:
    """
    Control-and-state cost of a decision vector:
      J = h * sum_k (x_k^T Q x_k + phidot_k R phidot_k) + 1e6 * (|x_0 - ix_0| + |z_0 - iz_0|)
    """
    X, U = split_blocks(z)
    ix0, iz0 = constraints.anchor
    running = quadratic_running_cost(X, U, params.Q, params.R)
    return float(running * params.timestep + anchor_penalty(X[0, 0], X[0, 1], ix0, iz0))
