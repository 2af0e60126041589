from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from glider_planner.dynamics.flat_plate import FlatPlateGliderDynamics
from glider_planner.params import Constraints, PhysicalParameters
from glider_planner.types import BLOCK_SIZE, STATE_DIM, num_steps, split_blocks

from .constraints import BOX_RESIDUALS_PER_STEP, anchor_residuals, box_residuals, tolerance_pair

DEFECT_TOLERANCE = 0.01
DEFECT_RESIDUALS_PER_STEP = 2 * STATE_DIM
RESIDUALS_PER_STEP = DEFECT_RESIDUALS_PER_STEP + BOX_RESIDUALS_PER_STEP  # 26
ANCHOR_RESIDUALS = 4

# Stand-in for residuals that evaluate to NaN/Inf on absurd candidates.
NONFINITE_RESIDUAL = 1e12


def residual_size(N: int) -> int:
    return ANCHOR_RESIDUALS + RESIDUALS_PER_STEP * int(N)


@dataclass(frozen=True)
class TrapezoidalCollocation:
    """
    Trapezoidal collocation of the flat-plate glider over a flat decision vector.

    Decision variable layout (N steps, 8 slots each):
      z = [x, z, theta, phi, xdot, zdot, thetadot, phidot] * N

    Residual layout (<= 0 feasible), length 4 + 26*N:
      block i, slots [26i, 26i+14): dynamics defects of transition i -> i+1 as tolerance pairs
      block i, slots [26i+14, 26i+26): box bounds of step i
      tail [26N, 26N+4): start anchors
    The last step has no transition; its 14 defect slots hold the encoding of
    a zero defect so they are always satisfied.
    """

    params: PhysicalParameters
    constraints: Constraints
    defect_tolerance: float = DEFECT_TOLERANCE
    dynamics: FlatPlateGliderDynamics = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not float(self.defect_tolerance) >= 0.0:
            raise ValueError("defect_tolerance must be >= 0")
        object.__setattr__(self, "dynamics", FlatPlateGliderDynamics(self.params))

    @property
    def h(self) -> float:
        return self.params.timestep

    def time_grid(self, N: int) -> np.ndarray:
        return self.h * np.arange(int(N), dtype=float)

    def state_derivatives(self, z: np.ndarray) -> np.ndarray:
        """f(x_k, u_k) for every step, shape (N, 7)."""
        X, U = split_blocks(z)
        return np.array([self.dynamics.f_vector(X[k], U[k]) for k in range(X.shape[0])], dtype=float).reshape(
            X.shape[0], STATE_DIM
        )

    def defects(self, z: np.ndarray) -> np.ndarray:
        """
        Trapezoidal defects, shape (N-1, 7):
          x_k - x_{k+1} + (h/2) * (f(x_k, u_k) + f(x_{k+1}, u_{k+1}))
        """
        X, _ = split_blocks(z)
        F = self.state_derivatives(z)
        return X[:-1] - X[1:] + 0.5 * self.h * (F[:-1] + F[1:])

    def evaluate_constraints(self, z: np.ndarray) -> np.ndarray:
        z = np.asarray(z, dtype=float).reshape(-1)
        N = num_steps(z)
        blocks = z.reshape(N, BLOCK_SIZE)
        result = np.empty(residual_size(N), dtype=float)

        D = self.defects(z)
        idle = tolerance_pair(np.zeros(STATE_DIM), self.defect_tolerance)
        for i in range(N):
            base = i * RESIDUALS_PER_STEP
            if i < N - 1:
                result[base : base + DEFECT_RESIDUALS_PER_STEP] = tolerance_pair(D[i], self.defect_tolerance)
            else:
                result[base : base + DEFECT_RESIDUALS_PER_STEP] = idle
            result[base + DEFECT_RESIDUALS_PER_STEP : base + RESIDUALS_PER_STEP] = box_residuals(
                blocks[i], self.constraints
            )

        tail = N * RESIDUALS_PER_STEP
        result[tail : tail + ANCHOR_RESIDUALS] = anchor_residuals(blocks[0, 0], blocks[0, 1], self.constraints)

        if not np.all(np.isfinite(result)):
            result = np.nan_to_num(
                result, nan=NONFINITE_RESIDUAL, posinf=NONFINITE_RESIDUAL, neginf=-NONFINITE_RESIDUAL
            )
        return result

    def max_violation(self, z: np.ndarray) -> float:
        return float(max(0.0, float(np.max(self.evaluate_constraints(z)))))
