from __future__ import annotations

import numpy as np

from glider_planner.dynamics.flat_plate import find_trim_glide
from glider_planner.params import Constraints, PhysicalParameters
from glider_planner.types import IX, IXDOT, IZ, IZDOT, STATE_DIM, pack_blocks


def anchored_guess(constraints: Constraints, N: int) -> np.ndarray:
    """Every step parked at the start anchor, all other states and inputs zero."""
    N = int(N)
    if N < 1:
        raise ValueError("N must be >= 1")
    ix0, iz0 = constraints.anchor
    X = np.zeros((N, STATE_DIM), dtype=float)
    X[:, IX] = ix0
    X[:, IZ] = iz0
    return pack_blocks(X, np.zeros(N, dtype=float))


def trim_glide_guess(params: PhysicalParameters, constraints: Constraints, N: int, vx: float) -> np.ndarray:
    """
    Straight trimmed glide from the start anchor.

    Position advances linearly with the trim velocity; attitude, elevator
    and rates stay at zero.
    """
    N = int(N)
    if N < 1:
        raise ValueError("N must be >= 1")
    trim = find_trim_glide(params, vx)
    ix0, iz0 = constraints.anchor
    t = params.timestep * np.arange(N, dtype=float)

    X = np.tile(trim, (N, 1))
    X[:, IX] = ix0 + trim[IXDOT] * t
    X[:, IZ] = iz0 + trim[IZDOT] * t
    return pack_blocks(X, np.zeros(N, dtype=float))
