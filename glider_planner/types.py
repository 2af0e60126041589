from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from .exceptions import InvalidGuessError

# Per-step block of the decision vector:
#   [x, z, theta, phi, xdot, zdot, thetadot, phidot]
STATE_DIM = 7
INPUT_DIM = 1
BLOCK_SIZE = STATE_DIM + INPUT_DIM

IX, IZ, ITHETA, IPHI, IXDOT, IZDOT, ITHETADOT, IPHIDOT = range(BLOCK_SIZE)

STATE_NAMES: Tuple[str, ...] = ("x", "z", "theta", "phi", "xdot", "zdot", "thetadot")


def num_steps(z: Sequence[float]) -> int:
    """Number of discretization steps N encoded in a decision vector of length 8*N."""
    n = int(np.asarray(z, dtype=float).reshape(-1).size)
    if n == 0:
        raise InvalidGuessError("Decision vector is empty")
    if n % BLOCK_SIZE != 0:
        raise InvalidGuessError(f"Decision vector length {n} is not a multiple of {BLOCK_SIZE}")
    return n // BLOCK_SIZE


def split_blocks(z: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Return states X (N, 7) and elevator rates U (N,) as views of ``z``."""
    z = np.asarray(z, dtype=float).reshape(-1)
    N = num_steps(z)
    blocks = z.reshape(N, BLOCK_SIZE)
    return blocks[:, :STATE_DIM], blocks[:, STATE_DIM]


def pack_blocks(X: np.ndarray, U: np.ndarray) -> np.ndarray:
    X = np.asarray(X, dtype=float)
    U = np.asarray(U, dtype=float).reshape(-1)
    if X.ndim != 2 or X.shape[1] != STATE_DIM:
        raise ValueError(f"Expected states with shape (N, {STATE_DIM}), got {X.shape}")
    if U.shape[0] != X.shape[0]:
        raise ValueError("States and inputs must have the same number of steps")
    return np.concatenate([X, U[:, None]], axis=1).reshape(-1)


@dataclass
class Trajectory:
    """
    Optimized glider trajectory as six parallel per-step channels.

    The elevator rate (the control input) is not part of the output.
    """

    x: List[float] = field(default_factory=list)
    z: List[float] = field(default_factory=list)
    theta: List[float] = field(default_factory=list)
    phi: List[float] = field(default_factory=list)
    vx: List[float] = field(default_factory=list)
    vz: List[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        lengths = {len(self.x), len(self.z), len(self.theta), len(self.phi), len(self.vx), len(self.vz)}
        if len(lengths) > 1:
            raise ValueError("Trajectory channels must all have the same length")

    def __len__(self) -> int:
        return len(self.x)

    @property
    def is_empty(self) -> bool:
        return len(self.x) == 0

    @staticmethod
    def from_decision_vector(z: Sequence[float]) -> "Trajectory":
        X, _ = split_blocks(z)
        return Trajectory(
            x=X[:, IX].tolist(),
            z=X[:, IZ].tolist(),
            theta=X[:, ITHETA].tolist(),
            phi=X[:, IPHI].tolist(),
            vx=X[:, IXDOT].tolist(),
            vz=X[:, IZDOT].tolist(),
        )

    def times(self, h: float) -> np.ndarray:
        return float(h) * np.arange(len(self), dtype=float)

    def as_array(self) -> np.ndarray:
        """(N, 6) array with columns [x, z, theta, phi, vx, vz]."""
        if self.is_empty:
            return np.zeros((0, 6), dtype=float)
        return np.column_stack([self.x, self.z, self.theta, self.phi, self.vx, self.vz]).astype(float)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": list(self.x),
            "z": list(self.z),
            "theta": list(self.theta),
            "phi": list(self.phi),
            "vx": list(self.vx),
            "vz": list(self.vz),
        }
