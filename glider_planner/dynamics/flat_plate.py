"""
Flat-plate glider longitudinal dynamics.

State (7D, x forward, z up):
  [x, z, theta, phi, xdot, zdot, thetadot]
    theta: pitch angle [rad]
    phi:   elevator angle relative to the fuselage [rad]
Control:
  phidot: elevator angular rate [rad/s]

The wing and elevator are modelled as flat plates whose aerodynamic force acts
along the plate normal. The tracked point is the CG; the wing centre sits l_w
along the fuselage from it and the elevator hinges l behind it with its centre
l_e further aft.

Reference: Moore, Cory, Tedrake, "Robust Post-Stall Perching with a Simple
Fixed-Wing Glider using LQR-Trees" (2014).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np
import scipy.optimize

from glider_planner.params import GRAVITY, PhysicalParameters
from glider_planner.types import STATE_DIM

from .aerodynamics import cross_2d, surface_force


def _unpack_state(state: np.ndarray):
    s = np.asarray(state, dtype=float).reshape(STATE_DIM)
    return (float(v) for v in s)


def surface_kinematics(state: np.ndarray, control_rate: float, params: PhysicalParameters) -> Dict[str, np.ndarray]:
    """
    Positions and velocities of the wing and elevator aerodynamic centres.

    Returns a dict with keys ``x_w``, ``x_e``, ``v_w``, ``v_e`` (each shape (2,)).
    """
    x, z, theta, phi, xdot, zdot, thetadot = _unpack_state(state)
    phidot = float(control_rate)
    l_w = params.length_wing
    l = params.length_pivot
    l_e = params.length_elevator

    st, ct = np.sin(theta), np.cos(theta)
    stp, ctp = np.sin(theta + phi), np.cos(theta + phi)

    x_w = np.array([x - l_w * ct, z - l_w * st], dtype=float)
    x_e = np.array([x - l * ct - l_e * ctp, z - l * st - l_e * stp], dtype=float)
    v_w = np.array([xdot + l_w * thetadot * st, zdot - l_w * thetadot * ct], dtype=float)
    v_e = np.array(
        [
            xdot + l * thetadot * st + l_e * (thetadot + phidot) * stp,
            zdot - l * thetadot * ct - l_e * (thetadot + phidot) * ctp,
        ],
        dtype=float,
    )
    return {"x_w": x_w, "x_e": x_e, "v_w": v_w, "v_e": v_e}


def derivative(state: np.ndarray, control_rate: float, params: PhysicalParameters) -> np.ndarray:
    """
    Compute the time derivative of the glider state.

    Args:
        state: [x, z, theta, phi, xdot, zdot, thetadot]
        control_rate: Elevator rate phidot [rad/s]
        params: Physical parameters

    Returns:
        [xdot, zdot, thetadot, phidot, xddot, zddot, thetaddot], shape (7,)
    """
    _, _, theta, phi, xdot, zdot, thetadot = _unpack_state(state)
    phidot = float(control_rate)
    kin = surface_kinematics(state, phidot, params)

    force_w, _ = surface_force(theta, kin["v_w"], params.area_wing, params.eps, params.aoa_formula)
    force_e, _ = surface_force(theta + phi, kin["v_e"], params.area_elevator, params.eps, params.aoa_formula)

    m = params.mass
    accel = (force_w + force_e - np.array([0.0, m * GRAVITY])) / m

    l_w = params.length_wing
    l = params.length_pivot
    l_e = params.length_elevator
    # Elevator lever arm as in the reference model.
    arm_e = np.array([-l - l_e * np.cos(theta), -l + l_e * np.sin(theta)], dtype=float)
    moment = cross_2d(np.array([l_w, 0.0]), force_w) + cross_2d(arm_e, force_e)
    theta_ddot = moment / params.inertia

    return np.array(
        [xdot, zdot, thetadot, phidot, float(accel[0]), float(accel[1]), float(theta_ddot)],
        dtype=float,
    )


def find_trim_glide(params: PhysicalParameters, vx: float, vz_min: float = -100.0) -> np.ndarray:
    """
    Steady straight glide at zero pitch and zero elevator.

    Searches the descent rate vz in [vz_min, 0) at which the vertical
    acceleration vanishes for forward speed ``vx``. With theta = phi = 0 the
    plate normals are vertical, so the horizontal acceleration is zero too.

    Returns:
        State [0, 0, 0, 0, vx, vz, 0]

    Raises:
        ValueError: no sign change of the vertical acceleration in the bracket
    """
    vx = float(vx)
    if vx <= 0.0:
        raise ValueError("Trim glide requires forward speed vx > 0")

    def zddot(vz: float) -> float:
        x = np.array([0.0, 0.0, 0.0, 0.0, vx, float(vz), 0.0], dtype=float)
        return float(derivative(x, 0.0, params)[5])

    hi = -1e-9
    lo = float(vz_min)
    if zddot(lo) * zddot(hi) > 0.0:
        raise ValueError(f"No trim descent rate for vx={vx:.3f} m/s in [{lo:.1f}, 0)")
    vz = scipy.optimize.brentq(zddot, lo, hi, xtol=1e-12, rtol=1e-12, maxiter=200)
    return np.array([0.0, 0.0, 0.0, 0.0, vx, float(vz), 0.0], dtype=float)


@dataclass(frozen=True)
class FlatPlateGliderDynamics:
    """
    Flat-plate glider dynamics wrapper exposing the planner interfaces:
      - f_vector(x, u, t): 7D state derivative
      - step(x, u, dt): explicit Euler step
    """

    params: PhysicalParameters

    def f_vector(self, x: np.ndarray, u: float, t: float = 0.0) -> np.ndarray:
        _ = float(t)  # time-invariant, kept for interface compatibility
        u = float(np.asarray(u, dtype=float).reshape(-1)[0])
        return derivative(x, u, self.params)

    def step(self, x: np.ndarray, u: float, dt: float) -> np.ndarray:
        x = np.asarray(x, dtype=float).reshape(STATE_DIM)
        x_next = x + float(dt) * self.f_vector(x, u)
        if not np.all(np.isfinite(x_next)):
            raise RuntimeError("Non-finite glider state after Euler step")
        return x_next

    def surface_kinematics(self, x: np.ndarray, u: float) -> Dict[str, np.ndarray]:
        return surface_kinematics(x, float(u), self.params)
