from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import scipy.optimize

from glider_planner.logging.solve_logger import (
    EVENT_BUDGET_EXHAUSTED,
    EVENT_COMPLETED,
    EVENT_EVALUATION,
    EVENT_GUESS_LOADED,
    EVENT_GUESS_REJECTED,
    EVENT_ITERATION,
    ProgressSink,
    SolveEvent,
    null_sink,
)
from glider_planner.params import Constraints, PhysicalParameters
from glider_planner.types import BLOCK_SIZE, Trajectory

from .constraints import ANCHOR_TOLERANCE, anchor_error
from .cost_functions import objective
from .trapezoidal_collocation import (
    ANCHOR_RESIDUALS,
    DEFECT_TOLERANCE,
    NONFINITE_RESIDUAL,
    TrapezoidalCollocation,
    residual_size,
)

# Driver-level outcomes; otherwise SolverInfo.status is SciPy's status code.
STATUS_REJECTED = -1
STATUS_TIME_BUDGET = -2
STATUS_FTOL_REACHED = -3

# Weight of the constraint violation when ranking infeasible iterates.
INFEASIBLE_MERIT_WEIGHT = 1e3


@dataclass(frozen=True)
class SolverInfo:
    success: bool
    status: int
    message: str
    iterations: int
    evaluations: int
    cost: float
    solve_time: float
    max_violation: float
    timed_out: bool = False
    # Distance of the returned start position from the anchor.
    anchor_error: float = float("inf")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SolverConfig:
    # Solver options
    method: str = "COBYLA"
    # Cap on objective evaluations (COBYLA) / iterations (SLSQP).
    maxiter: int = 1000
    # Relative parameter tolerance (COBYLA final trust-region radius).
    xtol_rel: float = 1e-4
    # Stop once a feasible improvement is smaller than this (<=0 disables).
    ftol_abs: float = 1e-6
    # Wall-time budget for a single solve (<=0 disables timeout).
    max_solve_time_s: float = 0.5
    rhobeg: float = 0.5
    catol: float = 1e-4

    # Emit an evaluation event every N objective evaluations (<=0 disables).
    evaluation_event_stride: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class _SolveTimeout(RuntimeError):
    """Internal exception to abort a solve when time budget is exceeded."""


class _SolveConverged(RuntimeError):
    """Internal exception to stop a solve once the objective stalls."""


def _rank(cost: float, violation: float, anchored: bool, catol: float) -> Tuple[int, int, float]:
    """
    Ordering key for candidate iterates.

    Anchored points (start within ANCHOR_TOLERANCE of the anchor and anchor
    residuals satisfied) always rank ahead of unanchored ones. Within each
    group feasible points rank by cost, then infeasible points by an
    exact-penalty merit.
    """
    tier = 0 if anchored else 1
    if violation <= catol:
        return tier, 0, float(cost)
    return tier, 1, float(cost + INFEASIBLE_MERIT_WEIGHT * violation)


def _is_anchored(z: np.ndarray, residuals: np.ndarray, constraints: Constraints, catol: float) -> bool:
    if not anchor_error(z[0], z[1], constraints) <= ANCHOR_TOLERANCE:
        return False
    return bool(np.max(residuals[-ANCHOR_RESIDUALS:]) <= catol)


def _empty_info(message: str, solve_time: float = 0.0) -> SolverInfo:
    return SolverInfo(
        success=False,
        status=STATUS_REJECTED,
        message=message,
        iterations=0,
        evaluations=0,
        cost=float("inf"),
        solve_time=float(solve_time),
        max_violation=float("inf"),
    )


class TrajectoryOptimizer:
    """
    SciPy-based NLP driver for the trapezoidal glider transcription.

    Decision variable layout:
      z = [x, z, theta, phi, xdot, zdot, thetadot, phidot] * N

    The solver sees one objective and one vector inequality constraint; the
    transcription's "<= 0" residuals are negated for SciPy's ">= 0" form.
    """

    def __init__(
        self,
        params: PhysicalParameters,
        constraints: Constraints,
        config: Optional[SolverConfig] = None,
        sink: Optional[ProgressSink] = None,
        defect_tolerance: float = DEFECT_TOLERANCE,
    ) -> None:
        self.params = params
        self.constraints = constraints
        self.config = config or SolverConfig()
        self.sink = sink or null_sink
        self.collocation = TrapezoidalCollocation(params, constraints, defect_tolerance=defect_tolerance)
        self.last_solution_z: Optional[np.ndarray] = None
        self.last_info: Optional[SolverInfo] = None

    def _emit(self, kind: str, t_start: float, **payload: Any) -> None:
        self.sink(SolveEvent(kind=kind, elapsed_s=time.perf_counter() - t_start, payload=payload))

    def _options(self) -> dict:
        method = str(self.config.method).lower()
        if method == "cobyla":
            return {
                "maxiter": int(self.config.maxiter),
                "rhobeg": float(self.config.rhobeg),
                "tol": float(self.config.xtol_rel),
                "catol": float(self.config.catol),
            }
        if method == "slsqp":
            return {"maxiter": int(self.config.maxiter), "ftol": float(self.config.ftol_abs)}
        raise ValueError(f"Unsupported solver method {self.config.method!r} (expected COBYLA or SLSQP)")

    def optimize(self, initial_guess: Sequence[float]) -> Trajectory:
        traj, _ = self.solve(initial_guess)
        return traj

    def solve(self, initial_guess: Sequence[float]) -> Tuple[Trajectory, SolverInfo]:
        t_start = time.perf_counter()
        guess = np.asarray(initial_guess, dtype=float).reshape(-1)

        if guess.size == 0:
            info = _empty_info("empty initial guess")
            self.last_solution_z = None
            self.last_info = info
            self._emit(EVENT_GUESS_REJECTED, t_start, size=0, reason=info.message)
            return Trajectory(), info
        if guess.size % BLOCK_SIZE != 0:
            info = _empty_info(f"initial guess length {guess.size} is not a multiple of {BLOCK_SIZE}")
            self.last_solution_z = None
            self.last_info = info
            self._emit(EVENT_GUESS_REJECTED, t_start, size=int(guess.size), reason=info.message)
            return Trajectory(), info

        options = self._options()
        N = guess.size // BLOCK_SIZE
        n_residuals = residual_size(N)
        self._emit(EVENT_GUESS_LOADED, t_start, size=int(guess.size), steps=int(N), residuals=int(n_residuals))

        params = self.params
        constraints = self.constraints
        collocation = self.collocation
        max_time = float(self.config.max_solve_time_s)
        # SLSQP applies ftol itself; its finite-difference probes would trip the stall check.
        ftol = float(self.config.ftol_abs) if str(self.config.method).lower() == "cobyla" else 0.0
        catol = float(self.config.catol)
        stride = int(self.config.evaluation_event_stride)

        # Per-solve context; nothing here outlives this call.
        cache: dict = {"key": None, "cost": None, "residuals": None}
        best: dict = {"z": guess.copy(), "cost": float("inf"), "violation": float("inf"), "anchored": False}
        counters = {"evaluations": 0, "iterations": 0}

        def _check_budget() -> None:
            if max_time > 0.0 and time.perf_counter() - t_start > max_time:
                raise _SolveTimeout(f"solve_timeout>{max_time:.2f}s")

        def _evaluate(z: np.ndarray) -> Tuple[float, np.ndarray]:
            z = np.asarray(z, dtype=float).reshape(-1)
            key = z.tobytes()
            if cache["key"] == key:
                return cache["cost"], cache["residuals"]
            _check_budget()
            J = objective(z, params, constraints)
            if not np.isfinite(J):
                J = NONFINITE_RESIDUAL
            g = collocation.evaluate_constraints(z)
            violation = float(max(0.0, float(np.max(g))))
            cache.update(key=key, cost=J, residuals=g)

            counters["evaluations"] += 1
            n_eval = counters["evaluations"]
            if stride > 0 and n_eval % stride == 0:
                self._emit(EVENT_EVALUATION, t_start, evaluation=n_eval, cost=J, max_violation=violation)
            _track_best(z, J, violation, _is_anchored(z, g, constraints, catol))
            return J, g

        def _track_best(z: np.ndarray, J: float, violation: float, anchored: bool) -> None:
            rank = _rank(J, violation, anchored, catol)
            best_rank = _rank(best["cost"], best["violation"], best["anchored"], catol)
            if rank >= best_rank:
                return
            best.update(z=z.copy(), cost=J, violation=violation, anchored=anchored)
            if rank[:2] == (0, 0) and best_rank[:2] == (0, 0):
                improvement = best_rank[2] - rank[2]
                if ftol > 0.0 and improvement < ftol:
                    raise _SolveConverged(f"objective change {improvement:.3g} < ftol_abs {ftol:.3g}")

        def fun(z: np.ndarray) -> float:
            J, _ = _evaluate(z)
            return float(J)

        def con(z: np.ndarray) -> np.ndarray:
            _, g = _evaluate(z)
            return -g

        def callback(zk: np.ndarray) -> None:
            counters["iterations"] += 1
            J, g = _evaluate(zk)
            self._emit(
                EVENT_ITERATION,
                t_start,
                iteration=counters["iterations"],
                cost=J,
                max_violation=float(max(0.0, float(np.max(g)))),
            )

        timed_out = False
        status = 0
        message = ""
        iterations = -1
        z_final = guess.copy()
        try:
            result = scipy.optimize.minimize(
                fun=fun,
                x0=guess.copy(),
                method=str(self.config.method),
                constraints=[{"type": "ineq", "fun": con}],
                options=options,
                callback=callback,
            )
            z_final = np.asarray(result.x, dtype=float).reshape(-1)
            status = int(result.status)
            message = str(result.message)
            iterations = int(result.nit) if hasattr(result, "nit") else counters["iterations"]
        except _SolveTimeout as e:
            timed_out = True
            status = STATUS_TIME_BUDGET
            message = str(e)
            z_final = best["z"]
            self._emit(EVENT_BUDGET_EXHAUSTED, t_start, reason=message, evaluations=counters["evaluations"])
        except _SolveConverged as e:
            status = STATUS_FTOL_REACHED
            message = str(e)
            z_final = best["z"]
        solve_time = time.perf_counter() - t_start
        if iterations < 0:
            iterations = counters["iterations"]

        cost = objective(z_final, params, constraints)
        residuals = collocation.evaluate_constraints(z_final)
        if residuals.shape[0] != n_residuals:
            raise RuntimeError(f"Residual size {residuals.shape[0]} != expected {n_residuals}")
        max_violation = float(max(0.0, float(np.max(residuals))))
        anchored = _is_anchored(z_final, residuals, constraints, catol)
        # The solver's returned point can rank below an earlier iterate.
        best_rank = _rank(best["cost"], best["violation"], best["anchored"], catol)
        if best_rank < _rank(cost, max_violation, anchored, catol):
            z_final = best["z"]
            cost = best["cost"]
            max_violation = best["violation"]

        z_final = np.asarray(z_final, dtype=float).copy()
        start_error = anchor_error(z_final[0], z_final[1], constraints)
        self.last_solution_z = z_final
        traj = Trajectory.from_decision_vector(z_final)

        info = SolverInfo(
            success=True,
            status=status,
            message=message,
            iterations=iterations,
            evaluations=int(counters["evaluations"]),
            cost=float(cost) if np.isfinite(cost) else float("inf"),
            solve_time=float(solve_time),
            max_violation=max_violation,
            timed_out=timed_out,
            anchor_error=start_error if np.isfinite(start_error) else float("inf"),
        )
        self.last_info = info

        guess_difference = (z_final - guess).reshape(N, BLOCK_SIZE)
        self._emit(
            EVENT_COMPLETED,
            t_start,
            cost=info.cost,
            evaluations=info.evaluations,
            iterations=info.iterations,
            solve_time=info.solve_time,
            max_violation=info.max_violation,
            anchor_error=info.anchor_error,
            timed_out=timed_out,
            guess_difference=guess_difference.tolist(),
        )
        return traj, info


def optimize(
    initial_guess: Sequence[float],
    params: PhysicalParameters,
    constraints: Constraints,
    config: Optional[SolverConfig] = None,
    sink: Optional[ProgressSink] = None,
) -> Trajectory:
    """Optimize a glider trajectory from ``initial_guess`` (length 8*N); empty or malformed guesses give an empty Trajectory."""
    return TrajectoryOptimizer(params, constraints, config=config, sink=sink).optimize(initial_guess)
