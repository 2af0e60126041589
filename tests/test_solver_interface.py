"""
Tests for the NLP driver.

Test categories:
1. Guess validation: empty / malformed guesses never reach the solver
2. End-to-end solves: time budget, trajectory shape, start anchors
3. Progress events and the JSON solve log
"""

import time
from pathlib import Path

import numpy as np
import pytest
import scipy.optimize
from numpy.testing import assert_allclose

import glider_planner.dynamics.flat_plate as flat_plate
from glider_planner import Trajectory, load_parameters
from glider_planner.logging import SolveLogger
from glider_planner.optimization import (
    SolverConfig,
    TrajectoryOptimizer,
    TrapezoidalCollocation,
    anchored_guess,
    optimize,
    trim_glide_guess,
)
from glider_planner.optimization.constraints import ANCHOR_TOLERANCE
from glider_planner.optimization.cost_functions import ANCHOR_PENALTY_WEIGHT
from glider_planner.optimization.solver_interface import (
    INFEASIBLE_MERIT_WEIGHT,
    STATUS_REJECTED,
    STATUS_TIME_BUDGET,
    _rank,
)
from glider_planner.params import Constraints, PhysicalParameters

CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "glider_params.yaml"

# Allowance on top of the solve budget for setup and the final evaluation.
TIME_SLACK_S = 1.5


@pytest.fixture
def params():
    # Short timestep: a glider parked at the anchor satisfies the defect tolerance.
    return PhysicalParameters(
        length_wing=0.2,
        length_elevator=0.1,
        length_pivot=0.5,
        area_wing=0.3,
        area_elevator=0.1,
        mass=1.0,
        inertia=0.1,
        timestep=0.0005,
    )


@pytest.fixture
def constraints():
    return Constraints(
        velocity_bound=50.0,
        pitch_bound=1.5,
        elevator_bound=1.0,
        pitch_rate_bound=10.0,
        elevator_rate_bound=10.0,
        initial_x=(2.0,),
        initial_z=(30.0,),
    )


def _forbid_solver(monkeypatch):
    def _boom(*_args, **_kwargs):
        raise AssertionError("solver must not be invoked")

    monkeypatch.setattr(scipy.optimize, "minimize", _boom)


def _forbid_dynamics(monkeypatch):
    def _boom(*_args, **_kwargs):
        raise AssertionError("dynamics must not be evaluated")

    monkeypatch.setattr(flat_plate, "derivative", _boom)


class TestGuessValidation:
    def test_empty_guess_returns_empty_trajectory(self, params, constraints, monkeypatch):
        _forbid_solver(monkeypatch)
        traj = optimize([], params, constraints)
        assert isinstance(traj, Trajectory)
        assert traj.is_empty
        assert len(traj) == 0

    def test_empty_guess_reports_failure(self, params, constraints, monkeypatch):
        _forbid_solver(monkeypatch)
        traj, info = TrajectoryOptimizer(params, constraints).solve(np.zeros(0))
        assert traj.is_empty
        assert not info.success
        assert info.status == STATUS_REJECTED

    @pytest.mark.parametrize("size", [1, 7, 12, 33])
    def test_malformed_guess_skips_dynamics(self, params, constraints, monkeypatch, size):
        _forbid_solver(monkeypatch)
        _forbid_dynamics(monkeypatch)
        logger = SolveLogger()
        traj, info = TrajectoryOptimizer(params, constraints, sink=logger).solve(np.zeros(size))
        assert traj.is_empty
        assert not info.success
        assert logger.event_counts() == {"guess_rejected": 1}
        assert logger.summary["size"] == size

    def test_unsupported_method_rejected(self, params, constraints):
        opt = TrajectoryOptimizer(params, constraints, config=SolverConfig(method="Nelder-Mead"))
        with pytest.raises(ValueError, match="Unsupported solver method"):
            opt.solve(anchored_guess(constraints, 2))


class TestEndToEnd:
    def test_anchored_guess_stays_on_anchor(self, params, constraints):
        N = 5
        guess = anchored_guess(constraints, N)
        config = SolverConfig(max_solve_time_s=0.5)

        t0 = time.perf_counter()
        traj = optimize(guess, params, constraints, config=config)
        elapsed = time.perf_counter() - t0

        assert elapsed < config.max_solve_time_s + TIME_SLACK_S
        assert len(traj) == N
        assert abs(traj.x[0] - 2.0) <= 0.01
        assert abs(traj.z[0] - 30.0) <= 0.01
        assert np.all(np.isfinite(traj.as_array()))

    def test_feasible_start_returns_feasible_point(self, params, constraints):
        N = 5
        guess = anchored_guess(constraints, N)
        opt = TrajectoryOptimizer(params, constraints, config=SolverConfig(max_solve_time_s=0.5))
        traj, info = opt.solve(guess)
        assert info.success
        assert info.max_violation <= opt.config.catol
        assert info.cost <= opt.collocation.params.timestep * N * (2.0**2 + 30.0**2) + 1e-9
        assert_allclose(opt.last_solution_z[:2], [traj.x[0], traj.z[0]])

    def test_guess_is_not_mutated(self, params, constraints):
        guess = anchored_guess(constraints, 4)
        guess[5] = -1.0
        snapshot = guess.copy()
        optimize(guess, params, constraints, config=SolverConfig(max_solve_time_s=0.2))
        assert_allclose(guess, snapshot, atol=0.0)

    def test_list_guess_accepted(self, params, constraints):
        guess = anchored_guess(constraints, 3).tolist()
        traj = optimize(guess, params, constraints, config=SolverConfig(max_solve_time_s=0.2))
        assert len(traj) == 3

    def test_slsqp_backend(self, params, constraints):
        N = 3
        opt = TrajectoryOptimizer(params, constraints, config=SolverConfig(method="SLSQP", max_solve_time_s=0.5))
        traj, info = opt.solve(anchored_guess(constraints, N))
        assert len(traj) == N
        assert info.max_violation <= opt.config.catol

    def test_trim_glide_start(self, constraints):
        params = PhysicalParameters(
            length_wing=0.2,
            length_elevator=0.1,
            length_pivot=0.5,
            area_wing=0.3,
            area_elevator=0.1,
            mass=1.0,
            inertia=0.1,
            timestep=0.05,
        )
        N = 6
        guess = trim_glide_guess(params, constraints, N, vx=10.0)
        assert TrapezoidalCollocation(params, constraints).max_violation(guess) == 0.0

        opt = TrajectoryOptimizer(params, constraints, config=SolverConfig(max_solve_time_s=0.3))
        traj, info = opt.solve(guess)
        assert len(traj) == N
        assert info.max_violation <= opt.config.catol
        assert abs(traj.x[0] - 2.0) <= 0.01

    def test_default_config_terminates_within_budget(self):
        params, constraints = load_parameters(CONFIG_PATH)
        N = 10
        config = SolverConfig(max_solve_time_s=0.5)
        opt = TrajectoryOptimizer(params, constraints, config=config)

        t0 = time.perf_counter()
        traj, info = opt.solve(anchored_guess(constraints, N))
        elapsed = time.perf_counter() - t0

        assert elapsed < config.max_solve_time_s + TIME_SLACK_S
        assert info.success
        assert len(traj) == N
        assert np.all(np.isfinite(traj.as_array()))

    def test_exhausted_budget_returns_best_known_point(self, params, constraints):
        guess = anchored_guess(constraints, 3)
        logger = SolveLogger()
        opt = TrajectoryOptimizer(params, constraints, config=SolverConfig(max_solve_time_s=1e-9), sink=logger)
        traj, info = opt.solve(guess)
        assert info.success
        assert info.timed_out
        assert info.status == STATUS_TIME_BUDGET
        assert_allclose(traj.x, guess[0::8])
        assert logger.event_counts()["budget_exhausted"] == 1


class TestProgressEvents:
    def test_events_bracket_the_solve(self, params, constraints, tmp_path):
        N = 4
        logger = SolveLogger(output_dir=tmp_path, run_id="solve1", tags=["unit"])
        config = SolverConfig(max_solve_time_s=0.3)
        logger.log_config(params=params.to_dict(), constraints=constraints.to_dict(), solver=config.to_dict())

        guess = anchored_guess(constraints, N)
        _, info = TrajectoryOptimizer(params, constraints, config=config, sink=logger).solve(guess)

        kinds = [e["kind"] for e in logger.events]
        assert kinds[0] == "guess_loaded"
        assert kinds[-1] == "completed"
        counts = logger.event_counts()
        assert counts["guess_loaded"] == 1
        assert counts["completed"] == 1
        assert counts["evaluation"] == info.evaluations
        assert logger.events[0]["payload"]["residuals"] == 4 + 26 * N

        summary = logger.summary
        assert summary["cost"] == pytest.approx(info.cost)
        assert np.asarray(summary["guess_difference"]).shape == (N, 8)

        path = logger.save()
        assert path.name == "solve1.json"
        assert path.exists()

    def test_evaluation_stride(self, params, constraints):
        logger = SolveLogger()
        config = SolverConfig(max_solve_time_s=0.2, evaluation_event_stride=0)
        _, info = TrajectoryOptimizer(params, constraints, config=config, sink=logger).solve(
            anchored_guess(constraints, 3)
        )
        assert info.evaluations > 0
        assert "evaluation" not in logger.event_counts()


class TestAnchoring:
    """The start position never drifts off the anchor, even when the budget runs out."""

    @pytest.mark.parametrize("N", [5, 10])
    def test_default_config_keeps_start_on_anchor(self, N):
        params, constraints = load_parameters(CONFIG_PATH)
        ix0, iz0 = constraints.anchor
        config = SolverConfig(max_solve_time_s=0.5)
        opt = TrajectoryOptimizer(params, constraints, config=config)

        t0 = time.perf_counter()
        traj, info = opt.solve(anchored_guess(constraints, N))
        elapsed = time.perf_counter() - t0

        assert elapsed < config.max_solve_time_s + TIME_SLACK_S
        assert len(traj) == N
        assert abs(traj.x[0] - ix0) <= ANCHOR_TOLERANCE
        assert abs(traj.z[0] - iz0) <= ANCHOR_TOLERANCE
        # Hard anchor residuals: |x0| <= ix0, |z0| <= iz0
        assert abs(traj.x[0]) <= ix0 + config.catol
        assert abs(traj.z[0]) <= iz0 + config.catol
        assert info.anchor_error <= ANCHOR_TOLERANCE

    def test_off_anchor_solver_result_is_replaced(self, monkeypatch):
        params, constraints = load_parameters(CONFIG_PATH)
        ix0, iz0 = constraints.anchor
        N = 3
        guess = anchored_guess(constraints, N)

        def drifting_minimize(fun, x0, constraints=(), callback=None, **_kwargs):
            con = constraints[0]["fun"]
            fun(x0)
            con(x0)
            drifted = np.array(x0, dtype=float)
            drifted[0] += 0.08
            drifted[1] -= 0.015
            fun(drifted)
            con(drifted)
            return scipy.optimize.OptimizeResult(x=drifted, status=0, message="done", nit=1, success=True)

        monkeypatch.setattr(scipy.optimize, "minimize", drifting_minimize)
        traj, info = TrajectoryOptimizer(params, constraints).solve(guess)
        assert traj.x[0] == pytest.approx(ix0)
        assert traj.z[0] == pytest.approx(iz0)
        assert info.anchor_error == pytest.approx(0.0)
        assert info.evaluations == 2


def test_rank_prefers_feasible_points():
    assert _rank(100.0, 0.0, True, 1e-4) < _rank(1.0, 0.5, True, 1e-4)
    assert _rank(1.0, 0.0, True, 1e-4) < _rank(2.0, 0.0, True, 1e-4)
    assert _rank(1.0, 0.1, True, 1e-4) < _rank(1.0, 0.2, True, 1e-4)


def test_rank_puts_anchored_points_first():
    # An anchored but infeasible point outranks a cheap, feasible, drifted one.
    assert _rank(1e9, 5.0, True, 1e-4) < _rank(0.0, 0.0, False, 1e-4)
    assert _rank(1e9, 5.0, True, 1e-4) < _rank(0.0, 1e-3, False, 1e-4)


def test_infeasible_merit_weight_is_separate_from_anchor_penalty():
    cost = 10.0
    violation = 0.5
    assert _rank(cost, violation, True, 1e-4)[2] == pytest.approx(cost + INFEASIBLE_MERIT_WEIGHT * violation)
    assert INFEASIBLE_MERIT_WEIGHT != ANCHOR_PENALTY_WEIGHT
