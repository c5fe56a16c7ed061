from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from pointpose.correspondences import make_correspondences
from pointpose.core.gauss_newton import (
    ConfigValidationError,
    ConvergenceMonitor,
    ConvergenceStatus,
    GaussNewtonConfig,
    gauss_newton_step,
    load_solver_config,
    parse_solver_config,
    refine_pose,
    solve_twist,
)
from pointpose.core.projection import build_residual_and_jacobian
from pointpose.core.se3 import pose_from_translation_rotvec
from pointpose.errors import (
    IllConditionedJacobianError,
    InsufficientCorrespondencesError,
    NonConvergenceError,
)
from pointpose.eval.pose_accuracy import rotation_error_rad, translation_error
from pointpose.sim.synthetic import reference_scene


def test_reference_scene_recovers_ground_truth():
    scene = reference_scene()
    result = refine_pose(scene.correspondences(), scene.cTw_init)
    assert result.converged
    assert result.iterations < 100
    assert rotation_error_rad(result.pose, scene.cTw_true) < 1e-6
    assert translation_error(result.pose, scene.cTw_true) < 1e-6


def test_residual_history_is_non_increasing():
    scene = reference_scene()
    result = refine_pose(scene.correspondences(), scene.cTw_init)
    h = np.asarray(result.history)
    assert len(h) == result.iterations
    assert np.all(np.diff(h) <= 1e-18)
    assert h[-1] < 1e-18


def test_input_pose_is_not_mutated():
    scene = reference_scene()
    cTw_init = scene.cTw_init.copy()
    refine_pose(scene.correspondences(), cTw_init)
    assert np.array_equal(cTw_init, scene.cTw_init)


def test_three_correspondences_are_rejected():
    scene = reference_scene()
    corr = make_correspondences(scene.world_points[:3], scene.image_points[:3])
    with pytest.raises(InsufficientCorrespondencesError):
        refine_pose(corr, scene.cTw_init)


def test_fixed_point_step_leaves_pose_unchanged():
    scene = reference_scene()
    step = gauss_newton_step(scene.cTw_true, scene.correspondences())
    assert np.linalg.norm(step.twist) < 1e-12
    assert np.allclose(step.pose, scene.cTw_true, atol=1e-12)
    assert step.residual_norm < 1e-25


def test_step_reduces_residual():
    scene = reference_scene()
    corr = scene.correspondences()
    step = gauss_newton_step(scene.cTw_init, corr)
    r_after, _, _ = build_residual_and_jacobian(step.pose, corr)
    assert float(np.sum(r_after**2)) < step.residual_norm


def test_collinear_points_raise_ill_conditioned():
    world = np.array([[-0.2, 0.0, 0.0], [0.0, 0.0, 0.0], [0.1, 0.0, 0.0], [0.3, 0.0, 0.0]])
    cTw = pose_from_translation_rotvec([0.0, 0.0, 0.5], [0.1, 0.0, 0.0])
    corr = make_correspondences(world, np.zeros((4, 2)))
    with pytest.raises(IllConditionedJacobianError) as info:
        refine_pose(corr, cTw)
    assert info.value.singular_values.shape == (6,)


def test_solve_twist_rejects_non_finite_jacobian():
    J = np.ones((8, 6))
    J[0, 0] = np.nan
    with pytest.raises(IllConditionedJacobianError):
        solve_twist(np.zeros(8), J, gain=0.25)


def test_solve_twist_scales_with_gain():
    rng = np.random.default_rng(0)
    J = rng.normal(size=(10, 6))
    e = rng.normal(size=10)
    full = solve_twist(e, J, gain=1.0)
    assert np.allclose(solve_twist(e, J, gain=0.25), 0.25 * full)
    assert np.allclose(J.T @ (J @ full + e), 0.0, atol=1e-10)


def test_iteration_cap_raises_with_partial_result():
    scene = reference_scene()
    with pytest.raises(NonConvergenceError) as info:
        refine_pose(scene.correspondences(), scene.cTw_init, GaussNewtonConfig(max_iters=3))
    partial = info.value.result
    assert not partial.converged
    assert partial.iterations == 3
    assert len(partial.history) == 3
    assert partial.history[-1] < partial.history[0]


def test_larger_gain_converges_faster():
    scene = reference_scene()
    slow = refine_pose(scene.correspondences(), scene.cTw_init, GaussNewtonConfig(gain=0.25))
    fast = refine_pose(scene.correspondences(), scene.cTw_init, GaussNewtonConfig(gain=0.8))
    assert fast.iterations < slow.iterations
    assert translation_error(fast.pose, scene.cTw_true) < 1e-6


def test_monitor_needs_two_observations():
    m = ConvergenceMonitor()
    assert m.update(0.0) is ConvergenceStatus.ITERATING
    assert m.update(0.0) is ConvergenceStatus.CONVERGED
    assert m.iterations == 2


def test_monitor_tolerances():
    m = ConvergenceMonitor(abs_tol=0.0, rel_tol=1e-3)
    assert m.update(1.0) is ConvergenceStatus.ITERATING
    assert m.update(0.5) is ConvergenceStatus.ITERATING
    assert m.update(0.4999) is ConvergenceStatus.CONVERGED
    assert m.converged
    # Terminal state.
    assert m.update(10.0) is ConvergenceStatus.CONVERGED
    assert m.current == pytest.approx(0.4999)


def test_parse_solver_config_ok(tmp_path: Path) -> None:
    cfg = parse_solver_config({"gain": 0.5, "max_iters": 50, "abs_tol": 0})
    assert cfg == GaussNewtonConfig(gain=0.5, max_iters=50, abs_tol=0.0)

    p = tmp_path / "solver.json"
    p.write_text('{"rel_tol": 1e-8}', encoding="utf-8")
    assert load_solver_config(p).rel_tol == 1e-8


@pytest.mark.parametrize(
    "data",
    [
        {"gain": 0.0},
        {"gain": 1.5},
        {"max_iters": 0},
        {"max_iters": 2.7},
        {"max_iters": float("inf")},
        {"max_iters": 10**400},
        {"abs_tol": -1.0},
        {"gain": "fast"},
        {"damping": 0.1},
    ],
)
def test_parse_solver_config_rejects(data):
    with pytest.raises(ConfigValidationError):
        parse_solver_config(data)


def test_solver_config_file_with_infinite_iterations_is_rejected(tmp_path: Path) -> None:
    p = tmp_path / "solver.json"
    p.write_text('{"max_iters": Infinity}', encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        load_solver_config(p)


def test_integral_float_iterations_are_accepted() -> None:
    assert parse_solver_config({"max_iters": 50.0}).max_iters == 50
