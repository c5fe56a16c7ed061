import numpy as np
import pytest

from pointpose.api import estimate_pose
from pointpose.correspondences import make_correspondences
from pointpose.core.camera import PinholeIntrinsics
from pointpose.core.gauss_newton import refine_pose
from pointpose.core.projection import project_points
from pointpose.core.se3 import pose_from_translation_rotvec
from pointpose.eval.pose_accuracy import pose_errors, reprojection_rms, rotation_error_rad, translation_error
from pointpose.sim.synthetic import random_scene, reference_scene


def test_reference_scene_matches_known_setup():
    scene = reference_scene()
    assert scene.world_points.shape == (4, 3)
    assert np.allclose(scene.world_points[1], [0.4, -0.2, 0.0])
    assert np.allclose(scene.cTw_true[:3, 3], [-0.1, 0.1, 0.5])
    assert reprojection_rms(scene.cTw_true, scene.correspondences()) < 1e-15
    assert 5.0 < np.rad2deg(rotation_error_rad(scene.cTw_init, scene.cTw_true)) < 15.0


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_random_scenes_converge(seed):
    scene = random_scene(8, seed=seed)
    result = refine_pose(scene.correspondences(), scene.cTw_init)
    assert rotation_error_rad(result.pose, scene.cTw_true) < 1e-6
    assert translation_error(result.pose, scene.cTw_true) < 1e-6


def test_noisy_scene_lands_near_truth():
    scene = random_scene(20, seed=3, noise_std=1e-4)
    corr = scene.correspondences()
    result = refine_pose(corr, scene.cTw_init)
    errs = pose_errors(result.pose, scene.cTw_true)
    assert errs["rotation_error_deg"] < 0.5
    assert errs["translation_error"] < 0.01
    # The estimate explains the data at least as well as the true pose.
    assert reprojection_rms(result.pose, corr) <= reprojection_rms(scene.cTw_true, corr) + 1e-12


def test_pixel_observations_with_distortion():
    cam = PinholeIntrinsics(fx=800.0, fy=820.0, cx=320.0, cy=240.0, k1=-0.1, k2=0.01)
    scene = random_scene(10, seed=1, camera=cam)
    result = estimate_pose(scene.world_points, scene.image_points, scene.cTw_init, camera=cam)
    assert rotation_error_rad(result.pose, scene.cTw_true) < 1e-6
    assert translation_error(result.pose, scene.cTw_true) < 1e-6


def test_minimum_four_points_converge():
    world = np.array([[-0.1, -0.1, 0.0], [0.1, -0.1, 0.05], [0.1, 0.1, 0.0], [-0.1, 0.1, -0.05]])
    cTw_true = pose_from_translation_rotvec([0.02, -0.03, 0.6], [0.1, -0.05, 0.2])
    cTw_init = pose_from_translation_rotvec([0.0, 0.0, 0.55], [0.05, 0.0, 0.1])
    _XYZ, xy = project_points(cTw_true, np.concatenate([world, np.ones((4, 1))], axis=1))
    result = refine_pose(make_correspondences(world, xy), cTw_init)
    assert result.converged
    assert rotation_error_rad(result.pose, cTw_true) < 1e-6
    assert translation_error(result.pose, cTw_true) < 1e-6
