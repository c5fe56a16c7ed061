from __future__ import annotations

import numpy as np
import pytest


def test_public_api_exports() -> None:
    import pointpose as pp

    assert hasattr(pp, "estimate_pose")
    assert hasattr(pp, "refine_pose")
    assert hasattr(pp, "GaussNewtonConfig")
    assert issubclass(pp.NonConvergenceError, pp.PoseEstimationError)
    assert issubclass(pp.InsufficientCorrespondencesError, ValueError)


def test_estimate_pose_from_plain_arrays() -> None:
    import pointpose as pp
    from pointpose.sim.synthetic import reference_scene

    scene = reference_scene()
    image_h = np.concatenate([scene.image_points, np.ones((4, 1))], axis=1)
    result = pp.estimate_pose(scene.world_points, image_h, scene.cTw_init)
    assert np.allclose(result.pose, scene.cTw_true, atol=1e-6)

    with pytest.raises(pp.InsufficientCorrespondencesError):
        pp.estimate_pose(scene.world_points[:3], scene.image_points[:3], scene.cTw_init)
