from __future__ import annotations

import numpy as np

from pointpose.correspondences import make_correspondences
from pointpose.core.camera import PinholeIntrinsics
from pointpose.core.gauss_newton import GaussNewtonConfig, PoseEstimate, refine_pose


def estimate_pose(
    world_points: np.ndarray,
    image_points: np.ndarray,
    cTw_init: np.ndarray,
    *,
    config: GaussNewtonConfig | None = None,
    camera: PinholeIntrinsics | None = None,
) -> PoseEstimate:
    """
    Estimate the world->camera pose cTw from 3D/2D point correspondences.

    - `world_points`: (N,3) or homogeneous (N,4) points in the world frame
    - `image_points`: (N,2) or (N,3) normalized coordinates, or pixels when `camera` is given
    - `cTw_init`: (4,4) initial pose, reasonably close to the solution

    Needs N >= 4 non-collinear points. Failures raise a `PoseEstimationError`
    subclass instead of returning a pose.
    """
    corr = make_correspondences(world_points, image_points, camera=camera)
    return refine_pose(corr, cTw_init, config)
