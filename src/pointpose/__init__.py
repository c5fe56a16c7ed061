from pointpose.api import estimate_pose, load_pose, save_pose
from pointpose.correspondences import Correspondences, make_correspondences
from pointpose.core.gauss_newton import GaussNewtonConfig, PoseEstimate, refine_pose
from pointpose.errors import (
    DegenerateProjectionError,
    IllConditionedJacobianError,
    InsufficientCorrespondencesError,
    NonConvergenceError,
    PoseEstimationError,
)

__all__ = [
    "estimate_pose",
    "load_pose",
    "save_pose",
    "Correspondences",
    "make_correspondences",
    "GaussNewtonConfig",
    "PoseEstimate",
    "refine_pose",
    "PoseEstimationError",
    "InsufficientCorrespondencesError",
    "DegenerateProjectionError",
    "IllConditionedJacobianError",
    "NonConvergenceError",
]
