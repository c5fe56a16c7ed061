from pointpose.api.pose_estimation import estimate_pose
from pointpose.api.pose_io import load_pose, parse_pose, pose_to_dict, save_estimate, save_pose

__all__ = [
    "estimate_pose",
    "load_pose",
    "parse_pose",
    "pose_to_dict",
    "save_estimate",
    "save_pose",
]
