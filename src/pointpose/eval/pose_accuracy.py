from __future__ import annotations

import numpy as np

from pointpose.correspondences import Correspondences
from pointpose.core.projection import project_points


def rotation_error_rad(cTw_a: np.ndarray, cTw_b: np.ndarray) -> float:
    """Angle of the relative rotation R_a^T R_b, in radians."""
    from scipy.spatial.transform import Rotation as R  # type: ignore

    Ra = np.asarray(cTw_a, dtype=np.float64)[:3, :3]
    Rb = np.asarray(cTw_b, dtype=np.float64)[:3, :3]
    return float(R.from_matrix(Ra.T @ Rb).magnitude())


def translation_error(cTw_a: np.ndarray, cTw_b: np.ndarray) -> float:
    ta = np.asarray(cTw_a, dtype=np.float64)[:3, 3]
    tb = np.asarray(cTw_b, dtype=np.float64)[:3, 3]
    return float(np.linalg.norm(ta - tb))


def reprojection_rms(cTw: np.ndarray, corr: Correspondences) -> float:
    """RMS point distance between projected and observed normalized coordinates."""
    _XYZ, xy = project_points(cTw, corr.world_h)
    d = np.linalg.norm(xy - corr.observed, axis=1)
    return float(np.sqrt(np.mean(d * d)))


def pose_errors(cTw_est: np.ndarray, cTw_ref: np.ndarray) -> dict[str, float]:
    return {
        "rotation_error_deg": float(np.rad2deg(rotation_error_rad(cTw_est, cTw_ref))),
        "translation_error": translation_error(cTw_est, cTw_ref),
    }
