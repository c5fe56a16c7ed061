from __future__ import annotations

import numpy as np

# Below this rotation angle (rad) the SE(3) coefficients use their Taylor series.
_SMALL_ANGLE = 1e-6


def skew(w: np.ndarray) -> np.ndarray:
    wx, wy, wz = (float(v) for v in np.asarray(w, dtype=np.float64).reshape(3))
    return np.array([[0.0, -wz, wy], [wz, 0.0, -wx], [-wy, wx, 0.0]], dtype=np.float64)


def _translation_jacobian(w: np.ndarray) -> np.ndarray:
    """
    V(w) = I + (1 - cos t)/t^2 [w]x + (t - sin t)/t^3 [w]x^2, with t = |w|.

    Maps the translational generators of a twist to the translation of exp(twist).
    """
    W = skew(w)
    theta2 = float(np.dot(w, w))
    theta = float(np.sqrt(theta2))
    if theta < _SMALL_ANGLE:
        a = 0.5 - theta2 / 24.0
        b = 1.0 / 6.0 - theta2 / 120.0
    else:
        a = (1.0 - np.cos(theta)) / theta2
        b = (theta - np.sin(theta)) / (theta2 * theta)
    return np.eye(3, dtype=np.float64) + a * W + b * (W @ W)


def se3_exp(twist: np.ndarray) -> np.ndarray:
    """
    Exponential map of a twist [vx, vy, vz, wx, wy, wz] to a 4x4 rigid transform.
    """
    from scipy.spatial.transform import Rotation as R  # type: ignore

    twist = np.asarray(twist, dtype=np.float64).reshape(6)
    v = twist[:3]
    w = twist[3:]
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = R.from_rotvec(w).as_matrix()
    T[:3, 3] = _translation_jacobian(w) @ v
    return T


def se3_log(T: np.ndarray) -> np.ndarray:
    """Inverse of `se3_exp` for rotation angles in [0, pi)."""
    from scipy.spatial.transform import Rotation as R  # type: ignore

    T = as_pose(T)
    w = R.from_matrix(T[:3, :3]).as_rotvec()
    v = np.linalg.solve(_translation_jacobian(w), T[:3, 3])
    return np.concatenate([v, w], axis=0)


def se3_inverse(T: np.ndarray) -> np.ndarray:
    T = np.asarray(T, dtype=np.float64).reshape(4, 4)
    Rm = T[:3, :3]
    out = np.eye(4, dtype=np.float64)
    out[:3, :3] = Rm.T
    out[:3, 3] = -Rm.T @ T[:3, 3]
    return out


def compose(*poses: np.ndarray) -> np.ndarray:
    """Left-to-right product of rigid transforms: compose(A, B) = A @ B."""
    out = np.eye(4, dtype=np.float64)
    for T in poses:
        out = out @ np.asarray(T, dtype=np.float64).reshape(4, 4)
    return out


def pose_from_translation_rotvec(translation: np.ndarray, rotvec_rad: np.ndarray) -> np.ndarray:
    """
    Build cTw from a translation and a theta-u rotation vector (axis * angle, radians).
    """
    from scipy.spatial.transform import Rotation as R  # type: ignore

    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = R.from_rotvec(np.asarray(rotvec_rad, dtype=np.float64).reshape(3)).as_matrix()
    T[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
    return T


def pose_to_translation_rotvec(T: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    from scipy.spatial.transform import Rotation as R  # type: ignore

    T = as_pose(T)
    return T[:3, 3].copy(), R.from_matrix(T[:3, :3]).as_rotvec()


def transform_points(T: np.ndarray, X_h: np.ndarray) -> np.ndarray:
    """Apply T to homogeneous points (N,4); returns the (N,3) transformed points."""
    T = np.asarray(T, dtype=np.float64).reshape(4, 4)
    X_h = np.asarray(X_h, dtype=np.float64).reshape(-1, 4)
    return (T @ X_h.T).T[:, :3]


def is_rigid(T: np.ndarray, atol: float = 1e-9) -> bool:
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (4, 4) or not np.all(np.isfinite(T)):
        return False
    Rm = T[:3, :3]
    if not np.allclose(Rm.T @ Rm, np.eye(3), atol=atol):
        return False
    if abs(float(np.linalg.det(Rm)) - 1.0) > atol:
        return False
    return bool(np.allclose(T[3], [0.0, 0.0, 0.0, 1.0], atol=atol))


def as_pose(T: np.ndarray, atol: float = 1e-6) -> np.ndarray:
    """Copy T as a float64 (4,4) array, rejecting anything that is not a rigid transform."""
    T = np.array(T, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"pose must be a 4x4 matrix, got shape {T.shape}")
    if not is_rigid(T, atol=atol):
        raise ValueError("pose is not a rigid transform (rotation block must be orthonormal, last row [0,0,0,1])")
    return T
