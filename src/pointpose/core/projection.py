from __future__ import annotations

import numpy as np

from pointpose.correspondences import Correspondences
from pointpose.core.se3 import transform_points
from pointpose.errors import DegenerateProjectionError


def _check_depth(Z: np.ndarray, min_depth: float) -> None:
    bad = ~np.isfinite(Z) | (np.abs(Z) <= float(min_depth))
    if np.any(bad):
        raise DegenerateProjectionError(np.flatnonzero(bad).tolist(), min_depth)


def project_points(cTw: np.ndarray, world_h: np.ndarray, min_depth: float = 0.0) -> tuple[np.ndarray, np.ndarray]:
    """
    Pinhole projection of homogeneous world points under cTw.

    Returns (XYZ_cam (N,3), xy (N,2)) with x=X/Z, y=Y/Z.
    """
    XYZ = transform_points(cTw, world_h)
    Z = XYZ[:, 2]
    _check_depth(Z, min_depth)
    xy = XYZ[:, :2] / Z[:, None]
    return XYZ, xy


def interaction_matrix(xy: np.ndarray, Z: np.ndarray) -> np.ndarray:
    """
    Stacked (2N,6) derivative of the normalized projections w.r.t. a twist
    [vx, vy, vz, wx, wy, wz] of the camera.

    Per point:
      [-1/Z,    0, x/Z,   x*y, -(1+x^2),  y]
      [   0, -1/Z, y/Z, 1+y^2,     -x*y, -x]
    """
    xy = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
    Z = np.asarray(Z, dtype=np.float64).reshape(-1)
    x = xy[:, 0]
    y = xy[:, 1]
    m_inv_z = -1.0 / Z
    zero = np.zeros_like(x)

    L = np.empty((xy.shape[0], 2, 6), dtype=np.float64)
    L[:, 0] = np.stack([m_inv_z, zero, x / Z, x * y, -(1.0 + x * x), y], axis=1)
    L[:, 1] = np.stack([zero, m_inv_z, y / Z, 1.0 + y * y, -x * y, -x], axis=1)
    return L.reshape(-1, 6)


def build_residual_and_jacobian(
    cTw: np.ndarray,
    corr: Correspondences,
    min_depth: float = 1e-12,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Residual (2N,), Jacobian (2N,6) and predicted projections (N,2) at pose cTw.

    The residual is predicted minus observed, interleaved (x0, y0, x1, y1, ...).
    """
    XYZ, xy = project_points(cTw, corr.world_h, min_depth=min_depth)
    J = interaction_matrix(xy, XYZ[:, 2])
    residual = xy.reshape(-1) - corr.observed_flat
    return residual, J, xy
