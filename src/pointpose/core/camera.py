from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class PinholeIntrinsics:
    """
    Known pinhole intrinsics with optional Brown-Conrady distortion.

    Distortion acts on normalized coordinates (x=X/Z, y=Y/Z), OpenCV naming:
      radial: k1, k2, k3
      tangential: p1, p2
    """

    fx: float
    fy: float
    cx: float
    cy: float
    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    k3: float = 0.0

    def K(self) -> np.ndarray:
        return np.array(
            [[float(self.fx), 0.0, float(self.cx)], [0.0, float(self.fy), float(self.cy)], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    def dist(self) -> np.ndarray:
        return np.array([self.k1, self.k2, self.p1, self.p2, self.k3], dtype=np.float64)

    @property
    def has_distortion(self) -> bool:
        return bool(np.any(self.dist() != 0.0))

    def distort(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        r2 = x * x + y * y
        radial = 1.0 + r2 * (self.k1 + r2 * (self.k2 + r2 * self.k3))
        xy = x * y
        xd = x * radial + 2.0 * self.p1 * xy + self.p2 * (r2 + 2.0 * x * x)
        yd = y * radial + self.p1 * (r2 + 2.0 * y * y) + 2.0 * self.p2 * xy
        return xd, yd

    def undistort(self, xd: np.ndarray, yd: np.ndarray, iterations: int = 10) -> tuple[np.ndarray, np.ndarray]:
        """
        Fixed-point inverse of distort(); adequate for small/moderate distortion.
        """
        xd = np.asarray(xd, dtype=np.float64)
        yd = np.asarray(yd, dtype=np.float64)
        x = xd.copy()
        y = yd.copy()
        for _ in range(int(iterations)):
            x_est, y_est = self.distort(x, y)
            x += xd - x_est
            y += yd - y_est
        return x, y

    def pixels_to_normalized(self, uv_px: np.ndarray) -> np.ndarray:
        uv_px = np.asarray(uv_px, dtype=np.float64).reshape(-1, 2)
        xd = (uv_px[:, 0] - self.cx) / self.fx
        yd = (uv_px[:, 1] - self.cy) / self.fy
        if self.has_distortion:
            xd, yd = self.undistort(xd, yd)
        return np.stack([xd, yd], axis=1)

    def normalized_to_pixels(self, xy: np.ndarray) -> np.ndarray:
        xy = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
        x, y = xy[:, 0], xy[:, 1]
        if self.has_distortion:
            x, y = self.distort(x, y)
        return np.stack([self.fx * x + self.cx, self.fy * y + self.cy], axis=1)

    def to_dict(self) -> dict[str, float]:
        return {
            "fx": float(self.fx),
            "fy": float(self.fy),
            "cx": float(self.cx),
            "cy": float(self.cy),
            "k1": float(self.k1),
            "k2": float(self.k2),
            "p1": float(self.p1),
            "p2": float(self.p2),
            "k3": float(self.k3),
        }


def intrinsics_from_dict(d: dict[str, Any]) -> PinholeIntrinsics:
    missing = [k for k in ("fx", "fy", "cx", "cy") if k not in d]
    if missing:
        raise ValueError(f"camera is missing {missing}")
    cam = PinholeIntrinsics(
        fx=float(d["fx"]),
        fy=float(d["fy"]),
        cx=float(d["cx"]),
        cy=float(d["cy"]),
        k1=float(d.get("k1", 0.0)),
        k2=float(d.get("k2", 0.0)),
        p1=float(d.get("p1", 0.0)),
        p2=float(d.get("p2", 0.0)),
        k3=float(d.get("k3", 0.0)),
    )
    if not (cam.fx > 0.0 and cam.fy > 0.0):
        raise ValueError("camera fx and fy must be > 0")
    return cam
