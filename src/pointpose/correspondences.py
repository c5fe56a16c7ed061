from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from pointpose.core.camera import PinholeIntrinsics, intrinsics_from_dict

SCHEMA_VERSION = "pointpose.correspondences.v0"

# Six pose unknowns, two equations per point.
MIN_CORRESPONDENCES = 4


class CorrespondenceValidationError(ValueError):
    pass


@dataclass(frozen=True)
class Correspondences:
    """
    Index-aligned 3D/2D point pairs.

    - `world_h`: homogeneous world points (N,4), last component 1
    - `observed`: normalized image coordinates x=X/Z, y=Y/Z (N,2)
    """

    world_h: np.ndarray  # (N,4)
    observed: np.ndarray  # (N,2)

    def __len__(self) -> int:
        return int(self.world_h.shape[0])

    @property
    def observed_flat(self) -> np.ndarray:
        """Observations interleaved as (x0, y0, x1, y1, ...)."""
        return self.observed.reshape(-1)


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise CorrespondenceValidationError(msg)


def _as_world_h(world_points: np.ndarray) -> np.ndarray:
    P = np.asarray(world_points, dtype=np.float64)
    _require(P.ndim == 2 and P.shape[1] in (3, 4), "world points must have shape (N,3) or (N,4)")
    if P.shape[1] == 3:
        return np.concatenate([P, np.ones((P.shape[0], 1), dtype=np.float64)], axis=1)
    w = P[:, 3]
    _require(bool(np.all(np.abs(w) > 0.0)), "homogeneous world points must have a non-zero 4th component")
    return P / w[:, None]


def _as_observed(image_points: np.ndarray) -> np.ndarray:
    p = np.asarray(image_points, dtype=np.float64)
    _require(p.ndim == 2 and p.shape[1] in (2, 3), "image points must have shape (N,2) or (N,3)")
    # A homogeneous third component, when present, is carried but not used.
    return p[:, :2].copy()


def make_correspondences(
    world_points: np.ndarray,
    image_points: np.ndarray,
    *,
    camera: PinholeIntrinsics | None = None,
) -> Correspondences:
    """
    Build a correspondence store.

    `image_points` are normalized coordinates unless `camera` is given, in which
    case they are pixels and get converted through the intrinsics.
    """
    world_h = _as_world_h(world_points)
    observed = _as_observed(image_points)
    if camera is not None:
        observed = camera.pixels_to_normalized(observed)
    _require(world_h.shape[0] == observed.shape[0], "world and image points must have the same length")
    _require(bool(np.all(np.isfinite(world_h))), "world points must be finite")
    _require(bool(np.all(np.isfinite(observed))), "image points must be finite")

    world_h.setflags(write=False)
    observed.setflags(write=False)
    return Correspondences(world_h=world_h, observed=observed)


def parse_correspondences(data: dict[str, Any]) -> Correspondences:
    _require(isinstance(data, dict), "correspondence file must be a JSON object")
    _require(data.get("schema_version") == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    world = data.get("world_points")
    image = data.get("image_points")
    _require(isinstance(world, list) and len(world) > 0, "world_points must be a non-empty list")
    _require(isinstance(image, list) and len(image) > 0, "image_points must be a non-empty list")
    _require(
        all(isinstance(p, (list, tuple)) for p in world + image),
        "every world/image point must be a list of coordinates",
    )
    _require(
        len({len(p) for p in world}) == 1 and len({len(p) for p in image}) == 1,
        "all points of a list must have the same number of components",
    )

    units = data.get("image_units", "normalized")
    _require(units in ("normalized", "pixel"), "image_units must be 'normalized' or 'pixel'")
    camera = None
    if units == "pixel":
        cam = data.get("camera")
        _require(isinstance(cam, dict), "camera is required when image_units is 'pixel'")
        try:
            camera = intrinsics_from_dict(cam)
        except ValueError as e:
            raise CorrespondenceValidationError(str(e)) from e

    try:
        world_arr = np.asarray(world, dtype=np.float64)
        image_arr = np.asarray(image, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise CorrespondenceValidationError("point coordinates must be numbers") from e
    return make_correspondences(world_arr, image_arr, camera=camera)


def load_correspondences(path: Path) -> Correspondences:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_correspondences(data)


def correspondences_to_dict(corr: Correspondences) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "world_points": corr.world_h[:, :3].tolist(),
        "image_points": corr.observed.tolist(),
        "image_units": "normalized",
    }
