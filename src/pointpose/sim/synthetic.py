from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from pointpose.api.pose_io import pose_to_dict
from pointpose.correspondences import SCHEMA_VERSION, Correspondences, make_correspondences
from pointpose.core.camera import PinholeIntrinsics
from pointpose.core.projection import project_points
from pointpose.core.se3 import pose_from_translation_rotvec


@dataclass(frozen=True)
class SyntheticScene:
    """
    Simulated correspondences with a known pose.

    `image_points` are normalized coordinates, or pixels when `camera` is set.
    """

    world_points: np.ndarray  # (N,3)
    image_points: np.ndarray  # (N,2)
    cTw_true: np.ndarray  # (4,4)
    cTw_init: np.ndarray  # (4,4)
    camera: PinholeIntrinsics | None = None

    def correspondences(self) -> Correspondences:
        return make_correspondences(self.world_points, self.image_points, camera=self.camera)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "world_points": self.world_points.tolist(),
            "image_points": self.image_points.tolist(),
            "image_units": "normalized" if self.camera is None else "pixel",
            "initial_pose": pose_to_dict(self.cTw_init),
            "ground_truth_pose": pose_to_dict(self.cTw_true),
        }
        if self.camera is not None:
            out["camera"] = self.camera.to_dict()
        return out


def _observe(
    world_points: np.ndarray,
    cTw: np.ndarray,
    *,
    noise_std: float = 0.0,
    rng: np.random.Generator | None = None,
    camera: PinholeIntrinsics | None = None,
) -> np.ndarray:
    world_h = np.concatenate([world_points, np.ones((world_points.shape[0], 1))], axis=1)
    _XYZ, xy = project_points(cTw, world_h)
    if noise_std > 0.0:
        if rng is None:
            raise ValueError("noise_std > 0 needs an rng")
        xy = xy + rng.normal(0.0, float(noise_std), size=xy.shape)
    if camera is not None:
        return camera.normalized_to_pixels(xy)
    return xy


def reference_scene(L: float = 0.2) -> SyntheticScene:
    """
    Four coplanar points seen by a camera 0.5 in front of the plane.

    Poses are built from a translation and a theta-u rotation vector; the
    initial pose is off by 5 cm and 10 deg.
    """
    world = np.array([[-L, -L, 0.0], [2 * L, -L, 0.0], [L, L, 0.0], [-L, L, 0.0]], dtype=np.float64)
    cTw_true = pose_from_translation_rotvec([-0.1, 0.1, 0.5], np.deg2rad([5.0, 0.0, 45.0]))
    cTw_init = pose_from_translation_rotvec([-0.05, 0.05, 0.45], np.deg2rad([1.0, 0.0, 35.0]))
    return SyntheticScene(
        world_points=world,
        image_points=_observe(world, cTw_true),
        cTw_true=cTw_true,
        cTw_init=cTw_init,
    )


def _random_unit(rng: np.random.Generator) -> np.ndarray:
    v = rng.normal(size=3)
    return v / np.linalg.norm(v)


def random_scene(
    n_points: int = 8,
    *,
    seed: int = 0,
    noise_std: float = 0.0,
    planar: bool = False,
    extent: float = 0.2,
    init_rot_deg: float = 5.0,
    init_trans: float = 0.03,
    camera: PinholeIntrinsics | None = None,
) -> SyntheticScene:
    """
    Random points around the world origin, seen from 0.6-1.0 units away.

    The initial pose is the true pose perturbed by a rotation of `init_rot_deg`
    and a translation of length `init_trans`, both in random directions.
    `noise_std` is Gaussian noise on normalized coordinates.
    """
    if n_points < 1:
        raise ValueError("n_points must be >= 1")
    rng = np.random.default_rng(seed)

    world = rng.uniform(-extent, extent, size=(int(n_points), 3))
    if planar:
        world[:, 2] = 0.0
    else:
        world[:, 2] *= 0.5

    t_true = np.array([rng.uniform(-0.1, 0.1), rng.uniform(-0.1, 0.1), rng.uniform(0.6, 1.0)])
    r_true = rng.uniform(-0.3, 0.3, size=3)
    cTw_true = pose_from_translation_rotvec(t_true, r_true)

    perturb = pose_from_translation_rotvec(
        float(init_trans) * _random_unit(rng),
        np.deg2rad(float(init_rot_deg)) * _random_unit(rng),
    )
    cTw_init = perturb @ cTw_true

    image = _observe(world, cTw_true, noise_std=float(noise_std), rng=rng, camera=camera)
    return SyntheticScene(world_points=world, image_points=image, cTw_true=cTw_true, cTw_init=cTw_init, camera=camera)


def write_scene(path: Path, scene: SyntheticScene) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(scene.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
    return path
