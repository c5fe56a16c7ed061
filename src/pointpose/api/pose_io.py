from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np

from pointpose.core.gauss_newton import PoseEstimate
from pointpose.core.se3 import as_pose, pose_from_translation_rotvec, pose_to_translation_rotvec

POSE_SCHEMA = "pointpose.pose.v0"
ESTIMATE_SCHEMA = "pointpose.estimate.v0"


def _to_float_matrix(x: Any, shape: tuple[int, ...]) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    x = x.reshape(shape)
    if not np.all(np.isfinite(x)):
        raise ValueError("non-finite values")
    return x


def pose_to_dict(cTw: np.ndarray) -> dict[str, Any]:
    t, rvec = pose_to_translation_rotvec(cTw)
    return {
        "schema_version": POSE_SCHEMA,
        "cTw": np.asarray(cTw, dtype=np.float64).tolist(),
        "translation": t.tolist(),
        "rotvec_rad": rvec.tolist(),
    }


def parse_pose(data: dict[str, Any]) -> np.ndarray:
    """
    Read a pose object. `cTw` wins when present, otherwise `translation` + `rotvec_rad`.
    """
    if str(data.get("schema_version", POSE_SCHEMA)) != POSE_SCHEMA:
        raise ValueError("unsupported pose schema")
    if "cTw" in data:
        return as_pose(_to_float_matrix(data["cTw"], (4, 4)))
    if "translation" in data and "rotvec_rad" in data:
        t = _to_float_matrix(data["translation"], (3,))
        rvec = _to_float_matrix(data["rotvec_rad"], (3,))
        return pose_from_translation_rotvec(t, rvec)
    raise ValueError("pose needs either cTw or translation + rotvec_rad")


def save_pose(path: Path, cTw: np.ndarray) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(pose_to_dict(cTw), indent=2, sort_keys=True), encoding="utf-8")
    return path


def load_pose(path: Path) -> np.ndarray:
    return parse_pose(json.loads(Path(path).read_text(encoding="utf-8")))


def estimate_to_dict(result: PoseEstimate) -> dict[str, Any]:
    return {
        "schema_version": ESTIMATE_SCHEMA,
        "pose": pose_to_dict(result.pose),
        "iterations": int(result.iterations),
        "converged": bool(result.converged),
        "residual_norm": float(result.residual_norm),
        "twist_norm": float(result.twist_norm),
        "history": [float(r) for r in result.history],
    }


def save_estimate(path: Path, result: PoseEstimate) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(estimate_to_dict(result), indent=2, sort_keys=True), encoding="utf-8")
    return path
