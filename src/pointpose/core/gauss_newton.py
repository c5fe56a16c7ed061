from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np

from pointpose.correspondences import MIN_CORRESPONDENCES, Correspondences
from pointpose.core.projection import build_residual_and_jacobian
from pointpose.core.se3 import as_pose, se3_exp, se3_inverse
from pointpose.errors import IllConditionedJacobianError, InsufficientCorrespondencesError, NonConvergenceError

LOGGER = logging.getLogger(__name__)


class ConfigValidationError(ValueError):
    pass


@dataclass(frozen=True)
class GaussNewtonConfig:
    """
    Solver settings.

    - `gain`: step scale applied to the Gauss-Newton twist (0 < gain <= 1)
    - `abs_tol`, `rel_tol`: stop once |r_k - r_{k-1}| <= abs_tol + rel_tol * r_{k-1},
      where r is the sum of squared residuals; both 0 means "stop on an exact repeat"
    - `max_iters`: hard cap, exceeding it raises NonConvergenceError
    - `min_depth`: points with |Z| <= min_depth in the camera frame are rejected
    - `rank_rtol`: the Jacobian is rejected when s_min <= rank_rtol * s_max
    """

    gain: float = 0.25
    abs_tol: float = 1e-20
    rel_tol: float = 1e-10
    max_iters: int = 200
    min_depth: float = 1e-12
    rank_rtol: float = 1e-10


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigValidationError(msg)


def validate_config(config: GaussNewtonConfig) -> GaussNewtonConfig:
    _require(math.isfinite(config.gain) and 0.0 < config.gain <= 1.0, "gain must be in (0, 1]")
    _require(config.abs_tol >= 0.0 and config.rel_tol >= 0.0, "abs_tol and rel_tol must be >= 0")
    _require(int(config.max_iters) >= 1, "max_iters must be >= 1")
    _require(config.min_depth >= 0.0, "min_depth must be >= 0")
    _require(0.0 <= config.rank_rtol < 1.0, "rank_rtol must be in [0, 1)")
    return config


def parse_solver_config(data: dict[str, Any]) -> GaussNewtonConfig:
    known = {f.name for f in fields(GaussNewtonConfig)}
    unknown = sorted(set(data) - known)
    _require(not unknown, f"unknown solver settings: {unknown}")
    kwargs: dict[str, Any] = {}
    for name, value in data.items():
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError) as e:
            raise ConfigValidationError(f"{name} must be a number") from e
        if name == "max_iters":
            _require(math.isfinite(number) and number.is_integer(), "max_iters must be an integer")
            kwargs[name] = int(number)
        else:
            kwargs[name] = number
    return validate_config(GaussNewtonConfig(**kwargs))


def load_solver_config(path: Path) -> GaussNewtonConfig:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    _require(isinstance(data, dict), "solver config must be a JSON object")
    return parse_solver_config(data)


class ConvergenceStatus(Enum):
    ITERATING = "iterating"
    CONVERGED = "converged"


class ConvergenceMonitor:
    """
    Tracks the sum of squared residuals between iterations.

    `previous` starts at +inf so the first update can never look converged.
    """

    def __init__(self, abs_tol: float = 0.0, rel_tol: float = 0.0) -> None:
        self.abs_tol = float(abs_tol)
        self.rel_tol = float(rel_tol)
        self.previous = math.inf
        self.current = math.inf
        self.iterations = 0
        self.status = ConvergenceStatus.ITERATING

    @property
    def converged(self) -> bool:
        return self.status is ConvergenceStatus.CONVERGED

    def update(self, residual_norm: float) -> ConvergenceStatus:
        if self.converged:
            return self.status
        self.previous = self.current
        self.current = float(residual_norm)
        self.iterations += 1
        if math.isfinite(self.previous):
            change = abs(self.current - self.previous)
            if change <= self.abs_tol + self.rel_tol * self.previous:
                self.status = ConvergenceStatus.CONVERGED
        return self.status


def solve_twist(residual: np.ndarray, J: np.ndarray, gain: float, rank_rtol: float = 1e-10) -> np.ndarray:
    """
    Damped Gauss-Newton step: twist = -gain * pinv(J) @ residual.
    """
    residual = np.asarray(residual, dtype=np.float64).reshape(-1)
    J = np.asarray(J, dtype=np.float64)
    if not np.all(np.isfinite(J)):
        raise IllConditionedJacobianError(np.full((J.shape[1],), np.nan), rank_rtol)
    s = np.linalg.svd(J, compute_uv=False)
    if s.size < J.shape[1] or s[-1] <= rank_rtol * s[0]:
        raise IllConditionedJacobianError(s, rank_rtol)
    return -float(gain) * (np.linalg.pinv(J) @ residual)


def retract(cTw: np.ndarray, twist: np.ndarray) -> np.ndarray:
    """new cTw = exp(twist)^-1 * cTw."""
    return se3_inverse(se3_exp(twist)) @ np.asarray(cTw, dtype=np.float64).reshape(4, 4)


@dataclass(frozen=True)
class GaussNewtonStep:
    pose: np.ndarray  # (4,4) pose after the update
    twist: np.ndarray  # (6,)
    residual: np.ndarray  # (2N,) at the pose before the update
    residual_norm: float  # sum of squares of `residual`


def gauss_newton_step(
    cTw: np.ndarray,
    corr: Correspondences,
    config: GaussNewtonConfig | None = None,
) -> GaussNewtonStep:
    config = config or GaussNewtonConfig()
    residual, J, _xy = build_residual_and_jacobian(cTw, corr, min_depth=config.min_depth)
    twist = solve_twist(residual, J, gain=config.gain, rank_rtol=config.rank_rtol)
    return GaussNewtonStep(
        pose=retract(cTw, twist),
        twist=twist,
        residual=residual,
        residual_norm=float(np.sum(residual * residual)),
    )


@dataclass(frozen=True)
class PoseEstimate:
    pose: np.ndarray  # (4,4) cTw
    iterations: int
    converged: bool
    residual_norm: float  # sum of squared residuals at the last evaluated pose
    twist_norm: float  # |twist| of the last step
    history: tuple[float, ...]  # residual_norm per iteration


def refine_pose(
    corr: Correspondences,
    cTw_init: np.ndarray,
    config: GaussNewtonConfig | None = None,
) -> PoseEstimate:
    """
    Refine cTw by Gauss-Newton iterations on SE(3) until the residual stops changing.

    Each iteration evaluates the residual at the current pose, solves the damped
    step and retracts the pose; the residual norm of that iteration then feeds
    the stopping test. Raises NonConvergenceError after `max_iters` iterations.
    """
    config = validate_config(config or GaussNewtonConfig())
    if len(corr) < MIN_CORRESPONDENCES:
        raise InsufficientCorrespondencesError(len(corr), MIN_CORRESPONDENCES)
    cTw = as_pose(cTw_init)

    monitor = ConvergenceMonitor(abs_tol=config.abs_tol, rel_tol=config.rel_tol)
    history: list[float] = []
    twist_norm = math.inf
    while monitor.iterations < int(config.max_iters):
        step = gauss_newton_step(cTw, corr, config)
        cTw = step.pose
        twist_norm = float(np.linalg.norm(step.twist))
        history.append(step.residual_norm)
        monitor.update(step.residual_norm)
        LOGGER.debug("iter %d: residual=%.6e |twist|=%.3e", monitor.iterations, step.residual_norm, twist_norm)
        if monitor.converged:
            break

    result = PoseEstimate(
        pose=cTw,
        iterations=monitor.iterations,
        converged=monitor.converged,
        residual_norm=monitor.current,
        twist_norm=twist_norm,
        history=tuple(history),
    )
    if not result.converged:
        LOGGER.warning("pose refinement stopped at max_iters=%d (residual=%.3e)", config.max_iters, result.residual_norm)
        raise NonConvergenceError(result)
    LOGGER.info("pose refinement converged in %d iterations (residual=%.3e)", result.iterations, result.residual_norm)
    return result
