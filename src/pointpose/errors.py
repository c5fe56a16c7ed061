from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

import numpy as np

if TYPE_CHECKING:
    from pointpose.core.gauss_newton import PoseEstimate


class PoseEstimationError(RuntimeError):
    """Base class for failures of a single estimation call."""


class InsufficientCorrespondencesError(PoseEstimationError, ValueError):
    def __init__(self, n_points: int, n_required: int) -> None:
        super().__init__(f"need >= {n_required} correspondences, got {n_points}")
        self.n_points = int(n_points)
        self.n_required = int(n_required)


class DegenerateProjectionError(PoseEstimationError):
    """A transformed point has (near) zero depth, so x=X/Z is undefined."""

    def __init__(self, indices: Sequence[int], min_depth: float) -> None:
        idx = [int(i) for i in indices]
        super().__init__(f"points {idx} have |Z| <= {min_depth:g} in the camera frame")
        self.indices = tuple(idx)
        self.min_depth = float(min_depth)


class IllConditionedJacobianError(PoseEstimationError):
    def __init__(self, singular_values: np.ndarray, rank_rtol: float) -> None:
        s = np.asarray(singular_values, dtype=np.float64).reshape(-1)
        if s.size and np.all(np.isfinite(s)):
            msg = f"Jacobian is rank deficient (s_min/s_max={s[-1] / max(s[0], 1e-300):.3e} <= {rank_rtol:g})"
        else:
            msg = "Jacobian has non-finite entries"
        super().__init__(msg)
        self.singular_values = s
        self.rank_rtol = float(rank_rtol)


class NonConvergenceError(PoseEstimationError):
    def __init__(self, result: PoseEstimate) -> None:
        super().__init__(
            f"no convergence after {result.iterations} iterations (residual={result.residual_norm:.3e})"
        )
        self.result = result
