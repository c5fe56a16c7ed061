from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path

import numpy as np

from pointpose.api.pose_io import load_pose, parse_pose, save_estimate
from pointpose.correspondences import parse_correspondences
from pointpose.core.gauss_newton import GaussNewtonConfig, load_solver_config, refine_pose, validate_config
from pointpose.errors import NonConvergenceError, PoseEstimationError
from pointpose.eval.pose_accuracy import pose_errors, reprojection_rms
from pointpose.sim.synthetic import random_scene, reference_scene, write_scene

LOGGER = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _format_pose(cTw: np.ndarray) -> str:
    return np.array2string(np.asarray(cTw), precision=6, suppress_small=True, floatmode="fixed")


def _solver_config(args: argparse.Namespace) -> GaussNewtonConfig:
    config = load_solver_config(args.config) if args.config is not None else GaussNewtonConfig()
    overrides = {
        name: getattr(args, name)
        for name in ("gain", "max_iters", "abs_tol", "rel_tol")
        if getattr(args, name) is not None
    }
    return validate_config(dataclasses.replace(config, **overrides))


def _run_simulate(args: argparse.Namespace) -> int:
    if args.reference:
        scene = reference_scene()
    else:
        scene = random_scene(args.points, seed=args.seed, noise_std=args.noise_std, planar=args.planar)
    path = write_scene(args.out, scene)
    print(f"Wrote {path}")
    return 0


def _run_estimate(args: argparse.Namespace) -> int:
    try:
        data = json.loads(Path(args.problem).read_text(encoding="utf-8"))
        corr = parse_correspondences(data)
        if args.init_pose is not None:
            cTw_init = load_pose(args.init_pose)
        elif "initial_pose" in data:
            cTw_init = parse_pose(data["initial_pose"])
        else:
            LOGGER.error("no initial pose: pass --init-pose or add initial_pose to %s", args.problem)
            return 2
        config = _solver_config(args)
    except ValueError as e:
        LOGGER.error("invalid input: %s", e)
        return 2

    try:
        result = refine_pose(corr, cTw_init, config)
    except NonConvergenceError as e:
        LOGGER.error("%s", e)
        if args.out is not None:
            save_estimate(args.out, e.result)
        return 2
    except PoseEstimationError as e:
        LOGGER.error("pose estimation failed: %s", e)
        return 2

    print("cTw (estimated):")
    print(_format_pose(result.pose))
    print(f"iterations: {result.iterations}  residual: {result.residual_norm:.3e}")
    print(f"reprojection rms (normalized): {reprojection_rms(result.pose, corr):.3e}")
    if "ground_truth_pose" in data:
        errs = pose_errors(result.pose, parse_pose(data["ground_truth_pose"]))
        print(f"rotation error: {errs['rotation_error_deg']:.3e} deg  translation error: {errs['translation_error']:.3e}")
    if args.out is not None:
        print(f"Wrote {save_estimate(args.out, result)}")
    return 0


def _run_demo(args: argparse.Namespace) -> int:
    scene = reference_scene()
    try:
        config = _solver_config(args)
    except ValueError as e:
        LOGGER.error("invalid solver settings: %s", e)
        return 2
    try:
        result = refine_pose(scene.correspondences(), scene.cTw_init, config)
    except PoseEstimationError as e:
        LOGGER.error("pose estimation failed: %s", e)
        return 2
    print("cTw (ground truth):")
    print(_format_pose(scene.cTw_true))
    print("cTw (from non linear method):")
    print(_format_pose(result.pose))
    print(f"iterations: {result.iterations}")
    return 0


def _add_solver_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", type=Path, default=None, help="JSON file with solver settings.")
    p.add_argument("--gain", type=float, default=None, help="Step gain in (0, 1] (default 0.25).")
    p.add_argument("--max-iters", type=int, default=None)
    p.add_argument("--abs-tol", type=float, default=None, help="Absolute tolerance on the residual change.")
    p.add_argument("--rel-tol", type=float, default=None, help="Relative tolerance on the residual change.")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pointpose")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sim = sub.add_parser("simulate", help="Write a synthetic correspondence file with known pose.")
    sim.add_argument("--out", type=Path, required=True)
    sim.add_argument("--reference", action="store_true", help="Write the fixed four-point reference scene.")
    sim.add_argument("--points", type=int, default=8, help="Number of random points.")
    sim.add_argument("--noise-std", type=float, default=0.0, help="Noise on normalized coordinates.")
    sim.add_argument("--planar", action="store_true", help="Put random points on the Z=0 plane.")
    sim.add_argument("--seed", type=int, default=0)

    est = sub.add_parser("estimate", help="Estimate cTw from a correspondence file.")
    est.add_argument("problem", type=Path)
    est.add_argument("--init-pose", type=Path, default=None, help="Pose JSON (default: initial_pose of the problem).")
    est.add_argument("--out", type=Path, default=None, help="Write the estimate as JSON.")
    _add_solver_args(est)

    demo = sub.add_parser("demo", help="Run the reference four-point scene.")
    _add_solver_args(demo)

    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if args.cmd == "simulate":
        return _run_simulate(args)
    if args.cmd == "estimate":
        return _run_estimate(args)
    if args.cmd == "demo":
        return _run_demo(args)

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
