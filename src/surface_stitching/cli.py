"""
Command-line entry point for stitching two partial point clouds.

Example:
    surface-stitching StitchReference.ply StitchTarget.ply --output stitched.ply

Exit codes:
    0  registration succeeded (or hit the iteration cap without --strict)
    1  registration failed: the clouds do not overlap or nothing was registered
    2  missing or unreadable input file, invalid configuration or output format
    3  iteration cap reached and --strict given
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .alignment.pairwise_registration import RegistrationStatus
from .alignment.stitching import StitchingResult, SurfaceStitcher
from .preprocessing.loader import PointCloudLoader
from .utils.config import AppConfig, load_config
from .utils.export import EXPORT_SUFFIXES, export_point_cloud
from .utils.logging import configure_logging, setup_logger

logger = setup_logger(__name__)

EXIT_OK = 0
EXIT_REGISTRATION_FAILED = 1
EXIT_MISSING_INPUT = 2
EXIT_NOT_CONVERGED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Register two partial point clouds of one object and stitch them together"
    )
    parser.add_argument("reference", nargs="?", default=None, help="Reference (fixed) point cloud (.ply/.las/.laz)")
    parser.add_argument("target", nargs="?", default=None, help="Target (moving) point cloud (.ply/.las/.laz)")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument("--grid-size", type=float, default=None, help="Decimation cell size for unorganized clouds")
    parser.add_argument("--decimation-step", type=int, default=None, help="Row/column decimation step for organized clouds")
    parser.add_argument("--no-subsample", action="store_true", help="Register on all points")
    parser.add_argument("--max-iterations", type=int, default=None, help="Maximum ICP iterations")
    parser.add_argument(
        "--rms-threshold",
        type=float,
        default=None,
        help="Relative RMS error improvement (percent) below which ICP stops",
    )
    parser.add_argument("--overlap", type=float, default=None, help="Expected overlap for the pre-registration (percent)")
    parser.add_argument(
        "--metric",
        choices=["point_to_point", "point_to_plane"],
        default=None,
        help="Error minimization metric",
    )
    parser.add_argument("--output", type=str, default=None, help="Write the stitched cloud to this file")
    parser.add_argument("--show", action="store_true", help="Display the input and stitched clouds")
    parser.add_argument("--strict", action="store_true", help="Fail when the iteration cap is reached")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override the configured log level",
    )
    return parser


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Copy command-line overrides into the configuration (validated on copy)."""
    data = cfg.model_dump()
    reg = data["registration"]
    if args.reference:
        data["input"]["reference"] = args.reference
    if args.target:
        data["input"]["target"] = args.target
    if args.grid_size is not None:
        reg["grid_size"] = args.grid_size
    if args.decimation_step is not None:
        reg["decimation_step"] = args.decimation_step
    if args.no_subsample:
        reg["subsample"] = False
    if args.max_iterations is not None:
        reg["max_iterations"] = args.max_iterations
    if args.rms_threshold is not None:
        reg["rms_error_relative_threshold"] = args.rms_threshold
    if args.overlap is not None:
        reg["overlap"] = args.overlap
    if args.metric is not None:
        reg["metric"] = args.metric
    if args.output:
        data["output"]["path"] = args.output
    if args.show:
        data["visualization"]["enabled"] = True
    if args.log_level:
        data["logging"]["level"] = args.log_level
    return AppConfig.model_validate(data)


def format_report(result: StitchingResult, max_iterations: int) -> str:
    """Human-readable summary of the registration outcome."""
    registration = result.registration
    elapsed_ms = result.elapsed_s * 1000.0
    status = registration.status

    if status == RegistrationStatus.NOT_INITIALIZED:
        return "Registration failed: the registration result is not initialized."
    if status == RegistrationStatus.NOT_ENOUGH_POINT_PAIRS:
        return "Registration failed: point clouds are not overlapping."
    if status == RegistrationStatus.MAX_ITERATIONS_REACHED:
        return (
            f"Registration reached the maximum number of iterations allowed ({max_iterations}) "
            f"in {elapsed_ms:.2f} ms. Resulting transform may or may not be valid."
        )
    return (
        f"The registration of the two partial point clouds succeeded in {elapsed_ms:.2f} ms "
        f"({registration.n_iterations} iterations) with a final RMS error of {registration.rms_error:.6f}."
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main function to run the stitching workflow.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)

    try:
        cfg = apply_overrides(load_config(args.config, allow_missing=args.config is None), args)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_MISSING_INPUT

    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    configure_logging(log_level, cfg.logging.file)

    if not cfg.input.reference or not cfg.input.target:
        logger.error("Both a reference and a target point cloud are required.")
        return EXIT_MISSING_INPUT

    if cfg.output.path and Path(cfg.output.path).suffix.lower() not in EXPORT_SUFFIXES:
        logger.error(
            f"Unsupported output format '{Path(cfg.output.path).suffix}'; "
            f"expected one of {', '.join(EXPORT_SUFFIXES)}"
        )
        return EXIT_MISSING_INPUT

    loader = PointCloudLoader()
    try:
        reference = loader.load(cfg.input.reference)
        target = loader.load(cfg.input.target)
    except FileNotFoundError as e:
        logger.error(f"The input data needed to run the stitching is missing: {e}")
        return EXIT_MISSING_INPUT
    except ValueError as e:
        logger.error(f"Could not read input point cloud: {e}")
        return EXIT_MISSING_INPUT

    stitcher = SurfaceStitcher.from_config(cfg)
    logger.info("Registering target onto reference...")
    result = stitcher.stitch(reference, target)

    report = format_report(result, cfg.registration.max_iterations)
    print(report)

    if result.merged is not None:
        if cfg.output.path:
            export_point_cloud(result.merged, cfg.output.path)
        if cfg.visualization.enabled:
            _show(cfg, reference, target, result, stitcher)

    status = result.status
    if not status.has_transform:
        return EXIT_REGISTRATION_FAILED
    if status == RegistrationStatus.MAX_ITERATIONS_REACHED and args.strict:
        return EXIT_NOT_CONVERGED
    return EXIT_OK


def _show(cfg: AppConfig, reference, target, result: StitchingResult, stitcher: SurfaceStitcher) -> None:
    from .visualization.point_cloud import PointCloudVisualizer

    visualizer = PointCloudVisualizer(
        backend=cfg.visualization.backend,
        sample_size=cfg.visualization.sample_size,
    )
    visualizer.display(
        [reference, target],
        ["Reference partial point cloud", "Target partial point cloud"],
        boxes=[stitcher.prealign_box],
        title="Input point clouds and expected overlap region",
    )
    visualizer.display(
        [result.merged],
        ["Stitched point cloud"],
        boxes=[stitcher.prealign_box],
        title="Stitched point cloud",
    )


if __name__ == "__main__":
    sys.exit(main())
