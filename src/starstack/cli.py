"""
Command-line interface for starstack.

Usage:
    python -m starstack stack <frames or folder> [options]
    starstack stack <frames or folder> [options]
    starstack detect <frame> [options]

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .calibration import create_master_frame
from .cli_output import (
    StackProgressBar,
    print_alignment_table,
    print_banner,
    print_error,
    print_header,
    print_info,
    print_metric,
    print_path,
    print_stage,
    print_success,
    print_summary_box,
    print_warning,
    setup_terminal,
)
from .config import (
    AlignmentStrategy,
    BasicSettings,
    CombineMode,
    DetectionConfig,
    LevelsSettings,
    StackConfig,
)
from .detect import detect_stars
from .frame import Star
from .io import list_images, load_frames, read_image, write_image
from .pipeline import CalibrationMasters, StackJob, run_stack
from .report import write_report, write_report_markdown
from .utils import format_duration, get_version

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%H:%M:%S",
    )


def expand_inputs(inputs: list[str]) -> list[Path]:
    """Expand folders into their image files, keeping order."""
    paths: list[Path] = []
    for item in inputs:
        p = Path(item)
        if p.is_dir():
            paths.extend(list_images(p))
        else:
            paths.append(p)
    return paths


def parse_star(text: str) -> Star:
    """Parse 'X,Y' into a manual reference star."""
    try:
        x_str, y_str = text.split(",")
        return Star(x=float(x_str), y=float(y_str), brightness=0.0, manual=True)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y, got {text!r}")


def _master(paths: list[str] | None, kind: str):
    if not paths:
        return None
    return create_master_frame(load_frames(expand_inputs(paths)), kind=kind)


def build_config(args: argparse.Namespace) -> StackConfig:
    """Translate parsed arguments into a StackConfig."""
    levels = None
    if args.black is not None or args.white is not None or args.midtones is not None:
        levels = LevelsSettings(
            black_point=args.black if args.black is not None else 0.0,
            midtones=args.midtones if args.midtones is not None else 1.0,
            white_point=args.white if args.white is not None else 255.0,
        )

    basic = None
    if args.brightness is not None or args.exposure is not None or args.saturation is not None:
        basic = BasicSettings(
            brightness=args.brightness if args.brightness is not None else 100.0,
            exposure=args.exposure if args.exposure is not None else 0.0,
            saturation=args.saturation if args.saturation is not None else 100.0,
        )

    detection = DetectionConfig()
    if args.threshold is not None:
        detection.threshold = None if args.threshold == "auto" else float(args.threshold)

    return StackConfig(
        strategy=args.align,
        quality=args.quality,
        detection=detection,
        mode=args.mode,
        sigma=args.sigma,
        remove_stars=args.remove_stars is not None,
        star_strength=args.remove_stars if args.remove_stars is not None else 200.0,
        star_reduction_radius=args.reduce_stars,
        levels=levels,
        basic=basic,
        workers=args.workers,
    )


def cmd_stack(args: argparse.Namespace) -> int:
    """Run the stack command."""
    if not args.quiet:
        setup_terminal()
        print_banner(get_version())

    config = build_config(args)
    config.validate()

    paths = expand_inputs(args.frames)
    if not args.quiet:
        print_stage(1, f"Loading {len(paths)} frames")
    frames = load_frames(paths)

    calibration = CalibrationMasters(
        dark=_master(args.dark, "dark"),
        bias=_master(args.bias, "bias"),
        flat=_master(args.flat, "flat"),
    )

    if not args.quiet:
        print_stage(2, f"Aligning ({config.strategy.value}) and combining ({config.mode.value})")
    with StackProgressBar(disable=args.quiet) as bar:
        result = run_stack(StackJob(
            frames=frames,
            config=config,
            manual_stars=args.star or None,
            calibration=None if calibration.is_empty() else calibration,
            progress=bar,
        ))

    if args.report:
        if Path(args.report).suffix.lower() == ".md":
            write_report_markdown(result, args.report)
        else:
            write_report(result, args.report, config=config, inputs=[p.name for p in paths])

    if not result.success:
        print_error(f"Stacking failed: {result.message}")
        return 1

    out_path = write_image(args.out, result.image)

    if not args.quiet:
        print_stage(3, "Alignment")
        print_alignment_table(result.alignments, {i: p.name for i, p in enumerate(paths)})
        for r in result.rejected:
            print_warning(f"{r.name}: {r.reason.value} ({r.detail})")
        print_summary_box([
            f"Frames stacked: {result.stats['n_stacked']}/{result.stats['n_input']}",
            f"Rejected: {len(result.rejected)}",
            f"Elapsed: {format_duration(result.stats['elapsed_s'])}",
        ], title="Stack complete")
        print_path("Output", str(out_path))
        if args.report:
            print_path("Report", str(args.report))
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    """Run the detect command."""
    frame = read_image(args.frame)
    threshold = None if args.threshold == "auto" else float(args.threshold)
    config = DetectionConfig(threshold=threshold)
    config.validate()
    stars = detect_stars(frame, config=config)

    if args.json:
        print(json.dumps([
            {"x": s.x, "y": s.y, "brightness": s.brightness, "size": s.size,
             "fwhm": s.fwhm, "roundness": s.roundness}
            for s in stars[: args.limit]
        ], indent=2))
        return 0

    print_header(f"Stars in {frame.name}")
    print_info(f"{frame.width}x{frame.height}, threshold={args.threshold}")
    print_metric("Stars detected", len(stars))
    for i, s in enumerate(stars[: args.limit], start=1):
        print(
            f"  {i:4d}  x={s.x:8.2f}  y={s.y:8.2f}  brightness={s.brightness:10.0f}  "
            f"size={s.size:4d}  fwhm={s.fwhm:5.2f}  roundness={s.roundness:4.2f}"
        )
    if stars:
        print_success(f"Brightest star at ({stars[0].x:.2f}, {stars[0].y:.2f})")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="starstack",
        description="Align and stack astronomical frames",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"starstack {get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Stack command
    stack_parser = subparsers.add_parser("stack", help="Align and combine frames")
    stack_parser.add_argument(
        "frames",
        nargs="+",
        help="Image files or folders; the first frame is the reference",
    )
    stack_parser.add_argument(
        "--out",
        type=str,
        default="stacked.png",
        help="Output image (default: stacked.png)",
    )
    stack_parser.add_argument(
        "--align",
        type=str,
        choices=[s.value for s in AlignmentStrategy],
        default="standard",
        help="Alignment strategy (default: standard)",
    )
    stack_parser.add_argument(
        "--mode",
        type=str,
        choices=[m.value for m in CombineMode],
        default="average",
        help="Combination mode (default: average)",
    )
    stack_parser.add_argument(
        "--sigma",
        type=float,
        default=2.0,
        help="Clipping threshold for --mode sigma (default: 2.0)",
    )
    stack_parser.add_argument(
        "--quality",
        type=float,
        default=None,
        help="Planetary limb-refinement quality, 0-100",
    )
    stack_parser.add_argument(
        "--threshold",
        type=str,
        default=None,
        help="Star detection threshold 0-255, or 'auto' (default: 180)",
    )
    stack_parser.add_argument(
        "--star",
        type=parse_star,
        action="append",
        metavar="X,Y",
        help="Manual reference star (repeatable)",
    )
    stack_parser.add_argument(
        "--remove-stars",
        type=float,
        default=None,
        metavar="STRENGTH",
        help="Remove stars brighter than STRENGTH (0-255) after stacking",
    )
    stack_parser.add_argument(
        "--reduce-stars",
        type=int,
        default=None,
        metavar="RADIUS",
        help="Shrink stars smaller than RADIUS pixels by grey opening after stacking",
    )
    stack_parser.add_argument("--black", type=float, default=None, help="Levels black point")
    stack_parser.add_argument("--white", type=float, default=None, help="Levels white point")
    stack_parser.add_argument("--midtones", type=float, default=None, help="Levels midtones (gamma)")
    stack_parser.add_argument("--brightness", type=float, default=None, help="Brightness in %%")
    stack_parser.add_argument("--exposure", type=float, default=None, help="Exposure (100 = +1 stop)")
    stack_parser.add_argument("--saturation", type=float, default=None, help="Saturation in %%")
    stack_parser.add_argument("--dark", nargs="+", default=None, help="Dark frames")
    stack_parser.add_argument("--bias", nargs="+", default=None, help="Bias frames")
    stack_parser.add_argument("--flat", nargs="+", default=None, help="Flat frames")
    stack_parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Threads for per-frame work (default: 1)",
    )
    stack_parser.add_argument(
        "--report",
        type=str,
        default=None,
        metavar="FILE",
        help="Write a report of the job (JSON, or Markdown for .md)",
    )
    stack_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    stack_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress colored output (use logging only)",
    )

    # Detect command
    detect_parser = subparsers.add_parser("detect", help="List the stars detected in a frame")
    detect_parser.add_argument("frame", type=str, help="Image file")
    detect_parser.add_argument(
        "--threshold",
        type=str,
        default="180",
        help="Detection threshold 0-255, or 'auto' (default: 180)",
    )
    detect_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum number of stars printed (default: 50)",
    )
    detect_parser.add_argument("--json", action="store_true", help="Print stars as JSON")
    detect_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    try:
        if args.command == "stack":
            return cmd_stack(args)
        if args.command == "detect":
            return cmd_detect(args)
    except (OSError, ValueError) as e:
        print_error(f"{args.command} failed: {e}")
        logger.exception("%s failed: %s", args.command, e)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
