"""
Command-line interface for the vanish pipeline.

Usage:
    python -m vanish run <sequence_path> [options]
    vanish run <sequence_path> [options]
    vanish inspect <sequence_path> X Y [options]

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

from .cli_output import (
    Colors,
    PipelineProgress,
    format_counts,
    print_banner,
    print_error,
    print_header,
    print_info,
    print_metric,
    print_path,
    print_run_summary,
    print_success,
    print_warning,
    setup_terminal,
)
from .composite import confidence_mask_image
from .config import (
    DEFAULT_BUCKET_SIZE,
    DEFAULT_CONFIDENCE_LEVEL,
    InputError,
    ReconstructionConfig,
    ReconstructionResult,
)
from .io import DEFAULT_EXTENSIONS, list_frames, load_frame_list, write_image
from .pipeline import inspect_pixel, reconstruct_background
from .report import write_all_reports
from .utils import (
    ensure_output_dir,
    format_duration,
    get_platform_info,
    get_timestamp_iso,
    get_version,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%H:%M:%S",
    )


def discover_frames(
    sequence_path: Path,
    config: ReconstructionConfig,
    frame_list_path: str | Path | None = None,
    extensions: tuple[str, ...] | list[str] = DEFAULT_EXTENSIONS,
) -> list[Path]:
    """Frames from an explicit list when given, else from the folder."""
    if frame_list_path:
        return load_frame_list(frame_list_path, sequence_path)
    return list_frames(
        sequence_path,
        extensions=extensions,
        exclude=(config.output_name, config.mask_name),
    )


def run_sequence(
    sequence_path: str | Path,
    output_root: str | Path = "vanished",
    config: ReconstructionConfig | None = None,
    frame_list_path: str | Path | None = None,
    extensions: tuple[str, ...] | list[str] = DEFAULT_EXTENSIONS,
    quiet: bool = False,
) -> ReconstructionResult:
    """
    Execute the full reconstruction pipeline for a sequence folder.

    Parameters
    ----------
    sequence_path : str or Path
        Folder holding the frames.
    output_root : str or Path, default "vanished"
        Root directory for outputs. Results go to a subfolder named
        after the sequence.
    config : ReconstructionConfig, optional
        Configuration. Uses defaults if not provided.
    frame_list_path : str or Path, optional
        File listing the frames to use, in order.
    extensions : sequence of str
        Frame suffixes accepted during discovery.
    quiet : bool, default False
        If True, suppress colored output (use logging only).

    Returns
    -------
    ReconstructionResult
        Complete result with paths to outputs and statistics.

    Raises
    ------
    InputError
        Fewer than two frames found, or frames of different shapes.
    FrameDecodeError
        A frame could not be decoded.
    """
    start_time = time.time()
    sequence_path = Path(sequence_path).resolve()
    output_root = Path(output_root).resolve()

    if config is None:
        config = ReconstructionConfig()
    config.validate()

    sequence_id = sequence_path.name

    if not quiet:
        setup_terminal()
        print_banner(get_version())
        print_header(f"Sequence: {sequence_id}")
        print_metric("Bucket size", config.bucket_size)
        print_metric("Confidence", f"{config.confidence_level:.0%}")

    logger.info("Processing sequence: %s", sequence_id)

    result = ReconstructionResult(
        sequence_id=sequence_id,
        sequence_path=str(sequence_path),
        config=config,
        version=get_version(),
        platform=get_platform_info(),
    )

    progress = PipelineProgress(quiet=quiet)

    # --- Stage 1: Discovery ---
    progress.start_stage(1)
    frames = discover_frames(sequence_path, config, frame_list_path, extensions)
    result.inputs = [str(p) for p in frames]

    if len(frames) < 2:
        progress.fail_stage(f"Found {len(frames)} frame(s), need at least 2")
        raise InputError(f"Not enough frames in {sequence_path}: {len(frames)}")
    progress.complete_stage(f"{len(frames)} frames ready")

    # --- Stages 2-5: Reconstruction ---
    reconstruction = reconstruct_background(
        frames,
        config=config,
        show_progress=not quiet,
        progress=progress,
    )
    result.frame_info = reconstruction.frame_info
    result.stats.update(reconstruction.stats())

    # --- Stage 6: Outputs ---
    progress.start_stage(6)
    output_dir = ensure_output_dir(output_root, sequence_id)

    background_path = write_image(output_dir / config.output_name, reconstruction.background)
    result.outputs["background"] = str(background_path)

    if config.write_confidence_mask:
        mask_path = write_image(
            output_dir / config.mask_name,
            confidence_mask_image(reconstruction.composite),
        )
        result.outputs["confidence_mask"] = str(mask_path)

    elapsed = time.time() - start_time
    result.timestamp = get_timestamp_iso()
    result.stats["processing_time_s"] = elapsed

    report_paths = write_all_reports(result, output_dir)
    result.outputs.update({f"report_{k}": str(v) for k, v in report_paths.items()})
    progress.complete_stage(f"Wrote {len(result.outputs)} files")

    if not quiet:
        if reconstruction.second_pass_failed:
            print_warning(
                f"{reconstruction.second_pass_failed} pixels fell back to the temporal mean"
            )
        else:
            print_success("Every pixel resolved from its mode")
        print_run_summary(
            n_frames=len(frames),
            n_pixels=int(result.stats["n_pixels"]),
            first_pass_failed=reconstruction.first_pass_failed,
            second_pass_failed=reconstruction.second_pass_failed,
            elapsed=elapsed,
        )
        print_path("Output", result.outputs["background"])
        if "confidence_mask" in result.outputs:
            print_path("Confidence mask", result.outputs["confidence_mask"])

    logger.info("Processing complete in %s", format_duration(elapsed))

    return result


def print_pixel_report(report: dict) -> None:
    """Print the histograms and mode of an inspected pixel."""
    print_header(f"Pixel information for {report['x']}, {report['y']}")
    print_metric("Frames", report["n_frames"])
    print_metric("Buckets", f"{report['buckets']} x {report['bucket_size']}")

    for entry in report["channels"]:
        mode = entry["mode"]
        kind = "A" if mode["is_primary"] else "B"
        winner_a = mode["bucket_id"] if mode["is_primary"] else None
        winner_b = None if mode["is_primary"] else mode["bucket_id"]
        print_info(f"Channel {entry['channel']}")
        print(f"    A Buckets: {format_counts(entry['count_a'], winner_a, Colors.PRIMARY)}")
        print(f"    B Buckets: {format_counts(entry['count_b'], winner_b, Colors.OFFSET)}")
        value_range = entry["range"]
        span = f"{value_range[0]}-{value_range[1]}" if value_range else "empty"
        print(
            f"    {Colors.METRIC}Mode: {Colors.VALUE}{kind}{mode['bucket_id']}{Colors.RESET}"
            f" ({mode['confidence']} frames, values {span})"
        )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="vanish",
        description="Remove transient objects from an image sequence",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vanish {get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Shared histogram options
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "sequence",
        type=str,
        help="Folder containing the frames",
    )
    common.add_argument(
        "--bucket-size",
        type=int,
        default=DEFAULT_BUCKET_SIZE,
        help=f"Histogram bucket width, 1-128 (default: {DEFAULT_BUCKET_SIZE})",
    )
    common.add_argument(
        "--bit-depth",
        type=int,
        default=None,
        help="Bits per channel (default: inferred from the frames)",
    )
    common.add_argument(
        "--frame-list",
        type=str,
        default=None,
        help="File listing frames to use, one per line, in order",
    )
    common.add_argument(
        "--ext",
        nargs="+",
        default=list(DEFAULT_EXTENSIONS),
        help="Frame file extensions to discover",
    )
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Reconstruct the background of a sequence",
    )
    run_parser.add_argument(
        "--out",
        type=str,
        default="vanished",
        help="Output root directory (default: vanished)",
    )
    run_parser.add_argument(
        "--confidence",
        type=float,
        default=DEFAULT_CONFIDENCE_LEVEL,
        help=f"Fraction of frames that must agree with the mode (default: {DEFAULT_CONFIDENCE_LEVEL})",
    )
    run_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads (default: CPU count - 1)",
    )
    run_parser.add_argument(
        "--output-name",
        type=str,
        default="output.png",
        help="Background file name (default: output.png)",
    )
    run_parser.add_argument(
        "--no-mask",
        action="store_true",
        help="Do not write the confidence mask",
    )
    run_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress colored output and progress bars",
    )

    # Inspect command
    inspect_parser = subparsers.add_parser(
        "inspect",
        parents=[common],
        help="Print the histograms and mode of one pixel",
    )
    inspect_parser.add_argument("x", type=int, help="Pixel column")
    inspect_parser.add_argument("y", type=int, help="Pixel row")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    if args.command == "run":
        config = ReconstructionConfig(
            bucket_size=args.bucket_size,
            bit_depth=args.bit_depth,
            confidence_level=args.confidence,
            workers=args.workers,
            write_confidence_mask=not args.no_mask,
            output_name=args.output_name,
        )

        try:
            run_sequence(
                args.sequence,
                output_root=args.out,
                config=config,
                frame_list_path=args.frame_list,
                extensions=args.ext,
                quiet=args.quiet,
            )
            return 0

        except Exception as e:
            print_error(f"Reconstruction failed: {e}")
            logger.exception("Reconstruction failed: %s", e)
            return 1

    elif args.command == "inspect":
        config = ReconstructionConfig(bucket_size=args.bucket_size, bit_depth=args.bit_depth)

        try:
            sequence_path = Path(args.sequence)
            frames = discover_frames(sequence_path, config, args.frame_list, args.ext)
            report = inspect_pixel(frames, args.x, args.y, config=config, show_progress=True)
        except Exception as e:
            print_error(f"Inspection failed: {e}")
            logger.exception("Inspection failed: %s", e)
            return 1

        setup_terminal()
        print_pixel_report(report)
        return 0

    return 1
