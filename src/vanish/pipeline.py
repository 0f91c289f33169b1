"""
Background reconstruction pipeline.

Runs the stages in strict order, each one completing before the next
starts:

1. Histogram building (reads every frame)
2. Mode selection
3. Pass 1 and confidence gate (reads every frame again)
4. Pass 2 (reads every frame a third time)
5. Compositing

No decoded frame is kept between stages; memory is bounded by the
histograms plus one frame.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import numpy as np

from .buckets import BucketMapper
from .composite import CompositeResult, composite_output
from .config import MIN_FRAMES, FrameInfo, InputError, ReconstructionConfig
from .histogram import build_histograms, pixel_histogram
from .io import inspect_frame, read_frame
from .mode import ModeMap, select_modes
from .reconstruct import Accumulator, apply_gate, confidence_frames, first_pass, second_pass

logger = logging.getLogger(__name__)


@dataclass
class Reconstruction:
    """Outcome of one reconstruction run."""

    composite: CompositeResult
    modes: ModeMap
    mapper: BucketMapper
    frame_info: FrameInfo
    n_frames: int
    conf_frames: int
    first_pass_failed: int
    second_pass_failed: int

    @property
    def background(self) -> np.ndarray:
        """Background as integers in the frame intensity range."""
        return self.composite.background_image(self.frame_info.max_val)

    def stats(self) -> dict[str, float]:
        """Summary statistics for reports."""
        n_pixels = self.frame_info.width * self.frame_info.height
        return {
            "n_frames": self.n_frames,
            "n_pixels": n_pixels,
            "buckets": self.mapper.buckets,
            "conf_frames": self.conf_frames,
            "first_pass_failed": self.first_pass_failed,
            "second_pass_failed": self.second_pass_failed,
            "low_confidence_fraction": self.second_pass_failed / n_pixels if n_pixels else 0.0,
            "mean_confidence": float(np.mean(self.composite.confidence)),
        }


def _check_frame_count(paths: list[Path]) -> None:
    if len(paths) == 0:
        raise InputError("Image list empty")
    if len(paths) < MIN_FRAMES:
        raise InputError(f"At least {MIN_FRAMES} frames are required, got {len(paths)}")


def reconstruct_background(
    paths: list[Path],
    config: ReconstructionConfig | None = None,
    reader: Callable[[Path], np.ndarray] = read_frame,
    show_progress: bool = True,
    progress=None,
) -> Reconstruction:
    """
    Reconstruct the static background of a frame sequence.

    Parameters
    ----------
    paths : list[Path]
        Frame files in sequence order (at least two).
    config : ReconstructionConfig, optional
        Configuration. Uses defaults if not provided.
    reader : callable, default read_frame
        Frame decoder, called once per frame per stage.
    show_progress : bool, default True
        Show per-pass progress bars.
    progress : PipelineProgress, optional
        Stage tracker for console output.

    Returns
    -------
    Reconstruction
        Background, confidence data and pass statistics.

    Raises
    ------
    InputError
        Fewer than two frames, or frames of different shapes.
    FrameDecodeError
        Any frame fails to decode. Nothing is produced.
    """
    if config is None:
        config = ReconstructionConfig()
    config.validate()

    paths = [Path(p) for p in paths]
    _check_frame_count(paths)
    n_frames = len(paths)

    info = inspect_frame(paths[0], bit_depth=config.bit_depth, reader=reader)
    mapper = BucketMapper(bucket_size=config.fit_bucket_size(info.max_val), max_val=info.max_val)
    logger.info(
        "Settings: %d buckets of %d, confidence %.2f, %d frames",
        mapper.buckets, mapper.bucket_size, config.confidence_level, n_frames,
    )
    parallel = {"workers": config.workers, "chunk_rows": config.chunk_rows}

    # --- Histograms ---
    t0 = time.time()
    if progress:
        progress.start_stage(2)
    histograms = build_histograms(
        paths, mapper, info.shape, reader=reader, show_progress=show_progress, **parallel
    )
    if progress:
        progress.complete_stage(f"{histograms.n_frames} frames counted")

    # --- Modes ---
    if progress:
        progress.start_stage(3)
    modes = select_modes(histograms, **parallel)
    del histograms
    if progress:
        progress.complete_stage()

    # --- Pass 1 + gate ---
    conf_frames = confidence_frames(config.confidence_level, n_frames)
    acc = Accumulator.empty(info.shape)
    if progress:
        progress.start_stage(4)
        progress.update_detail(f"Confidence threshold: {conf_frames} frames")
    first_pass(paths, modes, mapper, acc, reader=reader, show_progress=show_progress, **parallel)
    first_failed = apply_gate(acc, conf_frames)
    if progress:
        progress.complete_stage(f"{first_failed} pixels unresolved")

    # --- Pass 2 ---
    if progress:
        progress.start_stage(5)
    second_pass(paths, modes, mapper, acc, reader=reader, show_progress=show_progress, **parallel)

    composite = composite_output(acc, conf_frames, n_frames)
    second_failed = composite.n_low_confidence
    if progress:
        progress.complete_stage(f"{second_failed} pixels on fallback")

    logger.info(
        "Reconstruction finished in %.1fs. 1st pass failed pixels: %d, 2nd pass failed pixels: %d",
        time.time() - t0, first_failed, second_failed,
    )

    return Reconstruction(
        composite=composite,
        modes=modes,
        mapper=mapper,
        frame_info=info,
        n_frames=n_frames,
        conf_frames=conf_frames,
        first_pass_failed=first_failed,
        second_pass_failed=second_failed,
    )


def inspect_pixel(
    paths: list[Path],
    x: int,
    y: int,
    config: ReconstructionConfig | None = None,
    reader: Callable[[Path], np.ndarray] = read_frame,
    show_progress: bool = False,
) -> dict:
    """
    Histograms and selected mode of a single pixel.

    Only the requested pixel is accumulated, so inspection costs one
    decode per frame and almost no memory.

    Parameters
    ----------
    paths : list[Path]
        Frame files in sequence order.
    x, y : int
        Pixel column and row.
    config : ReconstructionConfig, optional
        Bucket size and bit depth to use.
    reader : callable, default read_frame
        Frame decoder.
    show_progress : bool, default False
        Show progress bar.

    Returns
    -------
    dict
        ``{"x", "y", "buckets", "bucket_size", "channels": [...]}`` where
        each channel entry holds ``count_a``, ``count_b``, ``mode`` and the
        mode's intensity ``range``.
    """
    if config is None:
        config = ReconstructionConfig()
    config.validate()

    paths = [Path(p) for p in paths]
    _check_frame_count(paths)

    info = inspect_frame(paths[0], bit_depth=config.bit_depth, reader=reader)
    if not (0 <= x < info.width and 0 <= y < info.height):
        raise IndexError(f"Pixel ({x}, {y}) outside {info.width}x{info.height} image")

    mapper = BucketMapper(bucket_size=config.fit_bucket_size(info.max_val), max_val=info.max_val)

    def pixel_reader(path: Path) -> np.ndarray:
        return reader(path)[y:y + 1, x:x + 1]

    histograms = build_histograms(
        paths,
        mapper,
        (1, 1, info.channels),
        reader=pixel_reader,
        workers=1,
        show_progress=show_progress,
    )
    modes = select_modes(histograms, workers=1)

    channels = []
    for channel in range(info.channels):
        count_a, count_b = pixel_histogram(histograms, 0, 0, channel)
        entry = modes.entry(0, 0, channel)
        channels.append({
            "channel": channel,
            "count_a": count_a.tolist(),
            "count_b": count_b.tolist(),
            "mode": entry,
            "range": mapper.value_range(entry["bucket_id"], entry["is_primary"]),
        })

    return {
        "x": x,
        "y": y,
        "n_frames": histograms.n_frames,
        "buckets": mapper.buckets,
        "bucket_size": mapper.bucket_size,
        "channels": channels,
    }
