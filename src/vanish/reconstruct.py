"""
Two-pass confidence-gated reconstruction.

Pass 1 accepts a frame at a pixel only when every channel falls into its
selected mode bucket. Pixels that collect too few such frames are reset
and handed to pass 2, which tests only the channel with the strongest
mode. Every frame also feeds a plain temporal sum used as fallback.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import numpy as np

from .buckets import BucketMapper
from .histogram import check_frame_shape
from .io import read_frame
from .mode import ModeMap, strongest_channel
from .parallel import BandExecutor

logger = logging.getLogger(__name__)


@dataclass
class Accumulator:
    """
    Running sums of the reconstruction passes.

    Attributes
    ----------
    matched_sum : np.ndarray
        Sum of accepted frame values, shape (H, W, C).
    matched_count : np.ndarray
        Number of accepted frames per pixel, shape (H, W).
    total_sum : np.ndarray
        Sum of all frame values, shape (H, W, C).
    resolved : np.ndarray
        Pixels frozen after pass 1, shape (H, W).
    """

    matched_sum: np.ndarray
    matched_count: np.ndarray
    total_sum: np.ndarray
    resolved: np.ndarray

    @classmethod
    def empty(cls, shape: tuple[int, int, int]) -> "Accumulator":
        height, width, _ = shape
        return cls(
            matched_sum=np.zeros(shape, dtype=np.float64),
            matched_count=np.zeros((height, width), dtype=np.int64),
            total_sum=np.zeros(shape, dtype=np.float64),
            resolved=np.zeros((height, width), dtype=bool),
        )

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.matched_sum.shape


def confidence_frames(confidence_level: float, n_frames: int) -> int:
    """
    Minimum number of matching frames for a pixel to count as resolved.

    ``max(1, floor(confidence_level * n_frames))``
    """
    return max(1, int(math.floor(confidence_level * n_frames)))


def _accumulate_hits(acc: Accumulator, values: np.ndarray, hit: np.ndarray, rows: slice) -> None:
    acc.matched_sum[rows] += np.where(hit[..., np.newaxis], values, 0)
    acc.matched_count[rows] += hit


def _first_pass_band(
    acc: Accumulator,
    frame: np.ndarray,
    modes: ModeMap,
    mapper: BucketMapper,
    rows: slice,
) -> None:
    values = frame[rows]
    acc.total_sum[rows] += values

    channel_hits = mapper.matches(values, modes.bucket_id[rows], modes.is_primary[rows])
    _accumulate_hits(acc, values, np.all(channel_hits, axis=-1), rows)


def _run_pass(
    name: str,
    paths: list[Path],
    shape: tuple[int, int, int],
    band_fn: Callable[[np.ndarray, slice], None],
    reader: Callable[[Path], np.ndarray],
    workers: int | None,
    chunk_rows: int,
    show_progress: bool,
) -> None:
    from .cli_output import create_progress_bar

    pbar = create_progress_bar(
        total=len(paths),
        desc=name,
        unit="frame",
        disable=not show_progress,
    )
    with pbar, BandExecutor(shape[0], workers=workers, chunk_rows=chunk_rows) as bands:
        for path in paths:
            frame = reader(path)
            check_frame_shape(frame, shape, path)
            bands.map(lambda rows: band_fn(frame, rows))
            pbar.update(1)


def first_pass(
    paths: list[Path],
    modes: ModeMap,
    mapper: BucketMapper,
    acc: Accumulator,
    reader: Callable[[Path], np.ndarray] = read_frame,
    workers: int | None = None,
    chunk_rows: int = 64,
    show_progress: bool = True,
) -> None:
    """
    Strict multi-channel match pass.

    For every frame and pixel, the frame is a hit when all channels fall
    into their selected mode bucket; hits add every channel value to
    ``matched_sum`` and one to ``matched_count``. Every frame is added to
    ``total_sum`` regardless.

    Parameters
    ----------
    paths : list[Path]
        Frame files in sequence order.
    modes : ModeMap
        Selected modes.
    mapper : BucketMapper
        Bucket mapping used to build the histograms.
    acc : Accumulator
        Accumulator updated in place (normally empty).
    reader : callable, default read_frame
        Frame decoder.
    workers : int or None, default None
        Number of band worker threads.
    chunk_rows : int, default 64
        Rows per band.
    show_progress : bool, default True
        Show progress bar.
    """
    _run_pass(
        "1st pass",
        paths,
        acc.shape,
        lambda frame, rows: _first_pass_band(acc, frame, modes, mapper, rows),
        reader,
        workers,
        chunk_rows,
        show_progress,
    )
    logger.info(
        "1st pass done. Mean matched frames: %.1f, min: %d, max: %d",
        float(np.mean(acc.matched_count)),
        int(np.min(acc.matched_count)),
        int(np.max(acc.matched_count)),
    )


def apply_gate(acc: Accumulator, conf_frames: int) -> int:
    """
    Split pixels into resolved and unresolved after pass 1.

    Pixels with fewer than ``conf_frames`` hits have their matched sums
    reset to zero. The others are marked resolved and are skipped by
    pass 2.

    Returns
    -------
    int
        Number of unresolved (failed) pixels.
    """
    failed = acc.matched_count < conf_frames
    acc.matched_sum[failed] = 0.0
    acc.matched_count[failed] = 0
    np.copyto(acc.resolved, ~failed)

    n_failed = int(np.count_nonzero(failed))
    logger.info(
        "Confidence gate (%d frames): %d/%d pixels unresolved",
        conf_frames, n_failed, failed.size,
    )
    return n_failed


def second_pass(
    paths: list[Path],
    modes: ModeMap,
    mapper: BucketMapper,
    acc: Accumulator,
    reader: Callable[[Path], np.ndarray] = read_frame,
    workers: int | None = None,
    chunk_rows: int = 64,
    show_progress: bool = True,
) -> None:
    """
    Strongest-channel rescue pass for unresolved pixels.

    For each unresolved pixel only the channel with the highest mode
    confidence is tested. When it matches, the whole pixel colour of the
    frame is accepted. Resolved pixels are left untouched, so
    ``matched_count`` never decreases.

    Parameters are the same as for :func:`first_pass`. When no pixel is
    unresolved the frames are not read at all.
    """
    if acc.resolved.all():
        logger.info("2nd pass skipped: all pixels resolved")
        return

    channel = strongest_channel(modes)[..., np.newaxis]
    bucket_id = np.take_along_axis(modes.bucket_id, channel, axis=-1)[..., 0]
    is_primary = np.take_along_axis(modes.is_primary, channel, axis=-1)[..., 0]

    def band_fn(frame: np.ndarray, rows: slice) -> None:
        values = frame[rows]
        strongest = np.take_along_axis(values, channel[rows], axis=-1)[..., 0]
        hit = mapper.matches(strongest, bucket_id[rows], is_primary[rows])
        _accumulate_hits(acc, values, hit & ~acc.resolved[rows], rows)

    before = int(np.sum(acc.matched_count))
    _run_pass("2nd pass", paths, acc.shape, band_fn, reader, workers, chunk_rows, show_progress)
    logger.info("2nd pass done. Rescued %d pixel hits", int(np.sum(acc.matched_count)) - before)
