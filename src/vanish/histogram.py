"""
Per-pixel dual-offset histogram construction.

Every frame adds exactly one count to the primary histogram and one
count to the offset histogram of each pixel and channel.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import numpy as np

from .buckets import BucketMapper
from .config import InputError
from .io import read_frame
from .parallel import BandExecutor

logger = logging.getLogger(__name__)

# Wide enough for any realistic frame count
COUNT_DTYPE = np.uint32

# Counter memory above which a run is flagged as likely to exhaust RAM
HISTOGRAM_WARN_BYTES = 2 * 1024**3


@dataclass
class HistogramPair:
    """
    Primary and offset bucket counts for every pixel and channel.

    Attributes
    ----------
    count_a : np.ndarray
        Primary histogram, shape (H, W, C, buckets).
    count_b : np.ndarray
        Offset histogram, shape (H, W, C, buckets).
    n_frames : int
        Number of frames accumulated so far.
    """

    count_a: np.ndarray
    count_b: np.ndarray
    n_frames: int = 0

    @classmethod
    def empty(cls, shape: tuple[int, int, int], buckets: int) -> "HistogramPair":
        """Allocate zeroed histograms for frames of the given (H, W, C) shape."""
        full_shape = (*shape, buckets)
        return cls(
            count_a=np.zeros(full_shape, dtype=COUNT_DTYPE),
            count_b=np.zeros(full_shape, dtype=COUNT_DTYPE),
        )

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.count_a.shape[:3]

    @property
    def buckets(self) -> int:
        return self.count_a.shape[3]

    @property
    def nbytes(self) -> int:
        return self.count_a.nbytes + self.count_b.nbytes


def accumulate_frame(
    histograms: HistogramPair,
    frame: np.ndarray,
    mapper: BucketMapper,
    rows: slice = slice(None),
) -> None:
    """
    Add one frame to the histograms.

    Only the given rows are touched, so disjoint row slices of the same
    frame can be accumulated concurrently. The caller is responsible for
    incrementing ``histograms.n_frames`` once per frame.

    Parameters
    ----------
    histograms : HistogramPair
        Histograms to update in place.
    frame : np.ndarray
        Frame of shape (H, W, C).
    mapper : BucketMapper
        Bucket mapping matching the histogram bucket count.
    rows : slice, default all rows
        Rows to accumulate.
    """
    values = frame[rows]
    h, w, c = values.shape
    i, j, k = np.ogrid[:h, :w, :c]

    # (i, j, k) is unique per element, so fancy-index += counts every hit
    histograms.count_a[rows][i, j, k, mapper.primary_bucket(values)] += 1
    histograms.count_b[rows][i, j, k, mapper.offset_bucket(values)] += 1


def histogram_nbytes(shape: tuple[int, int, int], buckets: int) -> int:
    """Memory needed by a HistogramPair, before allocating it."""
    height, width, channels = shape
    return 2 * height * width * channels * buckets * np.dtype(COUNT_DTYPE).itemsize


def build_histograms(
    paths: list[Path],
    mapper: BucketMapper,
    shape: tuple[int, int, int],
    reader: Callable[[Path], np.ndarray] = read_frame,
    workers: int | None = None,
    chunk_rows: int = 64,
    show_progress: bool = True,
) -> HistogramPair:
    """
    Read every frame once and build the histogram pair.

    Parameters
    ----------
    paths : list[Path]
        Frame files in sequence order.
    mapper : BucketMapper
        Bucket mapping for the sequence's intensity range.
    shape : tuple[int, int, int]
        Expected (H, W, C) of every frame.
    reader : callable, default read_frame
        Frame decoder. Decode errors abort the build.
    workers : int or None, default None
        Number of band worker threads. None uses auto-detection.
    chunk_rows : int, default 64
        Rows per band.
    show_progress : bool, default True
        Show progress bar.

    Returns
    -------
    HistogramPair
        Fully populated histograms.

    Raises
    ------
    InputError
        If a frame's shape differs from ``shape``.
    FrameDecodeError
        If a frame cannot be decoded.
    """
    from .cli_output import create_progress_bar

    nbytes = histogram_nbytes(shape, mapper.buckets)
    if nbytes > HISTOGRAM_WARN_BYTES:
        logger.warning(
            "Histograms need %.1f GB (%d buckets of %d for intensities 0-%d). "
            "Use a larger --bucket-size or a lower --bit-depth to reduce memory.",
            nbytes / 1024**3, mapper.buckets, mapper.bucket_size, mapper.max_val,
        )

    histograms = HistogramPair.empty(shape, mapper.buckets)
    logger.info(
        "Counting buckets: %d frames, %d buckets of %d, %.1f MB of counters",
        len(paths), mapper.buckets, mapper.bucket_size, histograms.nbytes / 1e6,
    )

    pbar = create_progress_bar(
        total=len(paths),
        desc="Reading",
        unit="frame",
        disable=not show_progress,
    )
    with pbar, BandExecutor(shape[0], workers=workers, chunk_rows=chunk_rows) as bands:
        for path in paths:
            frame = reader(path)
            check_frame_shape(frame, shape, path)
            bands.map(lambda rows: accumulate_frame(histograms, frame, mapper, rows))
            histograms.n_frames += 1
            pbar.update(1)

    logger.info("Finished reading %d frames", histograms.n_frames)
    return histograms


def check_frame_shape(frame: np.ndarray, shape: tuple[int, int, int], path: Path) -> None:
    """Raise InputError if a decoded frame does not match the sequence shape."""
    if frame.shape != tuple(shape):
        raise InputError(
            f"Frame {Path(path).name} has shape {frame.shape}, expected {tuple(shape)}"
        )


def pixel_histogram(
    histograms: HistogramPair,
    x: int,
    y: int,
    channel: int = 0,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Return the (primary, offset) count vectors of one pixel and channel.

    Parameters
    ----------
    histograms : HistogramPair
        Populated histograms.
    x, y : int
        Pixel column and row.
    channel : int, default 0
        Channel index.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        Copies of the two count vectors, each of length ``buckets``.
    """
    height, width, channels = histograms.shape
    if not (0 <= x < width and 0 <= y < height):
        raise IndexError(f"Pixel ({x}, {y}) outside {width}x{height} image")
    if not 0 <= channel < channels:
        raise IndexError(f"Channel {channel} outside 0-{channels - 1}")
    return (
        histograms.count_a[y, x, channel].copy(),
        histograms.count_b[y, x, channel].copy(),
    )
