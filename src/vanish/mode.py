"""
Dominant-bucket (mode) selection from the histogram pair.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .histogram import COUNT_DTYPE, HistogramPair
from .parallel import map_row_bands

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeMap:
    """
    Selected mode of every pixel and channel.

    Attributes
    ----------
    bucket_id : np.ndarray
        Winning bucket index, shape (H, W, C).
    is_primary : np.ndarray
        True where the winner comes from the primary histogram.
    confidence : np.ndarray
        Frame count backing the winner.
    """

    bucket_id: np.ndarray
    is_primary: np.ndarray
    confidence: np.ndarray

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.bucket_id.shape

    def entry(self, x: int, y: int, channel: int = 0) -> dict:
        """Mode entry of one pixel and channel as a plain dict."""
        return {
            "bucket_id": int(self.bucket_id[y, x, channel]),
            "is_primary": bool(self.is_primary[y, x, channel]),
            "confidence": int(self.confidence[y, x, channel]),
        }


def _select_band(histograms: HistogramPair, out: ModeMap, rows: slice) -> None:
    count_a = histograms.count_a[rows]
    count_b = histograms.count_b[rows]

    # Interleave as A0, B0, A1, B1, ... so that argmax (first maximum wins)
    # follows the scan order: lowest bucket first, primary before offset.
    interleaved = np.stack((count_a, count_b), axis=-1).reshape(*count_a.shape[:3], -1)
    winner = interleaved.argmax(axis=-1)

    out.bucket_id[rows] = winner // 2
    out.is_primary[rows] = winner % 2 == 0
    out.confidence[rows] = np.take_along_axis(interleaved, winner[..., np.newaxis], axis=-1)[..., 0]


def select_modes(
    histograms: HistogramPair,
    workers: int | None = None,
    chunk_rows: int = 64,
) -> ModeMap:
    """
    Reduce each pixel's histograms to a single dominant bucket.

    Buckets are scanned in ascending order, the primary count tested
    before the offset count at each index, with strict comparisons.
    On a tie the earliest candidate therefore wins: the lowest bucket
    index, and the primary histogram at equal index.

    Parameters
    ----------
    histograms : HistogramPair
        Fully populated histograms.
    workers : int or None, default None
        Number of band worker threads.
    chunk_rows : int, default 64
        Rows per band.

    Returns
    -------
    ModeMap
        Selected bucket, partition flag and count per pixel and channel.
    """
    shape = histograms.shape
    modes = ModeMap(
        bucket_id=np.zeros(shape, dtype=np.int32),
        is_primary=np.ones(shape, dtype=bool),
        confidence=np.zeros(shape, dtype=COUNT_DTYPE),
    )

    map_row_bands(
        lambda rows: _select_band(histograms, modes, rows),
        height=shape[0],
        workers=workers,
        chunk_rows=chunk_rows,
    )

    if histograms.n_frames > 0:
        logger.info(
            "Selected modes. Mean confidence: %.1f/%d frames, primary share: %.1f%%",
            float(np.mean(modes.confidence)),
            histograms.n_frames,
            100.0 * float(np.mean(modes.is_primary)),
        )

    return modes


def strongest_channel(modes: ModeMap) -> np.ndarray:
    """
    Channel with the highest mode confidence for every pixel.

    Ties go to the lowest channel index.

    Returns
    -------
    np.ndarray
        Channel indices, shape (H, W).
    """
    return modes.confidence.argmax(axis=-1)
