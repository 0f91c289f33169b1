"""
Row-band parallel map for per-pixel stages.

Every stage of the pipeline writes only to the pixels it is given.
Splitting the image into disjoint bands of whole rows therefore lets
bands run concurrently without locks: no two workers ever touch the same
counter or accumulator element.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger(__name__)

# Use all available CPUs but leave one free for system
DEFAULT_WORKERS = max(1, os.cpu_count() - 1) if os.cpu_count() else 4


def row_bands(height: int, chunk_rows: int = 64) -> list[slice]:
    """
    Partition image rows into contiguous, non-overlapping bands.

    Parameters
    ----------
    height : int
        Number of image rows.
    chunk_rows : int, default 64
        Rows per band (the last band may be shorter).

    Returns
    -------
    list[slice]
        Row slices covering [0, height) exactly once.
    """
    if chunk_rows < 1:
        raise ValueError(f"chunk_rows must be >= 1, got {chunk_rows}")
    n_chunks = (height + chunk_rows - 1) // chunk_rows
    return [
        slice(i * chunk_rows, min((i + 1) * chunk_rows, height))
        for i in range(n_chunks)
    ]


class BandExecutor:
    """
    Runs a band function over all row bands of an image.

    The thread pool lives for the whole run so passes over hundreds of
    frames do not pay pool start-up per frame. numpy releases the GIL in
    its kernels, so bands make progress in parallel.

    Example
    -------
    >>> with BandExecutor(height=480, workers=4) as bands:
    ...     for frame in frames:
    ...         bands.map(lambda rows: update(frame, rows))
    """

    def __init__(self, height: int, workers: int | None = None, chunk_rows: int = 64):
        self.bands = row_bands(height, chunk_rows)
        self.workers = DEFAULT_WORKERS if workers is None else workers
        self.workers = max(1, min(self.workers, len(self.bands)))
        self._executor: ThreadPoolExecutor | None = None

    def __enter__(self) -> "BandExecutor":
        if self.workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="vanish-band"
            )
            logger.debug("Started %d band workers over %d bands", self.workers, len(self.bands))
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def map(self, fn: Callable[[slice], object]) -> list:
        """
        Apply fn to every band and wait for all of them.

        Exceptions raised inside a band propagate to the caller.
        """
        if self._executor is None:
            return [fn(rows) for rows in self.bands]
        return list(self._executor.map(fn, self.bands))


def map_row_bands(
    fn: Callable[[slice], object],
    height: int,
    workers: int | None = None,
    chunk_rows: int = 64,
) -> list:
    """
    One-shot parallel map of fn over the row bands of an image.

    Parameters
    ----------
    fn : callable
        Function of a row slice. Must only write to rows in that slice.
    height : int
        Number of image rows.
    workers : int or None, default None
        Number of threads. None uses auto-detection (CPU count - 1).
        Set to 1 for sequential processing.
    chunk_rows : int, default 64
        Rows per band.

    Returns
    -------
    list
        Return values of fn, in band order.
    """
    with BandExecutor(height, workers=workers, chunk_rows=chunk_rows) as bands:
        return bands.map(fn)
