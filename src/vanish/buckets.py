"""
Intensity-to-bucket mapping for the dual-offset histograms.

Two partitions of the intensity range are used:
- primary buckets: equal-width bins starting at 0
- offset buckets: the same bins shifted by half a bucket width

A cluster of values that straddles a primary bin boundary falls inside
a single offset bin, so one of the two partitions always keeps it whole.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


def _as_result(result: np.ndarray) -> np.ndarray | int | bool:
    """Unwrap 0-d results so scalar inputs give Python scalars back."""
    if result.ndim == 0:
        return result.item()
    return result


@dataclass(frozen=True)
class BucketMapper:
    """
    Maps intensities to primary and offset bucket indices.

    Parameters
    ----------
    bucket_size : int
        Width of a bucket in intensity values.
    max_val : int, default 255
        Largest intensity in the frames.
    min_val : int, default 0
        Smallest intensity in the frames.

    Notes
    -----
    ``buckets = (max_val + 1) // bucket_size``. When bucket_size does not
    divide the range evenly, the leftover top values share the last bucket.

    Example
    -------
    >>> mapper = BucketMapper(bucket_size=8)
    >>> mapper.buckets
    32
    >>> mapper.primary_bucket(255), mapper.offset_bucket(252)
    (31, 31)
    """

    bucket_size: int
    max_val: int = 255
    min_val: int = 0
    buckets: int = field(init=False)

    def __post_init__(self):
        if self.bucket_size < 1:
            raise ValueError(f"bucket_size must be >= 1, got {self.bucket_size}")
        buckets = (self.max_val + 1) // self.bucket_size
        if buckets < 1:
            raise ValueError(
                f"bucket_size {self.bucket_size} exceeds intensity range 0-{self.max_val}"
            )
        object.__setattr__(self, "buckets", buckets)

    @property
    def half_size(self) -> int:
        return self.bucket_size // 2

    def primary_bucket(self, value):
        """
        Primary bucket index of an intensity (scalar or array).

        Values below min_val go to bucket 0, values above max_val to the
        last bucket.
        """
        v = np.asarray(value, dtype=np.int64)
        idx = np.minimum(v // self.bucket_size, self.buckets - 1)
        idx = np.where(v < self.min_val, 0, idx)
        idx = np.where(v > self.max_val, self.buckets - 1, idx)
        return _as_result(idx)

    def offset_bucket(self, value):
        """
        Offset bucket index of an intensity (scalar or array).

        The value is shifted up by half a bucket before binning. Shifted
        values above ``max_val - bucket_size // 2`` are clamped into the
        last bucket.
        """
        v = np.asarray(value, dtype=np.int64) + self.half_size
        idx = np.minimum(v // self.bucket_size, self.buckets - 1)
        idx = np.where(v < self.min_val, 0, idx)
        idx = np.where(v > self.max_val - self.half_size, self.buckets - 1, idx)
        return _as_result(idx)

    def matches(self, value, bucket_id, is_primary):
        """
        Test whether intensities fall into a selected bucket.

        Parameters
        ----------
        value : int or np.ndarray
            Intensities to test.
        bucket_id : int or np.ndarray
            Selected bucket index, broadcastable against value.
        is_primary : bool or np.ndarray
            True where bucket_id refers to the primary partition.

        Returns
        -------
        bool or np.ndarray
            Elementwise match result.
        """
        primary = np.asarray(self.primary_bucket(value))
        offset = np.asarray(self.offset_bucket(value))
        hit = np.where(is_primary, primary == bucket_id, offset == bucket_id)
        return _as_result(np.asarray(hit))

    def value_range(self, bucket_id: int, is_primary: bool = True) -> tuple[int, int] | None:
        """
        Intensity interval covered by a bucket, clamps included.

        Returns
        -------
        tuple[int, int] or None
            (lowest, highest) intensity mapped to the bucket, or None if
            no intensity in [min_val, max_val] maps there.
        """
        values = np.arange(self.min_val, self.max_val + 1)
        hits = np.nonzero(self.matches(values, bucket_id, is_primary))[0]
        if hits.size == 0:
            return None
        return int(values[hits[0]]), int(values[hits[-1]])
