"""
Tests for the histogram module.

Tests cover:
- Per-frame accumulation into both histograms
- Count invariants over whole sequences
- Shape and decode failure handling
- Row-band parallel accumulation

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import logging

import numpy as np
import pytest

from vanish.buckets import BucketMapper
from vanish.config import FrameDecodeError, InputError
from vanish.histogram import (
    HistogramPair,
    accumulate_frame,
    build_histograms,
    histogram_nbytes,
    pixel_histogram,
)


class TestAccumulateFrame:
    """Tests for single-frame accumulation."""

    def test_single_pixel(self):
        """One frame increments one primary and one offset bucket."""
        mapper = BucketMapper(bucket_size=8)
        hist = HistogramPair.empty((1, 1, 1), mapper.buckets)
        frame = np.array([[[12]]], dtype=np.uint8)

        accumulate_frame(hist, frame, mapper)

        assert hist.count_a[0, 0, 0, 1] == 1
        assert hist.count_b[0, 0, 0, 2] == 1
        assert hist.count_a.sum() == 1
        assert hist.count_b.sum() == 1

    def test_channels_independent(self):
        """Each channel counts its own value."""
        mapper = BucketMapper(bucket_size=8)
        hist = HistogramPair.empty((1, 1, 3), mapper.buckets)
        frame = np.array([[[0, 100, 255]]], dtype=np.uint8)

        accumulate_frame(hist, frame, mapper)

        assert hist.count_a[0, 0, 0, 0] == 1
        assert hist.count_a[0, 0, 1, 12] == 1
        assert hist.count_a[0, 0, 2, 31] == 1

    def test_row_slice_only(self):
        """Only the requested rows are updated."""
        mapper = BucketMapper(bucket_size=8)
        hist = HistogramPair.empty((4, 2, 1), mapper.buckets)
        frame = np.full((4, 2, 1), 50, dtype=np.uint8)

        accumulate_frame(hist, frame, mapper, rows=slice(1, 3))

        per_row = hist.count_a.sum(axis=(1, 2, 3))
        np.testing.assert_array_equal(per_row, [0, 2, 2, 0])


class TestBuildHistograms:
    """Tests for whole-sequence histogram building."""

    def test_sums_equal_frame_count(self, memory_reader):
        """Every pixel and channel sums to N in both histograms."""
        rng = np.random.default_rng(0)
        frames = [rng.integers(0, 256, (9, 7, 3), dtype=np.uint8) for _ in range(12)]
        paths, reader = memory_reader(frames)
        mapper = BucketMapper(bucket_size=8)

        hist = build_histograms(paths, mapper, (9, 7, 3), reader=reader, workers=1, show_progress=False)

        assert hist.n_frames == 12
        assert np.all(hist.count_a.sum(axis=-1) == 12)
        assert np.all(hist.count_b.sum(axis=-1) == 12)

    def test_counter_dtype(self, memory_reader):
        """Counters are 32-bit."""
        paths, reader = memory_reader([np.zeros((2, 2, 1), dtype=np.uint8)] * 2)
        hist = build_histograms(paths, BucketMapper(8), (2, 2, 1), reader=reader, show_progress=False)
        assert hist.count_a.dtype == np.uint32

    def test_parallel_matches_sequential(self, memory_reader):
        """Row-band threads give the same counts as a single band."""
        rng = np.random.default_rng(1)
        frames = [rng.integers(0, 256, (37, 11, 3), dtype=np.uint8) for _ in range(6)]
        paths, reader = memory_reader(frames)
        mapper = BucketMapper(bucket_size=16)

        sequential = build_histograms(
            paths, mapper, (37, 11, 3), reader=reader, workers=1, show_progress=False
        )
        parallel = build_histograms(
            paths, mapper, (37, 11, 3), reader=reader, workers=4, chunk_rows=5, show_progress=False
        )

        np.testing.assert_array_equal(sequential.count_a, parallel.count_a)
        np.testing.assert_array_equal(sequential.count_b, parallel.count_b)

    def test_each_frame_read_once(self, memory_reader):
        """The builder decodes every frame exactly once, in order."""
        frames = [np.full((2, 2, 1), v, dtype=np.uint8) for v in (1, 2, 3)]
        paths, reader = memory_reader(frames)

        build_histograms(paths, BucketMapper(8), (2, 2, 1), reader=reader, show_progress=False)

        assert reader.calls == paths

    def test_shape_mismatch_raises(self, memory_reader):
        """A frame of a different size aborts the build."""
        frames = [np.zeros((2, 2, 1), dtype=np.uint8), np.zeros((3, 2, 1), dtype=np.uint8)]
        paths, reader = memory_reader(frames)

        with pytest.raises(InputError, match="shape"):
            build_histograms(paths, BucketMapper(8), (2, 2, 1), reader=reader, show_progress=False)

    def test_decode_error_propagates(self, memory_reader):
        """Decoder failures are fatal and not swallowed."""
        paths, _ = memory_reader([np.zeros((2, 2, 1), dtype=np.uint8)] * 3)

        def failing_reader(path):
            if path == paths[1]:
                raise FrameDecodeError(str(path), "corrupt")
            return np.zeros((2, 2, 1), dtype=np.uint8)

        with pytest.raises(FrameDecodeError, match="corrupt"):
            build_histograms(paths, BucketMapper(8), (2, 2, 1), reader=failing_reader, show_progress=False)


class TestHistogramMemory:
    """Tests for the counter memory estimate and warning."""

    def test_nbytes_matches_allocation(self):
        mapper = BucketMapper(bucket_size=8)
        expected = histogram_nbytes((5, 3, 2), mapper.buckets)
        assert HistogramPair.empty((5, 3, 2), mapper.buckets).nbytes == expected

    def test_uint16_video_estimate(self):
        """16-bit VGA RGB with 8-wide buckets: 8192 buckets, about 60 GB."""
        mapper = BucketMapper(bucket_size=8, max_val=65535)
        assert mapper.buckets == 8192
        assert histogram_nbytes((480, 640, 3), mapper.buckets) == 2 * 480 * 640 * 3 * 8192 * 4

    def test_large_allocation_warns(self, memory_reader, monkeypatch, caplog):
        monkeypatch.setattr("vanish.histogram.HISTOGRAM_WARN_BYTES", 16)
        paths, reader = memory_reader([np.zeros((2, 2, 1), dtype=np.uint8)] * 2)

        with caplog.at_level(logging.WARNING, logger="vanish.histogram"):
            build_histograms(paths, BucketMapper(8), (2, 2, 1), reader=reader, workers=1, show_progress=False)

        assert "--bucket-size" in caplog.text
        assert "--bit-depth" in caplog.text

    def test_small_allocation_silent(self, memory_reader, caplog):
        paths, reader = memory_reader([np.zeros((2, 2, 1), dtype=np.uint8)] * 2)

        with caplog.at_level(logging.WARNING, logger="vanish.histogram"):
            build_histograms(paths, BucketMapper(8), (2, 2, 1), reader=reader, workers=1, show_progress=False)

        assert "--bucket-size" not in caplog.text


class TestPixelHistogram:
    """Tests for single-pixel histogram extraction."""

    def test_counts(self, memory_reader, pixel_frames):
        paths, reader = memory_reader(pixel_frames([10, 12, 200]))
        hist = build_histograms(paths, BucketMapper(8), (1, 1, 1), reader=reader, show_progress=False)

        count_a, count_b = pixel_histogram(hist, 0, 0)

        assert count_a[1] == 2
        assert count_a[25] == 1
        assert count_a.sum() == 3
        assert count_b.sum() == 3

    def test_out_of_bounds(self):
        hist = HistogramPair.empty((2, 3, 1), 32)
        with pytest.raises(IndexError):
            pixel_histogram(hist, 3, 0)
        with pytest.raises(IndexError):
            pixel_histogram(hist, 0, 0, channel=1)
