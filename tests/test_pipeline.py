"""
End-to-end tests for the reconstruction pipeline.

Tests cover:
- The reference single-pixel sequences (resolved and fallback)
- Moving-object removal on a synthetic scene
- Input validation and decode failures
- Pixel inspection

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import numpy as np
import pytest

from vanish.config import FrameDecodeError, InputError, ReconstructionConfig
from vanish.pipeline import inspect_pixel, reconstruct_background


class TestReferenceSequence:
    """1x1 pixel, one channel, frames [10, 12, 200], bucket size 8."""

    def test_resolved(self, memory_reader, pixel_frames):
        """Low confidence level: pass 1 resolves the pixel to 11."""
        paths, reader = memory_reader(pixel_frames([10, 12, 200]))
        config = ReconstructionConfig(bucket_size=8, confidence_level=0.2, workers=1)

        rec = reconstruct_background(paths, config=config, reader=reader, show_progress=False)

        assert rec.mapper.buckets == 32
        assert rec.modes.entry(0, 0) == {"bucket_id": 1, "is_primary": True, "confidence": 2}
        assert rec.conf_frames == 1
        assert rec.first_pass_failed == 0
        assert rec.second_pass_failed == 0
        assert rec.composite.background[0, 0, 0] == pytest.approx(11.0)
        assert rec.background[0, 0, 0] == 11

    def test_fallback(self, memory_reader, pixel_frames):
        """Confidence 1.0: neither pass reaches 3 hits, temporal mean 74."""
        paths, reader = memory_reader(pixel_frames([10, 12, 200]))
        config = ReconstructionConfig(bucket_size=8, confidence_level=1.0, workers=1)

        rec = reconstruct_background(paths, config=config, reader=reader, show_progress=False)

        assert rec.conf_frames == 3
        assert rec.first_pass_failed == 1
        assert rec.second_pass_failed == 1
        assert rec.composite.low_confidence[0, 0]
        assert rec.composite.background[0, 0, 0] == pytest.approx(74.0)
        assert rec.background[0, 0, 0] == 74

    def test_three_reads_per_frame(self, memory_reader, pixel_frames):
        """Histograms, pass 1 and pass 2 each decode every frame."""
        paths, reader = memory_reader(pixel_frames([10, 12, 200]))
        config = ReconstructionConfig(confidence_level=1.0, workers=1)

        reconstruct_background(paths, config=config, reader=reader, show_progress=False)

        # One extra read of the first frame infers the geometry
        assert reader.calls == [paths[0]] + paths * 3


class TestSyntheticScene:
    """Moving object over a static background."""

    def test_object_removed(self, memory_reader, synthetic_scene):
        """The moving square disappears from the reconstruction."""
        background, frames = synthetic_scene(n_frames=12)
        paths, reader = memory_reader(frames)
        config = ReconstructionConfig(bucket_size=8, confidence_level=0.25, workers=2, chunk_rows=7)

        rec = reconstruct_background(paths, config=config, reader=reader, show_progress=False)

        np.testing.assert_array_equal(rec.background, background)
        assert rec.second_pass_failed == 0
        assert rec.background.shape == background.shape

    def test_stats(self, memory_reader, synthetic_scene):
        _, frames = synthetic_scene(n_frames=5)
        paths, reader = memory_reader(frames)

        rec = reconstruct_background(paths, reader=reader, show_progress=False)
        stats = rec.stats()

        assert stats["n_frames"] == 5
        assert stats["n_pixels"] == 24 * 32
        assert stats["buckets"] == 32
        assert 0.0 <= stats["low_confidence_fraction"] <= 1.0

    def test_from_png_files(self, sequence_dir, synthetic_scene):
        """Frames decoded from disk give the same result."""
        from vanish.io import list_frames

        background, frames = synthetic_scene(n_frames=8)
        folder = sequence_dir(frames)

        rec = reconstruct_background(list_frames(folder), show_progress=False)

        np.testing.assert_array_equal(rec.background, background)

    def test_grayscale_png(self, sequence_dir, pixel_frames):
        """Single-channel PNGs run through the pipeline."""
        from vanish.io import list_frames

        frames = [np.full((3, 4, 1), v, dtype=np.uint8) for v in (10, 12, 200)]
        folder = sequence_dir(frames)
        config = ReconstructionConfig(confidence_level=0.2, workers=1)

        rec = reconstruct_background(list_frames(folder), config=config, show_progress=False)

        assert rec.frame_info.channels == 1
        assert np.all(rec.background == 11)


class TestInputValidation:
    """Fatal input conditions."""

    def test_no_frames(self):
        with pytest.raises(InputError, match="empty"):
            reconstruct_background([], show_progress=False)

    def test_single_frame(self, memory_reader, pixel_frames):
        paths, reader = memory_reader(pixel_frames([10]))
        with pytest.raises(InputError, match="At least 2"):
            reconstruct_background(paths, reader=reader, show_progress=False)

    def test_decode_failure_aborts(self, tmp_path, sequence_dir, synthetic_scene):
        """A corrupt frame anywhere in the sequence aborts the run."""
        from vanish.io import list_frames

        _, frames = synthetic_scene(n_frames=4)
        folder = sequence_dir(frames)
        (folder / "frame_0002.png").write_bytes(b"not a png")

        with pytest.raises(FrameDecodeError, match="frame_0002"):
            reconstruct_background(list_frames(folder), show_progress=False)

    def test_bucket_size_reset(self, memory_reader, pixel_frames):
        """An invalid bucket size silently falls back to 8."""
        paths, reader = memory_reader(pixel_frames([10, 12, 200]))
        config = ReconstructionConfig(bucket_size=500, workers=1)

        rec = reconstruct_background(paths, config=config, reader=reader, show_progress=False)

        assert rec.mapper.bucket_size == 8

    def test_nan_confidence_uses_default(self, memory_reader, pixel_frames):
        """A NaN confidence level runs with the default level."""
        paths, reader = memory_reader(pixel_frames([10, 12, 200]))
        config = ReconstructionConfig(confidence_level=float("nan"), workers=1)

        rec = reconstruct_background(paths, config=config, reader=reader, show_progress=False)

        assert rec.conf_frames == 1
        assert rec.background[0, 0, 0] == 11

    def test_small_bit_depth_fits_bucket_size(self, memory_reader, pixel_frames):
        """2-bit data: bucket size 8 shrinks to the whole 0-3 range."""
        paths, reader = memory_reader(pixel_frames([1, 2, 3]))
        config = ReconstructionConfig(bucket_size=8, bit_depth=2, workers=1)

        rec = reconstruct_background(paths, config=config, reader=reader, show_progress=False)

        assert rec.frame_info.max_val == 3
        assert rec.mapper.bucket_size == 4
        assert rec.mapper.buckets == 1
        assert rec.background[0, 0, 0] == 2

    def test_bucket_wider_than_range_reset(self, memory_reader, pixel_frames):
        """5-bit data with 64-wide buckets falls back to 8."""
        paths, reader = memory_reader(pixel_frames([10, 12, 30]))
        config = ReconstructionConfig(bucket_size=64, bit_depth=5, workers=1)

        rec = reconstruct_background(paths, config=config, reader=reader, show_progress=False)

        assert rec.mapper.bucket_size == 8
        assert rec.mapper.buckets == 4
        assert rec.background[0, 0, 0] == 11

    def test_inspect_small_bit_depth(self, memory_reader, pixel_frames):
        paths, reader = memory_reader(pixel_frames([1, 2, 3]))
        config = ReconstructionConfig(bucket_size=8, bit_depth=2)

        report = inspect_pixel(paths, x=0, y=0, config=config, reader=reader)

        assert report["bucket_size"] == 4
        assert report["channels"][0]["count_a"] == [3]


class TestInspectPixel:
    """Tests for single-pixel inspection."""

    def test_report(self, memory_reader, synthetic_scene):
        background, frames = synthetic_scene(n_frames=6)
        paths, reader = memory_reader(frames)

        report = inspect_pixel(paths, x=31, y=23, reader=reader)

        assert report["n_frames"] == 6
        assert report["buckets"] == 32
        assert len(report["channels"]) == 3
        for channel, entry in enumerate(report["channels"]):
            assert sum(entry["count_a"]) == 6
            assert sum(entry["count_b"]) == 6
            low, high = entry["range"]
            assert low <= background[23, 31, channel] <= high

    def test_outside_image(self, memory_reader, synthetic_scene):
        _, frames = synthetic_scene(n_frames=3)
        paths, reader = memory_reader(frames)

        with pytest.raises(IndexError):
            inspect_pixel(paths, x=32, y=0, reader=reader)
