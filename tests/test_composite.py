"""
Tests for the composite module.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import numpy as np
import pytest

from vanish.composite import composite_output, confidence_mask_image
from vanish.reconstruct import Accumulator


def _accumulator(counts, matched, totals):
    counts = np.asarray(counts)
    acc = Accumulator.empty((*counts.shape, np.asarray(matched).shape[-1]))
    acc.matched_count[:] = counts
    acc.matched_sum[:] = matched
    acc.total_sum[:] = totals
    return acc


class TestCompositeOutput:
    """Tests for final value selection."""

    def test_resolved_mean(self):
        """Resolved pixels take the matched mean."""
        acc = _accumulator([[2]], [[[22.0]]], [[[222.0]]])
        result = composite_output(acc, conf_frames=1, n_frames=3)

        assert result.background[0, 0, 0] == pytest.approx(11.0)
        assert not result.low_confidence[0, 0]

    def test_fallback_mean(self):
        """Pixels below the threshold take the temporal mean."""
        acc = _accumulator([[2]], [[[22.0]]], [[[222.0]]])
        result = composite_output(acc, conf_frames=3, n_frames=3)

        assert result.background[0, 0, 0] == pytest.approx(74.0)
        assert result.low_confidence[0, 0]
        assert result.n_low_confidence == 1

    def test_zero_count_never_divided(self):
        """A pixel without hits falls back without a division warning."""
        acc = _accumulator([[0]], [[[0.0, 0.0]]], [[[30.0, 60.0]]])

        with np.errstate(all="raise"):
            result = composite_output(acc, conf_frames=1, n_frames=3)

        np.testing.assert_allclose(result.background[0, 0], [10.0, 20.0])
        assert np.all(np.isfinite(result.background))

    def test_confidence_scalar(self):
        """confidence = min(255, count * 256 / n_frames)."""
        acc = _accumulator([[0, 2, 3, 4]], np.ones((1, 4, 1)), np.ones((1, 4, 1)))
        result = composite_output(acc, conf_frames=1, n_frames=4)

        np.testing.assert_array_equal(result.confidence, [[0, 128, 192, 255]])
        assert result.confidence.dtype == np.uint8

    def test_background_image_truncates(self):
        """Integer output truncates toward zero."""
        acc = _accumulator([[3]], [[[32.0]]], [[[32.0]]])
        result = composite_output(acc, conf_frames=1, n_frames=3)

        image = result.background_image(255)
        assert image.dtype == np.uint8
        assert image[0, 0, 0] == 10

    def test_empty_sequence(self):
        acc = _accumulator([[0]], [[[0.0]]], [[[0.0]]])
        with pytest.raises(ValueError):
            composite_output(acc, conf_frames=1, n_frames=0)


class TestConfidenceMaskImage:
    """Tests for the debug mask rendering."""

    def test_gray_and_red(self):
        acc = _accumulator([[4, 1]], np.ones((1, 2, 1)), np.ones((1, 2, 1)))
        result = composite_output(acc, conf_frames=2, n_frames=8)

        mask = confidence_mask_image(result)

        assert mask.shape == (1, 2, 3)
        assert mask.dtype == np.uint8
        np.testing.assert_array_equal(mask[0, 0], [128, 128, 128])
        # Low confidence: red channel saturated, others halved
        np.testing.assert_array_equal(mask[0, 1], [255, 16, 16])
