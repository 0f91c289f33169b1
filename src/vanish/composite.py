"""
Final background and confidence mask from the reconstruction sums.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .reconstruct import Accumulator
from .utils import to_integer_image

logger = logging.getLogger(__name__)


@dataclass
class CompositeResult:
    """Reconstructed background with its per-pixel confidence."""

    background: np.ndarray
    """Reconstructed values, float64, shape (H, W, C)."""

    confidence: np.ndarray
    """min(255, matched_count * 256 / n_frames), uint8, shape (H, W)."""

    low_confidence: np.ndarray
    """Pixels that fell back to the temporal mean, shape (H, W)."""

    @property
    def n_low_confidence(self) -> int:
        return int(np.count_nonzero(self.low_confidence))

    def background_image(self, max_val: int = 255) -> np.ndarray:
        """Background truncated to integers in [0, max_val]."""
        return to_integer_image(self.background, max_val)


def composite_output(acc: Accumulator, conf_frames: int, n_frames: int) -> CompositeResult:
    """
    Combine accumulated sums into the final background.

    Pixels with at least one accepted frame take the mean of the accepted
    frames. Pixels that still have fewer than ``conf_frames`` accepted
    frames after both passes take the plain temporal mean instead and are
    flagged as low confidence. A pixel with no accepted frame is never
    divided by its zero count.

    Parameters
    ----------
    acc : Accumulator
        Sums after both reconstruction passes.
    conf_frames : int
        Confidence threshold in frames.
    n_frames : int
        Total number of frames in the sequence.

    Returns
    -------
    CompositeResult
        Background, confidence scalar and low-confidence flags.
    """
    if n_frames < 1:
        raise ValueError("Cannot composite an empty sequence")

    count = acc.matched_count
    matched = count > 0
    low_confidence = count < conf_frames

    background = np.zeros(acc.shape, dtype=np.float64)
    np.divide(
        acc.matched_sum,
        count[..., np.newaxis],
        out=background,
        where=matched[..., np.newaxis],
    )
    fallback = acc.total_sum / n_frames
    background = np.where(low_confidence[..., np.newaxis], fallback, background)

    confidence = np.minimum(255, (count * 256) // n_frames).astype(np.uint8)

    logger.info(
        "Composited background: %d/%d pixels on temporal-mean fallback",
        int(np.count_nonzero(low_confidence)), low_confidence.size,
    )

    return CompositeResult(
        background=background,
        confidence=confidence,
        low_confidence=low_confidence,
    )


def confidence_mask_image(result: CompositeResult) -> np.ndarray:
    """
    Render the confidence debug mask as an RGB image.

    The gray level is the confidence scalar. Low-confidence pixels are
    tinted red: red set to 255, green and blue halved.

    Returns
    -------
    np.ndarray
        uint8 image of shape (H, W, 3).
    """
    mask = np.repeat(result.confidence[..., np.newaxis], 3, axis=-1)
    low = result.low_confidence
    mask[low, 0] = 255
    mask[low, 1:] //= 2
    return mask
