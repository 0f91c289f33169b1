"""
Configuration dataclasses and error types for the vanish pipeline.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_SIZE = 8
MIN_BUCKET_SIZE = 1
MAX_BUCKET_SIZE = 128
DEFAULT_CONFIDENCE_LEVEL = 0.2
MIN_FRAMES = 2


class ConfigurationError(ValueError):
    """Invalid pipeline configuration that cannot be corrected silently."""


class InputError(ValueError):
    """Frame sequence unusable for reconstruction (too few frames, mismatched shapes)."""


class FrameDecodeError(OSError):
    """A frame file could not be read or decoded."""

    def __init__(self, path: str, detail: str = ""):
        self.path = str(path)
        self.detail = detail
        message = f"Cannot decode frame {self.path}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


@dataclass
class FrameInfo:
    """Geometry and intensity range of a frame sequence."""

    width: int
    height: int
    channels: int
    dtype: str
    max_val: int

    @property
    def shape(self) -> tuple[int, int, int]:
        return (self.height, self.width, self.channels)


@dataclass
class ReconstructionConfig:
    """
    Configuration for the background reconstruction pipeline.

    All parameters are explicitly documented and have sensible defaults.
    """

    # --- Histogram ---
    bucket_size: int = DEFAULT_BUCKET_SIZE
    """Width of a histogram bucket in intensity values (1-128)."""

    bit_depth: int | None = None
    """Bits per channel. None = infer from the first frame's dtype."""

    # --- Reconstruction ---
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    """Fraction of frames that must match the mode for a pixel to be resolved."""

    # --- Parallelism ---
    workers: int | None = None
    """Number of worker threads. None = auto-detect (CPU count - 1)."""

    chunk_rows: int = 64
    """Rows per band handed to one worker."""

    # --- Output ---
    write_confidence_mask: bool = True
    """Write the confidence mask image next to the background."""

    output_name: str = "output.png"
    """File name of the reconstructed background."""

    mask_name: str = "confidence.png"
    """File name of the confidence mask."""

    def validate(self) -> None:
        """
        Validate configuration parameters.

        An out-of-range bucket size is reset to the default and an
        out-of-range confidence level is clamped, both with a warning.
        Other invalid values raise ConfigurationError.
        """
        if (
            not isinstance(self.bucket_size, int)
            or not MIN_BUCKET_SIZE <= self.bucket_size <= MAX_BUCKET_SIZE
        ):
            logger.warning(
                "Invalid bucket size %r (expected %d-%d), using %d",
                self.bucket_size, MIN_BUCKET_SIZE, MAX_BUCKET_SIZE, DEFAULT_BUCKET_SIZE,
            )
            self.bucket_size = DEFAULT_BUCKET_SIZE

        if not math.isfinite(self.confidence_level):
            logger.warning(
                "Confidence level %s is not a finite number, using %s",
                self.confidence_level, DEFAULT_CONFIDENCE_LEVEL,
            )
            self.confidence_level = DEFAULT_CONFIDENCE_LEVEL
        elif not 0.0 <= self.confidence_level <= 1.0:
            clamped = min(max(self.confidence_level, 0.0), 1.0)
            logger.warning(
                "Confidence level %s outside [0, 1], clamped to %s",
                self.confidence_level, clamped,
            )
            self.confidence_level = clamped

        if self.bit_depth is not None and not 1 <= self.bit_depth <= 16:
            raise ConfigurationError(f"bit_depth must be in [1, 16], got {self.bit_depth}")
        if self.workers is not None and self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")
        if self.chunk_rows < 1:
            raise ConfigurationError(f"chunk_rows must be >= 1, got {self.chunk_rows}")

    def fit_bucket_size(self, max_val: int) -> int:
        """
        Shrink a bucket size wider than the intensity range 0..max_val.

        Such a size is reset to the default 8, or to the whole range when
        8 is still too wide, with a warning.

        Returns
        -------
        int
            The bucket size in effect.
        """
        n_values = max_val + 1
        if self.bucket_size > n_values:
            fitted = DEFAULT_BUCKET_SIZE if DEFAULT_BUCKET_SIZE <= n_values else n_values
            logger.warning(
                "Bucket size %d exceeds intensity range 0-%d, using %d",
                self.bucket_size, max_val, fitted,
            )
            self.bucket_size = fitted
        return self.bucket_size


@dataclass
class ReconstructionResult:
    """
    Result of a reconstruction run.

    Contains all information needed to understand and reproduce the result.
    """

    # --- Sequence identification ---
    sequence_id: str
    """Sequence identifier (typically the input folder name)."""

    sequence_path: str
    """Absolute path to the input folder."""

    # --- Frame accounting ---
    inputs: list[str] = field(default_factory=list)
    """Frame files, in processing order."""

    frame_info: FrameInfo | None = None
    """Geometry of the sequence."""

    # --- Outputs ---
    outputs: dict[str, str] = field(default_factory=dict)
    """Map of output type to path (e.g., 'background' -> '/path/to/output.png')."""

    # --- Statistics ---
    stats: dict[str, float] = field(default_factory=dict)
    """Computed statistics (e.g., 'first_pass_failed', 'processing_time_s')."""

    # --- Configuration ---
    config: ReconstructionConfig | None = None
    """Configuration used for this run."""

    # --- Metadata ---
    version: str = ""
    """Library version."""

    timestamp: str = ""
    """ISO format timestamp of run completion."""

    platform: str = ""
    """Platform information."""
