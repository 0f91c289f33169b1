"""
vanish - Transient object removal from image sequences.

Reconstructs the static background of a scene from a sequence of frames
in which people, cars or other objects move through. Each pixel's
intensity history is binned into two half-offset histograms, the
dominant bucket is selected, and the frames agreeing with it are
averaged.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com

Example
-------
>>> from vanish import list_frames, reconstruct_background, ReconstructionConfig
>>> frames = list_frames("captures/plaza")
>>> config = ReconstructionConfig(bucket_size=8, confidence_level=0.2)
>>> rec = reconstruct_background(frames, config=config)
>>> rec.background.shape
(480, 640, 3)
"""

from .config import (
    ConfigurationError,
    FrameDecodeError,
    FrameInfo,
    InputError,
    ReconstructionConfig,
    ReconstructionResult,
)
from .utils import __version__, __version_info__, get_version_banner

# Primary entry points
from .cli import run_sequence
from .pipeline import Reconstruction, inspect_pixel, reconstruct_background

# I/O functions
from .io import inspect_frame, list_frames, load_frame_list, read_frame, write_image

# Core stages
from .buckets import BucketMapper
from .histogram import HistogramPair, accumulate_frame, build_histograms, pixel_histogram
from .mode import ModeMap, select_modes, strongest_channel
from .reconstruct import (
    Accumulator,
    apply_gate,
    confidence_frames,
    first_pass,
    second_pass,
)
from .composite import CompositeResult, composite_output, confidence_mask_image

# Parallelism
from .parallel import BandExecutor, map_row_bands, row_bands

__all__ = [
    # Version
    "__version__",
    "__version_info__",
    "get_version_banner",
    # Config / errors
    "ReconstructionConfig",
    "ReconstructionResult",
    "FrameInfo",
    "ConfigurationError",
    "InputError",
    "FrameDecodeError",
    # Entry points
    "run_sequence",
    "reconstruct_background",
    "inspect_pixel",
    "Reconstruction",
    # I/O
    "list_frames",
    "load_frame_list",
    "read_frame",
    "inspect_frame",
    "write_image",
    # Buckets
    "BucketMapper",
    # Histograms
    "HistogramPair",
    "accumulate_frame",
    "build_histograms",
    "pixel_histogram",
    # Modes
    "ModeMap",
    "select_modes",
    "strongest_channel",
    # Reconstruction
    "Accumulator",
    "confidence_frames",
    "first_pass",
    "apply_gate",
    "second_pass",
    # Compositing
    "CompositeResult",
    "composite_output",
    "confidence_mask_image",
    # Parallelism
    "BandExecutor",
    "map_row_bands",
    "row_bands",
]
