"""
Utility functions for the vanish pipeline.

Includes:
- Version info
- Integer image conversion
- File/path helpers

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import platform
import sys
from datetime import datetime, timezone
from pathlib import Path

import numpy as np

__version__ = "0.4.0"
__version_info__ = {
    "major": 0,
    "minor": 4,
    "patch": 0,
    "status": "stable",
    "date": "2026-10-19",
}


def get_version_banner() -> str:
    """Return a formatted version banner for logging."""
    return f"vanish v{__version__} | Transient Object Removal"


def get_version() -> str:
    """Return the library version string."""
    return __version__


def get_platform_info() -> str:
    """Return platform information string."""
    return f"{platform.system()} {platform.release()} / Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"


def get_timestamp_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def max_value_for_dtype(dtype: np.dtype) -> int:
    """
    Largest intensity representable by an integer image dtype.

    Parameters
    ----------
    dtype : np.dtype
        Integer dtype of a decoded frame.

    Returns
    -------
    int
        255 for uint8, 65535 for uint16, etc.
    """
    dtype = np.dtype(dtype)
    if not np.issubdtype(dtype, np.integer):
        raise ValueError(f"Expected an integer image dtype, got {dtype}")
    return int(np.iinfo(dtype).max)


def dtype_for_max_value(max_val: int) -> np.dtype:
    """Smallest unsigned dtype able to hold max_val."""
    if max_val <= 255:
        return np.dtype(np.uint8)
    if max_val <= 65535:
        return np.dtype(np.uint16)
    return np.dtype(np.uint32)


def to_integer_image(data: np.ndarray, max_val: int) -> np.ndarray:
    """
    Convert a float image to the integer range [0, max_val].

    Values are truncated toward zero, not rounded.

    Parameters
    ----------
    data : np.ndarray
        Float image.
    max_val : int
        Largest representable intensity.

    Returns
    -------
    np.ndarray
        Integer image with the smallest fitting unsigned dtype.
    """
    clipped = np.clip(np.trunc(data), 0, max_val)
    return clipped.astype(dtype_for_max_value(max_val))


def ensure_output_dir(output_root: Path, sequence_id: str | None = None) -> Path:
    """
    Create and return the output directory for a sequence.

    Parameters
    ----------
    output_root : Path
        Root output directory.
    sequence_id : str, optional
        Sequence identifier (input folder name). When given, outputs
        go to a subdirectory of that name.

    Returns
    -------
    Path
        Path to the output directory.
    """
    output_dir = Path(output_root)
    if sequence_id:
        output_dir = output_dir / sequence_id
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable form.

    Parameters
    ----------
    seconds : float
        Duration in seconds.

    Returns
    -------
    str
        Formatted string like "2h 15m 30s" or "45.2s".
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.0f}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = seconds % 60
        return f"{hours}h {minutes}m {secs:.0f}s"
