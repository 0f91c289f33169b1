"""
I/O operations for frame sequences.

Handles:
- Frame discovery in a sequence folder (sorted by name)
- Explicit frame lists
- Frame decoding to (height, width, channels) integer arrays
- Writing reconstructed images

Raster formats (PNG, JPEG, TIFF, BMP) go through imageio, FITS files
through astropy.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import imageio.v3 as iio
import numpy as np
import tifffile
from astropy.io import fits

from .config import FrameDecodeError, FrameInfo
from .utils import max_value_for_dtype

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".fits", ".fit")
FITS_EXTENSIONS = (".fits", ".fit", ".fts")
TIFF_EXTENSIONS = (".tif", ".tiff")


def _is_fits(path: Path) -> bool:
    return path.suffix.lower() in FITS_EXTENSIONS


def list_frames(
    sequence_path: str | Path,
    extensions: tuple[str, ...] | list[str] = DEFAULT_EXTENSIONS,
    exclude: tuple[str, ...] | list[str] = (),
) -> list[Path]:
    """
    Discover frame files in a sequence folder.

    Parameters
    ----------
    sequence_path : str or Path
        Folder containing the frames.
    extensions : sequence of str
        Accepted file suffixes (case-insensitive, with leading dot).
    exclude : sequence of str
        File names to skip (e.g. previous outputs written to the same folder).

    Returns
    -------
    list[Path]
        Sorted list of frame paths.

    Notes
    -----
    Files are sorted by name, which for numbered exports corresponds
    to temporal order.
    """
    folder = Path(sequence_path)
    if not folder.is_dir():
        raise ValueError(f"Sequence path is not a directory: {folder}")

    suffixes = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions}
    skipped = set(exclude)

    frames = []
    n_ignored = 0
    for fpath in sorted(folder.iterdir()):
        if not fpath.is_file():
            continue
        if fpath.suffix.lower() not in suffixes:
            n_ignored += 1
            continue
        if fpath.name in skipped:
            logger.debug("Excluding output file: %s", fpath.name)
            n_ignored += 1
            continue
        frames.append(fpath)

    logger.info(
        "Discovered %d frames in %s (ignored: %d)",
        len(frames),
        folder.name,
        n_ignored,
    )

    return frames


def load_frame_list(frame_list_path: str | Path, sequence_path: str | Path) -> list[Path]:
    """
    Load an ordered frame list from a text file.

    Parameters
    ----------
    frame_list_path : str or Path
        File containing frame names/paths, one per line. Blank lines and
        lines starting with '#' are ignored.
    sequence_path : str or Path
        Folder used to resolve relative entries.

    Returns
    -------
    list[Path]
        Frame paths in file order. Missing frames are kept so that the
        decoder reports them.
    """
    frame_list_path = Path(frame_list_path)
    sequence_path = Path(sequence_path)

    frames = []
    with open(frame_list_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            frame_path = Path(line)
            if not frame_path.is_absolute():
                frame_path = sequence_path / line

            if not frame_path.exists():
                logger.warning("Frame not found: %s", line)
            frames.append(frame_path)

    logger.info("Loaded %d frames from list: %s", len(frames), frame_list_path)
    return frames


def _read_fits_data(path: Path) -> np.ndarray:
    with fits.open(path) as hdul:
        data = hdul[0].data
        if data is None:
            raise ValueError("primary HDU has no image data")
        data = np.array(data)

    # FITS colour cubes are stored channel-first
    if data.ndim == 3:
        data = np.moveaxis(data, 0, -1)
    return data


def read_frame(path: str | Path) -> np.ndarray:
    """
    Decode one frame into a (height, width, channels) integer array.

    Parameters
    ----------
    path : str or Path
        Frame file.

    Returns
    -------
    np.ndarray
        Array of shape (H, W, C). Grayscale frames get C = 1.

    Raises
    ------
    FrameDecodeError
        If the file cannot be read, is not an image, or holds
        non-integer pixel data.
    """
    path = Path(path)
    try:
        if _is_fits(path):
            data = _read_fits_data(path)
        else:
            data = np.asarray(iio.imread(path))
    except Exception as e:
        raise FrameDecodeError(str(path), str(e)) from e

    if data.ndim == 2:
        data = data[:, :, np.newaxis]
    elif data.ndim != 3:
        raise FrameDecodeError(str(path), f"unsupported array shape {data.shape}")

    if not np.issubdtype(data.dtype, np.integer):
        raise FrameDecodeError(str(path), f"non-integer pixel data ({data.dtype})")

    return data


def inspect_frame(
    path: str | Path,
    bit_depth: int | None = None,
    reader: Callable[[Path], np.ndarray] = read_frame,
) -> FrameInfo:
    """
    Infer sequence geometry and intensity range from one frame.

    Parameters
    ----------
    path : str or Path
        Representative frame (usually the first of the sequence).
    bit_depth : int, optional
        Bits per channel. When set, ``max_val = 2**bit_depth - 1``
        instead of the dtype maximum.
    reader : callable, default read_frame
        Frame decoder.

    Returns
    -------
    FrameInfo
        Width, height, channel count, dtype and max intensity.
    """
    data = reader(Path(path))
    height, width, channels = data.shape
    if bit_depth is None:
        max_val = max_value_for_dtype(data.dtype)
    else:
        max_val = (1 << bit_depth) - 1
    info = FrameInfo(
        width=width,
        height=height,
        channels=channels,
        dtype=str(data.dtype),
        max_val=max_val,
    )
    logger.info(
        "Image data: %dx%d, %d channel(s), %s, max value %d",
        width, height, channels, info.dtype, info.max_val,
    )
    return info


def write_image(
    path: str | Path,
    data: np.ndarray,
    overwrite: bool = True,
) -> Path:
    """
    Write an image, choosing the writer from the file suffix.

    Parameters
    ----------
    path : str or Path
        Output path (.fits/.fit for FITS, .tif/.tiff through tifffile,
        anything imageio supports otherwise).
    data : np.ndarray
        Image of shape (H, W) or (H, W, C). Single-channel images are
        written as grayscale.
    overwrite : bool, default True
        Whether to replace an existing file.

    Returns
    -------
    Path
        The written path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if not overwrite and path.exists():
        raise FileExistsError(f"Output exists: {path}")

    if data.ndim == 3 and data.shape[2] == 1:
        data = data[:, :, 0]

    if _is_fits(path):
        fits_data = np.moveaxis(data, -1, 0) if data.ndim == 3 else data
        fits.PrimaryHDU(data=fits_data).writeto(path, overwrite=True)
    elif path.suffix.lower() in TIFF_EXTENSIONS:
        # tifffile keeps 16-bit RGB intact
        tifffile.imwrite(path, data)
    else:
        iio.imwrite(path, data)

    logger.info("Wrote image: %s", path)
    return path
