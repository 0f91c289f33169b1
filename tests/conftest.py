"""
Pytest configuration and fixtures.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from pathlib import Path

import imageio.v3 as iio
import numpy as np
import pytest


@pytest.fixture
def memory_reader():
    """Frame decoder backed by a dict of in-memory frames."""
    def _create(frames):
        """
        Build (paths, reader) for a list of (H, W, C) arrays.

        The reader records every path it is asked for in ``reader.calls``.
        """
        paths = [Path(f"frame_{i:04d}.png") for i in range(len(frames))]
        store = {p: np.asarray(f) for p, f in zip(paths, frames)}

        def reader(path):
            reader.calls.append(Path(path))
            return store[Path(path)].copy()

        reader.calls = []
        return paths, reader

    return _create


@pytest.fixture
def pixel_frames():
    """Single-pixel frames from a list of values (one channel or RGB tuples)."""
    def _create(values, dtype=np.uint8):
        frames = []
        for v in values:
            channels = np.atleast_1d(np.asarray(v, dtype=dtype))
            frames.append(channels.reshape(1, 1, -1))
        return frames

    return _create


@pytest.fixture
def synthetic_scene():
    """Static RGB background with a bright square moving across it."""
    def _create(height=24, width=32, n_frames=10, square=6, seed=42):
        rng = np.random.default_rng(seed)
        background = rng.integers(40, 200, size=(height, width, 3), dtype=np.uint8)

        frames = []
        for t in range(n_frames):
            frame = background.copy()
            x0 = (t * 3) % (width - square)
            y0 = (t * 2) % (height - square)
            frame[y0:y0 + square, x0:x0 + square] = (250, 10, 250)
            frames.append(frame)

        return background, frames

    return _create


@pytest.fixture
def sequence_dir(tmp_path):
    """Write frames as numbered PNG files into a sequence folder."""
    def _create(frames, name="sequence"):
        folder = tmp_path / name
        folder.mkdir()
        for i, frame in enumerate(frames):
            data = frame[:, :, 0] if frame.ndim == 3 and frame.shape[2] == 1 else frame
            iio.imwrite(folder / f"frame_{i:04d}.png", data)
        return folder

    return _create
