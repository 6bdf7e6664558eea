"""Shared frame fixtures for the framewatch test suite."""

import numpy as np
import pytest


def gray_frame(values, width: int = None) -> np.ndarray:
    """Build an H x W x 3 frame whose pixels are gray (v, v, v) for each v in `values`."""
    values = np.asarray(values, dtype=np.uint8)
    if values.ndim == 1:
        values = values.reshape(1, -1) if width is None else values.reshape(-1, width)
    return np.repeat(values[..., None], 3, axis=-1)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def textured_frame(rng):
    """Mid-gray 48x64 frame with random texture."""
    return rng.integers(40, 220, size=(48, 64, 3), dtype=np.uint8)


@pytest.fixture
def other_frame(rng):
    return rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8)
