import math
from typing import Optional

import numpy as np

from framewatch.utils.pixels import CHANNELS, as_pixel_buffer, parallel_reduce

MAX_SAMPLE = 255
MAX_PIXEL_SUM = CHANNELS * MAX_SAMPLE  # R+G+B of a white pixel


def pixel_sums(pixels: np.ndarray, start: int, stop: int) -> np.ndarray:
    """Per-pixel R+G+B for pixels [start, stop) as int64."""
    block = pixels[CHANNELS * start : CHANNELS * stop].reshape(-1, CHANNELS)
    return block.sum(axis=1, dtype=np.int64)


def sample_total(pixels: np.ndarray, workers: Optional[int] = None, chunk_pixels: Optional[int] = None) -> int:
    """Exact sum of every channel sample.

    Each chunk sums into uint64 and the partials are combined as Python ints,
    so the total cannot overflow however many samples there are.
    """

    def _chunk_total(start: int, stop: int) -> int:
        return int(pixels[CHANNELS * start : CHANNELS * stop].sum(dtype=np.uint64))

    return sum(parallel_reduce(_chunk_total, pixels.size // CHANNELS, workers, chunk_pixels))


def image_mean(pixels, workers: Optional[int] = None, chunk_pixels: Optional[int] = None) -> float:
    """Mean per-pixel intensity (R+G+B)/(3*255), in [0, 1]."""
    pixels = as_pixel_buffer(pixels)
    return sample_total(pixels, workers, chunk_pixels) / MAX_SAMPLE / pixels.size


def image_sigma(
    pixels,
    mean: Optional[float] = None,
    workers: Optional[int] = None,
    chunk_pixels: Optional[int] = None,
) -> float:
    """Population standard deviation of per-pixel intensity.

    Uses the exact integer total for centering when `mean` is not given, so a
    flat image returns exactly 0.0.
    """
    pixels = as_pixel_buffer(pixels)
    n_pixels = pixels.size // CHANNELS

    if mean is None:
        total = sample_total(pixels, workers, chunk_pixels)

        def _chunk_squares(start: int, stop: int) -> float:
            centered = (pixel_sums(pixels, start, stop) * n_pixels - total).astype(np.float64)
            return float(np.dot(centered, centered))

        scale = float(MAX_PIXEL_SUM * n_pixels) ** 2
    else:

        def _chunk_squares(start: int, stop: int) -> float:
            centered = pixel_sums(pixels, start, stop) / MAX_PIXEL_SUM - mean
            return float(np.dot(centered, centered))

        scale = 1.0

    sum_squares = sum(parallel_reduce(_chunk_squares, n_pixels, workers, chunk_pixels))
    return math.sqrt(sum_squares / scale / n_pixels)
