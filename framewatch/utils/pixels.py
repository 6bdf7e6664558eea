"""Pixel buffer handling shared by the image statistics.

A pixel buffer is a flat run of unsigned 8-bit samples, interleaved as
(R, G, B) triples, row-major. Anything the scorer touches goes through
as_pixel_buffer() first, so the statistics only ever see a read-only 1-D
uint8 array whose length is a positive multiple of 3.

Global sums are computed chunk by chunk. Chunk boundaries depend only on the
chunk size, and partial results come back in chunk order, so combining them
left to right gives the same floating-point result for any worker count.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator, Optional, TypeVar

import numpy as np

from framewatch.config import COMPARE_CHUNK_PIXELS, COMPARE_WORKERS

CHANNELS = 3
MAX_DEFAULT_WORKERS = 8

T = TypeVar("T")


class InvalidImageError(ValueError):
    """Raised when a pixel buffer is missing, malformed, or does not match its partner."""


def _is_raw_bytes(data) -> bool:
    """True for buffers whose memory is already a contiguous run of unsigned bytes."""
    if isinstance(data, (bytes, bytearray)):
        return True
    if not isinstance(data, memoryview):
        return False
    try:
        return data.itemsize == 1 and data.format == "B" and data.c_contiguous
    except ValueError:
        # released memoryview, let np.asarray report it
        return False


def as_pixel_buffer(data, name: str = "image") -> np.ndarray:
    """Return `data` as a read-only flat uint8 view.

    Accepts bytes, bytearray, memoryviews (read with their own item format,
    so a memoryview over array('i') is range-checked like a list), uint8
    ndarrays of any shape (flattened in C order, so an H x W x 3 frame works
    as-is) and integer sequences in 0..255.
    Never copies when the input is already a contiguous uint8 array.
    """
    if data is None:
        raise InvalidImageError(f"{name} is required")

    if _is_raw_bytes(data):
        pixels = np.frombuffer(data, dtype=np.uint8)
    else:
        # numpy honours a memoryview's item format and strides here
        try:
            pixels = np.asarray(data)
        except (TypeError, ValueError, BufferError) as e:
            raise InvalidImageError(f"{name} is not a pixel buffer: {e}") from e
        if pixels.dtype != np.uint8:
            if pixels.size and (pixels.dtype.kind not in "iu" or pixels.min() < 0 or pixels.max() > 255):
                raise InvalidImageError(f"{name} must hold 8-bit samples, got dtype {pixels.dtype}")
            pixels = pixels.astype(np.uint8)
        pixels = pixels.reshape(-1)

    if pixels.size == 0:
        raise InvalidImageError(f"{name} has no pixels")
    if pixels.size % CHANNELS:
        raise InvalidImageError(f"{name} length {pixels.size} is not a multiple of {CHANNELS}")

    view = pixels.view()
    view.flags.writeable = False
    return view


def resolve_workers(workers: Optional[int] = None) -> int:
    if workers is None:
        workers = COMPARE_WORKERS
    if workers is None:
        workers = min(MAX_DEFAULT_WORKERS, os.cpu_count() or 1)
    return max(1, int(workers))


def pixel_chunks(n_pixels: int, chunk_pixels: Optional[int] = None) -> Iterator[tuple[int, int]]:
    """Yield (start, stop) pixel ranges covering [0, n_pixels)."""
    size = max(1, int(chunk_pixels or COMPARE_CHUNK_PIXELS))
    for start in range(0, n_pixels, size):
        yield start, min(start + size, n_pixels)


def parallel_reduce(
    func: Callable[[int, int], T],
    n_pixels: int,
    workers: Optional[int] = None,
    chunk_pixels: Optional[int] = None,
) -> list[T]:
    """Run func(start, stop) over every chunk and return the partials in chunk order."""
    chunks = list(pixel_chunks(n_pixels, chunk_pixels))
    workers = min(resolve_workers(workers), len(chunks))
    if workers <= 1:
        return [func(start, stop) for start, stop in chunks]

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="framewatch-reduce") as executor:
        # map() preserves submission order
        return list(executor.map(lambda bounds: func(*bounds), chunks))
