import logging
import sys
from typing import Optional

import numpy as np

from framewatch.utils.image_stats import MAX_SAMPLE, pixel_sums, sample_total
from framewatch.utils.pixels import CHANNELS, InvalidImageError, as_pixel_buffer, parallel_reduce

logger = logging.getLogger("framewatch.frame_diff")

# Returned when there is no reference frame yet, so any threshold trips
NO_BASELINE_SCORE = sys.float_info.max

__all__ = [
    "NO_BASELINE_SCORE",
    "InvalidImageError",
    "compute_image_difference",
    "contrast_factor",
]


def contrast_factor(mean_a: float, mean_b: float) -> float:
    """2 * distance of the darker/brighter mean from the nearest extreme.

    1.0 when both means are mid-gray, near 0 when either image is almost
    black or almost white.
    """
    return 2.0 * min(mean_a, mean_b, 1.0 - mean_a, 1.0 - mean_b)


def compute_image_difference(
    reference,
    candidate,
    *,
    workers: Optional[int] = None,
    chunk_pixels: Optional[int] = None,
) -> float:
    """Compare two frames and return a (kind of) probability that they differ.

    0 means identical, 1 means maximally different. Camera noise and lighting
    drift keep real scenes above 0, so callers pick a threshold; 0.18 is a
    reasonable start.

    The raw difference is (1 - rho) / 2, where rho is the Pearson correlation
    of the two images' per-pixel intensities (R+G+B)/(3*255). Correlation of
    very dark or very bright images is less meaningful, so the raw difference
    is scaled by (1 + contrast) / 2, see contrast_factor().

    Args:
        reference: Baseline pixel buffer, or None when there is no baseline yet.
        candidate: Pixel buffer to compare. Same length as `reference`.
        workers: Threads for the reductions (default from config).
        chunk_pixels: Pixels per reduction chunk (default from config).

    Returns:
        The score as a float. NO_BASELINE_SCORE when `reference` is None.
        NaN when either image has zero intensity variance (e.g. a flat color);
        NaN fails every ordered comparison, so `score >= threshold` is False
        and callers must decide what a degenerate frame means.

    Raises:
        InvalidImageError: `candidate` is missing or malformed, or the two
            buffers differ in length.
    """
    candidate = as_pixel_buffer(candidate, "candidate")
    if reference is None:
        return NO_BASELINE_SCORE

    reference = as_pixel_buffer(reference, "reference")
    if reference.size != candidate.size:
        raise InvalidImageError(
            f"image sizes differ: reference has {reference.size} samples, candidate has {candidate.size}"
        )

    n_pixels = reference.size // CHANNELS
    total_reference = sample_total(reference, workers, chunk_pixels)
    total_candidate = sample_total(candidate, workers, chunk_pixels)
    mean_reference = total_reference / MAX_SAMPLE / reference.size
    mean_candidate = total_candidate / MAX_SAMPLE / candidate.size

    # Centered intensities scaled by 765 * n_pixels stay exact integers;
    # the scale cancels in the correlation and flat images give exact zeros.
    def _chunk_moments(start: int, stop: int) -> tuple[float, float, float]:
        d1 = (pixel_sums(reference, start, stop) * n_pixels - total_reference).astype(np.float64)
        d2 = (pixel_sums(candidate, start, stop) * n_pixels - total_candidate).astype(np.float64)
        return float(np.dot(d1, d2)), float(np.dot(d1, d1)), float(np.dot(d2, d2))

    covar_sum = var_sum_reference = var_sum_candidate = 0.0
    for covar, var_reference, var_candidate in parallel_reduce(_chunk_moments, n_pixels, workers, chunk_pixels):
        covar_sum += covar
        var_sum_reference += var_reference
        var_sum_candidate += var_candidate

    with np.errstate(divide="ignore", invalid="ignore"):
        correlation = float(np.float64(covar_sum) / np.sqrt(np.float64(var_sum_reference * var_sum_candidate)))

    contrast = contrast_factor(mean_reference, mean_candidate)
    level = (1.0 + contrast) / 2.0 * (1.0 - correlation) / 2.0

    logger.debug(
        "means=%.4f/%.4f correlation=%.6f contrast=%.4f level=%.6f",
        mean_reference,
        mean_candidate,
        correlation,
        contrast,
        level,
    )
    return level
