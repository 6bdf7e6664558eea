"""
Change detector: keeps the last stable frame and decides when the scene changed.

Each new frame is scored against the reference. When the score reaches the
threshold the frame is promoted to be the new reference, so the baseline is
always the last frame that triggered a change. The very first frame always
counts as a change (there is nothing to compare it with).

Flat frames (zero intensity variance, e.g. a covered lens) score NaN. They
are never promoted. With degenerate_is_change, only the first flat frame of
a run counts as a change, and the run ends at the next scoreable frame. If
the reference itself is flat, the next textured frame replaces it and counts
as a change.
"""

import logging
import math
import threading
from typing import Optional

import numpy as np

from framewatch.config import DEGENERATE_SCORE_IS_CHANGE, SCENE_CHANGE_THRESHOLD
from framewatch.utils.frame_diff import compute_image_difference
from framewatch.utils.image_stats import image_sigma
from framewatch.utils.pixels import as_pixel_buffer

logger = logging.getLogger("framewatch.detector")


class ChangeDetector:
    """Thread-safe reference-frame holder around compute_image_difference()."""

    def __init__(
        self,
        threshold: float = SCENE_CHANGE_THRESHOLD,
        degenerate_is_change: bool = DEGENERATE_SCORE_IS_CHANGE,
        workers: Optional[int] = None,
        chunk_pixels: Optional[int] = None,
    ):
        if not math.isfinite(threshold) or threshold < 0:
            raise ValueError(f"threshold must be a finite, non-negative number, got {threshold!r}")
        self.threshold = float(threshold)
        self.degenerate_is_change = degenerate_is_change
        self._workers = workers
        self._chunk_pixels = chunk_pixels
        self._lock = threading.Lock()
        self._reference: Optional[np.ndarray] = None
        self._last_score: Optional[float] = None
        self._in_degenerate_run = False

    @property
    def has_reference(self) -> bool:
        return self._reference is not None

    @property
    def last_score(self) -> Optional[float]:
        """Score from the most recent check(), or None before the first one."""
        return self._last_score

    def score(self, frame) -> float:
        """Return the raw score of `frame` against the reference without promoting it."""
        with self._lock:
            return self._score(frame)

    def check(self, frame) -> bool:
        """Score `frame` and promote it to reference if the scene changed.

        Raises InvalidImageError if the frame is malformed or its size does
        not match the reference.
        """
        with self._lock:
            first_frame = self._reference is None
            score = self._score(frame)
            self._last_score = score

            if math.isnan(score):
                return self._check_degenerate(frame)

            self._in_degenerate_run = False
            changed = score >= self.threshold
            if changed:
                self._reference = np.array(as_pixel_buffer(frame), copy=True)
                if first_frame:
                    logger.info("Reference frame set")
                else:
                    logger.info("Scene changed (score=%.3f, threshold=%.3f)", score, self.threshold)
            return changed

    def reset(self) -> None:
        """Forget the reference; the next frame counts as a change."""
        with self._lock:
            self._reference = None
            self._last_score = None
            self._in_degenerate_run = False

    def _check_degenerate(self, frame) -> bool:
        reference_sigma = image_sigma(self._reference)
        frame_sigma = image_sigma(frame)

        if frame_sigma > 0:
            # Flat reference, textured frame: the scene came back
            logger.warning("Reference frame is flat (sigma=0), replacing it with the new frame")
            self._reference = np.array(as_pixel_buffer(frame), copy=True)
            self._in_degenerate_run = False
            return True

        changed = self.degenerate_is_change and not self._in_degenerate_run
        self._in_degenerate_run = True
        logger.warning(
            "Degenerate frame comparison (reference sigma=%.4f, frame sigma=%.4f), treating as %s",
            reference_sigma,
            frame_sigma,
            "changed" if changed else "unchanged",
        )
        return changed

    def _score(self, frame) -> float:
        return compute_image_difference(
            self._reference,
            frame,
            workers=self._workers,
            chunk_pixels=self._chunk_pixels,
        )
