"""Tests for utils/frame_diff.py: lighting-adjusted correlation score."""

import math
import sys
from array import array

import numpy as np
import pytest
from conftest import gray_frame

from framewatch.utils.frame_diff import (
    NO_BASELINE_SCORE,
    InvalidImageError,
    compute_image_difference,
    contrast_factor,
)

BLACK_WHITE = bytes([0, 0, 0, 255, 255, 255])
WHITE_BLACK = bytes([255, 255, 255, 0, 0, 0])


class TestConcreteScenarios:
    def test_identical_black_white_pair_scores_zero(self):
        assert compute_image_difference(BLACK_WHITE, BLACK_WHITE) == 0.0

    def test_swapped_black_white_pair_scores_one(self):
        assert compute_image_difference(BLACK_WHITE, WHITE_BLACK) == pytest.approx(1.0, abs=1e-12)

    def test_flat_gray_pair_is_nan_not_zero(self):
        flat = [128, 128, 128, 128, 128, 128]
        score = compute_image_difference(flat, flat)
        assert math.isnan(score)


class TestProperties:
    def test_identity(self, textured_frame):
        assert compute_image_difference(textured_frame, textured_frame) == pytest.approx(0.0, abs=1e-9)

    def test_symmetry(self, textured_frame, other_frame):
        forward = compute_image_difference(textured_frame, other_frame)
        backward = compute_image_difference(other_frame, textured_frame)
        assert forward == backward

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_range_for_unrelated_frames(self, seed):
        rng = np.random.default_rng(seed)
        a = rng.integers(0, 256, size=(32, 32, 3), dtype=np.uint8)
        b = rng.integers(0, 256, size=(32, 32, 3), dtype=np.uint8)
        assert 0.0 <= compute_image_difference(a, b) <= 1.0

    def test_partial_change_scores_between_identical_and_unrelated(self, textured_frame, other_frame):
        changed = textured_frame.copy()
        changed[10:20, 10:30] = 255
        partial = compute_image_difference(textured_frame, changed)
        unrelated = compute_image_difference(textured_frame, other_frame)
        assert 0.0 < partial < unrelated

    def test_brightness_shift_alone_is_not_a_change(self, textured_frame):
        brighter = (textured_frame.astype(np.int16) + 20).clip(0, 255).astype(np.uint8)
        assert compute_image_difference(textured_frame, brighter) < 0.01


class TestNoBaseline:
    def test_returns_max_float(self, textured_frame):
        score = compute_image_difference(None, textured_frame)
        assert score == NO_BASELINE_SCORE == sys.float_info.max

    def test_sentinel_trips_any_threshold(self, textured_frame):
        assert compute_image_difference(None, textured_frame) >= 1.0

    def test_candidate_still_validated(self):
        with pytest.raises(InvalidImageError):
            compute_image_difference(None, b"\x00\x01")


class TestContrastDamping:
    def test_contrast_factor_values(self):
        assert contrast_factor(0.5, 0.5) == pytest.approx(1.0)
        assert contrast_factor(0.02, 0.02) == pytest.approx(0.04)
        assert contrast_factor(0.98, 0.98) == pytest.approx(0.04)
        assert contrast_factor(0.5, 0.1) == pytest.approx(0.2)

    def test_contrast_factor_symmetric(self):
        assert contrast_factor(0.3, 0.9) == contrast_factor(0.9, 0.3)

    def test_dark_scene_is_damped_relative_to_mid_gray(self, rng):
        p = rng.integers(0, 2, size=400)
        q = rng.integers(0, 2, size=400)

        dark = compute_image_difference(gray_frame(2 + 10 * p), gray_frame(2 + 10 * q))
        mid = compute_image_difference(gray_frame(100 + 50 * p), gray_frame(100 + 50 * q))

        dark_mean = (2 + 10 * p.mean()) / 255
        mid_mean = (100 + 50 * p.mean()) / 255
        dark_q_mean = (2 + 10 * q.mean()) / 255
        mid_q_mean = (100 + 50 * q.mean()) / 255
        ratio = (1 + contrast_factor(dark_mean, dark_q_mean)) / (1 + contrast_factor(mid_mean, mid_q_mean))

        assert dark < mid
        assert dark == pytest.approx(mid * ratio, rel=1e-9)

    def test_score_grows_as_means_move_toward_mid_gray(self, rng):
        p = rng.integers(0, 2, size=400)
        q = rng.integers(0, 2, size=400)
        scores = [
            compute_image_difference(gray_frame(offset + 20 * p), gray_frame(offset + 20 * q))
            for offset in (0, 30, 60, 90)
        ]
        assert scores == sorted(scores)
        assert len(set(scores)) == len(scores)


class TestDegenerateVariance:
    def test_flat_candidate_against_textured_reference_is_nan(self, textured_frame):
        flat = np.full_like(textured_frame, 200)
        assert math.isnan(compute_image_difference(textured_frame, flat))

    def test_flat_reference_is_nan(self, textured_frame):
        flat = np.zeros_like(textured_frame)
        assert math.isnan(compute_image_difference(flat, textured_frame))

    def test_nan_fails_threshold_comparisons(self):
        score = compute_image_difference(gray_frame([7, 7, 7, 7]), gray_frame([9, 9, 9, 9]))
        assert math.isnan(score)
        assert not score >= 0.18
        assert not score < 0.18

    def test_no_runtime_warning(self, recwarn):
        compute_image_difference(gray_frame([7, 7]), gray_frame([9, 9]))
        assert not [w for w in recwarn if issubclass(w.category, RuntimeWarning)]


class TestInvalidInput:
    def test_length_mismatch(self):
        with pytest.raises(InvalidImageError, match="differ"):
            compute_image_difference(BLACK_WHITE, BLACK_WHITE + bytes(3))

    def test_length_not_multiple_of_three(self):
        with pytest.raises(InvalidImageError, match="multiple of 3"):
            compute_image_difference(bytes(7), bytes(7))

    def test_missing_candidate(self):
        with pytest.raises(InvalidImageError, match="candidate"):
            compute_image_difference(BLACK_WHITE, None)

    def test_empty_buffers(self):
        with pytest.raises(InvalidImageError, match="no pixels"):
            compute_image_difference(b"", b"")

    def test_float_frame_rejected(self):
        frame = np.zeros((2, 2, 3), dtype=np.float32)
        with pytest.raises(InvalidImageError, match="8-bit"):
            compute_image_difference(frame, frame)

    def test_out_of_range_samples_rejected(self):
        with pytest.raises(InvalidImageError):
            compute_image_difference([0, 0, 0, 256, 0, 0], [0, 0, 0, 1, 0, 0])

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            compute_image_difference(bytes(6), bytes(9))

    def test_wide_memoryview_out_of_range_rejected(self):
        wide = memoryview(array("i", [0, 0, 0, 300, 0, 0]))
        with pytest.raises(InvalidImageError, match="8-bit"):
            compute_image_difference(BLACK_WHITE, wide)

    def test_released_memoryview_rejected(self):
        view = memoryview(bytearray(BLACK_WHITE))
        view.release()
        with pytest.raises(InvalidImageError, match="candidate"):
            compute_image_difference(BLACK_WHITE, view)


class TestInputForms:
    def test_bytes_list_and_array_agree(self):
        as_array = np.frombuffer(WHITE_BLACK, dtype=np.uint8).reshape(1, 2, 3)
        expected = compute_image_difference(BLACK_WHITE, WHITE_BLACK)
        assert compute_image_difference(bytearray(BLACK_WHITE), list(WHITE_BLACK)) == expected
        assert compute_image_difference(memoryview(BLACK_WHITE), as_array) == expected

    def test_memoryview_read_with_its_item_format(self):
        reference = memoryview(array("i", list(BLACK_WHITE)))
        candidate = memoryview(array("i", list(WHITE_BLACK)))
        assert compute_image_difference(reference, candidate) == compute_image_difference(
            list(BLACK_WHITE), list(WHITE_BLACK)
        )
        assert compute_image_difference(reference, candidate) == pytest.approx(1.0, abs=1e-12)

    def test_strided_memoryview(self):
        # every other byte of the interleaved buffer is the frame
        padded = bytes(value for sample in WHITE_BLACK for value in (sample, 7))
        strided = memoryview(padded)[::2]
        assert compute_image_difference(BLACK_WHITE, strided) == pytest.approx(1.0, abs=1e-12)

    def test_channel_order_does_not_matter(self, textured_frame, other_frame):
        rgb = compute_image_difference(textured_frame, other_frame)
        bgr = compute_image_difference(textured_frame[..., ::-1], other_frame[..., ::-1])
        assert bgr == pytest.approx(rgb, abs=1e-12)

    def test_inputs_not_mutated(self, textured_frame, other_frame):
        before_a, before_b = textured_frame.copy(), other_frame.copy()
        compute_image_difference(textured_frame, other_frame)
        np.testing.assert_array_equal(textured_frame, before_a)
        np.testing.assert_array_equal(other_frame, before_b)
        assert textured_frame.flags.writeable


class TestParallelReduction:
    def test_worker_count_does_not_change_result(self, textured_frame, other_frame):
        serial = compute_image_difference(textured_frame, other_frame, workers=1, chunk_pixels=97)
        threaded = compute_image_difference(textured_frame, other_frame, workers=4, chunk_pixels=97)
        assert serial == threaded

    def test_chunking_matches_single_pass(self, textured_frame, other_frame):
        single = compute_image_difference(textured_frame, other_frame, chunk_pixels=10**9)
        chunked = compute_image_difference(textured_frame, other_frame, workers=3, chunk_pixels=64)
        assert chunked == pytest.approx(single, rel=1e-12)
