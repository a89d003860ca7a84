"""
Tests for levels and basic tonal adjustments.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import numpy as np
import pytest

from starstack.config import BasicSettings, LevelsSettings
from starstack.frame import Frame
from starstack.tone import apply_tone, build_levels_lut, compute_histogram


def _pixel(r, g, b, a=255):
    return Frame(data=np.array([[[r, g, b, a]]], dtype=np.uint8))


class TestLevelsLut:
    """Tests for the levels lookup table."""

    def test_identity_by_default(self):
        lut = build_levels_lut(None)
        assert np.array_equal(lut, np.arange(256))
        assert lut.dtype == np.uint8

    def test_black_and_white_points(self):
        lut = build_levels_lut(LevelsSettings(black_point=50, white_point=200))
        assert lut[0] == 0
        assert lut[50] == 0
        assert lut[200] == 255
        assert lut[255] == 255
        assert lut[125] in (127, 128)

    def test_degenerate_span_is_identity(self):
        lut = build_levels_lut(LevelsSettings(black_point=200, white_point=100))
        assert np.array_equal(lut, np.arange(256))

    def test_midtones_brighten(self):
        lut = build_levels_lut(LevelsSettings(midtones=2.0))
        assert lut[64] == 128  # sqrt(64 / 255) * 255

    def test_monotonic(self):
        lut = build_levels_lut(LevelsSettings(black_point=10, midtones=0.7, white_point=240))
        assert np.all(np.diff(lut.astype(int)) >= 0)


class TestApplyTone:
    """Tests for apply_tone."""

    def test_defaults_are_identity(self, noise_frame):
        frame = noise_frame(seed=4, height=8, width=8)
        assert np.array_equal(apply_tone(frame).data, frame.data)

    def test_exposure_doubles(self):
        out = apply_tone(_pixel(60, 60, 60), basic=BasicSettings(exposure=100))
        assert out.data[0, 0, 0] == 120

    def test_brightness_scales(self):
        out = apply_tone(_pixel(60, 60, 60), basic=BasicSettings(brightness=50))
        assert out.data[0, 0, 0] == 30

    def test_exposure_clamps(self):
        out = apply_tone(_pixel(200, 10, 10), basic=BasicSettings(exposure=100))
        assert out.data[0, 0, 0] == 255

    def test_zero_saturation_is_gray(self):
        out = apply_tone(_pixel(200, 100, 50), basic=BasicSettings(saturation=0))
        r, g, b = out.data[0, 0, :3]
        assert r == g == b == 124

    def test_alpha_untouched(self):
        out = apply_tone(
            _pixel(100, 150, 200, a=77),
            levels=LevelsSettings(black_point=20),
            basic=BasicSettings(exposure=50, saturation=150),
        )
        assert out.data[0, 0, 3] == 77

    def test_levels_applied_before_exposure(self):
        out = apply_tone(
            _pixel(100, 100, 100),
            levels=LevelsSettings(black_point=100),
            basic=BasicSettings(exposure=100),
        )
        assert out.data[0, 0, 0] == 0


class TestHistogram:
    """Tests for compute_histogram."""

    def test_counts_visible_pixels(self, constant_frame):
        data = np.array(constant_frame(100, height=4, width=4).data)
        data[0, 0, 3] = 0
        hist = compute_histogram(Frame(data=data))

        assert set(hist) == {"r", "g", "b", "luma"}
        assert hist["r"][100] == 15
        assert hist["luma"][100] == 15
        assert hist["b"].sum() == 15
        assert len(hist["g"]) == 256

    def test_luma_of_colour(self):
        hist = compute_histogram(_pixel(255, 0, 0))
        assert hist["luma"][76] == 1  # 0.299 * 255
        assert hist["r"][255] == 1

    @pytest.mark.parametrize("value", [0, 255])
    def test_extremes(self, constant_frame, value):
        hist = compute_histogram(constant_frame(value, height=2, width=2))
        assert hist["r"][value] == 4
