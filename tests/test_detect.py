"""
Tests for blob extraction and star detection.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import math

import numpy as np
import pytest

from starstack.blobs import brightness_map, extract_blobs, local_background
from starstack.config import DetectionConfig
from starstack.detect import detect_frame, detect_stars, estimate_threshold


class TestBrightnessMap:
    """Tests for per-pixel brightness."""

    def test_mean_of_colour_channels_excludes_alpha(self):
        data = np.zeros((1, 1, 4), dtype=np.uint8)
        data[0, 0] = [30, 60, 90, 255]
        assert brightness_map(data)[0, 0] == pytest.approx(60.0)

    def test_grayscale_passes_through(self):
        gray = np.array([[1.0, 2.0]])
        assert np.array_equal(brightness_map(gray), gray)


class TestExtractBlobs:
    """Tests for 8-connected blob extraction."""

    def test_diagonal_pixels_are_connected(self):
        b = np.zeros((5, 5))
        b[1, 1] = b[2, 2] = b[3, 3] = 200
        blobs = extract_blobs(b, 100)
        assert len(blobs) == 1
        assert blobs[0].size == 3

    def test_separate_regions(self):
        b = np.zeros((5, 7))
        b[1, 1] = 200
        b[3, 5] = 200
        assert len(extract_blobs(b, 100)) == 2

    def test_threshold_is_strict(self):
        b = np.full((3, 3), 100.0)
        assert extract_blobs(b, 100) == []

    def test_weighted_centroid(self):
        b = np.zeros((3, 4))
        b[1, 1] = 100
        b[1, 2] = 300
        blob = extract_blobs(b, 50)[0]
        assert blob.x == pytest.approx((1 * 100 + 2 * 300) / 400)
        assert blob.y == pytest.approx(1.0)
        assert blob.total == pytest.approx(400.0)
        assert blob.peak == pytest.approx(300.0)

    def test_zero_brightness_region_discarded(self):
        b = np.zeros((4, 4))
        assert extract_blobs(b, -1.0) == []

    def test_size_limits(self):
        b = np.zeros((10, 10))
        b[1, 1] = 200  # 1 px
        b[5:8, 5:8] = 200  # 9 px
        assert [bl.size for bl in extract_blobs(b, 100, min_size=2)] == [9]
        assert [bl.size for bl in extract_blobs(b, 100, max_size=4)] == [1]

    def test_rejects_non_2d(self):
        with pytest.raises(ValueError):
            extract_blobs(np.zeros((2, 2, 3)), 1.0)


class TestLocalBackground:
    """Tests for the surrounding-area brightness."""

    def test_excludes_blob_pixels(self):
        b = np.full((21, 21), 40.0)
        b[9:12, 9:12] = 250
        blob = extract_blobs(b, 100)[0]
        assert local_background(b, blob, radius=5) == pytest.approx(40.0)

    def test_bright_surroundings(self):
        b = np.full((21, 21), 170.0)
        b[10, 10] = 250
        blob = extract_blobs(b, 200)[0]
        assert local_background(b, blob) == pytest.approx(170.0)


class TestDetectStars:
    """Tests for star detection."""

    def test_single_disc(self, star_frame):
        """One isolated disc gives one star at its centre with its area."""
        radius = 4
        frame = star_frame([(30, 25)], radius=radius)
        stars = detect_stars(frame)

        assert len(stars) == 1
        star = stars[0]
        assert abs(star.x - 30) < 0.5
        assert abs(star.y - 25) < 0.5
        area = math.pi * radius**2
        assert abs(star.size - area) / area < 0.10
        assert star.fwhm == pytest.approx(2 * math.sqrt(star.size / math.pi))
        assert star.roundness == pytest.approx(1.0, abs=0.05)
        assert not star.manual

    def test_sorted_by_brightness(self, star_frame):
        frame = star_frame([(10, 10)], radius=1)
        data = np.array(frame.data)
        yy, xx = np.mgrid[0:64, 0:64]
        data[(xx - 40) ** 2 + (yy - 40) ** 2 <= 9, :3] = 240
        stars = detect_stars(data)
        assert len(stars) == 2
        assert stars[0].brightness > stars[1].brightness
        assert abs(stars[0].x - 40) < 0.5

    def test_hot_pixel_rejected(self, constant_frame):
        data = np.array(constant_frame(20, height=32, width=32).data)
        data[16, 16, :3] = 255
        assert detect_stars(data) == []

    def test_extended_object_rejected(self, star_frame):
        frame = star_frame([(32, 32)], radius=14)  # ~615 px
        assert detect_stars(frame) == []

    def test_star_on_bright_nebula_rejected(self, constant_frame):
        data = np.array(constant_frame(170, height=32, width=32).data)
        data[15:18, 15:18, :3] = 250
        assert detect_stars(data) == []

    def test_elongated_star_roundness(self, constant_frame):
        data = np.array(constant_frame(20, height=32, width=32).data)
        data[15:17, 8:20, :3] = 250
        star = detect_stars(data)[0]
        assert star.roundness > 3.0

    def test_threshold_argument_overrides_config(self, star_frame):
        frame = star_frame([(20, 20)], value=150)
        assert detect_stars(frame) == []
        assert len(detect_stars(frame, threshold=100)) == 1

    def test_automatic_threshold(self, star_frame):
        frame = star_frame([(20, 20), (44, 40)], value=150)
        stars = detect_stars(frame, config=DetectionConfig(threshold=None))
        assert len(stars) == 2

    def test_estimate_threshold(self):
        rng = np.random.default_rng(0)
        b = rng.normal(50.0, 5.0, (200, 200))
        t = estimate_threshold(b, threshold_sigma=5.0)
        assert 70.0 < t < 80.0

    def test_detect_frame_carries_stars(self, star_frame):
        frame = detect_frame(star_frame([(30, 30)]))
        assert frame.detected
        assert len(frame.stars) == 1
