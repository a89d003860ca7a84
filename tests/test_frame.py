"""
Tests for the data model and transforms.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import math

import numpy as np
import pytest

from starstack.frame import Frame, Star, stars_to_array, to_rgba
from starstack.transform import Transform, estimate_affine, estimate_similarity, residuals


class TestToRgba:
    """Tests for buffer normalization."""

    def test_grayscale_becomes_opaque_rgba(self):
        gray = np.arange(12, dtype=np.uint8).reshape(3, 4)
        rgba = to_rgba(gray)
        assert rgba.shape == (3, 4, 4)
        assert rgba.dtype == np.uint8
        assert np.array_equal(rgba[..., 0], gray)
        assert np.array_equal(rgba[..., 2], gray)
        assert np.all(rgba[..., 3] == 255)

    def test_rgb_gets_alpha(self):
        rgb = np.zeros((2, 2, 3), dtype=np.uint8)
        assert np.all(to_rgba(rgb)[..., 3] == 255)

    def test_uint16_is_rescaled(self):
        data = np.array([[0, 65535]], dtype=np.uint16)
        rgba = to_rgba(data)
        assert rgba[0, 0, 0] == 0
        assert rgba[0, 1, 0] == 255

    def test_float_is_clamped(self):
        data = np.array([[-5.0, 300.0, 127.6]])
        rgba = to_rgba(data)
        assert list(rgba[0, :, 0]) == [0, 255, 128]

    def test_unsupported_channels_raise(self):
        with pytest.raises(ValueError, match="channel count"):
            to_rgba(np.zeros((2, 2, 5), dtype=np.uint8))


class TestFrame:
    """Tests for the immutable Frame."""

    def test_data_is_read_only(self, constant_frame):
        frame = constant_frame(10)
        with pytest.raises(ValueError):
            frame.data[0, 0, 0] = 1

    def test_source_array_is_not_aliased(self):
        data = np.zeros((2, 2, 4), dtype=np.uint8)
        frame = Frame(data=data)
        data[0, 0, 0] = 99
        assert frame.data[0, 0, 0] == 0

    def test_dimensions(self, constant_frame):
        frame = constant_frame(10, height=5, width=7)
        assert frame.width == 7
        assert frame.height == 5
        assert frame.shape == (5, 7)

    def test_with_stars_marks_detected(self, constant_frame):
        frame = constant_frame(10)
        assert not frame.detected
        stars = [Star(1.0, 2.0, 100.0)]
        detected = frame.with_stars(stars)
        assert detected.detected
        assert detected.stars == tuple(stars)
        assert frame.stars == ()

    def test_manual_stars_take_precedence(self, constant_frame):
        frame = constant_frame(10).with_stars([Star(1.0, 1.0, 5.0)])
        manual = frame.with_manual_stars([Star(3.0, 3.0, 0.0)])
        assert manual.alignment_stars[0].x == 3.0
        assert manual.alignment_stars[0].manual

    def test_star_size_must_be_positive(self):
        with pytest.raises(ValueError):
            Star(0.0, 0.0, 1.0, size=0)

    def test_stars_to_array(self):
        stars = [Star(1.0, 2.0, 0.0), Star(3.0, 4.0, 0.0)]
        arr = stars_to_array(stars)
        assert arr.shape == (2, 2)
        assert tuple(arr[1]) == stars[1].position
        assert stars_to_array([]).shape == (0, 2)


class TestTransform:
    """Tests for the affine Transform."""

    def test_identity(self):
        t = Transform.identity()
        assert t.is_identity()
        pts = np.array([[1.0, 2.0], [3.0, 4.0]])
        assert np.allclose(t.apply(pts), pts)

    def test_translation(self):
        t = Transform.translation(2.0, -1.0)
        assert np.allclose(t.apply(np.array([1.0, 1.0])), [3.0, 0.0])
        assert t.translation_xy == (2.0, -1.0)

    def test_similarity_accessors(self):
        t = Transform.similarity(scale=1.5, rotation=0.3, dx=4.0, dy=5.0)
        assert t.scale == pytest.approx(1.5)
        assert t.rotation == pytest.approx(0.3)

    def test_inverse_round_trip(self):
        t = Transform.similarity(scale=0.9, rotation=-0.2, dx=3.0, dy=1.0)
        pts = np.array([[10.0, 20.0], [-5.0, 7.5]])
        assert np.allclose(t.inverse().apply(t.apply(pts)), pts)
        assert t.compose(t.inverse()).is_identity(atol=1e-12)

    def test_rejects_bad_matrix(self):
        with pytest.raises(ValueError):
            Transform(np.eye(2))
        with pytest.raises(ValueError):
            Transform(np.full((3, 3), np.nan))


class TestEstimators:
    """Tests for least-squares transform fitting."""

    def test_similarity_recovers_exact_transform(self):
        truth = Transform.similarity(scale=1.1, rotation=math.radians(12), dx=-4.0, dy=9.0)
        src = np.array([[0.0, 0.0], [10.0, 0.0], [3.0, 7.0], [8.0, 8.0]])
        fitted = estimate_similarity(src, truth.apply(src))
        assert np.allclose(fitted.matrix, truth.matrix)

    def test_similarity_from_two_points(self):
        truth = Transform.similarity(rotation=0.5, dx=1.0, dy=2.0)
        src = np.array([[0.0, 0.0], [5.0, 5.0]])
        fitted = estimate_similarity(src, truth.apply(src))
        assert np.allclose(residuals(fitted, src, truth.apply(src)), 0.0)

    def test_affine_recovers_shear(self):
        truth = Transform(np.array([[1.2, 0.1, 3.0], [0.05, 0.9, -2.0], [0.0, 0.0, 1.0]]))
        src = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0], [7.0, 3.0]])
        fitted = estimate_affine(src, truth.apply(src))
        assert np.allclose(fitted.matrix, truth.matrix)

    def test_too_few_points_raise(self):
        with pytest.raises(ValueError):
            estimate_similarity(np.zeros((1, 2)), np.zeros((1, 2)))
        with pytest.raises(ValueError):
            estimate_affine(np.zeros((2, 2)), np.zeros((2, 2)))

    def test_degenerate_points_raise(self):
        src = np.array([[1.0, 1.0], [1.0, 1.0]])
        with pytest.raises(ValueError, match="Degenerate"):
            estimate_similarity(src, src)

    def test_collinear_points_raise_for_affine(self):
        src = np.array([[0.0, 0.0], [2.0, 1.0], [6.0, 3.0]])
        with pytest.raises(ValueError, match="Degenerate"):
            estimate_affine(src, src + 1.0)
        # A similarity is still defined on a line
        fitted = estimate_similarity(src, src + 1.0)
        assert fitted.translation_xy == pytest.approx((1.0, 1.0))
