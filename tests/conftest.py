"""
Pytest configuration and fixtures.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import numpy as np
import pytest

from starstack.frame import Frame, Star


def _rgba(gray: np.ndarray, alpha: int = 255) -> np.ndarray:
    """Stack a grayscale array into opaque RGBA uint8."""
    gray = np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    a = np.full(gray.shape, alpha, dtype=np.uint8)
    return np.dstack([gray, gray, gray, a])


@pytest.fixture
def constant_frame():
    """Create a uniform RGBA frame."""
    def _create(value=100, height=8, width=8, alpha=255, name=""):
        data = np.empty((height, width, 4), dtype=np.uint8)
        data[..., :3] = value
        data[..., 3] = alpha
        return Frame(data=data, name=name)

    return _create


@pytest.fixture
def star_frame():
    """Create a frame with hard-edged disc stars on a flat background."""
    def _create(positions, height=64, width=64, background=20, value=250, radius=2, name=""):
        gray = np.full((height, width), background, dtype=np.float64)
        yy, xx = np.mgrid[0:height, 0:width]
        for x0, y0 in positions:
            gray[(xx - x0) ** 2 + (yy - y0) ** 2 <= radius * radius] = value
        return Frame(data=_rgba(gray), name=name)

    return _create


@pytest.fixture
def disc_frame():
    """Create a planetary-style frame dominated by one bright disc."""
    def _create(center, radius=15, height=96, width=96, background=10, value=200):
        gray = np.full((height, width), background, dtype=np.float64)
        yy, xx = np.mgrid[0:height, 0:width]
        gray[(xx - center[0]) ** 2 + (yy - center[1]) ** 2 <= radius * radius] = value
        return Frame(data=_rgba(gray))

    return _create


@pytest.fixture
def noise_frame():
    """Create a frame of uniform random noise."""
    def _create(seed=0, height=64, width=64):
        rng = np.random.default_rng(seed)
        return Frame(data=_rgba(rng.uniform(0, 255, (height, width))))

    return _create


@pytest.fixture
def random_stars():
    """Create a list of Stars at random positions, brightest first."""
    def _create(n=12, seed=7, low=10.0, high=118.0):
        rng = np.random.default_rng(seed)
        points = rng.uniform(low, high, (n, 2))
        return [
            Star(x=float(x), y=float(y), brightness=float(1000 - 10 * i), size=9)
            for i, (x, y) in enumerate(points)
        ]

    return _create


@pytest.fixture
def blank_frame(constant_frame):
    """128x128 dark frame used as a pixel carrier for star-list alignment."""
    return constant_frame(value=0, height=128, width=128)
