"""
Core data model: frames and stars.

A Frame is an immutable RGBA uint8 buffer of shape (height, width, 4)
together with the stars detected in it. Frames are created once per job
from decoded input and are read-only once star detection completes.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

import numpy as np

N_CHANNELS = 4
OPAQUE = 255


@dataclass(frozen=True)
class Star:
    """A point source in the coordinate space of its owning frame."""

    x: float
    y: float
    brightness: float
    size: int = 1
    fwhm: float | None = None
    roundness: float | None = None
    manual: bool = False  # True for user-supplied stars

    def __post_init__(self):
        if self.size < 1:
            raise ValueError(f"Star size must be >= 1, got {self.size}")

    @property
    def position(self) -> tuple[float, float]:
        """(x, y) centroid."""
        return (self.x, self.y)


def stars_to_array(stars) -> np.ndarray:
    """Return an (N, 2) float64 array of (x, y) star positions."""
    if len(stars) == 0:
        return np.zeros((0, 2), dtype=np.float64)
    return np.array([[s.x, s.y] for s in stars], dtype=np.float64)


def to_rgba(data: np.ndarray) -> np.ndarray:
    """
    Normalize a decoded buffer to RGBA uint8.

    Parameters
    ----------
    data : np.ndarray
        2D grayscale, (H, W, 1), (H, W, 3) RGB or (H, W, 4) RGBA array.
        Float arrays are expected on the 0-255 scale; other integer
        depths are rescaled by their dtype range.

    Returns
    -------
    np.ndarray
        Array of shape (H, W, 4) and dtype uint8, alpha opaque when absent.
    """
    arr = np.asarray(data)

    if arr.dtype != np.uint8:
        if np.issubdtype(arr.dtype, np.integer):
            scale = 255.0 / np.iinfo(arr.dtype).max
            arr = np.clip(np.rint(arr.astype(np.float64) * scale), 0, 255)
        else:
            arr = np.clip(np.rint(np.nan_to_num(arr.astype(np.float64))), 0, 255)
        arr = arr.astype(np.uint8)

    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    if arr.ndim != 3:
        raise ValueError(f"Unsupported image shape: {arr.shape}")

    channels = arr.shape[2]
    if channels == 1:
        rgb = np.repeat(arr, 3, axis=2)
        alpha = np.full(arr.shape[:2] + (1,), OPAQUE, dtype=np.uint8)
        return np.concatenate([rgb, alpha], axis=2)
    if channels == 3:
        alpha = np.full(arr.shape[:2] + (1,), OPAQUE, dtype=np.uint8)
        return np.concatenate([arr, alpha], axis=2)
    if channels == N_CHANNELS:
        return np.array(arr, copy=True)

    raise ValueError(f"Unsupported channel count: {channels}")


@dataclass(frozen=True)
class Frame:
    """
    Immutable rectangular RGBA pixel buffer with its detected stars.

    Attributes
    ----------
    data : np.ndarray
        Read-only (height, width, 4) uint8 array.
    stars : tuple[Star, ...]
        Detected stars, brightest first.
    manual_stars : tuple[Star, ...]
        User-supplied stars (reference frame only).
    name : str
        Identifier used in logs and reports.
    """

    data: np.ndarray
    stars: tuple[Star, ...] = ()
    manual_stars: tuple[Star, ...] = ()
    name: str = ""
    _detected: bool = field(default=False, repr=False)

    def __post_init__(self):
        data = self.data
        if data.ndim != 3 or data.shape[2] != N_CHANNELS or data.dtype != np.uint8:
            data = to_rgba(data)
        elif data.flags.writeable:
            data = data.copy()
        data.flags.writeable = False
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "stars", tuple(self.stars))
        object.__setattr__(self, "manual_stars", tuple(self.manual_stars))

    @classmethod
    def from_array(cls, data: np.ndarray, name: str = "") -> Frame:
        """Build a frame from any decoded buffer accepted by to_rgba()."""
        return cls(data=to_rgba(data), name=name)

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def shape(self) -> tuple[int, int]:
        """(height, width)."""
        return (self.height, self.width)

    @property
    def detected(self) -> bool:
        """True once star detection has been run on this frame."""
        return self._detected

    @property
    def alignment_stars(self) -> tuple[Star, ...]:
        """Manual stars when supplied, otherwise detected stars."""
        return self.manual_stars if self.manual_stars else self.stars

    def with_stars(self, stars) -> Frame:
        """Return a copy carrying the given detected stars."""
        return replace(self, stars=tuple(stars), _detected=True)

    def with_manual_stars(self, stars) -> Frame:
        """Return a copy carrying user-supplied stars."""
        marked = tuple(s if s.manual else replace(s, manual=True) for s in stars)
        return replace(self, manual_stars=marked)

    def with_data(self, data: np.ndarray) -> Frame:
        """Return a frame with new pixels and no stars, keeping the name."""
        return Frame(data=data, name=self.name)
