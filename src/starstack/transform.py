"""
2D affine transforms between frame coordinate spaces.

A Transform maps points of a target frame into the reference frame using a
3x3 homogeneous matrix acting on (x, y, 1) column vectors. The matrix is
directly usable by skimage.transform.AffineTransform.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from skimage.transform import estimate_transform


@dataclass(frozen=True)
class Transform:
    """Affine map from target coordinates into reference coordinates."""

    matrix: np.ndarray

    def __post_init__(self):
        m = np.array(self.matrix, dtype=np.float64)
        if m.shape != (3, 3):
            raise ValueError(f"Transform matrix must be 3x3, got {m.shape}")
        if not np.all(np.isfinite(m)):
            raise ValueError("Transform matrix contains non-finite values")
        m.flags.writeable = False
        object.__setattr__(self, "matrix", m)

    # --- Constructors ---

    @classmethod
    def identity(cls) -> Transform:
        return cls(np.eye(3))

    @classmethod
    def translation(cls, dx: float, dy: float) -> Transform:
        m = np.eye(3)
        m[0, 2] = dx
        m[1, 2] = dy
        return cls(m)

    @classmethod
    def similarity(
        cls, scale: float = 1.0, rotation: float = 0.0, dx: float = 0.0, dy: float = 0.0
    ) -> Transform:
        """
        Uniform scale, rotation (radians, counter-clockwise in x/y) and shift.
        """
        c = scale * math.cos(rotation)
        s = scale * math.sin(rotation)
        return cls(np.array([[c, -s, dx], [s, c, dy], [0.0, 0.0, 1.0]]))

    # --- Accessors ---

    @property
    def scale(self) -> float:
        """Mean linear scale (sqrt of |det| of the linear part)."""
        return float(math.sqrt(abs(np.linalg.det(self.matrix[:2, :2]))))

    @property
    def rotation(self) -> float:
        """Rotation angle in radians."""
        return float(math.atan2(self.matrix[1, 0], self.matrix[0, 0]))

    @property
    def translation_xy(self) -> tuple[float, float]:
        return (float(self.matrix[0, 2]), float(self.matrix[1, 2]))

    # --- Operations ---

    def apply(self, points: np.ndarray) -> np.ndarray:
        """
        Map (N, 2) points of (x, y) through the transform.

        A single (2,) point is accepted and returned with the same shape.
        """
        pts = np.asarray(points, dtype=np.float64)
        single = pts.ndim == 1
        pts = np.atleast_2d(pts)
        out = pts @ self.matrix[:2, :2].T + self.matrix[:2, 2]
        return out[0] if single else out

    def inverse(self) -> Transform:
        return Transform(np.linalg.inv(self.matrix))

    def compose(self, other: Transform) -> Transform:
        """Return the transform applying `other` first, then self."""
        return Transform(self.matrix @ other.matrix)

    def is_identity(self, atol: float = 1e-9) -> bool:
        return bool(np.allclose(self.matrix, np.eye(3), atol=atol))

    def to_list(self) -> list[list[float]]:
        """JSON-serializable matrix."""
        return self.matrix.tolist()

    def __repr__(self) -> str:
        dx, dy = self.translation_xy
        return (
            f"Transform(scale={self.scale:.4f}, rotation={math.degrees(self.rotation):.3f}deg, "
            f"dx={dx:.2f}, dy={dy:.2f})"
        )


def _as_point_pairs(src, dst, min_points: int, kind: str) -> tuple[np.ndarray, np.ndarray]:
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    if src.shape != dst.shape or src.ndim != 2 or src.shape[1] != 2:
        raise ValueError(f"Point arrays must both be (N, 2), got {src.shape} and {dst.shape}")
    if src.shape[0] < min_points:
        raise ValueError(f"{kind.capitalize()} fit needs at least {min_points} points, got {src.shape[0]}")
    return src, dst


def _estimate(kind: str, src: np.ndarray, dst: np.ndarray) -> Transform:
    tform = estimate_transform(kind, src, dst)
    # Failed estimations are falsy on recent scikit-image
    if not tform or not np.all(np.isfinite(tform.params)):
        raise ValueError(f"Degenerate point configuration for {kind} fit")
    return Transform(tform.params)


def estimate_similarity(src: np.ndarray, dst: np.ndarray) -> Transform:
    """
    Least-squares similarity transform mapping src points onto dst points.

    Parameters
    ----------
    src : np.ndarray
        (N, 2) points in the target frame, N >= 2.
    dst : np.ndarray
        (N, 2) corresponding points in the reference frame.

    Returns
    -------
    Transform
        Fitted transform.

    Raises
    ------
    ValueError
        Too few points, or all src points coincide.

    Notes
    -----
    Uses skimage's SimilarityTransform estimator (Umeyama).
    """
    src, dst = _as_point_pairs(src, dst, 2, "similarity")
    if np.ptp(src, axis=0).max() < 1e-9:
        raise ValueError("Degenerate point configuration for similarity fit")
    return _estimate("similarity", src, dst)


def estimate_affine(src: np.ndarray, dst: np.ndarray) -> Transform:
    """
    Least-squares full affine transform mapping src points onto dst points.

    Needs at least 3 non-collinear points; collinear input raises ValueError.
    """
    src, dst = _as_point_pairs(src, dst, 3, "affine")
    if np.linalg.matrix_rank(src - src.mean(axis=0), tol=1e-9) < 2:
        raise ValueError("Degenerate point configuration for affine fit")
    return _estimate("affine", src, dst)


def residuals(transform: Transform, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Euclidean distance between transformed src points and dst points."""
    return np.linalg.norm(transform.apply(src) - np.asarray(dst, dtype=np.float64), axis=1)
