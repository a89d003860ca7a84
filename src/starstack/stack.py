"""
Combination of co-registered frames into one image.

A pixel of a frame contributes when its alpha is above zero, so the
transparent borders left by resampling never bias the result. Every
channel, alpha included, is reduced over the contributing frames.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from astropy.stats import sigma_clip

from .config import CombineMode
from .errors import DimensionMismatchError
from .frame import Frame
from .utils import to_uint8

logger = logging.getLogger(__name__)


@dataclass
class StackStatistics:
    """Statistics from a stacking operation."""

    n_frames: int
    min_coverage: int
    max_coverage: int
    mean_coverage: float
    uncovered_fraction: float  # Pixels with no contributing frame


def _check_dimensions(frames: list[Frame]) -> tuple[int, int]:
    if len(frames) == 0:
        raise ValueError("Empty frame list")
    shape = frames[0].shape
    for i, frame in enumerate(frames[1:], start=1):
        if frame.shape != shape:
            raise DimensionMismatchError(
                f"frame is {frame.shape}, expected {shape}",
                stage="combine",
                frame=frame.name or i,
            )
    return shape


def coverage_map(frames: list[Frame]) -> np.ndarray:
    """Number of frames contributing at each pixel (alpha > 0)."""
    _check_dimensions(frames)
    coverage = np.zeros(frames[0].shape, dtype=np.int32)
    for frame in frames:
        coverage += frame.data[:, :, 3] > 0
    return coverage


def _reduce_chunk(cube: np.ma.MaskedArray, mode: CombineMode, sigma: float) -> np.ndarray:
    """Reduce a masked (n_frames, rows, width, channels) cube along axis 0."""
    if mode is CombineMode.AVERAGE:
        reduced = np.ma.mean(cube, axis=0)
    elif mode is CombineMode.MEDIAN:
        # Even counts average the two middle values
        reduced = np.ma.median(cube, axis=0)
    elif mode is CombineMode.LIGHTEN:
        reduced = np.ma.max(cube, axis=0)
    elif mode is CombineMode.DARKEN:
        reduced = np.ma.min(cube, axis=0)
    elif mode is CombineMode.SIGMA:
        clipped = sigma_clip(cube, sigma=sigma, maxiters=5, axis=0, masked=True, copy=False)
        reduced = np.ma.mean(clipped, axis=0)
    else:
        raise ValueError(f"Unknown combine mode: {mode}")

    # No contributor -> defined zero
    return np.ma.filled(np.ma.asarray(reduced, dtype=np.float64), 0.0)


def combine(
    frames: list[Frame],
    mode: CombineMode | str = CombineMode.AVERAGE,
    sigma: float = 2.0,
    chunk_rows: int = 256,
) -> Frame:
    """
    Reduce a stack of co-registered frames per channel per pixel.

    Parameters
    ----------
    frames : list[Frame]
        Frames sharing the reference dimensions.
    mode : CombineMode or str, default "average"
        average, median, lighten, darken or sigma (sigma-clipped mean).
    sigma : float, default 2.0
        Clipping threshold for the sigma mode.
    chunk_rows : int, default 256
        Rows reduced at a time, bounding the size of the masked cube.

    Returns
    -------
    Frame
        Combined frame, rounded and clamped to 0-255. Pixels without any
        contributing frame are 0 in every channel.

    Raises
    ------
    DimensionMismatchError
        If the frames do not share dimensions.
    """
    mode = CombineMode(mode)
    height, width = _check_dimensions(frames)
    n_frames = len(frames)

    logger.info("Combining %d frames (%dx%d) with mode=%s", n_frames, width, height, mode.value)

    result = np.zeros((height, width, 4), dtype=np.uint8)
    for row_start in range(0, height, chunk_rows):
        row_end = min(row_start + chunk_rows, height)

        chunk = np.stack(
            [f.data[row_start:row_end].astype(np.float32) for f in frames], axis=0
        )
        invalid = np.repeat(chunk[..., 3:4] <= 0, chunk.shape[-1], axis=-1)
        cube = np.ma.MaskedArray(chunk, mask=invalid)

        result[row_start:row_end] = to_uint8(_reduce_chunk(cube, mode, sigma))

    return Frame(data=result, name=f"{mode.value}-stack")


def compute_stack_statistics(frames: list[Frame]) -> StackStatistics:
    """
    Coverage statistics of a stack.

    Parameters
    ----------
    frames : list[Frame]
        Co-registered frames.

    Returns
    -------
    StackStatistics
        Frame count and per-pixel coverage summary.
    """
    coverage = coverage_map(frames)
    covered = coverage > 0
    stats = StackStatistics(
        n_frames=len(frames),
        min_coverage=int(coverage[covered].min()) if covered.any() else 0,
        max_coverage=int(coverage.max()),
        mean_coverage=float(coverage[covered].mean()) if covered.any() else 0.0,
        uncovered_fraction=float(1.0 - covered.mean()),
    )
    logger.info(
        "Coverage: min=%d, max=%d, mean=%.1f",
        stats.min_coverage, stats.max_coverage, stats.mean_coverage
    )
    return stats
