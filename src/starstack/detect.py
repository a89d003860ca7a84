"""
Star detection on RGBA frames.

Stars are bright compact blobs of the channel-mean brightness map. Blobs
outside the accepted size range, or sitting on a bright surrounding area
(nebula cores, planetary discs), are rejected.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
import math

import numpy as np

from .blobs import Blob, brightness_map, extract_blobs, local_background
from .config import DetectionConfig
from .frame import Frame, Star

logger = logging.getLogger(__name__)

# Variance of a uniformly filled unit pixel, regularizes second moments
_PIXEL_VARIANCE = 1.0 / 12.0


def estimate_threshold(brightness: np.ndarray, threshold_sigma: float = 5.0) -> float:
    """
    Automatic detection threshold from robust background statistics.

    Parameters
    ----------
    brightness : np.ndarray
        2D brightness map.
    threshold_sigma : float, default 5.0
        Detection threshold in sigma above background.

    Returns
    -------
    float
        median + threshold_sigma * 1.4826 * MAD
    """
    bg_median = float(np.median(brightness))
    bg_mad = float(np.median(np.abs(brightness - bg_median)))
    bg_sigma = 1.4826 * bg_mad
    return bg_median + threshold_sigma * bg_sigma


def blob_roundness(blob: Blob, brightness: np.ndarray) -> float:
    """
    Major/minor axis ratio from brightness-weighted second moments.

    1.0 for a circular blob, larger for elongated (trailed) ones.
    """
    w = brightness[blob.ys, blob.xs].astype(np.float64)
    dx = blob.xs - blob.x
    dy = blob.ys - blob.y
    total = w.sum()
    mxx = (w * dx * dx).sum() / total + _PIXEL_VARIANCE
    myy = (w * dy * dy).sum() / total + _PIXEL_VARIANCE
    mxy = (w * dx * dy).sum() / total

    eig = np.linalg.eigvalsh(np.array([[mxx, mxy], [mxy, myy]]))
    return float(math.sqrt(eig[1] / eig[0]))


def blob_to_star(blob: Blob, brightness: np.ndarray) -> Star:
    """Convert a blob into a Star with FWHM and roundness estimates."""
    return Star(
        x=blob.x,
        y=blob.y,
        brightness=blob.total,
        size=blob.size,
        fwhm=2.0 * math.sqrt(blob.size / math.pi),
        roundness=blob_roundness(blob, brightness),
    )


def detect_stars(
    frame: Frame | np.ndarray,
    threshold: float | None = None,
    config: DetectionConfig | None = None,
) -> list[Star]:
    """
    Detect stars in a frame.

    Parameters
    ----------
    frame : Frame or np.ndarray
        Frame, or raw (H, W[, C]) pixel array.
    threshold : float, optional
        Brightness threshold overriding config.threshold. When both are
        None the threshold is estimated from the background.
    config : DetectionConfig, optional
        Detection parameters. Defaults to DetectionConfig().

    Returns
    -------
    list[Star]
        Stars sorted by descending summed brightness.
    """
    if config is None:
        config = DetectionConfig()

    data = frame.data if isinstance(frame, Frame) else np.asarray(frame)
    brightness = brightness_map(data)

    if threshold is None:
        threshold = config.threshold
    if threshold is None:
        threshold = estimate_threshold(brightness, config.threshold_sigma)
        logger.debug("Automatic detection threshold: %.2f", threshold)

    blobs = extract_blobs(
        brightness, threshold, min_size=config.min_size, max_size=config.max_size
    )

    stars = []
    n_crowded = 0
    for blob in blobs:
        surround = local_background(brightness, blob, config.local_radius)
        if surround > config.max_local_background:
            n_crowded += 1
            continue
        stars.append(blob_to_star(blob, brightness))

    stars.sort(key=lambda s: s.brightness, reverse=True)

    logger.debug(
        "Detected %d stars (%d blobs, %d on bright surroundings, threshold=%.1f)",
        len(stars), len(blobs), n_crowded, threshold
    )
    return stars


def detect_frame(frame: Frame, config: DetectionConfig | None = None) -> Frame:
    """Return the frame carrying its detected stars."""
    return frame.with_stars(detect_stars(frame, config=config))
