"""
Connected bright-region extraction.

Shared by star detection and star removal: threshold a per-pixel brightness
map, label the 8-connected components and summarize each one as a Blob.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)

# Full 3x3 structuring element: diagonal neighbours are connected
EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


@dataclass(frozen=True)
class Blob:
    """A maximal 8-connected region above threshold."""

    ys: np.ndarray
    xs: np.ndarray
    x: float  # brightness-weighted centroid
    y: float
    size: int
    total: float  # summed brightness
    peak: float

    @property
    def equivalent_radius(self) -> float:
        """Radius of the disc with the same area."""
        return float(np.sqrt(self.size / np.pi))


def brightness_map(data: np.ndarray) -> np.ndarray:
    """
    Per-pixel brightness as the mean of the colour channels.

    Parameters
    ----------
    data : np.ndarray
        (H, W) grayscale or (H, W, C) array; for C == 4 the alpha channel
        is excluded.

    Returns
    -------
    np.ndarray
        (H, W) float32 brightness on the input scale.
    """
    arr = np.asarray(data)
    if arr.ndim == 2:
        return arr.astype(np.float32)
    channels = arr[..., :3] if arr.shape[2] >= 3 else arr
    return channels.astype(np.float32).mean(axis=2)


def extract_blobs(
    brightness: np.ndarray,
    threshold: float,
    min_size: int = 1,
    max_size: int | None = None,
) -> list[Blob]:
    """
    Find 8-connected regions with brightness strictly above threshold.

    Parameters
    ----------
    brightness : np.ndarray
        2D brightness map.
    threshold : float
        Pixels must exceed this value to belong to a blob.
    min_size : int, default 1
        Smallest accepted region, in pixels.
    max_size : int, optional
        Largest accepted region, in pixels. None means unbounded.

    Returns
    -------
    list[Blob]
        Regions in label order (raster order of their first pixel).
    """
    if brightness.ndim != 2:
        raise ValueError(f"brightness must be 2D, got shape {brightness.shape}")

    binary = brightness > threshold
    labeled, n_features = ndimage.label(binary, structure=EIGHT_CONNECTED)
    if n_features == 0:
        return []

    blobs = []
    for label, slc in enumerate(ndimage.find_objects(labeled), start=1):
        if slc is None:
            continue
        local_ys, local_xs = np.nonzero(labeled[slc] == label)
        size = local_ys.size
        if size < min_size or (max_size is not None and size > max_size):
            continue

        ys = local_ys + slc[0].start
        xs = local_xs + slc[1].start
        values = brightness[ys, xs].astype(np.float64)
        total = float(values.sum())
        if total <= 0:
            continue

        blobs.append(Blob(
            ys=ys,
            xs=xs,
            x=float((xs * values).sum() / total),
            y=float((ys * values).sum() / total),
            size=int(size),
            total=total,
            peak=float(values.max()),
        ))

    logger.debug(
        "Extracted %d blobs from %d components (threshold=%.1f)",
        len(blobs), n_features, threshold
    )
    return blobs


def local_background(brightness: np.ndarray, blob: Blob, radius: int = 10) -> float:
    """
    Mean brightness in a disc around the blob centroid, excluding the blob.

    Returns 0.0 when the disc holds no pixel outside the blob.
    """
    h, w = brightness.shape
    cx, cy = int(round(blob.x)), int(round(blob.y))
    y0, y1 = max(0, cy - radius), min(h, cy + radius + 1)
    x0, x1 = max(0, cx - radius), min(w, cx + radius + 1)

    yy, xx = np.mgrid[y0:y1, x0:x1]
    region = (xx - blob.x) ** 2 + (yy - blob.y) ** 2 <= radius * radius

    inside = (blob.ys >= y0) & (blob.ys < y1) & (blob.xs >= x0) & (blob.xs < x1)
    region[blob.ys[inside] - y0, blob.xs[inside] - x0] = False

    if not region.any():
        return 0.0
    return float(brightness[y0:y1, x0:x1][region].mean())
