"""
Shared helpers for the starstack pipeline.

Includes:
- Version strings for banners, logs and reports
- Timestamps and platform strings
- 8-bit pixel conversions used by every processing stage

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import platform
from datetime import datetime, timezone

import numpy as np

__version__ = "0.4.0"
__version_info__ = {
    "major": 0,
    "minor": 4,
    "patch": 0,
    "status": "stable",
    "date": "2026-10-19",
}

# Rec. 601 luma weights, used for saturation and dumb/planetary luminance
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def get_version() -> str:
    return __version__


def get_version_banner() -> str:
    """One-line banner logged at the start of each job."""
    return f"starstack v{__version__} | frame alignment and stacking"


def get_platform_info() -> str:
    """OS and interpreter, recorded in reports."""
    return f"{platform.system()} {platform.release()} / Python {platform.python_version()}"


def get_timestamp_iso() -> str:
    """Current UTC time in ISO 8601, the prefix of every job log line."""
    return datetime.now(timezone.utc).isoformat()


def to_uint8(data: np.ndarray) -> np.ndarray:
    """
    Round and clamp to the 8-bit range.

    Parameters
    ----------
    data : np.ndarray
        Values nominally in 0-255, any numeric dtype.

    Returns
    -------
    np.ndarray
        uint8 array of the same shape. Halves round to even.
    """
    return np.clip(np.rint(data), 0, 255).astype(np.uint8)


def luminance(data: np.ndarray) -> np.ndarray:
    """
    Weighted luminance of an RGB(A) buffer as float32.

    Grayscale 2D input is returned as float32 unchanged.
    """
    arr = np.asarray(data, dtype=np.float32)
    if arr.ndim == 2:
        return arr
    r, g, b = LUMA_WEIGHTS
    return (r * arr[..., 0] + g * arr[..., 1] + b * arr[..., 2]).astype(np.float32)


def format_duration(seconds: float) -> str:
    """Human-readable duration: "45.2s", "3m 07s" or "1h 02m 05s"."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m {secs:02d}s"
