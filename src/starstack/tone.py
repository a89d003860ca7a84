"""
Tonal adjustments of the final image.

Order: levels LUT -> exposure and brightness -> saturation. Alpha is never
modified.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging

import numpy as np

from .config import BasicSettings, LevelsSettings
from .frame import Frame
from .utils import LUMA_WEIGHTS, to_uint8

logger = logging.getLogger(__name__)


def build_levels_lut(levels: LevelsSettings | None = None) -> np.ndarray:
    """
    256-entry levels stretch lookup table.

    Parameters
    ----------
    levels : LevelsSettings, optional
        Black point, midtones (gamma) and white point. None gives the
        identity table.

    Returns
    -------
    np.ndarray
        uint8 array of length 256. Values below the black point map to 0,
        above the white point to 255, and the interval in between is
        normalized and raised to 1/midtones. A white point at or below the
        black point yields the identity table.
    """
    identity = np.arange(256, dtype=np.uint8)
    if levels is None:
        return identity

    black, white = float(levels.black_point), float(levels.white_point)
    span = white - black
    if span <= 0:
        return identity

    i = np.arange(256, dtype=np.float64)
    normalized = np.clip((i - black) / span, 0.0, 1.0)
    lut = np.power(normalized, 1.0 / levels.midtones) * 255.0
    lut[i < black] = 0.0
    lut[i > white] = 255.0
    return to_uint8(lut)


def apply_tone(
    frame: Frame,
    levels: LevelsSettings | None = None,
    basic: BasicSettings | None = None,
) -> Frame:
    """
    Apply levels and basic adjustments to the RGB channels.

    Parameters
    ----------
    frame : Frame
        Input image.
    levels : LevelsSettings, optional
        Levels stretch. None skips the LUT.
    basic : BasicSettings, optional
        Brightness, exposure and saturation in percent. None means
        brightness=100, exposure=0, saturation=100 (no change).

    Returns
    -------
    Frame
        Adjusted frame.
    """
    if basic is None:
        basic = BasicSettings()

    lut = build_levels_lut(levels)
    rgb = lut[frame.data[..., :3]].astype(np.float64)

    factor = (2.0 ** (basic.exposure / 100.0)) * (basic.brightness / 100.0)
    if factor != 1.0:
        rgb = np.clip(rgb * factor, 0.0, 255.0)

    if basic.saturation != 100:
        s = basic.saturation / 100.0
        wr, wg, wb = LUMA_WEIGHTS
        gray = (wr * rgb[..., 0] + wg * rgb[..., 1] + wb * rgb[..., 2])[..., np.newaxis]
        rgb = np.clip(gray + s * (rgb - gray), 0.0, 255.0)

    data = frame.data.copy()
    data[..., :3] = to_uint8(rgb)

    logger.debug(
        "Tone: levels=%s exposure=%.0f brightness=%.0f saturation=%.0f",
        levels, basic.exposure, basic.brightness, basic.saturation
    )
    return Frame(data=data, name=frame.name)


def compute_histogram(frame: Frame) -> dict[str, np.ndarray]:
    """
    Per-channel 256-bin histograms.

    Returns
    -------
    dict[str, np.ndarray]
        Keys "r", "g", "b" and "luma", each an int64 array of length 256.
        Transparent pixels are ignored.
    """
    visible = frame.data[..., 3] > 0
    pixels = frame.data[visible]
    hist = {
        name: np.bincount(pixels[:, c], minlength=256).astype(np.int64)
        for c, name in enumerate(("r", "g", "b"))
    }
    wr, wg, wb = LUMA_WEIGHTS
    luma = to_uint8(wr * pixels[:, 0] + wg * pixels[:, 1] + wb * pixels[:, 2])
    hist["luma"] = np.bincount(luma, minlength=256).astype(np.int64)
    return hist
