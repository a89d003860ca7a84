"""
Calibration of light frames with master bias, dark and flat frames.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging

import numpy as np

from .errors import DimensionMismatchError
from .frame import Frame
from .utils import to_uint8

logger = logging.getLogger(__name__)

# Flat pixels whose normalized response is below this are left uncorrected
MIN_FLAT_FACTOR = 0.1


def create_master_frame(frames: list[Frame | None], kind: str = "master") -> Frame | None:
    """
    Average calibration frames into a master frame.

    Parameters
    ----------
    frames : list[Frame | None]
        Calibration frames; None entries (failed decodes) are skipped.
    kind : str, default "master"
        Label used in logs and as the master's name ("dark", "bias", "flat").

    Returns
    -------
    Frame or None
        Per-pixel average of all channels, or None when no frame is usable.

    Raises
    ------
    DimensionMismatchError
        If the frames do not share dimensions.
    """
    valid = [f for f in frames if f is not None]
    if not valid:
        logger.warning("No valid %s frames, master not created", kind)
        return None

    shape = valid[0].shape
    for f in valid[1:]:
        if f.shape != shape:
            raise DimensionMismatchError(
                f"{kind} frame is {f.shape}, expected {shape}", stage="calibration", frame=f.name
            )

    total = np.zeros(valid[0].data.shape, dtype=np.float64)
    for f in valid:
        total += f.data
    master = to_uint8(total / len(valid))

    logger.info("Master %s created from %d frames (%dx%d)", kind, len(valid), shape[1], shape[0])
    return Frame(data=master, name=f"master-{kind}")


def _check_master(light: Frame, master: Frame, kind: str) -> None:
    if master.shape != light.shape:
        raise DimensionMismatchError(
            f"master {kind} is {master.shape}, light is {light.shape}",
            stage="calibration",
            frame=light.name,
        )


def apply_calibration(
    light: Frame,
    dark: Frame | None = None,
    bias: Frame | None = None,
    flat: Frame | None = None,
) -> Frame:
    """
    Calibrate a light frame.

    Parameters
    ----------
    light : Frame
        Light frame.
    dark, bias, flat : Frame, optional
        Master frames with the light's dimensions.

    Returns
    -------
    Frame
        Calibrated frame; alpha is preserved and stars are dropped.

    Notes
    -----
    Bias is subtracted first, then dark, each clamped at 0. The flat is
    normalized by its mean RGB brightness and divides the light only where
    the normalized factor exceeds MIN_FLAT_FACTOR.
    """
    rgb = light.data[..., :3].astype(np.float64)

    if bias is not None:
        _check_master(light, bias, "bias")
        rgb = np.maximum(0.0, rgb - bias.data[..., :3])
    if dark is not None:
        _check_master(light, dark, "dark")
        rgb = np.maximum(0.0, rgb - dark.data[..., :3])
    if flat is not None:
        _check_master(light, flat, "flat")
        flat_rgb = flat.data[..., :3].astype(np.float64)
        flat_mean = float(flat_rgb.mean())
        if flat_mean == 0:
            logger.warning("Master flat is black, flat correction skipped for %s", light.name)
        else:
            factor = flat_rgb / flat_mean
            usable = factor > MIN_FLAT_FACTOR
            np.divide(rgb, factor, out=rgb, where=usable)

    data = light.data.copy()
    data[..., :3] = to_uint8(rgb)
    return Frame(data=data, name=light.name)
