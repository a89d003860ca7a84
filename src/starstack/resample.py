"""
Resampling of frames onto the reference pixel grid.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging

import numpy as np
from skimage.transform import AffineTransform, warp

from .frame import Frame
from .transform import Transform
from .utils import to_uint8

logger = logging.getLogger(__name__)


def resample(
    frame: Frame,
    transform: Transform,
    output_shape: tuple[int, int] | None = None,
    order: int = 1,
) -> Frame:
    """
    Warp a frame into reference coordinates.

    Parameters
    ----------
    frame : Frame
        Source frame in its own coordinates.
    transform : Transform
        Map from source coordinates into reference coordinates.
    output_shape : tuple[int, int], optional
        (height, width) of the reference. Defaults to the frame's shape.
    order : int, default 1
        Interpolation order: 0 nearest, 1 bilinear, 3 bicubic.

    Returns
    -------
    Frame
        Frame of output_shape. Pixels sampled from outside the source are
        zero in every channel, alpha included, so they never contribute to
        the combination.

    Notes
    -----
    Each output pixel is sampled through the inverse transform. The
    validity mask is warped with order=0 (nearest-neighbor) for clean
    binary boundaries.
    """
    if output_shape is None:
        output_shape = frame.shape
    output_shape = (int(output_shape[0]), int(output_shape[1]))

    if transform.is_identity() and output_shape == frame.shape:
        return Frame(data=frame.data.copy(), name=frame.name)

    # warp() needs the output->input map
    inverse_affine = AffineTransform(matrix=np.array(transform.matrix)).inverse

    source_mask = np.ones(frame.shape, dtype=np.float32)
    valid = warp(
        source_mask,
        inverse_affine,
        output_shape=output_shape,
        preserve_range=True,
        order=0,  # Nearest-neighbor for clean binary mask
        cval=0.0,  # Outside source = invalid
    ) > 0.5

    data = frame.data.astype(np.float32)
    warped = np.empty(output_shape + (data.shape[2],), dtype=np.float32)
    for c in range(data.shape[2]):
        warped[:, :, c] = warp(
            data[:, :, c],
            inverse_affine,
            output_shape=output_shape,
            preserve_range=True,
            order=order,
            mode="edge",  # Border values only interpolate, the mask decides validity
        )

    result = to_uint8(warped)
    result[~valid] = 0

    logger.debug(
        "Resampled %s: %r, %.1f%% valid",
        frame.name, transform, 100.0 * valid.mean()
    )
    return Frame(data=result, name=frame.name)
