"""
Image file I/O.

Handles:
- Decoding PNG/JPEG/TIFF (imageio) and FITS (astropy) into RGBA uint8 frames
- Batch loading where undecodable files become None entries
- Writing stacked results

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
from pathlib import Path

import imageio.v3 as iio
import numpy as np
from astropy.io import fits

from .frame import Frame, to_rgba

logger = logging.getLogger(__name__)

FITS_SUFFIXES = {".fits", ".fit", ".fts"}
IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"}


def is_fits(path: str | Path) -> bool:
    return Path(path).suffix.lower() in FITS_SUFFIXES


def list_images(folder: str | Path) -> list[Path]:
    """
    Discover image files in a folder, sorted by name.

    Parameters
    ----------
    folder : str or Path
        Folder to scan (not recursive).

    Returns
    -------
    list[Path]
        Supported image files.
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise ValueError(f"Not a directory: {folder}")
    supported = IMAGE_SUFFIXES | FITS_SUFFIXES
    images = sorted(p for p in folder.iterdir() if p.suffix.lower() in supported)
    logger.info("Discovered %d images in %s", len(images), folder.name)
    return images


def read_fits(path: str | Path) -> np.ndarray:
    """
    Read FITS pixel data scaled linearly to 0-255.

    Parameters
    ----------
    path : str or Path
        Path to the FITS file.

    Returns
    -------
    np.ndarray
        float32 array (H, W) or (H, W, 3). Color cubes stored as
        (3, H, W) are transposed to channels-last.

    Notes
    -----
    astropy applies BZERO/BSCALE when reading, so values are physical ADU.
    """
    with fits.open(path) as hdul:
        hdu = next((h for h in hdul if h.data is not None), None)
        if hdu is None:
            raise ValueError(f"No image data in {path}")
        data = np.asarray(hdu.data, dtype=np.float32)

    if data.ndim == 3 and data.shape[0] in (3, 4) and data.shape[2] not in (3, 4):
        data = np.moveaxis(data, 0, -1)
    if data.ndim not in (2, 3):
        raise ValueError(f"Unsupported FITS data shape: {data.shape}")

    data = np.nan_to_num(data)
    lo, hi = float(data.min()), float(data.max())
    if hi > lo:
        data = (data - lo) * (255.0 / (hi - lo))
    else:
        data = np.zeros_like(data)
    return data


def read_image(path: str | Path) -> Frame:
    """
    Decode an image file into an RGBA uint8 frame.

    Parameters
    ----------
    path : str or Path
        PNG, JPEG, TIFF or FITS file.

    Returns
    -------
    Frame
        Frame named after the file.
    """
    path = Path(path)
    if is_fits(path):
        data = read_fits(path)
    else:
        data = iio.imread(path)
        # Multi-page TIFF: keep the first page
        if data.ndim == 4 or (data.ndim == 3 and data.shape[2] not in (1, 3, 4)):
            data = data[0]
    return Frame(data=to_rgba(data), name=path.name)


def load_frames(paths: list[str | Path]) -> list[Frame | None]:
    """
    Decode a batch of files.

    Files that fail to decode are logged and returned as None so that the
    pipeline can record them as rejected.
    """
    frames: list[Frame | None] = []
    for path in paths:
        try:
            frames.append(read_image(path))
        except (OSError, ValueError) as e:
            logger.warning("Failed to decode %s: %s", path, e)
            frames.append(None)
    n_ok = sum(f is not None for f in frames)
    logger.info("Loaded %d/%d frames", n_ok, len(frames))
    return frames


def write_image(path: str | Path, frame: Frame, overwrite: bool = True) -> Path:
    """
    Write a frame to disk.

    Parameters
    ----------
    path : str or Path
        Output path; the format follows the suffix. FITS output stores the
        RGB planes as a (3, H, W) cube; JPEG output drops alpha.
    frame : Frame
        Frame to write.
    overwrite : bool, default True
        Whether to overwrite an existing FITS file.

    Returns
    -------
    Path
        The written path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if is_fits(path):
        cube = np.moveaxis(frame.data[..., :3], -1, 0).astype(np.uint8)
        header = fits.Header()
        header["CREATOR"] = "starstack"
        fits.PrimaryHDU(data=cube, header=header).writeto(path, overwrite=overwrite)
    elif path.suffix.lower() in (".jpg", ".jpeg"):
        iio.imwrite(path, np.ascontiguousarray(frame.data[..., :3]))
    else:
        iio.imwrite(path, np.ascontiguousarray(frame.data))

    logger.info("Wrote %s (%dx%d)", path, frame.width, frame.height)
    return path
