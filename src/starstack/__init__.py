"""
starstack - Alignment and stacking of astronomical frames.

Detects stars, registers every frame onto a reference, combines the
aligned stack and optionally removes stars and adjusts tones.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com

Example
-------
>>> from starstack import StackConfig, StackJob, load_frames, run_stack
>>> frames = load_frames(["m31_001.png", "m31_002.png", "m31_003.png"])
>>> job = StackJob(frames=frames, config=StackConfig(strategy="consensus", mode="median"))
>>> result = run_stack(job)
>>> result.success, result.image.shape
(True, (2160, 3840))
"""

from .config import (
    AlignConfig,
    AlignmentStrategy,
    BasicSettings,
    CombineMode,
    DetectionConfig,
    LevelsSettings,
    RejectedFrame,
    RejectionReason,
    StackConfig,
    StarRemovalConfig,
)
from .errors import (
    AlignmentFailure,
    DimensionMismatchError,
    ErrorKind,
    InsufficientFramesError,
    JobCancelledError,
    StackError,
)
from .utils import __version__, __version_info__, get_version_banner

# Data model
from .frame import Frame, Star, to_rgba
from .transform import Transform, estimate_affine, estimate_similarity

# Detection
from .blobs import Blob, brightness_map, extract_blobs, local_background
from .detect import detect_frame, detect_stars, estimate_threshold

# Alignment
from .align import AlignmentResult, align
from .resample import resample

# Stacking
from .stack import StackStatistics, combine, compute_stack_statistics, coverage_map

# Post-processing
from .starless import build_star_mask, inpaint, reduce_stars_morphological, remove_stars
from .tone import apply_tone, build_levels_lut, compute_histogram
from .calibration import apply_calibration, create_master_frame

# Primary entry point
from .pipeline import CalibrationMasters, JobContext, StackJob, StackResult, run_stack, stack_frames

# I/O
from .io import load_frames, read_image, write_image
from .report import write_report, write_report_markdown

__all__ = [
    # Version
    "__version__",
    "__version_info__",
    "get_version_banner",
    # Config
    "AlignConfig",
    "AlignmentStrategy",
    "BasicSettings",
    "CombineMode",
    "DetectionConfig",
    "LevelsSettings",
    "RejectedFrame",
    "RejectionReason",
    "StackConfig",
    "StarRemovalConfig",
    # Errors
    "AlignmentFailure",
    "DimensionMismatchError",
    "ErrorKind",
    "InsufficientFramesError",
    "JobCancelledError",
    "StackError",
    # Data model
    "Frame",
    "Star",
    "to_rgba",
    "Transform",
    "estimate_affine",
    "estimate_similarity",
    # Detection
    "Blob",
    "brightness_map",
    "extract_blobs",
    "local_background",
    "detect_frame",
    "detect_stars",
    "estimate_threshold",
    # Alignment
    "AlignmentResult",
    "align",
    "resample",
    # Stacking
    "StackStatistics",
    "combine",
    "compute_stack_statistics",
    "coverage_map",
    # Post-processing
    "build_star_mask",
    "inpaint",
    "reduce_stars_morphological",
    "remove_stars",
    "apply_tone",
    "build_levels_lut",
    "compute_histogram",
    "apply_calibration",
    "create_master_frame",
    # Pipeline
    "CalibrationMasters",
    "JobContext",
    "StackJob",
    "StackResult",
    "run_stack",
    "stack_frames",
    # I/O
    "load_frames",
    "read_image",
    "write_image",
    "write_report",
    "write_report_markdown",
]
