"""
Configuration dataclasses for the starstack pipeline.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class AlignmentStrategy(Enum):
    """Closed set of alignment strategies."""

    STANDARD = "standard"  # Asterism matching (astroalign) + least squares
    CONSENSUS = "consensus"  # RANSAC-style voting over full star sets
    PLANETARY = "planetary"  # Disc centroid / limb fit
    DUMB = "dumb"  # Whole-frame cross-correlation, translation only


class CombineMode(Enum):
    """Per-pixel reduction rules."""

    AVERAGE = "average"
    MEDIAN = "median"
    LIGHTEN = "lighten"
    DARKEN = "darken"
    SIGMA = "sigma"


class RejectionReason(Enum):
    """Reason codes for frame rejection."""

    DECODE_FAILED = "decode_failed"  # Upstream decoder produced no buffer
    ALIGNMENT_FAILED = "alignment_failed"  # Could not align to reference
    DIMENSION_MISMATCH = "dimension_mismatch"  # Resampled size differs


@dataclass
class RejectedFrame:
    """Record of a rejected frame with reason."""

    index: int
    name: str
    reason: RejectionReason
    stage: str = ""
    detail: str = ""  # Optional additional info (e.g., strategy message)


@dataclass
class DetectionConfig:
    """
    Parameters for star detection.

    Brightness values are on the 0-255 scale of the channel mean.
    """

    threshold: float | None = 180.0
    """Blob threshold. None selects median + threshold_sigma * MAD-sigma."""

    threshold_sigma: float = 5.0
    """Sigma multiplier for the automatic threshold."""

    min_size: int = 2
    """Minimum blob size in pixels (rejects hot pixels)."""

    max_size: int = 500
    """Maximum blob size in pixels (rejects extended objects)."""

    local_radius: int = 10
    """Radius of the surrounding area sampled around each centroid."""

    max_local_background: float = 150.0
    """Blobs whose surrounding mean brightness exceeds this are rejected."""

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.threshold is not None and not 0.0 <= self.threshold <= 255.0:
            raise ValueError(f"threshold must be in [0, 255], got {self.threshold}")
        if self.threshold_sigma <= 0:
            raise ValueError(f"threshold_sigma must be positive, got {self.threshold_sigma}")
        if self.min_size < 1:
            raise ValueError(f"min_size must be >= 1, got {self.min_size}")
        if self.max_size < self.min_size:
            raise ValueError(
                f"max_size must be >= min_size, got {self.max_size} < {self.min_size}"
            )
        if self.local_radius < 1:
            raise ValueError(f"local_radius must be >= 1, got {self.local_radius}")


@dataclass
class AlignConfig:
    """Parameters shared by the alignment strategies."""

    model: Literal["similarity", "affine"] = "similarity"
    """Transform model fitted from star correspondences."""

    max_stars: int = 15
    """Brightest stars per frame handed to asterism matching (standard)."""

    inlier_tolerance: float = 2.0
    """Pixel distance under which a star agrees with a transform."""

    min_inliers: int = 3
    """Minimum accepted correspondences / agreeing stars."""

    consensus_stars: int | None = 40
    """
    Brightest stars per frame paired into consensus candidates (None = all).
    Agreement with the winning hypothesis is always counted over all stars.
    """

    max_iterations: int = 10000
    """RANSAC trials of the consensus strategy."""

    min_scale: float = 0.8
    """Smallest plausible scale between frames (consensus sampling)."""

    max_scale: float = 1.25
    """Largest plausible scale between frames (consensus sampling)."""

    seed: int | None = 0
    """Random seed for consensus sampling (None = nondeterministic)."""

    min_disc_area: int = 50
    """Smallest disc, in pixels, accepted by the planetary strategy."""

    min_correlation: float = 0.2
    """Correlation score under which the dumb strategy returns identity."""

    upsample_factor: int = 1
    """Subpixel precision of the dumb strategy (1 = integer shifts)."""

    interpolation_order: int = 1
    """Resampling order: 0 nearest, 1 bilinear, 3 bicubic."""

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.model not in ("similarity", "affine"):
            raise ValueError(f"model must be 'similarity' or 'affine', got {self.model}")
        if self.max_stars < 3:
            raise ValueError(f"max_stars must be >= 3, got {self.max_stars}")
        if self.min_inliers < 3:
            raise ValueError(f"min_inliers must be >= 3, got {self.min_inliers}")
        if self.consensus_stars is not None and self.consensus_stars < 2:
            raise ValueError(f"consensus_stars must be >= 2 or None, got {self.consensus_stars}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.inlier_tolerance <= 0:
            raise ValueError(f"inlier_tolerance must be positive, got {self.inlier_tolerance}")
        if not 0 < self.min_scale <= 1.0 <= self.max_scale:
            raise ValueError(
                f"scale bounds must satisfy 0 < min <= 1 <= max, got ({self.min_scale}, {self.max_scale})"
            )
        if self.interpolation_order not in (0, 1, 3):
            raise ValueError(
                f"interpolation_order must be 0, 1 or 3, got {self.interpolation_order}"
            )
        if self.upsample_factor < 1:
            raise ValueError(f"upsample_factor must be >= 1, got {self.upsample_factor}")


@dataclass
class StarRemovalConfig:
    """Parameters for post-stack star removal."""

    margin: int = 2
    """Pixels added to each star's disc radius when building the mask."""

    inpaint_radius: int = 5
    """Neighbourhood radius for inverse-distance inpainting."""

    max_star_size: int = 500
    """Blobs larger than this are never removed."""

    local_radius: int = 10
    """Radius of the surrounding area sampled around each centroid."""

    max_local_background: float = 150.0
    """Blobs whose surrounding mean brightness exceeds this are kept (nebulosity)."""

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.margin < 0:
            raise ValueError(f"margin must be >= 0, got {self.margin}")
        if self.inpaint_radius < 1:
            raise ValueError(f"inpaint_radius must be >= 1, got {self.inpaint_radius}")
        if self.max_star_size < 1:
            raise ValueError(f"max_star_size must be >= 1, got {self.max_star_size}")


@dataclass
class LevelsSettings:
    """Histogram levels stretch (0-255 scale)."""

    black_point: float = 0.0
    midtones: float = 1.0
    white_point: float = 255.0

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.midtones <= 0:
            raise ValueError(f"midtones must be positive, got {self.midtones}")
        if not 0.0 <= self.black_point <= 255.0:
            raise ValueError(f"black_point must be in [0, 255], got {self.black_point}")
        if not 0.0 <= self.white_point <= 255.0:
            raise ValueError(f"white_point must be in [0, 255], got {self.white_point}")


@dataclass
class BasicSettings:
    """Basic adjustments in percent; the defaults are the identity."""

    brightness: float = 100.0
    exposure: float = 0.0
    saturation: float = 100.0

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.brightness < 0:
            raise ValueError(f"brightness must be >= 0, got {self.brightness}")
        if self.saturation < 0:
            raise ValueError(f"saturation must be >= 0, got {self.saturation}")


@dataclass
class StackConfig:
    """
    Configuration for one stacking job.

    All parameters are explicitly documented and have sensible defaults.
    """

    # --- Alignment ---
    strategy: AlignmentStrategy = AlignmentStrategy.STANDARD
    """Alignment strategy applied to every non-reference frame."""

    quality: float | None = None
    """Planetary limb-detection quality (0-100). Ignored by other strategies."""

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    align: AlignConfig = field(default_factory=AlignConfig)

    # --- Stacking ---
    mode: CombineMode = CombineMode.AVERAGE
    """Per-pixel combination rule."""

    sigma: float = 2.0
    """Clipping threshold for the 'sigma' combination mode."""

    # --- Post-processing ---
    remove_stars: bool = False
    star_strength: float = 200.0
    """Brightness threshold of the star removal pass (0-255)."""

    star_removal: StarRemovalConfig = field(default_factory=StarRemovalConfig)
    star_reduction_radius: int | None = None
    """Grey-opening radius of morphological star reduction (None = off)."""

    levels: LevelsSettings | None = None
    basic: BasicSettings | None = None

    # --- Parallelism ---
    workers: int | None = 1
    """Threads for per-frame work. None = auto-detect (CPU count - 1)."""

    def __post_init__(self) -> None:
        # Accept plain strings from CLI and JSON
        if isinstance(self.strategy, str):
            self.strategy = AlignmentStrategy(self.strategy)
        if isinstance(self.mode, str):
            self.mode = CombineMode(self.mode)

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.quality is not None and not 0.0 <= self.quality <= 100.0:
            raise ValueError(f"quality must be in [0, 100], got {self.quality}")
        if self.sigma <= 0:
            raise ValueError(f"sigma must be positive, got {self.sigma}")
        if not 0.0 <= self.star_strength <= 255.0:
            raise ValueError(f"star_strength must be in [0, 255], got {self.star_strength}")
        if self.star_reduction_radius is not None and self.star_reduction_radius < 1:
            raise ValueError(
                f"star_reduction_radius must be >= 1, got {self.star_reduction_radius}"
            )
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        self.detection.validate()
        self.align.validate()
        self.star_removal.validate()
        if self.levels is not None:
            self.levels.validate()
        if self.basic is not None:
            self.basic.validate()
