"""
Frame registration against the reference frame.

Four interchangeable strategies compute a Transform mapping a target frame
onto the reference frame:

- standard:  asterism (invariant-triangle) matching with astroalign
- consensus: RANSAC over candidate star pairings, agreement counted over
             the full star sets
- planetary: disc centroid, optionally refined by a limb circle fit
- dumb:      whole-frame phase cross-correlation, translation only

Strategies are plain functions dispatched through a table and share one
signature. Each returns an estimate or raises AlignmentFailure; align()
turns both outcomes into an AlignmentResult. A failed result never carries
a transform.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

import astroalign as aa
import numpy as np
from scipy import ndimage
from scipy.spatial import cKDTree
from skimage.feature import canny
from skimage.filters import threshold_otsu, unsharp_mask
from skimage.measure import ransac
from skimage.registration import phase_cross_correlation
from skimage.transform import SimilarityTransform

from .blobs import extract_blobs
from .config import AlignConfig, AlignmentStrategy
from .detect import detect_stars
from .errors import AlignmentFailure
from .frame import Frame, Star, stars_to_array
from .transform import Transform, estimate_affine, estimate_similarity
from .utils import luminance

logger = logging.getLogger(__name__)


@dataclass
class AlignmentResult:
    """Result of aligning a single frame to the reference."""

    index: int
    strategy: AlignmentStrategy
    success: bool
    transform: Transform | None = None
    confidence: float = 0.0  # Agreeing stars, limb support or correlation
    n_matches: int = 0
    rms_error_px: float | None = None
    message: str = ""

    def to_dict(self) -> dict:
        """JSON-serializable record."""
        return {
            "index": self.index,
            "strategy": self.strategy.value,
            "success": self.success,
            "matrix": self.transform.to_list() if self.transform is not None else None,
            "confidence": float(self.confidence),
            "n_matches": self.n_matches,
            "rms_error_px": self.rms_error_px,
            "message": self.message,
        }


@dataclass
class _Estimate:
    """Successful strategy output, before it becomes an AlignmentResult."""

    transform: Transform
    confidence: float
    n_matches: int = 0
    rms_error_px: float | None = None
    message: str = ""


# =============================================================================
# Shared helpers
# =============================================================================


def _stars_of(frame: Frame) -> tuple[Star, ...]:
    """Manual stars, else detected stars (detecting on demand)."""
    if frame.alignment_stars or frame.detected:
        return frame.alignment_stars
    return tuple(detect_stars(frame))


def _brightest(stars, n: int | None) -> np.ndarray:
    ordered = sorted(stars, key=lambda s: s.brightness, reverse=True)
    return stars_to_array(ordered[:n])


def _control_points(stars, n: int) -> np.ndarray:
    """
    Brightest n star positions, ordered by (y, x).

    Asterism matching breaks ties between equal triangle sides by point
    order, so both frames must list their stars the same way.
    """
    points = _brightest(stars, n)
    return points[np.lexsort((points[:, 0], points[:, 1]))]


def _fit(model: str, src: np.ndarray, dst: np.ndarray, frame: Frame) -> Transform:
    """Fit the configured model, failing the frame on degenerate geometry."""
    try:
        if model == "affine" and len(src) >= 3:
            return estimate_affine(src, dst)
        return estimate_similarity(src, dst)
    except ValueError as e:
        raise AlignmentFailure(
            f"{model} fit on {len(src)} stars failed: {e}", stage="align", frame=frame.name
        ) from e


def _rms(values: np.ndarray) -> float:
    return float(np.sqrt(np.mean(values**2))) if values.size else 0.0


def _inlier_pairs(
    transform: Transform, tgt_points: np.ndarray, ref_tree: cKDTree, tolerance: float
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """One-to-one (target, reference) pairs within tolerance, nearest first."""
    dist, ref_idx = ref_tree.query(transform.apply(tgt_points), distance_upper_bound=tolerance)
    hit = np.isfinite(dist)
    t_idx = np.nonzero(hit)[0]
    r_idx = ref_idx[hit]
    d = dist[hit]

    order = np.argsort(d, kind="stable")
    _, first = np.unique(r_idx[order], return_index=True)
    keep = np.sort(order[first])
    return t_idx[keep], r_idx[keep], d[keep]


def _refine(
    hypothesis: Transform,
    tgt_points: np.ndarray,
    ref_points: np.ndarray,
    config: AlignConfig,
    target: Frame,
) -> tuple[Transform, int, float]:
    """
    Refit a matched transform on the stars that agree with it.

    Returns the refitted transform, the number of agreeing stars and their
    RMS distance. Raises AlignmentFailure under min_inliers agreeing stars.
    """
    ref_tree = cKDTree(ref_points)
    t_idx, r_idx, _ = _inlier_pairs(hypothesis, tgt_points, ref_tree, config.inlier_tolerance)
    if len(t_idx) < config.min_inliers:
        raise AlignmentFailure(
            f"only {len(t_idx)} stars agree with the match, {config.min_inliers} required",
            stage="align",
            frame=target.name,
        )

    transform = _fit(config.model, tgt_points[t_idx], ref_points[r_idx], target)
    t_idx, _, dist = _inlier_pairs(transform, tgt_points, ref_tree, config.inlier_tolerance)
    if len(t_idx) < config.min_inliers:
        raise AlignmentFailure(
            f"{config.model} refit kept {len(t_idx)} agreeing stars",
            stage="align",
            frame=target.name,
        )
    return transform, len(t_idx), _rms(dist)


# =============================================================================
# Standard: asterism matching
# =============================================================================


def _align_standard(
    reference: Frame, target: Frame, quality: float | None, config: AlignConfig
) -> _Estimate:
    ref_points = _control_points(_stars_of(reference), config.max_stars)
    tgt_points = _control_points(_stars_of(target), config.max_stars)
    if len(ref_points) < 3 or len(tgt_points) < 3:
        raise AlignmentFailure(
            f"need at least 3 stars per frame, got {len(ref_points)} reference "
            f"and {len(tgt_points)} target",
            stage="align",
            frame=target.name,
        )

    try:
        match, (matched, _) = aa.find_transform(
            tgt_points, ref_points, max_control_points=config.max_stars
        )
    except (aa.MaxIterError, ValueError) as e:
        raise AlignmentFailure(
            f"no asterism match: {e}", stage="align", frame=target.name
        ) from e
    logger.debug("Asterisms paired %d control points for %s", len(matched), target.name)

    if not np.all(np.isfinite(match.params)):
        raise AlignmentFailure("asterism match is degenerate", stage="align", frame=target.name)

    transform, n, rms = _refine(Transform(match.params), tgt_points, ref_points, config, target)
    return _Estimate(
        transform=transform,
        confidence=float(n),
        n_matches=n,
        rms_error_px=rms,
        message=f"{n} stars matched by asterisms",
    )


# =============================================================================
# Consensus: RANSAC over candidate pairings
# =============================================================================


def _align_consensus(
    reference: Frame, target: Frame, quality: float | None, config: AlignConfig
) -> _Estimate:
    """
    Robust registration when false detections are common.

    Candidate correspondences pair every target star with every reference
    star among the brightest `consensus_stars` of each frame. RANSAC samples
    two candidates at a time, fits a similarity and keeps the hypothesis most
    candidates agree with. Agreement is then recounted one-to-one over the
    full star sets, which also gives the confidence.
    """
    ref_stars = _stars_of(reference)
    tgt_stars = _stars_of(target)
    ref_points = _brightest(ref_stars, config.consensus_stars)
    tgt_points = _brightest(tgt_stars, config.consensus_stars)
    if len(ref_points) < 2 or len(tgt_points) < 2:
        raise AlignmentFailure(
            "need at least 2 stars per frame to form hypotheses",
            stage="align",
            frame=target.name,
        )

    t_idx, r_idx = np.divmod(np.arange(len(tgt_points) * len(ref_points)), len(ref_points))
    src, dst = tgt_points[t_idx], ref_points[r_idx]

    def plausible_sample(s: np.ndarray, d: np.ndarray) -> bool:
        # Two distinct stars on each side, at a compatible scale
        d_tgt = float(np.linalg.norm(s[0] - s[1]))
        d_ref = float(np.linalg.norm(d[0] - d[1]))
        if d_tgt < 1e-6 or d_ref < 1e-6:
            return False
        return config.min_scale <= d_ref / d_tgt <= config.max_scale

    def plausible_model(model: SimilarityTransform, s: np.ndarray, d: np.ndarray) -> bool:
        return config.min_scale <= model.scale <= config.max_scale

    model, inliers = ransac(
        (src, dst),
        SimilarityTransform,
        min_samples=2,
        residual_threshold=config.inlier_tolerance,
        is_data_valid=plausible_sample,
        is_model_valid=plausible_model,
        max_trials=config.max_iterations,
        stop_sample_num=min(len(ref_points), len(tgt_points)),
        stop_probability=0.999,
        rng=config.seed,
    )
    if model is None or not model or not np.all(np.isfinite(model.params)):
        raise AlignmentFailure(
            f"no consistent star pairing after {config.max_iterations} trials",
            stage="align",
            frame=target.name,
        )
    logger.debug(
        "Consensus hypothesis for %s: %d agreeing candidates",
        target.name, int(np.count_nonzero(inliers))
    )

    transform, n, rms = _refine(
        Transform(model.params),
        stars_to_array(tgt_stars),
        stars_to_array(ref_stars),
        config,
        target,
    )
    return _Estimate(
        transform=transform,
        confidence=float(n),
        n_matches=n,
        rms_error_px=rms,
        message=f"{n} agreeing stars by consensus",
    )


# =============================================================================
# Planetary: disc centre
# =============================================================================


def laplacian_sharpness(lum: np.ndarray) -> float:
    """Variance of the Laplacian, a focus/seeing score."""
    return float(ndimage.laplace(lum.astype(np.float64)).var())


def fit_circle(xs: np.ndarray, ys: np.ndarray) -> tuple[float, float, float]:
    """
    Algebraic least-squares circle fit.

    Solves x^2 + y^2 + D*x + E*y + F = 0 and returns (cx, cy, radius).
    """
    design = np.column_stack([xs, ys, np.ones_like(xs)])
    rhs = -(xs**2 + ys**2)
    (d, e, f), *_ = np.linalg.lstsq(design, rhs, rcond=None)
    cx, cy = -d / 2.0, -e / 2.0
    r2 = cx * cx + cy * cy - f
    if r2 <= 0:
        raise ValueError("Degenerate circle fit")
    return float(cx), float(cy), float(math.sqrt(r2))


def find_disc(
    frame: Frame, quality: float | None, config: AlignConfig
) -> tuple[float, float, float, float]:
    """
    Locate the planetary disc centre.

    Parameters
    ----------
    frame : Frame
        Disc-dominated frame.
    quality : float, optional
        0-100. Above 0, the centroid is refined by fitting a circle to the
        sharpened limb; higher values sharpen more and reject more outliers.
    config : AlignConfig
        Supplies min_disc_area.

    Returns
    -------
    tuple
        (cx, cy, support, sharpness) where support is the number of limb
        points kept, or the disc area without limb refinement.
    """
    lum = luminance(frame.data)
    sharpness = laplacian_sharpness(lum)
    if float(lum.max()) <= float(lum.min()):
        raise AlignmentFailure("frame is uniform, no disc", stage="align", frame=frame.name)

    thresh = threshold_otsu(lum)
    blobs = extract_blobs(lum, thresh)
    if not blobs:
        raise AlignmentFailure("no disc above Otsu threshold", stage="align", frame=frame.name)
    disc = max(blobs, key=lambda b: b.size)
    if disc.size < config.min_disc_area:
        raise AlignmentFailure(
            f"largest bright region is {disc.size}px, below {config.min_disc_area}px",
            stage="align",
            frame=frame.name,
        )

    cx, cy = disc.x, disc.y
    if not quality:
        return cx, cy, float(disc.size), sharpness

    mask = np.zeros(lum.shape, dtype=bool)
    mask[disc.ys, disc.xs] = True
    band = ndimage.binary_dilation(mask, iterations=3) & ~ndimage.binary_erosion(mask, iterations=3)

    sharpened = unsharp_mask(
        lum, radius=1.0 + quality / 25.0, amount=quality / 50.0, preserve_range=True
    )
    edges = canny(sharpened, sigma=2.0 - quality / 100.0) & band
    ys, xs = np.nonzero(edges)
    if xs.size < 5:
        logger.debug("Limb refinement skipped for %s: %d edge points", frame.name, xs.size)
        return cx, cy, float(disc.size), sharpness

    xs = xs.astype(np.float64)
    ys = ys.astype(np.float64)
    try:
        fx, fy, r = fit_circle(xs, ys)
        for _ in range(1 + int(quality) // 25):
            dev = np.abs(np.hypot(xs - fx, ys - fy) - r)
            keep = dev <= max(1.0, 2.0 * float(dev.std()))
            if keep.sum() < 5 or keep.all():
                break
            xs, ys = xs[keep], ys[keep]
            fx, fy, r = fit_circle(xs, ys)
    except ValueError:
        logger.debug("Limb fit degenerate for %s, using centroid", frame.name)
        return cx, cy, float(disc.size), sharpness

    logger.debug(
        "Limb fit %s: centre=(%.2f, %.2f) r=%.1f from %d points",
        frame.name, fx, fy, r, xs.size
    )
    return fx, fy, float(xs.size), sharpness


def _align_planetary(
    reference: Frame, target: Frame, quality: float | None, config: AlignConfig
) -> _Estimate:
    rx, ry, r_support, r_sharp = find_disc(reference, quality, config)
    tx, ty, t_support, t_sharp = find_disc(target, quality, config)
    dx, dy = rx - tx, ry - ty
    return _Estimate(
        transform=Transform.translation(dx, dy),
        confidence=min(r_support, t_support),
        n_matches=0,
        message=(
            f"disc shift ({dx:.2f}, {dy:.2f}); "
            f"sharpness reference={r_sharp:.1f} target={t_sharp:.1f}"
        ),
    )


# =============================================================================
# Dumb: whole-frame cross-correlation
# =============================================================================


def _align_dumb(
    reference: Frame, target: Frame, quality: float | None, config: AlignConfig
) -> _Estimate:
    if reference.shape != target.shape:
        raise AlignmentFailure(
            f"shape {target.shape} differs from reference {reference.shape}",
            stage="align",
            frame=target.name,
        )

    ref_l = luminance(reference.data)
    tgt_l = luminance(target.data)
    ref_l = ref_l - np.median(ref_l)
    tgt_l = tgt_l - np.median(tgt_l)

    confidence = 0.0
    dx = dy = 0.0
    if ref_l.std() > 0 and tgt_l.std() > 0:
        shift, error, _ = phase_cross_correlation(
            ref_l, tgt_l, upsample_factor=config.upsample_factor, normalization=None
        )
        dy, dx = float(shift[0]), float(shift[1])
        if np.isfinite(error):
            confidence = float(np.clip(1.0 - error, 0.0, 1.0))

    if confidence < config.min_correlation:
        return _Estimate(
            transform=Transform.identity(),
            confidence=confidence,
            message=f"correlation {confidence:.3f} below {config.min_correlation}, identity used",
        )

    return _Estimate(
        transform=Transform.translation(dx, dy),
        confidence=confidence,
        message=f"cross-correlation shift ({dx:.2f}, {dy:.2f})",
    )


# =============================================================================
# Dispatch
# =============================================================================

StrategyFn = Callable[[Frame, Frame, "float | None", AlignConfig], _Estimate]

STRATEGIES: dict[AlignmentStrategy, StrategyFn] = {
    AlignmentStrategy.STANDARD: _align_standard,
    AlignmentStrategy.CONSENSUS: _align_consensus,
    AlignmentStrategy.PLANETARY: _align_planetary,
    AlignmentStrategy.DUMB: _align_dumb,
}


def align(
    reference: Frame,
    target: Frame,
    strategy: AlignmentStrategy | str = AlignmentStrategy.STANDARD,
    quality: float | None = None,
    config: AlignConfig | None = None,
    index: int = 0,
) -> AlignmentResult:
    """
    Align a target frame to the reference frame.

    Parameters
    ----------
    reference : Frame
        Reference frame; its manual stars seed star-based strategies.
    target : Frame
        Frame to register.
    strategy : AlignmentStrategy or str, default "standard"
        Alignment strategy.
    quality : float, optional
        Limb-refinement quality for the planetary strategy (0-100).
    config : AlignConfig, optional
        Alignment parameters. Defaults to AlignConfig().
    index : int, default 0
        Frame index recorded in the result.

    Returns
    -------
    AlignmentResult
        success=True with a transform mapping target onto reference, or
        success=False with transform=None and a message.
    """
    strategy = AlignmentStrategy(strategy)
    if config is None:
        config = AlignConfig()

    try:
        estimate = STRATEGIES[strategy](reference, target, quality, config)
    except AlignmentFailure as e:
        logger.debug("Alignment failed for %s: %s", target.name or index, e)
        return AlignmentResult(
            index=index, strategy=strategy, success=False, message=e.message
        )

    logger.debug(
        "Aligned %s (%s): %r confidence=%.3f",
        target.name or index, strategy.value, estimate.transform, estimate.confidence
    )
    return AlignmentResult(
        index=index,
        strategy=strategy,
        success=True,
        transform=estimate.transform,
        confidence=estimate.confidence,
        n_matches=estimate.n_matches,
        rms_error_px=estimate.rms_error_px,
        message=estimate.message,
    )
