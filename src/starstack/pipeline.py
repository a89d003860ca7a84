"""
Stacking job orchestration.

run_stack() drives one job end to end:

1. Drop frames that failed decoding; at least 2 must remain.
2. Calibrate (optional).
3. Detect reference stars once.
4. Per target frame: detect -> align -> resample, optionally on a thread
   pool. Frames that fail alignment are rejected, not retried.
5. Barrier: at least 2 frames (reference included) must survive.
6. Combine. Cancellation is no longer honoured from here on.
7. Star removal and tone mapping (optional).

Whole-job failures come back as StackResult(success=False) carrying the
error kind, a message and the partial log. Unexpected exceptions propagate.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field
from typing import Callable

from .align import AlignmentResult, align
from .calibration import apply_calibration
from .config import AlignmentStrategy, RejectedFrame, RejectionReason, StackConfig
from .detect import detect_frame
from .errors import (
    DimensionMismatchError,
    ErrorKind,
    InsufficientFramesError,
    JobCancelledError,
    StackError,
)
from .frame import Frame, Star
from .resample import resample
from .stack import combine, compute_stack_statistics
from .starless import reduce_stars_morphological, remove_stars
from .tone import apply_tone
from .transform import Transform
from .utils import get_timestamp_iso, get_version_banner

logger = logging.getLogger(__name__)

# Default number of workers for parallel processing
DEFAULT_WORKERS = max(1, os.cpu_count() - 1) if os.cpu_count() else 4

# Share of the progress range covered by per-frame work
FRAME_PROGRESS_SHARE = 0.9

ProgressSink = Callable[[float], None]
LogSink = Callable[[str], None]


@dataclass
class CalibrationMasters:
    """Master calibration frames applied to every light frame."""

    dark: Frame | None = None
    bias: Frame | None = None
    flat: Frame | None = None

    def is_empty(self) -> bool:
        return self.dark is None and self.bias is None and self.flat is None


@dataclass
class StackJob:
    """
    One stacking request.

    Attributes
    ----------
    frames : list[Frame | None]
        Ordered decoded frames; None marks a frame that failed decoding.
        The first valid frame is the reference.
    config : StackConfig
        Strategy, combination mode and post-processing options.
    manual_stars : list[Star], optional
        User-supplied reference stars seeding the standard strategy.
    calibration : CalibrationMasters, optional
        Master frames for calibration.
    progress : callable, optional
        Receives a non-decreasing fraction in [0, 1].
    log : callable, optional
        Receives each timestamped log line.
    cancel_event : threading.Event, optional
        Set to request cooperative cancellation.
    """

    frames: list[Frame | None]
    config: StackConfig = field(default_factory=StackConfig)
    manual_stars: list[Star] | None = None
    calibration: CalibrationMasters | None = None
    progress: ProgressSink | None = None
    log: LogSink | None = None
    cancel_event: threading.Event | None = None


@dataclass
class StackResult:
    """Outcome of a stacking job."""

    success: bool
    image: Frame | None
    error_kind: ErrorKind | None = None
    message: str = ""
    log: list[str] = field(default_factory=list)
    alignments: list[AlignmentResult] = field(default_factory=list)
    rejected: list[RejectedFrame] = field(default_factory=list)
    progress: float = 0.0
    stats: dict = field(default_factory=dict)


class JobContext:
    """
    Per-job state shared by worker threads.

    Owns the append-only log trail and the monotonic progress value, both
    serialized by one lock so sinks never observe interleaved updates.
    """

    def __init__(self, job: StackJob):
        self._job = job
        self._lock = threading.Lock()
        self._cancel = job.cancel_event or threading.Event()
        self.lines: list[str] = []
        self.progress = 0.0
        self.alignments: list[AlignmentResult] = []
        self.rejected: list[RejectedFrame] = []

    def log(self, message: str, level: int = logging.INFO) -> None:
        """Append a timestamped line and forward it to the module logger."""
        line = f"[{get_timestamp_iso()}] {message}"
        with self._lock:
            self.lines.append(line)
            if self._job.log is not None:
                self._job.log(line)
        logger.log(level, "%s", message)

    def report_progress(self, fraction: float) -> None:
        """Advance progress; smaller values than already reported are ignored."""
        with self._lock:
            fraction = min(1.0, max(self.progress, fraction))
            if fraction == self.progress:
                return
            self.progress = fraction
            if self._job.progress is not None:
                self._job.progress(fraction)

    def check_cancelled(self, stage: str, frame: str | int | None = None) -> None:
        """Raise JobCancelledError if cancellation was requested."""
        if self._cancel.is_set():
            raise JobCancelledError("job cancelled", stage=stage, frame=frame)

    def reject(self, index: int, name: str, reason: RejectionReason, stage: str, detail: str) -> None:
        self.rejected.append(RejectedFrame(index, name, reason, stage=stage, detail=detail))
        self.log(f"WARNING: frame {name} rejected at {stage}: {detail}", logging.WARNING)


@dataclass
class _FrameOutcome:
    index: int
    alignment: AlignmentResult
    aligned: Frame | None


def _process_frame(
    ctx: JobContext, reference: Frame, index: int, frame: Frame, config: StackConfig
) -> _FrameOutcome:
    """Detect, align and resample one target frame."""
    ctx.check_cancelled("detect", frame.name)
    frame = detect_frame(frame, config.detection)

    ctx.check_cancelled("align", frame.name)
    result = align(
        reference, frame, config.strategy, quality=config.quality, config=config.align, index=index
    )
    if not result.success:
        return _FrameOutcome(index, result, None)

    ctx.check_cancelled("resample", frame.name)
    aligned = resample(
        frame, result.transform, reference.shape, order=config.align.interpolation_order
    )
    if aligned.shape != reference.shape:
        raise DimensionMismatchError(
            f"resampled frame is {aligned.shape}, reference is {reference.shape}",
            stage="resample",
            frame=frame.name,
        )
    return _FrameOutcome(index, result, aligned)


def _align_targets(
    ctx: JobContext,
    reference: Frame,
    targets: list[tuple[int, Frame]],
    config: StackConfig,
) -> list[_FrameOutcome]:
    """Run per-frame work, sequentially or on a thread pool."""
    total = len(targets)
    workers = config.workers or DEFAULT_WORKERS
    outcomes = []

    def done(outcome: _FrameOutcome) -> None:
        outcomes.append(outcome)
        ctx.report_progress(FRAME_PROGRESS_SHARE * len(outcomes) / total)

    if workers <= 1 or total <= 1:
        for index, frame in targets:
            done(_process_frame(ctx, reference, index, frame, config))
        return outcomes

    ctx.log(f"Aligning {total} frames with {min(workers, total)} workers")
    with ThreadPoolExecutor(max_workers=min(workers, total)) as executor:
        futures = [
            executor.submit(_process_frame, ctx, reference, index, frame, config)
            for index, frame in targets
        ]
        try:
            for future in as_completed(futures):
                done(future.result())
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    return outcomes


def _run(job: StackJob, ctx: JobContext, t0: float) -> StackResult:
    config = job.config

    # --- 1. Usable frames ---
    valid: list[tuple[int, Frame]] = []
    for index, frame in enumerate(job.frames):
        if frame is None:
            ctx.reject(index, f"frame-{index}", RejectionReason.DECODE_FAILED, "decode", "no pixel data")
            continue
        if not frame.name:
            frame = Frame(data=frame.data, name=f"frame-{index}")
        valid.append((index, frame))

    if len(valid) < 2:
        raise InsufficientFramesError(
            f"{len(valid)} usable frame(s), at least 2 are required", stage="load"
        )
    ctx.log(
        f"Stacking {len(valid)} frames: strategy={config.strategy.value}, mode={config.mode.value}"
    )

    # --- 2. Calibration ---
    masters = job.calibration
    if masters is not None and not masters.is_empty():
        ctx.check_cancelled("calibration")
        valid = [
            (index, apply_calibration(frame, masters.dark, masters.bias, masters.flat))
            for index, frame in valid
        ]
        ctx.log(f"Calibrated {len(valid)} frames")

    # --- 3. Reference ---
    ref_index, reference = valid[0]
    ctx.check_cancelled("detect", reference.name)
    if job.manual_stars:
        reference = reference.with_manual_stars(job.manual_stars)
        ctx.log(f"Reference {reference.name}: {len(reference.manual_stars)} manual stars")
    reference = detect_frame(reference, config.detection)
    ctx.log(f"Reference {reference.name}: {len(reference.stars)} stars detected")

    ctx.alignments.append(AlignmentResult(
        index=ref_index,
        strategy=config.strategy,
        success=True,
        transform=Transform.identity(),
        confidence=1.0,
        message="reference frame",
    ))

    # --- 4. Per-frame work ---
    outcomes = _align_targets(ctx, reference, valid[1:], config)
    outcomes.sort(key=lambda o: o.index)

    names = dict(valid)
    aligned = [reference]
    for outcome in outcomes:
        name = names[outcome.index].name
        ctx.alignments.append(outcome.alignment)
        if outcome.aligned is None:
            ctx.reject(
                outcome.index, name, RejectionReason.ALIGNMENT_FAILED, "align",
                outcome.alignment.message,
            )
            continue
        aligned.append(outcome.aligned)
        ctx.log(f"Aligned {name}: {outcome.alignment.message}")

    # --- 5. Barrier ---
    ctx.check_cancelled("combine")
    if len(aligned) < 2:
        raise InsufficientFramesError(
            f"only {len(aligned)} frame(s) survived alignment, at least 2 are required",
            stage="align",
        )

    # --- 6. Combination ---
    image = combine(aligned, config.mode, sigma=config.sigma)
    coverage = compute_stack_statistics(aligned)
    ctx.log(f"Combined {len(aligned)} frames with mode={config.mode.value}")
    ctx.report_progress(FRAME_PROGRESS_SHARE + (1.0 - FRAME_PROGRESS_SHARE) / 2)

    # --- 7. Post-processing ---
    if config.remove_stars:
        image = remove_stars(image, config.star_strength, config.star_removal)
        ctx.log(f"Star removal applied (strength={config.star_strength:.0f})")
    if config.star_reduction_radius is not None:
        image = reduce_stars_morphological(image, config.star_reduction_radius)
        ctx.log(f"Stars reduced (radius={config.star_reduction_radius})")
    if config.levels is not None or config.basic is not None:
        image = apply_tone(image, config.levels, config.basic)
        ctx.log("Tone adjustments applied")

    elapsed = time.time() - t0
    ctx.log(f"Stack complete in {elapsed:.2f}s")
    ctx.report_progress(1.0)

    return StackResult(
        success=True,
        image=image,
        message=f"stacked {len(aligned)} of {len(job.frames)} frames",
        log=list(ctx.lines),
        alignments=ctx.alignments,
        rejected=ctx.rejected,
        progress=ctx.progress,
        stats={
            "n_input": len(job.frames),
            "n_stacked": len(aligned),
            "n_rejected": len(ctx.rejected),
            "coverage": asdict(coverage),
            "elapsed_s": elapsed,
        },
    )


def run_stack(job: StackJob) -> StackResult:
    """
    Run a stacking job.

    Parameters
    ----------
    job : StackJob
        Frames, configuration and sinks.

    Returns
    -------
    StackResult
        success=True with the combined image, or success=False with the
        error kind, message and partial log.

    Raises
    ------
    ValueError
        If the configuration is invalid.
    """
    job.config.validate()
    logger.info("%s", get_version_banner())
    ctx = JobContext(job)
    t0 = time.time()

    try:
        return _run(job, ctx, t0)
    except StackError as e:
        ctx.log(f"ERROR: {e}", logging.ERROR)
        return StackResult(
            success=False,
            image=None,
            error_kind=e.kind,
            message=str(e),
            log=list(ctx.lines),
            alignments=ctx.alignments,
            rejected=ctx.rejected,
            progress=ctx.progress,
            stats={"n_input": len(job.frames), "elapsed_s": time.time() - t0},
        )


def stack_frames(
    frames: list[Frame | None],
    strategy: AlignmentStrategy | str = AlignmentStrategy.STANDARD,
    mode: str = "average",
    **kwargs,
) -> StackResult:
    """Convenience wrapper building a StackJob from keyword options."""
    config = StackConfig(strategy=strategy, mode=mode, **kwargs)
    return run_stack(StackJob(frames=frames, config=config))
