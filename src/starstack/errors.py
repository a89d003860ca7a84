"""
Error taxonomy for the starstack pipeline.

Per-frame failures are absorbed by the pipeline and recorded as
RejectedFrame entries; only whole-job failures surface as StackError.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Kinds of job-level and frame-level failures."""

    INSUFFICIENT_FRAMES = "insufficient_frames"  # Fewer than 2 usable frames
    ALIGNMENT_FAILURE = "alignment_failure"  # Strategy evidence not met
    DIMENSION_MISMATCH = "dimension_mismatch"  # Internal invariant violation
    CANCELLED = "cancelled"  # Cooperative cancellation before combination


class StackError(Exception):
    """
    Base class for stacking errors.

    Carries the failing stage and, when relevant, the frame identifier so
    that log lines are actionable.
    """

    kind: ErrorKind = ErrorKind.INSUFFICIENT_FRAMES

    def __init__(self, message: str, stage: str = "", frame: str | int | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.frame = frame

    def __str__(self) -> str:
        context = []
        if self.stage:
            context.append(f"stage={self.stage}")
        if self.frame is not None:
            context.append(f"frame={self.frame}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class InsufficientFramesError(StackError):
    """Fewer than 2 usable frames at job start or after exclusions."""

    kind = ErrorKind.INSUFFICIENT_FRAMES


class AlignmentFailure(StackError):
    """A single frame could not meet its strategy's minimum evidence."""

    kind = ErrorKind.ALIGNMENT_FAILURE


class DimensionMismatchError(StackError):
    """A buffer does not match the reference dimensions."""

    kind = ErrorKind.DIMENSION_MISMATCH


class JobCancelledError(StackError):
    """The job was cancelled before the combination barrier."""

    kind = ErrorKind.CANCELLED
