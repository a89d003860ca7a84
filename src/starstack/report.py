"""
Report generation for stacking jobs.

Produces:
- a JSON record of configuration, alignments, rejections, statistics and log
- a short Markdown summary for humans

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np

from .config import RejectedFrame, StackConfig
from .pipeline import StackResult
from .utils import get_platform_info, get_timestamp_iso, get_version

logger = logging.getLogger(__name__)


def _to_native(obj: Any) -> Any:
    """Convert numpy and enum types to native Python types for JSON serialization."""
    if isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, dict):
        return {k: _to_native(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_to_native(v) for v in obj]
    return obj


def _serialize_config(config: StackConfig) -> dict[str, Any]:
    """Serialize StackConfig to JSON-compatible dict."""
    return _to_native(asdict(config))


def _serialize_rejected(rejected: list[RejectedFrame]) -> list[dict[str, Any]]:
    """Serialize rejected frames list."""
    return [
        {
            "index": r.index,
            "name": r.name,
            "reason": r.reason.value,
            "stage": r.stage,
            "detail": r.detail,
        }
        for r in rejected
    ]


def _count_rejection_reasons(rejected: list[RejectedFrame]) -> dict[str, int]:
    return dict(Counter(r.reason.value for r in rejected))


def build_report(
    result: StackResult,
    config: StackConfig | None = None,
    inputs: list[str] | None = None,
) -> dict[str, Any]:
    """
    Build the JSON-compatible record of a job.

    Parameters
    ----------
    result : StackResult
        Job outcome.
    config : StackConfig, optional
        Configuration the job ran with.
    inputs : list[str], optional
        Input file names, in frame order.

    Returns
    -------
    dict
        Report dictionary.
    """
    report = {
        "starstack_version": get_version(),
        "timestamp": get_timestamp_iso(),
        "platform": get_platform_info(),
        "success": result.success,
        "error_kind": result.error_kind.value if result.error_kind else None,
        "message": result.message,
        "config": _serialize_config(config) if config else {},
        "inputs": inputs or [],
        "summary": {
            "frames_stacked": result.stats.get("n_stacked", 0),
            "frames_rejected": len(result.rejected),
        },
        "rejection_reasons": _count_rejection_reasons(result.rejected),
        "rejected": _serialize_rejected(result.rejected),
        "alignments": [a.to_dict() for a in result.alignments],
        "statistics": result.stats,
        "log": result.log,
    }
    return _to_native(report)


def write_report(
    result: StackResult,
    path: str | Path,
    config: StackConfig | None = None,
    inputs: list[str] | None = None,
) -> Path:
    """
    Write the job record as JSON.

    Returns
    -------
    Path
        Path to written report file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(build_report(result, config, inputs), f, indent=2)

    logger.info("Wrote report: %s", path)
    return path


def write_report_markdown(result: StackResult, path: str | Path, log_tail: int = 20) -> Path:
    """
    Write a human-readable Markdown summary of a job.

    Parameters
    ----------
    result : StackResult
        Job outcome.
    path : str or Path
        Output file.
    log_tail : int, default 20
        Number of trailing job log lines included.

    Returns
    -------
    Path
        The written path.
    """
    status = "success" if result.success else f"failed ({result.error_kind.value})"
    lines = [
        "# Stacking Report",
        "",
        f"- Generated: {get_timestamp_iso()}",
        f"- starstack {get_version()} on {get_platform_info()}",
        f"- Status: {status}, {result.message}",
        "",
        "## Frames",
        "",
        "| Frame | Strategy | Success | Confidence | Matches | Message |",
        "|-------|----------|---------|------------|---------|---------|",
    ]
    rejected = {r.index: r for r in result.rejected}
    for a in result.alignments:
        lines.append(
            f"| {a.index} | {a.strategy.value} | {a.success} | {a.confidence:.3f} "
            f"| {a.n_matches} | {a.message} |"
        )
    for index in sorted(set(rejected) - {a.index for a in result.alignments}):
        r = rejected[index]
        lines.append(f"| {index} | - | False | - | - | {r.reason.value}: {r.detail} |")
    lines.append("")

    coverage = result.stats.get("coverage")
    if coverage:
        lines += [
            "## Coverage",
            "",
            f"- Frames combined: {coverage['n_frames']}",
            f"- Contributors per pixel: {coverage['min_coverage']} to {coverage['max_coverage']} "
            f"(mean {coverage['mean_coverage']:.2f})",
            f"- Uncovered pixels: {100.0 * coverage['uncovered_fraction']:.2f}%",
            "",
        ]

    if result.log:
        lines += ["## Log", "", "```"] + result.log[-log_tail:] + ["```", ""]

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines))

    logger.info("Wrote Markdown report: %s", path)
    return path
