"""
Run reports for the vanish pipeline.

Two files are written next to the reconstructed background:
- run_manifest.json: everything needed to reproduce the run
- report.md: the same content as Markdown tables

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

import numpy as np

from .config import ReconstructionResult
from .utils import get_platform_info, get_timestamp_iso, get_version

logger = logging.getLogger(__name__)

MANIFEST_NAME = "run_manifest.json"
REPORT_NAME = "report.md"

# Inputs listed in report.md before eliding
MAX_LISTED_INPUTS = 20


def _to_native(obj: Any) -> Any:
    """Convert numpy scalars and arrays, recursively, to JSON types."""
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _to_native(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_native(v) for v in obj]
    return obj


def build_manifest(result: ReconstructionResult) -> dict[str, Any]:
    """
    Collect a run into a JSON-compatible dict.

    Parameters
    ----------
    result : ReconstructionResult
        Completed run.

    Returns
    -------
    dict
        Keys: vanish_version, timestamp, platform, sequence, config,
        frames, inputs, outputs, statistics.
    """
    config = {}
    if result.config is not None:
        config = asdict(result.config)

    manifest = {
        "vanish_version": result.version or get_version(),
        "timestamp": result.timestamp or get_timestamp_iso(),
        "platform": result.platform or get_platform_info(),
        "sequence": {
            "id": result.sequence_id,
            "path": result.sequence_path,
        },
        "config": config,
        "frames": {
            "count": len(result.inputs),
            "info": asdict(result.frame_info) if result.frame_info else {},
        },
        "inputs": result.inputs,
        "outputs": result.outputs,
        "statistics": result.stats,
    }
    return _to_native(manifest)


def write_manifest(result: ReconstructionResult, output_dir: Path) -> Path:
    """Write ``run_manifest.json`` and return its path."""
    manifest_path = Path(output_dir) / MANIFEST_NAME
    with open(manifest_path, "w") as f:
        json.dump(build_manifest(result), f, indent=2)

    logger.info("Wrote manifest: %s", manifest_path)
    return manifest_path


def _table(header: tuple[str, str], rows: list[tuple[str, Any]]) -> list[str]:
    lines = [f"| {header[0]} | {header[1]} |", "|---|---|"]
    for key, value in rows:
        if isinstance(value, float):
            value = f"{value:.4f}"
        lines.append(f"| {key} | {value} |")
    lines.append("")
    return lines


def _pass_rows(stats: dict[str, Any]) -> list[tuple[str, Any]]:
    n_pixels = stats.get("n_pixels")
    rows = []
    for label, key in (("1st pass failed pixels", "first_pass_failed"),
                       ("2nd pass failed pixels", "second_pass_failed")):
        if key not in stats:
            rows.append((label, "N/A"))
        elif n_pixels:
            rows.append((label, f"{stats[key]} ({100.0 * stats[key] / n_pixels:.2f}%)"))
        else:
            rows.append((label, stats[key]))
    return rows


def write_report_markdown(result: ReconstructionResult, output_dir: Path) -> Path:
    """
    Write ``report.md``.

    Sections: summary, reconstruction passes, configuration (when
    known), all statistics, outputs, and the first input frames.
    """
    info = result.frame_info
    geometry = f"{info.width}x{info.height}x{info.channels} ({info.dtype})" if info else "N/A"

    lines = [
        f"# Background Reconstruction Report: {result.sequence_id}",
        "",
        f"**Generated:** {result.timestamp or get_timestamp_iso()}",
        f"**vanish version:** {result.version or get_version()}",
        f"**Platform:** {result.platform or get_platform_info()}",
        "",
        "## Summary",
        "",
    ]
    lines += _table(("Metric", "Value"), [("Frames", len(result.inputs)), ("Geometry", geometry)])

    lines += ["## Reconstruction Passes", ""]
    lines += _table(("Pass", "Unresolved"), _pass_rows(result.stats))

    if result.config:
        lines += ["## Configuration", ""]
        lines += _table(("Parameter", "Value"), [
            ("bucket_size", result.config.bucket_size),
            ("confidence_level", result.config.confidence_level),
            ("bit_depth", result.config.bit_depth or "auto"),
            ("workers", result.config.workers or "auto"),
        ])

    if result.stats:
        lines += ["## Statistics", ""]
        lines += _table(("Metric", "Value"), list(result.stats.items()))

    if result.outputs:
        lines += ["## Outputs", ""]
        lines += [f"- **{name}:** `{path}`" for name, path in result.outputs.items()]
        lines.append("")

    if result.inputs:
        lines += ["## Inputs", ""]
        lines += [f"{i + 1}. `{Path(p).name}`" for i, p in enumerate(result.inputs[:MAX_LISTED_INPUTS])]
        if len(result.inputs) > MAX_LISTED_INPUTS:
            lines.append(f"\n... and {len(result.inputs) - MAX_LISTED_INPUTS} more")
        lines.append("")

    report_path = Path(output_dir) / REPORT_NAME
    with open(report_path, "w") as f:
        f.write("\n".join(lines))

    logger.info("Wrote Markdown report: %s", report_path)
    return report_path


def write_all_reports(result: ReconstructionResult, output_dir: Path) -> dict[str, Path]:
    """
    Write the manifest and the Markdown report.

    Returns
    -------
    dict[str, Path]
        ``{"manifest": ..., "markdown": ...}``
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    return {
        "manifest": write_manifest(result, output_dir),
        "markdown": write_report_markdown(result, output_dir),
    }
