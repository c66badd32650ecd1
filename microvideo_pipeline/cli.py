"""Command-line interface for the micro-video pipeline.

WHY: Producers need a simple way to run one job (or a folder of jobs)
from the terminal. The CLI wires together manifest validation, the four
stages, timeline exports, and rendering behind a single command.

HOW: argparse accepts one or more JSON job manifests plus output options.
Each manifest is validated with core.inputs.load_job_file(); a single job
runs through run_pipeline(), several run through BatchRunner. Status
messages go to stderr; files are written to --output-dir.

RULES:
- Positional argument: one or more manifest paths
- --formats overrides the manifest's export formats (comma-separated)
- --no-render stops after synchronization and exports
- Exit codes: 0 success, 1 failure or invalid input, 130 cancelled
- logging.basicConfig is configured here and nowhere else
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional

from microvideo_pipeline import __version__, config
from microvideo_pipeline.core.inputs import load_job_file
from microvideo_pipeline.core.ir import PipelineJob
from microvideo_pipeline.errors import ValidationError
from microvideo_pipeline.formatters import FORMATTERS
from microvideo_pipeline.pipeline import BatchRunner, PipelineResult, PipelineStatus, run_pipeline


def _status(msg: str) -> None:
    """Print a status message to stderr so stdout stays pipeable."""
    print(msg, file=sys.stderr, flush=True)


def _parse_formats(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    keys = [f.strip() for f in value.split(",") if f.strip()]
    for key in keys:
        if key not in FORMATTERS:
            raise ValueError(
                "Unknown format '{}'. Available formats: {}".format(key, ", ".join(sorted(FORMATTERS)))
            )
    return keys


def _apply_overrides(job: PipelineJob, formats: Optional[List[str]], no_render: bool) -> PipelineJob:
    options = job.options
    if formats is not None:
        options = dataclasses.replace(options, export_formats=tuple(formats))
    if no_render:
        options = dataclasses.replace(options, render=False)
    return dataclasses.replace(job, options=options)


def _report(result: PipelineResult) -> None:
    _status("")
    _status("Job {}: {}".format(result.job_id, result.status.value))
    if result.alignment is not None:
        for timing in result.alignment.phases:
            _status("  {:<9} {:7.2f}s - {:7.2f}s".format(timing.phase, timing.start_sec, timing.end_sec))
    if result.sync is not None:
        validation = result.sync.validation
        _status("  Sync accuracy: {:.2f} ({})".format(validation.accuracy, validation.precision_label))
    for key, paths in result.exports.items():
        for path in paths:
            _status("  Saved {}: {}".format(key, Path(path).name))
    if result.composite is not None:
        _status("  Composite: {} (quality {:.2f})".format(result.composite.path, result.composite.quality_score))
        for fmt, path in result.composite.alternate_formats.items():
            _status("  Alternate {}: {}".format(fmt, path))
    for issue in result.issues:
        _status("  ! {}".format(issue))
    if result.error:
        _status("  Error: {}".format(result.error))


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="microvideo_pipeline",
        description="Align, synchronize, and render CLT-bLM four-phase micro-videos from job manifests.",
    )
    parser.add_argument(
        "manifests",
        nargs="+",
        help="Path(s) to JSON job manifest(s).",
    )
    parser.add_argument(
        "--output-dir",
        default=".",
        help="Directory for exports and rendered video (default: current directory).",
    )
    parser.add_argument(
        "--formats",
        default=None,
        help="Comma-separated timeline export formats. "
             "Available: {}. Default: from the manifest.".format(", ".join(sorted(FORMATTERS.keys()))),
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=config.BATCH_WORKERS,
        help="Concurrent jobs when several manifests are given (default: %(default)s).",
    )
    parser.add_argument(
        "--no-render",
        action="store_true",
        help="Stop after synchronization and timeline export.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s {}".format(__version__),
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    output_dir = Path(args.output_dir).resolve()
    if output_dir.exists() and not output_dir.is_dir():
        _status("Error: Output path is not a directory: {}".format(output_dir))
        return 1
    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        formats = _parse_formats(args.formats)
    except ValueError as e:
        _status("Error: {}".format(e))
        return 1

    jobs: List[PipelineJob] = []
    for manifest in args.manifests:
        path = Path(manifest)
        if not path.is_file():
            _status("Error: Manifest not found: {}".format(path))
            return 1
        try:
            job = load_job_file(path)
        except ValidationError as e:
            _status("Error: {}".format(e))
            return 1
        jobs.append(_apply_overrides(job, formats, args.no_render))
        _status("Loaded job {} from {}".format(job.job_id, path.name))

    results: Dict[str, PipelineResult]
    if len(jobs) == 1:
        cancel_event = threading.Event()
        try:
            results = {
                jobs[0].job_id: run_pipeline(jobs[0], output_dir, cancel_event=cancel_event, on_status=_status)
            }
        except KeyboardInterrupt:
            cancel_event.set()
            _status("\nCancelled by user.")
            return 130
    else:
        runner = BatchRunner(output_dir, max_workers=max(1, args.workers))
        try:
            results = runner.run(jobs)
        except KeyboardInterrupt:
            runner.cancel()
            _status("\nCancelled by user.")
            return 130

    for result in results.values():
        _report(result)

    if any(r.status == PipelineStatus.CANCELLED for r in results.values()):
        return 130
    return 0 if all(r.ok for r in results.values()) else 1
