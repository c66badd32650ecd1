"""Pipeline orchestration: one job end to end, and a bounded batch runner.

WHY: The CLI and batch callers both need the same stage sequence
(analyze → align → synchronize → export → render). Keeping it in one
plain function avoids handler-to-handler coupling and gives every caller
identical error semantics.

HOW: run_pipeline() executes the stages for one PipelineJob, recording
each stage's output on a PipelineResult as it goes. Pipeline errors are
caught at this level and turned into a failed or cancelled result that
still carries every stage that completed. BatchRunner fans jobs out over
a bounded ThreadPoolExecutor that shares one cancel event and one
MediaGateway.

RULES:
- Status moves pending → analyzing → aligning → synchronizing →
  exporting → rendering → completed | failed | cancelled
- The cancel event is checked before every stage
- Timeline exports are written before rendering, so they survive a
  render failure; a cancelled job removes them
- An interrupt in BatchRunner.run() cancels every job before re-raising
- Unexpected exceptions inside a batch become failed results, keyed by
  job id; run_pipeline itself lets them propagate
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from microvideo_pipeline import config
from microvideo_pipeline.cache import TTLCache
from microvideo_pipeline.core.alignment import TimelineAligner, locate_keypoints
from microvideo_pipeline.core.cognitive_load import CognitiveLoadAnalyzer
from microvideo_pipeline.core.content import derive_content_analysis
from microvideo_pipeline.core.ir import (
    AlignmentResult,
    CognitiveLoadProfile,
    FinalComposite,
    PipelineJob,
    SyncResult,
)
from microvideo_pipeline.core.sync import SyncEngine
from microvideo_pipeline.errors import PipelineCancelled, PipelineError
from microvideo_pipeline.formatters import FORMATTERS
from microvideo_pipeline.formatters.base import FormatterOutput
from microvideo_pipeline.render.media import MediaGateway
from microvideo_pipeline.render.renderer import SegmentRenderer
from microvideo_pipeline.stage_timing import log_stage_completed, log_stage_failed, log_stage_started

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


class PipelineStatus(str, enum.Enum):
    """States a job passes through; the last three are terminal."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    ALIGNING = "aligning"
    SYNCHRONIZING = "synchronizing"
    EXPORTING = "exporting"
    RENDERING = "rendering"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class PipelineResult:
    """Everything one run produced, including partial output on failure."""

    job_id: str
    status: PipelineStatus = PipelineStatus.PENDING
    profile: Optional[CognitiveLoadProfile] = None
    alignment: Optional[AlignmentResult] = None
    sync: Optional[SyncResult] = None
    composite: Optional[FinalComposite] = None
    exports: Dict[str, List[str]] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)
    error: Optional[str] = None
    elapsed_sec: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == PipelineStatus.COMPLETED


# ---------------------------------------------------------------------------
# Output files
# ---------------------------------------------------------------------------


def resolve_output_path(stem: str, suffix: str, output_dir: Path) -> Path:
    """Return ``{stem}{suffix}`` in *output_dir*, numbered on conflict.

    e.g. ``lesson-timeline.json`` then ``lesson-timeline-2.json``.
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name, suffix_ext = suffix[:dot_idx], suffix[dot_idx:]
    else:
        suffix_name, suffix_ext = suffix, ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def save_output(output: FormatterOutput, stem: str, output_dir: Path) -> Path:
    path = resolve_output_path(stem, output.suffix, output_dir)
    if isinstance(output.content, bytes):
        path.write_bytes(output.content)
    else:
        path.write_text(output.content, encoding="utf-8")
    return path


def export_timeline(
    sync: SyncResult,
    formats: Sequence[str],
    output_dir: Path,
    stem: str,
) -> Dict[str, List[str]]:
    """Run each requested exporter and save its files.

    Raises:
        KeyError: For a format name that is not registered.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: Dict[str, List[str]] = {}
    for key in formats:
        formatter = FORMATTERS[key]()
        paths = [str(save_output(output, stem, output_dir)) for output in formatter.format(sync)]
        saved[key] = paths
        logger.info("Exported %s: %s", formatter.name, ", ".join(Path(p).name for p in paths))
    return saved


# ---------------------------------------------------------------------------
# Single job
# ---------------------------------------------------------------------------


def _check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise PipelineCancelled("cancelled before {}".format(stage))


def _discard_exports(result: PipelineResult) -> None:
    """Delete the timeline files a cancelled job already wrote."""
    for paths in result.exports.values():
        for path in paths:
            Path(path).unlink(missing_ok=True)
    if result.exports:
        logger.info("Job %s cancelled; removed its timeline exports", result.job_id)
    result.exports = {}


def run_pipeline(
    job: PipelineJob,
    output_dir: Path,
    *,
    analyzer: Optional[CognitiveLoadAnalyzer] = None,
    aligner: Optional[TimelineAligner] = None,
    engine: Optional[SyncEngine] = None,
    renderer: Optional[SegmentRenderer] = None,
    gateway: Optional[MediaGateway] = None,
    cancel_event: Optional[threading.Event] = None,
    on_status: Optional[StatusCallback] = None,
) -> PipelineResult:
    """Run every stage for one job.

    Args:
        job: A validated job (see core.inputs.load_job).
        output_dir: Destination for exports and the composite.
        analyzer, aligner, engine, renderer: Stage objects; defaults are
            built when omitted.
        gateway: Media gateway for a default renderer.
        cancel_event: Shared cancel signal.
        on_status: Optional callback receiving short progress messages.

    Returns:
        A PipelineResult. Pipeline errors produce a failed or cancelled
        result rather than an exception.
    """
    output_dir = Path(output_dir)
    notify = on_status or (lambda msg: None)
    analyzer = analyzer or CognitiveLoadAnalyzer()
    aligner = aligner or TimelineAligner()
    engine = engine or SyncEngine()
    result = PipelineResult(job_id=job.job_id)
    started = log_stage_started(logger, "Pipeline", job.job_id)

    try:
        _check_cancelled(cancel_event, "analysis")
        result.status = PipelineStatus.ANALYZING
        notify("Analyzing cognitive load...")
        analysis = job.content_analysis or derive_content_analysis(job.transcript, job.scripts)
        result.profile = analyzer.analyze(analysis, job.learner)

        _check_cancelled(cancel_event, "alignment")
        result.status = PipelineStatus.ALIGNING
        notify("Aligning phases...")
        keypoints = locate_keypoints(job.keypoints, job.transcript)
        result.alignment = aligner.align(
            job.scripts, job.transcript, job.video_duration_sec, profile=result.profile, keypoints=keypoints
        )
        result.issues.extend(result.alignment.issues)

        _check_cancelled(cancel_event, "synchronization")
        result.status = PipelineStatus.SYNCHRONIZING
        notify("Synchronizing timeline...")
        result.sync = engine.synchronize(result.alignment, job.narration, keypoints=keypoints)
        result.issues.extend(result.sync.validation.issues)

        _check_cancelled(cancel_event, "export")
        result.status = PipelineStatus.EXPORTING
        if job.options.export_formats:
            notify("Exporting timeline ({})...".format(", ".join(job.options.export_formats)))
            result.exports = export_timeline(result.sync, job.options.export_formats, output_dir, job.job_id)

        if job.options.render:
            _check_cancelled(cancel_event, "render")
            result.status = PipelineStatus.RENDERING
            notify("Rendering segments...")
            if renderer is None:
                renderer = SegmentRenderer(gateway or MediaGateway(cancel_event=cancel_event), output_dir)
            result.composite = renderer.render(job, result.alignment, result.sync, result.profile)
            result.issues.extend(result.composite.issues)

        result.status = PipelineStatus.COMPLETED
    except PipelineCancelled as err:
        result.status = PipelineStatus.CANCELLED
        result.error = str(err)
        _discard_exports(result)
        result.elapsed_sec = log_stage_failed(logger, "Pipeline", started, job.job_id)
        return result
    except PipelineError as err:
        result.error = "{} failed: {}".format(result.status.value, err)
        result.status = PipelineStatus.FAILED
        logger.error("Job %s %s", job.job_id, result.error)
        result.elapsed_sec = log_stage_failed(logger, "Pipeline", started, job.job_id)
        return result

    result.elapsed_sec = log_stage_completed(logger, "Pipeline", started, job.job_id)
    return result


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


class BatchRunner:
    """Runs many jobs on a bounded worker pool with a shared cancel signal.

    WHY: Batches of videos should saturate the machine without
    oversubscribing it. The pool bounds concurrent jobs; the shared
    MediaGateway bounds concurrent ffmpeg processes across all of them.

    RULES:
    - Results are keyed by job id
    - One job's failure never affects another job
    - cancel() stops new stages and new media calls in every job
    """

    def __init__(
        self,
        output_dir: Path,
        max_workers: int = config.BATCH_WORKERS,
        gateway: Optional[MediaGateway] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1, got {}".format(max_workers))
        self._output_dir = Path(output_dir)
        self._max_workers = max_workers
        self.cancel_event = gateway.cancel_event if gateway else threading.Event()
        self._gateway = gateway or MediaGateway(cancel_event=self.cancel_event)
        self._analyzer = CognitiveLoadAnalyzer(
            cache if cache is not None else TTLCache(config.PROFILE_CACHE_TTL_SECONDS, config.PROFILE_CACHE_MAX_ENTRIES)
        )

    def cancel(self) -> None:
        logger.info("Batch cancel requested")
        self.cancel_event.set()

    def _run_one(self, job: PipelineJob) -> PipelineResult:
        return run_pipeline(
            job,
            self._output_dir / job.job_id,
            analyzer=self._analyzer,
            gateway=self._gateway,
            cancel_event=self.cancel_event,
        )

    def run(self, jobs: Sequence[PipelineJob]) -> Dict[str, PipelineResult]:
        results: Dict[str, PipelineResult] = {}
        if not jobs:
            return results
        started = time.perf_counter()
        executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="job")
        try:
            futures = {executor.submit(self._run_one, job): job for job in jobs}
            for future in as_completed(futures):
                job = futures[future]
                try:
                    results[job.job_id] = future.result()
                except Exception as err:
                    logger.exception("Job %s crashed", job.job_id)
                    results[job.job_id] = PipelineResult(
                        job_id=job.job_id, status=PipelineStatus.FAILED, error=str(err)
                    )
        except BaseException:
            # Ctrl-C lands here. Drop queued jobs before waking the running ones.
            executor.shutdown(wait=False, cancel_futures=True)
            self.cancel()
            executor.shutdown(wait=True)
            raise
        executor.shutdown(wait=True)
        completed = sum(1 for r in results.values() if r.ok)
        logger.info(
            "Batch finished: %d/%d completed in %.1fs", completed, len(results), time.perf_counter() - started
        )
        return results
