"""Segment Renderer: per-phase cuts, overlays, narration sync, assembly.

WHY: This is the last stage and the only one that produces media. Each
phase is cut from the source, decorated with overlays, and re-voiced with
its narration; the four results are then joined with cross-fades into
one composite and checked for quality. Phases are independent until
assembly, so they render concurrently.

HOW:
  1. One task per phase on a per-render executor:
       cut (required) → overlays (optional) → narration sync (optional)
  2. concurrent.futures.wait() is the barrier before assembly
  3. A failed cut in a required phase raises PhaseRenderFailed; a failed
     cut elsewhere drops that phase with an issue
  4. Assembly: xfade/acrossfade chain using each boundary's suggested
     transition duration and each rendered segment's measured length,
     libx264/aac at FINAL_CRF with +faststart; phases without narration
     get a silent track so the audio never drops out of the composite
  5. Probe and validate_quality(); then alternate formats, which are
     non-fatal and never touch the primary score or issues

RULES:
- All ffmpeg calls go through MediaGateway
- Optional-step failures become VideoSegment.issues, never exceptions
- PipelineCancelled propagates; phase temp directories are always removed
- A render that does not return leaves no composite or alternate behind
- Narration is fitted to the cut length; the video is never shortened
- Overlay and audio times are relative to the start of the phase cut
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import ffmpeg

from microvideo_pipeline import config
from microvideo_pipeline.config import QualityThresholds, SyncMethodBands
from microvideo_pipeline.core.ir import (
    AlignmentResult,
    CognitiveLoadProfile,
    FinalComposite,
    Overlay,
    PhaseTiming,
    PipelineJob,
    SyncResult,
    VideoSegment,
)
from microvideo_pipeline.core.sync import phase_durations
from microvideo_pipeline.errors import PhaseRenderFailed, PipelineCancelled, RenderError
from microvideo_pipeline.render.audio import AudioSyncPlan, apply_sync, fit_to_video, plan_audio_sync
from microvideo_pipeline.render.media import MediaGateway
from microvideo_pipeline.render.overlays import plan_overlays
from microvideo_pipeline.render.quality import validate_quality
from microvideo_pipeline.stage_timing import log_stage_completed, log_stage_failed, log_stage_started

logger = logging.getLogger(__name__)

MIN_CROSSFADE_SEC = 0.04
DEFAULT_CROSSFADE_SEC = 1.0


def crossfade_duration(suggested: float, previous_sec: float, current_sec: float) -> float:
    """Clip a suggested transition so it fits inside both neighbouring segments."""
    limit = min(previous_sec, current_sec) / 2
    return round(max(MIN_CROSSFADE_SEC, min(suggested, limit)), 3)


class SegmentRenderer:
    """Renders the four phases of one job into a final composite.

    Args:
        gateway: The MediaGateway every ffmpeg call is routed through.
        output_dir: Where the composite and alternate formats are written.
        bands: Narration reconciliation table; defaults to SyncMethodBands().
        thresholds: Quality thresholds; defaults to QualityThresholds().
        required_phases: Phases whose cut must succeed for assembly.
    """

    def __init__(
        self,
        gateway: MediaGateway,
        output_dir: Path,
        bands: Optional[SyncMethodBands] = None,
        thresholds: Optional[QualityThresholds] = None,
        required_phases: Sequence[str] = config.REQUIRED_PHASES,
    ) -> None:
        self._gateway = gateway
        self._output_dir = Path(output_dir)
        self._bands = bands or SyncMethodBands()
        self._thresholds = thresholds or QualityThresholds()
        self._required = tuple(required_phases)

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def render(
        self,
        job: PipelineJob,
        alignment: AlignmentResult,
        sync: SyncResult,
        profile: Optional[CognitiveLoadProfile] = None,
    ) -> FinalComposite:
        """Render all phases, assemble, validate, and export alternates.

        Raises:
            PhaseRenderFailed: A required phase produced no usable cut.
            RenderError: Final assembly or probing failed.
            PipelineCancelled: The cancel signal was observed.
        """
        self._output_dir.mkdir(parents=True, exist_ok=True)
        work_root = Path(tempfile.mkdtemp(prefix="{}_".format(job.job_id)))
        final_path = self._output_dir / "{}.mp4".format(job.job_id)
        assembling = False
        try:
            segments, issues = self._render_phases(job, alignment, sync, profile, work_root)
            assembling = True
            self._assemble(segments, alignment, final_path)
            return self._finish(job, final_path, segments, issues)
        except BaseException:
            if assembling:
                self._discard_outputs(final_path, job.options.alternate_formats)
            raise
        finally:
            shutil.rmtree(work_root, ignore_errors=True)

    @staticmethod
    def _discard_outputs(final_path: Path, formats: Sequence[str]) -> None:
        for path in [final_path] + [final_path.with_suffix(".{}".format(fmt)) for fmt in formats]:
            if path.exists():
                logger.info("Removing partial output %s", path.name)
                path.unlink()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _render_phases(
        self,
        job: PipelineJob,
        alignment: AlignmentResult,
        sync: SyncResult,
        profile: Optional[CognitiveLoadProfile],
        work_root: Path,
    ) -> Tuple[List[VideoSegment], List[str]]:
        durations = phase_durations(sync)
        timings = [t for t in alignment.phases if t.duration_sec > 0]
        executor = ThreadPoolExecutor(max_workers=max(1, len(timings)), thread_name_prefix="phase")
        try:
            futures = {
                timing.phase: executor.submit(
                    self.render_phase, job, timing, durations.get(timing.phase), profile, work_root
                )
                for timing in timings
            }
            wait(list(futures.values()))
        except BaseException:
            # Interrupted while waiting: stop queued phases and new media calls.
            self._gateway.cancel()
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        segments: List[VideoSegment] = []
        issues: List[str] = []
        for timing in alignment.phases:
            if timing.phase not in futures:
                if timing.phase in self._required:
                    raise PhaseRenderFailed(
                        "required phase {} has an empty window".format(timing.phase),
                        phase=timing.phase,
                        step="cut",
                    )
                issues.append("{}: skipped, empty phase window".format(timing.phase))
                continue
            future = futures[timing.phase]
            err = future.exception()
            if isinstance(err, PipelineCancelled):
                raise err
            if isinstance(err, RenderError):
                if timing.phase in self._required:
                    raise PhaseRenderFailed(
                        "required phase {} failed at {}: {}".format(timing.phase, err.step, err),
                        phase=timing.phase,
                        step=err.step,
                        stderr=err.stderr,
                    ) from err
                issues.append("{}: dropped, {} failed".format(timing.phase, err.step or "render"))
                continue
            if err is not None:
                raise err
            segment = future.result()
            segments.append(segment)
            issues.extend(segment.issues)
        if not segments:
            raise PhaseRenderFailed("no phase produced a usable cut", step="cut")
        return segments, issues

    def render_phase(
        self,
        job: PipelineJob,
        timing: PhaseTiming,
        durations: Optional[Tuple[float, float]],
        profile: Optional[CognitiveLoadProfile],
        work_root: Path,
    ) -> VideoSegment:
        """Cut, overlay, and re-voice one phase.

        Only the cut is required; its RenderError propagates. Overlay and
        narration failures are recorded in the returned segment's issues.
        The finished clip is measured so assembly fades on its real length.
        """
        phase = timing.phase
        workdir = Path(tempfile.mkdtemp(prefix="{}_".format(phase), dir=work_root))
        started = log_stage_started(logger, "Phase render", phase)
        issues: List[str] = []
        try:
            current = self._cut(job, timing, workdir)

            overlays: Tuple[Overlay, ...] = ()
            if job.options.overlays:
                try:
                    overlays = plan_overlays(
                        timing, job.keypoints, workdir, profile, load_indicator=job.options.load_indicator
                    )
                    current = self._composite(current, overlays, phase, workdir)
                except (RenderError, OSError) as err:
                    logger.warning("Overlays skipped for %s: %s", phase, err)
                    issues.append("{}: overlays skipped ({})".format(phase, err))
                    overlays = ()

            method = "none"
            narration = next((n for n in job.narration if n.phase == phase), None)
            if narration is None:
                issues.append("{}: no narration audio".format(phase))
            else:
                video_sec, audio_sec = durations or (timing.duration_sec, narration.duration_sec)
                try:
                    plan = plan_audio_sync(audio_sec, video_sec or timing.duration_sec, self._bands)
                    current = self._sync_audio(current, narration.path, plan, timing, workdir)
                    method = plan.method
                except RenderError as err:
                    logger.warning("Narration sync failed for %s: %s", phase, err)
                    issues.append("{}: narration sync failed ({})".format(phase, err))

            final = work_root / "{}_segment.mp4".format(phase)
            shutil.move(str(current), str(final))
            length = self._gateway.probe(final, phase=phase).duration_sec
        except Exception:
            log_stage_failed(logger, "Phase render", started, phase)
            raise
        finally:
            shutil.rmtree(workdir, ignore_errors=True)
        log_stage_completed(logger, "Phase render", started, phase)
        return VideoSegment(
            phase=phase,
            source_range=(timing.start_sec, timing.end_sec),
            path=str(final),
            overlays=overlays,
            audio_sync_method=method,
            issues=tuple(issues),
            duration_sec=length,
        )

    def _cut(self, job: PipelineJob, timing: PhaseTiming, workdir: Path) -> Path:
        path = workdir / "cut.mp4"
        source = ffmpeg.input(job.video_path, ss=timing.start_sec, t=timing.duration_sec)
        stream = ffmpeg.output(
            source.video,
            str(path),
            vcodec=config.VIDEO_CODEC,
            crf=config.SEGMENT_CRF.get(job.options.quality, config.SEGMENT_CRF["medium"]),
        )
        self._gateway.run(stream, step="cut", phase=timing.phase)
        return path

    def _composite(self, base: Path, overlays: Sequence[Overlay], phase: str, workdir: Path) -> Path:
        if not overlays:
            return base
        path = workdir / "overlaid.mp4"
        video = ffmpeg.input(str(base)).video
        for overlay in sorted(overlays, key=lambda o: o.z_index):
            x, y = config.OVERLAY_POSITIONS[overlay.position]
            image = ffmpeg.input(overlay.image_path)
            video = ffmpeg.overlay(
                video,
                image,
                x=x,
                y=y,
                # half-open, so back-to-back overlays never share a frame
                enable="gte(t,{:.3f})*lt(t,{:.3f})".format(overlay.start_sec, overlay.end_sec),
            )
        stream = ffmpeg.output(video, str(path), vcodec=config.VIDEO_CODEC, crf=config.SEGMENT_CRF["high"])
        self._gateway.run(stream, step="overlay", phase=phase)
        return path

    def _sync_audio(
        self, video_path: Path, audio_path: str, plan: AudioSyncPlan, timing: PhaseTiming, workdir: Path
    ) -> Path:
        path = workdir / "voiced.mp4"
        video = ffmpeg.input(str(video_path)).video
        audio = fit_to_video(apply_sync(ffmpeg.input(audio_path).audio, plan), timing.duration_sec)
        stream = ffmpeg.output(video, audio, str(path), vcodec="copy", acodec=config.AUDIO_CODEC)
        self._gateway.run(stream, step="audio_sync", phase=timing.phase)
        return path

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _assemble(self, segments: Sequence[VideoSegment], alignment: AlignmentResult, path: Path) -> None:
        started = log_stage_started(logger, "Assembly")
        suggested: Mapping[Tuple[str, str], float] = {
            (t.from_phase, t.to_phase): t.suggested_duration_sec for t in alignment.transitions
        }
        inputs = [ffmpeg.input(s.path) for s in segments]
        lengths = [s.duration_sec or s.source_range[1] - s.source_range[0] for s in segments]
        tracks = [
            inputs[i].audio if s.audio_sync_method != "none" else self._silence(lengths[i])
            for i, s in enumerate(segments)
        ]

        video = inputs[0].video
        audio = tracks[0]
        offset = lengths[0]
        for index in range(1, len(segments)):
            pair = (segments[index - 1].phase, segments[index].phase)
            fade = crossfade_duration(suggested.get(pair, DEFAULT_CROSSFADE_SEC), lengths[index - 1], lengths[index])
            offset -= fade
            video = ffmpeg.filter(
                [video, inputs[index].video], "xfade", transition="fade", duration=fade, offset=round(offset, 3)
            )
            audio = ffmpeg.filter([audio, tracks[index]], "acrossfade", d=fade)
            offset += lengths[index]

        stream = ffmpeg.output(
            video,
            audio,
            str(path),
            vcodec=config.VIDEO_CODEC,
            acodec=config.AUDIO_CODEC,
            crf=config.FINAL_CRF,
            movflags="+faststart",
        )
        try:
            self._gateway.run(stream, step="assemble")
        except RenderError:
            log_stage_failed(logger, "Assembly", started)
            raise
        log_stage_completed(logger, "Assembly", started)

    @staticmethod
    def _silence(length_sec: float) -> Any:
        return ffmpeg.input(config.SILENCE_SOURCE, f="lavfi", t=round(length_sec, 3)).audio

    def _finish(
        self,
        job: PipelineJob,
        final_path: Path,
        segments: Sequence[VideoSegment],
        issues: List[str],
    ) -> FinalComposite:
        info = self._gateway.probe(final_path)
        report = validate_quality(info, self._thresholds)
        alternates = self.export_alternates(final_path, job.options.alternate_formats)
        logger.info(
            "Composite %s: %.1fs, %dx%d, quality %.2f, %d issue(s)",
            final_path.name, info.duration_sec, info.width, info.height, report.score,
            len(issues) + len(report.issues),
        )
        return FinalComposite(
            path=str(final_path),
            duration_sec=info.duration_sec,
            size_bytes=info.size_bytes,
            resolution=(info.width, info.height),
            quality_score=report.score,
            issues=tuple(issues) + report.issues,
            recommendations=report.recommendations,
            alternate_formats=alternates,
        )

    def export_alternates(self, final_path: Path, formats: Sequence[str]) -> Dict[str, str]:
        """Transcode the composite into each alternate container.

        Failures are logged and the format is omitted; they are never
        retried and never reported as composite issues.
        """
        produced: Dict[str, str] = {}
        for fmt in formats:
            options = config.ALTERNATE_FORMATS.get(fmt)
            if options is None:
                logger.warning("Unknown alternate format %s skipped", fmt)
                continue
            target = final_path.with_suffix(".{}".format(fmt))
            stream = ffmpeg.input(str(final_path)).output(str(target), **options)
            try:
                self._gateway.run(stream, step="alternate_{}".format(fmt))
            except RenderError as err:
                logger.warning("Alternate format %s failed: %s", fmt, err)
                continue
            produced[fmt] = str(target)
        return produced
