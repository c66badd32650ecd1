"""Tests for pipeline orchestration (pipeline.py).

WHY: run_pipeline() is where stage errors become job states. A render
failure must not throw away the timeline exports already written, a
cancelled job must say so rather than report a failure, and a crash in
one batch job must not take the others down.

HOW: The sample job runs through the real analysis, alignment, sync and
export stages; rendering is either disabled or replaced with a MagicMock.
  - TestOutputPaths: numbered output names
  - TestRunPipeline: status transitions, exports, failures, cancellation
  - TestBatchRunner: per-job results, crash isolation, interrupts
"""

import threading
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from microvideo_pipeline.core.ir import FinalComposite
from microvideo_pipeline.errors import PhaseRenderFailed, PipelineCancelled
from microvideo_pipeline.pipeline import (
    BatchRunner,
    PipelineResult,
    PipelineStatus,
    resolve_output_path,
    run_pipeline,
)


def _composite(tmp_path, issues=()):
    return FinalComposite(
        path=str(tmp_path / "lesson-01.mp4"),
        duration_sec=200.0,
        size_bytes=20_000_000,
        resolution=(1280, 720),
        quality_score=1.0,
        issues=issues,
    )


class TestOutputPaths:

    def test_free_name(self, tmp_path):
        assert resolve_output_path("lesson", "-timeline.json", tmp_path) == tmp_path / "lesson-timeline.json"

    def test_numbered_on_conflict(self, tmp_path):
        (tmp_path / "lesson-timeline.json").write_text("{}")
        (tmp_path / "lesson-timeline-2.json").write_text("{}")
        assert resolve_output_path("lesson", "-timeline.json", tmp_path) == tmp_path / "lesson-timeline-3.json"


class TestRunPipeline:

    def test_completed_without_render(self, job, tmp_path):
        messages = []
        result = run_pipeline(job, tmp_path, on_status=messages.append)

        assert result.status == PipelineStatus.COMPLETED
        assert result.ok
        assert result.error is None
        assert result.profile is not None
        assert len(result.alignment.phases) == 4
        assert result.sync.timeline
        assert result.composite is None
        assert set(result.exports) == {"json", "csv"}
        assert (tmp_path / "lesson-01-timeline.json").exists()
        assert (tmp_path / "lesson-01-timeline.csv").exists()
        assert messages[0] == "Analyzing cognitive load..."
        assert not any("Rendering" in m for m in messages)

    def test_second_run_does_not_overwrite(self, job, tmp_path):
        run_pipeline(job, tmp_path)
        result = run_pipeline(job, tmp_path)
        assert result.exports["json"] == [str(tmp_path / "lesson-01-timeline-2.json")]

    def test_render_with_supplied_renderer(self, job, tmp_path):
        renderer = MagicMock()
        renderer.render.return_value = _composite(tmp_path, issues=("end: no narration audio",))
        job = replace(job, options=replace(job.options, render=True))

        result = run_pipeline(job, tmp_path, renderer=renderer)

        assert result.status == PipelineStatus.COMPLETED
        assert result.composite.quality_score == 1.0
        assert "end: no narration audio" in result.issues
        rendered_job, alignment, sync, profile = renderer.render.call_args.args
        assert rendered_job is job
        assert alignment is result.alignment
        assert profile is result.profile

    def test_render_failure_keeps_exports(self, job, tmp_path):
        renderer = MagicMock()
        renderer.render.side_effect = PhaseRenderFailed("required phase deliver failed", phase="deliver", step="cut")
        job = replace(job, options=replace(job.options, render=True))

        result = run_pipeline(job, tmp_path, renderer=renderer)

        assert result.status == PipelineStatus.FAILED
        assert result.error.startswith("rendering failed: ")
        assert result.sync is not None
        assert (tmp_path / "lesson-01-timeline.json").exists()

    def test_preset_cancel(self, job, tmp_path):
        event = threading.Event()
        event.set()
        result = run_pipeline(job, tmp_path, cancel_event=event)
        assert result.status == PipelineStatus.CANCELLED
        assert result.error == "cancelled before analysis"
        assert result.profile is None

    def test_cancel_during_render_removes_exports(self, job, tmp_path):
        renderer = MagicMock()
        renderer.render.side_effect = PipelineCancelled("cancelled before assemble")
        job = replace(job, options=replace(job.options, render=True))

        result = run_pipeline(job, tmp_path, renderer=renderer)

        assert result.status == PipelineStatus.CANCELLED
        assert result.exports == {}
        assert list(tmp_path.iterdir()) == []

    def test_supplied_content_analysis_is_used(self, job, content_analysis, tmp_path):
        analyzer = MagicMock()
        analyzer.analyze.side_effect = RuntimeError("stop here")
        with pytest.raises(RuntimeError):
            run_pipeline(replace(job, content_analysis=content_analysis), tmp_path, analyzer=analyzer)
        assert analyzer.analyze.call_args.args[0] is content_analysis


class TestBatchRunner:

    def test_results_keyed_by_job_id(self, job, tmp_path):
        jobs = [job, replace(job, job_id="lesson-02")]
        results = BatchRunner(tmp_path, max_workers=2).run(jobs)
        assert set(results) == {"lesson-01", "lesson-02"}
        assert all(r.ok for r in results.values())
        assert (tmp_path / "lesson-02" / "lesson-02-timeline.json").exists()

    def test_crash_is_isolated(self, job, tmp_path):
        def fake_run(one_job, *args, **kwargs):
            if one_job.job_id == "lesson-02":
                raise RuntimeError("worker exploded")
            return PipelineResult(job_id=one_job.job_id, status=PipelineStatus.COMPLETED)

        with patch("microvideo_pipeline.pipeline.run_pipeline", side_effect=fake_run):
            results = BatchRunner(tmp_path, max_workers=2).run([job, replace(job, job_id="lesson-02")])

        assert results["lesson-01"].ok
        assert results["lesson-02"].status == PipelineStatus.FAILED
        assert results["lesson-02"].error == "worker exploded"

    def test_cancel_reaches_every_job(self, job, tmp_path):
        runner = BatchRunner(tmp_path, max_workers=1)
        runner.cancel()
        results = runner.run([job, replace(job, job_id="lesson-02")])
        assert {r.status for r in results.values()} == {PipelineStatus.CANCELLED}

    def test_interrupt_cancels_queued_jobs(self, job, tmp_path):
        runner = BatchRunner(tmp_path, max_workers=1)
        started = []

        def slow_run(one_job, *args, **kwargs):
            started.append(one_job.job_id)
            runner.cancel_event.wait(5)
            return PipelineResult(job_id=one_job.job_id, status=PipelineStatus.CANCELLED)

        jobs = [replace(job, job_id="lesson-{:02d}".format(i)) for i in range(4)]
        with patch("microvideo_pipeline.pipeline.run_pipeline", side_effect=slow_run), \
                patch("microvideo_pipeline.pipeline.as_completed", side_effect=KeyboardInterrupt):
            with pytest.raises(KeyboardInterrupt):
                runner.run(jobs)

        assert runner.cancel_event.is_set()
        assert len(started) <= 1

    def test_empty_batch(self, tmp_path):
        assert BatchRunner(tmp_path).run([]) == {}

    def test_rejects_zero_workers(self, tmp_path):
        with pytest.raises(ValueError):
            BatchRunner(tmp_path, max_workers=0)
