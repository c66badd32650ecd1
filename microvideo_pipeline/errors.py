"""Exception and warning taxonomy for the micro-video pipeline.

WHY: Callers need to tell fatal input problems apart from degradations
that should only be reported. A small typed hierarchy makes the
propagation policy explicit at every ``except`` site.

HOW: PipelineError is the common base. Each subclass documents whether it
is fatal. QualityWarning is a UserWarning because post-render metrics are
advisory and never block delivery.

RULES:
- ValidationError is fatal: the pipeline does not start
- AlignmentError and SyncConflictError are non-fatal, logged and recorded
- RenderError is fatal only for a required step (base segment cut)
- PhaseRenderFailed aborts assembly and names the phase
- PipelineCancelled is raised once a cancel signal has been observed
"""

from __future__ import annotations

from typing import List, Optional


class PipelineError(Exception):
    """Base class for every error raised by microvideo_pipeline."""


class ValidationError(PipelineError, ValueError):
    """Malformed phase, script, transcript, or audio input.

    Attributes:
        problems: Human-readable ``"field: message"`` strings, one per
                  failed check.
    """

    def __init__(self, message: str, problems: Optional[List[str]] = None) -> None:
        self.problems = list(problems or [])
        if self.problems:
            message = "{}: {}".format(message, "; ".join(self.problems))
        super().__init__(message)


class AlignmentError(PipelineError):
    """A required phase could not be given a meaningful window."""

    def __init__(self, phase: str, message: str) -> None:
        self.phase = phase
        super().__init__("{}: {}".format(phase, message))


class SyncConflictError(PipelineError):
    """Two timeline events conflict in a way the merge rule does not cover."""

    def __init__(self, timestamp_sec: float, message: str) -> None:
        self.timestamp_sec = timestamp_sec
        super().__init__("conflict at {:.3f}s: {}".format(timestamp_sec, message))


class RenderError(PipelineError):
    """A transcoding or compositing call failed or timed out.

    Attributes:
        phase: Phase being rendered, or None for whole-video steps.
        step: Short name of the failed step (``cut``, ``overlay``, ...).
        stderr: Decoded ffmpeg stderr when available.
    """

    def __init__(
        self,
        message: str,
        phase: Optional[str] = None,
        step: Optional[str] = None,
        stderr: Optional[str] = None,
    ) -> None:
        self.phase = phase
        self.step = step
        self.stderr = stderr
        super().__init__(message)


class PhaseRenderFailed(RenderError):
    """A required phase produced no usable cut, so assembly cannot run."""


class PipelineCancelled(PipelineError):
    """The cancel signal was set before a new media call could start."""


class QualityWarning(UserWarning):
    """A post-render metric fell below its threshold."""
