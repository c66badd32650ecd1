"""Abstract base formatter, output container, and shared timeline helpers.

WHY: Every export format consumes the same SyncResult but produces
different file content. This base class enforces a consistent interface
so the CLI and the pipeline can work with any exporter generically.

HOW: BaseFormatter is an ABC with two requirements: a ``name`` property
and a ``format()`` method. FormatterOutput bundles a file suffix with its
content and MIME type. timeline_rows() flattens the timeline into the
flat records the tabular and marker exporters share.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``format()``
- ``format()`` returns a list; every current exporter returns one item
- ``suffix`` starts with a hyphen, e.g. ``"-timeline.json"``
- The caller is responsible for prepending the job id or source stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from microvideo_pipeline.core.ir import SyncResult, TimelineEvent


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File suffix appended to the job stem,
                e.g. ``"-timeline.csv"`` → ``"lesson-timeline.csv"``.
        content: The file content as a string.
        media_type: MIME type for the content, e.g. ``"text/csv"``.
    """

    suffix: str
    content: str | bytes
    media_type: str


@dataclass(frozen=True)
class TimelineRow:
    """One timeline event flattened for tabular and marker exports."""

    timestamp_sec: float
    kind: str
    phase: str
    confidence: Optional[float]
    priority: str
    description: str


def describe_item(item: Dict[str, Any]) -> str:
    """Short human-readable label for one (possibly merged) event payload."""
    kind = item.get("kind", "")
    if kind == "sync_point" or "sync_kind" in item:
        return "{} {}".format(item.get("sync_kind", "sync"), item.get("phase", "")).strip()
    if kind == "audio_marker" or "marker_kind" in item:
        return "{} ({})".format(item.get("marker_kind", "marker"), item.get("phase", ""))
    if kind == "visual_event" or "visual_kind" in item:
        return "{}: {}".format(item.get("visual_kind", "visual"), item.get("label", ""))
    return str(kind)


def describe_event(event: TimelineEvent) -> str:
    if event.kind == "merged_event":
        return " + ".join(describe_item(inner) for inner in event.payload.get("events", []))
    item = dict(event.payload)
    item["kind"] = event.kind
    return describe_item(item)


def event_confidence(event: TimelineEvent) -> Optional[float]:
    """Confidence of the event, or the highest constituent confidence."""
    if event.kind == "merged_event":
        values = [
            inner["confidence"]
            for inner in event.payload.get("events", [])
            if inner.get("confidence") is not None
        ]
        return max(values) if values else None
    return event.payload.get("confidence")


def timeline_rows(result: SyncResult) -> List[TimelineRow]:
    return [
        TimelineRow(
            timestamp_sec=event.timestamp_sec,
            kind=event.kind,
            phase="/".join(event.phases()),
            confidence=event_confidence(event),
            priority=event.priority,
            description=describe_event(event),
        )
        for event in result.timeline
    ]


def seconds_to_frames(seconds: float, fps: float) -> int:
    return max(0, int(round(seconds * fps)))


def frames_to_timecode(frames: int, fps: float) -> str:
    """HH:MM:SS:FF non-drop-frame timecode."""
    base = int(round(fps))
    hours = frames // (base * 3600)
    frames -= hours * base * 3600
    minutes = frames // (base * 60)
    frames -= minutes * base * 60
    seconds = frames // base
    frame_num = frames - seconds * base
    return "{:02d}:{:02d}:{:02d}:{:02d}".format(hours, minutes, seconds, frame_num)


class BaseFormatter(ABC):
    """Abstract base for all timeline exporters.

    To add a new export format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'Timeline CSV'."""

    @abstractmethod
    def format(self, result: SyncResult) -> List[FormatterOutput]:
        """Convert a synchronized timeline into one or more output files.

        Args:
            result: The Synchronization Engine output: sync points,
                    conflict-free timeline, keyframes, and validation.

        Returns:
            List of FormatterOutput objects.
        """
