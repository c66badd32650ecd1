"""Tree-structured timeline export (FCP7 xmeml sequence with markers).

WHY: Premiere Pro and other NLEs import xmeml. Markers on a sequence put
every sync decision on the editor's timeline ruler, grouped by phase.

HOW: An xmeml root holds one sequence whose duration is the last phase
end. Each timeline event becomes a <marker> with name, in/out frames and
a comment carrying priority and confidence. Phase windows are recorded
as markers spanning the whole phase.

RULES:
- Frames = round(seconds × fps); marker out is at least in + 1
- Document starts with the XML declaration and <!DOCTYPE xmeml>
- Output suffix: "-timeline.xml"
"""

from __future__ import annotations

from typing import List
from xml.etree import ElementTree as ET

from microvideo_pipeline import config
from microvideo_pipeline.core.ir import SyncResult
from microvideo_pipeline.formatters.base import (
    BaseFormatter,
    FormatterOutput,
    seconds_to_frames,
    timeline_rows,
)


def add_text(parent: ET.Element, tag: str, value: str | int | float) -> ET.Element:
    child = ET.SubElement(parent, tag)
    child.text = str(value)
    return child


def add_rate(parent: ET.Element, fps: float) -> ET.Element:
    rate = ET.SubElement(parent, "rate")
    add_text(rate, "timebase", int(round(fps)))
    add_text(rate, "ntsc", "FALSE")
    return rate


def add_marker(parent: ET.Element, *, name: str, in_frame: int, out_frame: int, comment: str = "") -> ET.Element:
    marker = ET.SubElement(parent, "marker")
    add_text(marker, "name", name)
    add_text(marker, "in", in_frame)
    add_text(marker, "out", max(in_frame + 1, out_frame))
    if comment:
        add_text(marker, "comment", comment)
    return marker


class XMLTimelineFormatter(BaseFormatter):
    """xmeml sequence with one marker per phase and per timeline event."""

    def __init__(self, title: str = "microvideo", fps: float = config.DEFAULT_FPS) -> None:
        self._title = title
        self._fps = fps

    @property
    def name(self) -> str:
        return "Timeline XML"

    def build(self, result: SyncResult) -> ET.Element:
        fps = self._fps
        ends = [p.video_time_sec for p in result.sync_points if p.kind == "phase_end"]
        duration = seconds_to_frames(max(ends) if ends else 0.0, fps)

        xmeml = ET.Element("xmeml", version="4")
        sequence = ET.SubElement(xmeml, "sequence", id="sequence-1")
        add_text(sequence, "name", self._title)
        add_rate(sequence, fps)
        add_text(sequence, "duration", duration)

        starts = {p.phase: p for p in result.sync_points if p.kind == "phase_start"}
        for point in result.sync_points:
            if point.kind != "phase_end" or point.phase not in starts:
                continue
            add_marker(
                sequence,
                name="PHASE {}".format(config.PHASE_DISPLAY_NAMES.get(point.phase, point.phase)),
                in_frame=seconds_to_frames(starts[point.phase].video_time_sec, fps),
                out_frame=seconds_to_frames(point.video_time_sec, fps),
                comment="audio {:.2f}s-{:.2f}s".format(starts[point.phase].audio_time_sec, point.audio_time_sec),
            )

        for row in timeline_rows(result):
            frame = seconds_to_frames(row.timestamp_sec, fps)
            comment = "priority={}".format(row.priority)
            if row.confidence is not None:
                comment += " confidence={:.2f}".format(row.confidence)
            if row.phase:
                comment += " phase={}".format(row.phase)
            add_marker(sequence, name=row.description, in_frame=frame, out_frame=frame + 1, comment=comment)
        return xmeml

    def format(self, result: SyncResult) -> List[FormatterOutput]:
        root = self.build(result)
        ET.indent(root, space="  ")
        body = ET.tostring(root, encoding="unicode")
        content = '<?xml version="1.0" encoding="UTF-8"?>\n<!DOCTYPE xmeml>\n' + body + "\n"
        return [FormatterOutput(suffix="-timeline.xml", content=content, media_type="application/xml")]
