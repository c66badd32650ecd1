"""CMX3600 EDL export of the phase cuts and timeline markers.

WHY: EDL is the lowest common denominator every NLE imports. Editors can
rebuild the four-phase cut from it when the XML import is unreliable.

HOW: One cut event per phase (record timecodes from the phase_start /
phase_end sync points), each followed by "* LOC:" locator comments for
the timeline events inside that phase.

RULES:
- Header: "TITLE: <title>" then "FCM: NON-DROP FRAME"
- Reel name: the title, upper-cased, 8 characters, space padded
- Source timecodes equal record timecodes (the source is not re-timed)
- Output suffix: "-timeline.edl"
"""

from __future__ import annotations

from typing import List

from microvideo_pipeline import config
from microvideo_pipeline.core.ir import SyncResult
from microvideo_pipeline.formatters.base import (
    BaseFormatter,
    FormatterOutput,
    frames_to_timecode,
    seconds_to_frames,
    timeline_rows,
)


def reel_name(title: str) -> str:
    stem = "".join(ch for ch in title.upper() if ch.isalnum()) or "AX"
    return stem[:8].ljust(8)


class EDLMarkerFormatter(BaseFormatter):
    """CMX3600 EDL with one event per phase and locators for sync events."""

    def __init__(self, title: str = "MICROVIDEO", fps: float = config.DEFAULT_FPS) -> None:
        self._title = title
        self._fps = fps

    @property
    def name(self) -> str:
        return "Timeline EDL"

    def format(self, result: SyncResult) -> List[FormatterOutput]:
        fps = self._fps
        reel = reel_name(self._title)
        lines = ["TITLE: {}".format(self._title.upper()), "FCM: NON-DROP FRAME", ""]

        starts = {p.phase: p for p in result.sync_points if p.kind == "phase_start"}
        ends = {p.phase: p for p in result.sync_points if p.kind == "phase_end"}
        rows = timeline_rows(result)
        phases = [p for p in config.PHASE_ORDER if p in starts and p in ends]

        for index, phase in enumerate(phases, start=1):
            rec_in = seconds_to_frames(starts[phase].video_time_sec, fps)
            rec_out = max(rec_in + 1, seconds_to_frames(ends[phase].video_time_sec, fps))
            lines.append(
                "{:03d}  {} V     C        {} {} {} {}".format(
                    index,
                    reel,
                    frames_to_timecode(rec_in, fps),
                    frames_to_timecode(rec_out, fps),
                    frames_to_timecode(rec_in, fps),
                    frames_to_timecode(rec_out, fps),
                )
            )
            lines.append("* FROM CLIP NAME: {}".format(config.PHASE_DISPLAY_NAMES[phase].upper()))
            start_sec = starts[phase].video_time_sec
            end_sec = ends[phase].video_time_sec
            for row in rows:
                if start_sec <= row.timestamp_sec < end_sec:
                    lines.append(
                        "* LOC: {} {} {}".format(
                            frames_to_timecode(seconds_to_frames(row.timestamp_sec, fps), fps),
                            row.priority.upper(),
                            row.description[:200],
                        )
                    )
        return [
            FormatterOutput(
                suffix="-timeline.edl",
                content="\n".join(lines) + "\n",
                media_type="text/plain",
            )
        ]
