"""Subtitle-style timeline export.

WHY: Loading the timeline as a subtitle track in any player shows each
sync decision on top of the picture at the moment it fires, which is the
quickest way to eyeball drift.

HOW: One SRT cue per timeline event. A cue lasts DEFAULT_CUE_SEC, cut
short so it never overlaps the next event's cue.

RULES:
- Cue numbering starts at 1
- Cue text: "[PRIORITY] description"
- Output suffix: "-timeline.srt"
"""

from __future__ import annotations

from typing import List

from microvideo_pipeline.core.ir import SyncResult
from microvideo_pipeline.formatters.base import BaseFormatter, FormatterOutput, timeline_rows

DEFAULT_CUE_SEC = 2.0


def srt_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS,mmm."""
    total_ms = max(0, int(round(seconds * 1000)))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, millis)


class SRTMarkerFormatter(BaseFormatter):
    """One subtitle cue per timeline event."""

    def __init__(self, cue_sec: float = DEFAULT_CUE_SEC) -> None:
        self._cue_sec = cue_sec

    @property
    def name(self) -> str:
        return "Timeline SRT"

    def format(self, result: SyncResult) -> List[FormatterOutput]:
        rows = timeline_rows(result)
        blocks = []
        for index, row in enumerate(rows):
            end = row.timestamp_sec + self._cue_sec
            if index + 1 < len(rows):
                end = min(end, rows[index + 1].timestamp_sec)
            blocks.append(
                "{}\n{} --> {}\n[{}] {}\n".format(
                    index + 1,
                    srt_timestamp(row.timestamp_sec),
                    srt_timestamp(end),
                    row.priority.upper(),
                    row.description,
                )
            )
        return [
            FormatterOutput(
                suffix="-timeline.srt",
                content="\n".join(blocks),
                media_type="application/x-subrip",
            )
        ]
