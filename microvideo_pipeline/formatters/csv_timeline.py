"""Tabular timeline export.

WHY: Producers review sync decisions in spreadsheets. One row per
timeline event with a fixed header keeps the file importable anywhere.

RULES:
- Header: Timestamp,Type,Phase,Confidence,Priority,Description
- Timestamps in seconds with 3 decimals; empty confidence when unknown
- Output suffix: "-timeline.csv"
"""

from __future__ import annotations

import csv
import io
from typing import List

from microvideo_pipeline.core.ir import SyncResult
from microvideo_pipeline.formatters.base import BaseFormatter, FormatterOutput, timeline_rows

CSV_HEADER = ("Timestamp", "Type", "Phase", "Confidence", "Priority", "Description")


class CSVTimelineFormatter(BaseFormatter):
    """One CSV row per timeline event."""

    @property
    def name(self) -> str:
        return "Timeline CSV"

    def format(self, result: SyncResult) -> List[FormatterOutput]:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for row in timeline_rows(result):
            writer.writerow([
                "{:.3f}".format(row.timestamp_sec),
                row.kind,
                row.phase,
                "" if row.confidence is None else "{:.2f}".format(row.confidence),
                row.priority,
                row.description,
            ])
        return [FormatterOutput(suffix="-timeline.csv", content=buffer.getvalue(), media_type="text/csv")]
