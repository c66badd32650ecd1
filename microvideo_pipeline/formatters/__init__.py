"""Timeline exporter registry: pluggable format hub.

WHY: The CLI and the pipeline need a single lookup to find the right
exporter by name. A central dict makes it trivial to add new formats:
create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["csv"]()``.

RULES:
- Keys match config.EXPORT_FORMATS exactly
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from microvideo_pipeline.formatters.csv_timeline import CSVTimelineFormatter
from microvideo_pipeline.formatters.edl_markers import EDLMarkerFormatter
from microvideo_pipeline.formatters.json_timeline import JSONTimelineFormatter
from microvideo_pipeline.formatters.srt_markers import SRTMarkerFormatter
from microvideo_pipeline.formatters.xml_timeline import XMLTimelineFormatter

if TYPE_CHECKING:
    from microvideo_pipeline.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "json": JSONTimelineFormatter,
    "csv": CSVTimelineFormatter,
    "xml": XMLTimelineFormatter,
    "srt": SRTMarkerFormatter,
    "edl": EDLMarkerFormatter,
}
