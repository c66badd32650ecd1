"""Structured JSON export of the synchronized timeline.

WHY: Downstream tools (review UIs, the request/response layer) consume
the timeline as JSON. A bundled JSON schema pins the document shape so a
change in the engine cannot silently break those consumers.

HOW: Phase windows (video and narration time) come from the
phase_start / phase_end sync points; the timeline, keyframes and
validation are serialized as-is. The document is validated with
jsonschema against sync_timeline_schema.json before it is returned.

RULES:
- Schema validation is mandatory and raises on invalid output
- Numbers are rounded to milliseconds
- Output suffix: "-timeline.json"
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema

from microvideo_pipeline import __version__
from microvideo_pipeline.core.ir import SyncResult
from microvideo_pipeline.formatters.base import BaseFormatter, FormatterOutput

_SCHEMA_PATH = Path(__file__).resolve().parent / "sync_timeline_schema.json"

_CACHED_SCHEMA: Optional[Dict[str, Any]] = None


def _get_schema() -> Dict[str, Any]:
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        with open(_SCHEMA_PATH, encoding="utf-8") as f:
            _CACHED_SCHEMA = json.load(f)
    return _CACHED_SCHEMA


def _ms(value: float) -> float:
    return round(float(value), 3)


def timeline_document(result: SyncResult) -> Dict[str, Any]:
    """Build the export document (unvalidated)."""
    starts = {p.phase: p for p in result.sync_points if p.kind == "phase_start"}
    phases = []
    for point in result.sync_points:
        if point.kind != "phase_end" or point.phase not in starts:
            continue
        start = starts[point.phase]
        phases.append({
            "phase": point.phase,
            "video_start": _ms(start.video_time_sec),
            "video_end": _ms(point.video_time_sec),
            "audio_start": _ms(start.audio_time_sec),
            "audio_end": _ms(point.audio_time_sec),
        })

    validation = result.validation
    return {
        "version": __version__,
        "phases": phases,
        "sync_points": [
            {
                "kind": p.kind,
                "video_time": _ms(p.video_time_sec),
                "audio_time": _ms(p.audio_time_sec),
                "phase": p.phase,
                "confidence": p.confidence,
                "critical": p.critical,
                "alignment_precision": p.alignment_precision,
            }
            for p in result.sync_points
        ],
        "timeline": [
            {
                "timestamp": _ms(e.timestamp_sec),
                "type": e.kind,
                "priority": e.priority,
                "payload": e.payload,
            }
            for e in result.timeline
        ],
        "keyframes": [
            {
                "phase": k.phase,
                "timestamp": _ms(k.timestamp),
                "relative_position": k.relative_position,
                "near_anchor": k.near_anchor,
            }
            for k in result.keyframes
        ],
        "validation": {
            "accuracy": validation.accuracy,
            "precision": validation.precision_label,
            "issue_ratio": validation.issue_ratio,
            "coverage": validation.coverage,
            "alignment_quality": validation.alignment_quality,
            "gaps": validation.gap_count,
            "overlaps": validation.overlap_count,
            "issues": list(validation.issues),
            "conflicts_resolved": result.conflicts_resolved,
        },
    }


class JSONTimelineFormatter(BaseFormatter):
    """Schema-validated JSON document of the whole SyncResult."""

    @property
    def name(self) -> str:
        return "Timeline JSON"

    def format(self, result: SyncResult) -> List[FormatterOutput]:
        """Serialize and validate the timeline.

        Raises:
            jsonschema.ValidationError: If the document does not conform
                to sync_timeline_schema.json.
        """
        document = timeline_document(result)
        jsonschema.validate(instance=document, schema=_get_schema())
        content = json.dumps(document, indent=2, ensure_ascii=False)
        return [FormatterOutput(suffix="-timeline.json", content=content, media_type="application/json")]
