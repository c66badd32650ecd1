"""Unit tests for all timeline exporters.

WHY: Each exporter turns the same SyncResult into a file another tool
opens: a spreadsheet, an NLE, a subtitle player. A malformed file fails
far from the pipeline, usually in front of an editor.

HOW: Tests run every exporter against the sample sync_result fixture:
  - TestRegistry: keys match the configured export formats
  - TestCSV: header and one row per timeline event
  - TestJSON: schema validity, version, phase windows
  - TestXML: xmeml structure and marker count
  - TestEDL: header, reel names, one event per phase
  - TestSRT: numbering, timestamps, non-overlapping cues

RULES:
- Schema validation uses the bundled sync_timeline_schema.json.
- All tests use the sync_result fixture from conftest.py.
"""

import csv
import io
import json
from xml.etree import ElementTree as ET

import pytest

from microvideo_pipeline import __version__, config
from microvideo_pipeline.formatters import FORMATTERS
from microvideo_pipeline.formatters.base import frames_to_timecode, seconds_to_frames
from microvideo_pipeline.formatters.csv_timeline import CSV_HEADER, CSVTimelineFormatter
from microvideo_pipeline.formatters.edl_markers import EDLMarkerFormatter, reel_name
from microvideo_pipeline.formatters.json_timeline import JSONTimelineFormatter, timeline_document
from microvideo_pipeline.formatters.srt_markers import SRTMarkerFormatter, srt_timestamp
from microvideo_pipeline.formatters.xml_timeline import XMLTimelineFormatter


def _single(formatter, result):
    outputs = formatter.format(result)
    assert len(outputs) == 1
    return outputs[0]


class TestRegistry:

    def test_keys_match_export_formats(self):
        assert set(FORMATTERS) == set(config.EXPORT_FORMATS)

    @pytest.mark.parametrize("key", sorted(FORMATTERS))
    def test_every_formatter_produces_text(self, key, sync_result):
        output = _single(FORMATTERS[key](), sync_result)
        assert output.suffix.startswith("-timeline.")
        assert output.content


class TestTimecodes:

    def test_frames(self):
        assert seconds_to_frames(2.0, 30.0) == 60
        assert seconds_to_frames(-1.0, 30.0) == 0

    def test_timecode(self):
        assert frames_to_timecode(30 * 3661 + 5, 30.0) == "01:01:01:05"


class TestCSV:

    def test_header_and_rows(self, sync_result):
        output = _single(CSVTimelineFormatter(), sync_result)
        rows = list(csv.reader(io.StringIO(output.content)))
        assert tuple(rows[0]) == CSV_HEADER
        assert len(rows) - 1 == len(sync_result.timeline)
        assert output.media_type == "text/csv"

    def test_timestamps_are_sorted(self, sync_result):
        output = _single(CSVTimelineFormatter(), sync_result)
        rows = list(csv.DictReader(io.StringIO(output.content)))
        stamps = [float(r["Timestamp"]) for r in rows]
        assert stamps == sorted(stamps)


class TestJSON:

    def test_document_is_schema_valid(self, sync_result):
        output = _single(JSONTimelineFormatter(), sync_result)
        document = json.loads(output.content)
        assert document["version"] == __version__
        assert len(document["timeline"]) == len(sync_result.timeline)

    def test_phase_windows(self, sync_result):
        document = timeline_document(sync_result)
        assert [p["phase"] for p in document["phases"]] == list(config.PHASE_ORDER)
        assert document["phases"][0]["video_start"] == 0.0
        assert document["phases"][-1]["video_end"] == pytest.approx(240.0)

    def test_validation_block(self, sync_result):
        document = timeline_document(sync_result)
        assert document["validation"]["precision"] == sync_result.validation.precision_label
        assert document["validation"]["conflicts_resolved"] == sync_result.conflicts_resolved


class TestXML:

    def test_structure(self, sync_result):
        output = _single(XMLTimelineFormatter(), sync_result)
        assert output.content.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<!DOCTYPE xmeml>')
        body = output.content.split("\n", 2)[2]
        root = ET.fromstring(body)
        assert root.tag == "xmeml"
        assert root.get("version") == "4"
        sequence = root.find("sequence")
        assert sequence.get("id") == "sequence-1"
        assert sequence.findtext("rate/timebase") == "30"

    def test_marker_count(self, sync_result):
        root = XMLTimelineFormatter().build(sync_result)
        markers = root.findall("sequence/marker")
        assert len(markers) == 4 + len(sync_result.timeline)
        for marker in markers:
            assert int(marker.findtext("out")) > int(marker.findtext("in"))


class TestEDL:

    def test_header(self, sync_result):
        output = _single(EDLMarkerFormatter(title="Lesson 01"), sync_result)
        lines = output.content.splitlines()
        assert lines[0] == "TITLE: LESSON 01"
        assert lines[1] == "FCM: NON-DROP FRAME"

    def test_one_event_per_phase(self, sync_result):
        output = _single(EDLMarkerFormatter(), sync_result)
        events = [line for line in output.content.splitlines() if line[:3].isdigit()]
        assert len(events) == 4
        assert events[0].startswith("001  MICROVID V     C        00:00:00:00")

    def test_reel_name(self):
        assert reel_name("lesson-01") == "LESSON01"
        assert reel_name("ab") == "AB      "
        assert reel_name("---") == "AX      "


class TestSRT:

    def test_timestamp(self):
        assert srt_timestamp(3723.456) == "01:02:03,456"
        assert srt_timestamp(0) == "00:00:00,000"

    def test_numbering_and_text(self, sync_result):
        output = _single(SRTMarkerFormatter(), sync_result)
        blocks = [b for b in output.content.split("\n\n") if b.strip()]
        assert len(blocks) == len(sync_result.timeline)
        for number, block in enumerate(blocks, start=1):
            lines = block.splitlines()
            assert lines[0] == str(number)
            assert " --> " in lines[1]
            assert lines[2].startswith("[")

    def test_cues_do_not_overlap(self, sync_result):
        output = _single(SRTMarkerFormatter(cue_sec=60.0), sync_result)
        blocks = [b.splitlines() for b in output.content.split("\n\n") if b.strip()]
        for current, following in zip(blocks, blocks[1:]):
            end = current[1].split(" --> ")[1]
            start = following[1].split(" --> ")[0]
            assert end <= start
