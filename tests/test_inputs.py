"""Tests for job manifest validation (core/inputs.py).

WHY: The manifest is the only untrusted input. Everything after
load_job() assumes four scripts, four narration tracks, ordered segments
and known format names; a manifest that slips through with a missing
phase fails much later inside the aligner with a confusing message.

HOW: The manifest_dict fixture is mutated one field at a time and fed to
load_job(); failures must surface as ValidationError with a problem list.
  - TestLoadJob: happy path and record conversion
  - TestManifestProblems: each validation rule
  - TestLoadJobFile: JSON decoding errors
"""

import json

import pytest

from microvideo_pipeline.core.inputs import load_job, load_job_file
from microvideo_pipeline.errors import ValidationError


class TestLoadJob:

    def test_sample_manifest(self, job):
        assert job.job_id == "lesson-01"
        assert job.video_duration_sec == 240.0
        assert [s.phase for s in job.scripts] == ["prepare", "initiate", "deliver", "end"]
        assert job.options.export_formats == ("json", "csv")
        assert job.options.render is False
        assert job.transcript[3].key_phrases == ("chlorophyll",)

    def test_sections_are_sorted(self, manifest_dict):
        manifest_dict["scripts"].reverse()
        manifest_dict["narration"].reverse()
        manifest_dict["transcript"].reverse()
        job = load_job(manifest_dict)
        assert [s.phase for s in job.scripts] == ["prepare", "initiate", "deliver", "end"]
        assert [n.phase for n in job.narration] == ["prepare", "initiate", "deliver", "end"]
        assert [s.id for s in job.transcript] == ["seg-1", "seg-2", "seg-3", "seg-4", "seg-5", "seg-6"]

    def test_generated_job_id(self, manifest_dict):
        del manifest_dict["job_id"]
        assert len(load_job(manifest_dict).job_id) == 12

    def test_markers_are_sorted(self, manifest_dict):
        manifest_dict["narration"][0]["markers"] = [
            {"kind": "audio_emphasis", "time_sec": 20.0, "intensity": 0.8},
            {"kind": "natural_pause", "time_sec": 5.0, "duration_sec": 0.6},
        ]
        markers = load_job(manifest_dict).narration[0].markers
        assert [m.kind for m in markers] == ["natural_pause", "audio_emphasis"]

    def test_content_analysis_and_learner(self, manifest_dict):
        manifest_dict["content_analysis"] = {"overall_complexity": "high", "has_examples": True}
        manifest_dict["learner"] = {"experience_level": "novice", "preferred_subjects": ["biology"]}
        job = load_job(manifest_dict)
        assert job.content_analysis.overall_complexity == "high"
        assert job.content_analysis.has_examples
        assert job.learner.experience_level == "novice"
        assert job.learner.preferred_subjects == ("biology",)

    def test_bloom_level_is_normalized(self, manifest_dict):
        manifest_dict["keypoints"][0]["bloom_level"] = " Apply "
        assert load_job(manifest_dict).keypoints[0].bloom_level == "apply"


class TestManifestProblems:

    def _problems(self, manifest):
        with pytest.raises(ValidationError) as exc_info:
            load_job(manifest)
        assert exc_info.value.problems
        return " ".join(exc_info.value.problems)

    def test_missing_phase_script(self, manifest_dict):
        manifest_dict["scripts"] = manifest_dict["scripts"][:3]
        assert "scripts missing phase(s): end" in self._problems(manifest_dict)

    def test_duplicate_narration(self, manifest_dict):
        manifest_dict["narration"].append(dict(manifest_dict["narration"][0]))
        assert "narration repeat phase(s): prepare" in self._problems(manifest_dict)

    def test_start_not_before_end(self, manifest_dict):
        manifest_dict["transcript"][0]["end_ms"] = 0
        assert "must be less than end_ms" in self._problems(manifest_dict)

    def test_duplicate_segment_ids(self, manifest_dict):
        manifest_dict["transcript"][1]["id"] = "seg-1"
        assert "unique" in self._problems(manifest_dict)

    def test_unknown_export_format(self, manifest_dict):
        manifest_dict["options"]["export_formats"] = ["json", "pdf"]
        assert "unknown export format(s): pdf" in self._problems(manifest_dict)

    def test_unknown_alternate_format(self, manifest_dict):
        manifest_dict["options"]["alternate_formats"] = ["avi"]
        assert "unknown alternate format(s): avi" in self._problems(manifest_dict)

    def test_unknown_bloom_level(self, manifest_dict):
        manifest_dict["keypoints"][0]["bloom_level"] = "memorize"
        assert "unknown bloom level" in self._problems(manifest_dict)

    def test_unknown_phase(self, manifest_dict):
        manifest_dict["scripts"][0]["phase"] = "warmup"
        assert "scripts.0.phase" in self._problems(manifest_dict)

    def test_marker_beyond_narration(self, manifest_dict):
        manifest_dict["narration"][3]["markers"] = [{"kind": "natural_pause", "time_sec": 30.0}]
        assert "beyond the narration end" in self._problems(manifest_dict)

    def test_non_positive_duration(self, manifest_dict):
        manifest_dict["video"]["duration_sec"] = 0
        assert "video.duration_sec" in self._problems(manifest_dict)

    def test_every_problem_is_reported(self, manifest_dict):
        manifest_dict["video"]["duration_sec"] = -1
        manifest_dict["options"]["export_formats"] = ["pdf"]
        with pytest.raises(ValidationError) as exc_info:
            load_job(manifest_dict)
        assert len(exc_info.value.problems) == 2
        assert str(exc_info.value).startswith("Invalid job manifest: ")

    def test_validation_error_is_a_value_error(self, manifest_dict):
        del manifest_dict["video"]
        with pytest.raises(ValueError):
            load_job(manifest_dict)


class TestLoadJobFile:

    def test_reads_json(self, manifest_dict, tmp_path):
        path = tmp_path / "job.json"
        path.write_text(json.dumps(manifest_dict), encoding="utf-8")
        assert load_job_file(path).job_id == "lesson-01"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "job.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValidationError) as exc_info:
            load_job_file(path)
        assert "not valid JSON" in str(exc_info.value)

    def test_non_object_document(self, tmp_path):
        path = tmp_path / "job.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with pytest.raises(ValidationError) as exc_info:
            load_job_file(path)
        assert "must be a JSON object" in str(exc_info.value)
