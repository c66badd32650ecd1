"""Tests for the command-line interface (cli.py).

WHY: The CLI is the batch entry point. Exit codes drive shell scripts and
CI jobs, so each failure mode must map to the documented code.

HOW: main() is called with argv lists against manifests written to
tmp_path; rendering is disabled with --no-render so no ffmpeg is needed.
Status output goes to stderr and is captured with capsys.
"""

import json
from unittest.mock import patch

from microvideo_pipeline.cli import build_parser, main


def _write_manifest(tmp_path, manifest, name="job.json"):
    path = tmp_path / name
    path.write_text(json.dumps(manifest), encoding="utf-8")
    return path


class TestParser:

    def test_defaults(self):
        args = build_parser().parse_args(["job.json"])
        assert args.manifests == ["job.json"]
        assert args.output_dir == "."
        assert args.formats is None
        assert not args.no_render
        assert not args.verbose

    def test_several_manifests(self):
        args = build_parser().parse_args(["a.json", "b.json", "--workers", "3", "--no-render"])
        assert args.manifests == ["a.json", "b.json"]
        assert args.workers == 3
        assert args.no_render


class TestMain:

    def test_single_job(self, manifest_dict, tmp_path, capsys):
        manifest = _write_manifest(tmp_path, manifest_dict)
        out = tmp_path / "out"
        code = main([str(manifest), "--output-dir", str(out), "--no-render", "--formats", "json,srt"])
        assert code == 0
        assert (out / "lesson-01-timeline.json").exists()
        assert (out / "lesson-01-timeline.srt").exists()
        assert not (out / "lesson-01-timeline.csv").exists()
        err = capsys.readouterr().err
        assert "Job lesson-01: completed" in err

    def test_batch(self, manifest_dict, tmp_path):
        first = _write_manifest(tmp_path, manifest_dict, "a.json")
        manifest_dict["job_id"] = "lesson-02"
        second = _write_manifest(tmp_path, manifest_dict, "b.json")
        out = tmp_path / "out"
        assert main([str(first), str(second), "--output-dir", str(out), "--no-render"]) == 0
        assert (out / "lesson-02" / "lesson-02-timeline.csv").exists()

    def test_missing_manifest(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.json"), "--output-dir", str(tmp_path)]) == 1
        assert "Manifest not found" in capsys.readouterr().err

    def test_unknown_format(self, manifest_dict, tmp_path, capsys):
        manifest = _write_manifest(tmp_path, manifest_dict)
        assert main([str(manifest), "--output-dir", str(tmp_path), "--formats", "json,pdf"]) == 1
        assert "Unknown format 'pdf'" in capsys.readouterr().err

    def test_invalid_manifest(self, manifest_dict, tmp_path, capsys):
        manifest_dict["scripts"] = manifest_dict["scripts"][:2]
        manifest = _write_manifest(tmp_path, manifest_dict)
        assert main([str(manifest), "--output-dir", str(tmp_path)]) == 1
        assert "Invalid job manifest" in capsys.readouterr().err

    def test_output_path_is_a_file(self, manifest_dict, tmp_path):
        manifest = _write_manifest(tmp_path, manifest_dict)
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        assert main([str(manifest), "--output-dir", str(blocker)]) == 1

    def test_interrupt_cancels_the_running_job(self, manifest_dict, tmp_path, capsys):
        manifest = _write_manifest(tmp_path, manifest_dict)
        with patch("microvideo_pipeline.cli.run_pipeline", side_effect=KeyboardInterrupt) as run:
            assert main([str(manifest), "--output-dir", str(tmp_path), "--no-render"]) == 130
        assert run.call_args.kwargs["cancel_event"].is_set()
        assert "Cancelled by user." in capsys.readouterr().err

    def test_interrupt_cancels_the_batch(self, manifest_dict, tmp_path):
        first = _write_manifest(tmp_path, manifest_dict, "a.json")
        manifest_dict["job_id"] = "lesson-02"
        second = _write_manifest(tmp_path, manifest_dict, "b.json")
        with patch("microvideo_pipeline.cli.BatchRunner") as runner_cls:
            runner_cls.return_value.run.side_effect = KeyboardInterrupt
            assert main([str(first), str(second), "--output-dir", str(tmp_path)]) == 130
        runner_cls.return_value.cancel.assert_called_once()
