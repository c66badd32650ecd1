"""Shared test fixtures for the microvideo_pipeline test suite.

WHY: Nearly every module consumes the same four-phase job: a 240-second
source video, its transcript, one script and one narration track per
phase. Centralizing that sample here keeps the expected numbers (phase
windows, audio offsets) consistent across the whole suite.

HOW: Plain constant dicts mirror a JSON job manifest. Fixtures build the
manifest, the validated PipelineJob, and the frozen records the stages
exchange (scripts, transcript, narration, alignment, sync result).

RULES:
- Script durations are 30/40/120/20s over a 240s video, so the
  proportional windows are 34.29/45.71/137.14/22.86s.
- Transcript importance stays <= 0.6, so no anchor moves a boundary and
  the aligned windows equal the proportional ones.
- Narration durations are fixed: prepare 32s, initiate 44s, deliver
  140s, end 21s (audio offsets 0/32/76/216).
"""

import copy
from typing import Any, Dict, List

import pytest

from microvideo_pipeline.core.alignment import TimelineAligner
from microvideo_pipeline.core.inputs import load_job
from microvideo_pipeline.core.ir import (
    ContentAnalysis,
    LearnerProfile,
    NarrationAudio,
    PhaseScript,
    TranscriptSegment,
)
from microvideo_pipeline.core.sync import SyncEngine


VIDEO_DURATION_SEC = 240.0


# ---------------------------------------------------------------------------
# Sample manifest sections
# ---------------------------------------------------------------------------

SAMPLE_SEGMENTS: List[Dict[str, Any]] = [
    {"id": "seg-1", "start_ms": 0,      "end_ms": 12000,  "confidence": 0.95, "importance": 0.5,
     "text": "Welcome to today's introduction to photosynthesis."},
    {"id": "seg-2", "start_ms": 12000,  "end_ms": 30000,  "confidence": 0.92, "importance": 0.4,
     "text": "Have you ever wondered how plants make their own food?"},
    {"id": "seg-3", "start_ms": 36000,  "end_ms": 75000,  "confidence": 0.9,  "importance": 0.6,
     "text": "Our goal today is that you will learn how plants convert light energy into chemical energy."},
    {"id": "seg-4", "start_ms": 82000,  "end_ms": 140000, "confidence": 0.93, "importance": 0.6,
     "text": "Now the first important concept is chlorophyll, the pigment that captures light.",
     "key_phrases": ["chlorophyll"]},
    {"id": "seg-5", "start_ms": 140000, "end_ms": 210000, "confidence": 0.91, "importance": 0.5,
     "text": "For example, a leaf in sunlight produces glucose and releases oxygen."},
    {"id": "seg-6", "start_ms": 219000, "end_ms": 238000, "confidence": 0.94, "importance": 0.5,
     "text": "In summary, remember that light energy becomes chemical energy stored in glucose."},
]

SAMPLE_SCRIPTS: List[Dict[str, Any]] = [
    {"phase": "prepare", "target_duration_sec": 30.0,
     "content": "Welcome. Today we look at how plants make food from light."},
    {"phase": "initiate", "target_duration_sec": 40.0,
     "content": "By the end you will explain how light energy becomes chemical energy.",
     "objectives": ["explain photosynthesis"]},
    {"phase": "deliver", "target_duration_sec": 120.0,
     "content": "Chlorophyll captures light. For example, a leaf produces glucose and oxygen."},
    {"phase": "end", "target_duration_sec": 20.0,
     "content": "In summary, light energy is stored as chemical energy in glucose."},
]

SAMPLE_NARRATION: List[Dict[str, Any]] = [
    {"phase": "prepare",  "path": "audio/prepare.wav",  "duration_sec": 32.0},
    {"phase": "initiate", "path": "audio/initiate.wav", "duration_sec": 44.0},
    {"phase": "deliver",  "path": "audio/deliver.wav",  "duration_sec": 140.0},
    {"phase": "end",      "path": "audio/end.wav",      "duration_sec": 21.0},
]

SAMPLE_KEYPOINTS: List[Dict[str, Any]] = [
    {"concept": "chlorophyll", "description": "Green pigment that absorbs light",
     "bloom_level": "remember", "importance": 0.9},
]


# ---------------------------------------------------------------------------
# Manifest and job fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def manifest_dict() -> Dict[str, Any]:
    """A complete, valid job manifest as it would arrive in JSON."""
    return copy.deepcopy({
        "job_id": "lesson-01",
        "video": {"path": "source.mp4", "duration_sec": VIDEO_DURATION_SEC},
        "transcript": SAMPLE_SEGMENTS,
        "scripts": SAMPLE_SCRIPTS,
        "narration": SAMPLE_NARRATION,
        "keypoints": SAMPLE_KEYPOINTS,
        "options": {"export_formats": ["json", "csv"], "render": False},
    })


@pytest.fixture
def job(manifest_dict):
    """The sample manifest validated into a PipelineJob."""
    return load_job(manifest_dict)


@pytest.fixture
def transcript():
    return tuple(
        TranscriptSegment(
            id=s["id"],
            start_ms=s["start_ms"],
            end_ms=s["end_ms"],
            text=s["text"],
            confidence=s["confidence"],
            importance=s["importance"],
            key_phrases=tuple(s.get("key_phrases", ())),
        )
        for s in SAMPLE_SEGMENTS
    )


@pytest.fixture
def scripts():
    return tuple(
        PhaseScript(s["phase"], s["content"], s["target_duration_sec"], tuple(s.get("objectives", ())))
        for s in SAMPLE_SCRIPTS
    )


@pytest.fixture
def narration():
    return tuple(NarrationAudio(n["phase"], n["path"], n["duration_sec"]) for n in SAMPLE_NARRATION)


# ---------------------------------------------------------------------------
# Cognitive load inputs
# ---------------------------------------------------------------------------


@pytest.fixture
def content_analysis():
    """A moderately demanding lesson with examples and definitions."""
    return ContentAnalysis(
        overall_complexity="medium",
        conceptual_density=0.5,
        abstract_concepts=3,
        information_elements={"facts": 4, "concepts": 3, "procedures": 1, "principles": 1},
        vocabulary_complexity=5.0,
        sentence_complexity=4.0,
        logical_structure="moderate",
        has_examples=True,
        has_definitions=True,
        dominant_bloom_level="understand",
        subject_area="biology",
    )


@pytest.fixture
def learner():
    return LearnerProfile(experience_level="intermediate", preferred_pace="moderate")


# ---------------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------------


@pytest.fixture
def alignment(scripts, transcript):
    """Proportional alignment of the sample transcript over 240s."""
    return TimelineAligner(reweight=False).align(scripts, transcript, VIDEO_DURATION_SEC)


@pytest.fixture
def sync_result(alignment, narration):
    return SyncEngine().synchronize(alignment, narration)
