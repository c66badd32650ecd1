"""Pydantic boundary models for job manifests.

WHY: Job manifests arrive as loosely typed JSON from the upstream
collaborators (transcription, script generation, TTS). Validating them
once at the boundary means the analyzer, aligner, engine, and renderer
can trust their inputs and work with frozen dataclasses instead of
re-checking dictionaries at every step.

HOW: One pydantic model per manifest section, each with
Field(description=...) and field/model validators for the cross-field
rules. load_job() validates a dict and converts it to a PipelineJob;
every pydantic error is flattened into a "location: message" problem
string on a single errors.ValidationError.

RULES:
- Exactly one script and one narration entry per phase in PHASE_ORDER
- Transcript segments need start_ms < end_ms
- target_duration_sec and narration duration_sec must be positive
- Unknown alternate/export format names are rejected here, not later
- Python 3.9+ compatible (Optional/List from typing in model fields)
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from microvideo_pipeline import config
from microvideo_pipeline.core.ir import (
    AudioMarker,
    ContentAnalysis,
    Keypoint,
    LearnerProfile,
    NarrationAudio,
    PhaseScript,
    PipelineJob,
    RenderOptions,
    TranscriptSegment,
)
from microvideo_pipeline.errors import ValidationError

logger = logging.getLogger(__name__)

PhaseName = Literal["prepare", "initiate", "deliver", "end"]


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class VideoSourceModel(BaseModel):
    """The long-form source video."""

    path: str = Field(description="Path to the source video file.")
    duration_sec: float = Field(gt=0, description="Measured duration of the source video in seconds.")


class TranscriptSegmentModel(BaseModel):
    """One timestamped transcript segment."""

    id: str = Field(description="Stable segment identifier.")
    start_ms: int = Field(ge=0, description="Segment start in milliseconds.")
    end_ms: int = Field(ge=0, description="Segment end in milliseconds.")
    text: str = Field(description="Spoken text of the segment.")
    confidence: float = Field(default=1.0, ge=0, le=1, description="Recognition confidence.")
    importance: float = Field(default=0.5, ge=0, le=1, description="Pedagogical importance estimate.")
    key_phrases: List[str] = Field(default_factory=list, description="Key phrases detected in the segment.")

    @model_validator(mode="after")
    def _start_before_end(self) -> "TranscriptSegmentModel":
        if self.start_ms >= self.end_ms:
            raise ValueError(
                "start_ms ({}) must be less than end_ms ({})".format(self.start_ms, self.end_ms)
            )
        return self


class PhaseScriptModel(BaseModel):
    """Narration script for one phase."""

    phase: PhaseName = Field(description="Phase name.")
    content: str = Field(default="", description="Narration script text.")
    target_duration_sec: float = Field(gt=0, description="Target phase duration in seconds.")
    objectives: List[str] = Field(default_factory=list, description="Learning objectives for the phase.")


class AudioMarkerModel(BaseModel):
    """A pause or emphasis detected in the narration audio."""

    kind: Literal["natural_pause", "audio_emphasis"] = Field(description="Marker type.")
    time_sec: float = Field(ge=0, description="Offset from the start of the phase narration.")
    duration_sec: float = Field(default=0.0, ge=0, description="Pause length in seconds.")
    intensity: float = Field(default=0.0, ge=0, le=1, description="Emphasis intensity.")


class NarrationModel(BaseModel):
    """Synthesized narration audio for one phase."""

    phase: PhaseName = Field(description="Phase name.")
    path: str = Field(description="Path to the narration audio file.")
    duration_sec: float = Field(gt=0, description="Measured audio duration in seconds.")
    markers: List[AudioMarkerModel] = Field(default_factory=list, description="Optional audio markers.")

    @model_validator(mode="after")
    def _markers_within_audio(self) -> "NarrationModel":
        for marker in self.markers:
            if marker.time_sec > self.duration_sec:
                raise ValueError(
                    "marker at {}s lies beyond the narration end ({}s)".format(marker.time_sec, self.duration_sec)
                )
        return self


class KeypointModel(BaseModel):
    """A concept to annotate on screen."""

    concept: str = Field(description="Short concept label shown in the overlay.")
    description: str = Field(default="", description="Longer explanation.")
    bloom_level: str = Field(default="understand", description="Bloom taxonomy level.")
    importance: float = Field(default=0.5, ge=0, le=1, description="Relative importance.")
    timestamp: Optional[float] = Field(default=None, ge=0, description="Source-video time, if known.")

    @field_validator("bloom_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in config.BLOOM_LEVELS:
            raise ValueError("unknown bloom level {!r}".format(value))
        return value


class ContentAnalysisModel(BaseModel):
    """Content-analysis summary from the upstream analysis collaborator."""

    overall_complexity: Literal["low", "medium", "high"] = Field(default="medium", description="Complexity category.")
    conceptual_density: float = Field(default=0.5, ge=0, le=1, description="Concepts per unit of content.")
    abstract_concepts: int = Field(default=0, ge=0, description="Number of abstract concepts.")
    information_elements: Dict[str, int] = Field(
        default_factory=dict, description="Counts by type: facts, concepts, procedures, principles."
    )
    vocabulary_complexity: float = Field(default=5.0, ge=0, le=10, description="Vocabulary complexity 0-10.")
    sentence_complexity: float = Field(default=5.0, ge=0, le=10, description="Sentence complexity 0-10.")
    logical_structure: Literal["simple", "moderate", "complex"] = Field(default="moderate", description="Structure.")
    novice_friendly: bool = Field(default=True, description="Suitable for novices without support.")
    scaffolding_needed: bool = Field(default=False, description="Learners need scaffolding.")
    pace_requirement: Literal["slow", "moderate", "fast"] = Field(default="moderate", description="Required pace.")
    memory_load: Literal["low", "medium", "high"] = Field(default="medium", description="Working-memory demand.")
    attention_type: Literal["focused", "sustained", "divided"] = Field(default="focused", description="Attention.")
    has_examples: bool = Field(default=False, description="Content includes worked examples.")
    has_analogies: bool = Field(default=False, description="Content includes analogies.")
    has_definitions: bool = Field(default=False, description="Content includes definitions.")
    dominant_bloom_level: str = Field(default="understand", description="Most frequent Bloom level.")
    subject_area: str = Field(default="", description="Subject label.")


class LearnerProfileModel(BaseModel):
    """Target learner characteristics."""

    experience_level: Literal["novice", "beginner", "intermediate", "advanced", "expert"] = Field(
        default="intermediate", description="Prior expertise."
    )
    preferred_pace: Literal["slow", "moderate", "fast"] = Field(default="moderate", description="Pace preference.")
    working_memory_capacity: float = Field(default=0.7, ge=0, le=1, description="Relative capacity.")
    metacognitive_support: bool = Field(default=False, description="Learner benefits from reflection prompts.")
    bloom_preference: Optional[str] = Field(default=None, description="Preferred Bloom level, if any.")
    preferred_subjects: List[str] = Field(default_factory=list, description="Subjects of interest.")


class RenderOptionsModel(BaseModel):
    """Rendering and export switches."""

    quality: Literal["high", "medium", "low"] = Field(default="medium", description="Segment encode quality.")
    overlays: bool = Field(default=True, description="Burn phase labels and keypoint overlays.")
    load_indicator: bool = Field(default=False, description="Show the cognitive load indicator.")
    alternate_formats: List[str] = Field(default_factory=list, description="Extra containers: webm, mov.")
    export_formats: List[str] = Field(default_factory=lambda: ["json"], description="Timeline export formats.")
    render: bool = Field(default=True, description="Run the Segment Renderer.")

    @field_validator("alternate_formats")
    @classmethod
    def _known_alternates(cls, value: List[str]) -> List[str]:
        unknown = [v for v in value if v not in config.ALTERNATE_FORMATS]
        if unknown:
            raise ValueError("unknown alternate format(s): {}".format(", ".join(unknown)))
        return value

    @field_validator("export_formats")
    @classmethod
    def _known_exports(cls, value: List[str]) -> List[str]:
        unknown = [v for v in value if v not in config.EXPORT_FORMATS]
        if unknown:
            raise ValueError("unknown export format(s): {}".format(", ".join(unknown)))
        return value


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


class JobManifest(BaseModel):
    """A complete job: source video, transcript, scripts, narration, options."""

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12], description="Job identifier.")
    video: VideoSourceModel = Field(description="Source video.")
    transcript: List[TranscriptSegmentModel] = Field(default_factory=list, description="Transcript segments.")
    scripts: List[PhaseScriptModel] = Field(description="One script per phase.")
    narration: List[NarrationModel] = Field(description="One narration track per phase.")
    keypoints: List[KeypointModel] = Field(default_factory=list, description="Keypoints to annotate.")
    content_analysis: Optional[ContentAnalysisModel] = Field(default=None, description="Content-analysis summary.")
    learner: LearnerProfileModel = Field(default_factory=LearnerProfileModel, description="Learner profile.")
    options: RenderOptionsModel = Field(default_factory=RenderOptionsModel, description="Render options.")

    @model_validator(mode="after")
    def _one_entry_per_phase(self) -> "JobManifest":
        for section in ("scripts", "narration"):
            phases = [item.phase for item in getattr(self, section)]
            missing = [p for p in config.PHASE_ORDER if p not in phases]
            duplicated = sorted({p for p in phases if phases.count(p) > 1})
            if missing:
                raise ValueError("{} missing phase(s): {}".format(section, ", ".join(missing)))
            if duplicated:
                raise ValueError("{} repeat phase(s): {}".format(section, ", ".join(duplicated)))
        ids = [seg.id for seg in self.transcript]
        if len(ids) != len(set(ids)):
            raise ValueError("transcript segment ids must be unique")
        return self

    def to_job(self) -> PipelineJob:
        """Convert the validated manifest into frozen pipeline records."""
        order = {phase: i for i, phase in enumerate(config.PHASE_ORDER)}
        return PipelineJob(
            job_id=self.job_id,
            video_path=self.video.path,
            video_duration_sec=self.video.duration_sec,
            transcript=tuple(
                TranscriptSegment(
                    id=s.id,
                    start_ms=s.start_ms,
                    end_ms=s.end_ms,
                    text=s.text,
                    confidence=s.confidence,
                    importance=s.importance,
                    key_phrases=tuple(s.key_phrases),
                )
                for s in sorted(self.transcript, key=lambda s: (s.start_ms, s.end_ms))
            ),
            scripts=tuple(
                PhaseScript(s.phase, s.content, s.target_duration_sec, tuple(s.objectives))
                for s in sorted(self.scripts, key=lambda s: order[s.phase])
            ),
            narration=tuple(
                NarrationAudio(
                    phase=n.phase,
                    path=n.path,
                    duration_sec=n.duration_sec,
                    markers=tuple(
                        AudioMarker(m.kind, m.time_sec, m.duration_sec, m.intensity)
                        for m in sorted(n.markers, key=lambda m: m.time_sec)
                    ),
                )
                for n in sorted(self.narration, key=lambda n: order[n.phase])
            ),
            keypoints=tuple(
                Keypoint(k.concept, k.description, k.bloom_level, k.importance, k.timestamp)
                for k in self.keypoints
            ),
            content_analysis=(
                ContentAnalysis(**self.content_analysis.model_dump()) if self.content_analysis else None
            ),
            learner=LearnerProfile(
                experience_level=self.learner.experience_level,
                preferred_pace=self.learner.preferred_pace,
                working_memory_capacity=self.learner.working_memory_capacity,
                metacognitive_support=self.learner.metacognitive_support,
                bloom_preference=self.learner.bloom_preference,
                preferred_subjects=tuple(self.learner.preferred_subjects),
            ),
            options=RenderOptions(
                quality=self.options.quality,
                overlays=self.options.overlays,
                load_indicator=self.options.load_indicator,
                alternate_formats=tuple(self.options.alternate_formats),
                export_formats=tuple(self.options.export_formats),
                render=self.options.render,
            ),
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _problems(err: PydanticValidationError) -> List[str]:
    problems = []
    for item in err.errors():
        location = ".".join(str(part) for part in item["loc"]) or "manifest"
        problems.append("{}: {}".format(location, item["msg"]))
    return problems


def load_job(data: Mapping[str, Any]) -> PipelineJob:
    """Validate a manifest mapping and return a PipelineJob.

    Raises:
        ValidationError: With one problem string per failed check.
    """
    try:
        manifest = JobManifest.model_validate(dict(data))
    except PydanticValidationError as err:
        raise ValidationError("Invalid job manifest", _problems(err)) from err
    job = manifest.to_job()
    logger.debug("Loaded job %s (%d segments)", job.job_id, len(job.transcript))
    return job


def load_job_file(path: Path) -> PipelineJob:
    """Read a JSON manifest from disk and validate it."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as err:
        raise ValidationError("Manifest {} is not valid JSON".format(path), [str(err)]) from err
    if not isinstance(data, dict):
        raise ValidationError("Manifest {} must be a JSON object".format(path))
    return load_job(data)
