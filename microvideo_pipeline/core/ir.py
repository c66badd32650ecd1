"""Intermediate representation dataclasses for the micro-video pipeline.

WHY: The four stages (load analysis, alignment, sync, render) each
produce the next stage's input. Loosely typed dicts invite nested
optional lookups and ad hoc re-validation everywhere. Frozen dataclasses
give every entity one explicit shape, validated once at the boundary
(core/inputs.py) and then trusted downstream.

HOW: Records are grouped by the stage that produces them:
  Inputs       - TranscriptSegment, PhaseScript, NarrationAudio,
                 AudioMarker, Keypoint, ContentAnalysis, LearnerProfile,
                 RenderOptions, PipelineJob
  Load         - LoadComponent, LoadTotal, ManagementStrategy,
                 CognitiveLoadProfile
  Alignment    - PhaseTiming, SegmentAssignment, AnchorPoint,
                 TransitionPoint, AlignmentResult
  Sync         - Keyframe, SyncPoint, TimelineEvent, SyncValidation,
                 SyncResult
  Render       - Overlay, VideoSegment, QualityReport, FinalComposite

RULES:
- Every record is frozen; stages return new records, never mutate
- Collections are tuples; mappings are treated as read-only
- All times are float seconds except TranscriptSegment.start_ms/end_ms
- Phase names are the strings in config.PHASE_ORDER
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TranscriptSegment:
    """One timestamped transcript segment from the speech-to-text collaborator.

    RULES:
    - start_ms < end_ms (enforced at the boundary)
    - confidence and importance are in [0, 1]
    - key_phrases are lowercase-insensitive concept hints for alignment
    """

    id: str
    start_ms: int
    end_ms: int
    text: str
    confidence: float = 1.0
    importance: float = 0.5
    key_phrases: Tuple[str, ...] = ()

    @property
    def start_sec(self) -> float:
        return self.start_ms / 1000.0

    @property
    def end_sec(self) -> float:
        return self.end_ms / 1000.0

    @property
    def duration_sec(self) -> float:
        return (self.end_ms - self.start_ms) / 1000.0


@dataclass(frozen=True)
class PhaseScript:
    """Generated narration script for one phase with its target duration."""

    phase: str
    content: str
    target_duration_sec: float
    objectives: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AudioMarker:
    """A pause or emphasis moment inside one phase's narration.

    RULES:
    - kind: "natural_pause" or "audio_emphasis"
    - time_sec is relative to the start of that phase's narration file
    - duration_sec matters for pauses, intensity for emphasis
    """

    kind: str
    time_sec: float
    duration_sec: float = 0.0
    intensity: float = 0.0


@dataclass(frozen=True)
class NarrationAudio:
    """Synthesized narration for one phase with its measured duration."""

    phase: str
    path: str
    duration_sec: float
    markers: Tuple[AudioMarker, ...] = ()


@dataclass(frozen=True)
class Keypoint:
    """A concept worth annotating on screen, classified by Bloom level.

    timestamp is the source-video time of the first mention, or None when
    it could not be located (such keypoints are shown only in the deliver
    phase).
    """

    concept: str
    description: str = ""
    bloom_level: str = "understand"
    importance: float = 0.5
    timestamp: Optional[float] = None


@dataclass(frozen=True)
class ContentAnalysis:
    """Content-analysis summary consumed by the cognitive load analyzer.

    WHY: The upstream LLM collaborator (or core/content.py as a fallback)
    describes the material once; the analyzer then scores it without
    touching raw text.

    RULES:
    - overall_complexity: low / medium / high
    - conceptual_density in [0, 1]
    - vocabulary_complexity and sentence_complexity on a 0–10 scale
    - information_elements: counts keyed by facts/concepts/procedures/principles
    - logical_structure: simple / moderate / complex
    - pace_requirement: slow / moderate / fast
    - memory_load: low / medium / high
    - attention_type: focused / sustained / divided
    """

    overall_complexity: str = "medium"
    conceptual_density: float = 0.5
    abstract_concepts: int = 0
    information_elements: Mapping[str, int] = field(default_factory=dict)
    vocabulary_complexity: float = 5.0
    sentence_complexity: float = 5.0
    logical_structure: str = "moderate"
    novice_friendly: bool = True
    scaffolding_needed: bool = False
    pace_requirement: str = "moderate"
    memory_load: str = "medium"
    attention_type: str = "focused"
    has_examples: bool = False
    has_analogies: bool = False
    has_definitions: bool = False
    dominant_bloom_level: str = "understand"
    subject_area: str = ""


@dataclass(frozen=True)
class LearnerProfile:
    """Learner characteristics that adjust the load scores."""

    experience_level: str = "intermediate"
    preferred_pace: str = "moderate"
    working_memory_capacity: float = 0.7
    metacognitive_support: bool = False
    bloom_preference: Optional[str] = None
    preferred_subjects: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RenderOptions:
    """Per-job switches for the render stage and the timeline exports."""

    quality: str = "medium"
    overlays: bool = True
    load_indicator: bool = False
    alternate_formats: Tuple[str, ...] = ()
    export_formats: Tuple[str, ...] = ("json",)
    render: bool = True


@dataclass(frozen=True)
class PipelineJob:
    """Everything one pipeline run needs, validated and ordered by phase."""

    job_id: str
    video_path: str
    video_duration_sec: float
    transcript: Tuple[TranscriptSegment, ...]
    scripts: Tuple[PhaseScript, ...]
    narration: Tuple[NarrationAudio, ...]
    keypoints: Tuple[Keypoint, ...] = ()
    content_analysis: Optional[ContentAnalysis] = None
    learner: LearnerProfile = field(default_factory=LearnerProfile)
    options: RenderOptions = field(default_factory=RenderOptions)

    def script(self, phase: str) -> PhaseScript:
        return next(s for s in self.scripts if s.phase == phase)

    def narration_for(self, phase: str) -> NarrationAudio:
        return next(n for n in self.narration if n.phase == phase)


# ---------------------------------------------------------------------------
# Cognitive load
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoadComponent:
    """Score, level, and contributing factors for one load type."""

    score: float
    level: str
    factors: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class LoadTotal:
    """Sum of the three component scores (0–3) and its capacity level."""

    score: float
    level: str
    capacity_utilization: int


@dataclass(frozen=True)
class ManagementStrategy:
    """Chosen load-management strategy with concrete actions."""

    name: str
    priority: str
    rationale: str
    actions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CognitiveLoadProfile:
    """Intrinsic / extraneous / germane profile of the instructional content.

    RULES:
    - Each component score is in [0, 1]; total.score is in [0, 3]
    - is_default marks the fallback profile used for unusable input
    """

    intrinsic: LoadComponent
    extraneous: LoadComponent
    germane: LoadComponent
    total: LoadTotal
    strategy: ManagementStrategy
    is_default: bool = False

    def component(self, name: str) -> LoadComponent:
        return getattr(self, name)


# ---------------------------------------------------------------------------
# Alignment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PhaseTiming:
    """Where one phase sits in the source video.

    RULES:
    - Phases are contiguous: end_sec of phase i == start_sec of phase i+1
    - assigned_segments holds TranscriptSegment ids in time order
    - anchor_confidence is the confidence of the anchor that refined this
      phase, or 0.0 when no anchor was used
    """

    phase: str
    start_sec: float
    end_sec: float
    script_duration_sec: float
    assigned_segments: Tuple[str, ...] = ()
    anchor_confidence: float = 0.0

    @property
    def duration_sec(self) -> float:
        return self.end_sec - self.start_sec


@dataclass(frozen=True)
class SegmentAssignment:
    """Transcript segment → phase assignment with its confidence."""

    segment_id: str
    phase: str
    confidence: float
    overlap_sec: float
    timestamp: float


@dataclass(frozen=True)
class AnchorPoint:
    """High-confidence, content-aligned marker used to nudge a boundary."""

    timestamp: float
    phase: str
    confidence: float
    content_alignment: float
    kind: str
    segment_id: str
    objective_match: bool = False


@dataclass(frozen=True)
class TransitionPoint:
    """Characteristics of one phase boundary.

    RULES:
    - suggested_duration_sec is in [1, 4]
    - continuity is the word-overlap ratio of the segments either side
    """

    from_phase: str
    to_phase: str
    timestamp: float
    suggested_duration_sec: float
    continuity: float = 0.0
    pacing_change: bool = False
    visual_change: bool = False
    topic_shift: bool = False
    transition_type: str = "smooth_continuation"


@dataclass(frozen=True)
class AlignmentResult:
    """Complete output of the Timeline Aligner."""

    total_duration_sec: float
    phases: Tuple[PhaseTiming, ...]
    assignments: Tuple[SegmentAssignment, ...] = ()
    unmapped: Tuple[str, ...] = ()
    anchors: Tuple[AnchorPoint, ...] = ()
    transitions: Tuple[TransitionPoint, ...] = ()
    issues: Tuple[str, ...] = ()

    def phase(self, name: str) -> PhaseTiming:
        return next(p for p in self.phases if p.phase == name)


# ---------------------------------------------------------------------------
# Synchronization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Keyframe:
    """A visual keyframe moment inside a phase."""

    phase: str
    timestamp: float
    relative_position: float
    near_anchor: bool = False


@dataclass(frozen=True)
class SyncPoint:
    """Paired (video time, audio time) coordinate.

    RULES:
    - kind: phase_start / phase_end / keyframe_sync
    - audio_time_sec is on the narration track (phases laid end to end)
    - alignment_precision is None unless the point measures one
    """

    kind: str
    video_time_sec: float
    audio_time_sec: float
    phase: str
    confidence: float
    critical: bool
    alignment_precision: Optional[float] = None


@dataclass(frozen=True)
class TimelineEvent:
    """One entry of the synchronized, conflict-free timeline.

    RULES:
    - kind: sync_point / audio_marker / visual_event / merged_event
    - priority: low / medium / high
    - payload is a plain dict so exporters can serialize it directly;
      merged events carry their constituents under "events"
    """

    timestamp_sec: float
    kind: str
    priority: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def phases(self) -> Tuple[str, ...]:
        """Phases this event belongs to (several for merged events)."""
        if self.kind == "merged_event":
            found = []
            for inner in self.payload.get("events", []):
                phase = inner.get("phase")
                if phase and phase not in found:
                    found.append(phase)
            return tuple(found)
        phase = self.payload.get("phase")
        return (phase,) if phase else ()


@dataclass(frozen=True)
class SyncValidation:
    """Timing, coverage, and alignment metrics for the final timeline."""

    issue_ratio: float
    gap_count: int
    overlap_count: int
    coverage: float
    alignment_quality: float
    accuracy: float
    precision_label: str
    issues: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SyncResult:
    """Complete output of the Synchronization Engine."""

    sync_points: Tuple[SyncPoint, ...]
    timeline: Tuple[TimelineEvent, ...]
    keyframes: Tuple[Keyframe, ...]
    validation: SyncValidation
    conflicts_resolved: int = 0
    audio_offsets: Mapping[str, float] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Render
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Overlay:
    """An overlay image and the window (relative to its phase) it is shown in."""

    kind: str
    image_path: str
    start_sec: float
    duration_sec: float
    position: str
    z_index: int

    @property
    def end_sec(self) -> float:
        return self.start_sec + self.duration_sec


@dataclass(frozen=True)
class VideoSegment:
    """Rendered, audio-synchronized clip for one phase."""

    phase: str
    source_range: Tuple[float, float]
    path: str
    overlays: Tuple[Overlay, ...] = ()
    audio_sync_method: str = "direct_overlay"
    issues: Tuple[str, ...] = ()
    duration_sec: float = 0.0


@dataclass(frozen=True)
class QualityReport:
    """Outcome of the post-render checks."""

    checks: Mapping[str, bool]
    issues: Tuple[str, ...]
    recommendations: Tuple[str, ...]
    score: float


@dataclass(frozen=True)
class FinalComposite:
    """Terminal artifact of the pipeline."""

    path: str
    duration_sec: float
    size_bytes: int
    resolution: Tuple[int, int]
    quality_score: float
    issues: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    alternate_formats: Mapping[str, str] = field(default_factory=dict)
