"""Tunable constants, phase tables, and .env loading.

WHY: The scoring heuristics, alignment rules, sync tolerances, and render
thresholds are all product decisions expressed as numbers. Keeping them
here as named, documented constants (instead of literals buried in the
algorithms) lets them be tuned and tested independently of pipeline
control flow.

HOW: python-dotenv loads the .env file on import. Plain constants are
module-level dicts, tuples, and floats. The reconciliation bands and
quality thresholds are grouped into frozen dataclasses whose defaults can
be overridden via environment variables and which callers may inject.

RULES:
- PHASE_ORDER is the single source of truth for phase ordering
- Every weight, threshold, and band edge used by core/ or render/ lives here
- Environment overrides are parsed by _env_float / _env_int / _env_list
- Nothing in this module performs I/O beyond reading the environment
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Tuple

from dotenv import load_dotenv

# Load .env from the project root (where the pipeline is run from)
load_dotenv()


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, falling back to *default*."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as err:
        raise ValueError("{} must be a number, got {!r}".format(name, raw)) from err


def _env_int(name: str, default: int) -> int:
    """Read an int from the environment, falling back to *default*."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError("{} must be an integer, got {!r}".format(name, raw)) from err


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Read a comma-separated list from the environment."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

PHASE_ORDER: Tuple[str, ...] = ("prepare", "initiate", "deliver", "end")
"""The four CLT-bLM phases in playback order."""

PHASE_DISPLAY_NAMES: Dict[str, str] = {
    "prepare": "Introduction",
    "initiate": "Learning Goals",
    "deliver": "Main Content",
    "end": "Summary",
}

REQUIRED_PHASES: Tuple[str, ...] = _env_list("REQUIRED_PHASES", ("prepare", "deliver"))
"""Phases whose base cut must succeed for assembly to proceed."""

# ---------------------------------------------------------------------------
# Cognitive load: level bands and strategy thresholds
# ---------------------------------------------------------------------------

LOAD_LEVEL_BANDS: Tuple[Tuple[float, str], ...] = (
    (0.3, "low"),
    (0.6, "moderate"),
    (0.8, "high"),
)
"""Upper bounds (exclusive) for each level; anything above is very_high."""

LOAD_LEVEL_TOP = "very_high"

DEFAULT_LOAD_SCORE = 0.5
"""Score assigned to every component when content analysis is unusable."""

STRATEGY_EXTRANEOUS_THRESHOLD = 0.6
STRATEGY_INTRINSIC_THRESHOLD = 0.7
STRATEGY_GERMANE_THRESHOLD = 0.4

# ---------------------------------------------------------------------------
# Cognitive load: intrinsic factors
# ---------------------------------------------------------------------------

INTRINSIC_BASE = 0.5
COMPLEXITY_SCORES: Dict[str, float] = {"low": 0.2, "medium": 0.5, "high": 0.8}
INTRINSIC_WEIGHTS: Dict[str, float] = {
    "content_complexity": 0.3,
    "conceptual_density": 0.25,
    "abstract_concepts": 0.2,
    "element_complexity": 0.15,
}
ABSTRACT_CONCEPT_SCALE = 10.0
"""Abstract-concept count that maps to a factor of 1.0."""

ELEMENT_COMPLEXITY: Dict[str, float] = {
    "facts": 0.2,
    "concepts": 0.4,
    "procedures": 0.6,
    "principles": 0.8,
}
EMPTY_ELEMENT_COMPLEXITY = 0.3

EXPERTISE_MULTIPLIERS: Dict[str, float] = {
    "novice": 1.3,
    "beginner": 1.2,
    "intermediate": 1.0,
    "advanced": 0.8,
    "expert": 0.6,
}

# ---------------------------------------------------------------------------
# Cognitive load: extraneous factors
# ---------------------------------------------------------------------------

EXTRANEOUS_BASE = 0.3
EXTRANEOUS_WEIGHTS: Dict[str, float] = {
    "technical_vocabulary": 0.2,
    "sentence_complexity": 0.15,
    "logical_structure": 0.2,
    "presentation_quality": 0.2,
    "demand_mismatch": 0.15,
    "attention_splitting": 0.1,
}
COMPLEXITY_RATING_SCALE = 10.0
"""Vocabulary and sentence complexity ratings are on a 0–10 scale."""

STRUCTURE_SCORES: Dict[str, float] = {"simple": 0.1, "moderate": 0.3, "complex": 0.6}
PRESENTATION_BASE = 0.2
PRESENTATION_NOT_NOVICE_FRIENDLY = 0.2
PRESENTATION_NEEDS_SCAFFOLDING = 0.15
PRESENTATION_STRUCTURE_PENALTY: Dict[str, float] = {"simple": 0.0, "moderate": 0.1, "complex": 0.25}
PACE_MISMATCH_FAST_FOR_SLOW = 0.3
PACE_MISMATCH_SLOW_FOR_FAST = 0.2
MEMORY_LOAD_SCORES: Dict[str, float] = {"low": 0.2, "medium": 0.5, "high": 0.8}
DEFAULT_WORKING_MEMORY_CAPACITY = 0.7
MEMORY_MISMATCH_WEIGHT = 0.5
ATTENTION_SCORES: Dict[str, float] = {"focused": 0.1, "sustained": 0.2, "divided": 0.4}

# ---------------------------------------------------------------------------
# Cognitive load: germane factors
# ---------------------------------------------------------------------------

GERMANE_BASE = 0.4
GERMANE_WEIGHTS: Dict[str, float] = {
    "schema_construction": 0.3,
    "transfer_potential": 0.25,
    "metacognitive_engagement": 0.2,
    "elaboration_opportunities": 0.15,
    "goal_alignment": 0.1,
}
SCHEMA_BASE = 0.3
SCHEMA_SIMPLE_STRUCTURE_BONUS = 0.2
SCHEMA_PRINCIPLE_SCALE = 5.0
SCHEMA_PRINCIPLE_CAP = 0.3
SCHEMA_EXAMPLES_BONUS = 0.1
SCHEMA_ANALOGIES_BONUS = 0.1
TRANSFER_BASE = 0.2
TRANSFER_ELEMENT_SCALE = 10.0
TRANSFER_ELEMENT_CAP = 0.4
TRANSFER_ABSTRACT_SCALE = 20.0
TRANSFER_ABSTRACT_CAP = 0.3
METACOGNITIVE_BASE = 0.3
METACOGNITIVE_SUPPORT_BONUS = 0.2
METACOGNITIVE_COMPLEXITY_BONUS: Dict[str, float] = {"low": 0.1, "medium": 0.2, "high": 0.3}
ELABORATION_BASE = 0.2
ELABORATION_EXAMPLES_BONUS = 0.2
ELABORATION_ANALOGIES_BONUS = 0.2
ELABORATION_DEFINITIONS_BONUS = 0.1
GOAL_ALIGNMENT_BASE = 0.5
GOAL_BLOOM_MATCH_BONUS = 0.2
GOAL_BLOOM_MISMATCH_PENALTY = 0.1
GOAL_SUBJECT_BONUS = 0.2

# ---------------------------------------------------------------------------
# Cognitive load: phase distribution and duration re-weighting
# ---------------------------------------------------------------------------

PHASE_BASE_LOAD: Dict[str, Dict[str, float]] = {
    "prepare": {"intrinsic": 0.2, "extraneous": 0.1, "germane": 0.3},
    "initiate": {"intrinsic": 0.3, "extraneous": 0.2, "germane": 0.4},
    "deliver": {"intrinsic": 0.8, "extraneous": 0.3, "germane": 0.7},
    "end": {"intrinsic": 0.2, "extraneous": 0.1, "germane": 0.5},
}
"""Relative load demand of each phase before the profile is applied."""

PHASE_BASE_SHARE: Dict[str, float] = {
    "prepare": 0.15,
    "initiate": 0.2,
    "deliver": 0.5,
    "end": 0.15,
}
"""Default time share of each phase in an ideal micro-video."""

DURATION_ADJUSTMENT_FACTOR = 0.3
"""How strongly optimal_duration_allocation leans toward load-heavy phases."""

MAX_DURATION_REWEIGHT = _env_float("MAX_DURATION_REWEIGHT", 0.2)
"""Bound on the load-driven duration multiplier (±20% by default)."""

LOAD_CONFIG_ERROR_TOTAL = 2.5
LOAD_CONFIG_WARNING_TOTAL = 2.0

PROFILE_CACHE_TTL_SECONDS = _env_int("PROFILE_CACHE_TTL_SECONDS", 3600)
PROFILE_CACHE_MAX_ENTRIES = _env_int("PROFILE_CACHE_MAX_ENTRIES", 256)

# ---------------------------------------------------------------------------
# Timeline alignment
# ---------------------------------------------------------------------------

PHASE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "prepare": ("welcome", "introduction", "today", "begin", "start"),
    "initiate": ("objective", "goal", "learn", "will", "going to", "plan"),
    "deliver": ("now", "first", "next", "important", "concept", "example"),
    "end": ("conclusion", "summary", "recap", "remember", "finally"),
}

ASSIGNMENT_BASE_CONFIDENCE = 0.5
ASSIGNMENT_KEYWORD_BONUS = 0.1
ASSIGNMENT_IMPORTANCE_WEIGHT = 0.3
ASSIGNMENT_CONFIDENCE_WEIGHT = 0.2

ANCHOR_MIN_ASSIGNMENT_CONFIDENCE = 0.7
ANCHOR_MIN_IMPORTANCE = 0.6
ANCHOR_MIN_ALIGNMENT = 0.6
ALIGNMENT_WORD_WEIGHT = 0.4
ALIGNMENT_CONCEPT_BONUS = 0.1
ALIGNMENT_CONCEPT_CAP = 0.4
ALIGNMENT_PURPOSE_WEIGHT = 0.2
KEY_CONCEPT_IMPORTANCE = 0.8

PURPOSE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "introduction": ("welcome", "introduction", "today", "overview"),
    "definition": ("means", "defined", "refers", "definition"),
    "example": ("example", "instance", "such as", "for instance"),
    "conclusion": ("conclusion", "summary", "finally", "remember"),
    "question": ("what", "how", "why", "when"),
}
"""Lexical cues that reveal what a transcript segment is doing."""

PHASE_PURPOSES: Dict[str, Tuple[str, ...]] = {
    "prepare": ("introduction", "question"),
    "initiate": ("question", "definition"),
    "deliver": ("definition", "example"),
    "end": ("conclusion",),
}
"""Segment purposes that fit each phase."""

REFINE_MIN_ANCHOR_CONFIDENCE = 0.8
REFINE_MIN_ANCHOR_ALIGNMENT = 0.7
REFINE_MAX_SHIFT_RATIO = _env_float("REFINE_MAX_SHIFT_RATIO", 0.2)
REFINE_MIN_SHIFT_SEC = 5.0
MIN_PHASE_DURATION_SEC = 1.0
"""Refinement never shrinks a neighbouring phase below this length."""

CONTIGUITY_TOLERANCE_SEC = 1.0

TRANSITION_WINDOW_SEC = 10.0
TRANSITION_PACING_DELTA_WPM = 20.0
TOPIC_SHIFT_CONTINUITY = 0.3
HIGH_CONTINUITY = 0.7
VISUAL_CHANGE_LIKELIHOOD: Dict[Tuple[str, str], float] = {
    ("prepare", "initiate"): 0.6,
    ("initiate", "deliver"): 0.8,
    ("deliver", "end"): 0.5,
}
VISUAL_CHANGE_THRESHOLD = 0.6
TRANSITION_BASE_SEC = 2.0
TRANSITION_MIN_SEC = 1.0
TRANSITION_MAX_SEC = 4.0

TIMING_ACCURACY_BANDS: Tuple[Tuple[float, float, float], ...] = (
    (0.8, 1.2, 1.0),
    (0.6, 1.4, 0.8),
    (0.4, 1.6, 0.6),
)
"""(low, high, score) bands for actual/script duration ratio."""
TIMING_ACCURACY_FLOOR = 0.4

OBJECTIVE_MIN_COMMON_WORDS = 2
OBJECTIVE_CONFIDENCE_BOOST = 0.1

# ---------------------------------------------------------------------------
# Synchronization
# ---------------------------------------------------------------------------

CONFLICT_THRESHOLD_SEC = _env_float("CONFLICT_THRESHOLD_SEC", 0.1)
OVERLAP_TOLERANCE_SEC = _env_float("OVERLAP_TOLERANCE_SEC", 0.1)
MAX_EVENT_GAP_SEC = _env_float("MAX_EVENT_GAP_SEC", 5.0)
MIN_EVENTS_PER_PHASE = 2

KEYFRAME_BASE_CONFIDENCE = 0.7
KEYFRAME_ANCHOR_BONUS = 0.1
KEYFRAME_POSITION_BONUS = 0.1
KEYFRAME_INNER_RANGE: Tuple[float, float] = (0.1, 0.9)
KEYFRAME_CRITICAL_CONFIDENCE = 0.8
KEYFRAME_INTERVAL_SEC = 30.0
KEYFRAME_MIN_SPACING_SEC = 2.0
KEYFRAME_MIN_COUNT = 2
KEYFRAME_MULTIPLIERS: Dict[str, float] = {
    "prepare": 0.8,
    "initiate": 1.0,
    "deliver": 1.5,
    "end": 0.7,
}

PAUSE_VISUAL_CUE_SEC = 0.3
EMPHASIS_HIGHLIGHT_INTENSITY = 0.6
NOMINAL_PAUSE_POSITIONS: Tuple[float, ...] = (0.25, 0.5, 0.75)
NOMINAL_PAUSE_DURATION_SEC = 0.5
NOMINAL_EMPHASIS_POSITIONS: Tuple[float, ...] = (0.1, 0.4, 0.8)
NOMINAL_EMPHASIS_INTENSITY = 0.7

VISUAL_HIGH_PRIORITY = 0.8
PHASE_VISUAL_PRIORITY = 0.5
KEYPOINT_VISUAL_PRIORITY = 0.7
TRANSITION_VISUAL_PRIORITY = 0.8
TRANSITION_LEAD_SEC = 0.5

DEFAULT_EVENT_CONFIDENCE = 0.7
SYNC_CONFIDENCE_WEIGHT = 0.6
SYNC_PRECISION_WEIGHT = 0.4
ACCURACY_WEIGHTS: Dict[str, float] = {"timing": 0.4, "coverage": 0.3, "alignment": 0.3}
PRECISION_LABELS: Tuple[Tuple[float, str], ...] = (
    (0.9, "excellent"),
    (0.8, "good"),
    (0.7, "acceptable"),
    (0.6, "fair"),
)

DEFAULT_FPS = 30.0
AUDIO_SAMPLE_RATE = 44100
INTERPOLATION_GAP_SEC = 2.0

# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

MEDIA_CONCURRENCY = _env_int("MEDIA_CONCURRENCY", os.cpu_count() or 2)
"""Maximum simultaneous ffmpeg processes across the whole process."""

MEDIA_CALL_TIMEOUT_SEC = _env_float("MEDIA_CALL_TIMEOUT_SEC", 600.0)
BATCH_WORKERS = _env_int("BATCH_WORKERS", 2)

SEGMENT_CRF: Dict[str, int] = {"high": 18, "medium": 23, "low": 28}
FINAL_CRF = 20
VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
# lavfi source muxed in for phases that carry no narration
SILENCE_SOURCE = "anullsrc=r=44100:cl=stereo"

PHASE_LABEL_SIZE: Tuple[int, int] = (300, 60)
PHASE_LABEL_MAX_SEC = 3.0
KEYPOINT_SIZE: Tuple[int, int] = (400, 80)
KEYPOINT_START_RATIO = 0.2
KEYPOINT_DURATION_SEC = 4.0
LOAD_INDICATOR_SIZE: Tuple[int, int] = (200, 30)

OVERLAY_Z_INDEX: Dict[str, int] = {"phase_label": 10, "keypoint": 20, "load_indicator": 5}
OVERLAY_POSITIONS: Dict[str, Tuple[str, str]] = {
    "top_left": ("10", "10"),
    "top_right": ("main_w-overlay_w-10", "10"),
    "bottom_left": ("10", "main_h-overlay_h-10"),
    "bottom_right": ("main_w-overlay_w-10", "main_h-overlay_h-10"),
    "bottom_center": ("(main_w-overlay_w)/2", "main_h-overlay_h-40"),
    "center": ("(main_w-overlay_w)/2", "(main_h-overlay_h)/2"),
}

BLOOM_COLORS: Dict[str, str] = {
    "remember": "#9b59b6",
    "understand": "#3498db",
    "apply": "#2ecc71",
    "analyze": "#f39c12",
    "evaluate": "#e74c3c",
    "create": "#1abc9c",
}
DEFAULT_BLOOM_COLOR = "#34495e"
BLOOM_LEVELS: Tuple[str, ...] = tuple(BLOOM_COLORS)

LOAD_BAR_COLORS: Dict[str, str] = {
    "intrinsic": "#3498db",
    "extraneous": "#e74c3c",
    "germane": "#2ecc71",
}

FONT_CANDIDATES: Tuple[str, ...] = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
)

MAX_ATEMPO = 2.0
MIN_ATEMPO = 0.5
ALOOP_SIZE = 2048

ALTERNATE_FORMATS: Dict[str, Dict[str, object]] = {
    "webm": {"vcodec": "libvpx-vp9", "acodec": "libopus", "crf": 30, "b:v": 0},
    "mov": {"vcodec": "libx264", "acodec": "aac"},
}

EXPORT_FORMATS: Tuple[str, ...] = ("json", "csv", "xml", "srt", "edl")
"""Timeline export formats; keys of formatters.FORMATTERS."""


@dataclass(frozen=True)
class SyncMethodBands:
    """Ratio band edges for reconciling narration length with video length.

    WHY: The 5% and 10% edges are product decisions with no stated
    rationale. Grouping them lets callers inject alternatives and lets
    tests pin the table.

    RULES:
    - ratio > compress_above → compress_audio
    - speed_up_above < ratio <= compress_above → speed_up_audio
    - pad_below <= ratio <= speed_up_above → direct_overlay
    - extend_below <= ratio < pad_below → add_padding
    - ratio < extend_below → extend_audio
    """

    compress_above: float = _env_float("SYNC_COMPRESS_ABOVE", 1.1)
    speed_up_above: float = _env_float("SYNC_SPEED_UP_ABOVE", 1.05)
    pad_below: float = _env_float("SYNC_PAD_BELOW", 0.95)
    extend_below: float = _env_float("SYNC_EXTEND_BELOW", 0.9)


@dataclass(frozen=True)
class QualityThresholds:
    """Minimum acceptable properties of the final composite."""

    min_width: int = _env_int("QUALITY_MIN_WIDTH", 640)
    min_height: int = _env_int("QUALITY_MIN_HEIGHT", 480)
    min_duration_sec: float = _env_float("QUALITY_MIN_DURATION_SEC", 60.0)
    max_duration_sec: float = _env_float("QUALITY_MAX_DURATION_SEC", 600.0)
    min_size_bytes: int = _env_int("QUALITY_MIN_SIZE_BYTES", 1_000_000)
    min_bitrate_bps: int = _env_int("QUALITY_MIN_BITRATE_BPS", 500_000)
