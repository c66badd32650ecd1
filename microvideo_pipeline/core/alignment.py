"""Timeline Aligner: place the four phases on the source video.

WHY: The script says how long each phase *should* be; the source video
has its own length and its own transcript timing. The renderer needs
concrete, contiguous [start, end) windows per phase, plus the content
landmarks (anchors) and boundary characteristics (transitions) that the
sync engine and renderer build on.

HOW: A fixed sequence of pure stages, each returning new records:
  Allocate         - proportional windows (optionally load re-weighted)
  MapSegments      - transcript segment → phase by maximum overlap
  FindAnchors      - high-confidence, content-aligned segments
  Refine           - nudge phase starts toward strong anchors (≤20%)
  Normalize        - snap boundaries so phases are contiguous on [0, D]
  EmitTransitions  - continuity / pacing / visual change per boundary
TimelineAligner.align() runs them in order and collects non-fatal issues.

RULES:
- Output phases cover exactly [0, D]; end of phase i == start of phase i+1
- Ties in segment overlap go to the earliest phase
- No randomness, no clock: identical inputs give identical output
- A phase without segments is valid; it only lowers coverage
- AlignmentError is recorded in issues, never raised out of align()
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from microvideo_pipeline import config
from microvideo_pipeline.core.cognitive_load import duration_weights
from microvideo_pipeline.core.ir import (
    AlignmentResult,
    AnchorPoint,
    CognitiveLoadProfile,
    Keypoint,
    PhaseScript,
    PhaseTiming,
    SegmentAssignment,
    TranscriptSegment,
    TransitionPoint,
)
from microvideo_pipeline.errors import AlignmentError

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z0-9']+")

STOPWORDS: FrozenSet[str] = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in",
    "is", "it", "its", "of", "on", "or", "that", "the", "this", "to", "we",
    "will", "with", "you", "your", "our", "can", "how", "what",
})

TRANSITION_TYPES: Dict[Tuple[str, str], str] = {
    ("prepare", "initiate"): "orientation_to_objectives",
    ("initiate", "deliver"): "objectives_to_content",
    ("deliver", "end"): "content_to_summary",
}


def words(text: str) -> List[str]:
    """Lowercase word tokens of *text* (punctuation dropped)."""
    return _WORD_RE.findall(text.lower())


def content_words(text: str) -> FrozenSet[str]:
    return frozenset(w for w in words(text) if w not in STOPWORDS)


def _contains_cue(text: str, cue: str) -> bool:
    """Whole-word (or whole-phrase) match of *cue* inside lowercase *text*."""
    return re.search(r"\b{}\b".format(re.escape(cue)), text) is not None


def _overlap(start1: float, end1: float, start2: float, end2: float) -> float:
    return max(0.0, min(end1, end2) - max(start1, start2))


# ---------------------------------------------------------------------------
# Allocate
# ---------------------------------------------------------------------------


def allocate_phase_windows(
    scripts: Sequence[PhaseScript],
    total_duration_sec: float,
    weights: Optional[Mapping[str, float]] = None,
) -> Tuple[PhaseTiming, ...]:
    """Split [0, total] proportionally to the script durations.

    Args:
        scripts: One PhaseScript per phase (any order).
        total_duration_sec: Measured duration D of the source video.
        weights: Optional per-phase multipliers applied to the script
                 durations before the shares are computed.

    Returns:
        PhaseTiming per phase in PHASE_ORDER, contiguous on [0, D].

    Raises:
        AlignmentError: when the script durations sum to zero.
    """
    by_phase = {s.phase: s for s in scripts}
    raw = {
        phase: by_phase[phase].target_duration_sec * (weights or {}).get(phase, 1.0)
        for phase in config.PHASE_ORDER
    }
    total_script = sum(raw.values())
    if total_script <= 0:
        raise AlignmentError("all", "script durations sum to zero")

    timings: List[PhaseTiming] = []
    cursor = 0.0
    for index, phase in enumerate(config.PHASE_ORDER):
        share = raw[phase] / total_script * total_duration_sec
        end = total_duration_sec if index == len(config.PHASE_ORDER) - 1 else cursor + share
        timings.append(
            PhaseTiming(
                phase=phase,
                start_sec=cursor,
                end_sec=end,
                script_duration_sec=by_phase[phase].target_duration_sec,
            )
        )
        cursor = end
    return tuple(timings)


# ---------------------------------------------------------------------------
# MapSegments
# ---------------------------------------------------------------------------


def assignment_confidence(segment: TranscriptSegment, phase: str) -> float:
    """0.5 + 0.1 per phase keyword + importance×0.3 + confidence×0.2, ≤ 1."""
    text = segment.text.lower()
    hits = sum(1 for kw in config.PHASE_KEYWORDS.get(phase, ()) if _contains_cue(text, kw))
    confidence = (
        config.ASSIGNMENT_BASE_CONFIDENCE
        + hits * config.ASSIGNMENT_KEYWORD_BONUS
        + segment.importance * config.ASSIGNMENT_IMPORTANCE_WEIGHT
        + segment.confidence * config.ASSIGNMENT_CONFIDENCE_WEIGHT
    )
    return min(round(confidence, 4), 1.0)


def map_segments(
    segments: Sequence[TranscriptSegment],
    phases: Sequence[PhaseTiming],
) -> Tuple[Tuple[SegmentAssignment, ...], Tuple[str, ...]]:
    """Assign each segment to the phase it overlaps most.

    Returns:
        (assignments in segment time order, ids of unmapped segments)
    """
    assignments: List[SegmentAssignment] = []
    unmapped: List[str] = []
    ordered = sorted(segments, key=lambda s: (s.start_ms, s.end_ms, s.id))
    for segment in ordered:
        best_phase: Optional[str] = None
        best_overlap = 0.0
        for timing in phases:
            overlap = _overlap(segment.start_sec, segment.end_sec, timing.start_sec, timing.end_sec)
            # strict ">" keeps the earliest phase on ties
            if overlap > best_overlap:
                best_overlap = overlap
                best_phase = timing.phase
        if best_phase is None:
            unmapped.append(segment.id)
            continue
        assignments.append(
            SegmentAssignment(
                segment_id=segment.id,
                phase=best_phase,
                confidence=assignment_confidence(segment, best_phase),
                overlap_sec=round(best_overlap, 3),
                timestamp=segment.start_sec,
            )
        )
    return tuple(assignments), tuple(unmapped)


# ---------------------------------------------------------------------------
# FindAnchors
# ---------------------------------------------------------------------------


def segment_purposes(text: str) -> Tuple[str, ...]:
    """Purposes (introduction, definition, ...) signalled by the text."""
    lowered = text.lower()
    return tuple(
        purpose
        for purpose, cues in config.PURPOSE_KEYWORDS.items()
        if any(_contains_cue(lowered, cue) for cue in cues)
    )


def content_alignment(
    segment: TranscriptSegment,
    script: PhaseScript,
    concepts: Sequence[str] = (),
) -> float:
    """How well a segment matches its phase's script, in [0, 1].

    HOW: word overlap (÷ smaller vocabulary) × 0.4, plus 0.1 per
    concept/key-phrase containment match capped at 0.4, plus 0.2 when the
    segment's purpose fits the phase.
    """
    seg_words = content_words(segment.text)
    script_words = content_words(script.content)
    score = 0.0
    if seg_words and script_words:
        overlap = len(seg_words & script_words) / min(len(seg_words), len(script_words))
        score += overlap * config.ALIGNMENT_WORD_WEIGHT

    concept_score = 0.0
    targets = [c.lower() for c in list(script.objectives) + list(concepts) if c.strip()]
    for phrase in segment.key_phrases:
        phrase = phrase.lower().strip()
        if not phrase:
            continue
        for target in targets:
            if phrase in target or target in phrase:
                concept_score += config.ALIGNMENT_CONCEPT_BONUS
    score += min(concept_score, config.ALIGNMENT_CONCEPT_CAP)

    fitting = config.PHASE_PURPOSES.get(script.phase, ())
    if any(p in fitting for p in segment_purposes(segment.text)):
        score += config.ALIGNMENT_PURPOSE_WEIGHT
    return round(min(score, 1.0), 4)


def anchor_kind(segment: TranscriptSegment) -> str:
    text = segment.text.lower()
    if "objective" in text or "goal" in text:
        return "learning_objective"
    if "example" in text or "instance" in text:
        return "example_illustration"
    if "definition" in text or "means" in text:
        return "concept_definition"
    if "summary" in text or "conclude" in text:
        return "summary_point"
    if segment.importance > config.KEY_CONCEPT_IMPORTANCE:
        return "key_concept"
    return "content_marker"


def find_anchors(
    segments: Sequence[TranscriptSegment],
    assignments: Sequence[SegmentAssignment],
    scripts: Sequence[PhaseScript],
    concepts: Sequence[str] = (),
) -> Tuple[AnchorPoint, ...]:
    """Anchors among confidently assigned, important segments."""
    by_id = {s.id: s for s in segments}
    by_phase = {s.phase: s for s in scripts}
    anchors: List[AnchorPoint] = []
    for assignment in assignments:
        segment = by_id[assignment.segment_id]
        if assignment.confidence <= config.ANCHOR_MIN_ASSIGNMENT_CONFIDENCE:
            continue
        if segment.importance <= config.ANCHOR_MIN_IMPORTANCE:
            continue
        alignment = content_alignment(segment, by_phase[assignment.phase], concepts)
        if alignment <= config.ANCHOR_MIN_ALIGNMENT:
            continue
        anchors.append(
            AnchorPoint(
                timestamp=segment.start_sec,
                phase=assignment.phase,
                confidence=assignment.confidence,
                content_alignment=alignment,
                kind=anchor_kind(segment),
                segment_id=segment.id,
            )
        )
    anchors.sort(key=lambda a: (a.timestamp, a.segment_id))
    return tuple(anchors)


# ---------------------------------------------------------------------------
# Refine
# ---------------------------------------------------------------------------


def refine_boundaries(
    phases: Sequence[PhaseTiming],
    anchors: Sequence[AnchorPoint],
) -> Tuple[PhaseTiming, ...]:
    """Shift phase starts toward their first strong anchor.

    RULES:
    - Only the first anchor of each phase is considered, and only when
      confidence > 0.8 and content alignment > 0.7
    - The shift is bounded to 20% of the phase's current duration and
      ignored when it is 5s or less
    - The previous phase's end moves by the same delta, so contiguity
      holds; neither phase shrinks below MIN_PHASE_DURATION_SEC
    - The first phase's start is pinned to 0
    """
    timings = list(phases)
    index_of = {t.phase: i for i, t in enumerate(timings)}
    seen: set = set()
    for anchor in anchors:
        if anchor.phase in seen:
            continue
        seen.add(anchor.phase)
        if anchor.confidence <= config.REFINE_MIN_ANCHOR_CONFIDENCE:
            continue
        if anchor.content_alignment <= config.REFINE_MIN_ANCHOR_ALIGNMENT:
            continue
        i = index_of[anchor.phase]
        if i == 0:
            continue
        current, previous = timings[i], timings[i - 1]
        limit = current.duration_sec * config.REFINE_MAX_SHIFT_RATIO
        shift = max(-limit, min(limit, anchor.timestamp - current.start_sec))
        if abs(shift) <= config.REFINE_MIN_SHIFT_SEC:
            continue
        floor = config.MIN_PHASE_DURATION_SEC
        shift = max(shift, -(previous.duration_sec - floor))
        shift = min(shift, current.duration_sec - floor)
        if abs(shift) <= config.REFINE_MIN_SHIFT_SEC:
            continue
        new_start = current.start_sec + shift
        timings[i - 1] = replace(previous, end_sec=new_start)
        timings[i] = replace(current, start_sec=new_start, anchor_confidence=anchor.confidence)
        logger.debug("Refined %s start by %.2fs toward anchor %s", anchor.phase, shift, anchor.segment_id)
    return tuple(timings)


# ---------------------------------------------------------------------------
# Normalize
# ---------------------------------------------------------------------------


def normalize_phases(
    phases: Sequence[PhaseTiming],
    total_duration_sec: float,
) -> Tuple[Tuple[PhaseTiming, ...], Tuple[str, ...]]:
    """Snap boundaries so phases tile [0, D] exactly.

    Walks PHASE_ORDER; each phase starts where the previous ended. Gaps
    or overlaps above the contiguity tolerance are logged as they are
    closed. The first phase starts at 0 and the last ends at D.

    Returns:
        (normalized phases, issue strings)
    """
    issues: List[str] = []
    ordered = sorted(phases, key=lambda t: config.PHASE_ORDER.index(t.phase))
    result: List[PhaseTiming] = []
    cursor = 0.0
    for index, timing in enumerate(ordered):
        gap = timing.start_sec - cursor
        if abs(gap) > config.CONTIGUITY_TOLERANCE_SEC:
            logger.info("Closing %.2fs %s before %s", abs(gap), "gap" if gap > 0 else "overlap", timing.phase)
        end = total_duration_sec if index == len(ordered) - 1 else max(cursor, min(timing.end_sec, total_duration_sec))
        fixed = replace(timing, start_sec=cursor, end_sec=end)
        if fixed.duration_sec <= 0:
            err = AlignmentError(timing.phase, "window collapsed to zero length")
            logger.warning("%s", err)
            issues.append(str(err))
        result.append(fixed)
        cursor = end
    return tuple(result), tuple(issues)


# ---------------------------------------------------------------------------
# EmitTransitions
# ---------------------------------------------------------------------------


def _words_per_minute(segments: Sequence[TranscriptSegment]) -> float:
    duration = sum(s.duration_sec for s in segments)
    if duration <= 0:
        return 0.0
    return sum(len(words(s.text)) for s in segments) / duration * 60.0


def suggested_transition_duration(topic_shift: bool, visual_change: bool, continuity: float) -> float:
    duration = config.TRANSITION_BASE_SEC
    if topic_shift:
        duration += 1.0
    if visual_change:
        duration += 1.0
    if continuity > config.HIGH_CONTINUITY:
        duration -= 0.5
    return max(config.TRANSITION_MIN_SEC, min(config.TRANSITION_MAX_SEC, duration))


def emit_transitions(
    phases: Sequence[PhaseTiming],
    segments: Sequence[TranscriptSegment],
) -> Tuple[TransitionPoint, ...]:
    """Describe each of the phase boundaries (3 for 4 phases)."""
    transitions: List[TransitionPoint] = []
    for current, following in zip(phases, phases[1:]):
        boundary = current.end_sec
        nearby = sorted(
            (s for s in segments if abs(s.start_sec - boundary) <= config.TRANSITION_WINDOW_SEC),
            key=lambda s: (s.start_ms, s.id),
        )
        before = [s for s in nearby if s.start_sec < boundary]
        after = [s for s in nearby if s.start_sec >= boundary]

        continuity = 0.0
        pacing_change = False
        topic_shift = False
        if before and after:
            before_words = set(words(" ".join(s.text for s in before)))
            after_words = set(words(" ".join(s.text for s in after)))
            union = before_words | after_words
            continuity = round(len(before_words & after_words) / len(union), 4) if union else 0.0
            pacing_change = abs(_words_per_minute(before) - _words_per_minute(after)) > config.TRANSITION_PACING_DELTA_WPM
            topic_shift = continuity < config.TOPIC_SHIFT_CONTINUITY

        pair = (current.phase, following.phase)
        visual_change = config.VISUAL_CHANGE_LIKELIHOOD.get(pair, 0.0) > config.VISUAL_CHANGE_THRESHOLD
        transitions.append(
            TransitionPoint(
                from_phase=current.phase,
                to_phase=following.phase,
                timestamp=boundary,
                suggested_duration_sec=suggested_transition_duration(topic_shift, visual_change, continuity),
                continuity=continuity,
                pacing_change=pacing_change,
                visual_change=visual_change,
                topic_shift=topic_shift,
                transition_type=TRANSITION_TYPES.get(pair, "phase_change"),
            )
        )
    return tuple(transitions)


# ---------------------------------------------------------------------------
# Aligner
# ---------------------------------------------------------------------------


class TimelineAligner:
    """Runs the alignment stages in order.

    WHY: Callers want one call that turns scripts + transcript + duration
    into an AlignmentResult, while tests want each stage separately. The
    stages are module-level functions; this class only sequences them.

    RULES:
    - reweight=False ignores the load profile entirely (pure proportional)
    - The same inputs always produce the same AlignmentResult
    """

    def __init__(self, reweight: bool = True) -> None:
        self._reweight = reweight

    def align(
        self,
        scripts: Sequence[PhaseScript],
        segments: Sequence[TranscriptSegment],
        total_duration_sec: float,
        profile: Optional[CognitiveLoadProfile] = None,
        keypoints: Sequence[Keypoint] = (),
    ) -> AlignmentResult:
        issues: List[str] = []
        weights = None
        if self._reweight and profile is not None and not profile.is_default:
            weights = duration_weights(profile)

        phases = allocate_phase_windows(scripts, total_duration_sec, weights)
        assignments, unmapped = map_segments(segments, phases)
        if unmapped:
            logger.info("%d transcript segments fall outside every phase", len(unmapped))

        concepts = [k.concept for k in keypoints]
        anchors = find_anchors(segments, assignments, scripts, concepts)
        phases = refine_boundaries(phases, anchors)
        phases, normalize_issues = normalize_phases(phases, total_duration_sec)
        issues.extend(normalize_issues)

        # Boundaries may have moved, so segments are re-mapped on the final windows.
        assignments, unmapped = map_segments(segments, phases)
        assigned: Dict[str, List[str]] = {t.phase: [] for t in phases}
        for a in assignments:
            assigned[a.phase].append(a.segment_id)
        phases = tuple(replace(t, assigned_segments=tuple(assigned[t.phase])) for t in phases)
        for t in phases:
            if not t.assigned_segments:
                issues.append("{}: no transcript segments assigned".format(t.phase))

        transitions = emit_transitions(phases, segments)
        logger.info(
            "Aligned %d phases over %.1fs (%d anchors, %d unmapped segments)",
            len(phases), total_duration_sec, len(anchors), len(unmapped),
        )
        return AlignmentResult(
            total_duration_sec=total_duration_sec,
            phases=phases,
            assignments=assignments,
            unmapped=unmapped,
            anchors=anchors,
            transitions=transitions,
            issues=tuple(issues),
        )


# ---------------------------------------------------------------------------
# Supplementary operations
# ---------------------------------------------------------------------------


def timing_accuracy(timing: PhaseTiming) -> float:
    """Score how close the actual duration is to the script duration."""
    if timing.script_duration_sec <= 0:
        return 0.0
    ratio = timing.duration_sec / timing.script_duration_sec
    for low, high, score in config.TIMING_ACCURACY_BANDS:
        if low <= ratio <= high:
            return score
    return config.TIMING_ACCURACY_FLOOR


@dataclass(frozen=True)
class AlignmentQuality:
    """Per-phase coverage / content / timing scores and an overall verdict."""

    overall_score: float
    assessment: str
    phase_coverage: Mapping[str, float]
    content_alignment: Mapping[str, float]
    timing_accuracy: Mapping[str, float]
    issues: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


def alignment_quality(
    result: AlignmentResult,
    scripts: Sequence[PhaseScript],
    segments: Sequence[TranscriptSegment],
) -> AlignmentQuality:
    """Assess an AlignmentResult phase by phase.

    RULES:
    - coverage is 1 when the phase has at least one segment, else 0
    - content alignment is the mean content_alignment of its segments
    - phase score = mean of the three; overall = mean over phases
    - assessment: > 0.8 excellent, > 0.6 good, > 0.4 fair, else poor
    """
    by_id = {s.id: s for s in segments}
    by_phase = {s.phase: s for s in scripts}
    coverage: Dict[str, float] = {}
    content: Dict[str, float] = {}
    timing: Dict[str, float] = {}
    issues: List[str] = []
    recs: List[str] = []
    total = 0.0
    for phase in result.phases:
        ids = phase.assigned_segments
        coverage[phase.phase] = 1.0 if ids else 0.0
        if ids:
            scores = [content_alignment(by_id[i], by_phase[phase.phase]) for i in ids]
            content[phase.phase] = round(sum(scores) / len(scores), 4)
        else:
            content[phase.phase] = 0.0
        timing[phase.phase] = timing_accuracy(phase)
        score = (coverage[phase.phase] + content[phase.phase] + timing[phase.phase]) / 3
        total += score
        if score < 0.7:
            recs.append("Improve {} phase alignment (score: {}%)".format(phase.phase, int(round(score * 100))))

    overall = round(total / len(result.phases), 4) if result.phases else 0.0
    if overall > 0.8:
        assessment = "excellent"
    elif overall > 0.6:
        assessment = "good"
    elif overall > 0.4:
        assessment = "fair"
    else:
        assessment = "poor"
        issues.append("Significant alignment issues detected")
    return AlignmentQuality(
        overall_score=overall,
        assessment=assessment,
        phase_coverage=coverage,
        content_alignment=content,
        timing_accuracy=timing,
        issues=tuple(issues),
        recommendations=tuple(recs),
    )


def optimize_for_objectives(
    result: AlignmentResult,
    segments: Sequence[TranscriptSegment],
    objectives: Sequence[str],
) -> AlignmentResult:
    """Make sure segments that state a learning objective are anchored.

    HOW: A segment relates to an objective when they share at least two
    content words. Existing anchors on such segments gain +0.1 confidence
    (capped at 1) and are flagged; unanchored ones become new
    learning_objective anchors with confidence and alignment 0.8.
    Phase timings are not changed.
    """
    phase_of = {a.segment_id: a.phase for a in result.assignments}
    related: Dict[str, TranscriptSegment] = {}
    for objective in objectives:
        target = content_words(objective)
        for segment in segments:
            if segment.id not in phase_of:
                continue
            if len(target & content_words(segment.text)) >= config.OBJECTIVE_MIN_COMMON_WORDS:
                related[segment.id] = segment
    if not related:
        return result

    anchors: List[AnchorPoint] = []
    anchored = set()
    for anchor in result.anchors:
        if anchor.segment_id in related:
            anchor = replace(
                anchor,
                confidence=min(1.0, round(anchor.confidence + config.OBJECTIVE_CONFIDENCE_BOOST, 4)),
                objective_match=True,
            )
        anchored.add(anchor.segment_id)
        anchors.append(anchor)
    for seg_id, segment in related.items():
        if seg_id in anchored:
            continue
        anchors.append(
            AnchorPoint(
                timestamp=segment.start_sec,
                phase=phase_of[seg_id],
                confidence=0.8,
                content_alignment=0.8,
                kind="learning_objective",
                segment_id=seg_id,
                objective_match=True,
            )
        )
    anchors.sort(key=lambda a: (a.timestamp, a.segment_id))
    return replace(result, anchors=tuple(anchors))


def locate_keypoints(
    keypoints: Sequence[Keypoint],
    segments: Sequence[TranscriptSegment],
) -> Tuple[Keypoint, ...]:
    """Fill in missing keypoint timestamps from the first mention.

    Keypoints that already carry a timestamp are returned unchanged; the
    rest get the start of the first segment whose text or key phrases
    contain the concept, or stay None when it is never mentioned.
    """
    ordered = sorted(segments, key=lambda s: (s.start_ms, s.id))
    located: List[Keypoint] = []
    for keypoint in keypoints:
        if keypoint.timestamp is not None:
            located.append(keypoint)
            continue
        concept = keypoint.concept.lower().strip()
        match = next(
            (
                s for s in ordered
                if concept and (concept in s.text.lower() or any(concept in p.lower() for p in s.key_phrases))
            ),
            None,
        )
        located.append(replace(keypoint, timestamp=match.start_sec if match else None))
    return tuple(located)


@dataclass(frozen=True)
class EditCue:
    """A cue for an external editor: transition, emphasis, or concept highlight."""

    timestamp: float
    kind: str
    action: str
    duration_sec: float
    phase: str
    label: str = ""


def edit_cues(result: AlignmentResult, keypoints: Sequence[Keypoint] = ()) -> Tuple[EditCue, ...]:
    """Editing cues derived from transitions, strong anchors, and keypoints."""
    cues: List[EditCue] = []
    for t in result.transitions:
        cues.append(
            EditCue(
                timestamp=t.timestamp,
                kind="phase_transition",
                action="fade_transition",
                duration_sec=t.suggested_duration_sec,
                phase=t.to_phase,
                label="{} -> {}".format(t.from_phase, t.to_phase),
            )
        )
    for a in result.anchors:
        if a.kind in ("key_concept", "learning_objective"):
            cues.append(
                EditCue(
                    timestamp=a.timestamp,
                    kind="keypoint_emphasis",
                    action="highlight_text",
                    duration_sec=3.0,
                    phase=a.phase,
                    label=a.segment_id,
                )
            )
    for k in keypoints:
        if k.timestamp is None:
            continue
        phase = next(
            (p.phase for p in result.phases if p.start_sec <= k.timestamp < p.end_sec),
            result.phases[-1].phase,
        )
        cues.append(
            EditCue(
                timestamp=k.timestamp,
                kind="visual_cue",
                action="show_concept_highlight",
                duration_sec=2.0,
                phase=phase,
                label=k.concept,
            )
        )
    cues.sort(key=lambda c: (c.timestamp, c.kind))
    return tuple(cues)
