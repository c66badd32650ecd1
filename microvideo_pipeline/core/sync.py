"""Synchronization Engine: one conflict-free timeline for the renderer.

WHY: Phase boundaries, narration length, pauses and emphasis in the
narration, visual keyframes, keypoint annotations, and transitions are
all independent timing signals. Left alone they collide: two cues 50ms
apart produce flicker, and narration that runs past its phase drifts out
of sync. The engine reconciles them into one ordered event list and
scores how trustworthy that list is.

HOW:
  1. plan_keyframes()      - deterministic keyframe moments per phase
  2. build_sync_points()   - phase_start / phase_end / keyframe_sync with
                             audio time by linear interpolation
  3. audio_marker_events() - pauses and emphasis mapped onto video time
  4. visual_events()       - phase labels, keypoints, transitions
  5. resolve_conflicts()   - events within 100ms: high replaces, equal
                             merges, anything else merges as a fallback
  6. validate_timeline()   - gaps, overlaps, coverage, accuracy label

RULES:
- The narration track lays phases end to end in PHASE_ORDER
- Sync points are ordered by video time
- The returned timeline has no two events closer than the threshold
- SyncConflictError is logged, never raised out of synchronize()
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from microvideo_pipeline import config
from microvideo_pipeline.core.ir import (
    AlignmentResult,
    AudioMarker,
    Keyframe,
    Keypoint,
    NarrationAudio,
    SyncPoint,
    SyncResult,
    SyncValidation,
    TimelineEvent,
)
from microvideo_pipeline.errors import SyncConflictError

logger = logging.getLogger(__name__)

PRIORITY_RANK: Dict[str, int] = {"low": 0, "medium": 1, "high": 2}
_RANK_PRIORITY = {rank: name for name, rank in PRIORITY_RANK.items()}

_KIND_ORDER: Dict[str, int] = {
    "sync_point": 0,
    "visual_event": 1,
    "audio_marker": 2,
    "merged_event": 3,
}


def _priority_from_value(value: float) -> str:
    if value >= config.VISUAL_HIGH_PRIORITY:
        return "high"
    if value >= config.PHASE_VISUAL_PRIORITY:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Keyframes
# ---------------------------------------------------------------------------


def keyframe_count(phase: str, duration_sec: float) -> int:
    """max(2, ceil(ceil(duration / 30) × phase multiplier))."""
    base = math.ceil(duration_sec / config.KEYFRAME_INTERVAL_SEC) if duration_sec > 0 else 0
    return max(config.KEYFRAME_MIN_COUNT, math.ceil(base * config.KEYFRAME_MULTIPLIERS.get(phase, 1.0)))


def plan_keyframes(alignment: AlignmentResult) -> Tuple[Keyframe, ...]:
    """Choose keyframe moments for every phase.

    HOW: Candidates in priority order are the phase start, one second
    before the phase end, anchor timestamps inside the phase, then evenly
    spaced moments. Candidates closer than KEYFRAME_MIN_SPACING_SEC to an
    already chosen one are skipped; the first ``keyframe_count`` survive.
    """
    keyframes: List[Keyframe] = []
    for timing in alignment.phases:
        duration = timing.duration_sec
        if duration <= 0:
            continue
        count = keyframe_count(timing.phase, duration)
        anchors = [a.timestamp for a in alignment.anchors if a.phase == timing.phase]
        candidates = [timing.start_sec]
        if duration > 1.0:
            candidates.append(timing.end_sec - 1.0)
        candidates.extend(t for t in anchors if timing.start_sec <= t < timing.end_sec)
        candidates.extend(timing.start_sec + duration * i / (count + 1) for i in range(1, count + 1))

        chosen: List[float] = []
        for t in candidates:
            if all(abs(t - c) >= config.KEYFRAME_MIN_SPACING_SEC for c in chosen):
                chosen.append(t)
            if len(chosen) == count:
                break
        for t in sorted(chosen):
            keyframes.append(
                Keyframe(
                    phase=timing.phase,
                    timestamp=round(t, 3),
                    relative_position=round((t - timing.start_sec) / duration, 4),
                    near_anchor=any(abs(t - a) < config.KEYFRAME_MIN_SPACING_SEC for a in anchors),
                )
            )
    return tuple(keyframes)


def keyframe_confidence(keyframe: Keyframe) -> float:
    confidence = config.KEYFRAME_BASE_CONFIDENCE
    if keyframe.near_anchor:
        confidence += config.KEYFRAME_ANCHOR_BONUS
    low, high = config.KEYFRAME_INNER_RANGE
    if low < keyframe.relative_position < high:
        confidence += config.KEYFRAME_POSITION_BONUS
    return round(min(confidence, 1.0), 4)


# ---------------------------------------------------------------------------
# Sync points
# ---------------------------------------------------------------------------


def audio_offsets(narration: Sequence[NarrationAudio]) -> Dict[str, float]:
    """Start of each phase's narration on the end-to-end narration track."""
    by_phase = {n.phase: n for n in narration}
    offsets: Dict[str, float] = {}
    cursor = 0.0
    for phase in config.PHASE_ORDER:
        offsets[phase] = cursor
        if phase in by_phase:
            cursor += by_phase[phase].duration_sec
    return offsets


def build_sync_points(
    alignment: AlignmentResult,
    narration: Sequence[NarrationAudio],
    keyframes: Sequence[Keyframe],
) -> Tuple[SyncPoint, ...]:
    """Phase boundary pairs plus one keyframe_sync per keyframe.

    RULES:
    - phase_start / phase_end are critical with confidence 1.0
    - phase_end carries alignment_precision =
      1 - min(1, |audio - video| / video)
    - keyframe audio time = phase audio start + audio duration × relative
      position of the keyframe in its phase
    """
    by_phase = {n.phase: n for n in narration}
    offsets = audio_offsets(narration)
    points: List[SyncPoint] = []
    for timing in alignment.phases:
        audio = by_phase.get(timing.phase)
        audio_duration = audio.duration_sec if audio else timing.duration_sec
        start_audio = offsets[timing.phase]
        precision = None
        if timing.duration_sec > 0:
            precision = round(1 - min(1.0, abs(audio_duration - timing.duration_sec) / timing.duration_sec), 4)
        points.append(SyncPoint("phase_start", timing.start_sec, start_audio, timing.phase, 1.0, True))
        points.append(
            SyncPoint(
                "phase_end", timing.end_sec, start_audio + audio_duration, timing.phase, 1.0, True,
                alignment_precision=precision,
            )
        )

    phase_timing = {t.phase: t for t in alignment.phases}
    for keyframe in keyframes:
        timing = phase_timing[keyframe.phase]
        audio = by_phase.get(keyframe.phase)
        audio_duration = audio.duration_sec if audio else timing.duration_sec
        confidence = keyframe_confidence(keyframe)
        points.append(
            SyncPoint(
                kind="keyframe_sync",
                video_time_sec=keyframe.timestamp,
                audio_time_sec=round(offsets[keyframe.phase] + audio_duration * keyframe.relative_position, 4),
                phase=keyframe.phase,
                confidence=confidence,
                critical=confidence > config.KEYFRAME_CRITICAL_CONFIDENCE,
            )
        )
    points.sort(key=lambda p: (p.video_time_sec, p.kind != "phase_end", p.kind))
    return tuple(points)


def sync_point_events(points: Sequence[SyncPoint]) -> List[TimelineEvent]:
    return [
        TimelineEvent(
            timestamp_sec=p.video_time_sec,
            kind="sync_point",
            priority="high" if p.critical else "medium",
            payload={
                "phase": p.phase,
                "sync_kind": p.kind,
                "video_time": p.video_time_sec,
                "audio_time": p.audio_time_sec,
                "confidence": p.confidence,
                "critical": p.critical,
                "alignment_precision": p.alignment_precision,
            },
        )
        for p in points
    ]


# ---------------------------------------------------------------------------
# Audio markers
# ---------------------------------------------------------------------------


def nominal_markers(audio: NarrationAudio) -> Tuple[AudioMarker, ...]:
    """Evenly placed pause/emphasis estimates for narration without markers."""
    markers = [
        AudioMarker("natural_pause", audio.duration_sec * pos, duration_sec=config.NOMINAL_PAUSE_DURATION_SEC)
        for pos in config.NOMINAL_PAUSE_POSITIONS
    ]
    markers.extend(
        AudioMarker("audio_emphasis", audio.duration_sec * pos, intensity=config.NOMINAL_EMPHASIS_INTENSITY)
        for pos in config.NOMINAL_EMPHASIS_POSITIONS
    )
    return tuple(sorted(markers, key=lambda m: m.time_sec))


def marker_is_suitable(marker: AudioMarker) -> bool:
    """Pauses long enough for a visual cue, emphasis strong enough to highlight."""
    if marker.kind == "natural_pause":
        return marker.duration_sec > config.PAUSE_VISUAL_CUE_SEC
    return marker.intensity > config.EMPHASIS_HIGHLIGHT_INTENSITY


def audio_marker_events(
    alignment: AlignmentResult,
    narration: Sequence[NarrationAudio],
) -> List[TimelineEvent]:
    """Map each narration marker onto video time within its phase."""
    offsets = audio_offsets(narration)
    phase_timing = {t.phase: t for t in alignment.phases}
    events: List[TimelineEvent] = []
    for audio in narration:
        timing = phase_timing.get(audio.phase)
        if timing is None or audio.duration_sec <= 0:
            continue
        markers = audio.markers or nominal_markers(audio)
        for marker in markers:
            relative = max(0.0, min(1.0, marker.time_sec / audio.duration_sec))
            suitable = marker_is_suitable(marker)
            events.append(
                TimelineEvent(
                    timestamp_sec=round(timing.start_sec + relative * timing.duration_sec, 4),
                    kind="audio_marker",
                    priority="medium" if suitable else "low",
                    payload={
                        "phase": audio.phase,
                        "marker_kind": marker.kind,
                        "audio_time": round(offsets[audio.phase] + marker.time_sec, 4),
                        "duration": marker.duration_sec,
                        "intensity": marker.intensity,
                        "suitable": suitable,
                        "nominal": not audio.markers,
                    },
                )
            )
    return events


# ---------------------------------------------------------------------------
# Visual events
# ---------------------------------------------------------------------------


def visual_events(alignment: AlignmentResult, keypoints: Sequence[Keypoint] = ()) -> List[TimelineEvent]:
    """Phase labels, located keypoints, and transition lead-ins."""
    events: List[TimelineEvent] = []
    for timing in alignment.phases:
        events.append(
            TimelineEvent(
                timestamp_sec=timing.start_sec,
                kind="visual_event",
                priority=_priority_from_value(config.PHASE_VISUAL_PRIORITY),
                payload={"phase": timing.phase, "visual_kind": "phase_label",
                         "label": config.PHASE_DISPLAY_NAMES[timing.phase]},
            )
        )
    for keypoint in keypoints:
        if keypoint.timestamp is None:
            continue
        timing = next(
            (t for t in alignment.phases if t.start_sec <= keypoint.timestamp < t.end_sec),
            None,
        )
        if timing is None:
            continue
        events.append(
            TimelineEvent(
                timestamp_sec=keypoint.timestamp,
                kind="visual_event",
                priority=_priority_from_value(max(config.KEYPOINT_VISUAL_PRIORITY, keypoint.importance)),
                payload={"phase": timing.phase, "visual_kind": "keypoint",
                         "label": keypoint.concept, "bloom_level": keypoint.bloom_level},
            )
        )
    for transition in alignment.transitions:
        events.append(
            TimelineEvent(
                timestamp_sec=max(0.0, transition.timestamp - config.TRANSITION_LEAD_SEC),
                kind="visual_event",
                priority=_priority_from_value(config.TRANSITION_VISUAL_PRIORITY),
                payload={"phase": transition.from_phase, "visual_kind": "transition",
                         "label": transition.transition_type,
                         "duration": transition.suggested_duration_sec},
            )
        )
    return events


# ---------------------------------------------------------------------------
# Conflict resolution
# ---------------------------------------------------------------------------


def _constituents(event: TimelineEvent) -> List[Dict[str, Any]]:
    if event.kind == "merged_event":
        return list(event.payload.get("events", []))
    item = {"kind": event.kind, "priority": event.priority, "timestamp": event.timestamp_sec}
    item.update(event.payload)
    return [item]


def merge_events(first: TimelineEvent, second: TimelineEvent) -> TimelineEvent:
    """Combine two events; high wins the priority, otherwise the maximum."""
    rank = max(PRIORITY_RANK[first.priority], PRIORITY_RANK[second.priority])
    return TimelineEvent(
        timestamp_sec=round((first.timestamp_sec + second.timestamp_sec) / 2, 4),
        kind="merged_event",
        priority=_RANK_PRIORITY[rank],
        payload={"events": _constituents(first) + _constituents(second)},
    )


def resolve_pair(kept: TimelineEvent, incoming: TimelineEvent) -> TimelineEvent:
    """Resolve two events that fall within the conflict threshold.

    RULES:
    - exactly one is high → the high one survives unchanged
    - equal priority → merged_event carrying both payloads
    - unequal, neither high → SyncConflictError is logged and the pair is
      merged anyway with the higher priority
    """
    kept_high = kept.priority == "high"
    incoming_high = incoming.priority == "high"
    if kept_high and not incoming_high:
        return kept
    if incoming_high and not kept_high:
        return incoming
    if kept.priority != incoming.priority:
        err = SyncConflictError(
            incoming.timestamp_sec,
            "{} ({}) vs {} ({}); applying merge fallback".format(
                kept.kind, kept.priority, incoming.kind, incoming.priority
            ),
        )
        logger.warning("%s", err)
    return merge_events(kept, incoming)


def resolve_conflicts(
    events: Iterable[TimelineEvent],
    threshold_sec: float = config.CONFLICT_THRESHOLD_SEC,
) -> Tuple[Tuple[TimelineEvent, ...], int]:
    """Sort events and collapse every pair closer than *threshold_sec*.

    Returns:
        (conflict-free timeline, number of conflicts resolved)
    """
    ordered = sorted(events, key=lambda e: (e.timestamp_sec, _KIND_ORDER[e.kind]))
    resolved: List[TimelineEvent] = []
    conflicts = 0
    for event in ordered:
        if resolved and abs(event.timestamp_sec - resolved[-1].timestamp_sec) < threshold_sec:
            resolved[-1] = resolve_pair(resolved[-1], event)
            conflicts += 1
        else:
            resolved.append(event)
    # A merge moves the timestamp to the midpoint, which can pull it back
    # within the threshold of its predecessor.
    if conflicts and len(resolved) > 1:
        again = any(
            abs(b.timestamp_sec - a.timestamp_sec) < threshold_sec for a, b in zip(resolved, resolved[1:])
        )
        if again:
            collapsed, extra = resolve_conflicts(resolved, threshold_sec)
            return collapsed, conflicts + extra
    return tuple(resolved), conflicts


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def precision_label(accuracy: float) -> str:
    for floor, label in config.PRECISION_LABELS:
        if accuracy > floor:
            return label
    return "poor"


def _event_metrics(timeline: Sequence[TimelineEvent]) -> Tuple[List[float], List[float]]:
    confidences: List[float] = []
    precisions: List[float] = []
    for event in timeline:
        for item in _constituents(event):
            if item.get("confidence") is not None:
                confidences.append(float(item["confidence"]))
            if item.get("alignment_precision") is not None:
                precisions.append(float(item["alignment_precision"]))
    return confidences, precisions


def validate_timeline(
    timeline: Sequence[TimelineEvent],
    phases: Sequence[str] = config.PHASE_ORDER,
    tolerance_sec: float = config.OVERLAP_TOLERANCE_SEC,
    max_gap_sec: float = config.MAX_EVENT_GAP_SEC,
) -> SyncValidation:
    """Score the synchronized timeline.

    RULES:
    - gap: consecutive events more than max_gap_sec apart
    - overlap: consecutive events of different kinds closer than tolerance
    - issue_ratio = (gaps + overlaps) / events
    - coverage = fraction of phases with at least two events
    - alignment quality = 0.6 × mean confidence + 0.4 × mean precision when
      any precision is present, otherwise the mean confidence
    - accuracy = 0.4 × (1 - issue_ratio) + 0.3 × coverage + 0.3 × quality
    """
    issues: List[str] = []
    gaps = 0
    overlaps = 0
    for a, b in zip(timeline, timeline[1:]):
        delta = b.timestamp_sec - a.timestamp_sec
        if delta > max_gap_sec:
            gaps += 1
            issues.append("gap of {:.2f}s after {:.2f}s".format(delta, a.timestamp_sec))
        elif delta < tolerance_sec and a.kind != b.kind:
            overlaps += 1
            issues.append("overlap at {:.2f}s ({} / {})".format(b.timestamp_sec, a.kind, b.kind))
    issue_ratio = (gaps + overlaps) / len(timeline) if timeline else 0.0

    counts = {phase: 0 for phase in phases}
    for event in timeline:
        for phase in event.phases():
            if phase in counts:
                counts[phase] += 1
    covered = sum(1 for c in counts.values() if c >= config.MIN_EVENTS_PER_PHASE)
    coverage = covered / len(phases) if phases else 0.0

    confidences, precisions = _event_metrics(timeline)
    mean_conf = sum(confidences) / len(confidences) if confidences else config.DEFAULT_EVENT_CONFIDENCE
    if precisions:
        quality = (
            mean_conf * config.SYNC_CONFIDENCE_WEIGHT
            + (sum(precisions) / len(precisions)) * config.SYNC_PRECISION_WEIGHT
        )
    else:
        quality = mean_conf

    weights = config.ACCURACY_WEIGHTS
    accuracy = (
        weights["timing"] * (1 - issue_ratio)
        + weights["coverage"] * coverage
        + weights["alignment"] * quality
    )
    return SyncValidation(
        issue_ratio=round(issue_ratio, 4),
        gap_count=gaps,
        overlap_count=overlaps,
        coverage=round(coverage, 4),
        alignment_quality=round(quality, 4),
        accuracy=round(accuracy, 4),
        precision_label=precision_label(accuracy),
        issues=tuple(issues),
    )


# ---------------------------------------------------------------------------
# Frame-accurate sync
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FramePoint:
    """A sync point expressed in video frames and audio samples."""

    video_time_sec: float
    audio_time_sec: float
    video_frame: int
    audio_sample: int
    interpolated: bool = False


def frame_accurate_points(
    points: Sequence[SyncPoint],
    fps: float = config.DEFAULT_FPS,
    sample_rate: int = config.AUDIO_SAMPLE_RATE,
) -> Tuple[FramePoint, ...]:
    """Convert sync points to frame/sample offsets, filling long gaps.

    Gaps longer than INTERPOLATION_GAP_SEC between consecutive points get
    one linearly interpolated point per second.
    """
    if fps <= 0:
        raise ValueError("fps must be positive, got {}".format(fps))

    def _point(video: float, audio: float, interpolated: bool) -> FramePoint:
        return FramePoint(
            video_time_sec=round(video, 4),
            audio_time_sec=round(audio, 4),
            video_frame=int(round(video * fps)),
            audio_sample=int(round(audio * sample_rate)),
            interpolated=interpolated,
        )

    ordered = sorted(points, key=lambda p: p.video_time_sec)
    result: List[FramePoint] = []
    for index, point in enumerate(ordered):
        result.append(_point(point.video_time_sec, point.audio_time_sec, False))
        if index + 1 >= len(ordered):
            break
        nxt = ordered[index + 1]
        gap = nxt.video_time_sec - point.video_time_sec
        if gap <= config.INTERPOLATION_GAP_SEC:
            continue
        steps = int(gap)
        for step in range(1, steps):
            ratio = step / gap
            result.append(
                _point(
                    point.video_time_sec + step,
                    point.audio_time_sec + (nxt.audio_time_sec - point.audio_time_sec) * ratio,
                    True,
                )
            )
    return tuple(result)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SyncEngine:
    """Builds and validates the synchronized timeline for one video.

    RULES:
    - keyframes default to plan_keyframes(alignment)
    - threshold and tolerance are injectable for tuning and tests
    """

    def __init__(
        self,
        conflict_threshold_sec: float = config.CONFLICT_THRESHOLD_SEC,
        overlap_tolerance_sec: float = config.OVERLAP_TOLERANCE_SEC,
    ) -> None:
        self._threshold = conflict_threshold_sec
        self._tolerance = overlap_tolerance_sec

    def synchronize(
        self,
        alignment: AlignmentResult,
        narration: Sequence[NarrationAudio],
        keypoints: Sequence[Keypoint] = (),
        keyframes: Optional[Sequence[Keyframe]] = None,
    ) -> SyncResult:
        if keyframes is None:
            keyframes = plan_keyframes(alignment)
        points = build_sync_points(alignment, narration, keyframes)

        events: List[TimelineEvent] = []
        events.extend(sync_point_events(points))
        events.extend(audio_marker_events(alignment, narration))
        events.extend(visual_events(alignment, keypoints))
        timeline, conflicts = resolve_conflicts(events, self._threshold)

        validation = validate_timeline(
            timeline,
            phases=tuple(t.phase for t in alignment.phases),
            tolerance_sec=self._tolerance,
        )
        logger.info(
            "Synchronized %d events (%d conflicts resolved), accuracy %.2f (%s)",
            len(timeline), conflicts, validation.accuracy, validation.precision_label,
        )
        return SyncResult(
            sync_points=points,
            timeline=timeline,
            keyframes=tuple(keyframes),
            validation=validation,
            conflicts_resolved=conflicts,
            audio_offsets=audio_offsets(narration),
        )


def phase_durations(result: SyncResult) -> Mapping[str, Tuple[float, float]]:
    """(video duration, audio duration) per phase from the boundary sync points."""
    starts = {p.phase: p for p in result.sync_points if p.kind == "phase_start"}
    ends = {p.phase: p for p in result.sync_points if p.kind == "phase_end"}
    return {
        phase: (
            ends[phase].video_time_sec - starts[phase].video_time_sec,
            ends[phase].audio_time_sec - starts[phase].audio_time_sec,
        )
        for phase in starts
        if phase in ends
    }
