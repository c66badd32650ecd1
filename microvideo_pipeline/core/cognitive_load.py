"""Cognitive Load Analyzer: intrinsic / extraneous / germane scoring.

WHY: The four-phase framework is grounded in Cognitive Load Theory. How
demanding the material is decides how much time each phase deserves and
which management strategy the micro-video should follow. The scores must
be reproducible and tunable, so every weight lives in config.py.

HOW: Each load type starts from a base score and adds weighted factors
(each factor in [0, 1]); the result is clamped to [0, 1] and rounded to
two decimals. Intrinsic load is additionally scaled by the learner's
expertise. The total (0–3) is categorized via capacity utilization
(total / 3). A management strategy is chosen by priority. Profiles are
memoized by content fingerprint in an injected TTLCache.

RULES:
- Component scores are always in [0, 1]; total score in [0, 3]
- Levels: < 0.3 low, < 0.6 moderate, < 0.8 high, else very_high
- Strategy priority: reduce_extraneous > manage_intrinsic >
  enhance_germane > maintain_balance
- Missing or malformed analysis → default profile (all 0.5), never raise
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from microvideo_pipeline import config
from microvideo_pipeline.cache import TTLCache
from microvideo_pipeline.core.ir import (
    CognitiveLoadProfile,
    ContentAnalysis,
    LearnerProfile,
    LoadComponent,
    LoadTotal,
    ManagementStrategy,
)

logger = logging.getLogger(__name__)

LOAD_TYPES: Tuple[str, ...] = ("intrinsic", "extraneous", "germane")


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def load_level(score: float) -> str:
    """Map a [0, 1] score onto low / moderate / high / very_high."""
    for upper, level in config.LOAD_LEVEL_BANDS:
        if score < upper:
            return level
    return config.LOAD_LEVEL_TOP


# ---------------------------------------------------------------------------
# Factor helpers
# ---------------------------------------------------------------------------


def element_complexity(elements: Mapping[str, int]) -> float:
    """Weighted average complexity of the information elements."""
    total = sum(max(0, int(elements.get(kind, 0))) for kind in config.ELEMENT_COMPLEXITY)
    if total <= 0:
        return config.EMPTY_ELEMENT_COMPLEXITY
    weighted = sum(
        max(0, int(elements.get(kind, 0))) * weight
        for kind, weight in config.ELEMENT_COMPLEXITY.items()
    )
    return min(weighted / total, 1.0)


def expertise_multiplier(learner: LearnerProfile) -> float:
    return config.EXPERTISE_MULTIPLIERS.get(learner.experience_level, 1.0)


def presentation_load(analysis: ContentAnalysis) -> float:
    load = config.PRESENTATION_BASE
    if not analysis.novice_friendly:
        load += config.PRESENTATION_NOT_NOVICE_FRIENDLY
    if analysis.scaffolding_needed:
        load += config.PRESENTATION_NEEDS_SCAFFOLDING
    load += config.PRESENTATION_STRUCTURE_PENALTY.get(analysis.logical_structure, 0.1)
    return min(load, 1.0)


def demand_mismatch(analysis: ContentAnalysis, learner: LearnerProfile) -> float:
    """Mismatch between the pace/memory the content demands and the learner."""
    mismatch = 0.0
    if analysis.pace_requirement == "fast" and learner.preferred_pace == "slow":
        mismatch += config.PACE_MISMATCH_FAST_FOR_SLOW
    elif analysis.pace_requirement == "slow" and learner.preferred_pace == "fast":
        mismatch += config.PACE_MISMATCH_SLOW_FOR_FAST

    memory = config.MEMORY_LOAD_SCORES.get(analysis.memory_load, 0.5)
    capacity = learner.working_memory_capacity or config.DEFAULT_WORKING_MEMORY_CAPACITY
    if memory > capacity:
        mismatch += (memory - capacity) * config.MEMORY_MISMATCH_WEIGHT
    return min(mismatch, 1.0)


def schema_construction(analysis: ContentAnalysis) -> float:
    potential = config.SCHEMA_BASE
    if analysis.logical_structure == "simple":
        potential += config.SCHEMA_SIMPLE_STRUCTURE_BONUS
    principles = analysis.information_elements.get("principles", 0)
    potential += min(principles / config.SCHEMA_PRINCIPLE_SCALE, config.SCHEMA_PRINCIPLE_CAP)
    if analysis.has_examples:
        potential += config.SCHEMA_EXAMPLES_BONUS
    if analysis.has_analogies:
        potential += config.SCHEMA_ANALOGIES_BONUS
    return min(potential, 1.0)


def transfer_potential(analysis: ContentAnalysis) -> float:
    elements = analysis.information_elements
    potential = config.TRANSFER_BASE
    potential += min(
        (elements.get("principles", 0) + elements.get("concepts", 0)) / config.TRANSFER_ELEMENT_SCALE,
        config.TRANSFER_ELEMENT_CAP,
    )
    potential += min(analysis.abstract_concepts / config.TRANSFER_ABSTRACT_SCALE, config.TRANSFER_ABSTRACT_CAP)
    return min(potential, 1.0)


def metacognitive_engagement(analysis: ContentAnalysis, learner: LearnerProfile) -> float:
    engagement = config.METACOGNITIVE_BASE
    if learner.metacognitive_support:
        engagement += config.METACOGNITIVE_SUPPORT_BONUS
    engagement += config.METACOGNITIVE_COMPLEXITY_BONUS.get(analysis.overall_complexity, 0.2)
    return min(engagement, 1.0)


def elaboration_opportunities(analysis: ContentAnalysis) -> float:
    opportunities = config.ELABORATION_BASE
    if analysis.has_examples:
        opportunities += config.ELABORATION_EXAMPLES_BONUS
    if analysis.has_analogies:
        opportunities += config.ELABORATION_ANALOGIES_BONUS
    if analysis.has_definitions:
        opportunities += config.ELABORATION_DEFINITIONS_BONUS
    opportunities += min(analysis.abstract_concepts / config.TRANSFER_ABSTRACT_SCALE, config.TRANSFER_ABSTRACT_CAP)
    return min(opportunities, 1.0)


def goal_alignment(analysis: ContentAnalysis, learner: LearnerProfile) -> float:
    alignment = config.GOAL_ALIGNMENT_BASE
    preferred = learner.bloom_preference or "understand"
    if preferred == analysis.dominant_bloom_level:
        alignment += config.GOAL_BLOOM_MATCH_BONUS
    else:
        alignment -= config.GOAL_BLOOM_MISMATCH_PENALTY
    if analysis.subject_area and analysis.subject_area in learner.preferred_subjects:
        alignment += config.GOAL_SUBJECT_BONUS
    return _clamp(alignment)


# ---------------------------------------------------------------------------
# Component scores
# ---------------------------------------------------------------------------


def _weighted(base: float, factors: Dict[str, float], weights: Mapping[str, float]) -> float:
    return base + sum(factors[name] * weight for name, weight in weights.items())


def _component(score: float, factors: Dict[str, float]) -> LoadComponent:
    score = round(_clamp(score), 2)
    return LoadComponent(score=score, level=load_level(score), factors=factors)


def intrinsic_load(analysis: ContentAnalysis, learner: LearnerProfile) -> LoadComponent:
    """Inherent complexity of the material, scaled by learner expertise."""
    factors = {
        "content_complexity": config.COMPLEXITY_SCORES.get(analysis.overall_complexity, 0.5),
        "conceptual_density": min(analysis.conceptual_density, 1.0),
        "abstract_concepts": min(analysis.abstract_concepts / config.ABSTRACT_CONCEPT_SCALE, 1.0),
        "element_complexity": element_complexity(analysis.information_elements),
    }
    score = _weighted(config.INTRINSIC_BASE, factors, config.INTRINSIC_WEIGHTS)
    multiplier = expertise_multiplier(learner)
    factors["expertise_adjustment"] = multiplier
    return _component(score * multiplier, factors)


def extraneous_load(analysis: ContentAnalysis, learner: LearnerProfile) -> LoadComponent:
    """Overhead caused by presentation rather than by the material itself."""
    factors = {
        "technical_vocabulary": min(analysis.vocabulary_complexity / config.COMPLEXITY_RATING_SCALE, 1.0),
        "sentence_complexity": min(analysis.sentence_complexity / config.COMPLEXITY_RATING_SCALE, 1.0),
        "logical_structure": config.STRUCTURE_SCORES.get(analysis.logical_structure, 0.3),
        "presentation_quality": presentation_load(analysis),
        "demand_mismatch": demand_mismatch(analysis, learner),
        "attention_splitting": config.ATTENTION_SCORES.get(analysis.attention_type, 0.2),
    }
    return _component(_weighted(config.EXTRANEOUS_BASE, factors, config.EXTRANEOUS_WEIGHTS), factors)


def germane_load(analysis: ContentAnalysis, learner: LearnerProfile) -> LoadComponent:
    """Learning-productive processing: schemas, transfer, reflection."""
    factors = {
        "schema_construction": schema_construction(analysis),
        "transfer_potential": transfer_potential(analysis),
        "metacognitive_engagement": metacognitive_engagement(analysis, learner),
        "elaboration_opportunities": elaboration_opportunities(analysis),
        "goal_alignment": goal_alignment(analysis, learner),
    }
    return _component(_weighted(config.GERMANE_BASE, factors, config.GERMANE_WEIGHTS), factors)


def total_load(intrinsic: float, extraneous: float, germane: float) -> LoadTotal:
    """Sum of the component scores with its capacity-utilization level."""
    total = round(_clamp(intrinsic + extraneous + germane, 0.0, 3.0), 2)
    return LoadTotal(
        score=total,
        level=load_level(total / 3),
        capacity_utilization=int(round(total / 3 * 100)),
    )


_STRATEGIES: Dict[str, ManagementStrategy] = {
    "reduce_extraneous": ManagementStrategy(
        name="reduce_extraneous",
        priority="high",
        rationale="High extraneous load is impeding learning efficiency",
        actions=(
            "Simplify presentation format",
            "Improve logical structure",
            "Reduce unnecessary complexity",
        ),
    ),
    "manage_intrinsic": ManagementStrategy(
        name="manage_intrinsic",
        priority="high",
        rationale="Content complexity requires careful management",
        actions=(
            "Break content into smaller chunks",
            "Provide additional scaffolding",
            "Use worked examples",
        ),
    ),
    "enhance_germane": ManagementStrategy(
        name="enhance_germane",
        priority="medium",
        rationale="Insufficient processing for schema construction",
        actions=(
            "Add reflection opportunities",
            "Include elaboration prompts",
            "Connect to prior knowledge",
        ),
    ),
    "maintain_balance": ManagementStrategy(
        name="maintain_balance",
        priority="low",
        rationale="Cognitive load is well-balanced",
        actions=(
            "Maintain current approach",
            "Monitor for cognitive overload",
            "Fine-tune as needed",
        ),
    ),
}


def choose_strategy(intrinsic: float, extraneous: float, germane: float) -> ManagementStrategy:
    """Pick the management strategy by fixed priority."""
    if extraneous > config.STRATEGY_EXTRANEOUS_THRESHOLD:
        return _STRATEGIES["reduce_extraneous"]
    if intrinsic > config.STRATEGY_INTRINSIC_THRESHOLD:
        return _STRATEGIES["manage_intrinsic"]
    if germane < config.STRATEGY_GERMANE_THRESHOLD:
        return _STRATEGIES["enhance_germane"]
    return _STRATEGIES["maintain_balance"]


def default_profile() -> CognitiveLoadProfile:
    """Documented fallback profile: every component scores 0.5."""
    score = config.DEFAULT_LOAD_SCORE
    component = LoadComponent(score=score, level=load_level(score), factors={})
    return CognitiveLoadProfile(
        intrinsic=component,
        extraneous=component,
        germane=component,
        total=total_load(score, score, score),
        strategy=choose_strategy(score, score, score),
        is_default=True,
    )


def _check_analysis(analysis: ContentAnalysis) -> None:
    """Raise ValueError when the analysis cannot be scored meaningfully."""
    numbers = {
        "conceptual_density": analysis.conceptual_density,
        "vocabulary_complexity": analysis.vocabulary_complexity,
        "sentence_complexity": analysis.sentence_complexity,
        "abstract_concepts": analysis.abstract_concepts,
    }
    for name, value in numbers.items():
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ValueError("{} must be numeric, got {!r}".format(name, value))
        if math.isnan(value) or value < 0:
            raise ValueError("{} must be a non-negative number, got {!r}".format(name, value))
    if not isinstance(analysis.information_elements, Mapping):
        raise ValueError("information_elements must be a mapping")
    for kind, count in analysis.information_elements.items():
        if not isinstance(count, int) or count < 0:
            raise ValueError("information_elements[{}] must be a non-negative int".format(kind))


def _fingerprint(analysis: ContentAnalysis, learner: LearnerProfile) -> str:
    raw = repr((analysis, sorted(analysis.information_elements.items()), learner))
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class CognitiveLoadAnalyzer:
    """Scores a ContentAnalysis into a CognitiveLoadProfile.

    WHY: Profiles are reused by the aligner (duration re-weighting), the
    renderer (load indicator overlay), and reporting. Wrapping the pure
    scoring functions in a class gives one place to inject the cache.

    RULES:
    - analyze() never raises for bad content analysis; it logs a warning
      and returns default_profile()
    - The cache is optional; without one every call recomputes
    - Default profiles are never cached
    """

    def __init__(self, cache: Optional[TTLCache] = None) -> None:
        self._cache = cache

    def analyze(
        self,
        analysis: Optional[ContentAnalysis],
        learner: Optional[LearnerProfile] = None,
    ) -> CognitiveLoadProfile:
        learner = learner or LearnerProfile()
        if analysis is None:
            logger.warning("No content analysis supplied; using default load profile")
            return default_profile()
        try:
            _check_analysis(analysis)
        except ValueError as err:
            logger.warning("Malformed content analysis (%s); using default load profile", err)
            return default_profile()

        if self._cache is None:
            return self._compute(analysis, learner)
        key = _fingerprint(analysis, learner)
        return self._cache.get_or_compute(key, lambda: self._compute(analysis, learner))

    def _compute(self, analysis: ContentAnalysis, learner: LearnerProfile) -> CognitiveLoadProfile:
        intrinsic = intrinsic_load(analysis, learner)
        extraneous = extraneous_load(analysis, learner)
        germane = germane_load(analysis, learner)
        profile = CognitiveLoadProfile(
            intrinsic=intrinsic,
            extraneous=extraneous,
            germane=germane,
            total=total_load(intrinsic.score, extraneous.score, germane.score),
            strategy=choose_strategy(intrinsic.score, extraneous.score, germane.score),
        )
        logger.debug(
            "Load profile: intrinsic=%.2f extraneous=%.2f germane=%.2f strategy=%s",
            intrinsic.score, extraneous.score, germane.score, profile.strategy.name,
        )
        return profile


# ---------------------------------------------------------------------------
# Descriptions and recommendations
# ---------------------------------------------------------------------------

_DESCRIPTIONS: Dict[str, Tuple[str, str, str, str]] = {
    "intrinsic": (
        "Content has low inherent complexity, suitable for quick learning",
        "Content has moderate complexity requiring focused attention",
        "Content is complex and may require additional support",
        "Content is highly complex and needs careful instructional design",
    ),
    "extraneous": (
        "Well-designed presentation with minimal cognitive interference",
        "Some presentation issues that could be improved",
        "Presentation creates significant cognitive burden",
        "Poor presentation design severely impedes learning",
    ),
    "germane": (
        "Limited opportunities for deep learning and schema construction",
        "Moderate support for meaningful learning processes",
        "Good opportunities for knowledge construction and transfer",
        "Excellent support for deep learning and understanding",
    ),
}


def describe(load_type: str, score: float) -> str:
    """One-sentence description of a component score."""
    texts = _DESCRIPTIONS[load_type]
    for index, (upper, _) in enumerate(config.LOAD_LEVEL_BANDS):
        if score < upper:
            return texts[index]
    return texts[-1]


def component_recommendations(load_type: str, component: LoadComponent) -> List[str]:
    """Concrete recommendations for one load component."""
    score = component.score
    factors = component.factors
    recs: List[str] = []
    if load_type == "intrinsic":
        if score > 0.6:
            recs.append("Consider breaking into multiple micro-videos")
            recs.append("Add worked examples to reduce cognitive burden")
        if factors.get("abstract_concepts", 0) > 0.6:
            recs.append("Use concrete analogies for abstract concepts")
        if factors.get("conceptual_density", 0) > 0.7:
            recs.append("Reduce information density per minute")
    elif load_type == "extraneous":
        if factors.get("technical_vocabulary", 0) > 0.5:
            recs.append("Define technical terms clearly")
            recs.append("Use simpler language where possible")
        if factors.get("logical_structure", 0) > 0.4:
            recs.append("Improve content organization and flow")
            recs.append("Add clear transitions between topics")
        if factors.get("presentation_quality", 0) > 0.4:
            recs.append("Enhance visual design and clarity")
    elif load_type == "germane":
        if score < 0.5:
            recs.append("Add reflection questions to promote deeper thinking")
            recs.append("Include opportunities for learner elaboration")
            recs.append("Connect new concepts to prior knowledge")
        if factors.get("schema_construction", 1) < 0.4:
            recs.append("Provide conceptual frameworks and organizers")
            recs.append("Use examples that show underlying patterns")
        if factors.get("transfer_potential", 1) < 0.4:
            recs.append("Highlight applications in different contexts")
            recs.append("Discuss generalizable principles")
    else:
        raise ValueError("Unknown load type: {}".format(load_type))
    return recs


def optimizations(profile: CognitiveLoadProfile, learner: Optional[LearnerProfile] = None) -> Dict[str, List[str]]:
    """Group optimization suggestions by when they can be applied."""
    learner = learner or LearnerProfile()
    result: Dict[str, List[str]] = {
        "immediate": [],
        "content_design": [],
        "delivery_method": [],
        "user_support": [],
    }
    if profile.extraneous.score > 0.5:
        result["immediate"].extend(["Simplify technical language", "Improve content organization"])
    if profile.intrinsic.score > 0.6:
        result["immediate"].extend(["Reduce content scope", "Add prerequisite review"])
    if profile.germane.score < 0.5:
        result["content_design"].extend(["Add practice opportunities", "Include real-world connections"])
    if learner.preferred_pace == "slow" and profile.intrinsic.score > 0.5:
        result["delivery_method"].extend(["Extend video duration", "Add pauses for processing"])
    if profile.extraneous.score > 0.4:
        result["user_support"].extend(["Provide concept glossary", "Add visual aids"])
    return result


# ---------------------------------------------------------------------------
# Phase distribution and duration allocation
# ---------------------------------------------------------------------------


def _adjust_phase_load(base: float, overall: float, phase: str, load_type: str) -> float:
    adjusted = base
    if overall > 0.7:
        if phase in ("prepare", "end"):
            adjusted *= 0.8
    elif overall < 0.3 and load_type == "germane":
        adjusted *= 1.2
    if phase == "deliver" and load_type == "intrinsic":
        adjusted = min(adjusted * overall, 1.0)
    return round(adjusted, 2)


def phase_load_distribution(profile: CognitiveLoadProfile) -> Dict[str, Dict[str, float]]:
    """Expected per-phase load given the overall profile.

    Returns:
        ``{phase: {"intrinsic", "extraneous", "germane", "total"}}`` in
        PHASE_ORDER.
    """
    distribution: Dict[str, Dict[str, float]] = {}
    for phase in config.PHASE_ORDER:
        base = config.PHASE_BASE_LOAD[phase]
        loads = {
            load_type: _adjust_phase_load(base[load_type], profile.component(load_type).score, phase, load_type)
            for load_type in LOAD_TYPES
        }
        loads["total"] = round(sum(loads[t] for t in LOAD_TYPES), 2)
        distribution[phase] = loads
    return distribution


def phase_recommendations(distribution: Mapping[str, Mapping[str, float]]) -> Dict[str, List[str]]:
    """Phase-specific suggestions derived from the load distribution."""
    recs: Dict[str, List[str]] = {}
    for phase, loads in distribution.items():
        items: List[str] = []
        if loads["total"] > 2.0:
            items.append("Reduce cognitive load in {} phase".format(phase))
            if loads["extraneous"] > 0.4:
                items.append("Simplify presentation and reduce distractions")
            if loads["intrinsic"] > 0.6 and phase != "deliver":
                items.append("Move complex content to deliver phase")
        if loads["germane"] < 0.3 and phase in ("deliver", "end"):
            items.append("Add opportunities for deeper processing")
        if phase == "prepare" and loads["intrinsic"] > 0.3:
            items.append("Keep preparation simple and focused on activation")
        elif phase == "initiate" and loads["total"] > 1.0:
            items.append("Streamline objective presentation")
        elif phase == "deliver" and loads["total"] > 2.5:
            items.append("Consider breaking into multiple segments")
        elif phase == "end" and loads["germane"] < 0.4:
            items.append("Enhance reflection and consolidation activities")
        recs[phase] = items
    return recs


def optimal_duration_allocation(profile: CognitiveLoadProfile) -> Dict[str, float]:
    """Share of the video each phase should get, leaning toward heavy phases.

    HOW: Each phase's share of the total distributed load is compared to
    its base share; 30% of the difference is added, floored at 0.05, and
    the result is normalized to sum to 1.
    """
    distribution = phase_load_distribution(profile)
    total = sum(d["total"] for d in distribution.values()) or 1.0
    adjusted: Dict[str, float] = {}
    for phase in config.PHASE_ORDER:
        base = config.PHASE_BASE_SHARE[phase]
        ratio = distribution[phase]["total"] / total
        adjusted[phase] = max(0.05, base + (ratio - base) * config.DURATION_ADJUSTMENT_FACTOR)
    norm = sum(adjusted.values())
    return {phase: round(share / norm, 4) for phase, share in adjusted.items()}


def duration_weights(profile: CognitiveLoadProfile) -> Dict[str, float]:
    """Per-phase duration multipliers bounded to ±MAX_DURATION_REWEIGHT.

    A phase whose optimal share exceeds its base share is stretched, one
    below it is shortened; the multiplier never leaves
    [1 - bound, 1 + bound].
    """
    bound = config.MAX_DURATION_REWEIGHT
    allocation = optimal_duration_allocation(profile)
    return {
        phase: round(_clamp(allocation[phase] / config.PHASE_BASE_SHARE[phase], 1 - bound, 1 + bound), 4)
        for phase in config.PHASE_ORDER
    }


@dataclass(frozen=True)
class LoadValidation:
    """Sanity check of a profile against recommended limits."""

    is_valid: bool
    errors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    recommendations: Tuple[str, ...]


def validate_load_configuration(profile: CognitiveLoadProfile, target_audience: str = "general") -> LoadValidation:
    """Flag overload, poor design, and audience mismatches."""
    errors: List[str] = []
    warnings: List[str] = []
    recs: List[str] = []
    if profile.total.score > config.LOAD_CONFIG_ERROR_TOTAL:
        errors.append("Total cognitive load exceeds recommended limits")
    if profile.total.score > config.LOAD_CONFIG_WARNING_TOTAL:
        warnings.append("High cognitive load may impact learning effectiveness")
    if profile.extraneous.score > config.STRATEGY_EXTRANEOUS_THRESHOLD:
        warnings.append("High extraneous load indicates poor instructional design")
        recs.append("Improve content presentation and organization")
    if profile.germane.score < 0.3:
        warnings.append("Low germane load may limit deep learning")
        recs.append("Add opportunities for elaboration and reflection")
    if target_audience == "novice" and profile.intrinsic.score > 0.6:
        warnings.append("Content may be too complex for novice learners")
        recs.append("Consider additional scaffolding or prerequisite content")
    if target_audience == "expert" and profile.intrinsic.score < 0.3:
        warnings.append("Content may be too simple for expert learners")
        recs.append("Increase complexity or focus on advanced applications")
    return LoadValidation(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        recommendations=tuple(recs),
    )
