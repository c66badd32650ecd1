"""Derive a content-analysis summary from transcript and script text.

WHY: The cognitive load analyzer scores a ContentAnalysis, which is
normally produced by the upstream LLM collaborator. When that summary is
missing, the pipeline still needs a defensible description of the
material. Simple computational text metrics (lexical diversity, word and
sentence length, technical-term density, a Flesch estimate) provide one
without any network call.

HOW: compute_text_metrics() reduces raw text to a TextMetrics record.
derive_content_analysis() combines the metrics of the full transcript with
lexical cue counts (examples, analogies, definitions, element types,
Bloom action verbs) and the transcript's speaking rate.

RULES:
- Pure functions: same text in, same analysis out
- Empty text yields TextMetrics with zeroed fields, never ZeroDivisionError
- Bloom level defaults to "understand" when no action verb is found
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from microvideo_pipeline.core.ir import ContentAnalysis, PhaseScript, TranscriptSegment

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z'\-]*")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

TECHNICAL_PATTERNS = (
    re.compile(r"^\w{8,}$"),
    re.compile(r"^[A-Z]{2,}$"),
    re.compile(r"\w+tion$"),
    re.compile(r"\w+ism$"),
    re.compile(r"\w+ology$"),
    re.compile(r"\w+metric$"),
    re.compile(r"\w+analysis$"),
)

ABSTRACT_TERMS = frozenset({
    "theory", "principle", "concept", "model", "framework", "relationship",
    "system", "structure", "idea", "hypothesis", "abstraction", "paradigm",
    "mechanism", "process", "pattern", "property",
})

ELEMENT_CUES: Dict[str, tuple] = {
    "procedures": ("step", "then", "next", "how to", "procedure", "process of"),
    "principles": ("principle", "law", "rule", "always", "therefore", "because"),
    "concepts": ("concept", "called", "known as", "idea of", "refers to"),
}

EXAMPLE_CUES = ("for example", "for instance", "such as", "e.g.")
ANALOGY_CUES = ("like a", "similar to", "imagine", "as if", "think of it as")
DEFINITION_CUES = ("means", "is defined as", "refers to", "definition")

BLOOM_ACTION_VERBS: Dict[str, tuple] = {
    "remember": ("define", "list", "recall", "recognize", "retrieve", "name", "locate", "identify"),
    "understand": ("interpret", "explain", "classify", "summarize", "compare", "translate", "paraphrase"),
    "apply": ("execute", "implement", "use", "demonstrate", "operate", "schedule", "sketch"),
    "analyze": ("differentiate", "organize", "attribute", "deconstruct", "outline", "structure"),
    "evaluate": ("check", "critique", "judge", "test", "detect", "monitor", "rank", "assess"),
    "create": ("generate", "plan", "produce", "design", "construct", "devise", "formulate"),
}

FAST_WPM = 170.0
SLOW_WPM = 110.0


@dataclass(frozen=True)
class TextMetrics:
    """Computational complexity metrics for a block of text."""

    word_count: int
    lexical_diversity: float
    avg_word_length: float
    avg_sentence_length: float
    technical_density: float
    flesch_estimate: int
    cognitive_load_index: float


def tokenize(text: str) -> List[str]:
    """Split text into words, preserving case (acronym detection needs it)."""
    return _WORD_RE.findall(text)


def is_technical(word: str) -> bool:
    if len(word) > 12:
        return True
    return any(p.search(word) for p in TECHNICAL_PATTERNS)


def estimate_flesch(avg_sentence_length: float, avg_word_length: float) -> int:
    """Simplified Flesch reading ease using word length as a syllable proxy."""
    score = 206.835 - 1.015 * avg_sentence_length - 84.6 * (avg_word_length / 5)
    return int(max(0, min(100, round(score))))


def cognitive_load_index(lexical_diversity: float, technical_density: float, avg_sentence_length: float) -> float:
    diversity_factor = 1 - lexical_diversity
    technical_factor = technical_density * 2
    length_factor = min(avg_sentence_length / 20, 1.0)
    return round((diversity_factor + technical_factor + length_factor) / 3, 2)


def compute_text_metrics(text: str) -> TextMetrics:
    """Reduce *text* to lexical and readability metrics.

    RULES:
    - lexical_diversity = unique lowercase words / words
    - technical_density = technical words / words
    - avg_sentence_length = words / non-empty sentences
    """
    words = tokenize(text)
    if not words:
        return TextMetrics(0, 0.0, 0.0, 0.0, 0.0, 0, 0.0)

    lowered = [w.lower() for w in words]
    sentences = [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]
    lexical_diversity = len(set(lowered)) / len(words)
    avg_word_length = sum(len(w) for w in words) / len(words)
    avg_sentence_length = len(words) / max(1, len(sentences))
    technical_density = sum(1 for w in words if is_technical(w)) / len(words)

    return TextMetrics(
        word_count=len(words),
        lexical_diversity=round(lexical_diversity, 2),
        avg_word_length=round(avg_word_length, 1),
        avg_sentence_length=round(avg_sentence_length, 1),
        technical_density=round(technical_density, 2),
        flesch_estimate=estimate_flesch(avg_sentence_length, avg_word_length),
        cognitive_load_index=cognitive_load_index(lexical_diversity, technical_density, avg_sentence_length),
    )


def _count_cues(sentences: Iterable[str], cues: Sequence[str]) -> int:
    return sum(1 for s in sentences if any(c in s for c in cues))


def dominant_bloom_level(text: str) -> str:
    """Bloom level whose action verbs occur most often in *text*."""
    lowered = [w.lower() for w in tokenize(text)]
    counts: Counter = Counter()
    for level, verbs in BLOOM_ACTION_VERBS.items():
        counts[level] = sum(1 for w in lowered if w in verbs)
    level, hits = counts.most_common(1)[0]
    return level if hits else "understand"


def derive_content_analysis(
    transcript: Sequence[TranscriptSegment],
    scripts: Sequence[PhaseScript] = (),
    subject_area: str = "",
) -> ContentAnalysis:
    """Build a ContentAnalysis from transcript and script text.

    WHY: Used when the job manifest carries no content-analysis summary.

    HOW: Text metrics drive the complexity ratings; cue phrases drive the
    element counts and the example/analogy/definition flags; the
    transcript's words per minute drives the pace requirement.

    Args:
        transcript: Transcript segments in time order.
        scripts: Phase scripts; their content and objectives are analysed
                 together with the transcript.
        subject_area: Optional subject label passed through unchanged.

    Returns:
        A ContentAnalysis suitable for CognitiveLoadAnalyzer.analyze().
    """
    parts = [seg.text for seg in transcript]
    parts.extend(s.content for s in scripts)
    parts.extend(obj for s in scripts for obj in s.objectives)
    text = " ".join(parts)
    metrics = compute_text_metrics(text)

    lowered_text = text.lower()
    sentences = [s.strip().lower() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]

    index = metrics.cognitive_load_index
    if index < 0.35:
        complexity = "low"
    elif index < 0.55:
        complexity = "medium"
    else:
        complexity = "high"

    if metrics.avg_sentence_length <= 12:
        structure = "simple"
    elif metrics.avg_sentence_length <= 20:
        structure = "moderate"
    else:
        structure = "complex"

    elements = {
        "facts": sum(1 for s in sentences if re.search(r"\d", s)),
    }
    for kind, cues in ELEMENT_CUES.items():
        elements[kind] = _count_cues(sentences, cues)

    abstract = len({w.lower() for w in tokenize(text) if w.lower() in ABSTRACT_TERMS})

    spoken_words = sum(len(tokenize(seg.text)) for seg in transcript)
    spoken_sec = sum(seg.duration_sec for seg in transcript)
    wpm = spoken_words / (spoken_sec / 60.0) if spoken_sec > 0 else 0.0
    if wpm > FAST_WPM:
        pace = "fast"
    elif 0 < wpm < SLOW_WPM:
        pace = "slow"
    else:
        pace = "moderate"

    return ContentAnalysis(
        overall_complexity=complexity,
        conceptual_density=round(min(1.0, metrics.technical_density * 2.5), 2),
        abstract_concepts=abstract,
        information_elements=elements,
        vocabulary_complexity=round(
            max(0.0, min(10.0, metrics.technical_density * 20 + (metrics.avg_word_length - 4) * 2)), 1
        ),
        sentence_complexity=round(min(10.0, metrics.avg_sentence_length / 3), 1),
        logical_structure=structure,
        novice_friendly=metrics.flesch_estimate >= 60,
        scaffolding_needed=complexity == "high",
        pace_requirement=pace,
        memory_load=complexity,
        attention_type="sustained" if spoken_sec > 600 else "focused",
        has_examples=any(c in lowered_text for c in EXAMPLE_CUES),
        has_analogies=any(c in lowered_text for c in ANALOGY_CUES),
        has_definitions=any(c in lowered_text for c in DEFINITION_CUES),
        dominant_bloom_level=dominant_bloom_level(text),
        subject_area=subject_area,
    )
