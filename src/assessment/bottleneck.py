# ABOUTME: Diagnoses which linguistic component is holding a learner back.
# ABOUTME: Aggregates response history per component and traces error cascades to a root cause.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from src.common.errors import MalformedInputError
from src.common.schemas import CASCADE_ORDER, ComponentType, ResponseRecord, parse_component

COMPONENT_NAMES: Dict[ComponentType, str] = {
    ComponentType.PHON: "Phonology (sounds and pronunciation)",
    ComponentType.MORPH: "Morphology (word forms and structure)",
    ComponentType.LEX: "Vocabulary (word meanings)",
    ComponentType.SYNT: "Syntax (sentence structure)",
    ComponentType.PRAG: "Pragmatics (context and usage)",
}

COMPONENT_SHORT: Dict[ComponentType, str] = {
    ComponentType.PHON: "pronunciation",
    ComponentType.MORPH: "word forms",
    ComponentType.LEX: "vocabulary",
    ComponentType.SYNT: "grammar",
    ComponentType.PRAG: "usage",
}

REQUIRED_COLUMNS = ("component", "correct", "timestamp")


@dataclass(frozen=True)
class BottleneckConfig:
    min_responses: int = 20
    min_responses_per_component: int = 5
    error_rate_threshold: float = 0.3
    cascade_confidence: float = 0.7
    downstream_factor: float = 0.67
    recent_fraction: float = 0.25


@dataclass(frozen=True)
class BottleneckEvidence:
    component: ComponentType
    error_rate: float
    responses: int
    error_patterns: List[str] = field(default_factory=list)
    cooccurring_errors: List[ComponentType] = field(default_factory=list)
    improvement: float = 0.0
    dominant_error_kind: Optional[str] = None


@dataclass(frozen=True)
class CascadeAnalysis:
    root_cause: Optional[ComponentType]
    chain: List[ComponentType]
    confidence: float


@dataclass(frozen=True)
class BottleneckAnalysis:
    primary: Optional[ComponentType]
    confidence: float
    evidence: List[BottleneckEvidence]
    cascade: CascadeAnalysis
    recommendation: str


def responses_frame(responses: Union[pd.DataFrame, Sequence[ResponseRecord]]) -> pd.DataFrame:
    """Normalise a response log into a frame whose ``component`` column holds ComponentType values as plain strings."""

    if isinstance(responses, pd.DataFrame):
        frame = responses.copy()
    else:
        frame = pd.DataFrame(
            [
                {
                    "response_id": r.response_id,
                    "object_id": r.object_id,
                    "component": r.component,
                    "session_id": r.session_id,
                    "content": r.content,
                    "correct": r.correct,
                    "timestamp": r.timestamp,
                    "error_kind": r.error_kind.value if r.error_kind is not None else None,
                }
                for r in responses
            ],
            columns=["response_id", "object_id", "component", "session_id", "content", "correct", "timestamp", "error_kind"],
        )

    missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        raise MalformedInputError(f"Response history is missing columns: {', '.join(missing)}")
    for column, default in (("session_id", ""), ("content", ""), ("error_kind", None)):
        if column not in frame.columns:
            frame[column] = default
    frame["component"] = frame["component"].map(lambda c: parse_component(c).value)
    frame["correct"] = frame["correct"].astype(bool)
    frame["timestamp"] = pd.to_datetime(frame["timestamp"])
    frame["content"] = frame["content"].fillna("").astype(str)
    return frame.sort_values("timestamp", kind="mergesort").reset_index(drop=True)


def extract_error_pattern(component: ComponentType, content: str) -> str:
    text = content.lower()
    if component is ComponentType.PHON:
        if "th" in text:
            return "th-sounds"
        if "r" in text or "l" in text:
            return "r/l distinction"
        if re.search(r"[aeiou]{2}", text):
            return "vowel combinations"
        return "other pronunciation"
    if component is ComponentType.MORPH:
        if text.endswith("ing"):
            return "-ing endings"
        if text.endswith("ed"):
            return "-ed endings"
        if text.endswith("s"):
            return "plurals/3rd person"
        if text.endswith("tion"):
            return "-tion nominalizations"
        return "other word forms"
    if component is ComponentType.LEX:
        if len(text) > 10:
            return "complex vocabulary"
        if len(text) <= 4:
            return "basic vocabulary"
        return "intermediate vocabulary"
    if component is ComponentType.SYNT:
        if "if" in text or "when" in text:
            return "conditional clauses"
        if "who" in text or "which" in text:
            return "relative clauses"
        if "," in text:
            return "compound sentences"
        return "simple sentence patterns"
    if "please" in text or "could" in text:
        return "politeness markers"
    if "sorry" in text or "excuse" in text:
        return "apology patterns"
    return "discourse markers"


def analyze_error_patterns(errors: pd.DataFrame, top_n: int = 5) -> List[str]:
    """Recurring error patterns (two or more hits), most frequent first."""

    if errors.empty:
        return []
    patterns = [extract_error_pattern(parse_component(c), t) for c, t in zip(errors["component"], errors["content"])]
    counts = pd.Series(patterns).value_counts(sort=False)
    counts = counts[counts >= 2].sort_values(ascending=False, kind="mergesort")
    return [f"{pattern} ({count}×)" for pattern, count in counts.head(top_n).items()]


def find_cooccurring_errors(component: ComponentType, frame: pd.DataFrame) -> List[ComponentType]:
    """Components that also had errors in at least two of the sessions where ``component`` failed."""

    errors = frame[~frame["correct"]]
    if errors.empty:
        return []
    counts: Dict[ComponentType, int] = {}
    for _, session in errors.groupby("session_id", sort=False):
        components = set(session["component"])
        if component.value not in components:
            continue
        for other in components - {component.value}:
            other = ComponentType(other)
            counts[other] = counts.get(other, 0) + 1
    ranked = sorted(((n, CASCADE_ORDER.index(c), c) for c, n in counts.items() if n >= 2), key=lambda x: (-x[0], x[1]))
    return [c for _, _, c in ranked]


def improvement_trend(component: Union[str, ComponentType], frame: pd.DataFrame) -> float:
    """First-half minus second-half error rate; positive means improving."""

    component = parse_component(component)
    subset = frame[frame["component"] == component.value]
    if len(subset) < 4:
        return 0.0
    midpoint = len(subset) // 2
    first = (~subset["correct"].iloc[:midpoint]).mean()
    second = (~subset["correct"].iloc[midpoint:]).mean()
    return float(first - second)


def downstream_components(component: Union[str, ComponentType]) -> List[ComponentType]:
    position = CASCADE_ORDER.index(parse_component(component))
    return list(CASCADE_ORDER[position + 1:])


def upstream_components(component: Union[str, ComponentType]) -> List[ComponentType]:
    position = CASCADE_ORDER.index(parse_component(component))
    return list(CASCADE_ORDER[:position])


def build_evidence(frame: pd.DataFrame, config: BottleneckConfig) -> List[BottleneckEvidence]:
    recent_start = int(len(frame) * (1.0 - config.recent_fraction))
    recent = frame.iloc[recent_start:]
    evidence = []
    for component in CASCADE_ORDER:
        rows = frame[frame["component"] == component.value]
        if len(rows) < config.min_responses_per_component:
            continue
        errors = rows[~rows["correct"]]
        error_rate = len(errors) / len(rows)
        recent_rows = recent[recent["component"] == component.value]
        recent_rate = (~recent_rows["correct"]).mean() if len(recent_rows) else 0.0

        kinds = errors["error_kind"].dropna()
        dominant = str(kinds.value_counts().idxmax()) if not kinds.empty else None

        evidence.append(
            BottleneckEvidence(
                component=component,
                error_rate=float(error_rate),
                responses=int(len(rows)),
                error_patterns=analyze_error_patterns(errors),
                cooccurring_errors=find_cooccurring_errors(component, frame),
                improvement=float(error_rate - recent_rate),
                dominant_error_kind=dominant,
            )
        )
    return evidence


def analyze_cascade(evidence: Sequence[BottleneckEvidence], config: Optional[BottleneckConfig] = None) -> CascadeAnalysis:
    """The earliest component over threshold whose downstream components also struggle is the root cause."""

    config = config or BottleneckConfig()
    rates = {e.component: e.error_rate for e in evidence}
    for component in CASCADE_ORDER:
        if component not in rates or rates[component] < config.error_rate_threshold:
            continue
        downstream = [
            c
            for c in downstream_components(component)
            if c in rates and rates[c] >= config.error_rate_threshold * config.downstream_factor
        ]
        if downstream:
            return CascadeAnalysis(component, [component] + downstream, config.cascade_confidence)
    return CascadeAnalysis(None, [], 0.0)


def _highest_error_rate(evidence: Sequence[BottleneckEvidence], config: BottleneckConfig) -> Optional[ComponentType]:
    best, best_rate = None, 0.0
    for e in evidence:
        if e.error_rate > best_rate and e.error_rate >= config.error_rate_threshold:
            best, best_rate = e.component, e.error_rate
    return best


def _confidence(evidence: Sequence[BottleneckEvidence], total: int, cascade: CascadeAnalysis) -> float:
    if not evidence:
        return 0.0
    rates = sorted((e.error_rate for e in evidence), reverse=True)
    differentiation = rates[0] - rates[1] if len(rates) >= 2 else 0.0
    cascade_boost = 0.2 if cascade.root_cause is not None else 0.0
    return min(1.0, min(1.0, total / 50.0) + cascade_boost + min(0.2, differentiation))


def build_recommendation(
    primary: Optional[ComponentType],
    evidence: Sequence[BottleneckEvidence],
    cascade: CascadeAnalysis,
) -> str:
    if primary is None:
        return "No significant bottleneck detected. Continue balanced practice across all areas."

    ev = next((e for e in evidence if e.component is primary), None)
    rate = round(ev.error_rate * 100) if ev else 0
    parts = [f"Focus on {COMPONENT_NAMES[primary]} ({rate}% error rate)."]
    if cascade.root_cause is primary and len(cascade.chain) > 1:
        helped = ", ".join(COMPONENT_SHORT[c] for c in cascade.chain[1:])
        parts.append(f"Improving this will also help with {helped}.")
    if ev and ev.error_patterns:
        parts.append(f"Specifically practice: {ev.error_patterns[0].split(' (')[0]}.")
    if ev and ev.improvement > 0.05:
        parts.append("(Already improving - keep it up!)")
    elif ev and ev.improvement < -0.05:
        parts.append("(Needs extra attention - performance declining.)")
    return " ".join(parts)


def analyze_bottleneck(
    responses: Union[pd.DataFrame, Sequence[ResponseRecord]],
    config: Optional[BottleneckConfig] = None,
) -> BottleneckAnalysis:
    config = config or BottleneckConfig()
    frame = responses_frame(responses)
    if len(frame) < config.min_responses:
        return BottleneckAnalysis(
            primary=None,
            confidence=0.0,
            evidence=[],
            cascade=CascadeAnalysis(None, [], 0.0),
            recommendation=f"Need more data for analysis ({len(frame)}/{config.min_responses} responses)",
        )

    evidence = build_evidence(frame, config)
    cascade = analyze_cascade(evidence, config)
    primary = cascade.root_cause or _highest_error_rate(evidence, config)
    return BottleneckAnalysis(
        primary=primary,
        confidence=_confidence(evidence, len(frame), cascade),
        evidence=sorted(evidence, key=lambda e: e.error_rate, reverse=True),
        cascade=cascade,
        recommendation=build_recommendation(primary, evidence, cascade),
    )


def summarize_bottleneck(analysis: BottleneckAnalysis) -> str:
    if analysis.primary is None:
        return "No bottleneck detected"
    ev = next((e for e in analysis.evidence if e.component is analysis.primary), None)
    if ev is None:
        return f"Bottleneck: {COMPONENT_SHORT[analysis.primary]}"
    return f"{COMPONENT_SHORT[analysis.primary]} ({round(ev.error_rate * 100)}% errors)"
