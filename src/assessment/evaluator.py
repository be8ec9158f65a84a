# ABOUTME: Scores learner responses against an object's evaluation spec.
# ABOUTME: Dispatches binary, partial-credit, range and rubric modes, classifies errors, and batches tasks.

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from src.common.checks import require_positive, require_probability
from src.common.errors import MalformedInputError
from src.common.schemas import ComponentType, ErrorKind, EvaluationResult, parse_component

from .layers import SCORERS, edit_similarity, form_score, normalize, tokens

FORM_SIMILARITY_THRESHOLD = 0.6


class EvaluationMode(str, Enum):
    BINARY = "binary"
    PARTIAL_CREDIT = "partial_credit"
    RANGE_BASED = "range_based"
    RUBRIC_BASED = "rubric_based"

    @classmethod
    def parse(cls, value: Union[str, "EvaluationMode"]) -> "EvaluationMode":
        if isinstance(value, EvaluationMode):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError as exc:
            raise MalformedInputError(
                f"Unsupported evaluation mode '{value}'. Expected one of: {', '.join(m.value for m in cls)}."
            ) from exc


@dataclass(frozen=True)
class LayerSpec:
    name: str
    weight: float
    scorer: Optional[str] = None

    def __post_init__(self) -> None:
        require_positive(self.weight, f"layer '{self.name}' weight")
        if self.scorer_name not in SCORERS:
            raise MalformedInputError(
                f"Unknown layer scorer '{self.scorer_name}'. Expected one of: {', '.join(SCORERS)}."
            )

    @property
    def scorer_name(self) -> str:
        return self.scorer or self.name


DEFAULT_LAYERS: Tuple[LayerSpec, ...] = (
    LayerSpec("meaning", 0.5),
    LayerSpec("spelling", 0.3),
    LayerSpec("context", 0.2),
)


@dataclass(frozen=True)
class EvaluatorConfig:
    pass_threshold: float = 0.6
    range_tolerance: float = 0.2
    learning_rate: float = 0.2
    global_weight: float = 0.5
    layers: Tuple[LayerSpec, ...] = DEFAULT_LAYERS

    def __post_init__(self) -> None:
        require_probability(self.pass_threshold, "pass_threshold")
        require_probability(self.range_tolerance, "range_tolerance")
        layers = tuple(LayerSpec(**layer) if isinstance(layer, Mapping) else layer for layer in self.layers)
        object.__setattr__(self, "layers", layers)


@dataclass(frozen=True)
class EvaluationSpec:
    """How one object's response is judged; ``accepted`` holds every acceptable answer."""

    object_id: str
    accepted: Tuple[str, ...]
    mode: EvaluationMode = EvaluationMode.BINARY
    layers: Tuple[LayerSpec, ...] = ()
    register: str = "neutral"
    rubric: Mapping[str, float] = field(default_factory=dict)
    tolerance: Optional[float] = None
    component: ComponentType = ComponentType.LEX

    def __post_init__(self) -> None:
        if not self.accepted or not any(a.strip() for a in self.accepted):
            raise MalformedInputError(f"Spec for '{self.object_id}' has no accepted answers")
        object.__setattr__(self, "accepted", tuple(self.accepted))
        object.__setattr__(self, "mode", EvaluationMode.parse(self.mode))
        object.__setattr__(self, "component", parse_component(self.component))
        for criterion, weight in self.rubric.items():
            require_positive(weight, f"rubric weight '{criterion}'")


def classify_error(expected: str, actual: str) -> Optional[ErrorKind]:
    """
    Token-alignment error kind, or None when the answers match.

    Same tokens in another order is ORDERING, pure deletions are OMISSION,
    one-to-one replacements that stay close in spelling are FORM_ERROR, and
    anything else is SUBSTITUTION.
    """

    want, got = tokens(expected), tokens(actual)
    if want == got:
        return None
    if not got:
        return ErrorKind.OMISSION
    if sorted(want) == sorted(got):
        return ErrorKind.ORDERING

    edits = [op for op in SequenceMatcher(a=want, b=got, autojunk=False).get_opcodes() if op[0] != "equal"]
    if all(tag == "delete" for tag, *_ in edits):
        return ErrorKind.OMISSION
    if all(tag == "replace" and (i2 - i1) == (j2 - j1) for tag, i1, i2, j1, j2 in edits):
        close = all(
            edit_similarity(w, g) >= FORM_SIMILARITY_THRESHOLD
            for _, i1, i2, j1, j2 in edits
            for w, g in zip(want[i1:i2], got[j1:j2])
        )
        if close:
            return ErrorKind.FORM_ERROR
    return ErrorKind.SUBSTITUTION


def _closest_variant(response: str, accepted: Sequence[str]) -> str:
    return max(accepted, key=lambda variant: edit_similarity(response, variant))


def _layer_scores(spec: EvaluationSpec, response: str, config: EvaluatorConfig) -> Tuple[Dict[str, float], float]:
    layers = spec.layers or config.layers
    scores: Dict[str, float] = OrderedDict()
    for layer in layers:
        scores[layer.name] = float(SCORERS[layer.scorer_name](response, spec.accepted, spec.register))
    total_weight = sum(layer.weight for layer in layers)
    composite = sum(layer.weight * scores[layer.name] for layer in layers) / total_weight
    return scores, composite


def _rubric_score(spec: EvaluationSpec, rubric_scores: Optional[Mapping[str, float]]) -> Tuple[Dict[str, float], float]:
    if not rubric_scores:
        raise MalformedInputError(f"Rubric mode for '{spec.object_id}' needs externally supplied criterion scores")
    weights = dict(spec.rubric) or {name: 1.0 for name in rubric_scores}
    missing = set(weights) - set(rubric_scores)
    if missing:
        raise MalformedInputError(f"Missing rubric scores for: {', '.join(sorted(missing))}")
    scores = {name: require_probability(rubric_scores[name], f"rubric score '{name}'") for name in weights}
    composite = sum(weights[name] * scores[name] for name in weights) / sum(weights.values())
    return scores, composite


def evaluate_response(
    spec: EvaluationSpec,
    response: str,
    config: Optional[EvaluatorConfig] = None,
    rubric_scores: Optional[Mapping[str, float]] = None,
) -> EvaluationResult:
    config = config or EvaluatorConfig()
    mode = spec.mode

    if mode is EvaluationMode.BINARY:
        score = form_score(response, spec.accepted)
        layer_scores = {"form": score}
        correct = score == 1.0
    elif mode is EvaluationMode.PARTIAL_CREDIT:
        layer_scores, score = _layer_scores(spec, response, config)
        correct = score >= config.pass_threshold
    elif mode is EvaluationMode.RANGE_BASED:
        tolerance = config.range_tolerance if spec.tolerance is None else spec.tolerance
        similarity = max(edit_similarity(response, variant) for variant in spec.accepted)
        correct = (1.0 - similarity) <= tolerance
        score = 1.0 if correct else similarity
        layer_scores = {"spelling": similarity}
    elif mode is EvaluationMode.RUBRIC_BASED:
        layer_scores, score = _rubric_score(spec, rubric_scores)
        correct = score >= config.pass_threshold
    else:
        raise MalformedInputError(f"Unsupported evaluation mode '{mode}'.")

    error_kind = None
    if not correct:
        error_kind = classify_error(_closest_variant(response, spec.accepted), response)
        if error_kind is None:
            # Normalised text matches but the score still fell short (rubric or weak layers).
            error_kind = ErrorKind.SUBSTITUTION if normalize(response) else ErrorKind.OMISSION

    return EvaluationResult(
        object_id=spec.object_id,
        score=float(max(0.0, min(1.0, score))),
        correct=bool(correct),
        layer_scores=dict(layer_scores),
        error_kind=error_kind,
        mode=mode.value,
    )


@dataclass(frozen=True)
class TaskObject:
    """One object embedded in a multi-object task, with the learner's answer for it."""

    spec: EvaluationSpec
    response: str
    role_weight: float = 1.0
    rubric_scores: Optional[Mapping[str, float]] = None

    def __post_init__(self) -> None:
        require_positive(self.role_weight, "role_weight")


@dataclass(frozen=True)
class BatchEvaluation:
    composite: float
    results: List[EvaluationResult]
    theta_deltas: Dict[str, float]


def evaluate_task(objects: Sequence[TaskObject], config: Optional[EvaluatorConfig] = None) -> BatchEvaluation:
    """
    Evaluate every object of a task and derive per-component theta deltas.

    Each object contributes ``learning_rate * role_weight * (2 * score - 1)``
    to its component; the ``global`` entry is ``global_weight`` times the
    role-weighted mean contribution.
    """

    config = config or EvaluatorConfig()
    if not objects:
        raise MalformedInputError("A task needs at least one object to evaluate")

    results = [evaluate_response(o.spec, o.response, config, o.rubric_scores) for o in objects]
    total_weight = sum(o.role_weight for o in objects)
    composite = sum(o.role_weight * r.score for o, r in zip(objects, results)) / total_weight

    deltas: Dict[str, float] = {}
    overall = 0.0
    for obj, result in zip(objects, results):
        contribution = config.learning_rate * obj.role_weight * (2.0 * result.score - 1.0)
        key = obj.spec.component.value
        deltas[key] = deltas.get(key, 0.0) + contribution
        overall += contribution
    deltas["global"] = config.global_weight * overall / total_weight

    logger.debug("Evaluated task with {} objects: composite {:.3f}", len(objects), composite)
    return BatchEvaluation(composite=float(composite), results=results, theta_deltas=deltas)
