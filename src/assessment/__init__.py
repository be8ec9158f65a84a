# ABOUTME: Exposes the multi-layer response evaluator and the bottleneck analyzer.
# ABOUTME: Groups layer scorers, evaluation modes, batch scoring, and component diagnosis.

from .bottleneck import (
    BottleneckAnalysis,
    BottleneckConfig,
    BottleneckEvidence,
    CascadeAnalysis,
    analyze_bottleneck,
    analyze_cascade,
    downstream_components,
    improvement_trend,
    responses_frame,
    summarize_bottleneck,
    upstream_components,
)
from .evaluator import (
    DEFAULT_LAYERS,
    BatchEvaluation,
    EvaluationMode,
    EvaluationSpec,
    EvaluatorConfig,
    LayerSpec,
    TaskObject,
    classify_error,
    evaluate_response,
    evaluate_task,
)
from .layers import SCORERS, edit_similarity

__all__ = [
    "DEFAULT_LAYERS",
    "SCORERS",
    "BatchEvaluation",
    "BottleneckAnalysis",
    "BottleneckConfig",
    "BottleneckEvidence",
    "CascadeAnalysis",
    "EvaluationMode",
    "EvaluationSpec",
    "EvaluatorConfig",
    "LayerSpec",
    "TaskObject",
    "analyze_bottleneck",
    "analyze_cascade",
    "classify_error",
    "downstream_components",
    "evaluate_response",
    "evaluate_task",
    "improvement_trend",
    "edit_similarity",
    "responses_frame",
    "summarize_bottleneck",
    "upstream_components",
]
