# ABOUTME: Loads the engine configuration from YAML into per-module dataclasses.
# ABOUTME: Every section is optional; unknown sections or keys are rejected.

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from src.allocation.allocator import AllocationConfig
from src.assessment.bottleneck import BottleneckConfig
from src.assessment.evaluator import EvaluatorConfig
from src.constraints.propagation import PropagationConfig
from src.irt.calibration import CalibrationConfig
from src.irt.estimation import ThetaEstimatorConfig
from src.lexical.pmi import LexicalConfig
from src.priority.engine import PriorityConfig
from src.scheduling.fsrs import SchedulerConfig

from .errors import MalformedInputError


@dataclass(frozen=True)
class SessionConfig:
    session_size: int = 10
    new_ratio: float = 0.3
    resolution_policy: str = "drop"
    budget_minutes: float = 30.0


@dataclass(frozen=True)
class EngineConfig:
    irt: ThetaEstimatorConfig = field(default_factory=ThetaEstimatorConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    lexical: LexicalConfig = field(default_factory=LexicalConfig)
    priority: PriorityConfig = field(default_factory=PriorityConfig)
    propagation: PropagationConfig = field(default_factory=PropagationConfig)
    allocation: AllocationConfig = field(default_factory=AllocationConfig)
    evaluator: EvaluatorConfig = field(default_factory=EvaluatorConfig)
    bottleneck: BottleneckConfig = field(default_factory=BottleneckConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    @classmethod
    def default(cls) -> "EngineConfig":
        return cls()


SECTION_TYPES = {
    "irt": ThetaEstimatorConfig,
    "calibration": CalibrationConfig,
    "scheduler": SchedulerConfig,
    "lexical": LexicalConfig,
    "priority": PriorityConfig,
    "propagation": PropagationConfig,
    "allocation": AllocationConfig,
    "evaluator": EvaluatorConfig,
    "bottleneck": BottleneckConfig,
    "session": SessionConfig,
}


def _build(section: str, cls, values: Optional[Mapping[str, Any]]):
    if values is None:
        return cls()
    if not isinstance(values, Mapping):
        raise MalformedInputError(f"Config section '{section}' must be a mapping")
    allowed = {f.name for f in fields(cls)}
    unknown = set(values) - allowed
    if unknown:
        raise MalformedInputError(f"Unknown key(s) in config section '{section}': {', '.join(sorted(unknown))}")
    try:
        return cls(**values)
    except TypeError as exc:
        raise MalformedInputError(f"Invalid config section '{section}': {exc}") from exc


def engine_config_from_dict(raw: Optional[Mapping[str, Any]]) -> EngineConfig:
    raw = dict(raw or {})
    unknown = set(raw) - set(SECTION_TYPES)
    if unknown:
        raise MalformedInputError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

    calibration = dict(raw.get("calibration") or {})
    if isinstance(calibration.get("estimator"), Mapping):
        calibration["estimator"] = _build("calibration.estimator", ThetaEstimatorConfig, calibration["estimator"])
    if calibration:
        raw["calibration"] = calibration

    return EngineConfig(**{name: _build(name, cls, raw.get(name)) for name, cls in SECTION_TYPES.items()})


def load_engine_config(path: Union[str, Path, None] = None) -> EngineConfig:
    if path is None:
        return EngineConfig.default()
    with open(path) as f:
        raw = yaml.safe_load(f)
    if raw is not None and not isinstance(raw, Mapping):
        raise MalformedInputError(f"Config file {path} must contain a mapping at the top level")
    return engine_config_from_dict(raw)
