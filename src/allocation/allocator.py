# ABOUTME: Splits a practice-time budget across competing curriculum goals.
# ABOUTME: Samples bounded share vectors, keeps the Pareto frontier, and picks one by policy.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from loguru import logger

from src.common.checks import require_finite
from src.common.errors import MalformedInputError, NoCandidate
from src.common.schemas import CurriculumGoal


class AllocationPolicy(str, Enum):
    BALANCED = "balanced"
    DEADLINE_FOCUSED = "deadline_focused"
    PROGRESS_FOCUSED = "progress_focused"
    SYNERGY_FOCUSED = "synergy_focused"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Union[str, "AllocationPolicy"]) -> "AllocationPolicy":
        if isinstance(value, AllocationPolicy):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        for member in cls:
            if member.value == normalized:
                return member
        raise MalformedInputError(
            f"Unsupported allocation policy '{value}'. Expected one of: {', '.join(m.value for m in cls)}."
        )


@dataclass(frozen=True)
class AllocationConfig:
    min_share: float = 0.05
    max_share: float = 0.8
    pareto_samples: int = 20
    perturbation_scale: float = 0.15
    seed: Optional[int] = 7
    progress_rate: float = 0.05
    risk_steepness: float = 4.0
    shared_object_bonus: float = 1.5
    same_domain_similarity: float = 1.0
    cross_domain_similarity: float = 0.25
    transfer_rate: float = 0.1
    custom_weights: Mapping[str, float] = field(
        default_factory=lambda: {"progress": 1.0, "risk": 1.0, "balance": 0.5, "synergy": 0.5}
    )

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_share <= self.max_share <= 1.0:
            raise MalformedInputError("shares must satisfy 0 <= min_share <= max_share <= 1")
        if self.pareto_samples < 0:
            raise MalformedInputError("pareto_samples must be non-negative")
        unknown = set(self.custom_weights) - {"progress", "risk", "balance", "synergy"}
        if unknown:
            raise MalformedInputError(f"Unknown custom weight(s): {', '.join(sorted(unknown))}")


@dataclass(frozen=True)
class GoalAllocation:
    goal_id: str
    share: float
    minutes: float
    expected_progress: float
    inbound_transfer: float
    risk: float
    active: bool = True


@dataclass(frozen=True)
class AllocationPlan:
    allocations: List[GoalAllocation]
    policy: AllocationPolicy
    budget_minutes: float
    frontier_size: int
    candidates_evaluated: int
    explanation: str

    @property
    def shares(self) -> Dict[str, float]:
        return {a.goal_id: a.share for a in self.allocations}


@dataclass(frozen=True)
class _Evaluation:
    shares: np.ndarray
    progress: np.ndarray
    inbound: np.ndarray
    risk: np.ndarray
    synergy: float


def project_shares(raw: np.ndarray, low: float, high: float) -> np.ndarray:
    """Project non-negative weights onto {x : sum(x) = 1, low <= x <= high} by water-filling."""

    x = np.clip(np.asarray(raw, dtype=float), 0.0, None)
    n = x.size
    x = x / x.sum() if x.sum() > 0 else np.full(n, 1.0 / n)
    for _ in range(2 * n + 2):
        x = np.clip(x, low, high)
        excess = 1.0 - x.sum()
        if abs(excess) < 1e-12:
            break
        movable = x < high if excess > 0 else x > low
        if not movable.any():
            break
        basis = x[movable] if x[movable].sum() > 0 else np.ones(int(movable.sum()))
        x[movable] += excess * basis / basis.sum()
    return x


def transfer_matrix(goals: Sequence[CurriculumGoal], config: AllocationConfig) -> np.ndarray:
    """Pairwise coefficients in [0, 1] from domain similarity and shared-object overlap."""

    n = len(goals)
    matrix = np.zeros((n, n))
    for i, left in enumerate(goals):
        for j, right in enumerate(goals):
            if i == j:
                continue
            similarity = config.same_domain_similarity if left.domain == right.domain else config.cross_domain_similarity
            smaller = min(len(left.object_ids), len(right.object_ids))
            overlap = len(left.object_ids & right.object_ids) / smaller if smaller else 0.0
            matrix[i, j] = min(1.0, 0.5 * similarity + 0.5 * overlap)
    return matrix


def shared_object_benefit(goals: Sequence[CurriculumGoal], config: AllocationConfig) -> np.ndarray:
    """Per-goal benefit multiplier: objects used by two or more goals count ``shared_object_bonus`` times."""

    usage: Dict[str, int] = {}
    for goal in goals:
        for object_id in goal.object_ids:
            usage[object_id] = usage.get(object_id, 0) + 1
    benefits = []
    for goal in goals:
        if not goal.object_ids:
            benefits.append(1.0)
            continue
        total = sum(config.shared_object_bonus if usage[o] >= 2 else 1.0 for o in goal.object_ids)
        benefits.append(total / len(goal.object_ids))
    return np.asarray(benefits)


def _risk(required_rate: np.ndarray, achieved_rate: np.ndarray, steepness: float) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(achieved_rate > 0, required_rate / achieved_rate, np.inf)
    z = np.clip(steepness * (ratio - 1.0), -50.0, 50.0)
    return 1.0 / (1.0 + np.exp(-z))


def _dominates(left: np.ndarray, right: np.ndarray) -> bool:
    return bool(np.all(left >= right) and np.any(left > right))


def pareto_frontier(evaluations: Sequence[_Evaluation]) -> List[_Evaluation]:
    return [
        candidate
        for i, candidate in enumerate(evaluations)
        if not any(_dominates(other.progress, candidate.progress) for j, other in enumerate(evaluations) if j != i)
    ]


def _select(frontier: Sequence[_Evaluation], weights: np.ndarray, policy: AllocationPolicy, config: AllocationConfig):
    if policy is AllocationPolicy.BALANCED:
        return min(frontier, key=lambda e: float(np.var(e.progress)))
    if policy is AllocationPolicy.DEADLINE_FOCUSED:
        return min(frontier, key=lambda e: float(np.max(e.risk)))
    if policy is AllocationPolicy.PROGRESS_FOCUSED:
        return max(frontier, key=lambda e: float(np.dot(weights, e.progress)))
    if policy is AllocationPolicy.SYNERGY_FOCUSED:
        return max(frontier, key=lambda e: e.synergy)

    w = config.custom_weights
    best_total = max(float(np.dot(weights, e.progress)) for e in frontier) or 1.0
    best_synergy = max(e.synergy for e in frontier) or 1.0

    def custom_score(e: _Evaluation) -> float:
        return (
            w.get("progress", 0.0) * float(np.dot(weights, e.progress)) / best_total
            - w.get("risk", 0.0) * float(np.max(e.risk))
            - w.get("balance", 0.0) * float(np.std(e.progress))
            + w.get("synergy", 0.0) * e.synergy / best_synergy
        )

    return max(frontier, key=custom_score)


def allocate_time(
    goals: Sequence[CurriculumGoal],
    budget_minutes: float,
    policy: Union[str, AllocationPolicy] = AllocationPolicy.BALANCED,
    config: Optional[AllocationConfig] = None,
) -> Union[AllocationPlan, NoCandidate]:
    """
    Split ``budget_minutes`` across the active goals.

    Candidates are the uniform, deadline-weighted and progress-weighted splits
    plus ``pareto_samples`` random perturbations, each projected into
    [min_share, max_share] with shares summing to 1. Expected progress is
    ``progress_rate * sqrt(minutes)`` plus inbound transfer from related goals;
    risk is a sigmoid of required rate over achieved rate.
    """

    config = config or AllocationConfig()
    policy = AllocationPolicy.parse(policy)
    budget = require_finite(budget_minutes, "budget_minutes")
    if budget <= 0:
        return NoCandidate("no practice time to allocate")
    goal_ids = [g.goal_id for g in goals]
    if len(set(goal_ids)) != len(goal_ids):
        raise MalformedInputError("goal ids must be unique")

    active = [g for g in goals if g.is_active]
    if not active:
        return NoCandidate("no active goals")

    n = len(active)
    low, high = config.min_share, config.max_share
    if n == 1 and high < 1.0:
        logger.warning("Single active goal; relaxing max share {} to 1.0", high)
        high = 1.0
    if n * low > 1.0:
        logger.warning("{} goals cannot each get {:.0%}; relaxing min share to {:.4f}", n, low, 1.0 / n)
        low = 1.0 / n
    if n * high < 1.0:
        logger.warning("{} goals cannot cover the budget at {:.0%}; relaxing max share to {:.4f}", n, high, 1.0 / n)
        high = 1.0 / n

    weights = np.asarray([g.weight for g in active])
    gaps = np.asarray([g.gap for g in active])
    deadlines = np.asarray([max(g.deadline_days, 1.0) for g in active])
    required_rate = np.where(np.asarray([g.deadline_days for g in active]) > 0, gaps / deadlines, np.inf)
    transfers = transfer_matrix(active, config)
    benefits = shared_object_benefit(active, config)

    bases = [np.ones(n), weights / deadlines, weights * gaps]
    rng = np.random.default_rng(config.seed)
    raw_candidates = list(bases)
    for k in range(config.pareto_samples):
        base = project_shares(bases[k % len(bases)], low, high)
        raw_candidates.append(base + rng.normal(0.0, config.perturbation_scale, n))

    evaluations = []
    for raw in raw_candidates:
        shares = project_shares(raw, low, high)
        direct = config.progress_rate * np.sqrt(shares * budget)
        inbound = config.transfer_rate * transfers @ direct
        progress = direct + inbound
        evaluations.append(
            _Evaluation(
                shares=shares,
                progress=progress,
                inbound=inbound,
                risk=_risk(required_rate, progress, config.risk_steepness),
                synergy=float(np.dot(shares * weights, benefits) + inbound.sum()),
            )
        )

    frontier = pareto_frontier(evaluations)
    chosen = _select(frontier, weights, policy, config)
    logger.debug("Allocation: {} candidates, {} on frontier, policy {}", len(evaluations), len(frontier), policy.value)

    by_id = {g.goal_id: i for i, g in enumerate(active)}
    allocations = []
    for goal in goals:
        i = by_id.get(goal.goal_id)
        if i is None:
            allocations.append(GoalAllocation(goal.goal_id, 0.0, 0.0, 0.0, 0.0, 0.0, active=False))
            continue
        share = float(chosen.shares[i])
        allocations.append(
            GoalAllocation(
                goal_id=goal.goal_id,
                share=share,
                minutes=share * budget,
                expected_progress=float(chosen.progress[i]),
                inbound_transfer=float(chosen.inbound[i]),
                risk=float(chosen.risk[i]),
            )
        )

    lines = [f"policy={policy.value}: chose 1 of {len(frontier)} frontier allocations ({len(evaluations)} sampled)"]
    for a in allocations:
        if a.active:
            lines.append(f"{a.goal_id}: {a.share:.1%} ({a.minutes:.1f} min), progress {a.expected_progress:.3f}, risk {a.risk:.2f}")
        else:
            lines.append(f"{a.goal_id}: inactive (target reached)")

    return AllocationPlan(
        allocations=allocations,
        policy=policy,
        budget_minutes=budget,
        frontier_size=len(frontier),
        candidates_evaluated=len(evaluations),
        explanation="\n".join(lines),
    )


def record_session_progress(goal: CurriculumGoal, new_theta: float, days_elapsed: float = 0.0) -> CurriculumGoal:
    """Goal after a session: realised ability and the remaining deadline."""

    new_theta = require_finite(new_theta, "new_theta")
    days_elapsed = require_finite(days_elapsed, "days_elapsed")
    if days_elapsed < 0:
        raise MalformedInputError("days_elapsed must be non-negative")
    return replace(goal, current_theta=new_theta, deadline_days=goal.deadline_days - days_elapsed)
