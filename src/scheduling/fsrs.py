# ABOUTME: Implements the FSRS-4 memory-decay scheduler for per-object review cards.
# ABOUTME: Updates stability/difficulty from ratings and derives intervals, due dates, and recall odds.

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

from loguru import logger

from src.common.checks import require_range
from src.common.errors import MalformedInputError
from src.common.schemas import CardState, MemoryCard, Rating

DEFAULT_WEIGHTS: Tuple[float, ...] = (
    0.4, 0.6, 2.4, 5.8,
    4.93, 0.94, 0.86, 0.01,
    1.49, 0.14, 0.94,
    2.18, 0.05, 0.34, 1.26,
    0.29, 2.61,
)

_SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class SchedulerConfig:
    """FSRS parameters: target retention, interval cap, and the 17-weight vector."""

    request_retention: float = 0.9
    maximum_interval: int = 36500
    min_stability: float = 0.1
    weights: Tuple[float, ...] = field(default=DEFAULT_WEIGHTS)

    def __post_init__(self) -> None:
        if len(self.weights) != 17:
            raise MalformedInputError(f"FSRS expects 17 weights, got {len(self.weights)}")
        if not 0.0 < self.request_retention < 1.0:
            raise MalformedInputError(f"request_retention must be in (0, 1), got {self.request_retention}")
        if self.maximum_interval < 1:
            raise MalformedInputError("maximum_interval must be at least one day")
        # YAML hands weights over as a list.
        object.__setattr__(self, "weights", tuple(float(w) for w in self.weights))


def _parse_rating(rating: Union[int, Rating]) -> Rating:
    try:
        return Rating(int(rating))
    except (TypeError, ValueError) as exc:
        raise MalformedInputError(f"Rating must be 1-4, got {rating!r}") from exc


def elapsed_days(since: datetime, now: datetime) -> float:
    return (now - since).total_seconds() / _SECONDS_PER_DAY


class MemoryScheduler:
    """
    Free Spaced Repetition Scheduler (FSRS-4).

    Stability is the number of days until recall probability drops to 90%.
    Cards are never mutated: ``schedule`` returns a re-stated copy.
    """

    def __init__(self, config: Optional[SchedulerConfig] = None) -> None:
        self.config = config or SchedulerConfig()
        self.w = self.config.weights

    def retrievability(self, card: MemoryCard, now: datetime) -> float:
        """R = exp(-t / S); a card that was never reviewed has R = 0."""

        if card.last_review is None:
            return 0.0
        days = max(0.0, elapsed_days(card.last_review, now))
        return math.exp(-days / max(card.stability, self.config.min_stability))

    def schedule(self, card: MemoryCard, rating: Union[int, Rating], now: datetime) -> MemoryCard:
        rating = _parse_rating(rating)

        if card.state is CardState.NEW or card.last_review is None:
            stability = self.initial_stability(rating)
            difficulty = self.initial_difficulty(rating)
        else:
            r = self.retrievability(card, now)
            difficulty = self.next_difficulty(card.difficulty, rating)
            stability = self.next_stability(card.stability, card.difficulty, r, rating)

        lapses = card.lapses
        if rating.is_failing:
            lapses += 1
            state = CardState.RELAPSING
        else:
            state = CardState.REVIEW

        updated = replace(
            card,
            stability=max(stability, self.config.min_stability),
            difficulty=difficulty,
            last_review=now,
            reps=card.reps + 1,
            lapses=lapses,
            state=state,
        )
        logger.debug(
            "Scheduled card: rating={} state {}->{} stability {:.3f}->{:.3f}",
            rating.name,
            card.state.value,
            updated.state.value,
            card.stability,
            updated.stability,
        )
        return updated

    def next_interval(self, stability: float) -> int:
        interval = stability * math.log(self.config.request_retention) / math.log(0.9)
        return int(min(self.config.maximum_interval, max(1, round(interval))))

    def next_review_date(self, card: MemoryCard, now: Optional[datetime] = None) -> datetime:
        if card.last_review is None:
            return now or datetime.now()
        return card.last_review + timedelta(days=self.next_interval(card.stability))

    def is_due(self, card: MemoryCard, now: datetime) -> bool:
        if card.last_review is None:
            return True
        return self.next_review_date(card) <= now

    def initial_stability(self, rating: Rating) -> float:
        return self.w[int(rating) - 1]

    def initial_difficulty(self, rating: Rating) -> float:
        d = self.w[4] - (int(rating) - 3) * self.w[5]
        return min(10.0, max(1.0, d))

    def next_difficulty(self, difficulty: float, rating: Rating) -> float:
        d = difficulty - self.w[6] * (int(rating) - 3)
        return min(10.0, max(1.0, d))

    def next_stability(self, stability: float, difficulty: float, retrievability: float, rating: Rating) -> float:
        require_range(retrievability, "retrievability", 0.0, 1.0)
        w = self.w
        if rating.is_failing:
            lapsed = w[11] * difficulty ** -w[12] * ((stability + 1.0) ** w[13] - 1.0)
            return max(self.config.min_stability, lapsed)

        hard_penalty = w[15] if rating is Rating.HARD else 1.0
        easy_bonus = w[16] if rating is Rating.EASY else 1.0
        growth = (
            math.exp(w[8])
            * (11.0 - difficulty)
            * stability ** -w[9]
            * (math.exp((1.0 - retrievability) * w[10]) - 1.0)
            * hard_penalty
            * easy_bonus
        )
        return stability * (1.0 + growth)
