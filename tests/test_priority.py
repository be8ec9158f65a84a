# ABOUTME: Tests priority scoring, queue ordering, and session mixing.
# ABOUTME: Exercises the mastery curve, context boosts, transfer, urgency, and bottleneck terms.

import unittest
from datetime import datetime, timedelta

import pytest

from src.common.schemas import CardState, ComponentType, FeatureVector, LanguageObject, MemoryCard
from src.priority.engine import (
    PriorityConfig,
    PriorityEngine,
    SessionContext,
    assign_priorities,
    base_score,
    build_learning_queue,
    infer_level,
    mastery_adjustment,
    mastery_function,
    session_items,
    urgency_score,
)
from src.scheduling.fsrs import MemoryScheduler
from src.scheduling.mastery import MasteryRecord

NOW = datetime(2024, 6, 3, 8, 30)


def _mk_object(
    object_id, frequency=0.5, component=ComponentType.LEX, domains=None, tags=(), morph=0.5, phon=0.5, density=0.5
):
    features = FeatureVector(
        frequency=frequency,
        relational_density=density,
        domain_distribution=domains or {},
        morphological_score=morph,
        phonological_difficulty=phon,
    )
    return LanguageObject(object_id, object_id, "word", features, component=component, tags=frozenset(tags))


def _mk_reviewed(days_ago=10.0, stability=2.4, accuracy=0.5):
    card = MemoryCard(
        stability=stability,
        difficulty=5.0,
        last_review=NOW - timedelta(days=days_ago),
        reps=1,
        state=CardState.REVIEW,
    )
    return MasteryRecord(stage=1, card=card, cue_free_accuracy=accuracy, exposure_count=1)


def test_mastery_curve_is_inverted_u():
    assert mastery_function(0.5) > mastery_function(0.05)
    assert mastery_function(0.5) > mastery_function(0.95)
    assert mastery_function(0.45) == pytest.approx(1.0)


def test_missing_mastery_record_is_neutral():
    assert mastery_adjustment(None, PriorityConfig()) == 1.0


def test_scaffolding_gap_and_stability_adjust_mastery():
    config = PriorityConfig()
    gapped = MasteryRecord(cue_free_accuracy=0.5, cue_assisted_accuracy=0.9, exposure_count=4)
    stable = MasteryRecord(card=MemoryCard(stability=40.0), cue_free_accuracy=0.5, exposure_count=4)

    assert mastery_adjustment(gapped, config) == pytest.approx(0.96 * 1.2)
    assert mastery_adjustment(stable, config) == pytest.approx(0.96 * 0.7)


def test_infer_level_thresholds():
    assert infer_level(-1.5) == "beginner"
    assert infer_level(0.0) == "intermediate"
    assert infer_level(1.0) == "advanced"


def test_base_score_is_clamped_at_zero():
    # Off-domain object with nothing but phonological difficulty: the raw sum is -0.15.
    obj = _mk_object("hard", frequency=0.0, domains={"medical": 1.0}, morph=0.0, phon=1.0, density=0.0)
    engine = PriorityEngine()

    result = engine.score(obj, None, SessionContext(now=NOW, target_domain="travel"))

    assert result.base == 0.0
    assert result.priority == pytest.approx(0.14)
    assert result.priority >= 0.0


def test_level_weights_follow_theta():
    obj = LanguageObject("w", "w", "word", FeatureVector(1.0, 0.0, {}, 0.0, 0.0))
    engine = PriorityEngine()
    fixed = PriorityEngine(PriorityConfig(adapt_to_level=False))

    beginner = engine.score(obj, None, SessionContext(now=NOW, theta=-2.0))
    default = fixed.score(obj, None, SessionContext(now=NOW, theta=-2.0))

    assert beginner.base == pytest.approx(0.4 + 0.15 * 0.5)
    assert default.base == pytest.approx(0.3 + 0.2 * 0.5)
    assert base_score(obj, PriorityConfig().weights) == pytest.approx(default.base)


def test_urgency_for_new_overdue_and_pending_cards():
    scheduler = MemoryScheduler()
    pending = _mk_reviewed(days_ago=0.0)

    assert urgency_score(None, scheduler, NOW) == 1.0
    assert urgency_score(_mk_reviewed(days_ago=10.0), scheduler, NOW) == 1.0
    assert urgency_score(pending, scheduler, NOW) == pytest.approx(0.5 - 48.0 / 168.0)


class PriorityEngineTests(unittest.TestCase):
    def setUp(self):
        self.engine = PriorityEngine()
        self.context = SessionContext(now=NOW)

    def test_due_items_rank_before_higher_priority_new_items(self):
        fresh = _mk_object("fresh", frequency=1.0)
        old = _mk_object("old", frequency=0.1)
        queue = build_learning_queue([fresh, old], {"old": _mk_reviewed()}, self.context, self.engine)

        self.assertEqual([r.object_id for r in queue], ["old", "fresh"])
        self.assertTrue(queue[0].is_due)
        self.assertTrue(queue[1].is_new)
        self.assertFalse(queue[1].is_due)

    def test_ties_keep_insertion_order(self):
        x, y = _mk_object("x"), _mk_object("y")
        forward = build_learning_queue([x, y], {}, self.context, self.engine)
        backward = build_learning_queue([y, x], {}, self.context, self.engine)

        self.assertEqual([r.object_id for r in forward], ["x", "y"])
        self.assertEqual([r.object_id for r in backward], ["y", "x"])

    def test_positive_transfer_lowers_priority(self):
        obj = _mk_object("cognate")
        helped = self.engine.score(obj, None, SessionContext(now=NOW, transfer_coefficients={"lexical": 0.8}))
        hindered = self.engine.score(obj, None, SessionContext(now=NOW, transfer_coefficients={"lexical": -0.8}))

        self.assertLess(helped.priority, hindered.priority)
        self.assertAlmostEqual(helped.transfer, -0.8 * 0.125 * helped.base)

    def test_transfer_only_applies_to_matching_dimension(self):
        obj = _mk_object("sound", component=ComponentType.PHON)
        result = self.engine.score(obj, None, SessionContext(now=NOW, transfer_coefficients={"lexical": 0.8}))
        self.assertEqual(result.transfer, 0.0)

    def test_domain_and_skill_boosts(self):
        obj = _mk_object("diagnosis", domains={"medical": 0.9}, tags={"nouns"})
        matched = self.engine.score(
            obj, None, SessionContext(now=NOW, target_domain="medical", target_skills=frozenset({"nouns"}))
        )
        unmatched = self.engine.score(obj, None, SessionContext(now=NOW, target_domain="legal"))

        self.assertAlmostEqual(matched.context_factor, 1.25 * 1.15)
        self.assertEqual(unmatched.context_factor, 1.0)

    def test_bottleneck_component_gets_additive_boost(self):
        obj = _mk_object("walked", component=ComponentType.MORPH)
        plain = self.engine.score(obj, None, self.context)
        boosted = self.engine.score(
            obj, None, SessionContext(now=NOW, bottleneck_components=frozenset({ComponentType.MORPH}))
        )

        self.assertAlmostEqual(boosted.priority - plain.priority, 0.06)
        self.assertIn("bottleneck MORPH", boosted.rationale)

    def test_invalid_transfer_coefficient_is_rejected(self):
        with self.assertRaises(ValueError):
            SessionContext(now=NOW, transfer_coefficients={"lexical": 1.5})


def test_session_items_mix_reviews_and_new_objects():
    objects = [_mk_object(f"o{i}", frequency=0.1 * (i + 1)) for i in range(6)]
    mastery = {f"o{i}": _mk_reviewed() for i in range(3)}
    queue = build_learning_queue(objects, mastery, SessionContext(now=NOW))

    picked = session_items(queue, 4, new_ratio=0.5)

    assert sum(r.is_new for r in picked) == 2
    positions = [queue.index(r) for r in picked]
    assert positions == sorted(positions)
    assert session_items(queue, 0) == []


def test_session_items_fill_from_remaining_queue():
    queue = build_learning_queue([_mk_object("a"), _mk_object("b"), _mk_object("c")], {}, SessionContext(now=NOW))

    picked = session_items(queue, 2, new_ratio=0.0)

    assert [r.object_id for r in picked] == ["a", "b"]


def test_assign_priorities_copies_scores_onto_objects():
    queue = build_learning_queue([_mk_object("a")], {}, SessionContext(now=NOW))

    (obj,) = assign_priorities(queue)

    assert obj.priority == pytest.approx(queue[0].priority)
    assert queue[0].language_object.priority == 0.0
