# ABOUTME: Tests end-to-end session planning from a learner snapshot.
# ABOUTME: Verifies ranking, trigger conflicts, propagation, and validation work together.

import unittest
from datetime import datetime

from src.common.config import EngineConfig, SessionConfig
from src.common.errors import NoCandidate
from src.common.schemas import AbilityEstimate, ComponentType, FeatureVector, LanguageObject
from src.constraints.graph import build_constraint_graph
from src.priority.engine import SessionContext
from src.session.planner import LearnerSnapshot, SessionPlan, plan_session

NOW = datetime(2024, 7, 1, 18, 0)
STRONG = FeatureVector(frequency=1.0, relational_density=0.9, morphological_score=0.9, phonological_difficulty=0.0)
WEAK = FeatureVector(frequency=0.1, relational_density=0.1, morphological_score=0.1, phonological_difficulty=0.9)


def _mk_objects():
    return [
        LanguageObject("pv", "was eaten", "passive_voice", STRONG, component=ComponentType.SYNT),
        LanguageObject("tv", "eat", "transitive_verb", WEAK),
        LanguageObject("iv", "sleep", "intransitive_verb", WEAK),
    ]


def _mk_config(size):
    return EngineConfig(session=SessionConfig(session_size=size))


class PlanSessionTests(unittest.TestCase):
    def setUp(self):
        self.objects = _mk_objects()
        self.graph = build_constraint_graph(self.objects)
        self.context = SessionContext(now=NOW)
        self.snapshot = LearnerSnapshot("learner-1")

    def test_top_object_pulls_in_its_requirements(self):
        plan = plan_session(self.snapshot, self.objects, self.graph, self.context, _mk_config(1))

        self.assertIsInstance(plan, SessionPlan)
        self.assertEqual(plan.queue[0].object_id, "pv")
        self.assertEqual(plan.selection, ["pv", "tv"])
        self.assertEqual(plan.propagation.excluded, frozenset({"iv"}))
        self.assertTrue(plan.validation.ok)

    def test_conflicting_trigger_is_skipped(self):
        plan = plan_session(self.snapshot, self.objects, self.graph, self.context, _mk_config(3))

        self.assertEqual(plan.propagation.triggers, ("pv", "tv"))
        self.assertNotIn("iv", plan.selection)
        self.assertEqual(plan.validation.dropped, ())

    def test_snapshot_fills_context(self):
        snapshot = LearnerSnapshot("learner-2", bottleneck_components=frozenset({ComponentType.SYNT}))

        plan = plan_session(snapshot, self.objects, self.graph, self.context, _mk_config(1))

        self.assertAlmostEqual(plan.queue[0].bottleneck_boost, 0.06)

    def test_nothing_to_plan_returns_no_candidate(self):
        self.assertIsInstance(plan_session(self.snapshot, [], self.graph, self.context), NoCandidate)
        self.assertIsInstance(plan_session(self.snapshot, self.objects, self.graph, self.context, _mk_config(0)), NoCandidate)

        outsider = [LanguageObject("x", "x", "noun", STRONG)]
        self.assertIsInstance(plan_session(self.snapshot, outsider, self.graph, self.context), NoCandidate)


def test_global_theta_prefers_global_record():
    lexical = AbilityEstimate("u", "lexical", theta=0.5, standard_error=0.3)
    syntactic = AbilityEstimate("u", "syntactic", theta=-0.5, standard_error=0.3)
    overall = AbilityEstimate("u", "global", theta=1.2, standard_error=0.2)

    assert LearnerSnapshot("u").global_theta() is None
    assert LearnerSnapshot("u", abilities={"lexical": lexical, "syntactic": syntactic}).global_theta() == 0.0
    assert LearnerSnapshot("u", abilities={"lexical": lexical, "global": overall}).global_theta() == 1.2
