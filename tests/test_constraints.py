# ABOUTME: Tests the constraint graph, propagation, and selection validation.
# ABOUTME: Builds small object sets against the default linguistic rule table.

import itertools
import unittest

import pytest

from src.common.errors import HardConstraintViolationError, MalformedInputError, NoCandidate
from src.common.schemas import FeatureVector, LanguageObject, RelationKind
from src.constraints.graph import ConstraintEdge, ConstraintGraph, build_constraint_graph
from src.constraints.propagation import PropagationConfig, propagate
from src.constraints.validation import DEGRADE, DROP, resolve_violations, validate_selection
from src.lexical.pmi import LexicalConfig, LexicalRelationIndex

FEATURES = FeatureVector(frequency=0.5, relational_density=0.5)

TYPED_OBJECTS = {
    "pv": "passive_voice",
    "tv": "transitive_verb",
    "iv": "intransitive_verb",
    "fr": "formal_register",
    "cq": "colloquial",
    "ct": "contraction",
    "pt": "past_tense",
    "ir": "irregular_verb",
    "rc": "relative_clause",
    "rp": "relative_pronoun",
}


def _mk_objects(types=TYPED_OBJECTS):
    return [LanguageObject(object_id, object_id, object_type, FEATURES) for object_id, object_type in types.items()]


def _mk_graph():
    return build_constraint_graph(_mk_objects())


def _chain(length):
    graph = ConstraintGraph()
    for i in range(length - 1):
        graph.add_edge(f"n{i}", f"n{i + 1}", RelationKind.REQUIRES)
    return graph


class PropagationTests(unittest.TestCase):
    def setUp(self):
        self.graph = _mk_graph()

    def test_passive_voice_pulls_in_transitive_and_blocks_intransitive(self):
        result = propagate(self.graph, ["pv"])
        self.assertEqual(result.required, frozenset({"tv"}))
        self.assertEqual(result.excluded, frozenset({"iv"}))
        self.assertEqual(result.selection, ("pv", "tv"))
        self.assertFalse(result.cycle_detected)

    def test_restriction_carries_modifications(self):
        result = propagate(self.graph, ["pt"])
        self.assertEqual(result.restricted, frozenset({"ir"}))
        self.assertEqual(result.modifications["ir"], {"form": "past"})

    def test_excluding_another_trigger_is_a_conflict(self):
        result = propagate(self.graph, ["fr", "cq"])
        self.assertIn("cq", result.conflicts)
        self.assertNotIn("cq", result.excluded)
        self.assertIn("ct", result.excluded)

    def test_required_object_outside_pool_is_reported(self):
        pool = set(TYPED_OBJECTS) - {"tv"}
        result = propagate(self.graph, ["pv"], pool=pool)
        self.assertEqual(result.missing_required, frozenset({"tv"}))
        self.assertEqual(result.selection, ("pv",))

    def test_empty_trigger_list_returns_no_candidate(self):
        self.assertIsInstance(propagate(self.graph, []), NoCandidate)

    def test_unknown_trigger_is_malformed(self):
        with self.assertRaises(MalformedInputError):
            propagate(self.graph, ["nope"])


def test_sets_stay_disjoint_for_every_trigger_combination():
    graph = _mk_graph()
    ids = list(TYPED_OBJECTS)
    for size in (1, 2, 3):
        for triggers in itertools.combinations(ids, size):
            result = propagate(graph, list(triggers))
            groups = [result.required, result.excluded, result.restricted, result.preferred]
            for left, right in itertools.combinations(groups, 2):
                assert not (left & right), triggers
            assert not (set(triggers) & set().union(*groups)), triggers


def test_requires_cycle_is_detected_and_truncates():
    graph = ConstraintGraph()
    graph.add_edge("a", "b", RelationKind.REQUIRES)
    graph.add_edge("b", "a", RelationKind.REQUIRES)

    result = propagate(graph, ["a"])

    assert result.cycle_detected
    assert result.truncated
    assert result.required == frozenset({"b"})


def test_diamond_is_not_a_cycle():
    graph = ConstraintGraph()
    graph.add_edge("a", "b", RelationKind.REQUIRES)
    graph.add_edge("a", "c", RelationKind.REQUIRES)
    graph.add_edge("b", "c", RelationKind.REQUIRES)

    result = propagate(graph, ["a"])

    assert not result.cycle_detected
    assert result.required == frozenset({"b", "c"})


def test_step_budget_truncates_long_chains():
    result = propagate(_chain(6), ["n0"], config=PropagationConfig(max_steps=2))

    assert result.truncated
    assert not result.cycle_detected
    assert result.steps == 2
    assert result.required == frozenset({"n1", "n2"})


def test_lexical_associations_become_prefers_edges():
    tokens = []
    for i in range(20):
        tokens += ["strong", "tea", f"x{i}", f"y{i}"]
    for i in range(5):
        tokens += ["strong", f"p{i}", f"q{i}", "tea", f"r{i}", f"s{i}"]
    index = LexicalRelationIndex.build(tokens, LexicalConfig(window_size=2))
    objects = [
        LanguageObject("adj-strong", "strong", "adjective", FEATURES),
        LanguageObject("noun-tea", "tea", "noun", FEATURES),
    ]

    graph = build_constraint_graph(objects, index=index)
    result = propagate(graph, ["adj-strong"])

    assert graph.edge_count() == 2
    assert result.preferred == frozenset({"noun-tea"})
    assert all(0.3 <= edge.strength <= 1.0 for edge in graph.edges())


def test_graph_keeps_stronger_duplicate_edge():
    graph = ConstraintGraph()
    graph.add_edge("a", "b", RelationKind.PREFERS, 0.4)
    graph.add_edge("a", "b", RelationKind.PREFERS, 0.8)
    graph.add_edge("a", "b", RelationKind.PREFERS, 0.5)

    (edge,) = graph.outgoing(graph.handle("a"))

    assert graph.edge_count() == 1
    assert edge.strength == 0.8
    assert graph.object_id(edge.target) == "b"


def test_graph_rejects_bad_edges():
    graph = ConstraintGraph()
    with pytest.raises(MalformedInputError):
        graph.add_edge("a", "a", RelationKind.REQUIRES)
    with pytest.raises(MalformedInputError):
        ConstraintEdge(0, 1, RelationKind.PREFERS, strength=1.5)
    with pytest.raises(MalformedInputError):
        graph.handle("missing")


def test_validate_selection_reports_both_hard_kinds():
    report = validate_selection(["pv", "iv"], _mk_graph())

    kinds = {(v.source, v.target, v.kind) for v in report.violations}
    assert kinds == {("pv", "tv", RelationKind.REQUIRES), ("pv", "iv", RelationKind.EXCLUDES)}
    assert not report.ok


def test_drop_policy_removes_lower_priority_object():
    report = resolve_violations(["fr", "cq"], _mk_graph(), {"fr": 0.9, "cq": 0.3}, DROP)

    assert report.ok
    assert report.selection == ("fr",)
    assert report.dropped == ("cq",)


def test_drop_policy_breaks_ties_against_later_object():
    report = resolve_violations(["cq", "fr"], _mk_graph(), {"fr": 0.5, "cq": 0.5}, DROP)

    assert report.selection == ("cq",)
    assert report.dropped == ("fr",)


def test_drop_policy_removes_objects_with_missing_requirements():
    report = resolve_violations(["pv"], _mk_graph(), {}, DROP)

    assert report.ok
    assert report.selection == ()
    assert report.dropped == ("pv",)


def test_degrade_policy_keeps_selection_and_flags_it():
    report = resolve_violations(["fr", "cq"], _mk_graph(), {}, DEGRADE)

    assert report.degraded
    assert report.selection == ("fr", "cq")
    with pytest.raises(HardConstraintViolationError) as excinfo:
        report.raise_for_violations()
    assert len(excinfo.value.violations) == 1


def test_unknown_policy_is_rejected():
    with pytest.raises(MalformedInputError):
        resolve_violations(["fr", "cq"], _mk_graph(), {}, "ignore")
