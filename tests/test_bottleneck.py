# ABOUTME: Tests component-level bottleneck diagnosis over response histories.
# ABOUTME: Covers cascade detection, error patterns, data sufficiency, and frame normalisation.

import unittest
from datetime import datetime, timedelta

import pandas as pd
import pytest

from src.assessment.bottleneck import (
    analyze_bottleneck,
    downstream_components,
    extract_error_pattern,
    improvement_trend,
    responses_frame,
    summarize_bottleneck,
    upstream_components,
)
from src.common.errors import MalformedInputError
from src.common.schemas import ComponentType, ResponseRecord

START = datetime(2024, 4, 1, 10, 0)
MORPH_ERRORS = ["walking", "running", "jumped", "played", "cats"]


def _mk_history(plan):
    """
    ``plan`` maps component -> (responses, errors, error contents). Components are
    interleaved in time and the errors come first for each component.
    """

    records = []
    tick = 0
    longest = max(n for n, _, _ in plan.values())
    for i in range(longest):
        for component, (n, n_errors, contents) in plan.items():
            if i >= n:
                continue
            wrong = i < n_errors
            records.append(
                ResponseRecord(
                    object_id=f"{component.value}-{i}",
                    component=component,
                    correct=not wrong,
                    timestamp=START + timedelta(minutes=tick),
                    session_id=f"s{i % 5}",
                    content=contents[i] if wrong and i < len(contents) else "word",
                )
            )
            tick += 1
    return records


class CascadeTests(unittest.TestCase):
    def setUp(self):
        self.history = _mk_history(
            {
                ComponentType.MORPH: (10, 5, MORPH_ERRORS),
                ComponentType.LEX: (10, 1, []),
                ComponentType.SYNT: (10, 3, []),
            }
        )

    def test_upstream_component_is_root_cause(self):
        analysis = analyze_bottleneck(self.history)

        self.assertIs(analysis.primary, ComponentType.MORPH)
        self.assertIs(analysis.cascade.root_cause, ComponentType.MORPH)
        self.assertEqual(analysis.cascade.chain, [ComponentType.MORPH, ComponentType.SYNT])
        self.assertAlmostEqual(analysis.cascade.confidence, 0.7)
        self.assertAlmostEqual(analysis.confidence, 1.0)

    def test_evidence_is_sorted_and_carries_patterns(self):
        analysis = analyze_bottleneck(self.history)
        morph = analysis.evidence[0]

        self.assertIs(morph.component, ComponentType.MORPH)
        self.assertAlmostEqual(morph.error_rate, 0.5)
        self.assertEqual(set(morph.error_patterns), {"-ing endings (2×)", "-ed endings (2×)"})
        self.assertEqual(morph.cooccurring_errors, [ComponentType.SYNT])
        rates = [e.error_rate for e in analysis.evidence]
        self.assertEqual(rates, sorted(rates, reverse=True))

    def test_recommendation_mentions_downstream_help(self):
        analysis = analyze_bottleneck(self.history)

        self.assertIn("Morphology", analysis.recommendation)
        self.assertIn("grammar", analysis.recommendation)
        self.assertIn("endings", analysis.recommendation)
        self.assertEqual(summarize_bottleneck(analysis), "word forms (50% errors)")


def test_highest_error_rate_wins_without_cascade():
    history = _mk_history(
        {
            ComponentType.MORPH: (10, 1, []),
            ComponentType.LEX: (10, 5, []),
            ComponentType.SYNT: (10, 1, []),
        }
    )

    analysis = analyze_bottleneck(history)

    assert analysis.cascade.root_cause is None
    assert analysis.cascade.chain == []
    assert analysis.primary is ComponentType.LEX


def test_low_error_rates_report_no_bottleneck():
    history = _mk_history({c: (6, 1, []) for c in (ComponentType.PHON, ComponentType.LEX, ComponentType.PRAG, ComponentType.SYNT)})

    analysis = analyze_bottleneck(history)

    assert analysis.primary is None
    assert analysis.recommendation.startswith("No significant bottleneck")
    assert summarize_bottleneck(analysis) == "No bottleneck detected"


def test_short_history_needs_more_data():
    history = _mk_history({ComponentType.LEX: (10, 8, [])})

    analysis = analyze_bottleneck(history)

    assert analysis.primary is None
    assert analysis.confidence == 0.0
    assert analysis.recommendation == "Need more data for analysis (10/20 responses)"


def test_single_component_history_from_records_and_frame():
    records = [
        ResponseRecord(
            object_id=f"lex-{i}",
            component=ComponentType.LEX,
            correct=i % 2 == 0,
            timestamp=START + timedelta(minutes=i),
            content="word",
        )
        for i in range(30)
    ]
    frame = pd.DataFrame(
        {
            "component": ["lex"] * 30,
            "correct": [i % 2 == 0 for i in range(30)],
            "timestamp": [START + timedelta(minutes=i) for i in range(30)],
        }
    )

    for history in (records, frame):
        analysis = analyze_bottleneck(history)
        assert analysis.primary is ComponentType.LEX
        assert len(analysis.evidence) == 1
        assert analysis.evidence[0].component is ComponentType.LEX
        assert analysis.evidence[0].error_rate == pytest.approx(0.5)


def test_dataframe_history_is_normalised():
    frame = pd.DataFrame(
        {
            "component": ["morph", "LEX"],
            "correct": [0, 1],
            "timestamp": ["2024-04-01T10:05:00", "2024-04-01T10:00:00"],
        }
    )

    normalised = responses_frame(frame)

    assert list(normalised["component"]) == ["LEX", "MORPH"]
    assert list(normalised["correct"]) == [True, False]
    assert list(normalised["session_id"]) == ["", ""]


def test_history_without_required_columns_is_rejected():
    with pytest.raises(MalformedInputError):
        responses_frame(pd.DataFrame({"component": ["LEX"], "correct": [1]}))
    with pytest.raises(MalformedInputError):
        responses_frame(pd.DataFrame({"component": ["XYZ"], "correct": [1], "timestamp": [START]}))


def test_improvement_trend_compares_halves():
    history = _mk_history({ComponentType.SYNT: (8, 4, [])})
    frame = responses_frame(history)

    assert improvement_trend("SYNT", frame) == pytest.approx(1.0)
    assert improvement_trend(ComponentType.LEX, frame) == 0.0


def test_cascade_neighbours():
    assert downstream_components("MORPH") == [ComponentType.LEX, ComponentType.SYNT, ComponentType.PRAG]
    assert upstream_components(ComponentType.LEX) == [ComponentType.PHON, ComponentType.MORPH]
    assert downstream_components("PRAG") == []


@pytest.mark.parametrize(
    "component,content,pattern",
    [
        (ComponentType.PHON, "think", "th-sounds"),
        (ComponentType.MORPH, "nation", "-tion nominalizations"),
        (ComponentType.LEX, "cat", "basic vocabulary"),
        (ComponentType.SYNT, "the man who left", "relative clauses"),
        (ComponentType.PRAG, "could you help", "politeness markers"),
    ],
)
def test_extract_error_pattern(component, content, pattern):
    assert extract_error_pattern(component, content) == pattern
