# ABOUTME: Tests response evaluation modes, error classification, and task batching.
# ABOUTME: Uses short English answers where layer scores can be computed by hand.

import pytest

from src.assessment.evaluator import (
    EvaluationMode,
    EvaluationSpec,
    EvaluatorConfig,
    LayerSpec,
    TaskObject,
    classify_error,
    evaluate_response,
    evaluate_task,
)
from src.assessment.layers import context_score, edit_similarity, meaning_score, normalize
from src.common.errors import MalformedInputError
from src.common.schemas import ComponentType, ErrorKind


def test_binary_mode_matches_normalised_form():
    spec = EvaluationSpec("run", ("running",))

    right = evaluate_response(spec, "Running!")
    wrong = evaluate_response(spec, "runing")

    assert right.correct and right.score == 1.0 and right.error_kind is None
    assert not wrong.correct
    assert wrong.score == 0.0
    assert wrong.error_kind is ErrorKind.FORM_ERROR


def test_partial_credit_layers():
    spec = EvaluationSpec("cat", ("the cat sat",), mode="partial_credit")
    other = EvaluationSpec("pet", ("cat",), mode=EvaluationMode.PARTIAL_CREDIT)

    exact = evaluate_response(spec, "the cat sat")
    miss = evaluate_response(other, "dog")

    assert exact.correct
    assert exact.score == pytest.approx(1.0)
    assert set(exact.layer_scores) == {"meaning", "spelling", "context"}
    assert miss.score == pytest.approx(0.2)
    assert not miss.correct
    assert miss.error_kind is ErrorKind.SUBSTITUTION


def test_partial_credit_uses_spec_layers_when_given():
    spec = EvaluationSpec("cat", ("cat",), mode="partial_credit", layers=(LayerSpec("spelling", 1.0),))

    result = evaluate_response(spec, "cot")

    assert result.layer_scores == {"spelling": pytest.approx(2 / 3)}
    assert result.correct


def test_range_mode_applies_tolerance():
    loose = EvaluationSpec("colour", ("color",), mode="range_based")
    strict = EvaluationSpec("colour", ("color",), mode="range_based", tolerance=0.1)

    accepted = evaluate_response(loose, "colour")
    rejected = evaluate_response(strict, "colour")

    assert accepted.correct and accepted.score == 1.0
    assert not rejected.correct
    assert rejected.score == pytest.approx(1 - 1 / 6)
    assert rejected.error_kind is ErrorKind.FORM_ERROR


def test_rubric_mode_weights_external_scores():
    spec = EvaluationSpec("essay", ("n/a",), mode="rubric_based", rubric={"grammar": 2.0, "content": 1.0})

    result = evaluate_response(spec, "some essay", rubric_scores={"grammar": 1.0, "content": 0.0})

    assert result.score == pytest.approx(2 / 3)
    assert result.correct
    with pytest.raises(MalformedInputError):
        evaluate_response(spec, "some essay", rubric_scores={"grammar": 1.0})
    with pytest.raises(MalformedInputError):
        evaluate_response(spec, "some essay")


@pytest.mark.parametrize(
    "expected,actual,kind",
    [
        ("the cat sat", "sat the cat", ErrorKind.ORDERING),
        ("the big cat", "the cat", ErrorKind.OMISSION),
        ("she walks", "she walk", ErrorKind.FORM_ERROR),
        ("the cat", "the dog", ErrorKind.SUBSTITUTION),
        ("the cat", "", ErrorKind.OMISSION),
        ("The cat.", "the cat", None),
    ],
)
def test_classify_error(expected, actual, kind):
    assert classify_error(expected, actual) is kind


def test_incorrect_results_always_carry_an_error_kind():
    spec = EvaluationSpec("essay", ("ok",), mode="rubric_based")

    result = evaluate_response(spec, "ok", rubric_scores={"content": 0.1})

    assert not result.correct
    assert result.error_kind is ErrorKind.SUBSTITUTION


def test_evaluate_task_derives_component_deltas():
    objects = [
        TaskObject(EvaluationSpec("w1", ("went",), component=ComponentType.LEX), "went", role_weight=2.0),
        TaskObject(EvaluationSpec("s1", ("she has gone",), component="SYNT"), "she go", role_weight=1.0),
    ]

    batch = evaluate_task(objects)

    assert batch.composite == pytest.approx(2 / 3)
    assert batch.theta_deltas["LEX"] == pytest.approx(0.4)
    assert batch.theta_deltas["SYNT"] == pytest.approx(-0.2)
    assert batch.theta_deltas["global"] == pytest.approx(0.5 * 0.2 / 3)
    assert [r.object_id for r in batch.results] == ["w1", "s1"]


def test_evaluate_task_rejects_empty_batch():
    with pytest.raises(MalformedInputError):
        evaluate_task([])


def test_spec_and_layer_validation():
    with pytest.raises(MalformedInputError):
        EvaluationSpec("x", ())
    with pytest.raises(MalformedInputError):
        EvaluationSpec("x", ("a",), mode="multiple_choice")
    with pytest.raises(MalformedInputError):
        LayerSpec("tone", 1.0)
    config = EvaluatorConfig(layers=[{"name": "exact", "weight": 1.0, "scorer": "form"}])
    assert config.layers == (LayerSpec("exact", 1.0, "form"),)
    assert EvaluationMode.parse("partial-credit") is EvaluationMode.PARTIAL_CREDIT


def test_layer_helpers():
    assert normalize("  Hello,   World! ") == "hello world"
    assert edit_similarity("kitten", "sitting") == pytest.approx(1.0 - 3 / 7)
    assert edit_similarity("Walked!", "walked") == 1.0
    assert edit_similarity("", "abc") == 0.0
    assert meaning_score("the red car", ["the blue car"]) == pytest.approx(0.5)
    assert context_score("", ["anything"]) == 0.0
    assert context_score("yeah ok", ["sure thing"], "formal") == pytest.approx(0.5)
