"""Tests for outcome aggregation and the significance heuristic."""
import pytest

from pricelab.services.significance import (
    OutcomeRow, aggregate_outcomes, effect_size, evaluate, StrategyAggregate
)


def rows(strategy_id, scores):
    return [OutcomeRow(strategy_id=strategy_id, has_outcome=True, score=s) for s in scores]


def test_no_rows_no_results():
    assert evaluate(aggregate_outcomes([])) is None


def test_missing_scores_count_as_zero():
    aggregates = aggregate_outcomes([
        OutcomeRow("A", has_outcome=True, score=1.0, revenue_impact=20.0),
        OutcomeRow("A"),  # assignment without an outcome
        OutcomeRow("B", has_outcome=True, score=None),
    ])

    a, b = aggregates
    assert (a.strategy_id, a.sample_size, a.outcome_count) == ("A", 2, 1)
    assert a.avg_score == 0.5
    assert a.avg_revenue_impact == 10.0
    assert (b.sample_size, b.outcome_count, b.avg_score) == (1, 1, 0.0)


def test_aggregates_keep_first_seen_order():
    aggregates = aggregate_outcomes(rows("B", [0.1]) + rows("A", [0.9]) + rows("B", [0.2]))

    assert [a.strategy_id for a in aggregates] == ["B", "A"]


def test_large_clear_difference_is_significant():
    results = evaluate(aggregate_outcomes(rows("A", [0.9, 0.7] * 20) + rows("B", [0.3, 0.5] * 20)))

    assert results["leading_strategy"] == "A"
    assert results["significant_difference"] is True
    assert results["effect_size"] > 0.5
    assert results["confidence"] == 0.85
    assert results["metrics"]["sample_size"] == 40
    assert results["metrics"]["avg_score"] == pytest.approx(0.8)
    assert [s["strategy_id"] for s in results["strategies"]] == ["A", "B"]


def test_sample_size_must_exceed_thirty():
    results = evaluate(aggregate_outcomes(rows("A", [0.9, 0.7] * 15) + rows("B", [0.3, 0.5] * 15)))

    assert results["effect_size"] > 0.5
    assert results["significant_difference"] is False


def test_single_strategy_with_data_is_not_significant():
    results = evaluate(aggregate_outcomes(rows("A", [0.9, 0.7] * 20) + [OutcomeRow("B")] * 40))

    assert results["leading_strategy"] == "A"
    assert results["significant_difference"] is False
    assert results["effect_size"] == 0.0


def test_zero_spread_has_zero_effect_size():
    best = StrategyAggregate("A", sample_size=50, outcome_count=50, avg_score=0.9)
    second = StrategyAggregate("B", sample_size=50, outcome_count=50, avg_score=0.1)

    assert effect_size(best, second) == 0.0
    assert evaluate([best, second])["significant_difference"] is False


def test_leading_strategy_tie_keeps_first():
    results = evaluate(aggregate_outcomes(rows("A", [0.5]) + rows("B", [0.5])))

    assert results["leading_strategy"] == "A"
