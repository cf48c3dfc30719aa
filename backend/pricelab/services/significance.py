"""Per-strategy outcome aggregation and the significance gate for experiments.

The significance flag is an effect-size / sample-size heuristic, not a
hypothesis test: it never produces a p-value.

Rows without a recorded score (an assignment with no outcome yet, or an
outcome whose score is null) are counted with a score of 0. They are never
dropped, so ``sample_size`` is the number of joined rows.
"""
import math
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional
from sqlalchemy import and_
from sqlalchemy.orm import Session

from pricelab.models.experiment import Experiment, ExperimentAssignment
from pricelab.models.outcome import PricingOutcome

MIN_EFFECT_SIZE = 0.5
MIN_SAMPLE_SIZE = 30  # best arm must have strictly more rows than this
HEURISTIC_CONFIDENCE = 0.85


@dataclass
class OutcomeRow:
    """One assignment joined with at most one outcome."""

    strategy_id: str
    has_outcome: bool = False
    score: Optional[float] = None
    revenue_impact: Optional[float] = None
    velocity_change: Optional[float] = None


@dataclass
class StrategyAggregate:
    strategy_id: str
    sample_size: int = 0
    outcome_count: int = 0
    avg_score: float = 0.0
    avg_revenue_impact: float = 0.0
    avg_velocity_change: float = 0.0
    score_stddev: float = 0.0


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _sample_stddev(values: List[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = _mean(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / (len(values) - 1))


def aggregate_outcomes(rows: Iterable[OutcomeRow]) -> List[StrategyAggregate]:
    """Group rows by strategy in first-seen order. Missing values count as 0."""
    grouped: Dict[str, Dict[str, list]] = {}
    outcome_counts: Dict[str, int] = {}

    for row in rows:
        bucket = grouped.setdefault(row.strategy_id, {"score": [], "revenue": [], "velocity": []})
        bucket["score"].append(row.score or 0.0)
        bucket["revenue"].append(row.revenue_impact or 0.0)
        bucket["velocity"].append(row.velocity_change or 0.0)
        outcome_counts[row.strategy_id] = outcome_counts.get(row.strategy_id, 0) + (1 if row.has_outcome else 0)

    aggregates = []
    for strategy_id, bucket in grouped.items():
        aggregates.append(StrategyAggregate(
            strategy_id=strategy_id,
            sample_size=len(bucket["score"]),
            outcome_count=outcome_counts[strategy_id],
            avg_score=_mean(bucket["score"]),
            avg_revenue_impact=_mean(bucket["revenue"]),
            avg_velocity_change=_mean(bucket["velocity"]),
            score_stddev=_sample_stddev(bucket["score"]),
        ))
    return aggregates


def effect_size(best: StrategyAggregate, second: StrategyAggregate) -> float:
    """Score difference over the pooled standard deviation; 0 when there is no spread."""
    pooled = math.sqrt((best.score_stddev ** 2 + second.score_stddev ** 2) / 2)
    if pooled <= 0:
        return 0.0
    return (best.avg_score - second.avg_score) / pooled


def evaluate(aggregates: List[StrategyAggregate]) -> Optional[Dict]:
    """
    Summarize aggregates into experiment results.

    ``significant_difference`` requires at least two strategies with a
    realized outcome, an effect size above 0.5 between the top two of them
    and more than 30 rows for the best one.

    Returns:
        Results dict (snake_case keys), or None when there are no rows at all
    """
    if not aggregates:
        return None

    leading = aggregates[0]
    for agg in aggregates[1:]:
        if agg.avg_score > leading.avg_score:
            leading = agg

    with_data = [a for a in aggregates if a.outcome_count > 0]
    significant = False
    size = 0.0
    if len(with_data) >= 2:
        ranked = sorted(with_data, key=lambda a: a.avg_score, reverse=True)
        best, second = ranked[0], ranked[1]
        size = effect_size(best, second)
        significant = size > MIN_EFFECT_SIZE and best.sample_size > MIN_SAMPLE_SIZE

    return {
        "leading_strategy": leading.strategy_id,
        "confidence": HEURISTIC_CONFIDENCE,
        "significant_difference": significant,
        "effect_size": size,
        "metrics": {
            "avg_score": leading.avg_score,
            "avg_revenue_impact": leading.avg_revenue_impact,
            "avg_velocity_change": leading.avg_velocity_change,
            "sample_size": leading.sample_size,
        },
        "strategies": [asdict(a) for a in aggregates],
    }


class SignificanceEvaluator:
    """Loads outcome rows for an experiment and evaluates them."""

    def __init__(self, db: Session):
        self.db = db

    def load_rows(self, experiment: Experiment) -> List[OutcomeRow]:
        """Assignments left-joined with outcomes applied since the experiment started."""
        join_condition = PricingOutcome.listing_id == ExperimentAssignment.listing_id
        if experiment.start_date is not None:
            join_condition = and_(join_condition, PricingOutcome.applied_at >= experiment.start_date)

        query = self.db.query(
            ExperimentAssignment.strategy_id,
            PricingOutcome.id,
            PricingOutcome.outcome_score,
            PricingOutcome.revenue_before,
            PricingOutcome.revenue_after,
            PricingOutcome.sales_velocity_change,
        ).outerjoin(
            PricingOutcome, join_condition
        ).filter(
            ExperimentAssignment.experiment_id == experiment.id
        ).order_by(ExperimentAssignment.id, PricingOutcome.id)

        rows = []
        for strategy_id, outcome_id, score, revenue_before, revenue_after, velocity in query.all():
            has_outcome = outcome_id is not None
            revenue_impact = None
            if has_outcome:
                revenue_impact = (revenue_after or 0.0) - (revenue_before or 0.0)
            rows.append(OutcomeRow(
                strategy_id=strategy_id,
                has_outcome=has_outcome,
                score=score,
                revenue_impact=revenue_impact,
                velocity_change=velocity,
            ))
        return rows

    def evaluate_experiment(self, experiment: Experiment) -> Optional[Dict]:
        return evaluate(aggregate_outcomes(self.load_rows(experiment)))
