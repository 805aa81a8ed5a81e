"""
Quality metrics evaluated on candidate aggregate vectors.

Key Components:
- AggregateLayout: index layout of an aggregate vector
- AggregationOp: SUM / MIN / MAX reducers aligned with the layout
- QualityMetric: Support and GlobalRatio metrics with the decision cascade
- Action: KEEP / PRUNE / DEFER outcome
"""

from .layout import AggregateLayout, AggregationOp
from .quality import (
    Action,
    CascadeDecision,
    CascadeStage,
    MetricKind,
    MetricStrategy,
    QualityMetric,
    STRATEGIES,
)

__all__ = [
    'AggregateLayout',
    'AggregationOp',
    'Action',
    'CascadeDecision',
    'CascadeStage',
    'MetricKind',
    'MetricStrategy',
    'QualityMetric',
    'STRATEGIES',
]
