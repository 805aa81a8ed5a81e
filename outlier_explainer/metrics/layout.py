"""
Aggregate vector layout and the aggregation operators aligned with it.

Every candidate group is summarized by one vector of doubles:

    [min, max, log_min, log_max,
     power_sum_0 .. power_sum_{ka-1},
     log_sum_0 .. log_sum_{kb-1},
     (outlier_count)]

The layout is computed once per run and shared by the collector and every
metric, so indices are never recomputed per candidate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np


class AggregationOp(Enum):
    """
    Associative, commutative reducer for one aggregate position.

    Partial aggregates over disjoint row sets merge with the same operator
    (min of mins, max of maxes, sum of sums).
    """
    SUM = "sum"
    MIN = "min"
    MAX = "max"

    @property
    def pandas_name(self) -> str:
        """Name understood by pandas GroupBy.agg."""
        return self.value

    @property
    def identity(self) -> float:
        """Value of the reducer over zero rows."""
        identities = {
            AggregationOp.SUM: 0.0,
            AggregationOp.MIN: np.inf,
            AggregationOp.MAX: -np.inf,
        }
        return identities[self]

    def reduce(self, values: np.ndarray, axis: int = 0) -> np.ndarray:
        """Reduce an array along an axis."""
        if self is AggregationOp.SUM:
            return np.sum(values, axis=axis)
        if self is AggregationOp.MIN:
            return np.min(values, axis=axis, initial=np.inf)
        return np.max(values, axis=axis, initial=-np.inf)


@dataclass(frozen=True)
class AggregateLayout:
    """
    Index layout of an aggregate vector.

    Attributes:
        ka: Number of standard-domain power sums
        kb: Number of log-domain power sums
        has_outlier_count: Whether an exact outlier-count aggregate is appended
    """
    ka: int
    kb: int
    has_outlier_count: bool = False

    min_idx: int = 0
    max_idx: int = 1
    log_min_idx: int = 2
    log_max_idx: int = 3

    @property
    def power_sums_base(self) -> int:
        return 4

    @property
    def log_sums_base(self) -> int:
        return 4 + self.ka

    @property
    def outlier_count_idx(self) -> Optional[int]:
        return 4 + self.ka + self.kb if self.has_outlier_count else None

    @property
    def count_idx(self) -> int:
        """Position of the order-0 power sum, which equals the row count."""
        return self.power_sums_base if self.ka > 0 else self.log_sums_base

    @property
    def width(self) -> int:
        return 4 + self.ka + self.kb + (1 if self.has_outlier_count else 0)

    def count(self, aggregates: Sequence[float]) -> float:
        return float(aggregates[self.count_idx])

    def power_sums(self, aggregates: Sequence[float]) -> np.ndarray:
        base = self.power_sums_base
        return np.asarray(aggregates[base: base + self.ka], dtype=np.float64)

    def log_sums(self, aggregates: Sequence[float]) -> np.ndarray:
        base = self.log_sums_base
        return np.asarray(aggregates[base: base + self.kb], dtype=np.float64)

    def aggregation_ops(self) -> List[AggregationOp]:
        """Operators aligned index-for-index with the layout."""
        ops = [AggregationOp.MIN, AggregationOp.MAX, AggregationOp.MIN, AggregationOp.MAX]
        ops.extend([AggregationOp.SUM] * (self.ka + self.kb))
        if self.has_outlier_count:
            ops.append(AggregationOp.SUM)
        return ops

    def aggregate_names(
        self,
        power_sum_names: Optional[Sequence[str]] = None,
        log_sum_names: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """Display names for every position of the layout."""
        names = ["Minimum", "Maximum", "Log Minimum", "Log Maximum"]
        names.extend(power_sum_names or [f"power:{i}:sum" for i in range(self.ka)])
        names.extend(log_sum_names or [f"log:{i}:sum" for i in range(self.kb)])
        if self.has_outlier_count:
            names.append("Outlier Count")
        return names
