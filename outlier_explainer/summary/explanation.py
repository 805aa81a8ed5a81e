"""
Explanation Result Classes.

This module defines dataclasses for the output of a summarization run:
- Explanation: one retained attribute-value combination and its metric values
- LevelStats: per-level search statistics
- ExplanationResult: every explanation of a run, ranked, plus run metadata
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from outlier_explainer.core.constants import GLOBAL_RATIO_METRIC_NAME, SUPPORT_METRIC_NAME


@dataclass
class Explanation:
    """
    A retained candidate: a conjunction of (attribute, value) predicates.

    Attributes:
        predicates: Ordered (attribute, value) pairs
        codes: Encoded value ids, in the same order as predicates
        count: Number of rows matching the conjunction
        metrics: Metric name -> value
        aggregates: The candidate's aggregate vector
    """

    predicates: List[Tuple[str, Any]]
    codes: Tuple[int, ...]
    count: float
    metrics: Dict[str, float] = field(default_factory=dict)
    aggregates: Optional[np.ndarray] = None

    @property
    def order(self) -> int:
        return len(self.predicates)

    def matcher(self) -> Dict[str, Any]:
        """Predicates as an attribute -> value mapping."""
        return dict(self.predicates)

    def to_dict(self, aggregate_names: Optional[List[str]] = None) -> Dict[str, Any]:
        result = {
            "predicates": [{"attribute": a, "value": v} for a, v in self.predicates],
            "count": float(self.count),
            "metrics": {name: float(value) for name, value in self.metrics.items()},
        }
        if aggregate_names is not None and self.aggregates is not None:
            result["aggregates"] = {
                name: float(value) for name, value in zip(aggregate_names, self.aggregates)
            }
        return result


@dataclass
class LevelStats:
    """Counts for one level of the candidate search."""

    level: int
    evaluated: int = 0
    kept: int = 0
    pruned: int = 0
    deferred: int = 0
    skipped_by_subset_check: int = 0
    truncated: int = 0
    stage_counts: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def retained(self) -> int:
        """Candidates eligible for extension."""
        return self.kept + self.deferred

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "evaluated": self.evaluated,
            "kept": self.kept,
            "pruned": self.pruned,
            "deferred": self.deferred,
            "skipped_by_subset_check": self.skipped_by_subset_check,
            "truncated": self.truncated,
            "stage_counts": dict(self.stage_counts),
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class ExplanationResult:
    """
    Overall output of a summarization run.

    Explanations are ranked by GlobalRatio value when that metric is active,
    otherwise by Support value, both descending.

    Example:
        >>> result = summarizer.summarize(df)
        >>> result.num_total()
        1000.0
        >>> result.to_dataframe().head()
    """

    explanations: List[Explanation]
    global_count: float
    metric_names: List[str]
    aggregate_names: List[str] = field(default_factory=list)
    calibration: Dict[str, Dict[str, float]] = field(default_factory=dict)
    level_stats: List[LevelStats] = field(default_factory=list)
    execution_time: datetime = field(default_factory=datetime.now)
    duration_seconds: float = 0.0

    def __post_init__(self):
        self.explanations = self._ranked(self.explanations)

    def _ranking_metric(self) -> Optional[str]:
        if GLOBAL_RATIO_METRIC_NAME in self.metric_names:
            return GLOBAL_RATIO_METRIC_NAME
        if SUPPORT_METRIC_NAME in self.metric_names:
            return SUPPORT_METRIC_NAME
        return None

    def _ranked(self, explanations: List[Explanation]) -> List[Explanation]:
        metric = self._ranking_metric()
        if metric is None:
            return list(explanations)
        # Stable: ties keep level-then-discovery order
        return sorted(explanations, key=lambda e: -e.metrics.get(metric, 0.0))

    def num_total(self) -> float:
        """Row count of the dataset the explanations were drawn from."""
        return float(self.global_count)

    def __len__(self) -> int:
        return len(self.explanations)

    def __iter__(self):
        return iter(self.explanations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_time": self.execution_time.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "num_total": self.num_total(),
            "metrics": list(self.metric_names),
            "calibration": self.calibration,
            "explanation_count": len(self.explanations),
            "explanations": [e.to_dict(self.aggregate_names) for e in self.explanations],
            "levels": [s.to_dict() for s in self.level_stats],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One row per explanation: a column per attribute plus count and metric values."""
        attributes: List[str] = []
        for explanation in self.explanations:
            for attribute, _ in explanation.predicates:
                if attribute not in attributes:
                    attributes.append(attribute)

        rows = []
        for explanation in self.explanations:
            row: Dict[str, Any] = {a: None for a in attributes}
            row.update(explanation.matcher())
            row["order"] = explanation.order
            row["count"] = explanation.count
            row.update(explanation.metrics)
            rows.append(row)

        columns = attributes + ["order", "count"] + list(self.metric_names)
        return pd.DataFrame(rows, columns=columns)

    def pretty_print(self, limit: Optional[int] = None) -> str:
        """Human readable listing of the ranked explanations."""
        lines = [
            f"Outlier explanations: {len(self.explanations)} (of {self.num_total():.0f} rows)",
        ]
        for name, values in self.calibration.items():
            lines.append(
                f"  {name}: cutoff={values.get('cutoff', float('nan')):.6g}, "
                f"global outliers={values.get('global_outlier_count', float('nan')):.6g}"
            )

        shown = self.explanations if limit is None else self.explanations[:limit]
        for rank, explanation in enumerate(shown, start=1):
            predicate_text = ", ".join(f"{a}={v}" for a, v in explanation.predicates)
            metric_text = ", ".join(f"{n}={v:.4f}" for n, v in explanation.metrics.items())
            lines.append(f"  {rank:>3}. {predicate_text} (count={explanation.count:.0f}; {metric_text})")

        if limit is not None and len(self.explanations) > limit:
            lines.append(f"  ... {len(self.explanations) - limit} more")
        return "\n".join(lines)
