"""
Quality Metrics - decide KEEP / PRUNE / DEFER for one candidate group.

A QualityMetric compares the estimated outlier rate of a group (the fraction
of its values at or above the calibrated cutoff) against the rate the metric
needs at a given threshold. Instead of counting outliers exactly it summarizes
each group with a MomentSketch and escalates through four stages, each run only
when the previous one was inconclusive:

    1. MIN_MAX  - group extrema against the cutoff (no sketch is built)
    2. MARKOV   - Markov-style bound interval
    3. RACZ     - tightened bound interval
    4. MAXENT   - maximum-entropy point estimate, clamped to the stage-3 interval

Stages 1-3 only return when their interval decides the question, and the
stage-4 estimate always lies inside that interval, so the cascade and the
direct (non-cascade) estimate classify every group identically.

Metric kinds are a tagged strategy rather than a class hierarchy:

    SUPPORT       monotonic   value = rate * count / global_outlier_count
    GLOBAL_RATIO  not         value = rate / (1 - quantile)

Design Decisions:
    - A below-threshold result is PRUNE for monotonic metrics (the group and
      every extension can be discarded) and DEFER otherwise
    - A group with an estimated outlier rate of 0 is never KEEP
    - A zero global outlier count (empty or outlier-free data) makes every
      group fail; metric values are then 0.0, never NaN
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np

from outlier_explainer.core.constants import (
    DEFAULT_TOLERANCE,
    GLOBAL_RATIO_METRIC_NAME,
    SUPPORT_METRIC_NAME,
)
from outlier_explainer.core.exceptions import SolverConvergenceError
from outlier_explainer.metrics.layout import AggregateLayout
from outlier_explainer.sketch.maxent import MaxEntSolver
from outlier_explainer.sketch.moment_sketch import MomentSketch

logger = logging.getLogger(__name__)


class Action(Enum):
    """
    Outcome of evaluating one metric on one candidate.

    KEEP: the candidate passes the threshold
    PRUNE: the candidate and all its extensions fail (monotonic metrics only)
    DEFER: the candidate fails but extensions may still pass
    """
    KEEP = "KEEP"
    PRUNE = "PRUNE"
    DEFER = "DEFER"

    @staticmethod
    def combine(left: "Action", right: "Action") -> "Action":
        """Combine actions of several metrics: PRUNE > DEFER > KEEP."""
        if left is Action.PRUNE or right is Action.PRUNE:
            return Action.PRUNE
        if left is Action.DEFER or right is Action.DEFER:
            return Action.DEFER
        return Action.KEEP


class CascadeStage(Enum):
    """Stage of the cascade that produced a decision."""
    MIN_MAX = 1
    MARKOV = 2
    RACZ = 3
    MAXENT = 4


@dataclass(frozen=True)
class CascadeDecision:
    """Action together with the cascade stage that decided it."""
    action: Action
    stage: CascadeStage


class MetricKind(Enum):
    """Supported quality metrics."""
    SUPPORT = SUPPORT_METRIC_NAME
    GLOBAL_RATIO = GLOBAL_RATIO_METRIC_NAME


@dataclass(frozen=True)
class MetricStrategy:
    """
    Per-kind behaviour plugged into the shared cascade.

    Attributes:
        monotonic: Whether the metric never increases when predicates are added
        value: (metric, aggregates, outlier_rate) -> metric value
        rate_needed: (metric, aggregates, threshold) -> outlier rate needed,
            or None when no rate can satisfy the metric
    """
    monotonic: bool
    value: Callable[["QualityMetric", Sequence[float], float], float]
    rate_needed: Callable[["QualityMetric", Sequence[float], float], Optional[float]]


def _support_value(metric: "QualityMetric", aggregates: Sequence[float], rate: float) -> float:
    count = metric.layout.count(aggregates)
    if metric.global_outlier_count <= 0 or count <= 0:
        return 0.0
    return rate * count / metric.global_outlier_count


def _support_rate_needed(metric: "QualityMetric", aggregates: Sequence[float], threshold: float) -> Optional[float]:
    count = metric.layout.count(aggregates)
    if metric.global_outlier_count <= 0 or count <= 0:
        return None
    return threshold * metric.global_outlier_count / count


def _global_ratio_value(metric: "QualityMetric", aggregates: Sequence[float], rate: float) -> float:
    if metric.global_outlier_count <= 0:
        return 0.0
    return rate / (1.0 - metric.quantile)


def _global_ratio_rate_needed(metric: "QualityMetric", aggregates: Sequence[float], threshold: float) -> Optional[float]:
    if metric.global_outlier_count <= 0 or metric.layout.count(aggregates) <= 0:
        return None
    return threshold * (1.0 - metric.quantile)


STRATEGIES = {
    MetricKind.SUPPORT: MetricStrategy(
        monotonic=True,
        value=_support_value,
        rate_needed=_support_rate_needed,
    ),
    MetricKind.GLOBAL_RATIO: MetricStrategy(
        monotonic=False,
        value=_global_ratio_value,
        rate_needed=_global_ratio_rate_needed,
    ),
}


class QualityMetric:
    """
    Moment-sketch quality metric with an escalating-precision decision cascade.

    One instance per metric kind is shared by every candidate of a run. After
    initialize() it holds only read-only calibration (cutoff and global outlier
    count), so concurrent calls to get_action() are safe.

    Attributes:
        kind: Which metric this is
        layout: Aggregate vector layout
        quantile: Quantile defining an outlier (e.g. 0.99)
        tolerance: Maximum-entropy solver tolerance
        use_cascade: Run stages 1-3 before the maximum-entropy estimate

    Example:
        >>> layout = AggregateLayout(ka=5, kb=0)
        >>> metric = QualityMetric(MetricKind.SUPPORT, layout, quantile=0.95)
        >>> metric.initialize(global_aggregates)
        >>> metric.get_action(group_aggregates, threshold=0.1)
        <Action.KEEP: 'KEEP'>
    """

    def __init__(
        self,
        kind: MetricKind,
        layout: AggregateLayout,
        quantile: float,
        tolerance: float = DEFAULT_TOLERANCE,
        use_cascade: bool = True,
    ):
        self.kind = kind
        self.layout = layout
        self.quantile = quantile
        self.tolerance = tolerance
        self.use_cascade = use_cascade
        self._strategy = STRATEGIES[kind]
        self._solver = MaxEntSolver(tolerance=tolerance)
        self._cutoff: Optional[float] = None
        self._global_outlier_count: Optional[float] = None

    # ------------------------------------------------------------------
    # Metric contract
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.kind.value

    def is_monotonic(self) -> bool:
        return self._strategy.monotonic

    @property
    def cutoff(self) -> float:
        self._require_initialized()
        return self._cutoff

    @property
    def global_outlier_count(self) -> float:
        self._require_initialized()
        return self._global_outlier_count

    @property
    def is_initialized(self) -> bool:
        return self._cutoff is not None

    def _require_initialized(self) -> None:
        if self._cutoff is None:
            raise RuntimeError(f"Metric '{self.name}' used before initialize()")

    def initialize(self, global_aggregates: Sequence[float]) -> "QualityMetric":
        """
        Calibrate the cutoff and global outlier count from the whole dataset.

        Idempotent: the same global aggregates always give the same calibration.

        Args:
            global_aggregates: Aggregate vector of the entire dataset

        Returns:
            self, calibrated
        """
        count = self.layout.count(global_aggregates)
        self._global_outlier_count = max(count, 0.0) * (1.0 - self.quantile)

        if count <= 0:
            logger.warning(f"Metric '{self.name}': global aggregate is empty, no candidate can be kept")
            self._cutoff = 0.0
            return self

        sketch = self.sketch_from_aggregates(global_aggregates)
        try:
            cutoff = sketch.get_quantiles([self.quantile])[0]
        except SolverConvergenceError as e:
            logger.warning(
                f"Metric '{self.name}': quantile solve failed ({e.message}), "
                f"falling back to linear interpolation"
            )
            cutoff = self._interpolated_cutoff(global_aggregates)

        self._cutoff = float(cutoff)
        logger.debug(
            f"Metric '{self.name}' calibrated: cutoff={self._cutoff:.6g}, "
            f"global_outlier_count={self._global_outlier_count:.6g}"
        )
        return self

    def _interpolated_cutoff(self, aggregates: Sequence[float]) -> float:
        lo, hi = self._extrema(aggregates)
        return self.quantile * (hi - lo) + lo

    def value(self, aggregates: Sequence[float]) -> float:
        """
        Metric value of a group.

        GlobalRatio uses the exact outlier count when the layout carries one
        and it is positive; otherwise the sketch estimate is used.
        """
        self._require_initialized()
        if self.kind is MetricKind.GLOBAL_RATIO and self.layout.has_outlier_count:
            exact = float(aggregates[self.layout.outlier_count_idx])
            count = self.layout.count(aggregates)
            if exact > 0 and count > 0:
                return self._strategy.value(self, aggregates, exact / count)

        if self.layout.count(aggregates) <= 0:
            return 0.0
        return self._strategy.value(self, aggregates, self.estimate_outlier_rate(aggregates))

    def get_action(self, aggregates: Sequence[float], threshold: float) -> Action:
        """Decide KEEP / PRUNE / DEFER for a group at the given threshold."""
        return self.decide(aggregates, threshold).action

    def decide(self, aggregates: Sequence[float], threshold: float) -> CascadeDecision:
        """Like get_action(), also reporting which stage decided."""
        self._require_initialized()
        if self.use_cascade:
            return self._decide_cascade(aggregates, threshold)
        return self._decide_maxent(aggregates, threshold)

    def outlier_rate_needed(self, aggregates: Sequence[float], threshold: float) -> Optional[float]:
        """Outlier rate a group needs to pass, or None if nothing can pass."""
        self._require_initialized()
        return self._strategy.rate_needed(self, aggregates, threshold)

    # ------------------------------------------------------------------
    # Sketch helpers
    # ------------------------------------------------------------------

    def sketch_from_aggregates(self, aggregates: Sequence[float]) -> MomentSketch:
        """Build a MomentSketch from the domains present in the layout."""
        layout = self.layout
        sketch = MomentSketch(tolerance=self.tolerance, solver=self._solver)
        sketch.set_stats(
            aggregates[layout.min_idx] if layout.ka > 0 else 0.0,
            aggregates[layout.max_idx] if layout.ka > 0 else 1.0,
            aggregates[layout.log_min_idx] if layout.kb > 0 else 0.0,
            aggregates[layout.log_max_idx] if layout.kb > 0 else 1.0,
            layout.power_sums(aggregates),
            layout.log_sums(aggregates),
        )
        return sketch

    def estimate_outlier_rate(self, aggregates: Sequence[float], sketch: Optional[MomentSketch] = None) -> float:
        """
        Estimated fraction of the group at or above the cutoff.

        Maximum-entropy estimate, or linear interpolation between the extrema
        when the solve fails; clamped into the tightened bound interval.
        """
        sketch = sketch or self.sketch_from_aggregates(aggregates)
        lower, upper = sketch.bound_greater_than_threshold_racz(self._cutoff)
        if lower == upper:
            return lower
        try:
            estimate = sketch.estimate_greater_than_threshold(self._cutoff)
        except SolverConvergenceError as e:
            logger.debug(f"Metric '{self.name}': estimate solve failed ({e.message}), interpolating")
            estimate = sketch.interpolate_greater_than_threshold(self._cutoff)
        return float(np.clip(estimate, lower, upper))

    def _extrema(self, aggregates: Sequence[float]):
        layout = self.layout
        if layout.ka > 0:
            return float(aggregates[layout.min_idx]), float(aggregates[layout.max_idx])
        return math.exp(aggregates[layout.log_min_idx]), math.exp(aggregates[layout.log_max_idx])

    # ------------------------------------------------------------------
    # Decision procedures
    # ------------------------------------------------------------------

    @staticmethod
    def _passes(rate: float, needed: float) -> bool:
        return rate > 0 and rate >= needed

    def _below(self, stage: CascadeStage) -> CascadeDecision:
        action = Action.PRUNE if self.is_monotonic() else Action.DEFER
        return CascadeDecision(action, stage)

    def _decide_cascade(self, aggregates: Sequence[float], threshold: float) -> CascadeDecision:
        needed = self._strategy.rate_needed(self, aggregates, threshold)
        if needed is None:
            return self._below(CascadeStage.MIN_MAX)

        # Stage 1: extrema against the cutoff
        lo, hi = self._extrema(aggregates)
        if needed > 1.0 or hi < self._cutoff:
            return self._below(CascadeStage.MIN_MAX)
        if lo >= self._cutoff:
            return CascadeDecision(Action.KEEP, CascadeStage.MIN_MAX)

        sketch = self.sketch_from_aggregates(aggregates)

        # Stage 2: Markov bounds
        lower, upper = sketch.bound_greater_than_threshold_markov(self._cutoff)
        if not self._passes(upper, needed):
            return self._below(CascadeStage.MARKOV)
        if self._passes(lower, needed):
            return CascadeDecision(Action.KEEP, CascadeStage.MARKOV)

        # Stage 3: tightened bounds
        lower, upper = sketch.bound_greater_than_threshold_racz(self._cutoff)
        if not self._passes(upper, needed):
            return self._below(CascadeStage.RACZ)
        if self._passes(lower, needed):
            return CascadeDecision(Action.KEEP, CascadeStage.RACZ)

        # Stage 4: maximum-entropy estimate
        return self._estimate_decision(aggregates, sketch, needed)

    def _decide_maxent(self, aggregates: Sequence[float], threshold: float) -> CascadeDecision:
        needed = self._strategy.rate_needed(self, aggregates, threshold)
        if needed is None:
            return self._below(CascadeStage.MAXENT)
        return self._estimate_decision(aggregates, self.sketch_from_aggregates(aggregates), needed)

    def _estimate_decision(self, aggregates, sketch: MomentSketch, needed: float) -> CascadeDecision:
        rate = self.estimate_outlier_rate(aggregates, sketch)
        if self._passes(rate, needed):
            return CascadeDecision(Action.KEEP, CascadeStage.MAXENT)
        return self._below(CascadeStage.MAXENT)

    def __repr__(self) -> str:
        return (
            f"QualityMetric(kind={self.kind.name}, quantile={self.quantile}, "
            f"use_cascade={self.use_cascade}, cutoff={self._cutoff})"
        )
