"""
Unit tests for QualityMetric and the decision cascade.

Calibration data: 1000 evenly spaced values on [0, 100], so the 0.95 cutoff
is close to 95 and the global outlier count is 50.
"""

import numpy as np
import pytest

from outlier_explainer.core.exceptions import SolverConvergenceError
from outlier_explainer.metrics.layout import AggregateLayout
from outlier_explainer.metrics.quality import Action, CascadeStage, MetricKind, QualityMetric
from outlier_explainer.sketch.moment_sketch import MomentSketch
from tests.testsuite.generators.outlier_data import aggregates_from_values

KA = 5
QUANTILE = 0.95
VALUES = np.linspace(0.0, 100.0, 1000)


def _metric(kind, use_cascade=True, layout=None):
    layout = layout or AggregateLayout(ka=KA, kb=0)
    return QualityMetric(kind, layout, quantile=QUANTILE, use_cascade=use_cascade)


@pytest.fixture
def global_aggregates():
    return aggregates_from_values(VALUES, ka=KA)


@pytest.fixture
def support(global_aggregates):
    return _metric(MetricKind.SUPPORT).initialize(global_aggregates)


@pytest.fixture
def global_ratio(global_aggregates):
    return _metric(MetricKind.GLOBAL_RATIO).initialize(global_aggregates)


@pytest.mark.unit
class TestAction:
    """Test combining actions of several metrics."""

    def test_combine_precedence(self):
        """Test PRUNE > DEFER > KEEP."""
        assert Action.combine(Action.KEEP, Action.KEEP) is Action.KEEP
        assert Action.combine(Action.KEEP, Action.DEFER) is Action.DEFER
        assert Action.combine(Action.DEFER, Action.PRUNE) is Action.PRUNE
        assert Action.combine(Action.PRUNE, Action.KEEP) is Action.PRUNE


@pytest.mark.unit
class TestCalibration:
    """Test initialize() on the global aggregate."""

    def test_cutoff_and_global_outlier_count(self, support):
        """Test cutoff near the true quantile and count * (1 - q) outliers."""
        assert support.cutoff == pytest.approx(95.0, abs=2.0)
        assert support.global_outlier_count == pytest.approx(50.0)

    def test_initialize_is_idempotent(self, global_aggregates):
        """Test that repeated calibration gives identical results."""
        metric = _metric(MetricKind.SUPPORT)
        first = metric.initialize(global_aggregates).cutoff
        second = metric.initialize(global_aggregates).cutoff
        other = _metric(MetricKind.GLOBAL_RATIO).initialize(global_aggregates).cutoff

        assert first == second == other

    def test_use_before_initialize(self):
        """Test that an uncalibrated metric refuses to decide."""
        metric = _metric(MetricKind.SUPPORT)

        assert not metric.is_initialized
        with pytest.raises(RuntimeError):
            metric.get_action(aggregates_from_values(VALUES[:10], ka=KA), 0.1)
        with pytest.raises(RuntimeError):
            metric.cutoff

    def test_empty_global_aggregate(self):
        """Test calibration on a dataset without rows."""
        layout = AggregateLayout(ka=KA, kb=0)
        metric = _metric(MetricKind.SUPPORT, layout=layout).initialize(np.zeros(layout.width))

        assert metric.global_outlier_count == 0.0
        assert metric.cutoff == 0.0

    def test_interpolated_cutoff_on_solver_failure(self, global_aggregates, monkeypatch):
        """Test the linear fallback when the quantile solve fails."""
        def fail(self, probabilities):
            raise SolverConvergenceError("forced")

        monkeypatch.setattr(MomentSketch, "get_quantiles", fail)
        metric = _metric(MetricKind.SUPPORT).initialize(global_aggregates)

        assert metric.cutoff == pytest.approx(95.0)


@pytest.mark.unit
class TestMetricProperties:
    """Test metric names, monotonicity and needed rates."""

    def test_names_and_monotonicity(self, support, global_ratio):
        """Test that only Support is monotonic."""
        assert support.name == "support"
        assert global_ratio.name == "global_ratio"
        assert support.is_monotonic()
        assert not global_ratio.is_monotonic()

    def test_rate_needed(self, support, global_ratio):
        """Test the outlier rate each metric needs."""
        group = aggregates_from_values(VALUES[:100], ka=KA)

        assert support.outlier_rate_needed(group, 0.1) == pytest.approx(0.1 * 50 / 100)
        assert global_ratio.outlier_rate_needed(group, 3.0) == pytest.approx(3.0 * 0.05)


@pytest.mark.unit
class TestCascade:
    """Test decisions of the four-stage cascade."""

    def test_top_group_is_kept(self, support, global_ratio):
        """Test that the top 5% of values pass both metrics."""
        top = aggregates_from_values(VALUES[-50:], ka=KA)

        assert support.get_action(top, 0.1) is Action.KEEP
        assert global_ratio.get_action(top, 3.0) is Action.KEEP
        assert support.value(top) > 0.8
        assert global_ratio.value(top) > 15.0

    def test_group_below_cutoff_decided_by_extrema(self, support, global_ratio, monkeypatch):
        """Test that a group whose max is below the cutoff never builds a sketch."""
        low = aggregates_from_values(VALUES[:500], ka=KA)

        def no_sketch(aggregates):
            raise AssertionError("sketch built for a group decided by its extrema")

        monkeypatch.setattr(support, "sketch_from_aggregates", no_sketch)
        monkeypatch.setattr(global_ratio, "sketch_from_aggregates", no_sketch)

        decision = support.decide(low, 0.1)
        assert decision.action is Action.PRUNE
        assert decision.stage is CascadeStage.MIN_MAX

        decision = global_ratio.decide(low, 3.0)
        assert decision.action is Action.DEFER
        assert decision.stage is CascadeStage.MIN_MAX

    def test_group_above_cutoff_kept_by_extrema(self, support):
        """Test that a group entirely above the cutoff is kept at stage 1."""
        high = aggregates_from_values([99.0, 99.5, 100.0] * 10, ka=KA)
        decision = support.decide(high, 0.1)

        assert decision.action is Action.KEEP
        assert decision.stage is CascadeStage.MIN_MAX

    def test_unreachable_support_is_pruned(self, support):
        """Test that a small group cannot reach a high support threshold."""
        small = aggregates_from_values(VALUES[-5:], ka=KA)
        assert support.get_action(small, 0.5) is Action.PRUNE

    def test_zero_rate_never_kept(self, global_ratio):
        """Test that a threshold of 0 does not keep groups without outliers."""
        low = aggregates_from_values(VALUES[:100], ka=KA)
        assert global_ratio.get_action(low, 0.0) is Action.DEFER

    @pytest.mark.parametrize("kind,thresholds", [
        (MetricKind.SUPPORT, [0.01, 0.1, 0.3, 0.6]),
        (MetricKind.GLOBAL_RATIO, [0.5, 1.0, 3.0, 10.0]),
    ])
    def test_cascade_matches_direct_estimate(self, global_aggregates, kind, thresholds):
        """Test that the cascade and the direct estimate classify every group identically."""
        cascade = _metric(kind, use_cascade=True).initialize(global_aggregates)
        direct = _metric(kind, use_cascade=False).initialize(global_aggregates)

        rng = np.random.default_rng(42)
        groups = [VALUES[start:start + 150] for start in range(0, 1000, 50)]
        groups += [rng.choice(VALUES, size=size, replace=False) for size in (20, 80, 200, 400)]

        for values in groups:
            aggregates = aggregates_from_values(values, ka=KA)
            for threshold in thresholds:
                assert cascade.get_action(aggregates, threshold) is direct.get_action(aggregates, threshold)

    def test_cascade_stages_recorded(self, support):
        """Test that a straddling group needs more than the extrema."""
        straddling = aggregates_from_values(VALUES[850:], ka=KA)
        decision = support.decide(straddling, 0.1)

        assert decision.action is Action.KEEP
        assert decision.stage is not CascadeStage.MIN_MAX


@pytest.mark.unit
class TestDegenerateInputs:
    """Test zero counts, log-only layouts and exact outlier counts."""

    def test_zero_global_outliers(self):
        """Test that nothing is kept when the dataset has no outliers."""
        layout = AggregateLayout(ka=KA, kb=0)
        group = aggregates_from_values(VALUES[-50:], ka=KA)

        for kind in MetricKind:
            metric = _metric(kind, layout=layout).initialize(np.zeros(layout.width))
            assert metric.get_action(group, 0.0) is not Action.KEEP
            assert metric.value(group) == 0.0

    def test_empty_group(self, support, global_ratio):
        """Test a group with a zero count."""
        empty = np.zeros(AggregateLayout(ka=KA, kb=0).width)

        assert support.get_action(empty, 0.1) is Action.PRUNE
        assert global_ratio.get_action(empty, 1.0) is Action.DEFER
        assert support.value(empty) == 0.0

    def test_log_only_layout_ignores_standard_extrema(self):
        """Test that a log-only layout never reads the standard extrema."""
        layout = AggregateLayout(ka=0, kb=5)
        values = np.linspace(1.0, 100.0, 1000)

        global_aggregates = aggregates_from_values(values, ka=0, kb=5)
        global_aggregates[layout.min_idx] = np.nan
        global_aggregates[layout.max_idx] = np.nan
        metric = _metric(MetricKind.SUPPORT, layout=layout).initialize(global_aggregates)

        top = aggregates_from_values(values[-50:], ka=0, kb=5)
        top[layout.min_idx] = np.nan
        top[layout.max_idx] = np.nan

        assert np.isfinite(metric.cutoff)
        assert metric.get_action(top, 0.1) is Action.KEEP

    def test_exact_outlier_count_value(self):
        """Test that GlobalRatio uses the exact count when present."""
        layout = AggregateLayout(ka=KA, kb=0, has_outlier_count=True)
        metric = _metric(MetricKind.GLOBAL_RATIO, layout=layout).initialize(
            aggregates_from_values(VALUES, ka=KA, outlier_count=50.0)
        )
        group = aggregates_from_values(VALUES[:100], ka=KA, outlier_count=30.0)

        assert metric.value(group) == pytest.approx(0.3 / 0.05)

    def test_zero_exact_count_falls_back_to_estimate(self):
        """Test that a zero exact count uses the sketch estimate."""
        layout = AggregateLayout(ka=KA, kb=0, has_outlier_count=True)
        metric = _metric(MetricKind.GLOBAL_RATIO, layout=layout).initialize(
            aggregates_from_values(VALUES, ka=KA, outlier_count=50.0)
        )
        low = aggregates_from_values(VALUES[:100], ka=KA, outlier_count=0.0)

        assert metric.value(low) == 0.0

    def test_repr(self, support):
        """Test the debugging representation."""
        assert "SUPPORT" in repr(support)
