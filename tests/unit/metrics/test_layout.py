"""
Unit tests for the aggregate layout and aggregation operators.
"""

import numpy as np
import pytest

from outlier_explainer.metrics.layout import AggregateLayout, AggregationOp


@pytest.mark.unit
class TestAggregateLayout:
    """Test index computation of the aggregate vector."""

    def test_standard_layout(self):
        """Test indices with standard moments only."""
        layout = AggregateLayout(ka=5, kb=0)

        assert layout.width == 9
        assert layout.power_sums_base == 4
        assert layout.count_idx == 4
        assert layout.outlier_count_idx is None

    def test_log_only_layout(self):
        """Test that the count comes from the log sums when ka is 0."""
        layout = AggregateLayout(ka=0, kb=3)

        assert layout.count_idx == 4
        assert layout.log_sums_base == 4
        assert layout.width == 7

    def test_outlier_count_slot(self):
        """Test that the exact outlier count is appended last."""
        layout = AggregateLayout(ka=3, kb=2, has_outlier_count=True)

        assert layout.outlier_count_idx == 9
        assert layout.width == 10

    def test_slices(self):
        """Test extraction of counts and sums from a vector."""
        layout = AggregateLayout(ka=2, kb=2)
        vector = np.array([1.0, 9.0, 0.0, 2.2, 4.0, 20.0, 4.0, 3.5])

        assert layout.count(vector) == 4.0
        assert list(layout.power_sums(vector)) == [4.0, 20.0]
        assert list(layout.log_sums(vector)) == [4.0, 3.5]

    def test_ops_align_with_layout(self):
        """Test one operator per position."""
        layout = AggregateLayout(ka=2, kb=1, has_outlier_count=True)
        ops = layout.aggregation_ops()

        assert len(ops) == layout.width
        assert ops[:4] == [AggregationOp.MIN, AggregationOp.MAX, AggregationOp.MIN, AggregationOp.MAX]
        assert all(op is AggregationOp.SUM for op in ops[4:])

    def test_aggregate_names(self):
        """Test default and supplied display names."""
        layout = AggregateLayout(ka=2, kb=0)

        assert layout.aggregate_names() == ["Minimum", "Maximum", "Log Minimum", "Log Maximum",
                                            "power:0:sum", "power:1:sum"]
        assert layout.aggregate_names(["n", "s"])[4:] == ["n", "s"]


@pytest.mark.unit
class TestAggregationOp:
    """Test reducers and their identities."""

    def test_reduce(self):
        """Test reduction along an axis."""
        values = np.array([[1.0, 5.0], [3.0, 2.0]])

        assert list(AggregationOp.SUM.reduce(values)) == [4.0, 7.0]
        assert list(AggregationOp.MIN.reduce(values)) == [1.0, 2.0]
        assert list(AggregationOp.MAX.reduce(values)) == [3.0, 5.0]

    def test_empty_reduce_gives_identity(self):
        """Test that zero rows reduce to the identity."""
        empty = np.empty(0)

        for op in AggregationOp:
            assert op.reduce(empty) == op.identity

    def test_pandas_names(self):
        """Test names understood by GroupBy.agg."""
        assert [op.pandas_name for op in AggregationOp] == ["sum", "min", "max"]
