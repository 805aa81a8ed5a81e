"""
Moment Summarizer - explain outliers in raw rows or a pre-aggregated cube.

The summarizer:
1. Builds one aggregate row per input row (raw mode) or reads the cube's
   aggregate columns (cube mode)
2. Encodes the attribute columns
3. Aggregates the whole dataset and calibrates every active metric once
4. Runs the candidate search
5. Returns the ranked ExplanationResult
"""

import time
from typing import List, Optional

import numpy as np
import pandas as pd

from outlier_explainer.core.config import CubeColumns, SummarizerConfig
from outlier_explainer.core.exceptions import (
    ColumnNotFoundError,
    ExplainerException,
    SummarizationError,
)
from outlier_explainer.core.logging_config import get_logger
from outlier_explainer.core.observers import SearchObserver, notify
from outlier_explainer.metrics.layout import AggregateLayout
from outlier_explainer.metrics.quality import MetricKind, QualityMetric
from outlier_explainer.sketch.power_sums import power_sum_columns
from outlier_explainer.summary.aggregates import AggregateCollector
from outlier_explainer.summary.encoder import AttributeEncoder
from outlier_explainer.summary.explanation import ExplanationResult
from outlier_explainer.summary.search import CandidateSearch, MetricThreshold, explain_candidates

logger = get_logger(__name__)


class MomentSummarizer:
    """
    Find attribute-value combinations with unusually high outlier rates.

    Example usage:
        config = SummarizerConfig(attributes=("region", "device"), quantile=0.95)
        result = MomentSummarizer(config).summarize_raw(df, "latency")
        print(result.pretty_print())
    """

    def __init__(
        self,
        config: SummarizerConfig,
        observers: Optional[List[SearchObserver]] = None,
        job_name: str = "outlier-explanation",
    ):
        self.config = config
        self.observers = observers or []
        self.job_name = job_name
        self.metrics: List[MetricThreshold] = []
        self.encoder = AttributeEncoder()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def summarize_raw(self, df: pd.DataFrame, metric_column: str) -> ExplanationResult:
        """
        Summarize raw rows with one measured column.

        Args:
            df: Input rows
            metric_column: Measured quantity

        Raises:
            ColumnNotFoundError: Missing attribute or measured column
            SummarizationError: Non-numeric or, with kb > 0, non-positive measurements
        """
        self._require_columns(df, list(self.config.attributes) + [metric_column])
        layout = AggregateLayout(ka=self.config.ka, kb=self.config.kb)
        df, values = self._raw_aggregates(df, metric_column, layout)
        names = layout.aggregate_names(
            [f"{metric_column}^{i}:sum" for i in range(layout.ka)],
            [f"ln({metric_column})^{i}:sum" for i in range(layout.kb)],
        )
        return self._run(df, values, layout, names)

    def summarize_cube(self, df: pd.DataFrame, cube: CubeColumns) -> ExplanationResult:
        """
        Summarize a cube whose rows already carry extrema and power sums.

        Raises:
            ColumnNotFoundError: Missing attribute or aggregate column
            SummarizationError: Cube column counts disagree with ka/kb, or
                aggregate columns are not numeric
        """
        self._require_columns(df, list(self.config.attributes) + cube.required_columns())
        if len(cube.power_sums) != self.config.ka or len(cube.log_sums) != self.config.kb:
            raise SummarizationError(
                f"Cube has {len(cube.power_sums)} power sums and {len(cube.log_sums)} log sums, "
                f"configuration expects ka={self.config.ka}, kb={self.config.kb}"
            )

        layout = AggregateLayout(
            ka=self.config.ka,
            kb=self.config.kb,
            has_outlier_count=cube.outlier_count is not None,
        )
        values = self._cube_aggregates(df, cube, layout)
        names = layout.aggregate_names(list(cube.power_sums), list(cube.log_sums))
        return self._run(df, values, layout, names)

    # ------------------------------------------------------------------
    # Aggregate rows
    # ------------------------------------------------------------------

    def _require_columns(self, df: pd.DataFrame, columns: List[str]) -> None:
        for column in columns:
            if column not in df.columns:
                raise ColumnNotFoundError(column, available_columns=list(df.columns))

    def _raw_aggregates(self, df: pd.DataFrame, metric_column: str, layout: AggregateLayout):
        measured = pd.to_numeric(df[metric_column], errors="coerce")
        invalid = int(measured.isna().sum() - df[metric_column].isna().sum())
        if invalid:
            raise SummarizationError(
                f"Column '{metric_column}' has {invalid} non-numeric value(s)", column=metric_column
            )

        missing = measured.isna()
        if missing.any():
            logger.warning(f"Dropping {int(missing.sum())} row(s) with missing '{metric_column}'")
            df = df.loc[~missing]
            measured = measured.loc[~missing]

        x = measured.to_numpy(dtype=np.float64)
        if layout.kb > 0:
            if np.any(x <= 0):
                raise SummarizationError(
                    f"Column '{metric_column}' has non-positive values; log moments (kb > 0) need positive data",
                    column=metric_column
                )
            log_x = np.log(x)
        else:
            log_x = np.zeros_like(x)

        columns = [x, x, log_x, log_x]
        columns.extend(power_sum_columns(x, layout.ka))
        columns.extend(power_sum_columns(log_x, layout.kb))
        values = np.column_stack(columns) if len(x) else np.empty((0, layout.width))
        return df, values

    def _cube_aggregates(self, df: pd.DataFrame, cube: CubeColumns, layout: AggregateLayout) -> np.ndarray:
        def numeric(column: Optional[str]) -> np.ndarray:
            if column is None:
                return np.zeros(len(df))
            series = pd.to_numeric(df[column], errors="coerce")
            if series.isna().any():
                raise SummarizationError(f"Cube column '{column}' must be numeric and complete", column=column)
            return series.to_numpy(dtype=np.float64)

        columns = [numeric(cube.min), numeric(cube.max), numeric(cube.log_min), numeric(cube.log_max)]
        columns.extend(numeric(c) for c in cube.power_sums)
        columns.extend(numeric(c) for c in cube.log_sums)
        if layout.has_outlier_count:
            columns.append(numeric(cube.outlier_count))
        return np.column_stack(columns) if len(df) else np.empty((0, layout.width))

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _build_metrics(self, layout: AggregateLayout) -> List[MetricThreshold]:
        config = self.config
        metrics = []
        if config.use_support:
            metrics.append(MetricThreshold(
                QualityMetric(MetricKind.SUPPORT, layout, config.quantile, config.tolerance, config.use_cascade),
                config.min_support,
            ))
        if config.use_global_ratio:
            metrics.append(MetricThreshold(
                QualityMetric(MetricKind.GLOBAL_RATIO, layout, config.quantile, config.tolerance, config.use_cascade),
                config.min_ratio_metric,
            ))
        return metrics

    def _run(
        self, df: pd.DataFrame, values: np.ndarray, layout: AggregateLayout, aggregate_names: List[str]
    ) -> ExplanationResult:
        config = self.config
        start = time.time()
        logger.info(f"Starting summarization: {len(df):,} rows, attributes {list(config.attributes)}")
        notify(self.observers, "on_run_start", self.job_name, len(df), list(config.attributes))

        stage = "encoding"
        try:
            encoded = self.encoder.encode(df, config.attributes)
            collector = AggregateCollector(
                encoded,
                values,
                layout.aggregation_ops(),
                chunk_size=config.chunk_size,
                workers=config.workers,
            )

            stage = "calibration"
            global_aggregates = collector.global_aggregates()
            self.metrics = self._build_metrics(layout)
            calibration = {}
            for entry in self.metrics:
                entry.metric.initialize(global_aggregates)
                calibration[entry.metric.name] = {
                    "cutoff": entry.metric.cutoff,
                    "global_outlier_count": entry.metric.global_outlier_count,
                }
                notify(
                    self.observers, "on_calibrated",
                    entry.metric.name, entry.metric.cutoff, entry.metric.global_outlier_count
                )

            stage = "search"
            search = CandidateSearch(
                collector,
                self.encoder,
                self.metrics,
                max_order=config.max_order,
                minimal=config.minimal,
                max_candidates_per_level=config.max_candidates_per_level,
                workers=config.workers,
                observers=self.observers,
            )
            kept = search.run()

            result = ExplanationResult(
                explanations=explain_candidates(kept, self.encoder, self.metrics),
                global_count=layout.count(global_aggregates),
                metric_names=[e.metric.name for e in self.metrics],
                aggregate_names=aggregate_names,
                calibration=calibration,
                level_stats=search.level_stats,
            )
        except ExplainerException as e:
            notify(self.observers, "on_error", e, {"stage": stage})
            raise
        except (ValueError, FloatingPointError, np.linalg.LinAlgError) as e:
            error = SummarizationError(f"Summarization failed during {stage}: {e}", original_exception=e)
            notify(self.observers, "on_error", error, {"stage": stage})
            raise error from e

        result.duration_seconds = time.time() - start
        logger.info(f"Summarization completed in {result.duration_seconds:.2f}s: {len(result)} explanations")
        notify(self.observers, "on_run_complete", result)
        return result
