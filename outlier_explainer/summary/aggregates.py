"""
Aggregate Collector - per-combination aggregate vectors by chunked map-reduce.

Rows arrive as an encoded attribute matrix plus a per-row aggregate matrix
whose columns line up with the AggregateLayout. For a set of attribute columns
the collector groups rows by their value ids and reduces every layout position
with its operator. Rows are processed in chunks; each chunk yields partial
aggregates which are merged with the same associative reducers, so the result
does not depend on chunk boundaries or their order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from outlier_explainer.core.constants import DEFAULT_CHUNK_SIZE, NULL_ATTRIBUTE_CODE
from outlier_explainer.metrics.layout import AggregationOp

logger = logging.getLogger(__name__)

Combination = Tuple[int, ...]


class AggregateCollector:
    """
    Build aggregate vectors for attribute-value combinations.

    Attributes:
        chunk_size: Rows per partition
        workers: Threads used to aggregate partitions concurrently

    Example:
        >>> collector = AggregateCollector(encoded, values, layout.aggregation_ops())
        >>> collector.global_aggregates()
        array([...])
        >>> collector.collect((0, 2))[(3, 11)]
        array([...])
    """

    def __init__(
        self,
        encoded: np.ndarray,
        values: np.ndarray,
        ops: Sequence[AggregationOp],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        workers: int = 1,
    ):
        self._encoded = np.asarray(encoded, dtype=np.int64)
        self._values = np.asarray(values, dtype=np.float64)
        self._ops = list(ops)

        if self._values.ndim != 2 or self._values.shape[1] != len(self._ops):
            raise ValueError(
                f"Aggregate matrix has shape {self._values.shape}, expected (rows, {len(self._ops)})"
            )
        if self._encoded.shape[0] != self._values.shape[0]:
            raise ValueError("Encoded attributes and aggregate rows differ in length")

        self.chunk_size = max(int(chunk_size), 1)
        self.workers = max(int(workers), 1)
        self._value_columns = [f"agg_{i}" for i in range(len(self._ops))]
        self._agg_spec = {col: op.pandas_name for col, op in zip(self._value_columns, self._ops)}

    @property
    def row_count(self) -> int:
        return int(self._values.shape[0])

    def global_aggregates(self) -> np.ndarray:
        """Aggregate vector over every row (no predicates)."""
        return np.array(
            [op.reduce(self._values[:, i]) for i, op in enumerate(self._ops)],
            dtype=np.float64,
        )

    def collect(self, attribute_positions: Sequence[int]) -> Dict[Combination, np.ndarray]:
        """
        Aggregate rows grouped by the value ids of the given attribute columns.

        Rows with a missing value in any of the columns are skipped.

        Args:
            attribute_positions: Positions of attribute columns in the encoded matrix

        Returns:
            Mapping of value-id tuple (in the order of attribute_positions) to
            its aggregate vector
        """
        positions = tuple(attribute_positions)
        key_columns = [f"attr_{p}" for p in positions]

        starts = range(0, self.row_count, self.chunk_size)
        if self.workers > 1 and len(starts) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                partials = list(executor.map(lambda s: self._aggregate_chunk(s, positions, key_columns), starts))
        else:
            partials = [self._aggregate_chunk(s, positions, key_columns) for s in starts]

        partials = [p for p in partials if p is not None and not p.empty]
        if not partials:
            return {}

        merged = self._merge(partials, len(key_columns))
        result = {}
        for key, row in zip(merged.index.to_list(), merged.to_numpy(dtype=np.float64)):
            key = key if isinstance(key, tuple) else (key,)
            result[tuple(int(k) for k in key)] = row

        logger.debug(
            f"Collected {len(result)} groups over attributes {list(positions)} "
            f"from {len(partials)} partition(s)"
        )
        return result

    def _aggregate_chunk(
        self, start: int, positions: Combination, key_columns: List[str]
    ) -> Optional[pd.DataFrame]:
        stop = min(start + self.chunk_size, self.row_count)
        codes = self._encoded[start:stop][:, list(positions)]
        mask = np.all(codes != NULL_ATTRIBUTE_CODE, axis=1)
        if not mask.any():
            return None

        frame = pd.DataFrame(self._values[start:stop][mask], columns=self._value_columns)
        for i, column in enumerate(key_columns):
            frame[column] = codes[mask, i]
        return frame.groupby(key_columns, sort=False).agg(self._agg_spec)

    def _merge(self, partials: List[pd.DataFrame], levels: int) -> pd.DataFrame:
        if len(partials) == 1:
            return partials[0]
        combined = pd.concat(partials)
        return combined.groupby(level=list(range(levels)), sort=False).agg(self._agg_spec)
