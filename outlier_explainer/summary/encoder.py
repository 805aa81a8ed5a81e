"""
Attribute encoding - map (attribute, value) pairs to integer ids.

Every distinct non-null value of every attribute column receives one id that is
unique across all attributes, so a candidate predicate is a single integer and
the attribute it belongs to can be recovered from the id alone. Missing values
encode to NULL_ATTRIBUTE_CODE and never become candidate predicates.
"""

import logging
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from outlier_explainer.core.constants import NULL_ATTRIBUTE_CODE
from outlier_explainer.core.exceptions import ColumnNotFoundError

logger = logging.getLogger(__name__)


class AttributeEncoder:
    """
    Deterministic, injective encoder for attribute columns.

    Ids are assigned attribute by attribute in order of first appearance, so
    the same frame always yields the same encoding.

    Example:
        >>> encoder = AttributeEncoder()
        >>> codes = encoder.encode(df, ["region", "device"])
        >>> encoder.decode(int(codes[0, 0]))
        ('region', 'EU')
    """

    def __init__(self):
        self.attributes: List[str] = []
        self._decoder: Dict[int, Tuple[str, Any]] = {}
        self._attribute_of: Dict[int, int] = {}

    @property
    def cardinality(self) -> int:
        """Total number of distinct (attribute, value) ids."""
        return len(self._decoder)

    def encode(self, df: pd.DataFrame, attributes: Sequence[str]) -> np.ndarray:
        """
        Encode attribute columns of a frame.

        Args:
            df: Input rows
            attributes: Attribute column names, in order

        Returns:
            int64 array of shape (n_rows, n_attributes)

        Raises:
            ColumnNotFoundError: If an attribute column is missing
        """
        for attribute in attributes:
            if attribute not in df.columns:
                raise ColumnNotFoundError(attribute, available_columns=list(df.columns))

        self.attributes = list(attributes)
        self._decoder = {}
        self._attribute_of = {}

        encoded = np.full((len(df), len(self.attributes)), NULL_ATTRIBUTE_CODE, dtype=np.int64)
        next_id = 0
        for position, attribute in enumerate(self.attributes):
            codes, uniques = pd.factorize(df[attribute], use_na_sentinel=True)
            present = codes >= 0
            encoded[present, position] = codes[present] + next_id
            for offset, value in enumerate(uniques):
                self._decoder[next_id + offset] = (attribute, _python_value(value))
                self._attribute_of[next_id + offset] = position
            next_id += len(uniques)

        logger.debug(f"Encoded {len(self.attributes)} attributes into {next_id} distinct values")
        return encoded

    def decode(self, code: int) -> Tuple[str, Any]:
        """Return the (attribute, value) pair for an id."""
        return self._decoder[code]

    def decode_all(self, codes: Sequence[int]) -> List[Tuple[str, Any]]:
        return [self._decoder[c] for c in codes]

    def attribute_index(self, code: int) -> int:
        """Position of the attribute column an id belongs to."""
        return self._attribute_of[code]


def _python_value(value: Any) -> Any:
    # numpy scalars do not serialize to JSON
    if isinstance(value, np.generic):
        return value.item()
    return value
