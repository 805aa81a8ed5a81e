"""
Power-sum helpers shared by the moment sketch and the raw-row summarizer.

A group of values x_1..x_n is summarized by its power sums
S_j = sum_i x_i ** j for j = 0..k-1 (S_0 is the row count). Power sums are
additive, so partial sums over row partitions merge with a plain SUM.
"""

from typing import Sequence

import numpy as np
from scipy.special import comb


def power_sum_columns(values: Sequence[float], k: int) -> np.ndarray:
    """
    Per-row power columns x ** 0 .. x ** (k - 1).

    Args:
        values: Measured values, one per row
        k: Number of power sums to produce

    Returns:
        Array of shape (k, n_rows); summing along axis 1 yields the power sums
    """
    array = np.asarray(values, dtype=np.float64)
    if k <= 0:
        return np.empty((0, array.shape[0]), dtype=np.float64)
    return np.power.outer(array, np.arange(k, dtype=np.float64)).T


def compute_power_sums(values: Sequence[float], k: int) -> np.ndarray:
    """Power sums S_0..S_{k-1} of the given values."""
    return power_sum_columns(values, k).sum(axis=1)


def scaled_moments(sums: Sequence[float], lo: float, hi: float) -> np.ndarray:
    """
    Convert power sums of x on [lo, hi] into moments of y on [-1, 1].

    y = (x - c) / r with c the midpoint and r the half-width of the support.
    E[y ** n] is expanded binomially from the normalized power sums and
    clipped to [-1, 1], the range any distribution on [-1, 1] must respect.

    Args:
        sums: Power sums S_0..S_{k-1}; S_0 must be positive
        lo: Minimum of the support
        hi: Maximum of the support (hi > lo)

    Returns:
        Array of k scaled moments with moments[0] == 1
    """
    sums = np.asarray(sums, dtype=np.float64)
    raw = sums / sums[0]
    center = (hi + lo) / 2.0
    radius = (hi - lo) / 2.0

    k = raw.shape[0]
    moments = np.empty(k, dtype=np.float64)
    for n in range(k):
        j = np.arange(n + 1)
        moments[n] = np.sum(comb(n, j) * raw[: n + 1] * (-center) ** (n - j)) / radius ** n

    moments[0] = 1.0
    moments[1::2] = np.clip(moments[1::2], -1.0, 1.0)
    moments[2::2] = np.clip(moments[2::2], 0.0, 1.0)
    return moments
