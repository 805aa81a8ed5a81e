"""
Moment sketch: extrema plus power sums, with bounds and maximum-entropy estimates.
"""

from .moment_sketch import MomentSketch
from .maxent import MaxEntSolver, MaxEntDistribution, chebyshev_moments
from .bounds import markov_bound, racz_bound
from .power_sums import power_sum_columns, compute_power_sums, scaled_moments

__all__ = [
    'MomentSketch',
    'MaxEntSolver',
    'MaxEntDistribution',
    'chebyshev_moments',
    'markov_bound',
    'racz_bound',
    'power_sum_columns',
    'compute_power_sums',
    'scaled_moments',
]
