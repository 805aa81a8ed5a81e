"""
Moment Sketch - bounded statistical summary of one group of values.

The sketch holds the extrema and power sums of a measured quantity (the
standard domain) and of its natural log (the log domain). Either domain may be
absent. From these it answers:

    - estimate_greater_than_threshold: maximum-entropy point estimate of the
      mass at or above a cutoff (may raise SolverConvergenceError)
    - get_quantiles: inverse CDF of the same fitted density
    - bound_greater_than_threshold_markov: cheap Markov-style interval
    - bound_greater_than_threshold_racz: tighter interval from the full moment
      sequence, always contained in the Markov interval
    - interpolate_greater_than_threshold: closed-form linear fallback

Usage:
    sketch = MomentSketch(tolerance=1e-9)
    sketch.set_stats(0.0, 100.0, 0.0, 0.0, power_sums, [])
    lower, upper = sketch.bound_greater_than_threshold_racz(95.0)
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from outlier_explainer.core.constants import BOUND_SLACK, DEFAULT_TOLERANCE
from outlier_explainer.sketch.bounds import markov_bound, racz_bound
from outlier_explainer.sketch.maxent import MaxEntDistribution, MaxEntSolver, chebyshev_moments
from outlier_explainer.sketch.power_sums import compute_power_sums, scaled_moments

logger = logging.getLogger(__name__)

# Placeholder statistics for a domain that was not supplied
DEFAULT_POWER_SUMS: Tuple[float, ...] = (1.0,)
DEFAULT_MIN: float = 0.0
DEFAULT_MAX: float = 1.0


@dataclass(frozen=True)
class _Domain:
    """One moment domain (standard or log) of a sketch."""
    name: str
    lo: float
    hi: float
    sums: np.ndarray
    is_log: bool

    @property
    def count(self) -> float:
        return float(self.sums[0])

    @property
    def degenerate(self) -> bool:
        return not self.hi > self.lo

    @property
    def moment_count(self) -> int:
        return int(self.sums.shape[0])

    def transform(self, value: float) -> float:
        """Map a value of the measured quantity into this domain."""
        if not self.is_log:
            return value
        return math.log(value) if value > 0 else -math.inf

    def inverse(self, value: float) -> float:
        return math.exp(value) if self.is_log else value

    def to_unit(self, value: float) -> float:
        center = (self.hi + self.lo) / 2.0
        radius = (self.hi - self.lo) / 2.0
        return min(max((value - center) / radius, -1.0), 1.0)

    def from_unit(self, y: float) -> float:
        center = (self.hi + self.lo) / 2.0
        radius = (self.hi - self.lo) / 2.0
        return y * radius + center

    def moments(self) -> np.ndarray:
        return scaled_moments(self.sums, self.lo, self.hi)


class MomentSketch:
    """
    Bounded statistical summary built from extrema and power sums.

    Attributes:
        tolerance: Gradient tolerance handed to the maximum-entropy solver

    Example:
        >>> sketch = MomentSketch.from_values(np.linspace(0, 100, 1001), ka=5, kb=0)
        >>> lower, upper = sketch.bound_greater_than_threshold_markov(95.0)
        >>> lower <= 0.05 <= upper
        True
    """

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE, solver: Optional[MaxEntSolver] = None):
        self.tolerance = tolerance
        self._solver = solver or MaxEntSolver(tolerance=tolerance)
        self._standard: Optional[_Domain] = None
        self._log: Optional[_Domain] = None
        self._fits: Dict[str, MaxEntDistribution] = {}

    @classmethod
    def from_values(
        cls,
        values: Sequence[float],
        ka: int,
        kb: int,
        tolerance: float = DEFAULT_TOLERANCE,
    ) -> "MomentSketch":
        """
        Build a sketch directly from raw values.

        Args:
            values: Measured values; must be positive when kb > 0
            ka: Number of standard-domain power sums
            kb: Number of log-domain power sums
            tolerance: Solver tolerance

        Returns:
            MomentSketch with stats set
        """
        array = np.asarray(values, dtype=np.float64)
        logs = np.log(array) if kb > 0 else np.zeros(0)

        sketch = cls(tolerance=tolerance)
        sketch.set_stats(
            float(array.min()) if ka > 0 else DEFAULT_MIN,
            float(array.max()) if ka > 0 else DEFAULT_MAX,
            float(logs.min()) if kb > 0 else DEFAULT_MIN,
            float(logs.max()) if kb > 0 else DEFAULT_MAX,
            compute_power_sums(array, ka),
            compute_power_sums(logs, kb),
        )
        return sketch

    def set_stats(
        self,
        min_value: float,
        max_value: float,
        log_min: float,
        log_max: float,
        power_sums: Optional[Sequence[float]],
        log_sums: Optional[Sequence[float]],
    ) -> "MomentSketch":
        """
        Load the summary statistics.

        An empty (or None) power-sum sequence marks the domain as absent; the
        sketch then keeps the default single power sum of 1.0 for it and never
        consults its extrema.

        Returns:
            self, for chaining
        """
        self._fits = {}
        self._standard = self._make_domain("standard", min_value, max_value, power_sums, is_log=False)
        self._log = self._make_domain("log", log_min, log_max, log_sums, is_log=True)
        return self

    @staticmethod
    def _make_domain(name, lo, hi, sums, is_log) -> Optional[_Domain]:
        if sums is None or len(sums) == 0:
            return None
        return _Domain(
            name=name,
            lo=float(lo),
            hi=float(hi),
            sums=np.asarray(sums, dtype=np.float64),
            is_log=is_log,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def count(self) -> float:
        """Number of values summarized."""
        domain = self._standard or self._log
        return domain.count if domain is not None else 0.0

    @property
    def power_sums(self) -> np.ndarray:
        """Standard-domain power sums, or the default placeholder."""
        if self._standard is None:
            return np.asarray(DEFAULT_POWER_SUMS)
        return self._standard.sums

    @property
    def log_sums(self) -> np.ndarray:
        """Log-domain power sums, or the default placeholder."""
        if self._log is None:
            return np.asarray(DEFAULT_POWER_SUMS)
        return self._log.sums

    def _domains(self) -> List[_Domain]:
        return [d for d in (self._standard, self._log) if d is not None and d.count > 0]

    def _primary_domain(self) -> Optional[_Domain]:
        """Domain used for point estimates: the one with moments, standard first."""
        domains = self._domains()
        if not domains:
            return None
        for domain in domains:
            if domain.moment_count > 1:
                return domain
        return domains[0]

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def _support_bound(self, domain: _Domain, t: float) -> Optional[Tuple[float, float]]:
        """Exact answer when the cutoff lies outside the open support."""
        if t <= domain.lo:
            return 1.0, 1.0
        if t > domain.hi or domain.degenerate:
            return 0.0, 0.0
        return None

    def _domain_bound(self, domain: _Domain, cutoff: float, bound_fn) -> Tuple[float, float]:
        t = domain.transform(cutoff)
        exact = self._support_bound(domain, t)
        if exact is not None:
            return exact
        return bound_fn(domain.moments(), domain.to_unit(t))

    @staticmethod
    def _intersect(intervals: List[Tuple[float, float]]) -> Tuple[float, float]:
        lower = max(i[0] for i in intervals)
        upper = min(i[1] for i in intervals)
        if lower > upper:
            # Rounding across domains; both ends are already valid bounds
            lower = upper = (lower + upper) / 2.0
        return lower, upper

    def bound_greater_than_threshold_markov(self, cutoff: float) -> List[float]:
        """
        Markov-style bound on the fraction of values >= cutoff.

        Args:
            cutoff: Threshold in units of the measured quantity

        Returns:
            [lower_bound, upper_bound]
        """
        domains = self._domains()
        if not domains:
            return [0.0, 0.0]
        lower, upper = self._intersect([self._domain_bound(d, cutoff, markov_bound) for d in domains])
        return [lower, upper]

    def bound_greater_than_threshold_racz(self, cutoff: float) -> List[float]:
        """
        Tightened bound on the fraction of values >= cutoff.

        The interval from the principal moment representation is widened by a
        rounding slack and then intersected with the Markov interval, so the
        result is never wider than bound_greater_than_threshold_markov.

        Args:
            cutoff: Threshold in units of the measured quantity

        Returns:
            [lower_bound, upper_bound]
        """
        domains = self._domains()
        if not domains:
            return [0.0, 0.0]

        intervals = []
        for domain in domains:
            lower, upper = self._domain_bound(domain, cutoff, racz_bound)
            intervals.append((max(lower - BOUND_SLACK, 0.0), min(upper + BOUND_SLACK, 1.0)))
        intervals.append(tuple(self.bound_greater_than_threshold_markov(cutoff)))

        lower, upper = self._intersect(intervals)
        return [lower, upper]

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    def _fit(self, domain: _Domain) -> MaxEntDistribution:
        if domain.name not in self._fits:
            logger.debug(f"Fitting maximum-entropy density on {domain.name} domain ({domain.moment_count} moments)")
            self._fits[domain.name] = self._solver.solve(chebyshev_moments(domain.moments()))
        return self._fits[domain.name]

    def estimate_greater_than_threshold(self, cutoff: float) -> float:
        """
        Maximum-entropy estimate of the fraction of values >= cutoff.

        Args:
            cutoff: Threshold in units of the measured quantity

        Returns:
            Probability in [0, 1]

        Raises:
            SolverConvergenceError: If the density fit does not converge
        """
        domain = self._primary_domain()
        if domain is None:
            return 0.0
        t = domain.transform(cutoff)
        exact = self._support_bound(domain, t)
        if exact is not None:
            return exact[0]
        return self._fit(domain).tail(domain.to_unit(t))

    def get_quantiles(self, probabilities: Sequence[float]) -> List[float]:
        """
        Inverse-CDF lookup under the fitted maximum-entropy density.

        Args:
            probabilities: Probabilities in [0, 1]

        Returns:
            One value per probability, in units of the measured quantity

        Raises:
            SolverConvergenceError: If the density fit does not converge
        """
        domain = self._primary_domain()
        if domain is None:
            raise ValueError("Cannot compute quantiles of an empty sketch")
        if domain.degenerate:
            return [domain.inverse(domain.lo) for _ in probabilities]

        distribution = self._fit(domain)
        return [domain.inverse(domain.from_unit(distribution.quantile(p))) for p in probabilities]

    def interpolate_greater_than_threshold(self, cutoff: float) -> float:
        """
        Closed-form fallback: linear interpolation between min and max.

        Uses the standard domain when present, else exp(log_min)/exp(log_max).
        """
        domain = self._standard if self._standard is not None else self._log
        if domain is None or domain.count <= 0:
            return 0.0
        lo, hi = domain.inverse(domain.lo), domain.inverse(domain.hi)
        if cutoff <= lo:
            return 1.0
        if cutoff > hi or not hi > lo:
            return 0.0
        return float(np.clip((hi - cutoff) / (hi - lo), 0.0, 1.0))
