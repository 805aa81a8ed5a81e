"""
Rigorous tail bounds from moments.

Both functions work on a variable y supported on [-1, 1] whose moments
E[y ** 0..k-1] are known, and bound P(y >= t) for -1 < t <= 1.

markov_bound
    Markov's inequality applied to every power of the shifted variables
    (y + 1) and (1 - y); the best power wins. Cheap and always valid.

racz_bound
    Chebyshev-Markov-Stieltjes bound from the principal representation of the
    moment sequence with a node at t (Gauss-Radau quadrature). For the
    representation {(x_i, w_i)} matching moments up to order 2n,

        sum_{x_i > t} w_i  <=  P(y > t) <= P(y >= t)  <=  sum_{x_i >= t} w_i

    The recurrence coefficients come from the Cholesky factor of the Hankel
    moment matrix (Golub-Welsch); the extra node is placed at t by modifying
    the last diagonal entry of the Jacobi matrix.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.linalg import LinAlgError, cholesky, eigh_tridiagonal, hankel, solve
from scipy.special import comb

from outlier_explainer.core.constants import MIN_HANKEL_PIVOT

logger = logging.getLogger(__name__)


def markov_bound(moments: Sequence[float], t: float) -> Tuple[float, float]:
    """
    Markov-style bound on P(y >= t).

    Args:
        moments: E[y ** n] for n = 0..k-1, y supported on [-1, 1]
        t: Threshold in the same units as y

    Returns:
        (lower, upper) with 0 <= lower <= upper <= 1
    """
    if t <= -1.0:
        return 1.0, 1.0
    if t > 1.0:
        return 0.0, 0.0

    moments = np.asarray(moments, dtype=np.float64)
    lower, upper = 0.0, 1.0
    for n in range(1, moments.shape[0]):
        j = np.arange(n + 1)
        coefficients = comb(n, j)
        above = np.clip(np.sum(coefficients * moments[: n + 1]), 0.0, 2.0 ** n)
        below = np.clip(np.sum(coefficients * (-1.0) ** j * moments[: n + 1]), 0.0, 2.0 ** n)

        upper = min(upper, above / (t + 1.0) ** n)
        if t < 1.0:
            lower = max(lower, 1.0 - below / (1.0 - t) ** n)

    lower = float(np.clip(lower, 0.0, 1.0))
    upper = float(np.clip(upper, 0.0, 1.0))
    return min(lower, upper), upper


def racz_bound(moments: Sequence[float], t: float) -> Tuple[float, float]:
    """
    Tightened bound on P(y >= t) using the full moment sequence.

    Uses the largest even order 2n available; when the Hankel matrix of that
    order is numerically singular (too few distinct support points) the order
    is reduced until a representation exists. Returns the trivial interval
    when none does.

    Args:
        moments: E[y ** n] for n = 0..k-1, y supported on [-1, 1]
        t: Threshold in the same units as y

    Returns:
        (lower, upper) with 0 <= lower <= upper <= 1
    """
    if t <= -1.0:
        return 1.0, 1.0
    if t > 1.0:
        return 0.0, 0.0

    moments = np.asarray(moments, dtype=np.float64)
    for n in range((moments.shape[0] - 1) // 2, 0, -1):
        bounds = _radau_bound(moments[: 2 * n + 1], n, t)
        if bounds is not None:
            return bounds
    return 0.0, 1.0


def _radau_bound(moments: np.ndarray, n: int, t: float) -> Optional[Tuple[float, float]]:
    hankel_matrix = hankel(moments[: n + 1], moments[n: 2 * n + 1])
    try:
        factor = cholesky(hankel_matrix, lower=False)
    except LinAlgError:
        logger.debug(f"Hankel matrix of order {2 * n} is not positive definite")
        return None

    pivots = np.diag(factor)
    if np.min(pivots) < MIN_HANKEL_PIVOT:
        return None

    alpha = np.empty(n)
    beta = np.empty(n)
    for j in range(n):
        alpha[j] = factor[j, j + 1] / factor[j, j]
        if j > 0:
            alpha[j] -= factor[j - 1, j] / factor[j - 1, j - 1]
        beta[j] = factor[j + 1, j + 1] / factor[j, j]

    jacobi = np.diag(alpha) + np.diag(beta[:-1], 1) + np.diag(beta[:-1], -1)
    rhs = np.zeros(n)
    rhs[-1] = beta[-1] ** 2
    try:
        delta = solve(jacobi - t * np.eye(n), rhs)
    except LinAlgError:
        # t is a Gauss node of order n
        return None
    if not np.all(np.isfinite(delta)):
        return None

    diagonal = np.append(alpha, t + delta[-1])
    try:
        nodes, vectors = eigh_tridiagonal(diagonal, beta)
    except LinAlgError:
        return None

    weights = moments[0] * vectors[0, :] ** 2
    at_t = int(np.argmin(np.abs(nodes - t)))
    above = nodes > t
    above[at_t] = False

    lower = float(np.clip(np.sum(weights[above]), 0.0, 1.0))
    upper = float(np.clip(lower + weights[at_t], 0.0, 1.0))
    return lower, upper
