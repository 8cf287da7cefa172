"""Global 1-D trajectory optimisation.

Minimises, over a whole segment at once,

    sum_i w_i (x_i - d_i)^2 + lambda_v sum_i (x_i - x_{i-1})^2
        + lambda_a sum_i (x_{i+1} - 2 x_i + x_{i-1})^2

by projected gradient descent: every step is followed by clamping each sample to
its feasible interval [lower_i, upper_i].
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

MIN_WEIGHT = 0.2
MAX_WEIGHT = 1.0


def lipschitz_bound(weights: np.ndarray, lambda_v: float, lambda_a: float) -> float:
    """Upper bound on the objective's curvature.

    The first-difference operator has spectral norm <= 2 and the second-difference
    operator <= 4, so the Hessian's largest eigenvalue is at most
    2*max(w) + 8*lambda_v + 32*lambda_a.
    """

    w_max = float(weights.max()) if weights.size else 0.0
    return 2.0 * w_max + 8.0 * lambda_v + 32.0 * lambda_a


def objective_gradient(
    x: np.ndarray,
    desired: np.ndarray,
    weights: np.ndarray,
    lambda_v: float,
    lambda_a: float,
) -> np.ndarray:
    g = 2.0 * weights * (x - desired)

    if x.size >= 2:
        dv = np.diff(x)
        g[1:] += 2.0 * lambda_v * dv
        g[:-1] -= 2.0 * lambda_v * dv

    if x.size >= 3:
        da = x[2:] - 2.0 * x[1:-1] + x[:-2]
        g[2:] += 2.0 * lambda_a * da
        g[1:-1] -= 4.0 * lambda_a * da
        g[:-2] += 2.0 * lambda_a * da

    return g


def global_optimize_1d(
    desired: Sequence[float],
    lower: Sequence[float],
    upper: Sequence[float],
    weights: Sequence[float],
    lambda_v: float = 80.0,
    lambda_a: float = 500.0,
    iterations: int = 80,
    learning_rate: float = 1.0,
) -> np.ndarray:
    """Optimise one axis of the crop path.

    `learning_rate` is relative to the curvature bound, so any value in (0, 1]
    is a stable step regardless of the penalty weights. The series starts at the
    desired positions and every output sample lies in its feasible interval.
    """

    d = np.asarray(desired, dtype=np.float64)
    lo = np.asarray(lower, dtype=np.float64)
    hi = np.asarray(upper, dtype=np.float64)
    if not (d.shape == lo.shape == hi.shape == (len(weights),)):
        raise ValueError("desired, lower, upper and weights must have the same length")
    if d.size == 0:
        return d

    w = np.clip(np.asarray(weights, dtype=np.float64), MIN_WEIGHT, MAX_WEIGHT)
    step = learning_rate / lipschitz_bound(w, lambda_v, lambda_a)

    x = np.clip(d, lo, hi)
    for _ in range(int(iterations)):
        x = x - step * objective_gradient(x, d, w, lambda_v, lambda_a)
        np.clip(x, lo, hi, out=x)
    return x
