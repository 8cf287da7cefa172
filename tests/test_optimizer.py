from __future__ import annotations

import numpy as np
import pytest

from reframer.core.framing.optimizer import global_optimize_1d, lipschitz_bound


def _penalty(x: np.ndarray, lambda_v: float, lambda_a: float) -> float:
    return float(lambda_v * np.sum(np.diff(x) ** 2) + lambda_a * np.sum(np.diff(x, n=2) ** 2))


def test_output_stays_inside_feasible_interval():
    rng = np.random.default_rng(0)
    n = 60
    lower = rng.uniform(0, 300, n)
    upper = lower + rng.uniform(0, 200, n)
    desired = rng.uniform(-100, 700, n)
    weights = rng.uniform(0, 1.5, n)

    x = global_optimize_1d(desired, lower, upper, weights)

    assert x.shape == (n,)
    assert np.all(x >= lower - 1e-9)
    assert np.all(x <= upper + 1e-9)


def test_constant_desired_path_is_a_fixed_point():
    desired = [400.0] * 10
    x = global_optimize_1d(desired, [0.0] * 10, [1000.0] * 10, [1.0] * 10)
    assert np.allclose(x, 400.0)


def test_zigzag_is_smoothed():
    desired = np.array([0.0, 100.0] * 15)
    lo = np.full_like(desired, -1000.0)
    hi = np.full_like(desired, 1000.0)

    x = global_optimize_1d(desired, lo, hi, np.ones_like(desired), lambda_v=80, lambda_a=500)

    assert _penalty(x, 80, 500) < _penalty(desired, 80, 500)


def test_degenerate_interval_pins_value():
    x = global_optimize_1d([10.0, 500.0, 10.0], [0, 250, 0], [100, 250, 100], [1, 1, 1])
    assert x[1] == pytest.approx(250.0)


def test_length_mismatch_raises():
    with pytest.raises(ValueError):
        global_optimize_1d([1.0, 2.0], [0.0], [3.0, 3.0], [1.0, 1.0])


def test_empty_input_returns_empty():
    assert global_optimize_1d([], [], [], []).size == 0


def test_lipschitz_bound():
    w = np.array([0.2, 1.0])
    assert lipschitz_bound(w, 80.0, 500.0) == pytest.approx(2.0 + 640.0 + 16000.0)
