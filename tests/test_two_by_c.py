"""
Tests for the 2xC table model.

Run with: pytest tests/test_two_by_c.py -v
"""

import numpy as np
import jax.random as random
import pytest

from ecomcmc import run_eco
from ecomcmc.data import EcoData2C
from ecomcmc.mcmc.bounds import build_unit_arrays_2c
from ecomcmc.models.parametric_2c import init_latents

from conftest import make_run_params


class TestStartingValues:
    """Rejection-sampled starting latents."""

    def test_feasible_start(self, synthetic_2c):
        data, _ = synthetic_2c
        units = build_unit_arrays_2c(data)
        w, wstar = init_latents(random.PRNGKey(0), units, make_run_params(MODEL='parametric_2c', NDIM=3))
        w = np.asarray(w)
        np.testing.assert_allclose(np.sum(w * data.x, axis=1), data.y, atol=1e-10)
        assert np.all((w >= 0) & (w <= 1 + 1e-12))
        assert wstar.shape == w.shape

    def test_tight_bounds_raise(self):
        x = np.array([[0.2, 0.3, 0.5], [0.3, 0.3, 0.4]])
        w = np.array([[0.4, 0.4, 0.4], [0.5, 0.5, 0.5]])
        y = np.sum(x * w, axis=1)
        w_bounds = np.stack([w - 1e-3, w + 1e-3], axis=-1)
        w_bounds[1] = np.stack([np.zeros(3), np.ones(3)], axis=-1)
        units = build_unit_arrays_2c(EcoData2C(x=x, y=y, w_bounds=w_bounds))
        run_params = make_run_params(MODEL='parametric_2c', NDIM=3, MAX_TRIES=100)
        with pytest.raises(ValueError, match=r"bounds are too tight .* for units: \[0\]"):
            init_latents(random.PRNGKey(0), units, run_params)


@pytest.mark.slow
class TestTwoByCRun:
    """End-to-end 2xC runs."""

    def test_run_respects_margins(self, synthetic_2c):
        data, _ = synthetic_2c
        results = run_eco({'model': 'parametric_2c', 'n_draws': 150, 'burn_in': 50, 'rng_seed': 3}, data)
        W = results['W']
        assert W.shape == (100, data.n_samp, data.n_col)
        np.testing.assert_allclose(np.sum(W * data.x[None], axis=-1),
                                   np.broadcast_to(data.y, W.shape[:2]), atol=1e-8)
        assert results['mu'].shape == (100, data.n_col)
        assert results['Sigma'].shape == (100, data.n_col, data.n_col)
        assert 0.0 < results['acceptance_rate'] <= 1.0
        assert 'W_pred' not in results
        assert results['diagnostics']['issues'] == []

    def test_without_rejection(self, synthetic_2c):
        data, _ = synthetic_2c
        results = run_eco({'model': 'parametric_2c', 'n_draws': 60, 'reject': False}, data)
        W = results['W']
        np.testing.assert_allclose(np.sum(W * data.x[None], axis=-1),
                                   np.broadcast_to(data.y, W.shape[:2]), atol=1e-8)

    def test_context_is_rejected(self, synthetic_2c):
        data, _ = synthetic_2c
        with pytest.raises(ValueError, match="context is only supported"):
            run_eco({'model': 'parametric_2c', 'n_draws': 10, 'context': True}, data)
