"""
Tests for the Dirichlet process mixture updates.

Run with: pytest tests/test_dp.py -v
"""

import numpy as np
import jax.numpy as jnp
import jax.random as random
import pytest

from ecomcmc.mcmc.bounds import build_unit_arrays
from ecomcmc.mcmc.niw import draw_from_prior
from ecomcmc.models.dp import (
    reassign_clusters,
    compact_labels,
    remix_clusters,
    update_concentration,
    init_params,
    update_params,
)

from conftest import make_prior, make_run_params, make_state


def _arena(t, d=2, seed=0):
    rng = np.random.default_rng(seed)
    wstar = jnp.asarray(rng.normal(size=(t, d)))
    mu = jnp.zeros((t, d))
    Sigma = jnp.tile(jnp.eye(d), (t, 1, 1))
    return wstar, mu, Sigma


class TestCompactLabels:
    """Contiguous relabelling of cluster ids."""

    def test_preserves_order_of_ids(self):
        labels = jnp.array([5, 2, 5, 7, 2, 2, 0, 5])
        compact, n_star = compact_labels(labels)
        np.testing.assert_array_equal(np.asarray(compact), [2, 1, 2, 3, 1, 1, 0, 2])
        assert int(n_star) == 4

    def test_single_cluster(self):
        compact, n_star = compact_labels(jnp.full(5, 3))
        np.testing.assert_array_equal(np.asarray(compact), np.zeros(5))
        assert int(n_star) == 1

    def test_all_distinct(self):
        compact, n_star = compact_labels(jnp.array([4, 3, 2, 1, 0]))
        np.testing.assert_array_equal(np.asarray(compact), [4, 3, 2, 1, 0])
        assert int(n_star) == 5


class TestRemix:
    """Per-cluster parameter redraws."""

    def test_members_share_parameters(self, prior_2d):
        wstar, _, _ = _arena(8)
        labels = jnp.array([5, 2, 5, 7, 2, 2, 0, 5])
        mu, Sigma, compact, n_star = remix_clusters(random.PRNGKey(0), wstar, labels, prior_2d)
        assert int(n_star) == 4
        assert int(jnp.max(compact)) == 3
        mu_u = np.asarray(mu[compact])
        np.testing.assert_array_equal(mu_u[0], mu_u[2])
        np.testing.assert_array_equal(mu_u[1], mu_u[4])
        assert not np.allclose(mu_u[0], mu_u[1])
        S = np.asarray(Sigma[:4])
        np.testing.assert_allclose(S, np.swapaxes(S, 1, 2))
        assert np.all(np.linalg.eigvalsh(S) > 0)

    def test_large_cluster_concentrates_on_sample_mean(self):
        rng = np.random.default_rng(4)
        t = 400
        wstar = jnp.asarray(rng.normal(loc=[1.0, -1.0], scale=0.3, size=(t, 2)))
        prior = make_prior(2, s0=1.0)
        mu, Sigma, compact, n_star = remix_clusters(random.PRNGKey(1), wstar, jnp.zeros(t, dtype=int), prior)
        assert int(n_star) == 1
        np.testing.assert_allclose(np.asarray(mu[0]), [1.0, -1.0], atol=0.1)
        np.testing.assert_allclose(np.diag(np.asarray(Sigma[0])), [0.09, 0.09], atol=0.03)


class TestReassign:
    """Sequential Polya urn scan."""

    def test_tiny_concentration_keeps_one_cluster(self, prior_2d):
        wstar, mu, Sigma = _arena(10)
        labels = jnp.zeros(10, dtype=jnp.int64)
        _, _, new_labels = reassign_clusters(random.PRNGKey(0), wstar, mu, Sigma, labels,
                                             jnp.asarray(1e-300), prior_2d)
        np.testing.assert_array_equal(np.asarray(new_labels), np.zeros(10))

    def test_huge_concentration_opens_new_clusters(self, prior_2d):
        wstar, mu, Sigma = _arena(10)
        labels = jnp.zeros(10, dtype=jnp.int64)
        _, _, new_labels = reassign_clusters(random.PRNGKey(1), wstar, mu, Sigma, labels,
                                             jnp.asarray(1e8), prior_2d)
        assert len(np.unique(np.asarray(new_labels))) == 10

    def test_labels_point_into_arena(self, prior_2d):
        wstar, _, _ = _arena(12, seed=3)
        mu, Sigma = draw_from_prior(random.PRNGKey(5), prior_2d, 12)
        labels = jnp.arange(12, dtype=jnp.int64)
        for i in range(5):
            mu, Sigma, labels = reassign_clusters(random.PRNGKey(i), wstar, mu, Sigma, labels,
                                                  jnp.asarray(1.0), prior_2d)
            lab = np.asarray(labels)
            assert lab.min() >= 0 and lab.max() < 12
        assert np.all(np.isfinite(np.asarray(mu)))


class TestConcentration:
    """Escobar-West update of alpha."""

    def test_stays_positive_and_finite(self, prior_2d):
        alpha = jnp.asarray(1.0)
        for i in range(50):
            alpha = update_concentration(random.PRNGKey(i), alpha, jnp.asarray(3), 50, prior_2d)
            assert np.isfinite(float(alpha)) and float(alpha) > 0

    def test_grows_with_cluster_count(self, prior_2d):
        def mean_alpha(n_star):
            alpha, total = jnp.asarray(1.0), 0.0
            for i in range(300):
                alpha = update_concentration(random.PRNGKey(i), alpha, jnp.asarray(n_star), 100, prior_2d)
                total += float(alpha)
            return total / 300

        assert mean_alpha(30) > mean_alpha(2)


class TestModelStep:
    """Full parameter update of the mixture model."""

    def test_init_and_update(self, small_eco_data, prior_2d):
        units = build_unit_arrays(small_eco_data, n_step=100)
        t = units.t_samp
        params = init_params(random.PRNGKey(0), units, prior_2d, {'alpha_start': 1.0},
                             make_run_params(MODEL='dp'), jnp.float64, jnp.int64)
        np.testing.assert_array_equal(np.asarray(params['labels']), np.arange(t))
        assert int(params['n_star']) == t
        assert params['mu'].shape == (t, 2)

        state = make_state(units, params['mu'], params['Sigma'], labels=params['labels'])
        run_params = make_run_params(MODEL='dp')
        for i in range(5):
            state = update_params(random.PRNGKey(i), state, units, prior_2d, run_params)
            lab = np.asarray(state.labels)
            assert int(state.n_star) == len(np.unique(lab))
            assert lab.max() == int(state.n_star) - 1
            assert float(state.alpha) > 0

    def test_fixed_concentration(self, small_eco_data, prior_2d):
        units = build_unit_arrays(small_eco_data, n_step=100)
        mu, Sigma = draw_from_prior(random.PRNGKey(0), prior_2d, units.t_samp)
        state = make_state(units, mu, Sigma, labels=jnp.arange(units.t_samp), alpha=2.5)
        state = update_params(random.PRNGKey(1), state, units, prior_2d,
                              make_run_params(MODEL='dp', UPDATE_ALPHA=False))
        assert float(state.alpha) == pytest.approx(2.5)
