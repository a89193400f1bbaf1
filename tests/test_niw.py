"""
Tests for the Normal/Inverse-Wishart algebra.

Run with: pytest tests/test_niw.py -v
"""

import numpy as np
import jax
import jax.numpy as jnp
import jax.random as random
import pytest
from scipy import stats

from ecomcmc.mcmc.niw import (
    NIWParams,
    mvn_logpdf,
    mvt_logpdf,
    predictive_t_params,
    niw_posterior,
    draw_inverse_wishart,
    draw_niw,
    draw_from_prior,
)

from conftest import make_prior


S = np.array([[2.0, 0.5], [0.5, 1.0]])


class TestDensities:
    """Log densities against SciPy."""

    def test_mvn_matches_scipy(self):
        rng = np.random.default_rng(0)
        x = rng.normal(size=(7, 2))
        mu = np.array([0.3, -0.2])
        got = np.asarray(mvn_logpdf(jnp.asarray(x), jnp.asarray(mu), jnp.asarray(S)))
        expected = stats.multivariate_normal(mu, S).logpdf(x)
        np.testing.assert_allclose(got, expected, rtol=1e-10)

    def test_mvn_single_point_is_scalar(self):
        out = mvn_logpdf(jnp.zeros(2), jnp.zeros(2), jnp.eye(2))
        assert out.shape == ()
        assert float(out) == pytest.approx(-np.log(2 * np.pi))

    def test_mvt_matches_scipy(self):
        rng = np.random.default_rng(1)
        x = rng.normal(size=(5, 2)) * 2
        loc = np.array([1.0, 0.0])
        got = np.asarray(mvt_logpdf(jnp.asarray(x), jnp.asarray(loc), jnp.asarray(S), 3.5))
        expected = stats.multivariate_t(loc=loc, shape=S, df=3.5).logpdf(x)
        np.testing.assert_allclose(got, expected, rtol=1e-10)


class TestPredictive:
    """Prior predictive of a single observation."""

    def test_t_parameters(self):
        prior = make_prior(2, nu0=4.0, tau0=2.0, s0=10.0)
        loc, scale, df = predictive_t_params(prior)
        assert float(df) == pytest.approx(3.0)
        np.testing.assert_allclose(np.asarray(loc), [0.0, 0.0])
        np.testing.assert_allclose(np.asarray(scale), (3.0 / 6.0) * 10.0 * np.eye(2))

    def test_t_parameters_three_dims(self):
        prior = make_prior(3, nu0=6.0, tau0=1.0, s0=1.0)
        _, scale, df = predictive_t_params(prior)
        assert float(df) == pytest.approx(4.0)
        np.testing.assert_allclose(np.asarray(scale), 0.5 * np.eye(3))


class TestPosterior:
    """Conjugate update."""

    def test_closed_form(self):
        rng = np.random.default_rng(2)
        data = rng.normal(size=(6, 2)) + np.array([1.0, -1.0])
        mask = np.array([True, True, False, True, True, False])
        prior = make_prior(2, nu0=4.0, tau0=2.0, s0=10.0)
        post = niw_posterior(jnp.asarray(data), jnp.asarray(mask), prior)

        sel = data[mask]
        n = sel.shape[0]
        xbar = sel.mean(axis=0)
        scatter = (sel - xbar).T @ (sel - xbar)
        kappa = 2.0 + n
        m = (n * xbar) / kappa
        S_n = 10.0 * np.eye(2) + scatter + (2.0 * n / kappa) * np.outer(xbar, xbar)

        assert float(post.kappa) == pytest.approx(kappa)
        assert float(post.nu) == pytest.approx(4.0 + n)
        np.testing.assert_allclose(np.asarray(post.m), m, rtol=1e-10)
        np.testing.assert_allclose(np.asarray(post.S), S_n, rtol=1e-10)

    def test_empty_mask_returns_prior(self):
        prior = make_prior(2)
        data = jnp.ones((4, 2))
        post = niw_posterior(data, jnp.zeros(4, dtype=bool), prior)
        assert float(post.kappa) == pytest.approx(float(prior.tau0))
        assert float(post.nu) == pytest.approx(float(prior.nu0))
        np.testing.assert_allclose(np.asarray(post.m), np.asarray(prior.mu0))
        np.testing.assert_allclose(np.asarray(post.S), np.asarray(prior.S0))


class TestDraws:
    """Inverse-Wishart and NIW sampling."""

    def test_inverse_wishart_mean(self):
        keys = random.split(random.PRNGKey(0), 20000)
        draws = jax.vmap(lambda k: draw_inverse_wishart(k, 10.0, jnp.asarray(S)))(keys)
        draws = np.asarray(draws)
        np.testing.assert_allclose(draws.mean(axis=0), S / (10.0 - 2 - 1), rtol=0.03, atol=0.003)

    def test_inverse_wishart_is_symmetric_positive_definite(self):
        keys = random.split(random.PRNGKey(1), 100)
        draws = np.asarray(jax.vmap(lambda k: draw_inverse_wishart(k, 4.0, jnp.asarray(S)))(keys))
        np.testing.assert_allclose(draws, np.swapaxes(draws, 1, 2))
        assert np.all(np.linalg.eigvalsh(draws) > 0)

    def test_niw_mean_of_mu(self):
        params = NIWParams(m=jnp.array([1.0, -2.0]), kappa=jnp.asarray(5.0),
                           nu=jnp.asarray(10.0), S=jnp.asarray(S))
        keys = random.split(random.PRNGKey(2), 20000)
        mu, Sigma = jax.vmap(lambda k: draw_niw(k, params))(keys)
        np.testing.assert_allclose(np.asarray(mu).mean(axis=0), [1.0, -2.0], atol=0.02)
        assert Sigma.shape == (20000, 2, 2)

    def test_draw_from_prior_shapes(self):
        mu, Sigma = draw_from_prior(random.PRNGKey(3), make_prior(3, nu0=5.0), 7)
        assert mu.shape == (7, 3)
        assert Sigma.shape == (7, 3, 3)
        assert np.all(np.isfinite(np.asarray(Sigma)))
