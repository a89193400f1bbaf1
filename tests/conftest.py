"""
Pytest configuration and shared fixtures for ecomcmc tests.
"""

import pytest
import numpy as np
import jax
import jax.numpy as jnp

import ecomcmc  # noqa: F401  (registers the built-in models)
from ecomcmc.data import EcoData, EcoData2C
from ecomcmc.mcmc.links import Link, forward
from ecomcmc.mcmc.types import PriorParams, RunParams, SweepState

# The sampler runs in double precision by default; direct kernel tests match it
jax.config.update("jax_enable_x64", True)


def expit(v):
    return 1.0 / (1.0 + np.exp(-v))


def generate_2x2_data(n_units=50, mu=(0.5, -0.5), Sigma=((0.5, 0.1), (0.1, 0.5)), seed=42):
    """
    Synthetic 2x2 tables with known latent proportions.

    Returns:
        (x, y, w_true, wstar_true)
    """
    rng = np.random.default_rng(seed)
    wstar = rng.multivariate_normal(np.asarray(mu), np.asarray(Sigma), size=n_units)
    w = expit(wstar)
    x = rng.uniform(0.1, 0.9, size=n_units)
    y = x * w[:, 0] + (1 - x) * w[:, 1]
    return x, y, w, wstar


def generate_2c_data(n_units=20, n_col=3, seed=7):
    """Synthetic 2xC tables: Y_i = sum_j X_ij W_ij with W_ij in (0, 1)."""
    rng = np.random.default_rng(seed)
    x = rng.dirichlet(np.full(n_col, 3.0), size=n_units)
    w = expit(rng.normal(0.0, 0.7, size=(n_units, n_col)))
    y = np.sum(x * w, axis=1)
    return x, y, w


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def key(rng_seed):
    return jax.random.PRNGKey(rng_seed)


@pytest.fixture
def synthetic_2x2():
    """50 mixed units generated from a known bivariate normal on the logit scale."""
    return generate_2x2_data()


@pytest.fixture
def small_eco_data():
    """A handful of units of every type."""
    return EcoData(
        x=np.array([0.3, 0.5, 0.7, 0.4]),
        y=np.array([0.2, 0.5, 0.6, 0.35]),
        x1_w1=np.array([0.4, 1.0]),
        x0_w2=np.array([0.25]),
        survey=np.array([[0.3, 0.6]]),
    )


@pytest.fixture
def synthetic_2c():
    x, y, w = generate_2c_data()
    return EcoData2C(x=x, y=y), w


@pytest.fixture
def prior_2d():
    """Default NIW prior for two dimensions (mu0 = 0, S0 = 10 I, nu0 = 4, tau0 = 2)."""
    return make_prior(2)


def make_prior(d, nu0=4.0, tau0=2.0, s0=10.0, a0=1.0, b0=0.1):
    return PriorParams(
        mu0=jnp.zeros(d),
        S0=s0 * jnp.eye(d),
        nu0=jnp.asarray(nu0),
        tau0=jnp.asarray(tau0),
        a0=jnp.asarray(a0),
        b0=jnp.asarray(b0),
    )


def make_run_params(**overrides):
    params = dict(MODEL='parametric', LINK=int(Link.LOGIT), NDIM=2,
                  N_DRAWS=1, BURN_IN=0, THIN=0, N_STORE=1)
    params.update(overrides)
    return RunParams(**params)


def make_state(units, mu, Sigma, labels=None, link=Link.LOGIT, seed=0, alpha=1.0, w=None):
    """SweepState over ``units`` starting from ``w`` (default: their initial latents)."""
    w = units.w_init if w is None else jnp.asarray(w, dtype=jnp.float64)
    wstar = forward(w, link)
    t = w.shape[0]
    mu = jnp.atleast_2d(jnp.asarray(mu, dtype=jnp.float64))
    Sigma = jnp.asarray(Sigma, dtype=jnp.float64)
    if Sigma.ndim == 2:
        Sigma = Sigma[None]
    if labels is None:
        labels = jnp.zeros(t, dtype=jnp.int64)
    return SweepState(
        w=w,
        wstar=wstar,
        mu=mu,
        Sigma=Sigma,
        labels=jnp.asarray(labels, dtype=jnp.int64),
        alpha=jnp.asarray(alpha, dtype=jnp.float64),
        n_star=jnp.asarray(1, dtype=jnp.int64),
        accepts=jnp.asarray(0, dtype=jnp.int64),
        key=jax.random.PRNGKey(seed),
    )


@pytest.fixture
def quick_config():
    """Short chain used by end-to-end tests that only check structure."""
    return {
        'n_draws': 60,
        'burn_in': 10,
        'thin': 0,
        'rng_seed': 123,
    }
