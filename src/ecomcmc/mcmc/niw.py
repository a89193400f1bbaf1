"""
Normal/Inverse-Wishart Conjugate Algebra.

Shared by the parametric and Dirichlet process updaters:
- mvn_logpdf: Multivariate normal log density (Cholesky based)
- mvt_logpdf: Multivariate Student-t log density
- predictive_t_params: Prior predictive t for a single observation under NIW
- niw_posterior: Conjugate update from a (masked) set of observations
- draw_inverse_wishart: Bartlett decomposition draw
- draw_niw: Joint (mu, Sigma) draw from NIW parameters

Parameterization: Sigma ~ InvWishart(nu, S) with E[Sigma] = S / (nu - d - 1),
and mu | Sigma ~ N(m, Sigma / kappa).
"""

from typing import NamedTuple

import jax
import jax.numpy as jnp
import jax.random as random
from jax.scipy.linalg import solve_triangular
from jax.scipy.special import gammaln


class NIWParams(NamedTuple):
    """Parameters of a Normal/Inverse-Wishart distribution."""
    m: jnp.ndarray       # (d,) location of mu
    kappa: jnp.ndarray   # () precision multiplier of mu
    nu: jnp.ndarray      # () degrees of freedom
    S: jnp.ndarray       # (d, d) scale matrix


def mvn_logpdf(x, mu, Sigma):
    """
    Log density of N(mu, Sigma) at x.

    Args:
        x: (..., d)
        mu: (d,) or broadcastable to x
        Sigma: (d, d)

    Returns:
        Log density with the batch shape of x
    """
    d = Sigma.shape[-1]
    L = jnp.linalg.cholesky(Sigma)
    diff = jnp.atleast_2d(x - mu)
    z = solve_triangular(L, diff.T, lower=True)
    maha = jnp.sum(z ** 2, axis=0)
    log_det = 2.0 * jnp.sum(jnp.log(jnp.diag(L)))
    out = -0.5 * (d * jnp.log(2 * jnp.pi) + log_det + maha)
    return out.reshape(jnp.shape(x)[:-1])


def mvt_logpdf(x, loc, scale, df):
    """Log density of the d-variate Student-t with location loc, scale matrix and df."""
    d = scale.shape[-1]
    L = jnp.linalg.cholesky(scale)
    diff = jnp.atleast_2d(x - loc)
    z = solve_triangular(L, diff.T, lower=True)
    maha = jnp.sum(z ** 2, axis=0)
    log_det = 2.0 * jnp.sum(jnp.log(jnp.diag(L)))
    out = (gammaln((df + d) / 2) - gammaln(df / 2)
           - 0.5 * d * jnp.log(df * jnp.pi) - 0.5 * log_det
           - 0.5 * (df + d) * jnp.log1p(maha / df))
    return out.reshape(jnp.shape(x)[:-1])


def predictive_t_params(prior):
    """
    Marginal distribution of one observation under the NIW prior.

    Integrating (mu, Sigma) out gives a multivariate t with df = nu0 - d + 1,
    location mu0 and scale (tau0 + 1) / (tau0 * df) * S0.

    Returns:
        (loc, scale, df)
    """
    d = prior.S0.shape[-1]
    df = prior.nu0 - d + 1
    scale = (prior.tau0 + 1) / (prior.tau0 * df) * prior.S0
    return prior.mu0, scale, df


def niw_posterior(data, mask, prior):
    """
    Conjugate NIW update from the rows of ``data`` selected by ``mask``.

    Args:
        data: (n, d) observations on the unconstrained scale
        mask: (n,) boolean or 0/1 weights selecting the observations
        prior: PriorParams (mu0, S0, nu0, tau0 are used)

    Returns:
        NIWParams of the posterior. With an empty mask this is the prior.
    """
    w = mask.astype(data.dtype)
    n = jnp.sum(w)
    xbar = jnp.sum(w[:, None] * data, axis=0) / jnp.maximum(n, 1.0)
    centered = (data - xbar) * w[:, None]
    scatter = centered.T @ (data - xbar)

    kappa = prior.tau0 + n
    m = (prior.tau0 * prior.mu0 + n * xbar) / kappa
    dev = xbar - prior.mu0
    S = prior.S0 + scatter + (prior.tau0 * n / kappa) * jnp.outer(dev, dev)
    return NIWParams(m=m, kappa=kappa, nu=prior.nu0 + n, S=S)


def draw_inverse_wishart(key, df, scale):
    """
    Draw Sigma ~ InvWishart(df, scale) using the Bartlett decomposition.

    Sigma^{-1} ~ Wishart(df, scale^{-1}) = (L A)(L A)^T with L = chol(scale^{-1}),
    A lower triangular, A_ii^2 ~ chi2(df - i) and A_ij ~ N(0, 1) below the diagonal.

    Args:
        key: JAX random key
        df: Degrees of freedom (> d - 1)
        scale: (d, d) positive definite scale matrix

    Returns:
        (d, d) covariance matrix
    """
    d = scale.shape[-1]
    dtype = scale.dtype
    key_chi, key_norm = random.split(key)

    shapes = (df - jnp.arange(d, dtype=dtype)) / 2.0
    diag = jnp.sqrt(2.0 * random.gamma(key_chi, shapes, dtype=dtype))
    lower = jnp.tril(random.normal(key_norm, (d, d), dtype=dtype), k=-1)
    A = lower + jnp.diag(diag)

    eye = jnp.eye(d, dtype=dtype)
    L = jnp.linalg.cholesky(jnp.linalg.solve(scale, eye))
    M_inv = solve_triangular(L @ A, eye, lower=True)
    Sigma = M_inv.T @ M_inv
    return 0.5 * (Sigma + Sigma.T)


def draw_niw(key, params):
    """
    Draw (mu, Sigma) from NIW: Sigma first, then mu | Sigma ~ N(m, Sigma / kappa).

    Returns:
        (mu, Sigma)
    """
    key_sigma, key_mu = random.split(key)
    Sigma = draw_inverse_wishart(key_sigma, params.nu, params.S)
    L = jnp.linalg.cholesky(Sigma / params.kappa)
    z = random.normal(key_mu, params.m.shape, dtype=params.m.dtype)
    mu = params.m + L @ z
    return mu, Sigma


def draw_from_prior(key, prior, n):
    """Draw n independent (mu, Sigma) pairs from the NIW prior."""
    params = NIWParams(m=prior.mu0, kappa=prior.tau0, nu=prior.nu0, S=prior.S0)
    keys = random.split(key, n)
    return jax.vmap(lambda k: draw_niw(k, params))(keys)
