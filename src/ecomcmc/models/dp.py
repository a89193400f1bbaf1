"""
Dirichlet Process Mixture model for 2x2 tables.

Each unit carries its own (mu_i, Sigma_i) drawn from a DP with a
Normal/Inverse-Wishart base measure. Cluster parameters live in an arena
(one slot per unit) indexed by cluster id, and every unit stores the id of
the slot it uses, so units in the same cluster share parameters by index.

One parameter update runs three steps in order:
1. reassign_clusters: Polya urn scan over units i = 0..t-1
2. remix_clusters: compact ids and redraw each cluster's parameters
3. update_concentration: Escobar-West auxiliary variable update of alpha

The reassignment is an ordered fold: unit i sees the labels and arena
entries already written for units 0..i-1 in the same sweep.
"""

import jax
import jax.numpy as jnp
import jax.random as random

from ..mcmc.latent import update_latents, inverse_cdf_index
from ..mcmc.niw import (
    mvn_logpdf,
    mvt_logpdf,
    predictive_t_params,
    niw_posterior,
    draw_niw,
    draw_from_prior,
)
from .base import build_units_2x2, init_latents_2x2, snapshot_latents_2x2


# =============================================================================
# POLYA URN REASSIGNMENT
# =============================================================================

def reassign_clusters(key, wstar, mu, Sigma, labels, alpha, prior):
    """
    Sequential Polya urn update of every unit's cluster.

    For unit i the weight of joining unit j (j != i) is the Normal density of
    W*_i under j's current cluster, and the weight of a new cluster is
    alpha times the NIW prior predictive t density of W*_i. A new cluster
    takes a free arena slot filled with a draw from the NIW posterior given
    W*_i alone.

    Args:
        key: JAX random key
        wstar: (t, d) transformed latents
        mu: (t, d) arena means
        Sigma: (t, d, d) arena covariances
        labels: (t,) arena slot of each unit
        alpha: Concentration parameter
        prior: PriorParams

    Returns:
        (mu, Sigma, labels)
    """
    t = wstar.shape[0]
    loc, scale, df = predictive_t_params(prior)
    log_new = jnp.log(alpha) + mvt_logpdf(wstar, loc, scale, df)
    keys = random.split(key, t)
    slot_density = jax.vmap(mvn_logpdf, in_axes=(None, 0, 0))

    def body(i, carry):
        mu, Sigma, labels = carry
        key_pick, key_new = random.split(keys[i])
        x = wstar[i]

        log_q = slot_density(x, mu, Sigma)[labels]
        log_q = log_q.at[i].set(log_new[i])
        j = inverse_cdf_index(key_pick, log_q)
        is_new = j == i

        # A slot no other unit points at; unit i's own slot qualifies when it is alone
        occupancy = jnp.zeros(t, dtype=labels.dtype).at[labels].add(1)
        occupancy = occupancy.at[labels[i]].add(-1)
        free = jnp.argmin(occupancy)

        post = niw_posterior(x[None, :], jnp.ones(1, dtype=bool), prior)
        mu_new, Sigma_new = draw_niw(key_new, post)
        mu = jnp.where(is_new, mu.at[free].set(mu_new), mu)
        Sigma = jnp.where(is_new, Sigma.at[free].set(Sigma_new), Sigma)
        labels = labels.at[i].set(jnp.where(is_new, free, labels[j]).astype(labels.dtype))
        return mu, Sigma, labels

    return jax.lax.fori_loop(0, t, body, (mu, Sigma, labels))


# =============================================================================
# REMIXING
# =============================================================================

def compact_labels(labels):
    """
    Relabel clusters to the contiguous range [0, n_star) preserving id order.

    Returns:
        (compact, n_star)
    """
    t = labels.shape[0]
    uniq = jnp.unique(labels, size=t, fill_value=t)
    compact = jnp.searchsorted(uniq, labels).astype(labels.dtype)
    n_star = jnp.sum(uniq < t)
    return compact, n_star


def remix_clusters(key, wstar, labels, prior):
    """
    Compact cluster ids and draw fresh (mu, Sigma) for every cluster from the
    NIW posterior given all of its members.

    Arena slots at or beyond n_star hold prior draws and are not referenced.

    Returns:
        (mu, Sigma, labels, n_star)
    """
    t = labels.shape[0]
    compact, n_star = compact_labels(labels)
    members = compact[None, :] == jnp.arange(t, dtype=compact.dtype)[:, None]
    posts = jax.vmap(niw_posterior, in_axes=(None, 0, None))(wstar, members, prior)
    mu, Sigma = jax.vmap(draw_niw)(random.split(key, t), posts)
    return mu, Sigma, compact, n_star


# =============================================================================
# CONCENTRATION PARAMETER
# =============================================================================

def update_concentration(key, alpha, n_star, t, prior):
    """
    Escobar-West update of alpha ~ Gamma(a0, rate=b0).

    eta ~ Beta(alpha + 1, t); with probability (a0 + n* - 1) / (t (b0 - log eta))
    draw alpha ~ Gamma(a0 + n*, rate=b0 - log eta), otherwise
    alpha ~ Gamma(a0 + n* - 1, rate=b0 - log eta).
    """
    key_eta, key_mix, key_gamma = random.split(key, 3)
    dtype = alpha.dtype
    n_star = n_star.astype(dtype)
    eta = random.beta(key_eta, alpha + 1.0, jnp.asarray(t, dtype=dtype), dtype=dtype)
    rate = prior.b0 - jnp.log(eta)
    prob = (prior.a0 + n_star - 1.0) / (t * rate)
    shape = jnp.where(random.uniform(key_mix, dtype=dtype) < prob,
                      prior.a0 + n_star, prior.a0 + n_star - 1.0)
    new_alpha = random.gamma(key_gamma, shape, dtype=dtype) / rate
    return jnp.maximum(new_alpha, jnp.finfo(dtype).tiny)


# =============================================================================
# MODEL INTERFACE
# =============================================================================

def init_params(key, units, prior, user_config, run_params, float_dtype, int_dtype):
    """Every unit in its own cluster with an independent prior draw."""
    t = units.t_samp
    mu, Sigma = draw_from_prior(key, prior, t)
    return {
        'mu': mu,
        'Sigma': Sigma,
        'labels': jnp.arange(t, dtype=int_dtype),
        'alpha': jnp.array(user_config['alpha_start'], dtype=float_dtype),
        'n_star': jnp.array(t, dtype=int_dtype),
    }


def update_params(key, state, units, prior, run_params):
    key_assign, key_remix, key_alpha = random.split(key, 3)
    mu, Sigma, labels = reassign_clusters(
        key_assign, state.wstar, state.mu, state.Sigma, state.labels, state.alpha, prior)
    mu, Sigma, labels, n_star = remix_clusters(key_remix, state.wstar, labels, prior)
    alpha = state.alpha
    if run_params.UPDATE_ALPHA:
        alpha = update_concentration(key_alpha, alpha, n_star, units.t_samp, prior)
    return state._replace(mu=mu, Sigma=Sigma, labels=labels, alpha=alpha,
                          n_star=n_star.astype(state.n_star.dtype))


def param_snapshot(state, units, run_params):
    n_rec = units.n_recorded
    snap = {
        'W': snapshot_latents_2x2(state, units),
        'n_star': state.n_star,
        'alpha': state.alpha,
    }
    if run_params.PARAMETER:
        snap['mu'] = state.mu[state.labels[:n_rec]]
        snap['Sigma'] = state.Sigma[state.labels[:n_rec]]
    return snap


def snapshot_shapes(units, run_params):
    d = run_params.NDIM
    n_rec = units.n_recorded
    shapes = {'W': (n_rec, 2), 'n_star': (), 'alpha': ()}
    if run_params.PARAMETER:
        shapes['mu'] = (n_rec, d)
        shapes['Sigma'] = (n_rec, d, d)
    return shapes


MODEL = {
    'build_units': build_units_2x2,
    'init_latents': init_latents_2x2,
    'init_params': init_params,
    'latent_update': update_latents,
    'update_params': update_params,
    'param_snapshot': param_snapshot,
    'snapshot_shapes': snapshot_shapes,
    'predictive': True,
}
