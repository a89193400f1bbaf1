"""
Parametric Normal/Inverse-Wishart model for 2x2 tables.

A single (mu, Sigma) is shared by every unit. Each sweep draws it from the
conjugate posterior given all transformed latents.
"""

import jax.numpy as jnp

from ..mcmc.latent import update_latents
from ..mcmc.niw import niw_posterior, draw_niw, draw_from_prior
from .base import build_units_2x2, init_latents_2x2, snapshot_latents_2x2


def start_params(key, prior, user_config, float_dtype):
    """
    Starting (mu, Sigma) with a leading arena axis of length 1.

    User supplied mu_start / Sigma_start take precedence; whichever is
    missing comes from a single prior draw.
    """
    mu, Sigma = draw_from_prior(key, prior, 1)
    if user_config.get('mu_start') is not None:
        mu = jnp.asarray(user_config['mu_start'], dtype=float_dtype)[None, :]
    if user_config.get('Sigma_start') is not None:
        Sigma = jnp.asarray(user_config['Sigma_start'], dtype=float_dtype)[None, :, :]
    return mu, Sigma


def init_params(key, units, prior, user_config, run_params, float_dtype, int_dtype):
    mu, Sigma = start_params(key, prior, user_config, float_dtype)
    labels = jnp.zeros(units.t_samp, dtype=int_dtype)
    return {
        'mu': mu,
        'Sigma': Sigma,
        'labels': labels,
        'alpha': jnp.array(0.0, dtype=float_dtype),
        'n_star': jnp.array(1, dtype=int_dtype),
    }


def update_params(key, state, units, prior, run_params):
    """Conjugate NIW draw of the shared (mu, Sigma) from every unit's W*."""
    post = niw_posterior(state.wstar, jnp.ones(state.wstar.shape[0], dtype=bool), prior)
    mu, Sigma = draw_niw(key, post)
    return state._replace(mu=mu[None, :], Sigma=Sigma[None, :, :])


def param_snapshot(state, units, run_params):
    snap = {'W': snapshot_latents_2x2(state, units)}
    if run_params.PARAMETER:
        snap['mu'] = state.mu[0]
        snap['Sigma'] = state.Sigma[0]
    return snap


def snapshot_shapes(units, run_params):
    d = run_params.NDIM
    shapes = {'W': (units.n_recorded, 2)}
    if run_params.PARAMETER:
        shapes['mu'] = (d,)
        shapes['Sigma'] = (d, d)
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
