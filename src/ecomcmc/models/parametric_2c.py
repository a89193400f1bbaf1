"""
Parametric Normal/Inverse-Wishart model for 2xC tables.

Each row's C cell proportions W_j satisfy sum_j W_j X_j = Y. The latents are
moved through U_j = W_j X_j / Y on the simplex with an independence
Metropolis step, and link(W) ~ N(mu, Sigma) with a shared (mu, Sigma).
"""

import logging
from functools import partial

import numpy as np
import jax
import jax.numpy as jnp
import jax.random as random

from ..mcmc.bounds import build_unit_arrays_2c
from ..mcmc.latent import initial_simplex_draw, update_latents_2c
from ..mcmc.links import forward
from .parametric import start_params, update_params

logger = logging.getLogger('ecomcmc')


def build_units(data, user_config, run_params, float_dtype):
    return build_unit_arrays_2c(data, float_dtype=float_dtype)


def init_latents(key, units, run_params):
    """
    Feasible starting W for every row by Dirichlet(1) rejection sampling.

    Raises:
        ValueError: If any row has no feasible draw within MAX_TRIES attempts
    """
    draw = jax.vmap(partial(initial_simplex_draw, max_tries=run_params.MAX_TRIES))
    u, found = draw(random.split(key, units.n_units), units.min_u, units.max_u)
    found = np.asarray(found)
    if not found.all():
        bad = np.flatnonzero(~found).tolist()
        raise ValueError(
            f"Gibbs sampler cannot start because bounds are too tight "
            f"(no feasible draw in {run_params.MAX_TRIES} attempts) for units: {bad}"
        )
    w = u * units.y[:, None] / units.x
    logger.debug(f"Initialized {units.n_units} 2xC rows by rejection sampling")
    return w, forward(w, run_params.LINK)


def init_params(key, units, prior, user_config, run_params, float_dtype, int_dtype):
    mu, Sigma = start_params(key, prior, user_config, float_dtype)
    return {
        'mu': mu,
        'Sigma': Sigma,
        'labels': jnp.zeros(units.n_units, dtype=int_dtype),
        'alpha': jnp.array(0.0, dtype=float_dtype),
        'n_star': jnp.array(1, dtype=int_dtype),
    }


def param_snapshot(state, units, run_params):
    snap = {'W': state.w}
    if run_params.PARAMETER:
        snap['mu'] = state.mu[0]
        snap['Sigma'] = state.Sigma[0]
    return snap


def snapshot_shapes(units, run_params):
    c = units.n_col
    shapes = {'W': (units.n_units, c)}
    if run_params.PARAMETER:
        shapes['mu'] = (c,)
        shapes['Sigma'] = (c, c)
    return shapes


MODEL = {
    'build_units': build_units,
    'init_latents': init_latents,
    'init_params': init_params,
    'latent_update': update_latents_2c,
    'update_params': update_params,
    'param_snapshot': param_snapshot,
    'snapshot_shapes': snapshot_shapes,
    'predictive': False,
}
