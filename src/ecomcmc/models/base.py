"""
Shared setup for the 2x2 model variants.

Both the parametric and the Dirichlet process model sample the latents the
same way; they only differ in how the population parameters are updated.
"""

import jax.numpy as jnp

from ..mcmc.bounds import build_unit_arrays
from ..mcmc.links import forward


def build_units_2x2(data, user_config, run_params, float_dtype):
    """UnitArrays from EcoData using the configured link, grid step and covariate flag."""
    return build_unit_arrays(
        data,
        link=run_params.LINK,
        n_step=user_config['n_step'],
        context=run_params.CONTEXT,
        float_dtype=float_dtype,
    )


def init_latents_2x2(key, units, run_params):
    """
    Starting latents: the line midpoint for mixed units and the known values
    (0.5 for the unknown coordinate) for the others.

    Returns:
        (w, wstar)
    """
    w = units.w_init
    wstar = forward(w, run_params.LINK)
    if run_params.CONTEXT:
        wstar = jnp.concatenate([wstar, units.x_star[:, None]], axis=1)
    return w, wstar


def snapshot_latents_2x2(state, units):
    """Latent W for the recorded (non-survey) units."""
    return state.w[:units.n_recorded]
