"""
Run Configuration and Initialization.

This module handles setting up and validating a sampler run:
- configure_eco_system: Main configuration entry point
- initialize_sweep_state: Starting latents and parameters
- gen_rng_keys: Generate JAX random keys
- expand_vector / expand_matrix: Scalar hyperparameters to full shapes

Configuration is split into three parts:
- user_config: Plain Python values that can be logged or saved without JAX
- runtime_ctx: JAX-dependent objects that exist only during execution
- model_ctx: The model variant, static run parameters, prior and unit arrays

All config keys use lowercase with underscores (e.g., 'n_draws', 'burn_in'),
except the matrix-valued 'S0' and 'Sigma_start'.
"""

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np
from typing import Dict, Tuple, Any

from ..registry import get_model
from ..error_handling import validate_eco_config, validate_eco_data, TABLE_2C_MODELS
from .utils import clean_config
from .links import Link
from .recorder import n_stored
from .types import PriorParams, RunParams, SweepState


def gen_rng_keys(rng_seed: int) -> Tuple[Any, Any]:
    """Generate JAX random keys from seed.

    Returns:
        (master_key, init_key): Tuple of JAX PRNGKeys
    """
    mkey = jax.random.PRNGKey(rng_seed)
    master_key, init_key = random.split(mkey, 2)
    return master_key, init_key


def expand_vector(value, ndim):
    """A scalar becomes a constant vector of length ndim; vectors pass through."""
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 0:
        return np.full(ndim, float(arr))
    return arr


def expand_matrix(value, ndim):
    """A scalar becomes that multiple of the identity; matrices pass through."""
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 0:
        return float(arr) * np.eye(ndim)
    return arr


def model_dimension(eco_config: Dict[str, Any], data) -> int:
    """Dimension of the transformed latent vector for this run."""
    if eco_config['model'] in TABLE_2C_MODELS:
        return int(np.atleast_2d(data.x).shape[1])
    return 3 if eco_config['context'] else 2


def configure_eco_system(
    eco_config: Dict[str, Any],
    data
) -> Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]:
    """
    Configure a sampler run from config and data.

    Args:
        eco_config: Input configuration dict (see clean_config for keys)
        data: EcoData for 2x2 models or EcoData2C for 2xC models

    Returns:
        user_config: Clean config with expanded hyperparameters and derived ints
        runtime_ctx: Dict with JAX keys and dtypes
        model_ctx: Dict with model functions, run_params, prior and units

    Raises:
        ValueError: If the configuration or the data is invalid
    """
    eco_config = clean_config(eco_config)
    ndim = model_dimension(eco_config, data)

    validate_eco_config(eco_config, ndim)
    validate_eco_data(data, eco_config)

    use_double = eco_config['use_double']
    link = Link.from_name(eco_config['link'])

    user_config = dict(eco_config)
    user_config['link'] = link.name.lower()
    user_config['mu0'] = expand_vector(eco_config['mu0'], ndim)
    user_config['S0'] = expand_matrix(eco_config['S0'], ndim)
    if eco_config['mu_start'] is not None:
        user_config['mu_start'] = expand_vector(eco_config['mu_start'], ndim)
    if eco_config['Sigma_start'] is not None:
        user_config['Sigma_start'] = expand_matrix(eco_config['Sigma_start'], ndim)

    # Derived values
    user_config['ndim'] = ndim
    user_config['n_store'] = n_stored(eco_config['n_draws'], eco_config['burn_in'], eco_config['thin'])

    # Configure JAX precision
    if use_double:
        jax.config.update("jax_enable_x64", True)
        jnp_float_dtype = jnp.float64
        jnp_int_dtype = jnp.int64
    else:
        jax.config.update("jax_enable_x64", False)
        jnp_float_dtype = jnp.float32
        jnp_int_dtype = jnp.int32

    # Generate RNG keys
    master_key, init_key = gen_rng_keys(eco_config['rng_seed'])

    runtime_ctx = {
        'master_key': master_key,
        'init_key': init_key,
        'jnp_float_dtype': jnp_float_dtype,
        'jnp_int_dtype': jnp_int_dtype,
    }

    run_params = RunParams(
        MODEL=eco_config['model'],
        LINK=int(link),
        NDIM=ndim,
        N_DRAWS=int(eco_config['n_draws']),
        BURN_IN=int(eco_config['burn_in']),
        THIN=int(eco_config['thin']),
        N_STORE=user_config['n_store'],
        CONTEXT=bool(eco_config['context']),
        GRID=bool(eco_config['grid']),
        REJECT=bool(eco_config['reject']),
        UPDATE_ALPHA=bool(eco_config['update_alpha']),
        PREDICT=bool(eco_config['predict']),
        PARAMETER=bool(eco_config['parameter']),
    )

    prior = PriorParams(
        mu0=jnp.asarray(user_config['mu0'], dtype=jnp_float_dtype),
        S0=jnp.asarray(user_config['S0'], dtype=jnp_float_dtype),
        nu0=jnp.asarray(eco_config['nu0'], dtype=jnp_float_dtype),
        tau0=jnp.asarray(eco_config['tau0'], dtype=jnp_float_dtype),
        a0=jnp.asarray(eco_config['a0'], dtype=jnp_float_dtype),
        b0=jnp.asarray(eco_config['b0'], dtype=jnp_float_dtype),
    )

    model = get_model(eco_config['model'])
    units = model['build_units'](data, user_config, run_params, jnp_float_dtype)

    model_ctx = {
        'model': model,
        'run_params': run_params,
        'prior': prior,
        'units': units,
    }

    return user_config, runtime_ctx, model_ctx


def initialize_sweep_state(
    user_config: Dict[str, Any],
    runtime_ctx: Dict[str, Any],
    model_ctx: Dict[str, Any]
) -> SweepState:
    """
    Build the chain state before the first sweep.

    Every field gets an explicit dtype so the state keeps the same types
    from sweep to sweep.

    Raises:
        ValueError: If no feasible starting latents can be found
    """
    model = model_ctx['model']
    units = model_ctx['units']
    run_params = model_ctx['run_params']
    float_dtype = runtime_ctx['jnp_float_dtype']
    int_dtype = runtime_ctx['jnp_int_dtype']

    key_latent, key_params = random.split(runtime_ctx['init_key'])
    w, wstar = model['init_latents'](key_latent, units, run_params)
    params = model['init_params'](key_params, units, model_ctx['prior'], user_config,
                                  run_params, float_dtype, int_dtype)

    return SweepState(
        w=jnp.asarray(w, dtype=float_dtype),
        wstar=jnp.asarray(wstar, dtype=float_dtype),
        mu=jnp.asarray(params['mu'], dtype=float_dtype),
        Sigma=jnp.asarray(params['Sigma'], dtype=float_dtype),
        labels=jnp.asarray(params['labels'], dtype=int_dtype),
        alpha=jnp.asarray(params['alpha'], dtype=float_dtype),
        n_star=jnp.asarray(params['n_star'], dtype=int_dtype),
        accepts=jnp.asarray(0, dtype=int_dtype),
        key=runtime_ctx['master_key'],
    )
