"""
Model Registration System

This module provides a registry of model variants that can be run by the
sweep engine. The built-in variants ('parametric', 'dp', 'parametric_2c')
are registered when ``ecomcmc.models`` is imported; user code can add more
via register_model().

Example usage:
    from ecomcmc import register_model

    register_model('my_variant', {
        'build_units': my_build_units,
        'init_latents': my_init_latents,
        'init_params': my_init_params,
        'latent_update': my_latent_update,
        'update_params': my_update_params,
        'param_snapshot': my_snapshot,
        'snapshot_shapes': my_snapshot_shapes,
    })
"""

_REGISTRY = {}

REQUIRED_KEYS = [
    'build_units',
    'init_latents',
    'init_params',
    'latent_update',
    'update_params',
    'param_snapshot',
    'snapshot_shapes',
]


def register_model(name, config):
    """
    Register a model variant with the sweep engine.

    Args:
        name: Unique model identifier string (e.g., 'dp')
        config: Dict containing model functions with keys:

            Required:
                build_units: fn(data, user_config, run_params, float_dtype) -> units
                    Host-side construction of the fixed per-unit arrays.

                init_latents: fn(key, units, run_params) -> (w, wstar)
                    Starting latent proportions and their transform.

                init_params: fn(key, units, prior, user_config, run_params,
                                float_dtype, int_dtype) -> dict
                    Starting mu, Sigma, labels, alpha and n_star.

                latent_update: fn(key, state, units, run_params) -> state
                    Resample the latents given the current parameters.

                update_params: fn(key, state, units, prior, run_params) -> state
                    Resample the population parameters given the latents.

                param_snapshot: fn(state, units, run_params) -> dict
                    Arrays recorded for a stored sweep.

                snapshot_shapes: fn(units, run_params) -> dict
                    Per-snapshot shape of every recorded field.

            Optional:
                predictive: bool
                    Whether posterior predictive W / Y draws are supported.

    Raises:
        ValueError: If required keys are missing or name is already registered.
    """
    if name in _REGISTRY:
        raise ValueError(f"Model '{name}' is already registered")

    missing = [k for k in REQUIRED_KEYS if k not in config]
    if missing:
        raise ValueError(f"Missing required keys for model '{name}': {missing}")

    _REGISTRY[name] = config


def get_model(name):
    """
    Get a registered model configuration by name.

    Raises:
        KeyError: If the model is not registered
    """
    if name not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown model '{name}'. Available: {available}")
    return _REGISTRY[name]


def list_models():
    """List all registered model names."""
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Clear all registered models. Primarily for testing.
    """
    _REGISTRY.clear()
