"""
Sweep Kernel Compilation and Caching.

This module handles JAX compilation of the sweep kernel:
- _compute_cache_key: Compute in-memory cache key for compiled kernels
- compile_sweep_kernel: AOT-compile the sweep and snapshot functions
- get_compiled_kernel_cache / clear_kernel_cache: Cache access

Compiled executables depend only on shapes, dtypes and static run
parameters, so they are cached and re-bound to new unit arrays and priors.
"""

import jax
import time
from typing import Dict, Any, Tuple

from .scan import eco_sweep, eco_snapshot
from .types import RunParams, SweepState

import logging
logger = logging.getLogger('ecomcmc')


# --- COMPILED FUNCTION CACHE ---
# Cache compiled kernels by configuration (in-memory, within session)
_COMPILED_KERNEL_CACHE = {}


def _tree_signature(tree) -> Tuple:
    leaves, treedef = jax.tree_util.tree_flatten(tree)
    return treedef, tuple((leaf.shape, str(leaf.dtype)) for leaf in leaves)


def _compute_cache_key(user_config: Dict[str, Any], model_ctx: Dict[str, Any],
                       initial_state: SweepState) -> Tuple:
    """
    Compute a cache key for the compiled kernels.

    The key captures everything that affects the compiled functions:
    - Model ID and precision
    - RunParams values (all static flags)
    - Structure, shapes and dtypes of units, prior and state
    """
    run_params: RunParams = model_ctx['run_params']
    return (
        user_config['model'],
        user_config['use_double'],
        run_params,
        _tree_signature(model_ctx['units']),
        _tree_signature(model_ctx['prior']),
        _tree_signature(initial_state),
    )


def get_compiled_kernel_cache() -> Dict:
    """Get reference to the compiled kernel cache."""
    return _COMPILED_KERNEL_CACHE


def clear_kernel_cache():
    """Drop all cached kernels."""
    _COMPILED_KERNEL_CACHE.clear()


def compile_sweep_kernel(
    user_config: Dict[str, Any],
    model_ctx: Dict[str, Any],
    initial_state: SweepState
) -> Tuple[Any, Any, float]:
    """
    Compile the sweep and snapshot kernels, using the cache if available.

    Args:
        user_config: User configuration dict
        model_ctx: Model context with run_params, units and prior
        initial_state: Initial SweepState for tracing

    Returns:
        Tuple of (sweep_fn, snapshot_fn, compile_time) where
        sweep_fn(state) -> state and snapshot_fn(state) -> dict
    """
    units = model_ctx['units']
    prior = model_ctx['prior']
    run_params = model_ctx['run_params']
    model_id = user_config['model']

    cache_key = _compute_cache_key(user_config, model_ctx, initial_state)
    cached = _COMPILED_KERNEL_CACHE.get(cache_key)
    compile_time = 0.0

    if cached is not None:
        logger.info("Using cached kernel (in-memory)")
        compiled_sweep, compiled_snapshot = cached
    else:
        sweep_jit = jax.jit(eco_sweep, static_argnames=('run_params', 'model_id'))
        snapshot_jit = jax.jit(eco_snapshot, static_argnames=('run_params', 'model_id'))

        logger.info("Compiling sweep kernel...")
        compile_start = time.perf_counter()

        # AOT compilation with explicit arguments
        compiled_sweep = sweep_jit.lower(
            initial_state, units, prior, run_params, model_id
        ).compile()
        compiled_snapshot = snapshot_jit.lower(
            initial_state, units, run_params, model_id
        ).compile()

        compile_time = time.perf_counter() - compile_start
        logger.info(f"Done ({compile_time:.4f}s)")

        _COMPILED_KERNEL_CACHE[cache_key] = (compiled_sweep, compiled_snapshot)

    # Bind the arrays that stay fixed during the run
    def sweep_fn(state):
        return compiled_sweep(state, units, prior)

    def snapshot_fn(state):
        return compiled_snapshot(state, units)

    return sweep_fn, snapshot_fn, compile_time
