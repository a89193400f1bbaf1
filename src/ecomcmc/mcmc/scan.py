"""
Sweep Body and Recorded Snapshots.

This module contains the per-sweep components:
- eco_sweep: One full sweep (latents, then population parameters)
- eco_snapshot: The arrays recorded for a stored sweep
- _match_dtypes: Keep the carried state dtype-stable across sweeps

Control flow per sweep: the model's latent_update reads the current
parameters and writes new latents, then update_params reads the latents
and writes new parameters. Bounds and grids are fixed inputs.
"""

import jax
import jax.random as random

from ..registry import get_model
from .latent import predict_units
from .types import SweepState


# Offset folded into the state key for predictive draws, so recording a
# sweep never changes the random stream of the chain itself
PREDICT_STREAM = 1


def _match_dtypes(new_state: SweepState, old_state: SweepState) -> SweepState:
    """Cast every field of new_state to the dtype of the same field in old_state."""
    return jax.tree_util.tree_map(lambda new, old: new.astype(old.dtype), new_state, old_state)


def eco_sweep(state, units, prior, run_params, model_id):
    """
    One sweep of the sampler.

    Args:
        state: SweepState (traced)
        units: UnitArrays or UnitArrays2C (traced)
        prior: PriorParams (traced)
        run_params: RunParams (static)
        model_id: Registered model name (static)

    Returns:
        Updated SweepState with the same dtypes as the input
    """
    model = get_model(model_id)
    key, key_latent, key_params = random.split(state.key, 3)

    new_state = model['latent_update'](key_latent, state, units, run_params)
    new_state = model['update_params'](key_params, new_state, units, prior, run_params)
    new_state = new_state._replace(key=key)
    return _match_dtypes(new_state, state)


def eco_snapshot(state, units, run_params, model_id):
    """
    Arrays stored for a recorded sweep.

    Returns:
        Dict of arrays; adds 'W_pred' and 'Y_pred' when predictive draws
        are requested
    """
    model = get_model(model_id)
    snap = model['param_snapshot'](state, units, run_params)
    if run_params.PREDICT and model.get('predictive', False):
        key = random.fold_in(state.key, PREDICT_STREAM)
        snap['W_pred'], snap['Y_pred'] = predict_units(key, state, units, run_params)
    return snap
