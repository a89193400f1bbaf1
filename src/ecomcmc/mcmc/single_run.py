"""
Single Run - The sweep loop of the ecological inference sampler.

This module provides run_eco() and its helper functions:
- CancellationToken: Cooperative cancellation checked at the top of every sweep
- _build_recorder: Allocate storage for every recorded field
- _run_sweeps: Execute the main sampling loop
- _acceptance_rate: Metropolis acceptance rate when a Metropolis sampler is used
- _build_results: Assemble final results dict
"""

import threading
import time
from datetime import datetime, timedelta
from typing import Dict, Any, Optional

import jax
import numpy as np

from .config import configure_eco_system, initialize_sweep_state
from .compile import compile_sweep_kernel
from .recorder import DrawRecorder, should_record
from ..data import EcoData
from ..error_handling import diagnose_sampler_issues, print_diagnostics

import logging
logger = logging.getLogger('ecomcmc')

# Public API for this module
__all__ = [
    'run_eco',
    'CancellationToken',
]


class CancellationToken:
    """
    Thread-safe flag used to stop a running sampler between sweeps.

    Another thread calls cancel(); run_eco checks ``cancelled`` before every
    sweep and returns the draws recorded so far.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# =============================================================================
# RUN HELPER FUNCTIONS
# =============================================================================

def _build_recorder(model_ctx: Dict[str, Any]) -> DrawRecorder:
    model = model_ctx['model']
    units = model_ctx['units']
    run_params = model_ctx['run_params']

    shapes = model['snapshot_shapes'](units, run_params)
    if run_params.PREDICT and model.get('predictive', False):
        shapes['W_pred'] = (units.n_samp, 2)
        shapes['Y_pred'] = (units.n_samp,)
    return DrawRecorder(shapes, run_params.N_STORE)


def _run_sweeps(state, sweep_fn, snapshot_fn, recorder, run_params,
                verbose: bool, cancel_token: Optional[CancellationToken]):
    """
    Run up to N_DRAWS sweeps, recording the selected ones.

    Returns:
        (final_state, sweeps_completed, cancelled)
    """
    n_draws = run_params.N_DRAWS
    progress_every = max(1, n_draws // 10)
    sweeps_completed = 0
    cancelled = False

    for sweep in range(n_draws):
        if cancel_token is not None and cancel_token.cancelled:
            cancelled = True
            logger.warning(f"Run cancelled after {sweeps_completed} of {n_draws} sweeps "
                           f"({recorder.count} draws recorded)")
            break

        state = sweep_fn(state)
        sweeps_completed += 1

        if should_record(sweep, run_params.BURN_IN, run_params.THIN):
            recorder.record(jax.device_get(snapshot_fn(state)))

        if verbose and sweeps_completed % progress_every == 0:
            logger.info(f"{100 * sweeps_completed // n_draws:3d} percent done.")

    jax.block_until_ready(state)
    return state, sweeps_completed, cancelled


def _acceptance_rate(state, model_ctx: Dict[str, Any], sweeps_completed: int) -> Optional[float]:
    """Acceptance rate of the Metropolis moves, or None for the grid sampler."""
    run_params = model_ctx['run_params']
    units = model_ctx['units']
    if run_params.MODEL == 'parametric_2c':
        n_moves = units.n_units
    elif not run_params.GRID:
        n_moves = units.n_samp
    else:
        return None
    if sweeps_completed == 0 or n_moves == 0:
        return None
    return float(state.accepts) / (sweeps_completed * n_moves)


def _build_results(draws: Dict[str, np.ndarray], state, data, user_config: Dict[str, Any],
                   model_ctx: Dict[str, Any], sweeps_completed: int, cancelled: bool,
                   compile_time: float, wall_time: float) -> Dict[str, Any]:
    """
    Assemble the results dict returned by run_eco.

    Recorded fields ('mu', 'Sigma', 'W', 'W_pred', 'Y_pred', 'alpha',
    'n_star') appear only when they were recorded for this model.
    """
    results = dict(draws)
    if 'n_star' in results:
        results['n_star'] = results['n_star'].astype(np.int64)

    diagnostics = diagnose_sampler_issues(draws, data)
    print_diagnostics(diagnostics)

    results.update({
        'eco_config': user_config,
        'n_store': model_ctx['run_params'].N_STORE,
        'n_recorded': int(draws['W'].shape[0]),
        'sweeps_completed': sweeps_completed,
        'cancelled': cancelled,
        'acceptance_rate': _acceptance_rate(state, model_ctx, sweeps_completed),
        'diagnostics': diagnostics,
        'compile_time': compile_time,
        'wall_time': wall_time,
        'X': data.x,
        'Y': data.y,
    })
    if isinstance(data, EcoData):
        results['N'] = data.n
        results['order'] = data.order
    return results


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def run_eco(eco_config: Dict[str, Any], data, cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
    """
    Run the ecological inference sampler.

    Args:
        eco_config: Configuration dict. Missing keys take the defaults from
            clean_config ('model', 'link', 'n_draws', 'burn_in', 'thin', ...)
        data: EcoData for 'parametric' / 'dp', EcoData2C for 'parametric_2c'
        cancel_token: Optional CancellationToken; when cancelled the run
            stops before the next sweep and returns what was recorded

    Returns:
        Dict with the recorded draws (leading axis = recorded sweep) and
        run metadata

    Raises:
        ValueError: For invalid configuration or data, or when no feasible
            starting latents exist
    """
    logger.info("Validating eco configuration...")
    user_config, runtime_ctx, model_ctx = configure_eco_system(eco_config, data)
    run_params = model_ctx['run_params']

    logger.info(f"Starting '{user_config['model']}' sampler ({user_config['link']} link, "
                f"{'grid' if run_params.GRID else 'Metropolis'} latent updates) "
                f"at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"JAX backend: {jax.default_backend()}")
    logger.info(f"Sweeps: {run_params.N_DRAWS}, burn-in: {run_params.BURN_IN}, "
                f"thin: {run_params.THIN}, stored: {run_params.N_STORE}")

    state = initialize_sweep_state(user_config, runtime_ctx, model_ctx)
    sweep_fn, snapshot_fn, compile_time = compile_sweep_kernel(user_config, model_ctx, state)
    recorder = _build_recorder(model_ctx)

    start = time.perf_counter()
    state, sweeps_completed, cancelled = _run_sweeps(
        state, sweep_fn, snapshot_fn, recorder, run_params,
        user_config['verbose'], cancel_token,
    )
    wall_time = time.perf_counter() - start

    logger.info(f"\n--- Run Summary ---")
    logger.info(f"  Total Wall Time: {timedelta(seconds=int(wall_time))} ({wall_time:.2f}s)")
    logger.info(f"  Sweeps completed: {sweeps_completed}, draws recorded: {recorder.count}")

    return _build_results(
        recorder.results(), state, data, user_config, model_ctx,
        sweeps_completed, cancelled, compile_time, wall_time,
    )
