"""
Error Handling and Validation Utilities for the Sweep Engine

This module provides validation functions and diagnostic tools:
- validate_eco_config: Reject invalid configurations before any sweep
- validate_eco_data: Reject margins outside [0, 1] or mismatched shapes
- diagnose_sampler_issues: Post-run checks on the recorded draws
- print_diagnostics: Log the findings of diagnose_sampler_issues
"""

from typing import Any, Dict

import numpy as np

from .data import EcoData, EcoData2C
from .mcmc.links import Link
from .registry import list_models

import logging
logger = logging.getLogger('ecomcmc')

# Models that work on 2xC tables
TABLE_2C_MODELS = ('parametric_2c',)


def _check_vector(errors, name, value, ndim):
    if value is None:
        return
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 0:
        return
    if arr.shape != (ndim,):
        errors.append(f"{name} must be a scalar or a vector of length {ndim}, got shape {arr.shape}")


def _check_matrix(errors, name, value, ndim):
    if value is None:
        return
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 0:
        if arr <= 0:
            errors.append(f"{name} must be positive when given as a scalar, got {float(arr)}")
        return
    if arr.shape != (ndim, ndim):
        errors.append(f"{name} must be a scalar or a {ndim}x{ndim} matrix, got shape {arr.shape}")
        return
    if not np.allclose(arr, arr.T):
        errors.append(f"{name} must be symmetric")
    elif np.any(np.linalg.eigvalsh(arr) <= 0):
        errors.append(f"{name} must be positive definite")


def validate_eco_config(eco_config: Dict[str, Any], ndim: int) -> None:
    """
    Validates that a run configuration is sensible.

    Every problem is collected so a single error names all offending
    parameters.

    Args:
        eco_config: Configuration dictionary (after clean_config)
        ndim: Dimension of the transformed latent vector

    Raises:
        ValueError: If configuration is invalid
    """
    errors = []

    n_draws = eco_config['n_draws']
    burn_in = eco_config['burn_in']
    thin = eco_config['thin']

    if n_draws < 1:
        errors.append(f"n_draws must be >= 1, got {n_draws}")
    if burn_in < 0:
        errors.append(f"burn_in must be >= 0, got {burn_in}")
    if burn_in >= n_draws:
        errors.append(f"burn_in ({burn_in}) must be smaller than n_draws ({n_draws})")
    if thin < 0:
        errors.append(f"thin must be >= 0, got {thin}")
    if eco_config['n_step'] < 2:
        errors.append(f"n_step must be >= 2, got {eco_config['n_step']}")

    model = eco_config['model']
    if model not in list_models():
        errors.append(f"Unknown model '{model}'. Available: {list_models()}")

    try:
        Link.from_name(eco_config['link'])
    except ValueError as e:
        errors.append(str(e))

    if eco_config['context'] and model in TABLE_2C_MODELS:
        errors.append("context is only supported for 2x2 tables")
    if eco_config['predict'] and model in TABLE_2C_MODELS:
        errors.append("predict is only supported for 2x2 tables")

    if eco_config['nu0'] <= ndim - 1:
        errors.append(f"nu0 must be > {ndim - 1} for a {ndim}-dimensional model, got {eco_config['nu0']}")
    if eco_config['tau0'] <= 0:
        errors.append(f"tau0 must be > 0, got {eco_config['tau0']}")
    if eco_config['a0'] <= 0:
        errors.append(f"a0 must be > 0, got {eco_config['a0']}")
    if eco_config['b0'] <= 0:
        errors.append(f"b0 must be > 0, got {eco_config['b0']}")
    if eco_config['alpha_start'] <= 0:
        errors.append(f"alpha_start must be > 0, got {eco_config['alpha_start']}")

    _check_vector(errors, 'mu0', eco_config['mu0'], ndim)
    _check_vector(errors, 'mu_start', eco_config['mu_start'], ndim)
    _check_matrix(errors, 'S0', eco_config['S0'], ndim)
    _check_matrix(errors, 'Sigma_start', eco_config['Sigma_start'], ndim)

    if errors:
        raise ValueError("Invalid eco configuration:\n  " + "\n  ".join(errors))


def validate_eco_data(data, eco_config: Dict[str, Any]) -> None:
    """
    Validates the margins handed to the sampler.

    Raises:
        ValueError: If data is invalid or does not match the model
    """
    errors = []
    model = eco_config['model']

    if model in TABLE_2C_MODELS:
        if not isinstance(data, EcoData2C):
            errors.append(f"model '{model}' requires EcoData2C input")
        else:
            if data.y.shape[0] != data.n_samp:
                errors.append(f"X has {data.n_samp} rows but Y has {data.y.shape[0]} entries")
            if np.any((data.x <= 0) | (data.x > 1)):
                errors.append("2xC row proportions X must lie in (0, 1]")
            elif not np.allclose(data.x.sum(axis=1), 1.0):
                errors.append("2xC row proportions X must sum to 1")
            if np.any((data.y <= 0) | (data.y > 1)):
                errors.append("2xC margins Y must lie in (0, 1]")
    else:
        if not isinstance(data, EcoData):
            errors.append(f"model '{model}' requires EcoData input")
        else:
            if data.x.shape != data.y.shape:
                errors.append(f"X and Y must have the same length, got {data.x.shape[0]} and {data.y.shape[0]}")
            if np.any((data.x <= 0) | (data.x >= 1)):
                errors.append("X of mixed units must lie strictly between 0 and 1")
            if np.any((data.y < 0) | (data.y > 1)):
                errors.append("Y must lie in [0, 1]")
            for name in ('x1_w1', 'x0_w2'):
                values = getattr(data, name)
                if np.any((values < 0) | (values > 1)):
                    errors.append(f"{name} must lie in [0, 1]")
            n_cols = 3 if eco_config['context'] else 2
            if data.survey.shape[0] > 0 and data.survey.shape[1] != n_cols:
                errors.append(f"survey data must have {n_cols} columns, got {data.survey.shape[1]}")
            if data.w1_bounds is not None and np.shape(data.w1_bounds) != (data.n_samp, 2):
                errors.append(f"w1_bounds must have shape ({data.n_samp}, 2), got {np.shape(data.w1_bounds)}")
            if data.t_samp < 1:
                errors.append("no units to sample")

    if errors:
        raise ValueError("Invalid eco data:\n  " + "\n  ".join(errors))


def diagnose_sampler_issues(results: Dict[str, Any], data, tol: float = 1e-8) -> Dict[str, Any]:
    """
    Analyzes recorded draws to identify common issues.

    Args:
        results: Recorded draws keyed by field ('W', 'mu', ...)
        data: EcoData or EcoData2C the run was fitted to
        tol: Tolerance for the margin identity Y = sum_j X_j W_j

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = {
        'issues': [],
        'warnings': [],
        'info': []
    }

    for name in ('W', 'mu', 'Sigma', 'alpha'):
        if name in results and not np.all(np.isfinite(results[name])):
            diagnostics['issues'].append(
                f"{name} draws contain NaN or Inf values - sampler became unstable"
            )

    W = results.get('W')
    if W is not None and W.shape[0] > 0:
        if isinstance(data, EcoData2C):
            implied = np.sum(W * data.x[None, :, :], axis=-1)
            y = data.y
        else:
            # Units with Y exactly 0 or 1 hold nudged values
            n = data.n_samp
            inner = (data.y > 0) & (data.y < 1)
            implied = (W[:, :n, 0] * data.x + W[:, :n, 1] * (1.0 - data.x))[:, inner]
            y = data.y[inner]
        worst = float(np.max(np.abs(implied - y[None, :]))) if implied.size else 0.0
        if worst > tol:
            diagnostics['issues'].append(
                f"Recorded W violate the margin identity (max error {worst:.3g})"
            )

        if W.shape[0] > 1:
            stuck = int(np.sum(np.all(np.var(W, axis=0) < 1e-14, axis=-1)))
            if stuck > 0:
                diagnostics['warnings'].append(
                    f"{stuck} unit(s) never moved across recorded sweeps"
                )

        diagnostics['info'].append(f"Recorded sweeps: {W.shape[0]}")
        diagnostics['info'].append(f"Recorded units: {W.shape[1]}")

    if 'n_star' in results and results['n_star'].size:
        diagnostics['info'].append(
            f"Distinct clusters: mean {np.mean(results['n_star']):.2f}, "
            f"range [{int(np.min(results['n_star']))}, {int(np.max(results['n_star']))}]"
        )

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Pretty-print diagnostics from diagnose_sampler_issues."""
    if diagnostics['issues']:
        logger.error("\n[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("\n[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("\n[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("\n[OK] No issues detected")
