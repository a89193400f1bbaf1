"""
ecomcmc - Bayesian Ecological Inference by MCMC

Reconstructs the unobserved cell proportions of 2x2 (and 2xC) tables from
their margins under a parametric Normal/Inverse-Wishart prior or a
Dirichlet process mixture prior.

Public API:
    Running:
        run_eco - Run the sampler and return the recorded draws
        CancellationToken - Stop a running sampler between sweeps

    Data:
        EcoData - Margins of 2x2 tables split by unit type
        EcoData2C - Margins of 2xC tables

    Models:
        register_model - Register a model variant
        get_model - Retrieve a registered model variant
        list_models - List registered model variants

    Links and bounds:
        Link - Logit / probit / complementary log-log selector
        w1_bounds - Feasible interval of W1
        tomography_grid - Grid of candidate W1 values on a tomography line

    Likelihood:
        IntegrationResult - Value, error estimate and error code of an integral
        unit_log_likelihood - Observed-data log likelihood of one unit
        chain_log_likelihood - Log likelihood of every recorded parametric draw

Example:
    from ecomcmc import EcoData, run_eco

    data = EcoData.from_margins(x, y)
    results = run_eco({'model': 'parametric', 'n_draws': 2000, 'burn_in': 200}, data)
    results['mu'].mean(axis=0)
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

# Import mcmc subpackage to register the pytrees
from . import mcmc as _mcmc  # noqa: F401

# Register the built-in model variants
from . import models as _models  # noqa: F401

from .registry import register_model, get_model, list_models
from .data import EcoData, EcoData2C
from .mcmc.links import Link
from .mcmc.bounds import w1_bounds, tomography_grid
from .likelihood import IntegrationResult, unit_log_likelihood, chain_log_likelihood

# Main entry points
from .mcmc import (
    run_eco,
    CancellationToken,
)

__version__ = "0.1.0"
