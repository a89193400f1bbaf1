import logging

logger = logging.getLogger('ecomcmc')


def clean_config(eco_config):
    """
    Cleans the config dict and sets defaults.
    All config keys use lowercase with underscores, except the matrix-valued
    S0 and Sigma_start.
    """
    eco_config = dict(eco_config)

    # Model and sampler
    eco_config.setdefault('model', 'parametric')
    eco_config.setdefault('link', 'logit')
    eco_config.setdefault('context', False)
    eco_config.setdefault('grid', True)
    eco_config.setdefault('n_step', 1000)
    eco_config.setdefault('reject', True)

    # Chain length
    eco_config.setdefault('n_draws', 5000)
    eco_config.setdefault('burn_in', 0)
    eco_config.setdefault('thin', 0)
    eco_config.setdefault('verbose', False)

    # NIW prior and starting values
    eco_config.setdefault('nu0', 4)
    eco_config.setdefault('tau0', 2)
    eco_config.setdefault('mu0', 0)
    eco_config.setdefault('S0', 10)
    eco_config.setdefault('mu_start', None)
    eco_config.setdefault('Sigma_start', None)

    # Dirichlet process concentration
    eco_config.setdefault('a0', 1)
    eco_config.setdefault('b0', 0.1)
    eco_config.setdefault('alpha_start', 1.0)
    eco_config.setdefault('update_alpha', True)

    # Output
    eco_config.setdefault('predict', False)
    eco_config.setdefault('parameter', True)

    # Runtime
    eco_config.setdefault('rng_seed', 42)
    eco_config.setdefault('use_double', True)

    for flag in ('context', 'grid', 'reject', 'verbose', 'update_alpha', 'predict', 'parameter', 'use_double'):
        if type(eco_config[flag]) != bool:
            logger.warning(f"'{flag}' must be 'True' or 'False', got {eco_config[flag]!r}")

    return eco_config
