"""
Tomography-Line Integrals.

Host-side numerical integration (SciPy QUADPACK) of the bivariate normal
density of (W1*, W2*) = (logit W1, logit W2) along a unit's tomography line:
- IntegrationResult: value, absolute error estimate and QUADPACK error code
- integrate_unit: Integrate a function of t over (1e-5, 1 - 1e-5)
- tomography_bounds: Bounds of W1 and W2 with snapping near 0 / 1
- tomography_normalizing_constant: Mass of the density on the line
- sufficient_expectation: E[g(W)] along the line for the E-step statistics
- unit_log_likelihood: Observed-data log likelihood of one unit
- chain_log_likelihood: Log likelihood of every recorded parametric draw

The line is parameterized by t in (0, 1) as
    W1(t) = (W1_ub - W1_lb) t + W1_lb,   W2(t) = (W2_lb - W2_ub) t + W2_ub
and the integrand carries the arc-length factor sqrt(W1*'(t)^2 + W2*'(t)^2).

Integration failures are not fatal: a warning is logged and the best
approximation is returned together with its error code.
"""

import logging
from typing import NamedTuple

import numpy as np
from scipy import integrate

logger = logging.getLogger('ecomcmc')

T_LOWER = 1e-5
T_UPPER = 1.0 - 1e-5
EPSABS = 1e-9
EPSREL = 1e-9
LIMIT = 100

# Bounds closer than this to 0 / 1 are snapped to 0 / 1
BOUND_TOL = 1e-4

# Statistics available from sufficient_expectation
SUFF_W1STAR = 0
SUFF_W2STAR = 1
SUFF_W1STAR_SQ = 2
SUFF_W1STAR_W2STAR = 3
SUFF_W2STAR_SQ = 4
SUFF_W1 = 5
SUFF_W2 = 6

# QUADPACK ier codes keyed by a fragment of the message SciPy reports
_IER_MESSAGES = [
    ("maximum number of subdivisions", 1),
    ("does not converge", 4),
    ("roundoff error is detected", 2),
    ("extremely bad integrand", 3),
    ("divergent", 5),
    ("abnormal termination", 7),
]


class IntegrationResult(NamedTuple):
    """Outcome of a QUADPACK integration; ier == 0 means converged."""
    value: float
    abs_error: float
    ier: int


def _ier_from_message(message: str) -> int:
    text = message.lower()
    for fragment, code in _IER_MESSAGES:
        if fragment in text:
            return code
    return -1


def integrate_unit(fn, lower=T_LOWER, upper=T_UPPER, label=""):
    """
    Integrate fn(t) over [lower, upper] with QUADPACK (QAGS).

    Args:
        fn: Scalar integrand
        lower, upper: Integration limits
        label: Text identifying the unit in the warning message

    Returns:
        IntegrationResult
    """
    out = integrate.quad(fn, lower, upper, epsabs=EPSABS, epsrel=EPSREL,
                         limit=LIMIT, full_output=1)
    value, abs_error = float(out[0]), float(out[1])
    ier = 0
    if len(out) > 3:
        ier = _ier_from_message(out[3])
        logger.warning(f"Integration error {ier}: {label} -> {value:.5g} +- {abs_error:.5g}")
    return IntegrationResult(value=value, abs_error=abs_error, ier=ier)


def tomography_bounds(x, y, tol=BOUND_TOL):
    """
    Bounds (w1_lb, w1_ub, w2_lb, w2_ub) of one unit's tomography line.

    Upper bounds above 1 - tol become 1 and lower bounds below tol become 0.
    """
    w1_ub = y / x
    w1_lb = (y - (1 - x)) / x
    w2_ub = y / (1 - x)
    w2_lb = y / (1 - x) - x / (1 - x)
    if w1_ub > 1 - tol:
        w1_ub = 1.0
    if w1_lb < tol:
        w1_lb = 0.0
    if w2_ub > 1 - tol:
        w2_ub = 1.0
    if w2_lb < tol:
        w2_lb = 0.0
    return w1_lb, w1_ub, w2_lb, w2_ub


def _line_point(t, bounds):
    """
    (W1*, W2*) at t with the arc-length factor, or None off the open square.
    """
    w1_lb, w1_ub, w2_lb, w2_ub = bounds
    m1 = w1_ub - w1_lb
    m2 = w2_lb - w2_ub
    w1 = m1 * t + w1_lb
    w2 = m2 * t + w2_ub
    if w1 <= 0 or w1 >= 1 or w2 <= 0 or w2 >= 1:
        return None
    z = np.array([np.log(w1 / (1 - w1)), np.log(w2 / (1 - w2))])
    d1 = m1 / (w1 * (1 - w1))
    d2 = m2 / (w2 * (1 - w2))
    return z, np.sqrt(d1 * d1 + d2 * d2)


def _bvn_density(z, mu, Sigma):
    diff = z - mu
    det = Sigma[0, 0] * Sigma[1, 1] - Sigma[0, 1] * Sigma[1, 0]
    maha = diff @ np.linalg.solve(Sigma, diff)
    return np.exp(-0.5 * maha) / (2 * np.pi * np.sqrt(det))


def _line_integrand(x, y, mu, Sigma, g=None):
    bounds = tomography_bounds(x, y)
    mu = np.asarray(mu, dtype=np.float64)
    Sigma = np.asarray(Sigma, dtype=np.float64)

    def fn(t):
        point = _line_point(t, bounds)
        if point is None:
            return 0.0
        z, pfact = point
        dens = _bvn_density(z, mu, Sigma) * pfact
        return dens if g is None else g(z) * dens

    return fn


def tomography_normalizing_constant(x, y, mu, Sigma):
    """Integral of the bivariate normal density of W* along the tomography line."""
    return integrate_unit(_line_integrand(x, y, mu, Sigma), label=f"normc X {x:.5g} Y {y:.5g}")


def _expit(v):
    return 1.0 / (1.0 + np.exp(-v))


_SUFF_FUNCTIONS = {
    SUFF_W1STAR: lambda z: z[0],
    SUFF_W2STAR: lambda z: z[1],
    SUFF_W1STAR_SQ: lambda z: z[0] * z[0],
    SUFF_W1STAR_W2STAR: lambda z: z[0] * z[1],
    SUFF_W2STAR_SQ: lambda z: z[1] * z[1],
    SUFF_W1: lambda z: _expit(z[0]),
    SUFF_W2: lambda z: _expit(z[1]),
}


def sufficient_expectation(x, y, mu, Sigma, stat, normc=None):
    """
    Conditional expectation of a statistic of W along the tomography line.

    Args:
        x, y: Margins of the unit
        mu, Sigma: Bivariate normal parameters on the logit scale
        stat: One of the SUFF_* constants
        normc: Normalizing constant; computed when not given

    Returns:
        IntegrationResult whose value is E[stat] (error scaled by 1 / normc)
    """
    if stat not in _SUFF_FUNCTIONS:
        raise ValueError(f"Unknown sufficient statistic {stat}")
    if normc is None:
        normc = tomography_normalizing_constant(x, y, mu, Sigma).value
    res = integrate_unit(_line_integrand(x, y, mu, Sigma, _SUFF_FUNCTIONS[stat]),
                         label=f"Sf {stat} X {x:.5g} Y {y:.5g}")
    return IntegrationResult(res.value / normc, res.abs_error / normc, res.ier)


def unit_log_likelihood(x, y, mu, Sigma):
    """
    Log of the density mass of N(mu, Sigma) on the unit's tomography line.

    Returns:
        (log_likelihood, IntegrationResult)
    """
    res = tomography_normalizing_constant(x, y, mu, Sigma)
    with np.errstate(divide='ignore'):
        return float(np.log(res.value)), res


def chain_log_likelihood(results, data):
    """
    Observed-data log likelihood of the mixed units for every recorded draw.

    Only defined for the parametric 2x2 model on the logit scale without
    the contextual covariate.

    Args:
        results: Output of run_eco
        data: The EcoData the run was fitted to

    Returns:
        (n_recorded,) array of log likelihoods
    """
    config = results['eco_config']
    if config['model'] != 'parametric' or config['link'] != 'logit' or config['context']:
        raise ValueError("chain_log_likelihood requires the parametric model, "
                         "logit link and no contextual covariate")
    if 'mu' not in results:
        raise ValueError("chain_log_likelihood requires recorded parameters (parameter=True)")

    mu_draws = results['mu']
    Sigma_draws = results['Sigma']
    out = np.zeros(mu_draws.shape[0])
    for s in range(mu_draws.shape[0]):
        out[s] = sum(
            unit_log_likelihood(xi, yi, mu_draws[s], Sigma_draws[s])[0]
            for xi, yi in zip(data.x, data.y)
        )
    return out
