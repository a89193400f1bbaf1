"""
Latent Proportion Samplers.

Draws the unobserved cell proportions of each unit given the current
population parameters of that unit's cluster:
- grid_draw: Inverse-CDF draw over a unit's tomography grid
- metropolis_draw: Uniform proposal on the tomography line with MH acceptance
- homogeneous_draw: Exact conditional normal draw for X=0 / X=1 units
- predictive_draw: Posterior predictive W for one unit
- simplex_mh_draw: Independence MH step for a 2xC row
- initial_simplex_draw: Rejection-sampled feasible start for a 2xC row
- update_latents: One full latent pass over all unit types (2x2)
- update_latents_2c: One full latent pass for 2xC tables

Densities for (W1, W2) are the Normal density of the link-transformed pair
plus the log Jacobian of the link, so the grid and Metropolis samplers
target the same distribution on the tomography line.
"""

from functools import partial

import numpy as np
import jax
import jax.numpy as jnp
import jax.random as random
from jax.scipy.special import logsumexp

from .links import forward, inverse, log_jacobian
from .niw import mvn_logpdf


# =============================================================================
# SHARED HELPERS
# =============================================================================

def inverse_cdf_index(key, log_weights, n_valid=None):
    """
    Draw an index with probability proportional to exp(log_weights).

    Returns the first index whose normalized cumulative weight is >= u,
    clipped to n_valid - 1 so round-off in the last bin cannot run past the
    valid entries.
    """
    probs = jnp.exp(log_weights - logsumexp(log_weights))
    cum = jnp.cumsum(probs)
    u = random.uniform(key, dtype=cum.dtype)
    idx = jnp.sum(cum < u)
    upper = log_weights.shape[0] if n_valid is None else n_valid
    return jnp.clip(idx, 0, upper - 1)


def conditional_normal(mu, Sigma, x, unknown, known):
    """
    Mean and variance of coordinate ``unknown`` given coordinates ``known`` = x[known].

    mean = mu_u + S_uK S_KK^{-1} (x_K - mu_K)
    var  = S_uu - S_uK S_KK^{-1} S_Ku

    With a single known coordinate this is mu_u + S_uk / S_kk (x_k - mu_k)
    and S_uu (1 - rho^2).
    """
    known = np.asarray(known)
    S_kk = Sigma[np.ix_(known, known)]
    S_uk = Sigma[unknown, known]
    coef = jnp.linalg.solve(S_kk, S_uk)
    mean = mu[unknown] + coef @ (x[known] - mu[known])
    var = Sigma[unknown, unknown] - S_uk @ coef
    return mean, var


def _augment(zstar, x_star, context):
    if context:
        return jnp.concatenate([zstar, jnp.broadcast_to(x_star, zstar.shape[:-1] + (1,))], axis=-1)
    return zstar


def line_log_density(w, mu, Sigma, link, x_star=0.0, context=False):
    """
    Log density of points w = (..., 2) on the proportion scale.

    Normal log density of the transformed point (with the contextual
    covariate appended when enabled) plus the log Jacobian of the link.
    """
    zstar = _augment(forward(w, link), x_star, context)
    return mvn_logpdf(zstar, mu, Sigma) + jnp.sum(log_jacobian(w, link), axis=-1)


# =============================================================================
# 2x2 MIXED UNITS
# =============================================================================

def grid_draw(key, w1_grid, w2_grid, grid_mask, n_grid, mu, Sigma, x_star, link, context):
    """
    Draw (W1, W2) for one unit from its discretized tomography line.

    Args:
        key: JAX random key
        w1_grid, w2_grid: (max_grid,) grid points (padded)
        grid_mask: (max_grid,) valid points
        n_grid: Number of valid points
        mu, Sigma: The unit's cluster parameters
        x_star: Transformed covariate (used when context is True)
        link: Link (static)
        context: Whether the covariate is part of the model (static)

    Returns:
        (w1, w2)
    """
    pts = jnp.stack([w1_grid, w2_grid], axis=-1)
    log_w = line_log_density(pts, mu, Sigma, link, x_star, context)
    log_w = jnp.where(grid_mask, log_w, -jnp.inf)
    j = inverse_cdf_index(key, log_w, n_grid)
    return w1_grid[j], w2_grid[j]


def metropolis_draw(key, w1, w2, x, y, min_w1, max_w1, mu, Sigma, x_star, link, context):
    """
    One Metropolis step along the tomography line for one unit.

    The proposal is uniform on [min_w1, max_w1] and independent of the
    current value, so the acceptance ratio is the density ratio. Units with
    a single feasible point keep their current value.

    Returns:
        (w1, w2, accepted)
    """
    key_prop, key_acc = random.split(key)
    w1_prop = random.uniform(key_prop, dtype=w1.dtype, minval=min_w1, maxval=max_w1)
    w2_prop = (y - x * w1_prop) / (1.0 - x)

    cur = line_log_density(jnp.stack([w1, w2]), mu, Sigma, link, x_star, context)
    prop = line_log_density(jnp.stack([w1_prop, w2_prop]), mu, Sigma, link, x_star, context)

    log_u = jnp.log(random.uniform(key_acc, dtype=w1.dtype))
    accept = (log_u < prop - cur) & (max_w1 > min_w1)
    w1_new = jnp.where(accept, w1_prop, w1)
    return w1_new, jnp.where(accept, w2_prop, w2), accept


# =============================================================================
# HOMOGENEOUS UNITS AND PREDICTION
# =============================================================================

def homogeneous_draw(key, zstar, mu, Sigma, unknown, known):
    """
    Draw the unknown link-scale coordinate of a homogeneous unit.

    Args:
        key: JAX random key
        zstar: (d,) current transformed row; entries at ``known`` are fixed
        mu, Sigma: The unit's own cluster parameters
        unknown: Index of the coordinate to draw (static)
        known: Indices conditioned on (static)

    Returns:
        Scalar draw on the link scale
    """
    mean, var = conditional_normal(mu, Sigma, zstar, unknown, known)
    return mean + jnp.sqrt(jnp.maximum(var, 0.0)) * random.normal(key, dtype=zstar.dtype)


def predictive_draw(key, mu, Sigma, x_star, link, context):
    """
    Posterior predictive (W1, W2) for one unit.

    Without the covariate this is a draw from N(mu, Sigma); with it, the
    first two coordinates are drawn conditionally on the unit's X*.
    """
    if context:
        known = np.array([2])
        free = np.array([0, 1])
        S_kk = Sigma[np.ix_(known, known)]
        S_fk = Sigma[np.ix_(free, known)]
        coef = jnp.linalg.solve(S_kk, S_fk.T).T
        mean = mu[free] + coef @ (jnp.atleast_1d(x_star) - mu[known])
        cov = Sigma[np.ix_(free, free)] - coef @ S_fk.T
    else:
        mean, cov = mu, Sigma
    L = jnp.linalg.cholesky(0.5 * (cov + cov.T))
    z = mean + L @ random.normal(key, (2,), dtype=mu.dtype)
    return inverse(z, link)


# =============================================================================
# 2x2 LATENT PASS
# =============================================================================

def update_latents(key, state, units, run_params):
    """
    Resample the latents of every unit given the current cluster parameters.

    Mixed units use the grid or Metropolis sampler, homogeneous units get a
    conditional normal draw of their unknown coordinate, survey rows are
    left untouched.

    Args:
        key: JAX random key
        state: SweepState
        units: UnitArrays
        run_params: RunParams (static)

    Returns:
        SweepState with new w, wstar and accepts
    """
    link = run_params.LINK
    context = run_params.CONTEXT
    n = units.n_samp
    key_mix, key_x1, key_x0 = random.split(key, 3)

    mu_u = state.mu[state.labels]
    Sigma_u = state.Sigma[state.labels]
    w = state.w
    wstar = state.wstar
    accepts = state.accepts

    if n > 0:
        unit_keys = random.split(key_mix, n)
        if run_params.GRID:
            draw = jax.vmap(partial(grid_draw, link=link, context=context))
            w1, w2 = draw(unit_keys, units.w1_grid, units.w2_grid, units.grid_mask, units.n_grid,
                          mu_u[:n], Sigma_u[:n], units.x_star[:n])
        else:
            draw = jax.vmap(partial(metropolis_draw, link=link, context=context))
            w1, w2, acc = draw(unit_keys, w[:n, 0], w[:n, 1], units.x, units.y,
                               units.min_w1, units.max_w1,
                               mu_u[:n], Sigma_u[:n], units.x_star[:n])
            accepts = accepts + jnp.sum(acc).astype(accepts.dtype)
        w_mix = jnp.stack([w1, w2], axis=-1)
        w = w.at[:n].set(w_mix)
        wstar = wstar.at[:n, :2].set(forward(w_mix, link))

    extra = (2,) if context else ()

    # X=1 units: W1 known, draw W2*
    if units.n_x1 > 0:
        sl = slice(n, n + units.n_x1)
        draw = jax.vmap(partial(homogeneous_draw, unknown=1, known=(0,) + extra))
        z = draw(random.split(key_x1, units.n_x1), wstar[sl], mu_u[sl], Sigma_u[sl])
        wstar = wstar.at[sl, 1].set(z)
        w = w.at[sl, 1].set(inverse(z, link))

    # X=0 units: W2 known, draw W1*
    if units.n_x0 > 0:
        sl = slice(n + units.n_x1, n + units.n_x1 + units.n_x0)
        draw = jax.vmap(partial(homogeneous_draw, unknown=0, known=(1,) + extra))
        z = draw(random.split(key_x0, units.n_x0), wstar[sl], mu_u[sl], Sigma_u[sl])
        wstar = wstar.at[sl, 0].set(z)
        w = w.at[sl, 0].set(inverse(z, link))

    return state._replace(w=w, wstar=wstar, accepts=accepts)


def predict_units(key, state, units, run_params):
    """
    Predictive (W, Y) for every mixed unit from its current cluster parameters.

    Returns:
        (w_pred, y_pred) with shapes (n_samp, 2) and (n_samp,)
    """
    n = units.n_samp
    mu_u = state.mu[state.labels[:n]]
    Sigma_u = state.Sigma[state.labels[:n]]
    draw = jax.vmap(partial(predictive_draw, link=run_params.LINK, context=run_params.CONTEXT))
    w_pred = draw(random.split(key, n), mu_u, Sigma_u, units.x_star[:n])
    y_pred = w_pred[:, 0] * units.x + w_pred[:, 1] * (1.0 - units.x)
    return w_pred, y_pred


# =============================================================================
# 2xC TABLES
# =============================================================================

def simplex_log_target(u, x_row, y, mu, Sigma, link):
    """Log density of U = W * X / Y implied by link(W) ~ N(mu, Sigma)."""
    w = u * y / x_row
    return mvn_logpdf(forward(w, link), mu, Sigma) + jnp.sum(log_jacobian(w, link))


def _in_bounds(u, min_u, max_u):
    return jnp.all((u >= min_u) & (u <= max_u))


def _dirichlet_until_feasible(key, min_u, max_u, max_tries):
    """Dirichlet(1) draws until one falls inside the bounds or the budget runs out."""
    alpha = jnp.ones_like(min_u)

    def cond(carry):
        _, _, ok, tries = carry
        return (~ok) & (tries < max_tries)

    def body(carry):
        key, _, _, tries = carry
        key, sub = random.split(key)
        u = random.dirichlet(sub, alpha, dtype=min_u.dtype)
        return key, u, _in_bounds(u, min_u, max_u), tries + 1

    init = (key, jnp.full_like(min_u, 1.0 / min_u.shape[0]), jnp.array(False), jnp.array(0))
    _, u, ok, tries = jax.lax.while_loop(cond, body, init)
    return u, ok, tries


def initial_simplex_draw(key, min_u, max_u, max_tries=100_000):
    """
    Feasible starting U for one 2xC row by Dirichlet(1) rejection sampling.

    Returns:
        (u, found): found is False when no feasible draw was seen within max_tries
    """
    u, ok, _ = _dirichlet_until_feasible(key, min_u, max_u, max_tries)
    return u, ok


def simplex_mh_draw(key, u, min_u, max_u, x_row, y, mu, Sigma, link, reject, max_tries):
    """
    Independence Metropolis step for one 2xC row with a Dirichlet(1) proposal.

    The proposal is uniform on the simplex. With ``reject`` the proposal is
    rejection-sampled into the bounds, which keeps it uniform on the
    feasible region; if the retry budget runs out the row stays put.
    Without ``reject`` an infeasible proposal is simply rejected.

    Returns:
        (u_new, accepted)
    """
    key_prop, key_acc = random.split(key)
    if reject:
        u_prop, feasible, _ = _dirichlet_until_feasible(key_prop, min_u, max_u, max_tries)
    else:
        u_prop = random.dirichlet(key_prop, jnp.ones_like(u), dtype=u.dtype)
        feasible = _in_bounds(u_prop, min_u, max_u)

    cur = simplex_log_target(u, x_row, y, mu, Sigma, link)
    prop = simplex_log_target(jnp.where(feasible, u_prop, u), x_row, y, mu, Sigma, link)
    log_r = jnp.log(random.uniform(key_acc, dtype=u.dtype))
    accept = feasible & (log_r < prop - cur)
    return jnp.where(accept, u_prop, u), accept


def update_latents_2c(key, state, units, run_params):
    """MH update of every 2xC row; state.w holds W and state.wstar its transform."""
    link = run_params.LINK
    u = state.w * units.x / units.y[:, None]
    draw = jax.vmap(
        partial(simplex_mh_draw, link=link, reject=run_params.REJECT, max_tries=run_params.MAX_TRIES),
        in_axes=(0, 0, 0, 0, 0, 0, None, None),
    )
    u_new, acc = draw(random.split(key, units.n_units), u, units.min_u, units.max_u,
                      units.x, units.y, state.mu[0], state.Sigma[0])
    w = u_new * units.y[:, None] / units.x
    return state._replace(
        w=w,
        wstar=forward(w, link),
        accepts=state.accepts + jnp.sum(acc).astype(state.accepts.dtype),
    )
