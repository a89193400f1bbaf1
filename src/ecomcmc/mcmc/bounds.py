"""
Deterministic Bounds and Tomography Grids.

Host-side setup for the latent sampler. Every quantity here depends only on
the observed margins, so it is computed once with NumPy before sampling and
handed to JAX as fixed-shape arrays:
- w1_bounds: Feasible interval of W1 for each mixed unit
- w2_from_w1: Recover W2 from W1 on the tomography line
- tomography_grid: Discretize one unit's feasible interval
- build_unit_arrays: Assemble padded per-unit arrays for all unit types
- cell_bounds_2c: Per-cell bounds for 2xC tables
"""

import logging

import numpy as np
import jax.numpy as jnp

from .links import Link, forward
from .types import UnitArrays, UnitArrays2C

logger = logging.getLogger('ecomcmc')

# Known proportions of exactly 0 or 1 are moved inside the open interval
NUDGE = 1e-6

DEFAULT_N_STEP = 1000


def nudge(w):
    """Replace exact 0 / 1 proportions by NUDGE / 1 - NUDGE."""
    w = np.asarray(w, dtype=np.float64).copy()
    w[w == 0.0] = NUDGE
    w[w == 1.0] = 1.0 - NUDGE
    return w


def w1_bounds(x, y):
    """
    Feasible interval of W1 implied by Y = X*W1 + (1-X)*W2 with W1, W2 in [0, 1].

    Args:
        x: Row margins, 0 < x < 1
        y: Column margins, 0 <= y <= 1

    Returns:
        (min_w1, max_w1) arrays
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    min_w1 = np.maximum(0.0, (x + y - 1.0) / x)
    max_w1 = np.minimum(1.0, y / x)
    return min_w1, max_w1


def w2_from_w1(x, y, w1):
    """W2 on the tomography line. Works for NumPy and JAX arrays alike."""
    return (y - x * w1) / (1.0 - x)


def tomography_grid(min_w1, max_w1, n_step=DEFAULT_N_STEP):
    """
    Candidate W1 values spanning [min_w1, max_w1] for a single unit.

    Wide intervals get floor(width * n_step) points one step apart, shifted so
    the leftover residual is split evenly between both ends; any point closer
    than half a residual to a bound is pulled inward by half a residual.
    Intervals no wider than two steps get exactly two points at the 1/3 and
    2/3 marks.

    Returns:
        1-D array of W1 grid values
    """
    step = 1.0 / n_step
    width = max_w1 - min_w1

    if width > 2 * step:
        n_grid = int(np.trunc(width * n_step))
        resid = width - n_grid * step
        grid = min_w1 + (np.arange(n_grid) + 1) * step - (step + resid) / 2
        grid = np.where(grid - min_w1 < resid / 2, grid + resid / 2, grid)
        grid = np.where(max_w1 - grid < resid / 2, grid - resid / 2, grid)
        return grid

    return np.array([min_w1 + width / 3, min_w1 + 2 * width / 3])


def build_unit_arrays(data, link=Link.LOGIT, n_step=DEFAULT_N_STEP, context=False,
                      float_dtype=jnp.float64):
    """
    Build the fixed-shape per-unit arrays used by every sweep.

    Mixed units whose Y is exactly 0 or 1 have a single feasible point; their
    grid repeats it so every draw returns the known value.

    Args:
        data: EcoData instance (units already split by type)
        link: Link used to transform the contextual covariate
        n_step: Inverse grid step
        context: Whether X enters the model as a third coordinate
        float_dtype: JAX float dtype for the device arrays

    Returns:
        UnitArrays
    """
    x = np.asarray(data.x, dtype=np.float64)
    y = np.asarray(data.y, dtype=np.float64)
    n_samp = x.shape[0]
    n_x1 = len(data.x1_w1)
    n_x0 = len(data.x0_w2)
    n_survey = data.survey.shape[0]

    if data.w1_bounds is not None:
        wb = np.asarray(data.w1_bounds, dtype=np.float64)
        min_w1, max_w1 = wb[:, 0], wb[:, 1]
    else:
        min_w1, max_w1 = w1_bounds(x, y)

    degenerate = (y == 0.0) | (y == 1.0)
    grids = []
    for i in range(n_samp):
        if degenerate[i]:
            grids.append(np.array([NUDGE if y[i] == 0.0 else 1.0 - NUDGE]))
        else:
            grids.append(tomography_grid(min_w1[i], max_w1[i], n_step))

    n_grid = np.array([len(g) for g in grids], dtype=np.int32)
    max_grid = int(n_grid.max()) if n_samp > 0 else 1

    w1_grid = np.zeros((n_samp, max_grid))
    w2_grid = np.zeros((n_samp, max_grid))
    grid_mask = np.zeros((n_samp, max_grid), dtype=bool)
    for i, g in enumerate(grids):
        k = len(g)
        # Pad with the last valid point so padded entries stay inside (0, 1)
        w1_grid[i, :k] = g
        w1_grid[i, k:] = g[-1]
        if degenerate[i]:
            w2_grid[i, :] = w1_grid[i, :]
        else:
            w2_grid[i, :] = w2_from_w1(x[i], y[i], w1_grid[i, :])
        grid_mask[i, :k] = True

    # Starting latents: midpoint of the line for mixed units, known values elsewhere
    w_init = np.zeros((n_samp + n_x1 + n_x0 + n_survey, 2))
    mid = np.where(degenerate, w1_grid[:, 0], (min_w1 + max_w1) / 2)
    w_init[:n_samp, 0] = mid
    w_init[:n_samp, 1] = np.where(degenerate, mid, w2_from_w1(x, y, mid))
    start = n_samp
    w_init[start:start + n_x1, 0] = nudge(data.x1_w1)
    w_init[start:start + n_x1, 1] = 0.5
    start += n_x1
    w_init[start:start + n_x0, 0] = 0.5
    w_init[start:start + n_x0, 1] = nudge(data.x0_w2)
    start += n_x0
    if n_survey > 0:
        w_init[start:, :] = nudge(data.survey[:, :2])

    # Contextual covariate: X of each unit on the link scale
    x_all = np.concatenate([
        x,
        np.ones(n_x1),
        np.zeros(n_x0),
        data.survey[:, 2] if (context and n_survey > 0) else np.full(n_survey, 0.5),
    ])
    x_star = np.asarray(forward(jnp.asarray(nudge(x_all)), link)) if context else np.zeros_like(x_all)

    logger.debug(f"Built unit arrays: {n_samp} mixed, {n_x1} X=1, {n_x0} X=0, "
                 f"{n_survey} survey, max grid {max_grid}")

    return UnitArrays(
        x=jnp.asarray(x, dtype=float_dtype),
        y=jnp.asarray(y, dtype=float_dtype),
        min_w1=jnp.asarray(min_w1, dtype=float_dtype),
        max_w1=jnp.asarray(max_w1, dtype=float_dtype),
        w1_grid=jnp.asarray(w1_grid, dtype=float_dtype),
        w2_grid=jnp.asarray(w2_grid, dtype=float_dtype),
        grid_mask=jnp.asarray(grid_mask),
        n_grid=jnp.asarray(n_grid),
        x_star=jnp.asarray(x_star, dtype=float_dtype),
        w_init=jnp.asarray(w_init, dtype=float_dtype),
        n_samp=n_samp, n_x1=n_x1, n_x0=n_x0, n_survey=n_survey,
        max_grid=max_grid,
    )


def cell_bounds_2c(x, y):
    """
    Bounds for a 2xC table with row proportions X_j (summing to 1) and margin Y.

    W_j is bounded by [max(0, (X_j + Y - 1) / X_j), min(1, Y / X_j)]. The
    sampler works with U_j = W_j * X_j / Y, which lives on the simplex and is
    bounded by [max(0, Wmin_j * X_j / Y), min(1, Wmax_j * X_j / Y)].

    Args:
        x: (n, C) row proportions
        y: (n,) column margins

    Returns:
        (w_bounds, u_bounds): each (n, C, 2) with [..., 0] lower and [..., 1] upper
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)[:, None]
    with np.errstate(divide='ignore', invalid='ignore'):
        w_min = np.where(x > 0, np.maximum(0.0, (x + y - 1.0) / x), 0.0)
        w_max = np.where(x > 0, np.minimum(1.0, y / x), 1.0)
        min_u = np.where(y > 0, np.maximum(0.0, w_min * x / y), 0.0)
        max_u = np.where(y > 0, np.minimum(1.0, w_max * x / y), 1.0)
    return np.stack([w_min, w_max], axis=-1), np.stack([min_u, max_u], axis=-1)


def build_unit_arrays_2c(data, float_dtype=jnp.float64):
    """Build UnitArrays2C from an EcoData2C instance."""
    x = np.asarray(data.x, dtype=np.float64)
    y = np.asarray(data.y, dtype=np.float64)
    if data.w_bounds is not None:
        wb = np.asarray(data.w_bounds, dtype=np.float64)
        yy = y[:, None]
        min_u = np.maximum(0.0, wb[..., 0] * x / yy)
        max_u = np.minimum(1.0, wb[..., 1] * x / yy)
    else:
        _, ub = cell_bounds_2c(x, y)
        min_u, max_u = ub[..., 0], ub[..., 1]
    n_units, n_col = x.shape
    return UnitArrays2C(
        x=jnp.asarray(x, dtype=float_dtype),
        y=jnp.asarray(y, dtype=float_dtype),
        min_u=jnp.asarray(min_u, dtype=float_dtype),
        max_u=jnp.asarray(max_u, dtype=float_dtype),
        n_units=n_units, n_col=n_col,
    )
