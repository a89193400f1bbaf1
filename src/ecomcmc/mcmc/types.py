"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the sweep engine:
- UnitArrays: Per-unit margins, bounds and tomography grids for 2x2 tables
- UnitArrays2C: Per-unit margins and simplex bounds for 2xC tables
- PriorParams: Normal/Inverse-Wishart and concentration prior hyperparameters
- RunParams: Immutable run parameters for JAX static arguments
- SweepState: The mutable chain state carried from sweep to sweep

Unit rows are always ordered as
    [mixed units | X=1 homogeneous | X=0 homogeneous | survey units]
so that slices of the latent matrix select a unit type.
"""

import jax
import jax.numpy as jnp
from dataclasses import dataclass
from typing import NamedTuple


@dataclass(frozen=True)
class UnitArrays:
    """
    Pre-computed per-unit arrays for 2x2 ecological tables.

    Built once at setup by bounds.build_unit_arrays and never modified.
    Registered as a JAX pytree: arrays are traced children, unit counts
    are static auxiliary data.

    Grids are padded to a common length ``max_grid`` so every unit has the
    same shape; ``grid_mask`` marks the valid points and ``n_grid`` counts them.
    """
    x: jnp.ndarray           # (n_samp,) row margin of mixed units
    y: jnp.ndarray           # (n_samp,) column margin of mixed units
    min_w1: jnp.ndarray      # (n_samp,) lower bound of W1
    max_w1: jnp.ndarray      # (n_samp,) upper bound of W1
    w1_grid: jnp.ndarray     # (n_samp, max_grid) candidate W1 on the tomography line
    w2_grid: jnp.ndarray     # (n_samp, max_grid) matching W2
    grid_mask: jnp.ndarray   # (n_samp, max_grid) valid grid points
    n_grid: jnp.ndarray      # (n_samp,) number of valid grid points
    x_star: jnp.ndarray      # (t_samp,) transformed contextual covariate
    w_init: jnp.ndarray      # (t_samp, 2) starting / known proportions

    # Metadata
    n_samp: int              # Mixed units
    n_x1: int                # X=1 units (W1 known)
    n_x0: int                # X=0 units (W2 known)
    n_survey: int            # Survey units (W1, W2 known)
    max_grid: int            # Padded grid length

    @property
    def t_samp(self) -> int:
        """Effective sample size over all unit types."""
        return self.n_samp + self.n_x1 + self.n_x0 + self.n_survey

    @property
    def n_recorded(self) -> int:
        """Units whose latents are stored in the draw history (survey units are fixed)."""
        return self.n_samp + self.n_x1 + self.n_x0


def _unit_arrays_flatten(ua):
    children = (
        ua.x, ua.y, ua.min_w1, ua.max_w1, ua.w1_grid, ua.w2_grid,
        ua.grid_mask, ua.n_grid, ua.x_star, ua.w_init,
    )
    aux_data = (ua.n_samp, ua.n_x1, ua.n_x0, ua.n_survey, ua.max_grid)
    return children, aux_data


def _unit_arrays_unflatten(aux_data, children):
    (x, y, min_w1, max_w1, w1_grid, w2_grid,
     grid_mask, n_grid, x_star, w_init) = children
    n_samp, n_x1, n_x0, n_survey, max_grid = aux_data
    return UnitArrays(
        x=x, y=y, min_w1=min_w1, max_w1=max_w1,
        w1_grid=w1_grid, w2_grid=w2_grid, grid_mask=grid_mask,
        n_grid=n_grid, x_star=x_star, w_init=w_init,
        n_samp=n_samp, n_x1=n_x1, n_x0=n_x0, n_survey=n_survey,
        max_grid=max_grid,
    )


jax.tree_util.register_pytree_node(
    UnitArrays,
    _unit_arrays_flatten,
    _unit_arrays_unflatten
)


@dataclass(frozen=True)
class UnitArrays2C:
    """
    Pre-computed per-unit arrays for 2xC ecological tables.

    The latent cell proportions W_ij are sampled through U_ij = W_ij * X_ij / Y_i,
    which lies on the unit simplex; ``min_u`` / ``max_u`` bound each U_ij.
    """
    x: jnp.ndarray       # (n_units, n_col) row proportions
    y: jnp.ndarray       # (n_units,) column margin
    min_u: jnp.ndarray   # (n_units, n_col)
    max_u: jnp.ndarray   # (n_units, n_col)

    n_units: int
    n_col: int

    @property
    def t_samp(self) -> int:
        return self.n_units

    @property
    def n_recorded(self) -> int:
        return self.n_units


jax.tree_util.register_pytree_node(
    UnitArrays2C,
    lambda ua: ((ua.x, ua.y, ua.min_u, ua.max_u), (ua.n_units, ua.n_col)),
    lambda aux, ch: UnitArrays2C(*ch, *aux),
)


@dataclass(frozen=True)
class PriorParams:
    """
    Prior hyperparameters, stored as arrays so changing them never recompiles.

    (mu, Sigma) ~ NIW(mu0, tau0, nu0, S0):
        Sigma ~ InvWishart(nu0, S0),  mu | Sigma ~ N(mu0, Sigma / tau0)
    alpha ~ Gamma(a0, rate=b0) for the Dirichlet process concentration.
    """
    mu0: jnp.ndarray     # (d,)
    S0: jnp.ndarray      # (d, d)
    nu0: jnp.ndarray     # ()
    tau0: jnp.ndarray    # ()
    a0: jnp.ndarray      # ()
    b0: jnp.ndarray      # ()


jax.tree_util.register_pytree_node(
    PriorParams,
    lambda p: ((p.mu0, p.S0, p.nu0, p.tau0, p.a0, p.b0), None),
    lambda _, ch: PriorParams(*ch),
)


@dataclass(frozen=True)
class RunParams:
    """
    Immutable run parameters for JAX static argument compatibility.

    Every flag here selects a code path at trace time, so the sweep kernel
    is compiled once per distinct RunParams.
    """
    MODEL: str
    LINK: int
    NDIM: int
    N_DRAWS: int
    BURN_IN: int
    THIN: int
    N_STORE: int
    CONTEXT: bool = False
    GRID: bool = True
    REJECT: bool = True
    UPDATE_ALPHA: bool = True
    PREDICT: bool = False
    PARAMETER: bool = True
    MAX_TRIES: int = 100_000


class SweepState(NamedTuple):
    """
    Chain state carried across sweeps.

    Population parameters live in an arena indexed by cluster id: unit i uses
    (mu[labels[i]], Sigma[labels[i]]). The parametric model keeps a single
    arena entry and all labels at 0; the Dirichlet process model keeps one
    slot per unit so a new cluster always finds a free slot.
    """
    w: jnp.ndarray        # (t_samp, n_col) latent proportions
    wstar: jnp.ndarray    # (t_samp, d) link-transformed latents (+ covariate)
    mu: jnp.ndarray       # (n_arena, d)
    Sigma: jnp.ndarray    # (n_arena, d, d)
    labels: jnp.ndarray   # (t_samp,) arena index per unit
    alpha: jnp.ndarray    # () concentration parameter
    n_star: jnp.ndarray   # () number of distinct clusters
    accepts: jnp.ndarray  # () cumulative Metropolis acceptances
    key: jnp.ndarray      # PRNG key
