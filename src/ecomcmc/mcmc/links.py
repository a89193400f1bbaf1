"""
Link Functions for Latent Proportions.

Maps bounded proportions in (0, 1) to the unconstrained scale on which the
population model is Normal, and back:
- Link: IntEnum selecting logit, probit or complementary log-log
- forward: p -> z
- inverse: z -> p
- log_jacobian: log|dz/dp|, used to correct densities evaluated on the z scale

All functions dispatch on a static Link value, so they are safe to use
inside jitted code as long as the link is a Python constant at trace time.
"""

from enum import IntEnum

import jax.numpy as jnp
from jax.scipy.special import ndtr, ndtri, expit
from jax.scipy.stats import norm


# Proportions are clipped to [EPS, 1 - EPS] on the way in and on the way out
EPS = 1e-10


class Link(IntEnum):
    """Link function selector."""
    LOGIT = 1
    PROBIT = 2
    CLOGLOG = 3

    @classmethod
    def from_name(cls, name):
        """Resolve a link from its lowercase name ('logit', 'probit', 'cloglog')."""
        if isinstance(name, Link):
            return name
        try:
            return cls[str(name).upper()]
        except KeyError:
            valid = [m.name.lower() for m in cls]
            raise ValueError(f"Unknown link '{name}'. Valid links: {valid}") from None


def _clip(p):
    return jnp.clip(p, EPS, 1.0 - EPS)


def forward(p, link):
    """Transform proportions to the unconstrained scale."""
    p = _clip(p)
    if link == Link.LOGIT:
        return jnp.log(p) - jnp.log1p(-p)
    if link == Link.PROBIT:
        return ndtri(p)
    if link == Link.CLOGLOG:
        return jnp.log(-jnp.log1p(-p))
    raise ValueError(f"Unknown link: {link}")


def inverse(z, link):
    """
    Transform unconstrained values back to proportions.

    The result is clipped like the input of forward, so large |z| never
    yields exactly 0 or 1 (cloglog saturates in double precision above z ~ 3.6).
    """
    if link == Link.LOGIT:
        return _clip(expit(z))
    if link == Link.PROBIT:
        return _clip(ndtr(z))
    if link == Link.CLOGLOG:
        return _clip(-jnp.expm1(-jnp.exp(z)))
    raise ValueError(f"Unknown link: {link}")


def log_jacobian(p, link):
    """
    Elementwise log|dz/dp| of the forward transform.

    Summing over the last axis gives log|d(W1*, W2*)/d(W1, W2)| for a pair,
    since the transform acts on each coordinate independently.
    """
    p = _clip(p)
    if link == Link.LOGIT:
        return -jnp.log(p) - jnp.log1p(-p)
    if link == Link.PROBIT:
        return -norm.logpdf(ndtri(p))
    if link == Link.CLOGLOG:
        log1m = jnp.log1p(-p)
        return -log1m - jnp.log(-log1m)
    raise ValueError(f"Unknown link: {link}")
