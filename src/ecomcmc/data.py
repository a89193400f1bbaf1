"""
Input Data Containers.

- EcoData: Margins of 2x2 tables split by unit type
- EcoData.from_margins: Build EcoData from raw margins, detecting homogeneous units
- EcoData2C: Margins of 2xC tables

Unit types for 2x2 tables:
    mixed   0 < X < 1, both W1 and W2 unknown
    X=1     W1 = Y is known, W2 is unknown
    X=0     W2 = Y is known, W1 is unknown
    survey  both W1 and W2 are known
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class EcoData:
    """
    Observed margins of 2x2 tables, already separated by unit type.

    Attributes:
        x, y: Margins of the mixed units
        n: Optional unit sizes, passed through to the results
        x1_w1: Known W1 of X=1 units
        x0_w2: Known W2 of X=0 units
        survey: (s, 2) known (W1, W2); (s, 3) with X as third column when the
            contextual covariate is used
        w1_bounds: Optional precomputed (n_samp, 2) bounds of W1
        order: Optional permutation mapping recorded units back to input order
    """
    x: np.ndarray
    y: np.ndarray
    n: Optional[np.ndarray] = None
    x1_w1: np.ndarray = None
    x0_w2: np.ndarray = None
    survey: np.ndarray = None
    w1_bounds: Optional[np.ndarray] = None
    order: Optional[np.ndarray] = None

    def __post_init__(self):
        # Normalize optional inputs to empty float arrays
        object.__setattr__(self, 'x', np.asarray(self.x, dtype=np.float64).ravel())
        object.__setattr__(self, 'y', np.asarray(self.y, dtype=np.float64).ravel())
        for name in ('x1_w1', 'x0_w2'):
            value = getattr(self, name)
            value = np.zeros(0) if value is None else np.asarray(value, dtype=np.float64).ravel()
            object.__setattr__(self, name, value)
        survey = self.survey
        survey = np.zeros((0, 2)) if survey is None else np.atleast_2d(np.asarray(survey, dtype=np.float64))
        object.__setattr__(self, 'survey', survey)

    @property
    def n_samp(self):
        return self.x.shape[0]

    @property
    def t_samp(self):
        return self.n_samp + len(self.x1_w1) + len(self.x0_w2) + self.survey.shape[0]

    @classmethod
    def from_margins(cls, x, y, n=None, supplement=None):
        """
        Split raw margins into mixed and homogeneous units.

        Units with X == 1 have W1 = Y, units with X == 0 have W2 = Y. The
        remaining units are mixed. ``order`` lists the input index of every
        recorded unit in recorded order [mixed | X=1 | X=0].

        Args:
            x, y: Margins of all units
            n: Optional unit sizes (kept in input order)
            supplement: Optional survey matrix of known (W1, W2[, X])

        Returns:
            EcoData
        """
        x = np.asarray(x, dtype=np.float64).ravel()
        y = np.asarray(y, dtype=np.float64).ravel()
        if x.shape != y.shape:
            raise ValueError(f"X and Y must have the same length, got {x.shape[0]} and {y.shape[0]}")

        is_x1 = x == 1.0
        is_x0 = x == 0.0
        mixed = ~(is_x1 | is_x0)
        idx = np.arange(x.shape[0])
        order = np.concatenate([idx[mixed], idx[is_x1], idx[is_x0]])

        return cls(
            x=x[mixed],
            y=y[mixed],
            n=None if n is None else np.asarray(n),
            x1_w1=y[is_x1],
            x0_w2=y[is_x0],
            survey=supplement,
            order=order,
        )


@dataclass(frozen=True)
class EcoData2C:
    """
    Observed margins of 2xC tables.

    Attributes:
        x: (n, C) row proportions, each row summing to 1
        y: (n,) column margins
        w_bounds: Optional precomputed (n, C, 2) bounds on W
    """
    x: np.ndarray
    y: np.ndarray
    w_bounds: Optional[np.ndarray] = None

    def __post_init__(self):
        object.__setattr__(self, 'x', np.atleast_2d(np.asarray(self.x, dtype=np.float64)))
        object.__setattr__(self, 'y', np.asarray(self.y, dtype=np.float64).ravel())

    @property
    def n_samp(self):
        return self.x.shape[0]

    @property
    def n_col(self):
        return self.x.shape[1]
