"""
Burn-in / Thinning Control and Draw Storage.

- n_stored: Number of sweeps that will be recorded
- should_record: Whether a given sweep is recorded
- DrawRecorder: Preallocated host-side storage for recorded snapshots

Sweeps are numbered from 0. After ``burn_in`` sweeps every (thin + 1)-th
sweep is kept, so exactly (n_draws - burn_in) // (thin + 1) snapshots are
stored.
"""

import numpy as np
from typing import Dict, Any


def n_stored(n_draws: int, burn_in: int, thin: int) -> int:
    """Total number of recorded sweeps, known before the run starts."""
    return max(0, (n_draws - burn_in) // (thin + 1))


def should_record(sweep: int, burn_in: int, thin: int) -> bool:
    """True when ``sweep`` (0-based) is one of the recorded sweeps."""
    return sweep >= burn_in and (sweep - burn_in + 1) % (thin + 1) == 0


class DrawRecorder:
    """
    Append-only store of recorded sweep snapshots.

    Every field is a NumPy array allocated at construction with the final
    number of stored sweeps as leading axis. ``record`` copies one snapshot
    into the next free row; rows are never modified afterwards.

    Args:
        shapes: Dict mapping field name to the per-snapshot shape
        capacity: Number of snapshots (n_stored)
    """

    def __init__(self, shapes: Dict[str, tuple], capacity: int):
        self.capacity = capacity
        self.count = 0
        self._store = {
            name: np.empty((capacity,) + tuple(shape), dtype=np.float64)
            for name, shape in shapes.items()
        }

    @property
    def full(self) -> bool:
        return self.count >= self.capacity

    def record(self, snapshot: Dict[str, Any]):
        """Store one snapshot; keys must match the fields given at construction."""
        if self.full:
            raise IndexError(f"DrawRecorder is full ({self.capacity} snapshots)")
        missing = set(self._store) - set(snapshot)
        if missing:
            raise KeyError(f"Snapshot is missing fields: {sorted(missing)}")
        for name, arr in self._store.items():
            arr[self.count] = np.asarray(snapshot[name])
        self.count += 1

    def results(self) -> Dict[str, np.ndarray]:
        """Recorded draws, truncated to the filled prefix."""
        return {name: arr[:self.count] for name, arr in self._store.items()}
