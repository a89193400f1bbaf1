"""
Tests for burn-in / thinning control and draw storage.

Run with: pytest tests/test_recorder.py -v
"""

import numpy as np
import pytest

from ecomcmc.mcmc.recorder import n_stored, should_record, DrawRecorder


class TestStoredCount:
    """Number of recorded sweeps."""

    @pytest.mark.parametrize("n_draws,burn_in,thin,expected", [
        (5000, 0, 0, 5000),
        (1000, 100, 9, 90),
        (10, 10, 0, 0),
        (11, 0, 4, 2),
        (5, 8, 0, 0),
    ])
    def test_closed_form(self, n_draws, burn_in, thin, expected):
        assert n_stored(n_draws, burn_in, thin) == expected

    @pytest.mark.parametrize("n_draws,burn_in,thin", [
        (5000, 0, 0), (1000, 100, 9), (57, 13, 3), (20, 0, 6),
    ])
    def test_matches_sweep_by_sweep_count(self, n_draws, burn_in, thin):
        kept = [s for s in range(n_draws) if should_record(s, burn_in, thin)]
        assert len(kept) == n_stored(n_draws, burn_in, thin)
        assert all(s >= burn_in for s in kept)

    def test_recorded_sweeps_are_evenly_spaced(self):
        kept = [s for s in range(1000) if should_record(s, 100, 9)]
        assert kept[0] == 109
        assert set(np.diff(kept)) == {10}


class TestDrawRecorder:
    """Preallocated snapshot storage."""

    def test_records_in_order(self):
        rec = DrawRecorder({'W': (3, 2), 'alpha': ()}, capacity=4)
        for k in range(4):
            rec.record({'W': np.full((3, 2), k), 'alpha': 0.5 * k})
        out = rec.results()
        assert rec.full
        assert out['W'].shape == (4, 3, 2)
        np.testing.assert_array_equal(out['W'][:, 0, 0], [0, 1, 2, 3])
        np.testing.assert_array_equal(out['alpha'], [0.0, 0.5, 1.0, 1.5])

    def test_partial_results_are_truncated(self):
        rec = DrawRecorder({'mu': (2,)}, capacity=10)
        rec.record({'mu': np.ones(2)})
        rec.record({'mu': np.zeros(2)})
        assert rec.count == 2
        assert not rec.full
        assert rec.results()['mu'].shape == (2, 2)

    def test_full_recorder_rejects_more(self):
        rec = DrawRecorder({'mu': (2,)}, capacity=1)
        rec.record({'mu': np.ones(2)})
        with pytest.raises(IndexError, match="full"):
            rec.record({'mu': np.ones(2)})

    def test_missing_field_raises(self):
        rec = DrawRecorder({'mu': (2,), 'Sigma': (2, 2)}, capacity=2)
        with pytest.raises(KeyError, match="Sigma"):
            rec.record({'mu': np.ones(2)})
        assert rec.count == 0

    def test_zero_capacity(self):
        rec = DrawRecorder({'W': (5, 2)}, capacity=0)
        assert rec.full
        assert rec.results()['W'].shape == (0, 5, 2)
