"""
Test cases for the Shannon entropy mesh and the convergence monitor.
"""

import math

import numpy as np
import pytest

from mc_eigen.benchmarks import infinite_medium
from mc_eigen.config import Settings
from mc_eigen.entropy import EntropyMesh, EntropyMonitor
from mc_eigen.exceptions import ConfigurationError
from mc_eigen.particle import PointSource


class TestEntropyMesh:

    def test_single_bin_is_zero(self):
        mesh = EntropyMesh([0, 0, 0], [1, 1, 1], (1, 1, 1))
        positions = np.random.default_rng(0).random((100, 3))
        assert mesh.entropy(positions) == 0.0

    def test_uniform_over_octants(self):
        mesh = EntropyMesh([-1, -1, -1], [1, 1, 1], (2, 2, 2))
        octants = np.array([[x, y, z] for x in (-0.5, 0.5)
                            for y in (-0.5, 0.5) for z in (-0.5, 0.5)])
        positions = np.repeat(octants, 10, axis=0)
        assert mesh.entropy(positions) == pytest.approx(math.log(8.0))

    def test_all_in_one_bin(self):
        mesh = EntropyMesh([-1, -1, -1], [1, 1, 1], (4, 4, 4))
        assert mesh.entropy(np.full((20, 3), 0.1)) == 0.0

    def test_no_sites(self):
        mesh = EntropyMesh([0, 0, 0], [1, 1, 1])
        assert mesh.entropy(np.empty((0, 3))) == 0.0

    def test_counts_shape(self):
        mesh = EntropyMesh([0, 0, 0], [1, 1, 1], (2, 3, 4))
        assert mesh.counts(np.array([[0.1, 0.1, 0.1]])).shape == (2, 3, 4)

    def test_invalid_box(self):
        with pytest.raises(ConfigurationError):
            EntropyMesh([0, 0, 0], [1, 0, 1])
        with pytest.raises(ConfigurationError):
            EntropyMesh([0, 0, -np.inf], [1, 1, 1])

    def test_for_problem_uses_fissile_cells(self, box_geometry, pua_library, box_source):
        mesh = EntropyMesh.for_problem(box_geometry, pua_library, box_source, (8, 8, 8))
        np.testing.assert_allclose(mesh.lower_left, [-5.0] * 3)
        np.testing.assert_allclose(mesh.upper_right, [5.0] * 3)

    def test_explicit_bounds(self, box_geometry, pua_library, box_source):
        mesh = EntropyMesh.for_problem(box_geometry, pua_library, box_source,
                                       (2, 2, 2), bounds=([0, 0, 0], [1, 2, 3]))
        np.testing.assert_allclose(mesh.upper_right, [1, 2, 3])


class TestEntropyMonitor:

    def test_needs_minimum_window(self):
        monitor = EntropyMonitor(tolerance=0.1, min_window=5)
        for _ in range(8):
            assert monitor.update(2.0) is False
        # ninth value: trailing half holds five entries
        assert monitor.update(2.0) is True
        assert monitor.std_history[:8] == [None] * 8
        assert monitor.std_history[8] == 0.0

    def test_noisy_source_not_converged(self):
        monitor = EntropyMonitor(tolerance=0.01, min_window=3)
        rng = np.random.default_rng(1)
        for h in 3.0 + 0.5 * rng.standard_normal(30):
            monitor.update(h)
        assert not monitor.converged

    def test_trailing_half_window(self):
        monitor = EntropyMonitor(tolerance=0.01, min_window=2)
        for h in (0.0, 5.0, 1.0, 1.0, 1.0, 1.0):
            monitor.update(h)
        # window is the last three values
        assert monitor.trailing_std() == 0.0
        assert monitor.converged


def test_entropy_spread_stabilizes_on_average():
    """Averaged over independent runs, the spread of H shrinks as the source settles.

    The spread is taken over a fixed five-generation window so that early
    and late values are directly comparable.
    """
    width = 5
    early, late = [], []
    for seed in range(3):
        settings = Settings(n_particles=150, n_inactive=40, n_active=1, seed=seed,
                            entropy_tolerance=1.0e-9, histories_per_task=100)
        model = infinite_medium(half_width=20.0, settings=settings)
        # Start from a point so the source has to spread out
        model.source = PointSource([0.0, 0.0, 0.0], energy=1.0e6)
        history = model.run().entropy_history
        early.append(np.std(history[1:1 + width], ddof=1))
        late.append(np.std(history[40 - width:40], ddof=1))
    assert np.mean(late) < np.mean(early)
