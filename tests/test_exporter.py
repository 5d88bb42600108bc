"""
Test cases for HDF5 / JSON result export and failure payloads.
"""

import json
import math

import h5py
import numpy as np
import pytest

from mc_eigen.exceptions import ConfigurationError, LostParticleError, SourceConvergenceError
from mc_eigen.exporter import failure_payload, read_hdf5, write_hdf5, write_json


@pytest.fixture
def result(small_infinite_model):
    return small_infinite_model.run()


class TestHDF5:

    def test_layout(self, result, tmp_path):
        path = write_hdf5(result, tmp_path / "out" / "result.h5")
        with h5py.File(path, "r") as f:
            assert f.attrs["k_eff"] == result.k_eff
            assert f.attrs["status"] == "completed"
            assert "tallies/cell_ids" in f
            assert "tallies/flux" in f
            assert "tallies/fission_rate" in f
            assert "tallies/absorption_rate" in f
            assert "convergence/entropy_history" in f
            assert f["tallies/flux"].shape == (1,)

    def test_read_back(self, result, tmp_path):
        path = write_hdf5(result, tmp_path / "result.h5")
        loaded = read_hdf5(path)
        assert loaded.status == result.status
        assert loaded.k_eff == result.k_eff
        assert loaded.k_eff_stddev == result.k_eff_stddev
        np.testing.assert_array_equal(loaded.cell_ids, result.cell_ids)
        np.testing.assert_array_equal(loaded.flux, result.flux)
        np.testing.assert_array_equal(loaded.absorption_rate_std, result.absorption_rate_std)
        assert loaded.keff_history == result.keff_history
        assert loaded.entropy_history == result.entropy_history
        assert loaded.source_not_converged == result.source_not_converged
        assert loaded.convergence_generation == result.convergence_generation
        assert loaded.neutron_balance == result.neutron_balance
        assert loaded.cell_names == result.cell_names

    def test_nan_history_survives(self, result, tmp_path):
        result.keff_history[0] = float("nan")
        loaded = read_hdf5(write_hdf5(result, tmp_path / "nan.h5"))
        assert math.isnan(loaded.keff_history[0])


class TestJSON:

    def test_result_json(self, result, tmp_path):
        path = write_json(result, tmp_path / "result.json")
        with open(path) as f:
            data = json.load(f)
        assert data["status"] == "completed"
        assert data["k_eff"] == pytest.approx(result.k_eff)
        assert list(data["per_cell_fission_rate"]) == ["0"]
        assert len(data["entropy_history"]) == len(result.entropy_history)

    def test_undefined_k_written_as_null(self, result, tmp_path):
        result.keff_history[0] = float("nan")
        with open(write_json(result, tmp_path / "r.json")) as f:
            assert json.load(f)["keff_history"][0] is None


class TestFailurePayload:

    def test_lost_particles(self):
        error = LostParticleError(0.25, 1e-3, generation=4, last_completed_generation=3)
        payload = failure_payload(error)
        assert payload["status"] == "failed"
        assert payload["reason"] == "fatal: lost_particle_fraction_exceeded"
        assert payload["last_completed_generation"] == 3
        assert "generation 4" in payload["message"]

    def test_source_convergence(self):
        error = SourceConvergenceError(SourceConvergenceError.REASON, 9)
        assert failure_payload(error)["reason"] == "fatal: source_not_converged"

    def test_configuration_error(self):
        payload = failure_payload(ConfigurationError("n_particles must be >= 1"))
        assert payload["reason"] == "configuration_error"
        assert payload["last_completed_generation"] == -1
