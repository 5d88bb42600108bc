"""
Test cases for run settings.
"""

import pytest

from mc_eigen.config import Settings
from mc_eigen.exceptions import ConfigurationError


class TestSettings:

    def test_defaults_are_valid(self):
        settings = Settings().validate()
        assert settings.n_generations == settings.n_inactive + settings.n_active
        assert settings.bank_capacity == 5 * settings.n_particles

    @pytest.mark.parametrize("field, value", [
        ("n_particles", 0),
        ("n_active", 0),
        ("n_inactive", -1),
        ("n_workers", 0),
        ("histories_per_task", 0),
        ("entropy_tolerance", 0.0),
        ("entropy_tolerance", float("nan")),
        ("max_lost_particle_fraction", 1.5),
        ("bank_capacity_factor", 0.5),
        ("entropy_mesh_shape", (8, 8)),
        ("n_particles", 10.5),
        ("n_particles", True),
    ])
    def test_rejects_non_physical(self, field, value):
        with pytest.raises(ConfigurationError):
            Settings(**{field: value}).validate()

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            Settings(n_particles=0).validate()

    def test_from_dict(self):
        settings = Settings.from_dict({
            "n_particles": 500,
            "entropy_mesh_shape": [4, 4, 2],
            "entropy_mesh_bounds": [[0, 0, 0], [1, 1, 1]],
        })
        assert settings.n_particles == 500
        assert settings.entropy_mesh_shape == (4, 4, 2)
        assert settings.entropy_mesh_bounds == ((0, 0, 0), (1, 1, 1))

    def test_from_dict_rejects_unknown(self):
        with pytest.raises(ConfigurationError):
            Settings.from_dict({"particles": 10})

    def test_round_trip(self):
        settings = Settings(n_particles=123, seed=9)
        assert Settings.from_dict(settings.to_dict()) == settings

    def test_bad_mesh_bounds(self):
        with pytest.raises(ConfigurationError):
            Settings(entropy_mesh_bounds=((0, 0, 0), (1, -1, 1))).validate()
