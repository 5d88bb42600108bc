"""
Test cases for building models from plain data and JSON files.
"""

import json

import pytest

from mc_eigen.config import Settings
from mc_eigen.exceptions import ConfigurationError, GeometryError
from mc_eigen.geometry import BoundaryCondition
from mc_eigen.model import build_model, load_model
from mc_eigen.particle import BoxSource, PointSource


def sphere_in_shell():
    return {
        "surfaces": {
            "core": {"type": "sphere", "r": 4.0},
            "outer": {"type": "sphere", "r": 6.0, "boundary": "vacuum"},
        },
        "materials": {
            "fuel": {"scatter": 0.225216, "absorption": 0.019584,
                     "fission": 0.0816, "nu_bar": 3.24},
            "water": {"energy": [1.0e-5, 1.0, 2.0e7],
                      "scatter": [2.0, 1.5, 0.5],
                      "absorption": [0.02, 0.01, 0.0],
                      "fission": [0.0, 0.0, 0.0],
                      "nu_bar": [0.0, 0.0, 0.0],
                      "awr": 1.0},
        },
        "cells": [
            {"name": "core", "region": ["-core"], "material": "fuel"},
            {"name": "reflector", "region": ["+core", "-outer"], "material": "water"},
        ],
        "source": {"type": "box", "lower_left": [-4, -4, -4], "upper_right": [4, 4, 4]},
        "settings": {"n_particles": 100, "n_inactive": 2, "n_active": 3, "seed": 5},
    }


class TestBuildModel:

    def test_full_model(self):
        model = build_model(sphere_in_shell())
        assert model.geometry.n_cells == 2
        assert model.geometry.cells[1].name == "reflector"
        assert model.geometry.surfaces[1].boundary is BoundaryCondition.VACUUM
        assert model.library.is_fissile("fuel")
        assert not model.library.is_fissile("water")
        assert model.library["water"].awr == 1.0
        assert isinstance(model.source, BoxSource)
        assert model.settings.n_particles == 100

    def test_settings_override(self):
        model = build_model(sphere_in_shell(), settings=Settings(n_particles=7))
        assert model.settings.n_particles == 7

    def test_model_runs(self):
        result = build_model(sphere_in_shell()).run()
        assert result.status == "completed"
        assert len(result.flux) == 2
        assert result.fission_rate[1] == 0.0
        assert result.flux[1] > 0.0

    def test_point_source(self):
        data = sphere_in_shell()
        data["source"] = {"type": "point", "position": [0, 0, 0], "energy": 2.0e6}
        assert isinstance(build_model(data).source, PointSource)

    @pytest.mark.parametrize("section", ["surfaces", "materials", "cells", "source"])
    def test_missing_section(self, section):
        data = sphere_in_shell()
        del data[section]
        with pytest.raises(ConfigurationError):
            build_model(data)

    def test_unknown_surface_type(self):
        data = sphere_in_shell()
        data["surfaces"]["core"]["type"] = "torus"
        with pytest.raises(GeometryError):
            build_model(data)

    def test_unknown_surface_reference(self):
        data = sphere_in_shell()
        data["cells"][0]["region"] = ["-nothing"]
        with pytest.raises(GeometryError):
            build_model(data)

    def test_region_needs_sign(self):
        data = sphere_in_shell()
        data["cells"][0]["region"] = ["core"]
        with pytest.raises(GeometryError):
            build_model(data)

    def test_unknown_material(self):
        data = sphere_in_shell()
        data["cells"][1]["material"] = "lead"
        with pytest.raises(ConfigurationError):
            build_model(data)

    def test_bad_boundary(self):
        data = sphere_in_shell()
        data["surfaces"]["outer"]["boundary"] = "periodic"
        with pytest.raises(GeometryError):
            build_model(data)

    def test_bad_material_field(self):
        data = sphere_in_shell()
        data["materials"]["fuel"]["density"] = 19.8
        with pytest.raises(ConfigurationError):
            build_model(data)

    def test_unknown_setting(self):
        data = sphere_in_shell()
        data["settings"]["n_batches"] = 10
        with pytest.raises(ConfigurationError):
            build_model(data)

    def test_non_physical_setting(self):
        data = sphere_in_shell()
        data["settings"]["n_particles"] = 0
        with pytest.raises(ConfigurationError):
            build_model(data)


class TestLoadModel:

    def test_load_json(self, tmp_path):
        path = tmp_path / "problem.json"
        path.write_text(json.dumps(sphere_in_shell()))
        model = load_model(path)
        assert model.geometry.n_cells == 2

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_model(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot read"):
            load_model(tmp_path / "nope.json")

    def test_mismatched_material_arrays(self):
        data = sphere_in_shell()
        data["materials"]["water"]["scatter"] = [2.0, 1.5]
        with pytest.raises(ConfigurationError):
            build_model(data)
