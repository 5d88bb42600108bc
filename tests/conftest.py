"""
Pytest configuration and fixtures for mc_eigen tests.
"""

import numpy as np
import pytest

from mc_eigen.benchmarks import infinite_medium, pua_material
from mc_eigen.config import Settings
from mc_eigen.cross_sections import CrossSectionLibrary, CrossSectionTable
from mc_eigen.geometry import (
    BoundaryCondition,
    Cell,
    Geometry,
    Sphere,
    XPlane,
    YPlane,
    ZPlane,
)
from mc_eigen.particle import BoxSource


def reflective_box(half_width=5.0, material="fuel"):
    """Single-cell cube with reflective faces; returns (geometry, planes)."""
    planes = {}
    region = []
    for axis, plane in zip("xyz", (XPlane, YPlane, ZPlane)):
        lo = plane(-half_width, boundary=BoundaryCondition.REFLECTIVE, name=f"{axis}-")
        hi = plane(half_width, boundary=BoundaryCondition.REFLECTIVE, name=f"{axis}+")
        planes[f"{axis}-"], planes[f"{axis}+"] = lo, hi
        region.extend([+lo, -hi])
    return Geometry([Cell(region, material=material, name="box")]), planes


@pytest.fixture
def rng():
    """Seeded generator for tests that only need some random numbers."""
    return np.random.default_rng(12345)


@pytest.fixture
def pua_library():
    """Library holding the one-group PUa material under the key 'fuel'."""
    return CrossSectionLibrary({"fuel": pua_material()})


@pytest.fixture
def absorber_library():
    """Purely absorbing, non-multiplying material."""
    return CrossSectionLibrary({
        "absorber": CrossSectionTable.constant("absorber", scatter=0.2, absorption=0.3),
    })


@pytest.fixture
def box_geometry():
    geometry, _ = reflective_box()
    return geometry


@pytest.fixture
def bare_sphere_geometry():
    sphere = Sphere(r=5.0, boundary=BoundaryCondition.VACUUM, name="outer")
    return Geometry([Cell([-sphere], material="fuel", name="core")])


@pytest.fixture
def box_source():
    return BoxSource([-5.0] * 3, [5.0] * 3, energy=1.0e6)


@pytest.fixture
def small_settings():
    """Quick run parameters for functional tests."""
    return Settings(
        n_particles=200,
        n_inactive=3,
        n_active=5,
        seed=7,
        histories_per_task=50,
    )


@pytest.fixture
def small_infinite_model(small_settings):
    return infinite_medium(half_width=5.0, settings=small_settings)
