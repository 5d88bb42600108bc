"""
Test cases for CSG surfaces, cells and ray tracing.
"""

import math

import numpy as np
import pytest

from mc_eigen.exceptions import GeometryError
from mc_eigen.geometry import (
    BoundaryCondition,
    Cell,
    Geometry,
    Plane,
    Sphere,
    XPlane,
    ZCylinder,
)
from mc_eigen.particle import FissionBank, Particle
from mc_eigen.tallies import Quantity, TallyAccumulator
from mc_eigen.transport import HistoryOutcome, transport_history

from conftest import reflective_box


class TestSurfaces:
    """Closed-form distances and normals."""

    def test_sphere_distance_from_center(self):
        sphere = Sphere(r=3.0)
        assert sphere.distance([0.0, 0.0, 0.0], [0.0, 0.0, 1.0]) == pytest.approx(3.0)

    def test_sphere_miss(self):
        sphere = Sphere(r=1.0)
        assert sphere.distance([0.0, 5.0, 0.0], [1.0, 0.0, 0.0]) == math.inf

    def test_sphere_from_outside(self):
        sphere = Sphere(r=1.0)
        assert sphere.distance([-5.0, 0.0, 0.0], [1.0, 0.0, 0.0]) == pytest.approx(4.0)

    def test_plane_behind_is_infinite(self):
        plane = XPlane(2.0)
        assert plane.distance([0.0, 0.0, 0.0], [-1.0, 0.0, 0.0]) == math.inf
        assert plane.distance([0.0, 0.0, 0.0], [1.0, 0.0, 0.0]) == pytest.approx(2.0)

    def test_general_plane_normalized(self):
        plane = Plane(1.0, 1.0, 0.0, 2.0)
        np.testing.assert_allclose(plane.normal(None), [1 / math.sqrt(2), 1 / math.sqrt(2), 0.0])
        assert plane.evaluate([1.0, 1.0, 0.0]) == pytest.approx(0.0)

    def test_cylinder_parallel_ray(self):
        cyl = ZCylinder(r=2.0)
        assert cyl.distance([0.0, 0.0, 0.0], [0.0, 0.0, 1.0]) == math.inf
        assert cyl.distance([0.0, 0.0, 0.0], [1.0, 0.0, 0.0]) == pytest.approx(2.0)

    def test_invalid_radius(self):
        with pytest.raises(GeometryError):
            Sphere(r=0.0)

    def test_halfspace_senses(self):
        sphere = Sphere(r=1.0)
        assert (-sphere).contains([0.0, 0.0, 0.0])
        assert not (+sphere).contains([0.0, 0.0, 0.0])
        assert (+sphere).contains([2.0, 0.0, 0.0])


class TestGeometry:
    """Point location, neighbours and boundary conditions."""

    @pytest.fixture
    def nested_spheres(self):
        inner = Sphere(r=1.0, name="inner")
        outer = Sphere(r=2.0, boundary=BoundaryCondition.VACUUM, name="outer")
        return Geometry([
            Cell([-inner], material="fuel", name="core"),
            Cell([+inner, -outer], material="reflector", name="shell"),
        ])

    def test_locate(self, nested_spheres):
        assert nested_spheres.locate([0.0, 0.0, 0.0]) == 0
        assert nested_spheres.locate([1.5, 0.0, 0.0]) == 1
        assert nested_spheres.locate([3.0, 0.0, 0.0]) is None

    def test_surface_arena_is_shared(self, nested_spheres):
        assert len(nested_spheres.surfaces) == 2
        assert nested_spheres.n_cells == 2

    def test_transmission_finds_neighbour(self, nested_spheres):
        hit = nested_spheres.distance_to_boundary(
            np.zeros(3), np.array([1.0, 0.0, 0.0]), 0
        )
        assert hit.distance == pytest.approx(1.0)
        assert hit.boundary is BoundaryCondition.TRANSMISSION
        assert hit.next_cell == 1

    def test_vacuum_has_no_next_cell(self, nested_spheres):
        hit = nested_spheres.distance_to_boundary(
            np.array([1.5, 0.0, 0.0]), np.array([1.0, 0.0, 0.0]), 1
        )
        assert hit.distance == pytest.approx(0.5)
        assert hit.boundary is BoundaryCondition.VACUUM
        assert hit.next_cell is None

    def test_shell_inner_surface(self, nested_spheres):
        hit = nested_spheres.distance_to_boundary(
            np.array([1.5, 0.0, 0.0]), np.array([-1.0, 0.0, 0.0]), 1
        )
        assert hit.distance == pytest.approx(0.5)
        assert hit.next_cell == 0

    def test_empty_geometry_rejected(self):
        with pytest.raises(GeometryError):
            Geometry([])

    def test_empty_region_rejected(self):
        with pytest.raises(GeometryError):
            Cell([])

    def test_bounding_box(self, nested_spheres):
        lower, upper = nested_spheres.bounding_box([0])
        np.testing.assert_allclose(lower, [-1.0, -1.0, -1.0])
        np.testing.assert_allclose(upper, [1.0, 1.0, 1.0])
        lower, upper = nested_spheres.bounding_box()
        np.testing.assert_allclose(upper, [2.0, 2.0, 2.0])


class TestReflection:
    """Reflective boundaries, corners and ties."""

    def test_reflective_hit_stays_in_cell(self):
        geometry, _ = reflective_box()
        hit = geometry.distance_to_boundary(np.zeros(3), np.array([1.0, 0.0, 0.0]), 0)
        assert hit.distance == pytest.approx(5.0)
        assert hit.boundary is BoundaryCondition.REFLECTIVE
        assert hit.next_cell == 0

    def test_specular_direction(self):
        geometry, planes = reflective_box()
        u = np.array([1.0, 1.0, 0.0]) / math.sqrt(2.0)
        hit = geometry.distance_to_boundary(np.array([0.0, -4.0, 0.0]), u, 0)
        assert geometry.surfaces[hit.surface] is planes["x+"]
        point = np.array([0.0, -4.0, 0.0]) + hit.distance * u
        reflected = geometry.reflect(u, hit.surface, point)
        np.testing.assert_allclose(reflected, [-u[0], u[1], 0.0], atol=1e-14)

    def test_tie_prefers_larger_outward_dot(self):
        geometry, planes = reflective_box()
        u = np.array([2.0, 1.0, 0.0]) / math.sqrt(5.0)
        # x+ and y+ are both 2*sqrt(5) away
        hit = geometry.distance_to_boundary(np.array([1.0, 3.0, 0.0]), u, 0)
        assert hit.distance == pytest.approx(2.0 * math.sqrt(5.0))
        assert geometry.surfaces[hit.surface] is planes["x+"]

    def test_corner_reflects_off_both_planes(self):
        geometry, planes = reflective_box()
        u = np.array([2.0, 1.0, 0.0]) / math.sqrt(5.0)
        point = np.array([1.0, 3.0, 0.0])
        hit = geometry.distance_to_boundary(point, u, 0)
        point = point + hit.distance * u
        u = geometry.reflect(u, hit.surface, point)

        # Sitting on y+ and heading out of the cell: hit at distance zero
        hit = geometry.distance_to_boundary(point, u, 0)
        assert hit.distance == 0.0
        assert geometry.surfaces[hit.surface] is planes["y+"]
        u = geometry.reflect(u, hit.surface, point)
        np.testing.assert_allclose(u, np.array([-2.0, -1.0, 0.0]) / math.sqrt(5.0),
                                   atol=1e-14)

    def test_round_trip_through_reflective_wall(self):
        """A particle sent into a reflective wall comes back mirrored, weight intact."""
        mirror = XPlane(5.0, boundary=BoundaryCondition.REFLECTIVE, name="mirror")
        back = XPlane(-5.0, boundary=BoundaryCondition.VACUUM, name="back")
        sides = [
            Plane(0.0, 1.0, 0.0, -5.0, boundary=BoundaryCondition.VACUUM),
            Plane(0.0, 1.0, 0.0, 5.0, boundary=BoundaryCondition.VACUUM),
        ]
        geometry = Geometry([
            Cell([+back, -mirror, +sides[0], -sides[1]], material=None, name="void")
        ])
        particle = Particle([0.0, 0.0, 0.0], [1.0, 0.0, 0.0], energy=1.0e6)
        tally = TallyAccumulator(1)
        outcome = transport_history(particle, geometry, library=None, tally=tally,
                                    fission_bank=FissionBank(10),
                                    rng=np.random.default_rng(0))

        assert outcome is HistoryOutcome.LEAKED
        assert particle.cell == 0
        np.testing.assert_allclose(particle.dir, [-1.0, 0.0, 0.0])
        np.testing.assert_allclose(particle.pos, [-5.0, 0.0, 0.0], atol=1e-12)
        assert particle.weight == 1.0
        # 5 cm out to the mirror plus 10 cm back across the cell
        assert tally.snapshot().values[0, Quantity.FLUX] == pytest.approx(15.0)
