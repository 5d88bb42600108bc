"""
Constructive-Solid Geometry for Monte Carlo Transport
=====================================================

The spatial domain is a set of cells, each the intersection of
half-spaces bounded by analytic surfaces (planes, spheres, cylinders).
Every surface carries a boundary condition:

  - TRANSMISSION : the particle continues into the neighbouring cell
  - VACUUM       : the particle leaks out of the problem
  - REFLECTIVE   : specular reflection, the particle stays in its cell

Storage
-------
Surfaces and cells live in flat lists addressed by integer index.  Cell
adjacency is a surface -> cells table built once when the geometry is
constructed; nothing is mutated during transport, so one ``Geometry``
is shared read-only by every worker.

Coordinate System
-----------------
Cartesian (x, y, z) in centimeters.

Half-space Convention
---------------------
A surface is a function f(x, y, z).  The negative half-space is f < 0,
the positive half-space is f >= 0.  ``-surface`` and ``+surface`` build
the corresponding ``Halfspace`` objects.
"""

import enum
import math
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .constants import BOUNDARY_NUDGE, DISTANCE_EPSILON, INFINITY, TIE_TOLERANCE
from .exceptions import GeometryError


class BoundaryCondition(enum.Enum):
    TRANSMISSION = "transmission"
    VACUUM = "vacuum"
    REFLECTIVE = "reflective"


# =============================================================================
# HELPER: QUADRATIC ROOTS
# =============================================================================

def _smallest_positive_root(a: float, k: float, c: float) -> float:
    """Smallest root > DISTANCE_EPSILON of a*t^2 + 2*k*t + c = 0.

    Returns inf if there is none (including a ray parallel to the axis
    of a cylinder, a == 0).
    """
    if a < 1.0e-30:
        return INFINITY
    disc = k * k - a * c
    if disc < 0.0:
        return INFINITY
    sqrt_disc = math.sqrt(disc)
    t1 = (-k - sqrt_disc) / a
    if t1 > DISTANCE_EPSILON:
        return t1
    t2 = (-k + sqrt_disc) / a
    if t2 > DISTANCE_EPSILON:
        return t2
    return INFINITY


# =============================================================================
# SURFACES
# =============================================================================

class Surface:
    """Analytic surface f(x, y, z) = 0.

    Parameters
    ----------
    boundary : BoundaryCondition or str
        Boundary condition applied when a particle reaches this surface.
    name : str, optional
        Label used in diagnostics.
    """

    def __init__(self, boundary=BoundaryCondition.TRANSMISSION, name: str = ""):
        self.boundary = BoundaryCondition(boundary)
        self.name = name

    def __neg__(self) -> "Halfspace":
        return Halfspace(self, -1)

    def __pos__(self) -> "Halfspace":
        return Halfspace(self, +1)

    def evaluate(self, p) -> float:
        raise NotImplementedError

    def distance(self, p, u) -> float:
        """Distance along u from p to the surface (smallest positive root)."""
        raise NotImplementedError

    def normal(self, p) -> np.ndarray:
        """Unit gradient of f at p (points towards the positive side)."""
        raise NotImplementedError

    def bounds(self, sense: int) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned box enclosing the half-space of the given sense."""
        return np.full(3, -INFINITY), np.full(3, INFINITY)

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"{type(self).__name__}{label}({self.boundary.value})"


class Plane(Surface):
    """General plane a*x + b*y + c*z = d."""

    def __init__(self, a: float, b: float, c: float, d: float, **kwargs):
        super().__init__(**kwargs)
        norm = math.sqrt(a * a + b * b + c * c)
        if norm == 0.0:
            raise GeometryError("Plane normal must be non-zero")
        self.n = np.array([a, b, c], dtype=np.float64) / norm
        self.d = d / norm

    def evaluate(self, p) -> float:
        n = self.n
        return n[0] * p[0] + n[1] * p[1] + n[2] * p[2] - self.d

    def distance(self, p, u) -> float:
        n = self.n
        denom = n[0] * u[0] + n[1] * u[1] + n[2] * u[2]
        if abs(denom) < 1.0e-15:
            return INFINITY
        t = -self.evaluate(p) / denom
        return t if t > DISTANCE_EPSILON else INFINITY

    def normal(self, p) -> np.ndarray:
        return self.n


class _AxisPlane(Plane):
    _axis = 0

    def __init__(self, x0: float, **kwargs):
        coefficients = [0.0, 0.0, 0.0]
        coefficients[self._axis] = 1.0
        super().__init__(*coefficients, x0, **kwargs)
        self.x0 = x0

    def bounds(self, sense):
        lower, upper = np.full(3, -INFINITY), np.full(3, INFINITY)
        if sense < 0:
            upper[self._axis] = self.x0
        else:
            lower[self._axis] = self.x0
        return lower, upper


class XPlane(_AxisPlane):
    _axis = 0


class YPlane(_AxisPlane):
    _axis = 1


class ZPlane(_AxisPlane):
    _axis = 2


class Sphere(Surface):
    """(x-x0)^2 + (y-y0)^2 + (z-z0)^2 - r^2 = 0."""

    def __init__(self, x0: float = 0.0, y0: float = 0.0, z0: float = 0.0,
                 r: float = 1.0, **kwargs):
        super().__init__(**kwargs)
        if not r > 0.0:
            raise GeometryError(f"Sphere radius must be positive, got {r}")
        self.center = np.array([x0, y0, z0], dtype=np.float64)
        self.r = float(r)

    def evaluate(self, p) -> float:
        x = p[0] - self.center[0]
        y = p[1] - self.center[1]
        z = p[2] - self.center[2]
        return x * x + y * y + z * z - self.r * self.r

    def distance(self, p, u) -> float:
        x = p[0] - self.center[0]
        y = p[1] - self.center[1]
        z = p[2] - self.center[2]
        k = x * u[0] + y * u[1] + z * u[2]
        return _smallest_positive_root(1.0, k, self.evaluate(p))

    def normal(self, p) -> np.ndarray:
        g = np.asarray(p, dtype=np.float64) - self.center
        norm = np.linalg.norm(g)
        return g / norm if norm > 0.0 else np.array([0.0, 0.0, 1.0])

    def bounds(self, sense):
        if sense < 0:
            return self.center - self.r, self.center + self.r
        return super().bounds(sense)


class _AxisCylinder(Surface):
    """Infinite cylinder parallel to a coordinate axis."""

    _axis = 2

    def __init__(self, c1: float = 0.0, c2: float = 0.0, r: float = 1.0, **kwargs):
        super().__init__(**kwargs)
        if not r > 0.0:
            raise GeometryError(f"Cylinder radius must be positive, got {r}")
        self._i, self._j = [k for k in range(3) if k != self._axis]
        self.c1 = float(c1)
        self.c2 = float(c2)
        self.r = float(r)

    def evaluate(self, p) -> float:
        a = p[self._i] - self.c1
        b = p[self._j] - self.c2
        return a * a + b * b - self.r * self.r

    def distance(self, p, u) -> float:
        a = p[self._i] - self.c1
        b = p[self._j] - self.c2
        ui, uj = u[self._i], u[self._j]
        return _smallest_positive_root(ui * ui + uj * uj, a * ui + b * uj,
                                       self.evaluate(p))

    def normal(self, p) -> np.ndarray:
        g = np.zeros(3)
        g[self._i] = p[self._i] - self.c1
        g[self._j] = p[self._j] - self.c2
        norm = np.linalg.norm(g)
        return g / norm if norm > 0.0 else g

    def bounds(self, sense):
        lower, upper = super().bounds(sense)
        if sense < 0:
            lower[self._i], upper[self._i] = self.c1 - self.r, self.c1 + self.r
            lower[self._j], upper[self._j] = self.c2 - self.r, self.c2 + self.r
        return lower, upper


class XCylinder(_AxisCylinder):
    _axis = 0

    def __init__(self, y0=0.0, z0=0.0, r=1.0, **kwargs):
        super().__init__(y0, z0, r, **kwargs)


class YCylinder(_AxisCylinder):
    _axis = 1

    def __init__(self, x0=0.0, z0=0.0, r=1.0, **kwargs):
        super().__init__(x0, z0, r, **kwargs)


class ZCylinder(_AxisCylinder):
    _axis = 2

    def __init__(self, x0=0.0, y0=0.0, r=1.0, **kwargs):
        super().__init__(x0, y0, r, **kwargs)


# =============================================================================
# REGIONS AND CELLS
# =============================================================================

class Halfspace(NamedTuple):
    surface: Surface
    sense: int

    def contains(self, p) -> bool:
        f = self.surface.evaluate(p)
        return f < 0.0 if self.sense < 0 else f >= 0.0


class Cell:
    """Intersection of half-spaces filled with one material.

    Parameters
    ----------
    region : iterable of Halfspace
        Half-spaces whose intersection is the cell.
    material : hashable or None
        Key into the cross-section library; None is a void cell.
    name : str, optional
        Label used in output.
    """

    def __init__(self, region: Iterable[Halfspace], material=None, name: str = ""):
        self.region: Tuple[Halfspace, ...] = tuple(region)
        if not self.region:
            raise GeometryError(f"Cell {name!r} has an empty region")
        self.material = material
        self.name = name

    def contains(self, p) -> bool:
        return all(h.contains(p) for h in self.region)

    def bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        lower, upper = np.full(3, -INFINITY), np.full(3, INFINITY)
        for surface, sense in self.region:
            lo, hi = surface.bounds(sense)
            lower = np.maximum(lower, lo)
            upper = np.minimum(upper, hi)
        return lower, upper

    def __repr__(self) -> str:
        return f"Cell({self.name!r}, material={self.material!r})"


class BoundaryHit(NamedTuple):
    """Result of a distance-to-boundary query.

    distance : float
        Distance to the nearest bounding surface [cm] (inf if none).
    surface : int or None
        Index of that surface.
    next_cell : int or None
        Cell on the far side for a transmission surface, the current
        cell for a reflective one, None for vacuum or when no cell
        could be found.
    boundary : BoundaryCondition or None
        Boundary condition of the surface.
    """
    distance: float
    surface: Optional[int]
    next_cell: Optional[int]
    boundary: Optional[BoundaryCondition]


# =============================================================================
# GEOMETRY
# =============================================================================

class Geometry:
    """Read-only arena of cells and surfaces.

    Parameters
    ----------
    cells : sequence of Cell
        All cells of the problem.  Cell ids are their indices.
    """

    def __init__(self, cells: Sequence[Cell]):
        self.cells: List[Cell] = list(cells)
        if not self.cells:
            raise GeometryError("Geometry needs at least one cell")

        # Flat surface arena
        self.surfaces: List[Surface] = []
        index: Dict[int, int] = {}
        self._regions: List[Tuple[Tuple[int, int], ...]] = []
        for cell in self.cells:
            entries = []
            for surface, sense in cell.region:
                if sense not in (-1, 1):
                    raise GeometryError(f"Invalid half-space sense {sense}")
                key = id(surface)
                if key not in index:
                    index[key] = len(self.surfaces)
                    self.surfaces.append(surface)
                entries.append((index[key], sense))
            self._regions.append(tuple(entries))

        # Neighbour table: surface -> cells bounded by it
        self._neighbors: List[Tuple[int, ...]] = [() for _ in self.surfaces]
        for cell_id, entries in enumerate(self._regions):
            for s, _ in entries:
                self._neighbors[s] = self._neighbors[s] + (cell_id,)

    @property
    def n_cells(self) -> int:
        return len(self.cells)

    def material(self, cell_id: int):
        return self.cells[cell_id].material

    def _contains(self, cell_id: int, p) -> bool:
        surfaces = self.surfaces
        for s, sense in self._regions[cell_id]:
            f = surfaces[s].evaluate(p)
            if (f >= 0.0) if sense < 0 else (f < 0.0):
                return False
        return True

    # ---- Point location ----
    def locate(self, point, candidates: Optional[Iterable[int]] = None) -> Optional[int]:
        """Return the id of the cell containing *point*, or None if outside.

        *candidates* are tried first (e.g. the neighbours of a crossed
        surface) before a full search.
        """
        if candidates is not None:
            for cell_id in candidates:
                if self._contains(cell_id, point):
                    return cell_id
        for cell_id in range(len(self.cells)):
            if self._contains(cell_id, point):
                return cell_id
        return None

    # ---- Ray tracing ----
    def distance_to_boundary(self, point, direction, cell: int) -> BoundaryHit:
        """Distance along *direction* to the nearest surface of *cell*.

        Each bounding surface is intersected in closed form and the
        minimum positive distance wins.  Hits within ``TIE_TOLERANCE``
        of each other (grazing a corner or edge) are resolved in favour
        of the surface whose cell-outward normal has the larger dot
        product with the direction.  A particle sitting on a bounding
        surface and moving out of the cell hits it at distance zero.
        """
        surfaces = self.surfaces
        best = INFINITY
        best_s = None
        best_dot = -INFINITY

        for s, sense in self._regions[cell]:
            surface = surfaces[s]
            # On (or just past) this surface and heading out of the cell
            if sense * surface.evaluate(point) <= DISTANCE_EPSILON and (
                -sense * float(np.dot(surface.normal(point), direction)) > 0.0
            ):
                d = 0.0
            else:
                d = surface.distance(point, direction)
            if d == INFINITY or d > best + TIE_TOLERANCE:
                continue
            hit = (point[0] + d * direction[0],
                   point[1] + d * direction[1],
                   point[2] + d * direction[2])
            # Cell-outward normal is -sense * grad(f)
            dot = -sense * float(np.dot(surface.normal(hit), direction))
            if d < best - TIE_TOLERANCE or dot > best_dot:
                best, best_s, best_dot = d, s, dot

        if best_s is None:
            return BoundaryHit(INFINITY, None, None, None)

        boundary = surfaces[best_s].boundary
        if boundary is BoundaryCondition.VACUUM:
            next_cell = None
        elif boundary is BoundaryCondition.REFLECTIVE:
            next_cell = cell
        else:
            step = best + BOUNDARY_NUDGE
            probe = np.array([point[0] + step * direction[0],
                              point[1] + step * direction[1],
                              point[2] + step * direction[2]])
            next_cell = self.locate(
                probe, (c for c in self._neighbors[best_s] if c != cell)
            )
        return BoundaryHit(best, best_s, next_cell, boundary)

    def reflect(self, direction, surface: int, point) -> np.ndarray:
        """Specular reflection of *direction* about the surface normal at *point*."""
        n = self.surfaces[surface].normal(point)
        u = np.asarray(direction, dtype=np.float64)
        reflected = u - 2.0 * float(np.dot(u, n)) * n
        return reflected / np.linalg.norm(reflected)

    # ---- Bounds ----
    def bounding_box(self, cells: Optional[Iterable[int]] = None
                     ) -> Tuple[np.ndarray, np.ndarray]:
        """Union of the axis-aligned boxes of *cells* (all cells by default)."""
        ids = range(len(self.cells)) if cells is None else list(cells)
        lower, upper = np.full(3, INFINITY), np.full(3, -INFINITY)
        for cell_id in ids:
            lo, hi = self.cells[cell_id].bounding_box()
            lower = np.minimum(lower, lo)
            upper = np.maximum(upper, hi)
        return lower, upper

    def __repr__(self) -> str:
        return f"Geometry({len(self.cells)} cells, {len(self.surfaces)} surfaces)"
