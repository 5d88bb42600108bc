"""
Continuous-Energy Monte Carlo k-Eigenvalue Package
==================================================

Monte Carlo neutron transport for the k-eigenvalue (criticality)
problem: neutron histories are tracked through a constructive-solid
geometry, fission neutrons are banked, and a power iteration over
generations converges the fission source and estimates k_eff.

Modules
-------
cross_sections
    Per-material energy-dependent macroscopic cross-section tables.
geometry
    CSG surfaces, cells and boundary conditions; point location and
    distance-to-boundary queries.
particle
    Particle state, fission bank, counter-based random streams, sources.
transport
    Single-history transport kernel and per-task history batches.
tallies
    Per-cell flux and reaction-rate tallies, k statistics.
entropy
    Shannon entropy of the fission source and convergence monitor.
eigenvalue
    Power-iteration solver and result container.
executor
    Serial and multiprocessing history executors.
exporter
    HDF5 / JSON output and failure payloads.
model
    Problem definition from plain data or JSON.
benchmarks
    Infinite-medium and bare-sphere verification problems.
"""

from .config import Settings
from .cross_sections import CrossSectionLibrary, CrossSectionTable, Reaction
from .eigenvalue import EigenvalueResult, EigenvalueSolver, GenerationReport, IterationPhase
from .exceptions import (
    ConfigurationError,
    DataError,
    GeometryError,
    LostParticleError,
    MCEigenError,
    RunFailedError,
    SourceConvergenceError,
)
from .geometry import (
    BoundaryCondition,
    Cell,
    Geometry,
    Plane,
    Sphere,
    XCylinder,
    XPlane,
    YCylinder,
    YPlane,
    ZCylinder,
    ZPlane,
)
from .model import Model, build_model, load_model
from .particle import BoxSource, PointSource

__version__ = "0.1.0"
