"""
Verification Problems with Known Eigenvalues
============================================

1.  Infinite homogeneous medium: a cube with reflective faces filled with
    one energy-independent material.  Every neutron is eventually
    captured or causes fission, so

        k_inf = nu * Sigma_f / (Sigma_c + Sigma_f)

2.  PUa-1-0-SP: bare sphere of one-group plutonium at its critical
    radius (k_eff = 1), from the analytical benchmark suite for
    criticality-code verification.

References
----------
- Sood, Forster & Parsons, "Analytical Benchmark Test Set for Criticality
  Code Verification," LA-13511, Los Alamos, 1999
"""

from typing import Optional

from .config import Settings
from .cross_sections import CrossSectionLibrary, CrossSectionTable
from .geometry import BoundaryCondition, Cell, Geometry, Sphere, XPlane, YPlane, ZPlane
from .model import Model
from .particle import BoxSource

# =============================================================================
# PUa-1-0-SP one-group data [cm^-1]
# =============================================================================
PUA_SIGMA_T = 0.32640
PUA_SIGMA_F = 0.081600
PUA_SIGMA_C = 0.019584
PUA_SIGMA_S = 0.225216
PUA_NU = 3.24
PUA_CRITICAL_RADIUS = 6.082547     # cm  (1.985336 mean free paths)
PUA_K_INF = PUA_NU * PUA_SIGMA_F / (PUA_SIGMA_F + PUA_SIGMA_C)

SOURCE_ENERGY = 1.0e6              # eV; one-group data is energy independent


def pua_material() -> CrossSectionTable:
    return CrossSectionTable.constant(
        "PUa", scatter=PUA_SIGMA_S, absorption=PUA_SIGMA_C,
        fission=PUA_SIGMA_F, nu_bar=PUA_NU, total=PUA_SIGMA_T,
    )


def k_infinity(absorption: float, fission: float, nu_bar: float) -> float:
    """Analytic infinite-medium multiplication factor."""
    return nu_bar * fission / (absorption + fission)


def infinite_medium(
    scatter: float = PUA_SIGMA_S,
    absorption: float = PUA_SIGMA_C,
    fission: float = PUA_SIGMA_F,
    nu_bar: float = PUA_NU,
    half_width: float = 10.0,
    settings: Optional[Settings] = None,
) -> Model:
    """Reflective cube of side ``2 * half_width`` [cm] filled with one material."""
    boundary = BoundaryCondition.REFLECTIVE
    region = []
    for plane in (XPlane, YPlane, ZPlane):
        region.append(+plane(-half_width, boundary=boundary, name=f"{plane.__name__}-"))
        region.append(-plane(half_width, boundary=boundary, name=f"{plane.__name__}+"))
    geometry = Geometry([Cell(region, material="medium", name="medium")])

    library = CrossSectionLibrary({
        "medium": CrossSectionTable.constant(
            "medium", scatter=scatter, absorption=absorption,
            fission=fission, nu_bar=nu_bar,
        )
    })
    source = BoxSource([-half_width] * 3, [half_width] * 3, energy=SOURCE_ENERGY)
    return Model(geometry, library, source, settings or Settings())


def bare_sphere(radius: float = PUA_CRITICAL_RADIUS,
                settings: Optional[Settings] = None) -> Model:
    """PUa-1-0-SP bare sphere with a vacuum boundary."""
    sphere = Sphere(r=radius, boundary=BoundaryCondition.VACUUM, name="outer")
    geometry = Geometry([Cell([-sphere], material="PUa", name="core")])
    library = CrossSectionLibrary({"PUa": pua_material()})
    source = BoxSource([-radius] * 3, [radius] * 3, energy=SOURCE_ENERGY)
    return Model(geometry, library, source, settings or Settings())


BENCHMARKS = {
    "infinite-medium": infinite_medium,
    "bare-sphere": bare_sphere,
}

EXPECTED_KEFF = {
    "infinite-medium": PUA_K_INF,
    "bare-sphere": 1.0,
}
