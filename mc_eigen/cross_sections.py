"""
Continuous-Energy Cross-Section Provider
========================================

Tabulated macroscopic cross-sections on a monotonic energy grid, one
table per material.  Values between grid points are linearly
interpolated; energies outside the grid are clamped to the edge values
so that a rare extreme sample never aborts a long run.

Reaction Convention
-------------------
The collision partition is {scatter, absorption, fission}, where
*absorption* is non-fission absorption (radiative capture):

    Sigma_t >= Sigma_s + Sigma_a + Sigma_f

so the infinite-medium multiplication factor is

    k_inf = nu * Sigma_f / (Sigma_a + Sigma_f)

Tables are immutable after construction and hold no mutable lookup
state, so any number of workers can read them concurrently.

References
----------
- Lux & Koblinger, "Monte Carlo Particle Transport Methods," 1991
- Romano & Forget, "The OpenMC Monte Carlo Code," Ann. Nucl. Energy, 2013
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Dict, Hashable, NamedTuple, Optional

import numpy as np

from .constants import ENERGY_MAX, ENERGY_MIN, WATT_A, WATT_B
from .exceptions import DataError

_SUM_RTOL = 1.0e-9


def _on_grid(name: str, key: str, values, n: int) -> np.ndarray:
    """*values* as a float array of length *n* (scalars are broadcast)."""
    try:
        values = np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise DataError(f"{name}: {key} is not numeric ({exc})") from exc
    if values.ndim > 1 or (values.ndim == 1 and values.size != n):
        raise DataError(
            f"{name}: {key} has {values.size} values for an energy grid of {n} points"
        )
    return np.broadcast_to(values, (n,)).copy()


class Reaction(enum.Enum):
    TOTAL = 0
    SCATTER = 1
    ABSORPTION = 2
    FISSION = 3
    NU_BAR = 4


class MacroscopicXS(NamedTuple):
    """All reaction values at one energy [cm^-1, nu-bar dimensionless]."""
    total: float
    scatter: float
    absorption: float
    fission: float
    nu_bar: float


# =============================================================================
# CROSS-SECTION TABLE
# =============================================================================

@dataclass(frozen=True, eq=False)
class CrossSectionTable:
    """Macroscopic cross-sections of one material on an energy grid.

    Attributes
    ----------
    name : str
        Human-readable material name.
    energy : ndarray, shape (n,)
        Strictly increasing energy grid [eV].
    scatter, absorption, fission : ndarray, shape (n,)
        Macroscopic reaction cross-sections [cm^-1].
    nu_bar : ndarray, shape (n,)
        Average neutrons released per fission.
    total : ndarray, shape (n,), optional
        Total cross-section [cm^-1].  Defaults to the reaction sum.
    awr : float, optional
        Atomic weight ratio of the scattering target.  None leaves the
        energy unchanged on scatter.
    watt_a, watt_b : float
        Watt fission spectrum parameters [eV], [1/eV].
    """

    name: str
    energy: np.ndarray = field(repr=False)
    scatter: np.ndarray = field(repr=False)
    absorption: np.ndarray = field(repr=False)
    fission: np.ndarray = field(repr=False)
    nu_bar: np.ndarray = field(repr=False)
    total: Optional[np.ndarray] = field(default=None, repr=False)
    awr: Optional[float] = None
    watt_a: float = WATT_A
    watt_b: float = WATT_B

    def __post_init__(self):
        energy = np.array(self.energy, dtype=np.float64)
        n = energy.size
        if energy.ndim != 1 or n < 1:
            raise DataError(f"{self.name}: energy grid must be a non-empty 1-D array")
        if not np.all(np.isfinite(energy)) or np.any(energy <= 0.0):
            raise DataError(f"{self.name}: energies must be finite and positive")
        if np.any(np.diff(energy) <= 0.0):
            raise DataError(f"{self.name}: energy grid must be strictly increasing")

        arrays = {}
        for key in ("scatter", "absorption", "fission", "nu_bar"):
            values = _on_grid(self.name, key, getattr(self, key), n)
            if not np.all(np.isfinite(values)) or np.any(values < 0.0):
                raise DataError(f"{self.name}: {key} must be finite and non-negative")
            arrays[key] = values

        partial = arrays["scatter"] + arrays["absorption"] + arrays["fission"]
        if self.total is None:
            total = partial.copy()
        else:
            total = _on_grid(self.name, "total", self.total, n)
        if not np.all(np.isfinite(total)):
            raise DataError(f"{self.name}: total must be finite")
        bad = total < partial * (1.0 - _SUM_RTOL) - 1.0e-300
        if np.any(bad):
            i = int(np.argmax(bad))
            raise DataError(
                f"{self.name}: total ({total[i]:.6e}) < scatter + absorption + "
                f"fission ({partial[i]:.6e}) at E = {energy[i]:.6e} eV"
            )
        if self.awr is not None and not self.awr > 0.0:
            raise DataError(f"{self.name}: awr must be positive, got {self.awr}")
        if not (self.watt_a > 0.0 and self.watt_b >= 0.0):
            raise DataError(f"{self.name}: invalid Watt parameters")

        # Rows follow the Reaction enum order.
        values = np.vstack([
            total, arrays["scatter"], arrays["absorption"],
            arrays["fission"], arrays["nu_bar"],
        ])
        energy.setflags(write=False)
        values.setflags(write=False)
        object.__setattr__(self, "energy", energy)
        object.__setattr__(self, "total", values[0])
        object.__setattr__(self, "scatter", values[1])
        object.__setattr__(self, "absorption", values[2])
        object.__setattr__(self, "fission", values[3])
        object.__setattr__(self, "nu_bar", values[4])
        object.__setattr__(self, "_values", values)

    # ---- Construction helpers ----
    @classmethod
    def constant(cls, name: str, scatter: float, absorption: float,
                 fission: float = 0.0, nu_bar: float = 0.0,
                 total: Optional[float] = None, **kwargs) -> "CrossSectionTable":
        """Energy-independent table spanning the default energy window."""
        grid = np.array([ENERGY_MIN, ENERGY_MAX])
        return cls(
            name=name,
            energy=grid,
            scatter=np.full(2, scatter, dtype=np.float64),
            absorption=np.full(2, absorption, dtype=np.float64),
            fission=np.full(2, fission, dtype=np.float64),
            nu_bar=np.full(2, nu_bar, dtype=np.float64),
            total=None if total is None else np.full(2, total, dtype=np.float64),
            **kwargs,
        )

    # ---- Properties ----
    @property
    def is_fissile(self) -> bool:
        return bool(np.any((self.fission > 0.0) & (self.nu_bar > 0.0)))

    @property
    def energy_bounds(self):
        return float(self.energy[0]), float(self.energy[-1])

    def clamp_energy(self, energy: float) -> float:
        """*energy* limited to the tabulated grid."""
        return min(max(energy, float(self.energy[0])), float(self.energy[-1]))

    # ---- Interpolation ----
    def evaluate(self, energy: float) -> MacroscopicXS:
        """Interpolate every reaction at *energy* with one grid search.

        Energies below/above the grid are clamped to the first/last point.
        """
        grid = self.energy
        values = self._values
        if energy <= grid[0]:
            return MacroscopicXS(*values[:, 0].tolist())
        if energy >= grid[-1]:
            return MacroscopicXS(*values[:, -1].tolist())
        i = int(np.searchsorted(grid, energy, side="right")) - 1
        f = (energy - grid[i]) / (grid[i + 1] - grid[i])
        lo = values[:, i]
        return MacroscopicXS(*(lo + f * (values[:, i + 1] - lo)).tolist())

    def __call__(self, energy: float, reaction: Reaction) -> float:
        return self.evaluate(energy)[reaction.value]

    # ---- Secondary energy sampling ----
    def sample_fission_energy(self, rng: np.random.Generator) -> float:
        """Sample an emission energy [eV] from the Watt fission spectrum.

        Maxwellian rejection-free sampling followed by the Watt shift:
            w = -a (ln xi1 + ln xi2 cos^2(pi xi3 / 2))
            E = w + a^2 b / 4 + (2 xi4 - 1) sqrt(a^2 b w)
        """
        a, b = self.watt_a, self.watt_b
        xi1, xi2, xi3, xi4 = 1.0 - rng.random(4)
        c = math.cos(0.5 * math.pi * xi3)
        w = -a * (math.log(xi1) + math.log(xi2) * c * c)
        return w + 0.25 * a * a * b + (2.0 * xi4 - 1.0) * math.sqrt(a * a * b * w)

    def sample_scatter_energy(self, energy: float,
                              rng: np.random.Generator) -> float:
        """Outgoing energy for elastic scatter off a target at rest.

        E' is uniform on [alpha E, E] with alpha = ((A - 1) / (A + 1))^2,
        the isotropic centre-of-mass kernel.
        """
        if self.awr is None:
            return energy
        alpha = ((self.awr - 1.0) / (self.awr + 1.0)) ** 2
        return energy * (alpha + (1.0 - alpha) * rng.random())


# =============================================================================
# LIBRARY
# =============================================================================

class CrossSectionLibrary:
    """Material id -> CrossSectionTable mapping (read-only during a run)."""

    def __init__(self, tables: Optional[Dict[Hashable, CrossSectionTable]] = None):
        self._tables: Dict[Hashable, CrossSectionTable] = dict(tables or {})

    def __contains__(self, material) -> bool:
        return material in self._tables

    def __getitem__(self, material) -> CrossSectionTable:
        try:
            return self._tables[material]
        except KeyError:
            raise DataError(f"No cross-section data for material {material!r}") from None

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self):
        return iter(self._tables)

    def __repr__(self) -> str:
        return f"CrossSectionLibrary({sorted(map(str, self._tables))})"

    def add(self, material, table: CrossSectionTable) -> None:
        self._tables[material] = table

    def lookup(self, material, energy: float, reaction: Reaction) -> float:
        """Macroscopic cross-section (or nu-bar) of *reaction* at *energy*."""
        return self[material](energy, reaction)

    def is_fissile(self, material) -> bool:
        return material is not None and self[material].is_fissile
