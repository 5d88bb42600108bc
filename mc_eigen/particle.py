"""
Particle State, Fission Bank, Random Streams and Sources
========================================================

Per-history state for continuous-energy Monte Carlo transport and the
containers that move fission neutrons between generations.

Random Streams
--------------
Each history draws from its own Philox (counter-based) stream keyed by
(seed, stream id, generation, history).  The stream is a pure function
of those integers, so a history sees the same random numbers no matter
which worker runs it or in what order.

Fission Bank Overflow
---------------------
A ``FissionBank`` holds at most ``capacity`` sites.  Sites offered after
the bank is full are dropped but still counted in ``n_produced``, which
is what the eigenvalue estimate uses.  The next generation is drawn
from the kept sites at unit weight, so dropping only thins the pool the
resampler draws from (capped-with-reweighting).  History order is
random after resampling, so the dropped tail carries no spatial bias.

References
----------
- Salmon et al., "Parallel Random Numbers: As Easy as 1, 2, 3," SC11 (Philox)
- Lux & Koblinger, "Monte Carlo Particle Transport Methods," 1991
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .constants import HISTORY_STREAM, RESAMPLE_STREAM, SOURCE_STREAM, TWO_PI
from .exceptions import ConfigurationError


# ===================================================================
# Random streams
# ===================================================================
def random_stream(seed: int, stream: int, *key: int) -> np.random.Generator:
    """Independent Philox generator for (seed, stream, *key)."""
    sequence = np.random.SeedSequence(seed, spawn_key=(stream,) + tuple(key))
    return np.random.Generator(np.random.Philox(sequence))


def history_stream(seed: int, generation: int, history: int) -> np.random.Generator:
    """Random stream of one particle history."""
    return random_stream(seed, HISTORY_STREAM, generation, history)


def resample_stream(seed: int, generation: int) -> np.random.Generator:
    """Random stream used to resample the fission bank after *generation*."""
    return random_stream(seed, RESAMPLE_STREAM, generation)


def source_stream(seed: int, generation: int, index: int) -> np.random.Generator:
    """Random stream of the *index*-th external source site."""
    return random_stream(seed, SOURCE_STREAM, generation, index)


def sample_isotropic_direction(rng: np.random.Generator) -> np.ndarray:
    """Return a random unit vector sampled uniformly on the unit sphere.

    mu  = 2*xi_1 - 1, phi = 2*pi*xi_2,
    Omega = (sqrt(1-mu^2) cos(phi), sqrt(1-mu^2) sin(phi), mu)
    """
    xi = rng.random(2)
    mu = 2.0 * xi[0] - 1.0
    phi = TWO_PI * xi[1]
    sin_theta = math.sqrt(max(1.0 - mu * mu, 0.0))
    return np.array([sin_theta * math.cos(phi), sin_theta * math.sin(phi), mu])


# ===================================================================
# Particle
# ===================================================================
class Particle:
    """Representation of a single Monte Carlo neutron history.

    Attributes
    ----------
    pos : np.ndarray
        Position vector [x, y, z] in cm.
    dir : np.ndarray
        Unit direction vector.
    energy : float
        Kinetic energy [eV].
    weight : float
        Statistical weight.
    cell : int or None
        Current cell id, None when outside the geometry.
    alive : bool
        ``False`` once absorbed, fissioned, leaked or lost.
    n_collisions : int
        Collisions suffered in this history.
    """

    __slots__ = ("pos", "dir", "energy", "weight", "cell", "alive", "n_collisions")

    def __init__(self, position, direction, energy: float, weight: float = 1.0,
                 cell: Optional[int] = None) -> None:
        self.pos = np.array(position, dtype=np.float64)
        u = np.array(direction, dtype=np.float64)
        norm = float(np.linalg.norm(u))
        self.dir = u / norm if norm > 0.0 else u
        self.energy = float(energy)
        self.weight = float(weight)
        self.cell = cell
        self.alive = True
        self.n_collisions = 0

    def __repr__(self) -> str:
        status = "alive" if self.alive else "dead"
        return (
            f"Particle(E={self.energy:.4e} eV, w={self.weight:.4e}, "
            f"cell={self.cell}, coll={self.n_collisions}, {status})"
        )

    def move(self, distance: float) -> None:
        """Advance position along current direction by *distance* (cm)."""
        self.pos += distance * self.dir

    def kill(self) -> None:
        self.alive = False

    def is_finite(self) -> bool:
        return (
            math.isfinite(self.energy)
            and math.isfinite(self.weight)
            and bool(np.all(np.isfinite(self.pos)))
            and bool(np.all(np.isfinite(self.dir)))
        )


# ===================================================================
# Fission sites and bank
# ===================================================================
@dataclass(frozen=True)
class FissionSite:
    """Birth site of a fission neutron: position [cm] and energy [eV]."""
    position: Tuple[float, float, float]
    energy: float


class FissionBank:
    """Append-only, capacity-bounded collection of fission sites.

    Parameters
    ----------
    capacity : int
        Maximum number of stored sites.
    """

    def __init__(self, capacity: int):
        self.capacity = int(capacity)
        self.sites: List[FissionSite] = []
        self.n_produced = 0

    def __len__(self) -> int:
        return len(self.sites)

    def __iter__(self):
        return iter(self.sites)

    @property
    def n_dropped(self) -> int:
        return self.n_produced - len(self.sites)

    def add(self, site: FissionSite) -> None:
        self.n_produced += 1
        if len(self.sites) < self.capacity:
            self.sites.append(site)

    def extend(self, sites: Iterable[FissionSite], n_produced: Optional[int] = None) -> None:
        """Append *sites* in order; *n_produced* counts sites dropped upstream."""
        sites = list(sites)
        room = max(self.capacity - len(self.sites), 0)
        self.sites.extend(sites[:room])
        self.n_produced += len(sites) if n_produced is None else n_produced

    def clear(self) -> None:
        self.sites.clear()
        self.n_produced = 0

    def positions(self) -> np.ndarray:
        if not self.sites:
            return np.empty((0, 3))
        return np.array([s.position for s in self.sites], dtype=np.float64)

    def resample(self, n_target: int, rng: np.random.Generator) -> List[FissionSite]:
        """Draw exactly *n_target* source sites for the next generation.

        Too many sites: random subset without replacement (truncation).
        Too few: every site once plus the shortfall drawn with replacement.
        """
        n = len(self.sites)
        if n == 0:
            return []
        if n >= n_target:
            indices = np.sort(rng.choice(n, size=n_target, replace=False))
        else:
            extra = rng.integers(0, n, size=n_target - n)
            indices = np.concatenate([np.arange(n), extra])
        return [self.sites[i] for i in indices]


# ===================================================================
# External sources
# ===================================================================
class Source:
    """Initial (external) neutron source.

    Parameters
    ----------
    energy : float or None
        Fixed birth energy [eV]; None samples the Watt spectrum of the
        material at the birth site.
    """

    def __init__(self, energy: Optional[float] = None):
        if energy is not None and not (energy > 0.0 and math.isfinite(energy)):
            raise ConfigurationError(f"Source energy must be positive, got {energy}")
        self.energy = energy

    def sample_position(self, rng: np.random.Generator) -> np.ndarray:
        raise NotImplementedError

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def sample(self, n: int, geometry, library, seed: int, generation: int = 0,
               only_fissile: bool = True, max_attempts: int = 10_000
               ) -> List[FissionSite]:
        """Sample *n* source sites inside the geometry.

        Rejection sampling (as in sampling a position inside the fuel):
        points outside the geometry, or outside fissile cells when
        *only_fissile*, are redrawn.

        Raises
        ------
        ConfigurationError
            If no acceptable point is found within *max_attempts* draws.
        """
        sites = []
        for i in range(n):
            rng = source_stream(seed, generation, i)
            for _ in range(max_attempts):
                pos = self.sample_position(rng)
                cell = geometry.locate(pos)
                if cell is None:
                    continue
                material = geometry.material(cell)
                if only_fissile and not library.is_fissile(material):
                    continue
                break
            else:
                raise ConfigurationError(
                    f"Source could not place a site after {max_attempts} attempts; "
                    "does the source region overlap a "
                    f"{'fissile ' if only_fissile else ''}cell?"
                )
            if material is None:
                if self.energy is None:
                    raise ConfigurationError("Source energy required for sites in void cells")
                energy = self.energy
            else:
                table = library[material]
                if self.energy is None:
                    energy = table.sample_fission_energy(rng)
                else:
                    energy = self.energy
                energy = table.clamp_energy(energy)
            sites.append(FissionSite(tuple(pos.tolist()), float(energy)))
        return sites


class BoxSource(Source):
    """Uniform source in an axis-aligned box [cm]."""

    def __init__(self, lower_left: Sequence[float], upper_right: Sequence[float],
                 energy: Optional[float] = None):
        super().__init__(energy)
        self.lower_left = np.asarray(lower_left, dtype=np.float64)
        self.upper_right = np.asarray(upper_right, dtype=np.float64)
        if (
            self.lower_left.shape != (3,) or self.upper_right.shape != (3,)
            or not np.all(np.isfinite(self.lower_left))
            or not np.all(np.isfinite(self.upper_right))
            or np.any(self.upper_right <= self.lower_left)
        ):
            raise ConfigurationError(
                f"Invalid source box {lower_left} -> {upper_right}"
            )

    def sample_position(self, rng):
        return self.lower_left + (self.upper_right - self.lower_left) * rng.random(3)

    def bounds(self):
        return self.lower_left.copy(), self.upper_right.copy()


class PointSource(Source):
    """Isotropic point source [cm]."""

    def __init__(self, position: Sequence[float], energy: Optional[float] = None):
        super().__init__(energy)
        self.position = np.asarray(position, dtype=np.float64)
        if self.position.shape != (3,) or not np.all(np.isfinite(self.position)):
            raise ConfigurationError(f"Invalid source position {position}")

    def sample_position(self, rng):
        return self.position.copy()

    def bounds(self):
        return self.position - 1.0, self.position + 1.0
