"""
Monte Carlo Neutron Transport Kernel
====================================

Continuous-energy analog transport of one neutron history: free flight,
boundary crossing, and collision physics (scattering, absorption,
fission).  Fission neutrons are banked for the next generation of the
power iteration.

History State Machine
---------------------
    Flying -> Colliding -> {Scattering, Absorbing, Fissioning}
           -> (Flying | Terminated)

with a CrossingBoundary transition that pre-empts a scheduled collision
whenever the nearest surface is closer than the sampled flight distance.

Per step:
  1. Sample d = -ln(xi) / Sigma_t(E), xi in (0, 1].
  2. Distance d_b to the nearest boundary of the current cell.
  3. d_b < d: move to the surface; leak (vacuum), reflect (reflective)
     or enter the neighbour cell (transmission).  No collision.
  4. Otherwise move d and sample scatter / absorption / fission.
  5. Score w * segment length into the cell's track-length flux.

A history whose state turns non-finite, or that ends up outside every
cell, is terminated and reported as LOST rather than propagated.

References
----------
- Lux & Koblinger, "Monte Carlo Particle Transport Methods," 1991
- Lewis & Miller, "Computational Methods of Neutron Transport," 1984
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .constants import BOUNDARY_NUDGE, INFINITY, MAX_COLLISIONS, MAX_EVENTS
from .geometry import BoundaryCondition
from .particle import (
    FissionBank,
    FissionSite,
    Particle,
    history_stream,
    sample_isotropic_direction,
)
from .tallies import Quantity, TallyAccumulator


class Collision(enum.Enum):
    SCATTER = "scatter"
    ABSORPTION = "absorption"
    FISSION = "fission"


class HistoryOutcome(enum.IntEnum):
    ABSORBED = 0
    FISSIONED = 1
    LEAKED = 2
    LOST = 3
    KILLED = 4


# ===================================================================
# Collision sampling
# ===================================================================
def sample_collision(xs, rng: np.random.Generator) -> Collision:
    """Sample the reaction at a collision site.

    One uniform variate is drawn against the partition
    {scatter, absorption, fission} scaled by the cross-sections.
    """
    partition = xs.scatter + xs.absorption + xs.fission
    if partition <= 0.0:
        return Collision.SCATTER
    xi = rng.random() * partition
    if xi < xs.scatter:
        return Collision.SCATTER
    if xi < xs.scatter + xs.absorption:
        return Collision.ABSORPTION
    return Collision.FISSION


def sample_progeny(nu: float, rng: np.random.Generator) -> int:
    """Integer number of fission neutrons with expectation exactly *nu*.

        n = floor(nu) + 1  with probability nu - floor(nu)
        n = floor(nu)      otherwise
    """
    nu_floor = math.floor(nu)
    return int(nu_floor) + (1 if rng.random() < nu - nu_floor else 0)


# ===================================================================
# Single history
# ===================================================================
def transport_history(
    particle: Particle,
    geometry,
    library,
    tally: Optional[TallyAccumulator],
    fission_bank: FissionBank,
    rng: np.random.Generator,
    max_collisions: int = MAX_COLLISIONS,
    max_events: int = MAX_EVENTS,
) -> HistoryOutcome:
    """Transport *particle* until it is absorbed, fissions, leaks or is lost.

    Parameters
    ----------
    particle : Particle
        Particle to transport (modified in-place until dead).
    geometry : Geometry
        Cell lookup and distance-to-boundary queries.
    library : CrossSectionLibrary
        Material cross-sections.
    tally : TallyAccumulator or None
        Per-cell accumulators.
    fission_bank : FissionBank
        Bank receiving fission sites.
    rng : np.random.Generator
        Random stream of this history.
    max_collisions, max_events : int
        Safety caps; histories exceeding them are KILLED.

    Returns
    -------
    HistoryOutcome
    """
    if particle.cell is None:
        particle.cell = geometry.locate(particle.pos)
        if particle.cell is None:
            particle.kill()
            return HistoryOutcome.LOST

    for _ in range(max_events):
        if not particle.is_finite():
            particle.kill()
            return HistoryOutcome.LOST

        cell = particle.cell
        material = geometry.material(cell)
        if material is None:
            table = xs = None
            d_collision = INFINITY
        else:
            table = library[material]
            particle.energy = table.clamp_energy(particle.energy)
            xs = table.evaluate(particle.energy)
            if xs.total > 0.0:
                d_collision = -math.log(1.0 - rng.random()) / xs.total
            else:
                d_collision = INFINITY

        hit = geometry.distance_to_boundary(particle.pos, particle.dir, cell)

        # ---- Boundary crossing ----
        if hit.distance < d_collision:
            if tally is not None:
                tally.add(cell, Quantity.FLUX, particle.weight * hit.distance)
            particle.move(hit.distance)

            if hit.boundary is BoundaryCondition.VACUUM:
                particle.kill()
                return HistoryOutcome.LEAKED
            if hit.boundary is BoundaryCondition.REFLECTIVE:
                particle.dir = geometry.reflect(particle.dir, hit.surface, particle.pos)
                continue
            if hit.next_cell is None:
                particle.kill()
                return HistoryOutcome.LOST
            particle.move(BOUNDARY_NUDGE)
            particle.cell = hit.next_cell
            continue

        # Nothing ahead: neither a surface nor a collision
        if not d_collision < INFINITY:
            particle.kill()
            return HistoryOutcome.LOST

        # ---- Collision ----
        if tally is not None:
            tally.add(cell, Quantity.FLUX, particle.weight * d_collision)
        particle.move(d_collision)
        particle.n_collisions += 1

        reaction = sample_collision(xs, rng)
        if reaction is Collision.SCATTER:
            # Isotropic in the lab frame
            particle.energy = table.clamp_energy(
                table.sample_scatter_energy(particle.energy, rng)
            )
            particle.dir = sample_isotropic_direction(rng)
            if particle.n_collisions >= max_collisions:
                particle.kill()
                return HistoryOutcome.KILLED
            continue

        if reaction is Collision.ABSORPTION:
            if tally is not None:
                tally.add(cell, Quantity.ABSORPTION, particle.weight)
            particle.kill()
            return HistoryOutcome.ABSORBED

        if tally is not None:
            tally.add(cell, Quantity.FISSION, particle.weight)
        n_new = sample_progeny(particle.weight * xs.nu_bar, rng)
        position = tuple(particle.pos.tolist())
        for _ in range(n_new):
            energy = table.clamp_energy(table.sample_fission_energy(rng))
            fission_bank.add(FissionSite(position, energy))
        particle.kill()
        return HistoryOutcome.FISSIONED

    particle.kill()
    return HistoryOutcome.KILLED


# ===================================================================
# Work tasks (one contiguous slice of a generation's histories)
# ===================================================================
@dataclass(frozen=True)
class TransportContext:
    """Read-only data every worker needs for a run."""
    geometry: object
    library: object
    seed: int
    bank_capacity: int
    max_collisions: int = MAX_COLLISIONS


@dataclass(frozen=True)
class HistoryTask:
    generation: int
    first_history: int
    sites: Sequence[FissionSite]


@dataclass
class TaskResult:
    """Task-local tallies, fission sites (history order) and outcome counts."""
    tallies: np.ndarray = field(repr=False)
    sites: List[FissionSite] = field(repr=False)
    n_produced: int
    outcomes: np.ndarray

    @property
    def n_lost(self) -> int:
        return int(self.outcomes[HistoryOutcome.LOST])


def run_task(context: TransportContext, task: HistoryTask) -> TaskResult:
    """Transport every history of *task* with private accumulators.

    Each history seeds its own stream from (seed, generation, history
    index) and samples an isotropic birth direction from it.
    """
    geometry = context.geometry
    tally = TallyAccumulator(geometry.n_cells)
    bank = FissionBank(context.bank_capacity)
    outcomes = np.zeros(len(HistoryOutcome), dtype=np.int64)

    for offset, site in enumerate(task.sites):
        rng = history_stream(context.seed, task.generation, task.first_history + offset)
        particle = Particle(
            position=site.position,
            direction=sample_isotropic_direction(rng),
            energy=site.energy,
        )
        outcome = transport_history(
            particle, geometry, context.library, tally, bank, rng,
            max_collisions=context.max_collisions,
        )
        outcomes[outcome] += 1

    return TaskResult(
        tallies=tally.snapshot().values,
        sites=bank.sites,
        n_produced=bank.n_produced,
        outcomes=outcomes,
    )


def split_tasks(generation: int, sites: Sequence[FissionSite],
                histories_per_task: int) -> List[HistoryTask]:
    """Cut a generation's source into fixed-size tasks (worker-count independent)."""
    return [
        HistoryTask(generation, start, list(sites[start:start + histories_per_task]))
        for start in range(0, len(sites), histories_per_task)
    ]
