"""
Monte Carlo Tally System
========================

Per-cell accumulation of physics quantities during transport, and batch
statistics over active generations.

- **TallyAccumulator**: running sums for one generation (or one work
  task): track-length flux, fission and absorption reaction rates.
- **TallyStatistics**: mean / standard error of per-source-particle
  tallies over active generations.
- **KeffStatistics**: append-only k-eigenvalue history with running
  mean and standard error.

Accumulation Discipline
-----------------------
Each work task owns a private accumulator; nothing is shared while
histories are in flight.  At the generation barrier the task
accumulators are merged in task order, so the sums never depend on
which worker ran which task or when it finished.

Estimators
----------
Track-length estimator (flux):
    Phi_cell += w * d
Analog collision estimators (reaction rates):
    R_cell += w   at each fission / absorption event

References
----------
- Romano & Forget, "The OpenMC Monte Carlo Particle Transport Code," 2013
- Lux & Koblinger, "Monte Carlo Particle Transport Methods," 1991
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from scipy import stats


class Quantity(enum.IntEnum):
    FLUX = 0
    FISSION = 1
    ABSORPTION = 2


N_QUANTITIES = len(Quantity)


# ===================================================================
# Generation accumulator
# ===================================================================
@dataclass(frozen=True)
class TallySnapshot:
    """Immutable per-cell tallies of a completed generation.

    ``values`` has shape (n_cells, 3), columns ordered as ``Quantity``.
    """
    values: np.ndarray = field(repr=False)

    @property
    def flux(self) -> np.ndarray:
        return self.values[:, Quantity.FLUX]

    @property
    def fission(self) -> np.ndarray:
        return self.values[:, Quantity.FISSION]

    @property
    def absorption(self) -> np.ndarray:
        return self.values[:, Quantity.ABSORPTION]


class TallyAccumulator:
    """Per-cell running sums for one generation.

    The object is reused across generations (``reset``) to avoid
    reallocating thousands of arrays over a long run.

    Parameters
    ----------
    n_cells : int
        Number of geometry cells.
    """

    def __init__(self, n_cells: int):
        self.n_cells = int(n_cells)
        self._values = np.zeros((self.n_cells, N_QUANTITIES))

    def add(self, cell_id: int, quantity: Quantity, value: float) -> None:
        self._values[cell_id, quantity] += value

    def merge(self, other) -> None:
        """Add the sums of *other* (an accumulator or a values array) into this one."""
        if isinstance(other, TallyAccumulator):
            other = other._values
        self._values += other

    def snapshot(self) -> TallySnapshot:
        values = self._values.copy()
        values.setflags(write=False)
        return TallySnapshot(values)

    def reset(self) -> None:
        self._values[:] = 0.0

    @property
    def total(self) -> np.ndarray:
        """Sum over cells of each quantity."""
        return self._values.sum(axis=0)


# ===================================================================
# Multi-generation statistics
# ===================================================================
class TallyStatistics:
    """Batch statistics of per-cell tallies over active generations.

    Each generation's snapshot is divided by the source weight of that
    generation before accumulation, so means are per source neutron.
    """

    def __init__(self, n_cells: int):
        self.n_cells = int(n_cells)
        self._sum = np.zeros((self.n_cells, N_QUANTITIES))
        self._sq_sum = np.zeros((self.n_cells, N_QUANTITIES))
        self.n_batches = 0
        self.total_weight = 0.0

    def accumulate(self, snapshot: TallySnapshot, source_weight: float) -> None:
        """Score one active generation."""
        normalized = snapshot.values / source_weight
        self._sum += normalized
        self._sq_sum += normalized ** 2
        self.n_batches += 1
        self.total_weight += source_weight

    @property
    def mean(self) -> np.ndarray:
        if self.n_batches == 0:
            return np.zeros_like(self._sum)
        return self._sum / self.n_batches

    @property
    def std_dev(self) -> np.ndarray:
        """Standard error of the mean."""
        n = self.n_batches
        if n < 2:
            return np.zeros_like(self._sum)
        mean = self._sum / n
        variance = (self._sq_sum / n - mean ** 2) / (n - 1)
        variance = np.maximum(variance, 0.0)  # guard negative from roundoff
        return np.sqrt(variance)

    @property
    def relative_error(self) -> np.ndarray:
        mean, std = self.mean, self.std_dev
        rel_err = np.zeros_like(mean)
        nonzero = mean > 0.0
        rel_err[nonzero] = std[nonzero] / mean[nonzero]
        return rel_err

    def confidence_half_width(self, confidence: float = 0.95) -> np.ndarray:
        if self.n_batches < 2:
            return np.zeros_like(self._sum)
        t_val = stats.t.ppf(0.5 + confidence / 2.0, self.n_batches - 1)
        return t_val * self.std_dev

    def get(self, quantity: Quantity) -> Dict[str, np.ndarray]:
        return {
            "mean": self.mean[:, quantity],
            "std": self.std_dev[:, quantity],
            "rel_err": self.relative_error[:, quantity],
        }


class KeffStatistics:
    """Append-only history of generation k values with running statistics.

    Undefined generations (empty fission bank) are recorded as NaN in
    ``history`` and excluded from the statistics.
    """

    def __init__(self):
        self.history: List[float] = []
        self._active: List[float] = []

    def record(self, k_generation: Optional[float], active: bool) -> None:
        self.history.append(np.nan if k_generation is None else float(k_generation))
        if active and k_generation is not None:
            self._active.append(float(k_generation))

    @property
    def n(self) -> int:
        return len(self._active)

    @property
    def mean(self) -> float:
        return float(np.mean(self._active)) if self._active else float("nan")

    @property
    def std_dev(self) -> float:
        """Standard error of the mean (0 with fewer than two values)."""
        n = len(self._active)
        if n < 2:
            return 0.0
        return float(np.std(self._active, ddof=1) / np.sqrt(n))

    def confidence_interval(self, confidence: float = 0.95):
        n = len(self._active)
        if n < 2:
            return (self.mean, self.mean)
        t_val = stats.t.ppf(0.5 + confidence / 2.0, n - 1)
        half = t_val * self.std_dev
        return (self.mean - half, self.mean + half)
