"""
Shannon Entropy of the Fission Source
=====================================

Fission-site positions are binned on a fixed coarse Cartesian mesh and

    H = -sum_i p_i ln(p_i),   p_i = fraction of sites in bin i

is computed in nats.  A converged fission source yields an entropy that
fluctuates around a constant; the spread of H over the trailing half of
the inactive generations is the convergence diagnostic.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class EntropyMesh:
    """Regular (x, y, z) mesh for source entropy.

    Parameters
    ----------
    lower_left, upper_right : sequence of float
        Mesh corners [cm].
    shape : sequence of int
        Number of bins along x, y, z.
    """

    def __init__(self, lower_left: Sequence[float], upper_right: Sequence[float],
                 shape: Sequence[int] = (8, 8, 8)):
        self.lower_left = np.asarray(lower_left, dtype=np.float64)
        self.upper_right = np.asarray(upper_right, dtype=np.float64)
        self.shape = tuple(int(n) for n in shape)
        if (
            not np.all(np.isfinite(self.lower_left))
            or not np.all(np.isfinite(self.upper_right))
            or np.any(self.upper_right <= self.lower_left)
        ):
            raise ConfigurationError(
                f"Entropy mesh needs a finite, non-empty box, got "
                f"{self.lower_left} -> {self.upper_right}"
            )
        self.edges = [
            np.linspace(lo, hi, n + 1)
            for lo, hi, n in zip(self.lower_left, self.upper_right, self.shape)
        ]

    @classmethod
    def for_problem(cls, geometry, library, source, shape, bounds=None) -> "EntropyMesh":
        """Mesh over *bounds*, else over the fissile cells (unbounded sides taken from the source box)."""
        if bounds is not None:
            return cls(bounds[0], bounds[1], shape)
        fissile = [
            i for i, cell in enumerate(geometry.cells)
            if library.is_fissile(cell.material)
        ]
        lower, upper = geometry.bounding_box(fissile or None)
        src_lower, src_upper = source.bounds()
        lower = np.where(np.isfinite(lower), lower, src_lower)
        upper = np.where(np.isfinite(upper), upper, src_upper)
        return cls(lower, upper, shape)

    def counts(self, positions: np.ndarray) -> np.ndarray:
        if len(positions) == 0:
            return np.zeros(self.shape)
        hist, _ = np.histogramdd(positions, bins=self.edges)
        return hist

    def entropy(self, positions: np.ndarray) -> float:
        """Shannon entropy [nats] of the site distribution (0 for no sites)."""
        hist = self.counts(positions).ravel()
        total = hist.sum()
        if total == 0:
            return 0.0
        if total < len(positions):
            logger.debug("%d fission sites fall outside the entropy mesh",
                         len(positions) - int(total))
        probs = hist[hist > 0] / total
        return float(-np.sum(probs * np.log(probs)))


class EntropyMonitor:
    """Source-convergence test on the inactive-generation entropy history.

    After each inactive generation the sample standard deviation of the
    trailing half of the entropy values is compared with *tolerance*.

    Parameters
    ----------
    tolerance : float
        Standard deviation [nats] below which the source is converged.
    min_window : int
        Fewest entropy values the trailing window must hold.
    """

    def __init__(self, tolerance: float, min_window: int = 5):
        self.tolerance = tolerance
        self.min_window = min_window
        self.entropies: List[float] = []
        self.std_history: List[Optional[float]] = []
        self.converged = False

    def trailing_std(self) -> Optional[float]:
        n = len(self.entropies)
        window = self.entropies[n // 2:]
        if len(window) < max(self.min_window, 2):
            return None
        return float(np.std(window, ddof=1))

    def update(self, entropy: float) -> bool:
        """Record one inactive-generation entropy; True once converged."""
        self.entropies.append(float(entropy))
        std = self.trailing_std()
        self.std_history.append(std)
        if std is not None and std < self.tolerance:
            self.converged = True
        return self.converged
