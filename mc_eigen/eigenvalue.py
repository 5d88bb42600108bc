"""
k-Eigenvalue Solver via Power Iteration Monte Carlo
===================================================

High-level driver for the Monte Carlo k-eigenvalue calculation.  Wraps
the transport kernel (transport.py), the worker executors (executor.py)
and the tally infrastructure (tallies.py, entropy.py) into a
power-iteration loop with:

  - Fixed-size work tasks dispatched inline or to a process pool
  - Shannon entropy monitoring that gates the inactive -> active switch
  - Cumulative k_eff statistics with standard-error-of-the-mean
  - Lost-particle gating and cooperative cancellation between generations
  - Result dataclass with per-cell flux and reaction rates

Algorithm
---------
Standard k-eigenvalue power iteration:

    1.  Sample N source neutrons from the external source.
    2.  For each generation g:
        a.  Cut the source into tasks, transport every history.
        b.  Merge task tallies and fission sites in task order.
        c.  k_g = (fission neutrons produced) / N.
        d.  Shannon entropy of the new fission sites.
        e.  Inactive: test source convergence; switch to active once
            converged or once n_inactive generations have run.
            Active: accumulate tallies and k_g.
        f.  Resample the fission bank to exactly N sites.
    3.  Stop after n_active active generations and assemble the result.

The number of inactive generations is a maximum: the active phase starts
as soon as the trailing entropy standard deviation drops below the
tolerance.

References
----------
- Lux & Koblinger, "MC Particle Transport Methods," 1991, ch. 10
- Brown, "On the Use of Shannon Entropy of the Fission Distribution for
  Assessing Convergence of Monte Carlo Criticality Calculations," 2006
- Romano & Forget, "The OpenMC MC Code," Ann. Nucl. Energy, 2013
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np

from .config import Settings
from .entropy import EntropyMesh, EntropyMonitor
from .exceptions import DataError, LostParticleError, SourceConvergenceError
from .executor import make_executor
from .particle import FissionBank, resample_stream
from .tallies import KeffStatistics, Quantity, TallyAccumulator, TallyStatistics
from .transport import HistoryOutcome, TransportContext, split_tasks

logger = logging.getLogger(__name__)


class IterationPhase(enum.Enum):
    INITIALIZING = "initializing"
    INACTIVE = "inactive"
    ACTIVE = "active"
    CONVERGED = "converged"
    FAILED = "failed"
    CANCELLED = "cancelled"


# =====================================================================
# Progress report
# =====================================================================
@dataclass(frozen=True)
class GenerationReport:
    """Snapshot emitted after every completed generation.

    ``k_generation`` is None when the fission bank came back empty;
    the running statistics are None until an active generation has
    produced a defined k.
    """
    generation_index: int
    phase: IterationPhase
    k_generation: Optional[float]
    k_running_mean: Optional[float]
    k_running_stddev: Optional[float]
    shannon_entropy: float
    n_lost: int = 0
    n_sites: int = 0

    def to_dict(self) -> Dict:
        return {
            "generation_index": self.generation_index,
            "phase": self.phase.value,
            "k_generation": self.k_generation,
            "k_running_mean": self.k_running_mean,
            "k_running_stddev": self.k_running_stddev,
            "shannon_entropy": self.shannon_entropy,
        }


# =====================================================================
# Result data class
# =====================================================================
@dataclass
class EigenvalueResult:
    """Container for all results from a k-eigenvalue Monte Carlo run.

    Attributes
    ----------
    status : str
        ``"completed"`` or ``"cancelled"``.
    k_eff : float
        Mean k over the active generations (NaN if none completed).
    k_eff_stddev : float
        Standard error of the mean k_eff.
    cell_ids : np.ndarray
        Cell ids the per-cell arrays are keyed by.
    flux, flux_std : np.ndarray
        Track-length flux per source neutron [cm] and its standard error.
    fission_rate, fission_rate_std : np.ndarray
        Fission reactions per source neutron.
    absorption_rate, absorption_rate_std : np.ndarray
        Capture reactions per source neutron.
    keff_history : list of float
        k of every generation, inactive included (NaN when undefined).
    entropy_history : list of float
        Shannon entropy [nats] of the fission sites of every generation.
    source_not_converged : bool
        True when the entropy test never passed during the inactive phase.
    convergence_generation : int or None
        Generation at which the source was declared converged.
    n_inactive_run, n_active_run : int
        Generations completed in each phase.
    last_completed_generation : int
        Index of the final completed generation (-1 if none).
    neutron_balance : dict
        History outcome counts over the whole run.
    n_particles : int
        Source neutrons per generation.
    total_wall_time : float
        Wall-clock time [s].
    """

    status: str
    k_eff: float
    k_eff_stddev: float
    cell_ids: np.ndarray = field(repr=False)
    flux: np.ndarray = field(repr=False)
    flux_std: np.ndarray = field(repr=False)
    fission_rate: np.ndarray = field(repr=False)
    fission_rate_std: np.ndarray = field(repr=False)
    absorption_rate: np.ndarray = field(repr=False)
    absorption_rate_std: np.ndarray = field(repr=False)
    keff_history: List[float] = field(repr=False)
    entropy_history: List[float] = field(repr=False)
    source_not_converged: bool
    convergence_generation: Optional[int]
    n_inactive_run: int
    n_active_run: int
    last_completed_generation: int
    neutron_balance: Dict[str, int] = field(default_factory=dict)
    n_particles: int = 0
    cell_names: List[str] = field(default_factory=list, repr=False)
    total_wall_time: float = 0.0

    # ---- Convenience properties ----
    @property
    def keff_ci_95(self):
        """95% confidence interval for k_eff."""
        return (self.k_eff - 1.96 * self.k_eff_stddev,
                self.k_eff + 1.96 * self.k_eff_stddev)

    @property
    def n_lost(self) -> int:
        return self.neutron_balance.get("lost", 0)

    @property
    def n_killed(self) -> int:
        return self.neutron_balance.get("killed", 0)

    @property
    def leakage_fraction(self) -> float:
        total = sum(self.neutron_balance.get(k, 0) for k in
                    ("absorbed", "fissioned", "leaked", "lost", "killed"))
        return self.neutron_balance.get("leaked", 0) / total if total else 0.0

    def _source_status(self) -> str:
        if self.source_not_converged:
            return "NOT CONVERGED"
        if self.convergence_generation is None:
            return "not assessed"
        return f"converged at generation {self.convergence_generation}"

    def summary(self) -> str:
        """Return a formatted summary of the eigenvalue calculation."""
        ci_lo, ci_hi = self.keff_ci_95
        n_generations = self.n_inactive_run + self.n_active_run
        lines = [
            "",
            "=" * 70,
            "  Monte Carlo k-Eigenvalue Calculation Results",
            "=" * 70,
            "",
            f"  Status          = {self.status}",
            f"  k_eff           = {self.k_eff:.5f} +/- {self.k_eff_stddev:.5f}",
            f"  95% CI          = [{ci_lo:.5f}, {ci_hi:.5f}]",
            "",
            f"  Generations     = {n_generations} total "
            f"({self.n_inactive_run} inactive + {self.n_active_run} active)",
            f"  Particles/gen   = {self.n_particles:,}",
            f"  Total histories = {n_generations * self.n_particles:,}",
            f"  Source          = {self._source_status()}",
            "",
            f"  Leakage frac    = {self.leakage_fraction:.4f}",
            f"  Lost / killed   = {self.n_lost} / {self.n_killed}",
            "",
            f"  Wall time       = {self.total_wall_time:.1f} s",
            f"  Histories/sec   = "
            f"{n_generations * self.n_particles / max(self.total_wall_time, 0.01):,.0f}",
            "=" * 70,
        ]
        return "\n".join(lines)

    def print_summary(self) -> None:
        """Print the formatted summary to stdout."""
        print(self.summary())

    def to_dict(self) -> Dict:
        """Plain-Python result payload keyed by cell id."""
        def _opt(x):
            return None if x is None or not np.isfinite(x) else float(x)

        return {
            "status": self.status,
            "k_eff": _opt(self.k_eff),
            "k_eff_stddev": _opt(self.k_eff_stddev),
            "per_cell_flux": _per_cell(self.cell_ids, self.flux),
            "per_cell_flux_stddev": _per_cell(self.cell_ids, self.flux_std),
            "per_cell_fission_rate": _per_cell(self.cell_ids, self.fission_rate),
            "per_cell_fission_rate_stddev": _per_cell(self.cell_ids, self.fission_rate_std),
            "per_cell_absorption_rate": _per_cell(self.cell_ids, self.absorption_rate),
            "per_cell_absorption_rate_stddev": _per_cell(self.cell_ids, self.absorption_rate_std),
            "keff_history": [_opt(k) for k in self.keff_history],
            "entropy_history": [float(h) for h in self.entropy_history],
            "source_not_converged": self.source_not_converged,
            "convergence_generation": self.convergence_generation,
            "n_inactive_run": self.n_inactive_run,
            "n_active_run": self.n_active_run,
            "last_completed_generation": self.last_completed_generation,
            "neutron_balance": dict(self.neutron_balance),
            "n_particles": self.n_particles,
            "total_wall_time": self.total_wall_time,
        }


def _per_cell(cell_ids, values) -> Dict[str, float]:
    return {str(int(c)): float(v) for c, v in zip(cell_ids, values)}


# =====================================================================
# Eigenvalue solver
# =====================================================================
class EigenvalueSolver:
    """Monte Carlo k-eigenvalue solver using power iteration.

    Parameters
    ----------
    geometry : Geometry
        Cells and surfaces, read-only for the run.
    library : CrossSectionLibrary
        Cross-sections of every material referenced by the geometry.
    source : Source
        External source for the first generation (and for restarting
        after an empty fission bank).
    settings : Settings, optional
        Run parameters; validated here.

    Raises
    ------
    ConfigurationError
        Invalid settings, a material with no cross-sections, or a source
        the entropy mesh cannot be derived from.

    Examples
    --------
    >>> solver = EigenvalueSolver(geometry, library, source,
    ...                           Settings(n_particles=5000, n_active=100))
    >>> result = solver.solve(verbose=True)
    >>> print(f"k_eff = {result.k_eff:.5f} +/- {result.k_eff_stddev:.5f}")
    """

    def __init__(self, geometry, library, source, settings: Optional[Settings] = None):
        self.geometry = geometry
        self.library = library
        self.source = source
        self.settings = (settings if settings is not None else Settings()).validate()
        self.phase = IterationPhase.INITIALIZING

        for cell in geometry.cells:
            if cell.material is not None and cell.material not in library:
                raise DataError(
                    f"Cell {cell.name!r} uses material {cell.material!r} "
                    "with no cross-section data"
                )
        self._has_fissile = any(library.is_fissile(c.material) for c in geometry.cells)
        if not self._has_fissile:
            logger.warning("No fissile material in the geometry; k will be undefined")

        s = self.settings
        self.entropy_mesh = EntropyMesh.for_problem(
            geometry, library, source, s.entropy_mesh_shape, s.entropy_mesh_bounds
        )
        self.context = TransportContext(
            geometry=geometry,
            library=library,
            seed=s.seed,
            bank_capacity=s.bank_capacity,
            max_collisions=s.max_collisions,
        )

    def _external_source(self, generation: int):
        """N sites from the external source, keyed by *generation*."""
        return self.source.sample(
            self.settings.n_particles, self.geometry, self.library,
            self.settings.seed, generation, only_fissile=self._has_fissile,
        )

    def solve(
        self,
        progress: Optional[Callable[[GenerationReport], None]] = None,
        cancel=None,
        verbose: bool = False,
    ) -> EigenvalueResult:
        """Run the power iteration.

        Parameters
        ----------
        progress : callable, optional
            Called with a ``GenerationReport`` after every generation.
        cancel : object with ``is_set()``, optional
            Checked before each generation; when set, the run stops and
            returns a partial result with ``status == "cancelled"``.
        verbose : bool
            Print progress information.

        Returns
        -------
        EigenvalueResult

        Raises
        ------
        LostParticleError
            A generation lost more than ``max_lost_particle_fraction`` of
            its histories.
        SourceConvergenceError
            The source did not converge and ``strict_convergence`` is set.
        """
        s = self.settings
        n_cells = self.geometry.n_cells
        t_start = time.perf_counter()

        if verbose:
            print("=" * 70)
            print("  Monte Carlo k-Eigenvalue Calculation")
            print("=" * 70)
            print(f"  Particles/gen:    {s.n_particles:,}")
            print(f"  Inactive (max):   {s.n_inactive}")
            print(f"  Active:           {s.n_active}")
            print(f"  Cells:            {n_cells}")
            print(f"  Entropy mesh:     {'x'.join(str(n) for n in self.entropy_mesh.shape)}")
            print(f"  Seed:             {s.seed}")

        self.phase = IterationPhase.INITIALIZING
        sites = self._external_source(0)

        generation_tally = TallyAccumulator(n_cells)
        bank = FissionBank(s.bank_capacity)
        stats = TallyStatistics(n_cells)
        keff = KeffStatistics()
        monitor = EntropyMonitor(s.entropy_tolerance, s.entropy_min_window)
        entropy_history: List[float] = []
        outcome_totals = np.zeros(len(HistoryOutcome), dtype=np.int64)

        status = "completed"
        generation = 0
        n_inactive_run = 0
        n_active_run = 0
        last_completed = -1
        convergence_generation = None
        source_not_converged = False

        try:
            with make_executor(self.context, s.n_workers) as executor:
                if verbose:
                    print(f"  Executor:         {executor.get_name()}")
                    print("-" * 70)

                self.phase = IterationPhase.INACTIVE
                if s.n_inactive == 0:
                    source_not_converged = self._not_converged(last_completed, verbose)

                while n_active_run < s.n_active:
                    if cancel is not None and cancel.is_set():
                        status = "cancelled"
                        logger.info("Run cancelled before generation %d", generation)
                        break

                    is_active = self.phase is IterationPhase.ACTIVE
                    n_source = len(sites)

                    # --- Transport all neutrons, merge in task order ---
                    generation_tally.reset()
                    bank.clear()
                    outcomes = np.zeros(len(HistoryOutcome), dtype=np.int64)
                    tasks = split_tasks(generation, sites, s.histories_per_task)
                    for result in executor.map(tasks):
                        generation_tally.merge(result.tallies)
                        bank.extend(result.sites, result.n_produced)
                        outcomes += result.outcomes
                    outcome_totals += outcomes

                    # --- Lost-particle gating ---
                    n_lost = int(outcomes[HistoryOutcome.LOST])
                    lost_fraction = n_lost / n_source
                    if lost_fraction > s.max_lost_particle_fraction:
                        raise LostParticleError(
                            lost_fraction, s.max_lost_particle_fraction,
                            generation, last_completed,
                        )
                    if n_lost:
                        logger.warning("Generation %d: %d histories lost", generation, n_lost)
                    if bank.n_dropped:
                        logger.warning(
                            "Generation %d: fission bank full, %d of %d sites dropped",
                            generation, bank.n_dropped, bank.n_produced,
                        )

                    # --- Generation k and entropy ---
                    k_generation = bank.n_produced / n_source if bank.n_produced > 0 else None
                    entropy = self.entropy_mesh.entropy(bank.positions())
                    keff.record(k_generation, is_active)
                    entropy_history.append(entropy)
                    if is_active:
                        stats.accumulate(generation_tally.snapshot(), float(n_source))
                    last_completed = generation

                    report = GenerationReport(
                        generation_index=generation,
                        phase=self.phase,
                        k_generation=k_generation,
                        k_running_mean=keff.mean if keff.n else None,
                        k_running_stddev=keff.std_dev if keff.n else None,
                        shannon_entropy=entropy,
                        n_lost=n_lost,
                        n_sites=len(bank),
                    )
                    if progress is not None:
                        progress(report)
                    if verbose:
                        self._print_generation(report, n_inactive_run + n_active_run)

                    # --- Phase transition ---
                    if is_active:
                        n_active_run += 1
                    else:
                        n_inactive_run += 1
                        if monitor.update(entropy):
                            convergence_generation = generation
                            self.phase = IterationPhase.ACTIVE
                            if verbose:
                                print(f"  Source converged at generation {generation} "
                                      f"(sigma_H = {monitor.std_history[-1]:.4f})")
                        elif n_inactive_run >= s.n_inactive:
                            source_not_converged = self._not_converged(
                                last_completed, verbose, monitor.std_history[-1]
                            )

                    # --- Next generation source ---
                    if len(bank) == 0:
                        logger.warning(
                            "Empty fission bank at generation %d; restarting from "
                            "the external source", generation,
                        )
                        if verbose:
                            print(f"  WARNING: Empty fission bank at generation "
                                  f"{generation}.  System may be deeply subcritical.")
                        sites = self._external_source(generation + 1)
                    else:
                        sites = bank.resample(s.n_particles,
                                              resample_stream(s.seed, generation))
                    generation += 1
        except Exception:
            self.phase = IterationPhase.FAILED
            raise

        if status == "cancelled" and self.phase is not IterationPhase.ACTIVE:
            # Stopped before the source could be declared converged
            source_not_converged = True

        self.phase = (IterationPhase.CANCELLED if status == "cancelled"
                      else IterationPhase.CONVERGED)

        # ================================================================
        # Assemble results
        # ================================================================
        total_time = time.perf_counter() - t_start
        flux = stats.get(Quantity.FLUX)
        fission = stats.get(Quantity.FISSION)
        absorption = stats.get(Quantity.ABSORPTION)

        result = EigenvalueResult(
            status=status,
            k_eff=keff.mean,
            k_eff_stddev=keff.std_dev,
            cell_ids=np.arange(n_cells),
            flux=flux["mean"],
            flux_std=flux["std"],
            fission_rate=fission["mean"],
            fission_rate_std=fission["std"],
            absorption_rate=absorption["mean"],
            absorption_rate_std=absorption["std"],
            keff_history=list(keff.history),
            entropy_history=entropy_history,
            source_not_converged=source_not_converged,
            convergence_generation=convergence_generation,
            n_inactive_run=n_inactive_run,
            n_active_run=n_active_run,
            last_completed_generation=last_completed,
            neutron_balance={o.name.lower(): int(outcome_totals[o]) for o in HistoryOutcome},
            n_particles=s.n_particles,
            cell_names=[cell.name for cell in self.geometry.cells],
            total_wall_time=total_time,
        )

        if verbose:
            result.print_summary()

        return result

    def _not_converged(self, last_completed: int, verbose: bool,
                       sigma: Optional[float] = None) -> bool:
        """Leave the inactive phase without a converged source."""
        s = self.settings
        detail = "not assessed" if sigma is None else f"{sigma:.4f}"
        if s.strict_convergence:
            raise SourceConvergenceError(
                SourceConvergenceError.REASON,
                last_completed,
                f"Entropy standard deviation ({detail}) did not drop below "
                f"{s.entropy_tolerance} within {s.n_inactive} inactive generations",
            )
        logger.warning(
            "Fission source not converged after %d inactive generations "
            "(sigma_H %s, tolerance %g); proceeding to active generations",
            s.n_inactive, detail, s.entropy_tolerance,
        )
        if verbose:
            print(f"  WARNING: source not converged after {s.n_inactive} "
                  "inactive generations")
        self.phase = IterationPhase.ACTIVE
        return True

    def _print_generation(self, report: GenerationReport, index: int) -> None:
        s = self.settings
        # Print every generation for the first few, then every 10
        should_print = (
            index < 5
            or (index + 1) % 10 == 0
            or index == s.n_inactive
        )
        if not should_print:
            return
        k = "   undef" if report.k_generation is None else f"{report.k_generation:.5f}"
        line = (
            f"  Gen {report.generation_index + 1:4d} "
            f"({report.phase.value:8s}): k_gen = {k}, "
        )
        if report.k_running_mean is not None and report.k_running_stddev:
            line += (f"k_cum = {report.k_running_mean:.5f} "
                     f"+/- {report.k_running_stddev:.5f}, ")
        line += f"H = {report.shannon_entropy:.3f}, sites = {report.n_sites}"
        print(line)


# =====================================================================
# Convenience functions
# =====================================================================
def run_eigenvalue(geometry, library, source, settings: Optional[Settings] = None,
                   verbose: bool = False, **kwargs) -> EigenvalueResult:
    """Build an ``EigenvalueSolver`` and run it; *kwargs* go to ``solve``."""
    solver = EigenvalueSolver(geometry, library, source, settings)
    return solver.solve(verbose=verbose, **kwargs)
