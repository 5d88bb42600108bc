"""
Run Configuration for k-Eigenvalue Power Iteration
==================================================

All run-control parameters live in one ``Settings`` dataclass.  The
first five fields are the parameters supplied by the job-submission
layer; the remainder have defaults suitable for most problems.

Usage:
    from mc_eigen.config import Settings
    settings = Settings(n_particles=10_000, n_inactive=50, n_active=100)
    settings.validate()
"""

import math
from dataclasses import asdict, dataclass, field, fields
from typing import Optional, Tuple

from .constants import MAX_COLLISIONS
from .exceptions import ConfigurationError


# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_N_PARTICLES = 1000
DEFAULT_N_INACTIVE = 20
DEFAULT_N_ACTIVE = 50
DEFAULT_ENTROPY_TOLERANCE = 0.01       # nats
DEFAULT_MAX_LOST_FRACTION = 1.0e-3
DEFAULT_HISTORIES_PER_TASK = 250
DEFAULT_ENTROPY_MESH = (8, 8, 8)
DEFAULT_ENTROPY_MIN_WINDOW = 5
DEFAULT_BANK_CAPACITY_FACTOR = 5.0


@dataclass
class Settings:
    """Power-iteration run parameters.

    Attributes
    ----------
    n_particles : int
        Source histories per generation, N.
    n_inactive : int
        Maximum number of inactive (source-convergence) generations.
    n_active : int
        Number of active generations used for statistics.
    entropy_tolerance : float
        Shannon-entropy standard deviation [nats] below which the source
        is declared converged.
    max_lost_particle_fraction : float
        Fraction of lost histories per generation above which the run fails.
    seed : int
        Top-level seed from which every random stream is derived.
    n_workers : int
        Worker processes.  1 runs inline in the calling process.
    histories_per_task : int
        Histories per work unit.  Results depend on this value, never on
        ``n_workers``.
    entropy_mesh_shape : tuple of int
        Bins of the Shannon entropy mesh in x, y, z.
    entropy_mesh_bounds : tuple or None
        ((x0, y0, z0), (x1, y1, z1)) of the entropy mesh.  None derives it
        from the fissile cells or the source box.
    entropy_min_window : int
        Minimum number of entropy values in the trailing window before
        convergence can be declared.
    bank_capacity_factor : float
        Fission bank capacity as a multiple of ``n_particles``.
    strict_convergence : bool
        Fail the run instead of flagging it when the source does not converge.
    max_collisions : int
        Collisions after which a history is killed.
    """

    n_particles: int = DEFAULT_N_PARTICLES
    n_inactive: int = DEFAULT_N_INACTIVE
    n_active: int = DEFAULT_N_ACTIVE
    entropy_tolerance: float = DEFAULT_ENTROPY_TOLERANCE
    max_lost_particle_fraction: float = DEFAULT_MAX_LOST_FRACTION
    seed: int = 1
    n_workers: int = 1
    histories_per_task: int = DEFAULT_HISTORIES_PER_TASK
    entropy_mesh_shape: Tuple[int, int, int] = DEFAULT_ENTROPY_MESH
    entropy_mesh_bounds: Optional[tuple] = field(default=None, repr=False)
    entropy_min_window: int = DEFAULT_ENTROPY_MIN_WINDOW
    bank_capacity_factor: float = DEFAULT_BANK_CAPACITY_FACTOR
    strict_convergence: bool = False
    max_collisions: int = MAX_COLLISIONS

    # ---- Derived ----
    @property
    def n_generations(self) -> int:
        """Upper bound on total generations (inactive maximum + active)."""
        return self.n_inactive + self.n_active

    @property
    def bank_capacity(self) -> int:
        return max(1, int(math.ceil(self.bank_capacity_factor * self.n_particles)))

    def validate(self) -> "Settings":
        """Check for non-physical parameters.

        Raises
        ------
        ConfigurationError
            If any parameter is out of range.
        """
        def _int(name, minimum):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            if value < minimum:
                raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")

        _int("n_particles", 1)
        _int("n_inactive", 0)
        _int("n_active", 1)
        _int("seed", 0)
        _int("n_workers", 1)
        _int("histories_per_task", 1)
        _int("entropy_min_window", 2)
        _int("max_collisions", 1)

        if not (self.entropy_tolerance > 0.0 and math.isfinite(self.entropy_tolerance)):
            raise ConfigurationError(
                f"entropy_tolerance must be positive, got {self.entropy_tolerance}"
            )
        if not 0.0 <= self.max_lost_particle_fraction <= 1.0:
            raise ConfigurationError(
                "max_lost_particle_fraction must lie in [0, 1], got "
                f"{self.max_lost_particle_fraction}"
            )
        if not self.bank_capacity_factor >= 1.0:
            raise ConfigurationError(
                f"bank_capacity_factor must be >= 1, got {self.bank_capacity_factor}"
            )
        shape = tuple(self.entropy_mesh_shape)
        if len(shape) != 3 or any(int(n) < 1 for n in shape):
            raise ConfigurationError(
                f"entropy_mesh_shape must be three positive integers, got {shape}"
            )
        self.entropy_mesh_shape = tuple(int(n) for n in shape)
        if self.entropy_mesh_bounds is not None:
            lower, upper = self.entropy_mesh_bounds
            if len(lower) != 3 or len(upper) != 3 or any(
                hi <= lo for lo, hi in zip(lower, upper)
            ):
                raise ConfigurationError(
                    f"entropy_mesh_bounds is not a valid box: {self.entropy_mesh_bounds}"
                )
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Build settings from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {sorted(unknown)}")
        kwargs = dict(data)
        if "entropy_mesh_shape" in kwargs:
            kwargs["entropy_mesh_shape"] = tuple(kwargs["entropy_mesh_shape"])
        if kwargs.get("entropy_mesh_bounds") is not None:
            lower, upper = kwargs["entropy_mesh_bounds"]
            kwargs["entropy_mesh_bounds"] = (tuple(lower), tuple(upper))
        return cls(**kwargs).validate()

    def to_dict(self) -> dict:
        return asdict(self)
