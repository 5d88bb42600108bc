"""Exception hierarchy for the eigenvalue solver."""


class MCEigenError(Exception):
    """Root exception class for mc_eigen."""


class ConfigurationError(MCEigenError, ValueError):
    """Invalid input rejected before any generation runs."""


class GeometryError(ConfigurationError):
    """Geometry-related error (bad surfaces, cells or ids)."""


class DataError(ConfigurationError):
    """Missing or non-physical cross-section data."""


class RunFailedError(MCEigenError, RuntimeError):
    """Fatal error during power iteration.

    Parameters
    ----------
    reason : str
        Machine-readable failure reason.
    last_completed_generation : int
        Index of the last generation that finished, or -1 if none did.
    message : str, optional
        Human-readable description.
    """

    def __init__(self, reason, last_completed_generation=-1, message=None):
        self.reason = reason
        self.last_completed_generation = last_completed_generation
        super().__init__(message or reason)

    def payload(self):
        return {
            "status": "failed",
            "reason": self.reason,
            "last_completed_generation": self.last_completed_generation,
        }


class LostParticleError(RunFailedError):
    """Lost-particle fraction of a generation exceeded the allowed limit."""

    REASON = "fatal: lost_particle_fraction_exceeded"

    def __init__(self, fraction, limit, generation, last_completed_generation):
        self.fraction = fraction
        self.limit = limit
        self.generation = generation
        super().__init__(
            self.REASON,
            last_completed_generation,
            f"{self.REASON}: {fraction:.4%} of histories lost in generation "
            f"{generation} (limit {limit:.4%})",
        )


class SourceConvergenceError(RunFailedError):
    """Fission source did not converge within the inactive generations."""

    REASON = "fatal: source_not_converged"
