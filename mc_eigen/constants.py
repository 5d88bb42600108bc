"""
Numerical and Nuclear Constants for Continuous-Energy Eigenvalue Transport
==========================================================================

Tolerances used by the geometry engine and transport kernel, the valid
energy window of the cross-section grid, default fission-spectrum
parameters, and the stream identifiers used to derive independent
counter-based random streams.

Units
-----
- Length: cm
- Energy: eV
- Macroscopic cross-sections: cm^-1
"""

import numpy as np

# =============================================================================
# GEOMETRY TOLERANCES
# =============================================================================

DISTANCE_EPSILON = 1.0e-10
"""Intersections closer than this [cm] are treated as the current surface."""

BOUNDARY_NUDGE = 1.0e-8
"""Push past a surface after a crossing [cm] so point location is unambiguous."""

TIE_TOLERANCE = 1.0e-9
"""Two surface distances within this [cm] are considered a grazing tie."""

INFINITY = float("inf")

# =============================================================================
# ENERGY WINDOW
# =============================================================================

ENERGY_MIN = 1.0e-5
"""Lower edge of the default energy grid [eV]."""

ENERGY_MAX = 2.0e7
"""Upper edge of the default energy grid [eV] (20 MeV)."""

# =============================================================================
# FISSION SPECTRUM
# =============================================================================

WATT_A = 0.988e6
"""Watt spectrum parameter a for U-235 thermal fission [eV]."""

WATT_B = 2.249e-6
"""Watt spectrum parameter b for U-235 thermal fission [1/eV]."""

# =============================================================================
# HISTORY SAFETY CAPS
# =============================================================================

MAX_COLLISIONS = 10_000
"""Collisions after which a history is killed."""

MAX_EVENTS = 1_000_000
"""Total events (collisions + crossings) after which a history is killed."""

# =============================================================================
# RANDOM STREAM IDENTIFIERS
# =============================================================================
# Every random number in a run comes from a Philox stream keyed by
# (seed, stream id, generation, index).  Distinct ids keep the streams
# disjoint.

HISTORY_STREAM = 0
RESAMPLE_STREAM = 1
SOURCE_STREAM = 2

TWO_PI = 2.0 * np.pi
