"""
Problem Definition from Plain Data
==================================

Builds the geometry, cross-section library, source and settings of a
run from a nested dict (normally parsed from JSON):

    {
      "surfaces":  {"s1": {"type": "sphere", "r": 6.0825, "boundary": "vacuum"}},
      "materials": {"fuel": {"scatter": 0.225, "absorption": 0.0196,
                             "fission": 0.0816, "nu_bar": 3.24}},
      "cells":     [{"name": "core", "region": ["-s1"], "material": "fuel"}],
      "source":    {"type": "box", "lower_left": [-6, -6, -6],
                    "upper_right": [6, 6, 6]},
      "settings":  {"n_particles": 10000, "n_inactive": 50, "n_active": 100}
    }

Materials given as scalars are energy independent; tabulated materials
carry an ``"energy"`` grid and per-point arrays.  Region entries are
surface names prefixed by ``-`` (negative half-space) or ``+``.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .config import Settings
from .cross_sections import CrossSectionLibrary, CrossSectionTable
from .eigenvalue import EigenvalueResult, EigenvalueSolver
from .exceptions import ConfigurationError, GeometryError
from .geometry import (
    BoundaryCondition,
    Cell,
    Geometry,
    Plane,
    Sphere,
    XCylinder,
    XPlane,
    YCylinder,
    YPlane,
    ZCylinder,
    ZPlane,
)
from .particle import BoxSource, PointSource

SURFACE_TYPES = {
    "plane": Plane,
    "x-plane": XPlane,
    "y-plane": YPlane,
    "z-plane": ZPlane,
    "sphere": Sphere,
    "x-cylinder": XCylinder,
    "y-cylinder": YCylinder,
    "z-cylinder": ZCylinder,
}

SOURCE_TYPES = {
    "box": BoxSource,
    "point": PointSource,
}


@dataclass
class Model:
    """Everything needed to run one eigenvalue calculation."""
    geometry: Geometry
    library: CrossSectionLibrary
    source: object
    settings: Settings

    def solver(self) -> EigenvalueSolver:
        return EigenvalueSolver(self.geometry, self.library, self.source, self.settings)

    def run(self, **kwargs) -> EigenvalueResult:
        """Solve the model; *kwargs* go to ``EigenvalueSolver.solve``."""
        return self.solver().solve(**kwargs)


# =====================================================================
# Builders
# =====================================================================
def build_surface(name: str, params: Dict):
    params = dict(params)
    kind = params.pop("type", None)
    if kind not in SURFACE_TYPES:
        raise GeometryError(
            f"Surface {name!r}: unknown type {kind!r} "
            f"(expected one of {sorted(SURFACE_TYPES)})"
        )
    boundary = params.pop("boundary", "transmission")
    try:
        boundary = BoundaryCondition(boundary)
    except ValueError:
        raise GeometryError(f"Surface {name!r}: unknown boundary {boundary!r}") from None
    try:
        return SURFACE_TYPES[kind](**params, boundary=boundary, name=name)
    except TypeError as exc:
        raise GeometryError(f"Surface {name!r}: {exc}") from exc


def build_material(name: str, params: Dict) -> CrossSectionTable:
    params = dict(params)
    try:
        if "energy" in params:
            return CrossSectionTable(name=name, **params)
        return CrossSectionTable.constant(name, **params)
    except TypeError as exc:
        raise ConfigurationError(f"Material {name!r}: {exc}") from exc


def build_cell(params: Dict, surfaces: Dict, index: int) -> Cell:
    name = params.get("name", f"cell_{index}")
    region = []
    for token in params.get("region", []):
        token = str(token).strip()
        sense, key = (-1, token[1:]) if token.startswith("-") else (
            (1, token[1:]) if token.startswith("+") else (None, token)
        )
        if sense is None:
            raise GeometryError(f"Cell {name!r}: region entry {token!r} needs a +/- sign")
        if key not in surfaces:
            raise GeometryError(f"Cell {name!r}: unknown surface {key!r}")
        region.append(-surfaces[key] if sense < 0 else +surfaces[key])
    return Cell(region, material=params.get("material"), name=name)


def build_source(params: Dict):
    params = dict(params)
    kind = params.pop("type", "box")
    if kind not in SOURCE_TYPES:
        raise ConfigurationError(f"Unknown source type {kind!r}")
    try:
        return SOURCE_TYPES[kind](**params)
    except TypeError as exc:
        raise ConfigurationError(f"Source: {exc}") from exc


def build_model(data: Dict, settings: Optional[Settings] = None) -> Model:
    """Build a ``Model`` from a nested dict.

    Parameters
    ----------
    data : dict
        Problem definition (see module docstring).
    settings : Settings, optional
        Overrides the ``"settings"`` entry of *data*.

    Raises
    ------
    ConfigurationError
        Missing sections, unknown names or invalid values.
    """
    for section in ("surfaces", "materials", "cells", "source"):
        if section not in data:
            raise ConfigurationError(f"Model is missing the {section!r} section")

    surfaces = {name: build_surface(name, params) for name, params in data["surfaces"].items()}
    library = CrossSectionLibrary({
        name: build_material(name, params) for name, params in data["materials"].items()
    })
    cells = [build_cell(params, surfaces, i) for i, params in enumerate(data["cells"])]
    for cell in cells:
        if cell.material is not None and cell.material not in library:
            raise ConfigurationError(
                f"Cell {cell.name!r}: unknown material {cell.material!r}"
            )
    geometry = Geometry(cells)
    source = build_source(data["source"])
    if settings is None:
        settings = Settings.from_dict(data.get("settings", {}))
    return Model(geometry, library, source, settings.validate())


def load_model(filepath, settings: Optional[Settings] = None) -> Model:
    """Read a JSON problem definition and build the model."""
    filepath = Path(filepath)
    try:
        with open(filepath) as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{filepath}: invalid JSON ({exc})") from exc
    except OSError as exc:
        raise ConfigurationError(f"{filepath}: cannot read problem file ({exc})") from exc
    return build_model(data, settings)
