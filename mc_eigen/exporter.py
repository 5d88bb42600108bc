"""
Result Export: HDF5 tensors and JSON summaries
==============================================

Layout of the HDF5 result file::

    /                     attrs: status, k_eff, k_eff_stddev, ... (scalars)
    /tallies/cell_ids     (n_cells,) int
    /tallies/flux         (n_cells,) track-length flux per source neutron
    /tallies/flux_std
    /tallies/fission_rate, fission_rate_std
    /tallies/absorption_rate, absorption_rate_std
    /convergence/keff_history      (n_generations,) NaN where undefined
    /convergence/entropy_history   (n_generations,)

Every per-cell dataset is indexed by ``/tallies/cell_ids``.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Union

import h5py
import numpy as np

from .eigenvalue import EigenvalueResult
from .exceptions import ConfigurationError, RunFailedError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_TALLY_DATASETS = (
    "flux", "flux_std",
    "fission_rate", "fission_rate_std",
    "absorption_rate", "absorption_rate_std",
)
_SCALAR_ATTRS = (
    "status", "k_eff", "k_eff_stddev", "n_inactive_run", "n_active_run",
    "last_completed_generation", "n_particles", "total_wall_time",
)


def write_hdf5(result: EigenvalueResult, filepath: PathLike) -> Path:
    """Save *result* to an HDF5 file and return its path."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with h5py.File(filepath, "w") as f:
        for name in _SCALAR_ATTRS:
            f.attrs[name] = getattr(result, name)
        f.attrs["source_not_converged"] = bool(result.source_not_converged)
        f.attrs["convergence_generation"] = (
            -1 if result.convergence_generation is None else result.convergence_generation
        )
        f.attrs["neutron_balance"] = json.dumps(result.neutron_balance)
        f.attrs["cell_names"] = json.dumps(result.cell_names)

        tallies = f.create_group("tallies")
        tallies.create_dataset("cell_ids", data=np.asarray(result.cell_ids, dtype=np.int64))
        for name in _TALLY_DATASETS:
            tallies.create_dataset(name, data=np.asarray(getattr(result, name)))

        convergence = f.create_group("convergence")
        convergence.create_dataset(
            "keff_history", data=np.asarray(result.keff_history, dtype=np.float64)
        )
        convergence.create_dataset(
            "entropy_history", data=np.asarray(result.entropy_history, dtype=np.float64)
        )

    logger.info("Result written to %s", filepath)
    return filepath


def read_hdf5(filepath: PathLike) -> EigenvalueResult:
    """Load a result written by ``write_hdf5``."""
    with h5py.File(filepath, "r") as f:
        attrs = f.attrs
        status = attrs["status"]
        if isinstance(status, bytes):
            status = status.decode()
        convergence_generation = int(attrs["convergence_generation"])
        tallies = {name: f["tallies"][name][()] for name in _TALLY_DATASETS}
        return EigenvalueResult(
            status=str(status),
            k_eff=float(attrs["k_eff"]),
            k_eff_stddev=float(attrs["k_eff_stddev"]),
            cell_ids=f["tallies"]["cell_ids"][()],
            keff_history=f["convergence"]["keff_history"][()].tolist(),
            entropy_history=f["convergence"]["entropy_history"][()].tolist(),
            source_not_converged=bool(attrs["source_not_converged"]),
            convergence_generation=(
                None if convergence_generation < 0 else convergence_generation
            ),
            n_inactive_run=int(attrs["n_inactive_run"]),
            n_active_run=int(attrs["n_active_run"]),
            last_completed_generation=int(attrs["last_completed_generation"]),
            neutron_balance=json.loads(attrs["neutron_balance"]),
            n_particles=int(attrs["n_particles"]),
            cell_names=json.loads(attrs["cell_names"]),
            total_wall_time=float(attrs["total_wall_time"]),
            **tallies,
        )


def write_json(payload, filepath: PathLike) -> Path:
    """Write a result (or any JSON-ready dict) as indented JSON."""
    if isinstance(payload, EigenvalueResult):
        payload = payload.to_dict()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w") as f:
        json.dump(payload, f, indent=2)
    return filepath


def failure_payload(error: Exception) -> Dict:
    """``{status: failed, reason, last_completed_generation}`` for *error*."""
    if isinstance(error, RunFailedError):
        payload = error.payload()
    elif isinstance(error, ConfigurationError):
        payload = {
            "status": "failed",
            "reason": "configuration_error",
            "last_completed_generation": -1,
        }
    else:
        payload = {
            "status": "failed",
            "reason": f"internal_error: {type(error).__name__}",
            "last_completed_generation": -1,
        }
    payload["message"] = str(error)
    return payload
