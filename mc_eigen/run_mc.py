#!/usr/bin/env python3
"""
Command-Line Driver for k-Eigenvalue Runs
=========================================

Usage
-----
    # Problem from a JSON definition
    python3 -m mc_eigen.run_mc problem.json --hdf5 out/result.h5

    # Built-in verification problem
    python3 -m mc_eigen.run_mc --benchmark bare-sphere --particles 10000 \\
        --inactive 50 --active 100 --workers 4 --plot out/convergence.png

On failure the failure payload is printed as JSON and the exit code is 1.
"""

import argparse
import json
import logging
import sys
from dataclasses import replace

from .benchmarks import BENCHMARKS, EXPECTED_KEFF
from .exceptions import MCEigenError
from .exporter import failure_payload, write_hdf5, write_json
from .model import load_model

logger = logging.getLogger(__name__)

# Command-line option -> Settings field
_OVERRIDES = {
    "particles": "n_particles",
    "inactive": "n_inactive",
    "active": "n_active",
    "seed": "seed",
    "workers": "n_workers",
    "entropy_tolerance": "entropy_tolerance",
    "max_lost_fraction": "max_lost_particle_fraction",
    "histories_per_task": "histories_per_task",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Monte Carlo k-eigenvalue power iteration',
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        'input', nargs='?',
        help='JSON problem definition (surfaces, materials, cells, source, settings)'
    )
    parser.add_argument(
        '--benchmark', choices=sorted(BENCHMARKS),
        help='Run a built-in verification problem instead of INPUT'
    )
    parser.add_argument('--particles', type=int, help='Histories per generation')
    parser.add_argument('--inactive', type=int, help='Maximum inactive generations')
    parser.add_argument('--active', type=int, help='Active generations')
    parser.add_argument('--seed', type=int, help='Top-level random seed')
    parser.add_argument('--workers', type=int, help='Worker processes (default: 1)')
    parser.add_argument('--entropy-tolerance', type=float,
                        help='Entropy standard deviation for source convergence [nats]')
    parser.add_argument('--max-lost-fraction', type=float,
                        help='Lost-history fraction per generation that fails the run')
    parser.add_argument('--histories-per-task', type=int,
                        help='Histories per work unit')
    parser.add_argument('--strict', action='store_true',
                        help='Fail instead of flagging an unconverged source')
    parser.add_argument('--hdf5', help='Write the result to this HDF5 file')
    parser.add_argument('--json', help='Write the result summary to this JSON file')
    parser.add_argument('--plot', help='Save a convergence figure to this file')
    parser.add_argument('--quiet', action='store_true', help='No progress output')
    parser.add_argument(
        '--log-level', default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: WARNING)'
    )
    return parser


def _load(args):
    if args.benchmark:
        return BENCHMARKS[args.benchmark]()
    return load_model(args.input)


def main(argv=None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if bool(args.input) == bool(args.benchmark):
        parser.error('give exactly one of INPUT or --benchmark')

    logging.basicConfig(level=getattr(logging, args.log_level),
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        model = _load(args)
        overrides = {
            field: getattr(args, option)
            for option, field in _OVERRIDES.items()
            if getattr(args, option) is not None
        }
        if args.strict:
            overrides["strict_convergence"] = True
        settings = replace(model.settings, **overrides).validate()
        model.settings = settings
        result = model.run(verbose=not args.quiet)
    except MCEigenError as exc:
        logger.error("%s", exc)
        print(json.dumps(failure_payload(exc), indent=2))
        return 1

    if args.benchmark and not args.quiet:
        expected = EXPECTED_KEFF[args.benchmark]
        deviation = (result.k_eff - expected) / max(result.k_eff_stddev, 1e-12)
        print(f"  Reference k       = {expected:.5f}  ({deviation:+.2f} sigma)")

    if args.hdf5:
        print(f"  Saved: {write_hdf5(result, args.hdf5)}")
    if args.json:
        print(f"  Saved: {write_json(result, args.json)}")
    if args.plot:
        from .plotting import plot_convergence
        print(f"  Saved: {plot_convergence(result, args.plot)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
