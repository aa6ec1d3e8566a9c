#!/usr/bin/env python3
"""
Command-line interface for the Solar System gravity simulator.

Runs one integration scheme over a fixed number of steps and compares the
final state with a reference state. It handles:
- Configuration loading and validation (YAML, see gravsim.io_cfg)
- Simulation execution with optional progress output
- Per-body comparison against the reference state
- Summary output

Usage:
    python -m gravsim.run                         # built-in Solar System test
    python -m gravsim.run --scheme 1              # same, naive scheme
    python -m gravsim.run config.yaml --verbose
    python -m gravsim.run config.yaml --validate-only
    python -m gravsim.run --create-example solar_system.yaml

Without a configuration file the built-in ten-body Solar System is stepped
from TT = 0 to the TT = 36000 day reference state (1000 steps of 36 days by
default) and every body's final position is scored against it.
"""

import argparse
import sys
import time
from typing import Any, Dict, List, Optional

import numpy as np

from gravsim.diagnostics import compare_systems, total_energy, total_momentum
from gravsim.dynamics import (
    SCHEMES,
    SCHEME_NAMES,
    estimate_orbital_period,
    estimate_timestep,
    integrate,
)
from gravsim.ephemeris import solar_system, solar_system_reference
from gravsim.io_cfg import create_example_config, load_config, validate_config
from gravsim.system import MAX_BODIES

DEFAULT_STEPS = 1000


# ============================================================================
# Configuration assembly
# ============================================================================

def builtin_config(scheme: int = 3, steps: int = DEFAULT_STEPS) -> Dict[str, Any]:
    """Configuration for the built-in Solar System test run."""
    system = solar_system()
    reference = solar_system_reference()
    return {
        'system': system,
        'numerics': {
            'dt': (reference.simulated_time - system.simulated_time) / steps,
            'steps': steps,
            'scheme': scheme,
            'capacity': MAX_BODIES,
        },
        'reference': reference,
        'outputs': {'save_every': 0, 'table_rows': 20, 'compare_body': 'Earth'},
    }


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply --scheme/--steps/--dt on top of a loaded configuration.

    When --steps is given without --dt and a reference state exists, dt is
    recomputed so the run still ends at the reference time.
    """
    numerics = dict(config['numerics'])
    if args.scheme is not None:
        numerics['scheme'] = args.scheme
    if args.steps is not None:
        numerics['steps'] = args.steps
    if args.dt is not None:
        numerics['dt'] = args.dt
    elif args.steps is not None and config.get('reference') is not None and args.steps > 0:
        span = config['reference'].simulated_time - config['system'].simulated_time
        numerics['dt'] = span / args.steps

    config = dict(config)
    config['numerics'] = numerics
    return config


# ============================================================================
# Main simulation runner
# ============================================================================

def run_simulation(config: Dict[str, Any], verbose: bool = False) -> Dict[str, Any]:
    """
    Run the simulation described by `config`.

    Parameters
    ----------
    config : dict
        Loaded and validated configuration (see gravsim.io_cfg.load_config)
    verbose : bool
        Enable verbose progress output

    Returns
    -------
    results : dict
        - 'final': System after the last step
        - 'trajectory': snapshots from dynamics.integrate
        - 'comparison': per-body rows from compare_systems, or None
        - 'summary': summary statistics dict
    """
    system = config['system']
    numerics = config['numerics']
    outputs = config['outputs']
    reference = config.get('reference')

    dt = numerics['dt']
    n_steps = numerics['steps']
    scheme = numerics['scheme']

    if verbose:
        print("=" * 80)
        print("SOLAR SYSTEM GRAVITY SIMULATOR")
        print("=" * 80)
        print()
        print(f"Bodies ({len(system)}):")
        for body, state in system:
            print(f"  {body.name:10s}: gm={body.gm:.10e}  {state}")
        print()
        print("Integration parameters:")
        print(f"  Scheme:             {scheme} ({SCHEME_NAMES[scheme]})")
        print(f"  Timestep dt:        {dt:.6e} days")
        print(f"  Total steps:        {n_steps:,}")
        print(f"  Start time:         {system.simulated_time:.6f} days")
        print(f"  End time:           {system.simulated_time + dt * n_steps:.6f} days")
        if len(system) >= 2:
            T_orbit = estimate_orbital_period(system)
            print(f"  Est. period (0-1):  {T_orbit:.3f} days")
            print(f"  Suggested dt:       {estimate_timestep(system):.6e} days (1% of period)")
        print()

    opts = {
        'save_every': outputs['save_every'],
        'verbose': verbose,
        'progress_every': max(1, n_steps // 10),
    }

    t_start = time.time()
    final, trajectory = integrate(system, dt, n_steps, scheme, opts)
    elapsed = time.time() - t_start

    comparison = compare_systems(final, reference) if reference is not None else None

    summary = compute_summary(system, final, comparison, elapsed, n_steps,
                              compare_body=outputs.get('compare_body'))

    return {
        'final': final,
        'trajectory': trajectory,
        'comparison': comparison,
        'summary': summary,
    }


def compute_summary(
    initial,
    final,
    comparison: Optional[List[Dict[str, Any]]],
    elapsed_time: float,
    n_steps: int,
    compare_body: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Compute summary statistics from simulation results.

    Parameters
    ----------
    initial, final : System
        Snapshots before and after the run
    comparison : list of dict or None
        Output of compare_systems against the reference state
    elapsed_time : float
        Wall-clock time for integration [seconds]
    n_steps : int
        Number of steps taken
    compare_body : str, optional
        Body whose discrepancy is reported on its own

    Returns
    -------
    summary : dict
        timing, conservation (momentum/energy drift) and accuracy sections
    """
    E_initial = total_energy(initial)
    E_final = total_energy(final)
    E_drift_rel = (E_final - E_initial) / E_initial if E_initial != 0 else 0.0

    p_initial = total_momentum(initial)
    p_final = total_momentum(final)

    accuracy = None
    if comparison:
        # Bodies with a reference at the origin have no relative discrepancy
        scored = [row for row in comparison if np.isfinite(row['discrepancy'])]
        worst = max(scored, key=lambda row: row['discrepancy']) if scored else None
        accuracy = {
            'max_discrepancy': worst['discrepancy'] if worst else float('nan'),
            'max_discrepancy_body': worst['name'] if worst else None,
            'max_error_au': max(row['error_au'] for row in comparison),
            'body': None,
        }
        if compare_body is not None:
            for row in comparison:
                if row['name'] == compare_body:
                    accuracy['body'] = row
                    break

    return {
        'timing': {
            'elapsed_seconds': elapsed_time,
            'steps_per_second': n_steps / elapsed_time if elapsed_time > 0 else 0.0,
        },
        'integration': {
            'n_steps': n_steps,
            'start_time': initial.simulated_time,
            'end_time': final.simulated_time,
        },
        'energy': {
            'initial': E_initial,
            'final': E_final,
            'drift_relative': E_drift_rel,
        },
        'momentum': {
            'initial_magnitude': float(np.linalg.norm(p_initial)),
            'final_magnitude': float(np.linalg.norm(p_final)),
            'drift_magnitude': float(np.linalg.norm(p_final - p_initial)),
        },
        'accuracy': accuracy,
    }


def print_summary(summary: Dict[str, Any], verbose: bool = False) -> None:
    """Print human-readable simulation summary."""
    print()
    print("=" * 80)
    print("SIMULATION SUMMARY")
    print("=" * 80)
    print()

    t = summary['timing']
    print("Performance:")
    print(f"  Wall time:          {t['elapsed_seconds']:.2f} seconds")
    print(f"  Speed:              {t['steps_per_second']:.1f} steps/second")
    print()

    i = summary['integration']
    print("Integration:")
    print(f"  Total steps:        {i['n_steps']:,}")
    print(f"  Simulated time:     {i['start_time']:.6f} -> {i['end_time']:.6f} days")
    print()

    e = summary['energy']
    print("Energy conservation:")
    print(f"  Initial energy:     {e['initial']:+.10e}")
    print(f"  Final energy:       {e['final']:+.10e}")
    print(f"  Relative drift:     {e['drift_relative']:+.6e}")
    print()

    if verbose:
        m = summary['momentum']
        print("Momentum conservation:")
        print(f"  Initial |p|:        {m['initial_magnitude']:.6e}")
        print(f"  Final |p|:          {m['final_magnitude']:.6e}")
        print(f"  Drift |dp|:         {m['drift_magnitude']:.6e}")
        print()

    a = summary['accuracy']
    if a is not None:
        print("Accuracy against reference:")
        print(f"  Max discrepancy:    {a['max_discrepancy']:.6e} ({a['max_discrepancy_body']})")
        print(f"  Max error:          {a['max_error_au']:.6e} AU")
        if a['body'] is not None:
            row = a['body']
            label = f"{row['name']} error:"
            print(f"  {label:<20s}{row['error_au']:.6e} AU "
                  f"(discrepancy {row['discrepancy']:.6e})")
        print()


def print_comparison_table(comparison: List[Dict[str, Any]]) -> None:
    """Print simulated vs reference position for every body."""
    print()
    print("=" * 80)
    print("COMPARISON WITH REFERENCE")
    print("=" * 80)
    print()
    print(f"{'Body':>10s}  {'':>4s}  {'x':>14s}  {'y':>14s}  {'z':>14s}  "
          f"{'error [AU]':>12s}  {'discrepancy':>12s}")
    print("-" * 92)
    for row in comparison:
        s = row['simulated']
        r = row['reference']
        print(f"{row['name']:>10s}  {'sim':>4s}  {s[0]:+14.6e}  {s[1]:+14.6e}  {s[2]:+14.6e}  "
              f"{row['error_au']:12.6e}  {row['discrepancy']:12.6e}")
        print(f"{'':>10s}  {'ref':>4s}  {r[0]:+14.6e}  {r[1]:+14.6e}  {r[2]:+14.6e}")
    print()


def print_trajectory_table(
    trajectory: Dict,
    bodies_names: List[str],
    max_rows: int = 20,
) -> None:
    """
    Print formatted table of recorded snapshots.

    Parameters
    ----------
    trajectory : dict
        Trajectory data (t, x, v)
    bodies_names : List[str]
        Names of bodies
    max_rows : int
        Maximum rows to print (show first/last if exceeded)
    """
    times = trajectory['t']
    positions = trajectory['x']
    velocities = trajectory['v']
    n_snapshots = len(times)

    print()
    print("=" * 80)
    print("TRAJECTORY SAMPLE")
    print("=" * 80)
    print()

    if n_snapshots <= max_rows:
        rows = list(range(n_snapshots))
    else:
        n_show = max(1, max_rows // 2)
        rows = list(range(n_show)) + list(range(n_snapshots - n_show, n_snapshots))

    print(f"{'Time':>12s}  {'Body':>10s}  {'x':>14s}  {'y':>14s}  {'z':>14s}  "
          f"{'vx':>14s}  {'vy':>14s}  {'vz':>14s}")
    print("-" * 110)

    last_printed_idx = -1
    for i in rows:
        if i > last_printed_idx + 1:
            print(f"{'...':>12s}  {'...':>10s}")

        t = times[i]
        for j, name in enumerate(bodies_names):
            x = positions[i, j]
            v = velocities[i, j]
            print(f"{t:12.4f}  {name:>10s}  "
                  f"{x[0]:+14.6e}  {x[1]:+14.6e}  {x[2]:+14.6e}  "
                  f"{v[0]:+14.6e}  {v[1]:+14.6e}  {v[2]:+14.6e}")

        last_printed_idx = i

    print()


# ============================================================================
# Command-line interface
# ============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='gravsim.run',
        description=(
            'Solar System gravity simulator: integrate a small set of bodies '
            'with a fixed-step scheme and compare the final state with a '
            'reference state.'
        ),
        epilog=(
            'Schemes:\n'
            '  1  euler      constant acceleration over each step\n'
            '  2  average    start/end averaged acceleration, 3 refinements\n'
            '  3  parabolic  quadratic acceleration fit, integrated exactly\n'
            '\n'
            'Examples:\n'
            '  python -m gravsim.run\n'
            '  python -m gravsim.run --scheme 1 --steps 10000\n'
            '  python -m gravsim.run config.yaml --verbose\n'
            '  python -m gravsim.run --create-example solar_system.yaml\n'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        'config',
        type=str,
        nargs='?',
        default=None,
        help='Path to YAML configuration file (default: built-in Solar System test)',
    )

    parser.add_argument(
        '--scheme', '-s',
        type=int,
        choices=sorted(SCHEMES),
        default=None,
        help='Integration scheme (default: from config, or 3)',
    )

    parser.add_argument(
        '--steps', '-n',
        type=int,
        default=None,
        help=f'Number of steps (default: from config, or {DEFAULT_STEPS})',
    )

    parser.add_argument(
        '--dt',
        type=float,
        default=None,
        help='Step size in days (default: from config, or span/steps)',
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output (progress, diagnostics, etc.)',
    )

    parser.add_argument(
        '--validate-only',
        action='store_true',
        help='Validate configuration and exit (no simulation)',
    )

    parser.add_argument(
        '--create-example',
        type=str,
        metavar='PATH',
        default=None,
        help='Write an example configuration to PATH and exit',
    )

    parser.add_argument(
        '--no-table',
        action='store_true',
        help='Skip comparison and trajectory tables',
    )

    return parser


def main(argv=None):
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.create_example is not None:
        try:
            create_example_config(args.create_example)
        except OSError as e:
            print(f"ERROR: Could not write example configuration: {e}", file=sys.stderr)
            return 1
        print(f"Example configuration written to: {args.create_example}")
        return 0

    # 1) Load configuration
    try:
        if args.config is None:
            steps = args.steps if args.steps is not None else DEFAULT_STEPS
            if steps <= 0:
                raise ValueError(f"Number of steps must be positive, got {steps}")
            config = builtin_config(steps=steps)
        else:
            if args.verbose:
                print(f"Loading configuration from: {args.config}")
                print()
            config = load_config(args.config)
        config = apply_overrides(config, args)
    except FileNotFoundError:
        print(f"ERROR: Configuration file not found: {args.config}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    # 2) Validate configuration
    is_valid, warnings_list = validate_config(config)

    if warnings_list:
        print("Configuration warnings/errors:")
        for w in warnings_list:
            print(f"    - {w}")
        print()

    if not is_valid:
        print("Configuration is INVALID. Please fix errors above.", file=sys.stderr)
        return 1

    if args.validate_only:
        print("Configuration validated successfully. Exiting (--validate-only mode).")
        return 0

    # 3) Run simulation
    try:
        results = run_simulation(config, verbose=args.verbose)
    except Exception as e:
        print(f"\nERROR: Simulation failed: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    # 4) Report
    numerics = config['numerics']
    print(f"Scheme {numerics['scheme']} ({SCHEME_NAMES[numerics['scheme']]}): "
          f"{numerics['steps']} steps of {numerics['dt']} days per step.")

    if not args.no_table:
        if results['comparison'] is not None:
            print_comparison_table(results['comparison'])
        if config['outputs']['save_every'] > 0:
            print_trajectory_table(
                results['trajectory'],
                config['system'].names(),
                max_rows=config['outputs']['table_rows'],
            )

    print_summary(results['summary'], verbose=args.verbose)

    return 0


if __name__ == '__main__':
    sys.exit(main())
