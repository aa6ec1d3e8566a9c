"""
Time integration module for the Solar System gravity simulator.

This module advances a `System` by a fixed time increment using one of three
fixed-step schemes of increasing accuracy. Every scheme is built from the
same two primitives:

- `accelerations` (gravsim.forces): Newtonian pull on every body
- `advance`: constant-acceleration kinematic update of one body

Schemes (selected by integer, as the command-line driver does):

1. `step_euler`      Accelerations at the start of the interval are held
                     constant over it. One force evaluation per step.
2. `step_average`    Predictor-corrector. The interval is re-integrated with
                     the average of the start and (estimated) end
                     accelerations, refined a fixed 3 times. Four force
                     evaluations per step.
3. `step_parabolic`  Acceleration is modelled as a parabola in time through
                     samples at t = 0, dt/2 and dt, then integrated exactly.

All steps are pure functions `System -> System`: the input snapshot is never
touched, intermediate states live only inside the call, and the returned
snapshot has `simulated_time` larger by exactly `dt`. None of them check
their numeric preconditions; coincident bodies or non-finite input simply
propagate as non-finite output.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from gravsim.bodies import BodyState
from gravsim.diagnostics import total_energy
from gravsim.forces import accelerations
from gravsim.system import System
from gravsim.vectors import Vec3, VecTable, add, average, norm, scale, sub

# Type aliases
StepFunction = Callable[[System, float], System]

REFINEMENT_PASSES = 3


# ============================================================================
# State advancer
# ============================================================================

def advance(state: BodyState, acceleration: Vec3, dt: float) -> BodyState:
    """
    Move one body over `dt` under a constant acceleration.

        dv = a dt
        dr = v dt + dv dt / 2        (= v dt + a dt² / 2)
        v' = v + dv
        r' = r + dr

    The acceleration may be the instantaneous value, an average, or any
    other estimate chosen by the caller. `state` is left untouched and a
    new BodyState is returned, so the caller can keep the current and the
    candidate states side by side.

    Parameters
    ----------
    state : BodyState
        Position [AU] and velocity [AU/day] at the start of the interval.
    acceleration : ndarray, shape (3,)
        Acceleration to apply [AU/day²].
    dt : float
        Time increment [days].

    Returns
    -------
    BodyState
        State at the end of the interval.

    Examples
    --------
    >>> s = BodyState([0, 0, 0], [1, 0, 0])
    >>> advance(s, np.array([0.0, 2.0, 0.0]), 0.5).position
    array([0.5 , 0.25, 0.  ])
    """
    dv = scale(dt, acceleration)
    dr = add(scale(dt, state.velocity), scale(dt / 2.0, dv))
    return BodyState(
        position=add(state.position, dr),
        velocity=add(state.velocity, dv),
    )


def advance_all(
    states: Sequence[BodyState],
    accs: VecTable,
    dt: float,
) -> Tuple[BodyState, ...]:
    """Apply `advance` to every body; accs[i] drives states[i]."""
    return tuple(advance(state, accs[i], dt) for i, state in enumerate(states))


# ============================================================================
# Integrator family
# ============================================================================

def step_euler(system: System, dt: float) -> System:
    """
    Scheme 1: naive constant-acceleration step.

    The accelerations at the start of the interval are applied as if they
    stayed constant for the whole of `dt`. Cheapest scheme (one force
    evaluation) and the least accurate; the local position error is
    O(dt³), so halving dt cuts the single-step error roughly eightfold,
    but over a full orbit the error accumulates quickly. It serves as the
    baseline the other schemes are compared against.

    Parameters
    ----------
    system : System
        Current snapshot (not modified).
    dt : float
        Time increment [days].

    Returns
    -------
    System
        Snapshot at `system.simulated_time + dt`.
    """
    acc = accelerations(system.bodies, system.states)
    next_states = advance_all(system.states, acc, dt)
    return system.with_states(next_states, dt)


def refine_mean_acceleration(
    system: System,
    dt: float,
) -> Dict[str, object]:
    """
    Predictor-corrector core shared by schemes 2 and 3.

    1. curr_acc  = a(current states)
       next      = advance(current, curr_acc, dt)
    2. repeat REFINEMENT_PASSES times:
           next_acc = a(next)
           mean_acc = average(curr_acc, next_acc)
           next     = advance(current, mean_acc, dt)   # always from current

    The pass count is a fixed constant, not a convergence test.

    Returns
    -------
    dict
        'curr_acc' : ndarray (N, 3), acceleration at the start
        'next_acc' : ndarray (N, 3), acceleration at the last candidate end
        'mean_acc' : ndarray (N, 3), average used for the final candidate
        'next_states' : tuple of BodyState, final candidate end states
    """
    bodies = system.bodies
    current = system.states

    curr_acc = accelerations(bodies, current)
    next_states = advance_all(current, curr_acc, dt)
    next_acc = curr_acc
    mean_acc = curr_acc

    for _ in range(REFINEMENT_PASSES):
        next_acc = accelerations(bodies, next_states)
        mean_acc = average(curr_acc, next_acc)
        next_states = advance_all(current, mean_acc, dt)

    return {
        'curr_acc': curr_acc,
        'next_acc': next_acc,
        'mean_acc': mean_acc,
        'next_states': next_states,
    }


def step_average(system: System, dt: float) -> System:
    """
    Scheme 2: averaged predictor-corrector step.

    Averaging the accelerations at the start and estimated end of the
    interval approximates the time-symmetric mean acceleration over it.
    Each refinement pass re-estimates the end state with the improved mean
    and re-evaluates the end acceleration. Costs 1 + REFINEMENT_PASSES = 4
    force evaluations.

    See Also
    --------
    refine_mean_acceleration : the refinement loop itself
    """
    refined = refine_mean_acceleration(system, dt)
    return system.with_states(refined['next_states'], dt)


def fit_parabola(
    J: np.ndarray,
    K: np.ndarray,
    L: np.ndarray,
    dt: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Fit a(t) = E t² + F t + G through three equally spaced samples.

    J, K, L are the samples at t = 0, dt/2 and dt. Each spatial component
    (and each body, for (N, 3) inputs) is fitted independently.

    With u = 2t/dt - 1 the samples sit at u = -1, 0, +1, where the parabola
    is A u² + B u + K with

        A = (L + J)/2 - K,     B = (L - J)/2.

    Substituting u = p t - 1, p = 2/dt:

        E = A p²,     F = (B - 2A) p,     G = J.

    Returns
    -------
    (E, F, G) : tuple of ndarray
        Coefficients with the same shape as the samples.

    Examples
    --------
    >>> E, F, G = fit_parabola(np.array(1.0), np.array(1.25), np.array(2.0), 1.0)
    >>> float(E), float(F), float(G)
    (1.0, 0.0, 1.0)
    """
    J = np.asarray(J, dtype=np.float64)
    K = np.asarray(K, dtype=np.float64)
    L = np.asarray(L, dtype=np.float64)

    A = (L + J) / 2.0 - K
    B = (L - J) / 2.0
    p = 2.0 / dt
    E = A * p * p
    F = (B - 2.0 * A) * p
    G = J
    return E, F, G


def integrate_parabola(
    state: BodyState,
    E: Vec3,
    F: Vec3,
    G: Vec3,
    dt: float,
) -> BodyState:
    """
    Integrate a(t) = E t² + F t + G twice over [0, dt], exactly.

        v(dt) = v0 + (E/3) dt³ + (F/2) dt² + G dt
        r(dt) = r0 + v0 dt + (E/12) dt⁴ + (F/6) dt³ + (G/2) dt²
    """
    dt2 = dt * dt
    dt3 = dt2 * dt
    dt4 = dt3 * dt

    dv = (E / 3.0) * dt3 + (F / 2.0) * dt2 + G * dt
    dr = scale(dt, state.velocity) + (E / 12.0) * dt4 + (F / 6.0) * dt3 + (G / 2.0) * dt2
    return BodyState(
        position=add(state.position, dr),
        velocity=add(state.velocity, dv),
    )


def step_parabolic(system: System, dt: float) -> System:
    """
    Scheme 3: parabolic acceleration fit.

    Treats each body's acceleration as a quadratic function of time over the
    interval rather than a constant or a plain average:

    1. Run the scheme-2 refinement to get the start acceleration J, the
       converged mean acceleration, and the end acceleration L.
    2. Advance the current states by dt/2 with the mean acceleration and
       evaluate the acceleration K there.
    3. Fit a(t) = E t² + F t + G through (0, J), (dt/2, K), (dt, L) per
       component (`fit_parabola`).
    4. Integrate the parabola analytically for the new velocity and
       position (`integrate_parabola`).

    Costs 5 force evaluations per step (4 from the refinement, 1 at the
    midpoint).

    Notes
    -----
    The midpoint sample is taken at a state built from the refined mean
    acceleration, not from an independent half-step integration, so the
    scheme is still anchored to the scheme-2 estimate of the interval.

    A zero-length step returns the states unchanged; the fit is undefined
    there (p = 2/dt).
    """
    if dt == 0:
        return system.with_states(system.states, dt)

    refined = refine_mean_acceleration(system, dt)
    current = system.states

    middle_states = advance_all(current, refined['mean_acc'], dt / 2.0)
    middle_acc = accelerations(system.bodies, middle_states)

    E, F, G = fit_parabola(refined['curr_acc'], middle_acc, refined['next_acc'], dt)

    next_states = tuple(
        integrate_parabola(state, E[i], F[i], G[i], dt)
        for i, state in enumerate(current)
    )
    return system.with_states(next_states, dt)


SCHEMES: Dict[int, StepFunction] = {
    1: step_euler,
    2: step_average,
    3: step_parabolic,
}

SCHEME_NAMES: Dict[int, str] = {
    1: "euler",
    2: "average",
    3: "parabolic",
}


def get_integrator(scheme: int) -> StepFunction:
    """Look up a step function by its scheme number (1, 2 or 3)."""
    try:
        return SCHEMES[int(scheme)]
    except (KeyError, TypeError, ValueError):
        raise ValueError(
            f"Unknown integration scheme {scheme!r}; "
            f"expected one of {sorted(SCHEMES)}"
        ) from None


# ============================================================================
# Main integration loop
# ============================================================================

def integrate(
    system: System,
    dt: float,
    n_steps: int,
    scheme: int = 3,
    opts: Optional[Dict] = None,
) -> Tuple[System, Dict[str, np.ndarray]]:
    """
    Main integration loop: apply one scheme `n_steps` times.

    Parameters
    ----------
    system : System
        Initial snapshot (not modified).
    dt : float
        Time increment per step [days].
    n_steps : int
        Number of steps. Total simulated time: n_steps * dt.
    scheme : int
        1 (euler), 2 (average) or 3 (parabolic). Default: 3.
    opts : dict, optional
        'save_every' : int (default: 0)
            Record a snapshot every N steps. 0 records only the initial and
            final snapshots.
        'verbose' : bool (default: False)
            Print start, progress and completion lines.
        'progress_every' : int (default: n_steps // 10)
            Steps between progress lines when verbose.

    Returns
    -------
    final : System
        Snapshot after the last step.
    trajectory : dict
        't' : ndarray, shape (S,), simulated times [days]
        'x' : ndarray, shape (S, N, 3), positions [AU]
        'v' : ndarray, shape (S, N, 3), velocities [AU/day]

    Raises
    ------
    ValueError
        If n_steps is negative or the scheme is unknown.

    Examples
    --------
    >>> from gravsim.ephemeris import sun_earth
    >>> final, traj = integrate(sun_earth(), 1.0, 365, scheme=2)
    >>> final.simulated_time
    365.0
    """
    if opts is None:
        opts = {}
    if n_steps < 0:
        raise ValueError(f"n_steps must be non-negative, got {n_steps}")

    step = get_integrator(scheme)
    save_every = int(opts.get('save_every', 0))
    verbose = bool(opts.get('verbose', False))
    progress_every = int(opts.get('progress_every', max(1, n_steps // 10)))

    times: List[float] = [system.simulated_time]
    positions: List[np.ndarray] = [system.positions()]
    velocities: List[np.ndarray] = [system.velocities()]

    E_initial = total_energy(system) if verbose else 0.0

    if verbose:
        print(f"Starting integration: {n_steps} steps, dt={dt:.6e} days, "
              f"scheme {scheme} ({SCHEME_NAMES[int(scheme)]})")
        print(f"  N bodies: {len(system)}")
        print(f"  Initial energy: {E_initial:.10e}")
        print()

    current = system
    for k in range(1, n_steps + 1):
        current = step(current, dt)

        if save_every > 0 and k % save_every == 0 and k != n_steps:
            times.append(current.simulated_time)
            positions.append(current.positions())
            velocities.append(current.velocities())

        if verbose and k % progress_every == 0:
            E = total_energy(current)
            dE = (E - E_initial) / E_initial if E_initial != 0 else 0.0
            print(f"  Step {k:8d}/{n_steps} ({k / n_steps:6.1%})  "
                  f"t={current.simulated_time:12.4f}  E={E:+.10e}  dE/E={dE:+.2e}")

    if n_steps > 0:
        times.append(current.simulated_time)
        positions.append(current.positions())
        velocities.append(current.velocities())

    if verbose:
        E_final = total_energy(current)
        dE_final = (E_final - E_initial) / E_initial if E_initial != 0 else 0.0
        print()
        print("Integration complete!")
        print(f"  Final energy: {E_final:.10e}")
        print(f"  Energy drift: {dE_final:+.2e}")
        print()

    trajectory = {
        't': np.array(times),
        'x': np.array(positions).reshape(len(times), len(system), 3),
        'v': np.array(velocities).reshape(len(times), len(system), 3),
    }
    return current, trajectory


# ============================================================================
# Step size helpers
# ============================================================================

def estimate_orbital_period(
    system: System,
    primary_idx: int = 0,
    secondary_idx: int = 1,
) -> float:
    """
    Estimate the orbital period of one body about another.

    Kepler's third law with the current separation as the semi-major axis:

        T = 2π sqrt(r³ / (GM₁ + GM₂))

    Parameters
    ----------
    system : System
        Needs at least 2 bodies.
    primary_idx, secondary_idx : int
        Indices of the two bodies (default: 0 and 1).

    Returns
    -------
    float
        Estimated period [days].

    Examples
    --------
    >>> from gravsim.ephemeris import sun_earth
    >>> round(estimate_orbital_period(sun_earth()), 1)
    365.3
    """
    if len(system) < 2:
        raise ValueError("Need at least 2 bodies for orbital period estimate")

    b1 = system.bodies[primary_idx]
    b2 = system.bodies[secondary_idx]
    r = norm(sub(system.states[secondary_idx].position,
                 system.states[primary_idx].position))

    gm_total = b1.gm + b2.gm
    return float(2.0 * np.pi * np.sqrt(r ** 3 / gm_total))


def estimate_timestep(system: System, fraction: float = 0.01) -> float:
    """Suggest a step size as a fraction of the estimated orbital period."""
    return fraction * estimate_orbital_period(system)
