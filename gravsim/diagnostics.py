"""Diagnostics module for the gravity simulator.

Quantities used to score and sanity-check a run:
- Relative discrepancy |a - b| / |a| between a simulated and a reference
  position (the accuracy score used to compare schemes)
- Absolute position error |a - b| [AU]
- Total momentum Σ GM_a v_a (G-scaled; conserved by the pairwise force law)
- Total energy Σ ½ GM_a v_a² - Σ_{a<b} GM_a GM_b / r_ab (G-scaled)
- Per-body comparison of a simulated System against a reference System

Masses only enter through GM, so momentum and energy here are the physical
values multiplied by G. Drift ratios are unaffected.
"""

from typing import Any, Dict, List

import numpy as np

from gravsim.vectors import Vec3, dot, norm, scale, sub


def relative_discrepancy(a: Vec3, b: Vec3) -> float:
    """Relative difference |a - b| / |a|.

    `a` is the reference vector. |a| = 0 is not guarded against; reference
    positions are never the origin in practice.

    Examples
    --------
    >>> relative_discrepancy(np.array([2.0, 0, 0]), np.array([2.0, 0.1, 0]))
    0.05
    """
    return float(norm(sub(a, b)) / norm(a))


def vector_error(a: Vec3, b: Vec3) -> float:
    """Absolute difference |a - b| (AU for positions)."""
    return float(norm(sub(a, b)))


def total_momentum(system) -> Vec3:
    """Total G-scaled linear momentum Σ GM_a v_a.

    For a barycentric initial state this stays close to zero throughout the
    run; any growth is integration error.
    """
    p = np.zeros(3)
    for body, state in system:
        p = p + scale(body.gm, state.velocity)
    return p


def total_energy(system) -> float:
    """Total G-scaled energy: kinetic plus pairwise potential.

    Formula:
        E = Σ_a ½ GM_a v_a² - Σ_{a<b} GM_a GM_b / r_ab

    Raises
    ------
    ValueError
        If two bodies coincide (the potential diverges).
    """
    bodies = system.bodies
    states = system.states

    T = 0.0
    for body, state in zip(bodies, states):
        T += 0.5 * body.gm * dot(state.velocity, state.velocity)

    U = 0.0
    for i in range(len(bodies)):
        for j in range(i + 1, len(bodies)):
            r_ab = norm(sub(states[j].position, states[i].position))
            if r_ab == 0.0:
                raise ValueError(
                    f"Bodies '{bodies[i].name}' and '{bodies[j].name}' have "
                    f"identical positions. Potential energy diverges."
                )
            U -= bodies[i].gm * bodies[j].gm / r_ab

    return float(T + U)


def compare_systems(simulated, reference) -> List[Dict[str, Any]]:
    """Compare each simulated body with the same-named reference body.

    Parameters
    ----------
    simulated : System
        End state of a run.
    reference : System
        Known-good state at (ideally) the same simulated time.

    Returns
    -------
    list of dict
        One entry per simulated body, in system order:
        'name', 'simulated' (position), 'reference' (position),
        'error_au' (|ref - sim|) and 'discrepancy' (|ref - sim| / |ref|, NaN
        when the reference position is the origin).

    Raises
    ------
    KeyError
        If a simulated body has no counterpart in the reference.
    """
    rows = []
    for body, state in simulated:
        ref_pos = reference.state_of(body.name).position
        rows.append({
            'name': body.name,
            'simulated': state.position,
            'reference': ref_pos,
            'error_au': vector_error(ref_pos, state.position),
            'discrepancy': (relative_discrepancy(ref_pos, state.position)
                            if norm(ref_pos) > 0.0 else float('nan')),
        })
    return rows
