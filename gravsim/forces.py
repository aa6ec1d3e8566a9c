"""
Newtonian gravitational accelerations for a small set of bodies.

Every unordered pair (i, j), i < j, is visited exactly once and contributes
an equal-and-opposite pull scaled by the other body's GM:

    rv = x_i - x_j
    a_i -= GM_j * rv / |rv|³
    a_j += GM_i * rv / |rv|³

so Σ GM_i a_i = 0 up to rounding, i.e. total momentum is conserved by
construction. A body never acts on itself.

Coincident bodies (|rv| = 0) are outside the model: the division is not
guarded, numpy issues its usual RuntimeWarning and the affected entries
become non-finite.
"""

from typing import Sequence

import numpy as np

from gravsim.bodies import Body, BodyState
from gravsim.vectors import VecTable, dot, scale, sub


def accelerations(
    bodies: Sequence[Body],
    states: Sequence[BodyState],
) -> VecTable:
    """
    Compute the gravitational acceleration of every body.

    Parameters
    ----------
    bodies : sequence of Body
        Bodies in pairing order (supplies GM).
    states : sequence of BodyState
        One state per body (supplies positions). Velocities are ignored.

    Returns
    -------
    acc : ndarray, shape (N, 3)
        acc[i] is the acceleration of bodies[i] [AU/day²].

    Raises
    ------
    ValueError
        If the two sequences differ in length.

    Examples
    --------
    >>> from gravsim.bodies import Body, BodyState
    >>> bodies = [Body("A", 1.0), Body("B", 2.0)]
    >>> states = [BodyState([0, 0, 0], [0, 0, 0]), BodyState([2, 0, 0], [0, 0, 0])]
    >>> accelerations(bodies, states)
    array([[ 0.5 ,  0.  ,  0.  ],
           [-0.25,  0.  ,  0.  ]])
    """
    n = len(bodies)
    if len(states) != n:
        raise ValueError(
            f"accelerations: got {n} bodies but {len(states)} states"
        )

    acc = np.zeros((n, 3), dtype=np.float64)

    for i in range(n - 1):
        igm = bodies[i].gm
        xi = states[i].position
        for j in range(i + 1, n):
            jgm = bodies[j].gm
            rv = sub(xi, states[j].position)  # points from body j to body i
            r2 = dot(rv, rv)
            r3 = r2 * np.sqrt(r2)

            acc[i] -= scale(jgm / r3, rv)
            acc[j] += scale(igm / r3, rv)

    return acc


def system_accelerations(system) -> VecTable:
    """Accelerations for every body of a `System`."""
    return accelerations(system.bodies, system.states)
