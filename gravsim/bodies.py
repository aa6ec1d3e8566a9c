"""Body and state value types for the gravity simulator.

A simulated body is split in two:
- `Body`: the immutable identity of the body (name and gravitational
  parameter GM). It never changes during a run.
- `BodyState`: its kinematic state (position and velocity) at one instant.
  Integrators produce a new BodyState for every step instead of editing the
  old one.

Units follow the ephemeris tables: AU for length, days for time, so GM is in
AU³/day² and velocity in AU/day.
"""

from dataclasses import dataclass
import math

import numpy as np

from gravsim.vectors import Vec3


def _as_vec3(value, label: str) -> Vec3:
    """Copy `value` into a read-only float64 array of shape (3,)."""
    arr = np.array(value, dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"{label} must have shape (3,), got {arr.shape}")
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class Body:
    """A gravitating body.

    Attributes
    ----------
    name : str
        Identifier used for reporting (e.g. "Sun", "Earth").
    gm : float
        Gravitational parameter G*M [AU³/day²]. Zero is allowed and makes a
        test particle that feels gravity but exerts none.

    Examples
    --------
    >>> sun = Body("Sun", 0.2959122082855911e-03)
    >>> sun.gm
    0.0002959122082855911
    >>> Body("Anti", -1.0)
    Traceback (most recent call last):
    ...
    ValueError: Body 'Anti': gm must be finite and >= 0, got -1.0
    """

    name: str
    gm: float

    def __post_init__(self):
        gm = float(self.gm)
        if not math.isfinite(gm) or gm < 0.0:
            raise ValueError(
                f"Body '{self.name}': gm must be finite and >= 0, got {self.gm}"
            )
        object.__setattr__(self, 'gm', gm)


@dataclass(frozen=True, eq=False)
class BodyState:
    """Position and velocity of one body at one instant.

    Both vectors are stored as read-only copies so a state can be shared
    freely between the "current", "candidate" and "middle" temporaries of
    a multi-stage integrator without aliasing.

    Attributes
    ----------
    position : np.ndarray
        Position vector [AU], shape (3,).
    velocity : np.ndarray
        Velocity vector [AU/day], shape (3,).
    """

    position: Vec3
    velocity: Vec3

    def __post_init__(self):
        object.__setattr__(self, 'position', _as_vec3(self.position, "Position"))
        object.__setattr__(self, 'velocity', _as_vec3(self.velocity, "Velocity"))

    def __eq__(self, other) -> bool:
        if not isinstance(other, BodyState):
            return NotImplemented
        return (
            np.array_equal(self.position, other.position)
            and np.array_equal(self.velocity, other.velocity)
        )

    def __hash__(self) -> int:
        # + 0.0 folds -0.0 into 0.0 so equal states hash equally
        return hash(((self.position + 0.0).tobytes(), (self.velocity + 0.0).tobytes()))

    def __str__(self) -> str:
        x, v = self.position, self.velocity
        return (
            f"x = [{x[0]:+.6e}, {x[1]:+.6e}, {x[2]:+.6e}]  "
            f"v = [{v[0]:+.6e}, {v[1]:+.6e}, {v[2]:+.6e}]"
        )
