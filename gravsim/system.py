"""Simulation container: the bodies, their states, and the simulated time.

A `System` is an immutable snapshot. Integrators never edit one in place;
they build the next snapshot with `System.with_states`, which keeps the
body list (and therefore the pairing index used by the force loop) fixed
and advances `simulated_time` by exactly the step increment.
"""

from typing import Iterable, Iterator, List, Sequence, Tuple

import numpy as np

from gravsim.bodies import Body, BodyState

MAX_BODIES = 10


class CapacityError(ValueError):
    """Raised when a System is asked to hold more bodies than its capacity."""


class System:
    """Ordered collection of (Body, BodyState) pairs plus simulated time.

    Parameters
    ----------
    bodies : sequence of Body
        Bodies in pairing order. The order must stay the same for the whole
        run.
    states : sequence of BodyState
        One state per body, matched by index.
    simulated_time : float
        Time since the initial epoch [days].
    capacity : int
        Maximum number of bodies (default MAX_BODIES).

    Raises
    ------
    CapacityError
        If more bodies than `capacity` are given.
    ValueError
        If bodies and states differ in length, or an entry has the wrong
        type.
    """

    __slots__ = ('_bodies', '_states', '_time', '_capacity')

    def __init__(
        self,
        bodies: Sequence[Body],
        states: Sequence[BodyState],
        simulated_time: float = 0.0,
        capacity: int = MAX_BODIES,
    ):
        bodies = tuple(bodies)
        states = tuple(states)

        if capacity < 0:
            raise ValueError(f"capacity must be non-negative, got {capacity}")
        if len(bodies) > capacity:
            raise CapacityError(
                f"System capacity is {capacity} bodies, got {len(bodies)}"
            )
        if len(bodies) != len(states):
            raise ValueError(
                f"Got {len(bodies)} bodies but {len(states)} states; "
                f"every body needs exactly one state"
            )
        for i, (body, state) in enumerate(zip(bodies, states)):
            if not isinstance(body, Body):
                raise ValueError(f"Entry {i}: expected Body, got {type(body).__name__}")
            if not isinstance(state, BodyState):
                raise ValueError(f"Entry {i}: expected BodyState, got {type(state).__name__}")

        self._bodies = bodies
        self._states = states
        self._time = float(simulated_time)
        self._capacity = int(capacity)

    @classmethod
    def from_table(
        cls,
        rows: Iterable[Tuple[str, float, Sequence[float], Sequence[float]]],
        simulated_time: float = 0.0,
        capacity: int = MAX_BODIES,
    ) -> "System":
        """Build a System from (name, gm, position, velocity) rows.

        This is the shape produced by the ephemeris tables and by the YAML
        configuration loader.

        Examples
        --------
        >>> sim = System.from_table([
        ...     ("Sun", 2.959122082855911e-04, [0, 0, 0], [0, 0, 0]),
        ...     ("Earth", 8.997011346712499e-10, [1, 0, 0], [0, 0.0172, 0]),
        ... ])
        >>> sim.names()
        ['Sun', 'Earth']
        """
        bodies: List[Body] = []
        states: List[BodyState] = []
        for name, gm, position, velocity in rows:
            bodies.append(Body(name, gm))
            states.append(BodyState(position, velocity))
        return cls(bodies, states, simulated_time, capacity)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def bodies(self) -> Tuple[Body, ...]:
        return self._bodies

    @property
    def states(self) -> Tuple[BodyState, ...]:
        return self._states

    @property
    def simulated_time(self) -> float:
        return self._time

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._bodies)

    def __iter__(self) -> Iterator[Tuple[Body, BodyState]]:
        return iter(zip(self._bodies, self._states))

    def names(self) -> List[str]:
        return [body.name for body in self._bodies]

    def gms(self) -> np.ndarray:
        """Gravitational parameters, shape (N,)."""
        return np.array([body.gm for body in self._bodies], dtype=np.float64)

    def positions(self) -> np.ndarray:
        """Positions stacked into a fresh (N, 3) array."""
        if not self._states:
            return np.zeros((0, 3))
        return np.array([s.position for s in self._states])

    def velocities(self) -> np.ndarray:
        """Velocities stacked into a fresh (N, 3) array."""
        if not self._states:
            return np.zeros((0, 3))
        return np.array([s.velocity for s in self._states])

    def index_of(self, name: str) -> int:
        for i, body in enumerate(self._bodies):
            if body.name == name:
                return i
        raise KeyError(f"No body named '{name}' in system")

    def state_of(self, name: str) -> BodyState:
        return self._states[self.index_of(name)]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def with_states(
        self,
        states: Sequence[BodyState],
        dt: float = 0.0,
    ) -> "System":
        """Return the next snapshot: same bodies, new states, time + dt."""
        states = tuple(states)
        if len(states) != len(self._bodies):
            raise ValueError(
                f"Expected {len(self._bodies)} states, got {len(states)}; "
                f"bodies cannot be added or removed mid-run"
            )
        return System(self._bodies, states, self._time + dt, self._capacity)

    def with_time(self, simulated_time: float) -> "System":
        return System(self._bodies, self._states, simulated_time, self._capacity)

    def __repr__(self) -> str:
        return (
            f"System(n_bodies={len(self)}, simulated_time={self._time!r}, "
            f"names={self.names()!r})"
        )

    def __str__(self) -> str:
        lines = [f"System at t = {self._time:.6f} days ({len(self)} bodies)"]
        for body, state in self:
            lines.append(f"  {body.name:<10s} gm={body.gm:.10e}  {state}")
        return "\n".join(lines)
