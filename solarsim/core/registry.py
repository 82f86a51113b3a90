"""
Body Registry
=============

Authoritative set of simulated bodies and their current state.
"""

import numpy as np
from typing import Dict, Iterable, Iterator, List, Optional

from .bodies import Body, Planet, Ship, ShipControls
from ..dynamics.vector import vec3, wrap_angle
from ..errors import ConfigurationError, DuplicateId, NotFound, NumericFailure


class BodyRegistry:
    """
    Mapping from body id to body.

    Iteration is always sorted by id so that publish order is reproducible.
    Lookups return copies; the only way to change a registered body is
    through the mutation methods below.
    """

    def __init__(self, bodies: Optional[Iterable[Body]] = None):
        self._bodies: Dict[str, Body] = {}
        for body in bodies or ():
            self.add(body)

    def add(self, body: Body):
        """
        Register a body.

        Raises:
            DuplicateId: If a body with the same id exists
            ConfigurationError: If the value is not a Planet or Ship
        """
        if not isinstance(body, (Planet, Ship)):
            raise ConfigurationError(f"Not a body: {body!r}")
        if body.id in self._bodies:
            raise DuplicateId(body.id)
        self._bodies[body.id] = body

    def remove(self, body_id: str) -> Body:
        """Unregister and return a body."""
        try:
            return self._bodies.pop(body_id)
        except KeyError:
            raise NotFound(body_id) from None

    def get(self, body_id: str) -> Body:
        """Return a read view (independent copy) of a body."""
        return self._lookup(body_id).snapshot()

    def update_position(self, body_id: str, position, velocity):
        """
        Replace a body's position and velocity.

        Raises:
            NotFound: If the id is not registered
            NumericFailure: If either vector is malformed or non-finite
        """
        body = self._lookup(body_id)
        try:
            pos = vec3(position)
            vel = vec3(velocity)
        except (TypeError, ValueError) as e:
            raise NumericFailure(f"Malformed state for {body_id!r}: {e}", body_id) from e
        if not (np.all(np.isfinite(pos)) and np.all(np.isfinite(vel))):
            raise NumericFailure(f"Non-finite state for {body_id!r}", body_id)
        body.position = pos
        body.velocity = vel

    def update_heading(self, body_id: str, yaw: float, pitch: float):
        """Set a ship's heading angles (wrapped into [0, 2π))."""
        ship = self._ship(body_id)
        if not (np.isfinite(yaw) and np.isfinite(pitch)):
            raise NumericFailure(f"Non-finite heading for {body_id!r}", body_id)
        ship.yaw = wrap_angle(yaw)
        ship.pitch = wrap_angle(pitch)

    def set_controls(self, body_id: str, controls: ShipControls):
        """Replace a ship's engine controls."""
        if not isinstance(controls, ShipControls):
            raise ConfigurationError(f"Not a ShipControls: {controls!r}")
        self._ship(body_id).controls = controls

    def ids(self) -> List[str]:
        return sorted(self._bodies)

    def snapshot(self) -> List[Body]:
        """Copies of all bodies, sorted by id."""
        return [self._bodies[i].snapshot() for i in self.ids()]

    def live(self) -> Iterator[Body]:
        """
        Iterate the registered bodies themselves, sorted by id.

        For the stepper and publisher, which run on the simulation loop.
        """
        for body_id in self.ids():
            yield self._bodies[body_id]

    def _lookup(self, body_id: str) -> Body:
        try:
            return self._bodies[body_id]
        except KeyError:
            raise NotFound(body_id) from None

    def _ship(self, body_id: str) -> Ship:
        body = self._lookup(body_id)
        if not isinstance(body, Ship):
            raise ConfigurationError(f"{body_id!r} is not a ship")
        return body

    def __iter__(self) -> Iterator[Body]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._bodies)

    def __contains__(self, body_id) -> bool:
        return body_id in self._bodies

    def __repr__(self) -> str:
        return f"BodyRegistry({len(self)} bodies)"
