"""
Simulated Bodies
================

Planet and ship representations.

A body is a tagged variant: every instance is either a Planet
(orbit-parameterized, state re-derived from time) or a Ship (free-flight,
state integrated tick by tick). The ``kind`` tag selects the update rule
in the stepper and the output topic in the publisher.
"""

import copy
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Tuple, Union

from ..dynamics.orbital import CircularOrbit, KeplerianOrbit, Orbit, orbit_state
from ..dynamics.vector import normalize, vec3, wrap_angle
from ..errors import ConfigurationError


class BodyKind(str, Enum):
    """Body variant tag."""
    PLANET = 'planet'
    SHIP = 'ship'


def _state_vector(body_id: str, name: str, value) -> np.ndarray:
    try:
        arr = vec3(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{body_id}: invalid {name}: {e}") from e
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError(f"{body_id}: {name} must be finite")
    return arr


class _BodyBase:
    """Shared behavior for both body variants."""

    kind: ClassVar[BodyKind]

    def __setattr__(self, name, value):
        if name == 'id' and 'id' in self.__dict__:
            raise AttributeError("Body id is immutable")
        super().__setattr__(name, value)

    def _validate_id(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise ConfigurationError(f"Body id must be a non-empty string, got {self.id!r}")

    def snapshot(self):
        """Independent copy of this body, safe to hand out as a read view."""
        return copy.deepcopy(self)


@dataclass(eq=False)
class Planet(_BodyBase):
    """
    Planet following a prescribed orbit.

    Position and velocity default to the orbit state at t = 0.
    """
    id: str
    orbit: Orbit
    position: Optional[np.ndarray] = None
    velocity: Optional[np.ndarray] = None

    kind: ClassVar[BodyKind] = BodyKind.PLANET

    def __post_init__(self):
        self._validate_id()
        if not isinstance(self.orbit, (CircularOrbit, KeplerianOrbit)):
            raise ConfigurationError(
                f"{self.id}: planet requires a CircularOrbit or KeplerianOrbit")
        initial_pos, initial_vel = orbit_state(self.orbit, 0.0)
        self.position = _state_vector(
            self.id, 'position', initial_pos if self.position is None else self.position)
        self.velocity = _state_vector(
            self.id, 'velocity', initial_vel if self.velocity is None else self.velocity)

    def state_at(self, t: float) -> Tuple[np.ndarray, np.ndarray]:
        """Position and velocity at absolute simulated time t."""
        return orbit_state(self.orbit, t)

    def __repr__(self) -> str:
        return f"Planet(id={self.id!r}, orbit={type(self.orbit).__name__}, position={self.position})"


@dataclass
class ShipControls:
    """Thruster and rotation engine state of a ship."""
    power: float = 1.0
    front: bool = False
    back: bool = False
    left: bool = False
    right: bool = False
    up: bool = False
    down: bool = False

    rotation_power: float = 0.5
    rotate_left: bool = False
    rotate_right: bool = False
    rotate_up: bool = False
    rotate_down: bool = False

    def __post_init__(self):
        for name in ('power', 'rotation_power'):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise ConfigurationError(f"{name} must be a finite value >= 0, got {value!r}")

    @property
    def thrusting(self) -> bool:
        return any((self.front, self.back, self.left, self.right, self.up, self.down))

    @property
    def rotating(self) -> bool:
        return any((self.rotate_left, self.rotate_right, self.rotate_up, self.rotate_down))


@dataclass(eq=False)
class Ship(_BodyBase):
    """
    Free-flight ship.

    ``acceleration`` is a constant external acceleration; engine thrust
    from ``controls`` is added on top of it every tick. Heading is given
    by yaw (about +Y) and pitch, both in radians.
    """
    id: str
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))
    controls: ShipControls = field(default_factory=ShipControls)
    yaw: float = 0.0
    pitch: float = 0.0

    kind: ClassVar[BodyKind] = BodyKind.SHIP

    def __post_init__(self):
        self._validate_id()
        self.position = _state_vector(self.id, 'position', self.position)
        self.velocity = _state_vector(self.id, 'velocity', self.velocity)
        self.acceleration = _state_vector(self.id, 'acceleration', self.acceleration)
        if not isinstance(self.controls, ShipControls):
            raise ConfigurationError(f"{self.id}: controls must be ShipControls")
        if not (np.isfinite(self.yaw) and np.isfinite(self.pitch)):
            raise ConfigurationError(f"{self.id}: heading angles must be finite")
        self.yaw = wrap_angle(self.yaw)
        self.pitch = wrap_angle(self.pitch)

    @property
    def direction(self) -> np.ndarray:
        """Unit forward vector from yaw and pitch."""
        return direction_from_heading(self.yaw, self.pitch)

    def heading_after(self, dt: float) -> Tuple[float, float]:
        """Yaw and pitch after running the rotation engines for dt."""
        c = self.controls
        step = dt * c.rotation_power
        yaw, pitch = self.yaw, self.pitch

        if c.rotate_left:
            yaw += step
        if c.rotate_right:
            yaw -= step
        if c.rotate_up:
            pitch -= step
        if c.rotate_down:
            pitch += step

        return wrap_angle(yaw), wrap_angle(pitch)

    def thrust_acceleration(self, yaw: Optional[float] = None,
                            pitch: Optional[float] = None) -> np.ndarray:
        """
        Acceleration produced by the translation engines.

        Args:
            yaw: Heading yaw to use (default: current)
            pitch: Heading pitch to use (default: current)

        Returns:
            Acceleration vector
        """
        yaw = self.yaw if yaw is None else yaw
        pitch = self.pitch if pitch is None else pitch
        c = self.controls
        accel = np.zeros(3)
        if not c.thrusting:
            return accel

        d = direction_from_heading(yaw, pitch)

        if c.front:
            accel -= d
        if c.back:
            accel += d

        # Local vertical
        vertical = np.array([-d[0] * np.sin(pitch), np.cos(pitch), -d[2] * np.sin(pitch)])
        if c.up:
            accel -= vertical
        if c.down:
            accel += vertical

        # Local lateral (forward x +Y)
        lateral = np.array([-d[2], 0.0, d[0]])
        if c.left:
            accel += lateral
        if c.right:
            accel -= lateral

        return accel * c.power

    def __repr__(self) -> str:
        return f"Ship(id={self.id!r}, position={self.position}, velocity={self.velocity})"


def direction_from_heading(yaw: float, pitch: float) -> np.ndarray:
    return normalize(np.array([
        np.cos(yaw) * np.cos(pitch),
        np.sin(pitch),
        np.sin(yaw) * np.cos(pitch),
    ]))


Body = Union[Planet, Ship]
