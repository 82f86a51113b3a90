"""
Orbital Motion
==============

Prescribed planetary trajectories.

Planet state is always re-derived from the orbit parameters and the
absolute simulated time, so it never drifts no matter how many ticks
have elapsed. Supported parameterizations:

- Circular orbit (radius, angular speed, phase), optionally tilted
- Keplerian elliptic orbit (six classical elements + mean motion)
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from ..errors import ConfigurationError, NumericFailure
from .vector import TWO_PI, rotation_x, rotation_z, vec3, wrap_angle

StateVector = Tuple[np.ndarray, np.ndarray]


def _check_finite(name: str, value: float):
    if not np.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value!r}")


@dataclass(frozen=True)
class CircularOrbit:
    """
    Uniform circular motion around a fixed center.

    Angles are in radians, angular_speed in radians per simulated second.
    """
    radius: float
    angular_speed: float
    phase: float = 0.0
    center: np.ndarray = field(default_factory=lambda: np.zeros(3))
    inclination: float = 0.0
    ascending_node: float = 0.0

    def __post_init__(self):
        for name in ('radius', 'angular_speed', 'phase', 'inclination', 'ascending_node'):
            _check_finite(name, getattr(self, name))
        if self.radius < 0:
            raise ConfigurationError(f"Orbit radius must be >= 0, got {self.radius}")
        try:
            object.__setattr__(self, 'center', vec3(self.center))
        except ValueError as e:
            raise ConfigurationError(f"Invalid orbit center: {e}") from e

    @classmethod
    def from_period(cls, radius: float, period: float, **kwargs) -> 'CircularOrbit':
        """Build an orbit from its period instead of its angular speed."""
        if not np.isfinite(period) or period <= 0:
            raise ConfigurationError(f"Orbital period must be > 0, got {period!r}")
        return cls(radius=radius, angular_speed=TWO_PI / period, **kwargs)

    @property
    def period(self) -> float:
        """Orbital period (inf for a stationary body)."""
        if self.angular_speed == 0:
            return float('inf')
        return TWO_PI / abs(self.angular_speed)

    @property
    def plane_rotation(self) -> np.ndarray:
        """Orbital plane to reference frame rotation."""
        return rotation_z(self.ascending_node) @ rotation_x(self.inclination)


@dataclass(frozen=True)
class KeplerianOrbit:
    """
    Classical elliptic orbital elements.

    Angles in radians. mean_anomaly_at_epoch is the mean anomaly at
    simulated time ``epoch``; mean_motion is in radians per simulated
    second. Use the ``from_*`` constructors to derive mean motion from
    a gravitational parameter or a period.
    """
    semi_major_axis: float
    eccentricity: float
    inclination: float
    ascending_node: float
    arg_periapsis: float
    mean_anomaly_at_epoch: float
    mean_motion: float
    epoch: float = 0.0
    center: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        for name in ('semi_major_axis', 'eccentricity', 'inclination',
                     'ascending_node', 'arg_periapsis', 'mean_anomaly_at_epoch',
                     'mean_motion', 'epoch'):
            _check_finite(name, getattr(self, name))
        if self.semi_major_axis <= 0:
            raise ConfigurationError(
                f"Semi-major axis must be > 0, got {self.semi_major_axis}")
        if not 0.0 <= self.eccentricity < 1.0:
            raise ConfigurationError(
                f"Only elliptic orbits are supported (0 <= e < 1), got {self.eccentricity}")
        try:
            object.__setattr__(self, 'center', vec3(self.center))
        except ValueError as e:
            raise ConfigurationError(f"Invalid orbit center: {e}") from e

    @classmethod
    def from_gravitational_parameter(cls, semi_major_axis: float, mu: float,
                                     **kwargs) -> 'KeplerianOrbit':
        """Derive mean motion from Kepler's third law: n = sqrt(mu / a³)."""
        if not np.isfinite(mu) or mu <= 0:
            raise ConfigurationError(f"Gravitational parameter must be > 0, got {mu!r}")
        if not np.isfinite(semi_major_axis) or semi_major_axis <= 0:
            raise ConfigurationError(
                f"Semi-major axis must be > 0, got {semi_major_axis!r}")
        n = np.sqrt(mu / semi_major_axis**3)
        return cls(semi_major_axis=semi_major_axis, mean_motion=float(n), **kwargs)

    @classmethod
    def from_period(cls, semi_major_axis: float, period: float,
                    **kwargs) -> 'KeplerianOrbit':
        if not np.isfinite(period) or period <= 0:
            raise ConfigurationError(f"Orbital period must be > 0, got {period!r}")
        return cls(semi_major_axis=semi_major_axis, mean_motion=TWO_PI / period, **kwargs)

    @property
    def period(self) -> float:
        if self.mean_motion == 0:
            return float('inf')
        return TWO_PI / abs(self.mean_motion)

    @property
    def semi_minor_axis(self) -> float:
        return self.semi_major_axis * np.sqrt(1 - self.eccentricity**2)

    @property
    def perifocal_rotation(self) -> np.ndarray:
        """Perifocal (PQW) to reference frame rotation."""
        return (rotation_z(self.ascending_node)
                @ rotation_x(self.inclination)
                @ rotation_z(self.arg_periapsis))


Orbit = Union[CircularOrbit, KeplerianOrbit]


def circular_state(orbit: CircularOrbit, t: float) -> StateVector:
    """
    Position and velocity on a circular orbit at time t.

    Args:
        orbit: Circular orbit parameters
        t: Simulated time

    Returns:
        Tuple of (position, velocity)
    """
    theta = wrap_angle(orbit.angular_speed * t + orbit.phase)
    r = orbit.radius
    w = orbit.angular_speed

    pos_plane = np.array([r * np.cos(theta), r * np.sin(theta), 0.0])
    vel_plane = np.array([-r * w * np.sin(theta), r * w * np.cos(theta), 0.0])

    R = orbit.plane_rotation
    return orbit.center + R @ pos_plane, R @ vel_plane


def solve_kepler(mean_anomaly: float,
                 eccentricity: float,
                 tolerance: float = 1e-12,
                 max_iterations: int = 50) -> float:
    """
    Solve Kepler's equation M = E - e sin(E) for the eccentric anomaly.

    Newton-Raphson iteration.

    Raises:
        NumericFailure: If the iteration does not converge
    """
    M = wrap_angle(mean_anomaly)
    e = eccentricity
    E = M if e < 0.8 else np.pi

    for _ in range(max_iterations):
        f = E - e * np.sin(E) - M
        f_prime = 1 - e * np.cos(E)
        delta = f / f_prime
        E -= delta
        if abs(delta) < tolerance:
            return float(E)

    raise NumericFailure(
        f"Kepler's equation did not converge (M={M:.6f}, e={e:.6f})")


def keplerian_state(orbit: KeplerianOrbit, t: float) -> StateVector:
    """
    Position and velocity on an elliptic Keplerian orbit at time t.

    Args:
        orbit: Keplerian elements
        t: Simulated time

    Returns:
        Tuple of (position, velocity)
    """
    a = orbit.semi_major_axis
    b = orbit.semi_minor_axis
    e = orbit.eccentricity

    M = wrap_angle(orbit.mean_anomaly_at_epoch + orbit.mean_motion * (t - orbit.epoch))
    E = solve_kepler(M, e)

    cos_E, sin_E = np.cos(E), np.sin(E)
    E_dot = orbit.mean_motion / (1 - e * cos_E)

    # Perifocal frame, focus at origin
    r_pqw = np.array([a * (cos_E - e), b * sin_E, 0.0])
    v_pqw = np.array([-a * sin_E * E_dot, b * cos_E * E_dot, 0.0])

    Q = orbit.perifocal_rotation
    return orbit.center + Q @ r_pqw, Q @ v_pqw


def orbit_state(orbit: Orbit, t: float) -> StateVector:
    """Dispatch to the position routine for the orbit's parameterization."""
    if isinstance(orbit, CircularOrbit):
        return circular_state(orbit, t)
    if isinstance(orbit, KeplerianOrbit):
        return keplerian_state(orbit, t)
    raise TypeError(f"Unsupported orbit type: {type(orbit).__name__}")
