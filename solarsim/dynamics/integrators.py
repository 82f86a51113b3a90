"""
Free-Flight Integrators
=======================

Integration methods for ship kinematics.

All integrators share the signature
``step(position, velocity, acceleration, dt) -> (position, velocity)``
and treat acceleration as constant over the step.
"""

import numpy as np
from typing import Callable, Dict, Tuple

from ..errors import InvalidTimestep

KinematicStep = Callable[[np.ndarray, np.ndarray, np.ndarray, float],
                         Tuple[np.ndarray, np.ndarray]]


def check_timestep(dt: float) -> float:
    """
    Validate a time step.

    Raises:
        InvalidTimestep: If dt is not a finite number greater than zero
    """
    try:
        value = float(dt)
    except (TypeError, ValueError):
        raise InvalidTimestep(f"Time step must be a number, got {dt!r}") from None
    if not np.isfinite(value) or value <= 0:
        raise InvalidTimestep(f"Time step must be > 0, got {dt!r}")
    return value


class KinematicIntegrator:
    """
    Constant-acceleration kinematics.

    p' = p + v dt + 0.5 a dt²
    v' = v + a dt

    Exact when acceleration is constant over the step.
    """

    name = 'kinematic'

    def step(self, position: np.ndarray, velocity: np.ndarray,
             acceleration: np.ndarray, dt: float) -> Tuple[np.ndarray, np.ndarray]:
        dt = check_timestep(dt)
        new_position = position + velocity * dt + 0.5 * acceleration * dt**2
        new_velocity = velocity + acceleration * dt
        return new_position, new_velocity


class EulerIntegrator:
    """Explicit Euler: position advanced with the pre-step velocity."""

    name = 'euler'

    def step(self, position: np.ndarray, velocity: np.ndarray,
             acceleration: np.ndarray, dt: float) -> Tuple[np.ndarray, np.ndarray]:
        dt = check_timestep(dt)
        return position + velocity * dt, velocity + acceleration * dt


class SymplecticEuler:
    """
    Symplectic (semi-implicit) Euler integrator.

    Updates velocity first, then position with the new velocity.
    """

    name = 'symplectic_euler'

    def step(self, position: np.ndarray, velocity: np.ndarray,
             acceleration: np.ndarray, dt: float) -> Tuple[np.ndarray, np.ndarray]:
        dt = check_timestep(dt)
        v_new = velocity + acceleration * dt
        r_new = position + v_new * dt
        return r_new, v_new


INTEGRATORS: Dict[str, type] = {
    KinematicIntegrator.name: KinematicIntegrator,
    EulerIntegrator.name: EulerIntegrator,
    SymplecticEuler.name: SymplecticEuler,
}


def get_integrator(method: str = 'kinematic'):
    """
    Create an integrator by name.

    Args:
        method: One of 'kinematic', 'euler', 'symplectic_euler'

    Returns:
        Integrator instance
    """
    try:
        return INTEGRATORS[method]()
    except KeyError:
        raise ValueError(f"Unknown integration method: {method}") from None
