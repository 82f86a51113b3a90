"""
Dynamics Module
===============

Orbit math and free-flight kinematics. Pure functions, no shared state.
"""

from .orbital import (
    CircularOrbit,
    KeplerianOrbit,
    circular_state,
    keplerian_state,
    orbit_state,
    solve_kepler,
)
from .integrators import (
    KinematicIntegrator,
    EulerIntegrator,
    SymplecticEuler,
    check_timestep,
    get_integrator,
)

__all__ = [
    'CircularOrbit',
    'KeplerianOrbit',
    'circular_state',
    'keplerian_state',
    'orbit_state',
    'solve_kepler',
    'KinematicIntegrator',
    'EulerIntegrator',
    'SymplecticEuler',
    'check_timestep',
    'get_integrator',
]
