import numpy as np
import pytest

from solarsim.dynamics.integrators import (
    EulerIntegrator,
    KinematicIntegrator,
    SymplecticEuler,
    get_integrator,
)
from solarsim.errors import InvalidTimestep


def test_kinematic_step_is_exact_for_constant_acceleration():
    integ = KinematicIntegrator()
    p, v = integ.step(np.zeros(3), np.array([1.0, 0.0, 0.0]),
                      np.array([0.0, 2.0, 0.0]), 3.0)
    assert np.allclose(p, [3.0, 9.0, 0.0])
    assert np.allclose(v, [1.0, 6.0, 0.0])


def test_kinematic_small_steps_match_one_large_step():
    integ = KinematicIntegrator()
    p0 = np.array([1.0, -2.0, 3.0])
    v0 = np.array([0.5, 0.0, -1.0])
    a = np.array([0.1, 0.2, -0.3])

    p_big, v_big = integ.step(p0, v0, a, 2.0)

    p, v = p0, v0
    for _ in range(20):
        p, v = integ.step(p, v, a, 0.1)

    assert np.allclose(p, p_big)
    assert np.allclose(v, v_big)


def test_euler_and_symplectic_differ_in_position_update():
    p0, v0, a = np.zeros(3), np.array([1.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0])

    p_e, v_e = EulerIntegrator().step(p0, v0, a, 1.0)
    p_s, v_s = SymplecticEuler().step(p0, v0, a, 1.0)

    assert np.allclose(v_e, [2.0, 0.0, 0.0])
    assert np.allclose(v_s, [2.0, 0.0, 0.0])
    assert np.allclose(p_e, [1.0, 0.0, 0.0])
    assert np.allclose(p_s, [2.0, 0.0, 0.0])


@pytest.mark.parametrize("method", ["kinematic", "euler", "symplectic_euler"])
@pytest.mark.parametrize("dt", [0.0, -1.0, float('nan'), float('inf')])
def test_invalid_timestep_rejected(method, dt):
    integ = get_integrator(method)
    with pytest.raises(InvalidTimestep):
        integ.step(np.zeros(3), np.zeros(3), np.zeros(3), dt)


def test_unknown_integrator_rejected():
    with pytest.raises(ValueError, match="Unknown integration method"):
        get_integrator("rk4")
