import numpy as np
import pytest

from solarsim.dynamics.orbital import (
    CircularOrbit,
    KeplerianOrbit,
    circular_state,
    keplerian_state,
    orbit_state,
    solve_kepler,
)
from solarsim.dynamics.vector import wrap_angle
from solarsim.errors import ConfigurationError


def test_orbit_state_is_deterministic():
    orbit = CircularOrbit(radius=2.5, angular_speed=0.3, phase=1.0,
                          inclination=0.4, ascending_node=1.2)
    for t in (0.0, 3.7, 1234.5):
        p1, v1 = orbit_state(orbit, t)
        p2, v2 = orbit_state(orbit, t)
        assert np.array_equal(p1, p2)
        assert np.array_equal(v1, v2)


def test_circular_orbit_keeps_radius_and_speed():
    center = np.array([1.0, -2.0, 0.5])
    omega = 2 * np.pi / 7
    orbit = CircularOrbit(radius=3.0, angular_speed=omega, center=center,
                          inclination=0.3, ascending_node=0.9)

    for t in np.linspace(0.0, 100.0, 257):
        pos, vel = circular_state(orbit, t)
        assert np.isclose(np.linalg.norm(pos - center), 3.0)
        assert np.isclose(np.linalg.norm(vel), 3.0 * omega)
        # Velocity is tangent to the orbit
        assert np.isclose(np.dot(pos - center, vel), 0.0, atol=1e-9)


def test_circular_orbit_quarter_points():
    orbit = CircularOrbit.from_period(radius=1.0, period=10.0)

    expected = {
        0.0: [1.0, 0.0, 0.0],
        2.5: [0.0, 1.0, 0.0],
        5.0: [-1.0, 0.0, 0.0],
        7.5: [0.0, -1.0, 0.0],
        10.0: [1.0, 0.0, 0.0],
    }
    for t, point in expected.items():
        pos, _ = circular_state(orbit, t)
        assert np.allclose(pos, point, atol=1e-12)


def test_circular_velocity_is_time_derivative():
    orbit = CircularOrbit(radius=4.0, angular_speed=0.7, phase=0.2,
                          inclination=0.5, ascending_node=2.0)
    t, h = 3.3, 1e-6
    p_plus, _ = circular_state(orbit, t + h)
    p_minus, _ = circular_state(orbit, t - h)
    _, vel = circular_state(orbit, t)
    assert np.allclose((p_plus - p_minus) / (2 * h), vel, atol=1e-6)


def test_circular_orbit_is_periodic_over_many_revolutions():
    orbit = CircularOrbit.from_period(radius=1.0, period=10.0, phase=0.3)
    p1, _ = circular_state(orbit, 3.3)
    p2, _ = circular_state(orbit, 3.3 + 10.0 * 1000)
    assert np.allclose(p1, p2, atol=1e-8)


def test_keplerian_zero_eccentricity_matches_circular():
    kep = KeplerianOrbit.from_period(
        semi_major_axis=2.0, period=8.0, eccentricity=0.0,
        inclination=0.3, ascending_node=0.7, arg_periapsis=0.0,
        mean_anomaly_at_epoch=0.5,
    )
    circ = CircularOrbit.from_period(radius=2.0, period=8.0, phase=0.5,
                                     inclination=0.3, ascending_node=0.7)

    for t in (0.0, 1.0, 2.7, 7.9, 40.0):
        kp, kv = keplerian_state(kep, t)
        cp, cv = circular_state(circ, t)
        assert np.allclose(kp, cp, atol=1e-9)
        assert np.allclose(kv, cv, atol=1e-9)


def test_keplerian_periapsis_and_period():
    orbit = KeplerianOrbit.from_period(
        semi_major_axis=10.0, period=100.0, eccentricity=0.4,
        inclination=0.2, ascending_node=1.0, arg_periapsis=0.5,
        mean_anomaly_at_epoch=0.0,
    )
    pos, _ = keplerian_state(orbit, 0.0)
    assert np.isclose(np.linalg.norm(pos), 10.0 * (1 - 0.4))

    p1, v1 = keplerian_state(orbit, 12.3)
    p2, v2 = keplerian_state(orbit, 112.3)
    assert np.allclose(p1, p2, atol=1e-9)
    assert np.allclose(v1, v2, atol=1e-9)


def test_keplerian_satisfies_vis_viva():
    mu = 39.47841760435743
    orbit = KeplerianOrbit.from_gravitational_parameter(
        semi_major_axis=1.5, mu=mu, eccentricity=0.3,
        inclination=0.1, ascending_node=0.4, arg_periapsis=1.1,
        mean_anomaly_at_epoch=2.0,
    )
    for t in np.linspace(0.0, 3.0, 13):
        pos, vel = keplerian_state(orbit, t)
        r = np.linalg.norm(pos)
        assert np.isclose(np.dot(vel, vel), mu * (2 / r - 1 / 1.5), rtol=1e-9)


def test_solve_kepler_satisfies_equation():
    for e in (0.0, 0.1, 0.5, 0.9, 0.95):
        for M in np.linspace(0.0, 2 * np.pi, 17, endpoint=False):
            E = solve_kepler(M, e)
            assert np.isclose(wrap_angle(E - e * np.sin(E)), M, atol=1e-10) or \
                np.isclose(abs(wrap_angle(E - e * np.sin(E)) - M), 2 * np.pi, atol=1e-10)


def test_wrap_angle_range():
    for angle in (-7.0, -1e-18, 0.0, 2 * np.pi, 13.5, 1e6):
        wrapped = wrap_angle(angle)
        assert 0.0 <= wrapped < 2 * np.pi


@pytest.mark.parametrize("kwargs", [
    dict(radius=-1.0, angular_speed=1.0),
    dict(radius=1.0, angular_speed=float('nan')),
    dict(radius=1.0, angular_speed=1.0, center=[0.0, 0.0]),
])
def test_invalid_circular_orbit_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        CircularOrbit(**kwargs)


def test_invalid_keplerian_orbit_rejected():
    common = dict(inclination=0.0, ascending_node=0.0, arg_periapsis=0.0,
                  mean_anomaly_at_epoch=0.0, mean_motion=1.0)
    with pytest.raises(ConfigurationError):
        KeplerianOrbit(semi_major_axis=1.0, eccentricity=1.0, **common)
    with pytest.raises(ConfigurationError):
        KeplerianOrbit(semi_major_axis=0.0, eccentricity=0.1, **common)
    with pytest.raises(ConfigurationError):
        CircularOrbit.from_period(radius=1.0, period=0.0)
