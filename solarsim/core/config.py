"""
Simulation Configuration
========================

Simulation, broker and body-definition settings.

Body definitions are read from a JSON document of the form::

    {
      "bodies": [
        {"id": "earth", "kind": "planet",
         "orbit": {"type": "circular", "radius": 90.0, "period": 60.0}},
        {"id": "mars", "kind": "planet",
         "orbit": {"type": "keplerian", "semi_major_axis": 110.0,
                   "eccentricity": 0.09, "inclination_deg": 1.85,
                   "ascending_node_deg": 49.6, "arg_periapsis_deg": 286.5,
                   "mean_anomaly_deg": 19.4, "period": 112.8}},
        {"id": "ship-1", "kind": "ship",
         "position": [0.0, 0.0, 450.0], "velocity": [0.0, 0.0, 0.0]}
      ]
    }

Angles in body definitions are in degrees.
"""

import json
import os
import numpy as np
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .bodies import Body, BodyKind, Planet, Ship, ShipControls
from ..dynamics.integrators import INTEGRATORS
from ..dynamics.orbital import CircularOrbit, KeplerianOrbit, Orbit
from ..errors import ConfigurationError

PLANET_TOPIC = 'planet-positions'
SHIP_TOPIC = 'ship-positions'

ENV_PREFIX = 'SOLARSIM_'


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigurationError(message)


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for message delivery."""
    max_attempts: int = 5
    initial_backoff_seconds: float = 0.1
    max_backoff_seconds: float = 5.0
    multiplier: float = 2.0

    def __post_init__(self):
        _require(int(self.max_attempts) >= 1, "max_attempts must be >= 1")
        _require(self.initial_backoff_seconds >= 0, "initial backoff must be >= 0")
        _require(self.max_backoff_seconds >= self.initial_backoff_seconds,
                 "max backoff must be >= initial backoff")
        _require(self.multiplier >= 1.0, "backoff multiplier must be >= 1")
        self.max_attempts = int(self.max_attempts)

    def backoff(self, failed_attempts: int) -> float:
        """Delay before the next attempt after ``failed_attempts`` failures."""
        delay = self.initial_backoff_seconds * self.multiplier ** (failed_attempts - 1)
        return min(delay, self.max_backoff_seconds)


@dataclass
class BrokerConfig:
    """
    Message broker connection settings.

    Credentials are passed through to the producer unchanged.
    """
    bootstrap_servers: str = 'localhost:9092'
    client_id: str = 'solarsim'

    # Security (SASL/TLS)
    security_protocol: str = 'PLAINTEXT'
    sasl_mechanism: Optional[str] = None
    sasl_username: Optional[str] = None
    sasl_password: Optional[str] = None
    ssl_ca_location: Optional[str] = None

    # Timeouts
    message_timeout_ms: int = 5000
    connect_timeout_seconds: float = 10.0

    # Local publish queue
    queue_size: int = 1000
    backpressure: str = 'block'  # 'block' or 'drop'
    enqueue_timeout_seconds: float = 0.05

    retry: RetryPolicy = field(default_factory=RetryPolicy)

    # Additional raw producer settings
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        _require(bool(self.bootstrap_servers), "bootstrap_servers must not be empty")
        _require(self.queue_size > 0, "queue_size must be > 0")
        _require(self.backpressure in ('block', 'drop'),
                 f"backpressure must be 'block' or 'drop', got {self.backpressure!r}")
        _require(self.enqueue_timeout_seconds >= 0, "enqueue timeout must be >= 0")
        _require(self.message_timeout_ms > 0, "message timeout must be > 0")
        _require(self.connect_timeout_seconds > 0, "connect timeout must be > 0")

    def producer_config(self) -> Dict[str, Any]:
        """Settings dictionary for the Kafka producer."""
        conf = {
            'bootstrap.servers': self.bootstrap_servers,
            'client.id': self.client_id,
            'security.protocol': self.security_protocol,
            'message.timeout.ms': self.message_timeout_ms,
        }
        if self.sasl_mechanism:
            conf['sasl.mechanism'] = self.sasl_mechanism
        if self.sasl_username is not None:
            conf['sasl.username'] = self.sasl_username
        if self.sasl_password is not None:
            conf['sasl.password'] = self.sasl_password
        if self.ssl_ca_location:
            conf['ssl.ca.location'] = self.ssl_ca_location
        conf.update(self.extra)
        return conf

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 **overrides) -> 'BrokerConfig':
        """
        Build broker settings from SOLARSIM_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        names = {
            'bootstrap_servers': 'BOOTSTRAP_SERVERS',
            'client_id': 'CLIENT_ID',
            'security_protocol': 'SECURITY_PROTOCOL',
            'sasl_mechanism': 'SASL_MECHANISM',
            'sasl_username': 'SASL_USERNAME',
            'sasl_password': 'SASL_PASSWORD',
            'ssl_ca_location': 'SSL_CA_LOCATION',
        }
        kwargs = {}
        for attr, suffix in names.items():
            value = env.get(ENV_PREFIX + suffix)
            if value:
                kwargs[attr] = value
        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)


@dataclass
class TopicConfig:
    """Output topic names per body kind."""
    planet_topic: str = PLANET_TOPIC
    ship_topic: str = SHIP_TOPIC

    def topic_for(self, kind: BodyKind) -> str:
        if kind is BodyKind.PLANET:
            return self.planet_topic
        if kind is BodyKind.SHIP:
            return self.ship_topic
        raise ValueError(f"Unknown body kind: {kind!r}")


@dataclass
class SimulationConfig:
    """Complete simulation configuration."""
    # Simulation timing
    time_step_seconds: float = 1.0  # simulated seconds per tick (fixed mode)
    tick_interval_seconds: float = 1.0  # wall-clock pacing, 0 = free running
    timestep_mode: str = 'fixed'  # 'fixed' or 'wall_clock'
    time_scale: float = 1.0  # simulated seconds per wall second (wall_clock mode)
    epoch_seconds: float = 0.0  # Unix time of simulated t = 0

    # Ship kinematics
    integrator: str = 'kinematic'

    # Publishing
    publish_only_changed: bool = False
    flush_timeout_seconds: float = 5.0
    topics: TopicConfig = field(default_factory=TopicConfig)
    broker: BrokerConfig = field(default_factory=BrokerConfig)

    def __post_init__(self):
        """Validate configuration."""
        _require(np.isfinite(self.time_step_seconds) and self.time_step_seconds > 0,
                 "Time step must be positive")
        _require(self.tick_interval_seconds >= 0, "Tick interval must be >= 0")
        _require(self.timestep_mode in ('fixed', 'wall_clock'),
                 f"Unknown timestep mode: {self.timestep_mode!r}")
        _require(np.isfinite(self.time_scale) and self.time_scale > 0,
                 "Time scale must be positive")
        _require(self.timestep_mode == 'fixed' or self.tick_interval_seconds > 0,
                 "wall_clock mode needs a tick interval > 0")
        _require(self.epoch_seconds >= 0, "Epoch must be >= 0")
        _require(self.integrator in INTEGRATORS,
                 f"Unknown integration method: {self.integrator}")
        _require(self.flush_timeout_seconds >= 0, "Flush timeout must be >= 0")


# Body definitions

_CIRCULAR_KEYS = {'type', 'radius', 'angular_speed', 'period', 'phase_deg',
                  'inclination_deg', 'ascending_node_deg', 'center'}
_KEPLERIAN_KEYS = {'type', 'semi_major_axis', 'eccentricity', 'inclination_deg',
                   'ascending_node_deg', 'arg_periapsis_deg', 'mean_anomaly_deg',
                   'mean_motion', 'period', 'mu', 'epoch', 'center'}
_PLANET_KEYS = {'id', 'kind', 'orbit'}
_SHIP_KEYS = {'id', 'kind', 'position', 'velocity', 'acceleration',
              'yaw_deg', 'pitch_deg', 'controls'}
_CONTROL_KEYS = {'power', 'front', 'back', 'left', 'right', 'up', 'down',
                 'rotation_power', 'rotate_left', 'rotate_right', 'rotate_up',
                 'rotate_down'}


def _check_keys(where: str, data: Mapping, allowed: set):
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(f"{where}: unknown field(s) {sorted(unknown)}")


def _number(where: str, data: Mapping, key: str, default: Optional[float] = None) -> float:
    if key not in data:
        if default is None:
            raise ConfigurationError(f"{where}: missing required field {key!r}")
        return default
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{where}: {key} must be a number, got {value!r}")
    if not np.isfinite(value):
        raise ConfigurationError(f"{where}: {key} must be finite")
    return float(value)


def _angle(where: str, data: Mapping, key: str) -> float:
    return float(np.radians(_number(where, data, key, 0.0)))


def _vector(where: str, data: Mapping, key: str) -> np.ndarray:
    value = data.get(key, [0.0, 0.0, 0.0])
    if (not isinstance(value, (list, tuple)) or len(value) != 3
            or any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in value)):
        raise ConfigurationError(f"{where}: {key} must be a list of 3 numbers")
    return np.array(value, dtype=float)


def _one_of(where: str, data: Mapping, keys: tuple) -> str:
    present = [k for k in keys if k in data]
    if len(present) != 1:
        raise ConfigurationError(f"{where}: exactly one of {list(keys)} is required")
    return present[0]


def parse_orbit(where: str, data: Mapping) -> Orbit:
    """Build an orbit from its JSON definition."""
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{where}: orbit must be an object")
    orbit_type = data.get('type', 'circular')

    if orbit_type == 'circular':
        _check_keys(where, data, _CIRCULAR_KEYS)
        common = dict(
            radius=_number(where, data, 'radius'),
            phase=_angle(where, data, 'phase_deg'),
            center=_vector(where, data, 'center'),
            inclination=_angle(where, data, 'inclination_deg'),
            ascending_node=_angle(where, data, 'ascending_node_deg'),
        )
        rate = _one_of(where, data, ('angular_speed', 'period'))
        if rate == 'period':
            return CircularOrbit.from_period(period=_number(where, data, 'period'), **common)
        return CircularOrbit(angular_speed=_number(where, data, 'angular_speed'), **common)

    if orbit_type == 'keplerian':
        _check_keys(where, data, _KEPLERIAN_KEYS)
        a = _number(where, data, 'semi_major_axis')
        common = dict(
            eccentricity=_number(where, data, 'eccentricity', 0.0),
            inclination=_angle(where, data, 'inclination_deg'),
            ascending_node=_angle(where, data, 'ascending_node_deg'),
            arg_periapsis=_angle(where, data, 'arg_periapsis_deg'),
            mean_anomaly_at_epoch=_angle(where, data, 'mean_anomaly_deg'),
            epoch=_number(where, data, 'epoch', 0.0),
            center=_vector(where, data, 'center'),
        )
        rate = _one_of(where, data, ('mean_motion', 'period', 'mu'))
        if rate == 'period':
            return KeplerianOrbit.from_period(a, _number(where, data, 'period'), **common)
        if rate == 'mu':
            return KeplerianOrbit.from_gravitational_parameter(
                a, _number(where, data, 'mu'), **common)
        return KeplerianOrbit(semi_major_axis=a,
                              mean_motion=_number(where, data, 'mean_motion'), **common)

    raise ConfigurationError(f"{where}: unknown orbit type {orbit_type!r}")


def parse_controls(where: str, data: Mapping) -> ShipControls:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{where}: controls must be an object")
    _check_keys(where, data, _CONTROL_KEYS)
    kwargs = {}
    for key, value in data.items():
        if key in ('power', 'rotation_power'):
            kwargs[key] = _number(where, data, key)
        elif isinstance(value, bool):
            kwargs[key] = value
        else:
            raise ConfigurationError(f"{where}: {key} must be true or false")
    return ShipControls(**kwargs)


def parse_body(data: Mapping, index: int = 0) -> Body:
    """Build one body from its JSON definition."""
    where = f"bodies[{index}]"
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{where}: body definition must be an object")
    body_id = data.get('id')
    if not isinstance(body_id, str) or not body_id.strip():
        raise ConfigurationError(f"{where}: id must be a non-empty string")
    where = f"{where} ({body_id})"

    kind = data.get('kind')
    if kind == BodyKind.PLANET.value:
        _check_keys(where, data, _PLANET_KEYS)
        if 'orbit' not in data:
            raise ConfigurationError(f"{where}: planet requires an orbit")
        return Planet(id=body_id, orbit=parse_orbit(where, data['orbit']))

    if kind == BodyKind.SHIP.value:
        _check_keys(where, data, _SHIP_KEYS)
        return Ship(
            id=body_id,
            position=_vector(where, data, 'position'),
            velocity=_vector(where, data, 'velocity'),
            acceleration=_vector(where, data, 'acceleration'),
            controls=parse_controls(where, data.get('controls', {})),
            yaw=_angle(where, data, 'yaw_deg'),
            pitch=_angle(where, data, 'pitch_deg'),
        )

    raise ConfigurationError(f"{where}: kind must be 'planet' or 'ship', got {kind!r}")


def parse_bodies(document: Mapping) -> List[Body]:
    """
    Validate a body-definition document.

    Args:
        document: Parsed JSON with a "bodies" list

    Returns:
        List of bodies with unique ids

    Raises:
        ConfigurationError: On any invalid or duplicate definition
    """
    if not isinstance(document, Mapping) or not isinstance(document.get('bodies'), list):
        raise ConfigurationError("Body configuration must be an object with a 'bodies' list")

    bodies: List[Body] = []
    seen = set()
    for index, entry in enumerate(document['bodies']):
        body = parse_body(entry, index)
        if body.id in seen:
            raise ConfigurationError(f"Duplicate body id: {body.id!r}")
        seen.add(body.id)
        bodies.append(body)
    return bodies


def load_bodies(path: Union[str, Path]) -> List[Body]:
    """Read and validate a JSON body-definition file."""
    path = Path(path)
    try:
        with path.open('r', encoding='utf-8') as f:
            document = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read body configuration {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    return parse_bodies(document)


# Pre-defined configurations
def create_default_bodies() -> List[Body]:
    """
    Inner solar system preset.

    Scaled distances, periods in simulated seconds (one Earth year = 60 s),
    plus one ship at rest above the ecliptic.
    """
    planets = [
        ('mercury', 50.0, 0.24),
        ('venus', 70.0, 0.62),
        ('earth', 90.0, 1.0),
        ('mars', 110.0, 1.88),
        ('jupiter', 150.0, 11.86),
    ]
    bodies: List[Body] = [
        Planet(id=name, orbit=CircularOrbit.from_period(radius, years * 60.0))
        for name, radius, years in planets
    ]
    bodies.append(Ship(id='ship-1', position=np.array([0.0, 0.0, 450.0]),
                       yaw=-np.pi / 2))
    return bodies
