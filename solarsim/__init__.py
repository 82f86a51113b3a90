"""
Solar System Simulation
=======================

Simulates planets and ships in a shared solar-system model and streams
every body's position to a message broker after each tick.

Components:
- Orbit math (circular and Keplerian prescribed orbits)
- Free-flight ship kinematics with engine thrust
- Body registry and tick clock
- Position publisher with versioned JSON payloads
- Broker client with bounded queue and retry/backoff (Kafka)
"""

__version__ = "1.0.0"

from solarsim.core.bodies import BodyKind, Planet, Ship, ShipControls
from solarsim.core.registry import BodyRegistry
from solarsim.core.time_manager import SimulationTime
from solarsim.core.clock import SimulationClock
from solarsim.core.config import SimulationConfig, BrokerConfig
from solarsim.streaming import BrokerClient, PositionPublisher
from solarsim.core.orchestrator import Orchestrator

__all__ = [
    'BodyKind',
    'Planet',
    'Ship',
    'ShipControls',
    'BodyRegistry',
    'SimulationTime',
    'SimulationClock',
    'SimulationConfig',
    'BrokerConfig',
    'BrokerClient',
    'PositionPublisher',
    'Orchestrator',
]
