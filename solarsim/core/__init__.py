"""
Simulation Core Module
======================

Core simulation components.
"""

from .bodies import Body, BodyKind, Planet, Ship, ShipControls
from .registry import BodyRegistry
from .time_manager import SimulationTime
from .clock import ClockState, SimulationClock, TickResult
from .config import (
    BrokerConfig,
    RetryPolicy,
    SimulationConfig,
    TopicConfig,
    create_default_bodies,
    load_bodies,
    parse_bodies,
)

__all__ = [
    'Body',
    'BodyKind',
    'Planet',
    'Ship',
    'ShipControls',
    'BodyRegistry',
    'SimulationTime',
    'ClockState',
    'SimulationClock',
    'TickResult',
    'BrokerConfig',
    'RetryPolicy',
    'SimulationConfig',
    'TopicConfig',
    'create_default_bodies',
    'load_bodies',
    'parse_bodies',
]
