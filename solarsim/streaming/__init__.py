"""
Streaming Module
================

Position updates to the message broker.
"""

from .encoder import PositionEncoder, PositionUpdate, SCHEMA_VERSION
from .broker import (
    BrokerClient,
    KafkaBackend,
    MemoryBackend,
    ProducerBackend,
    RetryState,
)
from .publisher import PositionPublisher, PublishReport

__all__ = [
    'PositionEncoder',
    'PositionUpdate',
    'SCHEMA_VERSION',
    'BrokerClient',
    'KafkaBackend',
    'MemoryBackend',
    'ProducerBackend',
    'RetryState',
    'PositionPublisher',
    'PublishReport',
]
