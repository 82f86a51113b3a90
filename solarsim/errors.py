"""
Simulation Errors
=================

Exception hierarchy shared by the simulation core and the streaming layer.
"""

from typing import Optional


class SimulationError(Exception):
    """Base class for all solarsim errors."""


class ConfigurationError(SimulationError, ValueError):
    """Invalid or duplicate body definitions, or bad settings."""


class DuplicateId(SimulationError):
    """A body with the same id is already registered."""

    def __init__(self, body_id: str):
        super().__init__(f"Body id already registered: {body_id!r}")
        self.body_id = body_id


class NotFound(SimulationError, KeyError):
    """No body with the given id is registered."""

    def __init__(self, body_id: str):
        super().__init__(f"No such body: {body_id!r}")
        self.body_id = body_id

    def __str__(self) -> str:
        return self.args[0]


class InvalidTimestep(SimulationError, ValueError):
    """Time step is not a finite, strictly positive number."""


class NumericFailure(SimulationError, ArithmeticError):
    """NaN, overflow or non-convergence while computing one body's state."""

    def __init__(self, message: str, body_id: Optional[str] = None):
        super().__init__(message)
        self.body_id = body_id


class ClockStateError(SimulationError, RuntimeError):
    """Clock command not allowed in the current state."""


class DecodeError(SimulationError, ValueError):
    """Position payload could not be decoded."""


class BrokerError(SimulationError):
    """Base class for message broker failures."""


class BrokerConnectionError(BrokerError, ConnectionError):
    """Broker cannot be reached or the connection was lost."""


class BrokerSendError(BrokerError):
    """A single delivery attempt failed; the message may be retried."""


class PublishQueueFull(BrokerError):
    """Local publish queue is full and the message was not accepted."""


class DeliveryFailed(BrokerError):
    """A message could not be delivered within its retry budget."""

    def __init__(self, topic: str, key: str, attempts: int, reason: str):
        super().__init__(
            f"Delivery to {topic!r} (key={key!r}) failed after "
            f"{attempts} attempt(s): {reason}"
        )
        self.topic = topic
        self.key = key
        self.attempts = attempts
        self.reason = reason
