"""
Simulation Clock
================

Tick state machine and stepper.

Each tick advances every body from the same pre-tick time snapshot and
the same dt, so the result does not depend on the order bodies are
visited in. A numeric failure on one body skips that body for the tick
and never aborts the others.
"""

import logging
import time
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from .bodies import BodyKind, Planet, Ship
from .registry import BodyRegistry
from .time_manager import SimulationTime
from ..dynamics.integrators import check_timestep, get_integrator
from ..dynamics.vector import ensure_finite
from ..errors import ClockStateError, NumericFailure

logger = logging.getLogger(__name__)


class ClockState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    PAUSED = 'paused'
    STOPPED = 'stopped'


@dataclass
class TickResult:
    """Outcome of one tick."""
    step: int
    time: float  # elapsed simulated time after the tick
    dt: float
    updated: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)


class SimulationClock:
    """
    Drives simulated time and body updates.

    State machine::

        IDLE --start--> RUNNING --pause--> PAUSED --resume--> RUNNING
        RUNNING/PAUSED --stop--> STOPPED
        any --reset--> IDLE

    In 'fixed' mode every tick advances time by ``time_step``. In
    'wall_clock' mode dt is the wall time since the previous tick
    multiplied by ``time_scale``.
    """

    def __init__(self,
                 registry: BodyRegistry,
                 time: SimulationTime = None,
                 time_step: float = 1.0,
                 mode: str = 'fixed',
                 time_scale: float = 1.0,
                 integrator: str = 'kinematic',
                 wall_clock: Callable[[], float] = None):
        """
        Initialize clock.

        Args:
            registry: Bodies to advance
            time: Simulated time (owned by this clock)
            time_step: Fixed dt in simulated seconds
            mode: 'fixed' or 'wall_clock'
            time_scale: Simulated seconds per wall second (wall_clock mode)
            integrator: Ship integration method name
            wall_clock: Monotonic wall time source
        """
        if mode not in ('fixed', 'wall_clock'):
            raise ValueError(f"Unknown timestep mode: {mode}")
        self.registry = registry
        self.time = time or SimulationTime()
        self.time_step = check_timestep(time_step)
        self.mode = mode
        self.time_scale = time_scale
        self.integrator = get_integrator(integrator)
        self._wall_clock = wall_clock or _monotonic
        self._last_wall: Optional[float] = None

        self.state = ClockState.IDLE
        self.stats = {
            'ticks': 0,
            'numeric_failures': 0,
        }

    # === State transitions ===

    def start(self):
        self._transition({ClockState.IDLE}, ClockState.RUNNING, 'start')
        self._last_wall = self._wall_clock()

    def pause(self):
        self._transition({ClockState.RUNNING}, ClockState.PAUSED, 'pause')

    def resume(self):
        self._transition({ClockState.PAUSED}, ClockState.RUNNING, 'resume')
        # Paused wall time does not count towards the next dt
        self._last_wall = self._wall_clock()

    def stop(self):
        if self.state is ClockState.STOPPED:
            return
        self._transition({ClockState.IDLE, ClockState.RUNNING, ClockState.PAUSED},
                         ClockState.STOPPED, 'stop')

    def reset(self):
        """Rewind simulated time to zero and return to IDLE."""
        self.time.reset()
        self._last_wall = None
        self.state = ClockState.IDLE
        logger.info("Clock reset")

    def _transition(self, allowed, target: ClockState, command: str):
        if self.state not in allowed:
            raise ClockStateError(f"Cannot {command} clock in state {self.state.value}")
        logger.debug("Clock %s: %s -> %s", command, self.state.value, target.value)
        self.state = target

    @property
    def running(self) -> bool:
        return self.state is ClockState.RUNNING

    # === Stepping ===

    def next_dt(self) -> float:
        """Step length for the next tick."""
        if self.mode == 'fixed':
            return self.time_step
        now = self._wall_clock()
        last = now if self._last_wall is None else self._last_wall
        self._last_wall = now
        return (now - last) * self.time_scale

    def tick(self, dt: float = None) -> TickResult:
        """
        Advance the simulation by one step.

        Args:
            dt: Override step length (default: from mode)

        Returns:
            TickResult with updated body ids and per-body failures

        Raises:
            ClockStateError: If the clock is not running
            InvalidTimestep: If dt is not finite and positive
        """
        if self.state is not ClockState.RUNNING:
            raise ClockStateError(f"Cannot tick clock in state {self.state.value}")

        dt = check_timestep(self.next_dt() if dt is None else dt)
        t0 = self.time.elapsed_seconds
        t1 = t0 + dt

        result = TickResult(step=self.time.step_count + 1, time=t1, dt=dt)

        for body in self.registry.live():
            try:
                if body.kind is BodyKind.PLANET:
                    self._advance_planet(body, t1)
                elif body.kind is BodyKind.SHIP:
                    self._advance_ship(body, dt)
                else:
                    raise TypeError(f"Unhandled body kind: {body.kind!r}")
            except NumericFailure as e:
                self.stats['numeric_failures'] += 1
                result.failures[body.id] = str(e)
                logger.warning("Skipping %s for tick %d: %s", body.id, result.step, e)
                continue
            result.updated.append(body.id)

        self.time.step(dt)
        self.stats['ticks'] += 1
        return result

    def _advance_planet(self, planet: Planet, t: float):
        position, velocity = planet.state_at(t)
        ensure_finite(planet.id, position, velocity)
        self.registry.update_position(planet.id, position, velocity)

    def _advance_ship(self, ship: Ship, dt: float):
        yaw, pitch = ship.heading_after(dt)
        acceleration = ship.acceleration + ship.thrust_acceleration(yaw, pitch)

        try:
            with np.errstate(over='raise', invalid='raise'):
                position, velocity = self.integrator.step(
                    ship.position, ship.velocity, acceleration, dt)
        except FloatingPointError as e:
            raise NumericFailure(f"{ship.id}: {e}", ship.id) from e
        ensure_finite(ship.id, position, velocity)

        self.registry.update_position(ship.id, position, velocity)
        if ship.controls.rotating:
            self.registry.update_heading(ship.id, yaw, pitch)

    def __repr__(self) -> str:
        return f"SimulationClock(state={self.state.value}, time={self.time})"


def _monotonic() -> float:
    return time.monotonic()

