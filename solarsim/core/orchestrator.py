"""
Simulation Orchestrator
=======================

Wires registry, clock, publisher and broker client into the run loop:

    wait for tick deadline -> apply commands -> tick -> publish -> repeat

and owns startup and shutdown.
"""

import logging
import queue
import signal
import threading
import time
from typing import Callable, Dict, Iterable, Optional

from .bodies import Body, ShipControls
from .clock import ClockState, SimulationClock
from .config import SimulationConfig, create_default_bodies
from .registry import BodyRegistry
from .time_manager import SimulationTime
from ..errors import (
    ClockStateError,
    ConfigurationError,
    DeliveryFailed,
    DuplicateId,
    NotFound,
)
from ..streaming.broker import BrokerClient
from ..streaming.publisher import PositionPublisher

logger = logging.getLogger(__name__)

# Stop-event poll period while paused with an unpaced loop
PAUSE_POLL_SECONDS = 0.05


class Orchestrator:
    """
    Single authoritative simulation loop.

    All body state is mutated on the thread that calls run(). Ship
    control commands and pause/resume requests from other threads go
    through a command queue and are applied at the start of the next tick.
    run() can be called once per orchestrator.
    """

    def __init__(self,
                 config: SimulationConfig = None,
                 bodies: Optional[Iterable[Body]] = None,
                 client: BrokerClient = None,
                 on_delivery_failed: Optional[Callable[[DeliveryFailed], None]] = None,
                 wall_clock: Callable[[], float] = None):
        """
        Initialize orchestrator.

        Args:
            config: Simulation configuration
            bodies: Initial bodies (default: inner solar system preset)
            client: Broker client (default: Kafka client from config.broker)
            on_delivery_failed: Alerting hook for undeliverable messages, both
                retry exhaustion and updates that could not be queued
            wall_clock: Monotonic time source for pacing
        """
        self.config = config or SimulationConfig()
        self._definitions = list(bodies) if bodies is not None else None
        self.client = client or BrokerClient(self.config.broker)
        self.on_delivery_failed = on_delivery_failed
        self.client.add_failure_listener(self._delivery_failed)
        self._wall_clock = wall_clock or time.monotonic

        self.time = SimulationTime(epoch_seconds=self.config.epoch_seconds)
        self.registry: Optional[BodyRegistry] = None
        self.clock: Optional[SimulationClock] = None
        self.publisher: Optional[PositionPublisher] = None

        self._stop = threading.Event()
        self._commands: queue.SimpleQueue = queue.SimpleQueue()
        self._started = False
        self._shut_down = False

        self.stats = {
            'ticks': 0,
            'delivery_failures': 0,
            'publish_failures': 0,
            'rejected_commands': 0,
        }

    # === Lifecycle ===

    def startup(self):
        """
        Build the registry and connect to the broker.

        Raises:
            ConfigurationError: Invalid or duplicate body definitions
            BrokerConnectionError: Broker unreachable
        """
        if self._started:
            return
        bodies = self._definitions if self._definitions is not None else create_default_bodies()
        try:
            self.registry = BodyRegistry(bodies)
        except DuplicateId as e:
            raise ConfigurationError(str(e)) from e
        if not len(self.registry):
            raise ConfigurationError("No bodies configured")

        self.clock = SimulationClock(
            self.registry,
            time=self.time,
            time_step=self.config.time_step_seconds,
            mode=self.config.timestep_mode,
            time_scale=self.config.time_scale,
            integrator=self.config.integrator,
            wall_clock=self._wall_clock,
        )
        self.publisher = PositionPublisher(
            self.client,
            self.time,
            topics=self.config.topics,
            only_changed=self.config.publish_only_changed,
            failure_sink=self._publish_failed,
        )
        self.client.connect()

        self._started = True
        logger.info("Simulation ready: %d bodies (%s)", len(self.registry),
                    ", ".join(self.registry.ids()))

    def run(self, max_ticks: Optional[int] = None) -> int:
        """
        Run the tick loop until stopped or max_ticks ticks have run.

        The initial state (t = 0) is published before the first tick.
        While paused the loop keeps waiting for stop or resume but does
        not tick or publish.

        Returns:
            Number of ticks executed

        Raises:
            ClockStateError: If this orchestrator has already run
        """
        self.startup()
        if self.clock.state is not ClockState.IDLE:
            raise ClockStateError(
                f"Simulation already ran (clock is {self.clock.state.value}); "
                f"create a new Orchestrator to run again")
        interval = self.config.tick_interval_seconds

        self.publisher.publish_snapshot(self.registry)
        self.clock.start()
        logger.info("Simulation running (dt=%s, interval=%ss, mode=%s)",
                    self.config.time_step_seconds, interval, self.config.timestep_mode)

        ticks = 0
        deadline = self._wall_clock()
        while not self._stop.is_set():
            if max_ticks is not None and ticks >= max_ticks:
                break

            if interval > 0:
                deadline += interval
                remaining = deadline - self._wall_clock()
                if remaining > 0:
                    if self._stop.wait(remaining):
                        break
                else:
                    # Overran the tick interval, do not try to catch up
                    deadline = self._wall_clock()

            self._apply_commands()
            if self.clock.state is ClockState.PAUSED:
                if interval <= 0 and self._stop.wait(PAUSE_POLL_SECONDS):
                    break
                continue

            result = self.clock.tick()
            self.publisher.publish_tick(self.registry, result)
            ticks += 1
            self.stats['ticks'] += 1

        self.clock.stop()
        logger.info("Simulation stopped after %d tick(s) at t=%.3f",
                    ticks, self.time.elapsed_seconds)
        return ticks

    def request_stop(self):
        """Ask the loop to stop; observed within one tick interval."""
        self._stop.set()

    @property
    def paused(self) -> bool:
        return self.clock is not None and self.clock.state is ClockState.PAUSED

    def shutdown(self):
        """Stop the clock, flush pending messages and close the broker connection."""
        if self._shut_down:
            return
        self._shut_down = True
        self._stop.set()
        if self.clock is not None:
            self.clock.stop()
        self.client.close(timeout=self.config.flush_timeout_seconds)
        logger.info("Shutdown complete: %s", self.get_statistics())

    def install_signal_handlers(self):
        """Stop gracefully on SIGINT and SIGTERM (main thread only)."""
        def _handler(signum, frame):
            logger.info("Received signal %d, stopping", signum)
            self.request_stop()

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)

    # === Commands ===

    def submit_controls(self, ship_id: str, controls: ShipControls):
        """Queue new engine controls for a ship (thread-safe)."""
        self._commands.put(('controls', ship_id, controls))

    def pause(self):
        """Suspend ticking and publishing at the next loop iteration (thread-safe)."""
        self._commands.put(('pause',))

    def resume(self):
        """Continue a paused simulation (thread-safe)."""
        self._commands.put(('resume',))

    def _apply_commands(self):
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return
            name = command[0]
            try:
                if name == 'controls':
                    self.registry.set_controls(command[1], command[2])
                elif name == 'pause':
                    self.clock.pause()
                    logger.info("Simulation paused at t=%.3f", self.time.elapsed_seconds)
                elif name == 'resume':
                    self.clock.resume()
                    logger.info("Simulation resumed at t=%.3f", self.time.elapsed_seconds)
            except (NotFound, ConfigurationError, ClockStateError) as e:
                self.stats['rejected_commands'] += 1
                logger.warning("Rejected %s command: %s", name, e)

    # === Observability ===

    def _delivery_failed(self, failure: DeliveryFailed):
        self.stats['delivery_failures'] += 1
        if self.on_delivery_failed is not None:
            self.on_delivery_failed(failure)

    def _publish_failed(self, failure: DeliveryFailed):
        self.stats['publish_failures'] += 1
        if self.on_delivery_failed is not None:
            self.on_delivery_failed(failure)

    def get_statistics(self) -> Dict:
        stats = {'orchestrator': dict(self.stats), 'broker': self.client.get_statistics()}
        if self.clock is not None:
            stats['clock'] = dict(self.clock.stats)
        if self.publisher is not None:
            stats['publisher'] = dict(self.publisher.stats)
        return stats

    def __enter__(self):
        self.startup()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False
