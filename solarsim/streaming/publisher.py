"""
Position Publisher
==================

Turns simulation ticks into broker messages.

Every body produces one PositionUpdate per tick. Planets go to the planet
topic, ships to the ship topic, keyed by body id so per-body ordering is
kept by the broker.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .broker import BrokerClient
from .encoder import PositionEncoder, PositionUpdate
from ..core.bodies import Body
from ..core.clock import TickResult
from ..core.config import TopicConfig
from ..core.registry import BodyRegistry
from ..core.time_manager import SimulationTime
from ..errors import BrokerError, DeliveryFailed

logger = logging.getLogger(__name__)


@dataclass
class PublishReport:
    """Result of publishing one tick."""
    published: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class PositionPublisher:
    """
    Builds, encodes and routes position updates.

    Enqueue failures are counted, logged and passed to the failure sink;
    the caller's loop keeps running.
    """

    def __init__(self,
                 client: BrokerClient,
                 time: SimulationTime,
                 topics: TopicConfig = None,
                 encoder: PositionEncoder = None,
                 only_changed: bool = False,
                 failure_sink: Optional[Callable[[DeliveryFailed], None]] = None):
        """
        Initialize publisher.

        Args:
            client: Broker client to hand messages to
            time: Simulation time, used for message timestamps
            topics: Topic routing
            encoder: Payload codec
            only_changed: Publish only bodies updated in the tick
            failure_sink: Called with a DeliveryFailed (0 attempts) for each
                update that could not be queued
        """
        self.client = client
        self.time = time
        self.topics = topics or TopicConfig()
        self.encoder = encoder or PositionEncoder()
        self.only_changed = only_changed
        self.failure_sink = failure_sink

        self.stats = {
            'published': 0,
            'failed': 0,
            'ticks': 0,
        }

    def build_update(self, body: Body, sim_time: float) -> PositionUpdate:
        return PositionUpdate.from_body(body, self.time.timestamp_ms(sim_time), sim_time)

    def publish_snapshot(self, registry: BodyRegistry, sim_time: float = None) -> PublishReport:
        """Publish the current state of every body."""
        t = self.time.elapsed_seconds if sim_time is None else sim_time
        return self._publish(registry.live(), t)

    def publish_tick(self, registry: BodyRegistry, tick: TickResult) -> PublishReport:
        """Publish the bodies of one completed tick."""
        bodies: Iterable[Body] = registry.live()
        if self.only_changed:
            changed = set(tick.updated)
            bodies = (b for b in bodies if b.id in changed)
        return self._publish(bodies, tick.time)

    def _publish(self, bodies: Iterable[Body], sim_time: float) -> PublishReport:
        report = PublishReport()
        for body in bodies:
            update = self.build_update(body, sim_time)
            topic = self.topics.topic_for(update.kind)
            try:
                self.client.publish(topic, update.id, self.encoder.encode(update))
            except BrokerError as e:
                self.stats['failed'] += 1
                report.failed[body.id] = str(e)
                logger.warning("Could not publish %s to %s: %s", body.id, topic, e)
                if self.failure_sink is not None:
                    self.failure_sink(DeliveryFailed(topic, body.id, 0, f"not queued: {e}"))
                continue
            self.stats['published'] += 1
            report.published.append(body.id)
        self.stats['ticks'] += 1
        return report
