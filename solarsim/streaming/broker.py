"""
Broker Client
=============

Asynchronous, at-least-once message delivery to the broker.

The simulation loop hands messages to ``BrokerClient.publish``, which only
does a bounded enqueue. A background worker thread takes messages off the
queue in order and delivers them through a ``ProducerBackend``, retrying
failed attempts with exponential backoff. A message that exhausts its
retry budget is reported exactly once as ``DeliveryFailed`` to every
registered failure listener.

Shutdown pushes a stop sentinel through the same queue, so everything
enqueued before ``close()`` is either delivered or reported as failed.
"""

import logging
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional

from ..core.config import BrokerConfig, RetryPolicy
from ..errors import (
    BrokerConnectionError,
    BrokerError,
    BrokerSendError,
    DeliveryFailed,
    PublishQueueFull,
)

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass
class OutgoingMessage:
    """Message waiting in the publish queue."""
    topic: str
    key: str
    payload: bytes
    enqueued_at: float = field(default_factory=time.monotonic)
    settled: bool = field(default=False, compare=False)


class RetryState:
    """
    Delivery bookkeeping for one message.

    Tracks how many attempts were made and the delay before the next one.
    ``record_failure`` returns None once the budget is exhausted.
    """

    def __init__(self, policy: RetryPolicy):
        self.policy = policy
        self.attempts = 0
        self.next_delay: Optional[float] = None
        self.delivered = False
        self.last_error: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return not self.delivered and self.attempts >= self.policy.max_attempts

    def record_success(self):
        self.attempts += 1
        self.delivered = True
        self.next_delay = None

    def record_failure(self, error: str) -> Optional[float]:
        """
        Count a failed attempt.

        Returns:
            Seconds to wait before retrying, or None if no attempts remain
        """
        self.attempts += 1
        self.last_error = error
        if self.attempts >= self.policy.max_attempts:
            self.next_delay = None
        else:
            self.next_delay = self.policy.backoff(self.attempts)
        return self.next_delay


class ProducerBackend:
    """Transport used by BrokerClient. send() is synchronous."""

    def connect(self):
        """Open the connection. Raises BrokerConnectionError."""
        raise NotImplementedError

    def send(self, topic: str, key: str, payload: bytes):
        """
        Deliver one message and wait for the acknowledgement.

        Raises:
            BrokerSendError: Attempt failed, may be retried
            BrokerConnectionError: Connection lost
        """
        raise NotImplementedError

    def close(self, timeout: float = 5.0):
        raise NotImplementedError


class KafkaBackend(ProducerBackend):
    """
    Kafka transport on top of confluent-kafka.

    Each send waits for its delivery report, so a returned send means the
    broker acknowledged the message.
    """

    def __init__(self, config: BrokerConfig):
        self.config = config
        self._producer = None

    def connect(self):
        from confluent_kafka import KafkaException, Producer

        try:
            if self._producer is None:
                self._producer = Producer(self.config.producer_config())
            self._producer.list_topics(timeout=self.config.connect_timeout_seconds)
        except KafkaException as e:
            raise BrokerConnectionError(
                f"Cannot reach broker at {self.config.bootstrap_servers}: {e}") from e
        logger.info("Connected to broker at %s", self.config.bootstrap_servers)

    def send(self, topic: str, key: str, payload: bytes):
        from confluent_kafka import KafkaError, KafkaException

        if self._producer is None:
            raise BrokerConnectionError("Kafka producer is not connected")

        report = {}

        def on_delivery(err, msg):
            report['error'] = err

        try:
            self._producer.produce(topic, value=payload, key=key.encode('utf-8'),
                                   on_delivery=on_delivery)
        except BufferError as e:
            raise BrokerSendError(f"Producer buffer full: {e}") from e
        except KafkaException as e:
            raise BrokerSendError(str(e)) from e

        self._producer.flush(self.config.message_timeout_ms / 1000.0 + 1.0)

        if 'error' not in report:
            raise BrokerSendError("No delivery report before timeout")
        err = report['error']
        if err is None:
            return
        if err.code() in (KafkaError._TRANSPORT, KafkaError._ALL_BROKERS_DOWN):
            raise BrokerConnectionError(err.str())
        raise BrokerSendError(err.str())

    def close(self, timeout: float = 5.0):
        if self._producer is not None:
            remaining = self._producer.flush(timeout)
            if remaining:
                logger.warning("%d message(s) still in producer buffer at close", remaining)
            self._producer = None


@dataclass
class SentMessage:
    topic: str
    key: str
    payload: bytes


class MemoryBackend(ProducerBackend):
    """
    In-process transport for dry runs.

    Keeps the most recent ``max_messages`` deliveries.
    """

    def __init__(self, max_messages: int = 10000):
        self.messages: Deque[SentMessage] = deque(maxlen=max_messages)
        self.connected = False
        self._lock = threading.Lock()

    def connect(self):
        self.connected = True

    def send(self, topic: str, key: str, payload: bytes):
        if not self.connected:
            raise BrokerConnectionError("Memory backend is closed")
        with self._lock:
            self.messages.append(SentMessage(topic, key, payload))
        logger.debug("dry-run %s key=%s %s", topic, key, payload)

    def close(self, timeout: float = 5.0):
        self.connected = False

    def sent(self, topic: Optional[str] = None) -> List[SentMessage]:
        with self._lock:
            return [m for m in self.messages if topic is None or m.topic == topic]


class BrokerClient:
    """
    Queued, retrying publisher.

    Features:
    - Bounded publish queue (block or drop when full)
    - Background delivery worker
    - Exponential backoff with a per-message attempt budget
    - Reconnect attempt after a lost connection
    - Failure listeners for DeliveryFailed
    """

    def __init__(self,
                 config: BrokerConfig = None,
                 backend: ProducerBackend = None):
        """
        Initialize broker client.

        Args:
            config: Broker settings
            backend: Transport (default: KafkaBackend built from config)
        """
        self.config = config or BrokerConfig()
        self._backend = backend
        self._queue: queue.Queue = queue.Queue(maxsize=self.config.queue_size)
        self._thread: Optional[threading.Thread] = None
        self._abort = threading.Event()
        self._lock = threading.Lock()
        self._connected = False
        self._closing = False
        self._closed = False
        self._in_flight: Optional[OutgoingMessage] = None

        self._failure_listeners: List[Callable[[DeliveryFailed], None]] = []

        # Statistics
        self.stats = {
            'enqueued': 0,
            'delivered': 0,
            'retries': 0,
            'failed': 0,
            'dropped': 0,
            'reconnects': 0,
        }

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def pending(self) -> int:
        """Messages waiting in the queue."""
        return self._queue.qsize()

    def add_failure_listener(self, callback: Callable[[DeliveryFailed], None]):
        """Register a callback for messages that could not be delivered."""
        self._failure_listeners.append(callback)

    def connect(self):
        """
        Connect to the broker and start the delivery worker.

        Raises:
            BrokerConnectionError: If the broker cannot be reached
        """
        if self._connected:
            return
        if self._closed:
            raise BrokerError("Broker client is closed")
        if self._backend is None:
            self._backend = KafkaBackend(self.config)

        self._backend.connect()
        self._connected = True

        self._thread = threading.Thread(target=self._run, name='solarsim-broker', daemon=True)
        self._thread.start()
        logger.info("Broker client started (queue size %d, %s on full)",
                    self.config.queue_size, self.config.backpressure)

    def publish(self, topic: str, key: str, payload: bytes):
        """
        Queue a message for delivery.

        Returns once the message is queued; delivery happens in the
        background.

        Raises:
            BrokerError: If the client is not connected or is closing
            PublishQueueFull: If the queue stayed full
        """
        if not self._connected or self._closing:
            raise BrokerError("Broker client is not accepting messages")

        message = OutgoingMessage(topic=topic, key=key, payload=payload)
        try:
            if self.config.backpressure == 'block':
                self._queue.put(message, timeout=self.config.enqueue_timeout_seconds)
            else:
                self._queue.put_nowait(message)
        except queue.Full:
            self._count('dropped')
            raise PublishQueueFull(
                f"Publish queue full ({self.config.queue_size}); "
                f"message for {key!r} on {topic!r} not queued") from None
        self._count('enqueued')

    def flush(self, timeout: float = None) -> bool:
        """
        Wait until every queued message is delivered or reported failed.

        Returns:
            True if the queue drained before the timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def close(self, timeout: float = 5.0):
        """
        Drain the queue and close the connection.

        Messages still queued when the timeout expires are reported as
        DeliveryFailed with reason 'shutdown', and so is a message the
        worker is stuck sending when it does not stop in time.
        """
        if self._closed:
            return
        self._closing = True
        deadline = time.monotonic() + max(timeout, 0.0)

        if self._thread is not None:
            try:
                self._queue.put(_STOP, timeout=max(deadline - time.monotonic(), 0.0))
            except queue.Full:
                logger.warning("Publish queue still full at shutdown")
                self._abort.set()

            self._thread.join(max(deadline - time.monotonic(), 0.0))
            if self._thread.is_alive():
                logger.warning("Flush timed out with %d message(s) pending; aborting",
                               self.pending)
                self._abort.set()
                self._thread.join(self.config.message_timeout_ms / 1000.0 + 1.0)
                if self._thread.is_alive():
                    logger.error("Delivery worker did not stop")
                    with self._lock:
                        in_flight = self._in_flight
                    if in_flight is not None:
                        self._report_failure(in_flight, 0, 'shutdown')

        self._drain_remaining('shutdown')

        if self._backend is not None and self._connected:
            try:
                self._backend.close(max(deadline - time.monotonic(), 0.0))
            except BrokerError as e:
                logger.warning("Error closing broker connection: %s", e)

        self._connected = False
        self._closed = True
        logger.info("Broker client closed: %s", self.get_statistics())

    def get_statistics(self) -> dict:
        with self._lock:
            stats = dict(self.stats)
        stats['pending'] = self.pending
        stats['connected'] = self._connected
        return stats

    # === Worker ===

    def _run(self):
        while True:
            try:
                item = self._queue.get(timeout=0.1)
            except queue.Empty:
                if self._abort.is_set():
                    return
                continue
            try:
                if item is _STOP:
                    return
                if self._abort.is_set():
                    self._report_failure(item, 0, 'shutdown')
                    continue
                with self._lock:
                    self._in_flight = item
                self._deliver(item)
            finally:
                with self._lock:
                    self._in_flight = None
                self._queue.task_done()

    def _deliver(self, message: OutgoingMessage):
        retry = RetryState(self.config.retry)

        while True:
            lost_connection = False
            try:
                self._backend.send(message.topic, message.key, message.payload)
            except BrokerConnectionError as e:
                error, lost_connection = str(e), True
            except BrokerSendError as e:
                error = str(e)
            except Exception as e:
                logger.exception("Unexpected error delivering to %s", message.topic)
                error = f"{type(e).__name__}: {e}"
            else:
                retry.record_success()
                if self._settle(message):
                    self._count('delivered')
                else:
                    logger.warning("Message for %s (key=%s) delivered after it was "
                                   "reported failed", message.topic, message.key)
                return

            delay = retry.record_failure(error)
            if delay is None:
                self._report_failure(message, retry.attempts, error)
                return

            self._count('retries')
            logger.warning("Delivery to %s (key=%s) failed on attempt %d/%d: %s; "
                           "retrying in %.3fs", message.topic, message.key, retry.attempts,
                           self.config.retry.max_attempts, error, delay)

            if self._abort.wait(delay):
                self._report_failure(message, retry.attempts, 'shutdown')
                return

            if lost_connection:
                self._reconnect()

    def _reconnect(self):
        try:
            self._backend.connect()
        except BrokerConnectionError as e:
            logger.warning("Reconnect failed: %s", e)
        else:
            self._count('reconnects')
            logger.info("Reconnected to broker")

    def _drain_remaining(self, reason: str):
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            try:
                if item is not _STOP:
                    self._report_failure(item, 0, reason)
            finally:
                self._queue.task_done()

    def _settle(self, message: OutgoingMessage) -> bool:
        """Mark a message delivered or failed; False if it already was."""
        with self._lock:
            if message.settled:
                return False
            message.settled = True
            return True

    def _report_failure(self, message: OutgoingMessage, attempts: int, reason: str):
        if not self._settle(message):
            return
        failure = DeliveryFailed(message.topic, message.key, attempts, reason)
        self._count('failed')
        logger.error("%s", failure)
        for callback in self._failure_listeners:
            try:
                callback(failure)
            except Exception:
                logger.exception("Delivery failure listener raised")

    def _count(self, name: str, amount: int = 1):
        with self._lock:
            self.stats[name] += amount

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
