import threading
import time

import pytest

from solarsim.core.config import BrokerConfig, RetryPolicy
from solarsim.errors import (
    BrokerConnectionError,
    BrokerError,
    BrokerSendError,
    PublishQueueFull,
)
from solarsim.streaming.broker import (
    BrokerClient,
    KafkaBackend,
    MemoryBackend,
    ProducerBackend,
    RetryState,
)

FAST_RETRY = RetryPolicy(max_attempts=3, initial_backoff_seconds=0.001,
                         max_backoff_seconds=0.01)


class FlakyBackend(ProducerBackend):
    """Fails the first ``failures`` send attempts of every key."""

    def __init__(self, failures=0, error=BrokerSendError, connect_error=None):
        self.failures = failures
        self.error = error
        self.connect_error = connect_error
        self.attempts = {}
        self.sent = []
        self.connects = 0

    def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connects += 1

    def send(self, topic, key, payload):
        n = self.attempts.get(key, 0) + 1
        self.attempts[key] = n
        if n <= self.failures:
            raise self.error(f"attempt {n} for {key} failed")
        self.sent.append((topic, key, payload))

    def close(self, timeout=5.0):
        pass


class BlockingBackend(ProducerBackend):
    """Holds every send until released."""

    def __init__(self):
        self.in_send = threading.Event()
        self.release = threading.Event()
        self.sent = []

    def connect(self):
        pass

    def send(self, topic, key, payload):
        self.in_send.set()
        self.release.wait(5.0)
        self.sent.append(key)

    def close(self, timeout=5.0):
        pass


def _client(backend, **kwargs):
    kwargs.setdefault('retry', FAST_RETRY)
    client = BrokerClient(BrokerConfig(**kwargs), backend=backend)
    failures = []
    client.add_failure_listener(failures.append)
    return client, failures


def test_retries_within_budget_deliver():
    backend = FlakyBackend(failures=2)
    client, failures = _client(backend)
    client.connect()

    client.publish("ship-positions", "ship-1", b"{}")
    assert client.flush(timeout=2.0)
    client.close()

    assert failures == []
    assert backend.sent == [("ship-positions", "ship-1", b"{}")]
    assert client.stats['delivered'] == 1
    assert client.stats['retries'] == 2


def test_exhausted_budget_reports_once_per_message():
    backend = FlakyBackend(failures=100)
    client, failures = _client(backend)
    client.connect()

    for key in ("a", "b"):
        client.publish("planet-positions", key, b"{}")
    assert client.flush(timeout=2.0)
    client.close()

    assert sorted(f.key for f in failures) == ["a", "b"]
    assert all(f.attempts == FAST_RETRY.max_attempts for f in failures)
    assert backend.attempts == {"a": 3, "b": 3}
    assert client.stats['failed'] == 2
    assert client.stats['delivered'] == 0


def test_delivery_preserves_publish_order():
    backend = MemoryBackend()
    client, _ = _client(backend)
    client.connect()

    keys = [f"body-{i:03d}" for i in range(50)]
    for key in keys:
        client.publish("t", key, key.encode())
    client.close()

    assert [m.key for m in backend.sent("t")] == keys


def test_every_enqueued_message_accounted_for_on_close():
    backend = FlakyBackend(failures=1)
    client, failures = _client(backend)
    client.connect()
    for i in range(20):
        client.publish("t", f"k{i}", b"{}")
    client.close(timeout=5.0)

    stats = client.get_statistics()
    assert stats['enqueued'] == 20
    assert stats['delivered'] + stats['failed'] == 20
    assert stats['pending'] == 0


def test_drop_policy_rejects_when_queue_full():
    backend = BlockingBackend()
    client, _ = _client(backend, queue_size=1, backpressure='drop')
    client.connect()
    try:
        client.publish("t", "first", b"")
        assert backend.in_send.wait(2.0)
        client.publish("t", "second", b"")
        with pytest.raises(PublishQueueFull):
            client.publish("t", "third", b"")
        assert client.stats['dropped'] == 1
    finally:
        backend.release.set()
        client.close()
    assert backend.sent == ["first", "second"]


def test_block_policy_gives_up_after_timeout():
    backend = BlockingBackend()
    client, _ = _client(backend, queue_size=1, backpressure='block',
                        enqueue_timeout_seconds=0.01)
    client.connect()
    try:
        client.publish("t", "first", b"")
        assert backend.in_send.wait(2.0)
        client.publish("t", "second", b"")
        started = time.monotonic()
        with pytest.raises(PublishQueueFull):
            client.publish("t", "third", b"")
        assert time.monotonic() - started < 1.0
    finally:
        backend.release.set()
        client.close()


def test_connect_failure_is_a_connection_error():
    backend = FlakyBackend(connect_error=BrokerConnectionError("unreachable"))
    client, _ = _client(backend)
    with pytest.raises(ConnectionError):
        client.connect()
    assert not client.connected


def test_publish_requires_connection():
    client, _ = _client(MemoryBackend())
    with pytest.raises(BrokerError):
        client.publish("t", "k", b"")

    client.connect()
    client.close()
    with pytest.raises(BrokerError):
        client.publish("t", "k", b"")


def test_reconnects_after_lost_connection():
    backend = FlakyBackend(failures=1, error=BrokerConnectionError)
    client, failures = _client(backend)
    client.connect()
    client.publish("t", "k", b"{}")
    assert client.flush(timeout=2.0)
    client.close()

    assert failures == []
    assert client.stats['reconnects'] == 1
    assert backend.connects == 2


def test_close_aborts_long_backoff_and_reports_pending():
    backend = FlakyBackend(failures=100)
    slow = RetryPolicy(max_attempts=5, initial_backoff_seconds=10.0,
                       max_backoff_seconds=10.0)
    client, failures = _client(backend, retry=slow)
    client.connect()
    for key in ("a", "b", "c"):
        client.publish("t", key, b"{}")

    started = time.monotonic()
    client.close(timeout=0.2)
    assert time.monotonic() - started < 3.0

    assert sorted(f.key for f in failures) == ["a", "b", "c"]
    assert client.stats['failed'] == 3


def test_retry_state():
    state = RetryState(RetryPolicy(max_attempts=3, initial_backoff_seconds=0.1,
                                   max_backoff_seconds=1.0))
    assert state.record_failure("boom") == pytest.approx(0.1)
    assert state.record_failure("boom") == pytest.approx(0.2)
    assert not state.exhausted
    assert state.record_failure("boom") is None
    assert state.exhausted
    assert state.last_error == "boom"

    ok = RetryState(RetryPolicy())
    ok.record_success()
    assert ok.delivered and not ok.exhausted and ok.attempts == 1


def test_kafka_backend_reports_unreachable_broker():
    pytest.importorskip("confluent_kafka")
    backend = KafkaBackend(BrokerConfig(bootstrap_servers="127.0.0.1:1",
                                        connect_timeout_seconds=0.5))
    with pytest.raises(BrokerConnectionError):
        backend.connect()


def test_close_reports_message_stuck_in_send():
    backend = BlockingBackend()
    client, failures = _client(backend, message_timeout_ms=100)
    client.connect()
    client.publish("t", "stuck", b"{}")
    assert backend.in_send.wait(2.0)

    client.close(timeout=0.1)

    assert [(f.key, f.reason) for f in failures] == [("stuck", "shutdown")]
    assert client.stats['failed'] == 1

    # A late acknowledgement does not turn the message into a delivery
    backend.release.set()
    client._thread.join(2.0)
    assert backend.sent == ["stuck"]
    assert client.stats['delivered'] == 0
    assert len(failures) == 1
