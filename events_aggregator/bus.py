import json
import logging
import threading
from typing import Callable, Optional

from kafka import KafkaConsumer, KafkaProducer, TopicPartition
from kafka.errors import KafkaError

from common.reliability.commit import commit_if_safe
from common.reliability.dlq import build_dlq_event, send_dlq
from common.reliability.retry import backoff_delays
from events_aggregator.events import EventMessage
from events_aggregator.metrics import BUS_RECONNECTS, DLQ_PUBLISHED, MESSAGES_PROCESSED, PARSE_ERRORS

logger = logging.getLogger("bus-subscription")


class BusMessage:
    """A decoded event together with the position it was read from."""

    __slots__ = ("event", "topic", "partition", "offset")

    def __init__(self, event: EventMessage, topic: str, partition: int, offset: int):
        self.event = event
        self.topic = topic
        self.partition = partition
        self.offset = offset

    def __repr__(self):
        return f"BusMessage(id={self.event.id!r}, {self.topic}[{self.partition}]@{self.offset})"


def decode_event(raw: Optional[bytes]) -> EventMessage:
    """Raises ValueError for anything that is not a valid event payload."""
    if raw is None:
        raise ValueError("empty payload")
    return EventMessage.model_validate(json.loads(raw.decode("utf-8")))


class Subscription:
    """
    Acknowledgement-gated consumer of the events topic.

    The consumer is created by `consumer_factory` with auto-commit off and
    one record per poll, so at most one message is unacknowledged at a time.
    Transport failures are retried here with backoff and never reach the caller.
    Only the thread calling next() may touch the Kafka consumer; close() is
    safe from any thread.
    """

    def __init__(
        self,
        consumer_factory: Callable[[], KafkaConsumer],
        producer: Optional[KafkaProducer] = None,
        dlq_topic: Optional[str] = None,
        poll_timeout_ms: int = 1000,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 30.0
    ):
        self._consumer_factory = consumer_factory
        self._consumer: Optional[KafkaConsumer] = None
        self._producer = producer
        self._dlq_topic = dlq_topic
        self._poll_timeout_ms = poll_timeout_ms
        self._reconnect_base_delay = reconnect_base_delay
        self._reconnect_max_delay = reconnect_max_delay
        self._closed = threading.Event()
        self.parse_errors = 0

    def next(self) -> Optional[BusMessage]:
        """
        Blocks until a valid message arrives. Returns None once closed.
        Malformed messages are acknowledged and dropped on the way.
        """
        delays = backoff_delays(self._reconnect_base_delay, self._reconnect_max_delay)
        while not self._closed.is_set():
            try:
                consumer = self._connect()
                records = consumer.poll(timeout_ms=self._poll_timeout_ms, max_records=1)
            except KafkaError as e:
                delay = next(delays)
                logger.error(f"Bus unavailable: {e}. Reconnecting in {delay}s")
                BUS_RECONNECTS.inc()
                self.disconnect()
                self._closed.wait(delay)
                continue

            delays = backoff_delays(self._reconnect_base_delay, self._reconnect_max_delay)
            for tp, messages in records.items():
                for record in messages:
                    message = self._decode(record)
                    if message is not None:
                        return message
        return None

    def ack(self, message: BusMessage) -> bool:
        if self._consumer is None:
            logger.error(f"Cannot ack {message}: consumer is disconnected")
            return False
        return commit_if_safe(self._consumer, processing_success=True)

    def release(self, message: BusMessage) -> bool:
        """Rewinds to the message so it is delivered again."""
        if self._consumer is None:
            return False
        try:
            self._consumer.seek(TopicPartition(message.topic, message.partition), message.offset)
            return True
        # kafka-python asserts on partitions that are no longer assigned
        except (KafkaError, AssertionError) as e:
            logger.warning(f"Could not rewind to {message}: {e}")
            return False

    def close(self):
        """Stops next(). The in-flight message, if any, stays unacknowledged."""
        self._closed.set()

    def disconnect(self):
        if self._consumer is None:
            return
        consumer, self._consumer = self._consumer, None
        try:
            consumer.close(autocommit=False)
        except Exception as e:
            logger.warning(f"Error closing bus consumer: {e}")

    def _connect(self) -> KafkaConsumer:
        if self._consumer is None:
            self._consumer = self._consumer_factory()
            logger.info("Bus consumer connected")
        return self._consumer

    def _decode(self, record) -> Optional[BusMessage]:
        try:
            event = decode_event(record.value)
        except ValueError as e:
            self._drop(record, str(e))
            return None
        return BusMessage(event, record.topic, record.partition, record.offset)

    def _drop(self, record, reason: str):
        self.parse_errors += 1
        PARSE_ERRORS.inc()
        MESSAGES_PROCESSED.labels(status="parse_error").inc()
        logger.warning(f"Dropping malformed message {record.topic}[{record.partition}]@{record.offset}: {reason}")

        if self._dlq_topic:
            dlq_event = build_dlq_event(reason, record.value, record.topic, record.partition, record.offset)
            if send_dlq(self._producer, self._dlq_topic, dlq_event):
                DLQ_PUBLISHED.labels(topic=self._dlq_topic).inc()

        commit_if_safe(self._consumer, processing_success=False, dropped=True)
