import time
import uuid
import logging
import socket
from typing import Optional
from kafka import KafkaProducer

logger = logging.getLogger("dlq-helper")

def build_dlq_event(
    reason: str,
    original_message,
    source_topic: str,
    source_partition: int,
    source_offset: int,
    event_type: str = "EventsAggregatorDLQ"
) -> dict:
    """
    Constructs a standardized DLQ event envelope.
    Raw bytes are decoded leniently so that undecodable payloads still
    reach the dead-letter topic.
    """
    if isinstance(original_message, bytes):
        original_message = original_message.decode("utf-8", errors="replace")

    return {
        "event_id": str(uuid.uuid4()),
        "type": event_type,
        "timestamp": int(time.time() * 1000),
        "schema_version": "1.0",
        "payload": {
            "reason": reason,
            "original_message": original_message,
            "source_topic": source_topic,
            "source_partition": source_partition,
            "source_offset": source_offset,
            "failed_by": socket.gethostname()
        }
    }

def send_dlq(
    producer: Optional[KafkaProducer],
    dlq_topic: str,
    dlq_event: dict,
    timeout: float = 10
) -> bool:
    """
    Sends an event to the DLQ topic and waits for the broker ack.
    Returns False if there is no producer or the send failed.
    """
    if not producer:
        logger.error("DLQ Producer is None. Cannot send DLQ event.")
        return False

    try:
        future = producer.send(dlq_topic, value=dlq_event)
        future.get(timeout=timeout)
        return True
    except Exception as e:
        logger.error(f"Failed to publish to DLQ {dlq_topic}: {e}")
        return False
