import logging
from kafka import KafkaConsumer

logger = logging.getLogger("commit-helper")

def commit_if_safe(
    consumer: KafkaConsumer,
    processing_success: bool,
    dropped: bool = False
) -> bool:
    """
    Decides whether to commit the consumed offset of the in-flight message.

    Rule:
    - If processing_success is True -> Commit.
    - If the message was deliberately dropped (malformed, dead-lettered) -> Commit,
      so it is not redelivered forever.
    - Otherwise -> DO NOT COMMIT. The message is replayed on the next assignment.

    Returns True if the commit went through, False otherwise.
    """
    if not (processing_success or dropped):
        logger.warning("Message neither processed nor dropped. Offset NOT committed. Replay will occur.")
        return False

    try:
        consumer.commit()
        return True
    except Exception as e:
        logger.error(f"Failed to commit offsets: {e}")
        return False
