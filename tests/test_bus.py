import json
import unittest
from unittest.mock import MagicMock

from kafka import TopicPartition
from kafka.errors import KafkaError

from events_aggregator.bus import Subscription, decode_event
from events_aggregator.events import Action, Category

TOPIC = "stats.events.v1"

def make_record(value, offset=0, partition=0):
    record = MagicMock()
    record.value = value
    record.topic = TOPIC
    record.partition = partition
    record.offset = offset
    return record

def encode(category, action, event_id="e1"):
    return json.dumps({
        "id": event_id, "category": category, "action": action, "target": "t1", "node": "node-a"
    }).encode("utf-8")

def batch(*records):
    return {TopicPartition(TOPIC, 0): list(records)}


class TestDecodeEvent(unittest.TestCase):

    def test_decode_valid(self):
        event = decode_event(encode("Pool", "Deleted"))
        self.assertEqual(event.category, Category.POOL)
        self.assertEqual(event.action, Action.DELETED)

    def test_decode_errors_are_value_errors(self):
        for raw in (None, b"\xff\xfe", b"not json", b"[1, 2]", encode("Disk", "Created")):
            with self.assertRaises(ValueError):
                decode_event(raw)


class TestSubscription(unittest.TestCase):

    def setUp(self):
        self.consumer = MagicMock()
        self.factory = MagicMock(return_value=self.consumer)
        self.subscription = Subscription(self.factory, reconnect_base_delay=0, reconnect_max_delay=0)

    def test_next_returns_decoded_message(self):
        self.consumer.poll.side_effect = [{}, batch(make_record(encode("Volume", "Created"), offset=7))]

        message = self.subscription.next()

        self.assertEqual(message.event.category, Category.VOLUME)
        self.assertEqual(message.offset, 7)
        self.assertEqual(self.consumer.poll.call_args[1]["max_records"], 1)
        self.factory.assert_called_once()
        self.consumer.commit.assert_not_called()

    def test_ack_commits(self):
        self.consumer.poll.return_value = batch(make_record(encode("Volume", "Created")))
        message = self.subscription.next()

        self.assertTrue(self.subscription.ack(message))
        self.consumer.commit.assert_called_once()

    def test_malformed_message_is_acked_and_dropped(self):
        self.consumer.poll.side_effect = [
            batch(make_record(b"{garbage", offset=1)),
            batch(make_record(encode("Nexus", "Changed"), offset=2)),
        ]

        message = self.subscription.next()

        self.assertEqual(message.offset, 2)
        self.assertEqual(self.subscription.parse_errors, 1)
        self.consumer.commit.assert_called_once()

    def test_malformed_message_goes_to_dlq(self):
        producer = MagicMock()
        subscription = Subscription(self.factory, producer=producer, dlq_topic="stats.events.dlq.v1",
                                    reconnect_base_delay=0)
        self.consumer.poll.side_effect = [
            batch(make_record(b"oops", offset=3)),
            batch(make_record(encode("Pool", "Created"), offset=4)),
        ]

        subscription.next()

        producer.send.assert_called_once()
        topic = producer.send.call_args[0][0]
        value = producer.send.call_args[1]["value"]
        self.assertEqual(topic, "stats.events.dlq.v1")
        self.assertEqual(value["type"], "EventsAggregatorDLQ")
        self.assertEqual(value["payload"]["original_message"], "oops")
        self.assertEqual(value["payload"]["source_offset"], 3)
        self.consumer.commit.assert_called_once()

    def test_dlq_failure_still_drops(self):
        producer = MagicMock()
        producer.send.side_effect = Exception("Kafka Down")
        subscription = Subscription(self.factory, producer=producer, dlq_topic="dlq", reconnect_base_delay=0)
        self.consumer.poll.side_effect = [
            batch(make_record(b"oops")),
            batch(make_record(encode("Pool", "Created"), offset=1)),
        ]

        message = subscription.next()

        self.assertEqual(message.offset, 1)
        self.assertEqual(subscription.parse_errors, 1)
        self.consumer.commit.assert_called_once()

    def test_transport_error_reconnects(self):
        broken = MagicMock()
        broken.poll.side_effect = KafkaError("broker went away")
        self.factory.side_effect = [KafkaError("no brokers"), broken, self.consumer]
        self.consumer.poll.return_value = batch(make_record(encode("Replica", "Deleted")))

        message = self.subscription.next()

        self.assertEqual(message.event.category, Category.REPLICA)
        self.assertEqual(self.factory.call_count, 3)
        broken.close.assert_called_once_with(autocommit=False)

    def test_closed_subscription_returns_none(self):
        self.subscription.close()
        self.assertIsNone(self.subscription.next())
        self.consumer.poll.assert_not_called()

    def test_release_rewinds_to_message(self):
        self.consumer.poll.return_value = batch(make_record(encode("Volume", "Deleted"), offset=5))
        message = self.subscription.next()

        self.assertTrue(self.subscription.release(message))
        self.consumer.seek.assert_called_once_with(TopicPartition(TOPIC, 0), 5)

    def test_disconnect_does_not_commit(self):
        self.consumer.poll.return_value = batch(make_record(encode("Volume", "Deleted")))
        self.subscription.next()

        self.subscription.disconnect()

        self.consumer.close.assert_called_once_with(autocommit=False)
        self.consumer.commit.assert_not_called()
        self.assertFalse(self.subscription.ack(MagicMock()))

if __name__ == '__main__':
    unittest.main()
