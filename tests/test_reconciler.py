import threading
import unittest
from unittest.mock import MagicMock

from events_aggregator.cache import EventsCache
from events_aggregator.events import Action, Category, EventSet
from events_aggregator.reconciler import Reconciler
from events_aggregator.store import EventStoreError

class TestReconciler(unittest.TestCase):

    def setUp(self):
        self.cache = EventsCache()
        self.cache.initialize(EventSet())
        self.store = MagicMock()
        self.reconciler = Reconciler(self.cache, self.store, interval=60)

    def test_applies_snapshot(self):
        self.cache.increment(Category.VOLUME, Action.CREATED)

        self.assertTrue(self.reconciler.reconcile_once())

        applied = self.store.apply.call_args[0][0]
        self.assertEqual(applied.get(Category.VOLUME, Action.CREATED), 1)

    def test_failed_tick_is_recovered_on_next_tick(self):
        self.store.apply.side_effect = [EventStoreError("apply", "callhome-stats", MagicMock(status=503, reason="Unavailable")), None]

        self.cache.increment(Category.POOL, Action.CREATED)
        self.assertFalse(self.reconciler.reconcile_once())

        self.cache.increment(Category.POOL, Action.CREATED)
        self.assertTrue(self.reconciler.reconcile_once())

        latest = self.store.apply.call_args[0][0]
        self.assertEqual(latest, self.cache.snapshot())
        self.assertEqual(latest.get(Category.POOL, Action.CREATED), 2)

    def test_network_errors_are_absorbed(self):
        self.store.apply.side_effect = ConnectionResetError("reset by peer")
        self.assertFalse(self.reconciler.reconcile_once())

    def test_cache_stays_writable_while_apply_blocks(self):
        entered = threading.Event()
        release = threading.Event()

        def apply(events):
            entered.set()
            release.wait(5)

        self.store.apply.side_effect = apply
        thread = threading.Thread(target=self.reconciler.reconcile_once)
        thread.start()
        self.assertTrue(entered.wait(5))

        incremented = threading.Event()

        def write():
            self.cache.increment(Category.NEXUS, Action.CHANGED)
            incremented.set()

        writer = threading.Thread(target=write)
        writer.start()
        try:
            self.assertTrue(incremented.wait(5))
        finally:
            release.set()
            thread.join(5)
            writer.join(5)

        applied = self.store.apply.call_args[0][0]
        self.assertEqual(applied.get(Category.NEXUS, Action.CHANGED), 0)
        self.assertEqual(self.cache.snapshot().get(Category.NEXUS, Action.CHANGED), 1)

    def test_skips_uninitialized_cache(self):
        reconciler = Reconciler(EventsCache(), self.store)
        self.assertFalse(reconciler.reconcile_once())
        self.store.apply.assert_not_called()

    def test_run_ticks_until_stopped_then_flushes(self):
        reconciler = Reconciler(self.cache, self.store, interval=0.01)
        ticked = threading.Event()

        def apply(events):
            if self.store.apply.call_count >= 3:
                ticked.set()

        self.store.apply.side_effect = apply
        thread = threading.Thread(target=reconciler.run)
        thread.start()
        self.assertTrue(ticked.wait(5))
        reconciler.stop()
        thread.join(5)

        self.assertFalse(thread.is_alive())
        self.assertGreaterEqual(self.store.apply.call_count, 4)

    def test_stop_without_flush(self):
        reconciler = Reconciler(self.cache, self.store, interval=60, flush_on_stop=False)
        reconciler.stop()
        reconciler.run()
        self.store.apply.assert_not_called()

if __name__ == '__main__':
    unittest.main()
