"""
Unit tests for the observer primitives.
"""

import unittest
from unittest.mock import Mock

from ffbatch.core.modules.system.events import EventEmitter, SubscriptionGroup


class TestEventEmitter(unittest.TestCase):

    def setUp(self):
        self.emitter = EventEmitter()

    def test_listeners_called_in_order_with_arguments(self):
        calls = []
        self.emitter.on("log", lambda *args: calls.append(("first", args)))
        self.emitter.on("log", lambda *args: calls.append(("second", args)))

        self.emitter.emit("log", "tag", "text", False)

        self.assertEqual(calls, [("first", ("tag", "text", False)), ("second", ("tag", "text", False))])

    def test_cancel_detaches_listener(self):
        listener = Mock()
        subscription = self.emitter.on("update", listener)

        subscription.cancel()
        self.emitter.emit("update")

        listener.assert_not_called()
        self.assertFalse(subscription.active)
        self.assertEqual(self.emitter.listener_count("update"), 0)

    def test_cancel_twice_is_harmless(self):
        subscription = self.emitter.on("update", Mock())
        subscription.cancel()
        subscription.cancel()

    def test_failing_listener_does_not_stop_others(self):
        later = Mock()
        self.emitter.on("update", Mock(side_effect=RuntimeError("boom")))
        self.emitter.on("update", later)

        self.emitter.emit("update")

        later.assert_called_once_with()

    def test_listener_cancelling_itself_during_emit(self):
        calls = []
        subscription = None

        def once():
            calls.append("once")
            subscription.cancel()

        subscription = self.emitter.on("update", once)
        self.emitter.emit("update")
        self.emitter.emit("update")

        self.assertEqual(calls, ["once"])


class TestSubscriptionGroup(unittest.TestCase):

    def test_cancel_all(self):
        emitter = EventEmitter()
        group = SubscriptionGroup()
        group.add(emitter.on("log", Mock()))
        group.add(emitter.on("update", Mock()))
        self.assertEqual(len(group), 2)

        group.cancel_all()

        self.assertEqual(len(group), 0)
        self.assertEqual(emitter.listener_count("log"), 0)
        self.assertEqual(emitter.listener_count("update"), 0)


if __name__ == '__main__':
    unittest.main()
