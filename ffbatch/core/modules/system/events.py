"""
Minimal observer support for encoders and controllers.

Listeners are registered per event name with ``on()``, which returns a
``Subscription``. Parents must cancel the subscriptions they hold on a child
before discarding it, otherwise the forwarding callbacks stay attached.
"""

from typing import Any, Callable, Dict, List

from ....utils.logging import get_logger

logger = get_logger("events")

Listener = Callable[..., Any]


class Subscription:
    """Handle returned by ``EventEmitter.on``; ``cancel()`` detaches the listener."""

    def __init__(self, emitter: "EventEmitter", event: str, listener: Listener):
        self._emitter = emitter
        self.event = event
        self.listener = listener
        self.active = True

    def cancel(self):
        if self.active:
            self._emitter._remove(self.event, self.listener)
            self.active = False


class EventEmitter:
    """Synchronous event emitter with explicit subscription handles."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Subscription:
        self._listeners.setdefault(event, []).append(listener)
        return Subscription(self, event, listener)

    def emit(self, event: str, *args: Any):
        """Call every listener of ``event`` in registration order.

        A listener that raises is logged and skipped so the emitting encoder's
        own state machine keeps running.
        """
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"Error in '{event}' listener {listener!r}: {e}")

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def _remove(self, event: str, listener: Listener):
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)
            if not listeners:
                del self._listeners[event]


class SubscriptionGroup:
    """The subscriptions a parent holds on one child, cancelled together."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def add(self, subscription: Subscription) -> Subscription:
        self._subscriptions.append(subscription)
        return subscription

    def cancel_all(self):
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()

    def __len__(self):
        return len(self._subscriptions)
