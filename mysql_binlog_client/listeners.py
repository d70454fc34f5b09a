import threading
from logging import getLogger


logger = getLogger(__name__)


class EventListener:
    def on_event(self, event):
        pass


class LifecycleListener:
    """Connection lifecycle callbacks, all of them are no-ops by default."""

    def on_connect(self, client):
        pass

    def on_communication_failure(self, client, exc):
        pass

    def on_event_deserialization_failure(self, client, exc):
        pass

    def on_disconnect(self, client):
        pass


def _matches(listener, target):
    if isinstance(target, type):
        return isinstance(listener, target)
    return listener is target


class ListenerRegistry:
    """Event and lifecycle listeners, kept in registration order.

    Listeners are stored in tuples that are replaced on every change, so a
    dispatch in progress keeps iterating its own snapshot and listeners may
    unregister themselves (or others) from a callback.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._event_listeners = ()
        self._lifecycle_listeners = ()

    @property
    def event_listeners(self) -> tuple:
        return self._event_listeners

    @property
    def lifecycle_listeners(self) -> tuple:
        return self._lifecycle_listeners

    def register_event_listener(self, listener):
        with self._lock:
            if any(x is listener for x in self._event_listeners):
                return
            self._event_listeners = self._event_listeners + (listener,)

    def unregister_event_listener(self, listener_or_class):
        """Remove a listener instance, or every listener of the given class."""
        with self._lock:
            self._event_listeners = tuple(
                x for x in self._event_listeners if not _matches(x, listener_or_class)
            )

    def register_lifecycle_listener(self, listener):
        with self._lock:
            if any(x is listener for x in self._lifecycle_listeners):
                return
            self._lifecycle_listeners = self._lifecycle_listeners + (listener,)

    def unregister_lifecycle_listener(self, listener_or_class):
        with self._lock:
            self._lifecycle_listeners = tuple(
                x for x in self._lifecycle_listeners if not _matches(x, listener_or_class)
            )

    def notify_event(self, event):
        for listener in self._event_listeners:
            try:
                listener.on_event(event)
            except Exception as e:
                logger.warning(f'{listener} choked on {event}: {e}', exc_info=True)

    def _notify_lifecycle(self, callback_name, *args):
        for listener in self._lifecycle_listeners:
            try:
                getattr(listener, callback_name)(*args)
            except Exception as e:
                logger.warning(f'{listener} is not responding to {callback_name}: {e}', exc_info=True)

    def notify_connect(self, client):
        self._notify_lifecycle('on_connect', client)

    def notify_communication_failure(self, client, exc):
        self._notify_lifecycle('on_communication_failure', client, exc)

    def notify_event_deserialization_failure(self, client, exc):
        self._notify_lifecycle('on_event_deserialization_failure', client, exc)

    def notify_disconnect(self, client):
        self._notify_lifecycle('on_disconnect', client)
