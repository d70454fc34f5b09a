import threading
import time

from .event import EventType
from .listeners import EventListener, LifecycleListener


class BinaryLogClientStatistics(EventListener, LifecycleListener):
    """Counters over the events and lifecycle callbacks of one client.

    Register it as both an event and a lifecycle listener (register_with does that).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def register_with(self, client):
        client.register_event_listener(self)
        client.register_lifecycle_listener(self)
        return self

    def reset(self):
        with self._lock:
            self.last_event = None
            self.timestamp_of_last_event = 0.0
            self.total_number_of_events_seen = 0
            self.total_bytes_received = 0
            self.number_of_skipped_events = 0
            self.number_of_lost_connections = 0
            self.number_of_heartbeats = 0

    @property
    def seconds_since_last_event(self):
        with self._lock:
            if not self.timestamp_of_last_event:
                return None
            return time.time() - self.timestamp_of_last_event

    def on_event(self, event):
        header = event.header
        with self._lock:
            self.last_event = str(event)
            self.timestamp_of_last_event = time.time()
            self.total_number_of_events_seen += 1
            self.total_bytes_received += header.event_length
            if header.event_type == EventType.HEARTBEAT:
                self.number_of_heartbeats += 1

    def on_event_deserialization_failure(self, client, exc):
        with self._lock:
            self.number_of_skipped_events += 1
            self.timestamp_of_last_event = time.time()

    def on_communication_failure(self, client, exc):
        with self._lock:
            self.number_of_lost_connections += 1

    def get_stats(self) -> dict:
        seconds_since_last_event = self.seconds_since_last_event
        with self._lock:
            return {
                'last_event': self.last_event,
                'seconds_since_last_event': seconds_since_last_event,
                'total_number_of_events_seen': self.total_number_of_events_seen,
                'total_bytes_received': self.total_bytes_received,
                'number_of_skipped_events': self.number_of_skipped_events,
                'number_of_lost_connections': self.number_of_lost_connections,
                'number_of_heartbeats': self.number_of_heartbeats,
            }
