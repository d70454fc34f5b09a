import threading
import time
from logging import getLogger


logger = getLogger(__name__)


class KeepAliveSupervisor:
    """Checks the connection every keep_alive_interval and reconnects when it is lost.

    With a heartbeat interval configured the connection is lost when no
    event (heartbeats included) was seen for keep_alive_interval. Without
    it a COM_PING is sent and only a failed write counts as a lost
    connection, a server that accepts the ping and never answers is not
    detected.
    """

    def __init__(self, client, thread_factory):
        self.client = client
        self.thread_factory = thread_factory
        self._lock = threading.Lock()
        self._thread = None
        self._stop_event = None
        # bumped by stop(), a connect started earlier must not spawn a supervisor afterwards
        self._generation = 0
        self.event_last_seen = time.monotonic()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def mark_event_seen(self):
        self.event_last_seen = time.monotonic()

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None

    def start(self, generation: int = None) -> bool:
        config = self.client.config
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug('client was disconnected while connecting, keep alive not started')
                return False
            if self._thread is not None:
                return False
            stop_event = threading.Event()
            self._thread = self.thread_factory(
                lambda: self._run(stop_event), f'blc-keepalive-{config.host}:{config.port}',
            )
            self._stop_event = stop_event
            self._thread.start()
            return True

    def stop(self):
        """Stop the supervisor and wait for a check in progress to finish."""
        with self._lock:
            self._generation += 1
            thread, stop_event = self._thread, self._stop_event
            if thread is None:
                return
            stop_event.set()
        if thread is not threading.current_thread():
            thread.join()
        with self._lock:
            if self._thread is thread:
                self._thread = None
                self._stop_event = None

    def connection_lost(self) -> bool:
        config = self.client.config
        if config.heartbeat_interval > 0:
            return time.monotonic() - self.event_last_seen > config.keep_alive_interval
        try:
            self.client.ping()
        except Exception as e:
            logger.debug(f'keep alive ping failed: {e}')
            return True
        return False

    def _run(self, stop_event: threading.Event):
        interval = self.client.config.keep_alive_interval
        while not stop_event.wait(interval):
            self.check(stop_event)

    def check(self, stop_event: threading.Event):
        if not self.connection_lost():
            return
        config = self.client.config
        logger.info(f'Trying to restore lost connection to {config.host}:{config.port}')
        try:
            self.client.terminate_connect(stop_event)
            if stop_event.is_set():
                return
            self.client.connect(timeout=config.connect_timeout or config.keep_alive_interval)
        except Exception as e:
            logger.warning(
                f'Failed to restore connection to {config.host}:{config.port}. '
                f'Next attempt in {config.keep_alive_interval}s: {e}'
            )
